"""Domain models for Gatekeeper."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Verdict(StrEnum):
    """Outcome of a gate evaluation."""

    ADMIT = "ADMIT"
    DENY = "DENY"
    THROTTLE = "THROTTLE"


class DenyReason(StrEnum):
    """Why a request was refused. Logged server-side, never returned to clients."""

    BLOCKED_IP = "BLOCKED_IP"
    BLOCKED_USER_AGENT = "BLOCKED_USER_AGENT"
    BLOCKED_PATH = "BLOCKED_PATH"
    RATE_LIMITED = "RATE_LIMITED"
    HEADERS_TOO_LARGE = "HEADERS_TOO_LARGE"
    HEADER_INJECTION = "HEADER_INJECTION"
    SUSPICIOUS_CONTENT_TYPE = "SUSPICIOUS_CONTENT_TYPE"
    SQL_INJECTION = "SQL_INJECTION"
    XSS = "XSS"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ThreatCategory(StrEnum):
    """Pattern library a threat pattern belongs to."""

    SQL_INJECTION = "SQL_INJECTION"
    XSS = "XSS"


class ClientKey(BaseModel):
    """Rate-limit bucket identity: one bucket per client and HTTP method."""

    client_id: str = Field(..., min_length=1)
    method: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.client_id}:{self.method.upper()}"


class RateWindow(BaseModel):
    """Counter state for one fixed window."""

    count: int = Field(..., ge=0)
    reset_at: float = Field(..., alias="resetAt")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def is_expired(self, now: float) -> bool:
        """An expired window must be replaced, never incremented."""
        return now > self.reset_at


class RateLimitResult(BaseModel):
    """Result of consuming one request from a window."""

    allowed: bool
    count: int = Field(..., ge=0)
    reset_at: float = Field(..., alias="resetAt")
    limit: int = Field(..., ge=1)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)


class HeaderValidation(BaseModel):
    """Outcome of header validation."""

    valid: bool
    reason: DenyReason | None = None

    model_config = ConfigDict(frozen=True)


class GuardRequest(BaseModel):
    """The parts of an inbound request the gate inspects."""

    method: str
    path: str
    headers: tuple[tuple[str, str], ...] = ()
    query_params: tuple[tuple[str, str], ...] = ()

    model_config = ConfigDict(frozen=True)

    def header(self, name: str) -> str | None:
        """Return the first value of a header, matched case-insensitively."""
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None


class GateContext(BaseModel):
    """Per-request facts resolved before the checks run."""

    client_ip: str
    user_agent: str = ""
    rate_limit: RateLimitResult | None = None


class Decision(BaseModel):
    """Verdict of the gate for a single request."""

    verdict: Verdict
    status_code: int = 200
    error: str | None = None
    reason: DenyReason | None = None
    rate_limit: RateLimitResult | None = None
    retry_after: int | None = None

    model_config = ConfigDict(frozen=True)

    @classmethod
    def admit(cls, rate_limit: RateLimitResult | None = None) -> "Decision":
        return cls(verdict=Verdict.ADMIT, rate_limit=rate_limit)

    @classmethod
    def deny(cls, status_code: int, error: str, reason: DenyReason) -> "Decision":
        return cls(verdict=Verdict.DENY, status_code=status_code, error=error, reason=reason)

    @classmethod
    def throttle(cls, rate_limit: RateLimitResult, retry_after: int) -> "Decision":
        return cls(
            verdict=Verdict.THROTTLE,
            status_code=429,
            error="Too Many Requests",
            reason=DenyReason.RATE_LIMITED,
            rate_limit=rate_limit,
            retry_after=retry_after,
        )

    @property
    def admitted(self) -> bool:
        return self.verdict == Verdict.ADMIT


class ErrorBody(BaseModel):
    """Uniform JSON body of every refused request."""

    error: str
    message: str | None = None
    timestamp: str
    request_id: str = Field(..., alias="requestId")
    retry_after: int | None = Field(None, alias="retryAfter")

    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> dict[str, object]:
        return self.model_dump(by_alias=True, exclude_none=True)
