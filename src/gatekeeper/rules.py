"""Static deny-lists for sources, clients and paths."""

from collections.abc import Iterable

import structlog

from gatekeeper.config import Settings
from gatekeeper.models import DenyReason

logger = structlog.get_logger()


class DenyLists:
    """Immutable deny-lists, loaded once at startup."""

    def __init__(
        self,
        ips: Iterable[str] = (),
        user_agents: Iterable[str] = (),
        paths: Iterable[str] = (),
    ) -> None:
        self.ips: frozenset[str] = frozenset(ips)
        # Signatures are matched as lower-case substrings
        self.user_agents: tuple[str, ...] = tuple(ua.lower() for ua in user_agents if ua)
        self.paths: tuple[str, ...] = tuple(p for p in paths if p)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DenyLists":
        return cls(
            ips=settings.blocked_ips,
            user_agents=settings.blocked_user_agents,
            paths=settings.blocked_paths,
        )

    def match(self, ip: str, user_agent: str, path: str) -> DenyReason | None:
        """Return the first deny-list the request falls into, if any."""
        if ip in self.ips:
            logger.warning("request_blocked", reason=DenyReason.BLOCKED_IP.value, client_ip=ip)
            return DenyReason.BLOCKED_IP

        user_agent_lower = (user_agent or "").lower()
        for signature in self.user_agents:
            if signature in user_agent_lower:
                logger.warning(
                    "request_blocked",
                    reason=DenyReason.BLOCKED_USER_AGENT.value,
                    user_agent=user_agent,
                    signature=signature,
                )
                return DenyReason.BLOCKED_USER_AGENT

        for prefix in self.paths:
            if path.startswith(prefix):
                logger.warning(
                    "request_blocked",
                    reason=DenyReason.BLOCKED_PATH.value,
                    path=path,
                    prefix=prefix,
                )
                return DenyReason.BLOCKED_PATH

        return None

    def is_blocked(self, ip: str, user_agent: str, path: str) -> bool:
        return self.match(ip, user_agent, path) is not None
