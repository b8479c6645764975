"""
SQL injection and XSS indicators for query parameters.

This is a blunt perimeter filter that tolerates false positives. It does not
replace parameterized queries or output encoding at the point of use.

Every pattern runs on every request, so each one is checked at import time:
repetition must either be bounded (``{m,n}``) or possessive (``*+``, ``++``).
Possessive runs never give characters back, so no pattern can backtrack
catastrophically whatever the length of the input.
"""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from gatekeeper.models import ThreatCategory

QueryParams = Iterable[tuple[str, str]]


@dataclass(frozen=True)
class ThreatPattern:
    """A named, compiled threat indicator.

    When ``inner`` is set, ``source`` selects candidate spans (such as whole
    tags) and the pattern matches if ``inner`` occurs inside any of them.
    """

    name: str
    category: ThreatCategory
    source: str
    flags: int = 0
    inner: str | None = None
    regex: re.Pattern[str] = field(init=False, repr=False, compare=False)
    inner_regex: re.Pattern[str] | None = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        ensure_bounded(self.source)
        object.__setattr__(self, "regex", re.compile(self.source, self.flags))
        inner_regex = None
        if self.inner is not None:
            ensure_bounded(self.inner)
            inner_regex = re.compile(self.inner, self.flags)
        object.__setattr__(self, "inner_regex", inner_regex)

    def search(self, text: str) -> bool:
        if self.inner_regex is None:
            return self.regex.search(text) is not None
        return any(self.inner_regex.search(match.group()) for match in self.regex.finditer(text))


def ensure_bounded(source: str) -> None:
    """Reject ``*`` or ``+`` repetition that is not possessive."""
    escaped = False
    in_class = False
    index = 0
    while index < len(source):
        char = source[index]
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif in_class:
            if char == "]":
                in_class = False
        elif char == "[":
            in_class = True
        elif char in "*+":
            if source[index + 1 : index + 2] != "+":
                raise ValueError(f"unbounded repetition at offset {index} in {source!r}")
            # skip the possessive marker
            index += 1
        index += 1


SQL_PATTERNS: tuple[ThreatPattern, ...] = (
    ThreatPattern(
        "sql_command_keyword",
        ThreatCategory.SQL_INJECTION,
        r"\b(?:SELECT|INSERT|UPDATE|DELETE|DROP|CREATE|ALTER|EXEC|EXECUTE)\b",
        re.IGNORECASE,
    ),
    ThreatPattern(
        "sql_structural_keyword",
        ThreatCategory.SQL_INJECTION,
        r"\b(?:UNION|JOIN|WHERE|OR|AND)\b",
        re.IGNORECASE,
    ),
    ThreatPattern(
        "sql_meta_character",
        ThreatCategory.SQL_INJECTION,
        r"'|\"|;|--|/\*|\*/",
    ),
    ThreatPattern(
        "sql_encoded_quote_or",
        ThreatCategory.SQL_INJECTION,
        r"(?:%27|')(?:%6F|o|%4F)(?:%72|r|%52)",
        re.IGNORECASE,
    ),
    ThreatPattern(
        "sql_quote_union",
        ThreatCategory.SQL_INJECTION,
        r"(?:%27|')union",
        re.IGNORECASE,
    ),
    ThreatPattern(
        "sql_stored_procedure",
        ThreatCategory.SQL_INJECTION,
        r"exec(?:\s|\+)++[sx]p\w++",
        re.IGNORECASE,
    ),
)

XSS_PATTERNS: tuple[ThreatPattern, ...] = (
    ThreatPattern(
        "xss_script_tag",
        ThreatCategory.XSS,
        r"<script[^>]*+>",
        re.IGNORECASE,
    ),
    ThreatPattern(
        "xss_iframe_tag",
        ThreatCategory.XSS,
        r"<iframe[^>]*+>",
        re.IGNORECASE,
    ),
    ThreatPattern(
        "xss_javascript_uri",
        ThreatCategory.XSS,
        r"javascript:",
        re.IGNORECASE,
    ),
    ThreatPattern(
        "xss_event_handler",
        ThreatCategory.XSS,
        r"on\w++\s*+=",
        re.IGNORECASE,
    ),
    ThreatPattern(
        "xss_tag_with_handler",
        ThreatCategory.XSS,
        r"<[^>]*+>",
        re.IGNORECASE,
        inner=r"on\w",
    ),
    ThreatPattern(
        "xss_tag_with_javascript_uri",
        ThreatCategory.XSS,
        r"<[^>]*+>",
        re.IGNORECASE,
        inner=r"javascript:",
    ),
)


def find_threat(params: QueryParams, patterns: Iterable[ThreatPattern]) -> ThreatPattern | None:
    """Return the first pattern matching any key or value, or None."""
    library = tuple(patterns)
    for key, value in params:
        for pattern in library:
            if pattern.search(key) or pattern.search(value):
                return pattern
    return None


def contains_sql_injection(params: QueryParams) -> bool:
    return find_threat(params, SQL_PATTERNS) is not None


def contains_xss(params: QueryParams) -> bool:
    return find_threat(params, XSS_PATTERNS) is not None


def scan(params: QueryParams) -> ThreatPattern | None:
    """Run the SQL library first, then the XSS library."""
    pairs = list(params)
    return find_threat(pairs, SQL_PATTERNS) or find_threat(pairs, XSS_PATTERNS)
