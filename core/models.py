"""
HtGate Data Models
Core data structures shared by the parser, the evaluators and the host layer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


class DirectiveType:
    """String constants naming every directive kind the parser recognises."""

    # Response / request headers
    HEADER_SET = "header_set"
    HEADER_UNSET = "header_unset"
    HEADER_APPEND = "header_append"
    HEADER_MERGE = "header_merge"
    HEADER_ADD = "header_add"
    HEADER_ALWAYS_SET = "header_always_set"
    HEADER_ALWAYS_UNSET = "header_always_unset"
    HEADER_ALWAYS_APPEND = "header_always_append"
    HEADER_ALWAYS_MERGE = "header_always_merge"
    HEADER_ALWAYS_ADD = "header_always_add"
    REQUEST_HEADER_SET = "request_header_set"
    REQUEST_HEADER_UNSET = "request_header_unset"

    # PHP ini values
    PHP_VALUE = "php_value"
    PHP_FLAG = "php_flag"
    PHP_ADMIN_VALUE = "php_admin_value"
    PHP_ADMIN_FLAG = "php_admin_flag"

    # Legacy access control
    ORDER = "order"
    ALLOW_FROM = "allow_from"
    DENY_FROM = "deny_from"

    REDIRECT = "redirect"
    REDIRECT_MATCH = "redirect_match"
    ERROR_DOCUMENT = "error_document"

    EXPIRES_ACTIVE = "expires_active"
    EXPIRES_BY_TYPE = "expires_by_type"
    EXPIRES_DEFAULT = "expires_default"

    SETENV = "setenv"
    SETENVIF = "setenvif"
    BROWSER_MATCH = "browser_match"

    BRUTE_FORCE_PROTECTION = "brute_force_protection"
    BRUTE_FORCE_ALLOWED_ATTEMPTS = "brute_force_allowed_attempts"
    BRUTE_FORCE_WINDOW = "brute_force_window"
    BRUTE_FORCE_ACTION = "brute_force_action"
    BRUTE_FORCE_THROTTLE_DURATION = "brute_force_throttle_duration"
    BRUTE_FORCE_X_FORWARDED_FOR = "brute_force_x_forwarded_for"
    BRUTE_FORCE_WHITELIST = "brute_force_whitelist"
    BRUTE_FORCE_PROTECT_PATH = "brute_force_protect_path"

    # Modern access control
    REQUIRE_ALL_GRANTED = "require_all_granted"
    REQUIRE_ALL_DENIED = "require_all_denied"
    REQUIRE_IP = "require_ip"
    REQUIRE_NOT_IP = "require_not_ip"
    REQUIRE_VALID_USER = "require_valid_user"
    REQUIRE_ANY_OPEN = "require_any_open"
    REQUIRE_ALL_OPEN = "require_all_open"

    AUTH_TYPE = "auth_type"
    AUTH_NAME = "auth_name"
    AUTH_USER_FILE = "auth_user_file"

    OPTIONS = "options"
    ADD_HANDLER = "add_handler"
    SET_HANDLER = "set_handler"
    ADD_TYPE = "add_type"
    DIRECTORY_INDEX = "directory_index"
    FORCE_TYPE = "force_type"
    ADD_ENCODING = "add_encoding"
    ADD_CHARSET = "add_charset"

    # Containers
    FILES_MATCH = "files_match"
    FILES = "files"
    IFMODULE = "ifmodule"
    LIMIT = "limit"
    LIMIT_EXCEPT = "limit_except"


# Opening tag name for each container kind
CONTAINER_TAGS = {
    DirectiveType.FILES_MATCH: "FilesMatch",
    DirectiveType.FILES: "Files",
    DirectiveType.IFMODULE: "IfModule",
    DirectiveType.REQUIRE_ANY_OPEN: "RequireAny",
    DirectiveType.REQUIRE_ALL_OPEN: "RequireAll",
    DirectiveType.LIMIT: "Limit",
    DirectiveType.LIMIT_EXCEPT: "LimitExcept",
}

CONTAINER_TYPES = frozenset(CONTAINER_TAGS)

REQUIRE_TYPES = frozenset({
    DirectiveType.REQUIRE_ALL_GRANTED,
    DirectiveType.REQUIRE_ALL_DENIED,
    DirectiveType.REQUIRE_IP,
    DirectiveType.REQUIRE_NOT_IP,
    DirectiveType.REQUIRE_VALID_USER,
    DirectiveType.REQUIRE_ANY_OPEN,
    DirectiveType.REQUIRE_ALL_OPEN,
})

ACL_TYPES = frozenset({
    DirectiveType.ORDER,
    DirectiveType.ALLOW_FROM,
    DirectiveType.DENY_FROM,
})

ORDER_ALLOW_DENY = "allow,deny"
ORDER_DENY_ALLOW = "deny,allow"

VERDICT_ALLOWED = "ALLOWED"
VERDICT_DENIED = "DENIED"
VERDICT_NOT_APPLICABLE = "NOT_APPLICABLE"


# ─── Low-level parse results ───

@dataclass(frozen=True)
class CidrRange:
    """IPv4 network and mask, both 32-bit unsigned in host order."""
    network: int
    mask: int

    @property
    def prefix_length(self) -> int:
        return bin(self.mask).count("1")


@dataclass(frozen=True)
class ParseError:
    """Explicit failure value returned by the CIDR and duration parsers."""
    kind: str       # empty | syntax | octet_range | leading_zero | prefix_range | trailing | ...
    message: str


# ─── Directive payloads ───

@dataclass(frozen=True)
class AclOrder:
    order: str = ORDER_ALLOW_DENY


@dataclass(frozen=True)
class RedirectData:
    status_code: int = 302
    pattern: Optional[str] = None


@dataclass(frozen=True)
class ErrorDocumentData:
    error_code: int


@dataclass(frozen=True)
class ExpiresData:
    active: bool = False
    duration_sec: int = 0


@dataclass(frozen=True)
class EnvIfData:
    attribute: str
    pattern: str


@dataclass(frozen=True)
class BruteForceData:
    """Only the field matching the directive kind is meaningful."""
    enabled: bool = False
    allowed_attempts: int = 0
    window_sec: int = 0
    action: str = "block"
    throttle_ms: int = 0


@dataclass(frozen=True)
class OptionsData:
    """Tri-state flags: +1 enable, -1 disable, 0 untouched."""
    indexes: int = 0
    follow_symlinks: int = 0
    multiviews: int = 0
    exec_cgi: int = 0


@dataclass(frozen=True)
class ContainerData:
    children: Tuple["Directive", ...] = ()
    pattern: Optional[str] = None     # FilesMatch regex
    negated: bool = False             # IfModule !name
    methods: Optional[str] = None     # Limit / LimitExcept method list


@dataclass(frozen=True)
class Directive:
    """One parsed .htaccess directive. Containers carry their children in data."""
    type: str
    line_number: int
    name: Optional[str] = None
    value: Optional[str] = None
    data: Any = None

    @property
    def is_container(self) -> bool:
        return self.type in CONTAINER_TYPES

    @property
    def children(self) -> Tuple["Directive", ...]:
        if isinstance(self.data, ContainerData):
            return self.data.children
        return ()


# ─── Parse output ───

@dataclass
class Diagnostic:
    """A warning emitted while parsing."""
    level: str          # WARNING | ERROR
    line: int
    message: str


@dataclass
class ParsedHtaccess:
    """Result of parsing one .htaccess text."""
    source: str
    directives: List[Directive] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def count(self) -> int:
        """Total directives, including nested children."""
        total = 0
        stack = list(self.directives)
        while stack:
            d = stack.pop()
            total += 1
            stack.extend(d.children)
        return total


# ─── Request side ───

@dataclass
class AccessDecision:
    verdict: str                    # ALLOWED | DENIED | NOT_APPLICABLE
    status: Optional[int] = None    # 403 when denied
    reason: str = ""

    @property
    def allowed(self) -> bool:
        return self.verdict == VERDICT_ALLOWED

    @property
    def denied(self) -> bool:
        return self.verdict == VERDICT_DENIED


@dataclass
class RequestSession:
    """Per-request state the host exposes to the evaluators."""
    client_ip: Optional[str] = None
    method: str = "GET"
    uri: str = "/"
    filename: Optional[str] = None
    content_type: Optional[str] = None
    status: int = 200
    response_headers: Dict[str, str] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    authorization: Optional[str] = None   # raw Authorization request header


@dataclass
class ConfigInput:
    """Represents a loaded configuration file."""
    path: str
    content: str
    file_hash: str  # SHA-256
    file_size: int
    timestamp: str
    filename: str
    mtime: float = 0.0


@dataclass
class EvaluationReport:
    """Everything produced for one configuration: parse result and, optionally, a decision."""
    config_input: ConfigInput
    parsed: ParsedHtaccess
    session: Optional[RequestSession] = None
    decision: Optional[AccessDecision] = None
    brute_force: Any = None
    brute_force_protected: bool = False     # request path falls under the policy
    brute_force_whitelisted: bool = False   # client address is on the whitelist
    expires_seconds: Optional[int] = None
    generated_at: str = field(default_factory=lambda: datetime.now().isoformat())
