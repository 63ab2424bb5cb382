"""
Brute-force protection policy.
Resolves the effective BruteForce* settings from a directive sequence.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from core.models import DirectiveType, Directive, ParseError
from core.cidr import parse_ip, ip_in_cidr_list


DEFAULT_ALLOWED_ATTEMPTS = 10
DEFAULT_WINDOW_SEC = 300
DEFAULT_THROTTLE_MS = 1000


@dataclass
class BruteForcePolicy:
    enabled: bool = False
    allowed_attempts: int = DEFAULT_ALLOWED_ATTEMPTS
    window_sec: int = DEFAULT_WINDOW_SEC
    action: str = "block"           # block | throttle
    throttle_ms: int = DEFAULT_THROTTLE_MS
    use_x_forwarded_for: bool = False
    whitelist: Optional[str] = None
    protect_path: Optional[str] = None

    def is_whitelisted(self, client_ip: Optional[str]) -> bool:
        ip = parse_ip(client_ip)
        if isinstance(ip, ParseError):
            return False
        return ip_in_cidr_list(ip, self.whitelist)

    def protects(self, uri: str) -> bool:
        """Whether a request path falls under protection."""
        if not self.enabled:
            return False
        if not self.protect_path:
            return True
        return uri.startswith(self.protect_path)


def resolve_policy(directives: Sequence[Directive]) -> BruteForcePolicy:
    """Later directives override earlier ones; unset fields keep their defaults."""
    policy = BruteForcePolicy()
    for d in directives:
        if d.type == DirectiveType.BRUTE_FORCE_PROTECTION:
            policy.enabled = d.data.enabled
        elif d.type == DirectiveType.BRUTE_FORCE_ALLOWED_ATTEMPTS:
            policy.allowed_attempts = d.data.allowed_attempts
        elif d.type == DirectiveType.BRUTE_FORCE_WINDOW:
            policy.window_sec = d.data.window_sec
        elif d.type == DirectiveType.BRUTE_FORCE_ACTION:
            policy.action = d.data.action
        elif d.type == DirectiveType.BRUTE_FORCE_THROTTLE_DURATION:
            policy.throttle_ms = d.data.throttle_ms
        elif d.type == DirectiveType.BRUTE_FORCE_X_FORWARDED_FOR:
            policy.use_x_forwarded_for = d.data.enabled
        elif d.type == DirectiveType.BRUTE_FORCE_WHITELIST:
            policy.whitelist = d.value
        elif d.type == DirectiveType.BRUTE_FORCE_PROTECT_PATH:
            policy.protect_path = d.value
    return policy
