"""
Require Evaluator
Apache 2.4 style Require access control with RequireAny (OR) and
RequireAll (AND) containers. Require takes precedence over Order/Allow/Deny.
"""

import logging
from typing import Optional, Sequence

from core.models import (
    DirectiveType, Directive, AccessDecision, RequestSession, ParseError,
    ACL_TYPES, VERDICT_ALLOWED, VERDICT_DENIED, VERDICT_NOT_APPLICABLE,
)
from core.cidr import parse_ip, ip_in_cidr_list


# Kinds that make the Require evaluator responsible for the decision.
# valid-user alone does not: it is checked by the Basic auth evaluator.
ACCESS_REQUIRE_TYPES = frozenset({
    DirectiveType.REQUIRE_ALL_GRANTED,
    DirectiveType.REQUIRE_ALL_DENIED,
    DirectiveType.REQUIRE_IP,
    DirectiveType.REQUIRE_NOT_IP,
    DirectiveType.REQUIRE_ANY_OPEN,
    DirectiveType.REQUIRE_ALL_OPEN,
})


class RequireEvaluator:
    """Evaluates Require directives for a client address."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("htgate.require")

    def evaluate(self, directives: Sequence[Directive], client_ip: Optional[str],
                 session: Optional[RequestSession] = None) -> AccessDecision:
        """
        Top-level directives combine as an implicit RequireAny: the first
        one that grants allows the request. An unparseable client address
        is denied (fail-closed).
        """
        if not any(d.type in ACCESS_REQUIRE_TYPES for d in directives):
            return AccessDecision(VERDICT_NOT_APPLICABLE, reason="no Require directives")

        if any(d.type in ACL_TYPES for d in directives):
            self.logger.warning(
                "[htaccess] Require and Order/Allow/Deny coexist; Require takes precedence"
            )

        ip = parse_ip(client_ip)
        if isinstance(ip, ParseError):
            return self._deny(session, f"unparseable client address {client_ip!r}: {ip.message}")

        for d in directives:
            if self._eval_node(d, ip) is True:
                self.logger.debug(f"Granted {client_ip} by {d.type} (line {d.line_number})")
                return AccessDecision(VERDICT_ALLOWED, reason=f"granted by {d.type} at line {d.line_number}")

        return self._deny(session, "no Require directive granted access")

    def _deny(self, session: Optional[RequestSession], reason: str) -> AccessDecision:
        self.logger.debug(f"Denied: {reason}")
        if session is not None:
            session.status = 403
        return AccessDecision(VERDICT_DENIED, status=403, reason=reason)

    def _eval_node(self, d: Directive, ip: int) -> Optional[bool]:
        """True grants, False denies, None means the node does not apply."""
        if d.type == DirectiveType.REQUIRE_ANY_OPEN:
            return self._eval_any(d, ip)
        if d.type == DirectiveType.REQUIRE_ALL_OPEN:
            return self._eval_all(d, ip)
        return self._eval_single(d, ip)

    def _eval_single(self, d: Directive, ip: int) -> Optional[bool]:
        if d.type == DirectiveType.REQUIRE_ALL_GRANTED:
            return True
        if d.type == DirectiveType.REQUIRE_ALL_DENIED:
            return False
        if d.type == DirectiveType.REQUIRE_IP:
            return ip_in_cidr_list(ip, d.value)
        if d.type == DirectiveType.REQUIRE_NOT_IP:
            return not ip_in_cidr_list(ip, d.value)
        return None

    def _eval_any(self, container: Directive, ip: int) -> bool:
        """RequireAny: at least one child grants."""
        for child in container.children:
            if self._eval_node(child, ip) is True:
                return True
        return False

    def _eval_all(self, container: Directive, ip: int) -> bool:
        """RequireAll: no child denies. Non-applicable children are skipped."""
        for child in container.children:
            if self._eval_node(child, ip) is False:
                return False
        return True


def check_require(directives: Sequence[Directive], client_ip: Optional[str],
                  session: Optional[RequestSession] = None) -> AccessDecision:
    return RequireEvaluator().evaluate(directives, client_ip, session)
