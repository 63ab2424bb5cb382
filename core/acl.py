"""
ACL Evaluator
Legacy Order / Allow / Deny access control, following Apache 2.2 semantics.
"""

import logging
from typing import Optional, Sequence

from core.models import (
    DirectiveType, Directive, AccessDecision, RequestSession, ParseError,
    ORDER_ALLOW_DENY, ORDER_DENY_ALLOW,
    VERDICT_ALLOWED, VERDICT_DENIED,
)
from core.cidr import parse_ip, ip_in_cidr_list


class AclEvaluator:
    """Evaluates Order/Allow/Deny directives for a client address."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("htgate.acl")

    def evaluate(self, directives: Sequence[Directive], client_ip: Optional[str],
                 session: Optional[RequestSession] = None) -> AccessDecision:
        """
        Decide whether the client may proceed.

        The last Order directive wins (default Allow,Deny). With no Order
        and no Allow/Deny rules the request is allowed. An unparseable
        client address is allowed (fail-open).
        """
        order = None
        allow_rules = []
        deny_rules = []

        for d in directives:
            if d.type == DirectiveType.ORDER:
                order = d.data.order
            elif d.type == DirectiveType.ALLOW_FROM:
                allow_rules.append(d)
            elif d.type == DirectiveType.DENY_FROM:
                deny_rules.append(d)

        if order is None and not allow_rules and not deny_rules:
            return AccessDecision(VERDICT_ALLOWED, reason="no access rules")
        order = order or ORDER_ALLOW_DENY

        ip = parse_ip(client_ip)
        if isinstance(ip, ParseError):
            self.logger.debug(f"Unparseable client address {client_ip!r}, allowing")
            return AccessDecision(VERDICT_ALLOWED, reason=f"unparseable client address: {ip.message}")

        allow_matched = any(ip_in_cidr_list(ip, d.value) for d in allow_rules)
        deny_matched = any(ip_in_cidr_list(ip, d.value) for d in deny_rules)

        if order == ORDER_DENY_ALLOW:
            denied = deny_matched and not allow_matched
        else:
            denied = not (allow_matched and not deny_matched)

        reason = f"Order {order}: allow_matched={allow_matched}, deny_matched={deny_matched}"
        if denied:
            self.logger.debug(f"Denied {client_ip}: {reason}")
            if session is not None:
                session.status = 403
            return AccessDecision(VERDICT_DENIED, status=403, reason=reason)

        self.logger.debug(f"Allowed {client_ip}: {reason}")
        return AccessDecision(VERDICT_ALLOWED, reason=reason)


def check_acl(directives: Sequence[Directive], client_ip: Optional[str],
              session: Optional[RequestSession] = None) -> AccessDecision:
    return AclEvaluator().evaluate(directives, client_ip, session)
