"""
Access Engine
Selects the directives that apply to a request (Files, FilesMatch, IfModule,
Limit and LimitExcept blocks) and runs the access decision: Require first,
legacy Order/Allow/Deny when no Require directive is present, then Basic
authentication.
"""

import re
import logging
from typing import Iterable, List, Optional, Sequence

from core.models import (
    DirectiveType, Directive, AccessDecision, RequestSession, VERDICT_NOT_APPLICABLE,
)
from core.acl import AclEvaluator
from core.auth import AuthEvaluator
from core.require import RequireEvaluator
from parsers.tokenizer import split_list


class AccessEngine:
    """Request-level access control over a parsed directive tree."""

    def __init__(self, loaded_modules: Optional[Iterable[str]] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Args:
            loaded_modules: module names considered present for <IfModule>.
                None treats every module as loaded.
            logger: logger for selection and decision diagnostics.
        """
        self.loaded_modules = None
        if loaded_modules is not None:
            self.loaded_modules = {self._module_key(m) for m in loaded_modules}
        self.logger = logger or logging.getLogger("htgate.access")
        self.require_evaluator = RequireEvaluator(logger=self.logger)
        self.acl_evaluator = AclEvaluator(logger=self.logger)
        self.auth_evaluator = AuthEvaluator(logger=self.logger)

    @staticmethod
    def _module_key(name: str) -> str:
        # mod_rewrite.c, mod_rewrite and rewrite_module all name the same module
        key = name.strip().lower()
        if key.endswith(".c"):
            key = key[:-2]
        if key.endswith("_module"):
            key = "mod_" + key[:-len("_module")]
        return key

    def module_loaded(self, name: str) -> bool:
        if self.loaded_modules is None:
            return True
        return self._module_key(name) in self.loaded_modules

    # ─── Selection ───

    def select_directives(self, directives: Sequence[Directive],
                          session: RequestSession) -> List[Directive]:
        """
        Flatten conditional containers that apply to this request into the
        surrounding sequence. RequireAny/RequireAll stay as nodes.
        """
        selected: List[Directive] = []
        for d in directives:
            if d.type in (DirectiveType.REQUIRE_ANY_OPEN, DirectiveType.REQUIRE_ALL_OPEN):
                selected.append(d)
            elif d.is_container:
                if self._applies(d, session):
                    selected.extend(self.select_directives(d.children, session))
                else:
                    self.logger.debug(f"Skipping <{d.type}> block at line {d.line_number}")
            else:
                selected.append(d)
        return selected

    def _applies(self, d: Directive, session: RequestSession) -> bool:
        if d.type == DirectiveType.FILES:
            return session.filename is not None and session.filename == d.name

        if d.type == DirectiveType.FILES_MATCH:
            if session.filename is None:
                return False
            try:
                return re.search(d.data.pattern, session.filename) is not None
            except re.error as e:
                self.logger.warning(
                    f"Invalid FilesMatch pattern {d.data.pattern!r} at line {d.line_number}: {e}"
                )
                return False

        if d.type == DirectiveType.IFMODULE:
            module = d.name[1:] if d.data.negated else d.name
            return self.module_loaded(module) != d.data.negated

        if d.type in (DirectiveType.LIMIT, DirectiveType.LIMIT_EXCEPT):
            methods = {m.upper() for m in split_list(d.data.methods)}
            in_list = (session.method or "").upper() in methods
            return in_list if d.type == DirectiveType.LIMIT else not in_list

        return False

    # ─── Decision ───

    def check_access(self, directives: Sequence[Directive],
                     session: RequestSession) -> AccessDecision:
        """Select the directives for the session, then decide access."""
        return self.decide(self.select_directives(directives, session), session)

    def decide(self, applicable: Sequence[Directive],
               session: RequestSession) -> AccessDecision:
        """
        Decide access over an already selected sequence. Require runs first,
        Order/Allow/Deny when no Require applies, then Basic auth unless the
        request is already denied. Sets session.status on deny.
        """
        decision = self.require_evaluator.evaluate(applicable, session.client_ip, session)
        if decision.verdict == VERDICT_NOT_APPLICABLE:
            decision = self.acl_evaluator.evaluate(applicable, session.client_ip, session)

        if not decision.denied:
            auth = self.auth_evaluator.evaluate(applicable, session)
            if auth is not None:
                decision = auth

        self.logger.info(
            f"{session.method} {session.uri} from {session.client_ip}: {decision.verdict}"
        )
        return decision
