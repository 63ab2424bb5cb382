"""
HtGate pipeline
Input -> Parse -> (Select -> Access -> Expires -> Brute force) -> Report
"""

import logging
from typing import Iterable, Optional

from core.models import ConfigInput, EvaluationReport, RequestSession
from core.access_engine import AccessEngine
from core.expires import ExpiresExecutor
from core.brute_force import resolve_policy
from parsers.htaccess_parser import HtaccessParser


def run_pipeline(config_input: ConfigInput,
                 session: Optional[RequestSession] = None,
                 loaded_modules: Optional[Iterable[str]] = None,
                 logger: Optional[logging.Logger] = None) -> EvaluationReport:
    """
    Parse a configuration and, when a request session is given, decide access
    for it and apply the response-side expires headers.
    """
    logger = logger or logging.getLogger("htgate")

    parser = HtaccessParser(logger=logging.getLogger("htgate.parser"))
    parsed = parser.parse(config_input.content, config_input.path)
    logger.info(
        f"Parsed {config_input.filename}: {parsed.count()} directives, "
        f"{len(parsed.diagnostics)} warnings"
    )

    report = EvaluationReport(config_input=config_input, parsed=parsed)
    if session is None:
        return report

    engine = AccessEngine(loaded_modules=loaded_modules)
    report.session = session
    applicable = engine.select_directives(parsed.directives, session)
    report.decision = engine.decide(applicable, session)

    policy = resolve_policy(applicable)
    report.brute_force = policy
    report.brute_force_protected = policy.protects(session.uri)
    report.brute_force_whitelisted = policy.is_whitelisted(session.client_ip)
    if not report.decision.denied:
        report.expires_seconds = ExpiresExecutor().apply(applicable, session)

    return report
