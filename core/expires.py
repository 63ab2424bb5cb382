"""
Expires Executor
Applies ExpiresActive / ExpiresByType / ExpiresDefault to a response by
setting Cache-Control and Expires headers.
"""

import time
import logging
from email.utils import formatdate
from typing import Optional, Sequence

from core.models import DirectiveType, Directive, RequestSession, ParseError
from core.duration import parse_duration


DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ExpiresExecutor:
    """Sets caching headers from the expires directives of a request."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("htgate.expires")

    def apply(self, directives: Sequence[Directive], session: RequestSession,
              now: Optional[float] = None) -> Optional[int]:
        """
        Set the headers on the session.

        Returns the applied lifetime in seconds, or None when nothing applied.
        """
        active = False
        for d in directives:
            if d.type == DirectiveType.EXPIRES_ACTIVE:
                active = d.data.active
        if not active:
            return None

        content_type = (session.content_type or DEFAULT_CONTENT_TYPE).split(';')[0].strip()

        seconds = None
        for d in directives:
            if d.type != DirectiveType.EXPIRES_BY_TYPE or not d.name:
                continue
            if d.name.lower() != content_type.lower():
                continue
            seconds = self._duration(d)
            if seconds is not None:
                break

        if seconds is None:
            for d in directives:
                if d.type == DirectiveType.EXPIRES_DEFAULT:
                    seconds = self._duration(d)
                    if seconds is not None:
                        break

        if seconds is None:
            return None

        now = time.time() if now is None else now
        session.response_headers["Cache-Control"] = f"max-age={seconds}"
        session.response_headers["Expires"] = formatdate(now + seconds, usegmt=True)
        self.logger.debug(f"Expires for {content_type}: {seconds}s")
        return seconds

    def _duration(self, d: Directive) -> Optional[int]:
        seconds = d.data.duration_sec
        if seconds <= 0 and d.value:
            parsed = parse_duration(d.value)
            if isinstance(parsed, ParseError):
                self.logger.warning(
                    f"Line {d.line_number}: invalid expires duration {d.value!r}: {parsed.message}"
                )
                return None
            seconds = parsed
        return seconds
