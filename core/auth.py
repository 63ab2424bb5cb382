"""
Basic Auth Evaluator
Checks the request's Authorization header against the htpasswd file named by
AuthUserFile when AuthType Basic and Require valid-user are in effect.
"""

import base64
import binascii
import logging
from typing import Optional, Sequence, Tuple

from passlib.context import CryptContext

from core.models import (
    DirectiveType, Directive, AccessDecision, RequestSession,
    VERDICT_ALLOWED, VERDICT_DENIED,
)


# Hash formats the htpasswd tool writes, newest first
HTPASSWD_CONTEXT = CryptContext(schemes=[
    "bcrypt", "apr_md5_crypt", "sha512_crypt", "sha256_crypt",
    "md5_crypt", "ldap_sha1", "des_crypt",
])


def parse_basic_credentials(header: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Decode an `Authorization: Basic <base64>` value into (user, password).
    Returns None when the header is missing or malformed.
    """
    if not header or len(header) < 7 or header[:6].lower() != "basic ":
        return None
    try:
        decoded = base64.b64decode(header[6:].strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    user, sep, password = decoded.partition(":")
    if not sep:
        return None
    return user, password


def check_password(hashed: str, password: str) -> bool:
    """Verify a password against one htpasswd hash."""
    try:
        return HTPASSWD_CONTEXT.verify(password, hashed)
    except (ValueError, TypeError):
        # Unrecognised or malformed hash
        return False


class AuthEvaluator:
    """Evaluates HTTP Basic authentication for a request."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("htgate.auth")

    def evaluate(self, directives: Sequence[Directive],
                 session: RequestSession) -> Optional[AccessDecision]:
        """
        Returns None when the directives do not ask for Basic auth. Otherwise
        returns ALLOWED for a valid user, or DENIED with status 401 (missing
        or wrong credentials) or 500 (no usable AuthUserFile).
        """
        auth_type = auth_name = auth_user_file = None
        require_valid_user = False
        for d in directives:
            if d.type == DirectiveType.AUTH_TYPE:
                auth_type = d.value
            elif d.type == DirectiveType.AUTH_NAME:
                auth_name = d.value
            elif d.type == DirectiveType.AUTH_USER_FILE:
                auth_user_file = d.value
            elif d.type == DirectiveType.REQUIRE_VALID_USER:
                require_valid_user = True

        if not auth_type or auth_type.lower() != "basic" or not require_valid_user:
            return None

        if not auth_user_file:
            self.logger.error("[htaccess] AuthUserFile not specified")
            return self._fail(session, 500, "AuthUserFile not specified")

        credentials = parse_basic_credentials(session.authorization)
        if credentials is None:
            return self._challenge(session, auth_name, "no valid Basic credentials")
        user, password = credentials

        try:
            with open(auth_user_file, 'r', encoding='utf-8') as f:
                entries = f.read().splitlines()
        except (OSError, UnicodeDecodeError) as e:
            self.logger.error(f"[htaccess] Cannot open AuthUserFile: {auth_user_file} ({e})")
            return self._fail(session, 500, f"cannot read AuthUserFile {auth_user_file}")

        for entry in entries:
            name, sep, hashed = entry.partition(":")
            if not sep or name != user:
                continue
            if check_password(hashed.strip(), password):
                self.logger.debug(f"Authenticated {user!r} against {auth_user_file}")
                session.env["REMOTE_USER"] = user
                return AccessDecision(VERDICT_ALLOWED, reason=f"authenticated as {user}")

        return self._challenge(session, auth_name, f"authentication failed for {user!r}")

    def _challenge(self, session: RequestSession, realm: Optional[str],
                   reason: str) -> AccessDecision:
        if realm:
            session.response_headers["WWW-Authenticate"] = f'Basic realm="{realm}"'
        return self._fail(session, 401, reason)

    def _fail(self, session: RequestSession, status: int, reason: str) -> AccessDecision:
        self.logger.debug(f"Auth failed ({status}): {reason}")
        session.status = status
        return AccessDecision(VERDICT_DENIED, status=status, reason=reason)
