"""
.htaccess Printer
Serializes a directive tree back into canonical .htaccess text.
Parsing the output yields an equivalent tree.
"""

import re
from dataclasses import replace
from typing import Iterable, List, Sequence

from core.models import (
    DirectiveType, Directive, ContainerData, CONTAINER_TAGS, ORDER_DENY_ALLOW,
)


_SIMPLE_PREFIX = {
    DirectiveType.HEADER_SET: "Header set",
    DirectiveType.HEADER_UNSET: "Header unset",
    DirectiveType.HEADER_APPEND: "Header append",
    DirectiveType.HEADER_MERGE: "Header merge",
    DirectiveType.HEADER_ADD: "Header add",
    DirectiveType.HEADER_ALWAYS_SET: "Header always set",
    DirectiveType.HEADER_ALWAYS_UNSET: "Header always unset",
    DirectiveType.HEADER_ALWAYS_APPEND: "Header always append",
    DirectiveType.HEADER_ALWAYS_MERGE: "Header always merge",
    DirectiveType.HEADER_ALWAYS_ADD: "Header always add",
    DirectiveType.REQUEST_HEADER_SET: "RequestHeader set",
    DirectiveType.REQUEST_HEADER_UNSET: "RequestHeader unset",
    DirectiveType.PHP_VALUE: "php_value",
    DirectiveType.PHP_FLAG: "php_flag",
    DirectiveType.PHP_ADMIN_VALUE: "php_admin_value",
    DirectiveType.PHP_ADMIN_FLAG: "php_admin_flag",
    DirectiveType.SETENV: "SetEnv",
    DirectiveType.ALLOW_FROM: "Allow from",
    DirectiveType.DENY_FROM: "Deny from",
    DirectiveType.REQUIRE_IP: "Require ip",
    DirectiveType.REQUIRE_NOT_IP: "Require not ip",
    DirectiveType.OPTIONS: "Options",
    DirectiveType.AUTH_TYPE: "AuthType",
    DirectiveType.AUTH_USER_FILE: "AuthUserFile",
    DirectiveType.ADD_HANDLER: "AddHandler",
    DirectiveType.SET_HANDLER: "SetHandler",
    DirectiveType.ADD_TYPE: "AddType",
    DirectiveType.DIRECTORY_INDEX: "DirectoryIndex",
    DirectiveType.FORCE_TYPE: "ForceType",
    DirectiveType.ADD_ENCODING: "AddEncoding",
    DirectiveType.ADD_CHARSET: "AddCharset",
    DirectiveType.BRUTE_FORCE_WHITELIST: "BruteForceWhitelist",
    DirectiveType.BRUTE_FORCE_PROTECT_PATH: "BruteForceProtectPath",
}

_FIXED_TEXT = {
    DirectiveType.REQUIRE_ALL_GRANTED: "Require all granted",
    DirectiveType.REQUIRE_ALL_DENIED: "Require all denied",
    DirectiveType.REQUIRE_VALID_USER: "Require valid-user",
}


def _token(text: str) -> str:
    """Quote a single-token argument when it is empty or contains whitespace."""
    if not text or re.search(r'\s', text):
        return f'"{text}"'
    return text


def _rest(text: str) -> str:
    """
    Quote a rest-of-line value when reading it back would change it: empty
    text, surrounding whitespace, or a value that is itself wrapped in quotes.
    """
    if not text or text != text.strip() or (len(text) >= 2 and text[0] == '"' and text[-1] == '"'):
        return f'"{text}"'
    return text


def _tag_arg(text: str) -> str:
    """Container argument; a quoted form may not contain further quotes."""
    if '"' in text:
        return text
    return _token(text)


def _on_off(flag: bool) -> str:
    return "On" if flag else "Off"


class HtaccessPrinter:
    """Renders directives in the canonical .htaccess form."""

    def __init__(self, indent: str = ""):
        self.indent = indent

    def print(self, directives: Iterable[Directive]) -> str:
        lines: List[str] = []
        for d in directives:
            self._emit(d, lines, depth=0)
        return "\n".join(lines) + ("\n" if lines else "")

    def _emit(self, d: Directive, lines: List[str], depth: int):
        pad = self.indent * depth
        if d.is_container:
            lines.append(pad + self._open_tag(d))
            for child in d.children:
                self._emit(child, lines, depth + 1)
            lines.append(pad + self._close_tag(d))
        else:
            lines.append(pad + self.format_directive(d))

    def _open_tag(self, d: Directive) -> str:
        data: ContainerData = d.data
        if d.type == DirectiveType.FILES_MATCH:
            if '"' in data.pattern:
                return f"<FilesMatch {data.pattern}>"
            return f'<FilesMatch "{data.pattern}">'
        if d.type == DirectiveType.FILES:
            return f"<Files {_tag_arg(d.name)}>"
        if d.type == DirectiveType.IFMODULE:
            if data.negated:
                return f"<IfModule !{_tag_arg(d.name[1:])}>"
            return f"<IfModule {_tag_arg(d.name)}>"
        if d.type == DirectiveType.REQUIRE_ANY_OPEN:
            return "<RequireAny>"
        if d.type == DirectiveType.REQUIRE_ALL_OPEN:
            return "<RequireAll>"
        if d.type == DirectiveType.LIMIT:
            return f"<Limit {data.methods}>"
        return f"<LimitExcept {data.methods}>"

    def _close_tag(self, d: Directive) -> str:
        return f"</{CONTAINER_TAGS[d.type]}>"

    def format_directive(self, d: Directive) -> str:
        """Render a single non-container directive."""
        t = d.type

        if t in _FIXED_TEXT:
            return _FIXED_TEXT[t]

        if t in _SIMPLE_PREFIX:
            parts = [_SIMPLE_PREFIX[t]]
            if d.name is not None:
                parts.append(_token(d.name))
            if d.value is not None:
                parts.append(_rest(d.value))
            return " ".join(parts)

        if t == DirectiveType.ORDER:
            if d.data.order == ORDER_DENY_ALLOW:
                return "Order Deny,Allow"
            return "Order Allow,Deny"

        if t in (DirectiveType.REDIRECT, DirectiveType.REDIRECT_MATCH):
            keyword = "Redirect" if t == DirectiveType.REDIRECT else "RedirectMatch"
            target = d.name if t == DirectiveType.REDIRECT else d.data.pattern
            status = d.data.status_code
            head = f"{keyword} {status}" if status != 302 else keyword
            return f"{head} {_token(target)} {_rest(d.value)}"

        if t == DirectiveType.ERROR_DOCUMENT:
            return f"ErrorDocument {d.data.error_code} {d.value}"

        if t == DirectiveType.EXPIRES_ACTIVE:
            return f"ExpiresActive {_on_off(d.data.active)}"
        if t == DirectiveType.EXPIRES_BY_TYPE:
            return f'ExpiresByType {d.name} "{d.value}"'
        if t == DirectiveType.EXPIRES_DEFAULT:
            return f'ExpiresDefault "{d.value}"'

        if t == DirectiveType.SETENVIF:
            return (f"SetEnvIf {_token(d.data.attribute)} {_token(d.data.pattern)} "
                    f"{d.name}={d.value}")
        if t == DirectiveType.BROWSER_MATCH:
            return f"BrowserMatch {_token(d.data.pattern)} {d.name}={d.value}"

        if t == DirectiveType.AUTH_NAME:
            return f'AuthName "{d.value}"'

        if t == DirectiveType.BRUTE_FORCE_PROTECTION:
            return f"BruteForceProtection {_on_off(d.data.enabled)}"
        if t == DirectiveType.BRUTE_FORCE_X_FORWARDED_FOR:
            return f"BruteForceXForwardedFor {_on_off(d.data.enabled)}"
        if t == DirectiveType.BRUTE_FORCE_ALLOWED_ATTEMPTS:
            return f"BruteForceAllowedAttempts {d.data.allowed_attempts}"
        if t == DirectiveType.BRUTE_FORCE_WINDOW:
            return f"BruteForceWindow {d.data.window_sec}"
        if t == DirectiveType.BRUTE_FORCE_ACTION:
            return f"BruteForceAction {d.data.action}"
        if t == DirectiveType.BRUTE_FORCE_THROTTLE_DURATION:
            return f"BruteForceThrottleDuration {d.data.throttle_ms}"

        raise ValueError(f"Cannot print directive type: {t}")


def print_directives(directives: Iterable[Directive]) -> str:
    return HtaccessPrinter().print(directives)


def without_line_numbers(directives: Sequence[Directive]) -> List[Directive]:
    """Copy of a tree with every line number zeroed."""
    stripped = []
    for d in directives:
        data = d.data
        if isinstance(data, ContainerData):
            data = replace(data, children=tuple(without_line_numbers(data.children)))
        stripped.append(replace(d, line_number=0, data=data))
    return stripped


def directives_equivalent(a: Sequence[Directive], b: Sequence[Directive]) -> bool:
    """Compare two trees ignoring line numbers."""
    return without_line_numbers(a) == without_line_numbers(b)
