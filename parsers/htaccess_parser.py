"""
.htaccess Directive Parser
Parses per-directory Apache configuration text into a directive tree.
Unrecognised or malformed lines are skipped with a warning; parsing never
raises on bad content.
"""

import re
import logging
from typing import List, Optional

from core.models import (
    DirectiveType, Directive, Diagnostic, ParsedHtaccess, ParseError,
    AclOrder, RedirectData, ErrorDocumentData, ExpiresData, EnvIfData,
    BruteForceData, OptionsData, ContainerData,
    ORDER_ALLOW_DENY, ORDER_DENY_ALLOW,
)
from core.duration import parse_duration
from parsers.tokenizer import LineCursor


_OPEN_TAG_RE = re.compile(r'^<([A-Za-z]+)(?:\s+(.*?))?\s*>$')
_CLOSE_TAG_RE = re.compile(r'^</([A-Za-z]+)\s*>$')

# lower-case tag -> container type
_CONTAINER_BY_TAG = {
    "filesmatch": DirectiveType.FILES_MATCH,
    "files": DirectiveType.FILES,
    "ifmodule": DirectiveType.IFMODULE,
    "requireany": DirectiveType.REQUIRE_ANY_OPEN,
    "requireall": DirectiveType.REQUIRE_ALL_OPEN,
    "limit": DirectiveType.LIMIT,
    "limitexcept": DirectiveType.LIMIT_EXCEPT,
}

_HEADER_ACTIONS = {
    "set": (DirectiveType.HEADER_SET, DirectiveType.HEADER_ALWAYS_SET),
    "unset": (DirectiveType.HEADER_UNSET, DirectiveType.HEADER_ALWAYS_UNSET),
    "append": (DirectiveType.HEADER_APPEND, DirectiveType.HEADER_ALWAYS_APPEND),
    "merge": (DirectiveType.HEADER_MERGE, DirectiveType.HEADER_ALWAYS_MERGE),
    "add": (DirectiveType.HEADER_ADD, DirectiveType.HEADER_ALWAYS_ADD),
}

_OPTION_FLAGS = {
    "indexes": "indexes",
    "followsymlinks": "follow_symlinks",
    "multiviews": "multiviews",
    "execcgi": "exec_cgi",
}


def _unquote_arg(text: Optional[str]) -> Optional[str]:
    """Single tag argument: either "quoted" or a bare word."""
    if not text:
        return None
    if text[0] == '"':
        if len(text) < 2 or text[-1] != '"' or '"' in text[1:-1]:
            return None
        return text[1:-1] or None
    if re.search(r'\s', text):
        return None
    return text


def _status_code(token: str) -> Optional[int]:
    if token.isdigit():
        code = int(token)
        if 100 <= code <= 599:
            return code
    return None


def _positive_int(token: Optional[str]) -> Optional[int]:
    if token and token.isdigit() and int(token) > 0:
        return int(token)
    return None


def _on_off(token: Optional[str]) -> Optional[bool]:
    if token is None:
        return None
    token = token.lower()
    if token == "on":
        return True
    if token == "off":
        return False
    return None


def _split_assignment(assignment: str):
    name, sep, value = assignment.partition('=')
    return name, value if sep else ""


class _Frame:
    """An open container on the block stack."""

    def __init__(self, dtype: str, tag: str, line: int, name=None,
                 pattern=None, negated=False, methods=None):
        self.type = dtype
        self.tag = tag
        self.line = line
        self.name = name
        self.pattern = pattern
        self.negated = negated
        self.methods = methods
        self.children: List[Directive] = []

    def build(self) -> Directive:
        return Directive(
            type=self.type,
            line_number=self.line,
            name=self.name,
            data=ContainerData(
                children=tuple(self.children),
                pattern=self.pattern,
                negated=self.negated,
                methods=self.methods,
            ),
        )


class HtaccessParser:
    """
    Parser for .htaccess files.

    Holds per-call state while parsing; use one instance per thread.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("htgate.parser")
        # Longer keywords precede their prefixes (RedirectMatch / Redirect)
        self._dispatch = [
            ("Header", self._parse_header),
            ("RequestHeader", self._parse_request_header),
            ("php_value", self._name_value(DirectiveType.PHP_VALUE)),
            ("php_flag", self._name_flag(DirectiveType.PHP_FLAG)),
            ("php_admin_value", self._name_value(DirectiveType.PHP_ADMIN_VALUE)),
            ("php_admin_flag", self._name_flag(DirectiveType.PHP_ADMIN_FLAG)),
            ("Order", self._parse_order),
            ("Allow", self._acl_rule(DirectiveType.ALLOW_FROM)),
            ("Deny", self._acl_rule(DirectiveType.DENY_FROM)),
            ("RedirectMatch", self._redirect(DirectiveType.REDIRECT_MATCH)),
            ("Redirect", self._redirect(DirectiveType.REDIRECT)),
            ("ErrorDocument", self._parse_error_document),
            ("ExpiresActive", self._parse_expires_active),
            ("ExpiresByType", self._parse_expires_by_type),
            ("ExpiresDefault", self._parse_expires_default),
            ("SetEnvIf", self._parse_setenvif),
            ("SetEnv", self._name_value(DirectiveType.SETENV)),
            ("BrowserMatch", self._parse_browser_match),
            ("BruteForceProtection", self._parse_brute_force_protection),
            ("BruteForceAllowedAttempts", self._brute_force_int(
                DirectiveType.BRUTE_FORCE_ALLOWED_ATTEMPTS, "allowed_attempts")),
            ("BruteForceWindow", self._brute_force_int(
                DirectiveType.BRUTE_FORCE_WINDOW, "window_sec")),
            ("BruteForceAction", self._parse_brute_force_action),
            ("BruteForceThrottleDuration", self._brute_force_int(
                DirectiveType.BRUTE_FORCE_THROTTLE_DURATION, "throttle_ms")),
            ("BruteForceXForwardedFor", self._parse_brute_force_xff),
            ("BruteForceWhitelist", self._value_rest(DirectiveType.BRUTE_FORCE_WHITELIST)),
            ("BruteForceProtectPath", self._value_token(DirectiveType.BRUTE_FORCE_PROTECT_PATH)),
            ("Options", self._parse_options),
            ("Require", self._parse_require),
            ("AuthType", self._value_token(DirectiveType.AUTH_TYPE)),
            ("AuthName", self._value_rest(DirectiveType.AUTH_NAME)),
            ("AuthUserFile", self._value_rest(DirectiveType.AUTH_USER_FILE)),
            ("AddHandler", self._name_optional_list(DirectiveType.ADD_HANDLER)),
            ("SetHandler", self._value_rest(DirectiveType.SET_HANDLER)),
            ("AddType", self._name_optional_list(DirectiveType.ADD_TYPE)),
            ("DirectoryIndex", self._value_rest(DirectiveType.DIRECTORY_INDEX)),
            ("ForceType", self._value_token(DirectiveType.FORCE_TYPE)),
            ("AddEncoding", self._name_optional_list(DirectiveType.ADD_ENCODING)),
            ("AddCharset", self._name_optional_list(DirectiveType.ADD_CHARSET)),
        ]

    # ─── Entry point ───

    def parse(self, content: str, source_name: str = "<unknown>") -> ParsedHtaccess:
        """Parse .htaccess text into a ParsedHtaccess."""
        result = ParsedHtaccess(source=source_name)
        self._result = result
        self._source = source_name

        root = _Frame(dtype="root", tag="", line=0)
        block_stack = [root]

        lines = content.split('\n') if content else []

        for line_num, raw in enumerate(lines, start=1):
            line = raw.rstrip('\r').strip()

            # Skip empty lines and comments
            if not line or line.startswith('#'):
                continue

            if line.startswith('</'):
                self._close_block(line, line_num, block_stack)
                continue

            if line.startswith('<'):
                frame = self._open_block(line, line_num)
                if frame is None:
                    self._warn(line_num, f"syntax error, skipping line: {line}")
                else:
                    block_stack.append(frame)
                continue

            directive = self._parse_line(line, line_num)
            if directive is None:
                self._warn(line_num, f"syntax error, skipping line: {line}")
            else:
                block_stack[-1].children.append(directive)

        # Discard anything left open, innermost first
        while len(block_stack) > 1:
            frame = block_stack.pop()
            self._warn(frame.line, f"unclosed <{frame.tag}> block, discarding")

        result.directives = root.children
        self.logger.debug(
            f"Parsed {source_name}: {result.count()} directives, "
            f"{len(result.diagnostics)} warnings"
        )
        return result

    def _warn(self, line_num: int, message: str, level: str = "WARNING"):
        self.logger.warning(f"[htaccess] {self._source}:{line_num}: {message}")
        self._result.diagnostics.append(Diagnostic(level=level, line=line_num, message=message))

    # ─── Containers ───

    def _open_block(self, line: str, line_num: int) -> Optional[_Frame]:
        m = _OPEN_TAG_RE.match(line)
        if not m:
            return None
        tag = m.group(1)
        args = m.group(2)
        dtype = _CONTAINER_BY_TAG.get(tag.lower())
        if dtype is None:
            return None

        if dtype in (DirectiveType.REQUIRE_ANY_OPEN, DirectiveType.REQUIRE_ALL_OPEN):
            if args:
                return None
            return _Frame(dtype, tag, line_num)

        if dtype in (DirectiveType.LIMIT, DirectiveType.LIMIT_EXCEPT):
            if not args:
                return None
            return _Frame(dtype, tag, line_num, methods=args)

        if dtype == DirectiveType.IFMODULE:
            if not args:
                return None
            negated = args.startswith('!')
            module = _unquote_arg(args[1:].lstrip() if negated else args)
            if module is None:
                return None
            name = f"!{module}" if negated else module
            return _Frame(dtype, tag, line_num, name=name, negated=negated)

        arg = _unquote_arg(args)
        if arg is None:
            return None
        if dtype == DirectiveType.FILES_MATCH:
            return _Frame(dtype, tag, line_num, pattern=arg)
        return _Frame(dtype, tag, line_num, name=arg)

    def _close_block(self, line: str, line_num: int, block_stack: List[_Frame]):
        m = _CLOSE_TAG_RE.match(line)
        if not m or m.group(1).lower() not in _CONTAINER_BY_TAG:
            self._warn(line_num, f"syntax error, skipping line: {line}")
            return

        tag = m.group(1).lower()
        for idx in range(len(block_stack) - 1, 0, -1):
            if block_stack[idx].tag.lower() == tag:
                break
        else:
            self._warn(line_num, f"closing </{m.group(1)}> without matching open block, skipping")
            return

        # Blocks opened inside the one being closed but never closed themselves
        while len(block_stack) - 1 > idx:
            inner = block_stack.pop()
            self._warn(
                inner.line,
                f"unclosed <{inner.tag}> block inside <{block_stack[idx].tag}>, discarding"
            )

        frame = block_stack.pop()
        block_stack[-1].children.append(frame.build())

    # ─── Directive lines ───

    def _parse_line(self, line: str, line_num: int) -> Optional[Directive]:
        for keyword, handler in self._dispatch:
            cursor = LineCursor(line)
            if cursor.match_keyword(keyword):
                return handler(cursor, line_num)
        return None

    def _parse_header(self, cur: LineCursor, line_num: int) -> Optional[Directive]:
        always = cur.match_keyword("always")
        action = cur.next_token()
        if action is None or action.lower() not in _HEADER_ACTIONS:
            return None
        dtype = _HEADER_ACTIONS[action.lower()][1 if always else 0]

        name = cur.next_token()
        if not name:
            return None
        value = None
        if action.lower() != "unset":
            value = cur.rest_of_line()
            if value is None:
                return None
        return Directive(dtype, line_num, name=name, value=value)

    def _parse_request_header(self, cur: LineCursor, line_num: int) -> Optional[Directive]:
        action = (cur.next_token() or "").lower()
        if action == "set":
            dtype = DirectiveType.REQUEST_HEADER_SET
        elif action == "unset":
            dtype = DirectiveType.REQUEST_HEADER_UNSET
        else:
            return None

        name = cur.next_token()
        if not name:
            return None
        value = None
        if dtype == DirectiveType.REQUEST_HEADER_SET:
            value = cur.rest_of_line()
            if value is None:
                return None
        return Directive(dtype, line_num, name=name, value=value)

    def _name_value(self, dtype: str):
        def handler(cur: LineCursor, line_num: int) -> Optional[Directive]:
            name = cur.next_token()
            if not name:
                return None
            value = cur.rest_of_line()
            if value is None:
                return None
            return Directive(dtype, line_num, name=name, value=value)
        return handler

    def _name_flag(self, dtype: str):
        def handler(cur: LineCursor, line_num: int) -> Optional[Directive]:
            name = cur.next_token()
            value = cur.next_token()
            if not name or _on_off(value) is None:
                return None
            return Directive(dtype, line_num, name=name, value=value)
        return handler

    def _value_token(self, dtype: str):
        def handler(cur: LineCursor, line_num: int) -> Optional[Directive]:
            value = cur.next_token()
            if not value:
                return None
            return Directive(dtype, line_num, value=value)
        return handler

    def _value_rest(self, dtype: str):
        def handler(cur: LineCursor, line_num: int) -> Optional[Directive]:
            value = cur.rest_of_line()
            if value is None:
                return None
            return Directive(dtype, line_num, value=value)
        return handler

    def _name_optional_list(self, dtype: str):
        def handler(cur: LineCursor, line_num: int) -> Optional[Directive]:
            name = cur.next_token()
            if not name:
                return None
            return Directive(dtype, line_num, name=name, value=cur.rest_of_line())
        return handler

    def _parse_order(self, cur: LineCursor, line_num: int) -> Optional[Directive]:
        cur.skip_ws()
        head = cur.text[cur.pos:cur.pos + 10].lower()
        if head == ORDER_ALLOW_DENY:
            order = ORDER_ALLOW_DENY
        elif head == ORDER_DENY_ALLOW:
            order = ORDER_DENY_ALLOW
        else:
            return None
        return Directive(DirectiveType.ORDER, line_num, data=AclOrder(order=order))

    def _acl_rule(self, dtype: str):
        def handler(cur: LineCursor, line_num: int) -> Optional[Directive]:
            if not cur.match_keyword("from"):
                return None
            value = cur.rest_of_line()
            if value is None:
                return None
            return Directive(dtype, line_num, value=value)
        return handler

    def _redirect(self, dtype: str):
        def handler(cur: LineCursor, line_num: int) -> Optional[Directive]:
            first = cur.next_token()
            if not first:
                return None
            status = _status_code(first)
            if status is None:
                status = 302
                target = first
            else:
                target = cur.next_token()
                if not target:
                    return None
            url = cur.rest_of_line()
            if url is None:
                return None
            if dtype == DirectiveType.REDIRECT_MATCH:
                return Directive(dtype, line_num, value=url,
                                 data=RedirectData(status_code=status, pattern=target))
            return Directive(dtype, line_num, name=target, value=url,
                             data=RedirectData(status_code=status))
        return handler

    def _parse_error_document(self, cur: LineCursor, line_num: int) -> Optional[Directive]:
        code = _status_code(cur.next_token() or "")
        if code is None:
            return None
        value = cur.rest_of_line_raw()
        if value is None:
            return None
        return Directive(DirectiveType.ERROR_DOCUMENT, line_num, value=value,
                         data=ErrorDocumentData(error_code=code))

    def _parse_expires_active(self, cur: LineCursor, line_num: int) -> Optional[Directive]:
        active = _on_off(cur.next_token())
        if active is None:
            return None
        return Directive(DirectiveType.EXPIRES_ACTIVE, line_num,
                         data=ExpiresData(active=active))

    def _expires_duration(self, cur: LineCursor, line_num: int):
        text = cur.rest_of_line()
        if text is None:
            return None, None
        seconds = parse_duration(text)
        if isinstance(seconds, ParseError):
            self.logger.debug(f"line {line_num}: bad expires duration: {seconds.message}")
            return None, None
        return text, seconds

    def _parse_expires_by_type(self, cur: LineCursor, line_num: int) -> Optional[Directive]:
        mime = cur.next_token()
        if not mime:
            return None
        text, seconds = self._expires_duration(cur, line_num)
        if text is None:
            return None
        return Directive(DirectiveType.EXPIRES_BY_TYPE, line_num, name=mime, value=text,
                         data=ExpiresData(duration_sec=seconds))

    def _parse_expires_default(self, cur: LineCursor, line_num: int) -> Optional[Directive]:
        text, seconds = self._expires_duration(cur, line_num)
        if text is None:
            return None
        return Directive(DirectiveType.EXPIRES_DEFAULT, line_num, value=text,
                         data=ExpiresData(duration_sec=seconds))

    def _parse_setenvif(self, cur: LineCursor, line_num: int) -> Optional[Directive]:
        attribute = cur.next_token()
        pattern = cur.next_token()
        if not attribute or not pattern:
            return None
        assignment = cur.rest_of_line()
        if assignment is None:
            return None
        name, value = _split_assignment(assignment)
        return Directive(DirectiveType.SETENVIF, line_num, name=name, value=value,
                         data=EnvIfData(attribute=attribute, pattern=pattern))

    def _parse_browser_match(self, cur: LineCursor, line_num: int) -> Optional[Directive]:
        pattern = cur.next_token()
        if not pattern:
            return None
        assignment = cur.rest_of_line()
        if assignment is None:
            return None
        name, value = _split_assignment(assignment)
        return Directive(DirectiveType.BROWSER_MATCH, line_num, name=name, value=value,
                         data=EnvIfData(attribute="User-Agent", pattern=pattern))

    def _parse_brute_force_protection(self, cur: LineCursor, line_num: int) -> Optional[Directive]:
        enabled = _on_off(cur.next_token())
        if enabled is None:
            return None
        return Directive(DirectiveType.BRUTE_FORCE_PROTECTION, line_num,
                         data=BruteForceData(enabled=enabled))

    def _brute_force_int(self, dtype: str, field_name: str):
        def handler(cur: LineCursor, line_num: int) -> Optional[Directive]:
            n = _positive_int(cur.next_token())
            if n is None:
                return None
            return Directive(dtype, line_num, data=BruteForceData(**{field_name: n}))
        return handler

    def _parse_brute_force_action(self, cur: LineCursor, line_num: int) -> Optional[Directive]:
        action = (cur.next_token() or "").lower()
        if action not in ("block", "throttle"):
            return None
        return Directive(DirectiveType.BRUTE_FORCE_ACTION, line_num,
                         data=BruteForceData(action=action))

    def _parse_brute_force_xff(self, cur: LineCursor, line_num: int) -> Optional[Directive]:
        token = cur.next_token()
        if token is None:
            return None
        return Directive(DirectiveType.BRUTE_FORCE_X_FORWARDED_FOR, line_num,
                         data=BruteForceData(enabled=token.lower() == "on"))

    def _parse_options(self, cur: LineCursor, line_num: int) -> Optional[Directive]:
        text = cur.rest_of_line()
        if text is None:
            return None

        flags = {}
        for word in text.split():
            sign = 1
            if word[0] in '+-':
                sign = 1 if word[0] == '+' else -1
                word = word[1:]
            attr = _OPTION_FLAGS.get(word.lower())
            if attr is None:
                self._warn(line_num, f"unknown Options flag: {word}")
                continue
            flags[attr] = sign

        return Directive(DirectiveType.OPTIONS, line_num, value=text, data=OptionsData(**flags))

    def _parse_require(self, cur: LineCursor, line_num: int) -> Optional[Directive]:
        if cur.match_keyword("all"):
            word = (cur.next_token() or "").lower()
            if word == "granted":
                return Directive(DirectiveType.REQUIRE_ALL_GRANTED, line_num)
            if word == "denied":
                return Directive(DirectiveType.REQUIRE_ALL_DENIED, line_num)
            return None

        if cur.match_keyword("not"):
            if not cur.match_keyword("ip"):
                return None
            value = cur.rest_of_line()
            if value is None:
                return None
            return Directive(DirectiveType.REQUIRE_NOT_IP, line_num, value=value)

        if cur.match_keyword("ip"):
            value = cur.rest_of_line()
            if value is None:
                return None
            return Directive(DirectiveType.REQUIRE_IP, line_num, value=value)

        if cur.match_keyword("valid-user"):
            return Directive(DirectiveType.REQUIRE_VALID_USER, line_num)

        return None


def parse(content: str, source_name: str = "<unknown>",
          logger: Optional[logging.Logger] = None) -> ParsedHtaccess:
    """Convenience wrapper around HtaccessParser.parse."""
    return HtaccessParser(logger=logger).parse(content, source_name)
