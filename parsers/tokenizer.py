"""
Line tokenizer for .htaccess directives.
Works on a cursor over a single already-trimmed line.
"""

import re
from typing import Optional


class LineCursor:
    """A read position inside one directive line."""

    def __init__(self, text: str, pos: int = 0):
        self.text = text
        self.pos = pos

    def skip_ws(self):
        while self.pos < len(self.text) and self.text[self.pos] in ' \t':
            self.pos += 1

    @property
    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def match_keyword(self, keyword: str) -> bool:
        """
        Consume `keyword` (case-insensitive) if it is followed by whitespace
        or end of line. Leading whitespace is skipped first.
        """
        self.skip_ws()
        end = self.pos + len(keyword)
        if self.text[self.pos:end].lower() != keyword.lower():
            return False
        if end < len(self.text) and self.text[end] not in ' \t':
            return False
        self.pos = end
        return True

    def next_token(self) -> Optional[str]:
        """Next whitespace-delimited word, or a quoted span without its quotes."""
        self.skip_ws()
        if self.at_end:
            return None

        if self.text[self.pos] == '"':
            close = self.text.find('"', self.pos + 1)
            if close == -1:
                token = self.text[self.pos + 1:]
                self.pos = len(self.text)
            else:
                token = self.text[self.pos + 1:close]
                self.pos = close + 1
            return token

        start = self.pos
        while self.pos < len(self.text) and self.text[self.pos] not in ' \t':
            self.pos += 1
        return self.text[start:self.pos]

    def rest_of_line(self) -> Optional[str]:
        """Remaining text, trimmed, with one pair of enclosing quotes removed."""
        rest = self.rest_of_line_raw()
        if rest is None:
            return None
        if len(rest) >= 2 and rest[0] == '"' and rest[-1] == '"':
            rest = rest[1:-1]
        return rest

    def rest_of_line_raw(self) -> Optional[str]:
        """Remaining text, trimmed, quotes preserved."""
        rest = self.text[self.pos:].strip()
        self.pos = len(self.text)
        return rest or None


def split_list(text: Optional[str]):
    """Split a space/tab separated list, dropping empties."""
    if not text:
        return []
    return [t for t in re.split(r'[ \t]+', text.strip()) if t]
