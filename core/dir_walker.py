"""
Directory Walker
Collects .htaccess files from the document root down to a target directory
and merges them, with child directives overriding their parent's.
Parsed files are cached per path and modification time.
"""

import os
import logging
from typing import Dict, List, Optional, Sequence, Tuple

from core.models import DirectiveType, Directive, ParsedHtaccess
from core.input_handler import InputHandler
from parsers.htaccess_parser import HtaccessParser


# Kinds keyed by their name field
_BY_NAME = frozenset({
    DirectiveType.HEADER_SET, DirectiveType.HEADER_UNSET, DirectiveType.HEADER_APPEND,
    DirectiveType.HEADER_MERGE, DirectiveType.HEADER_ADD,
    DirectiveType.HEADER_ALWAYS_SET, DirectiveType.HEADER_ALWAYS_UNSET,
    DirectiveType.HEADER_ALWAYS_APPEND, DirectiveType.HEADER_ALWAYS_MERGE,
    DirectiveType.HEADER_ALWAYS_ADD,
    DirectiveType.REQUEST_HEADER_SET, DirectiveType.REQUEST_HEADER_UNSET,
    DirectiveType.PHP_VALUE, DirectiveType.PHP_FLAG,
    DirectiveType.PHP_ADMIN_VALUE, DirectiveType.PHP_ADMIN_FLAG,
    DirectiveType.SETENV, DirectiveType.EXPIRES_BY_TYPE,
    DirectiveType.REDIRECT,
})

# One per directory: the child simply replaces the parent's
_SINGLETONS = frozenset({
    DirectiveType.ORDER, DirectiveType.EXPIRES_ACTIVE,
    DirectiveType.BRUTE_FORCE_PROTECTION, DirectiveType.BRUTE_FORCE_ALLOWED_ATTEMPTS,
    DirectiveType.BRUTE_FORCE_WINDOW, DirectiveType.BRUTE_FORCE_ACTION,
    DirectiveType.BRUTE_FORCE_THROTTLE_DURATION,
})


def override_key(d: Directive) -> Optional[tuple]:
    """Identity used when a child directive overrides a parent one; None never matches."""
    if d.type in _BY_NAME:
        return (d.type, d.name) if d.name is not None else None
    if d.type in _SINGLETONS:
        return (d.type,)
    if d.type == DirectiveType.ERROR_DOCUMENT:
        return (d.type, d.data.error_code)
    if d.type in (DirectiveType.ALLOW_FROM, DirectiveType.DENY_FROM):
        return (d.type, d.value)
    if d.type == DirectiveType.REDIRECT_MATCH:
        return (d.type, d.data.pattern)
    if d.type == DirectiveType.FILES_MATCH:
        return (d.type, d.data.pattern)
    if d.type in (DirectiveType.SETENVIF, DirectiveType.BROWSER_MATCH):
        return (d.type, d.name, d.data.pattern)
    return None


def merge_directives(parent: Sequence[Directive], child: Sequence[Directive]) -> List[Directive]:
    """Replace matching parent directives in place; append the rest."""
    merged = list(parent)
    for c in child:
        key = override_key(c)
        if key is not None:
            for i, p in enumerate(merged):
                if override_key(p) == key:
                    merged[i] = c
                    break
            else:
                merged.append(c)
        else:
            merged.append(c)
    return merged


class DirWalker:
    """Walks a document root and produces the merged directives for a directory."""

    def __init__(self, input_handler: Optional[InputHandler] = None,
                 parser: Optional[HtaccessParser] = None,
                 filename: str = ".htaccess",
                 logger: Optional[logging.Logger] = None):
        self.input_handler = input_handler or InputHandler()
        self.logger = logger or logging.getLogger("htgate.dir_walker")
        self.parser = parser or HtaccessParser(logger=self.logger)
        self.filename = filename
        self._cache: Dict[str, Tuple[float, ParsedHtaccess]] = {}

    def directory_chain(self, doc_root: str, target_dir: str) -> List[str]:
        """Directories from doc_root to target_dir inclusive; empty if outside the root."""
        root = os.path.abspath(doc_root)
        target = os.path.abspath(target_dir)
        try:
            rel = os.path.relpath(target, root)
        except ValueError:
            return []
        if rel == os.curdir:
            return [root]
        if rel == os.pardir or rel.startswith(os.pardir + os.sep):
            return []

        chain = [root]
        current = root
        for part in rel.split(os.sep):
            current = os.path.join(current, part)
            chain.append(current)
        return chain

    def load(self, path: str) -> Optional[ParsedHtaccess]:
        """Parse one file, reusing the cached tree while its mtime is unchanged."""
        try:
            mtime = os.stat(path).st_mtime
        except OSError:
            return None

        cached = self._cache.get(path)
        if cached and cached[0] == mtime:
            return cached[1]

        try:
            config_input = self.input_handler.load_file(path)
        except (ValueError, PermissionError, FileNotFoundError) as e:
            self.logger.warning(f"Skipping {path}: {e}")
            return None

        parsed = self.parser.parse(config_input.content, path)
        self._cache[path] = (mtime, parsed)
        self.logger.debug(f"Loaded {path}: {len(parsed.directives)} top-level directives")
        return parsed

    def walk(self, doc_root: str, target_dir: str) -> List[Directive]:
        merged: List[Directive] = []
        for directory in self.directory_chain(doc_root, target_dir):
            parsed = self.load(os.path.join(directory, self.filename))
            if parsed is not None:
                merged = merge_directives(merged, parsed.directives)
        return merged

    def clear_cache(self):
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)
