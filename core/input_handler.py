"""
Input Handler
Accepts .htaccess file paths, validates existence/readability,
computes SHA-256 hash, reads content, and returns ConfigInput objects.
"""

import os
import hashlib
from typing import Optional, Tuple, List, Dict
from datetime import datetime
from core.models import ConfigInput


class InputHandler:
    """Handles file input validation, reading, and hashing."""

    SUPPORTED_FILENAMES = {'.htaccess', 'htaccess.txt'}
    SUPPORTED_EXTENSIONS = {'.htaccess', '.conf', '.txt'}

    MAX_FILE_SIZE = 1 * 1024 * 1024  # 1 MB limit

    def __init__(self, max_file_size: Optional[int] = None):
        if max_file_size:
            self.MAX_FILE_SIZE = max_file_size

    def is_supported(self, filename: str) -> bool:
        if filename in self.SUPPORTED_FILENAMES:
            return True
        _, ext = os.path.splitext(filename)
        return ext.lower() in self.SUPPORTED_EXTENSIONS

    def load_file(self, file_path: str) -> ConfigInput:
        """
        Read one .htaccess file from disk.

        Raises:
            FileNotFoundError: missing path.
            PermissionError: unreadable file.
            ValueError: directory, empty, oversized or non-UTF-8 file.
        """
        file_path = os.path.abspath(file_path)

        if not os.path.exists(file_path):
            raise FileNotFoundError(f".htaccess not found: {file_path}")
        if os.path.isdir(file_path):
            raise ValueError(f"Expected an .htaccess file, got a directory: {file_path}")
        if not os.access(file_path, os.R_OK):
            raise PermissionError(f"Cannot read .htaccess: {file_path}")

        stat = os.stat(file_path)
        if stat.st_size == 0:
            raise ValueError(f".htaccess is empty: {file_path}")
        if stat.st_size > self.MAX_FILE_SIZE:
            raise ValueError(
                f".htaccess larger than {self.MAX_FILE_SIZE} bytes: {file_path}"
            )

        with open(file_path, 'rb') as f:
            raw = f.read()
        try:
            # utf-8-sig drops a leading BOM
            content = raw.decode('utf-8-sig')
        except UnicodeDecodeError:
            raise ValueError(f".htaccess is not valid UTF-8 text: {file_path}")

        return self.from_text(
            content,
            path=file_path,
            file_size=stat.st_size,
            mtime=stat.st_mtime,
        )

    def from_text(self, content: str, path: str = "<inline>",
                  file_size: Optional[int] = None, mtime: float = 0.0) -> ConfigInput:
        """Wrap in-memory text (e.g. an upload) as a ConfigInput."""
        encoded = content.encode('utf-8')
        if len(encoded) > self.MAX_FILE_SIZE:
            raise ValueError(f"Content exceeds maximum size ({self.MAX_FILE_SIZE} bytes)")
        return ConfigInput(
            path=path,
            content=content,
            file_hash=hashlib.sha256(encoded).hexdigest(),
            file_size=len(encoded) if file_size is None else file_size,
            timestamp=datetime.now().isoformat(),
            filename=os.path.basename(path),
            mtime=mtime,
        )

    def load_directory(self, dir_path: str) -> Tuple[List[ConfigInput], List[Dict[str, str]]]:
        """
        Load every supported file below a directory, recursively.

        Returns:
            (loaded inputs, list of {"file", "error"} for files that failed)
        """
        dir_path = os.path.abspath(dir_path)

        if not os.path.isdir(dir_path):
            raise NotADirectoryError(f"Not a directory: {dir_path}")

        results = []
        errors = []

        for root, dirs, files in os.walk(dir_path):
            dirs.sort()
            for filename in sorted(files):
                if not self.is_supported(filename):
                    continue
                file_path = os.path.join(root, filename)
                try:
                    results.append(self.load_file(file_path))
                except (ValueError, PermissionError) as e:
                    errors.append({"file": file_path, "error": str(e)})

        return results, errors
