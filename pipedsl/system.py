"""
File-system and shell-quoting capabilities used by the loader and serializer.

Both are plain protocols so callers can inject their own implementations;
LocalFileSystem and PosixShellEncoder are the defaults.
"""

import os
import shlex
from typing import Protocol


TEXT_SNIFF_BYTES = 8192


class FileSystem(Protocol):
    def exists(self, path: str) -> bool: ...

    def is_executable(self, path: str) -> bool: ...

    def is_text_file(self, path: str) -> bool: ...

    def dir_name(self, path: str) -> str: ...


class ShellEncoder(Protocol):
    def quote(self, value: str) -> str: ...


class LocalFileSystem:
    """FileSystem backed by the local file system."""

    def exists(self, path: str) -> bool:
        return os.path.isfile(path)

    def is_executable(self, path: str) -> bool:
        return os.access(path, os.X_OK)

    def is_text_file(self, path: str) -> bool:
        """Sniff the start of the file: no NUL bytes and valid UTF-8."""
        try:
            with open(path, 'rb') as f:
                chunk = f.read(TEXT_SNIFF_BYTES)
        except OSError:
            return False
        if b'\0' in chunk:
            return False
        try:
            chunk.decode('utf-8')
        except UnicodeDecodeError as e:
            # A multi-byte character may be cut at the end of the chunk
            return len(chunk) == TEXT_SNIFF_BYTES and e.start >= len(chunk) - 3
        return True

    def dir_name(self, path: str) -> str:
        return os.path.dirname(path) or '.'


class PosixShellEncoder:
    """ShellEncoder producing POSIX shell literals."""

    def quote(self, value: str) -> str:
        return shlex.quote(value)
