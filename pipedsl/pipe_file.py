"""
Sequential line source for pipeline files, tracking positions for diagnostics.
"""

from typing import Iterable, Optional, TextIO


class PipeFile:
    """Reads physical lines one at a time.

    Use as a context manager so the underlying file is closed on every path:

        with PipeFile.open("build.pipe") as f:
            while f.read_line():
                ...
    """

    def __init__(self, lines: Iterable[str], filename: str, stream: Optional[TextIO] = None):
        self._lines = iter(lines)
        self._stream = stream
        self.filename = filename
        self.line_no = 0
        self.current_line = ''
        self.eof = False

    @classmethod
    def open(cls, path: str) -> 'PipeFile':
        stream = open(path, encoding='utf-8')
        return cls(stream, path, stream)

    @classmethod
    def from_text(cls, text: str, filename: str = '<string>') -> 'PipeFile':
        return cls(text.splitlines(), filename)

    @property
    def pos(self) -> str:
        """Position of the current line, as 'filename(line-no)'."""
        return f"{self.filename}({self.line_no})"

    def read_line(self) -> bool:
        """Advance to the next line. Returns False at end of file."""
        try:
            line = next(self._lines)
        except StopIteration:
            self.current_line = ''
            self.eof = True
            return False
        self.line_no += 1
        self.current_line = line.rstrip('\r\n')
        return True

    def close(self):
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def __enter__(self) -> 'PipeFile':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
