"""
Line classification for pipeline files.

A pipeline file is line oriented: every physical line is one of the kinds
below. classify_line() applies them in priority order; the individual
predicates are also used directly by the parser.
"""

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional, Tuple

from .dsl_lexer import ArgList, tokenize


class LineKind(Enum):
    EMPTY = auto()
    COMMENT = auto()
    ATTRIBUTE = auto()       # #@ key: value
    INCLUDE = auto()         # include path / -include path
    VARIABLE = auto()        # name = value
    FUNCTION = auto()        # name() [{ | {{]
    LEFT_BRACKET = auto()    # { or {{
    RIGHT_BRACKET = auto()   # } or }}
    COMMAND = auto()


COMMENT_MARKER = '#'
ATTRIBUTE_MARKER = '#@'

SEQUENTIAL_BRACKETS = ('{', '}')
PARALLEL_BRACKETS = ('{{', '}}')

_INCLUDE_RE = re.compile(r'^(-?)include\s+(?:"([^"]+)"|(\S+))$')
_FUNCTION_RE = re.compile(r'^([A-Za-z_][\w-]*)\s*\(\s*\)\s*(\{\{|\{)?$')
_VARIABLE_RE = re.compile(r'^([A-Za-z_]\w*)\s*=\s*(.*)$')


@dataclass
class LineMatch:
    """Result of classifying one line, with the fields captured for its kind."""
    kind: LineKind
    text: str
    name: Optional[str] = None       # procedure or variable name
    value: Optional[str] = None      # variable value
    bracket: Optional[str] = None    # '{', '{{', '}' or '}}'
    filename: Optional[str] = None   # include target
    optional: bool = False           # -include

    @property
    def parallel(self) -> bool:
        return self.bracket in PARALLEL_BRACKETS


def is_empty_line(line: str) -> bool:
    return not line.strip()


def is_comment_line(line: str) -> bool:
    return line.lstrip().startswith(COMMENT_MARKER)


def is_attribute_line(line: str) -> bool:
    return line.lstrip().startswith(ATTRIBUTE_MARKER)


def is_left_bracket(line: str) -> Optional[str]:
    """Return '{' or '{{' if the line is exactly a left bracket."""
    text = line.strip()
    return text if text in ('{', '{{') else None


def is_right_bracket(line: str) -> Optional[str]:
    """Return '}' or '}}' if the line is exactly a right bracket."""
    text = line.strip()
    return text if text in ('}', '}}') else None


def parse_include(line: str) -> Optional[Tuple[str, bool]]:
    """Return (filename, optional) for an include directive."""
    m = _INCLUDE_RE.match(line.strip())
    if not m:
        return None
    return m.group(2) or m.group(3), m.group(1) == '-'


def parse_function(line: str) -> Optional[Tuple[str, Optional[str]]]:
    """Return (name, left_bracket) for a procedure header; bracket may be None."""
    m = _FUNCTION_RE.match(line.strip())
    if not m:
        return None
    return m.group(1), m.group(2)


def parse_variable(line: str) -> Optional[Tuple[str, str]]:
    """Return (name, value) for a 'name = value' line."""
    m = _VARIABLE_RE.match(line.strip())
    if not m:
        return None
    return m.group(1), m.group(2).strip()


def classify_line(line: str) -> LineMatch:
    """Classify one physical line.

    Priority: include > function header > left bracket > empty > comment >
    variable > command. Right brackets are reported before commands.
    """
    text = line.strip()

    include = parse_include(text)
    if include:
        filename, optional = include
        return LineMatch(LineKind.INCLUDE, text, filename=filename, optional=optional)

    function = parse_function(text)
    if function:
        name, bracket = function
        return LineMatch(LineKind.FUNCTION, text, name=name, bracket=bracket)

    bracket = is_left_bracket(text)
    if bracket:
        return LineMatch(LineKind.LEFT_BRACKET, text, bracket=bracket)

    if not text:
        return LineMatch(LineKind.EMPTY, text)

    if is_attribute_line(text):
        return LineMatch(LineKind.ATTRIBUTE, text)
    if is_comment_line(text):
        return LineMatch(LineKind.COMMENT, text)

    variable = parse_variable(text)
    if variable:
        name, value = variable
        return LineMatch(LineKind.VARIABLE, text, name=name, value=value)

    bracket = is_right_bracket(text)
    if bracket:
        return LineMatch(LineKind.RIGHT_BRACKET, text, bracket=bracket)

    return LineMatch(LineKind.COMMAND, text)


def tokenize_command(text: str) -> List[ArgList]:
    """Tokenize a command line, splitting it only where every part is a command.

    A part that would read back as a bracket, comment, header or any other
    non-command line keeps the whole text as one argument list, so the line
    renders and loads back unchanged.
    """
    arg_lists = tokenize(text)
    if len(arg_lists) > 1 and any(
            classify_line(arg_list.text).kind != LineKind.COMMAND for arg_list in arg_lists):
        return tokenize(text, split=False)
    return arg_lists
