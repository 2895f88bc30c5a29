"""
PEG-based parser for attribute comment lines using Lark.

Uses a formal grammar definition (dsl_grammar.lark) and Lark's Earley parser
to turn '#@ key: value, ...' lines into ordered (key, value) pairs.
"""

import re
from pathlib import Path
from typing import List, Tuple

from lark import Lark, Transformer, v_args
from lark.exceptions import LarkError


# Load grammar from file
GRAMMAR_PATH = Path(__file__).parent / "dsl_grammar.lark"

Attribute = Tuple[str, str]


class AttributeSyntaxError(ValueError):
    """Raised when an attribute line does not match the grammar."""


@v_args(inline=True)
class AttributeTransformer(Transformer):
    """Transform Lark parse tree into (key, value) pairs."""

    def start(self, *pairs):
        return list(pairs)

    def pair(self, key, value):
        return str(key), value

    def quoted(self, s):
        return self._unquote(s)

    def bare(self, s):
        return str(s)

    def _unquote(self, s):
        """Remove quotes and backslash escapes from a string token."""
        s = str(s)
        return re.sub(r'\\(.)', r'\1', s[1:-1])


# Create parser instance
_parser = None


def get_parser():
    """Get or create the Lark parser instance."""
    global _parser
    if _parser is None:
        with open(GRAMMAR_PATH) as f:
            grammar = f.read()
        _parser = Lark(
            grammar,
            parser='earley',
            propagate_positions=True,
        )
    return _parser


def parse_attributes(line: str) -> List[Attribute]:
    """Parse one '#@' line into its attributes.

    Raises AttributeSyntaxError if the line does not follow the grammar.
    """
    parser = get_parser()
    try:
        tree = parser.parse(line.strip())
    except LarkError as e:
        raise AttributeSyntaxError(str(e)) from e
    return AttributeTransformer().transform(tree)
