"""
Lexer for shell command lines inside a pipeline file.

Splits a (possibly multi-line) command into argument lists. Words keep their
quotes and escapes exactly as written; use unquote_word() to get the literal
value of a word.
"""

from dataclasses import dataclass, field
from typing import List


WHITESPACE = ' \t\r\n'
HEX_DIGITS = '0123456789abcdefABCDEF'
OCT_DIGITS = '01234567'

# Escapes accepted inside double quotes besides \xHH and \0OO
SIMPLE_ESCAPES = {'t': '\t', 'r': '\r', 'n': '\n', 'b': '\b', '"': '"', '\\': '\\'}


class LexerError(Exception):
    """Raised when a command line cannot be tokenized."""
    def __init__(self, message: str, offset: int):
        self.message = message
        self.offset = offset
        self.column = offset + 1
        super().__init__(f"Column {self.column}: {message}")

    def pointer(self, text: str) -> str:
        """Return the message with leading spaces so a caret lines up under text."""
        line_start = text.rfind('\n', 0, self.offset) + 1
        return ' ' * (self.offset - line_start) + '^ ' + self.message


class UnfinishedInputError(LexerError):
    """Input ended inside a quote or escape; more lines are needed."""


class MalformedInputError(LexerError):
    """Input can never become a valid command, whatever follows."""


@dataclass
class ArgList:
    """One command invocation: the head word plus its argument words."""
    words: List[str] = field(default_factory=list)
    text: str = ''

    @property
    def head(self) -> str:
        return self.words[0]

    @property
    def args(self) -> List[str]:
        return self.words[1:]


class ShellLexer:
    """Tokenizer for shell command lines.

    Unquoted ';' and '&&' separate invocations, so one line may produce several
    argument lists. Separators inside '$(...)', '(...)', '${...}', '{ ...; }'
    or backticks do not split. Pipes and redirections are left inside the words.
    With split=False the whole source is one argument list.
    """

    def __init__(self, source: str, split: bool = True):
        self.source = source
        self.split = split
        self.pos = 0
        self._depth = 0
        self._in_backticks = False
        self.arg_lists: List[ArgList] = []
        self._words: List[str] = []
        self._word = ''
        self._segment_start = 0

    def tokenize(self) -> List[ArgList]:
        """Tokenize the whole source and return its argument lists."""
        while not self._at_end():
            self._scan()

        self._end_segment(self.pos)
        if not self.arg_lists:
            raise MalformedInputError("Empty command", 0)
        return self.arg_lists

    def _at_end(self) -> bool:
        return self.pos >= len(self.source)

    def _peek(self, offset: int = 0) -> str:
        pos = self.pos + offset
        if pos >= len(self.source):
            return '\0'
        return self.source[pos]

    def _advance(self) -> str:
        char = self.source[self.pos]
        self.pos += 1
        return char

    def _flush_word(self):
        if self._word:
            self._words.append(self._word)
            self._word = ''

    def _end_segment(self, end: int):
        self._flush_word()
        if self._words:
            text = self.source[self._segment_start:end].strip(WHITESPACE)
            self.arg_lists.append(ArgList(self._words, text))
            self._words = []

    def _scan(self):
        char = self._peek()

        if char in WHITESPACE:
            self._advance()
            self._flush_word()
            return

        if char == "'":
            self._word += self._scan_single_quoted()
            return

        if char == '"':
            self._word += self._scan_double_quoted()
            return

        if char == '\\':
            if self.pos + 1 >= len(self.source):
                raise UnfinishedInputError("Line continues after backslash", self.pos)
            self._word += self._advance() + self._advance()
            return

        if char == '`':
            self._in_backticks = not self._in_backticks
        elif char in '({':
            self._depth += 1
        elif char in ')}' and self._depth > 0:
            self._depth -= 1
        elif self._at_separator(char):
            self._end_segment(self.pos)
            self._advance()
            if char == '&':
                self._advance()
            self._segment_start = self.pos
            return

        self._word += self._advance()

    def _at_separator(self, char: str) -> bool:
        if not self.split or self._depth or self._in_backticks:
            return False
        return char == ';' or (char == '&' and self._peek(1) == '&')

    def _scan_single_quoted(self) -> str:
        start = self.pos
        self._advance()  # Opening '
        while not self._at_end():
            if self._advance() == "'":
                return self.source[start:self.pos]
        raise UnfinishedInputError("Unterminated single quote", start)

    def _scan_double_quoted(self) -> str:
        start = self.pos
        self._advance()  # Opening "
        while not self._at_end():
            char = self._advance()
            if char == '"':
                return self.source[start:self.pos]
            if char == '\\':
                self._scan_escape()
        raise UnfinishedInputError("Unterminated double quote", start)

    def _scan_escape(self):
        """Validate the escape sequence following a backslash in double quotes."""
        escape_pos = self.pos - 1
        if self._at_end():
            raise UnfinishedInputError("Unterminated escape sequence", escape_pos)
        escape_char = self._advance()

        if escape_char in SIMPLE_ESCAPES:
            return
        if escape_char == 'x':
            digits, kind = HEX_DIGITS, "hex"
        elif escape_char == '0':
            digits, kind = OCT_DIGITS, "octal"
        else:
            raise MalformedInputError(f"Invalid escape sequence '\\{escape_char}'", escape_pos)

        for _ in range(2):
            if self._at_end():
                raise UnfinishedInputError("Unterminated escape sequence", escape_pos)
            if self._peek() not in digits:
                raise MalformedInputError(f"Expected {kind} digit in escape sequence", self.pos)
            self._advance()


def tokenize(source: str, split: bool = True) -> List[ArgList]:
    """Convenience function to tokenize a command line."""
    lexer = ShellLexer(source, split)
    return lexer.tokenize()


def unquote_word(word: str) -> str:
    """Return the literal value of a word produced by the lexer.

    Single-quoted text is taken as is, double-quoted escapes are decoded and a
    bare backslash keeps the character after it.
    """
    value = []
    i = 0
    n = len(word)
    while i < n:
        char = word[i]
        if char == "'":
            end = word.find("'", i + 1)
            if end < 0:
                end = n
            value.append(word[i + 1:end])
            i = end + 1
        elif char == '"':
            i += 1
            while i < n and word[i] != '"':
                if word[i] == '\\' and i + 1 < n:
                    escape_char = word[i + 1]
                    if escape_char == 'x':
                        value.append(chr(int(word[i + 2:i + 4], 16)))
                        i += 4
                    elif escape_char == '0':
                        value.append(chr(int(word[i + 2:i + 4], 8)))
                        i += 4
                    else:
                        value.append(SIMPLE_ESCAPES.get(escape_char, escape_char))
                        i += 2
                else:
                    value.append(word[i])
                    i += 1
            i += 1  # Closing "
        elif char == '\\' and i + 1 < n:
            value.append(word[i + 1])
            i += 2
        else:
            value.append(char)
            i += 1
    return ''.join(value)
