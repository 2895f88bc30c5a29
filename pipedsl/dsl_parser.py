"""
Parser for pipeline files.

Reads a pipeline file line by line and fills a Pipeline: procedures, nested
sequential/parallel blocks, default-block commands and configuration
variables from the file, its includes and its sibling '.conf' file.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .dsl_ast import Block, Procedure
from .dsl_lexer import MalformedInputError, UnfinishedInputError
from .dsl_lines import (
    LineKind, LineMatch, classify_line, is_attribute_line, is_comment_line,
    is_empty_line, is_left_bracket, is_right_bracket, parse_variable, tokenize_command,
)
from .dsl_peg_parser import AttributeSyntaxError, parse_attributes
from .pipe_file import PipeFile
from .system import FileSystem, LocalFileSystem

logger = logging.getLogger(__name__)

CONF_SUFFIX = '.conf'


class ParseError(Exception):
    """Raised when a pipeline file has invalid syntax."""
    def __init__(self, message: str, pos: str = ''):
        self.pos = pos
        super().__init__(message)


class ConfigError(ParseError):
    """Raised when a configuration file cannot be loaded."""


@dataclass
class LoadContext:
    """State shared by the main file, its includes and its '.conf' file."""
    variables: Dict[str, str] = field(default_factory=dict)
    filesystem: FileSystem = field(default_factory=LocalFileSystem)
    pending_attributes: List[Tuple[str, str]] = field(default_factory=list)


def _closing(parallel: bool) -> str:
    return '}}' if parallel else '}'


class Parser:
    """Recursive descent parser over the lines of one pipeline file."""

    def __init__(self, pipeline, file: PipeFile, ctx: LoadContext):
        self.pipeline = pipeline
        self.file = file
        self.ctx = ctx

    def parse(self):
        """Parse the whole file into the pipeline."""
        if not self.file.read_line():
            return

        while True:
            line = classify_line(self.file.current_line)

            if line.kind == LineKind.INCLUDE:
                self._parse_include(line)
            elif line.kind == LineKind.FUNCTION:
                self._parse_procedure(line)
            elif line.kind == LineKind.LEFT_BRACKET:
                self._parse_top_level_block(line)
            elif line.kind == LineKind.ATTRIBUTE:
                self._parse_attribute_line()
            elif line.kind == LineKind.VARIABLE:
                self.ctx.variables[line.name] = line.value
            elif line.kind == LineKind.RIGHT_BRACKET:
                raise ParseError(
                    f"Unexpected right bracket '{line.bracket}' at {self.file.pos}",
                    self.file.pos,
                )
            elif line.kind == LineKind.COMMAND:
                self._append_command_from_file(self.pipeline.blocks[0])

            if line.kind not in (LineKind.EMPTY, LineKind.COMMENT, LineKind.ATTRIBUTE):
                self._drop_pending_attributes()

            if not self.file.read_line():
                break

        self._drop_pending_attributes()

    # =========================================================================
    # Helper methods
    # =========================================================================

    def _read_line_in_block(self, parallel: bool):
        if not self.file.read_line():
            raise ParseError(
                f"Missing right bracket '{_closing(parallel)}' at {self.file.pos}",
                self.file.pos,
            )

    def _drop_pending_attributes(self):
        if self.ctx.pending_attributes:
            logger.debug("Attributes not followed by a procedure were ignored before %s",
                         self.file.pos)
            self.ctx.pending_attributes = []

    def _parse_attribute_line(self):
        try:
            attributes = parse_attributes(self.file.current_line)
        except AttributeSyntaxError:
            logger.warning("Invalid format of attribute at %s!", self.file.pos)
            return
        self.ctx.pending_attributes.extend(attributes)

    # =========================================================================
    # Top-level declarations
    # =========================================================================

    def _parse_include(self, line: LineMatch):
        """Parse: include path | -include path"""
        directory = self.ctx.filesystem.dir_name(self.file.filename)
        path = os.path.join(directory, line.filename)
        if not self.ctx.filesystem.exists(path):
            if line.optional:
                logger.info("Skipping missing module '%s' at %s", line.filename, self.file.pos)
                return
            raise ConfigError(
                f"Cannot open module '{line.filename}' included at {self.file.pos}",
                self.file.pos,
            )
        logger.info("Loading module '%s'", line.filename)
        load_conf(path, self.ctx.variables)

    def _parse_procedure(self, line: LineMatch):
        """Parse: name() { ... }  or  name() {{ ... }}"""
        name = line.name
        pos = self.file.pos
        previous = self.pipeline.proc_pos.get(name)
        if previous is not None:
            raise ParseError(
                f"Duplicated procedure '{name}' at {pos}\n"
                f"   Previous definition of '{name}' was in {previous}",
                pos,
            )
        self.pipeline.proc_pos[name] = pos
        attributes = self.ctx.pending_attributes
        self.ctx.pending_attributes = []

        if not self.file.read_line():
            raise ParseError(f"Missing body of procedure '{name}' declared at {pos}", pos)

        bracket = line.bracket
        if bracket is None:
            bracket = self._read_left_bracket(name, pos)
            self._read_line_in_block(bracket == '{{')

        block_index = self._parse_block(bracket == '{{')
        self.pipeline.add_procedure(Procedure(name, block_index, pos, attributes))

    def _read_left_bracket(self, name: str, pos: str) -> str:
        """Skip blank and comment lines up to the '{' or '{{' opening a procedure."""
        while True:
            text = self.file.current_line
            if is_attribute_line(text):
                raise ParseError(f"Unexpected attribute line at {self.file.pos}", self.file.pos)
            if not is_empty_line(text) and not is_comment_line(text):
                bracket = is_left_bracket(text)
                if bracket is None:
                    raise ParseError(
                        f"Unexpected line at {self.file.pos}\n"
                        f"   Only '{{' or '{{{{' was expected here.",
                        self.file.pos,
                    )
                return bracket
            if not self.file.read_line():
                raise ParseError(
                    f"Missing left bracket for procedure '{name}' declared at {pos}", pos
                )

    def _parse_top_level_block(self, line: LineMatch):
        self._read_line_in_block(line.parallel)
        block_index = self._parse_block(line.parallel)
        self.pipeline.blocks[0].append_block(block_index)

    # =========================================================================
    # Blocks and commands
    # =========================================================================

    def _parse_block(self, parallel: bool) -> int:
        """Parse block items from the current line up to the matching right bracket.

        Returns the index of the new block; the current line is left on the
        closing bracket.
        """
        block_index = self.pipeline.append_block(Block(parallel=parallel))
        block = self.pipeline.blocks[block_index]
        expected = _closing(parallel)

        while True:
            text = self.file.current_line

            right_bracket = is_right_bracket(text)
            if right_bracket is not None:
                if right_bracket != expected:
                    raise ParseError(
                        f"Unexpected right bracket at {self.file.pos}\n"
                        f"   Right bracket '{expected}' was expected here.",
                        self.file.pos,
                    )
                return block_index

            left_bracket = is_left_bracket(text)
            if left_bracket is not None:
                nested_parallel = left_bracket == '{{'
                self._read_line_in_block(nested_parallel)
                block.append_block(self._parse_block(nested_parallel))
            elif not is_empty_line(text) and not is_comment_line(text):
                self._append_command_from_file(block)

            self._read_line_in_block(parallel)

    def _append_command_from_file(self, block: Block):
        """Read one shell command, following continuation lines, into block."""
        pos = self.file.pos
        text = self.file.current_line.strip()

        while True:
            try:
                arg_lists = tokenize_command(text)
                break
            except UnfinishedInputError:
                if not self.file.read_line():
                    raise ParseError(
                        f"Unexpected EOF at {self.file.pos} in command started at {pos}",
                        self.file.pos,
                    )
                if text.endswith('\\'):
                    text = text[:-1]
                else:
                    text += '\n'
                text += self.file.current_line.strip()
            except MalformedInputError as e:
                raise ParseError(
                    f"Error when parsing shell command at {self.file.pos}:\n"
                    f"   {text}\n"
                    f"   {e.pointer(text)}",
                    self.file.pos,
                ) from e

        self.pipeline.append_shell_line(block, text, arg_lists, pos)


# =============================================================================
# Configuration files
# =============================================================================

def load_conf(path: str, variables: Dict[str, str]):
    """Load 'name = value' lines of a configuration file into variables."""
    try:
        file = PipeFile.open(path)
    except OSError as e:
        raise ConfigError(f"Cannot open configure file '{path}': {e.strerror}") from e

    with file:
        while file.read_line():
            variable = parse_variable(file.current_line)
            if variable:
                name, value = variable
                variables[name] = value
            elif not is_empty_line(file.current_line) and not is_comment_line(file.current_line):
                raise ConfigError(
                    f"Invalid syntax of configure file in {file.pos}\n"
                    f"  Only global variable definition could be included in configure file!",
                    file.pos,
                )


def parse_file(pipeline, path: str, ctx: LoadContext = None) -> LoadContext:
    """Parse a pipeline file into pipeline, then load its '.conf' sibling if any."""
    if ctx is None:
        ctx = LoadContext()
    with PipeFile.open(path) as file:
        Parser(pipeline, file, ctx).parse()

    conf_path = path + CONF_SUFFIX
    if ctx.filesystem.exists(conf_path):
        load_conf(conf_path, ctx.variables)
    return ctx


def parse_text(pipeline, text: str, filename: str = '<string>', ctx: LoadContext = None) -> LoadContext:
    """Parse pipeline source held in a string. Includes resolve next to filename."""
    if ctx is None:
        ctx = LoadContext()
    with PipeFile.from_text(text, filename) as file:
        Parser(pipeline, file, ctx).parse()
    return ctx
