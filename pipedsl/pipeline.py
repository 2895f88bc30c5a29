"""
Pipeline: the loaded document.

Owns the block table (block 0 is the default block run when no procedure is
named), the procedure table and the configuration variables, and exposes the
load/save/query API used by executors and tooling.
"""

import logging
import re
from typing import Dict, List, Optional, Sequence, TextIO, Union

from .dsl_ast import Block, Procedure, ProcArgs
from .dsl_converter import dump as dump_pipeline
from .dsl_converter import pipeline_to_text
from .dsl_lexer import ArgList
from .dsl_lines import tokenize_command
from .dsl_parser import LoadContext, parse_file, parse_text
from .dsl_validate import promote_proc_calls
from .system import FileSystem, LocalFileSystem, PosixShellEncoder, ShellEncoder

logger = logging.getLogger(__name__)


class Pipeline:
    """A pipeline document: procedures, blocks and variables."""

    def __init__(self, filesystem: Optional[FileSystem] = None,
                 encoder: Optional[ShellEncoder] = None):
        self.filesystem = filesystem or LocalFileSystem()
        self.encoder = encoder or PosixShellEncoder()
        self.blocks: List[Block] = [Block()]
        self.procedures: Dict[str, Procedure] = {}
        self.proc_pos: Dict[str, str] = {}
        self.variables: Dict[str, str] = {}

    # =========================================================================
    # Loading and saving
    # =========================================================================

    def load(self, path: str, parallel: bool = False):
        """Load a pipeline file and its '.conf' sibling.

        parallel sets the execution mode of the default block. Raises
        ParseError (or ConfigError) on invalid input and OSError if the file
        cannot be read.
        """
        self.blocks[0].parallel = parallel
        parse_file(self, path, self._new_context())
        logger.debug("Loaded %s: %d procedure(s), %d block(s)",
                     path, len(self.procedures), len(self.blocks))

    def loads(self, text: str, filename: str = '<string>', parallel: bool = False):
        """Load pipeline source from a string."""
        self.blocks[0].parallel = parallel
        parse_text(self, text, filename, self._new_context())

    def final_check_after_load(self) -> int:
        """Turn shell lines that call procedures into procedure calls.

        Must run once the whole document is loaded. Returns the number of
        items rewritten. Raises ParseError when a call names the same option
        twice; items before it in the walk are already rewritten by then.
        """
        return promote_proc_calls(self)

    def to_text(self) -> str:
        return pipeline_to_text(self, self.encoder)

    def save(self, path: str):
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.to_text())

    def _new_context(self) -> LoadContext:
        return LoadContext(variables=self.variables, filesystem=self.filesystem)

    @staticmethod
    def check_if_pipe_file(path: str, filesystem: Optional[FileSystem] = None) -> bool:
        """True if path looks like a pipeline file: an existing, non-executable text file."""
        if filesystem is None:
            filesystem = LocalFileSystem()
        if not filesystem.exists(path):
            return False
        if filesystem.is_executable(path):
            return False
        return filesystem.is_text_file(path)

    # =========================================================================
    # Block table
    # =========================================================================

    def append_block(self, block: Block) -> int:
        """Add a block to the table. Returns its index."""
        self.blocks.append(block)
        return len(self.blocks) - 1

    def append_shell_line(self, block: Block, text: str, arg_lists: Sequence[ArgList],
                          pos: str = ''):
        """Append a tokenized command line to block.

        Several argument lists become one item each; in a parallel block they
        are grouped into a new sequential block so they still run in order.
        """
        if len(arg_lists) == 1:
            block.append_command(text, arg_lists[0].head, arg_lists[0].args, pos)
            return

        target = block
        if block.parallel:
            sub_index = self.append_block(Block(parallel=False))
            target = self.blocks[sub_index]
            block.append_block(sub_index)
        for args in arg_lists:
            target.append_command(args.text, args.head, args.args, pos)

    def add_procedure(self, proc: Procedure):
        self.procedures[proc.name] = proc
        self.proc_pos[proc.name] = proc.pos

    # =========================================================================
    # Queries
    # =========================================================================

    def has_procedure(self, name: str) -> bool:
        return name in self.procedures

    def get_proc(self, name: str) -> Procedure:
        return self.procedures[name]

    def get_proc_name_list(self, pattern: str = '') -> List[str]:
        """Names of procedures matching the regular expression pattern (anywhere in the name)."""
        regex = re.compile(pattern)
        return [name for name in self.procedures if regex.search(name)]

    def get_block_index(self, name: str) -> int:
        """Index of a procedure's block. Raises KeyError for an unknown procedure."""
        proc = self.procedures.get(name)
        if proc is None:
            raise KeyError(f"Invalid procedure name '{name}'")
        return proc.block_index

    def get_block(self, name_or_index: Union[str, int]) -> Block:
        if isinstance(name_or_index, int):
            return self.blocks[name_or_index]
        return self.blocks[self.get_block_index(name_or_index)]

    def get_default_block(self) -> Block:
        return self.blocks[0]

    def has_any_default_command(self) -> bool:
        return not self.blocks[0].is_empty()

    # =========================================================================
    # Default block
    # =========================================================================

    def _check_default_block_empty(self):
        if not self.blocks[0].is_empty():
            raise ValueError("Default block is not empty")

    def clear_default_block(self):
        self.blocks[0].clear()

    def set_default_block(self, parallel: bool, commands: Sequence[str]):
        """Fill the empty default block with shell command lines."""
        self._check_default_block_empty()
        block = self.blocks[0]
        block.parallel = parallel
        for command in commands:
            text = command.strip()
            if text:
                self.append_shell_line(block, text, tokenize_command(text))

    def set_default_proc(self, name: str, args: Optional[ProcArgs] = None):
        """Make the empty default block a single call of procedure name."""
        self._check_default_block_empty()
        self.blocks[0].append_proc(name, args if args is not None else ProcArgs())

    def join_command_line(self, cmd: str, arguments: Sequence[str]) -> str:
        """Build a command line from argv-style words, quoting each argument."""
        return ' '.join([cmd] + [self.encoder.quote(arg) for arg in arguments])

    def append_command(self, cmd: str, arguments: Sequence[str] = ()):
        """Append an argv-style command to the default block."""
        text = self.join_command_line(cmd, arguments)
        self.append_shell_line(self.blocks[0], text, tokenize_command(text))

    # =========================================================================
    # Debugging
    # =========================================================================

    def dump(self, stream: Optional[TextIO] = None):
        dump_pipeline(self, stream)


def load_pipeline(path: str, parallel: bool = False,
                  filesystem: Optional[FileSystem] = None,
                  encoder: Optional[ShellEncoder] = None) -> Pipeline:
    """Load a pipeline file and resolve procedure calls in one step."""
    pipeline = Pipeline(filesystem, encoder)
    pipeline.load(path, parallel)
    pipeline.final_check_after_load()
    return pipeline
