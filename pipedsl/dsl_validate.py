"""
Checks that run after a pipeline file has been parsed.

promote_proc_calls() turns shell lines that call a known procedure into
procedure-call items; it must run after the whole file is read so that calls
to procedures declared further down resolve. validate_pipeline() reports
problems the grammar can't express.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set

from .dsl_ast import BlockRef, CommandItem, ProcArgs, ProcItem, ShellItem
from .dsl_lexer import unquote_word
from .dsl_parser import ParseError

_OPTION_RE = re.compile(r'(\w+)=(.*)', re.ASCII | re.DOTALL)


# =============================================================================
# Shell-to-procedure rewriting
# =============================================================================

def try_convert_shell_to_proc(item: CommandItem, proc_names: Set[str]) -> Optional[ProcItem]:
    """Return the procedure call a shell item stands for, or None.

    The head word must name a procedure and every argument must look like
    key=value. Raises ParseError if a key is given twice.
    """
    if not isinstance(item, ShellItem) or item.head not in proc_names:
        return None

    proc_args = ProcArgs()
    for word in item.args:
        m = _OPTION_RE.fullmatch(word)
        if not m:
            return None
        key, value = m.group(1), m.group(2)
        if proc_args.has(key):
            raise ParseError(
                f"Duplicated option '{key}' in call of '{item.head}' at {item.pos}",
                item.pos,
            )
        proc_args.add(key, unquote_word(value))
    return ProcItem(item.head, proc_args, item.pos)


def promote_proc_calls(pipeline) -> int:
    """Replace shell items calling known procedures in every block. Returns the count."""
    proc_names = set(pipeline.get_proc_name_list())
    promoted = 0
    for block in pipeline.blocks:
        for i, item in enumerate(block.items):
            proc_item = try_convert_shell_to_proc(item, proc_names)
            if proc_item is not None:
                block.items[i] = proc_item
                promoted += 1
    return promoted


# =============================================================================
# Validation results
# =============================================================================

@dataclass
class ValidationError:
    """A validation error with location info."""
    message: str
    pos: str = ''
    severity: str = "error"  # "error" or "warning"

    def __str__(self):
        loc = self.pos or "unknown location"
        return f"[{self.severity}] {loc}: {self.message}"


@dataclass
class ValidationResult:
    """Result of validation."""
    errors: List[ValidationError] = field(default_factory=list)
    warnings: List[ValidationError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def add_error(self, message: str, pos: str = ''):
        self.errors.append(ValidationError(message, pos, "error"))

    def add_warning(self, message: str, pos: str = ''):
        self.warnings.append(ValidationError(message, pos, "warning"))

    def merge(self, other: 'ValidationResult'):
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)

    def __str__(self):
        lines = []
        for err in self.errors:
            lines.append(str(err))
        for warn in self.warnings:
            lines.append(str(warn))
        return "\n".join(lines)


# =============================================================================
# Main Validation Entry Point
# =============================================================================

def validate_pipeline(pipeline) -> ValidationResult:
    """Run all validations on a loaded pipeline."""
    result = ValidationResult()
    calls = build_call_graph(pipeline)

    result.merge(check_empty_procedures(pipeline))
    result.merge(check_unpromoted_calls(pipeline))
    result.merge(check_recursive_calls(pipeline, calls))
    result.merge(check_unused_procedures(pipeline, calls))

    return result


def iter_items(pipeline, block_index: int) -> Iterator[CommandItem]:
    """Yield the items of a block and of every block nested in it."""
    for item in pipeline.blocks[block_index].items:
        if isinstance(item, BlockRef):
            yield from iter_items(pipeline, item.block_index)
        else:
            yield item


def called_procedures(pipeline, block_index: int) -> List[str]:
    """Names of the procedures called from a block, in order of appearance."""
    names = []
    for item in iter_items(pipeline, block_index):
        if isinstance(item, ProcItem) and item.proc_name not in names:
            names.append(item.proc_name)
    return names


def build_call_graph(pipeline) -> Dict[str, List[str]]:
    """Map each procedure to the procedures its body calls."""
    return {
        name: called_procedures(pipeline, proc.block_index)
        for name, proc in pipeline.procedures.items()
    }


# =============================================================================
# Procedure checks
# =============================================================================

def check_empty_procedures(pipeline) -> ValidationResult:
    result = ValidationResult()
    for name, proc in pipeline.procedures.items():
        if pipeline.blocks[proc.block_index].is_empty():
            result.add_warning(f"Procedure '{name}' has an empty body", proc.pos)
    return result


def check_unpromoted_calls(pipeline) -> ValidationResult:
    """Warn about shell lines naming a procedure whose arguments aren't key=value."""
    result = ValidationResult()
    for block in pipeline.blocks:
        for item in block.items:
            if isinstance(item, ShellItem) and pipeline.has_procedure(item.head):
                result.add_warning(
                    f"Command '{item.command}' names procedure '{item.head}' but its "
                    f"arguments are not key=value; it will run as a shell command",
                    item.pos,
                )
    return result


def check_recursive_calls(pipeline, calls: Dict[str, List[str]]) -> ValidationResult:
    """Report procedures that can reach themselves through calls."""
    result = ValidationResult()

    for name, proc in pipeline.procedures.items():
        parents: Dict[str, str] = {}
        to_visit = [(callee, name) for callee in calls.get(name, [])]

        while to_visit:
            current, parent = to_visit.pop()
            if current in parents:
                continue
            parents[current] = parent
            if current == name:
                break
            for callee in calls.get(current, []):
                if callee not in parents:
                    to_visit.append((callee, current))

        if name in parents:
            chain = [name]
            step = parents[name]
            while step != name:
                chain.append(step)
                step = parents[step]
            chain.append(name)
            result.add_error(
                f"Procedure '{name}' is recursive: {' -> '.join(reversed(chain))}",
                proc.pos,
            )

    return result


def check_unused_procedures(pipeline, calls: Dict[str, List[str]]) -> ValidationResult:
    """Warn about procedures unreachable from the default block."""
    result = ValidationResult()

    if not pipeline.has_any_default_command():
        return result

    reachable = set()
    to_visit = called_procedures(pipeline, 0)

    while to_visit:
        name = to_visit.pop()
        if name in reachable:
            continue
        reachable.add(name)
        to_visit.extend(callee for callee in calls.get(name, []) if callee not in reachable)

    for name, proc in pipeline.procedures.items():
        if name not in reachable:
            result.add_warning(f"Procedure '{name}' is never called", proc.pos)

    return result
