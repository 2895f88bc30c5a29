"""
Pipeline converters.

Provides:
- pipeline_to_text(): render a Pipeline back to pipeline-file syntax
- pipeline_to_dict() / pipeline_to_yaml(): plain data form for tooling
- dump(): debug listing of the block table
"""

import re
import sys
from typing import Any, Dict, List, TextIO

import yaml

from .dsl_ast import Block, BlockRef, CommandItem, ProcItem, Procedure, ShellItem, item_type
from .dsl_lines import ATTRIBUTE_MARKER, PARALLEL_BRACKETS, SEQUENTIAL_BRACKETS
from .system import PosixShellEncoder, ShellEncoder

INDENT = '\t'

_BARE_ATTRIBUTE_RE = re.compile(r'[^,"\s]([^,\n]*[^,\s])?')


# =============================================================================
# Text rendering
# =============================================================================

def item_to_text(pipeline, item: CommandItem, indent: str, encoder: ShellEncoder) -> str:
    """Render one item (a nested block for BlockRef) with a trailing newline."""
    if isinstance(item, ShellItem):
        return f"{indent}{item.command}\n"
    elif isinstance(item, ProcItem):
        return f"{indent}{item.proc_name}{item.proc_args.to_string(encoder.quote)}\n"
    elif isinstance(item, BlockRef):
        return block_to_text(pipeline, pipeline.blocks[item.block_index], indent, encoder)
    raise TypeError(f"Not a command item: {item!r}")


def block_to_text(pipeline, block: Block, indent: str, encoder: ShellEncoder) -> str:
    left, right = PARALLEL_BRACKETS if block.parallel else SEQUENTIAL_BRACKETS
    text = f"{indent}{left}\n"
    for item in block.items:
        text += item_to_text(pipeline, item, indent + INDENT, encoder)
    text += f"{indent}{right}\n"
    return text


def attribute_to_text(key: str, value: str) -> str:
    if not _BARE_ATTRIBUTE_RE.fullmatch(value):
        value = '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'
    return f"{ATTRIBUTE_MARKER} {key}: {value}\n"


def procedure_to_text(pipeline, proc: Procedure, encoder: ShellEncoder) -> str:
    text = ''.join(attribute_to_text(key, value) for key, value in proc.attributes)
    text += f"{proc.name}() "
    text += block_to_text(pipeline, pipeline.blocks[proc.block_index], '', encoder)
    return text


def pipeline_to_text(pipeline, encoder: ShellEncoder = None) -> str:
    """Render procedures, then the default block, in pipeline-file syntax.

    A sequential default block is written as bare lines so that loading the
    text again gives back the same block structure.
    """
    if encoder is None:
        encoder = PosixShellEncoder()

    parts = [procedure_to_text(pipeline, proc, encoder) for proc in pipeline.procedures.values()]
    text = '\n'.join(parts)

    default = pipeline.blocks[0]
    if not default.is_empty():
        if parts:
            text += '\n'
        if len(default.items) == 1 or not default.parallel:
            text += ''.join(item_to_text(pipeline, item, '', encoder) for item in default.items)
        else:
            text += block_to_text(pipeline, default, '', encoder)

    return text


# =============================================================================
# Dict conversion
# =============================================================================

def item_to_dict(pipeline, item: CommandItem) -> Dict[str, Any]:
    if isinstance(item, ShellItem):
        return {'shell': item.command}
    elif isinstance(item, ProcItem):
        item_dict = {'proc': item.proc_name}
        if item.proc_args:
            item_dict['args'] = dict(item.proc_args.items())
        return item_dict
    elif isinstance(item, BlockRef):
        return block_to_dict(pipeline, pipeline.blocks[item.block_index])
    raise TypeError(f"Not a command item: {item!r}")


def block_to_dict(pipeline, block: Block) -> Dict[str, Any]:
    return {
        'parallel': block.parallel,
        'items': [item_to_dict(pipeline, item) for item in block.items],
    }


def pipeline_to_dict(pipeline) -> Dict[str, Any]:
    """Convert a Pipeline to nested dicts and lists."""
    result = {}

    if pipeline.procedures:
        result['procedures'] = {}
        for name, proc in pipeline.procedures.items():
            proc_dict = block_to_dict(pipeline, pipeline.blocks[proc.block_index])
            if proc.attributes:
                proc_dict['attributes'] = dict(proc.attributes)
            result['procedures'][name] = proc_dict

    if pipeline.has_any_default_command():
        result['default'] = block_to_dict(pipeline, pipeline.blocks[0])

    if pipeline.variables:
        result['variables'] = dict(pipeline.variables)

    return result


def pipeline_to_yaml(pipeline) -> str:
    return yaml.safe_dump(pipeline_to_dict(pipeline), sort_keys=False, default_flow_style=False)


# =============================================================================
# Debug dump
# =============================================================================

def item_detail(item: CommandItem) -> str:
    detail = f"type='{item_type(item)}', name='{item.name}'"
    if isinstance(item, ShellItem):
        detail += f", command='{item.command}'"
    elif isinstance(item, ProcItem):
        args = ' '.join(f"{key}={value}" for key, value in item.proc_args.items())
        detail += f", proc_name='{item.proc_name}', proc_args={{{args}}}"
    else:
        detail += f", block_index={item.block_index}"
    return detail


def block_detail(block: Block) -> str:
    if block.is_empty():
        return "<empty>"
    if len(block.items) == 1:
        return item_detail(block.items[0])
    lines: List[str] = [f" (parallel = {int(block.parallel)}) {len(block.items)} items:"]
    for i, item in enumerate(block.items):
        lines.append(f"  [{i}]{item_detail(item)}")
    return "\n".join(lines)


def dump(pipeline, stream: TextIO = None):
    """Write the block table of a pipeline for debugging (stderr by default)."""
    if stream is None:
        stream = sys.stderr
    stream.write(f"===== pipeline dump - {len(pipeline.blocks)} block(s):\n")
    for i, block in enumerate(pipeline.blocks):
        stream.write(f"block[{i}]: {block_detail(block)}\n")
    stream.write("===== Pipeline Dump End =====\n")
    stream.flush()
