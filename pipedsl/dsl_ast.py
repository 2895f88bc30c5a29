"""
Document model for pipeline files.

Blocks live in a flat table owned by the pipeline and refer to each other by
index (BlockRef), so nested groups never own one another.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple, Union


# =============================================================================
# Procedure arguments
# =============================================================================

class ProcArgs:
    """Ordered keyword arguments of a procedure call.

    Each name may be added once. Arguments attached to a ProcItem are frozen.
    """

    def __init__(self, items: Optional[List[Tuple[str, str]]] = None):
        self._args: Dict[str, str] = {}
        self._frozen = False
        for key, value in items or []:
            self.add(key, value)

    def add(self, key: str, value: str):
        if self._frozen:
            raise ValueError(f"Cannot add '{key}': arguments are frozen")
        if key in self._args:
            raise ValueError(f"Duplicated argument '{key}'")
        self._args[key] = value

    def get(self, key: str, default: str = '') -> str:
        return self._args.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._args

    def freeze(self):
        self._frozen = True

    def clear(self):
        if self._frozen:
            raise ValueError("Cannot clear frozen arguments")
        self._args.clear()

    def keys(self) -> List[str]:
        return list(self._args)

    def items(self) -> List[Tuple[str, str]]:
        return list(self._args.items())

    def to_string(self, quote) -> str:
        """Render as ' k1=v1 k2=v2', quoting values with the given function."""
        return ''.join(f" {key}={quote(value)}" for key, value in self._args.items())

    def __contains__(self, key: str) -> bool:
        return key in self._args

    def __iter__(self) -> Iterator[str]:
        return iter(self._args)

    def __len__(self) -> int:
        return len(self._args)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ProcArgs):
            return NotImplemented
        return self.items() == other.items()

    def __repr__(self) -> str:
        return f"ProcArgs({self.items()!r})"


# =============================================================================
# Command items
# =============================================================================

def display_name(command: str) -> str:
    """Name of a shell command for display: its first word minus special characters."""
    chars = []
    for char in command:
        if char in ' \t\r\n':
            break
        if char in '-_+' or (char.isascii() and char.isalnum()):
            chars.append(char)
    return ''.join(chars) or 'shell'


@dataclass
class ShellItem:
    """Opaque shell command, with its head and argument words kept for rewriting."""
    command: str
    head: str = ''
    args: List[str] = field(default_factory=list)
    pos: str = ''

    @property
    def name(self) -> str:
        return display_name(self.command)


@dataclass
class ProcItem:
    """Call of a named procedure with keyword arguments."""
    proc_name: str
    proc_args: ProcArgs = field(default_factory=ProcArgs)
    pos: str = ''

    def __post_init__(self):
        self.proc_args.freeze()

    @property
    def name(self) -> str:
        return self.proc_name


@dataclass
class BlockRef:
    """Reference to a block in the pipeline's block table."""
    block_index: int

    @property
    def name(self) -> str:
        return 'block'


# Union type for all command items
CommandItem = Union[ShellItem, ProcItem, BlockRef]


def item_type(item: CommandItem) -> str:
    """Short type tag of an item: 'shell', 'proc' or 'block'."""
    if isinstance(item, ShellItem):
        return 'shell'
    elif isinstance(item, ProcItem):
        return 'proc'
    elif isinstance(item, BlockRef):
        return 'block'
    raise TypeError(f"Not a command item: {item!r}")


# =============================================================================
# Blocks and procedures
# =============================================================================

@dataclass
class Block:
    """Ordered group of items, run one after another or in parallel."""
    items: List[CommandItem] = field(default_factory=list)
    parallel: bool = False

    def is_empty(self) -> bool:
        return not self.items

    def clear(self):
        self.items.clear()
        self.parallel = False

    def append_command(self, command: str, head: str = '', args: Optional[List[str]] = None,
                       pos: str = ''):
        self.items.append(ShellItem(command, head, list(args or []), pos))

    def append_proc(self, proc_name: str, proc_args: ProcArgs, pos: str = ''):
        self.items.append(ProcItem(proc_name, proc_args, pos))

    def append_block(self, block_index: int):
        self.items.append(BlockRef(block_index))


@dataclass
class Procedure:
    name: str
    block_index: int
    pos: str = ''
    attributes: List[Tuple[str, str]] = field(default_factory=list)
