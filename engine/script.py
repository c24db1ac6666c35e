"""Script documents: block format, parameter parsing and the editing arena.

The block editor saves scripts as nested dicts::

    {"type": "REPEAT", "params": {"times": 3}, "children": [
        {"type": "MOVE", "params": {"target": "2,0"}},
    ]}

which ``commands_from_blocks`` turns into immutable command tuples.
"""
import itertools
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .model import AttackCommand, Command, Coord, MoveCommand, RepeatCommand, Script, WaitCommand


class ScriptFormatError(ValueError):
    """Script document is structurally unusable (unknown block, bad nesting)."""


@dataclass(frozen=True)
class BlockTemplate:
    type: str
    label: str
    param: str
    default: Any
    has_children: bool = False


BLOCK_TEMPLATES: Dict[str, BlockTemplate] = {
    "MOVE": BlockTemplate("MOVE", "Move To", "target", "0,0"),
    "ATTACK": BlockTemplate("ATTACK", "Auto Attack", "target", "closest"),
    "WAIT": BlockTemplate("WAIT", "Wait", "duration", 1),
    "REPEAT": BlockTemplate("REPEAT", "Repeat", "times", 3, has_children=True),
}


# --- parameter parsing ------------------------------------------------------

def _finite(value: Any) -> Optional[float]:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def parse_coord(value: Any) -> Optional[Coord]:
    """Parse "x,z" (or an (x, z) pair) into a ground coordinate."""
    if isinstance(value, str):
        parts = value.split(",")
    elif isinstance(value, (list, tuple)):
        parts = list(value)
    else:
        return None
    if len(parts) != 2:
        return None
    x, z = _finite(parts[0]), _finite(parts[1])
    if x is None or z is None:
        return None
    return (x, z)


def parse_duration(value: Any) -> Optional[float]:
    d = _finite(value)
    if d is None or d < 0:
        return None
    return d


def parse_times(value: Any) -> Optional[int]:
    """Repeat count; counts below one mean zero iterations."""
    if isinstance(value, bool):
        return None
    f = _finite(value)
    if f is None or f != int(f):
        return None
    return max(0, int(f))


# --- block documents --------------------------------------------------------

def command_from_block(block: Dict[str, Any]) -> Command:
    if not isinstance(block, dict):
        raise ScriptFormatError(f"block must be an object, got {type(block).__name__}")
    btype = block.get("type")
    template = BLOCK_TEMPLATES.get(btype)
    if template is None:
        raise ScriptFormatError(f"unknown block type {btype!r}")
    params = block.get("params") or {}
    value = params.get(template.param, template.default)
    if btype == "MOVE":
        return MoveCommand(target=value)
    if btype == "ATTACK":
        return AttackCommand(policy=value)
    if btype == "WAIT":
        return WaitCommand(duration=value)
    children = block.get("children")
    if children is None:
        children = []
    if not isinstance(children, list):
        raise ScriptFormatError("REPEAT children must be a list")
    return RepeatCommand(times=value, children=commands_from_blocks(children))


def commands_from_blocks(blocks: Sequence[Dict[str, Any]]) -> Script:
    return tuple(command_from_block(b) for b in blocks)


def block_from_command(command: Command) -> Dict[str, Any]:
    if isinstance(command, MoveCommand):
        return {"type": "MOVE", "params": {"target": command.target}}
    if isinstance(command, AttackCommand):
        return {"type": "ATTACK", "params": {"target": command.policy}}
    if isinstance(command, WaitCommand):
        return {"type": "WAIT", "params": {"duration": command.duration}}
    if isinstance(command, RepeatCommand):
        return {"type": "REPEAT", "params": {"times": command.times},
                "children": blocks_from_commands(command.children)}
    raise TypeError(f"not a command: {command!r}")


def blocks_from_commands(script: Sequence[Command]) -> List[Dict[str, Any]]:
    return [block_from_command(c) for c in script]


# --- editing arena ----------------------------------------------------------

@dataclass
class Block:
    id: int
    type: str
    params: Dict[str, Any]
    parent: Optional[int] = None
    children: List[int] = field(default_factory=list)


class ScriptDraft:
    """Editable script held as a flat arena of blocks.

    Every block knows its parent id and its ordered child ids, so editing a
    block deep inside nested REPEATs is a dict lookup.
    """

    def __init__(self):
        self.blocks: Dict[int, Block] = {}
        self.roots: List[int] = []
        self._ids = itertools.count(1)

    def _siblings(self, parent: Optional[int]) -> List[int]:
        return self.roots if parent is None else self.blocks[parent].children

    def add_block(self, block_type: str, parent: Optional[int] = None, params: Optional[Dict[str, Any]] = None) -> int:
        template = BLOCK_TEMPLATES.get(block_type)
        if template is None:
            raise ScriptFormatError(f"unknown block type {block_type!r}")
        if parent is not None:
            if parent not in self.blocks:
                raise KeyError(parent)
            if not BLOCK_TEMPLATES[self.blocks[parent].type].has_children:
                raise ScriptFormatError(f"{self.blocks[parent].type} blocks cannot hold children")
        bid = next(self._ids)
        self.blocks[bid] = Block(id=bid, type=block_type,
                                 params=dict(params) if params else {template.param: template.default},
                                 parent=parent)
        self._siblings(parent).append(bid)
        return bid

    def update_param(self, block_id: int, name: str, value: Any) -> None:
        self.blocks[block_id].params[name] = value

    def remove_block(self, block_id: int) -> None:
        """Remove a block and everything nested under it."""
        block = self.blocks[block_id]
        self._siblings(block.parent).remove(block_id)
        stack = [block_id]
        while stack:
            bid = stack.pop()
            stack.extend(self.blocks[bid].children)
            del self.blocks[bid]

    def move_block(self, drag_id: int, before_id: int) -> bool:
        """Move drag_id to the slot of before_id. Both must share a parent."""
        if drag_id == before_id:
            return False
        drag, hover = self.blocks[drag_id], self.blocks[before_id]
        if drag.parent != hover.parent:
            return False
        siblings = self._siblings(drag.parent)
        hover_index = siblings.index(before_id)
        siblings.remove(drag_id)
        siblings.insert(hover_index, drag_id)
        return True

    def to_blocks(self) -> List[Dict[str, Any]]:
        def build(bid: int) -> Dict[str, Any]:
            b = self.blocks[bid]
            doc: Dict[str, Any] = {"type": b.type, "params": dict(b.params)}
            if BLOCK_TEMPLATES[b.type].has_children:
                doc["children"] = [build(c) for c in b.children]
            return doc
        return [build(r) for r in self.roots]

    def compile(self) -> Script:
        return commands_from_blocks(self.to_blocks())

    @classmethod
    def from_commands(cls, script: Sequence[Command]) -> "ScriptDraft":
        draft = cls()

        def load(blocks: List[Dict[str, Any]], parent: Optional[int]) -> None:
            for doc in blocks:
                bid = draft.add_block(doc["type"], parent=parent, params=doc["params"])
                load(doc.get("children", []), bid)

        load(blocks_from_commands(script), None)
        return draft
