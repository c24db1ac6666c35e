"""Dry run of a script for the editor's preview pane. Never touches the world."""
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .model import AttackCommand, Command, MoveCommand, RepeatCommand, Unit, WaitCommand
from .rules import TARGET_POLICIES
from .script import parse_coord, parse_duration, parse_times

PREVIEW_MAX_REPEAT = 5


@dataclass
class PreviewStep:
    type: str  # start | move | attack | wait
    x: float
    z: float
    valid: bool = True
    reason: Optional[str] = None  # too_far | no_ap | bad_target | bad_duration
    dist: Optional[float] = None


def preview_script(unit: Unit, script: Sequence[Command], move_allowance: float) -> List[PreviewStep]:
    """Trace where the unit would go.

    Applies the interpreter's move allowance and AP budget (starting from the
    unit's full AP, as it would be at the start of a player phase), so a step
    shown as valid is one the interpreter would commit. Each REPEAT is
    unrolled at most PREVIEW_MAX_REPEAT times.
    """
    x, z = unit.pos[0], unit.pos[2]
    ap = unit.max_ap
    steps = [PreviewStep("start", x, z)]

    def simulate(commands: Sequence[Command]) -> None:
        nonlocal x, z, ap
        for cmd in commands:
            if isinstance(cmd, MoveCommand):
                target = parse_coord(cmd.target)
                if target is None:
                    continue
                dist = ((target[0] - x) ** 2 + (target[1] - z) ** 2) ** 0.5
                if ap <= 0:
                    steps.append(PreviewStep("move", target[0], target[1], False, "no_ap", dist))
                elif dist > move_allowance:
                    steps.append(PreviewStep("move", target[0], target[1], False, "too_far", dist))
                else:
                    x, z = target
                    ap -= 1
                    steps.append(PreviewStep("move", x, z, True, None, dist))
            elif isinstance(cmd, AttackCommand):
                if cmd.policy not in TARGET_POLICIES:
                    steps.append(PreviewStep("attack", x, z, False, "bad_target"))
                elif ap <= 0:
                    steps.append(PreviewStep("attack", x, z, False, "no_ap"))
                else:
                    # A hit costs one AP; whether a target is in range is only known at run time.
                    ap -= 1
                    steps.append(PreviewStep("attack", x, z))
            elif isinstance(cmd, WaitCommand):
                ok = parse_duration(cmd.duration) is not None
                steps.append(PreviewStep("wait", x, z, ok, None if ok else "bad_duration"))
            elif isinstance(cmd, RepeatCommand):
                times = parse_times(cmd.times) or 0
                for _ in range(min(times, PREVIEW_MAX_REPEAT)):
                    simulate(cmd.children)
            else:
                raise TypeError(f"unknown command {cmd!r}")

    simulate(script)
    return steps
