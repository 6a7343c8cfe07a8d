#!/usr/bin/env python3
"""Mother Brain neck simulation ($A9:91B8) and reference trace handling.

The neck is two bounded oscillators: the lower joints bob between 0x2800 and
0x9000, the upper joints between 0x2000 and the lower angle + 0x800. While the
upper joints are moving down, Samus standing above the head (the only input we
control) snaps both oscillators to moving up.

Trace lines are the five words logged each frame during the bobbing cutscene:
$7E:7816 (body y), $7E:8068 (angle delta), $7E:8040 (lower angle),
$7E:8042 (upper angle) and $7E:805E (brain y), e.g.

    196	1792	36864	38912	64
    196	1792	35072	37120	61
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, NamedTuple, Optional, Sequence, Union
import math
import re


WORD_MASK = 0xFFFF

LOWER_MIN = 0x2800
LOWER_MAX = 0x9000
UPPER_MIN = 0x2000
UPPER_SLACK = 0x800  # upper ceiling above the lower angle
HEAD_STOP_Y = 0x3C
BODY_TO_NECK = 0x60
SEGMENT_LENGTH = 20
BRAIN_Y_OFFSET = 0x15

STOOD_UP_LOWER_ANGLE = 0x8000
TRACE_COLUMNS = 5

COLUMN_SPLIT_RE = re.compile(r"[\t ]+")


class TraceError(ValueError):
    pass


class ValidationError(AssertionError):
    pass


def _to_i16(value: int) -> int:
    value &= WORD_MASK
    return value - 0x10000 if value & 0x8000 else value


def _segment_y(angle: int) -> int:
    # only the high byte of the angle matters; 0x100 units per 1/256 turn
    radians = (angle // 0x100) * math.pi / 128
    return math.floor(SEGMENT_LENGTH * math.cos(radians))


@dataclass(frozen=True)
class MechanismState:
    lower_angle: int
    upper_angle: int
    lower_moving_up: bool = False
    upper_moving_up: bool = False

    def brain_y(self, body_y: int) -> int:
        """Head y position for a given torso y ($A9:91DA), as an unsigned word."""
        base_y = _to_i16(body_y - BODY_TO_NECK)
        seg2_y = _to_i16(base_y + _segment_y(self.lower_angle))
        return (seg2_y + _segment_y(self.upper_angle) - BRAIN_Y_OFFSET) & WORD_MASK

    def step(self, body_y: int, delta: int, samus_jumped: bool) -> "MechanismState":
        """Advance the neck by one frame and return the new state."""
        lower = self.lower_angle
        upper = self.upper_angle
        lower_up = self.lower_moving_up
        upper_up = self.upper_moving_up

        if lower_up:
            if self.brain_y(body_y) < HEAD_STOP_Y:
                lower_up = False
            else:
                lower = (lower + delta) & WORD_MASK
                if lower >= LOWER_MAX:
                    lower_up = False
                    lower = LOWER_MAX
        else:
            lower = (lower - delta) & WORD_MASK
            if lower < LOWER_MIN:
                lower = LOWER_MIN
                lower_up = True

        if upper_up:
            ceiling = (lower + UPPER_SLACK) & WORD_MASK
            upper = (upper + delta) & WORD_MASK
            if upper >= ceiling:
                upper_up = False
                upper = ceiling
        elif samus_jumped:
            upper_up = True
            lower_up = True
        else:
            upper = (upper - delta) & WORD_MASK
            if upper < UPPER_MIN:
                upper_up = True
                upper = UPPER_MIN

        return MechanismState(lower, upper, lower_up, upper_up)


INITIAL_STATE = MechanismState(lower_angle=0x9000, upper_angle=0x9800)


def step(state: MechanismState, body_y: int, delta: int, samus_jumped: bool) -> MechanismState:
    return state.step(body_y, delta, samus_jumped)


def stood_up(state: MechanismState) -> bool:
    return state.lower_angle >= STOOD_UP_LOWER_ANGLE


def lower_angle_at_least(threshold: int) -> Callable[[MechanismState], bool]:
    def predicate(state: MechanismState) -> bool:
        return state.lower_angle >= threshold

    return predicate


# ---------- Trace ----------


@dataclass(frozen=True)
class FrameRecord:
    body_y: int
    angle_delta: int
    expected_lower_angle: int
    expected_upper_angle: int
    expected_brain_y: int


def parse_trace(text: str) -> List[FrameRecord]:
    frames: List[FrameRecord] = []
    for line_no, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        cols = COLUMN_SPLIT_RE.split(line)
        if len(cols) != TRACE_COLUMNS:
            raise TraceError(
                f"line {line_no}: expected {TRACE_COLUMNS} columns, got {len(cols)}"
            )
        values = []
        for col in cols:
            try:
                value = int(col)
            except ValueError:
                raise TraceError(f"line {line_no}: could not parse column {col!r}") from None
            if not 0 <= value <= WORD_MASK:
                raise TraceError(f"line {line_no}: column {col!r} is not a 16-bit word")
            values.append(value)
        frames.append(FrameRecord(*values))
    return frames


def load_trace(path: Union[str, Path]) -> List[FrameRecord]:
    return parse_trace(Path(path).read_text())


def frame_delta(trace: Sequence[FrameRecord], index: int) -> int:
    """Angle delta used to step frame `index`.

    The game applies the delta logged on the following frame; the final frame
    reuses its own.
    """
    if index + 1 < len(trace):
        return trace[index + 1].angle_delta
    return trace[-1].angle_delta


# ---------- Replay ----------


def _check(frame: int, what: str, expected: int, actual: int) -> None:
    if expected != actual:
        raise ValidationError(
            f"frame {frame}, {what}: expected {expected:#06x}, got {actual:#06x}"
        )


def simulate(
    trace: Sequence[FrameRecord],
    jump_frames: Callable[[int], bool],
    initial: MechanismState = INITIAL_STATE,
) -> int:
    """Replay a whole cutscene and return the final lower angle.

    `jump_frames(i)` says whether Samus is above the head on frame i. Until the
    first such frame the replay must agree with the logged words, otherwise
    ValidationError is raised.
    """
    mb = initial
    jumped = False
    for i, frame in enumerate(trace):
        if not jumped:
            _check(i, "lower", frame.expected_lower_angle, mb.lower_angle)
            _check(i, "upper", frame.expected_upper_angle, mb.upper_angle)
            _check(
                i,
                "brain_y",
                (frame.expected_brain_y - BRAIN_Y_OFFSET) & WORD_MASK,
                mb.brain_y(frame.body_y),
            )
        should_jump = jump_frames(i)
        jumped |= should_jump
        mb = mb.step(frame.body_y, frame_delta(trace, i), should_jump)
    return mb.lower_angle


def validate_trace(trace: Sequence[FrameRecord]) -> int:
    return simulate(trace, lambda _: False)


class SweepResult(NamedTuple):
    start: int
    length: int
    lower_angle: int


def sweep_jump_windows(
    trace: Sequence[FrameRecord],
    max_length: int,
    starts: Optional[Iterable[int]] = None,
) -> List[SweepResult]:
    """Try every single contiguous jump window and report where the neck ends up."""
    if max_length <= 0:
        raise ValueError("max_length must be positive")
    if starts is None:
        starts = range(len(trace))
    results: List[SweepResult] = []
    for start in starts:
        for length in range(1, max_length + 1):
            end = start + length
            final = simulate(trace, lambda i: start <= i < end)
            results.append(SweepResult(start, length, final))
    return results

