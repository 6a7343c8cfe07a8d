from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from neck import (
    INITIAL_STATE,
    FrameRecord,
    MechanismState,
    TraceError,
    ValidationError,
    frame_delta,
    load_trace,
    lower_angle_at_least,
    parse_trace,
    simulate,
    step,
    stood_up,
    sweep_jump_windows,
    validate_trace,
)

from trace_fixtures import REFERENCE_TEXT


def test_second_reference_row() -> None:
    result = step(INITIAL_STATE, 196, 1792, False)

    assert result == MechanismState(0x8900, 0x9100, False, False)


def test_step_is_pure() -> None:
    state = MechanismState(0x6000, 0x5000, True, False)

    first = state.step(196, 0x300, True)
    second = state.step(196, 0x300, True)

    assert first == second
    assert state == MechanismState(0x6000, 0x5000, True, False)


def test_jump_interrupt_keeps_upper_angle() -> None:
    # the lower joints already moved this frame; only the upper ones freeze
    result = step(INITIAL_STATE, 196, 1792, True)

    assert result == MechanismState(0x8900, 0x9800, True, True)


@pytest.mark.parametrize(
    "state, body_y, delta, expected",
    [
        # head too low: lower joints stop rising without moving
        (MechanismState(0x5000, 0x5800, True, False), 170, 0x100, MechanismState(0x5000, 0x5700, False, False)),
        (MechanismState(0x5000, 0x5800, True, False), 200, 0x100, MechanismState(0x5100, 0x5700, True, False)),
        # lower ceiling
        (MechanismState(0x8F00, 0x9000, True, False), 260, 0x700, MechanismState(0x9000, 0x8900, False, False)),
        # lower floor
        (MechanismState(0x2900, 0x3000, False, False), 196, 0x200, MechanismState(0x2800, 0x2E00, True, False)),
        # upper ceiling follows the new lower angle
        (MechanismState(0x4000, 0x4700, False, True), 260, 0x200, MechanismState(0x3E00, 0x4600, False, False)),
        # upper floor
        (MechanismState(0x5000, 0x2100, True, False), 260, 0x200, MechanismState(0x5200, 0x2000, True, True)),
    ],
)
def test_oscillator_bounds(state: MechanismState, body_y: int, delta: int, expected: MechanismState) -> None:
    assert state.step(body_y, delta, False) == expected


def test_brain_y_matches_reference(reference_trace) -> None:
    states = [
        MechanismState(frame.expected_lower_angle, frame.expected_upper_angle)
        for frame in reference_trace
    ]
    for state, frame in zip(states, reference_trace):
        assert state.brain_y(frame.body_y) == frame.expected_brain_y - 0x15


def test_brain_y_wraps_to_unsigned_word() -> None:
    assert INITIAL_STATE.brain_y(100) > 0x8000


def test_goal_predicates() -> None:
    assert stood_up(MechanismState(0x8000, 0x8800))
    assert not stood_up(MechanismState(0x7F00, 0x8700))
    assert lower_angle_at_least(0x3000)(MechanismState(0x3000, 0x2000))
    assert not lower_angle_at_least(0x3001)(MechanismState(0x3000, 0x2000))


def test_parse_trace_accepts_spaces_and_blank_lines() -> None:
    trace = parse_trace("196 1792 36864 38912 64\n\n196\t1792   35072\t37120\t61\n")

    assert trace == [
        FrameRecord(196, 1792, 36864, 38912, 64),
        FrameRecord(196, 1792, 35072, 37120, 61),
    ]


@pytest.mark.parametrize(
    "text, message",
    [
        ("196\t1792\t36864\t38912\n", "line 1: expected 5 columns, got 4"),
        ("196\t1792\t36864\t38912\t64\n196\t1792\t35072\t37120\t61\t0\n", "line 2: expected 5 columns"),
        ("196\t17x2\t36864\t38912\t64\n", "could not parse column '17x2'"),
        ("196\t70000\t36864\t38912\t64\n", "not a 16-bit word"),
        ("-1\t1792\t36864\t38912\t64\n", "not a 16-bit word"),
    ],
)
def test_parse_trace_rejects_malformed_records(text: str, message: str) -> None:
    with pytest.raises(TraceError, match=message):
        parse_trace(text)


def test_load_trace(reference_file: Path, reference_trace) -> None:
    assert load_trace(reference_file) == reference_trace


def test_delta_comes_from_next_frame() -> None:
    trace = [FrameRecord(196, delta, 0, 0, 0) for delta in (1, 2, 3)]

    assert [frame_delta(trace, i) for i in range(3)] == [2, 3, 3]


def test_validate_reference_trace(reference_trace) -> None:
    # last step reuses its own delta: 0x7F00 - 0x500
    assert validate_trace(reference_trace) == 0x7A00


@pytest.mark.parametrize(
    "field, message",
    [
        ("expected_lower_angle", "frame 2, lower"),
        ("expected_upper_angle", "frame 2, upper"),
        ("expected_brain_y", "frame 2, brain_y"),
    ],
)
def test_validate_rejects_divergence(reference_trace, field: str, message: str) -> None:
    frame = reference_trace[2]
    reference_trace[2] = replace(frame, **{field: getattr(frame, field) + 1})

    with pytest.raises(ValidationError, match=message):
        validate_trace(reference_trace)


def test_checks_stop_after_first_jump(reference_trace) -> None:
    reference_trace[2] = replace(reference_trace[2], expected_lower_angle=0)

    final = simulate(reference_trace, lambda i: i == 1)

    assert final >= 0x2800


def test_checks_include_the_jump_frame(reference_trace) -> None:
    reference_trace[1] = replace(reference_trace[1], expected_upper_angle=0)

    with pytest.raises(ValidationError, match="frame 1, upper"):
        simulate(reference_trace, lambda i: i == 1)


def test_sweep_matches_simulate(reference_trace) -> None:
    results = sweep_jump_windows(reference_trace, 2)

    assert len(results) == len(reference_trace) * 2
    for start, length, lower in results:
        assert lower == simulate(reference_trace, lambda i: start <= i < start + length)


def test_sweep_finds_stand_up(reference_trace) -> None:
    results = sweep_jump_windows(reference_trace, 1, starts=[0])

    assert [(r.start, r.length) for r in results] == [(0, 1)]
    # jump on frame 0, head stops the lower joints at 0x8900, then two falls of 0x500
    assert results[0].lower_angle == 0x7F00


def test_sweep_rejects_empty_window(reference_trace) -> None:
    with pytest.raises(ValueError):
        sweep_jump_windows(reference_trace, 0)


def test_reference_text_is_tab_separated() -> None:
    assert all(line.count("\t") == 4 for line in REFERENCE_TEXT.splitlines())
