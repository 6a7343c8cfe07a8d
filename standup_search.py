#!/usr/bin/env python3
"""Stand-up manip search: every way the neck can evolve, ranked by how hard it is to input.

Forward pass: starting from the canonical neck state, step every distinct state
of a frame with and without Samus above the head, merging equal results into the
next layer and remembering which parent (and which input) produced them.

Backward pass: starting from the final states that satisfy the goal, walk the
layers back to frame 0. A cohort is a set of states in one layer that are all
still acceptable; each step splits it into the parents that get there whatever
Samus does, the ones that need her above the head, and the ones that need her
away. Cohorts are ranked by `Difficulty` and pruned to a beam.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, NamedTuple, Optional, Sequence, Set, Tuple
import argparse
import logging
import sys

from neck import (
    INITIAL_STATE,
    STOOD_UP_LOWER_ANGLE,
    FrameRecord,
    MechanismState,
    TraceError,
    ValidationError,
    frame_delta,
    load_trace,
    lower_angle_at_least,
    stood_up,
    sweep_jump_windows,
    validate_trace,
)
from standup_render import write_png


logger = logging.getLogger(__name__)

Input = Optional[bool]  # None: either works, True: above the head, False: away
Goal = Callable[[MechanismState], bool]

SEARCH_CAP_DEFAULT = 100_000
FINAL_CAP_DEFAULT = 1_000

SYMBOLS = {None: ".", True: "J", False: "-"}


class InputLabel(Enum):
    FORCED = None
    REQUIRES_TRUE = True
    REQUIRES_FALSE = False

    @property
    def input(self) -> Input:
        return self.value


class Edge(NamedTuple):
    parent: int
    label: InputLabel


# ---------- Forward pass ----------


@dataclass(frozen=True)
class Layer:
    states: Tuple[MechanismState, ...]
    parents: Tuple[Tuple[Edge, ...], ...]

    def __len__(self) -> int:
        return len(self.states)


class StateTable:
    """Distinct states of one frame, in insertion order, with their inbound edges."""

    def __init__(self) -> None:
        self._index: Dict[MechanismState, int] = {}
        self._states: List[MechanismState] = []
        self._parents: List[List[Edge]] = []

    def __len__(self) -> int:
        return len(self._states)

    def __contains__(self, state: MechanismState) -> bool:
        return state in self._index

    def index(self, state: MechanismState) -> int:
        return self._index[state]

    def add(self, state: MechanismState, edge: Optional[Edge] = None) -> int:
        idx = self._index.get(state)
        if idx is None:
            idx = len(self._states)
            self._index[state] = idx
            self._states.append(state)
            self._parents.append([])
        if edge is not None:
            self._parents[idx].append(edge)
        return idx

    def freeze(self) -> Layer:
        return Layer(
            states=tuple(self._states),
            parents=tuple(tuple(edges) for edges in self._parents),
        )


@dataclass
class Graph:
    layers: List[Layer] = field(default_factory=list)

    @property
    def frames(self) -> int:
        return len(self.layers) - 1

    def state_count(self) -> int:
        return sum(len(layer) for layer in self.layers)


def build_graph(
    trace: Sequence[FrameRecord],
    initial: MechanismState = INITIAL_STATE,
) -> Graph:
    first = StateTable()
    first.add(initial)
    graph = Graph([first.freeze()])

    for i, frame in enumerate(trace):
        current = graph.layers[i]
        logger.info("frame %d, %d states", i, len(current))
        delta = frame_delta(trace, i)
        table = StateTable()
        for j, prev in enumerate(current.states):
            jumping = prev.step(frame.body_y, delta, True)
            not_jumping = prev.step(frame.body_y, delta, False)
            if jumping == not_jumping:
                table.add(jumping, Edge(j, InputLabel.FORCED))
            else:
                table.add(jumping, Edge(j, InputLabel.REQUIRES_TRUE))
                table.add(not_jumping, Edge(j, InputLabel.REQUIRES_FALSE))
        graph.layers.append(table.freeze())
    return graph


# ---------- Difficulty ----------


@dataclass(frozen=True)
class Difficulty:
    """Estimated effort to perform an input sequence by hand; lower is easier.

    Holding the input costs `hold_cost` per frame. Releasing it costs
    `switch_penalty / (gap + 1) ** switch_exponent`, where gap counts the
    don't-care frames since the last frame with a required input, so a release
    right after another required input is expensive. Pressing is free.
    """

    hold_cost: int = 1
    switch_penalty: int = 10_000
    switch_exponent: int = 2
    initial_gap: int = 1_000_000

    def __post_init__(self) -> None:
        if self.hold_cost < 0 or self.switch_penalty < 0:
            raise ValueError("difficulty costs must be non-negative")
        if self.switch_exponent < 0:
            raise ValueError("switch_exponent must be non-negative")
        if self.initial_gap < 0:
            raise ValueError("initial_gap must be non-negative")

    def score(self, inputs: Iterable[Input]) -> int:
        result = 0
        held = False
        gap = self.initial_gap
        for value in inputs:
            if value is None:
                gap += 1
                continue
            if value == held:
                if value:
                    result += self.hold_cost
            elif held:
                result += self.switch_penalty // (gap + 1) ** self.switch_exponent
            held = value
            gap = 0
        return result


DEFAULT_DIFFICULTY = Difficulty()


def difficulty(inputs: Iterable[Input], weights: Difficulty = DEFAULT_DIFFICULTY) -> int:
    return weights.score(inputs)


@dataclass(frozen=True)
class SearchConfig:
    search_cap: int = SEARCH_CAP_DEFAULT
    final_cap: int = FINAL_CAP_DEFAULT
    difficulty: Difficulty = DEFAULT_DIFFICULTY

    def __post_init__(self) -> None:
        if self.search_cap <= 0 or self.final_cap <= 0:
            raise ValueError("beam caps must be positive")


# ---------- Backward pass ----------


def partition_parents(edges: Iterable[Edge]) -> Tuple[Set[int], Set[int], Set[int]]:
    """Split the parents of a cohort by the input they need.

    Returns (either, jump, no_jump). A parent with a forced edge, or with both a
    jumping and a non-jumping edge into the cohort, works whatever Samus does.
    """
    x: Set[int] = set()
    y: Set[int] = set()
    n: Set[int] = set()
    for parent, label in edges:
        if parent in x:
            continue
        if label is InputLabel.FORCED:
            y.discard(parent)
            n.discard(parent)
            x.add(parent)
        elif label is InputLabel.REQUIRES_TRUE:
            if parent in n:
                n.remove(parent)
                x.add(parent)
            else:
                y.add(parent)
        else:
            if parent in y:
                y.remove(parent)
                x.add(parent)
            else:
                n.add(parent)
    return x, y, n


@dataclass(frozen=True)
class Cohort:
    states: Tuple[int, ...]
    # newest frame first; reverse for chronological order
    reversed_inputs: Tuple[Input, ...] = ()

    @property
    def inputs(self) -> Tuple[Input, ...]:
        return self.reversed_inputs[::-1]

    def difficulty(self, weights: Difficulty = DEFAULT_DIFFICULTY) -> int:
        # ranked on the newest-first sequence, the order the beam is built in
        return weights.score(self.reversed_inputs)

    def branch(self, layer: Layer) -> Iterator["Cohort"]:
        """Cohorts one frame earlier, given this cohort's own layer."""
        edges = (edge for s in self.states for edge in layer.parents[s])
        x, y, n = partition_parents(edges)
        for parents, value in ((x, None), (y, True), (n, False)):
            if parents:
                yield Cohort(tuple(sorted(parents)), self.reversed_inputs + (value,))


class RankedSequence(NamedTuple):
    inputs: Tuple[Input, ...]
    difficulty: int  # Cohort.difficulty, scored newest frame first


def prune(cohorts: List[Cohort], cap: int, weights: Difficulty = DEFAULT_DIFFICULTY) -> List[Cohort]:
    if len(cohorts) <= cap:
        return cohorts
    logger.debug("pruning %d paths to %d", len(cohorts), cap)
    ranked = sorted(cohorts, key=lambda c: c.difficulty(weights))
    return ranked[:cap]


def extract(
    graph: Graph,
    goal: Goal = stood_up,
    config: SearchConfig = SearchConfig(),
) -> List[RankedSequence]:
    last = graph.layers[-1]
    start = tuple(i for i, state in enumerate(last.states) if goal(state))
    if not start:
        logger.info("no final state satisfies the goal")
        return []

    cohorts = [Cohort(start)]
    for i in range(len(graph.layers) - 1, 0, -1):
        logger.info("frame %d, %d paths", i, len(cohorts))
        layer = graph.layers[i]
        branched: List[Cohort] = []
        for cohort in cohorts:
            branched.extend(cohort.branch(layer))
        cohorts = prune(branched, config.search_cap, config.difficulty)

    cohorts = prune(cohorts, config.final_cap, config.difficulty)
    ranked = [
        RankedSequence(cohort.inputs, cohort.difficulty(config.difficulty))
        for cohort in cohorts
    ]
    ranked.sort(key=lambda seq: seq.difficulty)
    return ranked


def search(
    trace: Sequence[FrameRecord],
    goal: Goal = stood_up,
    config: SearchConfig = SearchConfig(),
) -> List[RankedSequence]:
    graph = build_graph(trace)
    logger.info("built %d layers, %d states", len(graph.layers), graph.state_count())
    return extract(graph, goal, config)


def format_sequence(inputs: Iterable[Input]) -> str:
    return "".join(SYMBOLS[value] for value in inputs)


# ---------- CLI ----------


def _word(text: str) -> int:
    return int(text, 0)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find and rank Mother Brain stand-up manip inputs")
    parser.add_argument("trace", type=Path, help="tab-separated neck trace from vanilla SM")
    parser.add_argument("--png", type=Path, default=None, help="write ranked sequences as a PNG")
    parser.add_argument("--text", action="store_true", help="print every ranked sequence")
    parser.add_argument("--limit", type=int, default=20, help="sequences to print without --text")
    parser.add_argument(
        "--search-cap",
        type=int,
        default=SEARCH_CAP_DEFAULT,
        help="paths kept after each backward frame",
    )
    parser.add_argument(
        "--final-cap",
        type=int,
        default=FINAL_CAP_DEFAULT,
        help="paths kept in the final ranking",
    )
    parser.add_argument("--hold-cost", type=_word, default=DEFAULT_DIFFICULTY.hold_cost)
    parser.add_argument("--switch-penalty", type=_word, default=DEFAULT_DIFFICULTY.switch_penalty)
    parser.add_argument("--switch-exponent", type=_word, default=DEFAULT_DIFFICULTY.switch_exponent)
    parser.add_argument(
        "--goal-lower-angle",
        type=_word,
        default=STOOD_UP_LOWER_ANGLE,
        help="minimum final lower angle (default 0x8000)",
    )
    parser.add_argument("--no-validate", action="store_true", help="skip the replay check")
    parser.add_argument(
        "--sweep",
        type=int,
        default=None,
        metavar="MAX_LEN",
        help="try single jump windows up to MAX_LEN frames instead of searching",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument("-v", "--verbose", action="store_true")
    verbosity.add_argument("-q", "--quiet", action="store_true")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, stream=sys.stderr, format="%(message)s")

    try:
        trace = load_trace(args.trace)
    except OSError as exc:
        raise SystemExit(f"could not read trace: {exc}")
    except TraceError as exc:
        raise SystemExit(f"malformed trace: {exc}")

    if not args.no_validate:
        try:
            validate_trace(trace)
        except ValidationError as exc:
            raise SystemExit(f"trace does not match the simulation: {exc}")

    if args.sweep is not None:
        if args.sweep <= 0:
            raise SystemExit("--sweep must be positive")
        found = 0
        for result in sweep_jump_windows(trace, args.sweep):
            if result.lower_angle >= args.goal_lower_angle:
                found += 1
                print(f"start={result.start} length={result.length} lower={result.lower_angle:#06x}")
        if not found:
            print("no jump window stands up")
        return

    try:
        weights = Difficulty(
            hold_cost=args.hold_cost,
            switch_penalty=args.switch_penalty,
            switch_exponent=args.switch_exponent,
        )
        config = SearchConfig(search_cap=args.search_cap, final_cap=args.final_cap, difficulty=weights)
    except ValueError as exc:
        raise SystemExit(str(exc))

    ranked = search(trace, lower_angle_at_least(args.goal_lower_angle), config)
    if not ranked:
        print("no sequences found")
        return

    print(f"{len(ranked)} sequences over {len(trace)} frames")
    shown = ranked if args.text else ranked[: args.limit]
    for seq in shown:
        print(f"{seq.difficulty:6d} {format_sequence(seq.inputs)}")

    if args.png is not None:
        if not trace:
            print("empty trace, no image written")
            return
        write_png([seq.inputs for seq in ranked], len(trace), args.png)
        print(f"wrote {args.png}")


if __name__ == "__main__":
    main()
