"""counter restoration: infer executed units from partial counter data"""

from collections import deque
from typing import Dict, List, Sequence, Tuple

from .coverage import MAX_COUNTER_VALUE, CoverableUnit, ImplicationGraph


def restore_counters(
    units: Sequence[CoverableUnit],
    counters: Sequence[int],
    graph: ImplicationGraph,
) -> List[int]:
    """
    complete a partial counter array for one function.

    every unit with a nonzero counter seeds a breadth-first walk over the
    implication graph; each unit reached is marked 1. the result has one
    entry per unit and holds only 0 or 1, so observed magnitudes are dropped
    """
    if any(value < 0 for value in counters):
        raise ValueError("counter values must be non-negative")

    # duplicate units resolve to their last position
    counter_idx: Dict[CoverableUnit, int] = {unit: i for i, unit in enumerate(units)}

    queue = deque(i for i, value in enumerate(counters[: len(units)]) if value != 0)
    restored = [0] * len(units)

    while queue:
        idx = queue.popleft()
        if restored[idx] == 1:
            continue
        restored[idx] = 1
        for implied in graph.implied_by(units[idx]):
            implied_idx = counter_idx.get(implied)
            # edges may lead into units another function owns
            if implied_idx is not None:
                queue.append(implied_idx)

    return restored


def merge_counters(dst: Sequence[int], src: Sequence[int]) -> Tuple[List[int], bool]:
    """add two counter arrays, saturating at the counter width; returns (merged, overflow)"""
    if len(dst) != len(src):
        raise ValueError(
            f"counter length mismatch: {len(dst)} vs {len(src)} entries"
        )

    overflow = False
    merged = []
    for a, b in zip(dst, src):
        total = a + b
        if total > MAX_COUNTER_VALUE:
            total = MAX_COUNTER_VALUE
            overflow = True
        merged.append(total)
    return merged, overflow
