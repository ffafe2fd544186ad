#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Core data model for restoring Go coverage counters.

Go's coverage instrumentation splits every function body into coverable units
and assigns one counter slot to each unit, in source order. A unit is matched
to its counter purely by position in that order, so the types here compare by
value: two units derived independently from the same source are the same unit.

The decoders for Go's binary meta-data and counter-data files are external to
this package. The containers below (`FuncDesc`, `FuncPayload`, `PackageMeta`,
`MetaFile`, `CounterFile`, `Pod`) carry their already decoded output.

Example Usage:
    unit = CoverableUnit(5, 13, 7, 22, 2)
    graph = ImplicationGraph()
    graph.add_edge(CoverableUnit(7, 22, 9, 3, 1), unit)
    print(graph.implied_by(CoverableUnit(7, 22, 9, 3, 1)))
"""

import dataclasses
from typing import Dict, Iterator, List, Sequence, Tuple

# --- Constants ---
UNIT_FIELD_COUNT = 5
MAX_COUNTER_VALUE = 0xFFFFFFFF

Position = Tuple[int, int]  # (line, column), both 1-based

# --- Errors ---


class RestoreError(Exception):
    """Base class for all counter restoration errors."""

    pass


class SourceUnavailableError(RestoreError):
    """A referenced source file could not be read."""

    pass


class SourceParseError(RestoreError):
    """A source file could not be parsed into a syntax tree."""

    def __init__(self, path: str, line: int, column: int, detail: str = ""):
        self.path = path
        self.line = line
        self.column = column
        self.detail = detail
        message = f"{path}:{line}:{column}: syntax error"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class CompositionError(RestoreError):
    """Restoration was attached to an operation it cannot restore for."""

    pass


class DumpFormatError(RestoreError):
    """A decoded coverage dump is malformed."""

    pass


# --- Public API ---


@dataclasses.dataclass(frozen=True)
class CoverableUnit:
    """A minimal source region tracked by one counter slot."""

    st_line: int
    st_col: int
    en_line: int
    en_col: int
    nx_stmts: int  # number of statements directly in the unit

    @property
    def start(self) -> Position:
        return (self.st_line, self.st_col)

    @property
    def end(self) -> Position:
        return (self.en_line, self.en_col)

    def to_list(self) -> List[int]:
        """Serializes the unit to its five-integer dump form."""
        return [self.st_line, self.st_col, self.en_line, self.en_col, self.nx_stmts]

    @classmethod
    def from_list(cls, values: Sequence[int]) -> "CoverableUnit":
        """Builds a unit from its five-integer dump form."""
        if len(values) != UNIT_FIELD_COUNT:
            raise ValueError(
                f"coverable unit needs {UNIT_FIELD_COUNT} fields, got {len(values)}"
            )
        if any(not isinstance(v, int) or isinstance(v, bool) or v < 0 for v in values):
            raise ValueError(f"coverable unit fields must be non-negative ints: {values}")
        return cls(*values)

    def describe(self) -> str:
        """Formats the unit the way Go's debug dump does."""
        return (
            f"L{self.st_line}:C{self.st_col} -- L{self.en_line}:C{self.en_col} "
            f"NS={self.nx_stmts}"
        )


@dataclasses.dataclass(frozen=True)
class FuncDesc:
    """Function descriptor decoded from a meta-data file."""

    funcname: str
    srcfile: str
    units: Tuple[CoverableUnit, ...]
    lit: bool = False  # true for function literals


@dataclasses.dataclass
class FuncPayload:
    """Counter data for one function, decoded from a counter-data file."""

    pkg_idx: int
    func_idx: int
    counters: List[int]

    @property
    def key(self) -> Tuple[int, int]:
        return (self.pkg_idx, self.func_idx)


@dataclasses.dataclass
class PackageMeta:
    """Meta-data for one instrumented package."""

    path: str
    funcs: List[FuncDesc] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class MetaFile:
    """Decoded contents of a meta-data file."""

    path: str
    packages: List[PackageMeta] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class CounterFile:
    """Decoded contents of a counter-data file."""

    path: str
    payloads: List[FuncPayload] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class Pod:
    """A meta-data file together with the counter-data files written against it."""

    meta_file: MetaFile
    counter_files: List[CounterFile] = dataclasses.field(default_factory=list)
    origins: List[int] = dataclasses.field(default_factory=list)  # process ids


class ImplicationGraph:
    """
    Maps a unit to the units whose execution its own execution implies.

    Edges are appended as they are discovered and never removed. Duplicates
    are kept; restoration marks each unit at most once.
    """

    def __init__(self):
        self._edges: Dict[CoverableUnit, List[CoverableUnit]] = {}

    def add_edge(self, unit: CoverableUnit, implied: CoverableUnit):
        self._edges.setdefault(unit, []).append(implied)

    def implied_by(self, unit: CoverableUnit) -> Tuple[CoverableUnit, ...]:
        return tuple(self._edges.get(unit, ()))

    def __contains__(self, unit: object) -> bool:
        return unit in self._edges

    def __len__(self) -> int:
        return len(self._edges)

    def edge_count(self) -> int:
        return sum(len(implied) for implied in self._edges.values())

    def items(self) -> Iterator[Tuple[CoverableUnit, Tuple[CoverableUnit, ...]]]:
        for unit, implied in self._edges.items():
            yield unit, tuple(implied)

    def as_dict(self) -> Dict[CoverableUnit, List[CoverableUnit]]:
        """Returns a copy of the edge mapping."""
        return {unit: list(implied) for unit, implied in self._edges.items()}

