"""coverage data operations and the counter restoring adapter"""

import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

import typer

from .coverage import (
    CompositionError,
    CounterFile,
    DumpFormatError,
    FuncDesc,
    FuncPayload,
    MetaFile,
    PackageMeta,
    Pod,
    SourceUnavailableError,
)
from .partition import FileAnalysis, analyze_source
from .restore import merge_counters, restore_counters

# Dump modes
DEBUG_DUMP = "debugdump"
PERCENT = "percent"

FuncKey = Tuple[int, int]
RestoredKey = Tuple[int, int, int]  # (pod_idx, pkg_idx, fn_idx)


class CovOperation(ABC):
    """
    consumer of the decoded coverage event stream.

    events arrive in a fixed order: begin_pod, visit_meta_data_file, then for
    each counter file begin_counter_data_file, visit_func_counter_data*,
    end_counter_data_file; then end_counters, and for each package
    begin_package, visit_func*, end_package; finally end_pod. setup runs
    before the first pod and finish after the last
    """

    @abstractmethod
    def setup(self):
        pass

    @abstractmethod
    def begin_pod(self, pod: Pod):
        pass

    @abstractmethod
    def end_pod(self, pod: Pod):
        pass

    @abstractmethod
    def visit_meta_data_file(self, mdf: str, meta: MetaFile):
        pass

    @abstractmethod
    def begin_counter_data_file(self, cdf: str, counters: CounterFile, dir_idx: int):
        pass

    @abstractmethod
    def end_counter_data_file(self, cdf: str, counters: CounterFile, dir_idx: int):
        pass

    @abstractmethod
    def visit_func_counter_data(self, payload: FuncPayload):
        pass

    @abstractmethod
    def end_counters(self):
        pass

    @abstractmethod
    def begin_package(self, pkg: PackageMeta, pkg_idx: int):
        pass

    @abstractmethod
    def end_package(self, pkg: PackageMeta, pkg_idx: int):
        pass

    @abstractmethod
    def visit_func(self, pkg_idx: int, fn_idx: int, fd: FuncDesc):
        pass

    @abstractmethod
    def finish(self):
        pass


class DumpState(CovOperation):
    """
    collects per-function counters across counter files and reports them
    unit by unit (debugdump mode) or as statement coverage (percent mode)
    """

    def __init__(
        self, mode: str = DEBUG_DUMP, echo: Optional[Callable[[str], None]] = None
    ):
        if mode not in (DEBUG_DUMP, PERCENT):
            raise ValueError(f"unknown dump mode: {mode}")
        self.mode = mode
        self.echo = echo or typer.echo
        self.mm: Dict[FuncKey, FuncPayload] = {}
        self.visited: Dict[FuncKey, List[int]] = {}
        self.total_stmts = 0
        self.covered_stmts = 0
        self.overflow = False
        self._pkg_total = 0
        self._pkg_covered = 0

    def setup(self):
        pass

    def begin_pod(self, pod: Pod):
        # counters from different pods never merge
        self.mm = {}
        self.visited = {}
        if self.mode == DEBUG_DUMP:
            origins = ", ".join(str(o) for o in pod.origins)
            self.echo(f"\nPod: {pod.meta_file.path}")
            if origins:
                self.echo(f"Origins: {origins}")

    def end_pod(self, pod: Pod):
        pass

    def visit_meta_data_file(self, mdf: str, meta: MetaFile):
        if self.mode == DEBUG_DUMP:
            self.echo(f"Metadata file: {mdf} ({len(meta.packages)} packages)")

    def begin_counter_data_file(self, cdf: str, counters: CounterFile, dir_idx: int):
        if self.mode == DEBUG_DUMP:
            self.echo(f"Counter data file: {cdf} ({len(counters.payloads)} functions)")

    def end_counter_data_file(self, cdf: str, counters: CounterFile, dir_idx: int):
        pass

    def visit_func_counter_data(self, payload: FuncPayload):
        key = payload.key
        existing = self.mm.get(key)
        if existing is None:
            self.mm[key] = FuncPayload(
                payload.pkg_idx, payload.func_idx, list(payload.counters)
            )
            return

        try:
            merged, overflow = merge_counters(existing.counters, payload.counters)
        except ValueError as e:
            raise DumpFormatError(
                f"package {key[0]} function {key[1]}: cannot merge counters: {e}"
            ) from e
        if overflow and not self.overflow:
            self.echo("warning: counter overflow while merging, values clamped")
            self.overflow = True
        self.mm[key] = FuncPayload(payload.pkg_idx, payload.func_idx, merged)

    def end_counters(self):
        pass

    def begin_package(self, pkg: PackageMeta, pkg_idx: int):
        self._pkg_total = 0
        self._pkg_covered = 0
        if self.mode == DEBUG_DUMP:
            self.echo(f"\nPackage path: {pkg.path}")

    def end_package(self, pkg: PackageMeta, pkg_idx: int):
        if self.mode == PERCENT:
            pct = percent(self._pkg_covered, self._pkg_total)
            self.echo(f"\t{pkg.path}\t\tcoverage: {pct:.1f}% of statements")

    def visit_func(self, pkg_idx: int, fn_idx: int, fd: FuncDesc):
        payload = self.mm.get((pkg_idx, fn_idx))
        counters = payload.counters if payload is not None else []

        if self.mode == DEBUG_DUMP:
            self.echo(f"\nFunc: {fd.funcname}")
            self.echo(f"Srcfile: {fd.srcfile}")
            self.echo(f"Literal: {fd.lit}")

        seen = []
        for i, unit in enumerate(fd.units):
            count = counters[i] if i < len(counters) else 0
            seen.append(count)
            if self.mode == DEBUG_DUMP:
                self.echo(f"{i}: {unit.describe()} = {count}")
            self._pkg_total += unit.nx_stmts
            self.total_stmts += unit.nx_stmts
            if count != 0:
                self._pkg_covered += unit.nx_stmts
                self.covered_stmts += unit.nx_stmts

        self.visited[(pkg_idx, fn_idx)] = seen

    def finish(self):
        if self.mode == PERCENT:
            pct = percent(self.covered_stmts, self.total_stmts)
            self.echo(f"total\t\tcoverage: {pct:.1f}% of statements")


def percent(covered: int, total: int) -> float:
    if total == 0:
        return 0.0
    return 100.0 * covered / total


class SourceResolver:
    """finds the readable file behind a source path recorded in meta-data"""

    def __init__(
        self,
        sources: Iterable[Union[str, Path]] = (),
        source_root: Union[str, Path, None] = None,
    ):
        self.sources = [Path(s) for s in sources]
        self.source_root = Path(source_root) if source_root is not None else None
        self._resolved: Dict[str, Path] = {}

    def resolve(self, srcfile: str) -> Path:
        if srcfile in self._resolved:
            return self._resolved[srcfile]

        path = self._find(srcfile)
        if path is None:
            raise SourceUnavailableError(f"no readable source file for {srcfile}")
        self._resolved[srcfile] = path
        return path

    def _find(self, srcfile: str) -> Optional[Path]:
        wanted = os.path.normpath(srcfile)
        for source in self.sources:
            if os.path.normpath(str(source)) == wanted:
                return source
            if os.path.abspath(source) == os.path.abspath(wanted):
                return source

        name = os.path.basename(wanted)
        by_name = [s for s in self.sources if s.name == name]
        if len(by_name) == 1:
            return by_name[0]

        if self.source_root is not None:
            candidate = self.source_root / wanted.lstrip("/\\")
            if candidate.is_file():
                return candidate

        candidate = Path(srcfile)
        if candidate.is_file():
            return candidate
        return None


class AnalysisCache:
    """
    per-file partitioning results, built on first use.
    a per-path lock makes sure a file is analyzed at most once even when
    several threads ask for it together. failed builds are not cached
    """

    def __init__(self, analyzer: Callable[[Path], FileAnalysis] = analyze_source):
        self._analyzer = analyzer
        self._analyses: Dict[str, FileAnalysis] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, path: Union[str, Path]) -> FileAnalysis:
        key = str(path)
        analysis = self._analyses.get(key)
        if analysis is not None:
            return analysis

        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            analysis = self._analyses.get(key)
            if analysis is None:
                analysis = self._analyzer(Path(path))
                self._analyses[key] = analysis
        return analysis

    def __contains__(self, path: object) -> bool:
        return str(path) in self._analyses

    def __len__(self) -> int:
        return len(self._analyses)


class Restorer(CovOperation):
    """
    wraps a DumpState, completing each function's counters from the
    structure of its source file before the wrapped operation sees them.
    every other event passes straight through
    """

    def __init__(
        self,
        op: DumpState,
        resolver: SourceResolver,
        cache: Optional[AnalysisCache] = None,
        verbose: bool = False,
    ):
        self.op = op
        self.resolver = resolver
        self.cache = cache if cache is not None else AnalysisCache()
        self.verbose = verbose
        self.restored: Dict[RestoredKey, Tuple[List[int], List[int]]] = {}
        self._pod_idx = 0

    def setup(self):
        for source in self.resolver.sources:
            self.cache.get(source)
        self.op.setup()

    def begin_pod(self, pod: Pod):
        self.op.begin_pod(pod)

    def end_pod(self, pod: Pod):
        self.op.end_pod(pod)
        self._pod_idx += 1

    def visit_meta_data_file(self, mdf: str, meta: MetaFile):
        self.op.visit_meta_data_file(mdf, meta)

    def begin_counter_data_file(self, cdf: str, counters: CounterFile, dir_idx: int):
        self.op.begin_counter_data_file(cdf, counters, dir_idx)

    def end_counter_data_file(self, cdf: str, counters: CounterFile, dir_idx: int):
        self.op.end_counter_data_file(cdf, counters, dir_idx)

    def visit_func_counter_data(self, payload: FuncPayload):
        self.op.visit_func_counter_data(payload)

    def end_counters(self):
        self.op.end_counters()

    def begin_package(self, pkg: PackageMeta, pkg_idx: int):
        self.op.begin_package(pkg, pkg_idx)

    def end_package(self, pkg: PackageMeta, pkg_idx: int):
        self.op.end_package(pkg, pkg_idx)

    def visit_func(self, pkg_idx: int, fn_idx: int, fd: FuncDesc):
        key = (pkg_idx, fn_idx)
        payload = self.op.mm.get(key)
        if payload is not None:
            counters = self.recover_counters(payload.counters, fd)
            self.op.mm[key] = FuncPayload(payload.pkg_idx, payload.func_idx, counters)
            self.restored[(self._pod_idx,) + key] = (list(payload.counters), counters)
        self.op.visit_func(pkg_idx, fn_idx, fd)

    def recover_counters(self, counters: List[int], fd: FuncDesc) -> List[int]:
        analysis = self.cache.get(self.resolver.resolve(fd.srcfile))
        restored = restore_counters(fd.units, counters, analysis.graph)
        if self.verbose:
            seeds = sum(1 for c in counters if c != 0)
            typer.echo(
                f"restored {fd.funcname}: {seeds} seeded, {sum(restored)} of "
                f"{len(restored)} units executed",
                err=True,
            )
        return restored

    def finish(self):
        self.op.finish()


def make_restorer_op(
    op: CovOperation,
    sources: Iterable[Union[str, Path]] = (),
    source_root: Union[str, Path, None] = None,
    verbose: bool = False,
) -> Restorer:
    """wrap op so function counters are restored before it sees them"""
    if not isinstance(op, DumpState):
        raise CompositionError(
            "counter restoration can only be used with a dump operation"
        )

    sources = [Path(s) for s in sources]
    for source in sources:
        if not source.is_file():
            raise SourceUnavailableError(f"cannot read {source}: no such file")

    return Restorer(op, SourceResolver(sources, source_root), verbose=verbose)
