"""covrestore - restore partial go coverage counters from source structure"""

from .coverage import (
    CoverableUnit,
    FuncDesc,
    FuncPayload,
    PackageMeta,
    MetaFile,
    CounterFile,
    Pod,
    ImplicationGraph,
    RestoreError,
    SourceUnavailableError,
    SourceParseError,
    CompositionError,
    DumpFormatError,
)
from .partition import analyze_source, FileAnalysis, FunctionUnits
from .restore import restore_counters, merge_counters
from .ops import CovOperation, DumpState, Restorer, make_restorer_op
from .feed import load_dump, parse_dump, visit_pods

__all__ = [
    "CoverableUnit",
    "FuncDesc",
    "FuncPayload",
    "PackageMeta",
    "MetaFile",
    "CounterFile",
    "Pod",
    "ImplicationGraph",
    "RestoreError",
    "SourceUnavailableError",
    "SourceParseError",
    "CompositionError",
    "DumpFormatError",
    "analyze_source",
    "FileAnalysis",
    "FunctionUnits",
    "restore_counters",
    "merge_counters",
    "CovOperation",
    "DumpState",
    "Restorer",
    "make_restorer_op",
    "load_dump",
    "parse_dump",
    "visit_pods",
]
