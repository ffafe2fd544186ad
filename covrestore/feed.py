"""load decoded coverage dumps from json and replay them as operation events"""

import json
from pathlib import Path
from typing import Any, Dict, List, Union

from .coverage import (
    CounterFile,
    CoverableUnit,
    DumpFormatError,
    FuncDesc,
    FuncPayload,
    MetaFile,
    PackageMeta,
    Pod,
)
from .ops import CovOperation
from .partition import FileAnalysis


def _require(obj: Any, key: str, kind: type, where: str) -> Any:
    if not isinstance(obj, dict) or key not in obj:
        raise DumpFormatError(f"{where}: missing '{key}'")
    value = obj[key]
    if not isinstance(value, kind) or isinstance(value, bool) and kind is not bool:
        raise DumpFormatError(f"{where}.{key}: expected {kind.__name__}")
    return value


def _counter_list(values: Any, where: str) -> List[int]:
    if not isinstance(values, list):
        raise DumpFormatError(f"{where}: expected a list of counters")
    for value in values:
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise DumpFormatError(f"{where}: counters must be non-negative integers")
    return list(values)


def _parse_function(data: Any, where: str) -> FuncDesc:
    name = _require(data, "name", str, where)
    srcfile = _require(data, "srcfile", str, where)
    raw_units = _require(data, "units", list, where)
    units = []
    for i, raw in enumerate(raw_units):
        if not isinstance(raw, list):
            raise DumpFormatError(f"{where}.units[{i}]: expected a list of 5 integers")
        try:
            units.append(CoverableUnit.from_list(raw))
        except ValueError as e:
            raise DumpFormatError(f"{where}.units[{i}]: {e}") from e
    lit = data.get("literal", False)
    if not isinstance(lit, bool):
        raise DumpFormatError(f"{where}.literal: expected bool")
    return FuncDesc(name, srcfile, tuple(units), lit)


def _parse_pod(data: Any, where: str) -> Pod:
    meta_path = _require(data, "meta_file", str, where)

    packages = []
    for p, pkg in enumerate(_require(data, "packages", list, where)):
        pkg_where = f"{where}.packages[{p}]"
        funcs = [
            _parse_function(fn, f"{pkg_where}.functions[{f}]")
            for f, fn in enumerate(_require(pkg, "functions", list, pkg_where))
        ]
        packages.append(PackageMeta(_require(pkg, "path", str, pkg_where), funcs))
    meta = MetaFile(meta_path, packages)

    raw_counter_files = data.get("counter_files", [])
    if not isinstance(raw_counter_files, list):
        raise DumpFormatError(f"{where}.counter_files: expected a list")

    counter_files = []
    for c, cf in enumerate(raw_counter_files):
        cf_where = f"{where}.counter_files[{c}]"
        payloads = []
        for f, fn in enumerate(_require(cf, "functions", list, cf_where)):
            fn_where = f"{cf_where}.functions[{f}]"
            pkg_idx = _require(fn, "pkg", int, fn_where)
            func_idx = _require(fn, "fn", int, fn_where)
            if not 0 <= pkg_idx < len(packages):
                raise DumpFormatError(f"{fn_where}: unknown package index {pkg_idx}")
            if not 0 <= func_idx < len(packages[pkg_idx].funcs):
                raise DumpFormatError(f"{fn_where}: unknown function index {func_idx}")
            counters = _counter_list(fn.get("counters"), f"{fn_where}.counters")
            payloads.append(FuncPayload(pkg_idx, func_idx, counters))
        counter_files.append(CounterFile(_require(cf, "path", str, cf_where), payloads))

    origins = data.get("origins", [])
    if not isinstance(origins, list) or not all(isinstance(o, int) for o in origins):
        raise DumpFormatError(f"{where}.origins: expected a list of process ids")

    return Pod(meta, counter_files, list(origins))


def parse_dump(data: Any) -> List[Pod]:
    """build pods from an already decoded json document"""
    pods = _require(data, "pods", list, "dump")
    return [_parse_pod(pod, f"pods[{i}]") for i, pod in enumerate(pods)]


def load_dump(source: Union[str, Path]) -> List[Pod]:
    """read a json coverage dump from a file path"""
    path = Path(source)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise DumpFormatError(f"cannot read dump {path}: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise DumpFormatError(f"{path}: invalid json: {e}") from e
    return parse_dump(data)


def visit_pods(op: CovOperation, pods: List[Pod]):
    """drive an operation through the events of the given pods, in order"""
    op.setup()
    for pod in pods:
        op.begin_pod(pod)
        op.visit_meta_data_file(pod.meta_file.path, pod.meta_file)
        for dir_idx, counter_file in enumerate(pod.counter_files):
            op.begin_counter_data_file(counter_file.path, counter_file, dir_idx)
            for payload in counter_file.payloads:
                op.visit_func_counter_data(payload)
            op.end_counter_data_file(counter_file.path, counter_file, dir_idx)
        op.end_counters()
        for pkg_idx, pkg in enumerate(pod.meta_file.packages):
            op.begin_package(pkg, pkg_idx)
            for fn_idx, fd in enumerate(pkg.funcs):
                op.visit_func(pkg_idx, fn_idx, fd)
            op.end_package(pkg, pkg_idx)
        op.end_pod(pod)
    op.finish()


def dump_from_analysis(
    analysis: FileAnalysis, package: str, srcfile: str = None
) -> Dict[str, Any]:
    """json dump skeleton for one partitioned file, every counter zero"""
    srcfile = srcfile or analysis.path
    functions = []
    payloads = []
    for fn_idx, fn in enumerate(analysis.functions):
        functions.append(
            {
                "name": fn.name,
                "srcfile": srcfile,
                "literal": fn.lit,
                "units": [unit.to_list() for unit in fn.units],
            }
        )
        payloads.append({"pkg": 0, "fn": fn_idx, "counters": [0] * len(fn.units)})

    return {
        "pods": [
            {
                "meta_file": f"covmeta.{package.replace('/', '_')}",
                "origins": [],
                "packages": [{"path": package, "functions": functions}],
                "counter_files": [{"path": "covcounters.skeleton", "functions": payloads}],
            }
        ]
    }
