"""tests for json dump loading and event replay"""

import json
from pathlib import Path

import pytest

from covrestore.coverage import CoverableUnit, DumpFormatError
from covrestore.feed import dump_from_analysis, load_dump, parse_dump, visit_pods
from covrestore.ops import DumpState
from covrestore.partition import analyze_source

TESTDATA = Path(__file__).parent / "testdata"


def sample_dump():
    return {
        "pods": [
            {
                "meta_file": "covmeta.abc",
                "origins": [4242],
                "packages": [
                    {
                        "path": "example.com/inf",
                        "functions": [
                            {
                                "name": "main",
                                "srcfile": "inf1.go",
                                "units": [
                                    [5, 13, 7, 22, 2],
                                    [10, 2, 10, 18, 1],
                                    [7, 22, 9, 3, 1],
                                ],
                            }
                        ],
                    }
                ],
                "counter_files": [
                    {
                        "path": "covcounters.abc.4242",
                        "functions": [{"pkg": 0, "fn": 0, "counters": [0, 0, 1]}],
                    }
                ],
            }
        ]
    }


class TestParseDump:
    """test building pods from json documents"""

    def test_sample(self):
        """test a well formed dump"""
        pods = parse_dump(sample_dump())
        assert len(pods) == 1

        pod = pods[0]
        assert pod.origins == [4242]
        assert pod.meta_file.path == "covmeta.abc"

        fd = pod.meta_file.packages[0].funcs[0]
        assert fd.funcname == "main"
        assert fd.lit is False
        assert fd.units[0] == CoverableUnit(5, 13, 7, 22, 2)

        payload = pod.counter_files[0].payloads[0]
        assert payload.key == (0, 0)
        assert payload.counters == [0, 0, 1]

    def test_optional_sections(self):
        """test counter files and origins may be left out"""
        data = sample_dump()
        del data["pods"][0]["counter_files"]
        del data["pods"][0]["origins"]

        pod = parse_dump(data)[0]
        assert pod.counter_files == []
        assert pod.origins == []

    @pytest.mark.parametrize(
        "mutate, message",
        [
            (lambda d: d.pop("pods"), "missing 'pods'"),
            (lambda d: d["pods"][0].pop("meta_file"), "missing 'meta_file'"),
            (
                lambda d: d["pods"][0]["packages"][0]["functions"][0]["units"].append([1, 2]),
                r"units\[3\]",
            ),
            (
                lambda d: d["pods"][0]["packages"][0]["functions"][0]["units"].append([1, 1, 1, -1, 0]),
                r"units\[3\]",
            ),
            (
                lambda d: d["pods"][0]["counter_files"][0]["functions"][0].update(fn=3),
                "unknown function index 3",
            ),
            (
                lambda d: d["pods"][0]["counter_files"][0]["functions"][0].update(pkg=1),
                "unknown package index 1",
            ),
            (
                lambda d: d["pods"][0]["counter_files"][0]["functions"][0].update(counters=[0, -2, 0]),
                "non-negative",
            ),
            (
                lambda d: d["pods"][0]["packages"][0]["functions"][0].update(literal="yes"),
                "literal",
            ),
            (lambda d: d["pods"][0].update(origins="4242"), "origins"),
        ],
    )
    def test_malformed(self, mutate, message):
        """test malformed documents raise DumpFormatError naming the problem"""
        data = sample_dump()
        mutate(data)
        with pytest.raises(DumpFormatError, match=message):
            parse_dump(data)

    def test_not_an_object(self):
        """test a top level that is not an object"""
        with pytest.raises(DumpFormatError):
            parse_dump([1, 2, 3])


class TestLoadDump:
    """test reading dumps from disk"""

    def test_load(self, tmp_path):
        """test a dump file round trips through json"""
        path = tmp_path / "dump.json"
        path.write_text(json.dumps(sample_dump()))
        pods = load_dump(path)
        assert pods[0].meta_file.packages[0].path == "example.com/inf"

    def test_missing_file(self, tmp_path):
        """test unreadable dumps are format errors"""
        with pytest.raises(DumpFormatError, match="cannot read dump"):
            load_dump(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        """test broken json is reported"""
        path = tmp_path / "dump.json"
        path.write_text("{ not json")
        with pytest.raises(DumpFormatError, match="invalid json"):
            load_dump(path)


class TestVisitPods:
    """test event replay"""

    def test_multiple_pods(self):
        """test each pod is replayed against the same operation"""
        data = sample_dump()
        second = json.loads(json.dumps(data["pods"][0]))
        second["meta_file"] = "covmeta.def"
        data["pods"].append(second)

        lines = []
        op = DumpState(echo=lines.append)
        visit_pods(op, parse_dump(data))

        assert lines.count("\nFunc: main") == 2
        assert "\nPod: covmeta.def" in lines
        assert "Origins: 4242" in lines

    def test_empty(self):
        """test no pods still runs setup and finish"""
        lines = []
        op = DumpState(mode="percent", echo=lines.append)
        visit_pods(op, [])
        assert lines == ["total\t\tcoverage: 0.0% of statements"]


class TestDumpFromAnalysis:
    """test generating dump skeletons from source"""

    def test_skeleton(self):
        """test every function is described with zero counters"""
        analysis = analyze_source(TESTDATA / "decls.go")
        data = dump_from_analysis(analysis, "example.com/decls", srcfile="decls.go")

        pod = data["pods"][0]
        assert pod["meta_file"] == "covmeta.example.com_decls"

        functions = pod["packages"][0]["functions"]
        assert [f["name"] for f in functions] == ["(*T).Get", "func1"]
        assert functions[1]["literal"] is True
        assert functions[1]["units"] == [[9, 22, 10, 10, 1], [10, 10, 12, 3, 1]]
        assert all(f["srcfile"] == "decls.go" for f in functions)

        payloads = pod["counter_files"][0]["functions"]
        assert payloads == [
            {"pkg": 0, "fn": 0, "counters": [0]},
            {"pkg": 0, "fn": 1, "counters": [0, 0]},
        ]

    def test_skeleton_parses(self):
        """test a generated skeleton is a valid dump"""
        analysis = analyze_source(TESTDATA / "inf1.go")
        pods = parse_dump(dump_from_analysis(analysis, "main"))

        fd = pods[0].meta_file.packages[0].funcs[0]
        assert fd.srcfile == analysis.path
        assert fd.units == analysis.function("main").units
