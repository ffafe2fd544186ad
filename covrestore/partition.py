"""partition go source files into coverable units and their implication edges"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import tree_sitter
import tree_sitter_go

from .coverage import (
    CoverableUnit,
    ImplicationGraph,
    Position,
    SourceParseError,
    SourceUnavailableError,
)

GO_LANGUAGE = tree_sitter.Language(tree_sitter_go.language())

FUNCTION_NODES = ("function_declaration", "method_declaration", "func_literal")


class StmtKind(Enum):
    """statement kinds that matter for partitioning"""

    BLOCK = "block"
    CONDITIONAL = "conditional"
    LOOP = "loop"
    LABELED = "labeled"
    OTHER = "other"


@dataclass(frozen=True)
class FunctionUnits:
    """the coverable units of one function body"""

    name: str
    units: Tuple[CoverableUnit, ...]
    lit: bool = False
    start: Position = (0, 0)


@dataclass
class FileAnalysis:
    """everything partitioning learned about one source file"""

    path: str
    block_units: Dict[Position, List[CoverableUnit]] = field(default_factory=dict)
    graph: ImplicationGraph = field(default_factory=ImplicationGraph)
    functions: List[FunctionUnits] = field(default_factory=list)

    def units_for(self, lbrace: Position) -> List[CoverableUnit]:
        """units of the block whose opening brace sits at lbrace"""
        return list(self.block_units.get(lbrace, []))

    def function(self, name: str) -> Optional[FunctionUnits]:
        return next((f for f in self.functions if f.name == name), None)

    @property
    def unit_count(self) -> int:
        return sum(len(units) for units in self.block_units.values())


def _start(node) -> Position:
    # go columns are 1-based byte offsets, tree-sitter columns are 0-based
    return (node.start_point[0] + 1, node.start_point[1] + 1)


def _end(node) -> Position:
    return (node.end_point[0] + 1, node.end_point[1] + 1)


def _make_unit(start: Position, end: Position, num_stmts: int) -> CoverableUnit:
    return CoverableUnit(start[0], start[1], end[0], end[1], num_stmts)


def _statements(block) -> list:
    """statement nodes of a block, in source order"""
    stmts = []
    for child in block.named_children:
        if child.type == "statement_list":
            stmts.extend(c for c in child.named_children if c.type != "comment")
        elif child.type != "comment":
            stmts.append(child)
    return stmts


def _labeled_inner(node):
    for child in node.named_children:
        if child.type not in ("label_name", "comment"):
            return child
    return None


def classify(node) -> StmtKind:
    """map a statement node onto the closed set of partitioning kinds"""
    kind = node.type
    if kind == "block":
        return StmtKind.BLOCK
    if kind == "if_statement":
        return StmtKind.CONDITIONAL
    if kind == "for_statement":
        # range loops are plain statements here
        if any(c.type == "range_clause" for c in node.named_children):
            return StmtKind.OTHER
        return StmtKind.LOOP
    if kind == "labeled_statement":
        return StmtKind.LABELED
    return StmtKind.OTHER


class RegionPartitioner:
    """
    walks a go syntax tree and splits every reachable block into the ordered
    coverable units the coverage instrumentation assigned counters to.
    implication edges are recorded into a single graph owned by the walker
    """

    def __init__(self, content: bytes):
        self.content = content
        self.block_units: Dict[Position, List[CoverableUnit]] = {}
        self.graph = ImplicationGraph()
        self.functions: List[FunctionUnits] = []
        self._block_order: List[Position] = []
        self._literal_count = 0

    def walk(self, node):
        """visit a node, partitioning the blocks reachable from it"""
        kind = classify(node)
        if kind is StmtKind.BLOCK:
            self._partition_block(node)
        elif kind is StmtKind.CONDITIONAL:
            consequence = node.child_by_field_name("consequence")
            if consequence is not None:
                self.walk(consequence)
            alternative = node.child_by_field_name("alternative")
            if alternative is not None:
                self.walk(alternative)
        elif kind is StmtKind.LOOP:
            body = node.child_by_field_name("body")
            if body is not None:
                self.walk(body)
        elif node.type in FUNCTION_NODES:
            self._walk_function(node)
        else:
            for child in node.named_children:
                self.walk(child)

    def _walk_function(self, node):
        body = node.child_by_field_name("body")
        if body is None:
            # declaration without a body, implemented elsewhere
            return
        first_block = len(self._block_order)
        self._partition_block(body)

        # counters are numbered block by block, outermost first, in source order
        blocks = sorted(self._block_order[first_block:])
        units = [unit for lbrace in blocks for unit in self.block_units[lbrace]]
        lit = node.type == "func_literal"
        self.functions.append(
            FunctionUnits(self._function_name(node), tuple(units), lit, _start(node))
        )

    def _function_name(self, node) -> str:
        if node.type == "func_literal":
            self._literal_count += 1
            return f"func{self._literal_count}"

        name = self._text(node.child_by_field_name("name"))
        if node.type == "method_declaration":
            receiver_type = self._receiver_type(node.child_by_field_name("receiver"))
            if receiver_type.startswith("*"):
                return f"({receiver_type}).{name}"
            if receiver_type:
                return f"{receiver_type}.{name}"
        return name

    def _receiver_type(self, receiver) -> str:
        if receiver is None:
            return ""
        for param in receiver.named_children:
            if param.type == "parameter_declaration":
                return self._text(param.child_by_field_name("type"))
        return ""

    def _text(self, node) -> str:
        if node is None:
            return ""
        return self.content[node.start_byte : node.end_byte].decode(
            "utf-8", errors="replace"
        )

    def _partition_block(self, block) -> List[CoverableUnit]:
        lbrace = _start(block)
        insert_pos = (lbrace[0], lbrace[1] + 1)
        units = self._partition(
            lbrace, insert_pos, _end(block), _statements(block), True
        )
        self.block_units[lbrace] = units
        self._block_order.append(lbrace)
        return units

    def _partition(
        self,
        pos: Position,
        insert_pos: Position,
        block_end: Position,
        stmts: list,
        extend_to_closing_brace: bool,
    ) -> List[CoverableUnit]:
        """split one statement list into basic regions, recursing into nested bodies"""
        # an empty block still gets a unit, spanning just inside its braces
        if not stmts:
            return [_make_unit(insert_pos, block_end, 0)]

        units: List[CoverableUnit] = []
        while True:
            # find the first statement that splits the region; it is the last
            # statement of the current region
            providers: List[CoverableUnit] = []
            end = block_end
            last = 0
            while last < len(stmts):
                stmt = stmts[last]
                end = self._boundary(stmt)
                last += 1
                if self._ends_region(stmt):
                    self.walk(stmt)
                    providers = self._nested_units(stmt)
                    extend_to_closing_brace = False  # block is broken up now
                    break

            if extend_to_closing_brace:
                end = block_end

            if pos != end:
                unit = _make_unit(pos, end, last)
                for provider in providers:
                    self.graph.add_edge(provider, unit)
                if units:
                    self.graph.add_edge(unit, units[-1])
                units.append(unit)

            stmts = stmts[last:]
            if not stmts:
                break
            pos = _start(stmts[0])

        return units

    def _ends_region(self, stmt) -> bool:
        kind = classify(stmt)
        if kind is StmtKind.LABELED:
            inner = _labeled_inner(stmt)
            return inner is not None and self._ends_region(inner)
        return kind is not StmtKind.OTHER

    def _boundary(self, stmt) -> Position:
        """where the region ending with stmt stops"""
        kind = classify(stmt)
        if kind is StmtKind.BLOCK:
            return _start(stmt)
        if kind is StmtKind.CONDITIONAL:
            return _start(stmt.child_by_field_name("consequence"))
        if kind is StmtKind.LOOP:
            return _start(stmt.child_by_field_name("body"))
        if kind is StmtKind.LABELED:
            inner = _labeled_inner(stmt)
            if inner is not None:
                return self._boundary(inner)
        return _end(stmt)

    def _nested_units(self, stmt) -> List[CoverableUnit]:
        """units produced by the nested bodies of a region-ending statement"""
        kind = classify(stmt)
        if kind is StmtKind.BLOCK:
            return self.units_at(stmt)
        if kind is StmtKind.CONDITIONAL:
            units = self.units_at(stmt.child_by_field_name("consequence"))
            alternative = stmt.child_by_field_name("alternative")
            if alternative is not None:
                units.extend(self._nested_units(alternative))
            return units
        if kind is StmtKind.LOOP:
            return self.units_at(stmt.child_by_field_name("body"))
        if kind is StmtKind.LABELED:
            inner = _labeled_inner(stmt)
            if inner is not None:
                return self._nested_units(inner)
        return []

    def units_at(self, block) -> List[CoverableUnit]:
        if block is None:
            return []
        return list(self.block_units.get(_start(block), []))


def _first_error(node):
    """locate the first error or missing node below node, depth first"""
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type == "ERROR" or current.is_missing:
            return current
        children = [c for c in current.children if c.has_error or c.is_missing]
        stack.extend(reversed(children))
    return None


def parse_go(content: bytes, path: str = "<source>"):
    """parse go source, raising SourceParseError if the tree has errors"""
    parser = tree_sitter.Parser()
    parser.language = GO_LANGUAGE
    tree = parser.parse(content)

    root = tree.root_node
    if root.has_error:
        bad = _first_error(root) or root
        line, column = _start(bad)
        detail = f"missing {bad.type}" if bad.is_missing else "unexpected input"
        raise SourceParseError(path, line, column, detail)
    return tree


def analyze_source(
    path: Union[str, Path], content: Union[bytes, str, None] = None
) -> FileAnalysis:
    """partition a go source file, reading it from disk unless content is given"""
    path = Path(path)
    if content is None:
        try:
            content = path.read_bytes()
        except OSError as e:
            raise SourceUnavailableError(f"cannot read {path}: {e}") from e
    elif isinstance(content, str):
        content = content.encode("utf-8")

    tree = parse_go(content, str(path))

    partitioner = RegionPartitioner(content)
    partitioner.walk(tree.root_node)

    return FileAnalysis(
        path=str(path),
        block_units=partitioner.block_units,
        graph=partitioner.graph,
        functions=partitioner.functions,
    )
