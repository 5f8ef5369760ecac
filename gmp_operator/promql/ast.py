"""PromQL expression tree and its canonical text form.

Every node renders itself through ``__str__``. Rendering is canonical rather
than faithful to the input: label matchers are ordered by label name, spacing
is normalized, and number and duration literals keep the text they were
written with. Parsing a rendered expression renders to the same text again.
"""
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

SCALAR = "scalar"
VECTOR = "vector"
MATRIX = "matrix"
STRING = "string"

_QUOTE_ESCAPES = {
    "\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t",
    "\a": "\\a", "\b": "\\b", "\f": "\\f", "\v": "\\v",
}


def quote(value: str) -> str:
    """Double-quote a string with Go-style escaping."""
    out = ['"']
    for ch in value:
        if ch in _QUOTE_ESCAPES:
            out.append(_QUOTE_ESCAPES[ch])
        elif not ch.isprintable():
            cp = ord(ch)
            if cp < 0x100:
                out.append(f"\\x{cp:02x}")
            elif cp < 0x10000:
                out.append(f"\\u{cp:04x}")
            else:
                out.append(f"\\U{cp:08x}")
        else:
            out.append(ch)
    out.append('"')
    return "".join(out)


def _modifiers(at: Optional[str], offset: Optional[str]) -> str:
    text = ""
    if at is not None:
        text += f" @ {at}"
    if offset is not None:
        text += f" offset {offset}"
    return text


class Expr:
    """Base class of all expression nodes."""

    def children(self) -> List["Expr"]:
        return []

    def value_type(self) -> Optional[str]:
        return None


def walk(node: Expr) -> Iterator[Expr]:
    """Yield node and all of its descendants, depth first."""
    yield node
    for child in node.children():
        yield from walk(child)


@dataclass
class LabelMatcher:
    name: str
    op: str
    value: str

    def __str__(self) -> str:
        return f"{self.name}{self.op}{quote(self.value)}"


@dataclass
class NumberLiteral(Expr):
    text: str

    def __str__(self) -> str:
        return self.text

    def value_type(self):
        return SCALAR


@dataclass
class StringLiteral(Expr):
    value: str

    def __str__(self) -> str:
        return quote(self.value)

    def value_type(self):
        return STRING


@dataclass
class VectorSelector(Expr):
    name: Optional[str]
    matchers: List[LabelMatcher] = field(default_factory=list)
    offset: Optional[str] = None
    at: Optional[str] = None

    def __str__(self) -> str:
        text = self.name or ""
        if self.matchers or not self.name:
            text += "{" + ",".join(str(m) for m in sorted(self.matchers, key=lambda m: m.name)) + "}"
        return text + _modifiers(self.at, self.offset)

    def value_type(self):
        return VECTOR


@dataclass
class MatrixSelector(Expr):
    vector: VectorSelector
    range: str
    offset: Optional[str] = None
    at: Optional[str] = None

    def children(self):
        return [self.vector]

    def __str__(self) -> str:
        return f"{self.vector}[{self.range}]" + _modifiers(self.at, self.offset)

    def value_type(self):
        return MATRIX


@dataclass
class SubqueryExpr(Expr):
    expr: Expr
    range: str
    step: Optional[str] = None
    offset: Optional[str] = None
    at: Optional[str] = None

    def children(self):
        return [self.expr]

    def __str__(self) -> str:
        return f"{self.expr}[{self.range}:{self.step or ''}]" + _modifiers(self.at, self.offset)

    def value_type(self):
        return MATRIX


@dataclass
class ParenExpr(Expr):
    expr: Expr

    def children(self):
        return [self.expr]

    def __str__(self) -> str:
        return f"({self.expr})"

    def value_type(self):
        return self.expr.value_type()


@dataclass
class UnaryExpr(Expr):
    op: str
    expr: Expr

    def children(self):
        return [self.expr]

    def __str__(self) -> str:
        return f"{self.op}{self.expr}"

    def value_type(self):
        return self.expr.value_type()


@dataclass
class VectorMatching:
    on: bool = False
    labels: List[str] = field(default_factory=list)
    card: str = "one-to-one"
    include: List[str] = field(default_factory=list)

    def __str__(self) -> str:
        if not self.on and not self.labels and self.card in ("one-to-one", "many-to-many"):
            return ""
        text = f" {'on' if self.on else 'ignoring'}({', '.join(self.labels)})"
        if self.card == "many-to-one":
            text += f" group_left({', '.join(self.include)})"
        elif self.card == "one-to-many":
            text += f" group_right({', '.join(self.include)})"
        return text


@dataclass
class BinaryExpr(Expr):
    op: str
    lhs: Expr
    rhs: Expr
    return_bool: bool = False
    matching: Optional[VectorMatching] = None

    def children(self):
        return [self.lhs, self.rhs]

    def __str__(self) -> str:
        modifiers = " bool" if self.return_bool else ""
        if self.matching is not None:
            modifiers += str(self.matching)
        return f"{self.lhs} {self.op}{modifiers} {self.rhs}"

    def value_type(self):
        if self.lhs.value_type() == SCALAR and self.rhs.value_type() == SCALAR:
            return SCALAR
        return VECTOR


@dataclass
class AggregateExpr(Expr):
    op: str
    expr: Expr
    param: Optional[Expr] = None
    grouping: List[str] = field(default_factory=list)
    without: bool = False

    def children(self):
        if self.param is not None:
            return [self.param, self.expr]
        return [self.expr]

    def __str__(self) -> str:
        text = self.op
        if self.without:
            text += f" without({', '.join(self.grouping)}) "
        elif self.grouping:
            text += f" by({', '.join(self.grouping)}) "
        args = f"{self.param}, {self.expr}" if self.param is not None else str(self.expr)
        return f"{text}({args})"

    def value_type(self):
        return VECTOR


@dataclass
class Call(Expr):
    func: str
    args: List[Expr] = field(default_factory=list)
    return_type: str = VECTOR

    def children(self):
        return list(self.args)

    def __str__(self) -> str:
        return f"{self.func}({', '.join(str(a) for a in self.args)})"

    def value_type(self):
        return self.return_type
