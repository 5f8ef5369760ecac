"""Recursive-descent parser turning PromQL text into an expression tree."""
import re
from typing import List, Optional

import re2

from ..exceptions import ExpressionError
from .ast import (
    MATRIX,
    SCALAR,
    STRING,
    VECTOR,
    AggregateExpr,
    BinaryExpr,
    Call,
    Expr,
    LabelMatcher,
    MatrixSelector,
    NumberLiteral,
    ParenExpr,
    StringLiteral,
    SubqueryExpr,
    UnaryExpr,
    VectorMatching,
    VectorSelector,
)
from .lexer import DURATION, EOF, IDENT, NUMBER, Token, tokenize
from .lexer import STRING as STRING_TOKEN

_PRECEDENCE = {
    "or": 1,
    "and": 2, "unless": 2,
    "==": 3, "!=": 3, "<=": 3, "<": 3, ">=": 3, ">": 3,
    "+": 4, "-": 4,
    "*": 5, "/": 5, "%": 5, "atan2": 5,
    "^": 6,
}
_UNARY_PRECEDENCE = 6
_COMPARISON_OPS = {"==", "!=", "<=", "<", ">=", ">"}
_SET_OPS = {"and", "or", "unless"}
_WORD_OPS = {"and", "or", "unless", "atan2"}
_MATCH_OPS = {"=", "!=", "=~", "!~"}

_AGGREGATORS = {
    "sum", "avg", "count", "min", "max", "group", "stddev", "stdvar",
    "topk", "bottomk", "count_values", "quantile", "limitk", "limit_ratio",
}
_PARAM_AGGREGATORS = {"topk", "bottomk", "count_values", "quantile", "limitk", "limit_ratio"}
_KEYWORDS = _AGGREGATORS | _WORD_OPS | {
    "by", "without", "on", "ignoring", "group_left", "group_right", "bool", "offset",
}

_LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")

# name -> (min args, max args or -1 for variadic, return type)
_FUNCTIONS = {
    "abs": (1, 1, VECTOR), "absent": (1, 1, VECTOR), "absent_over_time": (1, 1, VECTOR),
    "acos": (1, 1, VECTOR), "acosh": (1, 1, VECTOR), "asin": (1, 1, VECTOR),
    "asinh": (1, 1, VECTOR), "atan": (1, 1, VECTOR), "atanh": (1, 1, VECTOR),
    "avg_over_time": (1, 1, VECTOR), "ceil": (1, 1, VECTOR), "changes": (1, 1, VECTOR),
    "clamp": (3, 3, VECTOR), "clamp_max": (2, 2, VECTOR), "clamp_min": (2, 2, VECTOR),
    "cos": (1, 1, VECTOR), "cosh": (1, 1, VECTOR), "count_over_time": (1, 1, VECTOR),
    "days_in_month": (0, 1, VECTOR), "day_of_month": (0, 1, VECTOR),
    "day_of_week": (0, 1, VECTOR), "day_of_year": (0, 1, VECTOR), "deg": (1, 1, VECTOR),
    "delta": (1, 1, VECTOR), "deriv": (1, 1, VECTOR),
    "double_exponential_smoothing": (3, 3, VECTOR), "exp": (1, 1, VECTOR),
    "floor": (1, 1, VECTOR), "histogram_avg": (1, 1, VECTOR),
    "histogram_count": (1, 1, VECTOR), "histogram_fraction": (3, 3, VECTOR),
    "histogram_quantile": (2, 2, VECTOR), "histogram_stddev": (1, 1, VECTOR),
    "histogram_stdvar": (1, 1, VECTOR), "histogram_sum": (1, 1, VECTOR),
    "holt_winters": (3, 3, VECTOR), "hour": (0, 1, VECTOR), "idelta": (1, 1, VECTOR),
    "increase": (1, 1, VECTOR), "info": (1, 2, VECTOR), "irate": (1, 1, VECTOR),
    "label_join": (3, -1, VECTOR), "label_replace": (5, 5, VECTOR),
    "last_over_time": (1, 1, VECTOR), "ln": (1, 1, VECTOR), "log10": (1, 1, VECTOR),
    "log2": (1, 1, VECTOR), "mad_over_time": (1, 1, VECTOR),
    "max_over_time": (1, 1, VECTOR), "min_over_time": (1, 1, VECTOR),
    "minute": (0, 1, VECTOR), "month": (0, 1, VECTOR), "pi": (0, 0, SCALAR),
    "predict_linear": (2, 2, VECTOR), "present_over_time": (1, 1, VECTOR),
    "quantile_over_time": (2, 2, VECTOR), "rad": (1, 1, VECTOR), "rate": (1, 1, VECTOR),
    "resets": (1, 1, VECTOR), "round": (1, 2, VECTOR), "scalar": (1, 1, SCALAR),
    "sgn": (1, 1, VECTOR), "sin": (1, 1, VECTOR), "sinh": (1, 1, VECTOR),
    "sort": (1, 1, VECTOR), "sort_by_label": (1, -1, VECTOR),
    "sort_by_label_desc": (1, -1, VECTOR), "sort_desc": (1, 1, VECTOR),
    "sqrt": (1, 1, VECTOR), "stddev_over_time": (1, 1, VECTOR),
    "stdvar_over_time": (1, 1, VECTOR), "sum_over_time": (1, 1, VECTOR),
    "tan": (1, 1, VECTOR), "tanh": (1, 1, VECTOR), "time": (0, 0, SCALAR),
    "timestamp": (1, 1, VECTOR), "vector": (1, 1, VECTOR), "year": (0, 1, VECTOR),
}


def _matches_empty(matcher: LabelMatcher) -> bool:
    if matcher.op == "=":
        return matcher.value == ""
    if matcher.op == "!=":
        return matcher.value != ""
    matched = re2.fullmatch(matcher.value, "") is not None
    return matched if matcher.op == "=~" else not matched


class Parser:
    """Parses a single PromQL expression."""

    def __init__(self, text: str):
        self.text = text
        self.tokens: List[Token] = tokenize(text)
        self.index = 0

    def parse(self) -> Expr:
        if self._peek().type == EOF:
            raise ExpressionError("no expression found in input")
        expr = self._parse_expr(0)
        token = self._peek()
        if token.type != EOF:
            raise ExpressionError(f"unexpected {token.text!r}", token.pos)
        return expr

    # Token helpers

    def _peek(self, offset: int = 0) -> Token:
        return self.tokens[min(self.index + offset, len(self.tokens) - 1)]

    def _advance(self) -> Token:
        token = self._peek()
        self.index += 1
        return token

    def _expect(self, token_type: str, what: Optional[str] = None) -> Token:
        token = self._peek()
        if token.type != token_type:
            found = token.text or "end of input"
            raise ExpressionError(f"expected {what or token_type} but found {found!r}", token.pos)
        return self._advance()

    def _is_keyword(self, token: Token, *words: str) -> bool:
        return token.type == IDENT and token.text.lower() in words

    def _error(self, message: str, token: Optional[Token] = None):
        token = token or self._peek()
        raise ExpressionError(message, token.pos)

    # Binary expressions

    def _peek_binary_op(self) -> Optional[str]:
        token = self._peek()
        if token.type in _PRECEDENCE:
            return token.type
        if token.type == IDENT and token.text.lower() in _WORD_OPS:
            return token.text.lower()
        return None

    def _parse_expr(self, min_precedence: int) -> Expr:
        lhs = self._parse_unary()
        while True:
            op = self._peek_binary_op()
            if op is None or _PRECEDENCE[op] < min_precedence:
                return lhs
            op_token = self._advance()

            return_bool = False
            if self._is_keyword(self._peek(), "bool"):
                if op not in _COMPARISON_OPS:
                    self._error("bool modifier can only be used on comparison operators")
                self._advance()
                return_bool = True

            matching = self._parse_vector_matching(op)
            # ^ is right associative, everything else left associative.
            next_precedence = _PRECEDENCE[op] if op == "^" else _PRECEDENCE[op] + 1
            rhs = self._parse_expr(next_precedence)
            lhs = self._check_binary(BinaryExpr(op, lhs, rhs, return_bool, matching), op_token)

    def _parse_vector_matching(self, op: str) -> Optional[VectorMatching]:
        token = self._peek()
        if not self._is_keyword(token, "on", "ignoring"):
            if self._is_keyword(token, "group_left", "group_right"):
                self._error("grouping modifiers require on() or ignoring()")
            return None
        self._advance()
        matching = VectorMatching(on=token.text.lower() == "on", labels=self._parse_label_list())
        if op in _SET_OPS:
            matching.card = "many-to-many"

        token = self._peek()
        if self._is_keyword(token, "group_left", "group_right"):
            if op in _SET_OPS:
                self._error("no grouping allowed for set operations")
            self._advance()
            matching.card = "many-to-one" if token.text.lower() == "group_left" else "one-to-many"
            if self._peek().type == "(":
                matching.include = self._parse_label_list()
        return matching

    def _check_binary(self, expr: BinaryExpr, token: Token) -> BinaryExpr:
        lhs_type, rhs_type = expr.lhs.value_type(), expr.rhs.value_type()
        for side in (lhs_type, rhs_type):
            if side in (STRING, MATRIX):
                self._error("binary expression must contain only scalar and instant vector types", token)
        if expr.op in _SET_OPS and SCALAR in (lhs_type, rhs_type):
            self._error(f"set operator {expr.op!r} not allowed in binary scalar expression", token)
        if expr.op in _COMPARISON_OPS and lhs_type == SCALAR and rhs_type == SCALAR and not expr.return_bool:
            self._error("comparisons between scalars must use BOOL modifier", token)
        if expr.matching is not None and SCALAR in (lhs_type, rhs_type):
            self._error("vector matching only allowed between instant vectors", token)
        return expr

    # Unary and primary expressions

    def _parse_unary(self) -> Expr:
        token = self._peek()
        if token.type in ("+", "-"):
            self._advance()
            operand = self._parse_expr(_UNARY_PRECEDENCE)
            if operand.value_type() not in (SCALAR, VECTOR):
                self._error("unary expression only allowed on expressions of type scalar or instant vector", token)
            if isinstance(operand, NumberLiteral):
                if token.type == "+":
                    return operand
                text = operand.text[1:] if operand.text.startswith("-") else "-" + operand.text
                return NumberLiteral(text)
            return UnaryExpr(token.type, operand)
        return self._parse_postfix(self._parse_primary())

    def _parse_primary(self) -> Expr:
        token = self._peek()

        if token.type == NUMBER:
            self._advance()
            return NumberLiteral(token.text)
        if token.type == STRING_TOKEN:
            self._advance()
            return StringLiteral(token.text)
        if token.type == "(":
            self._advance()
            expr = self._parse_expr(0)
            self._expect(")", "')'")
            return ParenExpr(expr)
        if token.type == "{":
            return self._parse_vector_selector(None)
        if token.type == IDENT:
            return self._parse_identifier()

        found = token.text or "end of input"
        self._error(f"unexpected {found!r}", token)

    def _parse_identifier(self) -> Expr:
        token = self._peek()
        word = token.text.lower()
        following = self._peek(1)

        if word in ("inf", "nan"):
            self._advance()
            return NumberLiteral(token.text)
        if word in _AGGREGATORS and (
            following.type == "(" or self._is_keyword(following, "by", "without")
        ):
            return self._parse_aggregate()
        if following.type == "(":
            return self._parse_call()
        if word in _KEYWORDS:
            self._error(f"unexpected keyword {token.text!r}", token)
        self._advance()
        return self._parse_vector_selector(token.text)

    def _parse_call(self) -> Call:
        token = self._advance()
        if token.text not in _FUNCTIONS:
            self._error(f"unknown function with name {token.text!r}", token)
        min_args, max_args, return_type = _FUNCTIONS[token.text]
        args = self._parse_args()
        if len(args) < min_args or (max_args >= 0 and len(args) > max_args):
            self._error(f"wrong number of arguments for function {token.text!r}", token)
        return Call(token.text, args, return_type)

    def _parse_args(self) -> List[Expr]:
        self._expect("(", "'('")
        args: List[Expr] = []
        while self._peek().type != ")":
            args.append(self._parse_expr(0))
            if self._peek().type == ",":
                self._advance()
            elif self._peek().type != ")":
                self._error(f"unexpected {self._peek().text or 'end of input'!r} in argument list")
        self._advance()
        return args

    def _parse_aggregate(self) -> AggregateExpr:
        token = self._advance()
        op = token.text.lower()
        grouping, without, has_grouping = [], False, False

        if self._is_keyword(self._peek(), "by", "without"):
            without = self._advance().text.lower() == "without"
            grouping = self._parse_label_list()
            has_grouping = True

        args = self._parse_args()

        if not has_grouping and self._is_keyword(self._peek(), "by", "without"):
            without = self._advance().text.lower() == "without"
            grouping = self._parse_label_list()

        expected = 2 if op in _PARAM_AGGREGATORS else 1
        if len(args) != expected:
            self._error(f"wrong number of arguments for aggregate expression {op!r}", token)
        if args[-1].value_type() != VECTOR:
            self._error(f"expected type instant vector in aggregation expression {op!r}", token)
        param = args[0] if expected == 2 else None
        return AggregateExpr(op, args[-1], param, grouping, without)

    def _parse_label_list(self) -> List[str]:
        self._expect("(", "'('")
        labels: List[str] = []
        while self._peek().type != ")":
            token = self._expect(IDENT, "label name")
            if not _LABEL_NAME_RE.match(token.text):
                self._error(f"invalid label name {token.text!r}", token)
            labels.append(token.text)
            if self._peek().type == ",":
                self._advance()
            elif self._peek().type != ")":
                self._error(f"unexpected {self._peek().text or 'end of input'!r} in grouping labels")
        self._advance()
        return labels

    def _parse_vector_selector(self, name: Optional[str]) -> VectorSelector:
        start = self._peek()
        matchers: List[LabelMatcher] = []

        if self._peek().type == "{":
            self._advance()
            while self._peek().type != "}":
                label = self._expect(IDENT, "label name")
                if not _LABEL_NAME_RE.match(label.text):
                    self._error(f"invalid label name {label.text!r}", label)
                op = self._peek()
                if op.type not in _MATCH_OPS:
                    self._error(f"expected label matching operator but found {op.text!r}", op)
                self._advance()
                value = self._expect(STRING_TOKEN, "label value string")
                matcher = LabelMatcher(label.text, op.type, value.text)
                if op.type in ("=~", "!~"):
                    try:
                        re2.compile(value.text)
                    except re2.error as e:
                        self._error(f"invalid regular expression {value.text!r}: {e}", value)
                matchers.append(matcher)
                if self._peek().type == ",":
                    self._advance()
                elif self._peek().type != "}":
                    self._error(f"unexpected {self._peek().text or 'end of input'!r} in label matching")
            self._advance()

        if name is not None and any(m.name == "__name__" for m in matchers):
            self._error(f"metric name must not be set twice: {name!r}", start)
        if name is None and all(_matches_empty(m) for m in matchers):
            self._error("vector selector must contain at least one non-empty matcher", start)
        return VectorSelector(name, matchers)

    # Range, offset and @ modifiers

    def _parse_postfix(self, expr: Expr) -> Expr:
        while True:
            token = self._peek()
            if token.type == "[":
                expr = self._parse_range(expr)
            elif self._is_keyword(token, "offset"):
                self._advance()
                sign = ""
                if self._peek().type == "-":
                    self._advance()
                    sign = "-"
                duration = self._expect(DURATION, "duration")
                target = self._modifiable(expr, token)
                if target.offset is not None:
                    self._error("offset may not be set multiple times", token)
                target.offset = sign + duration.text
            elif token.type == "@":
                self._advance()
                target = self._modifiable(expr, token)
                if target.at is not None:
                    self._error("@ <timestamp> may not be set multiple times", token)
                target.at = self._parse_at_value()
            else:
                return expr

    def _parse_range(self, expr: Expr) -> Expr:
        open_token = self._advance()
        range_text = self._expect(DURATION, "range duration").text

        if self._peek().type == ":":
            self._advance()
            step = None
            if self._peek().type == DURATION:
                step = self._advance().text
            self._expect("]", "']'")
            if expr.value_type() != VECTOR:
                self._error("subquery is only allowed on instant vector", open_token)
            return SubqueryExpr(expr, range_text, step)

        self._expect("]", "']'")
        if not isinstance(expr, VectorSelector):
            self._error("ranges only allowed for vector selectors", open_token)
        if expr.offset is not None or expr.at is not None:
            self._error("range must be placed before offset and @ modifiers", open_token)
        return MatrixSelector(expr, range_text)

    def _modifiable(self, expr: Expr, token: Token):
        if isinstance(expr, (VectorSelector, MatrixSelector, SubqueryExpr)):
            return expr
        self._error(
            "offset and @ modifiers must be preceded by a vector selector, range selector or subquery",
            token,
        )

    def _parse_at_value(self) -> str:
        token = self._peek()
        if token.type in ("+", "-"):
            self._advance()
            number = self._expect(NUMBER, "timestamp")
            return ("-" if token.type == "-" else "") + number.text
        if token.type == NUMBER:
            return self._advance().text
        if self._is_keyword(token, "start", "end") and self._peek(1).type == "(":
            self._advance()
            self._advance()
            self._expect(")", "')'")
            return f"{token.text.lower()}()"
        self._error("expected timestamp, start() or end() after @")


def parse(text: str) -> Expr:
    """Parse a PromQL expression, raising ExpressionError if it is invalid."""
    return Parser(text).parse()
