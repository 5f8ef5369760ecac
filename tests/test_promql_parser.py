"""Tests for the PromQL parser and canonical printer."""
import pytest

from gmp_operator.exceptions import ExpressionError
from gmp_operator.promql import parse, walk
from gmp_operator.promql.ast import (
    AggregateExpr,
    BinaryExpr,
    Call,
    MatrixSelector,
    NumberLiteral,
    SubqueryExpr,
    UnaryExpr,
    VectorSelector,
)
from gmp_operator.promql.lexer import DURATION, IDENT, NUMBER, tokenize


class TestLexer:
    """Tests for tokenization."""

    def test_duration_and_number(self):
        tokens = tokenize("rate(x[5m]) > 1.5")
        types = [t.type for t in tokens]
        assert types == [IDENT, "(", IDENT, "[", DURATION, "]", ")", ">", NUMBER, "EOF"]

    def test_subquery_colon(self):
        tokens = tokenize("x[5m:1m]")
        assert [t.text for t in tokens[:-1]] == ["x", "[", "5m", ":", "1m", "]"]

    def test_recording_rule_name_with_colons(self):
        tokens = tokenize("job:up:sum")
        assert tokens[0].type == IDENT
        assert tokens[0].text == "job:up:sum"

    def test_string_escapes(self):
        tokens = tokenize('"a\\"b\\n"')
        assert tokens[0].text == 'a"b\n'

    def test_raw_string(self):
        tokens = tokenize("`a\\d`")
        assert tokens[0].text == "a\\d"

    def test_comment_skipped(self):
        tokens = tokenize("up # the up metric")
        assert len(tokens) == 2

    def test_unterminated_string(self):
        with pytest.raises(ExpressionError):
            tokenize('up{job="x}')

    def test_bad_number(self):
        with pytest.raises(ExpressionError):
            tokenize("1abc")


class TestParser:
    """Tests for parsing into expression trees."""

    def test_vector_selector(self):
        expr = parse('up{job="api",instance!~"10\\\\..*"}')
        assert isinstance(expr, VectorSelector)
        assert expr.name == "up"
        assert [(m.name, m.op) for m in expr.matchers] == [("job", "="), ("instance", "!~")]

    def test_selector_without_name(self):
        expr = parse('{__name__="up"}')
        assert isinstance(expr, VectorSelector)
        assert expr.name is None

    def test_matrix_selector(self):
        expr = parse("rate(http_requests_total[5m])")
        assert isinstance(expr, Call)
        assert isinstance(expr.args[0], MatrixSelector)
        assert expr.args[0].range == "5m"

    def test_subquery(self):
        expr = parse("max_over_time(rate(x[1m])[30m:1m])")
        assert isinstance(expr.args[0], SubqueryExpr)
        assert expr.args[0].step == "1m"

    def test_precedence(self):
        expr = parse("a + b * c")
        assert isinstance(expr, BinaryExpr)
        assert expr.op == "+"
        assert isinstance(expr.rhs, BinaryExpr)
        assert expr.rhs.op == "*"

    def test_left_associative(self):
        expr = parse("a - b - c")
        assert expr.op == "-"
        assert isinstance(expr.lhs, BinaryExpr)

    def test_power_right_associative(self):
        expr = parse("2 ^ 3 ^ 2")
        assert isinstance(expr.rhs, BinaryExpr)
        assert str(expr.lhs) == "2"

    def test_unary_binds_weaker_than_power(self):
        expr = parse("-a ^ b")
        assert isinstance(expr, UnaryExpr)
        assert isinstance(expr.expr, BinaryExpr)

    def test_negative_number(self):
        expr = parse("-1")
        assert isinstance(expr, NumberLiteral)
        assert expr.text == "-1"

    def test_aggregation_suffix_grouping(self):
        expr = parse("sum(rate(x[5m])) by (job, instance)")
        assert isinstance(expr, AggregateExpr)
        assert expr.grouping == ["job", "instance"]
        assert not expr.without

    def test_aggregation_with_parameter(self):
        expr = parse("topk(5, x)")
        assert str(expr.param) == "5"

    def test_walk_finds_all_selectors(self):
        expr = parse("a / on(instance) group_left(job) sum by(instance) (b) + rate(c[5m])")
        names = [n.name for n in walk(expr) if isinstance(n, VectorSelector)]
        assert sorted(names) == ["a", "b", "c"]

    def test_re2_regex_accepted(self):
        expr = parse('up{job=~"\\\\p{L}+"}')
        assert expr.matchers[0].value == "\\p{L}+"

    def test_grouping_without_labels_reparses(self):
        printed = str(parse("a * ignoring() group_left(x) b"))
        matching = parse(printed).matching
        assert matching is not None
        assert (matching.on, matching.labels, matching.card, matching.include) == (False, [], "many-to-one", ["x"])

    def test_metric_named_like_keyword_prefix(self):
        expr = parse("summary_total")
        assert isinstance(expr, VectorSelector)

    @pytest.mark.parametrize("text", [
        "",
        "sum(",
        "up{",
        "{}",
        '{job=~".*"}',
        'up{__name__="x"}',
        'up{job=~"("}',
        "unknown_function(up)",
        "1 > 2",
        "1 and up",
        "sum(up, down)",
        "rate(x[5m])[1m]",
        "x offset 5m offset 1m",
        "up + ",
        "up up",
        "sum by (job",
        "up and group_left(a) down",
        "(up",
        'up{job=~"(?=a)b"}',
    ])
    def test_invalid(self, text):
        with pytest.raises(ExpressionError):
            parse(text)

    def test_error_position(self):
        with pytest.raises(ExpressionError) as exc_info:
            parse("sum(up) +* 2")
        assert exc_info.value.position == 9


class TestPrinter:
    """Tests for the canonical text form."""

    @pytest.mark.parametrize("text,expected", [
        ("up", "up"),
        ('up{job="api"}', 'up{job="api"}'),
        ("sum(up) by (job)", "sum by(job) (up)"),
        ("sum without (instance) (up)", "sum without(instance) (up)"),
        ("topk(5,up)", "topk(5, up)"),
        ("rate(x[5m])", "rate(x[5m])"),
        ("x[5m:]", "x[5m:]"),
        ("x offset 5m", "x offset 5m"),
        ("x @ 1609746000", "x @ 1609746000"),
        ("x @ start()", "x @ start()"),
        ("up > bool 1", "up > bool 1"),
        ("a / on(instance) group_left(job) b", "a / on(instance) group_left(job) b"),
        ("a and ignoring(x) b", "a and ignoring(x) b"),
        ("a * ignoring() group_left(x) b", "a * ignoring() group_left(x) b"),
        ("a * ignoring() group_right b", "a * ignoring() group_right() b"),
        ("a and ignoring() b", "a and b"),
        ("(a + b) * c", "(a + b) * c"),
        ('label_replace(up, "dst", "$1", "src", "(.*)")', 'label_replace(up, "dst", "$1", "src", "(.*)")'),
        ("count_values('version', build_info)", 'count_values("version", build_info)'),
        ("-up", "-up"),
        ("vector(1)", "vector(1)"),
    ])
    def test_canonical_form(self, text, expected):
        assert str(parse(text)) == expected

    def test_printed_form_reparses_identically(self):
        text = 'histogram_quantile(0.9, sum by(le) (rate(http_request_duration_seconds_bucket{job="api"}[5m])))'
        first = str(parse(text))
        assert str(parse(first)) == first

    def test_string_escaping(self):
        assert str(parse('up{path="a\\"b"}')) == 'up{path="a\\"b"}'
