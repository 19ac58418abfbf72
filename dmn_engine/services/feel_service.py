"""
FEEL expression engine.

The model engine talks to FEEL only through the FeelEngine interface:
compile an expression (or a list of unary tests) once, then evaluate the
compiled object against a scope. SimpleFeelEngine is the engine shipped with
the project. It covers literals, names (including names with spaces), path
access, arithmetic, comparisons with null semantics, if/then/else, in,
between, lists, contexts, ranges, function invocation and a small built-in
library. Iteration, quantifiers and temporal arithmetic are not supported.

Values use the FEEL value space: None, bool, Decimal, str, date, time,
datetime, timedelta, list, dict and FeelFunction.
"""

import datetime
import decimal
import logging
import math
import operator
import re
from collections import ChainMap
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, NamedTuple, Optional, Protocol

from dmn_engine.errors import EvaluationError, ExpressionError

logger = logging.getLogger(__name__)

Scope = Mapping[str, Any]
CompiledExpression = Callable[[Scope], Any]
CompiledUnaryTests = Callable[[Any, Scope], bool]

# FEEL numbers are IEEE 754-2008 Decimal128: 34 significant digits
FEEL_DECIMAL = decimal.Context(prec=34, rounding=decimal.ROUND_HALF_EVEN)


class FeelEngine(Protocol):
    """Capability interface of an expression engine."""

    def compile_expression(self, text: str, names: Iterable[str] = ()) -> CompiledExpression:
        ...

    def compile_unary_tests(self, text: str, names: Iterable[str] = ()) -> CompiledUnaryTests:
        ...


# -----------------------------------------------------------------------------
# Value helpers
# -----------------------------------------------------------------------------


class Range:
    """Interval value produced by [a..b], (a..b), ]a..b[ and friends."""

    __slots__ = ("start", "end", "start_closed", "end_closed")

    def __init__(self, start: Any, end: Any, start_closed: bool, end_closed: bool):
        self.start = start
        self.end = end
        self.start_closed = start_closed
        self.end_closed = end_closed

    def contains(self, value: Any) -> bool:
        low = compare(">=" if self.start_closed else ">", value, self.start)
        high = compare("<=" if self.end_closed else "<", value, self.end)
        return low is True and high is True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Range):
            return NotImplemented
        return (self.start, self.end, self.start_closed, self.end_closed) == (
            other.start,
            other.end,
            other.start_closed,
            other.end_closed,
        )

    def __repr__(self) -> str:
        left = "[" if self.start_closed else "("
        right = "]" if self.end_closed else ")"
        return f"{left}{self.start!r}..{self.end!r}{right}"


class FeelFunction:
    """Callable FEEL value: a built-in, a BKM or a decision service."""

    __slots__ = ("name", "parameters", "variadic", "_body")

    def __init__(
        self,
        name: str,
        parameters: list[str],
        body: Callable[..., Any],
        variadic: bool = False,
    ):
        self.name = name
        self.parameters = parameters
        self.variadic = variadic
        self._body = body

    def invoke(self, args: list[Any], kwargs: Optional[dict[str, Any]] = None) -> Any:
        kwargs = kwargs or {}
        if self.variadic:
            return self._body(list(kwargs.values()) if kwargs else args)
        if len(args) > len(self.parameters):
            raise ExpressionError(
                f"function '{self.name}' expects {len(self.parameters)} arguments, got {len(args)}"
            )
        bound: dict[str, Any] = dict.fromkeys(self.parameters)
        bound.update(zip(self.parameters, args))
        for key, value in kwargs.items():
            if key not in bound:
                raise ExpressionError(f"function '{self.name}' has no parameter '{key}'")
            bound[key] = value
        return self._body(bound)

    def __repr__(self) -> str:
        return f"FeelFunction({self.name}({', '.join(self.parameters)}))"


def to_feel(value: Any) -> Any:
    """Normalise a Python value into the FEEL value space."""
    if value is None or isinstance(value, (bool, Decimal, str)):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return Decimal(repr(value))
    if isinstance(value, (list, tuple)):
        return [to_feel(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): to_feel(v) for k, v in value.items()}
    return value


def is_number(value: Any) -> bool:
    return isinstance(value, (Decimal, int, float)) and not isinstance(value, bool)


def _dec(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def kind_of(value: Any) -> Optional[str]:
    """FEEL type family of a value, used for equality and ordering."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, datetime.datetime):
        return "date and time"
    if isinstance(value, datetime.date):
        return "date"
    if isinstance(value, datetime.time):
        return "time"
    if isinstance(value, datetime.timedelta):
        return "duration"
    if isinstance(value, list):
        return "list"
    if isinstance(value, dict):
        return "context"
    if isinstance(value, Range):
        return "range"
    if isinstance(value, FeelFunction):
        return "function"
    return type(value).__name__


def feel_equal(a: Any, b: Any) -> Optional[bool]:
    """FEEL '=': null only equals null, mismatched types give null."""
    if a is None or b is None:
        return a is None and b is None
    ka, kb = kind_of(a), kind_of(b)
    if ka != kb:
        return None
    if ka == "number":
        return _dec(a) == _dec(b)
    if ka == "list":
        if len(a) != len(b):
            return False
        return all(feel_equal(x, y) is True for x, y in zip(a, b))
    if ka == "context":
        if a.keys() != b.keys():
            return False
        return all(feel_equal(a[k], b[k]) is True for k in a)
    return a == b


_ORDERABLE = {"number", "string", "date", "time", "date and time", "duration"}

_ORDERING = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def compare(op: str, a: Any, b: Any) -> Optional[bool]:
    """FEEL comparison; incomparable operands give null."""
    if op == "=":
        return feel_equal(a, b)
    if op == "!=":
        result = feel_equal(a, b)
        return None if result is None else not result
    if a is None or b is None:
        return None
    ka = kind_of(a)
    if ka != kind_of(b) or ka not in _ORDERABLE:
        return None
    if ka == "number":
        a, b = _dec(a), _dec(b)
    try:
        return _ORDERING[op](a, b)
    except TypeError:
        # naive vs aware datetimes and times
        return None


def _arithmetic(op: str, a: Any, b: Any) -> Any:
    if a is None or b is None:
        return None
    if is_number(a) and is_number(b):
        a, b = _dec(a), _dec(b)
        try:
            if op == "+":
                return FEEL_DECIMAL.add(a, b)
            if op == "-":
                return FEEL_DECIMAL.subtract(a, b)
            if op == "*":
                return FEEL_DECIMAL.multiply(a, b)
            if op == "/":
                if b == 0:
                    return None
                return FEEL_DECIMAL.divide(a, b)
            if op == "**":
                return FEEL_DECIMAL.power(a, b)
        except decimal.DecimalException:
            return None
    if op == "+" and isinstance(a, str) and isinstance(b, str):
        return a + b
    if op in ("+", "-") and kind_of(a) in ("date", "date and time", "time", "duration"):
        try:
            return a + b if op == "+" else a - b
        except TypeError:
            return None
    return None


def _negate(value: Any) -> Any:
    if is_number(value):
        return FEEL_DECIMAL.minus(_dec(value))
    if isinstance(value, datetime.timedelta):
        return -value
    return None


def _conjunction(a: Any, b: Any) -> Optional[bool]:
    if a is False or b is False:
        return False
    if a is True and b is True:
        return True
    return None


def _disjunction(a: Any, b: Any) -> Optional[bool]:
    if a is True or b is True:
        return True
    if a is False and b is False:
        return False
    return None


def _matches(value: Any, test_result: Any) -> bool:
    """Apply the result of a positive unary test expression to the input value."""
    if isinstance(test_result, Range):
        return test_result.contains(value)
    if feel_equal(value, test_result) is True:
        return True
    if isinstance(test_result, list):
        return any(_matches(value, item) for item in test_result)
    if isinstance(test_result, bool) and not isinstance(value, bool):
        return test_result
    return False


def _input_test(value: Any, test_result: Any) -> bool:
    """Result of a unary test expression that reads the input value through "?"."""
    if isinstance(test_result, bool):
        return test_result
    return _matches(value, test_result)


def format_number(value: Decimal) -> str:
    text = format(value.normalize(FEEL_DECIMAL), "f")
    return "0" if text in ("-0", "") else text


# -----------------------------------------------------------------------------
# Built-in functions
# -----------------------------------------------------------------------------


def _items(args: list[Any]) -> list[Any]:
    if len(args) == 1 and isinstance(args[0], list):
        return args[0]
    return args


def _numbers(args: list[Any]) -> Optional[list[Decimal]]:
    items = _items(args)
    if not items or not all(is_number(v) for v in items):
        return None
    return [_dec(v) for v in items]


def _sum(args: list[Any]) -> Any:
    values = _numbers(args)
    if values is None:
        return None
    total = Decimal(0)
    for v in values:
        total = FEEL_DECIMAL.add(total, v)
    return total


def _mean(args: list[Any]) -> Any:
    total = _sum(args)
    if total is None:
        return None
    return FEEL_DECIMAL.divide(total, Decimal(len(_items(args))))


def _extreme(pick: Callable[..., Any]) -> Callable[[list[Any]], Any]:
    def apply(args: list[Any]) -> Any:
        items = _items(args)
        if not items:
            return None
        kind = kind_of(items[0])
        if kind not in _ORDERABLE or any(kind_of(v) != kind for v in items):
            return None
        if kind == "number":
            items = [_dec(v) for v in items]
        return pick(items)

    return apply


def _string(arg: dict[str, Any]) -> Any:
    value = arg["from"]
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return format_number(_dec(value))
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    return str(value)


def _number(arg: dict[str, Any]) -> Any:
    value = arg["from"]
    if is_number(value):
        return _dec(value)
    if not isinstance(value, str):
        return None
    try:
        return Decimal(value.strip())
    except decimal.InvalidOperation:
        return None


def _numeric(fn: Callable[[Decimal], Any]) -> Callable[[dict[str, Any]], Any]:
    def apply(arg: dict[str, Any]) -> Any:
        value = arg["n"]
        return fn(_dec(value)) if is_number(value) else None

    return apply


def _text(fn: Callable[..., Any], *names: str) -> Callable[[dict[str, Any]], Any]:
    def apply(arg: dict[str, Any]) -> Any:
        values = [arg[n] for n in names]
        if not all(isinstance(v, str) for v in values):
            return None
        return fn(*values)

    return apply


def _parse_temporal(parse: Callable[[str], Any]) -> Callable[[dict[str, Any]], Any]:
    def apply(arg: dict[str, Any]) -> Any:
        value = arg["from"]
        if not isinstance(value, str):
            return None
        try:
            return parse(value.strip())
        except ValueError:
            return None

    return apply


_DURATION_RE = re.compile(
    r"^(-)?P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+(?:\.\d+)?)S)?)?$"
)


def parse_duration(text: str) -> datetime.timedelta:
    match = _DURATION_RE.match(text)
    if not match or text in ("P", "-P") or text.endswith("T"):
        raise ValueError(f"invalid days and time duration '{text}'")
    sign, days, hours, minutes, seconds = match.groups()
    delta = datetime.timedelta(
        days=int(days or 0),
        hours=int(hours or 0),
        minutes=int(minutes or 0),
        seconds=float(seconds or 0),
    )
    return -delta if sign else delta


def _not(arg: dict[str, Any]) -> Any:
    value = arg["negand"]
    return (not value) if isinstance(value, bool) else None


BUILTINS: dict[str, FeelFunction] = {
    "not": FeelFunction("not", ["negand"], _not),
    "sum": FeelFunction("sum", ["list"], _sum, variadic=True),
    "count": FeelFunction(
        "count", ["list"], lambda args: Decimal(len(_items(args))), variadic=True
    ),
    "min": FeelFunction("min", ["list"], _extreme(min), variadic=True),
    "max": FeelFunction("max", ["list"], _extreme(max), variadic=True),
    "mean": FeelFunction("mean", ["list"], _mean, variadic=True),
    "abs": FeelFunction("abs", ["n"], _numeric(abs)),
    "floor": FeelFunction(
        "floor", ["n"], _numeric(lambda n: n.to_integral_value(rounding=decimal.ROUND_FLOOR))
    ),
    "ceiling": FeelFunction(
        "ceiling", ["n"], _numeric(lambda n: n.to_integral_value(rounding=decimal.ROUND_CEILING))
    ),
    "string": FeelFunction("string", ["from"], _string),
    "number": FeelFunction("number", ["from"], _number),
    "string length": FeelFunction(
        "string length", ["string"], _text(lambda s: Decimal(len(s)), "string")
    ),
    "upper case": FeelFunction("upper case", ["string"], _text(str.upper, "string")),
    "lower case": FeelFunction("lower case", ["string"], _text(str.lower, "string")),
    "contains": FeelFunction(
        "contains", ["string", "match"], _text(lambda s, m: m in s, "string", "match")
    ),
    "date": FeelFunction("date", ["from"], _parse_temporal(datetime.date.fromisoformat)),
    "time": FeelFunction("time", ["from"], _parse_temporal(datetime.time.fromisoformat)),
    "date and time": FeelFunction(
        "date and time", ["from"], _parse_temporal(datetime.datetime.fromisoformat)
    ),
    "duration": FeelFunction("duration", ["from"], _parse_temporal(parse_duration)),
}


# -----------------------------------------------------------------------------
# Lexer
# -----------------------------------------------------------------------------


class _Token(NamedTuple):
    kind: str
    value: str
    offset: int


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>\d+(?:\.\d+)?|\.\d+)
  | (?P<string>"(?:[^"\\]|\\.)*")
  | (?P<op>\.\.|\*\*|<=|>=|!=|[-+*/=<>()\[\]{},:.?])
  | (?P<word>[^\W\d]\w*)
    """,
    re.VERBOSE,
)

_ESCAPE_RE = re.compile(r"\\(u[0-9a-fA-F]{4}|.)")
_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", '"': '"', "\\": "\\", "'": "'"}

_END = _Token("end", "", -1)


def _unescape(literal: str) -> str:
    def replace(match: re.Match) -> str:
        code = match.group(1)
        if code.startswith("u") and len(code) == 5:
            return chr(int(code[1:], 16))
        return _ESCAPES.get(code, code)

    return _ESCAPE_RE.sub(replace, literal[1:-1])


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match:
            raise ExpressionError(f"unexpected character '{text[pos]}' at offset {pos}")
        kind = match.lastgroup
        if kind != "ws":
            value = match.group()
            if kind == "string":
                value = _unescape(value)
            tokens.append(_Token(kind, value, pos))
        pos = match.end()
    return tokens


# -----------------------------------------------------------------------------
# Parser: compiles directly into closures over a scope
# -----------------------------------------------------------------------------


class _NameIndex:
    """Known variable names split into words, for names containing spaces."""

    def __init__(self, names: Iterable[str]):
        self.full: set[tuple[str, ...]] = set()
        self.prefixes: set[tuple[str, ...]] = set()
        for name in names:
            self.add(name)

    def add(self, name: str) -> None:
        words = tuple(name.split())
        if not words:
            return
        self.full.add(words)
        for i in range(1, len(words) + 1):
            self.prefixes.add(words[:i])


_COMPARISONS = ("=", "!=", "<", "<=", ">", ">=")
_RESERVED = {"and", "or", "then", "else", "in", "between"}
_UNSUPPORTED = {"for", "some", "every", "function", "instance", "satisfies", "return"}


class _Parser:
    def __init__(self, text: str, names: _NameIndex):
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0
        self.names = names
        # Set when the expression being parsed references the input value "?"
        self.reads_input = False

    # token helpers

    def peek(self, offset: int = 0) -> _Token:
        index = self.pos + offset
        return self.tokens[index] if index < len(self.tokens) else _END

    def at_op(self, *values: str) -> bool:
        tok = self.peek()
        return tok.kind == "op" and tok.value in values

    def at_word(self, *values: str) -> bool:
        tok = self.peek()
        return tok.kind == "word" and tok.value in values

    def expect_op(self, value: str) -> None:
        if not self.at_op(value):
            raise self.error(f"expected '{value}'")
        self.pos += 1

    def expect_word(self, value: str) -> None:
        if not self.at_word(value):
            raise self.error(f"expected '{value}'")
        self.pos += 1

    def expect_end(self) -> None:
        if self.peek() is not _END:
            raise self.error("unexpected trailing input")

    def error(self, reason: str) -> ExpressionError:
        tok = self.peek()
        where = "end of input" if tok is _END else f"'{tok.value}' at offset {tok.offset}"
        return ExpressionError(f"cannot parse '{self.text}': {reason} near {where}")

    def read_name(self) -> str:
        """Read the longest run of words forming a known name (at least one word)."""
        words: list[str] = []
        best = 1
        offset = 0
        while self.peek(offset).kind == "word":
            words.append(self.peek(offset).value)
            key = tuple(words)
            if key not in self.names.prefixes:
                break
            if key in self.names.full:
                best = len(words)
            offset += 1
        name = " ".join(w.value for w in self.tokens[self.pos:self.pos + best])
        self.pos += best
        return name

    def read_key(self) -> str:
        """Read a context key or named argument: a string or words up to ':'."""
        tok = self.peek()
        if tok.kind == "string":
            self.pos += 1
            return tok.value
        words = []
        while self.peek().kind == "word":
            words.append(self.peek().value)
            self.pos += 1
        if not words:
            raise self.error("expected a name")
        return " ".join(words)

    # grammar

    def expression(self) -> CompiledExpression:
        if self.at_word("if"):
            self.pos += 1
            condition = self.expression()
            self.expect_word("then")
            then_branch = self.expression()
            self.expect_word("else")
            else_branch = self.expression()
            return lambda s: then_branch(s) if condition(s) is True else else_branch(s)
        return self.disjunction()

    def disjunction(self) -> CompiledExpression:
        left = self.conjunction()
        while self.at_word("or"):
            self.pos += 1
            right = self.conjunction()
            left = (lambda l, r: lambda s: _disjunction(l(s), r(s)))(left, right)
        return left

    def conjunction(self) -> CompiledExpression:
        left = self.comparison()
        while self.at_word("and"):
            self.pos += 1
            right = self.comparison()
            left = (lambda l, r: lambda s: _conjunction(l(s), r(s)))(left, right)
        return left

    def comparison(self) -> CompiledExpression:
        left = self.additive()
        if self.at_op(*_COMPARISONS):
            op = self.peek().value
            self.pos += 1
            right = self.additive()
            return lambda s: compare(op, left(s), right(s))
        if self.at_word("between"):
            self.pos += 1
            low = self.additive()
            self.expect_word("and")
            high = self.additive()

            def between(s: Scope) -> Any:
                value = left(s)
                return _conjunction(compare(">=", value, low(s)), compare("<=", value, high(s)))

            return between
        if self.at_word("in"):
            self.pos += 1
            test = self.in_target()
            return lambda s: test(left(s), s)
        return left

    def in_target(self) -> CompiledUnaryTests:
        if self.at_op("("):
            saved = self.pos
            try:
                test = self.positive_unary_test()
                if not self.at_op(","):
                    return test
            except ExpressionError:
                pass
            self.pos = saved + 1
            tests = self.positive_unary_tests()
            self.expect_op(")")
            return tests
        return self.positive_unary_test()

    def additive(self) -> CompiledExpression:
        left = self.multiplicative()
        while self.at_op("+", "-"):
            op = self.peek().value
            self.pos += 1
            right = self.multiplicative()
            left = (lambda o, l, r: lambda s: _arithmetic(o, l(s), r(s)))(op, left, right)
        return left

    def multiplicative(self) -> CompiledExpression:
        left = self.power()
        while self.at_op("*", "/"):
            op = self.peek().value
            self.pos += 1
            right = self.power()
            left = (lambda o, l, r: lambda s: _arithmetic(o, l(s), r(s)))(op, left, right)
        return left

    def power(self) -> CompiledExpression:
        left = self.unary()
        while self.at_op("**"):
            self.pos += 1
            right = self.unary()
            left = (lambda l, r: lambda s: _arithmetic("**", l(s), r(s)))(left, right)
        return left

    def unary(self) -> CompiledExpression:
        if self.at_op("-"):
            self.pos += 1
            operand = self.unary()
            return lambda s: _negate(operand(s))
        return self.postfix()

    def postfix(self) -> CompiledExpression:
        node, name = self.primary()
        while True:
            if self.at_op("."):
                self.pos += 1
                if self.peek().kind != "word":
                    raise self.error("expected a name after '.'")
                member = self.read_name()
                node = (lambda n, m: lambda s: _member(n(s), m))(node, member)
            elif self.at_op("("):
                node = self.invocation(node, name)
            elif self.at_op("["):
                self.pos += 1
                condition = self.expression()
                self.expect_op("]")
                node = (lambda n, c: lambda s: _filter(n(s), c, s))(node, condition)
            else:
                return node
            name = None

    def invocation(self, callee: CompiledExpression, name: Optional[str]) -> CompiledExpression:
        self.expect_op("(")
        positional: list[CompiledExpression] = []
        named: list[tuple[str, CompiledExpression]] = []
        if not self.at_op(")"):
            while True:
                if self._at_named_argument():
                    key = self.read_key()
                    self.expect_op(":")
                    named.append((key, self.expression()))
                else:
                    positional.append(self.expression())
                if not self.at_op(","):
                    break
                self.pos += 1
        self.expect_op(")")
        if positional and named:
            raise self.error("positional and named arguments cannot be mixed")
        label = name or "expression"

        def call(s: Scope) -> Any:
            if name is not None and name not in s:
                fn = BUILTINS.get(name)
            else:
                fn = callee(s)
            if not isinstance(fn, FeelFunction):
                raise ExpressionError(f"'{label}' is not a function")
            return fn.invoke([a(s) for a in positional], {k: e(s) for k, e in named})

        return call

    def _at_named_argument(self) -> bool:
        offset = 0
        if self.peek().kind == "string":
            return False
        while self.peek(offset).kind == "word":
            offset += 1
        return offset > 0 and self.peek(offset).kind == "op" and self.peek(offset).value == ":"

    def primary(self) -> tuple[CompiledExpression, Optional[str]]:
        tok = self.peek()
        if tok.kind == "number":
            self.pos += 1
            number = Decimal(tok.value)
            return (lambda s: number), None
        if tok.kind == "string":
            self.pos += 1
            text = tok.value
            return (lambda s: text), None
        if tok.kind == "op":
            if tok.value == "?":
                self.pos += 1
                self.reads_input = True
                return (lambda s: s.get("?")), None
            if tok.value in ("(", "[", "]"):
                return self.bracketed(), None
            if tok.value == "{":
                return self.context(), None
            raise self.error("unexpected operator")
        if tok.kind == "word":
            if tok.value in ("true", "false"):
                self.pos += 1
                flag = tok.value == "true"
                return (lambda s: flag), None
            if tok.value == "null":
                self.pos += 1
                return (lambda s: None), None
            if tok.value in _UNSUPPORTED:
                raise self.error(f"'{tok.value}' expressions are not supported")
            if tok.value in _RESERVED:
                raise self.error("unexpected keyword")
            name = self.read_name()
            return (lambda s: s.get(name)), name
        raise self.error("unexpected end of expression")

    def bracketed(self) -> CompiledExpression:
        opener = self.peek().value
        self.pos += 1
        if opener == "[" and self.at_op("]"):
            self.pos += 1
            return lambda s: []
        first = self.expression()
        if self.at_op(".."):
            self.pos += 1
            last = self.expression()
            if not self.at_op("]", ")", "["):
                raise self.error("expected end of range")
            closer = self.peek().value
            self.pos += 1
            start_closed = opener == "["
            end_closed = closer == "]"
            return lambda s: Range(first(s), last(s), start_closed, end_closed)
        if opener == "(":
            self.expect_op(")")
            return first
        if opener == "]":
            raise self.error("expected '..'")
        items = [first]
        while self.at_op(","):
            self.pos += 1
            items.append(self.expression())
        self.expect_op("]")
        return lambda s: [item(s) for item in items]

    def context(self) -> CompiledExpression:
        self.expect_op("{")
        entries: list[tuple[str, CompiledExpression]] = []
        if not self.at_op("}"):
            while True:
                key = self.read_key()
                self.names.add(key)
                self.expect_op(":")
                entries.append((key, self.expression()))
                if not self.at_op(","):
                    break
                self.pos += 1
        self.expect_op("}")

        def build(s: Scope) -> dict[str, Any]:
            result: dict[str, Any] = {}
            local = ChainMap(result, s)
            for key, value in entries:
                result[key] = value(local)
            return result

        return build

    # unary tests

    def positive_unary_test(self) -> CompiledUnaryTests:
        if self.at_op("<", "<=", ">", ">=", "=", "!="):
            op = self.peek().value
            self.pos += 1
            endpoint = self.additive()
            return lambda v, s: compare(op, v, endpoint(s)) is True
        self.reads_input = False
        test = self.expression()
        if self.reads_input:
            return lambda v, s: _input_test(v, test(ChainMap({"?": v}, s)))
        return lambda v, s: _matches(v, test(ChainMap({"?": v}, s)))

    def positive_unary_tests(self) -> CompiledUnaryTests:
        tests = [self.positive_unary_test()]
        while self.at_op(","):
            self.pos += 1
            tests.append(self.positive_unary_test())
        if len(tests) == 1:
            return tests[0]
        return lambda v, s: any(t(v, s) for t in tests)


def _member(value: Any, name: str) -> Any:
    if isinstance(value, dict):
        return value.get(name)
    if isinstance(value, list):
        return [_member(item, name) for item in value]
    if isinstance(value, (datetime.date, datetime.time)) and name in (
        "year",
        "month",
        "day",
        "hour",
        "minute",
        "second",
    ):
        part = getattr(value, name, None)
        return Decimal(part) if part is not None else None
    return None


def _filter(value: Any, condition: CompiledExpression, scope: Scope) -> Any:
    if value is None:
        return None
    items = value if isinstance(value, list) else [value]
    index = condition(scope)
    if is_number(index):
        position = int(_dec(index))
        if position > 0 and position <= len(items):
            return items[position - 1]
        if position < 0 and -position <= len(items):
            return items[position]
        return None
    selected = []
    for item in items:
        entries = item if isinstance(item, dict) else {}
        if condition(ChainMap({"item": item}, entries, scope)) is True:
            selected.append(item)
    return selected


# -----------------------------------------------------------------------------
# Engine
# -----------------------------------------------------------------------------


class SimpleFeelEngine:
    """FeelEngine implementation compiling FEEL text into Python closures."""

    def _parser(self, text: str, names: Iterable[str]) -> _Parser:
        return _Parser(text, _NameIndex([*BUILTINS, *names]))

    def compile_expression(self, text: str, names: Iterable[str] = ()) -> CompiledExpression:
        if not text or not text.strip():
            raise ExpressionError("empty expression")
        parser = self._parser(text.strip(), names)
        compiled = parser.expression()
        parser.expect_end()
        return _guarded(text, compiled)

    def compile_unary_tests(self, text: str, names: Iterable[str] = ()) -> CompiledUnaryTests:
        stripped = (text or "").strip()
        if stripped in ("", "-"):
            return lambda value, scope: True
        parser = self._parser(stripped, names)
        negated = parser.at_word("not") and parser.peek(1).kind == "op" and parser.peek(1).value == "("
        if negated:
            parser.pos += 2
        tests = parser.positive_unary_tests()
        if negated:
            parser.expect_op(")")
        parser.expect_end()
        if negated:
            inner = tests
            tests = lambda v, s: not inner(v, s)
        return _guarded_tests(stripped, tests)


def _guarded(text: str, compiled: CompiledExpression) -> CompiledExpression:
    def evaluate(scope: Scope) -> Any:
        try:
            return compiled(scope)
        except EvaluationError:
            raise
        except (ArithmeticError, TypeError, ValueError, RecursionError) as exc:
            raise ExpressionError(f"evaluating '{text}' failed: {exc}") from exc

    return evaluate


def _guarded_tests(text: str, tests: CompiledUnaryTests) -> CompiledUnaryTests:
    def evaluate(value: Any, scope: Scope) -> bool:
        try:
            return tests(value, scope)
        except EvaluationError:
            raise
        except (ArithmeticError, TypeError, ValueError, RecursionError) as exc:
            raise ExpressionError(f"evaluating unary tests '{text}' failed: {exc}") from exc

    return evaluate


_default_engine = SimpleFeelEngine()


def get_default_engine() -> FeelEngine:
    return _default_engine
