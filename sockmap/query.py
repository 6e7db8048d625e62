"""Filter expressions over inventory records.

Examples::

    pid=1234 && proto=tcp
    (lport=80 || lport=443) && !state=TIME_WAIT
    process=chrom* OR raddr="10.0.0.5"

Comparisons on strings are case-insensitive and ``*`` is a wildcard when
used with ``=`` (``:`` is an alias for ``=``).
"""
from __future__ import annotations
import operator
import re
from typing import Callable, Iterable, List, NamedTuple, Optional, Union

from .errors import QueryError
from .models import ConnectionRecord

Predicate = Callable[[ConnectionRecord], bool]
Value = Union[int, str]

TOKEN_RE = re.compile(r"""
    (?P<lparen>\() | (?P<rparen>\)) |
    (?P<and>&&) | (?P<or>\|\|) |
    (?P<op>!=|>=|<=|==|=|>|<|:) |
    (?P<not>!) |
    (?P<string>"[^"]*"|'[^']*') |
    (?P<word>[A-Za-z0-9_*][A-Za-z0-9_*.\-]*)
""", re.VERBOSE)


class Token(NamedTuple):
    kind: str  # lparen rparen and or op not string number word eof
    value: Value = ""


def _wildcard_address(r: ConnectionRecord) -> str:
    return "[::]" if "6" in r.protocol else "0.0.0.0"


FIELDS = {
    "pid": lambda r: r.pid,
    "proto": lambda r: r.protocol,
    "protocol": lambda r: r.protocol,
    "state": lambda r: r.state,
    "process": lambda r: r.process_name,
    "name": lambda r: r.process_name,
    "processname": lambda r: r.process_name,
    "lport": lambda r: r.local.port,
    "localport": lambda r: r.local.port,
    "rport": lambda r: r.remote.port,
    "remoteport": lambda r: r.remote.port,
    "laddr": lambda r: r.local.address or _wildcard_address(r),
    "localaddress": lambda r: r.local.address or _wildcard_address(r),
    "local": lambda r: r.local.address or _wildcard_address(r),
    "raddr": lambda r: r.remote.address or _wildcard_address(r),
    "remoteaddress": lambda r: r.remote.address or _wildcard_address(r),
    "remote": lambda r: r.remote.address or _wildcard_address(r),
}

# parentheses and "!" nest the parser and the compiled predicate
MAX_DEPTH = 64

ORDERING = {">": operator.gt, "<": operator.lt, ">=": operator.ge, "<=": operator.le}


def tokenize(text: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(text):
        if text[pos].isspace():
            pos += 1
            continue
        m = TOKEN_RE.match(text, pos)
        if not m:
            # stray character
            pos += 1
            continue
        pos = m.end()
        kind = m.lastgroup
        raw = m.group(kind)
        if kind == "string":
            tokens.append(Token("string", raw[1:-1]))
        elif kind == "word":
            if raw.upper() == "AND":
                tokens.append(Token("and"))
            elif raw.upper() == "OR":
                tokens.append(Token("or"))
            elif raw.isdigit():
                tokens.append(Token("number", int(raw)))
            else:
                tokens.append(Token("word", raw))
        elif kind == "op":
            tokens.append(Token("op", "=" if raw in ("==", ":") else raw))
        else:
            tokens.append(Token(kind))
    tokens.append(Token("eof"))
    return tokens


def compare(actual, op: str, expected: Value) -> bool:
    if isinstance(expected, str):
        have, want = str(actual).lower(), expected.lower()
        if op == "=" and "*" in want:
            pattern = ".*".join(re.escape(part) for part in want.split("*"))
            return re.fullmatch(pattern, have) is not None
    else:
        if isinstance(actual, str):
            try:
                actual = int(actual)
            except ValueError:
                return op == "!="
        have, want = actual, expected
    if op == "=":
        return have == want
    if op == "!=":
        return have != want
    return ORDERING[op](have, want)


class _Parser:
    def __init__(self, text: str):
        self.tokens = tokenize(text)
        self.pos = 0
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def eat(self, kind: str) -> Token:
        tok = self.current
        if tok.kind != kind:
            raise QueryError(f"unexpected {tok.kind} at token {self.pos}, expected {kind}")
        self.pos += 1
        return tok

    def parse(self) -> Predicate:
        node = self.expression()
        self.eat("eof")
        return node

    def expression(self) -> Predicate:
        terms = [self.and_term()]
        while self.current.kind == "or":
            self.eat("or")
            terms.append(self.and_term())
        if len(terms) == 1:
            return terms[0]
        return lambda r: any(t(r) for t in terms)

    def and_term(self) -> Predicate:
        factors = [self.factor()]
        while self.current.kind == "and":
            self.eat("and")
            factors.append(self.factor())
        if len(factors) == 1:
            return factors[0]
        return lambda r: all(f(r) for f in factors)

    def factor(self) -> Predicate:
        if self.current.kind not in ("lparen", "not"):
            return self.comparison()
        if self.depth >= MAX_DEPTH:
            raise QueryError(f"expression nested deeper than {MAX_DEPTH} levels")
        self.depth += 1
        try:
            if self.current.kind == "lparen":
                self.eat("lparen")
                node = self.expression()
                self.eat("rparen")
                return node
            self.eat("not")
            inner = self.factor()
            return lambda r: not inner(r)
        finally:
            self.depth -= 1

    def comparison(self) -> Predicate:
        field = str(self.eat("word").value).lower()
        op = str(self.eat("op").value)
        tok = self.current
        if tok.kind not in ("number", "string", "word"):
            raise QueryError(f"expected value after {field}{op}, got {tok.kind}")
        self.pos += 1
        expected = tok.value
        getter = FIELDS.get(field)

        def match(r: ConnectionRecord) -> bool:
            if getter is None:
                return False
            actual = getter(r)
            if actual is None:
                return False
            return compare(actual, op, expected)
        return match


def parse_query(text: str) -> Predicate:
    """Compile a filter expression; raises QueryError when it does not parse."""
    return _Parser(text).parse()


def is_valid_query(text: str) -> bool:
    if not text or not text.strip():
        return False
    try:
        parse_query(text)
    except QueryError:
        return False
    return True


def filter_records(records: Iterable[ConnectionRecord], text: Optional[str]) -> List[ConnectionRecord]:
    if not text or not text.strip():
        return list(records)
    pred = parse_query(text)
    return [r for r in records if pred(r)]
