"""
Mini predicate language
=======================

SIRE uses one small boolean expression language for `where` filters over
storm records, e.g.

      where year <= 2005 and event_type contains "flood"

This file provides:
- Tokenizer (turns text into tokens)
- Parser (builds an AST = abstract syntax tree)
- AST node classes (And/Or/Cmp)
- `compile_predicate`, which turns an AST into a plain Python callable
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import codecs
import operator
import re

# expr := term (OR term)*
# term := factor (AND factor)*
# factor := comparison | "(" expr ")"
# comparison := IDENT (OP | contains) VALUE | IDENT in "(" VALUE ("," VALUE)* ")"
# OP := == != >= <= > <
# VALUE := number | quoted string | bareword

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<LPAREN>\() |
        (?P<RPAREN>\)) |
        (?P<COMMA>,) |
        (?P<OP>==|!=|>=|<=|>|<) |
        (?P<KW>\bAND\b|\bOR\b|\bcontains\b|\bin\b) |
        (?P<NUMBER>-?\d+(?:\.\d+)?) |
        (?P<STRING>"([^"\\]|\\.)*"|'([^'\\]|\\.)*') |
        (?P<IDENT>[A-Za-z_][A-Za-z0-9_]*)
    )\s*
    """,
    re.VERBOSE | re.IGNORECASE
)

@dataclass(frozen=True)
class Token:
    kind: str
    value: str

class ParseError(ValueError):
    pass

def tokenize(s: str) -> List[Token]:
    """Tokenize an input string into Token objects."""
    pos = 0
    out: List[Token] = []
    while pos < len(s):
        m = _TOKEN_RE.match(s, pos)
        if not m or m.end() == pos:
            raise ParseError(f"Unexpected character near: {s[pos:pos+20]!r}")
        pos = m.end()
        if m.group("STRING") is not None:
            out.append(Token(kind="STRING", value=m.group("STRING")))
            continue
        kind = m.lastgroup
        val = m.group(kind) if kind else None
        if kind is None or val is None:
            raise ParseError("Tokenizer error.")
        if kind == "KW":
            vnorm = val.lower()
            if vnorm in ("and", "or", "in"):
                kind = vnorm.upper()
                val = vnorm.upper()
            else:
                kind = "CONTAINS"
                val = "contains"
        out.append(Token(kind=kind, value=val))
    return out

# AST nodes
@dataclass(frozen=True)
class Node: ...

@dataclass(frozen=True)
class And(Node):
    left: Node
    right: Node

@dataclass(frozen=True)
class Or(Node):
    left: Node
    right: Node

@dataclass(frozen=True)
class Cmp(Node):
    field: str
    op: str
    value: Any

def parse(expr: str) -> Node:
    toks = tokenize(expr)
    if not toks:
        raise ParseError("Empty expression")
    p = _Parser(toks)
    node = p.parse_expr()
    if not p.at_end():
        raise ParseError(f"Unexpected token: {p.peek().value}")
    return node

class _Parser:
    def __init__(self, toks: List[Token]) -> None:
        self.toks = toks
        self.i = 0

    def at_end(self) -> bool:
        return self.i >= len(self.toks)

    def peek(self) -> Token:
        return self.toks[self.i]

    def take(self, kind: str) -> Token:
        if self.at_end():
            raise ParseError(f"Expected {kind}, got end of input")
        t = self.peek()
        if t.kind != kind:
            raise ParseError(f"Expected {kind}, got {t.kind} ({t.value})")
        self.i += 1
        return t

    def match(self, *kinds: str) -> Optional[Token]:
        if self.at_end():
            return None
        if self.peek().kind in kinds:
            t = self.peek()
            self.i += 1
            return t
        return None

    def parse_expr(self) -> Node:
        node = self.parse_term()
        while self.match("OR"):
            rhs = self.parse_term()
            node = Or(node, rhs)
        return node

    def parse_term(self) -> Node:
        node = self.parse_factor()
        while self.match("AND"):
            rhs = self.parse_factor()
            node = And(node, rhs)
        return node

    def parse_factor(self) -> Node:
        if self.match("LPAREN"):
            node = self.parse_expr()
            self.take("RPAREN")
            return node
        return self.parse_comparison()

    def parse_comparison(self) -> Node:
        field = self.take("IDENT").value.lower()
        if self.match("IN"):
            return Cmp(field=field, op="in", value=self.parse_list())
        if self.match("CONTAINS"):
            op = "contains"
        else:
            op = self.take("OP").value
        return Cmp(field=field, op=op, value=self.parse_value())

    def parse_value(self) -> Any:
        val_tok = self.match("NUMBER", "STRING", "IDENT")
        if not val_tok:
            raise ParseError("Expected a value after operator")
        return _coerce_value(val_tok)

    def parse_list(self) -> tuple:
        self.take("LPAREN")
        items = [self.parse_value()]
        while self.match("COMMA"):
            items.append(self.parse_value())
        self.take("RPAREN")
        return tuple(items)

def _coerce_value(tok: Token) -> Any:
    if tok.kind == "NUMBER":
        return float(tok.value) if "." in tok.value else int(tok.value)
    if tok.kind == "STRING":
        s = tok.value
        if s[0] == s[-1] and s[0] in ("'", '"'):
            s = s[1:-1]
        return _ESCAPE_RE.sub(lambda m: codecs.decode(m.group(0), "unicode_escape"), s)
    return tok.value

# only backslash sequences are decoded; other characters pass through as-is
_ESCAPE_RE = re.compile(r"\\(?:u[0-9a-fA-F]{4}|x[0-9a-fA-F]{2}|.)", re.DOTALL)

# ---------------- Compilation ----------------

Getter = Callable[[Any, str], Any]

def compile_predicate(
    node: Node,
    get: Getter,
    fields: Optional[Dict[str, str]] = None,
    kinds: Optional[Dict[str, str]] = None,
) -> Callable[[Any], bool]:
    """Turn an AST into `pred(obj) -> bool`.

    `get(obj, field)` reads a field from the object being tested.
    `fields` (optional) maps accepted field names/aliases to canonical names;
    unknown fields raise ParseError at compile time, not on first use.
    `kinds` (optional) maps canonical names to "text" or "number" so that
    e.g. `event_type > 5` is rejected here instead of failing per record.
    """
    if isinstance(node, And):
        lhs = compile_predicate(node.left, get, fields, kinds)
        rhs = compile_predicate(node.right, get, fields, kinds)
        return lambda obj: lhs(obj) and rhs(obj)
    if isinstance(node, Or):
        lhs = compile_predicate(node.left, get, fields, kinds)
        rhs = compile_predicate(node.right, get, fields, kinds)
        return lambda obj: lhs(obj) or rhs(obj)
    if isinstance(node, Cmp):
        return _compile_cmp(node, get, fields, kinds)
    raise ParseError("Unknown AST node")

_TEXT_OPS = ("==", "!=", "contains", "in")

def _as_number(name: str, v: Any) -> Any:
    if not isinstance(v, str):
        return v
    try:
        return float(v)
    except ValueError:
        raise ParseError(f"{name} is numeric, got {v!r}") from None

def _check_kind(name: str, op: str, val: Any, kind: Optional[str]) -> Any:
    """Reject type mismatches up front; numeric-looking text on a number field becomes a number."""
    if kind == "number":
        if op == "contains":
            raise ParseError(f"contains needs a text field, {name} is numeric")
        if op == "in":
            return tuple(_as_number(name, v) for v in val)
        return _as_number(name, val)
    if kind == "text":
        if op not in _TEXT_OPS:
            raise ParseError(f"Operator {op} needs a numeric field, {name} is text")
        members = val if op == "in" else (val,)
        if any(not isinstance(v, str) for v in members):
            raise ParseError(f"{name} is text; quote the value")
    return val

def _compile_cmp(
    cmp: Cmp,
    get: Getter,
    fields: Optional[Dict[str, str]],
    kinds: Optional[Dict[str, str]] = None,
) -> Callable[[Any], bool]:
    name = cmp.field
    if fields is not None:
        if name not in fields:
            raise ParseError(f"Unknown field {name!r}. Allowed: {', '.join(sorted(set(fields.values())))}")
        name = fields[name]
    op = cmp.op
    val = _check_kind(name, op, cmp.value, kinds.get(name) if kinds else None)

    if op == "in":
        texts = frozenset(str(v).lower() for v in val if isinstance(v, str))
        numbers = frozenset(float(v) for v in val if not isinstance(v, str))

        def member(obj: Any) -> bool:
            v = get(obj, name)
            if isinstance(v, str):
                return v.lower() in texts
            return v is not None and float(v) in numbers
        return member

    # Text comparisons ignore case: categories are stored lowercased
    if isinstance(val, str):
        sval = val.lower()
        if op == "contains":
            return lambda obj: sval in str(get(obj, name)).lower()
        if op == "==":
            return lambda obj: str(get(obj, name)).lower() == sval
        if op == "!=":
            return lambda obj: str(get(obj, name)).lower() != sval
        raise ParseError(f"Operator {op} needs a number, got {val!r}")

    if op == "contains":
        raise ParseError("contains needs a text value")

    if op not in _NUMERIC_OPS:
        raise ParseError(f"Unsupported operator: {op}")
    compare = _NUMERIC_OPS[op]

    # A missing value (e.g. no begin date) only satisfies !=
    def pred(obj: Any) -> bool:
        v = get(obj, name)
        if v is None:
            return op == "!="
        return compare(float(v), val)
    return pred

_NUMERIC_OPS = {
    "==": operator.eq,
    "!=": operator.ne,
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
}
