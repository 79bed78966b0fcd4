"""
Formula Parser - Tokenizes and parses pricing formulas into an AST.

The grammar is closed: numbers, identifiers, the allow-listed functions
and the arithmetic/comparison operators. Nothing else can be expressed,
so the interpreter walking this AST has no route to host features.

Precedence, lowest first:
    conditional  cond ? a : b   (right associative, same as if(cond, a, b))
    comparison   < <= > >= == !=
    additive     + -
    term         * /
    unary        - +
    power        ^   (right associative)
    primary      number | name | call | ( expr )
"""
import re
from dataclasses import dataclass
from typing import Optional, Union

from .errors import (
    EmptyFormulaError,
    FormulaSyntaxError,
    UnbalancedParenthesesError,
    UnknownFunctionError,
)


# name -> (min args, max args; None = variadic)
ALLOWED_FUNCTIONS: dict[str, tuple[int, Optional[int]]] = {
    'floor': (1, 1),
    'ceil': (1, 1),
    'round': (1, 2),
    'min': (1, None),
    'max': (1, None),
    'if': (3, 3),
    'abs': (1, 1),
    'sqrt': (1, 1),
    'pow': (2, 2),
}

BOOLEAN_LITERALS = {'true': 1.0, 'false': 0.0}
NULL_LITERALS = frozenset({'null', 'undefined'})

COMPARISON_OPERATORS = ('<=', '>=', '==', '!=', '<', '>')

_LINE_BREAKS = re.compile(r'\s*[\r\n]+\s*')
_TOKEN_RE = re.compile(
    r'(?P<ws>\s+)'
    r'|(?P<number>\d+(?:\.\d*)?|\.\d+)'
    r'|(?P<name>[A-Za-z_][A-Za-z0-9_]*)'
    r'|(?P<op><=|>=|==|!=|[-+*/^<>])'
    r'|(?P<lparen>\()'
    r'|(?P<rparen>\))'
    r'|(?P<comma>,)'
    r'|(?P<question>\?)'
    r'|(?P<colon>:)'
)


# AST nodes

@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Null:
    pass


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: 'Node'


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: 'Node'
    right: 'Node'


@dataclass(frozen=True)
class Call:
    name: str
    args: tuple['Node', ...]


Node = Union[Number, Null, Variable, UnaryOp, BinaryOp, Call]


@dataclass(frozen=True)
class Token:
    kind: str
    text: str
    position: int


def normalize_formula(formula: str) -> str:
    """Collapse line breaks so multi-line formulas parse as one expression."""
    return _LINE_BREAKS.sub(' ', formula).strip()


def check_parentheses(formula: str) -> Optional[str]:
    """Return an error message if parentheses are unbalanced, else None."""
    balance = 0
    for char in formula:
        if char == '(':
            balance += 1
        elif char == ')':
            balance -= 1
        if balance < 0:
            return "Closing parenthesis without opening"
    if balance != 0:
        return "Unclosed parenthesis"
    return None


def tokenize(formula: str) -> list[Token]:
    tokens = []
    pos = 0
    while pos < len(formula):
        match = _TOKEN_RE.match(formula, pos)
        if not match:
            raise FormulaSyntaxError(f"Unexpected character '{formula[pos]}'", pos)
        kind = match.lastgroup
        if kind != 'ws':
            tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    tokens.append(Token('eof', '', len(formula)))
    return tokens


class _Parser:
    """Recursive-descent parser. One instance per parse call."""

    def __init__(self, tokens: list[Token], max_depth: int):
        self.tokens = tokens
        self.index = 0
        self.depth = 0
        self.max_depth = max_depth

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def expect(self, kind: str, what: str) -> Token:
        if self.current.kind != kind:
            found = self.current.text or 'end of formula'
            raise FormulaSyntaxError(f"Expected {what} but found '{found}'", self.current.position)
        return self.advance()

    def parse(self) -> Node:
        node = self.parse_conditional()
        if self.current.kind != 'eof':
            raise FormulaSyntaxError(f"Unexpected token '{self.current.text}'", self.current.position)
        return node

    def parse_conditional(self) -> Node:
        condition = self.parse_comparison()
        if self.current.kind != 'question':
            return condition
        self.advance()
        when_true = self.parse_conditional()
        self.expect('colon', "':'")
        when_false = self.parse_conditional()
        return Call('if', (condition, when_true, when_false))

    def parse_comparison(self) -> Node:
        node = self.parse_additive()
        while self.current.kind == 'op' and self.current.text in COMPARISON_OPERATORS:
            op = self.advance().text
            node = BinaryOp(op, node, self.parse_additive())
        return node

    def parse_additive(self) -> Node:
        node = self.parse_term()
        while self.current.kind == 'op' and self.current.text in ('+', '-'):
            op = self.advance().text
            node = BinaryOp(op, node, self.parse_term())
        return node

    def parse_term(self) -> Node:
        node = self.parse_unary()
        while self.current.kind == 'op' and self.current.text in ('*', '/'):
            op = self.advance().text
            node = BinaryOp(op, node, self.parse_unary())
        return node

    def parse_unary(self) -> Node:
        self.depth += 1
        if self.depth > self.max_depth:
            raise FormulaSyntaxError(
                f"Formula is nested too deeply (limit {self.max_depth})", self.current.position
            )
        try:
            if self.current.kind == 'op' and self.current.text in ('-', '+'):
                op = self.advance().text
                return UnaryOp(op, self.parse_unary())
            return self.parse_power()
        finally:
            self.depth -= 1

    def parse_power(self) -> Node:
        base = self.parse_primary()
        if self.current.kind == 'op' and self.current.text == '^':
            self.advance()
            # Right associative; the exponent may carry its own sign
            return BinaryOp('^', base, self.parse_unary())
        return base

    def parse_primary(self) -> Node:
        token = self.current

        if token.kind == 'number':
            self.advance()
            return Number(float(token.text))

        if token.kind == 'name':
            self.advance()
            if self.current.kind == 'lparen':
                return self.parse_call(token)
            lowered = token.text.lower()
            if lowered in BOOLEAN_LITERALS:
                return Number(BOOLEAN_LITERALS[lowered])
            if lowered in NULL_LITERALS:
                return Null()
            return Variable(token.text)

        if token.kind == 'lparen':
            self.advance()
            node = self.parse_conditional()
            self.expect('rparen', "')'")
            return node

        found = token.text or 'end of formula'
        raise FormulaSyntaxError(f"Unexpected token '{found}'", token.position)

    def parse_call(self, name_token: Token) -> Node:
        name = name_token.text.lower()
        if name not in ALLOWED_FUNCTIONS:
            raise UnknownFunctionError(name_token.text)

        self.expect('lparen', "'('")
        args = []
        if self.current.kind != 'rparen':
            args.append(self.parse_conditional())
            while self.current.kind == 'comma':
                self.advance()
                args.append(self.parse_conditional())
        self.expect('rparen', "')'")

        min_args, max_args = ALLOWED_FUNCTIONS[name]
        if len(args) < min_args or (max_args is not None and len(args) > max_args):
            if max_args is None:
                expected = f"at least {min_args}"
            elif min_args == max_args:
                expected = str(min_args)
            else:
                expected = f"{min_args} to {max_args}"
            raise FormulaSyntaxError(
                f"{name}() expects {expected} argument(s), got {len(args)}", name_token.position
            )
        return Call(name, tuple(args))


def parse(formula: str, max_depth: int = 64, max_length: Optional[int] = None) -> Node:
    """
    Parse a formula string into an AST.

    Raises EmptyFormulaError, UnbalancedParenthesesError, UnknownFunctionError
    or FormulaSyntaxError.
    """
    if formula is None or not formula.strip():
        raise EmptyFormulaError()

    text = normalize_formula(formula)
    if max_length is not None and len(text) > max_length:
        raise FormulaSyntaxError(f"Formula is too long ({len(text)} characters, limit {max_length})")

    paren_error = check_parentheses(text)
    if paren_error:
        raise UnbalancedParenthesesError(paren_error)

    parser = _Parser(tokenize(text), max_depth)
    try:
        return parser.parse()
    except RecursionError:
        raise FormulaSyntaxError("Formula is nested too deeply") from None


def collect_variables(node: Node) -> list[str]:
    """Variable names referenced by an AST, in first-seen order."""
    seen: dict[str, None] = {}

    def walk(n: Node):
        if isinstance(n, Variable):
            seen.setdefault(n.name, None)
        elif isinstance(n, UnaryOp):
            walk(n.operand)
        elif isinstance(n, BinaryOp):
            walk(n.left)
            walk(n.right)
        elif isinstance(n, Call):
            for arg in n.args:
                walk(arg)

    walk(node)
    return list(seen)
