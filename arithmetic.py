"""
Infix arithmetic for reconciliation rules.

Grammar (numbers only; identifiers must already be substituted):

    expr   := term (("+" | "-") term)*
    term   := factor (("*" | "/") factor)*
    factor := ("+" | "-") factor | NUMBER | "(" expr ")"

Nothing is ever handed to eval(); the input must also pass ALLOWED_CHARS first.
"""

import re

ALLOWED_CHARS = re.compile(r"^[\d\s+\-*/().]+$")
_TOKEN = re.compile(r"\s*(?:(\d+\.?\d*|\.\d+)|(.))")
MAX_DEPTH = 100


class ExpressionError(ValueError):
    """Malformed arithmetic expression."""


def _tokenize(expr: str) -> list[str]:
    tokens = []
    for number, op in _TOKEN.findall(expr):
        if number:
            tokens.append(number)
        elif op.strip():
            tokens.append(op)
    return tokens


class _Parser:
    def __init__(self, tokens: list[str]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    def peek(self) -> str | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self) -> str:
        token = self.peek()
        if token is None:
            raise ExpressionError("unexpected end of expression")
        self.pos += 1
        return token

    def parse(self) -> float:
        value = self.expr()
        if self.peek() is not None:
            raise ExpressionError(f"unexpected token {self.peek()!r}")
        return value

    def expr(self) -> float:
        value = self.term()
        while self.peek() in ("+", "-"):
            if self.take() == "+":
                value += self.term()
            else:
                value -= self.term()
        return value

    def term(self) -> float:
        value = self.factor()
        while self.peek() in ("*", "/"):
            op = self.take()
            rhs = self.factor()
            if op == "*":
                value *= rhs
            else:
                if rhs == 0:
                    raise ZeroDivisionError("division by zero in expression")
                value /= rhs
        return value

    def factor(self) -> float:
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise ExpressionError("expression nested too deeply")
        try:
            token = self.take()
            if token == "-":
                return -self.factor()
            if token == "+":
                return self.factor()
            if token == "(":
                value = self.expr()
                if self.take() != ")":
                    raise ExpressionError("missing closing parenthesis")
                return value
            try:
                return float(token)
            except ValueError:
                raise ExpressionError(f"unexpected token {token!r}") from None
        finally:
            self.depth -= 1


def evaluate_expression(expr: str) -> float:
    """
    Evaluate a numeric infix expression.
    Raises ExpressionError for anything outside the grammar and
    ZeroDivisionError when a divisor evaluates to zero.
    """
    if not expr or not ALLOWED_CHARS.match(expr):
        raise ExpressionError(f"expression contains disallowed characters: {expr!r}")
    tokens = _tokenize(expr)
    if not tokens:
        raise ExpressionError("empty expression")
    return _Parser(tokens).parse()
