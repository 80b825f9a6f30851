"""Arithmetic calculator tool.

Expressions are tokenized and evaluated by a recursive-descent parser:

    expr   := term (("+" | "-") term)*
    term   := factor (("*" | "/") factor)*
    factor := ("+" | "-") factor | NUMBER | "(" expr ")"

Anything else is rejected; no code is ever executed.
"""

import math
import re

from pydantic import BaseModel, Field

from dropdawn.tools.base import Tool, ToolContext

MAX_EXPRESSION_CHARS = 500
MAX_DEPTH = 64

_TOKEN = re.compile(r"\s*(?:(\d+\.\d*|\.\d+|\d+)|(\S))")


class CalculationError(ValueError):
    """The expression is not valid arithmetic."""


def tokenize(expression: str) -> list[str]:
    tokens = []
    for match in _TOKEN.finditer(expression):
        number, symbol = match.groups()
        if number is not None:
            tokens.append(number)
        elif symbol is not None:
            if symbol not in "+-*/()":
                raise CalculationError(f"Unexpected character {symbol!r}")
            tokens.append(symbol)
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
            raise CalculationError("Unexpected end of expression")
        self.pos += 1
        return token

    def parse(self) -> float:
        if not self.tokens:
            raise CalculationError("Empty expression")
        value = self.expr()
        if self.peek() is not None:
            raise CalculationError(f"Unexpected token {self.peek()!r}")
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
            if self.take() == "*":
                value *= self.factor()
            else:
                divisor = self.factor()
                if divisor == 0:
                    raise CalculationError("Division by zero")
                value /= divisor
        return value

    def factor(self) -> float:
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise CalculationError("Expression is nested too deeply")
        try:
            token = self.take()
            if token == "+":
                return self.factor()
            if token == "-":
                return -self.factor()
            if token == "(":
                value = self.expr()
                if self.take() != ")":
                    raise CalculationError("Missing closing parenthesis")
                return value
            if token in "*/)":
                raise CalculationError(f"Unexpected token {token!r}")
            return float(token)
        finally:
            self.depth -= 1


def evaluate(expression: str) -> int | float:
    """Evaluate an arithmetic expression.

    Whole results are returned as int.

    Raises:
        CalculationError: On any syntax error, division by zero or overflow.
    """
    if len(expression) > MAX_EXPRESSION_CHARS:
        raise CalculationError("Expression is too long")
    value = _Parser(tokenize(expression)).parse()
    if not math.isfinite(value):
        raise CalculationError("Result is not a finite number")
    if value.is_integer() and abs(value) < 2**53:
        return int(value)
    return value


class CalculateParams(BaseModel):
    expression: str = Field(
        ..., description='The mathematical expression to evaluate (e.g., "2 + 2")'
    )


async def calculate(params: CalculateParams, ctx: ToolContext) -> dict:
    try:
        result = evaluate(params.expression)
    except CalculationError as e:
        return {"error": f"Invalid expression: {e}"}
    return {"result": result, "expression": params.expression}


CALCULATE_TOOL = Tool(
    name="calculate",
    description=(
        "A calculator tool that can perform basic arithmetic operations "
        "(add, subtract, multiply, divide, parentheses)."
    ),
    params_model=CalculateParams,
    handler=calculate,
)
