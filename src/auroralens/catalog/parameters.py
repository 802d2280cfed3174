"""
Evaluation of engine parameter values.

Aurora parameter groups express memory-dependent defaults as formulas such
as ``LEAST({DBInstanceClassMemory/9531392},5000)``. Only a fixed grammar is
accepted:

    value    := number | func
    func     := ("SUM" | "LEAST" | "GREATEST") "(" "{" expr "}" "," number ")"
    expr     := term (("+" | "-") term)*
    term     := factor (("*" | "/") factor)*
    factor   := integer | "DBInstanceClassMemory" | "(" expr ")" | "-" factor

``DBInstanceClassMemory`` is the only variable (instance memory in bytes).
Anything else evaluates to ``None``.
"""

import re

from loguru import logger

_FUNCTIONS = {
    "SUM": lambda a, b: a + b,
    "LEAST": lambda a, b: a if a < b else b,
    "GREATEST": lambda a, b: a if a > b else b,
}

_FORMULA = re.compile(r"^(SUM|LEAST|GREATEST)\(\{([^{}]*)\},\s*(-?\d+(?:\.\d+)?)\)$")
_TOKEN = re.compile(r"\s*(?:(\d+(?:\.\d+)?)|(DBInstanceClassMemory)|(.))")


class ParameterFormulaError(ValueError):
    """Formula does not match the supported grammar."""

    pass


class _ExpressionParser:
    """Recursive-descent parser for the ``{...}`` part of a formula."""

    def __init__(self, text: str, memory_bytes: float):
        self.tokens = self._tokenize(text)
        self.pos = 0
        self.memory_bytes = memory_bytes

    @staticmethod
    def _tokenize(text: str) -> list[tuple[str, object]]:
        tokens = []
        for number, variable, op in _TOKEN.findall(text):
            if number:
                tokens.append(("num", float(number)))
            elif variable:
                tokens.append(("var", variable))
            elif op.strip():
                if op not in "+-*/()":
                    raise ParameterFormulaError(f"Unexpected character {op!r}")
                tokens.append(("op", op))
        return tokens

    def _peek(self):
        return self.tokens[self.pos] if self.pos < len(self.tokens) else (None, None)

    def _take(self):
        token = self._peek()
        self.pos += 1
        return token

    def parse(self) -> float:
        value = self._expr()
        if self.pos != len(self.tokens):
            raise ParameterFormulaError("Trailing tokens in expression")
        return value

    def _expr(self) -> float:
        value = self._term()
        while self._peek() in (("op", "+"), ("op", "-")):
            _, op = self._take()
            rhs = self._term()
            value = value + rhs if op == "+" else value - rhs
        return value

    def _term(self) -> float:
        value = self._factor()
        while self._peek() in (("op", "*"), ("op", "/")):
            _, op = self._take()
            rhs = self._factor()
            if op == "*":
                value = value * rhs
            else:
                if rhs == 0:
                    raise ParameterFormulaError("Division by zero")
                value = value / rhs
        return value

    def _factor(self) -> float:
        kind, value = self._take()
        if kind == "num":
            return value
        if kind == "var":
            return self.memory_bytes
        if (kind, value) == ("op", "-"):
            return -self._factor()
        if (kind, value) == ("op", "("):
            inner = self._expr()
            if self._take() != ("op", ")"):
                raise ParameterFormulaError("Unbalanced parenthesis")
            return inner
        raise ParameterFormulaError(f"Unexpected token {value!r}")


def evaluate_parameter(value: str | float | int | None, instance_memory_mib: float) -> float | None:
    """
    Resolve a parameter value for an instance.

    Args:
        value: Literal number or supported formula
        instance_memory_mib: Instance memory in MiB

    Returns:
        Numeric value, or None when the value is not a number and not a
        supported formula

    Example:
        >>> evaluate_parameter("LEAST({DBInstanceClassMemory/9531392},5000)", 16384)
        1802.45...
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        pass

    match = _FORMULA.match(text)
    if match is None:
        logger.debug(f"Unsupported parameter value: {text}")
        return None

    func, expression, literal = match.groups()
    if "DBInstanceClassMemory" not in expression:
        logger.debug(f"Formula does not reference DBInstanceClassMemory: {text}")
        return None

    memory_bytes = instance_memory_mib * 1024 * 1024
    try:
        inner = _ExpressionParser(expression, memory_bytes).parse()
    except ParameterFormulaError as e:
        logger.debug(f"Cannot evaluate {text}: {e}")
        return None

    return float(_FUNCTIONS[func](inner, float(literal)))
