"""
Calculator Plugin - Safe arithmetic evaluation.

Expressions are parsed with the ast module and walked node by node; only
numeric literals, the arithmetic operators and parentheses are accepted.
"""

import ast
import logging
import math
import operator
import re
from typing import Any, Callable, Dict, List, Type, Union

from .base import Plugin, PluginResult

logger = logging.getLogger(__name__)

Number = Union[int, float]

_BINARY_OPERATORS: Dict[Type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS: Dict[Type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

MAX_EXPRESSION_LENGTH = 200
MAX_EXPONENT = 1000
# Bound on integer results; powers are checked before they are computed
MAX_RESULT_BITS = 10_000


class CalculationError(ValueError):
    """The expression is not valid arithmetic."""


def evaluate_expression(expression: str) -> Number:
    """
    Evaluate an arithmetic expression.

    Args:
        expression: e.g. "2 + 3 * (4 - 1)"; "^" is accepted as power

    Returns:
        The numeric result

    Raises:
        CalculationError: On syntax errors, unsupported constructs,
            division by zero or oversized exponents
    """
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise CalculationError("Expression is too long.")

    source = expression.replace("^", "**").replace("×", "*").replace("÷", "/")
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError:
        raise CalculationError(f'"{expression}" is not a valid expression.')

    return _eval_node(tree.body)


def _eval_node(node: ast.AST) -> Number:
    if isinstance(node, ast.Constant) and type(node.value) in (int, float):
        return node.value

    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPERATORS:
        return _UNARY_OPERATORS[type(node.op)](_eval_node(node.operand))

    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPERATORS:
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Pow):
            _check_power(left, right)
        try:
            result = _BINARY_OPERATORS[type(node.op)](left, right)
        except ZeroDivisionError:
            raise CalculationError("Division by zero.")
        except OverflowError:
            raise CalculationError("Result is too large.")
        if isinstance(result, int) and result.bit_length() > MAX_RESULT_BITS:
            raise CalculationError("Result is too large.")
        return result

    raise CalculationError("Only numbers, + - * / // % ** and parentheses are supported.")


def _check_power(base: Number, exponent: Number) -> None:
    if abs(exponent) > MAX_EXPONENT:
        raise CalculationError("Exponent is too large.")
    if isinstance(base, int) and isinstance(exponent, int) and exponent > 0 and abs(base) > 1:
        if exponent * math.log2(abs(base)) > MAX_RESULT_BITS:
            raise CalculationError("Result is too large.")


def format_number(value: Number) -> str:
    if isinstance(value, complex):
        raise CalculationError("Result is not a real number.")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CalculationError("Result is too large.")
        if value.is_integer() and abs(value) < 1e15:
            return str(int(value))
        return repr(round(value, 10))
    try:
        return str(value)
    except ValueError:
        # int-to-str digit limit
        raise CalculationError("Result is too large.")


class CalcPlugin(Plugin):
    """/calc <expression>"""

    name = "calc"
    description = "Evaluates a mathematical expression. Usage: /calc [expression]"
    trigger = re.compile(r"^/calc\s+(.+)", re.IGNORECASE)
    loading_message = "Calculating..."

    async def execute(self, args: List[str]) -> PluginResult:
        expression = args[0] if args else ""
        if not expression:
            return PluginResult.fail("Please provide an expression to calculate.")

        try:
            result = format_number(evaluate_expression(expression))
        except CalculationError as e:
            logger.debug(f"Calc rejected '{expression}': {e}")
            return PluginResult.fail(str(e))

        return PluginResult.ok(
            display_text=f"{expression} = {result}",
            data={"expression": expression, "result": result},
        )
