"""Tools executed in-process instead of on an MCP server.

Built-in tools answer direct ``/tools`` calls for names the connected server
does not provide. Each one exposes a catalog descriptor and an async
``execute`` taking the argument dict.
"""

import ast
import math
import operator
from collections.abc import Callable
from typing import Any, Protocol

from mcp_toolchat.models.catalog import ToolDescriptor, ToolInputSchema


class BuiltinTool(Protocol):
    @property
    def name(self) -> str:
        """Unique name for this tool."""
        ...

    @property
    def descriptor(self) -> ToolDescriptor:
        """Catalog entry advertised alongside the server's tools."""
        ...

    async def execute(self, args: dict[str, Any]) -> str:
        """Run the tool and return the text result."""
        ...


class ExpressionError(ValueError):
    pass


_BINARY_OPS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}
MAX_EXPRESSION_LENGTH = 200
MAX_EXPONENT = 1000
MAX_RESULT_BITS = 4096


def _check_power(base: int | float, exponent: int | float) -> None:
    if abs(exponent) > MAX_EXPONENT:
        raise ExpressionError("Exponent is too large")
    # Estimated size of the result, so nested powers cannot run away
    if abs(base) > 1 and exponent > 0 and math.log2(abs(base)) * exponent > MAX_RESULT_BITS:
        raise ExpressionError("Result is too large")


def _check_result(value: Any) -> int | float:
    if isinstance(value, complex):
        raise ExpressionError("Result is not a real number")
    if isinstance(value, int) and value.bit_length() > MAX_RESULT_BITS:
        raise ExpressionError("Result is too large")
    return value


def evaluate_arithmetic(expression: str) -> int | float:
    """Evaluate a pure arithmetic expression.

    Only numeric literals, ``+ - * / // % **``, unary signs and parentheses
    are accepted. Names, calls, attribute access and every other construct
    raise :class:`ExpressionError`, as do complex results and integers wider
    than ``MAX_RESULT_BITS``.
    """
    if not expression or not expression.strip():
        raise ExpressionError("Empty expression")
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ExpressionError("Expression is too long")

    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise ExpressionError(f"Invalid expression: {e.msg}") from e

    def _eval(node: ast.AST) -> int | float:
        if isinstance(node, ast.Expression):
            return _eval(node.body)
        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
                raise ExpressionError(f"Unsupported literal: {node.value!r}")
            return node.value
        if isinstance(node, ast.BinOp):
            op = _BINARY_OPS.get(type(node.op))
            if op is None:
                raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")
            left, right = _eval(node.left), _eval(node.right)
            if isinstance(node.op, ast.Pow):
                _check_power(left, right)
            return _check_result(op(left, right))
        if isinstance(node, ast.UnaryOp):
            op = _UNARY_OPS.get(type(node.op))
            if op is None:
                raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")
            return _check_result(op(_eval(node.operand)))
        raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")

    try:
        result = _eval(tree)
    except ZeroDivisionError as e:
        raise ExpressionError("Division by zero") from e
    except OverflowError as e:
        raise ExpressionError("Result is too large") from e

    if isinstance(result, float) and not math.isfinite(result):
        raise ExpressionError("Result is not a finite number")
    return result


class CalculatorTool:
    name = "calculator"

    @property
    def descriptor(self) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name,
            description="Evaluate an arithmetic expression",
            input_schema=ToolInputSchema(
                properties={
                    "expression": {
                        "type": "string",
                        "description": "Arithmetic expression, e.g. (2 + 3) * 4",
                    }
                },
                required=["expression"],
            ),
        )

    async def execute(self, args: dict[str, Any]) -> str:
        expression = str(args.get("expression", ""))
        result = evaluate_arithmetic(expression)
        return f"{expression} = {result}"


def default_builtin_tools() -> dict[str, BuiltinTool]:
    calculator = CalculatorTool()
    return {calculator.name: calculator}
