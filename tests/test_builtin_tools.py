"""Tests for the built-in calculator."""

import pytest

from mcp_toolchat.builtin_tools import (
    CalculatorTool,
    ExpressionError,
    default_builtin_tools,
    evaluate_arithmetic,
)


class TestEvaluateArithmetic:
    """Tests for evaluate_arithmetic."""

    @pytest.mark.parametrize(
        "expression, expected",
        [
            ("1 + 2", 3),
            ("(2 + 3) * 4", 20),
            ("10 / 4", 2.5),
            ("10 // 4", 2),
            ("10 % 4", 2),
            ("2 ** 10", 1024),
            ("-3 + +5", 2),
            ("1.5 * 2", 3.0),
        ],
    )
    def test_arithmetic(self, expression, expected):
        assert evaluate_arithmetic(expression) == expected

    @pytest.mark.parametrize(
        "expression",
        [
            "__import__('os').system('ls')",
            "abs(-1)",
            "x + 1",
            "(1).real",
            "[1, 2]",
            "'a' * 3",
            "True + 1",
            "1 if 1 else 2",
            "lambda: 1",
        ],
    )
    def test_rejects_anything_but_arithmetic(self, expression):
        """Test that names, calls, attributes and other syntax are refused."""
        with pytest.raises(ExpressionError):
            evaluate_arithmetic(expression)

    def test_division_by_zero(self):
        with pytest.raises(ExpressionError, match="Division by zero"):
            evaluate_arithmetic("1 / 0")

    def test_huge_exponent_rejected(self):
        with pytest.raises(ExpressionError, match="Exponent is too large"):
            evaluate_arithmetic("9 ** 9999999")

    @pytest.mark.parametrize(
        "expression",
        [
            "((9**999)**999)**999",
            "(9**999) * (9**999)",
            "10 ** 1000 * 10 ** 1000",
        ],
    )
    def test_runaway_results_rejected(self, expression):
        """Test that intermediate results are bounded, not just exponents."""
        with pytest.raises(ExpressionError, match="Result is too large"):
            evaluate_arithmetic(expression)

    def test_large_result_within_budget(self):
        assert evaluate_arithmetic("2 ** 1000") == 2**1000

    @pytest.mark.parametrize("expression", ["(-8) ** 0.5", "1 // (-1) ** 0.5"])
    def test_complex_results_rejected(self, expression):
        with pytest.raises(ExpressionError, match="not a real number"):
            evaluate_arithmetic(expression)

    def test_syntax_error(self):
        with pytest.raises(ExpressionError, match="Invalid expression"):
            evaluate_arithmetic("1 +")

    def test_empty_expression(self):
        with pytest.raises(ExpressionError, match="Empty expression"):
            evaluate_arithmetic("   ")

    def test_expression_error_is_value_error(self):
        assert issubclass(ExpressionError, ValueError)


class TestCalculatorTool:
    """Tests for the calculator tool wrapper."""

    async def test_execute(self):
        result = await CalculatorTool().execute({"expression": "6 * 7"})
        assert result == "6 * 7 = 42"

    async def test_execute_rejects_nested_powers(self):
        with pytest.raises(ExpressionError):
            await CalculatorTool().execute({"expression": "((9**999)**999)**999"})

    def test_descriptor_requires_expression(self):
        descriptor = CalculatorTool().descriptor
        assert descriptor.name == "calculator"
        assert descriptor.input_schema.required_keys() == ["expression"]

    def test_default_registry(self):
        tools = default_builtin_tools()
        assert list(tools) == ["calculator"]
