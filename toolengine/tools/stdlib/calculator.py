"""
Arithmetic calculator tool.

Expressions are parsed with ast and only numeric literals, arithmetic
operators and parentheses are evaluated; names, calls and attribute
access are rejected.
"""
import ast
import logging
import operator
from typing import Any, Callable

from pydantic import BaseModel, Field

from toolengine.tools.base import NativeFunction, Tool, ToolDefinition

logger = logging.getLogger(__name__)

MAX_EXPONENT = 1000
MAX_RESULT_BITS = 16384
MAX_EXPRESSION_LENGTH = 500

_BINARY_OPERATORS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS: dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class CalculatorInput(BaseModel):
    expression: str = Field(
        ...,
        min_length=1,
        max_length=MAX_EXPRESSION_LENGTH,
        description="Mathematical expression to evaluate (e.g., '2 + 3 * 4')"
    )


class CalculatorOutput(BaseModel):
    result: float = Field(..., description="Value of the expression")


def evaluate(expression: str) -> float:
    """
    Evaluate an arithmetic expression.

    Args:
        expression: Expression using numbers, + - * / // % ** and parentheses

    Returns:
        float: Result

    Raises:
        ValueError: If the expression is malformed or uses anything but arithmetic
        ZeroDivisionError: On division by zero
    """
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError as e:
        raise ValueError(f"Invalid expression: {e.msg}") from e
    return float(_eval_node(tree.body))


def _eval_node(node: ast.AST) -> Any:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise ValueError(f"Unsupported literal: {node.value!r}")
        return node.value

    if isinstance(node, ast.BinOp):
        op = _BINARY_OPERATORS.get(type(node.op))
        if op is None:
            raise ValueError(f"Unsupported operator: {type(node.op).__name__}")
        left = _eval_node(node.left)
        right = _eval_node(node.right)
        if isinstance(node.op, ast.Pow):
            if abs(right) > MAX_EXPONENT:
                raise ValueError(f"Exponent too large (max {MAX_EXPONENT})")
            if isinstance(left, int) and left.bit_length() * abs(right) > MAX_RESULT_BITS:
                raise ValueError("Result too large")
        return _check_size(op(left, right))

    if isinstance(node, ast.UnaryOp):
        op = _UNARY_OPERATORS.get(type(node.op))
        if op is None:
            raise ValueError(f"Unsupported operator: {type(node.op).__name__}")
        return op(_eval_node(node.operand))

    raise ValueError(f"Unsupported expression element: {type(node).__name__}")


def _check_size(value: Any) -> Any:
    if isinstance(value, int) and value.bit_length() > MAX_RESULT_BITS:
        raise ValueError("Result too large")
    return value


def calculate(params: CalculatorInput) -> CalculatorOutput:
    result = evaluate(params.expression)
    logger.debug(f"Calculated {params.expression!r} = {result}")
    return CalculatorOutput(result=result)


def build_calculator_tool() -> Tool:
    return Tool(
        definition=ToolDefinition(
            name="calculator",
            description="Perform basic arithmetic calculations",
            version="1.0.0",
            author="system",
            tags=("math", "utility"),
            examples=({"expression": "2 + 3"}, {"expression": "10 * 5 - 3"})
        ),
        implementation=NativeFunction(
            execute=calculate,
            input_schema=CalculatorInput,
            output_schema=CalculatorOutput
        )
    )
