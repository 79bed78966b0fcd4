"""
Formula Evaluator - Evaluates pricing formulas against numeric bindings.

Walks the AST produced by formula_parser. The only names a formula can
reach are its bindings and the allow-listed functions.

Example:
    >>> evaluate("(width_cm * height_cm / 10000) * unit_m2_price",
    ...          {"width_cm": 200, "height_cm": 150, "unit_m2_price": 3000})
    9000.0
"""
import logging
import math
from typing import Mapping, Optional

from ..config.settings import Settings, get_settings
from .errors import (
    FormulaError,
    NonFiniteResultError,
    NonNumericResultError,
    UnknownVariableError,
)
from .formula_parser import (
    BinaryOp,
    Call,
    Node,
    Null,
    Number,
    UnaryOp,
    Variable,
    collect_variables,
    parse,
)

logger = logging.getLogger(__name__)

SYSTEM_VARIABLES = ('base_price',)

ROUND_DIGITS_LIMIT = 15


def round_half_away(value: float, digits: int = 0) -> float:
    """Round to `digits` decimals, halves away from zero."""
    if not math.isfinite(value):
        return value
    factor = 10.0 ** digits
    scaled = abs(value) * factor
    if not math.isfinite(scaled) or factor == 0:
        # Too large to carry digits at this precision
        return value
    rounded = math.floor(scaled + 0.5) / factor
    return math.copysign(rounded, value) + 0.0


def round_price(value: float) -> float:
    """Round a monetary amount to 0.01, the way every output price is rounded."""
    return round_half_away(value, 2)


def _divide(left: float, right: float) -> float:
    # IEEE semantics; a zero divisor surfaces later as a non-finite result
    if right == 0:
        if left == 0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1.0, right)
    return left / right


def _power(base: float, exponent: float) -> float:
    try:
        return math.pow(base, exponent)
    except OverflowError:
        return math.inf
    except ValueError:
        # 0 to a negative power, or a fractional power of a negative number
        if base == 0 and exponent < 0:
            return math.inf
        return math.nan


def _floor(x: float) -> float:
    return float(math.floor(x)) if math.isfinite(x) else x


def _ceil(x: float) -> float:
    return float(math.ceil(x)) if math.isfinite(x) else x


def _sqrt(x: float) -> float:
    return math.sqrt(x) if x >= 0 else math.nan


def _round(x: float, digits: float = 0.0) -> float:
    if not float(digits).is_integer():
        raise FormulaError(f"round() expects a whole number of digits, got {digits:g}")
    if not -ROUND_DIGITS_LIMIT <= digits <= ROUND_DIGITS_LIMIT:
        raise FormulaError(
            f"round() digits must be between -{ROUND_DIGITS_LIMIT} and {ROUND_DIGITS_LIMIT}, got {digits:g}"
        )
    return round_half_away(x, int(digits))


_UNARY_FUNCTIONS = {
    'floor': _floor,
    'ceil': _ceil,
    'abs': abs,
    'sqrt': _sqrt,
}

_COMPARISONS = {
    '<': lambda a, b: a < b,
    '<=': lambda a, b: a <= b,
    '>': lambda a, b: a > b,
    '>=': lambda a, b: a >= b,
    '==': lambda a, b: a == b,
    '!=': lambda a, b: a != b,
}


def _to_number(name: str, value) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    raise NonNumericResultError(f'Variable "{name}" is not a number')


class _Interpreter:
    """Evaluates one AST against one binding map. Not shared between calls."""

    def __init__(self, bindings: Mapping[str, float]):
        self.bindings = bindings

    def number(self, node: Node) -> float:
        value = self.visit(node)
        if value is None:
            raise NonNumericResultError("null cannot be used in a calculation")
        return value

    def visit(self, node: Node) -> Optional[float]:
        if isinstance(node, Number):
            return node.value

        if isinstance(node, Null):
            return None

        if isinstance(node, Variable):
            if node.name not in self.bindings:
                raise UnknownVariableError(node.name, sorted(self.bindings))
            return _to_number(node.name, self.bindings[node.name])

        if isinstance(node, UnaryOp):
            operand = self.number(node.operand)
            return -operand if node.op == '-' else operand

        if isinstance(node, BinaryOp):
            left = self.number(node.left)
            right = self.number(node.right)
            if node.op == '+':
                return left + right
            if node.op == '-':
                return left - right
            if node.op == '*':
                return left * right
            if node.op == '/':
                return _divide(left, right)
            if node.op == '^':
                return _power(left, right)
            return 1.0 if _COMPARISONS[node.op](left, right) else 0.0

        if isinstance(node, Call):
            return self.call(node)

        raise FormulaError(f"Unsupported expression: {type(node).__name__}")

    def call(self, node: Call) -> Optional[float]:
        if node.name == 'if':
            # Both branches are values; the condition only selects one
            condition, when_true, when_false = (self.visit(arg) for arg in node.args)
            truthy = condition is not None and condition != 0 and not math.isnan(condition)
            return when_true if truthy else when_false

        args = [self.number(arg) for arg in node.args]
        if node.name in _UNARY_FUNCTIONS:
            return _UNARY_FUNCTIONS[node.name](args[0])
        if node.name == 'round':
            return _round(*args)
        if node.name == 'min':
            return min(args)
        if node.name == 'max':
            return max(args)
        if node.name == 'pow':
            return _power(args[0], args[1])

        raise FormulaError(f"Unsupported function: {node.name}()")


def evaluate_raw(formula: str, bindings: Mapping[str, float], settings: Optional[Settings] = None) -> float:
    """Evaluate without the final price rounding. Non-finite values still fail."""
    settings = settings or get_settings()
    tree = parse(formula, max_depth=settings.max_formula_depth, max_length=settings.max_formula_length)
    result = _Interpreter(bindings).visit(tree)

    if result is None or isinstance(result, bool) or not isinstance(result, float):
        raise NonNumericResultError("Formula evaluation did not return a valid number")
    if math.isnan(result):
        raise NonFiniteResultError("Formula evaluation did not return a valid number (possible division by zero)")
    if math.isinf(result):
        raise NonFiniteResultError("Formula evaluation resulted in infinity (possible division by zero)")
    return result


def evaluate(formula: str, bindings: Mapping[str, float], settings: Optional[Settings] = None) -> float:
    """
    Evaluate a pricing formula and round the result to 2 decimals.

    Raises a FormulaError subclass on an empty formula, syntax problems,
    unknown functions or variables, and non-numeric or non-finite results.
    """
    try:
        return round_price(evaluate_raw(formula, bindings, settings))
    except FormulaError as e:
        logger.debug("Formula evaluation failed: %s", e.message)
        raise


def preview_formula(formula: str, test_values: Mapping[str, float], settings: Optional[Settings] = None) -> dict:
    """
    Evaluate for the admin preview.

    Returns {"success": True, "result": ..., "used_variables": [...]}
    or {"success": False, "error": "..."}.
    """
    settings = settings or get_settings()
    try:
        result = evaluate(formula, test_values, settings)
        tree = parse(formula, max_depth=settings.max_formula_depth, max_length=settings.max_formula_length)
    except FormulaError as e:
        return {"success": False, "error": e.message}

    return {
        "success": True,
        "result": result,
        "used_variables": collect_variables(tree),
    }


def prepare_context(
    field_values: Mapping[str, float],
    base_price: float,
    quantity: Optional[int] = None,
) -> dict[str, float]:
    """
    Build the evaluator binding: base_price plus the field values.

    quantity is only added when no field already supplies a value for it.
    """
    context: dict[str, float] = {'base_price': float(base_price)}
    context.update(field_values)
    if quantity is not None and 'quantity' not in field_values:
        context['quantity'] = float(quantity)
    return context
