"""
Formula Validator - Static checks on a pricing formula before it is saved.

Never evaluates anything. Collects every problem it finds so the template
editor can show the complete list at once.

Checks, in order:
1. Formula is not empty (stops here if it is)
2. Parentheses are balanced
3. No forbidden keywords in the raw text
4. Only allow-listed functions are called
5. Only declared fields and system variables are referenced
"""
import re
from typing import Iterable, Optional

from ..config.settings import Settings, get_settings
from .errors import (
    ForbiddenKeywordError,
    FormulaError,
    UnknownFunctionError,
    UnknownVariableError,
)
from .formula_evaluator import SYSTEM_VARIABLES
from .formula_parser import (
    ALLOWED_FUNCTIONS,
    BOOLEAN_LITERALS,
    NULL_LITERALS,
    check_parentheses,
    normalize_formula,
    parse,
)
from .models import ValidationResult

FORBIDDEN_KEYWORDS = (
    'eval',
    'Function',
    'require',
    'import',
    'export',
    'process',
    '__proto__',
    'constructor',
)

_CALL_RE = re.compile(r'([A-Za-z_][A-Za-z0-9_]*)\s*\(')
_IDENTIFIER_RE = re.compile(r'(?<![A-Za-z0-9_.])([A-Za-z_][A-Za-z0-9_]*)(?![A-Za-z0-9_])(?!\s*\()')
_DIVISION_BY_ZERO_RE = re.compile(r'/\s*0(?![0-9]*\.?[0-9]*[1-9])')


def validate_formula(
    formula: str,
    field_keys: Iterable[str],
    settings: Optional[Settings] = None,
) -> ValidationResult:
    """
    Validate a formula against the keys of the fields it may reference.

    Example:
        >>> validate_formula("(width_cm * height_cm / 10000) * unit_m2_price",
        ...                  ["width_cm", "height_cm", "unit_m2_price"]).valid
        True
    """
    result = ValidationResult(valid=True)

    if formula is None or not formula.strip():
        result.errors.append("Formula cannot be empty")
        result.valid = False
        return result

    text = normalize_formula(formula)
    keys = list(dict.fromkeys(field_keys))

    paren_error = check_parentheses(text)
    if paren_error:
        result.errors.append(paren_error)

    for keyword in FORBIDDEN_KEYWORDS:
        if keyword in text:
            result.errors.append(ForbiddenKeywordError(keyword).message)

    result.errors.extend(_check_functions(text))

    variable_errors, variable_warnings = _check_variables(text, keys)
    result.errors.extend(variable_errors)
    result.warnings.extend(variable_warnings)

    if not result.errors:
        syntax_error = _check_syntax(text, settings or get_settings())
        if syntax_error:
            result.errors.append(syntax_error)

    if _DIVISION_BY_ZERO_RE.search(text):
        result.warnings.append("Potential division by zero detected")

    result.valid = not result.errors
    return result


def _check_syntax(text: str, settings: Settings):
    try:
        parse(text, max_depth=settings.max_formula_depth, max_length=settings.max_formula_length)
    except UnknownFunctionError:
        return None
    except FormulaError as e:
        return e.message
    return None


def _check_functions(text: str) -> list[str]:
    errors = []
    reported = set()
    for match in _CALL_RE.finditer(text):
        name = match.group(1)
        if name.lower() not in ALLOWED_FUNCTIONS and name not in reported:
            reported.add(name)
            errors.append(UnknownFunctionError(name).message)
    return errors


def _check_variables(text: str, field_keys: list[str]) -> tuple[list[str], list[str]]:
    errors = []
    warnings = []
    available = field_keys + [v for v in SYSTEM_VARIABLES if v not in field_keys]

    used = []
    for match in _IDENTIFIER_RE.finditer(text):
        name = match.group(1)
        lowered = name.lower()
        if lowered in BOOLEAN_LITERALS or lowered in NULL_LITERALS:
            continue
        if name in used:
            continue
        used.append(name)
        if name not in available:
            errors.append(UnknownVariableError(name, available).message)

    unused = [key for key in field_keys if key not in used]
    if unused:
        warnings.append(f"Unused fields in formula: {', '.join(unused)}")

    return errors, warnings
