"""
Exception taxonomy for the pricing engine.

Every error here is an expected, recoverable outcome: callers catch
PriceFlowError at their boundary and surface `message` to the user.
"""
from typing import Optional


class PriceFlowError(Exception):
    """Base class for all pricing engine errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# Formula errors

class FormulaError(PriceFlowError):
    """A formula could not be validated or evaluated."""


class EmptyFormulaError(FormulaError):
    def __init__(self):
        super().__init__("Formula cannot be empty")


class UnbalancedParenthesesError(FormulaError):
    pass


class ForbiddenKeywordError(FormulaError):
    def __init__(self, keyword: str):
        super().__init__(f"Forbidden keyword: {keyword}")
        self.keyword = keyword


class UnknownFunctionError(FormulaError):
    def __init__(self, name: str):
        super().__init__(f"Unknown or forbidden function: {name}()")
        self.name = name


class UnknownVariableError(FormulaError):
    def __init__(self, name: str, available: Optional[list[str]] = None):
        if available is not None:
            listing = ", ".join(available) if available else "(none)"
            message = f'Unknown variable: "{name}". Available: {listing}'
        else:
            message = f'Unknown variable: "{name}"'
        super().__init__(message)
        self.name = name


class NonNumericResultError(FormulaError):
    pass


class NonFiniteResultError(FormulaError):
    pass


class FormulaSyntaxError(FormulaError):
    """Unexpected token, wrong argument count, or a formula too long/deep to parse."""

    def __init__(self, message: str, position: Optional[int] = None):
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)
        self.position = position


class InvalidFormulaError(FormulaError):
    """The validator rejected a formula; carries the complete error list."""

    def __init__(self, errors: list[str]):
        super().__init__("Invalid pricing formula: " + "; ".join(errors))
        self.errors = list(errors)


# Request validation errors

class ValidationError(PriceFlowError):
    pass


class RequiredFieldMissingError(ValidationError):
    def __init__(self, key: str, label: Optional[str] = None):
        shown = f"{label} ({key})" if label else key
        super().__init__(f"Required field missing: {shown}")
        self.key = key


class InvalidFieldValueError(ValidationError):
    def __init__(self, key: str, reason: str):
        super().__init__(f"Invalid value for field '{key}': {reason}")
        self.key = key


class QuantityLimitError(ValidationError):
    pass


# Template lookup errors

class TemplateNotFoundError(PriceFlowError):
    def __init__(self, template_id: Optional[str] = None):
        super().__init__(f"Template not found: {template_id}" if template_id else "Template not found")
        self.template_id = template_id


class TemplateInactiveError(PriceFlowError):
    def __init__(self, template_id: str):
        super().__init__(f"Template is not active: {template_id}")
        self.template_id = template_id
