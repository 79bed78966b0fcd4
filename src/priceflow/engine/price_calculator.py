"""
Price Calculator - Turns a template and the customer's inputs into a price.

Resolution order:
1. Template must exist and be active
2. Required fields must be present, quantity must respect the limits
3. The formula must pass validation (a rejected formula is never evaluated)
4. Field values are reduced to numbers and bound with base_price
5. Formula → unit price, express multiplier, quantity, discount tier
6. Breakdown lines, each rounded on its own

Intermediate amounts keep full float precision; rounding happens only
where a value leaves the calculator.
"""
import logging
import math
from typing import Any, Mapping, Optional

from ..config.settings import Settings, get_settings
from .discount_tiers import resolve_discount
from .errors import (
    InvalidFieldValueError,
    InvalidFormulaError,
    NonFiniteResultError,
    QuantityLimitError,
    RequiredFieldMissingError,
    TemplateInactiveError,
    TemplateNotFoundError,
    ValidationError,
)
from .formula_evaluator import evaluate, prepare_context, round_half_away, round_price
from .formula_validator import validate_formula
from .models import (
    BoolValue,
    BreakdownKind,
    Field,
    FieldType,
    FieldValue,
    NumberValue,
    OPTION_FIELD_TYPES,
    OptionValue,
    PriceBreakdownItem,
    PriceResult,
    Template,
)

logger = logging.getLogger(__name__)

ZERO_DECIMAL_CURRENCIES = frozenset({'HUF', 'JPY', 'KRW'})


def format_price(amount: float, currency: str, suffix: Optional[str] = None) -> str:
    """Format an amount for display, e.g. 12500 HUF → "12 500 Ft"."""
    if currency in ZERO_DECIMAL_CURRENCIES:
        text = f"{int(round_half_away(amount)):,}".replace(',', ' ')
    else:
        text = f"{round_price(amount):,.2f}".replace(',', ' ')
    return f"{text} {suffix or currency}"


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def resolve_field_value(field: Field, raw: Any) -> FieldValue:
    """
    Reduce a submitted field value to a single number-bearing variant.

    Numbers pass through for every field type (the storefront may send
    already-resolved option prices). Option labels are looked up and
    replaced by their price delta.
    """
    if isinstance(raw, bool):
        if field.type == FieldType.CHECKBOX and raw and len(field.options) == 1:
            option = field.options[0]
            return OptionValue((option.value,), float(option.price or 0))
        return BoolValue(raw)

    if isinstance(raw, (int, float)):
        return NumberValue(float(raw))

    if field.type in OPTION_FIELD_TYPES:
        selected = [raw] if isinstance(raw, str) else list(raw)
        delta = 0.0
        for value in selected:
            option = field.find_option(str(value))
            if option is None:
                raise InvalidFieldValueError(field.key, f"unknown option '{value}'")
            delta += float(option.price or 0)
        return OptionValue(tuple(str(v) for v in selected), delta)

    if isinstance(raw, str):
        try:
            return NumberValue(float(raw.strip()))
        except ValueError:
            raise InvalidFieldValueError(field.key, f"'{raw}' is not a number") from None

    raise InvalidFieldValueError(field.key, f"unsupported value {raw!r}")


class PriceCalculator:
    """
    Core price calculator for template-based products.

    Holds no per-request state; one instance can serve any number of
    concurrent calls.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def check_required_fields(self, template: Template, field_values: Mapping[str, Any]):
        for field in template.fields:
            if not field.required or field.type == FieldType.QUANTITY_SELECTOR:
                continue
            if _is_missing(field_values.get(field.key)):
                raise RequiredFieldMissingError(field.key, field.label or None)

    def check_quantity(self, template: Template, quantity: int):
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f"Quantity must be a whole number of at least 1, got {quantity!r}")

        if template.min_quantity is not None and quantity < template.min_quantity:
            raise QuantityLimitError(
                template.min_quantity_message
                or f"Minimum order quantity is {template.min_quantity}"
            )
        if template.max_quantity is not None and quantity > template.max_quantity:
            raise QuantityLimitError(
                template.max_quantity_message
                or f"Maximum order quantity is {template.max_quantity}"
            )

    def resolve_field_values(
        self,
        template: Template,
        field_values: Mapping[str, Any],
        quantity: int,
    ) -> dict[str, float]:
        """Numeric binding for every formula-exposed field."""
        resolved: dict[str, float] = {}
        for field in template.formula_fields():
            raw = field_values.get(field.key)
            if _is_missing(raw):
                if field.type == FieldType.QUANTITY_SELECTOR:
                    raw = quantity
                else:
                    # Optional input left blank counts as zero
                    raw = 0
            resolved[field.key] = resolve_field_value(field, raw).as_number()
        return resolved

    def calculate(
        self,
        template: Optional[Template],
        field_values: Mapping[str, Any],
        quantity: int,
        base_price: float,
        is_express: bool = False,
    ) -> PriceResult:
        """
        Calculate the price of one configured line.

        Raises TemplateNotFoundError, TemplateInactiveError, ValidationError
        subclasses, or FormulaError subclasses.
        """
        if template is None:
            raise TemplateNotFoundError()
        if not template.is_active:
            raise TemplateInactiveError(template.id)

        self.check_required_fields(template, field_values)
        self.check_quantity(template, quantity)

        validation = validate_formula(
            template.pricing_formula, template.formula_variable_keys(), self.settings
        )
        if not validation.valid:
            logger.warning("Template %s has an invalid formula: %s", template.id, validation.errors)
            raise InvalidFormulaError(validation.errors)

        variables = self.resolve_field_values(template, field_values, quantity)
        context = prepare_context(variables, base_price, quantity)

        normal_unit_price = evaluate(template.pricing_formula, context, self.settings)
        unit_price = normal_unit_price

        express_multiplier = template.express_multiplier or 1.0
        express_applied = bool(is_express and template.has_express_option and express_multiplier > 1)
        if express_applied:
            unit_price = unit_price * express_multiplier

        subtotal = unit_price * quantity
        discount_percent = resolve_discount(template.discount_tiers, quantity)
        discount_amount = subtotal * discount_percent / 100 if discount_percent > 0 else 0.0
        calculated_price = subtotal - discount_amount
        if not (math.isfinite(subtotal) and math.isfinite(calculated_price)):
            raise NonFiniteResultError(
                f"Price for {quantity} pcs is too large to calculate (unit price {unit_price:g})"
            )

        breakdown = self.build_breakdown(
            base_price=base_price,
            unit_price=normal_unit_price,
            quantity=quantity,
            express_applied=express_applied,
            express_multiplier=express_multiplier,
            discount_percent=discount_percent,
            discount_amount=discount_amount,
        )

        result = PriceResult(
            calculated_price=round_price(calculated_price),
            original_price=round_price(base_price * quantity),
            breakdown=breakdown,
            formatted_price=format_price(calculated_price, self.settings.currency, self.settings.currency_suffix),
            currency=self.settings.currency,
            template_id=template.id,
            template_name=template.name,
            is_express=express_applied,
            normal_price=round_price(normal_unit_price * quantity),
        )

        if discount_percent > 0:
            result.discount_percent = discount_percent
            result.discount_amount = round_price(discount_amount)
            result.price_before_discount = round_price(subtotal)

        if template.has_express_option:
            result.express_multiplier = express_multiplier
            result.express_price = round_price(normal_unit_price * express_multiplier * quantity)
        if is_express and not express_applied:
            if template.has_express_option:
                result.add_warning(
                    f"Template {template.id} has no valid express multiplier; normal price used"
                )
            else:
                result.add_warning(f"Template {template.id} has no express option; normal price used")

        result.add_trace("Template", f"{template.name} ({template.scope_type.value})", template.id)
        result.add_trace("Formula", template.pricing_formula, f"{normal_unit_price:.2f}")
        if express_applied:
            result.add_trace("Express", f"Unit price × {express_multiplier:g}", f"{unit_price:.2f}")
        result.add_trace("Extension", f"Quantity {quantity} × {unit_price:.2f}", f"{subtotal:.2f}")
        if discount_percent > 0:
            result.add_trace("Discount", f"Quantity tier -{discount_percent:g}%", f"-{discount_amount:.2f}")
        result.add_trace("Total", "Final price", f"{result.calculated_price:.2f}")

        return result

    def build_breakdown(
        self,
        base_price: float,
        unit_price: float,
        quantity: int,
        express_applied: bool = False,
        express_multiplier: float = 1.0,
        discount_percent: float = 0.0,
        discount_amount: float = 0.0,
    ) -> list[PriceBreakdownItem]:
        """Display lines in fixed order: base, unit, express, quantity, discount, total."""
        breakdown = [
            PriceBreakdownItem("Product base price", round_price(base_price), BreakdownKind.BASE),
            PriceBreakdownItem("Calculated unit price", round_price(unit_price), BreakdownKind.CALCULATION),
        ]

        effective_unit_price = unit_price
        if express_applied:
            effective_unit_price = unit_price * express_multiplier
            breakdown.append(PriceBreakdownItem(
                f"Express production (×{express_multiplier:g})",
                round_price(effective_unit_price),
                BreakdownKind.ADDON,
            ))

        subtotal = effective_unit_price * quantity
        if quantity > 1:
            breakdown.append(PriceBreakdownItem(
                f"Quantity ({quantity} pcs)", round_price(subtotal), BreakdownKind.ADDON,
            ))

        if discount_percent > 0:
            breakdown.append(PriceBreakdownItem(
                f"Quantity discount (-{discount_percent:g}%)",
                round_price(-discount_amount),
                BreakdownKind.ADDON,
            ))

        breakdown.append(PriceBreakdownItem("Total", round_price(subtotal - discount_amount), BreakdownKind.TOTAL))
        return breakdown
