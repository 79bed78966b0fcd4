"""
Pricing Service - The call-level operations the REST layer consumes.

Every function is a pure function of its arguments: templates and
product metadata are passed in fresh on each call and nothing is cached.
"""
import logging
from typing import Any, Iterable, Mapping, Optional, Union

from ..config.settings import Settings, get_settings
from ..engine import formula_evaluator, scope_matcher
from ..engine.collision_detector import detect_collisions as _detect_collisions
from ..engine.formula_validator import validate_formula as _validate_formula
from ..engine.models import (
    CollisionGroup,
    Field,
    PriceResult,
    ProductScopeMetadata,
    ProductTemplateInfo,
    Template,
    ValidationResult,
)
from ..engine.price_calculator import PriceCalculator

logger = logging.getLogger(__name__)


def _field_key(field: Union[Field, Mapping[str, Any], str]) -> str:
    if isinstance(field, Field):
        return field.key
    if isinstance(field, str):
        return field
    return field['key']


def validate_formula(formula: str, fields: Iterable[Union[Field, Mapping[str, Any], str]]) -> ValidationResult:
    """Validate a formula when a merchant saves or edits a template."""
    return _validate_formula(formula, [_field_key(f) for f in fields])


def evaluate_formula(formula: str, context: Mapping[str, float], settings: Optional[Settings] = None) -> float:
    """Evaluate a formula; raises a FormulaError subclass on failure."""
    return formula_evaluator.evaluate(formula, context, settings)


def preview_formula(formula: str, test_values: Mapping[str, float]) -> dict:
    """Admin "test formula" preview; never raises for formula problems."""
    return formula_evaluator.preview_formula(formula, test_values)


def _product(
    product_id: str,
    vendor: Optional[str] = None,
    tags: Optional[Iterable[str]] = None,
    collection_ids: Optional[Iterable[str]] = None,
) -> ProductScopeMetadata:
    return ProductScopeMetadata(
        product_id=str(product_id),
        vendor=vendor,
        tags=list(tags or []),
        collection_ids=list(collection_ids or []),
    )


def resolve_template_for_product(
    active_templates: Iterable[Template],
    product_id: str,
    vendor: Optional[str] = None,
    tags: Optional[Iterable[str]] = None,
    collection_ids: Optional[Iterable[str]] = None,
) -> Optional[Template]:
    """The single template that prices this product, or None."""
    return scope_matcher.resolve(active_templates, _product(product_id, vendor, tags, collection_ids))


def templates_for_product(
    active_templates: Iterable[Template],
    product_id: str,
    vendor: Optional[str] = None,
    tags: Optional[Iterable[str]] = None,
    collection_ids: Optional[Iterable[str]] = None,
) -> list[Template]:
    """Every template that could price this product, best first."""
    return scope_matcher.applicable(active_templates, _product(product_id, vendor, tags, collection_ids))


def get_template_for_product(
    active_templates: Iterable[Template],
    product_id: str,
    vendor: Optional[str] = None,
    tags: Optional[Iterable[str]] = None,
    collection_ids: Optional[Iterable[str]] = None,
) -> ProductTemplateInfo:
    """What the storefront configurator needs for one product."""
    template = resolve_template_for_product(active_templates, product_id, vendor, tags, collection_ids)
    if template is None:
        return ProductTemplateInfo(has_template=False)
    return ProductTemplateInfo(has_template=True, template=template)


def calculate_price(
    template: Optional[Template],
    field_values: Mapping[str, Any],
    quantity: int,
    base_price: float,
    is_express: bool = False,
    settings: Optional[Settings] = None,
) -> PriceResult:
    """
    Calculate a configured line price.

    Raises TemplateNotFoundError, TemplateInactiveError, ValidationError
    or FormulaError subclasses; all derive from PriceFlowError.
    """
    calculator = PriceCalculator(settings or get_settings())
    result = calculator.calculate(template, field_values, quantity, base_price, is_express)
    logger.debug("Priced template %s: %s", result.template_id, result.formatted_price)
    return result


def detect_collisions(active_templates: Iterable[Template]) -> list[CollisionGroup]:
    """Scope collisions among the active templates, for merchant review."""
    return _detect_collisions(active_templates)
