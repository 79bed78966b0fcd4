"""
Template Service - Read access and save-time validation for templates.

Works over a read-only snapshot supplied by the persistence layer;
nothing here writes templates back.
"""
import logging
import re
from typing import Iterable, Optional

from ..engine.collision_detector import scope_keys
from ..engine.discount_tiers import find_overlaps
from ..engine.formula_validator import validate_formula
from ..engine.models import ScopeType, Template, ValidationResult

logger = logging.getLogger(__name__)

FIELD_KEY_RE = re.compile(r'^[a-z_][a-z0-9_]*$')


class TemplateService:
    """Service for looking up and validating pricing templates."""

    def __init__(self, templates: Optional[Iterable[Template]] = None):
        self._templates: list[Template] = list(templates or [])

    def list_templates(self, include_inactive: bool = True) -> list[Template]:
        """List templates from the snapshot."""
        return [t for t in self._templates if include_inactive or t.is_active]

    def get_template(self, template_id: str) -> Optional[Template]:
        """Get a single template by ID."""
        for template in self._templates:
            if template.id == template_id:
                return template
        return None

    def validate_template(self, template: Template) -> ValidationResult:
        """Validate a template before saving."""
        result = ValidationResult(valid=True)

        if not template.name or not template.name.strip():
            result.errors.append("Name is required")

        # Fields
        seen_keys = set()
        for field in template.fields:
            if not FIELD_KEY_RE.match(field.key or ''):
                result.errors.append(
                    f"Invalid field key '{field.key}': use lowercase letters, digits and underscores, "
                    "not starting with a digit"
                )
            if field.key in seen_keys:
                result.errors.append(f"Duplicate field key '{field.key}'")
            seen_keys.add(field.key)

        # Formula against the fields it can see
        formula_check = validate_formula(template.pricing_formula, template.formula_variable_keys())
        result.errors.extend(formula_check.errors)
        result.warnings.extend(formula_check.warnings)

        # Scope
        if template.scope_type == ScopeType.GLOBAL and template.scope_values:
            result.errors.append("GLOBAL templates cannot have scope values")
        if template.scope_type != ScopeType.GLOBAL and not template.scope_values:
            result.errors.append(f"{template.scope_type.value} templates need at least one scope value")

        # Express option
        if template.has_express_option:
            if template.express_multiplier is None:
                result.errors.append("Express multiplier is required when the express option is enabled")
            elif template.express_multiplier <= 1:
                result.errors.append("Express multiplier must be greater than 1")

        # Quantity limits
        if template.min_quantity is not None and template.min_quantity < 1:
            result.errors.append("Minimum quantity must be at least 1")
        if (
            template.min_quantity is not None
            and template.max_quantity is not None
            and template.min_quantity > template.max_quantity
        ):
            result.errors.append("Minimum quantity cannot exceed maximum quantity")

        # Discount tiers
        for i, tier in enumerate(template.discount_tiers, start=1):
            if tier.min_qty < 0:
                result.errors.append(f"Discount tier {i}: minimum quantity cannot be negative")
            if tier.max_qty is not None and tier.max_qty < tier.min_qty:
                result.errors.append(f"Discount tier {i}: maximum quantity is below the minimum")
            if not 0 <= tier.discount <= 100:
                result.errors.append(f"Discount tier {i}: discount must be between 0 and 100")

        for lower, upper in find_overlaps(template.discount_tiers):
            result.warnings.append(
                f"Discount tiers starting at {lower.min_qty} and {upper.min_qty} overlap; "
                f"the tier starting at {upper.min_qty} wins inside the overlap"
            )

        # Check for potential conflicts
        if not result.errors and template.is_active:
            result.warnings.extend(self._check_conflicts(template))

        result.valid = not result.errors
        return result

    def _check_conflicts(self, template: Template) -> list[str]:
        """Check for active templates that claim the same scope as this one."""
        warnings = []
        keys = set(scope_keys(template))

        for existing in self._templates:
            if existing.id == template.id or not existing.is_active:
                continue
            shared = [k for k in scope_keys(existing) if k in keys]
            if shared:
                warnings.append(
                    f"Scope overlaps with template '{existing.name}' ({existing.id}) on {', '.join(shared)}"
                )
        return warnings

    def audit(self) -> dict[str, ValidationResult]:
        """
        Validate every template in the snapshot.

        A broken template is logged and reported, never fatal for the rest.
        """
        report = {}
        for template in self._templates:
            result = self.validate_template(template)
            if not result.valid:
                logger.warning("Template %s failed validation: %s", template.id, "; ".join(result.errors))
            report[template.id] = result
        return report

    def get_stats(self) -> dict:
        """Get statistics about templates."""
        templates = self.list_templates()
        active = [t for t in templates if t.is_active]

        by_scope = {}
        for t in templates:
            by_scope[t.scope_type.value] = by_scope.get(t.scope_type.value, 0) + 1

        return {
            'total': len(templates),
            'active': len(active),
            'inactive': len(templates) - len(active),
            'with_express': sum(1 for t in templates if t.has_express_option),
            'with_discounts': sum(1 for t in templates if t.discount_tiers),
            'by_scope': by_scope,
        }
