"""
Template Snapshot - Reads the template export of the persistence layer.

The snapshot is a JSON document (a list, or {"templates": [...]}) using
the same camelCase keys as the admin API. Each entry is validated on its
own; a malformed entry is logged and skipped so the rest still load.
"""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..engine.models import (
    DiscountTier,
    Field,
    FieldOption,
    FieldType,
    ScopeType,
    Template,
)

logger = logging.getLogger(__name__)


def parse_bool(value: Any, default: bool = False) -> bool:
    """Parse a boolean from JSON or a string."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def parse_optional_int(value: Any) -> Optional[int]:
    """Parse optional integer."""
    if value is None or (isinstance(value, str) and value.strip() == ''):
        return None
    return int(value)


def parse_optional_float(value: Any) -> Optional[float]:
    """Parse optional float."""
    if value is None or (isinstance(value, str) and value.strip() == ''):
        return None
    return float(value)


def parse_optional_str(value: Any) -> Optional[str]:
    """Parse optional string (empty = None)."""
    if value is None or str(value).strip() == '':
        return None
    return str(value).strip()


def parse_datetime(value: Any) -> Optional[datetime]:
    text = parse_optional_str(value)
    if text is None:
        return None
    # Accept the trailing Z that JavaScript ISO strings carry
    return datetime.fromisoformat(text.replace('Z', '+00:00'))


def field_from_dict(data: dict, index: int = 0) -> Field:
    key = parse_optional_str(data.get('key'))
    if not key:
        raise ValueError(f"field {index + 1}: key is required")

    options = []
    for option in data.get('options') or []:
        options.append(FieldOption(
            value=str(option.get('value', '')),
            label=str(option.get('label', '')),
            price=parse_optional_float(option.get('price', option.get('priceModifier'))),
        ))

    order = parse_optional_int(data.get('order'))

    return Field(
        key=key,
        type=FieldType(str(data.get('type', 'NUMBER')).upper()),
        label=str(data.get('label') or key),
        required=parse_bool(data.get('required')),
        use_in_formula=parse_bool(data.get('useInFormula'), default=True),
        options=options,
        order=index if order is None else order,
    )


def template_from_dict(data: dict) -> Template:
    """
    Build a Template from one snapshot entry.

    Raises ValueError (or KeyError) when the entry is malformed.
    """
    template_id = parse_optional_str(data.get('id'))
    if not template_id:
        raise ValueError("id is required")

    formula = data.get('pricingFormula')
    if formula is None:
        raise ValueError("pricingFormula is required")

    # Fields may sit at the top level or inside sections
    raw_fields = list(data.get('fields') or [])
    for section in data.get('sections') or []:
        raw_fields.extend(section.get('fields') or [])
    fields = [field_from_dict(f, i) for i, f in enumerate(raw_fields)]

    tiers = [
        DiscountTier(
            min_qty=int(t['minQty']),
            max_qty=parse_optional_int(t.get('maxQty')),
            discount=float(t['discount']),
        )
        for t in data.get('discountTiers') or []
    ]

    return Template(
        id=template_id,
        name=parse_optional_str(data.get('name')) or template_id,
        pricing_formula=str(formula),
        scope_type=ScopeType(str(data.get('scopeType', 'GLOBAL')).upper()),
        scope_values=[str(v) for v in data.get('scopeValues') or []],
        fields=fields,
        is_active=parse_bool(data.get('isActive'), default=True),
        description=parse_optional_str(data.get('description')),
        has_express_option=parse_bool(data.get('hasExpressOption')),
        express_multiplier=parse_optional_float(data.get('expressMultiplier')),
        express_label=parse_optional_str(data.get('expressLabel')),
        normal_label=parse_optional_str(data.get('normalLabel')),
        min_quantity=parse_optional_int(data.get('minQuantity')),
        max_quantity=parse_optional_int(data.get('maxQuantity')),
        min_quantity_message=parse_optional_str(data.get('minQuantityMessage')),
        max_quantity_message=parse_optional_str(data.get('maxQuantityMessage')),
        discount_tiers=tiers,
        priority=parse_optional_int(data.get('priority')) or 0,
        created_at=parse_datetime(data.get('createdAt')),
    )


def parse_snapshot(data: Any) -> tuple[list[Template], list[str]]:
    """
    Parse an already-decoded snapshot document.

    Returns (templates, errors).
    """
    entries = data.get('templates', []) if isinstance(data, dict) else data
    templates = []
    errors = []

    for index, entry in enumerate(entries or []):
        try:
            templates.append(template_from_dict(entry))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            label = entry.get('id', f"#{index + 1}") if isinstance(entry, dict) else f"#{index + 1}"
            msg = f"Template {label}: {e}"
            logger.warning("Skipping snapshot entry: %s", msg)
            errors.append(msg)

    return templates, errors


def load_snapshot(path: Path) -> tuple[list[Template], list[str]]:
    """
    Load templates from a snapshot file.

    Returns (templates, errors). A missing or unreadable file yields no
    templates and a single error.
    """
    if not path.exists():
        return [], [f"Snapshot file not found: {path}"]

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.warning("Snapshot %s is not valid JSON: %s", path, e)
        return [], [f"Snapshot is not valid JSON: {e}"]

    templates, errors = parse_snapshot(data)
    logger.info("Loaded %d templates from %s (%d skipped)", len(templates), path, len(errors))
    return templates, errors
