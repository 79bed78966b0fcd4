"""
Scope Matcher - Picks the template that applies to a product.

Used by the pricing service before calculation and by the storefront
template lookup. More specific scopes win:
PRODUCT > COLLECTION > VENDOR > TAG > GLOBAL.
Within one scope type the assignment priority (higher first) and then
the creation time (newer first) break the tie.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from .models import ProductScopeMetadata, ScopeType, Template

logger = logging.getLogger(__name__)

# Higher = more specific
SCOPE_RANK = {
    ScopeType.PRODUCT: 5,
    ScopeType.COLLECTION: 4,
    ScopeType.VENDOR: 3,
    ScopeType.TAG: 2,
    ScopeType.GLOBAL: 1,
}


@dataclass
class MatchedTemplate:
    """A template that matched with context."""
    template: Template
    scope_rank: int
    match_reason: str


def match_reason(template: Template, product: ProductScopeMetadata) -> Optional[str]:
    """
    Return why the template covers the product, or None if it does not.
    """
    scope = template.scope_type

    if scope == ScopeType.GLOBAL:
        return "global"

    if scope == ScopeType.PRODUCT:
        if product.product_id is not None and str(product.product_id) in template.scope_values:
            return f"product={product.product_id}"
        return None

    if scope == ScopeType.VENDOR:
        if not product.vendor:
            return None
        vendor = product.vendor.lower()
        for value in template.scope_values:
            if value.lower() == vendor:
                return f"vendor={product.vendor}"
        return None

    if scope == ScopeType.TAG:
        tags = {t.lower() for t in product.tags or []}
        hits = [v for v in template.scope_values if v.lower() in tags]
        return f"tag={','.join(hits)}" if hits else None

    if scope == ScopeType.COLLECTION:
        collections = set(product.collection_ids or [])
        hits = [v for v in template.scope_values if v in collections]
        return f"collection={','.join(hits)}" if hits else None

    return None


def _sort_key(match: MatchedTemplate):
    created = match.template.created_at
    created_ts = created.timestamp() if isinstance(created, datetime) else float('-inf')
    return (-match.scope_rank, -match.template.priority, -created_ts)


def find_matching_templates(
    templates: Iterable[Template],
    product: ProductScopeMetadata,
) -> list[MatchedTemplate]:
    """
    Find all active templates that cover the product.

    Returns matches sorted best first.
    """
    matched = []
    for template in templates:
        if not template.is_active:
            continue
        reason = match_reason(template, product)
        if reason is None:
            continue
        matched.append(MatchedTemplate(
            template=template,
            scope_rank=SCOPE_RANK[template.scope_type],
            match_reason=reason,
        ))

    # Stable sort keeps input order for full ties
    matched.sort(key=_sort_key)
    return matched


def applicable(templates: Iterable[Template], product: ProductScopeMetadata) -> list[Template]:
    """All active templates covering the product, best first."""
    return [m.template for m in find_matching_templates(templates, product)]


def resolve(templates: Iterable[Template], product: ProductScopeMetadata) -> Optional[Template]:
    """The single best template for the product, or None."""
    matches = find_matching_templates(templates, product)
    if not matches:
        logger.debug("No template matches product %s", product.product_id)
        return None

    best = matches[0]
    logger.debug(
        "Product %s resolved to template %s (%s, %d candidates)",
        product.product_id, best.template.id, best.match_reason, len(matches),
    )
    return best.template
