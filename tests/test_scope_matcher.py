import os
import sys
from datetime import datetime

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from priceflow.engine import scope_matcher
from priceflow.engine.models import ProductScopeMetadata, ScopeType, Template


def make_template(template_id, scope_type=ScopeType.GLOBAL, scope_values=None, **kwargs):
    return Template(
        id=template_id,
        name=template_id,
        pricing_formula="base_price",
        scope_type=scope_type,
        scope_values=scope_values or [],
        **kwargs,
    )


@pytest.fixture
def product():
    return ProductScopeMetadata(
        product_id="123",
        vendor="Acme Prints",
        tags=["sale", "Canvas"],
        collection_ids=["gid-wall-art"],
    )


def test_product_scope_beats_tag_and_global(product):
    templates = [
        make_template("global"),
        make_template("tag", ScopeType.TAG, ["sale"]),
        make_template("product", ScopeType.PRODUCT, ["123"]),
    ]
    assert scope_matcher.resolve(templates, product).id == "product"


def test_applicable_is_ordered_most_specific_first(product):
    templates = [
        make_template("global"),
        make_template("tag", ScopeType.TAG, ["sale"]),
        make_template("vendor", ScopeType.VENDOR, ["Acme Prints"]),
        make_template("collection", ScopeType.COLLECTION, ["gid-wall-art"]),
        make_template("product", ScopeType.PRODUCT, ["123"]),
    ]
    ids = [t.id for t in scope_matcher.applicable(templates, product)]
    assert ids == ["product", "collection", "vendor", "tag", "global"]


def test_inactive_templates_are_excluded(product):
    templates = [
        make_template("tag", ScopeType.TAG, ["sale"]),
        make_template("product", ScopeType.PRODUCT, ["123"], is_active=False),
    ]
    assert scope_matcher.resolve(templates, product).id == "tag"


def test_vendor_match_is_case_insensitive(product):
    templates = [make_template("vendor", ScopeType.VENDOR, ["ACME PRINTS"])]
    assert scope_matcher.resolve(templates, product).id == "vendor"


def test_tag_match_is_case_insensitive(product):
    templates = [make_template("tag", ScopeType.TAG, ["canvas"])]
    assert scope_matcher.resolve(templates, product).id == "tag"


def test_collection_requires_intersection(product):
    templates = [make_template("collection", ScopeType.COLLECTION, ["gid-mugs"])]
    assert scope_matcher.resolve(templates, product) is None


def test_no_vendor_never_matches_vendor_scope():
    bare = ProductScopeMetadata(product_id="9")
    templates = [make_template("vendor", ScopeType.VENDOR, ["Acme Prints"])]
    assert scope_matcher.applicable(templates, bare) == []


def test_no_match_returns_none(product):
    templates = [make_template("other", ScopeType.PRODUCT, ["456"])]
    assert scope_matcher.resolve(templates, product) is None


def test_priority_breaks_ties_within_scope_type(product):
    templates = [
        make_template("low", ScopeType.TAG, ["sale"], priority=1),
        make_template("high", ScopeType.TAG, ["canvas"], priority=5),
    ]
    assert scope_matcher.resolve(templates, product).id == "high"


def test_priority_does_not_override_scope_rank(product):
    templates = [
        make_template("global", priority=100),
        make_template("tag", ScopeType.TAG, ["sale"]),
    ]
    assert scope_matcher.resolve(templates, product).id == "tag"


def test_newest_wins_when_priority_equal(product):
    templates = [
        make_template("older", created_at=datetime(2025, 1, 1)),
        make_template("newer", created_at=datetime(2025, 6, 1)),
        make_template("undated"),
    ]
    ids = [t.id for t in scope_matcher.applicable(templates, product)]
    assert ids == ["newer", "older", "undated"]


def test_match_reason(product):
    matches = scope_matcher.find_matching_templates(
        [make_template("tag", ScopeType.TAG, ["sale", "canvas", "mug"])], product
    )
    assert len(matches) == 1
    assert matches[0].match_reason == "tag=sale,canvas"
    assert matches[0].scope_rank == scope_matcher.SCOPE_RANK[ScopeType.TAG]
