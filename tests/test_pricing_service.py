import os
import sys

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from priceflow.engine.errors import FormulaError, TemplateNotFoundError
from priceflow.engine.models import DiscountTier, Field, FieldType, ScopeType, Template
from priceflow.services import pricing_service


@pytest.fixture
def templates():
    return [
        Template(id="global", name="Everything", pricing_formula="base_price"),
        Template(
            id="canvas",
            name="Canvas",
            pricing_formula="base_price * width_cm / 100",
            scope_type=ScopeType.TAG,
            scope_values=["canvas"],
            fields=[Field("width_cm", FieldType.NUMBER, "Width", required=True)],
            has_express_option=True,
            express_multiplier=2.0,
            min_quantity=1,
            max_quantity=50,
            discount_tiers=[DiscountTier(10, None, 15)],
        ),
    ]


def test_validate_formula_accepts_field_shapes():
    fields = [Field("a", FieldType.NUMBER), {"key": "b"}, "c"]
    result = pricing_service.validate_formula("a + b + c", fields)
    assert result.valid


def test_evaluate_formula():
    assert pricing_service.evaluate_formula("x * 2", {"x": 1.125}) == 2.25
    with pytest.raises(FormulaError):
        pricing_service.evaluate_formula("x / 0", {"x": 1})


def test_preview_formula():
    assert pricing_service.preview_formula("x + 1", {"x": 1})["result"] == 2.0
    assert pricing_service.preview_formula("x + 1", {})["success"] is False


def test_resolve_template_for_product(templates):
    chosen = pricing_service.resolve_template_for_product(templates, "1", tags=["Canvas"])
    assert chosen.id == "canvas"

    fallback = pricing_service.resolve_template_for_product(templates, "2", vendor="Acme")
    assert fallback.id == "global"

    ids = [t.id for t in pricing_service.templates_for_product(templates, "1", tags=["canvas"])]
    assert ids == ["canvas", "global"]


def test_get_template_for_product(templates):
    info = pricing_service.get_template_for_product(templates, "1", tags=["canvas"])
    data = info.to_dict()

    assert data["hasTemplate"] is True
    assert data["template"]["id"] == "canvas"
    assert data["template"]["fields"][0]["key"] == "width_cm"
    assert data["template"]["quantityLimits"]["maxQuantity"] == 50
    assert data["template"]["discountTiers"] == [{"minQty": 10, "maxQty": None, "discount": 15}]

    none = pricing_service.get_template_for_product([], "1")
    assert none.to_dict() == {"hasTemplate": False}


def test_calculate_price(templates):
    canvas = templates[1]
    result = pricing_service.calculate_price(canvas, {"width_cm": 50}, 10, 2000, is_express=True)

    # 2000 * 50 / 100 = 1000, express x2, 10 pcs, 15% off
    assert result.calculated_price == 17000.00
    assert result.discount_percent == 15.0


def test_calculate_price_without_template():
    with pytest.raises(TemplateNotFoundError):
        pricing_service.calculate_price(None, {}, 1, 100)


def test_detect_collisions(templates):
    duplicate = Template(id="global-2", name="Also everything", pricing_formula="base_price")
    groups = pricing_service.detect_collisions(templates + [duplicate])
    assert [g.key for g in groups] == ["GLOBAL:*"]
