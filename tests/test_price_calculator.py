import os
import sys

import pytest

# Add src to path for internal imports
src_path = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'src')
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from priceflow.config.settings import Settings
from priceflow.engine.errors import (
    InvalidFieldValueError,
    InvalidFormulaError,
    NonFiniteResultError,
    QuantityLimitError,
    RequiredFieldMissingError,
    TemplateInactiveError,
    TemplateNotFoundError,
    ValidationError,
)
from priceflow.engine.models import (
    BoolValue,
    BreakdownKind,
    DiscountTier,
    Field,
    FieldOption,
    FieldType,
    NumberValue,
    OptionValue,
    Template,
)
from priceflow.engine.price_calculator import PriceCalculator, format_price, resolve_field_value

AREA_VALUES = {"width_cm": 200, "height_cm": 150, "unit_m2_price": 3000}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        project_root=tmp_path,
        templates_snapshot=tmp_path / 'templates.json',
        reports_dir=tmp_path / 'reports',
    )


@pytest.fixture
def calculator(settings):
    return PriceCalculator(settings)


@pytest.fixture
def canvas():
    return Template(
        id="tpl-canvas",
        name="Canvas print",
        pricing_formula="(width_cm*height_cm/10000)*unit_m2_price",
        fields=[
            Field("width_cm", FieldType.NUMBER, "Width (cm)", required=True, order=0),
            Field("height_cm", FieldType.NUMBER, "Height (cm)", required=True, order=1),
            Field("unit_m2_price", FieldType.NUMBER, "Price per m2", required=True, order=2),
        ],
    )


def option_template(field):
    return Template(
        id="tpl-options",
        name="Options",
        pricing_formula=f"base_price + {field.key}",
        fields=[field],
    )


def test_area_price(calculator, canvas):
    result = calculator.calculate(canvas, AREA_VALUES, 1, 0)

    assert result.calculated_price == 9000.00
    assert result.formatted_price == "9 000 Ft"
    assert result.currency == "HUF"
    assert result.template_id == "tpl-canvas"
    assert result.is_express is False
    assert result.discount_percent is None
    assert [item.kind for item in result.breakdown] == [
        BreakdownKind.BASE, BreakdownKind.CALCULATION, BreakdownKind.TOTAL,
    ]


def test_express_multiplier(calculator, canvas):
    canvas.has_express_option = True
    canvas.express_multiplier = 1.5

    result = calculator.calculate(canvas, AREA_VALUES, 1, 0, is_express=True)

    assert result.calculated_price == 13500.00
    assert result.is_express is True
    assert result.normal_price == 9000.00
    assert result.express_price == 13500.00
    assert [item.label for item in result.breakdown] == [
        "Product base price",
        "Calculated unit price",
        "Express production (×1.5)",
        "Total",
    ]


def test_express_prices_reported_when_not_selected(calculator, canvas):
    canvas.has_express_option = True
    canvas.express_multiplier = 1.5

    result = calculator.calculate(canvas, AREA_VALUES, 1, 0)

    assert result.calculated_price == 9000.00
    assert result.is_express is False
    assert result.express_price == 13500.00


def test_express_requested_without_support(calculator, canvas):
    result = calculator.calculate(canvas, AREA_VALUES, 1, 0, is_express=True)

    assert result.calculated_price == 9000.00
    assert result.is_express is False
    assert len(result.warnings) == 1


def test_quantity_discount_breakdown(calculator, canvas):
    canvas.discount_tiers = [
        DiscountTier(1, 4, 0),
        DiscountTier(5, 9, 10),
        DiscountTier(10, None, 20),
    ]

    result = calculator.calculate(canvas, AREA_VALUES, 5, 1000)

    assert result.calculated_price == 40500.00
    assert result.discount_percent == 10.0
    assert result.discount_amount == 4500.00
    assert result.price_before_discount == 45000.00
    assert result.original_price == 5000.00
    assert [(item.label, item.value) for item in result.breakdown] == [
        ("Product base price", 1000.00),
        ("Calculated unit price", 9000.00),
        ("Quantity (5 pcs)", 45000.00),
        ("Quantity discount (-10%)", -4500.00),
        ("Total", 40500.00),
    ]


def test_express_and_discount_together(calculator, canvas):
    canvas.has_express_option = True
    canvas.express_multiplier = 1.5
    canvas.discount_tiers = [DiscountTier(10, None, 20)]

    result = calculator.calculate(canvas, AREA_VALUES, 10, 0, is_express=True)

    # 9000 * 1.5 * 10 = 135000, less 20%
    assert result.calculated_price == 108000.00
    assert result.normal_price == 90000.00
    assert result.express_price == 135000.00


def test_missing_template(calculator):
    with pytest.raises(TemplateNotFoundError):
        calculator.calculate(None, {}, 1, 0)


def test_inactive_template(calculator, canvas):
    canvas.is_active = False
    with pytest.raises(TemplateInactiveError):
        calculator.calculate(canvas, AREA_VALUES, 1, 0)


@pytest.mark.parametrize("value", [None, "", "   "])
def test_required_field_missing(calculator, canvas, value):
    values = dict(AREA_VALUES, width_cm=value)
    with pytest.raises(RequiredFieldMissingError) as exc:
        calculator.calculate(canvas, values, 1, 0)
    assert exc.value.key == "width_cm"
    assert "Width (cm)" in exc.value.message


def test_invalid_formula_is_never_evaluated(calculator, canvas, monkeypatch):
    canvas.pricing_formula = "width_cm * height_cm * unknown_rate"

    def fail(*args, **kwargs):
        raise AssertionError("evaluate must not run for a rejected formula")

    monkeypatch.setattr("priceflow.engine.price_calculator.evaluate", fail)

    with pytest.raises(InvalidFormulaError) as exc:
        calculator.calculate(canvas, AREA_VALUES, 1, 0)
    assert any("unknown_rate" in e for e in exc.value.errors)


def test_select_option_price_delta(calculator):
    template = option_template(Field("paper", FieldType.SELECT, required=True, options=[
        FieldOption("matte", "Matte", 0),
        FieldOption("glossy", "Glossy", 500),
    ]))

    assert calculator.calculate(template, {"paper": "glossy"}, 1, 1000).calculated_price == 1500.00
    assert calculator.calculate(template, {"paper": "matte"}, 1, 1000).calculated_price == 1000.00


def test_unknown_option(calculator):
    template = option_template(Field("paper", FieldType.RADIO, options=[FieldOption("matte", price=0)]))
    with pytest.raises(InvalidFieldValueError):
        calculator.calculate(template, {"paper": "canvas"}, 1, 1000)


def test_checkbox_single_option(calculator):
    template = option_template(Field("lamination", FieldType.CHECKBOX, options=[
        FieldOption("yes", "Lamination", 300),
    ]))

    assert calculator.calculate(template, {"lamination": True}, 1, 1000).calculated_price == 1300.00
    assert calculator.calculate(template, {"lamination": False}, 1, 1000).calculated_price == 1000.00


def test_checkbox_multiple_options(calculator):
    template = option_template(Field("extras", FieldType.CHECKBOX, options=[
        FieldOption("frame", price=100),
        FieldOption("hook", price=200),
    ]))

    result = calculator.calculate(template, {"extras": ["frame", "hook"]}, 1, 1000)
    assert result.calculated_price == 1300.00


def test_optional_field_defaults_to_zero(calculator):
    template = option_template(Field("extra", FieldType.NUMBER))
    assert calculator.calculate(template, {}, 1, 1000).calculated_price == 1000.00


def test_numeric_string_is_accepted(calculator):
    template = option_template(Field("extra", FieldType.NUMBER))
    assert calculator.calculate(template, {"extra": " 250 "}, 1, 1000).calculated_price == 1250.00

    with pytest.raises(InvalidFieldValueError):
        calculator.calculate(template, {"extra": "abc"}, 1, 1000)


def test_quantity_selector_defaults_to_line_quantity(calculator):
    template = Template(
        id="t", name="t", pricing_formula="base_price * copies",
        fields=[Field("copies", FieldType.QUANTITY_SELECTOR)],
    )
    assert calculator.resolve_field_values(template, {}, 7) == {"copies": 7.0}


def test_text_fields_are_not_bound(calculator):
    template = Template(
        id="t", name="t", pricing_formula="base_price",
        fields=[Field("note", FieldType.TEXT), Field("hidden", FieldType.NUMBER, use_in_formula=False)],
    )
    assert calculator.resolve_field_values(template, {"note": "hi", "hidden": 5}, 1) == {}


def test_quantity_limits(calculator, canvas):
    canvas.min_quantity = 10
    canvas.min_quantity_message = "Minimum 10 pieces"
    canvas.max_quantity = 100

    with pytest.raises(QuantityLimitError) as exc:
        calculator.calculate(canvas, AREA_VALUES, 5, 0)
    assert exc.value.message == "Minimum 10 pieces"

    with pytest.raises(QuantityLimitError) as exc:
        calculator.calculate(canvas, AREA_VALUES, 101, 0)
    assert exc.value.message == "Maximum order quantity is 100"

    assert calculator.calculate(canvas, AREA_VALUES, 10, 0).calculated_price == 90000.00


@pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
def test_quantity_must_be_positive_integer(calculator, canvas, quantity):
    with pytest.raises(ValidationError):
        calculator.calculate(canvas, AREA_VALUES, quantity, 0)


def test_to_dict_and_trace(calculator, canvas):
    result = calculator.calculate(canvas, AREA_VALUES, 2, 100)
    data = result.to_dict()

    assert data["calculatedPrice"] == 18000.00
    assert data["originalPrice"] == 200.00
    assert data["breakdown"][0] == {"label": "Product base price", "value": 100.00, "type": "base"}
    assert "discountPercent" not in data
    assert "→ Formula:" in result.get_trace_text()
    assert result.trace[-1].step == "Total"


def test_resolve_field_value_variants():
    number = Field("n", FieldType.NUMBER)
    select = Field("s", FieldType.SELECT, options=[FieldOption("a", price=None)])

    assert resolve_field_value(number, 3) == NumberValue(3.0)
    assert resolve_field_value(number, True) == BoolValue(True)
    # An option without a price contributes nothing
    assert resolve_field_value(select, "a") == OptionValue(("a",), 0.0)


def test_format_price():
    assert format_price(12500, "HUF", "Ft") == "12 500 Ft"
    assert format_price(1234.5, "EUR") == "1 234.50 EUR"
    assert format_price(999.5, "HUF", "Ft") == "1 000 Ft"


def test_subtotal_too_large_to_calculate(calculator):
    template = Template(id="tpl-huge", name="Huge", pricing_formula="base_price")

    with pytest.raises(NonFiniteResultError) as exc:
        calculator.calculate(template, {}, 100, 1e307)
    assert "too large" in exc.value.message


@pytest.mark.parametrize("multiplier", [None, 1.0, 0.5])
def test_express_option_without_valid_multiplier(calculator, canvas, multiplier):
    canvas.has_express_option = True
    canvas.express_multiplier = multiplier

    result = calculator.calculate(canvas, AREA_VALUES, 1, 0, is_express=True)

    assert result.calculated_price == 9000.00
    assert result.is_express is False
    assert len(result.warnings) == 1
    assert "no valid express multiplier" in result.warnings[0]


def test_formula_limits_follow_calculator_settings(tmp_path):
    formula = "(" * 80 + "base_price" + ")" * 80
    template = Template(id="tpl-nested", name="Nested", pricing_formula=formula)
    deep = Settings(
        project_root=tmp_path,
        templates_snapshot=tmp_path / 'templates.json',
        reports_dir=tmp_path / 'reports',
        max_formula_depth=200,
    )

    result = PriceCalculator(deep).calculate(template, {}, 1, 250)
    assert result.calculated_price == 250.00

    shallow = Settings(
        project_root=tmp_path,
        templates_snapshot=tmp_path / 'templates.json',
        reports_dir=tmp_path / 'reports',
    )
    with pytest.raises(InvalidFormulaError):
        PriceCalculator(shallow).calculate(template, {}, 1, 250)
