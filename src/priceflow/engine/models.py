"""
Data models for the pricing engine.

Uses dataclasses for structured, type-safe data representation.
Templates are read-only inputs: nothing in the engine mutates them.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class ScopeType(str, Enum):
    GLOBAL = "GLOBAL"
    PRODUCT = "PRODUCT"
    COLLECTION = "COLLECTION"
    VENDOR = "VENDOR"
    TAG = "TAG"


class FieldType(str, Enum):
    NUMBER = "NUMBER"
    TEXT = "TEXT"
    SELECT = "SELECT"
    RADIO = "RADIO"
    CHECKBOX = "CHECKBOX"
    TEXTAREA = "TEXTAREA"
    FILE = "FILE"
    QUANTITY_SELECTOR = "QUANTITY_SELECTOR"


# Field types whose value can be turned into a number for the formula
NUMERIC_FIELD_TYPES = frozenset({
    FieldType.NUMBER,
    FieldType.SELECT,
    FieldType.RADIO,
    FieldType.CHECKBOX,
    FieldType.QUANTITY_SELECTOR,
})

OPTION_FIELD_TYPES = frozenset({FieldType.SELECT, FieldType.RADIO, FieldType.CHECKBOX})


class BreakdownKind(str, Enum):
    BASE = "base"
    CALCULATION = "calculation"
    ADDON = "addon"
    TOTAL = "total"


@dataclass
class TraceStep:
    """A single step in the price resolution trace."""
    step: str
    description: str
    value: Optional[str] = None


@dataclass
class FieldOption:
    """One choice of a SELECT/RADIO/CHECKBOX field."""
    value: str
    label: str = ""
    price: Optional[float] = None  # price delta handed to the formula


@dataclass
class Field:
    """A merchant-defined input on a template."""
    key: str
    type: FieldType
    label: str = ""
    required: bool = False
    use_in_formula: bool = True
    options: list[FieldOption] = field(default_factory=list)
    order: int = 0

    @property
    def exposes_variable(self) -> bool:
        """True when the field becomes a formula variable."""
        return self.use_in_formula and self.type in NUMERIC_FIELD_TYPES

    def find_option(self, value: str) -> Optional[FieldOption]:
        for option in self.options:
            if option.value == value:
                return option
        return None


@dataclass
class DiscountTier:
    """Quantity range mapped to a percentage discount. max_qty None = unbounded."""
    min_qty: int
    max_qty: Optional[int]
    discount: float

    def contains(self, quantity: int) -> bool:
        return quantity >= self.min_qty and (self.max_qty is None or quantity <= self.max_qty)


@dataclass
class Template:
    """A named pricing rule with its scope, fields and pricing options."""
    id: str
    name: str
    pricing_formula: str
    scope_type: ScopeType = ScopeType.GLOBAL
    scope_values: list[str] = field(default_factory=list)
    fields: list[Field] = field(default_factory=list)
    is_active: bool = True
    description: Optional[str] = None

    # Express option
    has_express_option: bool = False
    express_multiplier: Optional[float] = None
    express_label: Optional[str] = None
    normal_label: Optional[str] = None

    # Quantity limits
    min_quantity: Optional[int] = None
    max_quantity: Optional[int] = None
    min_quantity_message: Optional[str] = None
    max_quantity_message: Optional[str] = None

    discount_tiers: list[DiscountTier] = field(default_factory=list)

    # Tie-break keys supplied by the assignment layer
    priority: int = 0
    created_at: Optional[datetime] = None

    def get_field(self, key: str) -> Optional[Field]:
        for f in self.fields:
            if f.key == key:
                return f
        return None

    def formula_fields(self) -> list[Field]:
        """Fields exposed to the formula, in display order."""
        return sorted((f for f in self.fields if f.exposes_variable), key=lambda f: f.order)

    def formula_variable_keys(self) -> list[str]:
        return [f.key for f in self.formula_fields()]

    @property
    def has_quantity_limits(self) -> bool:
        return any(v is not None for v in (
            self.min_quantity, self.max_quantity,
            self.min_quantity_message, self.max_quantity_message,
        ))


@dataclass
class ProductScopeMetadata:
    """Per-request product facts used for scope matching. Never persisted."""
    product_id: str
    vendor: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    collection_ids: list[str] = field(default_factory=list)


# Field values as submitted by the storefront, resolved to one float each

@dataclass(frozen=True)
class NumberValue:
    value: float

    def as_number(self) -> float:
        return float(self.value)


@dataclass(frozen=True)
class BoolValue:
    value: bool

    def as_number(self) -> float:
        return 1.0 if self.value else 0.0


@dataclass(frozen=True)
class OptionValue:
    """A chosen option (or several, for checkbox lists) reduced to its price delta."""
    selected: tuple[str, ...]
    price_delta: float

    def as_number(self) -> float:
        return float(self.price_delta)


FieldValue = Union[NumberValue, BoolValue, OptionValue]


@dataclass
class PriceBreakdownItem:
    """A display line of the price breakdown. Not authoritative state."""
    label: str
    value: float
    kind: BreakdownKind

    def to_dict(self) -> dict:
        return {"label": self.label, "value": self.value, "type": self.kind.value}


@dataclass
class PriceResult:
    """Complete result of a price calculation."""
    calculated_price: float
    original_price: float
    breakdown: list[PriceBreakdownItem]
    formatted_price: str
    currency: str
    template_id: str
    template_name: str

    # Discount info
    discount_percent: Optional[float] = None
    discount_amount: Optional[float] = None
    price_before_discount: Optional[float] = None

    # Express info
    is_express: bool = False
    express_multiplier: Optional[float] = None
    normal_price: Optional[float] = None
    express_price: Optional[float] = None

    warnings: list[str] = field(default_factory=list)
    trace: list[TraceStep] = field(default_factory=list)

    def add_trace(self, step: str, description: str, value: str = None):
        """Add a step to the result trace."""
        self.trace.append(TraceStep(step=step, description=description, value=value))

    def add_warning(self, warning: str):
        self.warnings.append(warning)

    def get_trace_text(self) -> str:
        """Get human-readable trace as formatted text."""
        lines = []
        for t in self.trace:
            if t.value:
                lines.append(f"→ {t.step}: {t.description} = {t.value}")
            else:
                lines.append(f"→ {t.step}: {t.description}")
        return "\n".join(lines)

    def to_dict(self) -> dict:
        """Convert to the camelCase shape the storefront widget consumes."""
        data = {
            "calculatedPrice": self.calculated_price,
            "originalPrice": self.original_price,
            "breakdown": [item.to_dict() for item in self.breakdown],
            "formattedPrice": self.formatted_price,
            "currency": self.currency,
            "templateId": self.template_id,
            "templateName": self.template_name,
            "discountPercent": self.discount_percent,
            "discountAmount": self.discount_amount,
            "priceBeforeDiscount": self.price_before_discount,
            "isExpress": self.is_express,
            "expressMultiplier": self.express_multiplier,
            "normalPrice": self.normal_price,
            "expressPrice": self.express_price,
        }
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class ValidationResult:
    """Result of formula or template validation."""
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"valid": self.valid, "errors": list(self.errors), "warnings": list(self.warnings)}


@dataclass
class CollisionGroup:
    """Active templates that all claim the same scope key."""
    scope_type: ScopeType
    scope_value: Optional[str]  # None for GLOBAL
    templates: list[Template] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.scope_type.value}:{self.scope_value if self.scope_value is not None else '*'}"

    def to_dict(self) -> dict:
        return {
            "scopeType": self.scope_type.value,
            "scopeValue": self.scope_value,
            "templates": [
                {"id": t.id, "name": t.name, "priority": t.priority}
                for t in self.templates
            ],
        }


@dataclass
class ProductTemplateInfo:
    """What the storefront needs to render the configurator for one product."""
    has_template: bool
    template: Optional[Template] = None

    def to_dict(self) -> dict:
        if not self.has_template or self.template is None:
            return {"hasTemplate": False}

        t = self.template
        data = {
            "id": t.id,
            "name": t.name,
            "description": t.description,
            "fields": [
                {
                    "key": f.key,
                    "type": f.type.value,
                    "label": f.label,
                    "required": f.required,
                    "useInFormula": f.use_in_formula,
                    "order": f.order,
                    "options": [
                        {"value": o.value, "label": o.label, "price": o.price}
                        for o in f.options
                    ] or None,
                }
                for f in sorted(t.fields, key=lambda f: f.order)
            ],
            "hasExpressOption": t.has_express_option,
            "expressMultiplier": t.express_multiplier,
            "expressLabel": t.express_label,
            "normalLabel": t.normal_label,
        }
        if t.has_quantity_limits:
            data["quantityLimits"] = {
                "minQuantity": t.min_quantity,
                "maxQuantity": t.max_quantity,
                "minQuantityMessage": t.min_quantity_message,
                "maxQuantityMessage": t.max_quantity_message,
            }
        if t.discount_tiers:
            data["discountTiers"] = [
                {"minQty": d.min_qty, "maxQty": d.max_qty, "discount": d.discount}
                for d in t.discount_tiers
            ]
        return {"hasTemplate": True, "template": data}
