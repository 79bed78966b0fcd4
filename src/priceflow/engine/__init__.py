"""Engine subpackage - formula language, scope matching and price calculation."""
from .price_calculator import PriceCalculator
from .models import Template, Field, DiscountTier, ProductScopeMetadata, PriceResult

__all__ = ['PriceCalculator', 'Template', 'Field', 'DiscountTier', 'ProductScopeMetadata', 'PriceResult']
