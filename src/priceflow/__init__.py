"""
PriceFlow Package

Template-driven pricing for custom-made products.
Resolves Product → Template → Formula → Price with express and quantity discounts.
"""

__version__ = "1.0.0"
