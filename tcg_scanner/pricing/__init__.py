"""Pricing package for per-game market prices."""

from .poketcg import map_price_blocks
from .resolver import PricingResolver

__all__ = ["PricingResolver", "map_price_blocks"]
