# src/core/pricing/__init__.py
from src.core.pricing.service import compute_breakdown, round_half_up

__all__ = ["compute_breakdown", "round_half_up"]
