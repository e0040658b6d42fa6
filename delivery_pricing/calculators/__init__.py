"""
Calculators Package

Provides all calculation components for delivery pricing.
"""

from .overrides import ClientOverrideResolver
from .profit import ProfitCalculator
from .rules import RuleEvaluator
from .tier import TierResolver

__all__ = [
    "TierResolver",
    "ClientOverrideResolver",
    "RuleEvaluator",
    "ProfitCalculator",
]
