"""
DELIVERY PRICING ENGINE
Template-driven catering delivery pricing
"""

from .models import CalculationInput, CalculationResult
from .processor import CalculationProcessor

__all__ = ['CalculationProcessor', 'CalculationInput', 'CalculationResult']
