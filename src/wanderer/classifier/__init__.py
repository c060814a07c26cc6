"""Document classification."""

from .classifier import classify
from .rules import CATEGORY_NAMES, CATEGORY_RULES, RULES_VERSION, CategoryRule

__all__ = ["classify", "CategoryRule", "CATEGORY_RULES", "CATEGORY_NAMES", "RULES_VERSION"]
