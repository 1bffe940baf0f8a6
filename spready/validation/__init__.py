"""Rule pipeline for destination-platform compatibility checks.

This package provides:
- RulePipeline: Evaluate the fixed rule set against one item
- RuleContext: Read-only scan parameters shared by every rule
- ValidationRule: Base class for item rules
- encoded_length / destination_length: URL length accounting
"""

from spready.validation.rules import (
    RuleContext,
    ValidationRule,
    destination_length,
    encoded_length,
)
from spready.validation.runner import DEFAULT_RULES, RulePipeline

__all__ = [
    "DEFAULT_RULES",
    "RuleContext",
    "RulePipeline",
    "ValidationRule",
    "destination_length",
    "encoded_length",
]
