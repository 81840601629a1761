from .rules import BaseRules, resolve_rule_set
from .validator import ValidationFactory, Validator

__all__ = ["BaseRules", "ValidationFactory", "Validator", "resolve_rule_set"]
