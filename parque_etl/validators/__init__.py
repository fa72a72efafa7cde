"""Record validators: compliance policy, schema checks and business rules."""

from .business_rules import DEFAULT_RULES, BusinessRule, BusinessRulesValidator, score_from_counts  # noqa: F401
from .policy import PolicyRule, all_policy_rules, evaluate_policy  # noqa: F401
from .report import ValidationReport  # noqa: F401
from .schema_validator import SCHEMA, FieldSpec, SchemaValidator  # noqa: F401

__all__ = [
    "BusinessRule",
    "BusinessRulesValidator",
    "DEFAULT_RULES",
    "FieldSpec",
    "PolicyRule",
    "SCHEMA",
    "SchemaValidator",
    "ValidationReport",
    "all_policy_rules",
    "evaluate_policy",
    "score_from_counts",
]
