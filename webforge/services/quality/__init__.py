"""Quality validation service."""

from .service import QualityValidationService, RuleFindings, compose_report, run_rule_battery
from .syntax import syntax_diagnostics

__all__ = [
    "QualityValidationService",
    "RuleFindings",
    "compose_report",
    "run_rule_battery",
    "syntax_diagnostics",
]
