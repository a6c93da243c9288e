"""
Profile completeness gate.
"""

from .completion import completion_percentage, evaluate_profile_gate, missing_fields

__all__ = ["completion_percentage", "evaluate_profile_gate", "missing_fields"]
