"""
Outreach and follow-up eligibility.
"""

from .service import EligibilityEngine, eligibility_engine

__all__ = ["EligibilityEngine", "eligibility_engine"]
