"""
Human-in-the-loop review module.

Provides:
- Pending queue access
- Confirm/reject decisions on stored candidates
"""

from .workflow import CandidateLifecycle, ReviewDecision

__all__ = [
    "CandidateLifecycle",
    "ReviewDecision",
]
