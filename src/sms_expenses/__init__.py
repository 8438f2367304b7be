"""
Bank SMS → Expense Candidates → Human-in-the-loop review

A deterministic, testable pipeline that turns bank and wallet SMS alerts
into expense candidates with keyword categorization, confidence banding,
duplicate suppression and a small review lifecycle.
"""

__version__ = "0.1.0"
