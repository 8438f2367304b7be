"""
Candidate services.

Provides:
- Merging new candidates into the stored collection
- Ingestion (backfill scans and live messages) in ``services.ingestion``
"""

from .merge import MergeResult, merge_candidates, merge_with_report

__all__ = ["MergeResult", "merge_candidates", "merge_with_report"]
