"""
CLI runner module.

Provides commands:
- parse: Run the detector on one SMS text
- scan: Backfill candidates from recent SMS
- listen: Detect expenses in new SMS as they arrive
- pending/confirm/reject/delete: Review queue
- status: Statistics
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
