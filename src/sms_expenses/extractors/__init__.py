"""
SMS expense extractors.

Provides:
- classify: Transaction/expense classification of a message
- SMSTextExtractor: Amount, merchant, date and payment method heuristics
- CandidateAssembler: Full message -> ExpenseCandidate pipeline
- Base classes for custom extractors
"""

from .assembler import CandidateAssembler
from .base import BaseExtractor, ExtractionResult
from .classifier import MessageClassification, classify
from .sms_extractor import SMSTextExtractor, extract

__all__ = [
    "CandidateAssembler",
    "SMSTextExtractor",
    "BaseExtractor",
    "ExtractionResult",
    "MessageClassification",
    "classify",
    "extract",
]
