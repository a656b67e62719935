"""
Lead Scoring Module for the Lead Lifecycle Engine.

This module provides lead qualification and ownership:
- Intent scoring (0-100 scale, hot/warm/cold)
- Sales rep assignment (least-loaded with overflow)
"""

from .scoring_model import IntentScorer, KeywordIntentScorer, ScoreResult
from .assignment import AssignmentResult, AssignmentStrategy, RepAssignor, choose_rep

__all__ = [
    "IntentScorer",
    "KeywordIntentScorer",
    "ScoreResult",
    "AssignmentResult",
    "AssignmentStrategy",
    "RepAssignor",
    "choose_rep",
]
