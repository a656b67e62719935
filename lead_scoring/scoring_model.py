"""
Lead Scoring Model for the Lead Lifecycle Engine.

Implements a keyword-signal scoring system behind a small strategy
interface so a model-backed scorer can replace it without touching callers.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from database.models import InterestLabel

logger = logging.getLogger(__name__)

NO_SIGNAL_REASON = "insufficient behavioral signals"


@dataclass
class ScoreResult:
    """Lead score result."""
    score: int  # 0-100
    interest_label: InterestLabel
    confidence: float  # 0.45-0.95
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "interest_label": self.interest_label.value,
            "confidence": self.confidence,
            "reason": self.reason,
        }


class IntentScorer(ABC):
    """Strategy interface for buying-intent scoring."""

    @abstractmethod
    def score(
        self,
        transcript: Optional[str] = None,
        summary: Optional[str] = None,
        goal: Optional[str] = None,
        visit_time: Optional[str] = None,
        duration_seconds: Optional[int] = None,
    ) -> ScoreResult:
        """Score one call. Must be side-effect free."""


class KeywordIntentScorer(IntentScorer):
    """
    Scores leads from keyword hits in the call text plus call metadata.

    Scoring Rules (0-100, starting at the baseline):
    - Baseline: 25
    - Visit time captured: +25
    - Positive intent keyword: +6 each, capped at +30
    - Negative intent keyword: -8 each, capped at -35
    - Call duration >= 2 min: +8
    - Call duration >= 5 min: +6 more
    - Goal identified: +6

    Thresholds:
    - Score >= 75: Hot
    - Score 45-74: Warm
    - Score < 45: Cold
    """

    SCORING_RULES = {
        "baseline": 25,
        "visit_time": 25,
        "positive_keyword": 6,
        "positive_cap": 30,
        "negative_keyword": 8,
        "negative_cap": 35,
        "duration_2_min": 8,
        "duration_5_min": 6,
        "goal": 6,
    }

    POSITIVE_SIGNALS = (
        "visit",
        "schedule",
        "book",
        "interested",
        "buy",
        "purchase",
        "budget",
        "loan",
        "pre approved",
        "ready",
        "this week",
        "tomorrow",
    )

    NEGATIVE_SIGNALS = (
        "not interested",
        "later",
        "maybe",
        "no budget",
        "wrong number",
        "just browsing",
        "call back next month",
        "not now",
    )

    HOT_THRESHOLD = 75
    WARM_THRESHOLD = 45

    def __init__(self, custom_rules: Optional[Dict[str, int]] = None):
        self.rules = self.SCORING_RULES.copy()
        if custom_rules:
            self.rules.update(custom_rules)

    @staticmethod
    def _count_hits(text: str, keywords) -> int:
        return sum(1 for keyword in keywords if keyword in text)

    def label_for(self, score: int) -> InterestLabel:
        if score >= self.HOT_THRESHOLD:
            return InterestLabel.HOT
        if score >= self.WARM_THRESHOLD:
            return InterestLabel.WARM
        return InterestLabel.COLD

    def score(
        self,
        transcript: Optional[str] = None,
        summary: Optional[str] = None,
        goal: Optional[str] = None,
        visit_time: Optional[str] = None,
        duration_seconds: Optional[int] = None,
    ) -> ScoreResult:
        text = " ".join(part for part in (transcript, summary, goal) if part).lower()
        has_visit = bool(visit_time and visit_time.strip())
        has_goal = bool(goal and goal.strip())
        duration = duration_seconds or 0

        positive_hits = self._count_hits(text, self.POSITIVE_SIGNALS)
        negative_hits = self._count_hits(text, self.NEGATIVE_SIGNALS)

        score = self.rules["baseline"]
        signals: List[str] = []

        if has_visit:
            score += self.rules["visit_time"]
            signals.append("visit time captured")

        if positive_hits:
            score += min(self.rules["positive_cap"], positive_hits * self.rules["positive_keyword"])
            signals.append(f"positive intent signals: {positive_hits}")

        if negative_hits:
            score -= min(self.rules["negative_cap"], negative_hits * self.rules["negative_keyword"])
            signals.append(f"negative intent signals: {negative_hits}")

        if duration >= 120:
            score += self.rules["duration_2_min"]
            signals.append("call duration above 2 minutes")

        if duration >= 300:
            score += self.rules["duration_5_min"]
            signals.append("call duration above 5 minutes")

        if has_goal:
            score += self.rules["goal"]
            signals.append("lead goal identified")

        score = int(round(max(0, min(100, score))))

        total_signals = positive_hits + negative_hits + int(has_visit) + int(has_goal)
        confidence = round(max(0.45, min(0.95, 0.45 + 0.07 * total_signals)), 2)

        return ScoreResult(
            score=score,
            interest_label=self.label_for(score),
            confidence=confidence,
            reason="; ".join(signals) if signals else NO_SIGNAL_REASON,
        )
