"""
Risk Aggregation Module
Combines the five detector results and the sentiment score into one 0-100
risk score, a risk level and a primary threat category
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from .threat_detectors import DetectorResult
from ..utils.config import DetectorWeights
from ..utils.threat_scoring import calculate_risk_level

LEGITIMATE = "legitimate"

MAX_RISK_SCORE = 100.0


@dataclass(frozen=True)
class RiskAssessment:
    """Aggregated verdict for one email"""
    risk_score: int
    risk_level: str
    category: str
    confidence: float
    # Unrounded clamped score; risk_level is derived from this value
    raw_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "risk_score": self.risk_score,
            "risk_level": self.risk_level,
            "category": self.category,
            "confidence": self.confidence,
        }


def calculate_overall_assessment(
    threats: Mapping[str, DetectorResult],
    sentiment_score: float,
    weights: DetectorWeights,
    negative_sentiment_threshold: float = -0.5,
    sentiment_penalty: float = 10.0,
) -> RiskAssessment:
    """
    Weighted sum of detected threats plus a flat penalty for hostile tone.

    Only detectors with ``detected=True`` contribute ``confidence * weight * 100``.
    The category is the detected threat with the strictly highest confidence,
    scanned in weight order, so on a tie the earlier detector keeps it.

    Args:
        threats: DetectorResult per threat type
        sentiment_score: Sentiment in [-1, 1]
        weights: Per-threat weights (sum to 1.0)
        negative_sentiment_threshold: Scores strictly below this add the penalty
        sentiment_penalty: Flat points added for negative sentiment

    Returns:
        RiskAssessment with an integer score (floor of the clamped score)
    """
    score = 0.0
    category = LEGITIMATE
    top_confidence = 0.0

    for threat_type, weight in weights.as_dict().items():
        result = threats.get(threat_type)
        if result is None or not result.detected:
            continue
        score += result.confidence * weight * 100
        if result.confidence > top_confidence:
            top_confidence = result.confidence
            category = threat_type

    if sentiment_score < negative_sentiment_threshold:
        score += sentiment_penalty

    score = max(0.0, min(MAX_RISK_SCORE, score))

    return RiskAssessment(
        risk_score=int(math.floor(score)),
        risk_level=calculate_risk_level(score),
        category=category,
        confidence=top_confidence,
        raw_score=score,
    )
