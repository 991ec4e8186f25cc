"""
Unit tests for risk aggregation (email_intel/modules/risk_aggregator.py)
and the shared risk-level bands (email_intel/utils/threat_scoring.py).
"""

import pytest

from email_intel.modules.risk_aggregator import LEGITIMATE, calculate_overall_assessment
from email_intel.modules.threat_detectors import DetectorResult
from email_intel.utils.config import DetectorWeights
from email_intel.utils.threat_scoring import calculate_risk_level

NAMES = ("phishing", "malware", "social_engineering", "spam", "bec")


def _threats(**detected):
    """DetectorResults keyed by name; kwargs map name -> confidence of a detection"""
    return {
        name: (
            DetectorResult(detected=True, confidence=detected[name])
            if name in detected else DetectorResult.empty()
        )
        for name in NAMES
    }


@pytest.fixture
def weights():
    return DetectorWeights()


class TestRiskLevelBands:
    @pytest.mark.parametrize("score,level", [
        (0, "low"),
        (24.999, "low"),
        (25, "medium"),
        (49.999, "medium"),
        (50, "high"),
        (74.999, "high"),
        (75, "critical"),
        (100, "critical"),
    ])
    def test_boundaries(self, score, level):
        assert calculate_risk_level(score) == level

    def test_custom_breakpoints(self):
        assert calculate_risk_level(15, breakpoints=(10, 20, 30)) == "medium"


class TestWeights:
    def test_defaults_sum_to_one(self, weights):
        assert sum(weights.as_dict().values()) == pytest.approx(1.0)

    def test_order(self, weights):
        assert tuple(weights.as_dict()) == NAMES

    def test_rejects_bad_sum(self):
        with pytest.raises(ValueError):
            DetectorWeights(phishing=0.5)

    def test_rejects_negative(self):
        with pytest.raises(ValueError):
            DetectorWeights(phishing=-0.1, malware=0.65)


class TestOverallAssessment:
    def test_nothing_detected_is_legitimate(self, weights):
        assessment = calculate_overall_assessment(_threats(), 0.0, weights)

        assert assessment.risk_score == 0
        assert assessment.risk_level == "low"
        assert assessment.category == LEGITIMATE
        assert assessment.confidence == 0.0

    def test_undetected_confidence_is_ignored(self, weights):
        threats = _threats()
        threats["phishing"] = DetectorResult(detected=False, confidence=0.6)

        assessment = calculate_overall_assessment(threats, 0.0, weights)
        assert assessment.risk_score == 0
        assert assessment.category == LEGITIMATE

    def test_single_detection(self, weights):
        assessment = calculate_overall_assessment(_threats(malware=1.0), 0.0, weights)

        assert assessment.risk_score == 25
        assert assessment.risk_level == "medium"
        assert assessment.category == "malware"
        assert assessment.confidence == 1.0

    def test_weighted_sum_of_detections(self, weights):
        threats = _threats(phishing=0.9, social_engineering=0.8, spam=0.7)
        assessment = calculate_overall_assessment(threats, 0.0, weights)

        # 27 + 16 + 10.5
        assert assessment.raw_score == pytest.approx(53.5)
        assert assessment.risk_score == 53
        assert assessment.risk_level == "high"
        assert assessment.category == "phishing"

    def test_category_follows_highest_confidence(self, weights):
        threats = _threats(phishing=0.75, bec=0.95)
        assert calculate_overall_assessment(threats, 0.0, weights).category == "bec"

    def test_tie_keeps_earlier_detector(self, weights):
        threats = _threats(spam=0.8, malware=0.8, bec=0.8)
        assessment = calculate_overall_assessment(threats, 0.0, weights)
        assert assessment.category == "malware"
        assert assessment.confidence == 0.8

    def test_negative_sentiment_penalty(self, weights):
        assessment = calculate_overall_assessment(_threats(), -0.6, weights)
        assert assessment.risk_score == 10
        assert assessment.category == LEGITIMATE

    def test_penalty_threshold_is_strict(self, weights):
        assessment = calculate_overall_assessment(_threats(), -0.5, weights)
        assert assessment.risk_score == 0

    def test_score_clamps_at_100(self, weights):
        threats = _threats(**{name: 1.0 for name in NAMES})
        assessment = calculate_overall_assessment(threats, -1.0, weights)

        assert assessment.risk_score == 100
        assert assessment.risk_level == "critical"

    def test_floor_never_crosses_band(self, weights):
        # 0.83 * 0.30 * 100 = 24.9 stays low after flooring to 24
        assessment = calculate_overall_assessment(_threats(phishing=0.83), 0.0, weights)
        assert assessment.risk_score == 24
        assert assessment.risk_level == "low"

    def test_missing_detector_is_treated_as_undetected(self, weights):
        assessment = calculate_overall_assessment(
            {"malware": DetectorResult(True, 1.0)}, 0.0, weights
        )
        assert assessment.risk_score == 25

    def test_custom_penalty(self, weights):
        assessment = calculate_overall_assessment(
            _threats(), -0.2, weights,
            negative_sentiment_threshold=-0.1, sentiment_penalty=30,
        )
        assert assessment.risk_score == 30
        assert assessment.risk_level == "medium"

    def test_to_dict(self, weights):
        data = calculate_overall_assessment(_threats(malware=1.0), 0.0, weights).to_dict()
        assert data == {
            "risk_score": 25,
            "risk_level": "medium",
            "category": "malware",
            "confidence": 1.0,
        }
