"""
Unit tests for the ThreatScorer accumulator (email_intel/utils/scoring_utils.py).

Covers: accumulation, indicator bookkeeping, clamping and the threshold
comparison performed by finalize().
"""

import pytest

from email_intel.utils.scoring_utils import ThreatScorer


class TestThreatScorerInit:
    def test_initial_confidence_is_zero(self):
        assert ThreatScorer().confidence == 0.0

    def test_initial_indicators_empty(self):
        assert ThreatScorer().indicators == []


class TestThreatScorerAdd:
    def test_multiple_adds(self):
        scorer = ThreatScorer()
        scorer.add(0.10)
        scorer.add(0.25)
        assert scorer.confidence == pytest.approx(0.35)

    def test_indicator_recorded(self):
        scorer = ThreatScorer()
        scorer.add(0.10, "Phishing keyword: verify")
        assert scorer.indicators == ["Phishing keyword: verify"]

    def test_add_without_indicator(self):
        scorer = ThreatScorer()
        scorer.add(0.10)
        assert scorer.indicators == []

    def test_indicator_order_preserved(self):
        scorer = ThreatScorer()
        for label in ("b", "a", "c"):
            scorer.add(0.01, label)
        assert scorer.indicators == ["b", "a", "c"]


class TestThreatScorerFinalize:
    def test_below_threshold(self):
        scorer = ThreatScorer()
        scorer.add(0.5)
        assert scorer.finalize(0.7) == (0.5, False)

    def test_clamped_to_one(self):
        scorer = ThreatScorer()
        scorer.add(0.8)
        scorer.add(0.8)
        assert scorer.finalize(0.7) == (1.0, True)

    def test_clamped_to_zero(self):
        scorer = ThreatScorer()
        scorer.add(-0.3)
        assert scorer.finalize(0.7) == (0.0, False)

    def test_float_drift_does_not_miss_threshold(self):
        scorer = ThreatScorer()
        for _ in range(7):
            scorer.add(0.1)
        confidence, detected = scorer.finalize(0.7)
        assert confidence == 0.7
        assert detected is True

    def test_finalize_does_not_mutate(self):
        scorer = ThreatScorer()
        scorer.add(1.5)
        scorer.finalize(0.7)
        assert scorer.confidence == pytest.approx(1.5)
