"""
Reusable confidence accumulator for the threat detectors.

PATTERN RECOGNITION: This is the Accumulator pattern - a single object
maintains running state (confidence + indicators) and provides an atomic add()
operation, so every detector scores signals the same way.
"""

from typing import List, Tuple

# Decimal places kept before the threshold comparison (seven 0.1 increments == 0.7)
CONFIDENCE_PRECISION = 6


class ThreatScorer:
    """Accumulates a confidence value and a list of indicator strings.

    The confidence is the sum of the increments added, clamped to [0, 1] in
    ``finalize``. Indicators are explanatory only and never feed back into
    the confidence.

    Usage::

        scorer = ThreatScorer()
        scorer.add(0.10, "Phishing keyword: verify")
        confidence, detected = scorer.finalize(threshold=0.7)
    """

    def __init__(self) -> None:
        self.confidence: float = 0.0
        self.indicators: List[str] = []

    def add(self, increment: float, indicator: str = None) -> None:
        """Accumulate *increment* and optionally record *indicator*.

        Args:
            increment: Confidence contributed by one matched signal.
            indicator: Human-readable description of the signal.
        """
        self.confidence += increment
        if indicator is not None:
            self.indicators.append(indicator)

    def finalize(self, threshold: float) -> Tuple[float, bool]:
        """Return *(confidence, detected)* for the accumulated signals.

        Args:
            threshold: Minimum confidence that counts as a detection.
        """
        confidence = round(min(1.0, max(0.0, self.confidence)), CONFIDENCE_PRECISION)
        return confidence, confidence >= threshold
