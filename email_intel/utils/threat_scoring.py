"""
Shared risk-level calculation.

PATTERN RECOGNITION: Centralises the mapping from a 0-100 risk score to a
risk label so the aggregator, the alert system and the statistics all agree
on the band boundaries.
"""

from typing import Tuple

RISK_LEVELS = ("low", "medium", "high", "critical")

# Lower bounds of the medium, high and critical bands
DEFAULT_BREAKPOINTS = (25.0, 50.0, 75.0)


def calculate_risk_level(
    score: float,
    breakpoints: Tuple[float, float, float] = DEFAULT_BREAKPOINTS,
) -> str:
    """Return the risk label for a 0-100 *score*.

    Comparisons are strict less-than, so a score sitting exactly on a
    breakpoint belongs to the higher band (25.0 is ``"medium"``).

    Args:
        score: Aggregated risk score.
        breakpoints: Lower bounds of the medium, high and critical bands.

    Returns:
        One of ``"low"``, ``"medium"``, ``"high"`` or ``"critical"``.
    """
    medium, high, critical = breakpoints
    if score < medium:
        return "low"
    if score < high:
        return "medium"
    if score < critical:
        return "high"
    return "critical"
