"""
Overall confidence for a pipeline run.
"""

from ..models.consensus import AnalysisQuality

MAX_CONFIDENCE = 98

QUALITY_THRESHOLDS: tuple[tuple[int, AnalysisQuality], ...] = (
    (80, AnalysisQuality.EXCELLENT),
    (65, AnalysisQuality.GOOD),
    (50, AnalysisQuality.FAIR),
)


def calculate_confidence(
    market_confidence: float,
    ai_confidence: float,
    validation_passed: bool,
    reasoning_vote_count: int,
) -> int:
    """
    Combine evidence strength, AI agreement, vote count and validation.

    Market confidence (0..1) contributes up to 40 points, AI confidence
    (0..100) up to 40, the number of successful reasoning votes up to 10 (saturating
    at three) and a passed validation 10. The result never exceeds 98.
    """
    score = market_confidence * 40
    score += ai_confidence * 0.4
    score += min(reasoning_vote_count / 3, 1.0) * 10
    score += 10 if validation_passed else 0
    return round(min(max(score, 0.0), MAX_CONFIDENCE))


def quality_for_confidence(confidence: float) -> AnalysisQuality:
    for threshold, quality in QUALITY_THRESHOLDS:
        if confidence >= threshold:
            return quality
    return AnalysisQuality.DEGRADED
