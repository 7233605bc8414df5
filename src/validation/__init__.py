"""
Prediction validation and forecaster scoring.

- direction: Numeric direction correction at extraction time
- outcome: ``OutcomeValidator`` grading of due predictions
- scoring: ``BrierScoreService`` and ``RankingService``
"""

from src.validation.direction import correct_direction
from src.validation.outcome import OutcomeValidator, ValidationRecord
from src.validation.scoring import BrierScoreService, RankingScore, RankingService

__all__ = [
    "BrierScoreService",
    "OutcomeValidator",
    "RankingScore",
    "RankingService",
    "ValidationRecord",
    "correct_direction",
]
