"""
Risk verdict classification

Two stages: the clamped score picks a band, then critical flags override
the band. The override only ever raises the level, so positive signals
can never dilute a sanctions or wanted-list hit.
"""

import logging
from typing import Tuple

from config_manager import ClassificationConfig
from risk_models import BLACK_FLAGS, CRITICAL_FLAGS, RiskLevel, RiskState

logger = logging.getLogger(__name__)


def clamp_score(penalty_total: int) -> int:
    return max(0, min(100, 100 - penalty_total))


def band_for(score: int, config: ClassificationConfig) -> RiskLevel:
    if score >= config.green_min:
        return RiskLevel.GREEN
    if score >= config.yellow_min:
        return RiskLevel.YELLOW
    if score >= config.red_min:
        return RiskLevel.RED
    return RiskLevel.BLACK


def classify(state: RiskState, config: ClassificationConfig = None) -> Tuple[RiskLevel, int]:
    """Return (level, reported score) for a final risk state"""
    config = config or ClassificationConfig()
    score = clamp_score(state.penalty_total)
    level = band_for(score, config)

    if state.critical_flags & CRITICAL_FLAGS:
        level = max(level, RiskLevel.RED)
    if state.critical_flags & BLACK_FLAGS:
        level = RiskLevel.BLACK
        score = min(score, config.critical_score_cap)

    logger.debug("Classified penalty_total=%d -> %s (%d)", state.penalty_total, level.name, score)
    return level, score
