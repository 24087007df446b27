"""
NexID Risk Engine - behavioral scoring and the allow/review/deny decision
"""

import logging
import math
import time
from typing import List, Optional

from .config import Settings
from .models import BehaviorSnapshot, Status, VerifyRequest, VerifyResponse

logger = logging.getLogger(__name__)

# =============================================================================
# Thresholds
# =============================================================================

LONG_PAGE_TIME_MS = 3000
MIN_PAGE_TIME_MS = 1500
HIGH_MOUSE_MOVES = 6
MIN_MOUSE_MOVES = 3
LONG_INACTIVE_MS = 60_000

INACTIVITY_PENALTY = 0.25
TRUST_BONUS = 0.1
SENSITIVITY_DAMPING = 0.3

ALLOW_MIN_SCORE = 75
BLOCKED_SCORE = 10


def clamp(n: float, lo: float = 0.0, hi: float = 1.0) -> float:
    return max(lo, min(hi, n))


def round_half_up(x: float) -> int:
    # round() is banker's rounding; 76.5 has to become 77
    return int(math.floor(x + 0.5))


# =============================================================================
# Scoring
# =============================================================================

def score_snapshot(s: BehaviorSnapshot) -> float:
    """Base suspicion in [0, 1]. Higher means more human-like engagement."""
    t = s.pageTimeMs
    m = s.mouseMoves

    if t >= LONG_PAGE_TIME_MS:
        time_score = 0.9
    elif t >= MIN_PAGE_TIME_MS:
        time_score = 0.75
    else:
        time_score = 0.4

    if m >= HIGH_MOUSE_MOVES:
        mouse_score = 0.9
    elif m >= MIN_MOUSE_MOVES:
        mouse_score = 0.75
    else:
        mouse_score = 0.45

    penalty = INACTIVITY_PENALTY if s.tabInactiveMs >= LONG_INACTIVE_MS else 0.0
    return clamp((time_score + mouse_score) / 2 - penalty)


def behavior_reasons(s: BehaviorSnapshot) -> List[str]:
    reasons = []
    if s.tabInactiveMs >= LONG_INACTIVE_MS:
        reasons.append("long_inactive_tab")
    if s.pageTimeMs < MIN_PAGE_TIME_MS:
        reasons.append("low_page_time")
    if s.mouseMoves < MIN_MOUSE_MOVES:
        reasons.append("low_mouse_activity")
    return reasons


def status_for(score: int, review_min_score: int) -> Status:
    if score >= ALLOW_MIN_SCORE:
        return Status.ALLOW
    if score >= review_min_score:
        return Status.REVIEW
    return Status.DENY


# =============================================================================
# Decision
# =============================================================================

def decide(
    req: VerifyRequest,
    ip: str,
    request_id: str,
    settings: Settings,
    timestamp: Optional[int] = None,
) -> VerifyResponse:
    if timestamp is None:
        timestamp = int(time.time() * 1000)

    verdict = settings.lists.classify(ip, req.emailHash, req.userId)
    if verdict.blocked:
        logger.debug("request %s denied by %s", request_id, verdict.blocked)
        return VerifyResponse(
            status=Status.DENY,
            score=BLOCKED_SCORE,
            reasons=[verdict.blocked],
            requestId=request_id,
            context=req.context,
            timestamp=timestamp,
        )

    suspicion = score_snapshot(req.snapshot)

    reasons = []
    for code in verdict.trusted:
        suspicion = clamp(suspicion + TRUST_BONUS)
        reasons.append(code)

    reasons.extend(behavior_reasons(req.snapshot))

    sensitivity = clamp(settings.sensitivity)
    adjusted = clamp(suspicion * (1 - SENSITIVITY_DAMPING * sensitivity))
    score = round_half_up(adjusted * 100)
    status = status_for(score, settings.review_min_score)

    logger.debug(
        "request %s: suspicion=%.3f adjusted=%.3f score=%d status=%s",
        request_id, suspicion, adjusted, score, status.value,
    )

    return VerifyResponse(
        status=status,
        score=score,
        reasons=reasons or ["ok"],
        requestId=request_id,
        context=req.context,
        timestamp=timestamp,
    )
