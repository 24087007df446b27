"""
NexID risk decision engine.

Scores client interactions (login, checkout, sensitive actions) from a
behavioral snapshot plus static trust/block lists, synchronously or via a
deferred job with webhook delivery and polling.
"""

__version__ = "1.0.0"

from .config import Settings, load_settings
from .lists import ListSet, ListVerdict
from .models import BehaviorSnapshot, Context, Screen, Status, VerifyRequest, VerifyResponse
from .risk import decide, score_snapshot
from .stores import RateLimiter, ResultStore
from .jobs import JobDispatcher
from .client import RiskClient, SnapshotCollector

__all__ = [
    "BehaviorSnapshot",
    "Context",
    "JobDispatcher",
    "ListSet",
    "ListVerdict",
    "RateLimiter",
    "ResultStore",
    "RiskClient",
    "Screen",
    "Settings",
    "SnapshotCollector",
    "Status",
    "VerifyRequest",
    "VerifyResponse",
    "decide",
    "load_settings",
    "score_snapshot",
]
