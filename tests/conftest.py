"""Shared fixtures for NexID tests."""

import pytest

from nexid.config import Settings
from nexid.lists import ListSet
from nexid.models import VerifyRequest


def make_snapshot(page_time_ms=5000, mouse_moves=10, tab_inactive_ms=0, **overrides):
    snapshot = {
        "userAgent": "Mozilla/5.0 (X11; Linux x86_64) Firefox/120.0",
        "languages": ["en-US", "en"],
        "timezone": "Europe/Berlin",
        "screen": {"w": 1920, "h": 1080, "dpr": 1},
        "platform": "Linux x86_64",
        "sessionId": "sess-1",
        "pageTimeMs": page_time_ms,
        "mouseMoves": mouse_moves,
        "tabInactiveMs": tab_inactive_ms,
        "lastActivityTs": 1_700_000_000_000,
        "sdkVersion": "1.0.0",
    }
    snapshot.update(overrides)
    return snapshot


def make_payload(context="login", user_id=None, email_hash=None, **snapshot_kwargs):
    payload = {"context": context, "snapshot": make_snapshot(**snapshot_kwargs)}
    if user_id is not None:
        payload["userId"] = user_id
    if email_hash is not None:
        payload["emailHash"] = email_hash
    return payload


def make_request(**kwargs) -> VerifyRequest:
    return VerifyRequest.model_validate(make_payload(**kwargs))


@pytest.fixture
def settings():
    return Settings(sensitivity=0.5, review_min_score=50)


@pytest.fixture
def listed_settings():
    return Settings(
        sensitivity=0.5,
        review_min_score=50,
        lists=ListSet(
            trusted_ips=frozenset({"10.0.0.1"}),
            blocked_ips=frozenset({"6.6.6.6"}),
            trusted_email_hashes=frozenset({"good-hash"}),
            blocked_email_hashes=frozenset({"bad-hash"}),
            trusted_user_ids=frozenset({"user-good"}),
            blocked_user_ids=frozenset({"user-bad"}),
        ),
    )
