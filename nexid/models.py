"""
Wire models for the verify and result endpoints.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

SDK_VERSION = "1.0.0"


class Context(str, Enum):
    LOGIN = "login"
    CHECKOUT = "checkout"
    SENSITIVE = "sensitive"


class Status(str, Enum):
    ALLOW = "allow"
    REVIEW = "review"
    DENY = "deny"
    PROCESSING = "processing"


def reject_bool(v):
    # bool is an int subclass; JSON true/false is not a count
    if isinstance(v, bool):
        raise ValueError("expected a number, got a boolean")
    return v


class Screen(BaseModel):
    w: int = Field(ge=0)
    h: int = Field(ge=0)
    dpr: float = Field(ge=0)

    @field_validator("w", "h", "dpr", mode="before")
    @classmethod
    def _no_bool(cls, v):
        return reject_bool(v)


class BehaviorSnapshot(BaseModel):
    """Client telemetry captured at the moment of a verify call.

    Every field is required. A collector with no real telemetry still sends
    zeroed counters.
    """
    model_config = ConfigDict(frozen=True)

    userAgent: str
    languages: List[str]
    timezone: str
    screen: Screen
    platform: str
    sessionId: str
    pageTimeMs: float = Field(ge=0)
    mouseMoves: int = Field(ge=0)
    tabInactiveMs: float = Field(ge=0)
    lastActivityTs: float = Field(ge=0)
    sdkVersion: str

    @field_validator("pageTimeMs", "mouseMoves", "tabInactiveMs", "lastActivityTs", mode="before")
    @classmethod
    def _no_bool(cls, v):
        return reject_bool(v)


class VerifyRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    context: Context
    userId: Optional[str] = None
    emailHash: Optional[str] = None
    snapshot: BehaviorSnapshot


class VerifyResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: Status
    score: int = Field(ge=0, le=100)
    reasons: List[str] = Field(min_length=1)
    requestId: str
    context: Optional[Context] = None
    timestamp: Optional[int] = None

    @classmethod
    def pending(cls, request_id: str) -> "VerifyResponse":
        """Reply sent to the caller when a job is enqueued."""
        return cls(status=Status.REVIEW, score=0, reasons=["processing"], requestId=request_id)

    @classmethod
    def processing(cls, request_id: str) -> "VerifyResponse":
        return cls(status=Status.PROCESSING, score=0, reasons=["processing"], requestId=request_id)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
