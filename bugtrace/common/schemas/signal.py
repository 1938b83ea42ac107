"""
Signal Schema

A Signal is one captured observation of an anomalous runtime event.
Signals are created only by the capture agent and never mutated afterwards,
so the model is frozen.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# Enums
# ============================================================================

class SignalKind(str, Enum):
    """Where a signal came from"""
    CONSOLE = "console"
    RUNTIME = "runtime"
    PROMISE = "promise"
    NETWORK = "network"
    SECURITY = "security"
    PERFORMANCE = "performance"


class Severity(str, Enum):
    """Signal severity, ordered from least to most severe"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


# ============================================================================
# Sub-models
# ============================================================================

class Location(BaseModel):
    """Source position of a runtime error"""
    model_config = ConfigDict(frozen=True)

    url: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None


class NetworkDetails(BaseModel):
    """Request/response facts for kind=network"""
    model_config = ConfigDict(frozen=True)

    url: str = ""
    method: str = "GET"
    status: Optional[int] = None  # None when the transport failed without a response
    status_text: str = ""
    response_time_ms: float = 0.0


class SecurityDetails(BaseModel):
    """Detector facts for kind=security"""
    model_config = ConfigDict(frozen=True)

    pattern_type: str
    match_count: int = Field(default=1, ge=1)
    risk: Optional[str] = None  # HIGH / MEDIUM / LOW
    remediation: Optional[str] = None


class PerformanceDetails(BaseModel):
    """Timing facts for kind=performance"""
    model_config = ConfigDict(frozen=True)

    name: str = ""
    duration_ms: float = 0.0


# ============================================================================
# Main Schema
# ============================================================================

_DETAIL_KINDS = {
    "network_details": SignalKind.NETWORK,
    "security_details": SignalKind.SECURITY,
    "performance_details": SignalKind.PERFORMANCE,
}


class Signal(BaseModel):
    """
    Immutable captured signal.

    ``tab_scope`` is required so that invalidation can target exactly one
    browsing context. Detail blocks may only appear on their own kind.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: generate_signal_id())
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    kind: SignalKind
    severity: Severity
    message: str = ""
    tab_scope: str = Field(..., min_length=1)
    page_url: Optional[str] = None

    location: Optional[Location] = None
    stack_trace: Optional[str] = None
    network_details: Optional[NetworkDetails] = None
    security_details: Optional[SecurityDetails] = None
    performance_details: Optional[PerformanceDetails] = None

    @model_validator(mode="after")
    def _details_match_kind(self) -> "Signal":
        for attr, kind in _DETAIL_KINDS.items():
            if getattr(self, attr) is not None and self.kind != kind:
                raise ValueError(f"{attr} is only valid for kind={kind.value}")
        return self

    @property
    def summary(self) -> str:
        """Short one-line summary for display and logs"""
        return f"[{self.severity.value}] {self.kind.value}: {self.message[:80]}"


def generate_signal_id() -> str:
    """Generate an opaque unique signal id"""
    return f"sig_{uuid.uuid4().hex}"
