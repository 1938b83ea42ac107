"""
Relay Messages

Logical message schema carried across the isolation boundary between an
observed page and the collector. Field names are not a wire contract; the
envelope is discriminated by ``type``.
"""

from datetime import datetime, timezone
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from ..common.schemas import Signal


class SignalCaptured(BaseModel):
    """Agent -> collector, one-way"""
    type: Literal["SIGNAL_CAPTURED"] = "SIGNAL_CAPTURED"
    signal: Signal


class NavigationStarted(BaseModel):
    """Host -> collector: a tab began loading a new document"""
    type: Literal["NAVIGATION_STARTED"] = "NAVIGATION_STARTED"
    tab_scope: str = Field(..., min_length=1)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SyncRequest(BaseModel):
    """Observer -> collector: pull full state"""
    type: Literal["SYNC_REQUEST"] = "SYNC_REQUEST"


class SyncResponse(BaseModel):
    """Collector -> observer: answer to SYNC_REQUEST"""
    type: Literal["SYNC_RESPONSE"] = "SYNC_RESPONSE"
    signals: List[Signal] = Field(default_factory=list)


class StateBroadcast(BaseModel):
    """Collector -> all observers after every accepted signal or purge"""
    type: Literal["STATE_BROADCAST"] = "STATE_BROADCAST"
    signals: List[Signal] = Field(default_factory=list)


RelayMessage = Annotated[
    Union[SignalCaptured, NavigationStarted, SyncRequest, SyncResponse, StateBroadcast],
    Field(discriminator="type"),
]

_message_adapter = TypeAdapter(RelayMessage)


def parse_message(data) -> BaseModel:
    """Validate a raw dict (or JSON string) into the matching message model"""
    if isinstance(data, (str, bytes)):
        return _message_adapter.validate_json(data)
    return _message_adapter.validate_python(data)
