"""Update payloads, queue entries and change notifications."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class MergeMode(StrEnum):
    DEEP = "deep"
    SHALLOW = "shallow"

    @classmethod
    def from_flag(cls, merge: bool) -> MergeMode:
        return cls.DEEP if merge else cls.SHALLOW


class UpdateType(StrEnum):
    INITIALIZED = "initialized"
    RESTORED = "restored"
    UPDATED = "updated"


class CartOperationKind(StrEnum):
    ADD = "add"
    REMOVE = "remove"
    SET_QUANTITY = "set_quantity"


@dataclass(slots=True)
class QueuedWrite:
    """A ``write`` issued before the container finished starting."""

    payload: dict[str, Any]
    mode: MergeMode
    queued_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class QueuedCartOperation:
    """A cart operation issued before the container finished starting."""

    kind: CartOperationKind
    arguments: dict[str, Any]
    queued_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class DataLayerUpdate(BaseModel):
    """Notification emitted after every committed change."""

    model_config = ConfigDict(frozen=True)

    type: UpdateType
    data: dict[str, Any] = Field(default_factory=dict, description="Deep copy of the whole tree")
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
