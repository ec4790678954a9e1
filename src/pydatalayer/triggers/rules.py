"""Trigger rule models and normalization of raw rule-set entries."""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from pydatalayer._constants import DEFAULT_RESUME_DELAY_MS
from pydatalayer.exceptions import TriggerRuleError


class TriggerKind(StrEnum):
    PAGELOAD = "pageload"
    DOMREADY = "domready"
    LOAD = "load"
    CLICK = "click"


class RuleState(StrEnum):
    PENDING = "pending"
    ARMED = "armed"
    FIRED = "fired"
    LISTENING = "listening"
    SKIPPED = "skipped"


_TRIGGER_ALIASES: dict[str, TriggerKind] = {
    "pageload": TriggerKind.PAGELOAD,
    "domready": TriggerKind.DOMREADY,
    "domcontentloaded": TriggerKind.DOMREADY,
    "load": TriggerKind.LOAD,
    "click": TriggerKind.CLICK,
}


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _event_name(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value:
        return str(value)
    return ""


class RuleSet(BaseModel):
    """Rule-set document as served: ``{"data": [<rule entry>, ...], ...}``."""

    model_config = ConfigDict(extra="allow")

    # entries stay raw; each one is normalized and skipped on its own
    data: list[Any] = Field(default_factory=list)


class TriggerRule(BaseModel):
    """A normalized trigger rule."""

    model_config = ConfigDict(frozen=True)

    event_name: str = Field(..., min_length=1)
    page_pattern: str | None = None
    exclude_patterns: tuple[str, ...] = ()
    trigger: TriggerKind = TriggerKind.PAGELOAD
    element_selector: str | None = None
    prevent_default: bool = True
    resume_delay_ms: int = Field(default=DEFAULT_RESUME_DELAY_MS, ge=0)

    @field_validator("exclude_patterns", mode="before")
    @classmethod
    def _split_excludes(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return value

    @model_validator(mode="after")
    def _click_needs_selector(self) -> TriggerRule:
        if self.trigger is TriggerKind.CLICK and not self.element_selector:
            raise ValueError(f"click trigger requires an element selector for event {self.event_name!r}")
        return self

    @classmethod
    def from_entry(
        cls,
        entry: Mapping[str, Any],
        *,
        default_resume_delay_ms: int = DEFAULT_RESUME_DELAY_MS,
    ) -> TriggerRule:
        """Normalize one raw rule-set entry.

        The trigger kind defaults to ``click`` when an element selector is
        given and to ``pageload`` otherwise; an explicit ``trigger`` always
        wins.

        Raises
        ------
        TriggerRuleError
            If the entry has no event name, an unknown trigger, or is a click
            rule without a selector.
        """
        if not isinstance(entry, Mapping):
            raise TriggerRuleError(f"rule entry must be a mapping, got {type(entry).__name__}")

        event = _event_name(entry.get("event"))
        if not event:
            raise TriggerRuleError("Event name not defined in rule entry")

        selector = _text(entry.get("element")) or None
        explicit = _text(entry.get("trigger")).lower()
        if explicit:
            trigger = _TRIGGER_ALIASES.get(explicit)
            if trigger is None:
                raise TriggerRuleError(f"Unknown trigger type {explicit!r} for event {event!r}")
        elif selector:
            trigger = TriggerKind.CLICK
        else:
            trigger = TriggerKind.PAGELOAD

        prevent_default = entry.get("preventDefaultAction", True)
        resume_delay = entry.get("beaconDelay")
        if resume_delay is None:
            resume_delay = default_resume_delay_ms
        try:
            return cls(
                event_name=event,
                page_pattern=_text(entry.get("page")) or None,
                exclude_patterns=entry.get("excludes"),
                trigger=trigger,
                element_selector=selector,
                prevent_default=bool(prevent_default),
                resume_delay_ms=resume_delay,
            )
        except ValueError as exc:
            raise TriggerRuleError(f"Invalid rule for event {event!r}: {exc}") from exc
