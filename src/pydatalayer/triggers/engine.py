"""Event trigger engine.

Evaluates a rule set against the current page once the data layer has
settled, so no rule ever observes a half-applied tree.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from pydatalayer.exceptions import TriggerRuleError
from pydatalayer.triggers.actions import default_action_for, perform_default_action
from pydatalayer.triggers.host import Interaction, InteractionHandler, PageHost, full_path
from pydatalayer.triggers.matching import is_excluded, matches_page
from pydatalayer.triggers.rules import RuleSet, RuleState, TriggerKind, TriggerRule

if TYPE_CHECKING:
    from pydatalayer.state.container import DataLayer

_logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _ClickListener:
    """A delegated click observer installed at the host's root."""

    key: str
    selector: str
    handler: InteractionHandler


class TriggerEngine:
    """Dispatch named events on page identity and interaction patterns.

    Usage::

        engine = TriggerEngine(datalayer, host)
        await engine.start(rule_set)
    """

    def __init__(
        self,
        datalayer: DataLayer,
        host: PageHost,
        *,
        default_resume_delay_ms: int | None = None,
    ) -> None:
        self._datalayer = datalayer
        self._host = host
        self._default_resume_delay_ms = (
            default_resume_delay_ms
            if default_resume_delay_ms is not None
            else datalayer.config.default_resume_delay_ms
        )
        self._loop: asyncio.AbstractEventLoop | None = None
        self._rules: dict[int, TriggerRule] = {}
        self._states: dict[int, RuleState] = {}
        self._listeners: dict[str, _ClickListener] = {}

    @property
    def states(self) -> dict[int, RuleState]:
        return dict(self._states)

    @property
    def rules(self) -> dict[int, TriggerRule]:
        return dict(self._rules)

    @property
    def listener_keys(self) -> list[str]:
        return list(self._listeners)

    async def start(self, rule_set: RuleSet | Mapping[str, Any] | None) -> None:
        """Wait for the data layer to settle, then evaluate *rule_set*.

        ``None`` (no rule set could be obtained) disables the engine.
        """
        if rule_set is None:
            _logger.warning("No trigger rule set available; custom events disabled")
            return
        if not isinstance(rule_set, RuleSet):
            try:
                rule_set = RuleSet.model_validate(rule_set)
            except ValidationError as exc:
                _logger.warning("Invalid trigger rule set; custom events disabled: %s", exc)
                return

        self._loop = asyncio.get_running_loop()
        await self._datalayer.wait_until_settled()
        self.evaluate(rule_set)

    def evaluate(self, rule_set: RuleSet) -> None:
        """Evaluate every rule against the host's current location."""
        path = self._host.path
        full = full_path(self._host)

        for index, entry in enumerate(rule_set.data):
            try:
                rule = TriggerRule.from_entry(entry, default_resume_delay_ms=self._default_resume_delay_ms)
            except TriggerRuleError as exc:
                _logger.warning("Skipping trigger rule %d: %s", index, exc)
                self._states[index] = RuleState.SKIPPED
                continue

            self._rules[index] = rule
            self._states[index] = RuleState.PENDING

            if is_excluded(rule.exclude_patterns, path, full):
                _logger.debug("Rule %d (%s) excluded on %s", index, rule.event_name, full)
                self._states[index] = RuleState.SKIPPED
                continue
            if not matches_page(rule.page_pattern, path, full):
                self._states[index] = RuleState.SKIPPED
                continue

            if rule.trigger in (TriggerKind.PAGELOAD, TriggerKind.DOMREADY):
                self._fire(index, rule)
            elif rule.trigger is TriggerKind.LOAD:
                if self._host.load_complete:
                    self._fire(index, rule)
                else:
                    self._states[index] = RuleState.ARMED
                    self._host.on_load(functools.partial(self._fire, index, rule))
            elif rule.trigger is TriggerKind.CLICK:
                self._listen(index, rule)

    def cleanup(self) -> None:
        """Remove every delegated observer installed by this engine."""
        for listener in self._listeners.values():
            self._host.remove_interaction_listener("click", listener.handler)
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fire(self, index: int, rule: TriggerRule, extra: Mapping[str, Any] | None = None) -> None:
        detail: dict[str, Any] = {
            "event": rule.event_name,
            "rule": index,
            "page": self._host.path,
            "dataLayer": self._datalayer.read() or {},
        }
        if extra:
            detail.update(extra)
        self._host.dispatch(rule.event_name, detail)
        _logger.info("Dispatched custom event %s (rule %d) on %s", rule.event_name, index, self._host.path)
        if self._states.get(index) is not RuleState.LISTENING:
            self._states[index] = RuleState.FIRED

    def _listen(self, index: int, rule: TriggerRule) -> None:
        selector = rule.element_selector or ""
        key = f"{rule.event_name}_{index}_{selector}"

        previous = self._listeners.pop(key, None)
        if previous is not None:
            self._host.remove_interaction_listener("click", previous.handler)

        handler: InteractionHandler = functools.partial(self._on_click, index, rule)
        self._host.add_interaction_listener("click", handler)
        self._listeners[key] = _ClickListener(key=key, selector=selector, handler=handler)
        self._states[index] = RuleState.LISTENING

    def _on_click(self, index: int, rule: TriggerRule, interaction: Interaction) -> None:
        selector = rule.element_selector or ""
        try:
            matched = interaction.target.closest(selector)
        except ValueError as exc:
            _logger.warning("Cannot evaluate selector %r for %s: %s", selector, rule.event_name, exc)
            return
        if matched is None:
            return

        action = default_action_for(matched)
        prevented = action is not None and rule.prevent_default
        if prevented:
            interaction.prevent_default()
            interaction.stop_propagation()

        self._fire(
            index,
            rule,
            {
                "element": matched,
                "interaction": {"type": interaction.kind, "timestamp": interaction.timestamp},
                "defaultAction": action.describe() if action is not None else None,
                "prevented": prevented,
            },
        )

        if prevented and action is not None:
            loop = self._loop or asyncio.get_running_loop()
            loop.call_later(rule.resume_delay_ms / 1000, perform_default_action, self._host, action)
