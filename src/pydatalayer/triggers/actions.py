"""Interceptable default behaviours of interaction targets."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from pydatalayer.triggers.host import Element, PageHost

_logger = logging.getLogger(__name__)


class ActionType(StrEnum):
    NAVIGATION = "navigation"
    FORM_SUBMIT = "form-submit"


@dataclass(frozen=True)
class DefaultAction:
    type: ActionType
    target: str = "_self"
    href: str | None = None
    action: str | None = None
    method: str = "GET"
    form: Element | None = None

    def describe(self) -> dict[str, str | None]:
        return {
            "type": str(self.type),
            "target": self.target,
            "href": self.href,
            "action": self.action,
            "method": self.method,
        }


def _is_submit_control(element: Element) -> bool:
    tag = element.tag.lower()
    kind = (element.get_attribute("type") or "").lower()
    if tag == "button":
        # buttons submit unless typed otherwise
        return kind in ("", "submit")
    return tag == "input" and kind == "submit"


def _form_action(form: Element) -> DefaultAction:
    return DefaultAction(
        type=ActionType.FORM_SUBMIT,
        target=form.get_attribute("target") or "_self",
        action=form.get_attribute("action"),
        method=(form.get_attribute("method") or "GET").upper(),
        form=form,
    )


def default_action_for(element: Element | None) -> DefaultAction | None:
    """Return the behaviour *element* would trigger natively, if any."""
    if element is None:
        return None

    tag = element.tag.lower()
    if tag == "a":
        href = element.get_attribute("href")
        if href:
            return DefaultAction(
                type=ActionType.NAVIGATION,
                href=href,
                target=element.get_attribute("target") or "_self",
            )
        return None

    if tag == "form":
        return _form_action(element)

    if _is_submit_control(element):
        form = element.closest("form")
        if form is not None:
            return _form_action(form)

    return None


def perform_default_action(host: PageHost, action: DefaultAction) -> None:
    """Replay *action* programmatically on *host*."""
    if action.type is ActionType.NAVIGATION and action.href:
        host.navigate(action.href, action.target)
    elif action.type is ActionType.FORM_SUBMIT and action.form is not None:
        host.submit_form(action.form)
    else:
        _logger.warning("Cannot replay default action %s", action.type)
