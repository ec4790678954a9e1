"""In-process page host.

:class:`SimulatedPage` implements :class:`~pydatalayer.triggers.host.PageHost`
over a small element tree. It is used to replay recorded sessions headlessly
and in tests; it records every dispatched event, navigation and form
submission together with the event-loop time it happened at.

Selectors support compound simple selectors (``tag``, ``.class``, ``#id``,
``[attr]``, ``[attr=value]``), the descendant combinator and comma groups.
"""

from __future__ import annotations

import asyncio
import re
import time
from collections import defaultdict
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydatalayer.triggers.actions import default_action_for, perform_default_action
from pydatalayer.triggers.host import Element, Interaction, InteractionHandler

_COMPOUND_TOKEN = re.compile(
    r"""
    (?P<tag>^[a-zA-Z][\w-]*|^\*)
    |\.(?P<cls>[\w-]+)
    |\#(?P<id>[\w-]+)
    |\[\s*(?P<attr>[\w-]+)\s*(?:=\s*(?P<quote>["']?)(?P<value>[^"'\]]*)(?P=quote))?\s*\]
    """,
    re.VERBOSE,
)
_COMPLEX_PARTS = re.compile(r"(?:\[[^\]]*\]|[^\s\[])+")


def _now() -> float:
    try:
        return asyncio.get_running_loop().time()
    except RuntimeError:
        return time.monotonic()


def _matches_compound(element: SimulatedElement, compound: str) -> bool:
    pos = 0
    while pos < len(compound):
        match = _COMPOUND_TOKEN.match(compound, pos)
        if match is None:
            raise ValueError(f"Unsupported selector: {compound!r}")
        if match.group("tag") and match.group("tag") != "*" and element.tag != match.group("tag").lower():
            return False
        if match.group("cls") and match.group("cls") not in element.classes:
            return False
        if match.group("id") and element.get_attribute("id") != match.group("id"):
            return False
        if match.group("attr"):
            actual = element.get_attribute(match.group("attr"))
            if actual is None:
                return False
            expected = match.group("value")
            if expected is not None and actual != expected:
                return False
        pos = match.end()
    return True


def _matches_complex(element: SimulatedElement, selector: str) -> bool:
    parts = _COMPLEX_PARTS.findall(selector)
    if not parts:
        return False
    if ">" in parts or "+" in parts or "~" in parts:
        raise ValueError(f"Unsupported combinator in selector: {selector!r}")
    if not _matches_compound(element, parts[-1]):
        return False
    remaining = parts[:-1]
    node = element.parent
    while remaining and node is not None:
        if _matches_compound(node, remaining[-1]):
            remaining = remaining[:-1]
        node = node.parent
    return not remaining


class SimulatedElement:
    """A minimal element node."""

    def __init__(self, tag: str, attributes: Mapping[str, str] | None = None, *, text: str = "") -> None:
        self.tag = tag.lower()
        self.attributes: dict[str, str] = dict(attributes or {})
        self.text = text
        self.parent: SimulatedElement | None = None
        self.children: list[SimulatedElement] = []

    @property
    def classes(self) -> frozenset[str]:
        return frozenset((self.attributes.get("class") or "").split())

    def append(self, child: SimulatedElement) -> SimulatedElement:
        child.parent = self
        self.children.append(child)
        return child

    def remove(self) -> None:
        if self.parent is not None:
            self.parent.children.remove(self)
            self.parent = None

    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(name)

    def matches(self, selector: str) -> bool:
        return any(_matches_complex(self, group.strip()) for group in selector.split(",") if group.strip())

    def closest(self, selector: str) -> SimulatedElement | None:
        node: SimulatedElement | None = self
        while node is not None:
            if node.matches(selector):
                return node
            node = node.parent
        return None

    def __repr__(self) -> str:
        attrs = " ".join(f'{k}="{v}"' for k, v in self.attributes.items())
        return f"<{self.tag}{' ' + attrs if attrs else ''}>"


@dataclass(frozen=True)
class DispatchRecord:
    name: str
    detail: dict[str, Any]
    at: float


@dataclass(frozen=True)
class NavigationRecord:
    href: str
    target: str
    at: float


@dataclass(frozen=True)
class SubmissionRecord:
    form: Element
    at: float


@dataclass
class SimulatedPage:
    """A page with a location, a load signal and an element tree."""

    path: str = "/"
    query: str = ""
    title: str = ""
    load_complete: bool = False
    document: SimulatedElement = field(default_factory=lambda: SimulatedElement("html"))
    dispatched: list[DispatchRecord] = field(default_factory=list)
    navigations: list[NavigationRecord] = field(default_factory=list)
    submissions: list[SubmissionRecord] = field(default_factory=list)
    _listeners: dict[str, list[InteractionHandler]] = field(
        default_factory=lambda: defaultdict(list),
        init=False,
        repr=False,
    )
    _load_callbacks: list[Callable[[], None]] = field(default_factory=list, init=False, repr=False)

    @property
    def body(self) -> SimulatedElement:
        for child in self.document.children:
            if child.tag == "body":
                return child
        return self.document.append(SimulatedElement("body"))

    # ------------------------------------------------------------------
    # PageHost
    # ------------------------------------------------------------------

    def on_load(self, callback: Callable[[], None]) -> None:
        if self.load_complete:
            callback()
            return
        self._load_callbacks.append(callback)

    def add_interaction_listener(self, kind: str, handler: InteractionHandler) -> None:
        self._listeners[kind].append(handler)

    def remove_interaction_listener(self, kind: str, handler: InteractionHandler) -> None:
        handlers = self._listeners.get(kind, [])
        if handler in handlers:
            handlers.remove(handler)

    def listener_count(self, kind: str) -> int:
        return len(self._listeners.get(kind, []))

    def dispatch(self, event_name: str, detail: Mapping[str, Any]) -> None:
        self.dispatched.append(DispatchRecord(name=event_name, detail=dict(detail), at=_now()))

    def navigate(self, href: str, target: str = "_self") -> None:
        self.navigations.append(NavigationRecord(href=href, target=target, at=_now()))

    def submit_form(self, form: Element) -> None:
        self.submissions.append(SubmissionRecord(form=form, at=_now()))

    # ------------------------------------------------------------------
    # Driving the page
    # ------------------------------------------------------------------

    def finish_loading(self) -> None:
        """Signal that every resource has loaded."""
        self.load_complete = True
        callbacks, self._load_callbacks = self._load_callbacks, []
        for callback in callbacks:
            callback()

    def click(self, element: SimulatedElement) -> Interaction:
        """Deliver a click on *element*; run its native behaviour unless prevented."""
        interaction = Interaction(kind="click", target=element, timestamp=_now())
        for handler in list(self._listeners.get("click", [])):
            handler(interaction)

        if not interaction.default_prevented:
            native = element.closest("a[href], button, input[type=submit]")
            action = default_action_for(native)
            if action is not None:
                perform_default_action(self, action)
        return interaction

    def event_names(self) -> list[str]:
        return [record.name for record in self.dispatched]
