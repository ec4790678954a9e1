"""Host capabilities the trigger engine runs against.

The engine never touches a document directly. A host exposes the current
location, a full-load signal, one interaction-notification capability to
subscribe to, and the side effects the engine may cause (dispatching a named
event, navigating, submitting a form).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol


class Element(Protocol):
    """The element surface the engine relies on."""

    @property
    def tag(self) -> str: ...

    def get_attribute(self, name: str) -> str | None: ...

    def closest(self, selector: str) -> Element | None: ...


@dataclass
class Interaction:
    """A user interaction delivered to interaction listeners."""

    kind: str
    target: Element
    timestamp: float = 0.0
    default_prevented: bool = False
    propagation_stopped: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True


InteractionHandler = Callable[[Interaction], None]


class PageHost(Protocol):
    """Structural host interface.

    ``SimulatedPage`` is the in-process implementation; a browser bridge
    or headless driver can provide its own.
    """

    @property
    def path(self) -> str: ...

    @property
    def query(self) -> str: ...

    @property
    def load_complete(self) -> bool: ...

    def on_load(self, callback: Callable[[], None]) -> None: ...

    def add_interaction_listener(self, kind: str, handler: InteractionHandler) -> None: ...

    def remove_interaction_listener(self, kind: str, handler: InteractionHandler) -> None: ...

    def dispatch(self, event_name: str, detail: Mapping[str, Any]) -> None: ...

    def navigate(self, href: str, target: str = "_self") -> None: ...

    def submit_form(self, form: Element) -> None: ...


def full_path(host: PageHost) -> str:
    query = host.query
    if not query:
        return host.path
    return f"{host.path}{query if query.startswith('?') else '?' + query}"
