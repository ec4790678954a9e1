"""Read-only accessor over the canonical state tree."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NoReturn

from pydatalayer.exceptions import DataLayerError, ReadOnlyDataLayerError

if TYPE_CHECKING:
    from pydatalayer.state.container import DataLayer

_MESSAGE = "Direct modification of the data layer is prohibited. Use DataLayer.write() instead."


class DataLayerView:
    """Expose snapshots of a :class:`DataLayer` without a mutable handle.

    Every read returns an isolated deep copy. Assigning or deleting
    attributes or items raises :class:`ReadOnlyDataLayerError`.
    """

    __slots__ = ("_datalayer",)

    def __init__(self, datalayer: DataLayer) -> None:
        object.__setattr__(self, "_datalayer", datalayer)

    @property
    def snapshot(self) -> dict[str, Any] | None:
        """Deep copy of the whole tree, or ``None`` before initialization."""
        return self._datalayer.read()

    @property
    def ready(self) -> bool:
        return self._datalayer.ready

    def get(self, path: str | None = None, default: Any = None) -> Any:
        value = self._datalayer.read(path)
        return default if value is None else value

    def __getitem__(self, key: str) -> Any:
        tree = self._datalayer.read()
        if tree is None:
            raise DataLayerError("Data layer not initialized yet")
        return tree[key]

    def __contains__(self, key: object) -> bool:
        tree = self._datalayer.read()
        return tree is not None and key in tree

    def __setattr__(self, name: str, value: Any) -> NoReturn:
        raise ReadOnlyDataLayerError(_MESSAGE)

    def __delattr__(self, name: str) -> NoReturn:
        raise ReadOnlyDataLayerError(_MESSAGE)

    def __setitem__(self, key: str, value: Any) -> NoReturn:
        raise ReadOnlyDataLayerError(_MESSAGE)

    def __delitem__(self, key: str) -> NoReturn:
        raise ReadOnlyDataLayerError(_MESSAGE)

    def __repr__(self) -> str:
        return f"DataLayerView(ready={self._datalayer.ready})"
