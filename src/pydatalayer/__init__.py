"""pydatalayer - Session data layer with deferred updates, cart and event triggers."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pydatalayer")
except PackageNotFoundError:
    __version__ = "0+local"
from pydatalayer.cart import Cart, CartItemInput, CartState, LineItem
from pydatalayer.config import DataLayerConfig, ProjectProfile
from pydatalayer.exceptions import (
    DataLayerConfigError,
    DataLayerError,
    DataLayerNetworkError,
    DataLayerParseError,
    DataLayerPersistenceError,
    DataLayerValidationError,
    ReadOnlyDataLayerError,
    TriggerRuleError,
)
from pydatalayer.fetch import RuleSetFetcher
from pydatalayer.forms import FormEntryStore
from pydatalayer.persistence import JsonFileStorage, MemoryStorage, PersistenceAdapter
from pydatalayer.runtime import DataLayerRuntime, get_datalayer, init_datalayer, reset_datalayer
from pydatalayer.state.container import DataLayer, QueueStatus
from pydatalayer.state.events import DataLayerUpdate, MergeMode, UpdateType
from pydatalayer.state.tree import PageContext
from pydatalayer.triggers.engine import TriggerEngine
from pydatalayer.triggers.page import SimulatedElement, SimulatedPage
from pydatalayer.triggers.rules import RuleSet, RuleState, TriggerKind, TriggerRule

__all__ = [
    "__version__",
    "Cart",
    "CartItemInput",
    "CartState",
    "DataLayer",
    "DataLayerConfig",
    "DataLayerConfigError",
    "DataLayerError",
    "DataLayerNetworkError",
    "DataLayerParseError",
    "DataLayerPersistenceError",
    "DataLayerRuntime",
    "DataLayerUpdate",
    "DataLayerValidationError",
    "FormEntryStore",
    "JsonFileStorage",
    "LineItem",
    "MemoryStorage",
    "MergeMode",
    "PageContext",
    "PersistenceAdapter",
    "ProjectProfile",
    "QueueStatus",
    "ReadOnlyDataLayerError",
    "RuleSet",
    "RuleSetFetcher",
    "RuleState",
    "SimulatedElement",
    "SimulatedPage",
    "TriggerEngine",
    "TriggerKind",
    "TriggerRule",
    "TriggerRuleError",
    "UpdateType",
    "get_datalayer",
    "init_datalayer",
    "reset_datalayer",
]
