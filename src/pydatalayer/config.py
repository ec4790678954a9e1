"""Data layer configuration for pydatalayer."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Callable, Mapping
from types import MappingProxyType
from typing import Any, TypeVar

from pydatalayer._constants import (
    DEFAULT_PARTNER_DATA,
    DEFAULT_RESUME_DELAY_MS,
    DEFAULT_RULES_PATH,
    DEFAULT_STORAGE_PREFIX,
    FORM_TTL_SECONDS,
    RULES_TTL_SECONDS,
    STATE_TTL_SECONDS,
)
from pydatalayer.exceptions import DataLayerConfigError

T = TypeVar("T")


def _env_number(env: Mapping[str, str], key: str, cast: Callable[[str], T]) -> T | None:
    value = env.get(key)
    if value is None:
        return None
    try:
        return cast(value.strip())
    except ValueError as exc:
        raise DataLayerConfigError(f"{key} must be numeric, got {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class ProjectProfile:
    """Project identity fields seeded into every fresh state tree.

    These end up in the ``projectName``, ``project`` and ``partnerData``
    sections of the tree.
    """

    id: str = "luma3"
    title: str = "Luma Website v3"
    template: str = "web-modular/empty-website-v2"
    locale: str = "en-US"
    currency: str = "USD"
    project_name: str = "luma3"
    partner_data: Mapping[str, Any] = dataclasses.field(
        default_factory=lambda: dict(DEFAULT_PARTNER_DATA),
        hash=False,
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "partner_data", MappingProxyType(dict(self.partner_data)))


@dataclasses.dataclass(frozen=True)
class DataLayerConfig:
    """Data layer configuration.

    Parameters
    ----------
    base_url : str
        Origin the trigger rule set is fetched from.
    rules_path : str
        Path of the rule-set document relative to ``base_url``.
    storage_prefix : str
        Prefix for every durable storage key (``<prefix>_dataLayer`` etc).
    storage_path : str or None
        JSON file backing durable storage. ``None`` keeps records in memory
        for the lifetime of the process.
    state_ttl : float
        Seconds a persisted state tree (cart, profile) stays valid.
        Defaults to 30 days.
    form_ttl : float
        Seconds persisted form entries stay valid. Defaults to 90 days.
    rules_ttl : float
        Seconds a cached rule set is considered fresh enough to revalidate
        conditionally. Defaults to 24 hours.
    request_timeout : float
        Total timeout in seconds for the rule-set request.
    default_resume_delay_ms : int
        Delay applied before replaying a suppressed default action when a
        rule does not configure ``beaconDelay``.
    project : ProjectProfile
        Project identity fields.
    """

    base_url: str = "http://localhost:3000"
    rules_path: str = DEFAULT_RULES_PATH
    storage_prefix: str = DEFAULT_STORAGE_PREFIX
    storage_path: str | None = None
    state_ttl: float = STATE_TTL_SECONDS
    form_ttl: float = FORM_TTL_SECONDS
    rules_ttl: float = RULES_TTL_SECONDS
    request_timeout: float = 10.0
    default_resume_delay_ms: int = DEFAULT_RESUME_DELAY_MS
    project: ProjectProfile = dataclasses.field(default_factory=ProjectProfile)

    @property
    def rules_url(self) -> str:
        """Absolute URL of the trigger rule-set document."""
        if self.rules_path.startswith(("http://", "https://")):
            return self.rules_path
        return f"{self.base_url.rstrip('/')}/{self.rules_path.lstrip('/')}"

    @classmethod
    def from_env(cls, **overrides: Any) -> DataLayerConfig:
        """Create configuration from environment variables.

        Reads optional ``DATALAYER_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        DataLayerConfig
            Populated configuration.

        Raises
        ------
        DataLayerConfigError
            If a numeric variable cannot be parsed.
        """
        env = os.environ

        project_kwargs: dict[str, Any] = {}
        _ENV_PROJECT_MAP = {
            "DATALAYER_PROJECT_ID": "id",
            "DATALAYER_PROJECT_TITLE": "title",
            "DATALAYER_PROJECT_TEMPLATE": "template",
            "DATALAYER_PROJECT_LOCALE": "locale",
            "DATALAYER_PROJECT_CURRENCY": "currency",
            "DATALAYER_PROJECT_NAME": "project_name",
        }
        for env_key, field_name in _ENV_PROJECT_MAP.items():
            val = env.get(env_key)
            if val is not None:
                project_kwargs[field_name] = val

        project_overrides = overrides.pop("project", None)
        if isinstance(project_overrides, dict):
            project_kwargs.update(project_overrides)
        if isinstance(project_overrides, ProjectProfile):
            project = project_overrides
        else:
            project = ProjectProfile(**project_kwargs) if project_kwargs else ProjectProfile()

        _ENV_CONFIG_MAP = {
            "DATALAYER_BASE_URL": "base_url",
            "DATALAYER_RULES_PATH": "rules_path",
            "DATALAYER_STORAGE_PREFIX": "storage_prefix",
            "DATALAYER_STORAGE_PATH": "storage_path",
        }
        config_kwargs: dict[str, Any] = {"project": project}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        # numeric settings
        _ENV_NUMERIC_MAP: dict[str, tuple[str, Callable[[str], Any]]] = {
            "DATALAYER_STATE_TTL": ("state_ttl", float),
            "DATALAYER_FORM_TTL": ("form_ttl", float),
            "DATALAYER_RULES_TTL": ("rules_ttl", float),
            "DATALAYER_REQUEST_TIMEOUT": ("request_timeout", float),
            "DATALAYER_RESUME_DELAY_MS": ("default_resume_delay_ms", int),
        }
        for env_key, (field_name, cast) in _ENV_NUMERIC_MAP.items():
            if field_name in overrides:
                continue
            parsed = _env_number(env, env_key, cast)
            if parsed is not None:
                config_kwargs[field_name] = parsed

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
