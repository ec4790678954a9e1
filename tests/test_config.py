from __future__ import annotations

import pytest

from pydatalayer.config import DataLayerConfig, ProjectProfile
from pydatalayer.exceptions import DataLayerConfigError


def test_defaults() -> None:
    config = DataLayerConfig()

    assert config.rules_url == "http://localhost:3000/custom-events.json"
    assert config.state_ttl == 30 * 86400
    assert config.form_ttl == 90 * 86400
    assert config.rules_ttl == 86400
    assert config.project.id == "luma3"


def test_absolute_rules_path_wins_over_base_url() -> None:
    config = DataLayerConfig(rules_path="https://cdn.test/rules.json")
    assert config.rules_url == "https://cdn.test/rules.json"


def test_from_env_reads_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATALAYER_BASE_URL", "https://shop.test")
    monkeypatch.setenv("DATALAYER_STORAGE_PREFIX", "shop")
    monkeypatch.setenv("DATALAYER_RULES_TTL", "60")
    monkeypatch.setenv("DATALAYER_RESUME_DELAY_MS", "250")
    monkeypatch.setenv("DATALAYER_PROJECT_CURRENCY", "CHF")

    config = DataLayerConfig.from_env()

    assert config.rules_url == "https://shop.test/custom-events.json"
    assert config.storage_prefix == "shop"
    assert config.rules_ttl == 60.0
    assert config.default_resume_delay_ms == 250
    assert config.project.currency == "CHF"
    assert config.project.locale == "en-US"


def test_from_env_overrides_take_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATALAYER_STATE_TTL", "not-a-number")
    monkeypatch.setenv("DATALAYER_PROJECT_ID", "env-project")

    config = DataLayerConfig.from_env(state_ttl=10.0, project=ProjectProfile(id="explicit"))

    assert config.state_ttl == 10.0
    assert config.project.id == "explicit"


def test_from_env_rejects_non_numeric_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATALAYER_FORM_TTL", "ninety days")

    with pytest.raises(DataLayerConfigError):
        DataLayerConfig.from_env()


def test_project_profile_seeds_partner_data_and_is_hashable() -> None:
    profile = ProjectProfile()

    assert dict(profile.partner_data) == {"PartnerID": "Partner456", "BrandLoyalist": 88, "Seasonality": "Fall"}
    assert hash(profile) == hash(ProjectProfile())
    assert hash(DataLayerConfig()) == hash(DataLayerConfig())
    with pytest.raises(TypeError):
        profile.partner_data["PartnerID"] = "other"  # type: ignore[index]


def test_custom_partner_data_is_copied() -> None:
    source = {"PartnerID": "P1"}
    profile = ProjectProfile(partner_data=source)
    source["PartnerID"] = "changed"

    assert profile.partner_data["PartnerID"] == "P1"
