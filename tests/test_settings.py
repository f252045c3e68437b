"""Tests for settings persistence."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from redline.services.settings import (
    FernetSecretProvider,
    SecretVault,
    Settings,
    SettingsStore,
    redact_secret,
    redacted_settings,
)


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "REDLINE_API_KEY",
        "REDLINE_BASE_URL",
        "REDLINE_MODEL",
        "REDLINE_CHAT_ENDPOINT",
        "REDLINE_WORKSPACE_ID",
        "REDLINE_DEBUG_LOGGING",
        "REDLINE_REQUEST_TIMEOUT",
        "REDLINE_TEMPERATURE",
        "REDLINE_MAX_TOOL_ITERATIONS",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store(tmp_path: Path) -> SettingsStore:
    return SettingsStore(tmp_path / "settings.json")


# =============================================================================
# Round trip and encryption
# =============================================================================


class TestPersistence:
    """Tests for SettingsStore.save()/load()."""

    def test_missing_file_yields_defaults(self, store: SettingsStore) -> None:
        assert store.load() == Settings()

    def test_round_trip_encrypts_api_key(self, store: SettingsStore) -> None:
        store.save(Settings(api_key="sk-secret", model="custom/model", max_tool_iterations=4))

        payload = json.loads(store.path.read_text(encoding="utf-8"))
        assert "api_key" not in payload
        assert payload["api_key_ciphertext"].startswith("fernet:")
        assert "sk-secret" not in store.path.read_text(encoding="utf-8")
        assert payload["version"] == 1

        loaded = store.load()
        assert loaded.api_key == "sk-secret"
        assert loaded.model == "custom/model"
        assert loaded.max_tool_iterations == 4

    def test_legacy_plaintext_key_is_migrated(self, store: SettingsStore) -> None:
        store.path.write_text(json.dumps({"api_key": "sk-legacy", "version": 1}), encoding="utf-8")

        loaded = store.load()

        assert loaded.api_key == "sk-legacy"
        payload = json.loads(store.path.read_text(encoding="utf-8"))
        assert "api_key" not in payload
        assert "api_key_ciphertext" in payload

    def test_invalid_json_falls_back_to_defaults(self, store: SettingsStore) -> None:
        store.path.write_text("{not json", encoding="utf-8")

        assert store.load() == Settings()

    def test_unknown_fields_are_ignored(self, store: SettingsStore) -> None:
        store.path.write_text(json.dumps({"model": "m", "retired_option": True, "version": 1}), encoding="utf-8")

        assert store.load().model == "m"

    def test_undecryptable_key_is_dropped(self, tmp_path: Path) -> None:
        path = tmp_path / "settings.json"
        SettingsStore(path).save(Settings(api_key="sk-one"))
        path.with_suffix(".key").unlink()

        assert SettingsStore(path).load().api_key == ""


class TestSecretVault:
    """Tests for SecretVault token handling."""

    def test_empty_secret(self, tmp_path: Path) -> None:
        vault = SecretVault(key_path=tmp_path / "k.key")

        assert vault.encrypt("") == ""
        assert vault.decrypt(None) == ""

    def test_unknown_prefix_returns_token(self, tmp_path: Path) -> None:
        vault = SecretVault(key_path=tmp_path / "k.key")

        assert vault.decrypt("dpapi:abc") == "dpapi:abc"

    def test_key_file_is_reused(self, tmp_path: Path) -> None:
        key_path = tmp_path / "k.key"
        token = FernetSecretProvider(key_path).encrypt("hello")

        assert FernetSecretProvider(key_path).decrypt(token) == "hello"


# =============================================================================
# Overrides
# =============================================================================


class TestOverrides:
    """Tests for CLI and environment overrides."""

    def test_cli_overrides(self, store: SettingsStore) -> None:
        loaded = store.load(overrides={"model": "cli/model", "bogus": 1})

        assert loaded.model == "cli/model"

    def test_environment_wins_over_cli(self, store: SettingsStore, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDLINE_MODEL", "env/model")

        assert store.load(overrides={"model": "cli/model"}).model == "env/model"

    def test_typed_environment_values(self, store: SettingsStore, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDLINE_DEBUG_LOGGING", "yes")
        monkeypatch.setenv("REDLINE_MAX_TOOL_ITERATIONS", "7")
        monkeypatch.setenv("REDLINE_TEMPERATURE", "0.4")
        monkeypatch.setenv("REDLINE_REQUEST_TIMEOUT", "soon")

        loaded = store.load()

        assert loaded.debug_logging is True
        assert loaded.max_tool_iterations == 7
        assert loaded.temperature == pytest.approx(0.4)
        assert loaded.request_timeout == 90.0

    def test_environment_does_not_persist(self, store: SettingsStore, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("REDLINE_API_KEY", "sk-env")

        assert store.load().api_key == "sk-env"
        assert not store.path.exists()

    def test_metadata_override_merges(self, store: SettingsStore) -> None:
        store.save(Settings(metadata={"app": "redline"}))

        loaded = store.load(overrides={"metadata": {"team": "docs"}})

        assert loaded.metadata == {"app": "redline", "team": "docs"}


class TestRedaction:
    """Tests for secret redaction helpers."""

    def test_redact_secret(self) -> None:
        assert redact_secret("") == ""
        assert redact_secret("abcd") == "****"
        assert redact_secret("sk-123456") == "sk*****56"

    def test_redacted_settings_masks_headers(self) -> None:
        settings = Settings(api_key="sk-123456", default_headers={"Authorization": "Bearer token", "X-Title": "redline"})

        data = redacted_settings(settings)

        assert data["api_key"] == "sk*****56"
        assert data["default_headers"]["Authorization"] == "Be********en"
        assert data["default_headers"]["X-Title"] == "redline"
