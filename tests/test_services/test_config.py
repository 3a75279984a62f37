"""Tests for application configuration."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from backend.config import Settings


class TestSettings:
    def test_default_settings(self) -> None:
        s = Settings(_env_file=None)
        assert s.secret_key == "change-me-in-production"
        assert s.debug is False
        assert s.port == 8000
        assert s.admin_username == "admini"
        assert s.data_file == Path("./data.json")
        assert s.iframe_embed_mode == "sanitize"
        assert s.action_status_display_seconds == 3.0

    def test_custom_settings(self, tmp_path: Path) -> None:
        s = Settings(
            _env_file=None,
            secret_key="my-secret",
            debug=True,
            data_file=tmp_path / "app.json",
        )
        assert s.secret_key == "my-secret"
        assert s.debug is True
        assert s.data_file == tmp_path / "app.json"

    def test_environment_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ADMINI_PORT", "9001")
        monkeypatch.setenv("ADMINI_IFRAME_EMBED_MODE", "trusted")
        s = Settings(_env_file=None)
        assert s.port == 9001
        assert s.iframe_embed_mode == "trusted"

    def test_settings_from_fixture(self, test_settings: Settings) -> None:
        assert test_settings.secret_key == "test-secret-key-with-at-least-32-characters"
        assert test_settings.debug is True


class TestRuntimeSecurity:
    def test_debug_skips_checks(self) -> None:
        Settings(_env_file=None, debug=True).validate_runtime_security()

    def test_production_defaults_rejected(self) -> None:
        with pytest.raises(ValueError, match="Insecure production configuration"):
            Settings(_env_file=None).validate_runtime_security()

    def test_hardened_production_settings_pass(self) -> None:
        Settings(
            _env_file=None,
            secret_key="s" * 40,
            admin_password="a-very-strong-password",
            default_user_password="another-strong-password",
            trusted_hosts=["admin.example.com"],
        ).validate_runtime_security()

    def test_default_user_password_rejected(self) -> None:
        with pytest.raises(ValueError, match="ADMINI_DEFAULT_USER_PASSWORD"):
            Settings(
                _env_file=None,
                secret_key="s" * 40,
                admin_password="a-very-strong-password",
                trusted_hosts=["admin.example.com"],
            ).validate_runtime_security()


class TestCliEntry:
    def test_cli_entry_uses_app_settings(self) -> None:
        from backend.main import app, cli_entry

        original_settings = getattr(app.state, "settings", None)
        app.state.settings = Settings(_env_file=None, host="127.0.0.1", port=9999, debug=True)

        try:
            with patch("uvicorn.run") as mock_run:
                cli_entry()

            mock_run.assert_called_once_with(
                "backend.main:app",
                host="127.0.0.1",
                port=9999,
                reload=True,
            )
        finally:
            app.state.settings = original_settings
