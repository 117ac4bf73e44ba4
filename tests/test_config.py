"""
Tests for environment-driven engine configuration.
"""

from candidate_sync.config import Config


class TestConfigValidate:
    def test_missing_database_url(self, monkeypatch):
        monkeypatch.setattr(Config, "DATABASE_URL", "")
        monkeypatch.setattr(Config, "CRM_API_BASE_URL", "")

        assert Config.validate() == ["DATABASE_URL"]

    def test_crm_key_required_when_crm_enabled(self, monkeypatch):
        monkeypatch.setattr(Config, "DATABASE_URL", "postgresql://localhost/candidates")
        monkeypatch.setattr(Config, "CRM_API_BASE_URL", "https://crm.example.com")
        monkeypatch.setattr(Config, "CRM_API_KEY", "")

        assert Config.validate() == ["CRM_API_KEY"]

    def test_complete(self, monkeypatch):
        monkeypatch.setattr(Config, "DATABASE_URL", "postgresql://localhost/candidates")
        monkeypatch.setattr(Config, "CRM_API_BASE_URL", "")

        assert Config.validate() == []

    def test_defaults(self):
        assert Config.CRM_API_VERSION
        assert Config.DEBOUNCE_WINDOW_SECONDS > 0
