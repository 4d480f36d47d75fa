# -*- coding: utf-8 -*-
"""HTTP surface under /config, exercised with the FastAPI TestClient."""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from aicfg.app import create_app
from aicfg.constant import (
    CURRENT_CONFIG_KEY,
    LEGACY_CONFIG_KEY,
    MIGRATION_BACKUPS_KEY,
)
from aicfg.providers.models import ConfigurationSystem, UserPreferences

PLAIN_KEY = "sk-test-1234567890"


@pytest.fixture
def client(engine):
    return TestClient(create_app(engine))


@pytest.fixture
def saved(engine, make_provider):
    provider = make_provider(models=["gpt-4", "gpt-4o"])
    config = ConfigurationSystem(
        providers=[provider],
        user_preferences=UserPreferences(
            default_provider_id="openai",
            default_model_id="gpt-4",
        ),
    )
    return asyncio.run(engine.save_config(config))


@pytest.fixture
def migrated(client, store, legacy_acme):
    store.set(LEGACY_CONFIG_KEY, json.dumps(legacy_acme))
    data = client.get("/config").json()
    assert data["migrated"] is True
    return data


class TestLoadConfig:
    def test_default_when_empty(self, client):
        resp = client.get("/config")
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["usedDefault"] is True
        assert data["config"]["providers"][0]["id"] == "openai"

    def test_auto_migrates_and_masks(self, client, store, migrated):
        assert migrated["format"] == "current"
        assert migrated["backupId"].startswith("backup_")
        auth = migrated["config"]["providers"][0]["authentication"]
        stored = json.loads(store.get(CURRENT_CONFIG_KEY))
        stored_key = stored["providers"][0]["authentication"]["apiKey"]
        assert "*" in auth["apiKey"]
        assert auth["apiKey"] != stored_key
        assert "sk-x" not in json.dumps(migrated["config"])

    def test_without_auto_migrate(self, client, store, legacy_acme):
        store.set(LEGACY_CONFIG_KEY, json.dumps(legacy_acme))
        data = client.get("/config", params={"auto_migrate": "false"}).json()
        assert data["migrationRequired"] is True
        assert data["format"] == "legacy"
        assert store.get(CURRENT_CONFIG_KEY) is None


class TestProviders:
    def test_empty(self, client):
        resp = client.get("/config/providers")
        assert resp.status_code == 200
        assert resp.json() == []

    def test_summaries(self, client, saved):
        (summary,) = client.get("/config/providers").json()
        assert summary["id"] == "openai"
        assert summary["is_default"] is True
        assert summary["has_api_key"] is True
        assert summary["models"] == ["gpt-4", "gpt-4o"]
        assert summary["test_status"] == "untested"
        assert PLAIN_KEY not in summary["current_api_key"]

    def test_probe_records_outcome(self, client, saved):
        resp = client.post("/config/providers/openai/test")
        assert resp.status_code == 200
        result = resp.json()
        assert result["provider_id"] == "openai"
        assert result["success"] is True
        assert [s["stage"] for s in result["stages"]] == [
            "connectivity",
            "authentication",
            "model_availability",
            "functionality",
        ]

        (summary,) = client.get("/config/providers").json()
        assert summary["test_status"] == "success"
        assert summary["last_tested"] is not None

    def test_probe_specific_model(self, client, saved):
        resp = client.post(
            "/config/providers/openai/test",
            params={"model_id": "gpt-4o", "use_cache": "false"},
        )
        assert resp.status_code == 200
        assert resp.json()["model_id"] == "gpt-4o"

    def test_probe_unknown_provider(self, client, saved):
        resp = client.post("/config/providers/ghost/test")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Provider 'ghost' not found"

    def test_probe_without_config(self, client):
        resp = client.post("/config/providers/openai/test")
        assert resp.status_code == 404
        assert "Migrate first" in resp.json()["detail"]


class TestBackups:
    def test_list_and_rollback(self, client, store, migrated, legacy_acme):
        (backup,) = client.get("/config/backups").json()
        assert backup["id"] == migrated["backupId"]
        assert backup["version"] == "0.0.0"

        resp = client.post(f"/config/backups/{backup['id']}/rollback")
        assert resp.status_code == 200
        body = resp.json()
        assert body["restored"] == backup["id"]
        assert body["previous_state_backup"].startswith("backup_")
        assert json.loads(store.get(LEGACY_CONFIG_KEY)) == legacy_acme
        assert len(client.get("/config/backups").json()) == 2

    def test_rollback_unknown(self, client):
        resp = client.post("/config/backups/backup_missing/rollback")
        assert resp.status_code == 404

    def test_rollback_tampered(self, client, store, migrated):
        raw = json.loads(store.get(MIGRATION_BACKUPS_KEY))
        raw[migrated["backupId"]]["data"][LEGACY_CONFIG_KEY] = "{}"
        store.set(MIGRATION_BACKUPS_KEY, json.dumps(raw))
        resp = client.post(f"/config/backups/{migrated['backupId']}/rollback")
        assert resp.status_code == 409


class TestLifespan:
    def test_health_monitor_runs_with_app(self, engine):
        app = create_app(engine, health_checks=True)
        with TestClient(app) as client:
            monitor = client.app.state.health_monitor
            assert monitor is not None
            assert monitor.running
        assert not monitor.running

    def test_no_monitor_by_default(self, engine):
        with TestClient(create_app(engine)) as client:
            assert client.app.state.health_monitor is None
