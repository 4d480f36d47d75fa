# -*- coding: utf-8 -*-
"""Key-value stores and the provider/model/preference storage layer."""

import json

import pytest

from aicfg.constant import PREFERENCES_KEY, PROVIDERS_KEY
from aicfg.errors import InvalidConfigurationError, StorageError
from aicfg.providers.models import (
    ConfigurationSystem,
    ModelConfig,
    ProviderType,
    UserPreferences,
)
from aicfg.security.encryption import EncryptionService
from aicfg.security.fingerprint import static_fingerprint
from aicfg.storage.kv import JsonFileStore, MemoryStore, read_json, write_json
from aicfg.storage.manager import ProviderStorage, StorageManager


@pytest.fixture
def storage(store, encryption):
    return StorageManager(store, encryption)


def system(provider, **prefs):
    return ConfigurationSystem(
        providers=[provider],
        user_preferences=UserPreferences(
            default_provider_id=provider.id,
            default_model_id=provider.default_model().id,
            **prefs,
        ),
    )


class TestJsonFileStore:
    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "store.json"
        first = JsonFileStore(path)
        first.set("a", "1")
        first.set("b", "2")
        first.remove("a")

        second = JsonFileStore(path)
        assert second.get("a") is None
        assert second.get("b") == "2"
        assert second.keys() == ["b"]
        assert json.loads(path.read_text(encoding="utf-8")) == {"b": "2"}

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text("{not json", encoding="utf-8")
        store = JsonFileStore(path)
        assert store.keys() == []
        store.set("k", "v")
        assert json.loads(path.read_text(encoding="utf-8")) == {"k": "v"}

    def test_non_string_values_are_ignored(self, tmp_path):
        path = tmp_path / "store.json"
        path.write_text(json.dumps({"k": "v", "n": 3}), encoding="utf-8")
        assert JsonFileStore(path).keys() == ["k"]

    def test_write_failure_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        store = JsonFileStore(blocker / "store.json")
        with pytest.raises(StorageError):
            store.set("k", "v")

    @pytest.mark.parametrize("change", ["set", "remove"])
    def test_failed_replace_keeps_previous_state(
        self,
        tmp_path,
        monkeypatch,
        change,
    ):
        path = tmp_path / "store.json"
        store = JsonFileStore(path)
        store.set("k", "old")

        def broken_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("aicfg.storage.kv.os.replace", broken_replace)
        with pytest.raises(StorageError):
            if change == "set":
                store.set("k", "new")
            else:
                store.remove("k")

        assert store.get("k") == "old"
        assert json.loads(path.read_text(encoding="utf-8")) == {"k": "old"}
        assert sorted(p.name for p in tmp_path.iterdir()) == ["store.json"]

    def test_json_helpers(self):
        store = MemoryStore({"bad": "{"})
        assert read_json(store, "bad", []) == []
        assert read_json(store, "missing", {}) == {}
        write_json(store, "ok", {"a": [1]})
        assert read_json(store, "ok") == {"a": [1]}


class TestProviderStorage:
    @pytest.mark.asyncio
    async def test_secrets_are_encrypted_at_rest(
        self,
        storage,
        store,
        make_provider,
    ):
        stored = await storage.save_provider(make_provider())
        assert stored.authentication.api_key != "sk-test-1234567890"
        assert "sk-test-1234567890" not in store.get(PROVIDERS_KEY)

        plain = await storage.providers.get_provider("openai")
        assert plain.authentication.api_key == "sk-test-1234567890"
        raw = await storage.providers.get_provider("openai", decrypt=False)
        assert raw.authentication.api_key == stored.authentication.api_key

    @pytest.mark.asyncio
    async def test_bedrock_keys_are_encrypted(self, storage, make_provider):
        stored = await storage.save_provider(
            make_provider("aws", ProviderType.BEDROCK, ["claude"]),
        )
        auth = stored.authentication
        assert auth.region == "us-east-1"
        assert auth.access_key_id != "AKIATEST"
        assert auth.secret_access_key != "secret"

    @pytest.mark.asyncio
    async def test_resave_keeps_created_and_does_not_double_encrypt(
        self,
        storage,
        make_provider,
    ):
        first = await storage.save_provider(make_provider())
        again = await storage.save_provider(first)
        assert again.metadata.created_at == first.metadata.created_at
        assert again.authentication.api_key == first.authentication.api_key
        assert len(await storage.providers.get_all_providers()) == 1

    @pytest.mark.asyncio
    async def test_invalid_provider_is_rejected(self, storage, make_provider):
        with pytest.raises(InvalidConfigurationError) as info:
            await storage.save_provider(make_provider(api_key=None))
        assert info.value.errors[0].path == "authentication.apiKey"

    @pytest.mark.asyncio
    async def test_undecryptable_secret_is_dropped(
        self,
        store,
        storage,
        make_provider,
    ):
        await storage.save_provider(make_provider())
        other = ProviderStorage(
            store,
            EncryptionService(
                static_fingerprint("another-device"),
                iterations=100_000,
            ),
        )
        warnings = []
        provider = await other.get_provider("openai", warnings=warnings)
        assert provider.authentication.api_key is None
        assert warnings[0].startswith("Could not decrypt api_key of provider")

    @pytest.mark.asyncio
    async def test_queries(self, storage, make_provider):
        await storage.save_provider(make_provider())
        disabled = make_provider("router", ProviderType.OPENROUTER)
        disabled.enabled = False
        await storage.save_provider(disabled)

        enabled = await storage.providers.get_enabled_providers()
        assert [p.id for p in enabled] == ["openai"]
        by_type = await storage.providers.get_providers_by_type("openrouter")
        assert [p.id for p in by_type] == ["router"]
        stats = storage.providers.stats()
        assert (stats.total_providers, stats.enabled_providers) == (2, 1)
        assert stats.storage_size > 0

    @pytest.mark.asyncio
    async def test_update_test_status(self, storage, make_provider):
        await storage.save_provider(make_provider())
        providers = storage.providers
        providers.update_test_status("openai", "failure", "boom")
        failed = providers.update_test_status("openai", "failure", "boom again")
        assert failed.metadata.error_count == 2
        assert failed.metadata.last_error == "boom again"
        ok = providers.update_test_status("openai", "success")
        assert ok.metadata.error_count == 0
        assert ok.metadata.last_error is None
        assert ok.metadata.last_tested is not None
        with pytest.raises(KeyError):
            providers.update_test_status("ghost", "success")


class TestStorageManager:
    @pytest.mark.asyncio
    async def test_models_are_mirrored(self, storage, make_provider):
        await storage.save_provider(make_provider(models=["gpt-4", "gpt-4o"]))
        models = storage.models.get_models_by_provider("openai")
        assert [m.id for m in models] == ["gpt-4", "gpt-4o"]

        await storage.save_provider(make_provider(models=["gpt-4o"]))
        assert [m.id for m in storage.models.get_all_models()] == ["gpt-4o"]

        assert storage.delete_provider("openai")
        assert storage.models.get_all_models() == []
        assert not storage.delete_provider("openai")

    @pytest.mark.asyncio
    async def test_empty_storage_is_consistent(self, storage):
        report = await storage.consistency_check()
        assert report.valid
        assert report.issues == []

    @pytest.mark.asyncio
    async def test_consistency_issues(self, storage, make_provider):
        await storage.save_provider(make_provider())
        storage.models.save_model(
            ModelConfig(id="ghost", name="ghost", provider_id="gone"),
        )
        storage.preferences.save_preferences(
            UserPreferences(
                default_provider_id="nope",
                default_model_id="missing",
            ),
        )
        report = await storage.consistency_check()
        assert not report.valid
        assert report.issues == [
            "Found 1 orphaned models without corresponding providers",
            "Default provider nope does not exist",
            "Default model missing does not exist",
        ]

    @pytest.mark.asyncio
    async def test_import_export(self, storage, make_provider):
        config = system(make_provider(models=["gpt-4", "gpt-4o"]), max_retries=5)
        await storage.import_configuration(config)

        exported = await storage.export_configuration()
        assert [p.id for p in exported.providers] == ["openai"]
        assert exported.user_preferences.max_retries == 5
        assert exported.user_preferences.default_model_id == "gpt-4"
        assert exported.metadata.export_source == "storage-manager"
        assert exported.metadata.checksum
        auth = exported.providers[0].authentication
        assert auth.api_key != "sk-test-1234567890"
        assert (await storage.consistency_check()).valid

    @pytest.mark.asyncio
    async def test_import_replaces_everything(self, storage, make_provider):
        await storage.save_provider(make_provider("old", ProviderType.OPENAI))
        await storage.import_configuration(system(make_provider()))
        ids = [p.id for p in await storage.providers.get_all_providers()]
        assert ids == ["openai"]

    @pytest.mark.asyncio
    async def test_import_rejects_invalid(self, storage, make_provider):
        config = system(make_provider())
        config.user_preferences.default_model_id = "nope"
        with pytest.raises(InvalidConfigurationError):
            await storage.import_configuration(config)

    @pytest.mark.asyncio
    async def test_export_requires_providers(self, storage):
        with pytest.raises(InvalidConfigurationError):
            await storage.export_configuration()


class TestPreferences:
    def test_defaults(self, storage):
        prefs = storage.preferences.get_preferences()
        assert prefs == UserPreferences()

    def test_stored_values_merge_over_defaults(self, storage, store):
        store.set(PREFERENCES_KEY, json.dumps({"maxRetries": 7}))
        prefs = storage.preferences.get_preferences()
        assert prefs.max_retries == 7
        assert prefs.timeout == 30_000

    def test_invalid_stored_values_fall_back(self, storage, store):
        store.set(PREFERENCES_KEY, json.dumps({"maxRetries": 99}))
        assert storage.preferences.get_preferences() == UserPreferences()

    def test_fallback_requires_targets(self, storage):
        with pytest.raises(InvalidConfigurationError):
            storage.preferences.save_preferences(
                UserPreferences(fallback_enabled=True),
            )

    def test_reset(self, storage, store):
        storage.preferences.save_preferences(UserPreferences(max_retries=1))
        storage.preferences.reset_preferences()
        assert store.get(PREFERENCES_KEY) is None
