"""
Tests for the JSON-file credential store.
"""

import json
from unittest.mock import patch

import pytest

from relay.services.credential_store import CredentialStore


@pytest.fixture
def store(tmp_path):
    return CredentialStore(tmp_path / "tokens.json")


class TestLoad:
    def test_absent_file_returns_none(self, store):
        assert store.load() is None
        assert store.load_refresh_token() is None

    def test_malformed_file_returns_none(self, store):
        store.path.write_text("{not json", encoding="utf-8")
        assert store.load() is None

    def test_record_without_token_returns_none(self, store):
        store.path.write_text(json.dumps({"updatedAt": "2026-01-01T00:00:00Z"}), encoding="utf-8")
        assert store.load() is None

    def test_reads_original_camel_case_shape(self, store):
        store.path.write_text(json.dumps({
            "refreshToken": "1//abc",
            "updatedAt": "2026-03-01T10:00:00.000Z",
            "updatedBy": "Manual",
        }), encoding="utf-8")

        record = store.load()

        assert record.refresh_token == "1//abc"
        assert record.updated_by == "Manual"
        assert record.updated_at.year == 2026


class TestSave:
    def test_round_trip(self, store):
        store.save("1//fresh", updated_by="OAuth2 callback - support@example.com")

        record = store.load()
        assert record.refresh_token == "1//fresh"
        assert record.updated_by == "OAuth2 callback - support@example.com"

        on_disk = json.loads(store.path.read_text(encoding="utf-8"))
        assert set(on_disk) == {"refreshToken", "updatedAt", "updatedBy"}

    def test_save_overwrites_previous_record(self, store):
        store.save("1//old")
        store.save("1//new")
        assert store.load_refresh_token() == "1//new"

    def test_default_updated_by_is_system(self, store):
        assert store.save("1//x").updated_by == "System"

    def test_empty_token_rejected(self, store):
        with pytest.raises(ValueError):
            store.save("")
        assert not store.path.exists()

    def test_write_failure_propagates_and_keeps_old_record(self, store):
        store.save("1//old")
        with patch("relay.services.credential_store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                store.save("1//new")

        assert store.load_refresh_token() == "1//old"
        leftovers = [p.name for p in store.path.parent.iterdir() if p.name.startswith(".tokens-")]
        assert leftovers == []

    def test_metadata_never_contains_secret(self, store):
        store.save("1//secret", updated_by="Manual")
        meta = store.metadata()
        assert meta["updatedBy"] == "Manual"
        assert "1//secret" not in json.dumps(meta)
