"""Tests for the provider merge engine."""

from ccman.config import ProviderRecord
from ccman.sync.merge import merge_providers, providers_equal, resolve_name_conflict

from conftest import make_provider


def _by_id(result):
    return {p.id: p for p in result.merged}


class TestMergeProviders:
    def test_merge_with_itself_has_no_changes(self):
        store = [
            make_provider("p1", "A", "https://a", "k1", last_modified=100),
            make_provider("p2", "B", "https://b", "k2", last_modified=200),
        ]
        result = merge_providers(store, list(store))

        assert result.has_changes is False
        assert providers_equal(result.merged, store)

    def test_empty_local_takes_remote(self):
        remote = [make_provider("p1"), make_provider("p2", "B", "https://b", "k2")]
        result = merge_providers([], remote)

        assert result.has_changes is True
        assert [p.id for p in result.merged] == ["p1", "p2"]

    def test_empty_remote_keeps_local(self):
        local = [make_provider("p1"), make_provider("p2", "B", "https://b", "k2")]
        result = merge_providers(local, [])

        assert result.has_changes is True
        assert [p.id for p in result.merged] == ["p1", "p2"]

    def test_both_empty(self):
        result = merge_providers([], [])
        assert result.merged == []
        assert result.has_changes is False

    def test_disjoint_stores_keep_everything(self):
        local = [make_provider("l1", "A", "https://a", "k1"), make_provider("l2", "B", "https://b", "k2")]
        remote = [make_provider("r1", "C", "https://c", "k3"), make_provider("r2", "D", "https://d", "k4")]

        result = merge_providers(local, remote)

        assert len(result.merged) == 4
        assert set(_by_id(result)) == {"l1", "l2", "r1", "r2"}
        assert result.has_changes is True

    def test_newer_remote_wins_on_same_id(self):
        local = [make_provider("p1", "A", "https://x", "k1", last_modified=100)]
        remote = [make_provider("p1", "A", "https://x", "k2", last_modified=200)]

        result = merge_providers(local, remote)

        assert len(result.merged) == 1
        assert result.merged[0].api_key == "k2"
        assert result.merged[0].last_modified == 200
        assert result.has_changes is True

    def test_newer_local_wins_on_same_id(self):
        local = [make_provider("p1", "A", "https://x", "k1", last_modified=300)]
        remote = [make_provider("p1", "A", "https://x", "k2", last_modified=200)]

        result = merge_providers(local, remote)

        assert len(result.merged) == 1
        assert result.merged[0].api_key == "k1"
        assert result.has_changes is False

    def test_equal_timestamp_different_content_remote_wins(self):
        local = [make_provider("p1", "A", "https://x", "k1", last_modified=100)]
        remote = [make_provider("p1", "A", "https://x", "k2", last_modified=100)]

        result = merge_providers(local, remote)

        assert result.merged[0].api_key == "k2"
        assert result.has_changes is True

    def test_missing_last_modified_falls_back_to_created_at(self):
        local = [make_provider("p1", "A", "https://x", "k1", created_at=500)]
        remote = [make_provider("p1", "A", "https://x", "k2", created_at=100, last_modified=400)]

        assert local[0].last_modified == 500
        result = merge_providers(local, remote)

        assert result.merged[0].api_key == "k1"
        assert result.has_changes is False

    def test_same_config_different_id_collapses_to_newer(self):
        local = [make_provider("old-id", "A", "https://x", "k1", last_modified=100)]
        remote = [make_provider("new-id", "A", "https://x", "k1", last_modified=200)]

        result = merge_providers(local, remote)

        assert [p.id for p in result.merged] == ["new-id"]
        assert result.replaced_ids == {"old-id": "new-id"}
        assert result.has_changes is True

    def test_same_config_different_id_equal_timestamp_remote_wins(self):
        local = [make_provider("l1", "A", "https://x", "k1", last_modified=100)]
        remote = [make_provider("r1", "A", "https://x", "k1", last_modified=100)]

        result = merge_providers(local, remote)

        assert [p.id for p in result.merged] == ["r1"]
        assert result.replaced_ids == {"l1": "r1"}
        assert result.has_changes is True

    def test_same_config_different_id_older_remote_is_dropped(self):
        local = [make_provider("old-id", "A", "https://x", "k1", last_modified=300)]
        remote = [make_provider("new-id", "A", "https://x", "k1", last_modified=200)]

        result = merge_providers(local, remote)

        assert [p.id for p in result.merged] == ["old-id"]
        assert result.has_changes is False

    def test_name_collision_gets_suffix(self):
        local = [make_provider("l1", "X", "https://a", "k1")]
        remote = [make_provider("r1", "X", "https://b", "k2")]

        result = merge_providers(local, remote)
        merged = _by_id(result)

        assert merged["l1"].name == "X"
        assert merged["r1"].name == "X_2"

    def test_name_collision_skips_taken_suffixes(self):
        local = [
            make_provider("l1", "X", "https://a", "k1"),
            make_provider("l2", "X_2", "https://b", "k2"),
        ]
        remote = [make_provider("r1", "X", "https://c", "k3")]

        result = merge_providers(local, remote)

        assert _by_id(result)["r1"].name == "X_3"

    def test_name_collision_is_case_insensitive(self):
        local = [make_provider("l1", "openai", "https://a", "k1")]
        remote = [make_provider("r1", "OpenAI", "https://b", "k2")]

        result = merge_providers(local, remote)

        assert _by_id(result)["r1"].name == "OpenAI_2"

    def test_inputs_are_not_mutated(self):
        local = [make_provider("l1", "X", "https://a", "k1")]
        remote = [make_provider("r1", "X", "https://b", "k2")]
        merge_providers(local, remote)
        assert remote[0].name == "X"

    def test_unknown_fields_survive(self):
        remote = [ProviderRecord.model_validate({
            "id": "r1", "name": "A", "baseUrl": "", "apiKey": "k", "createdAt": 1, "color": "red",
        })]
        local = [make_provider("l1", "B", "https://b", "k2")]
        merged = _by_id(merge_providers(local, remote))
        assert merged["r1"].to_dict()["color"] == "red"


def test_resolve_name_conflict():
    assert resolve_name_conflict("A", ["B"]) == "A"
    assert resolve_name_conflict("A", ["a"]) == "A_2"
    assert resolve_name_conflict("A", ["A", "A_2", "a_3"]) == "A_4"
