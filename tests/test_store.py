from __future__ import annotations

import orjson
import pytest

from polyfork.errors import StoreError
from polyfork.models import ForkNodesData
from polyfork.storage.store import ForkNodeStore, write_json_atomic
from tests.factories import make_fork_data, make_fork_node


class TestForkNodeStore:
    def test_missing_file_is_empty(self, store):
        assert store.load() == ForkNodesData.empty()
        assert store.get_for_conversation("conv1") == []
        assert store.get_group("fork-group-1") == []

    def test_unreadable_file_is_empty(self, store, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text("{not json", encoding="utf-8")
        assert store.load().is_empty()

    def test_add_refuses_to_replace_unreadable_file(self, store, store_path):
        store.add(make_fork_node(conversation_id="a"))
        store.add(make_fork_node(conversation_id="b"))
        store_path.write_bytes(store_path.read_bytes()[:-3])
        truncated = store_path.read_bytes()

        with pytest.raises(StoreError, match="unreadable"):
            store.add(make_fork_node(conversation_id="c"))

        assert store_path.read_bytes() == truncated
        assert store.load().is_empty()

    def test_remove_refuses_to_replace_non_object_file(self, store, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(StoreError):
            store.remove("conv1", "u-0", "fork-group-1")
        assert store_path.read_text(encoding="utf-8") == "[1, 2]"

    def test_add_persists_nodes_and_groups(self, store, store_path):
        assert store.add(make_fork_node(conversation_id="conv1", fork_index=0))
        assert store.add(make_fork_node(conversation_id="conv2", fork_index=1))

        raw = orjson.loads(store_path.read_bytes())
        assert raw["groups"] == {"fork-group-1": ["conv1:u-0", "conv2:u-0"]}
        assert raw["nodes"]["conv2"][0]["forkIndex"] == 1
        assert raw["nodes"]["conv2"][0]["conversationId"] == "conv2"

    def test_add_duplicate_identity_returns_false(self, store):
        assert store.add(make_fork_node(created_at=1))
        assert not store.add(make_fork_node(created_at=2, conversation_title="other"))
        assert [node.created_at for node in store.get_for_conversation("conv1")] == [1]

    def test_get_group_spans_conversations(self, store):
        store.add(make_fork_node(conversation_id="conv1", fork_group_id="g1"))
        store.add(make_fork_node(conversation_id="conv2", fork_group_id="g1", fork_index=1))
        store.add(make_fork_node(conversation_id="conv2", fork_group_id="g2", turn_id="u-3"))
        assert [node.conversation_id for node in store.get_group("g1")] == ["conv1", "conv2"]
        assert [node.turn_id for node in store.get_group("g2")] == ["u-3"]

    def test_remove_matches_normalized_turn_id(self, store):
        store.add(make_fork_node(turn_id="u-2-abcd"))
        assert store.remove("conv1", "u-2", "fork-group-1")
        assert store.load() == ForkNodesData.empty()

    def test_remove_missing_returns_false(self, store):
        store.add(make_fork_node())
        assert not store.remove("conv1", "u-0", "other-group")
        assert not store.remove("conv9", "u-0", "fork-group-1")
        assert len(store.get_for_conversation("conv1")) == 1

    def test_remove_keeps_other_nodes_and_rebuilds_groups(self, store):
        store.add(make_fork_node(conversation_id="conv1", fork_group_id="g1"))
        store.add(make_fork_node(conversation_id="conv1", fork_group_id="g2", turn_id="u-1"))
        store.remove("conv1", "u-0", "g1")
        data = store.load()
        assert [node.fork_group_id for node in data.nodes["conv1"]] == ["g2"]
        assert data.groups == {"g2": ["conv1:u-1"]}

    def test_replace_all_repairs_groups(self, store):
        data = make_fork_data(make_fork_node()).model_copy(update={"groups": {"stale": ["x:u-0"]}})
        written = store.replace_all(data)
        assert written.groups == {"fork-group-1": ["conv1:u-0"]}
        assert store.load() == written

    def test_load_discards_stale_groups(self, store_path):
        payload = make_fork_data(make_fork_node()).to_payload()
        payload["groups"] = {"ghost": ["nobody:u-1"]}
        write_json_atomic(store_path, payload)
        assert ForkNodeStore(store_path).load().groups == {"fork-group-1": ["conv1:u-0"]}


def test_write_json_atomic_leaves_no_temp_files(tmp_path):
    target = tmp_path / "nested" / "data.json"
    write_json_atomic(target, {"a": 1})
    write_json_atomic(target, {"a": 2})
    assert orjson.loads(target.read_bytes()) == {"a": 2}
    assert [path.name for path in target.parent.iterdir()] == ["data.json"]
