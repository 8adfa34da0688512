"""Tests for config stores and staging areas."""

import json
import threading

import pytest
import yaml

from netconfig.errors import InternalError
from netconfig.storage import (
    DictConfigStore,
    FileConfigStore,
    FileStagingArea,
    MemoryStagingArea,
    join_path,
    split_path,
)


class TestPaths:
    """Test suite for store path helpers."""

    def test_split_and_join(self):
        assert split_path("interfaces.0.aliases") == ["interfaces", "0", "aliases"]
        assert split_path("") == []
        assert join_path("interfaces", 0, None, "aliases") == "interfaces.0.aliases"


class TestDictConfigStore:
    """Test suite for DictConfigStore."""

    def test_get_and_set(self):
        store = DictConfigStore()
        store.set("interfaces.wan.ipaddr", "10.0.0.1")
        assert store.get("interfaces.wan.ipaddr") == "10.0.0.1"
        assert store.get("interfaces.lan.ipaddr", "none") == "none"
        assert store.dirty

    def test_get_returns_copies(self):
        store = DictConfigStore({"system": {"dns": ["1.1.1.1"]}})
        store.get("system.dns").append("8.8.8.8")
        assert store.get("system.dns") == ["1.1.1.1"]

    def test_list_nodes(self):
        store = DictConfigStore({"rules": [{"descr": "a"}, {"descr": "b"}]})
        assert store.get("rules.1.descr") == "b"
        store.set("rules.0.descr", "c")
        assert store.get("rules.0.descr") == "c"
        assert store.delete("rules.0")
        assert store.get("rules") == [{"descr": "b"}]

    def test_delete(self):
        store = DictConfigStore({"a": {"b": 1}})
        assert store.delete("a.b")
        assert not store.delete("a.b")
        assert not store.delete("x.y")

    def test_cannot_replace_root(self):
        with pytest.raises(InternalError):
            DictConfigStore().set("", {})

    def test_commit_history(self):
        store = DictConfigStore(history_size=2)
        store.set("a", 1)
        for description in ("first", "second", "third"):
            store.commit(description)
        assert [entry["description"] for entry in store.history] == ["second", "third"]
        assert not store.dirty

    def test_lock_is_reentrant(self):
        store = DictConfigStore()
        with store.lock():
            with store.lock():
                store.set("a", 1)
        assert store.get("a") == 1


class TestFileConfigStore:
    """Test suite for FileConfigStore."""

    def test_missing_file_starts_empty(self, temp_dir):
        store = FileConfigStore(temp_dir / "config.json")
        assert store.data == {}

    def test_commit_writes_json(self, temp_dir):
        path = temp_dir / "config.json"
        store = FileConfigStore(path)
        store.set("system.hostname", "edge")
        assert not path.exists()

        store.commit("Set hostname")
        assert json.loads(path.read_text()) == {"system": {"hostname": "edge"}}
        assert FileConfigStore(path).get("system.hostname") == "edge"

    def test_commit_writes_yaml(self, temp_dir):
        path = temp_dir / "config.yaml"
        store = FileConfigStore(path)
        store.set("interfaces.0.name", "wan")
        store.commit("Added interface")

        assert yaml.safe_load(path.read_text()) == {"interfaces": {"0": {"name": "wan"}}}
        assert not list(temp_dir.glob("*.tmp"))

    def test_reload_discards_uncommitted(self, temp_dir):
        path = temp_dir / "config.json"
        path.write_text(json.dumps({"a": 1}))
        store = FileConfigStore(path)
        store.set("a", 2)
        store.reload()
        assert store.get("a") == 1

    def test_non_mapping_file(self, temp_dir):
        path = temp_dir / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(InternalError):
            FileConfigStore(path)

    def test_store_key_shared_by_path(self, temp_dir):
        path = temp_dir / "config.json"
        assert FileConfigStore(path).store_key == FileConfigStore(temp_dir / "." / "config.json").store_key

        first, second = DictConfigStore(), DictConfigStore()
        assert first.store_key != second.store_key

    def test_lock_refreshes_from_other_store(self, temp_dir):
        path = temp_dir / "config.json"
        first = FileConfigStore(path)
        second = FileConfigStore(path)

        with first.lock():
            first.set("system.hostname", "edge")
            first.commit("Set hostname")

        assert second.get("system.hostname") is None
        with second.lock():
            assert second.get("system.hostname") == "edge"

    def test_file_lock_is_reentrant(self, temp_dir):
        store = FileConfigStore(temp_dir / "config.json")
        with store.lock():
            with store.lock():
                store.set("a", 1)
                store.commit("nested")
            store.set("b", 2)
            store.commit("outer")
        assert FileConfigStore(temp_dir / "config.json").data == {"a": 1, "b": 2}
        assert (temp_dir / "config.json.lock").exists()

    def test_lock_excludes_other_store_objects(self, temp_dir):
        path = temp_dir / "config.json"
        first = FileConfigStore(path)
        second = FileConfigStore(path)
        entered = threading.Event()
        release = threading.Event()
        acquired = threading.Event()
        seen = []

        def hold():
            with first.lock():
                entered.set()
                release.wait(timeout=5)
                first.set("owner", "first")
                first.commit("first")

        def contend():
            with second.lock():
                acquired.set()
                seen.append(second.get("owner"))

        holder = threading.Thread(target=hold)
        holder.start()
        assert entered.wait(timeout=5)

        contender = threading.Thread(target=contend)
        contender.start()
        assert not acquired.wait(timeout=0.2)

        release.set()
        holder.join(timeout=5)
        contender.join(timeout=5)
        assert seen == ["first"]


class TestStagingAreas:
    """Test suite for MemoryStagingArea and FileStagingArea."""

    @pytest.fixture(params=["memory", "file"])
    def area(self, request, temp_dir):
        if request.param == "memory":
            return MemoryStagingArea()
        return FileStagingArea(temp_dir / "staging")

    def test_stage_overwrites_by_identity(self, area):
        area.stage("vip", "5", {"a": 1})
        area.stage("vip", "5", {"a": 2})
        area.stage("vip", "6", {"a": 3})
        assert area.snapshot("vip") == {"5": {"a": 2}, "6": {"a": 3}}

    def test_namespaces_are_separate(self, area):
        area.stage("vip", "1", {"a": 1})
        assert area.snapshot("interface") == {}
        assert area.has_pending("vip")
        assert not area.has_pending("interface")

    def test_discard_keeps_restaged_records(self, area):
        area.stage("vip", "1", {"a": 1})
        area.stage("vip", "2", {"b": 1})
        applied = area.snapshot("vip")
        area.stage("vip", "2", {"b": 2})

        assert area.discard("vip", applied) == 1
        assert area.snapshot("vip") == {"2": {"b": 2}}

    def test_clear(self, area):
        area.stage("vip", "1", {"a": 1})
        area.clear("vip")
        assert not area.has_pending("vip")

    def test_file_layout(self, temp_dir):
        area = FileStagingArea(temp_dir)
        area.stage("virtual-ip", "0", {"deleted": True, "internal": {}})

        path = temp_dir / "virtual-ip.pending.json"
        assert area.path_for("virtual-ip") == path
        assert json.loads(path.read_text()) == {"0": {"deleted": True, "internal": {}}}

        area.discard("virtual-ip", area.snapshot("virtual-ip"))
        assert not path.exists()

    def test_unreadable_file_is_discarded(self, temp_dir, caplog):
        area = FileStagingArea(temp_dir)
        area.path_for("vip").write_text("{not json")
        assert area.snapshot("vip") == {}
        assert "unreadable" in caplog.text

    def test_concurrent_stage_from_separate_areas(self, temp_dir):
        areas = [FileStagingArea(temp_dir) for _ in range(4)]

        def stage_many(area, offset):
            for i in range(10):
                area.stage("vip", str(offset + i), {"n": offset + i})

        threads = [threading.Thread(target=stage_many, args=(area, n * 10)) for n, area in enumerate(areas)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert len(FileStagingArea(temp_dir).snapshot("vip")) == 40
