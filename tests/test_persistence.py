"""
Tests for persistence — state file, version store, audit ledger.
"""

import json

from runtimectl.core import context
from runtimectl.core.models.state import StoreState
from runtimectl.core.persistence.audit import AuditEntry, AuditWriter
from runtimectl.core.persistence.state_file import load_state, save_state
from runtimectl.core.persistence.version_store import VersionStore

# ── State file ───────────────────────────────────────────────────────


class TestStateFile:
    def test_missing_file_is_fresh_state(self, tmp_path):
        state = load_state(tmp_path / "versions.json")
        assert state.runtimes == {}
        assert state.next_seq == 1

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "state" / "versions.json"
        store = VersionStore(path)
        store.add("php", "8.3", "8.3.12", is_default=True)
        store.save()

        loaded = load_state(path)
        assert loaded.runtimes["php"][0].major == "8.3"
        assert loaded.next_seq == 2

    def test_corrupt_file_is_fresh_state(self, tmp_path):
        path = tmp_path / "versions.json"
        path.write_text("{not json")
        assert load_state(path).runtimes == {}

    def test_schema_mismatch_is_fresh_state(self, tmp_path):
        path = tmp_path / "versions.json"
        path.write_text(json.dumps({"runtimes": "nope"}))
        assert load_state(path).runtimes == {}

    def test_atomic_write_leaves_no_temp_files(self, tmp_path):
        path = tmp_path / "versions.json"
        save_state(StoreState(), path)
        save_state(StoreState(), path)
        assert [p.name for p in tmp_path.iterdir()] == ["versions.json"]

    def test_save_touches_updated_at(self, tmp_path):
        state = StoreState(updated_at="2000-01-01T00:00:00+00:00")
        save_state(state, tmp_path / "versions.json")
        assert state.updated_at != "2000-01-01T00:00:00+00:00"


# ── Version store ────────────────────────────────────────────────────


class TestVersionStore:
    def test_seq_is_monotonic(self, store):
        a = store.add("php", "8.3", "8.3.12")
        b = store.add("node", "22", "22.21.0")
        c = store.add("php", "8.4", "8.4.1")
        assert (a.seq, b.seq, c.seq) == (1, 2, 3)

    def test_seq_never_reused_after_delete(self, store):
        a = store.add("php", "8.3", "8.3.12")
        store.delete("php", a)
        b = store.add("php", "8.3", "8.3.12")
        assert b.seq == 2

    def test_records_sorted_by_seq(self, store):
        store.add("php", "8.4", "8.4.1")
        store.add("php", "8.2", "8.2.20")
        assert [r.major for r in store.records("php")] == ["8.4", "8.2"]

    def test_kinds_are_separate(self, store):
        store.add("php", "8.3", "8.3.12")
        assert store.records("node") == []

    def test_find_returns_lowest_seq(self, store):
        first = store.add("php", "8.3", "8.3.10")
        store.add("php", "8.3", "8.3.12")
        assert store.find("php", "8.3") is first
        assert store.find("php", "8.4") is None

    def test_delete_by_identity_keeps_duplicate(self, store):
        first = store.add("php", "8.3", "8.3.10")
        second = store.add("php", "8.3", "8.3.12")
        store.delete("php", first)
        assert store.records("php") == [second]

    def test_default(self, store):
        store.add("php", "8.3", "8.3.12")
        assert store.default("php") is None
        b = store.add("php", "8.4", "8.4.1", is_default=True)
        assert store.default("php") is b

    def test_live_records_persist_mutations(self, store, paths):
        record = store.add("php", "8.3", "8.3.12")
        record.full_version = "8.3.14"
        store.save()
        assert VersionStore(paths.state_file).find("php", "8.3").full_version == "8.3.14"


class TestPins:
    def test_pin_and_lookup(self, store):
        store.pin("php", "/srv/a", "8.3")
        store.pin("php", "/srv/b", "8.4")
        store.pin("node", "/srv/a", "22")
        assert store.pins("php") == {"/srv/a": "8.3", "/srv/b": "8.4"}
        assert store.entities_using("php", "8.3") == ["/srv/a"]
        assert store.entities_using("node", "22") == ["/srv/a"]

    def test_clear_reference(self, store):
        store.pin("php", "/srv/a", "8.3")
        store.pin("node", "/srv/a", "22")
        assert store.clear_reference("php", "/srv/a")
        assert store.pins("php") == {}
        assert store.pins("node") == {"/srv/a": "22"}

    def test_clear_reference_missing(self, store):
        assert not store.clear_reference("php", "/srv/none")

    def test_pins_persist(self, store, paths):
        store.pin("php", "/srv/a", "8.3")
        store.save()
        assert VersionStore(paths.state_file).pins("php") == {"/srv/a": "8.3"}


# ── Audit ledger ─────────────────────────────────────────────────────


class TestAuditWriter:
    def test_write_and_read(self, tmp_path):
        writer = AuditWriter(tmp_path / "audit.ndjson")
        writer.write(AuditEntry(operation_type="install", kind="php", major="8.4", status="ok"))
        writer.write(AuditEntry(operation_type="remove", kind="php", major="8.2", status="failed",
                                errors=["boom"]))

        entries = writer.read_all()
        assert [e.operation_type for e in entries] == ["install", "remove"]
        assert entries[1].errors == ["boom"]
        assert writer.entry_count() == 2

    def test_read_recent(self, tmp_path):
        writer = AuditWriter(tmp_path / "audit.ndjson")
        for i in range(5):
            writer.write(AuditEntry(operation_type="sync", major=str(i)))
        assert [e.major for e in writer.read_recent(2)] == ["3", "4"]

    def test_skips_corrupt_lines(self, tmp_path):
        path = tmp_path / "audit.ndjson"
        writer = AuditWriter(path)
        writer.write(AuditEntry(operation_type="sync"))
        with path.open("a") as f:
            f.write("{broken\n\n")
        writer.write(AuditEntry(operation_type="install"))
        assert [e.operation_type for e in writer.read_all()] == ["sync", "install"]

    def test_missing_file(self, tmp_path):
        writer = AuditWriter(tmp_path / "none.ndjson")
        assert writer.read_all() == []
        assert writer.entry_count() == 0

    def test_default_path_from_context(self, tmp_path, monkeypatch):
        monkeypatch.setattr(context, "_data_dir", tmp_path)
        assert AuditWriter().path == tmp_path / "state" / "audit.ndjson"

    def test_operation_ids_unique(self):
        assert AuditEntry().operation_id != AuditEntry().operation_id
