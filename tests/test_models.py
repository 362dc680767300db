"""
Tests for core models — kinds, default pointer, records, catalog entries.
"""

import pytest
from pydantic import ValidationError

from runtimectl.core.models.catalog import RemoteMetadataEntry
from runtimectl.core.models.pointer import DefaultPointer
from runtimectl.core.models.state import StoreState
from runtimectl.core.models.version import VersionRecord
from runtimectl.core.services.runtime.kinds import NODE, PHP, get_kind
from runtimectl.core.services.runtime.versions import compare_versions, is_newer, parse_version

# ── RuntimeKind ──────────────────────────────────────────────────────


class TestRuntimeKind:
    def test_php_binary_names(self):
        assert PHP.binary_name("8.3") == "php83"
        assert PHP.binary_name("8.3", "-fpm") == "php83-fpm"
        assert PHP.binary_suffixes == ["", "-fpm"]

    def test_node_binary_names(self):
        assert NODE.binary_name("22") == "node22"
        assert NODE.binary_suffixes == [""]

    @pytest.mark.parametrize("name, major", [
        ("php83", "8.3"),
        ("php74", "7.4"),
        ("php8", None),
        ("php834", None),
        ("php83-fpm", None),
        ("php", None),
        ("php.default", None),
    ])
    def test_parse_php_binary_name(self, name, major):
        assert PHP.parse_binary_name(name) == major

    @pytest.mark.parametrize("name, major", [
        ("node22", "22"),
        ("node8", "8"),
        ("node", None),
        ("npm", None),
        ("node22x", None),
    ])
    def test_parse_node_binary_name(self, name, major):
        assert NODE.parse_binary_name(name) == major

    def test_major_of(self):
        assert PHP.major_of("8.3.12") == "8.3"
        assert NODE.major_of("22.21.0") == "22"

    def test_is_valid_major(self):
        assert PHP.is_valid_major("8.4")
        assert not PHP.is_valid_major("8")
        assert NODE.is_valid_major("20")
        assert not NODE.is_valid_major("020")

    def test_parse_version_output(self):
        out = "PHP 8.3.12 (cli) (built: Sep 24 2024 12:00:00) (NTS)\nCopyright (c) The PHP Group"
        assert PHP.parse_version_output(out) == "8.3.12"
        assert NODE.parse_version_output("v22.21.0\n") == "22.21.0"
        assert PHP.parse_version_output("garbage") is None

    def test_kind_is_frozen(self):
        with pytest.raises(ValidationError):
            PHP.name = "perl"

    def test_get_kind(self):
        assert get_kind("php") is PHP
        with pytest.raises(KeyError, match="Unknown runtime kind"):
            get_kind("ruby")


# ── DefaultPointer ───────────────────────────────────────────────────


class TestDefaultPointer:
    def test_parse_round_trips(self):
        pointer = DefaultPointer.parse(PHP, "php84")
        assert pointer is not None
        assert pointer.major == "8.4"
        assert pointer.format() == "php84"

    def test_parse_rejects_non_canonical(self):
        """A zero-padded node name parses to a major that formats differently."""
        assert DefaultPointer.parse(NODE, "node022") is None
        assert DefaultPointer.parse(PHP, "php8") is None
        assert DefaultPointer.parse(PHP, "node22") is None

    def test_php_links_include_fpm(self):
        links = DefaultPointer(PHP, "8.3").links()
        assert links == [("php.default", "php83"), ("php-fpm.default", "php83-fpm")]

    def test_node_links(self):
        assert DefaultPointer(NODE, "22").links() == [("node.default", "node22")]


# ── Records & state ──────────────────────────────────────────────────


class TestVersionRecord:
    def test_defaults(self):
        record = VersionRecord(major="8.3")
        assert record.full_version == ""
        assert record.is_default is False
        assert record.seq == 0
        assert record.installed_at

    def test_state_round_trip(self):
        state = StoreState()
        state.runtimes["php"] = [VersionRecord(major="8.3", full_version="8.3.12", is_default=True, seq=1)]
        state.pins["/srv/app"] = {"php": "8.3"}

        restored = StoreState.model_validate(state.model_dump(mode="json"))
        assert restored.runtimes["php"][0].full_version == "8.3.12"
        assert restored.pins == {"/srv/app": {"php": "8.3"}}

    def test_touch_updates_timestamp(self):
        state = StoreState(updated_at="2000-01-01T00:00:00+00:00")
        state.touch()
        assert state.updated_at != "2000-01-01T00:00:00+00:00"


class TestRemoteMetadataEntry:
    def test_wire_aliases(self):
        entry = RemoteMetadataEntry.model_validate({
            "latest": "22.21.0",
            "filename": "node-22.21.0.tar.gz",
            "sha256": "abc",
            "isLts": True,
            "isEol": False,
        })
        assert entry.is_lts is True
        assert entry.is_eol is False

    def test_flags_default_false(self):
        entry = RemoteMetadataEntry(latest="8.4.1", filename="php.tar.gz", sha256="abc")
        assert not entry.is_lts
        assert not entry.is_eol

    def test_missing_fields_rejected(self):
        with pytest.raises(ValidationError):
            RemoteMetadataEntry.model_validate({"latest": "8.4.1"})


# ── Version comparison ───────────────────────────────────────────────


class TestVersions:
    def test_numeric_ordering(self):
        assert parse_version("8.3.10") > parse_version("8.3.9")
        assert compare_versions("8.3.10", "8.3.9") == 1
        assert compare_versions("8.3", "8.3.0") == 0
        assert compare_versions("7.4.33", "8.0.0") == -1

    def test_is_newer(self):
        assert is_newer("8.3.14", "8.3.12")
        assert not is_newer("8.3.12", "8.3.12")
        assert is_newer("8.3.1", "")
