"""Tests for registry.py — session naming, enumeration and deletion."""

from datetime import datetime, timezone

import pytest

from hrcap.journal import ArtifactKind
from hrcap.registry import (
    SessionRegistry,
    format_session_time,
    new_session_id,
    parse_session_id,
)

from tests.conftest import FIXED_TIME, SAMPLE_FC20_FRAME

SESSION_A = "Morpheus-M7_2024-02-13T12-00-00.000Z"
SESSION_B = "Morpheus-M7_2024-02-14T08-30-15.250Z"


def _populate(journal, session_id: str, channels=("FC20",)) -> None:
    journal.append_raw(session_id, "FC20", SAMPLE_FC20_FRAME, FIXED_TIME)
    for channel in channels:
        journal.append_binary(session_id, channel, SAMPLE_FC20_FRAME, FIXED_TIME)
    journal.append_derived(session_id, 79, FIXED_TIME)
    journal.append_note(session_id, "Session started for device: Morpheus M7", FIXED_TIME)


class TestSessionIds:
    def test_format_session_time(self):
        ts = datetime(2024, 2, 13, 12, 0, 0, 123456, tzinfo=timezone.utc)
        assert format_session_time(ts) == "2024-02-13T12-00-00.123Z"

    def test_new_session_id(self):
        assert new_session_id("Morpheus M7", FIXED_TIME) == "Morpheus-M7_2024-02-13T12-00-00.000Z"

    def test_device_name_sanitized(self):
        sid = new_session_id("HRM_Pro/2", FIXED_TIME)
        assert sid == "HRM-Pro-2_2024-02-13T12-00-00.000Z"
        assert "/" not in sid

    def test_parse_round_trip(self):
        name, created = parse_session_id(new_session_id("Morpheus", FIXED_TIME))
        assert name == "Morpheus"
        assert created == FIXED_TIME

    @pytest.mark.parametrize("bad", ["", "Morpheus", "_2024-02-13T12-00-00.000Z", "Morpheus_yesterday"])
    def test_parse_rejects_garbage(self, bad):
        with pytest.raises(ValueError):
            parse_session_id(bad)

    def test_ids_sort_by_creation(self):
        earlier = new_session_id("Morpheus", FIXED_TIME)
        later = new_session_id("Morpheus", FIXED_TIME.replace(hour=13))
        assert sorted([later, earlier]) == [earlier, later]


class TestListSessions:
    def test_empty_when_directory_missing(self, data_dir):
        assert SessionRegistry(data_dir).list_sessions() == []

    def test_deduplicated_and_sorted(self, journal, data_dir):
        _populate(journal, SESSION_B, channels=("FC20", "2A37"))
        _populate(journal, SESSION_A)
        assert SessionRegistry(data_dir).list_sessions() == [SESSION_A, SESSION_B]

    def test_session_with_only_narrative(self, journal, data_dir):
        journal.append_note(SESSION_A, "Session started for device: Morpheus")
        assert SessionRegistry(data_dir).list_sessions() == [SESSION_A]

    def test_foreign_files_ignored(self, journal, data_dir):
        _populate(journal, SESSION_A)
        (data_dir / "notes.txt").write_text("hello")
        (data_dir / "export_raw.csv").write_text("x")
        (data_dir / "WorkoutExploration").mkdir()
        assert SessionRegistry(data_dir).list_sessions() == [SESSION_A]


class TestSessionFiles:
    def test_order(self, journal, data_dir):
        _populate(journal, SESSION_A, channels=("FC20", "2A19", "2A37"))
        names = [p.name for p in SessionRegistry(data_dir).session_files(SESSION_A)]
        assert names == [
            f"{SESSION_A}_raw.csv",
            f"{SESSION_A}_analysis.txt",
            f"{SESSION_A}_heartrates.csv",
            f"{SESSION_A}_2A19_binary.dat",
            f"{SESSION_A}_2A37_binary.dat",
            f"{SESSION_A}_FC20_binary.dat",
        ]

    def test_missing_artifacts_skipped(self, journal, data_dir):
        journal.append_raw(SESSION_A, "2A19", b"\x55", FIXED_TIME)
        files = SessionRegistry(data_dir).session_files(SESSION_A)
        assert [p.name for p in files] == [f"{SESSION_A}_raw.csv"]

    def test_other_sessions_excluded(self, journal, data_dir):
        _populate(journal, SESSION_A)
        _populate(journal, SESSION_B)
        files = SessionRegistry(data_dir).session_files(SESSION_A)
        assert all(p.name.startswith(SESSION_A) for p in files)
        assert len(files) == 4

    def test_binary_tables(self, journal, data_dir):
        _populate(journal, SESSION_A, channels=("FC20", "2A37"))
        tables = SessionRegistry(data_dir).binary_tables(SESSION_A)
        assert list(tables) == ["2A37", "FC20"]
        assert tables["FC20"] == journal.path_for(SESSION_A, ArtifactKind.BINARY, "FC20")


class TestDeleteSession:
    def test_removes_all_kinds(self, journal, data_dir):
        _populate(journal, SESSION_A, channels=("FC20", "2A37"))
        registry = SessionRegistry(data_dir)
        removed = registry.delete_session(SESSION_A)
        assert len(removed) == 5
        assert registry.list_sessions() == []
        assert list(data_dir.iterdir()) == []

    def test_other_sessions_untouched(self, journal, data_dir):
        _populate(journal, SESSION_A)
        _populate(journal, SESSION_B)
        registry = SessionRegistry(data_dir)
        registry.delete_session(SESSION_A)
        assert registry.list_sessions() == [SESSION_B]
        assert len(registry.session_files(SESSION_B)) == 4

    def test_nonexistent_session_is_noop(self, journal, data_dir):
        _populate(journal, SESSION_A)
        registry = SessionRegistry(data_dir)
        assert registry.delete_session(SESSION_B) == []
        assert registry.list_sessions() == [SESSION_A]

    def test_missing_directory_is_noop(self, data_dir):
        assert SessionRegistry(data_dir).delete_session(SESSION_A) == []
