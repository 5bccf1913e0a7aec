"""
tests/test_log_service.py — Audit Log Store Tests
==================================================

Appending inside and outside a caller's transaction, filtering,
pagination, clearing, and the display helpers.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import update
from sqlalchemy.orm import Session

from linkmanager.database.engine import get_session
from linkmanager.database.models import LogEntry
from linkmanager.exceptions import LogNotFoundError, StorageError, ValidationError
from linkmanager.services.log_service import (
    Actor,
    LogFilters,
    LogService,
    relative_time,
)


def _seed(audit: LogService, count: int, severity: str = "info", **kwargs) -> list[int]:
    return [
        audit.append("update", "link", i, f"entry {i}", severity, **kwargs)
        for i in range(count)
    ]


class TestAppend:
    def test_round_trip(self, audit):
        log_id = audit.append(
            "create", "link", 3, 'Link "A" (ID: 3) has been created', "success",
            {"name": "A", "when": datetime(2024, 1, 2, tzinfo=UTC)},
            actor=Actor(1, "Admin"),
        )
        entry = audit.get_by_id(log_id)
        assert entry["action"] == "create"
        assert entry["resource_type"] == "link"
        assert entry["resource_id"] == 3
        assert entry["severity"] == "success"
        assert entry["details"] == {"name": "A", "when": "2024-01-02T00:00:00+00:00"}
        assert entry["employee_id"] == 1
        assert entry["employee_name"] == "Admin"

    def test_details_optional(self, audit):
        assert audit.get_by_id(audit.append("install", "module", None, "Installed"))["details"] is None

    @pytest.mark.parametrize(
        "action, resource_type, severity",
        [("explode", "link", "info"), ("create", "user", "info"), ("create", "link", "fatal")],
    )
    def test_rejects_unknown_values(self, audit, action, resource_type, severity):
        with pytest.raises(ValidationError):
            audit.append(action, resource_type, 1, "msg", severity)

    def test_unserializable_details(self, audit):
        with pytest.raises(StorageError, match="Cannot serialize"):
            audit.append("create", "link", 1, "msg", details={"obj": object()})

    def test_write_failure_reported_and_raised(self, db_engine, audit, caplog):
        LogEntry.__table__.drop(db_engine)
        with pytest.raises(StorageError):
            audit.append("create", "link", 9, "lost entry")
        assert any(
            "Failed to add log" in r.getMessage() and "lost entry" in r.getMessage()
            for r in caplog.records
        )

    def test_joins_caller_transaction(self, db_engine, audit):
        with pytest.raises(RuntimeError):
            with get_session(db_engine) as session:
                audit.append("create", "link", 1, "inside", session=session)
                raise RuntimeError("caller aborts")
        assert audit.list_entries()["pagination"]["total"] == 0

        with get_session(db_engine) as session:
            log_id = audit.append("create", "link", 1, "committed", session=session)
        assert audit.get_by_id(log_id)["message"] == "committed"


class TestReads:
    def test_get_or_raise(self, audit):
        with pytest.raises(LogNotFoundError):
            audit.get_or_raise(5)
        log_id = audit.append("delete", "link", 5, "gone", "warning")
        assert audit.get_or_raise(log_id)["severity"] == "warning"

    def test_severity_filter_with_pagination(self, audit):
        _seed(audit, 3, "info")
        _seed(audit, 2, "warning")
        result = audit.list_entries({"severity": "info"}, page=1, limit=2)
        assert len(result["entries"]) == 2
        assert all(e["severity"] == "info" for e in result["entries"])
        assert result["pagination"] == {"total": 3, "page": 1, "limit": 2, "pages": 2}

        second = audit.list_entries({"severity": "info"}, page=2, limit=2)
        assert len(second["entries"]) == 1

    def test_default_order_newest_first(self, audit):
        ids = _seed(audit, 3)
        entries = audit.list_entries()["entries"]
        assert [e["id"] for e in entries] == list(reversed(ids))

    def test_order_ascending(self, audit):
        ids = _seed(audit, 3)
        entries = audit.list_entries(order_by="id", direction="asc")["entries"]
        assert [e["id"] for e in entries] == ids

    def test_search_matches_message_details_and_employee(self, audit):
        audit.append("create", "link", 1, "Link Pricing created")
        audit.append("create", "link", 2, "other", details={"url": "https://pricing.test"})
        audit.append("create", "link", 3, "third", actor=Actor(4, "Pricing Bot"))
        audit.append("create", "link", 4, "unrelated")
        result = audit.list_entries({"search": "pricing"})
        assert sorted(e["resource_id"] for e in result["entries"]) == [1, 2, 3]

    def test_search_treats_wildcards_literally(self, audit):
        audit.append("create", "link", 1, "100% done")
        audit.append("create", "link", 2, "1000 done")
        result = audit.list_entries({"search": "100%"})
        assert [e["resource_id"] for e in result["entries"]] == [1]

    def test_search_matches_non_ascii_details(self, audit):
        audit.append("create", "link", 1, "created", details={"name": "Café"})
        audit.append("create", "link", 2, "created", details={"name": "Cafe"})
        result = audit.list_entries({"search": "Café"})
        assert [e["resource_id"] for e in result["entries"]] == [1]
        assert audit.get_by_id(1)["details"] == {"name": "Café"}

    def test_date_range_is_inclusive(self, db_engine, audit):
        old, mid, new = _seed(audit, 3)
        stamps = {
            old: datetime(2024, 3, 1, 8, 0, tzinfo=UTC),
            mid: datetime(2024, 3, 2, 23, 59, tzinfo=UTC),
            new: datetime(2024, 3, 3, 0, 1, tzinfo=UTC),
        }
        with Session(db_engine) as s:
            for log_id, when in stamps.items():
                s.execute(update(LogEntry).where(LogEntry.id == log_id).values(created_at=when))
            s.commit()

        result = audit.list_entries({"date_from": "2024-03-02", "date_to": "2024-03-02"})
        assert [e["id"] for e in result["entries"]] == [mid]

        result = audit.list_entries(LogFilters(date_from=date(2024, 3, 1), date_to=date(2024, 3, 2)))
        assert sorted(e["id"] for e in result["entries"]) == [old, mid]

    def test_resource_filters(self, audit):
        audit.append("associate", "placement", 8, "a")
        audit.append("create", "placement", 9, "b")
        audit.append("associate", "placement", 9, "c")
        result = audit.list_entries({"resource_type": "placement", "resource_id": "9", "action": "associate"})
        assert [e["message"] for e in result["entries"]] == ["c"]

    @pytest.mark.parametrize(
        "kwargs",
        [{"page": 0}, {"limit": -1}, {"order_by": "message"}, {"direction": "sideways"}],
    )
    def test_bad_listing_arguments(self, audit, kwargs):
        with pytest.raises(ValidationError):
            audit.list_entries(**kwargs)

    def test_bad_date(self):
        with pytest.raises(ValidationError):
            LogFilters.from_mapping({"date_from": "03/02/2024"})

    def test_clear(self, audit):
        _seed(audit, 4)
        assert audit.clear() == 4
        assert audit.list_entries()["pagination"]["total"] == 0


class TestEmitters:
    def test_link_update_uses_new_name(self, audit):
        log_id = audit.log_link_update(5, {"before": {"name": "Old"}, "after": {"name": "New"}})
        assert audit.get_by_id(log_id)["message"] == 'Link "New" (ID: 5) has been updated'

    def test_link_deletion_is_warning(self, audit):
        entry = audit.get_by_id(audit.log_link_deletion(5, {"name": "X"}))
        assert entry["severity"] == "warning"
        assert entry["action"] == "delete"

    def test_toggle_activation_message(self, audit):
        entry = audit.get_by_id(audit.log_link_toggle(5, True, {"name": "X"}))
        assert entry["message"] == 'Link "X" (ID: 5) has been activated'
        assert entry["details"]["new_status"] is True

    def test_append_failure_propagates_from_emitters(self, audit):
        with patch.object(audit, "append", side_effect=StorageError("nope")):
            with pytest.raises(StorageError):
                audit.log_link_creation(1, {"name": "X"})


class TestDisplay:
    def test_format_for_display(self, audit):
        now = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
        entry = {
            "id": 1,
            "action": "toggle",
            "resource_type": "placement",
            "details": {"a": 1},
            "created_at": (now - timedelta(hours=3)).isoformat(),
        }
        out = LogService.format_for_display(entry, now=now)
        assert out["action_label"] == "Toggle Status"
        assert out["resource_label"] == "Placement"
        assert out["details_array"] == {"a": 1}
        assert out["date_formatted"] == "2024-05-01 09:00:00"
        assert out["date_relative"] == "3 hours ago"
        assert "action_label" not in entry

    @pytest.mark.parametrize(
        "seconds, expected",
        [(5, "5 seconds ago"), (60, "1 minute ago"), (7200, "2 hours ago"), (86400 * 3, "3 days ago")],
    )
    def test_relative_time(self, seconds, expected):
        now = datetime(2024, 5, 1, tzinfo=UTC)
        assert relative_time(now - timedelta(seconds=seconds), now) == expected

    def test_available_labels(self):
        assert LogService.available_severities()["info"] == "Information"
        assert set(LogService.available_actions()) >= {"associate", "dissociate", "toggle"}
        assert LogService.available_resource_types()["link"] == "Link"
