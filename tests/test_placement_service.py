"""
tests/test_placement_service.py — Placement Store Tests
========================================================

Identifier rules, replace-on-write association, idempotent dissociation
and the joined listing used to build render snapshots.
"""

from __future__ import annotations

import pytest
from conftest import make_link
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from linkmanager.database.models import PlacementLink
from linkmanager.exceptions import PlacementNotFoundError, StorageError, ValidationError


def _pairs(db_engine) -> list[tuple[int, int]]:
    with Session(db_engine) as s:
        return [
            (row.placement_id, row.link_id)
            for row in s.scalars(select(PlacementLink).order_by(PlacementLink.placement_id))
        ]


class TestIdentifier:
    @pytest.mark.parametrize(
        "identifier, message",
        [
            ("", "Identifier is required"),
            ("Footer", "Identifier can only contain lowercase letters, numbers and underscores"),
            ("foot-er", "Identifier can only contain lowercase letters, numbers and underscores"),
            ("x" * 51, "Identifier cannot be longer than 50 characters"),
        ],
    )
    def test_invalid_identifiers(self, placements, identifier, message):
        with pytest.raises(ValidationError) as exc:
            placements.create({"identifier": identifier})
        assert message in exc.value.messages

    def test_fifty_characters_allowed(self, placements):
        placement_id = placements.create({"identifier": "a" * 50})
        assert placements.get_by_id(placement_id).identifier == "a" * 50

    def test_identifier_unique(self, placements):
        placements.create({"identifier": "footer"})
        with pytest.raises(ValidationError):
            placements.create({"identifier": "footer"})

    def test_update_to_taken_identifier(self, placements):
        placements.create({"identifier": "footer"})
        other = placements.create({"identifier": "header"})
        with pytest.raises(ValidationError):
            placements.update(other, {"identifier": "footer"})
        # keeping its own identifier is fine
        assert placements.update(other, {"identifier": "header", "name": "Top"}) is True


class TestCrud:
    def test_create_defaults_name_to_identifier(self, placements):
        placement = placements.get_by_id(placements.create({"identifier": "footer"}))
        assert placement.name == "footer"
        assert placement.active is True
        assert placement.description is None

    def test_get_by_id_missing(self, placements):
        with pytest.raises(PlacementNotFoundError):
            placements.get_by_id(3)

    def test_get_by_identifier_missing(self, placements):
        assert placements.get_by_identifier("nope") is None

    def test_update_missing(self, placements):
        assert placements.update(3, {"name": "x"}) is False

    def test_delete_removes_associations(self, placements, links, db_engine):
        link_id = make_link(links)
        placement_id = placements.create({"identifier": "footer"})
        placements.associate_link(placement_id, link_id)

        assert placements.delete(placement_id) is True
        assert placements.delete(placement_id) is False
        assert _pairs(db_engine) == []
        assert links.get_by_id(link_id).id == link_id

    def test_list_active_filter(self, placements):
        placements.create({"identifier": "on"})
        placements.create({"identifier": "off", "active": False})
        assert [p.identifier for p in placements.list_placements(active_only=True)] == ["on"]
        assert len(placements.list_placements()) == 2


class TestAssociation:
    def test_associate_replaces_previous_link(self, placements, links, db_engine):
        first, second = make_link(links), make_link(links)
        placement_id = placements.create({"identifier": "footer"})

        placements.associate_link(placement_id, first)
        placements.associate_link(placement_id, second)

        assert _pairs(db_engine) == [(placement_id, second)]

    def test_associate_is_audited(self, placements, links, audit):
        link_id = make_link(links)
        placement_id = placements.create({"identifier": "footer"})
        placements.associate_link(placement_id, link_id)

        [entry] = audit.list_entries({"action": "associate"})["entries"]
        assert entry["resource_type"] == "placement"
        assert entry["resource_id"] == placement_id
        assert entry["details"]["link_id"] == link_id

    def test_dissociate_is_idempotent(self, placements, links, audit, db_engine):
        link_id = make_link(links)
        placement_id = placements.create({"identifier": "footer"})
        placements.associate_link(placement_id, link_id)

        assert placements.dissociate_link(placement_id, link_id) is True
        assert placements.dissociate_link(placement_id, link_id) is False
        assert _pairs(db_engine) == []
        assert audit.list_entries({"action": "dissociate"})["pagination"]["total"] == 1

    def test_dissociate_wrong_pair(self, placements, links, db_engine):
        a, b = make_link(links), make_link(links)
        placement_id = placements.create({"identifier": "footer"})
        placements.associate_link(placement_id, a)

        assert placements.dissociate_link(placement_id, b) is False
        assert _pairs(db_engine) == [(placement_id, a)]

    def test_link_id_requires_both_active(self, placements, links):
        link_id = make_link(links)
        placement_id = placements.create({"identifier": "footer"})
        placements.associate_link(placement_id, link_id)
        assert placements.get_link_id_by_identifier("footer") == link_id

        links.toggle_active(link_id)
        assert placements.get_link_id_by_identifier("footer") is None

        links.toggle_active(link_id)
        placements.update(placement_id, {"active": False})
        assert placements.get_link_id_by_identifier("footer") is None

    def test_placement_by_link_id(self, placements, links):
        link_id = make_link(links)
        assert placements.get_placement_by_link_id(link_id) is None
        placement_id = placements.create({"identifier": "footer"})
        placements.associate_link(placement_id, link_id)
        assert placements.get_placement_by_link_id(link_id).id == placement_id

    def test_associate_unknown_link_fails_cleanly(self, placements, db_engine):
        placement_id = placements.create({"identifier": "footer"})
        with pytest.raises(StorageError):
            placements.associate_link(placement_id, 999)
        with Session(db_engine) as s:
            assert s.scalar(select(func.count()).select_from(PlacementLink)) == 0


class TestListWithLinks:
    def test_joined_listing(self, placements, links):
        link_id = make_link(links, name="Contact")
        assigned = placements.create({"identifier": "assigned"})
        placements.create({"identifier": "empty"})
        placements.create({"identifier": "hidden", "active": False})
        placements.associate_link(assigned, link_id)

        rows = {row.identifier: row for row in placements.list_with_links()}
        assert set(rows) == {"assigned", "empty"}
        assert rows["assigned"].link["id"] == link_id
        assert rows["assigned"].link["name"] == "Contact"
        assert rows["empty"].link is None

    def test_include_inactive(self, placements):
        placements.create({"identifier": "hidden", "active": False})
        rows = placements.list_with_links(active_only=False)
        assert [row.identifier for row in rows] == ["hidden"]
