from __future__ import annotations

from datetime import UTC, datetime

from studiosync.models import MediaItem, Project
from studiosync.sync import mutations

T1 = datetime(2026, 1, 1, tzinfo=UTC)
T2 = datetime(2026, 1, 2, tzinfo=UTC)
T3 = datetime(2026, 1, 3, tzinfo=UTC)


def _project(project_id: str, updated_at: datetime = T1, **fields: object) -> Project:
    return Project(id=project_id, created_at=T1, updated_at=updated_at, **fields)


def test_touch_never_changes_identity_fields() -> None:
    project = _project("a")

    touched = mutations.touch(project, T2, {"id": "other", "created_at": T3, "title": "Renamed"})

    assert touched.id == "a"
    assert touched.created_at == T1
    assert touched.updated_at == T2
    assert touched.title == "Renamed"
    assert project.title == ""


def test_touch_keeps_newer_updated_at() -> None:
    project = _project("a", T3)

    assert mutations.touch(project, T2).updated_at == T3


def test_duplicate_ids_reports_each_id_once() -> None:
    snapshot = [_project("a"), _project("b"), _project("a"), _project("a")]

    assert mutations.duplicate_ids(snapshot) == ["a"]
    assert mutations.duplicate_ids([_project("a"), _project("b")]) == []


def test_add_entity_appends_or_replaces() -> None:
    a, b = _project("a"), _project("b")

    assert mutations.add_entity((a,), b) == (a, b)
    replacement = _project("a", title="new")
    assert mutations.add_entity((a, b), replacement) == (replacement, b)


def test_update_entity_leaves_other_entities_alone() -> None:
    a, b = _project("a"), _project("b")

    result = mutations.update_entity((a, b), "b", {"title": "B"}, T2)

    assert result[0] is a
    assert result[1].title == "B"
    assert result[1].updated_at == T2


def test_replace_entity_stamps_the_edited_copy() -> None:
    a = _project("a")
    edited = a.model_copy(update={"description": "edited"})

    result = mutations.replace_entity((a,), edited, T2)

    assert result[0].description == "edited"
    assert result[0].updated_at == T2


def test_remove_entity_of_unknown_id_returns_equal_snapshot() -> None:
    snapshot = (_project("a"),)

    assert mutations.remove_entity(snapshot, "zzz") == snapshot
    assert mutations.remove_entity(snapshot, "a") == ()


def test_link_and_unlink_entity() -> None:
    item = MediaItem(id="m1", created_at=T1, updated_at=T1, project_ids=["p1"])

    linked = mutations.link_entity((item,), "m1", "p2", T2)
    assert linked[0].project_ids == ["p1", "p2"]
    assert linked[0].updated_at == T2

    again = mutations.link_entity(linked, "m1", "p2", T3)
    assert again[0] is linked[0]

    unlinked = mutations.unlink_entity(again, "m1", "p1", T3)
    assert unlinked[0].project_ids == ["p2"]
    assert unlinked[0].updated_at == T3


def test_set_entity_links_drops_duplicates_in_order() -> None:
    item = MediaItem(id="m1", created_at=T1, updated_at=T1)

    result = mutations.set_entity_links((item,), "m1", ["p2", "p1", "p2"], T2)

    assert result[0].project_ids == ["p2", "p1"]
