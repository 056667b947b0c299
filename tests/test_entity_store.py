from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from pydantic import ValidationError

from studiosync.exceptions import HydrationError, SyncConflictError, SyncTransportError
from studiosync.gateway import SaveAck
from studiosync.kinds import MEDIA, PROJECTS, VOICES, CollectionKind
from studiosync.models import Episode, MediaItem, Project, ProjectStage, VoiceCharacter
from studiosync.sync.store import EntityStore

T1 = datetime(2026, 1, 1, tzinfo=UTC)
T2 = datetime(2026, 1, 2, tzinfo=UTC)


@dataclass
class FakeGateway:
    remote: dict[str, tuple[Any, ...]] = field(default_factory=dict)
    saves: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)
    load_error: Exception | None = None
    save_error: Exception | None = None

    async def load(self, kind: CollectionKind[Any]) -> tuple[Any, ...]:
        await asyncio.sleep(0)
        if self.load_error is not None:
            raise self.load_error
        return self.remote.get(kind.name, ())

    async def save(self, kind: CollectionKind[Any], snapshot: tuple[Any, ...]) -> SaveAck:
        self.saves.append((kind.name, snapshot))
        await asyncio.sleep(0)
        if self.save_error is not None:
            error, self.save_error = self.save_error, None
            raise error
        self.remote[kind.name] = snapshot
        return SaveAck(kind=kind.name, count=len(snapshot))


class _Clock:
    def __init__(self, *readings: datetime) -> None:
        self._readings = list(readings)

    def __call__(self) -> datetime:
        if len(self._readings) > 1:
            return self._readings.pop(0)
        return self._readings[0]


def _project(project_id: str, updated_at: datetime = T1, **fields: Any) -> Project:
    return Project(id=project_id, created_at=T1, updated_at=updated_at, **fields)


@pytest.mark.asyncio
async def test_two_back_to_back_writes_are_saved_once_with_both_items() -> None:
    gateway = FakeGateway()
    store = EntityStore(PROJECTS, gateway)
    a = _project("a", T1, title="A")
    b = _project("b", T2, title="B")

    store.write([a])
    store.write([a, b])

    assert store.read() == (a, b)
    assert await store.coalescer.drain(1.0)
    assert gateway.saves == [("projects", (a, b))]


@pytest.mark.asyncio
async def test_read_reflects_write_before_save_completes() -> None:
    gateway = FakeGateway()
    store = EntityStore(PROJECTS, gateway)
    a = _project("a")

    store.write([a])
    assert store.read() == (a,)
    assert gateway.saves == []

    await store.coalescer.drain(1.0)
    assert store.read() == (a,)


@pytest.mark.asyncio
async def test_writing_the_same_snapshot_twice_keeps_the_same_state() -> None:
    gateway = FakeGateway()
    store = EntityStore(PROJECTS, gateway)
    snapshot = (_project("a"),)

    store.write(snapshot)
    await store.coalescer.drain(1.0)
    store.write(snapshot)
    await store.coalescer.drain(1.0)

    assert store.read() == snapshot
    assert gateway.remote["projects"] == snapshot


@pytest.mark.asyncio
async def test_save_failure_keeps_local_state_and_next_write_heals() -> None:
    gateway = FakeGateway(save_error=SyncTransportError("HTTP 503", status_code=503))
    store = EntityStore(PROJECTS, gateway)
    a = _project("a")
    b = _project("b")

    store.write([a])
    await store.coalescer.drain(1.0)
    assert store.read() == (a,)
    assert "projects" not in gateway.remote

    store.write([a, b])
    await store.coalescer.drain(1.0)
    assert gateway.remote["projects"] == (a, b)


@pytest.mark.asyncio
async def test_hydrate_replaces_cache_with_remote_snapshot() -> None:
    remote = (_project("r1"), _project("r2"))
    gateway = FakeGateway(remote={"projects": remote})
    store = EntityStore(PROJECTS, gateway)

    assert store.hydrated is False
    loaded = await store.hydrate()

    assert loaded == remote
    assert store.read() == remote
    assert store.hydrated is True
    assert gateway.saves == []


@pytest.mark.asyncio
async def test_failed_hydrate_raises_and_leaves_cache_untouched() -> None:
    gateway = FakeGateway()
    store = EntityStore(PROJECTS, gateway)
    local = _project("local")
    store.write([local])
    await store.coalescer.drain(1.0)

    gateway.load_error = SyncTransportError("connection refused")
    with pytest.raises(HydrationError) as excinfo:
        await store.hydrate()

    assert excinfo.value.kind == "projects"
    assert isinstance(excinfo.value.__cause__, SyncTransportError)
    assert store.read() == (local,)
    assert store.hydrated is False


def test_write_with_duplicate_ids_is_rejected() -> None:
    store = EntityStore(PROJECTS, FakeGateway())
    existing = (_project("a"),)
    store.write(existing)

    with pytest.raises(ValueError, match="duplicate projects ids"):
        store.write([_project("x"), _project("x", title="again")])

    assert store.read() == existing


@pytest.mark.asyncio
async def test_reset_discards_pending_snapshot() -> None:
    gateway = FakeGateway()
    store = EntityStore(PROJECTS, gateway)

    store.write([_project("a")])
    store.reset()

    assert store.read() == ()
    assert store.coalescer.pending is None
    assert await store.coalescer.drain(1.0)
    assert gateway.saves == []


@pytest.mark.asyncio
async def test_conflict_marks_store_for_resync_until_next_hydrate() -> None:
    gateway = FakeGateway(save_error=SyncConflictError("changed remotely", kind="projects"))
    store = EntityStore(PROJECTS, gateway)

    store.write([_project("a")])
    await store.coalescer.drain(1.0)
    assert store.needs_resync is True

    await store.hydrate()
    assert store.needs_resync is False


@pytest.mark.asyncio
async def test_create_assigns_id_and_timestamps() -> None:
    gateway = FakeGateway()
    store = EntityStore(PROJECTS, gateway, clock=lambda: T2, id_factory=lambda: "p-1")

    project = store.create(title="Morning Prayers")

    assert project.id == "p-1"
    assert project.created_at == T2
    assert project.updated_at == T2
    assert store.get("p-1") == project
    await store.coalescer.drain(1.0)
    assert gateway.remote["projects"] == (project,)


def test_update_applies_changes_and_stamps_updated_at() -> None:
    store = EntityStore(PROJECTS, FakeGateway(), clock=lambda: T2)
    store.write([_project("a", title="Old"), _project("b")])

    updated = store.update("a", {"title": "New"})

    assert updated is not None
    assert updated.title == "New"
    assert updated.updated_at == T2
    assert updated.created_at == T1
    assert [p.id for p in store.read()] == ["a", "b"]


def test_update_of_unknown_id_does_not_write() -> None:
    store = EntityStore(PROJECTS, FakeGateway())
    snapshot = (_project("a"),)
    store.write(snapshot)
    store.coalescer.take_pending()

    assert store.update("missing", {"title": "x"}) is None
    assert store.coalescer.pending is None
    assert store.read() == snapshot


def test_update_with_backwards_clock_keeps_updated_at_monotonic() -> None:
    store = EntityStore(PROJECTS, FakeGateway(), clock=lambda: T1 - timedelta(hours=1))
    store.write([_project("a", T2)])

    updated = store.update("a", {"title": "later edit"})

    assert updated is not None
    assert updated.updated_at == T2


def test_remove_drops_entity() -> None:
    store = EntityStore(PROJECTS, FakeGateway())
    store.write([_project("a"), _project("b")])

    assert store.remove("a") is True
    assert store.remove("a") is False
    assert [p.id for p in store.read()] == ["b"]


def test_add_replaces_entity_with_same_id_in_place() -> None:
    store = EntityStore(PROJECTS, FakeGateway())
    store.write([_project("a", title="one"), _project("b")])

    store.add(_project("a", title="two"))

    assert [(p.id, p.title) for p in store.read()] == [("a", "two"), ("b", "")]


def test_link_unlink_and_set_links_on_voices() -> None:
    store = EntityStore(VOICES, FakeGateway(), clock=_Clock(T2))
    store.write([VoiceCharacter(id="v1", name="Narrator", created_at=T1, updated_at=T1)])

    store.link("v1", "p1")
    store.link("v1", "p1")
    store.link("v1", "p2")
    assert store.get("v1").project_ids == ["p1", "p2"]  # type: ignore[union-attr]
    assert [v.id for v in store.linked_to("p2")] == ["v1"]

    store.unlink("v1", "p1")
    assert store.get("v1").project_ids == ["p2"]  # type: ignore[union-attr]

    store.set_links("v1", ["p3", "p3", "p4"])
    assert store.get("v1").project_ids == ["p3", "p4"]  # type: ignore[union-attr]
    assert store.linked_to("p2") == []


def test_linking_projects_is_rejected() -> None:
    store = EntityStore(PROJECTS, FakeGateway())
    store.write([_project("a")])

    with pytest.raises(TypeError):
        store.link("a", "p1")


def test_filter_on_media() -> None:
    store = EntityStore(MEDIA, FakeGateway())
    store.write(
        [
            MediaItem(id="m1", name="Rain", type="sfx", tags=["weather"]),
            MediaItem(id="m2", name="Sunrise", type="image"),
        ]
    )

    assert [m.id for m in store.filter(lambda m: m.type == "sfx")] == ["m1"]


def test_update_with_invalid_value_raises_and_leaves_cache_unchanged() -> None:
    store = EntityStore(PROJECTS, FakeGateway())
    snapshot = (_project("a"),)
    store.write(snapshot)
    store.coalescer.take_pending()

    with pytest.raises(ValidationError):
        store.update("a", {"religion": "bogus"})

    assert store.read() == snapshot
    assert store.coalescer.pending is None


def test_update_validates_nested_episodes() -> None:
    store = EntityStore(PROJECTS, FakeGateway(), clock=lambda: T2)
    store.write([_project("a")])

    updated = store.update("a", {"episodes": [{"id": "e1", "title": "Pilot", "stage": "recording"}]})

    assert updated is not None
    episode = updated.get_episode("e1")
    assert isinstance(episode, Episode)
    assert episode.stage is ProjectStage.RECORDING


def test_update_by_wire_key_sets_the_modelled_field() -> None:
    store = EntityStore(VOICES, FakeGateway(), clock=lambda: T2)
    store.write([VoiceCharacter(id="v1", name="Narrator", created_at=T1, updated_at=T1)])

    updated = store.update("v1", {"projectIds": ["p1"], "refText": "Hello"})

    assert updated is not None
    assert updated.project_ids == ["p1"]
    assert updated.ref_text == "Hello"
    assert updated.model_extra == {}
    assert [v.id for v in store.linked_to("p1")] == ["v1"]
    assert VOICES.wrap(store.read())["voices"][0]["projectIds"] == ["p1"]


def test_update_keeps_unmodelled_extras() -> None:
    store = EntityStore(PROJECTS, FakeGateway(), clock=lambda: T2)
    store.write([Project.model_validate({"id": "a", "audioMixSettings": {"ducking": 0.4}})])

    updated = store.update("a", {"title": "Mixed", "coverStyle": "dark"})

    assert updated is not None
    wire = updated.to_wire()
    assert wire["audioMixSettings"] == {"ducking": 0.4}
    assert wire["coverStyle"] == "dark"
    assert wire["title"] == "Mixed"
