from pathlib import Path
from unittest.mock import MagicMock

import pytest
from faker import Faker
from upload_service.chunk_store import FsspecChunkStore

fake = Faker()


@pytest.fixture(name="store", params=["memory", "file"])
def fixture_store(request: pytest.FixtureRequest, tmp_path: Path) -> FsspecChunkStore:
    if request.param == "memory":
        return FsspecChunkStore(root=f"/chunks-{fake.uuid4()}", protocol="memory")
    return FsspecChunkStore(root=str(tmp_path / "chunks"), protocol="file")


def test_put_and_get(store: FsspecChunkStore) -> None:
    session_id = fake.uuid4()
    payload = fake.binary(length=256)

    store.put(session_id, 0, payload)

    assert store.get(session_id, 0) == payload
    assert store.exists(session_id, 0)
    assert not store.exists(session_id, 1)


def test_put_overwrites(store: FsspecChunkStore) -> None:
    session_id = fake.uuid4()

    store.put(session_id, 4, b"first")
    store.put(session_id, 4, b"second")

    assert store.get(session_id, 4) == b"second"
    assert store.list_indices(session_id) == [4]


def test_open_missing_chunk(store: FsspecChunkStore) -> None:
    with pytest.raises(FileNotFoundError):
        store.open(fake.uuid4(), 0)


def test_list_indices_sorted_numerically(store: FsspecChunkStore) -> None:
    session_id = fake.uuid4()
    for index in (10, 2, 0, 1):
        store.put(session_id, index, b"x")

    assert store.list_indices(session_id) == [0, 1, 2, 10]
    assert store.list_indices(fake.uuid4()) == []


def test_sessions_are_isolated(store: FsspecChunkStore) -> None:
    first, second = fake.uuid4(), fake.uuid4()
    store.put(first, 0, b"first")
    store.put(second, 0, b"second")

    store.delete_all(first)

    assert store.list_indices(first) == []
    assert store.get(second, 0) == b"second"
    assert store.list_sessions() == [second]


def test_delete(store: FsspecChunkStore) -> None:
    session_id = fake.uuid4()
    store.put(session_id, 0, b"a")
    store.put(session_id, 1, b"b")

    store.delete(session_id, 0)
    store.delete(session_id, 0)
    store.delete_all(fake.uuid4())

    assert store.list_indices(session_id) == [1]


def test_failed_write_leaves_no_chunk(
    store: FsspecChunkStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    session_id = fake.uuid4()
    monkeypatch.setattr(store.client, "mv", MagicMock(side_effect=OSError("disk full")))

    with pytest.raises(OSError):
        store.put(session_id, 0, b"never")

    assert store.list_indices(session_id) == []
    assert not store.exists(session_id, 0)
