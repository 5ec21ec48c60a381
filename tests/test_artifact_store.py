import pytest

from gifclip.artifact_store import ArtifactStore
from gifclip.models import SourceKind


@pytest.fixture
def store(tmp_path):
    return ArtifactStore(tmp_path / "public" / "gifs", "/gifs")


def test_allocate_reserves_named_placeholder(store):
    path = store.allocate(SourceKind.REMOTE, "abc123", 10, 5, 1700000000000)

    assert path.name == "abc123_10_5_1700000000000.gif"
    assert path.exists()
    assert path.stat().st_size == 0


def test_same_millisecond_collision_gets_suffix(store):
    first = store.allocate(SourceKind.REMOTE, "abc123", 10, 5, 1700000000000)
    second = store.allocate(SourceKind.REMOTE, "abc123", 10, 5, 1700000000000)

    assert first != second
    assert second.name.startswith("abc123_10_5_1700000000000_")
    assert first.exists() and second.exists()


def test_upload_names_are_marked(store):
    path = store.allocate(SourceKind.UPLOAD, "holiday.mov", 0, 2.5, 1)
    assert path.name == "upload_holiday_0_2.5_1.gif"


def test_public_path_and_resolve_round_trip(store):
    path = store.allocate(SourceKind.REMOTE, "abc123", 0, 3, 5)
    path.write_bytes(b"GIF89a")

    public = store.public_path(path)

    assert public == "/gifs/abc123_0_3_5.gif"
    assert store.resolve(public) == path.resolve()
    assert store.resolve("abc123_0_3_5.gif") == path.resolve()


@pytest.mark.parametrize("public_path", [
    "",
    "/gifs/../secret.gif",
    "/gifs/nested/file.gif",
    "/gifs/..",
    "/gifs/missing.gif",
    "..\\secret.gif",
])
def test_resolve_rejects_paths_outside_store(store, public_path):
    store.allocate(SourceKind.REMOTE, "abc123", 0, 3, 5)
    assert store.resolve(public_path) is None


def test_list_artifacts_skips_partial_reserved_and_foreign_files(store):
    kept = store.allocate(SourceKind.REMOTE, "abc123", 0, 3, 5)
    kept.write_bytes(b"GIF89a")
    reserved = store.allocate(SourceKind.REMOTE, "abc123", 0, 3, 7)
    (store.output_dir / "abc123_0_3_6.part.gif").write_bytes(b"partial")
    (store.output_dir / "notes.txt").write_text("x")

    assert store.list_artifacts() == [kept]
    assert store.resolve(store.public_path(reserved)) is None


def test_list_artifacts_on_missing_directory(tmp_path):
    assert ArtifactStore(tmp_path / "nowhere").list_artifacts() == []


def test_discard_is_quiet_for_missing_files(store):
    path = store.allocate(SourceKind.REMOTE, "abc123", 0, 3, 5)
    store.discard(path)
    store.discard(path)
    assert not path.exists()
