from datetime import date

import pytest

from filesync.file.storage import SaveStore, ValidationError, derive_name, file_extension


DAY = date(2024, 5, 1)


@pytest.mark.parametrize("file_name,ext", [
    ("a.txt", ".txt"),
    ("archive.tar.gz", ".gz"),
    ("README", ""),
    ("dir.d/README", ""),
    ("C:\\Users\\me\\photo.JPG", ".JPG"),
])
def test_file_extension(file_name, ext):
    assert file_extension(file_name) == ext


def test_derive_name():
    assert derive_name("a.txt", DAY) == "2024-05-01.txt"
    assert derive_name("noext", DAY) == "2024-05-01"


def test_derive_name_defaults_to_today():
    assert derive_name("a.txt") == date.today().isoformat() + ".txt"


def test_resolve_under_root(tmp_path):
    store = SaveStore(tmp_path)
    path = store.resolve("a.txt", "sub", DAY)
    assert path == tmp_path.resolve() / "sub" / "2024-05-01.txt"


def test_resolve_cleans_path(tmp_path):
    store = SaveStore(tmp_path)
    path = store.resolve("a.txt", "sub/./x/../y//", DAY)
    assert path == tmp_path.resolve() / "sub" / "y" / "2024-05-01.txt"


def test_resolve_empty_path_is_root(tmp_path):
    store = SaveStore(tmp_path)
    assert store.resolve("a.txt", "", DAY) == tmp_path.resolve() / "2024-05-01.txt"


def test_absolute_path_stays_under_root(tmp_path):
    store = SaveStore(tmp_path)
    path = store.resolve("a.txt", "/etc", DAY)
    assert path == tmp_path.resolve() / "etc" / "2024-05-01.txt"


@pytest.mark.parametrize("file_path", ["../../etc", "..", "sub/../../x", "/../.."])
def test_traversal_rejected(tmp_path, file_path):
    store = SaveStore(tmp_path / "root")
    with pytest.raises(ValidationError):
        store.resolve("a.txt", file_path, DAY)


def test_symlink_escape_rejected(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    outside = tmp_path / "outside"
    outside.mkdir()
    (root / "link").symlink_to(outside)

    store = SaveStore(root)
    with pytest.raises(ValidationError):
        store.resolve("a.txt", "link", DAY)


@pytest.mark.asyncio
async def test_prepare_creates_dirs_only_when_enabled(tmp_path):
    target = tmp_path / "a" / "b" / "file.txt"

    await SaveStore(tmp_path).prepare(target)
    assert not target.parent.exists()

    await SaveStore(tmp_path, create_dirs=True).prepare(target)
    assert target.parent.is_dir()


@pytest.mark.parametrize("file_name,file_path", [("a.txt", "sub\x00x"), ("a\x00.txt", "sub")])
def test_nul_byte_rejected(tmp_path, file_name, file_path):
    with pytest.raises(ValidationError):
        SaveStore(tmp_path).resolve(file_name, file_path, DAY)
