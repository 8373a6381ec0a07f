import json
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from database import FileLocks, JsonStore, check_safe_id
from errors import BadRequest, StorageError

pytestmark = pytest.mark.unit


def test_ensure_file_is_idempotent(store):
    path = store.path("things.json")

    assert store.ensure_file(path, []) is True
    with store.update(path) as things:
        things.append({"id": "1"})
    before = path.read_bytes()

    assert store.ensure_file(path, []) is False
    assert path.read_bytes() == before


def test_ensure_file_creates_missing_parent(tmp_path):
    store = JsonStore(tmp_path / "fresh" / "data")
    path = store.path("users.json")

    store.ensure_file(path, [])

    assert json.loads(path.read_text()) == []


def test_load_missing_without_default_raises(store):
    with pytest.raises(StorageError):
        store.load(store.path("nope.json"))


def test_load_missing_with_default_returns_copy(store):
    default = {"items": []}
    doc = store.load(store.path("nope.json"), default=default)
    doc["items"].append(1)

    assert default == {"items": []}


def test_load_corrupt_file_raises(store):
    path = store.path("broken.json")
    path.write_text("{not json")

    with pytest.raises(StorageError):
        store.load(path, default=[])


def test_save_leaves_no_temp_files(store):
    path = store.path("doc.json")
    store.save(path, {"a": 1})

    assert json.loads(path.read_text()) == {"a": 1}
    assert [p.name for p in store.data_dir.iterdir()] == ["doc.json"]


def test_save_into_missing_directory_raises(store):
    with pytest.raises(StorageError):
        store.save(store.path("missing", "doc.json"), [])


def test_update_does_not_write_when_block_raises(store):
    path = store.path("doc.json")
    store.save(path, [1])

    with pytest.raises(RuntimeError):
        with store.update(path) as doc:
            doc.append(2)
            raise RuntimeError("boom")

    assert store.load(path) == [1]


def test_same_path_shares_one_lock(tmp_path):
    locks = FileLocks()
    a = locks.for_path(tmp_path / "x.json")
    b = locks.for_path(tmp_path / "sub" / ".." / "x.json")

    assert a is b
    assert locks.for_path(tmp_path / "y.json") is not a


def test_concurrent_updates_lose_nothing(store):
    path = store.path("counter.json")
    store.ensure_file(path, {"n": 0})

    def bump(_):
        with store.update(path) as doc:
            doc["n"] += 1

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(bump, range(50)))

    assert store.load(path) == {"n": 50}


def test_other_paths_are_not_blocked(store):
    held = store.path("held.json")
    other = store.path("other.json")
    store.save(held, [])
    store.save(other, [])
    done = threading.Event()

    def touch_other():
        with store.update(other) as doc:
            doc.append(1)
        done.set()

    with store.locked(held):
        t = threading.Thread(target=touch_other)
        t.start()
        assert done.wait(timeout=5)
    t.join()


@pytest.mark.parametrize("value", ["abc", "A_b-9", "0f" * 16])
def test_safe_ids_pass(value):
    assert check_safe_id(value) == value


@pytest.mark.parametrize("value", ["", "../etc", "a/b", "a.b", "x" * 65])
def test_unsafe_ids_rejected(value):
    with pytest.raises(BadRequest):
        check_safe_id(value)


@pytest.mark.parametrize(
    "content, expect",
    [("{}", list), ('{"x": 1}', list), ("[1, 2]", list), ('[{"id": "a"}, "b"]', list), ("[]", dict), ("null", dict)],
)
def test_load_wrong_shape_raises(store, content, expect):
    path = store.path("doc.json")
    path.write_text(content)

    with pytest.raises(StorageError):
        store.load(path, expect=expect)
    with pytest.raises(StorageError):
        with store.update(path, expect=expect):
            pass
    assert path.read_text() == content


def test_load_expected_shape_passes(store):
    path = store.path("doc.json")
    store.save(path, [{"id": "a"}])

    assert store.load(path, expect=list) == [{"id": "a"}]
    assert store.load(store.path("missing.json"), default=None, expect=dict) is None
