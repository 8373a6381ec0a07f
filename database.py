"""
JSON file storage.

Every document is a whole file: loading reads the entire collection and
saving rewrites it. Each file path has its own re-entrant mutex; a
load-mutate-save cycle on a path must run while holding that path's lock
(`JsonStore.update` does this). Different paths never block each other.
"""

import copy
import json
import os
import re
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from errors import BadRequest, StorageError
from logger import logger

PathLike = Union[str, Path]

_MISSING = object()

M = TypeVar("M", bound=BaseModel)

# Ids end up in file names under the data directory.
SAFE_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def check_safe_id(value: str) -> str:
    if not isinstance(value, str) or not SAFE_ID.match(value):
        raise BadRequest("Invalid id")
    return value


def check_shape(path: PathLike, document: Any, expect: Optional[type]) -> None:
    if expect is None:
        return
    ok = isinstance(document, expect)
    if ok and expect is list:
        ok = all(isinstance(doc, dict) for doc in document)
    if not ok:
        logger.error(
            "Storage file has unexpected shape",
            extra={"path": str(path), "expected": expect.__name__, "found": type(document).__name__},
        )
        raise StorageError(f"Storage file {Path(path).name} has unexpected shape")


def parse_record(model: Type[M], doc: Any, path: PathLike) -> M:
    try:
        return model.model_validate(doc)
    except ValidationError as e:
        logger.error(
            "Storage record is invalid",
            extra={"path": str(path), "model": model.__name__, "error_count": e.error_count()},
        )
        raise StorageError(f"Storage file {Path(path).name} holds an invalid record") from e


class FileLocks:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    def for_path(self, path: PathLike):
        key = str(Path(path).resolve())
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock


class JsonStore:
    def __init__(self, data_dir: PathLike, locks: Optional[FileLocks] = None):
        self.data_dir = Path(data_dir)
        self.locks = locks or FileLocks()

    def path(self, *parts: str) -> Path:
        return self.data_dir.joinpath(*parts)

    def ensure_dir(self, path: PathLike) -> None:
        try:
            Path(path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create directory", extra={"path": str(path), "error": str(e)})
            raise StorageError(f"Cannot create directory {path}") from e

    def ensure_file(self, path: PathLike, default: Any) -> bool:
        """Create `path` holding `default` unless it exists. Returns True if created."""
        path = Path(path)
        self.ensure_dir(path.parent)
        with self.locked(path):
            if path.exists():
                return False
            self.save(path, default)
            logger.info("Initialized storage file", extra={"path": str(path)})
            return True

    @contextmanager
    def locked(self, path: PathLike) -> Iterator[None]:
        with self.locks.for_path(path):
            yield

    def load(self, path: PathLike, default: Any = _MISSING, expect: Optional[type] = None) -> Any:
        """Read the whole document at `path`.

        With `expect=dict` the document must be an object; with `expect=list`
        it must be a list of objects. Anything else is a StorageError.
        """
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as f:
                document = json.load(f)
        except FileNotFoundError as e:
            if default is not _MISSING:
                return copy.deepcopy(default)
            logger.error("Storage file missing", extra={"path": str(path)})
            raise StorageError(f"Storage file {path.name} is missing") from e
        except json.JSONDecodeError as e:
            logger.error("Storage file is corrupt", extra={"path": str(path), "error": str(e)})
            raise StorageError(f"Storage file {path.name} is corrupt") from e
        except OSError as e:
            logger.error("Cannot read storage file", extra={"path": str(path), "error": str(e)})
            raise StorageError(f"Cannot read {path.name}") from e
        check_shape(path, document, expect)
        return document

    def save(self, path: PathLike, data: Any) -> None:
        path = Path(path)
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            logger.error("Cannot write storage file", extra={"path": str(path), "error": str(e)})
            raise StorageError(f"Cannot write {path.name}") from e

    @contextmanager
    def update(self, path: PathLike, default: Any = _MISSING, expect: Optional[type] = None) -> Iterator[Any]:
        """Lock `path`, load it, yield the document, save it on clean exit.

        The yielded object must be mutated in place. Nothing is written if
        the block raises.
        """
        with self.locked(path):
            document = self.load(path, default, expect)
            yield document
            self.save(path, document)
