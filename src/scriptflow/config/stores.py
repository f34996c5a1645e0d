"""
JSON-backed state stores.

A store is opened once, read and mutated in memory through ``get``/``set`` and
written back only when ``flush`` is called.
"""

import json
import logging
from pathlib import Path
from typing import Any, Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..contracts.models import GlobalState, ProjectState
from ..errors import StoreError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class JsonStore(Generic[M]):
    """A single JSON document validated by a pydantic model."""

    def __init__(self, path: Path, model: Type[M]):
        self.path = Path(path)
        self.model = model
        self._data: Optional[M] = None

    def open(self) -> "JsonStore[M]":
        logger.debug("Loading state from: %s", self.path)
        if not self.path.exists():
            logger.debug("State file not found, using defaults")
            self._data = self.model()
            return self
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
            self._data = self.model.model_validate(raw)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise StoreError(f"Could not read state file {self.path}: {e}") from e
        return self

    @property
    def data(self) -> M:
        if self._data is None:
            self.open()
        return self._data

    def get(self, key: str) -> Any:
        return getattr(self.data, key)

    def set(self, key: str, value: Any) -> None:
        setattr(self.data, key, value)

    def flush(self) -> None:
        logger.debug("Writing state to: %s", self.path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = self.data.model_dump(mode="json", by_alias=True)
            self.path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        except OSError as e:
            raise StoreError(f"Could not write state file {self.path}: {e}") from e


def open_global_store(path: Path) -> JsonStore[GlobalState]:
    return JsonStore(path, GlobalState).open()


def open_project_store(path: Path) -> JsonStore[ProjectState]:
    return JsonStore(path, ProjectState).open()
