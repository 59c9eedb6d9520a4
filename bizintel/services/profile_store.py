"""Profile store collaborator.

The pipeline talks to storage only through `ProfileStore`: read once, then
one create or one update per sync. Two small implementations ship for the
CLI and tests; production stores live outside this package.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, runtime_checkable


def _json_default(obj: Any) -> Any:
    """Handle non-serializable objects for JSON encoding."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if hasattr(obj, "value"):
        return obj.value
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


@runtime_checkable
class ProfileStore(Protocol):
    """Get / create / update a stored profile by owner key."""

    def get_profile(self, owner_id: str) -> Optional[Dict[str, Any]]:
        ...

    def create_profile(self, owner_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def update_profile(self, owner_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        ...


class InMemoryProfileStore:
    """Dict-backed store. Counts writes so callers can check read-once/write-once."""

    def __init__(self, profiles: Optional[Dict[str, Dict[str, Any]]] = None):
        self.profiles: Dict[str, Dict[str, Any]] = dict(profiles or {})
        self.reads = 0
        self.writes = 0

    def get_profile(self, owner_id: str) -> Optional[Dict[str, Any]]:
        self.reads += 1
        profile = self.profiles.get(owner_id)
        return dict(profile) if profile is not None else None

    def create_profile(self, owner_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self.writes += 1
        self.profiles[owner_id] = dict(data)
        return dict(data)

    def update_profile(self, owner_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        if owner_id not in self.profiles:
            raise KeyError(f"Profile not found for owner {owner_id}")
        self.writes += 1
        self.profiles[owner_id] = {**self.profiles[owner_id], **partial}
        return dict(self.profiles[owner_id])


class JsonFileProfileStore:
    """
    One profile per JSON file, used by the CLI's --merge-into.

    The owner id is only used as the record's key inside the document.
    """

    def __init__(self, path):
        self.path = Path(path)

    def get_profile(self, owner_id: str) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        return data or None

    def _write(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=_json_default)
        return data

    def create_profile(self, owner_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._write({**data, "owner_id": owner_id})

    def update_profile(self, owner_id: str, partial: Dict[str, Any]) -> Dict[str, Any]:
        existing = self.get_profile(owner_id) or {}
        return self._write({**existing, **partial, "owner_id": owner_id})
