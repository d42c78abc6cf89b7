"""Local persistence of past listing generations."""

import json
import os
import time
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from .images import ImageFile
from .models import HistoryItem, ListingResult, check_style

HISTORY_KEY = "sellitfast_history"


class KeyValueStore(Protocol):
    """The small get/set/remove surface the history needs from its storage."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store; contents are lost when the process exits."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStore:
    """String values kept in one JSON object file; every write rewrites the file."""

    def __init__(self, path):
        self.path = Path(path)

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            print(f"[history] Warning: unreadable store {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            print(f"[history] Warning: store {self.path} is not a JSON object; ignoring it.")
            return {}
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # A failed write leaves the previous file in place
        tmp = self.path.with_name(self.path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        os.replace(tmp, self.path)

    def get(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)


def load_items(raw: Optional[str]) -> List[HistoryItem]:
    """Deserialize the stored array; anything malformed counts as no history."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError(f"expected a list, got {type(data).__name__}")
        return [HistoryItem.from_dict(item) for item in data]
    except (AttributeError, KeyError, OverflowError, TypeError, ValueError) as e:
        print(f"[history] Ignoring corrupt history: {e}")
        return []


def dump_items(items: List[HistoryItem]) -> str:
    return json.dumps([item.to_dict() for item in items], ensure_ascii=False)


class HistoryStore:
    """Newest-first list of past generations, persisted under one key."""

    def __init__(self, store: KeyValueStore, key: str = HISTORY_KEY):
        self.store = store
        self.key = key
        # Read once; afterwards the in-memory list is the source of truth
        self._items: List[HistoryItem] = load_items(store.get(key))
        print(f"[history] Loaded {len(self._items)} item(s) from '{key}'")

    @property
    def items(self) -> List[HistoryItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def get(self, item_id: str) -> Optional[HistoryItem]:
        return next((item for item in self._items if item.id == item_id), None)

    def append(self, item: HistoryItem) -> None:
        self._items.insert(0, item)
        self._persist()

    def record(
        self,
        image: ImageFile,
        result: ListingResult,
        style: str,
        modal_price: Optional[int] = None,
        now: Optional[int] = None,
    ) -> HistoryItem:
        """Create a history item for a fresh result and prepend it."""
        timestamp = int(time.time() * 1000) if now is None else now
        # ids must stay unique for delete(); two results in the same millisecond get bumped
        while self.get(str(timestamp)) is not None:
            timestamp += 1
        item = HistoryItem(
            id=str(timestamp),
            timestamp=timestamp,
            thumbnail=image.base64_data,
            result=result,
            style=check_style(style),
            modal_price=modal_price,
        )
        self.append(item)
        return item

    def delete(self, item_id: str) -> None:
        remaining = [item for item in self._items if item.id != item_id]
        if len(remaining) == len(self._items):
            return
        self._items = remaining
        self._persist()

    def clear(self) -> None:
        self._items = []
        self.store.remove(self.key)
        print(f"[history] Cleared '{self.key}'")

    def _persist(self) -> None:
        self.store.set(self.key, dump_items(self._items))
