"""
Bookmark store: questions the user flagged for later review.
"""
import json
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

from .models import Question


class KeyValueStore:
    """Persistence collaborator: string values under string keys."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError


class JsonFileStore(KeyValueStore):
    """Key-value store kept in a single JSON object on disk."""

    def __init__(self, file_path: str):
        self.file_path = Path(file_path)
        self.logger = logging.getLogger(__name__)

    def _read_all(self) -> Dict[str, str]:
        if not self.file_path.exists():
            return {}
        with open(self.file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Expected a JSON object in {self.file_path}")
        return data

    def get(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        try:
            data = self._read_all()
        except (OSError, ValueError) as e:
            self.logger.warning(f"Overwriting unreadable store {self.file_path}: {e}")
            data = {}
        data[key] = value

        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.file_path.with_suffix(self.file_path.suffix + '.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        tmp_path.replace(self.file_path)


class MemoryStore(KeyValueStore):
    """In-process key-value store."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value


class BookmarkStore:
    """Bookmarked questions keyed by question text, persisted on every change."""

    STORAGE_KEY = "bookmarkedQuestions"

    def __init__(self, store: KeyValueStore, key: str = STORAGE_KEY):
        self.store = store
        self.key = key
        self.logger = logging.getLogger(__name__)
        # Toggles may run in a worker thread while the event loop reads
        self._lock = threading.RLock()
        self._bookmarks: Dict[str, Question] = self._load()

    def _load(self) -> Dict[str, Question]:
        """Read persisted bookmarks; anything unreadable yields an empty list."""
        try:
            raw = self.store.get(self.key)
        except (OSError, ValueError) as e:
            self.logger.warning(f"Could not read bookmarks, starting empty: {e}")
            return {}

        if raw is None:
            return {}

        try:
            entries = json.loads(raw)
            if not isinstance(entries, list):
                raise ValueError("bookmark data is not a list")
            bookmarks = {}
            for entry in entries:
                question = Question.from_dict(entry)
                bookmarks[question.text] = question
        except (ValueError, KeyError, TypeError) as e:
            self.logger.warning(f"Discarding corrupt bookmark data: {e}")
            return {}

        self.logger.info(f"Loaded {len(bookmarks)} bookmarks")
        return bookmarks

    def _persist(self) -> None:
        payload = json.dumps([q.to_dict() for q in self._bookmarks.values()], ensure_ascii=False)
        try:
            self.store.set(self.key, payload)
        except OSError as e:
            self.logger.error(f"Failed to persist bookmarks: {e}")

    def add(self, question: Question) -> List[Question]:
        with self._lock:
            if question.text not in self._bookmarks:
                self._bookmarks[question.text] = question
                self._persist()
            return self.list()

    def remove(self, question: Question) -> List[Question]:
        with self._lock:
            if question.text in self._bookmarks:
                del self._bookmarks[question.text]
                self._persist()
            return self.list()

    def toggle(self, question: Question) -> List[Question]:
        """Remove the question if bookmarked, add it otherwise."""
        with self._lock:
            if question.text in self._bookmarks:
                return self.remove(question)
            return self.add(question)

    def contains(self, question: Question) -> bool:
        with self._lock:
            return question.text in self._bookmarks

    def list(self) -> List[Question]:
        with self._lock:
            return list(self._bookmarks.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._bookmarks)
