"""Key-value persistence for the question bank, statistics, history and settings.

Backends only need synchronous ``get``/``set`` by key. ``StatePersistence``
wraps a backend with the typed load/save helpers used by the engine; save
failures are logged and swallowed so the in-memory state stays authoritative.
"""

import logging
import os
from typing import Any, Dict, List, Protocol

import orjson
from pydantic import ValidationError

from ..errors import PersistenceError
from ..models import HistoryEntry, MasteryStats, Question

logger = logging.getLogger("quizbank")

QUESTIONS_KEY = "questions"
STATS_KEY = "questionStats"
HISTORY_KEY = "examHistory"
THRESHOLD_KEY = "consecutiveCorrectThreshold"
ALL_KEYS = (QUESTIONS_KEY, STATS_KEY, HISTORY_KEY, THRESHOLD_KEY)

class KeyValueStore(Protocol):
	def get(self, key: str) -> Any | None: ...

	def set(self, key: str, value: Any) -> None: ...

	def delete(self, key: str) -> None: ...

class MemoryKeyValueStore:
	def __init__(self) -> None:
		self.values: Dict[str, bytes] = {}

	def get(self, key: str) -> Any | None:
		raw = self.values.get(key)
		return orjson.loads(raw) if raw is not None else None

	def set(self, key: str, value: Any) -> None:
		try:
			self.values[key] = orjson.dumps(value)
		except TypeError as e:
			raise PersistenceError(f"cannot serialize {key}: {e}") from e

	def delete(self, key: str) -> None:
		self.values.pop(key, None)

class JsonFileKeyValueStore:
	"""One ``<key>.json`` file per key inside ``data_dir``."""

	def __init__(self, data_dir: str) -> None:
		self.data_dir = os.path.abspath(data_dir)

	def _path(self, key: str) -> str:
		return os.path.join(self.data_dir, f"{key}.json")

	def get(self, key: str) -> Any | None:
		path = self._path(key)
		if not os.path.exists(path):
			return None
		with open(path, "rb") as f:
			return orjson.loads(f.read())

	def set(self, key: str, value: Any) -> None:
		try:
			payload = orjson.dumps(value, option=orjson.OPT_INDENT_2)
			os.makedirs(self.data_dir, exist_ok=True)
			tmp_path = self._path(key) + ".tmp"
			with open(tmp_path, "wb") as f:
				f.write(payload)
			os.replace(tmp_path, self._path(key))
		except (TypeError, OSError) as e:
			raise PersistenceError(f"cannot write {key}: {e}") from e

	def delete(self, key: str) -> None:
		try:
			os.remove(self._path(key))
		except FileNotFoundError:
			pass
		except OSError as e:
			raise PersistenceError(f"cannot delete {key}: {e}") from e

class StatePersistence:
	def __init__(self, backend: KeyValueStore) -> None:
		self.backend = backend

	def _load(self, key: str, default: Any) -> Any:
		try:
			value = self.backend.get(key)
		except (OSError, orjson.JSONDecodeError):
			logger.exception({"event": "persistence_read_failed", "key": key})
			return default
		return default if value is None else value

	def _save(self, key: str, value: Any) -> bool:
		try:
			self.backend.set(key, value)
		except PersistenceError:
			logger.exception({"event": "persistence_write_failed", "key": key})
			return False
		logger.debug({"event": "persisted", "key": key})
		return True

	def load_questions(self) -> List[Question]:
		raw = self._load(QUESTIONS_KEY, [])
		try:
			return [Question.model_validate(item) for item in raw]
		except (ValidationError, TypeError):
			logger.exception({"event": "stored_questions_invalid"})
			return []

	def save_questions(self, questions: List[Question]) -> bool:
		return self._save(QUESTIONS_KEY, [q.model_dump(mode="json") for q in questions])

	def load_stats(self) -> Dict[str, MasteryStats]:
		raw = self._load(STATS_KEY, {})
		try:
			return {qid: MasteryStats.model_validate(stats) for qid, stats in raw.items()}
		except (ValidationError, AttributeError):
			logger.exception({"event": "stored_stats_invalid"})
			return {}

	def save_stats(self, stats: Dict[str, MasteryStats]) -> bool:
		return self._save(STATS_KEY, {qid: s.model_dump() for qid, s in stats.items()})

	def load_history(self) -> List[HistoryEntry]:
		raw = self._load(HISTORY_KEY, [])
		try:
			return [HistoryEntry.model_validate(item) for item in raw]
		except (ValidationError, TypeError):
			logger.exception({"event": "stored_history_invalid"})
			return []

	def save_history(self, history: List[HistoryEntry]) -> bool:
		return self._save(HISTORY_KEY, [entry.model_dump(mode="json") for entry in history])

	def load_threshold(self, default: int) -> int:
		value = self._load(THRESHOLD_KEY, default)
		if isinstance(value, int) and not isinstance(value, bool) and value >= 1:
			return value
		return default

	def save_threshold(self, threshold: int) -> bool:
		return self._save(THRESHOLD_KEY, threshold)

	def clear(self) -> None:
		for key in ALL_KEYS:
			try:
				self.backend.delete(key)
			except PersistenceError:
				logger.exception({"event": "persistence_delete_failed", "key": key})
