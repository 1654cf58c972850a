# app/services/result_store.py
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import TypeAdapter, ValidationError

from app.models.plant_analysis import AnalysisResult
from app.services.exceptions import PersistenceError

logger = logging.getLogger(__name__)

STORAGE_KEYS = {
    "ANALYSIS_RESULTS": "plant_analyzer_analysis_results",
}

DEFAULT_MAX_RESULTS = 20

RESULT_LIST = TypeAdapter(List[AnalysisResult])


class BlobStore(Protocol):
    """Key/value store for serialized blobs. ``set`` raises ``PersistenceError`` when full."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


def _check_capacity(capacity: Optional[int], used: int, key: str) -> None:
    if capacity is not None and used > capacity:
        raise PersistenceError(f"Storage quota exceeded writing '{key}' ({used} > {capacity} bytes)")


class MemoryBlobStore:
    """In-process blob store with an optional byte capacity across all keys."""

    def __init__(self, capacity_bytes: Optional[int] = None):
        self.capacity_bytes = capacity_bytes
        self._blobs: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._blobs.get(key)

    def set(self, key: str, value: str) -> None:
        others = sum(len(v.encode("utf-8")) for k, v in self._blobs.items() if k != key)
        _check_capacity(self.capacity_bytes, others + len(value.encode("utf-8")), key)
        self._blobs[key] = value

    def delete(self, key: str) -> None:
        self._blobs.pop(key, None)


class FileBlobStore:
    """Blob store keeping one JSON file per key inside ``directory``."""

    def __init__(self, directory: str, capacity_bytes: Optional[int] = None):
        self.directory = Path(directory)
        self.capacity_bytes = capacity_bytes

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        encoded = value.encode("utf-8")
        target = self._path(key)
        if self.capacity_bytes is not None and self.directory.is_dir():
            others = sum(
                p.stat().st_size for p in self.directory.glob("*.json") if p != target
            )
            _check_capacity(self.capacity_bytes, others + len(encoded), key)

        tmp_path = target.with_suffix(".json.tmp")
        try:
            os.makedirs(self.directory, exist_ok=True)
            tmp_path.write_bytes(encoded)
            os.replace(tmp_path, target)
        except OSError as e:
            raise PersistenceError(f"Could not write '{key}' to {self.directory}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass


class BoundedResultStore:
    """
    Ordered analysis history holding at most ``max_results`` entries.

    Oldest entries are evicted first. Every mutation is written back to the
    blob store; when a write fails the history is cut to the newest half and
    then to the newest entry alone, so the latest analysis survives even when
    older ones have to go.
    """

    def __init__(self, backend: BlobStore, max_results: int = DEFAULT_MAX_RESULTS,
                 key: str = STORAGE_KEYS["ANALYSIS_RESULTS"]):
        if max_results < 1:
            raise ValueError("max_results must be at least 1")
        self.backend = backend
        self.max_results = max_results
        self.key = key
        self._results: List[AnalysisResult] = []

    def __len__(self) -> int:
        return len(self._results)

    def load(self) -> List[AnalysisResult]:
        """Replace the in-memory history with the persisted snapshot."""
        try:
            blob = self.backend.get(self.key)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read stored analysis results, starting empty: {e}")
            blob = None

        if not blob:
            self._results = []
            return self.load_all()

        try:
            results = RESULT_LIST.validate_json(blob)
        except (ValidationError, ValueError) as e:
            logger.warning(f"Stored analysis results are corrupt, starting with an empty history: {e}")
            results = []

        self._results = results[-self.max_results:]
        return self.load_all()

    def load_all(self) -> List[AnalysisResult]:
        return list(self._results)

    def get(self, result_id: str) -> Optional[AnalysisResult]:
        for result in self._results:
            if result.id == result_id:
                return result
        return None

    def for_plant(self, plant_id: str) -> List[AnalysisResult]:
        return [r for r in self._results if r.plant_id == plant_id]

    def append(self, result: AnalysisResult) -> List[AnalysisResult]:
        results = self._results + [result]
        if len(results) > self.max_results:
            evicted = len(results) - self.max_results
            logger.debug(f"Evicting {evicted} oldest analysis result(s)")
            results = results[-self.max_results:]
        self._save(results)
        return self.load_all()

    def remove(self, result_id: str) -> bool:
        remaining = [r for r in self._results if r.id != result_id]
        if len(remaining) == len(self._results):
            return False
        self._save(remaining)
        return True

    def clear(self) -> None:
        self._results = []
        try:
            self.backend.delete(self.key)
        except OSError as e:
            logger.warning(f"Could not delete stored analysis results: {e}")

    def _save(self, results: List[AnalysisResult]) -> None:
        attempts = [results]
        half = max(1, self.max_results // 2)
        if len(results) > half:
            attempts.append(results[-half:])
        if len(attempts[-1]) > 1:
            attempts.append(results[-1:])

        for candidate in attempts:
            try:
                self._write(candidate)
            except (PersistenceError, OSError) as e:
                logger.warning(f"Persisting {len(candidate)} analysis result(s) failed: {e}")
                continue
            if len(candidate) < len(results):
                logger.warning(f"Storage is full, kept only the {len(candidate)} most recent analysis result(s)")
            self._results = candidate
            return

        logger.error("Could not persist analysis results; history is kept in memory only")
        self._results = attempts[-1]

    def _write(self, results: List[AnalysisResult]) -> None:
        self.backend.set(self.key, RESULT_LIST.dump_json(results).decode("utf-8"))
