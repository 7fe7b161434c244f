"""
Performance Repository

Persistence for per-(student, topic) performance state and per-student
reward progress.

The engine never keeps state in module globals: the orchestrator loads a
record, computes on it, and saves it back through a repository. Work on
one (student, topic) key is serialised with `KeyedLocks`; different keys
proceed in parallel.
"""

import json
import logging
import threading
import weakref
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from adaptive_tutor.errors import RepositoryError
from adaptive_tutor.performance_state import StudentPerformanceState
from adaptive_tutor.rewards import LearnerProgress

logger = logging.getLogger(__name__)


class KeyLock:
    """A `threading.Lock` that can be weakly referenced."""

    __slots__ = ("_lock", "__weakref__")

    def __init__(self):
        self._lock = threading.Lock()

    def acquire(self, blocking: bool = True, timeout: float = -1) -> bool:
        return self._lock.acquire(blocking, timeout)

    def release(self) -> None:
        self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, *exc_info):
        self._lock.release()


class KeyedLocks:
    """
    One lock per key, created on first use.

    Entries are weak: a key's lock lives only while some caller holds it,
    so the map stays as small as the set of keys currently in use.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[Any, KeyLock]" = weakref.WeakValueDictionary()

    def lock_for(self, key: Any) -> KeyLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = KeyLock()
                self._locks[key] = lock
            return lock

    def __len__(self) -> int:
        return len(self._locks)


class PerformanceRepository(ABC):
    """Storage interface used by the session orchestrator."""

    @abstractmethod
    def load(self, student_id: str, topic: str) -> Optional[StudentPerformanceState]:
        """Return the stored state, or None if the pair has never answered."""

    @abstractmethod
    def save(self, student_id: str, topic: str, state: StudentPerformanceState) -> None:
        ...

    @abstractmethod
    def load_progress(self, student_id: str) -> Optional[LearnerProgress]:
        ...

    @abstractmethod
    def save_progress(self, student_id: str, progress: LearnerProgress) -> None:
        ...


class InMemoryPerformanceRepository(PerformanceRepository):
    """
    Dict-backed repository for tests and single-process use.

    Records are stored as serialized dicts so callers never share a live
    object with the store.
    """

    def __init__(self):
        self._states: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._progress: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def load(self, student_id: str, topic: str) -> Optional[StudentPerformanceState]:
        with self._lock:
            data = self._states.get((student_id, topic))
        return StudentPerformanceState.from_dict(data) if data else None

    def save(self, student_id: str, topic: str, state: StudentPerformanceState) -> None:
        with self._lock:
            self._states[(student_id, topic)] = state.to_dict()

    def load_progress(self, student_id: str) -> Optional[LearnerProgress]:
        with self._lock:
            data = self._progress.get(student_id)
        return LearnerProgress.from_dict(data) if data else None

    def save_progress(self, student_id: str, progress: LearnerProgress) -> None:
        with self._lock:
            self._progress[student_id] = progress.to_dict()


class SupabasePerformanceRepository(PerformanceRepository):
    """
    Supabase-backed repository.

    Tables:
        performance_states(user_id, topic, state jsonb-as-text, updated_at)
        learner_progress(student_id, progress jsonb-as-text, updated_at)

    Every failure is logged and re-raised as RepositoryError.
    """

    STATES_TABLE = "performance_states"
    PROGRESS_TABLE = "learner_progress"

    def __init__(self, supabase_client):
        """
        Args:
            supabase_client: Supabase client instance
        """
        self.supabase = supabase_client

    @classmethod
    def from_env(cls) -> "SupabasePerformanceRepository":
        from adaptive_tutor.supabase_client import get_supabase_client
        return cls(get_supabase_client())

    def load(self, student_id: str, topic: str) -> Optional[StudentPerformanceState]:
        try:
            result = self.supabase.table(self.STATES_TABLE) \
                .select('state') \
                .eq('user_id', student_id) \
                .eq('topic', topic) \
                .limit(1) \
                .execute()
        except Exception as e:
            logger.warning(f"⚠️ [PerformanceRepository] Error loading state for {student_id[:20]}/{topic}: {e}")
            raise RepositoryError(f"Could not load performance state for {student_id}/{topic}") from e

        if not result.data:
            return None
        return StudentPerformanceState.from_dict(self._decode(result.data[0].get('state')))

    def save(self, student_id: str, topic: str, state: StudentPerformanceState) -> None:
        row = {
            "user_id": student_id,
            "topic": topic,
            "state": json.dumps(state.to_dict()),
            "updated_at": datetime.now().isoformat(),
        }
        try:
            self.supabase.table(self.STATES_TABLE).upsert(row, on_conflict='user_id,topic').execute()
        except Exception as e:
            logger.warning(f"⚠️ [PerformanceRepository] Error saving state for {student_id[:20]}/{topic}: {e}")
            raise RepositoryError(f"Could not save performance state for {student_id}/{topic}") from e

    def load_progress(self, student_id: str) -> Optional[LearnerProgress]:
        try:
            result = self.supabase.table(self.PROGRESS_TABLE) \
                .select('progress') \
                .eq('student_id', student_id) \
                .limit(1) \
                .execute()
        except Exception as e:
            logger.warning(f"⚠️ [PerformanceRepository] Error loading progress for {student_id[:20]}: {e}")
            raise RepositoryError(f"Could not load progress for {student_id}") from e

        if not result.data:
            return None
        return LearnerProgress.from_dict(self._decode(result.data[0].get('progress')))

    def save_progress(self, student_id: str, progress: LearnerProgress) -> None:
        row = {
            "student_id": student_id,
            "progress": json.dumps(progress.to_dict()),
            "updated_at": datetime.now().isoformat(),
        }
        try:
            self.supabase.table(self.PROGRESS_TABLE).upsert(row, on_conflict='student_id').execute()
        except Exception as e:
            logger.warning(f"⚠️ [PerformanceRepository] Error saving progress for {student_id[:20]}: {e}")
            raise RepositoryError(f"Could not save progress for {student_id}") from e

    @staticmethod
    def _decode(raw: Any) -> Dict[str, Any]:
        # jsonb columns come back as dicts, text columns as strings
        if isinstance(raw, str):
            return json.loads(raw)
        return raw or {}
