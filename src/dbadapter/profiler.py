"""
Query profiling.

A `Profiler` is a registry of `QueryProfile` records keyed by integer
handles. Each adapter owns its own profiler instance; there is no
process-wide registry.

    handle = profiler.query_start('select * from t')
    ...run the query...
    profiler.query_end(handle)   # -> ProfileStatus.STORED / IGNORED

Handles come from a monotonically increasing counter and are never reused,
even after a profile is evicted by a filter or discarded.
"""
import itertools
import logging
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from enum import Enum, IntFlag
from typing import Any

from dbadapter.exceptions import AlreadyEnded, ProfilerError, UnknownHandle
from dbadapter.sql import infer_query_type_keyword

logger = logging.getLogger(__name__)

__all__ = [
    'QueryType',
    'ProfileStatus',
    'QueryProfile',
    'Profiler',
]


class QueryType(IntFlag):
    """Kinds of profiled operations. Combine with ``|`` for filters.
    """
    CONNECT = 1
    QUERY = 2
    INSERT = 4
    UPDATE = 8
    DELETE = 16
    SELECT = 32
    TRANSACTION = 64

    @classmethod
    def infer(cls, sql: str) -> 'QueryType':
        """Classify a statement by its leading keyword.
        """
        return _KEYWORD_TYPES.get(infer_query_type_keyword(sql), cls.QUERY)


_KEYWORD_TYPES = {
    'insert': QueryType.INSERT,
    'update': QueryType.UPDATE,
    'delete': QueryType.DELETE,
    'select': QueryType.SELECT,
    }


class ProfileStatus(str, Enum):
    """Outcome of ending a profile.
    """
    STORED = 'stored'
    IGNORED = 'ignored'


class QueryProfile:
    """Timing record for one execution of one SQL statement.
    """

    def __init__(self, query: str, query_type: QueryType,
                 clock: Callable[[], float] = time.time) -> None:
        self.query = query
        self.query_type = QueryType(query_type)
        self._clock = clock
        self._params: dict[Any, Any] = {}
        self.started_at: float | None = None
        self.ended_at: float | None = None

    def __repr__(self) -> str:
        return (f'QueryProfile({self.query!r}, {self.query_type!r}, '
                f'elapsed={self.elapsed_secs})')

    def copy(self) -> 'QueryProfile':
        """Same text and type with fresh parameter and timing state.
        """
        return QueryProfile(self.query, self.query_type, clock=self._clock)

    @property
    def has_started(self) -> bool:
        return self.started_at is not None

    @property
    def has_ended(self) -> bool:
        return self.ended_at is not None

    def bind_param(self, param: Any, value: Any) -> None:
        if self.has_started:
            raise ProfilerError('Cannot bind parameters to a profile that has started')
        self._params[param] = value

    def bind_params(self, params: Mapping | Sequence | None) -> None:
        """Record the values bound for this execution.

        Sequences are keyed by 1-based position.
        """
        if not params:
            return
        if isinstance(params, Mapping):
            items = params.items()
        else:
            items = enumerate(params, start=1)
        for param, value in items:
            self.bind_param(param, value)

    @property
    def query_params(self) -> dict[Any, Any]:
        return dict(self._params)

    def start(self) -> None:
        self.started_at = self._clock()

    def end(self) -> None:
        if self.has_ended:
            raise AlreadyEnded('Query profile has already ended')
        if not self.has_started:
            raise ProfilerError('Query profile was never started')
        self.ended_at = self._clock()

    @property
    def elapsed_secs(self) -> float | None:
        """Seconds between start and end, or None while still running.
        """
        if not self.has_ended:
            return None
        return self.ended_at - self.started_at


class Profiler:
    """Registry of query profiles with elapsed-time and query-type filters.

    The profiler is disabled unless `enabled` is passed or `set_enabled()`
    is called. While disabled, `query_start()` allocates nothing and
    returns None.
    """

    def __init__(self, enabled: bool = False,
                 clock: Callable[[], float] = time.time) -> None:
        self._profiles: dict[int, QueryProfile] = {}
        self._handles = itertools.count()
        self._clock = clock
        self._enabled = bool(enabled)
        self._filter_elapsed_secs: float | None = None
        self._filter_types: QueryType | None = None

    def __len__(self) -> int:
        return len(self._profiles)

    def __contains__(self, handle: object) -> bool:
        return handle in self._profiles

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._profiles))

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        self._enabled = bool(value)

    def set_enabled(self, enable: bool) -> 'Profiler':
        self.enabled = enable
        return self

    @property
    def filter_elapsed_secs(self) -> float | None:
        return self._filter_elapsed_secs

    def set_filter_elapsed_secs(self, minimum_seconds: float | None = None) -> 'Profiler':
        """Keep only profiles that ran at least `minimum_seconds`.

        None keeps profiles regardless of elapsed time.
        """
        if minimum_seconds is not None and minimum_seconds < 0:
            raise ValueError('minimum_seconds must be non-negative')
        self._filter_elapsed_secs = minimum_seconds
        return self

    @property
    def filter_query_type(self) -> QueryType | None:
        return self._filter_types

    def set_filter_query_type(self, query_types: QueryType | int | None = None) -> 'Profiler':
        """Keep only profiles whose type is in the `query_types` bitmask.

        None keeps profiles regardless of type.
        """
        self._filter_types = None if query_types is None else QueryType(query_types)
        return self

    def clear(self) -> 'Profiler':
        """Drop every profile, finished or not. Settings are kept.
        """
        self._profiles.clear()
        return self

    def _allocate(self, profile: QueryProfile) -> int:
        handle = next(self._handles)
        self._profiles[handle] = profile
        return handle

    def query_start(self, query_text: str, query_type: QueryType | int | None = None,
                    params: Mapping | Sequence | None = None) -> int | None:
        """Start profiling a query and return its handle.

        Returns None without allocating anything when the profiler is
        disabled. The type is inferred from the SQL text when omitted.
        """
        if not self._enabled:
            return None
        if query_type is None:
            query_type = QueryType.infer(query_text)
        profile = QueryProfile(query_text, query_type, clock=self._clock)
        profile.bind_params(params)
        profile.start()
        return self._allocate(profile)

    def query_clone(self, handle: int, params: Mapping | Sequence | None = None) -> int | None:
        """Start a new profile copied from an existing one.

        Used when a statement is executed again after its previous profile
        ended, so every physical execution gets its own entry.
        """
        if not self._enabled:
            return None
        profile = self.get_query_profile(handle).copy()
        profile.bind_params(params)
        profile.start()
        return self._allocate(profile)

    def query_end(self, handle: int) -> ProfileStatus:
        """End a profile and apply the filters.

        Elapsed-time filtering runs first, then type filtering; a profile
        rejected by either is evicted and IGNORED is returned.
        While disabled nothing is touched and IGNORED is returned.
        """
        if not self._enabled:
            return ProfileStatus.IGNORED

        profile = self.get_query_profile(handle)

        if profile.has_ended:
            raise AlreadyEnded(f"Query with profiler handle '{handle}' has already ended.")

        profile.end()

        if self._filter_elapsed_secs is not None and profile.elapsed_secs < self._filter_elapsed_secs:
            logger.debug(f'Profile {handle} below {self._filter_elapsed_secs}s, ignored')
            del self._profiles[handle]
            return ProfileStatus.IGNORED

        if self._filter_types is not None and not (profile.query_type & self._filter_types):
            logger.debug(f'Profile {handle} type {profile.query_type!r} filtered, ignored')
            del self._profiles[handle]
            return ProfileStatus.IGNORED

        return ProfileStatus.STORED

    def discard(self, handle: int) -> None:
        """Remove a profile without ending it.
        """
        self.get_query_profile(handle)
        del self._profiles[handle]

    @contextmanager
    def profile(self, query_text: str, query_type: QueryType | int | None = None,
                params: Mapping | Sequence | None = None) -> Iterator[int | None]:
        """Profile the enclosed block. The profile is ended even on error.
        """
        handle = self.query_start(query_text, query_type, params)
        try:
            yield handle
        finally:
            if handle is not None and handle in self._profiles:
                self.query_end(handle)

    def get_query_profile(self, handle: int) -> QueryProfile:
        if handle not in self._profiles:
            raise UnknownHandle(f"Query handle '{handle}' not found in profiler log.")
        return self._profiles[handle]

    def _matching(self, query_type: QueryType | int | None,
                  show_unfinished: bool) -> Iterator[tuple[int, QueryProfile]]:
        for handle, profile in self._profiles.items():
            if query_type is not None and not (profile.query_type & query_type):
                continue
            if profile.has_ended or show_unfinished:
                yield handle, profile

    def get_query_profiles(self, query_type: QueryType | int | None = None,
                           show_unfinished: bool = False) -> dict[int, QueryProfile]:
        """Profiles indexed by handle, optionally restricted by type.

        Unfinished profiles are only included with `show_unfinished`.
        """
        return dict(self._matching(query_type, show_unfinished))

    def get_total_elapsed_secs(self, query_type: QueryType | int | None = None) -> float:
        return sum((p.elapsed_secs for _, p in self._matching(query_type, False)), 0.0)

    def get_total_num_queries(self, query_type: QueryType | int | None = None,
                              show_unfinished: bool = False) -> int:
        return sum(1 for _ in self._matching(query_type, show_unfinished))

    def get_last_query_profile(self) -> QueryProfile | None:
        """Most recently allocated profile, ended or not.
        """
        if not self._profiles:
            return None
        return self._profiles[next(reversed(self._profiles))]
