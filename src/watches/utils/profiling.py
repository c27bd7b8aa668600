"""Opt-in cProfile capture for watches.

Setting WATCHES_PROFILE to a directory makes a run write its profiles into a
session subdirectory named {timestamp_ms}_{main_pid}:

    compare_{pid}_{seq}.prof   the whole command, walk and report included
    fingerprint_{pid}.prof     hashing time of one pool worker, accumulated
                               over every file that worker fingerprinted

A worker profile is rewritten after each file, so it is complete even though
pool workers are never shut down cleanly.
"""
import cProfile
import functools
import itertools
import logging
import os
import time
from pathlib import Path
from typing import Callable, TypeVar, ParamSpec

P = ParamSpec('P')
T = TypeVar('T')

PROFILE_ENV = 'WATCHES_PROFILE'
SESSION_ENV = '_WATCHES_PROFILE_SESSION_DIR'

logger = logging.getLogger(__name__)

_sequence = itertools.count()

# (pid, profiler) of the current worker process
_worker_profiler: tuple[int, cProfile.Profile] | None = None


def get_profile_dir() -> Path | None:
    """Return the session directory for profile dumps, or None when profiling is off."""
    base = os.environ.get(PROFILE_ENV)
    if not base:
        return None
    return Path(base) / _session_name()


def _session_name() -> str:
    # Workers inherit the name chosen by the main process through the environment
    name = os.environ.get(SESSION_ENV)
    if name:
        return name
    return f"{int(time.time() * 1000)}_{os.getpid()}"


def generate_profile_filename(prefix: str = "profile") -> str:
    """Build a filename unique within the session, e.g. "compare_54398_0.prof"."""
    return f"{prefix}_{os.getpid()}_{next(_sequence)}.prof"


def profile_function(func: Callable[P, T], prefix: str = "profile") -> Callable[P, T]:
    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        profile_dir = get_profile_dir()
        if profile_dir is None:
            return func(*args, **kwargs)

        profile_dir.mkdir(parents=True, exist_ok=True)
        profile_file = profile_dir / generate_profile_filename(prefix)
        profiler = cProfile.Profile()
        try:
            profiler.enable()
            return func(*args, **kwargs)
        finally:
            profiler.disable()
            profiler.dump_stats(str(profile_file))
            logger.info(f"Wrote profile {profile_file}")

    return wrapper


def profile_main(func: Callable[P, T]) -> Callable[P, T]:
    """Profile a whole comparison run and publish the session name to the hashing workers."""
    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        if os.environ.get(PROFILE_ENV):
            os.environ[SESSION_ENV] = _session_name()
        return profile_function(func, prefix="compare")(*args, **kwargs)

    return wrapper


def _current_worker_profiler(profile_dir: Path) -> cProfile.Profile:
    global _worker_profiler

    pid = os.getpid()
    # Profiler state is per process; a forked child starts fresh
    if _worker_profiler is None or _worker_profiler[0] != pid:
        profile_dir.mkdir(parents=True, exist_ok=True)
        _worker_profiler = (pid, cProfile.Profile())
    return _worker_profiler[1]


def profile_worker(func: Callable[P, T]) -> Callable[P, T]:
    """Accumulate the hashing time of func into one profile per worker process."""
    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        profile_dir = get_profile_dir()
        if profile_dir is None:
            return func(*args, **kwargs)

        profiler = _current_worker_profiler(profile_dir)
        try:
            profiler.enable()
            return func(*args, **kwargs)
        finally:
            profiler.disable()
            profiler.dump_stats(str(profile_dir / f"fingerprint_{os.getpid()}.prof"))

    return wrapper
