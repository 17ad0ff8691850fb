"""Artifact jar sizes from the local Maven repository, with a shared in-memory cache."""

from __future__ import annotations

import concurrent.futures
import logging
import os
import stat
import threading
from collections.abc import Callable, Iterable
from pathlib import Path

from maven_assist.models import GA, GAV, RawDependencyNode

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


def default_workers() -> int:
    """Half the available CPUs, never fewer than two."""
    return max(2, (os.cpu_count() or 2) // 2)


def artifact_path(local_repo: Path, gav: GAV, extension: str = "jar") -> Path:
    """Layout used by the local repository: `g/r/o/u/p/artifact/version/artifact-version.jar`."""
    return local_repo.joinpath(
        *gav.group_id.split("."),
        gav.artifact_id,
        gav.version,
        f"{gav.artifact_id}-{gav.version}.{extension}",
    )


def file_size(path: Path) -> int:
    """Size of a regular file in bytes; 0 when it is missing or unreadable."""
    try:
        st = path.stat()
    except FileNotFoundError:
        return 0
    except OSError as exc:
        logger.warning("Cannot stat %s: %s", path, exc)
        return 0
    return st.st_size if stat.S_ISREG(st.st_mode) else 0


def collect_sized_artifacts(root: RawDependencyNode, gas: Iterable[GA]) -> set[GAV]:
    """Coordinates of the raw graph whose GA made it onto the classpath."""
    wanted = set(gas)
    found: set[GAV] = set()
    stack = [root]
    while stack:
        node = stack.pop()
        if node.artifact is not None and node.artifact.ga in wanted:
            found.add(node.artifact)
        stack.extend(node.children)
    return found


class SizeOracle:
    """Resolve coordinates to jar sizes, memoised by jar path.

    The cache is shared by every request of the process. Entries are only
    ever inserted if absent, so concurrent workers never overwrite each other.
    """

    def __init__(
        self,
        local_repo: Path,
        *,
        workers: int | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        lookup: Callable[[Path], int] = file_size,
    ) -> None:
        self.local_repo = Path(local_repo)
        self.timeout = timeout
        self.workers = workers or default_workers()
        self._lookup = lookup
        self._cache: dict[Path, int] = {}
        self._lock = threading.Lock()
        self._executor: concurrent.futures.ThreadPoolExecutor | None = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def path_for(self, gav: GAV) -> Path:
        return artifact_path(self.local_repo, gav)

    def cached(self, gav: GAV) -> int | None:
        with self._lock:
            return self._cache.get(self.path_for(gav))

    def _store(self, path: Path, size: int) -> int:
        with self._lock:
            return self._cache.setdefault(path, size)

    def size_of(self, gav: GAV) -> int:
        """Jar size in bytes, computed synchronously on a cache miss."""
        path = self.path_for(gav)
        with self._lock:
            cached = self._cache.get(path)
        if cached is not None:
            return cached
        return self._store(path, self._lookup(path))

    def _ensure_executor(self) -> concurrent.futures.ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = concurrent.futures.ThreadPoolExecutor(
                    max_workers=self.workers, thread_name_prefix="jar-size"
                )
            return self._executor

    def preload_parallel(self, gavs: Iterable[GAV]) -> int:
        """Populate the cache for every uncached coordinate using the worker pool.

        Each wait is bounded by `timeout`, counted from when that wait starts.
        A lookup that misses it is abandoned and logged; its size stays
        uncached so the next `size_of` falls back to a synchronous lookup.

        Returns:
            Number of sizes added to the cache.
        """
        paths = {self.path_for(gav) for gav in gavs}
        with self._lock:
            pending = sorted(p for p in paths if p not in self._cache)
        if not pending:
            return 0

        executor = self._ensure_executor()
        submitted = [(path, executor.submit(self._lookup, path)) for path in pending]

        loaded = 0
        for path, future in submitted:
            try:
                size = future.result(timeout=self.timeout)
            except concurrent.futures.TimeoutError:
                future.cancel()
                logger.warning("Jar size lookup timed out after %.1fs: %s", self.timeout, path)
                continue
            except Exception as exc:  # noqa: BLE001 - sizes are advisory
                logger.warning("Jar size lookup failed for %s: %s", path, exc)
                continue
            self._store(path, size)
            loaded += 1

        logger.debug("Preloaded %d/%d jar sizes", loaded, len(pending))
        return loaded

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker pool; queued lookups are cancelled."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait, cancel_futures=True)
