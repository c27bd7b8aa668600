import asyncio
import logging
import os
from asyncio import TaskGroup
from pathlib import Path
from typing import Iterable, Sequence

from .errors import ConfigurationError, FileAccessError
from .report.grouping import CompareSummary, FingerprintResult, PathReport
from .report.sink import ReportSink
from .utils.processor import Processor
from .utils.throttler import Throttler
from .utils.walker import WalkPolicy, walk_files

logger = logging.getLogger(__name__)


def validate_roots(paths: Iterable[str | os.PathLike]) -> list[Path]:
    """Turn user supplied root paths into absolute, normalised directory paths.

    Symlinks are not resolved. A root listed more than once is kept at its
    first position only.

    Raises:
        ConfigurationError: No root was given, or a root does not exist or is
                            not a directory
    """
    roots: list[Path] = []
    for path in paths:
        root = Path(path)
        root = root if root.is_absolute() else Path.cwd() / root
        root = Path(os.path.normpath(str(root)))

        if not root.is_dir():
            raise ConfigurationError(f"{path} does not exist or is not a directory")

        if root in roots:
            logger.warning(f"Ignoring repeated root: {root}")
            continue
        roots.append(root)

    if not roots:
        raise ConfigurationError("no search paths specified")

    return roots


class Comparator:
    """Checks that every relative path has the same content under all roots.

    Each root is walked in the given order. The first time a relative path is
    met it is claimed, and it is fingerprinted under every root at once,
    including roots whose walk has not started yet. When all fingerprints for
    the path are in, the roots are grouped by fingerprint and the resulting
    PathReport goes to the sink. A path claimed once is never checked again.

    path_concurrency bounds how many paths may be in flight together. With the
    default of 1 the walk waits for each path to be fully resolved before
    moving on, and reports arrive in traversal order.
    """

    def __init__(self, processor: Processor, roots: Sequence[str | os.PathLike], *,
                 exclude: Iterable[str] = (), path_concurrency: int = 1):
        if path_concurrency < 1:
            raise ConfigurationError(f"path concurrency must be positive: {path_concurrency}")

        self._processor = processor
        self._roots = validate_roots(roots)
        self._policy = WalkPolicy(tuple(exclude))
        self._path_concurrency = path_concurrency

    @property
    def roots(self) -> list[Path]:
        return list(self._roots)

    def compare(self, sink: ReportSink) -> CompareSummary:
        return asyncio.run(self.run(sink))

    async def run(self, sink: ReportSink) -> CompareSummary:
        summary = CompareSummary()
        claimed: set[Path] = set()

        async with TaskGroup() as tg:
            throttler = Throttler(tg, self._path_concurrency)

            for root in self._roots:
                logger.info(f"Walking {root}")
                for context in walk_files(root, self._policy):
                    relative_path = context.relative_path
                    assert relative_path is not None, "File context must have a relative path"

                    # Check and claim happen without an intervening await
                    if relative_path in claimed:
                        continue
                    claimed.add(relative_path)

                    await throttler.schedule(self._check_path(relative_path, sink, summary))

        logger.info(
            f"Checked {summary.paths_checked} paths across {len(self._roots)} roots: "
            f"{summary.mismatches} mismatched, {summary.failures} unreadable")
        return summary

    async def _check_path(self, relative_path: Path, sink: ReportSink, summary: CompareSummary):
        async with TaskGroup() as tg:
            tasks = [tg.create_task(self._fingerprint(root, relative_path)) for root in self._roots]

        report = PathReport.from_results(relative_path, (task.result() for task in tasks))
        summary.record(report)
        sink.emit(report)
        return report

    async def _fingerprint(self, root: Path, relative_path: Path) -> FingerprintResult:
        try:
            return FingerprintResult(root, fingerprint=await self._processor.fingerprint(root, relative_path))
        except FileAccessError as e:
            return FingerprintResult(root, error=e)
