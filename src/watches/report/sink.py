"""Consumers of per-path comparison reports."""

import logging
from abc import ABC, abstractmethod

from .grouping import PathReport

logger = logging.getLogger(__name__)


class ReportSink(ABC):
    """Receives one PathReport for every relative path the comparator checked."""

    @abstractmethod
    def emit(self, report: PathReport) -> None:
        ...

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def format_groups(report: PathReport) -> str:
    """Render the fingerprint groups as "fp1: rootA, rootC; fp2: rootB"."""
    return "; ".join(
        f"{fingerprint}: {', '.join(str(root) for root in roots)}"
        for fingerprint, roots in report.groups.items())


class LoggingReportSink(ReportSink):
    """Renders reports as log lines.

    Unreadable files and mismatches are warnings; matching paths are only
    logged at debug level.
    """

    def __init__(self, log: logging.Logger | None = None):
        self._log = log if log is not None else logger

    def emit(self, report: PathReport) -> None:
        for failure in report.failures:
            error = failure.error
            self._log.warning(f"Unable to fingerprint {error.path}: {error.reason}")

        if report.is_mismatch:
            self._log.warning(f"Mismatch {report.relative_path}: {format_groups(report)}")
        elif report.is_unresolved:
            self._log.warning(f"No root could fingerprint {report.relative_path}")
        else:
            self._log.debug(f"Match {report.relative_path}: {format_groups(report)}")


class TeeSink(ReportSink):
    """Forwards every report to each of the wrapped sinks in order."""

    def __init__(self, *sinks: ReportSink):
        self._sinks = sinks

    def emit(self, report: PathReport) -> None:
        for sink in self._sinks:
            sink.emit(report)

    def close(self) -> None:
        for sink in self._sinks:
            sink.close()
