"""Shared test utilities for watches tests."""
import hashlib
from pathlib import Path

from watches.report.sink import ReportSink


def make_tree(base: Path, files: dict[str, bytes]) -> Path:
    """Create base and the given files under it, creating parent directories as needed."""
    base.mkdir(parents=True, exist_ok=True)
    for relative, content in files.items():
        path = base / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    return base


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class RecordingSink(ReportSink):
    """Sink that keeps every report it receives."""

    def __init__(self):
        self.reports = []
        self.closed = False

    def emit(self, report):
        self.reports.append(report)

    def close(self):
        self.closed = True

    def by_path(self):
        return {report.relative_path: report for report in self.reports}
