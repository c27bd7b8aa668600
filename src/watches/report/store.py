"""Machine-readable export of comparison reports.

The export is a plain msgpack stream with one record per notable path
(mismatched, unresolved, or with at least one unreadable root):

    [path_components, [[fingerprint, [root, ...]], ...], [[root, reason], ...]]

Path components and roots are stored as raw file system bytes, so names that
are not valid UTF-8 survive the round trip. Clean matches are not written.
"""

import os
from pathlib import Path
from typing import Iterator

import msgpack

from ..errors import FileAccessError
from .grouping import FingerprintResult, PathReport
from .sink import ReportSink


def encode_report(report: PathReport) -> list:
    return [
        [os.fsencode(part) for part in report.relative_path.parts],
        [[fingerprint, [os.fsencode(root) for root in roots]] for fingerprint, roots in report.groups.items()],
        [[os.fsencode(failure.root), failure.error.reason] for failure in report.failures],
    ]


def decode_report(record: list) -> PathReport:
    path_components, groups, failures = record
    relative_path = Path(*(os.fsdecode(part) for part in path_components))
    results = []
    for root, reason in failures:
        root = Path(os.fsdecode(root))
        results.append(FingerprintResult(root, error=FileAccessError(root, relative_path, reason)))
    return PathReport(
        relative_path,
        {fingerprint: [Path(os.fsdecode(root)) for root in roots] for fingerprint, roots in groups},
        results)


class ReportWriter(ReportSink):
    """Sink that appends notable reports to a msgpack export file."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._file = open(self.path, 'wb')
        # Failure reasons may quote an undecodable path
        self._packer = msgpack.Packer(unicode_errors='surrogateescape')

    def emit(self, report: PathReport) -> None:
        if not report.is_notable:
            return
        self._file.write(self._packer.pack(encode_report(report)))

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()


def read_report(path: str | os.PathLike) -> Iterator[PathReport]:
    """Yield the reports stored in an export file, in the order they were written."""
    with open(path, 'rb') as f:
        for record in msgpack.Unpacker(f, use_list=True, raw=False, unicode_errors='surrogateescape'):
            yield decode_report(record)
