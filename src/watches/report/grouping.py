"""Per-path grouping of fingerprint results."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from ..errors import FileAccessError


@dataclass(frozen=True)
class FingerprintResult:
    """Outcome of fingerprinting one relative path under one root.

    Exactly one of fingerprint and error is set.
    """
    root: Path
    fingerprint: str | None = None
    error: FileAccessError | None = None

    def __post_init__(self):
        if (self.fingerprint is None) == (self.error is None):
            raise ValueError("exactly one of fingerprint and error must be given")

    @property
    def ok(self) -> bool:
        return self.error is None


class PathReport:
    """Roots grouped by the fingerprint they produced for one relative path.

    Attributes:
        relative_path: The path, relative to every root, that was compared
        groups: Fingerprint to roots sharing it. Keys appear in the order their
                first root appears in the root list, and roots keep that order too.
        failures: Results of roots that could not produce a fingerprint. They are
                  not part of any group.
    """

    def __init__(self, relative_path: Path, groups: dict[str, list[Path]] | None = None,
                 failures: list[FingerprintResult] | None = None):
        self.relative_path = relative_path
        self.groups: dict[str, list[Path]] = groups or {}
        self.failures: list[FingerprintResult] = failures or []

    @classmethod
    def from_results(cls, relative_path: Path, results: Iterable[FingerprintResult]) -> "PathReport":
        report = cls(relative_path)
        for result in results:
            if result.ok:
                report.groups.setdefault(result.fingerprint, []).append(result.root)
            else:
                report.failures.append(result)
        return report

    @property
    def is_mismatch(self) -> bool:
        return len(self.groups) > 1

    @property
    def is_unresolved(self) -> bool:
        """True when no root produced a fingerprint."""
        return not self.groups

    @property
    def is_notable(self) -> bool:
        """True when the report carries anything beyond a clean match."""
        return self.is_mismatch or bool(self.failures)

    def __eq__(self, other):
        if not isinstance(other, PathReport):
            return NotImplemented
        return (self.relative_path == other.relative_path
                and self.groups == other.groups
                and [(f.root, str(f.error)) for f in self.failures]
                == [(f.root, str(f.error)) for f in other.failures])

    def __repr__(self):
        return f"PathReport({self.relative_path!r}, groups={self.groups!r}, failures={len(self.failures)})"


@dataclass
class CompareSummary:
    """Counters accumulated over one comparison run."""
    paths_checked: int = 0
    mismatches: int = 0
    failures: int = 0
    unresolved: int = 0
    mismatched_paths: list[Path] = field(default_factory=list)

    def record(self, report: PathReport):
        self.paths_checked += 1
        self.failures += len(report.failures)
        if report.is_mismatch:
            self.mismatches += 1
            self.mismatched_paths.append(report.relative_path)
        if report.is_unresolved:
            self.unresolved += 1

    @property
    def clean(self) -> bool:
        return self.mismatches == 0
