from pathlib import Path


class ConfigurationError(Exception):
    """Invalid input detected before any comparison work starts."""


class FileAccessError(Exception):
    """A file could not be fingerprinted under one root.

    The constructor arguments are kept as ``args`` so the exception survives
    pickling across the process pool boundary.
    """

    def __init__(self, root, relative_path, reason: str):
        super().__init__(root, relative_path, reason)
        self.root = Path(root)
        self.relative_path = Path(relative_path)
        self.reason = reason

    @property
    def path(self) -> Path:
        return self.root / self.relative_path

    def __str__(self):
        return f"cannot read {self.path}: {self.reason}"
