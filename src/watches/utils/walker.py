import functools
import logging
import os
import stat
from fnmatch import fnmatch
from pathlib import Path
from typing import Generator, Iterator, NamedTuple

logger = logging.getLogger(__name__)


class FileContext:
    """An entry met during traversal of one root.

    The relative path is assembled from the chain of parents, so the absolute
    path of an entry under any root is ``root / context.relative_path``.
    """
    def __init__(self, parent, name: str | None, path: Path | None = None, st: os.stat_result | None = None):
        self._parent: FileContext | None = parent
        self._name: str | None = name
        self._stat: os.stat_result | None = st
        self._path: Path | None = path

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def stat(self) -> os.stat_result:
        if self._stat is None:
            if self._path is None:
                raise LookupError("stat not available and path not provided")
            self._stat = self._path.stat(follow_symlinks=False)
        return self._stat

    @functools.cached_property
    def relative_path(self) -> Path | None:
        if self._name is None:
            return None

        if self._parent is None:
            return Path(self._name)

        parent_path = self._parent.relative_path
        if parent_path is None:
            return Path(self._name)

        return parent_path / self._name

    def is_file(self):
        return stat.S_ISREG(self.stat.st_mode)

    def is_dir(self):
        return stat.S_ISDIR(self.stat.st_mode)


def walk(path: Path, parent: FileContext) -> Generator[tuple[Path, FileContext], None | bool, None]:
    """Pre-order traversal of path, children in name order.

    Sending False back after an entry is yielded prunes it. Symlinks are never
    followed. Directories that cannot be listed and entries that vanish before
    they can be stat'ed are logged and skipped.
    """
    try:
        children = sorted(path.iterdir(), key=lambda p: p.name)
    except OSError as e:
        logger.warning(f"Unable to list directory {path}: {e.strerror or e}")
        return

    for child in children:
        try:
            st = child.stat(follow_symlinks=False)
        except OSError as e:
            logger.warning(f"Unable to stat {child}: {e.strerror or e}")
            continue

        context = FileContext(parent, child.name, path=child, st=st)
        if (yield child, context) is False:
            continue

        if stat.S_ISDIR(st.st_mode):
            yield from walk(child, context)


class WalkPolicy(NamedTuple):
    """Policy controlling traversal of a root.

    Attributes:
        exclude_patterns: fnmatch patterns; an entry is pruned when its relative
                          path (POSIX form) or its name matches any of them
    """
    exclude_patterns: tuple[str, ...] = ()

    def excludes(self, context: FileContext) -> bool:
        relative = context.relative_path
        if relative is None:
            return False
        relative_str = relative.as_posix()
        return any(fnmatch(relative_str, p) or fnmatch(context.name, p) for p in self.exclude_patterns)


def walk_with_policy(path: Path, policy: WalkPolicy) -> Iterator[tuple[Path, FileContext]]:
    """Walk the tree under path, pruning excluded entries."""
    gen = walk(path, FileContext(None, None, path))
    pending = None

    try:
        while True:
            file_path, file_context = gen.send(pending)
            pending = None

            if policy.excludes(file_context):
                logger.debug(f"Excluded: {file_path}")
                pending = False
                continue

            yield file_path, file_context
    except StopIteration:
        pass
    finally:
        gen.close()


def walk_files(path: Path, policy: WalkPolicy | None = None) -> Iterator[FileContext]:
    """Yield the context of every regular file under path.

    Directories are descended into but not yielded; symlinks and special files
    are skipped.
    """
    if policy is None:
        policy = WalkPolicy()

    for file_path, context in walk_with_policy(path, policy):
        if context.is_file():
            yield context
        elif not context.is_dir():
            logger.debug(f"Skipping non-regular file: {file_path}")
