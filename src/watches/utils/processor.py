import asyncio
import hashlib
import logging
import multiprocessing
from multiprocessing.pool import Pool
import pathlib
import stat
from typing import Awaitable

from ..errors import FileAccessError
from .profiling import profile_worker

logger = logging.getLogger(__name__)

# 16 MiB
DEFAULT_CHUNK_SIZE = 1 << 24


@profile_worker
def compute_fingerprint(path: pathlib.Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Hash the full content of a regular file with SHA-256.

    The file is read in chunks into one reusable buffer. A short read is not
    treated as end of input; only a zero-length read ends the loop.

    :return: the digest as lowercase hex
    :raise OSError: the file cannot be opened or read
    :raise ValueError: the path is not a regular file
    """
    st = path.stat()
    if not stat.S_ISREG(st.st_mode):
        raise ValueError(f"{path} is not a regular file")

    digest = hashlib.sha256()
    buffer = memoryview(bytearray(chunk_size))
    with open(path, "rb", buffering=0) as f:
        while n := f.readinto(buffer):
            digest.update(buffer[:n])

    return digest.hexdigest()


class Processor:
    """Process pool backend that computes file fingerprints for asyncio callers."""

    def __init__(self, concurrency: int | None = None, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if concurrency is None:
            concurrency = multiprocessing.cpu_count()
        if concurrency < 1:
            raise ValueError(f"concurrency must be positive: {concurrency}")
        if chunk_size < 1:
            raise ValueError(f"chunk size must be positive: {chunk_size}")

        self._concurrency = concurrency
        self._chunk_size = chunk_size
        self._pool: Pool = Pool(self._concurrency)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        self._pool.close()
        self._pool.join()

    @property
    def concurrency(self):
        return self._concurrency

    @property
    def chunk_size(self):
        return self._chunk_size

    def fingerprint(self, root: pathlib.Path, relative_path: pathlib.Path) -> Awaitable[str]:
        """Fingerprint the file at root/relative_path.

        :return: awaitable resolving to the lowercase hex SHA-256 digest
        :raise FileAccessError: when awaited, if the file is missing, unreadable
            or not a regular file under this root
        """
        path = root / relative_path
        logger.debug(f"Starting fingerprint for: {path}")

        async def compute():
            try:
                result = await self._evaluate(compute_fingerprint, path, self._chunk_size)
            except OSError as e:
                raise FileAccessError(root, relative_path, e.strerror or str(e)) from e
            except ValueError as e:
                raise FileAccessError(root, relative_path, str(e)) from e
            logger.debug(f"Completed fingerprint for: {path} ({result})")
            return result

        return compute()

    def _evaluate(self, func, *args):
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def resolve(value):
            if not future.done():
                future.set_result(value)

        def reject(error):
            if not future.done():
                future.set_exception(error)

        self._pool.apply_async(func, args=args,
                               callback=lambda v: loop.call_soon_threadsafe(resolve, v),
                               error_callback=lambda e: loop.call_soon_threadsafe(reject, e))

        return future
