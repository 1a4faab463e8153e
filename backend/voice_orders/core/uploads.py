import logging
import os
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from fastapi.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


@asynccontextmanager
async def stored_upload(upload: UploadFile, directory: str) -> AsyncIterator[Path]:
    """
    Writes the upload to a unique scratch file and yields its path.
    The file is removed when the block exits, whether it succeeded or raised.
    """
    suffix = Path(upload.filename or "").suffix
    fd, tmp_path = tempfile.mkstemp(prefix="audio-", suffix=suffix, dir=directory)
    path = Path(tmp_path)
    try:
        with os.fdopen(fd, "wb") as fh:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                await run_in_threadpool(fh.write, chunk)
        logger.debug("Stored upload %r at %s", upload.filename, path)
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Could not remove temp upload %s", path, exc_info=True)


async def read_upload(path: Path) -> bytes:
    return await run_in_threadpool(path.read_bytes)
