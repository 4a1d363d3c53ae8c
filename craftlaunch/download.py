import asyncio
import hashlib
import logging
import pathlib
import secrets
from typing import Callable, Optional

import aiofiles
import aiofiles.os
import aiohttp
from tqdm.asyncio import tqdm

from .errors import ChecksumMismatch, DownloadError

log = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
RETRY_BASE_DELAY = 0.5  # seconds, multiplied by the attempt number
CHUNK_SIZE = 65536


async def get_file_sha1(file_path: pathlib.Path) -> str:
    """Calculates the SHA1 hash of a file asynchronously."""
    sha1_hash = hashlib.sha1()
    async with aiofiles.open(file_path, 'rb') as f:
        while True:
            chunk = await f.read(CHUNK_SIZE)
            if not chunk:
                break
            sha1_hash.update(chunk)
    return sha1_hash.hexdigest()


async def file_exists(file_path: pathlib.Path) -> bool:
    """Checks if a regular file exists asynchronously."""
    try:
        return await aiofiles.os.path.isfile(file_path)
    except OSError:
        return False


async def file_matches(file_path: pathlib.Path, expected_sha1: str) -> bool:
    """True iff the file exists and its SHA1 equals ``expected_sha1``."""
    if not await file_exists(file_path):
        return False
    try:
        return (await get_file_sha1(file_path)).lower() == expected_sha1.lower()
    except OSError as hash_error:
        log.warning(f"Could not hash existing file {file_path}: {hash_error}")
        return False


async def _write_atomically(dest_path: pathlib.Path, data: bytes) -> None:
    await aiofiles.os.makedirs(dest_path.parent, exist_ok=True)
    tmp_path = dest_path.with_name(f".{dest_path.name}.{secrets.token_hex(4)}.part")
    try:
        async with aiofiles.open(tmp_path, 'wb') as f:
            await f.write(data)
        await aiofiles.os.replace(tmp_path, dest_path)
    except BaseException:
        if await aiofiles.os.path.exists(tmp_path):
            await aiofiles.os.remove(tmp_path)
        raise


async def fetch_bytes(session: aiohttp.ClientSession, url: str) -> bytes:
    """Performs a single GET, raising DownloadError on any non-2xx status."""
    try:
        async with session.get(url) as response:
            if not response.ok:
                raise DownloadError(url, response.status)
            return await response.read()
    except aiohttp.ClientError as error:
        raise DownloadError(url, message=f"Failed to download {url}: {error}", cause=error) from error


async def ensure(
    session: aiohttp.ClientSession,
    url: str,
    dest_path: pathlib.Path,
    expected_sha1: Optional[str] = None,
    *,
    attempts: int = MAX_ATTEMPTS,
    retry_delay: float = RETRY_BASE_DELAY,
    transform: Optional[Callable[[bytes], bytes]] = None,
    pbar: Optional[tqdm] = None,
) -> bool:
    """
    Makes sure ``dest_path`` holds the content of ``url``.

    An existing file is kept when its SHA1 matches ``expected_sha1`` (or when no
    checksum is known), in which case no request is made and False is returned.
    Otherwise the body is downloaded, optionally passed through ``transform``,
    verified, and only then written. Failed attempts are retried with a linear
    backoff; the last failure is raised as DownloadError or ChecksumMismatch.
    Returns True when a download occurred.
    """
    dest_path = pathlib.Path(dest_path)

    if await file_exists(dest_path):
        if expected_sha1 is None:
            if pbar: pbar.update(1)
            return False
        if await file_matches(dest_path, expected_sha1):
            if pbar: pbar.update(1)
            return False
        log.warning(f"SHA1 mismatch for existing file {dest_path.name}. Redownloading.")

    last_error: Optional[DownloadError] = None
    for attempt in range(1, attempts + 1):
        try:
            data = await fetch_bytes(session, url)
            if transform is not None:
                data = transform(data)
            if expected_sha1 is not None:
                actual_sha1 = hashlib.sha1(data).hexdigest()
                if actual_sha1.lower() != expected_sha1.lower():
                    raise ChecksumMismatch(url, expected_sha1, actual_sha1)
            await _write_atomically(dest_path, data)
            if pbar: pbar.update(1)
            return True
        except DownloadError as error:
            last_error = error
            if attempt < attempts:
                log.warning(f"Download attempt {attempt}/{attempts} failed for {url}: {error}. Retrying.")
                await asyncio.sleep(retry_delay * attempt)

    log.error(f"Error downloading {url}: {last_error}")
    raise last_error


def maven_path(name: str, classifier: Optional[str] = None) -> str:
    """
    Builds the relative Maven path of ``group:artifact:version[:classifier][@ext]``.
    Raises ValueError for names with fewer than three parts.
    """
    extension = 'jar'
    if '@' in name:
        name, extension = name.rsplit('@', 1)
    parts = name.split(':')
    if len(parts) < 3:
        raise ValueError(f"Invalid library name: {name}")
    group, artifact, version = parts[0], parts[1], parts[2]
    if classifier is None and len(parts) > 3:
        classifier = parts[3]
    file_name = f"{artifact}-{version}-{classifier}.{extension}" if classifier \
        else f"{artifact}-{version}.{extension}"
    return '/'.join([*group.split('.'), artifact, version, file_name])


def local_path(root: pathlib.Path, relative: str) -> pathlib.Path:
    """Joins a '/'-separated relative path under ``root`` using OS separators."""
    return pathlib.Path(root, *relative.split('/'))
