import asyncio
import json
import logging
import pathlib
import shutil
from typing import Any, Dict, List, Optional

import aiofiles
import aiofiles.os
import aiohttp
from tqdm.asyncio import tqdm

from .descriptor import VersionDescriptor
from .download import ensure, file_matches, local_path
from .errors import CraftLaunchError, InstallationError

log = logging.getLogger(__name__)

ASSET_BASE_URL = 'https://resources.download.minecraft.net'
DEFAULT_CONCURRENCY = 16


def assets_dir(install_dir: pathlib.Path) -> pathlib.Path:
    return pathlib.Path(install_dir) / 'assets'


def asset_object_path(install_dir: pathlib.Path, asset_hash: str) -> pathlib.Path:
    return assets_dir(install_dir) / 'objects' / asset_hash[:2] / asset_hash


def asset_index_id(descriptor: VersionDescriptor) -> Optional[str]:
    index = descriptor.asset_index
    if not index:
        return None
    return index.get('id') or descriptor.assets_id


def virtual_assets_dir(install_dir: pathlib.Path, index_id: str) -> pathlib.Path:
    return assets_dir(install_dir) / 'virtual' / index_id


async def _read_json(file_path: pathlib.Path) -> Dict[str, Any]:
    async with aiofiles.open(file_path, 'r', encoding='utf-8') as f:
        return json.loads(await f.read())


async def _asset_is_fresh(path: pathlib.Path, asset_hash: str, size: Optional[int], verify_hashes: bool) -> bool:
    try:
        actual_size = await aiofiles.os.path.getsize(path)
    except OSError:
        return False
    if verify_hashes:
        return await file_matches(path, asset_hash)
    return size is None or actual_size == size


def _copy_legacy_assets_sync(objects: Dict[str, Dict[str, Any]], install_dir: pathlib.Path,
                             target_root: pathlib.Path) -> None:
    for logical_path, details in objects.items():
        source = asset_object_path(install_dir, details['hash'])
        target = local_path(target_root, logical_path)
        if not source.is_file() or (target.is_file() and target.stat().st_size == source.stat().st_size):
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)


async def install_assets(
    session: aiohttp.ClientSession,
    descriptor: VersionDescriptor,
    install_dir: pathlib.Path,
    *,
    asset_base_url: str = ASSET_BASE_URL,
    concurrency: int = DEFAULT_CONCURRENCY,
    verify_hashes: bool = False,
    progress: bool = True,
) -> List[str]:
    """
    Installs the asset index and every asset object it references.

    Objects are content addressed, so logical paths sharing a hash are fetched
    once. Objects already on disk with the indexed size are skipped (or, with
    ``verify_hashes``, with a matching hash). A failed object does not stop the
    others; the hashes that failed are returned.
    """
    index_info = descriptor.asset_index
    if not index_info:
        log.info("No asset index found, skipping assets installation")
        return []
    if not index_info.get('url'):
        raise InstallationError(descriptor.id, 'assets', f"Asset index of {descriptor.id} has no download URL")

    index_id = asset_index_id(descriptor)
    index_path = assets_dir(install_dir) / 'indexes' / f"{index_id}.json"
    await ensure(session, index_info['url'], index_path, index_info.get('sha1'))

    try:
        index = await _read_json(index_path)
    except (OSError, json.JSONDecodeError) as e:
        raise InstallationError(descriptor.id, 'assets', f"Failed to read downloaded asset index {index_path}", e) from e

    objects: Dict[str, Dict[str, Any]] = index.get('objects', {})
    unique: Dict[str, Optional[int]] = {}
    for asset_key, details in objects.items():
        asset_hash = details.get('hash')
        if not asset_hash:
            log.warning(f"Asset '{asset_key}' is missing hash in index, skipping.")
            continue
        unique.setdefault(asset_hash, details.get('size'))
    log.info(f"Checking {len(unique)} unique assets ({len(objects)} entries) listed in index {index_id}...")

    base_url = asset_base_url.rstrip('/')
    semaphore = asyncio.Semaphore(max(1, concurrency))
    asset_pbar = tqdm(total=len(unique), desc="Assets", unit="file", leave=False, disable=not progress)

    async def fetch_asset(asset_hash: str, size: Optional[int]) -> None:
        async with semaphore:
            path = asset_object_path(install_dir, asset_hash)
            if await _asset_is_fresh(path, asset_hash, size, verify_hashes):
                asset_pbar.update(1)
                return
            await ensure(session, f"{base_url}/{asset_hash[:2]}/{asset_hash}", path, asset_hash, pbar=asset_pbar)

    try:
        hashes = list(unique)
        results = await asyncio.gather(*(fetch_asset(h, unique[h]) for h in hashes), return_exceptions=True)
    finally:
        asset_pbar.close()

    failed = []
    for asset_hash, result in zip(hashes, results):
        if isinstance(result, BaseException):
            if not isinstance(result, (CraftLaunchError, OSError)):
                raise result
            log.error(f"Error downloading asset with hash {asset_hash}: {result}")
            failed.append(asset_hash)

    if index.get('virtual') or index.get('map_to_resources'):
        target_root = virtual_assets_dir(install_dir, index_id) if index.get('virtual') \
            else pathlib.Path(install_dir) / 'resources'
        log.info(f"Copying legacy assets to {target_root}")
        await asyncio.get_running_loop().run_in_executor(
            None, _copy_legacy_assets_sync, objects, install_dir, target_root)

    log.info('Asset check complete.')
    return failed


async def install_logging_config(
    session: aiohttp.ClientSession,
    descriptor: VersionDescriptor,
    install_dir: pathlib.Path,
) -> Optional[pathlib.Path]:
    """Downloads the client logging configuration to ``assets/log_configs/<id>``."""
    log_file = descriptor.logging_file
    if not log_file or not log_file.get('url'):
        return None

    config_path = assets_dir(install_dir) / 'log_configs' / log_file['id']
    log.info(f"Downloading logging configuration: {log_file['id']}")
    await ensure(session, log_file['url'], config_path, log_file.get('sha1'))
    return config_path
