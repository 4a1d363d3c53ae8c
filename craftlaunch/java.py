"""Installation of the Java runtimes Mojang publishes for each game version."""
import asyncio
import json
import logging
import lzma
import os
import pathlib
import shutil
import stat
from typing import Any, Dict, Optional

import aiofiles
import aiofiles.os
import aiohttp
from tqdm.asyncio import tqdm

from .download import ensure, fetch_bytes, local_path
from .errors import CraftLaunchError, DownloadError
from .platform_info import CurrentPlatform, current_platform

log = logging.getLogger(__name__)

JAVA_RUNTIME_MANIFEST_URL = 'https://launchermeta.mojang.com/v1/products/java-runtime/2ec0cc96c44e5a76b9c8b7c39df7210883d12871/all.json'
DEFAULT_CONCURRENCY = 8


def get_runtime_platform(platform: CurrentPlatform) -> str:
    """Maps a platform to the keys used by the Java runtime manifest."""
    if platform.os == 'windows':
        return {'x86': 'windows-x86', 'arm64': 'windows-arm64'}.get(platform.arch, 'windows-x64')
    elif platform.os == 'osx':
        return 'mac-os-arm64' if platform.is_arm64 else 'mac-os'
    elif platform.arch == 'x86':
        return 'linux-i386'
    return 'linux'


def runtime_dir(install_dir: pathlib.Path, component: str, platform: CurrentPlatform) -> pathlib.Path:
    return pathlib.Path(install_dir) / 'runtime' / component / get_runtime_platform(platform) / component


def find_java_executable(base_dir: pathlib.Path, platform: CurrentPlatform) -> Optional[pathlib.Path]:
    """
    Finds the path to the Java executable within the specified directory.
    Checks standard locations based on OS.
    """
    candidates = []
    if platform.is_windows:
        candidates.append(base_dir / 'bin' / 'java.exe')
    else:
        candidates.append(base_dir / 'bin' / 'java')
        if platform.is_macos:
            candidates.append(base_dir / 'jre.bundle' / 'Contents' / 'Home' / 'bin' / 'java')
            candidates.append(base_dir / 'Contents' / 'Home' / 'bin' / 'java')

    for java_executable_path in candidates:
        if java_executable_path.is_file():
            if platform.is_windows or os.access(java_executable_path, os.X_OK):
                return java_executable_path
            log.warning(f"File found but not executable: {java_executable_path}")
    return None


def java_executable_path(component: str, install_dir: pathlib.Path,
                         platform: Optional[CurrentPlatform] = None) -> Optional[pathlib.Path]:
    """Java executable of an installed runtime component, or None."""
    if platform is None:
        platform = current_platform()
    return find_java_executable(runtime_dir(install_dir, component, platform), platform)


def _make_executable(path: pathlib.Path) -> None:
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


async def _fetch_json(session: aiohttp.ClientSession, url: str) -> Dict[str, Any]:
    raw = await fetch_bytes(session, url)
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise DownloadError(url, message=f"Invalid JSON received from {url}", cause=e) from e


async def install_runtime(
    session: aiohttp.ClientSession,
    component: str,
    install_dir: pathlib.Path,
    platform: Optional[CurrentPlatform] = None,
    *,
    manifest_url: str = JAVA_RUNTIME_MANIFEST_URL,
    concurrency: int = DEFAULT_CONCURRENCY,
    progress: bool = True,
) -> Optional[pathlib.Path]:
    """
    Downloads the Java runtime ``component`` (e.g. ``java-runtime-gamma``) if not
    already present.

    Returns the Java executable path, or None when Mojang publishes no runtime
    for this component and platform.
    """
    if platform is None:
        platform = current_platform()
    platform_key = get_runtime_platform(platform)
    base_dir = runtime_dir(install_dir, component, platform)

    existing = find_java_executable(base_dir, platform)
    if existing:
        log.info(f"Valid Java executable already found at: {existing}. Skipping download.")
        return existing

    log.info(f"Installing Java runtime {component} for {platform_key}...")
    runtimes = await _fetch_json(session, manifest_url)
    versions = (runtimes.get(platform_key) or {}).get(component) or []
    if not versions:
        log.warning(f"No runtime manifest available for {component} on {platform_key}")
        return None

    entry = versions[0]
    files_manifest = await _fetch_json(session, entry['manifest']['url'])
    files: Dict[str, Dict[str, Any]] = files_manifest.get('files', {})
    log.info(f"Found {len(files)} files to download for Java runtime")

    await aiofiles.os.makedirs(base_dir, exist_ok=True)
    for relative, info in files.items():
        if info.get('type') == 'directory':
            await aiofiles.os.makedirs(local_path(base_dir, relative), exist_ok=True)

    downloadable = {rel: info for rel, info in files.items() if info.get('type') == 'file'}
    semaphore = asyncio.Semaphore(max(1, concurrency))
    runtime_pbar = tqdm(total=len(downloadable), desc="Java runtime", unit="file", leave=False, disable=not progress)

    async def fetch_file(relative: str, info: Dict[str, Any]) -> None:
        async with semaphore:
            downloads = info['downloads']
            raw = downloads['raw']
            dest = local_path(base_dir, relative)
            if 'lzma' in downloads:
                await ensure(session, downloads['lzma']['url'], dest, raw.get('sha1'),
                             transform=lzma.decompress, pbar=runtime_pbar)
            else:
                await ensure(session, raw['url'], dest, raw.get('sha1'), pbar=runtime_pbar)
            if info.get('executable') and not platform.is_windows:
                await asyncio.get_running_loop().run_in_executor(None, _make_executable, dest)

    try:
        await asyncio.gather(*(fetch_file(rel, info) for rel, info in downloadable.items()))
    finally:
        runtime_pbar.close()

    for relative, info in files.items():
        if info.get('type') != 'link':
            continue
        link_path = local_path(base_dir, relative)
        if await aiofiles.os.path.islink(link_path) or await aiofiles.os.path.exists(link_path):
            continue
        try:
            await aiofiles.os.makedirs(link_path.parent, exist_ok=True)
            if platform.is_windows:
                # Symlinks need elevated rights on Windows, copy the target instead.
                await asyncio.get_running_loop().run_in_executor(
                    None, shutil.copyfile, link_path.parent / info['target'], link_path)
            else:
                await aiofiles.os.symlink(info['target'], link_path)
        except OSError as e:
            log.warning(f"Failed to create link {relative} -> {info['target']}: {e}")

    version_name = (entry.get('version') or {}).get('name')
    if version_name:
        async with aiofiles.open(base_dir.parent / '.version', 'w', encoding='utf-8') as f:
            await f.write(version_name)

    java_path = find_java_executable(base_dir, platform)
    if java_path is None:
        raise CraftLaunchError(f"Java runtime {component} was installed but no executable was found in {base_dir}")
    log.info(f"Java runtime {component} installation completed: {java_path}")
    return java_path
