import asyncio
import logging
import os
import pathlib
import shutil
import stat
import zipfile
from typing import List, Mapping, Optional, Sequence, Tuple

import aiofiles.os

from .descriptor import Library, ModernLibrary, VersionDescriptor
from .errors import NativeLibraryError
from .libraries import native_jar_path
from .platform_info import CurrentPlatform, current_platform
from .version import natives_dir

log = logging.getLogger(__name__)

_ARCH_SUFFIXES = ('arm64', 'x86', 'arm32', 'x64')


def _split_native_arch(classifier: str) -> Optional[str]:
    for suffix in _ARCH_SUFFIXES:
        if classifier.endswith(f"-{suffix}"):
            return suffix
    return None


def _select_native_jars(libraries: Sequence[Library], install_dir: pathlib.Path,
                        platform: CurrentPlatform) -> List[Tuple[Library, pathlib.Path]]:
    """Pairs each library needing extraction with the native jar to extract."""
    split_classifiers = {lib.maven_classifier for lib in libraries
                         if isinstance(lib, ModernLibrary) and lib.is_split_native}
    selected = []
    for library in libraries:
        if isinstance(library, ModernLibrary) and library.is_split_native \
                and library.native_classifier(platform) is None:
            classifier = library.maven_classifier
            arch = _split_native_arch(classifier)
            if arch is not None and arch != platform.arch:
                continue
            if arch is None and platform.is_arm64 and f"{classifier}-arm64" in split_classifiers:
                continue

        jar_path = native_jar_path(library, install_dir, platform)
        if jar_path is None:
            continue
        if platform.is_macos and platform.is_arm64 and 'arm64' not in jar_path.name:
            log.warning(f"No arm64 natives for {library.name}, using generic ones; they may not load on Apple Silicon.")
        selected.append((library, jar_path))
    return selected


def _extract_jar_sync(jar_path: pathlib.Path, extract_to_dir: pathlib.Path,
                      exclude: Sequence[str], make_executable: bool) -> int:
    count = 0
    try:
        with zipfile.ZipFile(jar_path, 'r') as zip_ref:
            for member in zip_ref.infolist():
                name = member.filename
                if member.is_dir() or name.upper().startswith('META-INF'):
                    continue
                if any(name.startswith(prefix) for prefix in exclude):
                    continue

                file_name = os.path.basename(name)
                if not file_name:
                    continue
                if file_name.endswith('.jnilib'):
                    file_name = file_name[:-len('.jnilib')] + '.dylib'

                target = extract_to_dir / file_name
                with zip_ref.open(member) as source, open(target, 'wb') as dest:
                    shutil.copyfileobj(source, dest)
                if make_executable:
                    target.chmod(target.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
                count += 1
    except zipfile.BadZipFile as e:
        raise NativeLibraryError(f"Failed to read native archive (BadZipFile): {jar_path}", e) from e
    return count


def _reset_dir_sync(path: pathlib.Path) -> None:
    if path.is_dir():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


async def extract_natives(
    descriptor: VersionDescriptor,
    install_dir: pathlib.Path,
    version: str,
    platform: Optional[CurrentPlatform] = None,
    features: Optional[Mapping[str, bool]] = None,
) -> int:
    """
    Rebuilds ``versions/<version>/natives`` from the native jars of every
    applicable library. Returns the number of files extracted.

    A native jar that is missing on disk or unreadable raises NativeLibraryError.
    """
    if platform is None:
        platform = current_platform()

    target_dir = natives_dir(install_dir, version)
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, _reset_dir_sync, target_dir)
    except OSError as e:
        raise NativeLibraryError(f"Could not recreate natives directory {target_dir} for {version}", e) from e

    applicable = [lib for lib in descriptor.libraries if lib.applies_to(platform, features)]
    native_jars = _select_native_jars(applicable, install_dir, platform)
    if not native_jars:
        log.info("No native libraries to extract for this platform.")
        return 0

    total = 0
    for library, jar_path in native_jars:
        if not await aiofiles.os.path.isfile(jar_path):
            raise NativeLibraryError(f"Native library jar for {library.name} is missing: {jar_path}")
        log.info(f"Extracting natives from {jar_path.name}")
        try:
            total += await loop.run_in_executor(
                None, _extract_jar_sync, jar_path, target_dir, library.exclude, not platform.is_windows)
        except OSError as e:
            raise NativeLibraryError(f"Failed to extract natives from {jar_path.name} into {target_dir}", e) from e

    log.info(f"Native extraction complete: {total} files in {target_dir}")
    return total
