import logging
import pathlib
from typing import List, Mapping, Optional, Tuple

import aiohttp
from tqdm.asyncio import tqdm

from .descriptor import Artifact, Library, ModernLibrary, VersionDescriptor
from .download import ensure, local_path, maven_path
from .errors import CraftLaunchError
from .platform_info import CurrentPlatform, current_platform

log = logging.getLogger(__name__)


def libraries_dir(install_dir: pathlib.Path) -> pathlib.Path:
    return pathlib.Path(install_dir) / 'libraries'


def _artifact_location(install_dir: pathlib.Path, artifact: Artifact, name: str,
                       classifier: Optional[str] = None) -> pathlib.Path:
    relative = artifact.path or maven_path(name, classifier)
    return local_path(libraries_dir(install_dir), relative)


def library_artifact_path(library: Library, install_dir: pathlib.Path) -> Optional[pathlib.Path]:
    """Location of the library's main jar, i.e. its classpath entry."""
    if isinstance(library, ModernLibrary):
        if library.artifact is None:
            return None
        return _artifact_location(install_dir, library.artifact, library.name)
    return local_path(libraries_dir(install_dir), library.path)


def native_jar_path(library: Library, install_dir: pathlib.Path,
                    platform: CurrentPlatform) -> Optional[pathlib.Path]:
    """Location of the jar holding this library's natives for ``platform``, if any."""
    if isinstance(library, ModernLibrary):
        classifier = library.native_classifier(platform)
        if classifier is not None:
            key, artifact = classifier
            return _artifact_location(install_dir, artifact, library.name, key)
        if library.is_split_native and library.artifact is not None:
            return _artifact_location(install_dir, library.artifact, library.name)
        return None

    key = library.native_template_key(platform)
    if key is None:
        return None
    if platform.is_arm64:
        arm_path = local_path(libraries_dir(install_dir), library.native_path(f"{key}-arm64"))
        if arm_path.is_file():
            return arm_path
    return local_path(libraries_dir(install_dir), library.native_path(key))


def _library_downloads(library: Library, install_dir: pathlib.Path,
                       platform: CurrentPlatform) -> List[Tuple[str, pathlib.Path, Optional[str]]]:
    """``(url, destination, sha1)`` for the main jar and the host's natives jar, when present."""
    downloads = []
    if isinstance(library, ModernLibrary):
        if library.artifact is not None:
            downloads.append((library.artifact.url,
                              _artifact_location(install_dir, library.artifact, library.name),
                              library.artifact.sha1))
        classifier = library.native_classifier(platform)
        if classifier is not None:
            key, artifact = classifier
            log.debug(f"Found native classifier {key} for {library.name}")
            downloads.append((artifact.url, _artifact_location(install_dir, artifact, library.name, key),
                              artifact.sha1))
        return downloads

    # Legacy manifests publish no checksums for these artifacts.
    downloads.append((library.url, local_path(libraries_dir(install_dir), library.path), None))
    key = library.native_template_key(platform)
    if key is not None:
        downloads.append((library.native_url(key),
                          local_path(libraries_dir(install_dir), library.native_path(key)), None))
    return downloads


async def install_libraries(
    session: aiohttp.ClientSession,
    descriptor: VersionDescriptor,
    install_dir: pathlib.Path,
    platform: Optional[CurrentPlatform] = None,
    features: Optional[Mapping[str, bool]] = None,
    *,
    progress: bool = True,
) -> List[str]:
    """
    Downloads every library (and native classifier) that applies to ``platform``.

    A library that fails to download is logged and skipped so the rest of the
    batch still installs. Returns the names of the failed libraries.
    """
    if platform is None:
        platform = current_platform()

    applicable = [lib for lib in descriptor.libraries if lib.applies_to(platform, features)]
    log.info(f"Downloading {len(applicable)} libraries for {descriptor.id}...")

    failed = []
    lib_pbar = tqdm(total=len(applicable), desc="Libraries", unit="lib", leave=False, disable=not progress)
    try:
        for library in applicable:
            # The main jar and the natives jar are independent: some legacy
            # libraries publish natives only.
            ok = True
            for url, dest, sha1 in _library_downloads(library, install_dir, platform):
                try:
                    await ensure(session, url, dest, sha1)
                except (CraftLaunchError, OSError) as error:
                    log.warning(f"Failed to install library {library.name} from {url}: {error}")
                    ok = False
            if not ok:
                failed.append(library.name)
            lib_pbar.update(1)
    finally:
        lib_pbar.close()

    if failed:
        log.warning(f"{len(failed)} libraries could not be installed: {', '.join(failed)}")
    log.info('Library download check complete.')
    return failed
