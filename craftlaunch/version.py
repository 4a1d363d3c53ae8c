import copy
import json
import logging
import pathlib
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import aiofiles
import aiohttp

from .descriptor import VersionDescriptor
from .download import ensure, file_exists
from .errors import VersionException, VersionNotFound
from .manifest import VERSION_MANIFEST_URL, VersionManifest, fetch_manifest

log = logging.getLogger(__name__)

# Installs a parent version; receives the parent id and the chain of ids being resolved.
ParentInstaller = Callable[[str, Tuple[str, ...]], Awaitable[None]]


def version_dir(install_dir: pathlib.Path, version_id: str) -> pathlib.Path:
    return pathlib.Path(install_dir) / 'versions' / version_id


def version_json_path(install_dir: pathlib.Path, version_id: str) -> pathlib.Path:
    return version_dir(install_dir, version_id) / f"{version_id}.json"


def version_jar_path(install_dir: pathlib.Path, version_id: str) -> pathlib.Path:
    return version_dir(install_dir, version_id) / f"{version_id}.jar"


def natives_dir(install_dir: pathlib.Path, version_id: str) -> pathlib.Path:
    return version_dir(install_dir, version_id) / 'natives'


def install_marker_path(install_dir: pathlib.Path, version_id: str) -> pathlib.Path:
    """Present while the install pipeline of ``version_id`` has not completed."""
    return version_dir(install_dir, version_id) / '.incomplete'


def is_version_installed(install_dir: pathlib.Path, version_id: str) -> bool:
    return version_json_path(install_dir, version_id).is_file() and \
        version_jar_path(install_dir, version_id).is_file() and \
        not install_marker_path(install_dir, version_id).exists()


async def read_version_json(install_dir: pathlib.Path, version_id: str) -> Dict[str, Any]:
    """Loads ``versions/<id>/<id>.json``; a missing or malformed file is a VersionException."""
    file_path = version_json_path(install_dir, version_id)
    try:
        async with aiofiles.open(file_path, 'r', encoding='utf-8') as f:
            content = await f.read()
    except FileNotFoundError as e:
        raise VersionException(f"Version JSON not found for {version_id}: {file_path}", e) from e
    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise VersionException(f"Invalid JSON in version file for {version_id}: {file_path}", e) from e
    if not isinstance(data, dict):
        raise VersionException(f"Version file for {version_id} is not a JSON object: {file_path}")
    return data


def merge_descriptors(parent: Dict[str, Any], child: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merges a child version (inheriting from ``parent``) on top of its parent.

    The child's libraries are appended after the parent's, ``inheritsFrom`` is
    dropped, and every other child key replaces the parent's key. Neither input
    is modified.
    """
    log.info(f"Merging manifests: {child.get('id', 'unknown-target')} inheriting from {parent.get('id', 'unknown-base')}")
    merged = copy.deepcopy(parent)
    merged.pop('inheritsFrom', None)
    for key, value in child.items():
        if key == 'inheritsFrom':
            continue
        if key == 'libraries':
            merged['libraries'] = list(merged.get('libraries') or []) + copy.deepcopy(list(value or []))
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _check_cycle(version_id: str, chain: Tuple[str, ...]) -> Tuple[str, ...]:
    if version_id in chain:
        cycle = ' -> '.join((*chain, version_id))
        raise VersionException(f"Cyclic version inheritance: {cycle}")
    return (*chain, version_id)


async def load_resolved(install_dir: pathlib.Path, version_id: str,
                        _chain: Tuple[str, ...] = ()) -> VersionDescriptor:
    """Resolves a version and its parents from local files only."""
    chain = _check_cycle(version_id, _chain)
    data = await read_version_json(install_dir, version_id)
    parent_id = data.get('inheritsFrom')
    if not parent_id:
        return VersionDescriptor(data)
    parent = await load_resolved(install_dir, parent_id, chain)
    return VersionDescriptor(merge_descriptors(parent.data, data))


async def fetch_version_json(session: aiohttp.ClientSession, manifest: VersionManifest,
                             version_id: str, install_dir: pathlib.Path) -> pathlib.Path:
    """
    Makes sure the version JSON is on disk. Versions missing from the manifest
    are accepted when a local JSON already exists (mod loader profiles).
    """
    json_path = version_json_path(install_dir, version_id)
    summary = manifest.find(version_id)
    if summary is None:
        if await file_exists(json_path):
            log.info(f"Version {version_id} is not in the manifest, using local file {json_path}")
            return json_path
        raise VersionNotFound(version_id)

    log.info(f"Found Minecraft version: {summary.id} ({summary.type})")
    await ensure(session, summary.url, json_path, summary.sha1)
    return json_path


async def resolve(
    session: aiohttp.ClientSession,
    version_id: str,
    install_dir: pathlib.Path,
    install_parent: ParentInstaller,
    *,
    manifest: Optional[VersionManifest] = None,
    manifest_url: str = VERSION_MANIFEST_URL,
    _chain: Tuple[str, ...] = (),
) -> VersionDescriptor:
    """
    Resolves ``version_id`` into a merged, inheritance-free descriptor.

    A parent that is not installed yet is fully installed through
    ``install_parent`` before its JSON is merged.
    """
    chain = _check_cycle(version_id, _chain)
    if manifest is None:
        manifest = await fetch_manifest(session, manifest_url)

    await fetch_version_json(session, manifest, version_id, install_dir)
    data = await read_version_json(install_dir, version_id)

    parent_id = data.get('inheritsFrom')
    if not parent_id:
        log.info(f"Manifest {version_id} does not inherit from another version.")
        return VersionDescriptor(data)

    _check_cycle(parent_id, chain)
    if not is_version_installed(install_dir, parent_id):
        log.info(f"Installing parent version: {parent_id}")
        await install_parent(parent_id, chain)

    try:
        parent = await load_resolved(install_dir, parent_id, chain)
    except VersionException as e:
        raise VersionException(f"Could not load parent version {parent_id} of {version_id}", e) from e
    return VersionDescriptor(merge_descriptors(parent.data, data))
