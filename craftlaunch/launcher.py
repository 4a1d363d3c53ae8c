"""
Install and launch orchestration.

``install_version`` runs the install pipeline for one version (recursing into
parents it inherits from); ``Launcher`` wraps it with the launch steps and
tracks progress through ``LaunchState``.
"""
import asyncio
import enum
import logging
import pathlib
import shutil
from typing import Callable, List, Mapping, Optional, Sequence, Tuple, Union

import aiofiles
import aiofiles.os
import aiohttp
from tqdm.asyncio import tqdm

from .assets import ASSET_BASE_URL, install_assets, install_logging_config
from .auth.ely import AUTHLIB_INJECTOR_FILENAME, ElyAuth
from .command import LaunchIdentity, build_command
from .descriptor import VersionDescriptor
from .download import ensure
from .errors import (CraftLaunchError, InstallationError, LaunchError, NativeLibraryError,
                     VersionException)
from .java import install_runtime
from .libraries import install_libraries
from .manifest import VERSION_MANIFEST_URL, VersionManifest, VersionSummary, fetch_manifest
from .natives import extract_natives
from .platform_info import CurrentPlatform, current_platform
from .version import (install_marker_path, is_version_installed, load_resolved, natives_dir, resolve,
                      version_jar_path)

log = logging.getLogger(__name__)


class LaunchState(enum.Enum):
    NOT_INSTALLED = 'not_installed'
    RESOLVING = 'resolving'
    INSTALLING_LIBRARIES = 'installing_libraries'
    EXTRACTING_NATIVES = 'extracting_natives'
    INSTALLING_ASSETS = 'installing_assets'
    INSTALLED = 'installed'
    BUILDING_COMMAND = 'building_command'
    LAUNCHING = 'launching'
    RUNNING = 'running'
    EXITED = 'exited'
    FAILED = 'failed'


StateCallback = Callable[[LaunchState], None]


def _copy_file_sync(source: pathlib.Path, dest: pathlib.Path) -> None:
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, dest)


async def _install_client_jar(session: aiohttp.ClientSession, descriptor: VersionDescriptor,
                              install_dir: pathlib.Path, version: str, progress: bool) -> None:
    jar_path = version_jar_path(install_dir, version)
    client = descriptor.client_download
    log.info('Checking client JAR...')
    client_pbar = tqdm(total=1, desc="Client JAR", unit="file", leave=False, disable=not progress)
    try:
        if client is not None:
            await ensure(session, client.url, jar_path, client.sha1, pbar=client_pbar)
            return
        # Profiles without their own download reuse the jar of the version named by 'jar'.
        source = version_jar_path(install_dir, descriptor.jar) if descriptor.jar else None
        if source is None or source == jar_path or not await aiofiles.os.path.isfile(source):
            raise InstallationError(version, 'client', f"Version {version} is missing client download information")
        await asyncio.get_running_loop().run_in_executor(None, _copy_file_sync, source, jar_path)
        client_pbar.update(1)
    finally:
        client_pbar.close()


async def _run_stage(version: str, stage: str, coro):
    """Awaits one pipeline stage, wrapping its failures in InstallationError."""
    try:
        return await coro
    except (VersionException, NativeLibraryError, InstallationError):
        raise
    except (CraftLaunchError, OSError, aiohttp.ClientError) as e:
        raise InstallationError(version, stage, f"Installation of {version} failed during stage '{stage}': {e}", e) from e


async def install_version(
    session: aiohttp.ClientSession,
    version: str,
    install_dir: pathlib.Path,
    *,
    platform: Optional[CurrentPlatform] = None,
    features: Optional[Mapping[str, bool]] = None,
    manifest: Optional[VersionManifest] = None,
    manifest_url: str = VERSION_MANIFEST_URL,
    asset_base_url: str = ASSET_BASE_URL,
    install_java: bool = True,
    progress: bool = True,
    on_state: Optional[StateCallback] = None,
    _chain: Tuple[str, ...] = (),
) -> VersionDescriptor:
    """
    Installs ``version`` into ``install_dir`` and returns its resolved descriptor.

    Parents named by ``inheritsFrom`` are installed first, through the same
    pipeline. Already downloaded files are verified and kept, so running this
    again repairs a partial install.
    """
    if platform is None:
        platform = current_platform()
    install_dir = pathlib.Path(install_dir)

    def notify(state: LaunchState) -> None:
        if on_state is not None:
            on_state(state)

    if manifest is None:
        manifest = await _run_stage(version, 'resolve', fetch_manifest(session, manifest_url))

    async def install_parent(parent_id: str, chain: Tuple[str, ...]) -> None:
        await install_version(session, parent_id, install_dir, platform=platform, features=features,
                              manifest=manifest, asset_base_url=asset_base_url,
                              install_java=install_java, progress=progress, _chain=chain)

    log.info(f"Preparing Minecraft {version}...")
    notify(LaunchState.RESOLVING)
    await aiofiles.os.makedirs(install_dir, exist_ok=True)
    descriptor = await _run_stage(version, 'resolve', resolve(
        session, version, install_dir, install_parent, manifest=manifest, _chain=_chain))
    marker = install_marker_path(install_dir, version)
    async with aiofiles.open(marker, 'w', encoding='utf-8') as f:
        await f.write(version)
    await _run_stage(version, 'client', _install_client_jar(session, descriptor, install_dir, version, progress))

    notify(LaunchState.INSTALLING_LIBRARIES)
    await _run_stage(version, 'libraries', install_libraries(
        session, descriptor, install_dir, platform, features, progress=progress))

    notify(LaunchState.EXTRACTING_NATIVES)
    await extract_natives(descriptor, install_dir, version, platform, features)

    notify(LaunchState.INSTALLING_ASSETS)
    failed_assets = await _run_stage(version, 'assets', install_assets(
        session, descriptor, install_dir, asset_base_url=asset_base_url, progress=progress))
    if failed_assets:
        log.warning(f"{len(failed_assets)} assets could not be downloaded for {version}")
    await _run_stage(version, 'logging', install_logging_config(session, descriptor, install_dir))
    await aiofiles.os.remove(marker)

    component = descriptor.java_component
    if install_java and component:
        try:
            await install_runtime(session, component, install_dir, platform, progress=progress)
        except (CraftLaunchError, OSError, aiohttp.ClientError) as e:
            log.warning(f"Could not install Java runtime {component}, falling back to the system Java: {e}")

    log.info(f"Minecraft {version} installed in {install_dir}")
    return descriptor


class Launcher:
    """
    Installs and launches one Minecraft version from ``install_dir``.

    The game process is started with ``install_dir`` as its working directory.
    Every network operation opens its own aiohttp session.
    """

    def __init__(
        self,
        version: str,
        install_dir: Union[str, pathlib.Path],
        *,
        java_path: Optional[str] = None,
        use_ely_by: bool = False,
        authlib_injector_path: Optional[Union[str, pathlib.Path]] = None,
        platform: Optional[CurrentPlatform] = None,
        features: Optional[Mapping[str, bool]] = None,
        manifest_url: str = VERSION_MANIFEST_URL,
        asset_base_url: str = ASSET_BASE_URL,
        install_java: bool = True,
        progress: bool = True,
    ):
        self.version = version
        self.install_dir = pathlib.Path(install_dir)
        self.java_path = java_path
        self.use_ely_by = use_ely_by
        self.authlib_injector_path = pathlib.Path(authlib_injector_path) if authlib_injector_path else None
        self.platform = platform or current_platform()
        self.features = features
        self.manifest_url = manifest_url
        self.asset_base_url = asset_base_url
        self.install_java = install_java
        self.progress = progress
        self.error: Optional[BaseException] = None
        self.state = LaunchState.INSTALLED if self.is_installed() else LaunchState.NOT_INSTALLED

    def __repr__(self) -> str:
        return f"Launcher(version={self.version!r}, install_dir={str(self.install_dir)!r}, state={self.state.name})"

    def _set_state(self, state: LaunchState) -> None:
        log.debug(f"{self.version}: {self.state.name} -> {state.name}")
        self.state = state

    def _fail(self, error: BaseException) -> None:
        self.error = error
        self._set_state(LaunchState.FAILED)

    def is_installed(self) -> bool:
        return is_version_installed(self.install_dir, self.version)

    async def install(self, force: bool = False) -> None:
        """Runs the install pipeline unless the version is already installed."""
        if self.is_installed() and not force:
            log.info(f"Minecraft {self.version} is already installed")
            self._set_state(LaunchState.INSTALLED)
            return

        self.error = None
        try:
            async with aiohttp.ClientSession() as session:
                await install_version(
                    session, self.version, self.install_dir,
                    platform=self.platform, features=self.features,
                    manifest_url=self.manifest_url, asset_base_url=self.asset_base_url,
                    install_java=self.install_java, progress=self.progress,
                    on_state=self._set_state,
                )
        except BaseException as e:
            self._fail(e)
            raise
        self._set_state(LaunchState.INSTALLED)

    async def _load_descriptor(self) -> VersionDescriptor:
        return await load_resolved(self.install_dir, self.version)

    async def extract_natives(self) -> int:
        """Rebuilds the natives directory of the installed version."""
        if not self.is_installed():
            raise NativeLibraryError(f"Minecraft {self.version} is not installed, cannot extract natives")
        self._set_state(LaunchState.EXTRACTING_NATIVES)
        try:
            descriptor = await self._load_descriptor()
            count = await extract_natives(descriptor, self.install_dir, self.version, self.platform, self.features)
        except BaseException as e:
            self._fail(e)
            raise
        self._set_state(LaunchState.INSTALLED)
        return count

    def _authlib_injector(self) -> Optional[pathlib.Path]:
        if not self.use_ely_by:
            return None
        if self.authlib_injector_path is not None:
            return self.authlib_injector_path
        default_path = self.install_dir / AUTHLIB_INJECTOR_FILENAME
        if default_path.is_file():
            return default_path
        raise LaunchError("Ely.by support is enabled but authlib-injector is not available. "
                          "Set authlib_injector_path or use launch() to download it.")

    async def build_command(self, identity: LaunchIdentity, *, java_path: Optional[str] = None,
                            jvm_args: Optional[Sequence[str]] = None,
                            variables: Optional[Mapping[str, str]] = None) -> List[str]:
        if not self.is_installed():
            raise LaunchError(f"Minecraft {self.version} is not installed. Call install() first.")
        self._set_state(LaunchState.BUILDING_COMMAND)
        try:
            descriptor = await self._load_descriptor()
            return build_command(
                descriptor, self.install_dir, identity,
                version=self.version,
                java_path=java_path,
                configured_java=self.java_path,
                jvm_args=jvm_args,
                variables=variables,
                platform=self.platform,
                features=self.features,
                authlib_injector=self._authlib_injector(),
            )
        except LaunchError as e:
            self._fail(e)
            raise
        except CraftLaunchError as e:
            error = LaunchError(f"Failed to build the launch command for {self.version}", e)
            self._fail(error)
            raise error from e

    async def _natives_missing(self) -> bool:
        directory = natives_dir(self.install_dir, self.version)
        if not await aiofiles.os.path.isdir(directory):
            return True
        return not await aiofiles.os.listdir(directory)

    async def launch(self, identity: LaunchIdentity, *, java_path: Optional[str] = None,
                     jvm_args: Optional[Sequence[str]] = None,
                     variables: Optional[Mapping[str, str]] = None,
                     stdout=None, stderr=None) -> asyncio.subprocess.Process:
        """
        Installs the version if needed, then starts the game and returns its
        process without waiting for it.
        """
        if not self.is_installed():
            await self.install()
        elif await self._natives_missing():
            await self.extract_natives()

        if self.use_ely_by and self.authlib_injector_path is None:
            try:
                async with aiohttp.ClientSession() as session:
                    self.authlib_injector_path = await ElyAuth(session).download_authlib_injector(self.install_dir)
            except CraftLaunchError as e:
                error = LaunchError(f"Could not set up Ely.by authentication for {self.version}", e)
                self._fail(error)
                raise error from e

        command = await self.build_command(identity, java_path=java_path, jvm_args=jvm_args, variables=variables)

        self._set_state(LaunchState.LAUNCHING)
        log.info(f"Attempting to launch Minecraft {self.version} as {identity.username}...")
        try:
            process = await asyncio.create_subprocess_exec(
                *command, cwd=str(self.install_dir), stdout=stdout, stderr=stderr)
        except OSError as e:
            error = LaunchError(f"Failed to start Java ({command[0]}) for {self.version}", e)
            self._fail(error)
            raise error from e

        log.info(f"Minecraft process started (PID: {process.pid}).")
        self._set_state(LaunchState.RUNNING)
        return process

    async def run(self, identity: LaunchIdentity, **kwargs) -> int:
        """Launches the game and waits for it to exit. Returns the exit code."""
        process = await self.launch(identity, **kwargs)
        return_code = await process.wait()
        log.info(f"Minecraft process exited with code {return_code}.")
        self._set_state(LaunchState.EXITED)
        return return_code

    @staticmethod
    async def available_versions(manifest_url: str = VERSION_MANIFEST_URL) -> List[VersionSummary]:
        async with aiohttp.ClientSession() as session:
            manifest = await fetch_manifest(session, manifest_url)
        return list(manifest.versions)

    @staticmethod
    async def release_versions(manifest_url: str = VERSION_MANIFEST_URL) -> List[VersionSummary]:
        return [v for v in await Launcher.available_versions(manifest_url) if v.type == 'release']

    @staticmethod
    async def snapshot_versions(manifest_url: str = VERSION_MANIFEST_URL) -> List[VersionSummary]:
        return [v for v in await Launcher.available_versions(manifest_url) if v.type == 'snapshot']

    @staticmethod
    async def latest_release(manifest_url: str = VERSION_MANIFEST_URL) -> Optional[VersionSummary]:
        async with aiohttp.ClientSession() as session:
            manifest = await fetch_manifest(session, manifest_url)
        return manifest.latest('release')
