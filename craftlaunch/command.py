"""
Launch command construction.

The command is assembled in a fixed order: Java executable, platform JVM
flags, caller JVM arguments, the authlib-injector agent, the natives path,
the classpath, the main class and finally the templated game arguments.
"""
import logging
import pathlib
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from . import __version__
from .assets import assets_dir, virtual_assets_dir
from .descriptor import ConditionalArgument, LegacyArguments, ModernArguments, VersionDescriptor
from .errors import LaunchError
from .java import java_executable_path
from .libraries import libraries_dir, library_artifact_path
from .platform_info import CurrentPlatform, current_platform
from .replacer import replace_all_placeholders
from .rules import applies
from .version import natives_dir, version_jar_path

log = logging.getLogger(__name__)

USER_TYPE = 'msa'
LAUNCHER_NAME = 'craftlaunch'
DEFAULT_AUTHLIB_HOST = 'ely.by'


@dataclass(frozen=True)
class LaunchIdentity:
    """The player identity handed to the game process."""

    username: str
    uuid: str
    access_token: str

    def __repr__(self) -> str:
        return f"LaunchIdentity(username={self.username!r}, uuid={self.uuid!r})"


def classpath_separator(platform: CurrentPlatform) -> str:
    return ';' if platform.is_windows else ':'


def client_jar_path(descriptor: VersionDescriptor, install_dir: pathlib.Path, version: str) -> pathlib.Path:
    return version_jar_path(install_dir, descriptor.jar or version)


def build_classpath(descriptor: VersionDescriptor, install_dir: pathlib.Path, version: str,
                    platform: CurrentPlatform, features: Optional[Mapping[str, bool]] = None) -> List[str]:
    """Applicable library jars in descriptor order, duplicates dropped, client jar last."""
    entries: List[str] = []
    seen = set()
    for library in descriptor.libraries:
        if not library.applies_to(platform, features):
            continue
        artifact_path = library_artifact_path(library, install_dir)
        if artifact_path is None:
            continue
        entry = str(artifact_path)
        if entry not in seen:
            seen.add(entry)
            entries.append(entry)

    client_jar = str(client_jar_path(descriptor, install_dir, version))
    if client_jar in seen:
        entries.remove(client_jar)
    entries.append(client_jar)
    return entries


def game_variables(descriptor: VersionDescriptor, install_dir: pathlib.Path, identity: LaunchIdentity,
                   version: str, platform: CurrentPlatform, classpath: str) -> Dict[str, str]:
    install_dir = pathlib.Path(install_dir)
    assets_root = assets_dir(install_dir)
    assets_index_name = descriptor.data.get('assets') or version
    return {
        'auth_player_name': identity.username,
        'auth_uuid': identity.uuid,
        'auth_access_token': identity.access_token,
        'auth_session': identity.access_token,
        'version_name': version,
        'game_directory': str(install_dir),
        'assets_root': str(assets_root),
        'game_assets': str(virtual_assets_dir(install_dir, assets_index_name)),
        'assets_index_name': assets_index_name,
        'user_type': USER_TYPE,
        'user_properties': '{}',
        'version_type': descriptor.type,
        'launcher_name': LAUNCHER_NAME,
        'launcher_version': __version__,
        'natives_directory': str(natives_dir(install_dir, version)),
        'library_directory': str(libraries_dir(install_dir)),
        'classpath_separator': classpath_separator(platform),
        'classpath': classpath,
    }


def build_game_arguments(descriptor: VersionDescriptor, platform: CurrentPlatform,
                         features: Optional[Mapping[str, bool]] = None) -> List[str]:
    """Raw (untemplated) game arguments for either descriptor format."""
    arguments = descriptor.arguments
    if isinstance(arguments, LegacyArguments):
        return arguments.split()
    if not isinstance(arguments, ModernArguments):
        log.warning(f"Version {descriptor.id} declares no game arguments")
        return []

    game_args: List[str] = []
    for entry in arguments.game:
        if isinstance(entry, ConditionalArgument):
            if applies(entry.rules, platform, features):
                game_args.extend(entry.values)
        else:
            game_args.append(entry)
    return game_args


def select_java(descriptor: VersionDescriptor, install_dir: pathlib.Path, platform: CurrentPlatform,
                java_path: Optional[str] = None, configured_java: Optional[str] = None) -> str:
    if java_path:
        return str(java_path)
    if configured_java:
        return str(configured_java)
    component = descriptor.java_component
    if component:
        runtime_java = java_executable_path(component, install_dir, platform)
        if runtime_java is not None:
            log.info(f"Using Java runtime {component}: {runtime_java}")
            return str(runtime_java)
    return 'java'


def build_command(
    descriptor: VersionDescriptor,
    install_dir: pathlib.Path,
    identity: LaunchIdentity,
    *,
    version: Optional[str] = None,
    java_path: Optional[str] = None,
    configured_java: Optional[str] = None,
    jvm_args: Optional[Sequence[str]] = None,
    variables: Optional[Mapping[str, str]] = None,
    platform: Optional[CurrentPlatform] = None,
    features: Optional[Mapping[str, bool]] = None,
    authlib_injector: Optional[pathlib.Path] = None,
    authlib_host: str = DEFAULT_AUTHLIB_HOST,
) -> List[str]:
    """
    Builds the argv that starts ``version`` from a resolved descriptor.

    ``variables`` override the built-in placeholder table. Placeholders with no
    value are left as they are.
    """
    if platform is None:
        platform = current_platform()
    if version is None:
        version = descriptor.id
    install_dir = pathlib.Path(install_dir)

    main_class = descriptor.main_class
    if not main_class:
        raise LaunchError(f"Version {version} is missing the 'mainClass' required for launch.")

    command = [select_java(descriptor, install_dir, platform, java_path, configured_java)]
    if platform.is_macos:
        command.append('-XstartOnFirstThread')
    command.extend(jvm_args or ())
    if authlib_injector is not None:
        command.append(f"-javaagent:{authlib_injector}={authlib_host}")
    command.append(f"-Djava.library.path={natives_dir(install_dir, version)}")

    classpath = classpath_separator(platform).join(
        build_classpath(descriptor, install_dir, version, platform, features))
    command.extend(['-cp', classpath, main_class])

    replacements = game_variables(descriptor, install_dir, identity, version, platform, classpath)
    replacements.update(variables or {})
    command.extend(replace_all_placeholders(build_game_arguments(descriptor, platform, features), replacements))

    log.info(f"Launch command built for {version} with {len(command)} arguments")
    return command
