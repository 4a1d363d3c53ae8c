"""Minecraft installation resolver and launcher."""
__version__ = '1.0.0'

from .command import LaunchIdentity, build_command
from .config import LauncherConfig, load_config
from .descriptor import VersionDescriptor
from .errors import (AuthenticationError, ChecksumMismatch, ConfigError, CraftLaunchError, DownloadError,
                     InstallationError, LaunchError, NativeLibraryError, TwoFactorRequired, VersionException,
                     VersionNotFound)
from .launcher import Launcher, LaunchState, install_version
from .manifest import VersionManifest, VersionSummary
from .platform_info import CurrentPlatform, current_platform

__all__ = [
    '__version__',
    'AuthenticationError',
    'ChecksumMismatch',
    'ConfigError',
    'CraftLaunchError',
    'CurrentPlatform',
    'DownloadError',
    'InstallationError',
    'LaunchError',
    'LaunchIdentity',
    'LaunchState',
    'Launcher',
    'LauncherConfig',
    'NativeLibraryError',
    'TwoFactorRequired',
    'VersionDescriptor',
    'VersionException',
    'VersionManifest',
    'VersionNotFound',
    'VersionSummary',
    'build_command',
    'current_platform',
    'install_version',
    'load_config',
]
