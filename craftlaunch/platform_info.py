import functools
import logging
import platform
from dataclasses import dataclass

log = logging.getLogger(__name__)


def get_os_name() -> str:
    """Gets the current OS name ('windows', 'osx', 'linux')."""
    system = platform.system()
    if system == 'Windows': return 'windows'
    elif system == 'Darwin': return 'osx'
    elif system == 'Linux': return 'linux'
    else: raise OSError(f"Unsupported platform: {system}")


def get_arch_name() -> str:
    """Gets the current architecture name ('x64', 'x86', 'arm64', 'arm32')."""
    machine = platform.machine().lower()
    if machine in ['amd64', 'x86_64']: return 'x64'
    elif machine in ['i386', 'i686', 'x86']: return 'x86'
    elif machine in ['arm64', 'aarch64']: return 'arm64'
    elif machine.startswith('arm') and '64' not in machine: return 'arm32'
    else:
        log.warning(f"Unsupported architecture: {platform.machine()}. Falling back to 'x64'. This might cause issues.")
        return 'x64'


@dataclass(frozen=True)
class CurrentPlatform:
    """Host operating system and architecture, in Mojang's naming."""

    os: str
    arch: str
    version: str = ''

    @property
    def is_windows(self) -> bool:
        return self.os == 'windows'

    @property
    def is_macos(self) -> bool:
        return self.os == 'osx'

    @property
    def is_arm64(self) -> bool:
        return self.arch == 'arm64'

    @property
    def bitness(self) -> str:
        """Value substituted for ``${arch}`` in legacy natives templates."""
        return '32' if self.arch in ('x86', 'arm32') else '64'

    @property
    def os_aliases(self) -> tuple[str, ...]:
        # LWJGL 3.3+ classifiers use 'macos' where older manifests use 'osx'
        if self.os == 'osx':
            return ('macos', 'osx')
        return (self.os,)


def get_os_version(os_name: str) -> str:
    """OS version as the JVM reports it in ``os.version``."""
    if os_name == 'osx':
        return platform.mac_ver()[0] or platform.release()
    elif os_name == 'windows':
        return platform.version()
    return platform.release()


@functools.lru_cache(maxsize=None)
def current_platform() -> CurrentPlatform:
    """Detects the host platform once; later calls return the same value."""
    os_name = get_os_name()
    detected = CurrentPlatform(os_name, get_arch_name(), get_os_version(os_name))
    log.info(f"Detected OS: {detected.os}, Arch: {detected.arch}")
    return detected
