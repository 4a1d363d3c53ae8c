"""Exception hierarchy shared by every craftlaunch component."""
from typing import Optional


class CraftLaunchError(Exception):
    """Base class for all errors raised by craftlaunch."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message} (caused by {type(self.cause).__name__}: {self.cause})"
        return self.message


class ConfigError(CraftLaunchError):
    pass


class VersionException(CraftLaunchError):
    pass


class VersionNotFound(VersionException):

    def __init__(self, version_id: str):
        super().__init__(f"Minecraft version {version_id} not found in the manifest")
        self.version_id = version_id


class DownloadError(CraftLaunchError):

    def __init__(self, url: str, status: Optional[int] = None, message: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        if message is None:
            message = f"Failed to download {url}: HTTP {status}" if status is not None \
                else f"Failed to download {url}"
        super().__init__(message, cause)
        self.url = url
        self.status = status


class ChecksumMismatch(DownloadError):

    def __init__(self, url: str, expected: str, actual: str):
        super().__init__(url, message=f"SHA1 mismatch for {url}. Expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class InstallationError(CraftLaunchError):
    """Wraps a failure of the install pipeline, naming the version and stage."""

    def __init__(self, version: str, stage: str, message: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        if message is None:
            message = f"Installation of {version} failed during stage '{stage}'"
        super().__init__(message, cause)
        self.version = version
        self.stage = stage


class NativeLibraryError(CraftLaunchError):
    pass


class LaunchError(CraftLaunchError):
    pass


class AuthenticationError(CraftLaunchError):

    def __init__(self, error: str, error_message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{error} - {error_message}", cause)
        self.error = error
        self.error_message = error_message


class TwoFactorRequired(AuthenticationError):

    def __init__(self, error_message: str = "Please provide a two-factor authentication token"):
        super().__init__("TwoFactorRequired", error_message)
