from dataclasses import dataclass
from typing import Optional

from ..command import LaunchIdentity


@dataclass(frozen=True)
class AuthenticationResult:
    """Player profile and tokens returned by an account provider."""

    username: str
    uuid: str
    access_token: str
    refresh_token: Optional[str] = None

    def to_identity(self) -> LaunchIdentity:
        return LaunchIdentity(self.username, self.uuid, self.access_token)

    def __repr__(self) -> str:
        return f"AuthenticationResult(username={self.username!r}, uuid={self.uuid!r})"
