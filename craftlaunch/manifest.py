import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from .download import fetch_bytes
from .errors import VersionException

log = logging.getLogger(__name__)

VERSION_MANIFEST_URL = 'https://piston-meta.mojang.com/mc/game/version_manifest_v2.json'
VERSION_TYPES = ('release', 'snapshot', 'old_beta', 'old_alpha')


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        log.warning(f"Unparseable release time in manifest: {value}")
        return None


@dataclass(frozen=True)
class VersionSummary:
    id: str
    type: str
    url: str
    sha1: Optional[str]
    release_time: Optional[datetime]

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'VersionSummary':
        return cls(
            id=data['id'],
            type=data.get('type', 'release'),
            url=data['url'],
            sha1=data.get('sha1'),
            release_time=_parse_iso(data.get('releaseTime')),
        )


@dataclass(frozen=True)
class VersionManifest:
    """The remote index of every known game version, in manifest order."""

    versions: Tuple[VersionSummary, ...]
    latest_release: Optional[str] = None
    latest_snapshot: Optional[str] = None

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> 'VersionManifest':
        try:
            latest = data.get('latest') or {}
            return cls(
                versions=tuple(VersionSummary.from_json(v) for v in data['versions']),
                latest_release=latest.get('release'),
                latest_snapshot=latest.get('snapshot'),
            )
        except (KeyError, TypeError, AttributeError) as e:
            raise VersionException("Malformed version manifest", e) from e

    def find(self, version_id: str) -> Optional[VersionSummary]:
        for version in self.versions:
            if version.id == version_id:
                return version
        return None

    def of_type(self, version_type: str) -> List[VersionSummary]:
        return [v for v in self.versions if v.type == version_type]

    def latest(self, version_type: str = 'release') -> Optional[VersionSummary]:
        if version_type == 'release' and self.latest_release:
            return self.find(self.latest_release)
        if version_type == 'snapshot' and self.latest_snapshot:
            return self.find(self.latest_snapshot)
        candidates = self.of_type(version_type)
        return candidates[0] if candidates else None


async def fetch_manifest(session: aiohttp.ClientSession, url: str = VERSION_MANIFEST_URL) -> VersionManifest:
    """Fetches the version manifest. It is never cached between calls."""
    log.info(f"Fetching version manifest from {url}")
    raw = await fetch_bytes(session, url)
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise VersionException(f"Invalid JSON in version manifest from {url}", e) from e
    return VersionManifest.from_json(data)
