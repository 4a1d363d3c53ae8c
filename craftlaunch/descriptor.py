"""
Typed views over version descriptor JSON.

Mojang descriptors come in two generations: libraries either carry a
``downloads`` block (modern) or only a Maven name plus repository URL (legacy),
and game arguments are either the ``arguments`` object (modern) or the
``minecraftArguments`` string (legacy). Both unions are resolved once, when a
VersionDescriptor is built.
"""
import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .download import maven_path
from .errors import VersionException
from .platform_info import CurrentPlatform
from .rules import applies

log = logging.getLogger(__name__)

DEFAULT_LIBRARIES_URL = 'https://libraries.minecraft.net/'


@dataclass(frozen=True)
class Artifact:
    url: str
    sha1: Optional[str]
    path: str
    size: Optional[int] = None

    @classmethod
    def from_json(cls, data: Optional[Mapping[str, Any]]) -> Optional['Artifact']:
        if not data or not data.get('url'):
            return None
        return cls(data['url'], data.get('sha1'), data.get('path', ''), data.get('size'))


@dataclass(frozen=True)
class _LibraryBase:
    name: str
    rules: Optional[List[Dict[str, Any]]]
    natives: Dict[str, str]
    exclude: Tuple[str, ...]

    def applies_to(self, platform: CurrentPlatform, features: Optional[Mapping[str, bool]] = None) -> bool:
        if self.rules is None:
            return True
        return applies(self.rules, platform, features)

    @property
    def maven_classifier(self) -> Optional[str]:
        parts = self.name.split('@', 1)[0].split(':')
        return parts[3] if len(parts) > 3 else None

    def native_template_key(self, platform: CurrentPlatform) -> Optional[str]:
        """The natives classifier declared for this OS, ``${arch}`` substituted."""
        template = self.natives.get(platform.os)
        if template is None:
            return None
        return template.replace('${arch}', platform.bitness)


@dataclass(frozen=True)
class ModernLibrary(_LibraryBase):
    artifact: Optional[Artifact] = None
    classifiers: Dict[str, Artifact] = field(default_factory=dict)

    def native_classifier_candidates(self, platform: CurrentPlatform) -> List[str]:
        """Classifier keys to try for this host, most specific first."""
        key = self.native_template_key(platform)
        if key is not None:
            return [f"{key}-arm64", key] if platform.is_arm64 else [key]
        if self.natives:
            return []
        candidates = []
        for os_name in platform.os_aliases:
            candidates.append(f"natives-{os_name}-{platform.arch}")
            candidates.append(f"natives-{os_name}")
        return candidates

    def native_classifier(self, platform: CurrentPlatform) -> Optional[Tuple[str, Artifact]]:
        for key in self.native_classifier_candidates(platform):
            classifier = self.classifiers.get(key)
            if classifier is not None:
                return key, classifier
        return None

    @property
    def is_split_native(self) -> bool:
        """True for entries like ``org.lwjgl:lwjgl:3.3.1:natives-linux``."""
        classifier = self.maven_classifier
        return classifier is not None and classifier.startswith('natives-')


@dataclass(frozen=True)
class LegacyLibrary(_LibraryBase):
    base_url: str = DEFAULT_LIBRARIES_URL

    @property
    def path(self) -> str:
        return maven_path(self.name)

    @property
    def url(self) -> str:
        return self.base_url.rstrip('/') + '/' + self.path

    def native_path(self, classifier: str) -> str:
        return maven_path(self.name.split('@', 1)[0], classifier)

    def native_url(self, classifier: str) -> str:
        return self.base_url.rstrip('/') + '/' + self.native_path(classifier)


Library = Union[ModernLibrary, LegacyLibrary]


def parse_library(data: Mapping[str, Any]) -> Library:
    try:
        name = data['name']
    except (KeyError, TypeError) as e:
        raise VersionException(f"Malformed library entry: {data!r}", e) from e
    rules = data.get('rules')
    natives = dict(data.get('natives') or {})
    exclude = tuple((data.get('extract') or {}).get('exclude') or ())

    downloads = data.get('downloads')
    if isinstance(downloads, dict):
        classifiers = {}
        for key, value in (downloads.get('classifiers') or {}).items():
            classifier = Artifact.from_json(value)
            if classifier is not None:
                classifiers[key] = classifier
        return ModernLibrary(name, rules, natives, exclude,
                             artifact=Artifact.from_json(downloads.get('artifact')),
                             classifiers=classifiers)

    try:
        maven_path(name)
    except ValueError as e:
        raise VersionException(f"Malformed library name: {name}", e) from e
    return LegacyLibrary(name, rules, natives, exclude, base_url=data.get('url') or DEFAULT_LIBRARIES_URL)


@dataclass(frozen=True)
class ConditionalArgument:
    rules: List[Dict[str, Any]]
    values: Tuple[str, ...]


Argument = Union[str, ConditionalArgument]


@dataclass(frozen=True)
class ModernArguments:
    game: Tuple[Argument, ...]
    jvm: Tuple[Argument, ...] = ()


@dataclass(frozen=True)
class LegacyArguments:
    text: str

    def split(self) -> List[str]:
        return self.text.split()


def _parse_argument_list(entries: Optional[List[Any]]) -> Tuple[Argument, ...]:
    parsed: List[Argument] = []
    for entry in entries or ():
        if isinstance(entry, str):
            parsed.append(entry)
        elif isinstance(entry, dict):
            value = entry.get('value')
            if isinstance(value, str):
                values = (value,)
            elif isinstance(value, list):
                values = tuple(str(v) for v in value)
            else:
                log.warning(f"Unsupported value type in argument object: {value!r}")
                continue
            parsed.append(ConditionalArgument(entry.get('rules') or [], values))
        else:
            log.warning(f"Unsupported argument format: {entry!r}")
    return tuple(parsed)


def parse_arguments(data: Mapping[str, Any]) -> Union[ModernArguments, LegacyArguments, None]:
    arguments = data.get('arguments')
    if isinstance(arguments, dict) and 'game' in arguments:
        return ModernArguments(_parse_argument_list(arguments.get('game')),
                               _parse_argument_list(arguments.get('jvm')))
    legacy = data.get('minecraftArguments')
    if isinstance(legacy, str):
        return LegacyArguments(legacy)
    return None


class VersionDescriptor:
    """A parsed version JSON document, usually already merged with its parents."""

    def __init__(self, data: Dict[str, Any]):
        if not isinstance(data, dict):
            raise VersionException(f"Version descriptor must be a JSON object, got {type(data).__name__}")
        self.data = data
        libraries = data.get('libraries') or []
        if not isinstance(libraries, list):
            raise VersionException(f"'libraries' of {self.id} must be a list")
        self.libraries: List[Library] = [parse_library(lib) for lib in libraries]
        self.arguments = parse_arguments(data)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, VersionDescriptor) and other.data == self.data

    def __repr__(self) -> str:
        return f"VersionDescriptor(id={self.id!r}, libraries={len(self.libraries)})"

    def copy_data(self) -> Dict[str, Any]:
        return copy.deepcopy(self.data)

    @property
    def id(self) -> str:
        return self.data.get('id', 'unknown')

    @property
    def type(self) -> str:
        return self.data.get('type', 'release')

    @property
    def inherits_from(self) -> Optional[str]:
        return self.data.get('inheritsFrom')

    @property
    def main_class(self) -> Optional[str]:
        return self.data.get('mainClass')

    @property
    def jar(self) -> Optional[str]:
        return self.data.get('jar')

    @property
    def client_download(self) -> Optional[Artifact]:
        return Artifact.from_json((self.data.get('downloads') or {}).get('client'))

    @property
    def asset_index(self) -> Optional[Dict[str, Any]]:
        return self.data.get('assetIndex')

    @property
    def assets_id(self) -> str:
        """Asset index name, falling back to the version id."""
        return self.data.get('assets') or self.id

    @property
    def logging_file(self) -> Optional[Dict[str, Any]]:
        client = (self.data.get('logging') or {}).get('client') or {}
        return client.get('file')

    @property
    def java_component(self) -> Optional[str]:
        return (self.data.get('javaVersion') or {}).get('component')

    @property
    def java_major_version(self) -> Optional[int]:
        return (self.data.get('javaVersion') or {}).get('majorVersion')
