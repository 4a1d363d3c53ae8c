"""
Launcher configuration.

``launcher_config.json`` holds the install settings; string values may use
``:thisdir:`` for the directory containing the file. An optional ``config.json``
next to it carries the player identity and overrides the same keys.
"""
import json
import logging
import pathlib
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Union

from .errors import ConfigError
from .replacer import replace_text

log = logging.getLogger(__name__)

CONFIG_FILENAME = 'launcher_config.json'
USER_CONFIG_FILENAME = 'config.json'
DEFAULT_VERSION = '1.20.4'
DEFAULT_BASE_DIRNAME = '.mc_launcher_data'


@dataclass
class LauncherConfig:
    version: str = DEFAULT_VERSION
    basepath: Optional[str] = None
    path: str = '.minecraft'
    java_path: Optional[str] = None
    jvm_args: List[str] = field(default_factory=list)
    use_ely_by: bool = False
    authlib_injector_path: Optional[str] = None
    auth_player_name: str = 'Player'
    auth_uuid: str = '00000000-0000-0000-0000-000000000000'
    auth_access_token: str = '00000000000000000000000000000000'
    install_java: bool = True
    features: Dict[str, bool] = field(default_factory=dict)
    progress: bool = True
    config_dir: pathlib.Path = field(default_factory=pathlib.Path.cwd)

    @property
    def install_dir(self) -> pathlib.Path:
        base = pathlib.Path(self.basepath) if self.basepath else self.config_dir / DEFAULT_BASE_DIRNAME
        return base / self.path

    def __repr__(self) -> str:
        return (f"LauncherConfig(version={self.version!r}, install_dir={str(self.install_dir)!r}, "
                f"player={self.auth_player_name!r}, use_ely_by={self.use_ely_by})")


_KEYS = {f.name for f in fields(LauncherConfig)} - {'config_dir'}


def _read_json_object(file_path: pathlib.Path) -> Dict[str, Any]:
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Error parsing {file_path}: {e}", e) from e
    except OSError as e:
        raise ConfigError(f"Could not read {file_path}", e) from e
    if not isinstance(data, dict):
        raise ConfigError(f"{file_path} must contain a JSON object")
    return data


def _coerce(key: str, value: Any) -> Any:
    if key == 'jvm_args':
        if isinstance(value, str):
            return value.split()
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise ConfigError(f"'jvm_args' must be a list of strings or a string, got {value!r}")
        return list(value)
    if key == 'features':
        if not isinstance(value, dict):
            raise ConfigError(f"'features' must be an object, got {value!r}")
        return {str(k): bool(v) for k, v in value.items()}
    if key in ('use_ely_by', 'install_java', 'progress'):
        if not isinstance(value, bool):
            raise ConfigError(f"'{key}' must be true or false, got {value!r}")
    return value


def config_from_dict(raw: Dict[str, Any], config_dir: pathlib.Path) -> LauncherConfig:
    values: Dict[str, Any] = {}
    for key, value in raw.items():
        if key not in _KEYS:
            log.debug(f"Ignoring unknown configuration key: {key}")
            continue
        if isinstance(value, str):
            value = replace_text(value, {':thisdir:': str(config_dir)})
        elif isinstance(value, list):
            value = [replace_text(v, {':thisdir:': str(config_dir)}) if isinstance(v, str) else v for v in value]
        if value is None:
            continue
        values[key] = _coerce(key, value)
    return LauncherConfig(config_dir=config_dir, **values)


def load_config(path: Union[str, pathlib.Path, None] = None) -> LauncherConfig:
    """
    Loads the launcher configuration. ``path`` may name the file or the
    directory holding it; defaults to the current directory. A missing file
    yields the defaults, a malformed one raises ConfigError.
    """
    config_path = pathlib.Path(path) if path is not None else pathlib.Path.cwd() / CONFIG_FILENAME
    if config_path.is_dir():
        config_path = config_path / CONFIG_FILENAME
    config_dir = config_path.resolve().parent

    raw: Dict[str, Any] = {}
    if config_path.is_file():
        raw.update(_read_json_object(config_path))
    else:
        log.warning(f"{config_path} not found, using default configuration.")

    user_config_path = config_dir / USER_CONFIG_FILENAME
    if user_config_path != config_path.resolve() and user_config_path.is_file():
        raw.update(_read_json_object(user_config_path))

    config = config_from_dict(raw, config_dir)
    log.info(f"Launcher config: {config!r}")
    return config
