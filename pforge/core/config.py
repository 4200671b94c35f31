"""Typed loading of the optional ``pforge.toml`` repository config.

Example:

    [release]
    sources = ["https://api.nuget.org/v3/index.json", "./artifacts"]
    exclude_directories = ["samples"]
    configuration = "Release"
    publish_source = "https://api.nuget.org/v3/index.json"

    [github]
    owner = "contoso"
    repo = "widgets"
    tag_template = "{project}-v{version}"
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_bool, get_str, get_str_list, get_table

__all__ = [
    "CONFIG_FILE_NAME",
    "DEFAULT_NUGET_SOURCE",
    "DEFAULT_TIMESTAMP_SERVER",
    "DEFAULT_TAG_TEMPLATE",
    "ConfigError",
    "GitHubConfig",
    "PforgeConfig",
    "ReleaseConfig",
    "load_config",
    "load_config_or_default",
]

CONFIG_FILE_NAME = "pforge.toml"

DEFAULT_NUGET_SOURCE = "https://api.nuget.org/v3/index.json"
DEFAULT_TIMESTAMP_SERVER = "http://timestamp.digicert.com"
DEFAULT_TAG_TEMPLATE = "{project}-v{version}"


@dataclass(frozen=True, slots=True)
class ConfigError:
    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ReleaseConfig:
    """Defaults for ``pforge release``; CLI options take precedence."""

    sources: tuple[str, ...] = ()
    exclude_directories: tuple[str, ...] = ()
    configuration: str = "Release"
    output_path: str | None = None
    publish_source: str = DEFAULT_NUGET_SOURCE
    timestamp_server: str = DEFAULT_TIMESTAMP_SERVER
    include_prerelease: bool = False
    skip_duplicate: bool = False


@dataclass(frozen=True, slots=True)
class GitHubConfig:
    owner: str | None = None
    repo: str | None = None
    tag_template: str = DEFAULT_TAG_TEMPLATE


@dataclass(frozen=True, slots=True)
class PforgeConfig:
    release: ReleaseConfig = field(default_factory=ReleaseConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> PforgeConfig:
        release: StrDict = get_table(data, "release") or {}
        github: StrDict = get_table(data, "github") or {}

        configuration = get_str(release, "configuration") or "Release"
        if configuration not in ("Release", "Debug"):
            raise ValueError(f"release.configuration must be Release or Debug: {configuration}")

        return cls(
            release=ReleaseConfig(
                sources=tuple(get_str_list(release, "sources") or ()),
                exclude_directories=tuple(get_str_list(release, "exclude_directories") or ()),
                configuration=configuration,
                output_path=get_str(release, "output_path"),
                publish_source=get_str(release, "publish_source") or DEFAULT_NUGET_SOURCE,
                timestamp_server=get_str(release, "timestamp_server") or DEFAULT_TIMESTAMP_SERVER,
                include_prerelease=get_bool(release, "include_prerelease") or False,
                skip_duplicate=get_bool(release, "skip_duplicate") or False,
            ),
            github=GitHubConfig(
                owner=get_str(github, "owner"),
                repo=get_str(github, "repo"),
                tag_template=get_str(github, "tag_template") or DEFAULT_TAG_TEMPLATE,
            ),
        )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        data_obj: object = tomllib.loads(path.read_bytes().decode("utf-8"))
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigError("Config root must be a TOML table", path=path))
    return Ok(data)


def load_config(path: Path) -> Result[PforgeConfig, ConfigError]:
    """Load ``pforge.toml`` from ``path``."""
    parsed = _parse_toml(path)
    if isinstance(parsed, Err):
        return parsed

    try:
        return Ok(PforgeConfig.from_dict(parsed.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_config_or_default(root: Path) -> Result[PforgeConfig, ConfigError]:
    """Load ``<root>/pforge.toml`` when present, else built-in defaults.

    A present but broken file is still an error; silently ignoring it would
    release with the wrong sources.
    """
    path = root / CONFIG_FILE_NAME
    if not path.is_file():
        return Ok(PforgeConfig())
    return load_config(path)
