"""Configuration loading for statusbridge.

Values are layered, lowest precedence first: the YAML configuration file, a
``.env`` file in the working directory and the process environment. The YAML
document is flattened into environment style keys so every option can be
overridden from the environment, e.g. ``revolt.status.template`` becomes
``STATUSBRIDGE_REVOLT__STATUS__TEMPLATE``.

Secret options (``api_key``, ``session_token``, ``token``) may instead be
provided through a ``*_file`` / ``*_FILE`` key naming a file that holds the
value.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any

import yaml

from statusbridge.core.transitions import DEFAULT_STATUS_TEMPLATE
from statusbridge.errors import ConfigurationError
from statusbridge.integrations import lastfm_adapter, listenbrainz_adapter, revolt_client
from statusbridge.logging import get_logger

logger = get_logger(__name__)

ENV_PREFIX = "STATUSBRIDGE_"
NESTING_SEPARATOR = "__"
SECRET_FILE_SUFFIX = "_FILE"
SECRET_OPTIONS: frozenset[str] = frozenset({"API_KEY", "SESSION_TOKEN", "TOKEN"})

DEFAULT_CONFIG_FILE_PATH = Path("config.yaml")
DEFAULT_ENV_FILE_PATH = Path(".env")
DEFAULT_CHECK_INTERVAL = 16
DEFAULT_HTTP_TIMEOUT_MS = 10_000
DEFAULT_LOG_LEVEL = "INFO"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def config_key(*parts: str) -> str:
    """Return the flattened environment key for a nested option path."""

    return ENV_PREFIX + NESTING_SEPARATOR.join(part.upper() for part in parts)


@dataclass(slots=True, frozen=True)
class LastFMConfig:
    enable: bool
    username: str
    api_key: str = field(repr=False)
    check_interval: int = DEFAULT_CHECK_INTERVAL
    api_url: str = lastfm_adapter.DEFAULT_API_URL


@dataclass(slots=True, frozen=True)
class ListenBrainzConfig:
    enable: bool
    username: str
    api_url: str = listenbrainz_adapter.DEFAULT_API_URL
    token: str | None = field(default=None, repr=False)
    check_interval: int = DEFAULT_CHECK_INTERVAL


@dataclass(slots=True, frozen=True)
class StatusConfig:
    template: str = DEFAULT_STATUS_TEMPLATE
    idle: str | None = None
    restore_initial: bool = True


@dataclass(slots=True, frozen=True)
class RevoltConfig:
    session_token: str = field(repr=False)
    api_url: str = revolt_client.DEFAULT_API_URL
    status: StatusConfig = field(default_factory=StatusConfig)


@dataclass(slots=True, frozen=True)
class HttpConfig:
    timeout_ms: int = DEFAULT_HTTP_TIMEOUT_MS


@dataclass(slots=True, frozen=True)
class LoggingConfig:
    level: str = DEFAULT_LOG_LEVEL
    file: str | None = None


@dataclass(slots=True, frozen=True)
class AppConfig:
    revolt: RevoltConfig
    lastfm: LastFMConfig | None = None
    listenbrainz: ListenBrainzConfig | None = None
    http: HttpConfig = field(default_factory=HttpConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def enabled_sources(self) -> list[str]:
        enabled: list[str] = []
        if self.lastfm is not None and self.lastfm.enable:
            enabled.append(lastfm_adapter.PROVIDER_NAME)
        if self.listenbrainz is not None and self.listenbrainz.enable:
            enabled.append(listenbrainz_adapter.PROVIDER_NAME)
        return enabled


def _load_env_file(path: Path) -> dict[str, str]:
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError:
        return {}
    env_values: dict[str, str] = {}
    for line in contents.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        key, sep, value = stripped.partition("=")
        if not sep:
            continue
        env_values[key.strip()] = value.strip().strip('"').strip("'")
    return env_values


def _flatten_yaml_mapping(data: Mapping[str, Any], *parents: str) -> dict[str, Any]:
    flattened: dict[str, Any] = {}
    for key, value in data.items():
        path = (*parents, str(key))
        if isinstance(value, Mapping):
            flattened.update(_flatten_yaml_mapping(value, *path))
        else:
            flattened[config_key(*path)] = value
    return flattened


def _stringify_env_values(values: Mapping[str, Any]) -> dict[str, str]:
    env_values: dict[str, str] = {}
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, bool):
            env_values[key] = "true" if value else "false"
            continue
        env_values[key] = str(value)
    return env_values


def _load_yaml_config(path: Path, *, required: bool) -> dict[str, str]:
    try:
        contents = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        if required:
            raise ConfigurationError(f"Configuration file {path} does not exist") from None
        return {}
    except OSError as exc:
        raise ConfigurationError(f"Unable to read configuration file {path}: {exc}") from exc
    try:
        parsed = yaml.safe_load(contents)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Configuration file {path} is not valid YAML: {exc}") from exc
    if parsed is None:
        return {}
    if not isinstance(parsed, Mapping):
        raise ConfigurationError(f"Configuration file {path} must contain a mapping")
    return _stringify_env_values(_flatten_yaml_mapping(parsed))


def _secret_target(key: str) -> str | None:
    if not key.startswith(ENV_PREFIX) or not key.endswith(SECRET_FILE_SUFFIX):
        return None
    target = key[: -len(SECRET_FILE_SUFFIX)]
    option = target.rsplit(NESTING_SEPARATOR, 1)[-1]
    if option not in SECRET_OPTIONS:
        return None
    return target


def _read_secret_file(key: str, path: str) -> str:
    try:
        return Path(path).expanduser().read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise ConfigurationError(f"Unable to read secret file for {key}: {exc}", key=key) from exc


def _resolve_secret_files(layer: Mapping[str, str]) -> dict[str, str]:
    """Replace ``*_FILE`` secret references with file contents within one layer."""

    resolved: dict[str, str] = {}
    for key, value in layer.items():
        target = _secret_target(key)
        if target is None:
            resolved[key] = value
            continue
        if target in layer:
            continue
        resolved[target] = _read_secret_file(key, value)
    return resolved


def load_runtime_env(
    *,
    config_path: str | os.PathLike[str] | None = None,
    env_file: str | os.PathLike[str] | None = None,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Merge YAML file, ``.env`` and environment values into one flat mapping."""

    source = dict(os.environ if base_env is None else base_env)

    if config_path is not None:
        yaml_layer = _load_yaml_config(Path(config_path), required=True)
    else:
        yaml_layer = _load_yaml_config(DEFAULT_CONFIG_FILE_PATH, required=False)

    dotenv_path = Path(env_file) if env_file is not None else DEFAULT_ENV_FILE_PATH
    dotenv_layer: dict[str, str] = {}
    if dotenv_path.exists() and dotenv_path.is_file():
        dotenv_layer = _load_env_file(dotenv_path)

    env_layer = {key: str(value) for key, value in source.items() if value is not None}

    env: dict[str, str] = {}
    for layer in (yaml_layer, dotenv_layer, env_layer):
        env.update(_resolve_secret_files(layer))
    return env


def _as_bool(env: Mapping[str, str], key: str, *, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{key} must be a boolean, got {raw!r}", key=key)


def _as_int(env: Mapping[str, str], key: str, *, default: int, minimum: int) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}", key=key) from None
    if value < minimum:
        raise ConfigurationError(f"{key} must be at least {minimum}, got {value}", key=key)
    return value


def _required(env: Mapping[str, str], key: str) -> str:
    value = env.get(key)
    if value is None or not value.strip():
        raise ConfigurationError(f"Missing required configuration option {key}", key=key)
    return value.strip()


def _optional(env: Mapping[str, str], key: str) -> str | None:
    value = env.get(key)
    if value is None:
        return None
    return value


def _section_present(env: Mapping[str, str], *parts: str) -> bool:
    prefix = config_key(*parts) + NESTING_SEPARATOR
    return any(key.startswith(prefix) for key in env)


def _load_lastfm(env: Mapping[str, str]) -> LastFMConfig | None:
    if not _section_present(env, "service", "lastfm"):
        return None

    def key(name: str) -> str:
        return config_key("service", "lastfm", name)

    return LastFMConfig(
        enable=_as_bool(env, key("enable"), default=False),
        username=_required(env, key("username")),
        api_key=_required(env, key("api_key")),
        check_interval=_as_int(
            env, key("check_interval"), default=DEFAULT_CHECK_INTERVAL, minimum=1
        ),
        api_url=(_optional(env, key("api_url")) or lastfm_adapter.DEFAULT_API_URL).strip(),
    )


def _load_listenbrainz(env: Mapping[str, str]) -> ListenBrainzConfig | None:
    if not _section_present(env, "service", "listenbrainz"):
        return None

    def key(name: str) -> str:
        return config_key("service", "listenbrainz", name)

    token = _optional(env, key("token"))
    return ListenBrainzConfig(
        enable=_as_bool(env, key("enable"), default=False),
        username=_required(env, key("username")),
        api_url=(_optional(env, key("api_url")) or listenbrainz_adapter.DEFAULT_API_URL).strip(),
        token=token.strip() if token and token.strip() else None,
        check_interval=_as_int(
            env, key("check_interval"), default=DEFAULT_CHECK_INTERVAL, minimum=1
        ),
    )


def _load_revolt(env: Mapping[str, str]) -> RevoltConfig:
    template = _optional(env, config_key("revolt", "status", "template"))
    idle = _optional(env, config_key("revolt", "status", "idle"))
    status = StatusConfig(
        template=template if template else DEFAULT_STATUS_TEMPLATE,
        idle=idle if idle and idle.strip() else None,
        restore_initial=_as_bool(
            env, config_key("revolt", "status", "restore_initial"), default=True
        ),
    )
    return RevoltConfig(
        session_token=_required(env, config_key("revolt", "session_token")),
        api_url=(
            _optional(env, config_key("revolt", "api_url")) or revolt_client.DEFAULT_API_URL
        ).strip(),
        status=status,
    )


def load_logging_config(env: Mapping[str, str]) -> LoggingConfig:
    level = (_optional(env, config_key("logging", "level")) or DEFAULT_LOG_LEVEL).strip()
    log_file = _optional(env, config_key("logging", "file"))
    return LoggingConfig(level=level.upper(), file=log_file.strip() if log_file else None)


def load_config(runtime_env: Mapping[str, str] | None = None) -> AppConfig:
    """Build the typed configuration, raising :class:`ConfigurationError` on invalid input."""

    env = runtime_env if runtime_env is not None else load_runtime_env()
    config = AppConfig(
        revolt=_load_revolt(env),
        lastfm=_load_lastfm(env),
        listenbrainz=_load_listenbrainz(env),
        http=HttpConfig(
            timeout_ms=_as_int(
                env, config_key("http", "timeout_ms"), default=DEFAULT_HTTP_TIMEOUT_MS, minimum=100
            )
        ),
        logging=load_logging_config(env),
    )
    logger.debug(
        "Loaded configuration (enabled sources: %s)",
        ", ".join(config.enabled_sources()) or "none",
    )
    return config


@dataclass(slots=True, frozen=True)
class ConfigTemplateEntry:
    name: str
    default: Any
    comment: str


@dataclass(slots=True, frozen=True)
class ConfigTemplateSection:
    name: str
    comment: str
    entries: tuple[ConfigTemplateEntry, ...] = ()
    sections: tuple["ConfigTemplateSection", ...] = ()


_CONFIG_TEMPLATE_SECTIONS: tuple[ConfigTemplateSection, ...] = (
    ConfigTemplateSection(
        name="service",
        comment="Now-playing sources. Enable exactly one.",
        sections=(
            ConfigTemplateSection(
                name="lastfm",
                comment="Last.fm (https://www.last.fm/api)",
                entries=(
                    ConfigTemplateEntry("enable", False, "Use Last.fm as the source"),
                    ConfigTemplateEntry("username", "your-lastfm-user", "Last.fm user to watch"),
                    ConfigTemplateEntry(
                        "api_key",
                        "your-lastfm-api-key",
                        "API key; or use api_key_file to read it from a file",
                    ),
                    ConfigTemplateEntry(
                        "check_interval", DEFAULT_CHECK_INTERVAL, "Seconds between polls"
                    ),
                    ConfigTemplateEntry(
                        "api_url", lastfm_adapter.DEFAULT_API_URL, "API endpoint"
                    ),
                ),
            ),
            ConfigTemplateSection(
                name="listenbrainz",
                comment="ListenBrainz (https://listenbrainz.org)",
                entries=(
                    ConfigTemplateEntry("enable", False, "Use ListenBrainz as the source"),
                    ConfigTemplateEntry(
                        "username", "your-listenbrainz-user", "ListenBrainz user to watch"
                    ),
                    ConfigTemplateEntry(
                        "api_url", listenbrainz_adapter.DEFAULT_API_URL, "API base URL"
                    ),
                    ConfigTemplateEntry(
                        "token", None, "Optional user token; or use token_file"
                    ),
                    ConfigTemplateEntry(
                        "check_interval", DEFAULT_CHECK_INTERVAL, "Seconds between polls"
                    ),
                ),
            ),
        ),
    ),
    ConfigTemplateSection(
        name="revolt",
        comment="Revolt account whose status text is updated",
        entries=(
            ConfigTemplateEntry("api_url", revolt_client.DEFAULT_API_URL, "API base URL"),
            ConfigTemplateEntry(
                "session_token",
                "your-session-token",
                "Obtain with `statusbridge revolt get-session-token`; "
                "prefer session_token_file",
            ),
        ),
        sections=(
            ConfigTemplateSection(
                name="status",
                comment="Status text options",
                entries=(
                    ConfigTemplateEntry(
                        "template",
                        DEFAULT_STATUS_TEMPLATE,
                        "%NAME% and %ARTIST% are replaced with the current track",
                    ),
                    ConfigTemplateEntry(
                        "idle", None, "Text shown when nothing plays (null to use restore_initial)"
                    ),
                    ConfigTemplateEntry(
                        "restore_initial",
                        True,
                        "Restore the status found at startup when nothing plays",
                    ),
                ),
            ),
        ),
    ),
    ConfigTemplateSection(
        name="http",
        comment="Outbound HTTP",
        entries=(
            ConfigTemplateEntry(
                "timeout_ms", DEFAULT_HTTP_TIMEOUT_MS, "Request timeout in milliseconds"
            ),
        ),
    ),
    ConfigTemplateSection(
        name="logging",
        comment="Logging",
        entries=(
            ConfigTemplateEntry("level", DEFAULT_LOG_LEVEL, "DEBUG, INFO, WARNING or ERROR"),
            ConfigTemplateEntry("file", None, "Also write logs to this file"),
        ),
    ),
)


def _render_yaml_scalar(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    text = str(value)
    if _needs_yaml_quotes(text):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def _needs_yaml_quotes(text: str) -> bool:
    if not text:
        return True
    lowered = text.lower()
    if lowered in {"true", "false", "null", "~", "yes", "no", "on", "off"}:
        return True
    if text[0] in {"-", "#", "[", "{", "!", "%", "&", "*", "@", "`"}:
        return True
    if text[0].isdigit():
        return True
    for char in text:
        if char.isspace() or char in {":", "#", ",", "[", "]", "{", "}", '"', "'"}:
            return True
    return False


def _render_section(section: ConfigTemplateSection, depth: int) -> list[str]:
    indent = "  " * depth
    lines = [f"{indent}# {section.comment}", f"{indent}{section.name}:"]
    for entry in section.entries:
        if entry.comment:
            lines.append(f"{indent}  # {entry.comment}")
        lines.append(f"{indent}  {entry.name}: {_render_yaml_scalar(entry.default)}")
    for child in section.sections:
        lines.extend(_render_section(child, depth + 1))
    return lines


def render_config_template() -> str:
    """Return a commented sample configuration file."""

    lines = [
        "# statusbridge configuration",
        "#",
        "# Every option can be overridden with an environment variable, e.g.",
        f"# {config_key('revolt', 'session_token')} for revolt.session_token.",
        "# Secrets can be read from files using the _file (YAML) or _FILE",
        "# (environment) suffix, e.g. session_token_file: /run/secrets/revolt.",
        "",
    ]
    for section in _CONFIG_TEMPLATE_SECTIONS:
        lines.extend(_render_section(section, 0))
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


__all__ = [
    "AppConfig",
    "ConfigTemplateEntry",
    "ConfigTemplateSection",
    "DEFAULT_CONFIG_FILE_PATH",
    "HttpConfig",
    "LastFMConfig",
    "ListenBrainzConfig",
    "LoggingConfig",
    "RevoltConfig",
    "StatusConfig",
    "config_key",
    "load_config",
    "load_logging_config",
    "load_runtime_env",
    "render_config_template",
]
