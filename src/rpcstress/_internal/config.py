"""Configuration loading for rpcstress.

Settings come from command-line flags and, optionally, a TOML file. When
both are present the file wins field by field. Example file::

    url = "http://localhost:8899"
    timeout_ms = 10
    duration = 30
    http_timeout = 5

    [[methods]]
    method = "getHealth"
    workers = 4

    [[methods]]
    method = "getLatestBlock"
    params = [{ commitment = "confirmed", encoding = "json" }]
    workers = 1
"""

from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from rpcstress._internal.errors import ConfigError

if TYPE_CHECKING:
    from rpcstress._internal.types import JsonObject, Params

DEFAULT_URL = "https://api.mainnet-beta.solana.com"
DEFAULT_METHOD = "getHealth"
DEFAULT_WORKERS = 1
DEFAULT_PACING_MS = 1
DEFAULT_DURATION = 60
DEFAULT_HTTP_TIMEOUT = 30


@dataclass(frozen=True)
class MethodConfig:
    """One workload lane: a method, its parameters and how many workers run it.

    Attributes:
        method: JSON-RPC method name (or ``getLatestBlock``).
        workers: Number of independent workers driving this method.
        params: Ordered positional parameters sent with every request.
    """

    method: str
    workers: int = DEFAULT_WORKERS
    params: Params = ()


@dataclass(frozen=True)
class FileConfig:
    """Values read from a TOML configuration file.

    ``None`` means the key was absent and the CLI value applies.

    Attributes:
        url: Target JSON-RPC endpoint.
        pacing_ms: Delay between requests of one worker (``timeout_ms`` key).
        duration: Run duration in seconds, 0 for unbounded.
        http_timeout: Per-request HTTP timeout in seconds.
        methods: Workload lanes.
    """

    url: str | None = None
    pacing_ms: int | None = None
    duration: int | None = None
    http_timeout: float | None = None
    methods: tuple[MethodConfig, ...] = ()


@dataclass(frozen=True)
class RunSettings:
    """Fully resolved, validated settings for one run.

    Attributes:
        url: Target JSON-RPC endpoint.
        pacing_ms: Delay between requests of one worker in milliseconds.
        duration: Run duration in seconds, 0 for unbounded.
        http_timeout: Per-request HTTP timeout in seconds.
        methods: Workload lanes, at least one.
        debug: Log every response at DEBUG level.
        ping: Run the preliminary ping diagnostic before the test.
        config_path: Path of the configuration file, if one was used.
    """

    url: str = DEFAULT_URL
    pacing_ms: int = DEFAULT_PACING_MS
    duration: int = DEFAULT_DURATION
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    methods: tuple[MethodConfig, ...] = field(
        default_factory=lambda: (MethodConfig(method=DEFAULT_METHOD),)
    )
    debug: bool = False
    ping: bool = False
    config_path: str | None = None

    @property
    def total_workers(self) -> int:
        """Return the number of workers across all lanes."""
        return sum(m.workers for m in self.methods)


def load_config_file(path: str | Path) -> FileConfig:
    """Load a TOML configuration file.

    Args:
        path: Path to the TOML file.

    Returns:
        The parsed FileConfig. Values are validated but not merged.

    Raises:
        ConfigError: If the file is missing, is not valid TOML, or
            contains invalid values.
    """
    config_path = Path(path)
    if not config_path.exists():
        msg = f"Configuration file not found: {config_path}"
        raise ConfigError(msg)

    try:
        with config_path.open("rb") as fh:
            data = tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        msg = f"Invalid TOML in {config_path}: {exc}"
        raise ConfigError(msg) from exc

    url = data.get("url")
    if url is not None and not isinstance(url, str):
        msg = f"url must be a string, got: {url!r}"
        raise ConfigError(msg)

    raw_methods = data.get("methods")
    if not isinstance(raw_methods, list) or not raw_methods:
        msg = f"{config_path} must define at least one [[methods]] entry"
        raise ConfigError(msg)

    return FileConfig(
        url=url,
        pacing_ms=_optional_int(data, "timeout_ms"),
        duration=_optional_int(data, "duration"),
        http_timeout=_optional_number(data, "http_timeout"),
        methods=tuple(_parse_method(entry, i) for i, entry in enumerate(raw_methods)),
    )


def resolve_settings(
    *,
    url: str = DEFAULT_URL,
    method: str = DEFAULT_METHOD,
    workers: int = DEFAULT_WORKERS,
    pacing_ms: int = DEFAULT_PACING_MS,
    duration: int = DEFAULT_DURATION,
    http_timeout: float = DEFAULT_HTTP_TIMEOUT,
    debug: bool = False,
    ping: bool = False,
    config_path: str | Path | None = None,
) -> RunSettings:
    """Merge CLI values with an optional configuration file.

    File values take precedence field by field. In file mode the method
    list comes from the file; otherwise a single lane is built from
    ``method`` and ``workers`` with no parameters.

    Args:
        url: Target endpoint from the CLI.
        method: Method name from the CLI.
        workers: Worker count from the CLI.
        pacing_ms: Pacing delay from the CLI.
        duration: Duration from the CLI.
        http_timeout: HTTP timeout from the CLI.
        debug: Debug flag (CLI only).
        ping: Ping diagnostic flag (CLI only).
        config_path: Optional TOML file path.

    Returns:
        Validated RunSettings.

    Raises:
        ConfigError: If the file cannot be loaded or a merged value is
            invalid.
    """
    if config_path is not None:
        file_config = load_config_file(config_path)
        settings = RunSettings(
            url=file_config.url if file_config.url is not None else url,
            pacing_ms=file_config.pacing_ms if file_config.pacing_ms is not None else pacing_ms,
            duration=file_config.duration if file_config.duration is not None else duration,
            http_timeout=(
                file_config.http_timeout
                if file_config.http_timeout is not None
                else http_timeout
            ),
            methods=file_config.methods,
            debug=debug,
            ping=ping,
            config_path=str(config_path),
        )
    else:
        settings = RunSettings(
            url=url,
            pacing_ms=pacing_ms,
            duration=duration,
            http_timeout=http_timeout,
            methods=(MethodConfig(method=method, workers=workers),),
            debug=debug,
            ping=ping,
        )

    validate_settings(settings)
    return settings


def validate_settings(settings: RunSettings) -> None:
    """Check that resolved settings describe a runnable test.

    Args:
        settings: Settings to validate.

    Raises:
        ConfigError: If any value is out of range.
    """
    parsed = urlparse(settings.url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        msg = f"url must be an http(s) URL, got: {settings.url!r}"
        raise ConfigError(msg)

    if settings.pacing_ms < 0:
        msg = f"timeout_ms must be >= 0, got: {settings.pacing_ms}"
        raise ConfigError(msg)

    if settings.duration < 0:
        msg = f"duration must be >= 0, got: {settings.duration}"
        raise ConfigError(msg)

    if settings.http_timeout <= 0:
        msg = f"http_timeout must be positive, got: {settings.http_timeout}"
        raise ConfigError(msg)

    if not settings.methods:
        msg = "at least one method must be configured"
        raise ConfigError(msg)

    for entry in settings.methods:
        if not entry.method:
            msg = "method name must not be empty"
            raise ConfigError(msg)
        if entry.workers < 1:
            msg = f"workers for {entry.method!r} must be >= 1, got: {entry.workers}"
            raise ConfigError(msg)


def _parse_method(entry: object, index: int) -> MethodConfig:
    """Build a MethodConfig from one ``[[methods]]`` table."""
    if not isinstance(entry, dict):
        msg = f"methods[{index}] must be a table, got: {entry!r}"
        raise ConfigError(msg)

    method = entry.get("method")
    if not isinstance(method, str) or not method:
        msg = f"methods[{index}].method must be a non-empty string"
        raise ConfigError(msg)

    workers = entry.get("workers")
    if isinstance(workers, bool) or not isinstance(workers, int):
        msg = f"methods[{index}].workers must be an integer, got: {workers!r}"
        raise ConfigError(msg)

    params = entry.get("params", [])
    if not isinstance(params, list):
        msg = f"methods[{index}].params must be an array, got: {params!r}"
        raise ConfigError(msg)

    try:
        json.dumps(params, allow_nan=False)
    except (TypeError, ValueError) as exc:
        msg = f"methods[{index}].params must hold only JSON values: {exc}"
        raise ConfigError(msg) from exc

    return MethodConfig(method=method, workers=workers, params=tuple(params))


def _optional_int(data: JsonObject, key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        msg = f"{key} must be an integer, got: {value!r}"
        raise ConfigError(msg)
    return value


def _optional_number(data: JsonObject, key: str) -> float | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int | float):
        msg = f"{key} must be a number, got: {value!r}"
        raise ConfigError(msg)
    return float(value)
