from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .utils import load_yaml_file, parse_env_bool, validate_url

_ENVIRONMENTS = ("dev", "prod")


@dataclass
class ScanSettings:
    extensions: list[str] = field(default_factory=list)
    include_hidden: bool = False
    batch_size: int = 100


@dataclass
class ClassifierSettings:
    """Where trained models and the training sample log live."""

    model_dir: Path = Path("/data/models")
    training_data: Path = Path("/data/training/training.csv")
    min_confidence: float = 0.0
    smoothing: float = 1.0


@dataclass
class JobSettings:
    max_workers: int = 4
    retained_jobs: int = 200
    max_move_batch: int = 1000


@dataclass
class NotificationSettings:
    targets: list[dict[str, Any]] = field(default_factory=list)
    queue_size: int = 256


@dataclass
class WatcherSettings:
    enabled: bool = False
    include: list[str] = field(default_factory=list)
    ignore: list[str] = field(default_factory=lambda: ["*.part", "*.tmp", "*.!qB"])
    debounce_seconds: float = 5.0
    reconcile_interval: int = 0


@dataclass
class ServerSettings:
    host: str = "127.0.0.1"
    port: int = 5000


@dataclass
class Settings:
    environment: str = "prod"
    origin_dir: Path = Path("/data/inbox")
    destination_dir: Path = Path("/data/sorted")
    database_path: Path = Path("/data/filecat.db")
    categories: list[str] = field(default_factory=list)
    scan: ScanSettings = field(default_factory=ScanSettings)
    classifier: ClassifierSettings = field(default_factory=ClassifierSettings)
    jobs: JobSettings = field(default_factory=JobSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    file_watcher: WatcherSettings = field(default_factory=WatcherSettings)
    server: ServerSettings = field(default_factory=ServerSettings)


@dataclass
class RetryPolicy:
    max_retries: int = 3
    backoff_multiplier: float = 2.0
    initial_delay: float = 1.0


@dataclass
class ClientSettings:
    base_url: str = "http://localhost:5000/"
    timeout: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    reconnect_delays: list[float] = field(default_factory=lambda: [0.0, 2.0, 5.0, 10.0])
    cache_capacity: int = 0


@dataclass
class AppConfig:
    settings: Settings
    client: ClientSettings = field(default_factory=ClientSettings)


def _ensure_mapping(value: Any, *, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{field_name}' must be provided as a mapping when specified")
    return value


def _ensure_string_list(value: Any, *, field_name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ValueError(f"'{field_name}' must be provided as a list of strings")
    result: list[str] = []
    for index, entry in enumerate(value):
        if not isinstance(entry, str):
            raise ValueError(f"'{field_name}[{index}]' must be a string")
        cleaned = entry.strip()
        if cleaned:
            result.append(cleaned)
    return result


def _positive_int(value: Any, *, field_name: str, default: int, minimum: int = 1) -> int:
    if value is None:
        return default
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' must be an integer") from exc
    if number < minimum:
        raise ValueError(f"'{field_name}' must be >= {minimum}")
    return number


def _non_negative_float(value: Any, *, field_name: str, default: float) -> float:
    if value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{field_name}' must be a number") from exc
    if number < 0:
        raise ValueError(f"'{field_name}' must not be negative")
    return number


def _normalize_extension(value: str, *, field_name: str) -> str:
    ext = value.lower()
    if not ext.startswith("."):
        ext = f".{ext}"
    if len(ext) < 2:
        raise ValueError(f"'{field_name}' contains an empty extension")
    return ext


def _build_scan_settings(data: dict[str, Any]) -> ScanSettings:
    data = _ensure_mapping(data, field_name="settings.scan")
    extensions = [
        _normalize_extension(ext, field_name=f"settings.scan.extensions[{index}]")
        for index, ext in enumerate(_ensure_string_list(data.get("extensions"), field_name="settings.scan.extensions"))
    ]
    batch_size = _positive_int(data.get("batch_size"), field_name="settings.scan.batch_size", default=100, minimum=10)
    if batch_size > 1000:
        raise ValueError("'settings.scan.batch_size' must be <= 1000")
    return ScanSettings(
        extensions=extensions,
        include_hidden=bool(data.get("include_hidden", False)),
        batch_size=batch_size,
    )


def _build_classifier_settings(data: dict[str, Any], base_dir: Path) -> ClassifierSettings:
    data = _ensure_mapping(data, field_name="settings.classifier")
    min_confidence = _non_negative_float(
        data.get("min_confidence"), field_name="settings.classifier.min_confidence", default=0.0
    )
    if min_confidence > 1.0:
        raise ValueError("'settings.classifier.min_confidence' must be between 0 and 1")
    smoothing = _non_negative_float(data.get("smoothing"), field_name="settings.classifier.smoothing", default=1.0)
    if smoothing <= 0:
        raise ValueError("'settings.classifier.smoothing' must be greater than 0")
    return ClassifierSettings(
        model_dir=Path(data.get("model_dir", base_dir / "models")).expanduser(),
        training_data=Path(data.get("training_data", base_dir / "training" / "training.csv")).expanduser(),
        min_confidence=min_confidence,
        smoothing=smoothing,
    )


def _build_job_settings(data: dict[str, Any]) -> JobSettings:
    data = _ensure_mapping(data, field_name="settings.jobs")
    return JobSettings(
        max_workers=_positive_int(data.get("max_workers"), field_name="settings.jobs.max_workers", default=4),
        retained_jobs=_positive_int(data.get("retained_jobs"), field_name="settings.jobs.retained_jobs", default=200),
        max_move_batch=_positive_int(
            data.get("max_move_batch"), field_name="settings.jobs.max_move_batch", default=1000
        ),
    )


def _build_notification_settings(data: dict[str, Any]) -> NotificationSettings:
    data = _ensure_mapping(data, field_name="settings.notifications")
    targets_raw = data.get("targets", []) or []
    if not isinstance(targets_raw, list):
        raise ValueError("'settings.notifications.targets' must be a list of mappings")
    targets: list[dict[str, Any]] = []
    for index, entry in enumerate(targets_raw):
        if not isinstance(entry, dict):
            raise ValueError(f"'settings.notifications.targets[{index}]' must be a mapping")
        url = entry.get("url")
        if entry.get("type", "webhook") == "webhook" and url and not validate_url(url):
            raise ValueError(f"'settings.notifications.targets[{index}].url' must be an http(s) URL")
        targets.append(dict(entry))
    return NotificationSettings(
        targets=targets,
        queue_size=_positive_int(data.get("queue_size"), field_name="settings.notifications.queue_size", default=256),
    )


def _build_watcher_settings(data: dict[str, Any]) -> WatcherSettings:
    data = _ensure_mapping(data, field_name="settings.file_watcher")
    defaults = WatcherSettings()
    ignore = data.get("ignore")
    return WatcherSettings(
        enabled=bool(data.get("enabled", False)),
        include=_ensure_string_list(data.get("include"), field_name="settings.file_watcher.include"),
        ignore=(
            _ensure_string_list(ignore, field_name="settings.file_watcher.ignore") if ignore is not None else defaults.ignore
        ),
        debounce_seconds=_non_negative_float(
            data.get("debounce_seconds"), field_name="settings.file_watcher.debounce_seconds", default=5.0
        ),
        reconcile_interval=_positive_int(
            data.get("reconcile_interval"), field_name="settings.file_watcher.reconcile_interval", default=0, minimum=0
        ),
    )


def _build_server_settings(data: dict[str, Any]) -> ServerSettings:
    data = _ensure_mapping(data, field_name="settings.server")
    port = _positive_int(data.get("port"), field_name="settings.server.port", default=5000)
    if port > 65535:
        raise ValueError("'settings.server.port' must be <= 65535")
    return ServerSettings(host=str(data.get("host", "127.0.0.1")), port=port)


def _env_path(name: str, fallback: Any) -> Path:
    raw = os.environ.get(name)
    value = raw.strip() if raw and raw.strip() else fallback
    return Path(value).expanduser()


def _build_settings(data: dict[str, Any]) -> Settings:
    data = _ensure_mapping(data, field_name="settings")

    environment = str(os.environ.get("FILECAT_ENV") or data.get("environment", "prod")).strip().lower()
    if environment not in _ENVIRONMENTS:
        raise ValueError(f"'settings.environment' must be one of {', '.join(_ENVIRONMENTS)}")

    database_path = _env_path("FILECAT_DATABASE", data.get("database_path", "/data/filecat.db"))
    file_watcher = _build_watcher_settings(data.get("file_watcher"))
    watch_override = parse_env_bool(os.environ.get("FILECAT_WATCH"))
    if watch_override is not None:
        file_watcher.enabled = watch_override

    categories = _ensure_string_list(data.get("categories"), field_name="settings.categories")

    return Settings(
        environment=environment,
        origin_dir=_env_path("FILECAT_ORIGIN_DIR", data.get("origin_dir", "/data/inbox")),
        destination_dir=_env_path("FILECAT_DESTINATION_DIR", data.get("destination_dir", "/data/sorted")),
        database_path=database_path,
        categories=sorted(set(categories)),
        scan=_build_scan_settings(data.get("scan")),
        classifier=_build_classifier_settings(data.get("classifier"), database_path.parent),
        jobs=_build_job_settings(data.get("jobs")),
        notifications=_build_notification_settings(data.get("notifications")),
        file_watcher=file_watcher,
        server=_build_server_settings(data.get("server")),
    )


def _build_client_settings(data: dict[str, Any]) -> ClientSettings:
    data = _ensure_mapping(data, field_name="client")
    base_url = str(data.get("base_url", "http://localhost:5000/")).strip()
    if not validate_url(base_url):
        raise ValueError("'client.base_url' must be an http(s) URL")
    if not base_url.endswith("/"):
        base_url += "/"

    retry_raw = _ensure_mapping(data.get("retry"), field_name="client.retry")
    retry = RetryPolicy(
        max_retries=_positive_int(
            retry_raw.get("max_retries"), field_name="client.retry.max_retries", default=3, minimum=0
        ),
        backoff_multiplier=_non_negative_float(
            retry_raw.get("backoff_multiplier"), field_name="client.retry.backoff_multiplier", default=2.0
        ),
        initial_delay=_non_negative_float(
            retry_raw.get("initial_delay"), field_name="client.retry.initial_delay", default=1.0
        ),
    )

    delays_raw = data.get("reconnect_delays")
    if delays_raw is None:
        reconnect_delays = ClientSettings().reconnect_delays
    elif isinstance(delays_raw, list) and delays_raw:
        reconnect_delays = [
            _non_negative_float(value, field_name=f"client.reconnect_delays[{index}]", default=0.0)
            for index, value in enumerate(delays_raw)
        ]
    else:
        raise ValueError("'client.reconnect_delays' must be a non-empty list of seconds")

    timeout = _non_negative_float(data.get("timeout"), field_name="client.timeout", default=30.0)
    if timeout == 0:
        raise ValueError("'client.timeout' must be greater than 0")

    return ClientSettings(
        base_url=base_url,
        timeout=timeout,
        retry=retry,
        reconnect_delays=reconnect_delays,
        cache_capacity=_positive_int(
            data.get("cache_capacity"), field_name="client.cache_capacity", default=0, minimum=0
        ),
    )


def build_config(data: dict[str, Any]) -> AppConfig:
    data = _ensure_mapping(data, field_name="<root>")
    return AppConfig(
        settings=_build_settings(data.get("settings")),
        client=_build_client_settings(data.get("client")),
    )


def load_config(path: Path) -> AppConfig:
    return build_config(load_yaml_file(path))
