"""Configuration system for missionbar."""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit


@dataclass
class MonitorConfig:
    """Refresh scheduling configuration."""

    interval: float = 2.0  # Seconds between tick starts
    tick_timeout: float = 0.0  # Max seconds for one tick (0 = no timeout)


@dataclass
class ProcessesConfig:
    """Process sampling configuration."""

    # Processes carrying this bundle identifier are never killable
    self_bundle_id: str = "com.missionbar.app"


@dataclass
class MemoryConfig:
    """Memory estimation heuristic.

    When virtual > resident, the estimate is
    resident + min((virtual - resident) / virtual_divisor, resident / resident_divisor).
    """

    virtual_divisor: int = 8
    resident_divisor: int = 4


def _default_search_roots() -> list[str]:
    return ["/Applications", "/System/Applications", "~/Applications"]


def _default_protected_prefixes() -> list[str]:
    return ["/System/", "/usr/"]


@dataclass
class ApplicationsConfig:
    """Installed application scanning configuration."""

    search_roots: list[str] = field(default_factory=_default_search_roots)
    protected_prefixes: list[str] = field(default_factory=_default_protected_prefixes)
    bundle_extension: str = ".app"

    def expanded_roots(self) -> list[Path]:
        """Search roots with ``~`` expanded, in configured order."""
        return [Path(root).expanduser() for root in self.search_roots]


@dataclass
class LoggingConfig:
    """Log file configuration."""

    level: str = "info"
    log_max_bytes: int = 5 * 1024 * 1024  # Max log file size (5MB)
    log_backup_count: int = 3  # Number of backup log files to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


_SECTIONS = ["monitor", "processes", "memory", "applications", "logging"]


@dataclass
class Config:
    """Main configuration container."""

    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    processes: ProcessesConfig = field(default_factory=ProcessesConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    applications: ApplicationsConfig = field(default_factory=ApplicationsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "missionbar"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "missionbar"

    @property
    def log_path(self) -> Path:
        """Log file path."""
        return self.state_dir / "missionbar.log"

    def dumps(self) -> str:
        """Render every section as a TOML document."""
        doc = tomlkit.document()
        for name in _SECTIONS:
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())
        return tomlkit.dumps(doc)

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.dumps())

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions, so Config() and
        Config.load() on a missing file are identical.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f).unwrap()
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        return cls(
            monitor=_load_monitor_config(data.get("monitor", {})),
            processes=_load_processes_config(data.get("processes", {})),
            memory=_load_memory_config(data.get("memory", {})),
            applications=_load_applications_config(data.get("applications", {})),
            logging=_load_logging_config(data.get("logging", {})),
        )


def _number(data: dict, key: str, default: float) -> float:
    """A numeric value from a config table. TOML booleans are not numbers."""
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    return value


def _integer(data: dict, key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return value


def _string(data: dict, key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {value!r}")
    return value


def _string_list(data: dict, key: str, default: list[str]) -> list[str]:
    value = data.get(key, default)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{key} must be a list of strings, got {value!r}")
    return list(value)


def _load_monitor_config(data: dict) -> MonitorConfig:
    """Load monitor config, validating the interval."""
    defaults = MonitorConfig()
    interval = _number(data, "interval", defaults.interval)
    tick_timeout = _number(data, "tick_timeout", defaults.tick_timeout)

    if interval <= 0:
        raise ValueError(f"interval must be > 0, got {interval}")
    if tick_timeout < 0:
        raise ValueError(f"tick_timeout must be >= 0, got {tick_timeout}")

    return MonitorConfig(interval=float(interval), tick_timeout=float(tick_timeout))


def _load_processes_config(data: dict) -> ProcessesConfig:
    d = ProcessesConfig()
    return ProcessesConfig(self_bundle_id=_string(data, "self_bundle_id", d.self_bundle_id))


def _load_memory_config(data: dict) -> MemoryConfig:
    """Load memory heuristic config. Divisors must be positive."""
    defaults = MemoryConfig()
    virtual_divisor = _integer(data, "virtual_divisor", defaults.virtual_divisor)
    resident_divisor = _integer(data, "resident_divisor", defaults.resident_divisor)

    if virtual_divisor < 1:
        raise ValueError(f"virtual_divisor must be >= 1, got {virtual_divisor}")
    if resident_divisor < 1:
        raise ValueError(f"resident_divisor must be >= 1, got {resident_divisor}")

    return MemoryConfig(virtual_divisor=virtual_divisor, resident_divisor=resident_divisor)


def _load_applications_config(data: dict) -> ApplicationsConfig:
    """Load application scanner config."""
    defaults = ApplicationsConfig()
    extension = _string(data, "bundle_extension", defaults.bundle_extension)
    if not extension.startswith("."):
        raise ValueError(f"bundle_extension must start with '.', got {extension!r}")

    return ApplicationsConfig(
        search_roots=_string_list(data, "search_roots", defaults.search_roots),
        protected_prefixes=_string_list(data, "protected_prefixes", defaults.protected_prefixes),
        bundle_extension=extension,
    )


def _load_logging_config(data: dict) -> LoggingConfig:
    """Load logging config."""
    defaults = LoggingConfig()
    level = _string(data, "level", defaults.level)
    valid_levels = {"debug", "info", "warning", "error"}
    if level not in valid_levels:
        raise ValueError(f"Invalid log level: {level!r}. Must be one of {valid_levels}")

    return LoggingConfig(
        level=level,
        log_max_bytes=_integer(data, "log_max_bytes", defaults.log_max_bytes),
        log_backup_count=_integer(data, "log_backup_count", defaults.log_backup_count),
    )
