"""Human console output and structured file logging.

Two separate channels:

- The CLI talks to people through the Rich helpers here (timestamped,
  colored, one line per message, with an icon per kind of outcome).
- Library code logs events with ``structlog.get_logger()``. After
  configure() those events go to a rotating JSON-lines file only, so they
  never mix with console output.
"""

from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from rich.console import Console

if TYPE_CHECKING:
    from missionbar.config import Config

_console = Console(highlight=False)


class Icon:
    """Rich markup for the outcome shown at the start of a console line."""

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    SIGNAL = "[yellow]⚡[/]"
    TRASH = "🗑"
    REFRESH = "[cyan]↻[/]"


_LEVEL_TAGS = {
    "info": "[bright_blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


def log(level: str, msg: str, icon: str = "") -> None:
    """Print one console line: time, level tag, optional icon, message.

    Args:
        level: "info", "warn" or "error"
        msg: Message text, Rich markup allowed
        icon: One of the Icon constants, or empty
    """
    stamp = datetime.now().strftime("%H:%M:%S")
    tag = _LEVEL_TAGS.get(level, f"[{level}]")
    parts = [f"[dim]{stamp}[/]", tag]
    if icon:
        parts.append(icon)
    parts.append(msg)
    _console.print(" ".join(parts))


def info(msg: str, icon: str = "") -> None:
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    log("error", msg, icon)


# Outcomes the CLI reports


def signal_sent(name: str, pid: int, signal_name: str) -> None:
    """A termination signal was delivered."""
    info(f"Sent [bold]{signal_name}[/] to [cyan]{name}[/] [dim]({pid})[/]", Icon.SIGNAL)


def action_rejected(reason: str) -> None:
    """An action was refused before any OS call."""
    warn(f"Rejected: {reason}")


def action_failed(reason: str) -> None:
    """The OS refused or failed an action."""
    error(reason, Icon.FAIL)


def moved_to_trash(name: str, path: str) -> None:
    info(f"Moved [cyan]{name}[/] to Trash [dim]({path})[/]", Icon.TRASH)


def refresh_summary(process_count: int, app_count: int) -> None:
    """One line per completed refresh in `missionbar watch`."""
    info(
        f"[cyan]{process_count}[/] processes, [cyan]{app_count}[/] applications",
        Icon.REFRESH,
    )


def config_created(path: str) -> None:
    info(f"Created config at [cyan]{path}[/]", Icon.OK)


def config_exists(path: str) -> None:
    warn(f"Config already exists at [cyan]{path}[/] (use --force to overwrite)")


def _tag_source(source: str) -> structlog.types.Processor:
    """Processor adding ``source`` to every event rendered by the file handler."""

    def processor(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict.setdefault("source", source)
        return event_dict

    return processor


def _file_handler(config: Config, level: int) -> logging.Handler:
    config.state_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        config.log_path,
        maxBytes=config.logging.log_max_bytes,
        backupCount=config.logging.log_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(),
            foreign_pre_chain=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                structlog.processors.add_log_level,
                structlog.processors.format_exc_info,
            ],
        )
    )
    return handler


def configure(config: Config) -> None:
    """Route structlog events to ``config.log_path`` as JSON lines.

    Replaces any handlers already on the stdlib root logger, so calling it
    again (for example once per CLI invocation in tests) does not duplicate
    output.
    """
    level = logging.getLevelName(config.logging.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(_file_handler(config, level))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
            structlog.processors.add_log_level,
            _tag_source("missionbar"),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
