"""CLI commands for missionbar."""

import asyncio
import json

import click

from missionbar.config import Config
from missionbar.formatting import format_cpu, format_file_size, format_memory
from missionbar.models import Snapshot
from missionbar.monitor import SystemMonitor
from missionbar.query import AppSort, ProcessSort, filter_applications, filter_processes


def make_monitor(config: Config) -> SystemMonitor:
    """Build the monitor used by commands."""
    return SystemMonitor(config)


async def _take_snapshot(monitor: SystemMonitor, delay: float) -> Snapshot:
    """Refresh twice, `delay` seconds apart, so CPU% has an interval to measure."""
    await monitor.refresh()
    if delay > 0:
        await asyncio.sleep(delay)
        return await monitor.refresh()
    return monitor.snapshot


def _snapshot(config: Config, delay: float = 0.0) -> tuple[SystemMonitor, Snapshot]:
    monitor = make_monitor(config)
    return monitor, asyncio.run(_take_snapshot(monitor, delay))


@click.group()
@click.version_option(package_name="missionbar")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to config.toml",
)
@click.pass_context
def main(ctx, config_path: str | None) -> None:
    """Monitor running applications and installed bundles on macOS."""
    from pathlib import Path

    from missionbar.logging import configure

    try:
        config = Config.load(Path(config_path) if config_path else None)
    except ValueError as e:
        raise click.ClickException(str(e)) from e

    configure(config)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["config_path"] = Path(config_path) if config_path else config.config_path


@main.command()
@click.option(
    "--sort",
    type=click.Choice([s.value for s in ProcessSort]),
    default=ProcessSort.NAME.value,
    help="Sort order",
)
@click.option("--search", "-s", default=None, help="Only names containing this text")
@click.option("--delay", default=1.0, show_default=True, help="Seconds between CPU samples")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_context
def processes(ctx, sort: str, search: str | None, delay: float, as_json: bool) -> None:
    """List running applications with CPU and memory usage."""
    _, snapshot = _snapshot(ctx.obj["config"], delay)
    rows = filter_processes(snapshot.processes, search=search, sort=ProcessSort(sort))

    if as_json:
        click.echo(json.dumps([p.to_dict() for p in rows], indent=2))
        return
    if not rows:
        click.echo("No matching processes." if search else "No processes found.")
        return

    click.echo(f"{'PID':>7}  {'Name':30}  {'CPU':>7}  {'Memory':>10}")
    click.echo("-" * 60)
    for p in rows:
        marker = "" if p.killable else " *"
        click.echo(
            f"{p.pid:>7}  {p.name[:30]:30}  {format_cpu(p.cpu_percent):>7}  "
            f"{format_memory(p.memory_bytes):>10}{marker}"
        )


@main.command()
@click.option(
    "--sort",
    type=click.Choice([s.value for s in AppSort]),
    default=AppSort.NAME.value,
    help="Sort order",
)
@click.option("--search", "-s", default=None, help="Only names containing this text")
@click.option("--user-only", is_flag=True, help="Only applications that can be uninstalled")
@click.option("--json", "as_json", is_flag=True, help="Output JSON")
@click.pass_context
def apps(ctx, sort: str, search: str | None, user_only: bool, as_json: bool) -> None:
    """List installed applications with on-disk size."""
    _, snapshot = _snapshot(ctx.obj["config"])
    rows = filter_applications(
        snapshot.applications, search=search, sort=AppSort(sort), user_only=user_only
    )

    if as_json:
        click.echo(json.dumps([a.to_dict() for a in rows], indent=2))
        return
    if not rows:
        click.echo("No matching applications." if search else "No applications found.")
        return

    click.echo(f"{'Name':30}  {'Version':12}  {'Size':>10}  {'Status':8}")
    click.echo("-" * 68)
    for a in rows:
        status = "running" if a.is_running else ""
        click.echo(
            f"{a.name[:30]:30}  {(a.version or '-')[:12]:12}  "
            f"{format_file_size(a.size_bytes):>10}  {status:8}"
        )
    click.echo(f"\n{len(rows)} apps")


@main.command()
@click.argument("pid", type=int)
@click.option("--force", "-f", is_flag=True, help="Kill immediately (SIGKILL)")
@click.pass_context
def terminate(ctx, pid: int, force: bool) -> None:
    """Terminate a running application by PID."""
    from missionbar import logging as console
    from missionbar.actions import ActionFailed, PreconditionError

    monitor, _ = _snapshot(ctx.obj["config"])
    process = monitor.find_process(pid)
    if process is None:
        raise click.ClickException(f"No listed application with PID {pid}")

    try:
        if force:
            monitor.force_kill(process)
        else:
            monitor.terminate(process)
    except PreconditionError as e:
        console.action_rejected(str(e))
        ctx.exit(2)
    except ActionFailed as e:
        console.action_failed(str(e))
        ctx.exit(1)

    console.signal_sent(process.name, process.pid, "SIGKILL" if force else "SIGTERM")


@main.command()
@click.argument("target")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def uninstall(ctx, target: str, yes: bool) -> None:
    """Move an application to the Trash (by bundle identifier or path)."""
    import os

    from missionbar import logging as console
    from missionbar.actions import ActionFailed, PreconditionError

    monitor, _ = _snapshot(ctx.obj["config"])
    app = monitor.find_application(target) or monitor.find_application(os.path.abspath(target))
    if app is None:
        raise click.ClickException(f"No installed application matches {target!r}")

    if not yes:
        click.confirm(f"Move {app.name} ({app.path}) to the Trash?", abort=True)

    try:
        asyncio.run(monitor.uninstall(app))
    except PreconditionError as e:
        console.action_rejected(str(e))
        ctx.exit(2)
    except ActionFailed as e:
        console.action_failed(str(e))
        ctx.exit(1)

    console.moved_to_trash(app.name, app.path)


@main.command()
@click.option("--interval", type=float, default=None, help="Seconds between refreshes")
@click.option("--count", "-n", type=int, default=0, help="Stop after N refreshes (0 = forever)")
@click.pass_context
def watch(ctx, interval: float | None, count: int) -> None:
    """Refresh periodically and print a summary line per refresh."""
    from missionbar import logging as console

    config = ctx.obj["config"]
    if interval is not None:
        if interval <= 0:
            raise click.BadParameter("must be > 0", param_hint="--interval")
        config.monitor.interval = interval

    async def run() -> None:
        done = asyncio.Event()
        seen = 0

        def on_snapshot(snapshot: Snapshot) -> None:
            nonlocal seen
            if snapshot.is_loading or done.is_set():
                return
            seen += 1
            console.refresh_summary(len(snapshot.processes), len(snapshot.applications))
            if count and seen >= count:
                done.set()

        monitor = make_monitor(config)
        monitor.subscribe(on_snapshot)
        async with monitor:
            await done.wait()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass


@main.group()
def config() -> None:
    """Manage the configuration file."""


@config.command("init")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def config_init(ctx, force: bool) -> None:
    """Write the default configuration file."""
    from missionbar import logging as console

    defaults = Config()
    path = ctx.obj["config_path"]
    if path.exists() and not force:
        console.config_exists(str(path))
        return
    defaults.save(path)
    console.config_created(str(path))


@config.command("show")
@click.pass_context
def config_show(ctx) -> None:
    """Print the effective configuration as TOML."""
    click.echo(ctx.obj["config"].dumps())
