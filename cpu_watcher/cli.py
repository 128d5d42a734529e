"""Command-line interface for CPU Watcher."""

import logging
import os
import signal
import sys
from dataclasses import replace
from typing import Optional

import click
import daemon
import structlog
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cpu_watcher.config import ConfigError, ConfigManager, WatcherConfig, mask_secrets
from cpu_watcher.core.engine import AlertEngine
from cpu_watcher.core.message import format_started
from cpu_watcher.core.sampler import PsutilSampler
from cpu_watcher.notifiers.telegram import AppriseNotifier, LogNotifier

console = Console()
logger = structlog.get_logger()


def get_app_paths(paths_config: Optional[dict] = None) -> tuple[str, str]:
    """Get log and PID file paths based on user permissions and config.

    Args:
        paths_config: Optional ``paths`` section of the configuration

    Returns:
        tuple: (log_file_path, pid_file_path)
    """
    paths_config = paths_config or {}

    if os.getuid() == 0:
        default_log_path = "/var/log/cpu-watcher/cpu-watcher.log"
        default_pid_path = "/var/run/cpu-watcher/cpu-watcher.pid"
    else:
        home = os.path.expanduser("~")
        default_log_path = os.path.join(home, ".local/log/cpu-watcher/cpu-watcher.log")
        default_pid_path = os.path.join(home, ".local/run/cpu-watcher/cpu-watcher.pid")

    log_path = os.path.expanduser(paths_config.get("log_file", default_log_path))
    pid_path = os.path.expanduser(paths_config.get("pid_file", default_pid_path))
    return log_path, pid_path


def create_pid_file(pid_file: str) -> Optional[str]:
    """Write the current process id to the PID file."""
    try:
        os.makedirs(os.path.dirname(pid_file), mode=0o755, exist_ok=True)
        with open(pid_file, "w", encoding="utf-8") as f:
            f.write(str(os.getpid()))
        return pid_file
    except OSError as e:
        logger.error("Failed to create PID file", error=str(e), pid_file=pid_file)
        return None


def remove_pid_file(pid_file: str) -> None:
    """Remove PID file."""
    try:
        if os.path.exists(pid_file):
            os.remove(pid_file)
    except OSError as e:
        logger.warning("Failed to remove PID file", error=str(e))


def read_pid_file(pid_file: str) -> int:
    with open(pid_file, "r", encoding="utf-8") as f:
        return int(f.read().strip())


def setup_logging(settings: WatcherConfig) -> None:
    """Set up structlog on top of the standard library logger.

    Args:
        settings: Validated watcher settings
    """
    log_level = settings.log_level
    base_processors = [
        structlog.stdlib.filter_by_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file == "stdout":
        processors = [
            *base_processors,
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]
    else:
        log_path, _ = get_app_paths({"log_file": settings.log_file})
        try:
            os.makedirs(os.path.dirname(log_path), mode=0o755, exist_ok=True)
            handlers.append(logging.FileHandler(log_path))
        except OSError:
            logger.warning(
                "Cannot write to log file, falling back to console only",
                log_path=log_path,
            )
        processors = [*base_processors, structlog.processors.JSONRenderer()]

    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(message)s",
        handlers=handlers,
        force=True,
    )
    # apprise logs every delivery attempt at INFO
    logging.getLogger("apprise").setLevel(logging.WARNING)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logger.debug("Logging initialized", log_level=log_level, log_file=settings.log_file)


def load_manager(config_path: Optional[str]) -> ConfigManager:
    """Load configuration or exit with a readable error."""
    try:
        return ConfigManager(config_path)
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)


def load_settings(config_path: Optional[str]) -> WatcherConfig:
    """Build settings or exit before anything starts."""
    try:
        return load_manager(config_path).build()
    except ConfigError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)


def get_pid_path(config_path: Optional[str]) -> str:
    _, pid_path = get_app_paths(load_manager(config_path).get_config().get("paths"))
    return pid_path


def build_engine(settings: WatcherConfig, dry_run: bool = False) -> AlertEngine:
    """Wire the sampler, notifier and engine from settings."""
    notifier = LogNotifier() if dry_run else AppriseNotifier()
    return AlertEngine(
        sampler=PsutilSampler(),
        notifier=notifier,
        destination=settings.destinations,
        threshold=settings.threshold,
        check_interval=settings.check_interval,
        cooldown_seconds=settings.cooldown_seconds,
        gc_factor=settings.gc_factor,
    )


def watch(settings: WatcherConfig, dry_run: bool = False) -> None:
    """Run the watcher until interrupted."""
    _, pid_path = get_app_paths(settings.paths)
    create_pid_file(pid_path)
    try:
        build_engine(settings, dry_run).run()
    finally:
        logger.info("Exiting watcher")
        remove_pid_file(pid_path)


@click.group()
def cli():
    """CPU Watcher - alert when a process hogs the CPU."""
    pass


@cli.command("version", help="Show version information")
def show_version():
    """Show version information."""
    from cpu_watcher import __version__

    console.print(f"[blue]CPU Watcher version {__version__}[/blue]")


config_option = click.option(
    "--config", "-c", type=click.Path(exists=True), help="Path to configuration file"
)


@cli.command()
@config_option
@click.option(
    "--daemon", "-d", "as_daemon", is_flag=True, help="Detach and run in the background"
)
@click.option("--dry-run", is_flag=True, help="Log alerts instead of sending them")
def start(config: Optional[str], as_daemon: bool, dry_run: bool):
    """Start watching process CPU usage."""
    settings = load_settings(config)

    if not as_daemon:
        setup_logging(settings)
        watch(settings, dry_run)
        return

    log_path, _ = get_app_paths(settings.paths)
    os.makedirs(os.path.dirname(log_path), mode=0o755, exist_ok=True)
    click.echo("Starting cpu-watcher in the background...")
    context = daemon.DaemonContext(
        working_directory=os.getcwd(),
        umask=0o002,
        detach_process=True,
        signal_map={signal.SIGTERM: lambda signum, frame: sys.exit(0)},
    )
    with context:
        if settings.log_file == "stdout":
            settings = replace(settings, log_file=log_path)
        setup_logging(settings)
        watch(settings, dry_run)


@cli.command()
@config_option
@click.option("--dry-run", is_flag=True, help="Log alerts instead of sending them")
def check(config: Optional[str], dry_run: bool):
    """Run a single evaluation pass and print what happened."""
    settings = load_settings(config)
    setup_logging(settings)
    engine = build_engine(settings, dry_run)
    engine.sleep(engine.check_interval)
    result = engine.tick()

    click.echo(f"Processes sampled: {result.seen}")
    click.echo(f"Over threshold: {result.over_threshold}")
    click.echo(f"Alerts sent: {len(result.notified)}")
    if result.failed:
        click.echo(f"Failed: {', '.join(str(pid) for pid in result.failed)}")
        sys.exit(1)


@cli.command()
@config_option
@click.option("--limit", "-n", default=10, show_default=True, help="Rows to show")
@click.option(
    "--threshold", "-t", type=float, help="Highlight processes at or above this CPU%"
)
def processes(config: Optional[str], limit: int, threshold: Optional[float]):
    """Show the processes using the most CPU."""
    if threshold is None:
        try:
            threshold = load_manager(config).watcher_setting("threshold", float)
        except ConfigError as e:
            click.echo(f"Configuration error: {e}", err=True)
            sys.exit(1)

    sampler = PsutilSampler(prime_delay=1.0)
    top = sorted(sampler.snapshot(), key=lambda p: p.cpu_percent, reverse=True)[:limit]

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("PID", justify="right", style="cyan")
    table.add_column("Name", style="cyan")
    table.add_column("CPU", justify="right")
    table.add_column("Started")

    for proc in top:
        style = "bold red" if proc.cpu_percent >= threshold else "green"
        table.add_row(
            str(proc.pid),
            proc.name,
            f"[{style}]{proc.cpu_percent:.1f}%[/{style}]",
            format_started(proc),
        )

    console.print(
        Panel(
            table,
            title=f"Top processes (threshold {threshold:.1f}%)",
            border_style="blue",
        )
    )


@cli.command()
@config_option
def stop(config: Optional[str]):
    """Stop the background watcher."""
    pid_path = get_pid_path(config)
    try:
        os.kill(read_pid_file(pid_path), signal.SIGTERM)
        click.echo("Stopped cpu-watcher.")
    except (FileNotFoundError, ValueError):
        click.echo("cpu-watcher is not running.")
    except ProcessLookupError:
        click.echo("cpu-watcher is not running.")
        remove_pid_file(pid_path)


@cli.command()
@config_option
def status(config: Optional[str]):
    """Show whether the watcher is running."""
    pid_path = get_pid_path(config)
    try:
        os.kill(read_pid_file(pid_path), 0)
        click.echo("cpu-watcher is running.")
    except (FileNotFoundError, ValueError):
        click.echo("cpu-watcher is not running.")
    except ProcessLookupError:
        click.echo("cpu-watcher is not running.")
        remove_pid_file(pid_path)


@cli.group("config")
def config_group():
    """Manage configuration."""
    pass


@config_group.command("show")
@config_option
def show_config(config: Optional[str]):
    """Show the merged configuration with secrets masked."""
    merged = load_manager(config).get_config()
    click.echo(
        yaml.safe_dump(mask_secrets(merged), default_flow_style=False, sort_keys=False)
    )


@config_group.command("validate")
@config_option
def validate_config(config: Optional[str]):
    """Validate configuration file and environment."""
    try:
        load_manager(config).build()
    except ConfigError as e:
        click.echo(f"Configuration is invalid: {e}")
        sys.exit(1)
    click.echo("Configuration is valid.")


if __name__ == "__main__":
    cli()
