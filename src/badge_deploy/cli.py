import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel

from . import ops
from .config import Config, ConfigError
from .constants import APP_NAME
from .github import GitHubAPIError

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Configures the logging subsystem.

    Args:
        verbose (bool): If True, DEBUG records are emitted as well.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    # Always log to stderr so stdout stays usable for `render`.
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)

    logger.handlers.clear()
    logger.addHandler(stream_handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def _load_config(args: argparse.Namespace) -> Config:
    cfg = Config.load(config_path=args.config)
    cfg.apply_overrides(
        environment=args.environment,
        version=args.version,
        branch=getattr(args, "branch", None),
        repo=getattr(args, "repo", None),
        source=getattr(args, "source", None),
    )
    return cfg


def run_publish(cfg: Config) -> int:
    """Runs the publish pipeline and reports the outcome.

    Returns:
        int: The process exit code.
    """
    cfg.validate()
    run = cfg.run

    console.print(
        Panel(
            f"[bold]Environment:[/bold] {run.environment}\n"
            f"[bold]Version:[/bold]     {run.version}\n"
            f"[bold]Repository:[/bold]  {cfg.target_owner}/{cfg.target_name}\n"
            f"[bold]Branch:[/bold]      {run.branch}\n"
            f"[bold]Badge:[/bold]       {cfg.badge_path}",
            title="Badge Deploy",
            expand=False,
        )
    )

    result = ops.publish_badge(cfg)

    if result.status is ops.PublishStatus.UNCHANGED:
        console.print(
            f"[bold yellow]SKIPPED:[/bold yellow] Version {run.version} "
            "is already published."
        )
        return 0
    if result.status is ops.PublishStatus.MERGED:
        console.print(
            f"[bold green]SUCCESS:[/bold green] Badge updated from "
            f"{result.previous_version or 'none'} to {run.version} "
            f"(PR #{result.pr_number}, attempt {result.attempts})."
        )
        return 0

    console.print(
        f"[bold red]ERROR:[/bold red] PR #{result.pr_number} could not be merged "
        f"after {cfg.pull_request.max_merge_attempts} attempts."
    )
    return 1


def run_render(cfg: Config, output: Path | None) -> int:
    """Renders the badge locally without touching the network."""
    run = cfg.run
    missing = [name for name in ("environment", "version") if not getattr(run, name)]
    if missing:
        raise ConfigError(f"Missing required settings: {', '.join(missing)}.")

    svg = ops.render_for(cfg)
    if output is None:
        sys.stdout.write(svg)
    else:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(svg, encoding="utf-8")
        err_console.print(f"[bold green]SUCCESS:[/bold green] Badge written to {output}.")
    return 0


def run_check(cfg: Config) -> int:
    """Prints the published version and whether a publish would change it."""
    cfg.validate()
    with console.status("[bold blue]Reading published badge...[/bold blue]", spinner="dots"):
        published = ops.check_remote_version(ops.make_client(cfg), cfg)

    console.print(f"Published: [cyan]{published or 'none'}[/cyan]")
    console.print(f"Requested: [cyan]{cfg.run.version}[/cyan]")
    if published == cfg.run.version:
        console.print("[dim]Up to date. Publishing would be a no-op.[/dim]")
    else:
        console.print("[bold yellow]Publishing would update the badge.[/bold yellow]")
    return 0


COMMANDS = ("publish", "render", "check")
FLAGS = ("--verbose", "-v", "--help", "-h")


def _with_command(argv: list[str]) -> list[str]:
    """Moves the subcommand to the front of `argv`, defaulting to 'publish'.

    Options may come before the subcommand (e.g. `-v check`). A command name
    given as the value of an option (e.g. `--environment check`) is not a
    subcommand.
    """
    for i, arg in enumerate(argv):
        if arg not in COMMANDS:
            continue
        prev = argv[i - 1] if i else ""
        takes_value = prev.startswith("-") and "=" not in prev and prev not in FLAGS
        if not takes_value:
            return [arg, *argv[:i], *argv[i + 1 :]]
    if argv in (["-h"], ["--help"]):
        return argv
    return ["publish", *argv]


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--environment", "-e", help="Environment name (left label)")
    common.add_argument("--version", "-V", help="Version to publish (right label)")
    common.add_argument("--config", "-c", type=Path, help="Path to a TOML config file")
    common.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    remote = argparse.ArgumentParser(add_help=False)
    remote.add_argument("--branch", "-b", help="Base branch of the target repository")
    remote.add_argument("--repo", "-r", help="Target repository ('name' or 'owner/name')")
    remote.add_argument(
        "--source", "-s", help="Source repository 'owner/name' (default: $GITHUB_REPOSITORY)"
    )

    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Render an environment/version SVG badge and publish it "
        "to a GitHub repository.",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser(
        "publish",
        parents=[common, remote],
        help="Publish the badge if the version changed (default)",
    )
    render_parser = subparsers.add_parser(
        "render", parents=[common], help="Render the badge locally"
    )
    render_parser.add_argument(
        "--output", "-o", type=Path, help="Output file (default: stdout)"
    )
    subparsers.add_parser(
        "check",
        parents=[common, remote],
        help="Show the published version without changing anything",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Badge Deploy CLI."""
    parser = _build_parser()
    argv = sys.argv[1:] if argv is None else argv

    args = parser.parse_args(_with_command(argv))

    setup_logging(args.verbose)

    try:
        cfg = _load_config(args)
        if args.command == "render":
            code = run_render(cfg, args.output)
        elif args.command == "check":
            code = run_check(cfg)
        else:
            code = run_publish(cfg)
    except ConfigError as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)
    except (ops.PublishError, GitHubAPIError, OSError, ValueError) as e:
        logger.error(str(e))
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
