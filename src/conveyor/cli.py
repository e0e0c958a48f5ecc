"""Conveyor command-line interface with subcommands.

Usage:
    conveyor run <pipeline.yml> [--var KEY=VALUE]... [--json]
    conveyor validate <pipeline.yml>
    conveyor show <pipeline.yml> [--format yaml|json]
    conveyor steps

Exit codes for ``run``: 0 succeeded (or everything skipped), 1 failed or
timed out, 2 malformed pipeline definition or invalid step configuration.
"""

import argparse
import asyncio
import signal
import sys

from conveyor import __version__
from conveyor.config import settings
from conveyor.errors import ConfigError, PipelineDefinitionError, StepNotFoundError
from conveyor.log import setup_logging
from conveyor.models.pipeline import PipelineDefinition
from conveyor.models.results import PipelineResult, Status
from conveyor.notify import LogSink, NotifierDispatcher, WebhookSink
from conveyor.pipeline import PipelineExecutor, loader
from conveyor.pipeline.steps import default_registry

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2

_STATUS_MARKS = {
    Status.SUCCEEDED: "ok",
    Status.FAILED: "FAILED",
    Status.TIMED_OUT: "TIMED OUT",
    Status.SKIPPED: "skipped",
    Status.PENDING: "pending",
    Status.RUNNING: "running",
}


def _parse_vars(pairs: list[str]) -> dict[str, str]:
    variables: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"--var expects KEY=VALUE, got {pair!r}")
        variables[key] = value
    return variables


def _load(path: str) -> PipelineDefinition | None:
    try:
        return loader.load(path)
    except PipelineDefinitionError as e:
        print(f"error: {e}", file=sys.stderr)
        return None


def _build_notifier(definition: PipelineDefinition) -> NotifierDispatcher:
    notifier = NotifierDispatcher([LogSink()])
    urls = list(definition.options.webhooks)
    if settings.webhook_url:
        urls.insert(0, settings.webhook_url)
    for url in dict.fromkeys(urls):
        notifier.add_sink(WebhookSink(url, timeout=settings.webhook_timeout))
    return notifier


def print_report(result: PipelineResult) -> None:
    """Print a human-readable summary of a pipeline run."""
    print(f"\nPipeline: {result.name}")
    for stage in result.stages:
        duration = f" ({stage.duration_seconds:.1f}s)" if stage.duration_seconds is not None else ""
        attempts = f" after {stage.attempts} attempts" if stage.attempts > 1 else ""
        print(f"  [{_STATUS_MARKS[stage.status]}] {stage.name}{duration}{attempts}")
        if stage.message and stage.status != Status.SUCCEEDED:
            print(f"      {stage.message}")
        for step in stage.steps:
            line = f"      - {step.name}: {step.status.value}"
            if step.exit_code is not None and step.status != Status.SUCCEEDED:
                line += f" (exit {step.exit_code})"
            if step.error and step.status != Status.SKIPPED:
                line += f" - {step.error}"
            print(line)
    print(f"\nResult: {result.status.value.upper()}")


# --- run subcommand ---

async def cmd_run(args: argparse.Namespace) -> int:
    """Run a pipeline file."""
    try:
        variables = _parse_vars(args.var)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_INVALID

    definition = _load(args.pipeline)
    if definition is None:
        return EXIT_INVALID

    notifier = _build_notifier(definition)
    executor = PipelineExecutor(default_registry(), notifier=notifier)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, executor.abort, f"received {sig.name}")

    try:
        result = await executor.run(definition, variables=variables)
    except (ConfigError, StepNotFoundError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_INVALID
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
        await notifier.aclose()

    if args.json:
        print(result.model_dump_json(indent=2))
    else:
        print_report(result)
    return EXIT_FAILED if result.status.is_failure else EXIT_OK


# --- validate subcommand ---

def cmd_validate(args: argparse.Namespace) -> int:
    """Check a pipeline file and every step configuration without running it."""
    definition = _load(args.pipeline)
    if definition is None:
        return EXIT_INVALID

    executor = PipelineExecutor(default_registry())
    try:
        resolved = executor.validate(definition)
    except (ConfigError, StepNotFoundError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_INVALID

    print(f"{definition.name}: {len(definition.stages)} stages, {len(resolved)} steps - valid")
    return EXIT_OK


# --- show subcommand ---

def cmd_show(args: argparse.Namespace) -> int:
    """Print the normalized definition."""
    definition = _load(args.pipeline)
    if definition is None:
        return EXIT_INVALID
    print(loader.dumps(definition, fmt=args.format), end="")
    return EXIT_OK


# --- steps subcommand ---

def cmd_steps(args: argparse.Namespace) -> int:
    """List registered step kinds."""
    for kind, description in default_registry().list_kinds():
        print(f"{kind:<12} {description}")
    return EXIT_OK


# --- Main CLI ---

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="conveyor",
        description="Conveyor - CI/CD pipeline runner",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", type=str, help="Log level (default: CONVEYOR_LOG_LEVEL or INFO)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    p_run = subparsers.add_parser("run", help="Run a pipeline")
    p_run.add_argument("pipeline", type=str, help="Pipeline definition file (YAML or JSON)")
    p_run.add_argument(
        "--var",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Pipeline variable, also exported to the environment (repeatable)",
    )
    p_run.add_argument("--json", action="store_true", help="Print the result as JSON")

    p_validate = subparsers.add_parser("validate", help="Validate a pipeline without running it")
    p_validate.add_argument("pipeline", type=str, help="Pipeline definition file")

    p_show = subparsers.add_parser("show", help="Print the normalized pipeline definition")
    p_show.add_argument("pipeline", type=str, help="Pipeline definition file")
    p_show.add_argument("--format", choices=["yaml", "json"], default="yaml", help="Output format (default: yaml)")

    subparsers.add_parser("steps", help="List available step kinds")
    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(EXIT_INVALID)

    setup_logging(args.log_level)

    # Dispatch
    if args.command == "run":
        code = asyncio.run(cmd_run(args))
    elif args.command == "validate":
        code = cmd_validate(args)
    elif args.command == "show":
        code = cmd_show(args)
    else:
        code = cmd_steps(args)
    sys.exit(code)


if __name__ == "__main__":
    main()
