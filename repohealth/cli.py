"""CLI entrypoints for repohealth commands."""

from __future__ import annotations

import argparse
import dataclasses
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import HealthConfig, filter_repositories, load_config, parse_duration
from .engine import EngineOptions, HealthEngine
from .errors import ConfigError, ReportingError
from .logging import configure_logging, get_logger
from .models import HealthReport, Repository, Severity
from .registry import CheckerRegistry
from .reporters import available_formats, canonical_format, render_report, write_report

EXIT_ERROR = 3
CONFIG_CANDIDATES = ("repohealth.yml", "repohealth.yaml", ".repohealth.yml", ".repohealth.yaml")

logger = get_logger("cli")


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_config_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c",
        "--config",
        help="Path to a repohealth YAML configuration (defaults to ./repohealth.yml when present).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="repohealth",
        description="Run health checks against one or more repositories.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    check_parser = subparsers.add_parser(
        "check",
        help="Run enabled checkers and render a health report.",
    )
    _add_verbose_option(check_parser, suppress_default=True)
    _add_config_option(check_parser)
    check_parser.add_argument(
        "paths",
        nargs="*",
        help="Repository paths (defaults to configured repositories, then the current directory).",
    )
    check_parser.add_argument(
        "--category",
        action="append",
        default=[],
        help="Only run checkers in this category (repeatable).",
    )
    check_parser.add_argument(
        "--exclude-category",
        action="append",
        default=[],
        help="Skip checkers in this category (repeatable, wins over --category).",
    )
    check_parser.add_argument(
        "--tag",
        action="append",
        default=[],
        help="Only check configured repositories carrying this tag (repeatable).",
    )
    check_parser.add_argument(
        "--exclude-tag",
        action="append",
        default=[],
        help="Skip configured repositories carrying this tag (repeatable).",
    )
    check_parser.add_argument(
        "-f",
        "--format",
        help=f"Output format: {', '.join(available_formats())} (default: first enabled reporter).",
    )
    check_parser.add_argument("-o", "--output", help="Write the report to this file instead of stdout.")
    check_parser.add_argument(
        "--severity",
        choices=[severity.value for severity in Severity],
        help="Drop findings below this severity.",
    )
    check_parser.add_argument(
        "--timeout",
        help="Override every checker timeout for this run (e.g. 30s, 2m).",
    )
    check_parser.add_argument(
        "--no-parallel",
        action="store_true",
        help="Run one task at a time.",
    )
    check_parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Ignore and do not populate the result cache.",
    )
    check_parser.add_argument(
        "--summary",
        action="store_true",
        help="Print only the summary table.",
    )
    check_parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable ANSI colors in table output.",
    )

    categories_parser = subparsers.add_parser(
        "categories",
        help="List checker categories and the checkers in each.",
    )
    _add_verbose_option(categories_parser, suppress_default=True)
    _add_config_option(categories_parser)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Expose the engine over HTTP.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    _add_config_option(serve_parser)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint; returns the process exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(_resolve_config_path(args.config))
    except ConfigError as exc:
        configure_logging(verbose=bool(args.verbose))
        print(f"repohealth: configuration error: {exc}", file=sys.stderr)
        return EXIT_ERROR

    level = "warning" if config.logging.quiet else config.logging.level
    configure_logging(verbose=bool(args.verbose), level=level, fmt=config.logging.format)

    if args.command == "check":
        return _run_check(args, config)
    if args.command == "categories":
        _print_categories(config)
        return 0
    if args.command == "serve":
        from .service import run_service

        run_service(host=args.host, port=args.port, config_path=config.source)
        return 0
    parser.error(f"Unknown command: {args.command}")  # pragma: no cover - argparse enforces choices
    return EXIT_ERROR


def _run_check(args: argparse.Namespace, config: HealthConfig) -> int:
    try:
        output_format = canonical_format(args.format) if args.format else _configured_format(config)
        options = EngineOptions(
            include_categories=tuple(args.category),
            exclude_categories=tuple(args.exclude_category),
            severity_threshold=Severity.parse(args.severity) if args.severity else None,
            output_format=output_format,
            output_file=args.output or _configured_output(config, output_format, explicit=bool(args.format)),
            parallel=not args.no_parallel,
            timeout_seconds=parse_duration(args.timeout, name="--timeout") if args.timeout else None,
        )
        if args.no_cache:
            config.engine = dataclasses.replace(config.engine, cache_enabled=False)
        engine = HealthEngine.from_config(config)
        repositories = _resolve_repositories(args.paths, config, args.tag, args.exclude_tag)
        report = engine.run(repositories, options)
    except (ConfigError, ReportingError) as exc:
        print(f"repohealth: {exc}", file=sys.stderr)
        return EXIT_ERROR

    overrides: Dict[str, object] = {}
    if output_format == "table":
        if args.no_color or options.output_file or not sys.stdout.isatty():
            overrides["color_output"] = False
        if args.summary:
            overrides["show_details"] = False
    try:
        rendered = render_report(report, output_format, config.reporters, overrides=overrides)
        if options.output_file:
            target = write_report(rendered, options.output_file)
            print(f"Report written to {_relativize(target)}")
        else:
            sys.stdout.write(rendered)
    except ReportingError as exc:
        print(f"repohealth: {exc}", file=sys.stderr)
        _log_summary(report)
        return EXIT_ERROR
    return report.exit_code


def _print_categories(config: HealthConfig) -> None:
    registry = CheckerRegistry(config.checkers.values())
    enabled = {definition.id for definition in registry.list_enabled()}
    for category, checker_ids in registry.categories().items():
        print(category)
        for checker_id in checker_ids:
            marker = "" if checker_id in enabled else " (disabled)"
            print(f"  - {checker_id}{marker}")


def _resolve_config_path(explicit: Optional[str]) -> Optional[Path]:
    if explicit:
        return Path(explicit)
    for name in CONFIG_CANDIDATES:
        candidate = Path.cwd() / name
        if candidate.is_file():
            return candidate
    return None


def _resolve_repositories(
    paths: Sequence[str],
    config: HealthConfig,
    include_tags: Sequence[str],
    exclude_tags: Sequence[str],
) -> List[Repository]:
    if paths:
        repositories: List[Repository] = []
        seen: set[str] = set()
        for raw in paths:
            path = Path(raw).expanduser().resolve()
            if not path.is_dir():
                raise ConfigError(f"Repository path is not a directory: {raw}")
            name = path.name or str(path)
            if name in seen:
                name = str(path)
            seen.add(name)
            repositories.append(Repository(name=name, path=str(path)))
        return repositories
    if config.repositories:
        return filter_repositories(config.repositories, include_tags, exclude_tags)
    cwd = Path.cwd().resolve()
    return [Repository(name=cwd.name or str(cwd), path=str(cwd))]


def _configured_format(config: HealthConfig) -> str:
    for name, definition in config.reporters.items():
        if definition.enabled:
            return canonical_format(name)
    return "table"


def _configured_output(config: HealthConfig, output_format: str, *, explicit: bool) -> Optional[str]:
    if explicit:
        return None
    definition = config.reporters.get(output_format)
    if definition is None or not definition.enabled:
        return None
    return definition.output_file


def _log_summary(report: HealthReport) -> None:
    summary = report.summary
    logger.warning(
        "Collected %d finding(s): %d critical, %d warning, %d info",
        summary.total,
        summary.critical,
        summary.warning,
        summary.info,
    )


def _relativize(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
