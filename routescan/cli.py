"""CLI entrypoints for routescan commands."""

from __future__ import annotations

import argparse
import dataclasses
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .config import ConfigError, ScanConfig, load_config
from .logging import configure_logging
from .openapi import build_document, write_document
from .scanner import ProjectScanner


def _add_logging_options(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    # Subcommands suppress their defaults so flags given before the command survive.
    flag_default: object = argparse.SUPPRESS if suppress_default else False
    file_default: object = argparse.SUPPRESS if suppress_default else None
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=flag_default,
        help="Increase log verbosity for troubleshooting.",
    )
    group.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=flag_default,
        help="Only report warnings and errors.",
    )
    parser.add_argument(
        "--log-file",
        default=file_default,
        help="Also write debug logs to this file.",
    )


def _add_scan_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "paths",
        nargs="*",
        help="Directories, files or glob patterns to scan (defaults to scan_paths from the config).",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to .routescan.yml or the directory holding it (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="routescan",
        description="Generate OpenAPI documents from TypeScript/JavaScript route and schema declarations.",
    )
    _add_logging_options(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate_parser = subparsers.add_parser(
        "generate",
        help="Scan sources and write an OpenAPI document.",
    )
    _add_logging_options(generate_parser, suppress_default=True)
    _add_scan_options(generate_parser)
    generate_parser.add_argument("--output", "-o", default=None, help="Output file (.json, .yaml or .yml).")
    generate_parser.add_argument("--title", default=None, help="API title for the info block.")
    generate_parser.add_argument("--api-version", default=None, help="API version for the info block.")
    generate_parser.add_argument("--base-url", default=None, help="Server URL added to the document.")

    routes_parser = subparsers.add_parser(
        "routes",
        help="List discovered routes without writing a document.",
    )
    _add_logging_options(routes_parser, suppress_default=True)
    _add_scan_options(routes_parser)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP scanning service.",
    )
    _add_logging_options(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def _load(args: argparse.Namespace) -> ScanConfig:
    config_path = Path(args.config) if args.config else Path.cwd()
    return load_config(config_path)


def _scan_paths(args: argparse.Namespace, config: ScanConfig) -> List[str]:
    if args.paths:
        return list(args.paths)
    return config.resolved_scan_paths()


def _run_generate(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    try:
        config = _load(args)
        overrides = {
            key: value
            for key, value in (
                ("title", args.title),
                ("version", args.api_version),
                ("base_url", args.base_url),
            )
            if value is not None
        }
        config = dataclasses.replace(config, **overrides)
        output = Path(args.output) if args.output else config.resolved_output_path()
        routes = ProjectScanner.from_config(config).scan(_scan_paths(args, config))
        written = write_document(build_document(config, routes), output)
    except ConfigError as exc:
        parser.exit(1, f"routescan: {exc}\n")
    except (OSError, ValueError) as exc:
        parser.exit(1, f"routescan generate failed: {exc}\nRun with --verbose for more details.\n")
    print(f"OpenAPI document with {len(routes)} route(s) written to {_relativize(written)}")


def _run_routes(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    try:
        config = _load(args)
        routes = ProjectScanner.from_config(config).scan(_scan_paths(args, config))
    except ConfigError as exc:
        parser.exit(1, f"routescan: {exc}\n")
    except ValueError as exc:
        parser.exit(1, f"routescan routes failed: {exc}\n")
    for route in routes:
        print(f"{route.method} {route.path}")


def _run_serve(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    from .service.app import run_service

    run_service(host=args.host, port=args.port)


_COMMANDS = {
    "generate": _run_generate,
    "routes": _run_routes,
    "serve": _run_serve,
}


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entrypoint for routescan commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        verbose=bool(args.verbose),
        quiet=bool(args.quiet),
        log_file=Path(args.log_file) if args.log_file else None,
    )

    command = _COMMANDS.get(args.command)
    if command is None:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")
    command(parser, args)


def _relativize(path: Path) -> str:
    try:
        return str(path.resolve().relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
