"""CLI entrypoints for bundlestat commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, List, Sequence

from .compare import ComparisonEngine, ComparisonTarget, ResultStore
from .config import SUPPORTED_CLIENTS, SUPPORTED_MINIFIERS, BundleStatConfig, ConfigError, load_config
from .errors import PackageBuildError
from .logging import configure_logging
from .pipeline import PipelineOptions, StatsPipeline


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


def _measurement_options() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    _add_verbose_option(parent, suppress_default=True)
    parent.add_argument(
        "--config",
        type=Path,
        default=Path("."),
        help="Directory containing .bundlestat.yml, or the file itself (defaults to current directory).",
    )
    parent.add_argument("--client", choices=SUPPORTED_CLIENTS, help="Package manager used to install.")
    parent.add_argument("--bundler", help="Bundler plugin to build with (default: esbuild).")
    parent.add_argument("--minifier", choices=SUPPORTED_MINIFIERS, help="Minifier applied to the bundle.")
    parent.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Keep working directories and build output for inspection.",
    )
    parent.add_argument(
        "--custom-imports",
        nargs="+",
        metavar="NAME",
        help="Import only these named exports instead of the whole package.",
    )
    parent.add_argument("--install-timeout", type=float, help="Seconds allowed for the install step.")
    parent.add_argument("--build-timeout", type=float, help="Seconds allowed for each build.")
    parent.add_argument(
        "--limit-concurrency",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Bound concurrent installs and builds (default: on).",
    )
    parent.add_argument(
        "--network-concurrency",
        type=int,
        help="Size of the install and build pools when concurrency is limited.",
    )
    return parent


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bundlestat",
        description="Measure the bundled size of npm packages by actually building them.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Also write debug logs, with thread names, to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    common = _measurement_options()

    stats_parser = subparsers.add_parser(
        "stats",
        parents=[common],
        help="Total size, gzip size and per-dependency breakdown of a package.",
    )
    stats_parser.add_argument("package", help="Package name, name@range, or path to a local package.")

    sizes_parser = subparsers.add_parser(
        "export-sizes",
        parents=[common],
        help="Bundled size of each named export of a package.",
    )
    sizes_parser.add_argument("package", help="Package name, name@range, or path to a local package.")

    exports_parser = subparsers.add_parser(
        "exports",
        parents=[common],
        help="List the named exports of a package and where they are defined.",
    )
    exports_parser.add_argument("package", help="Package name, name@range, or path to a local package.")

    compare_parser = subparsers.add_parser(
        "compare",
        parents=[common],
        help="Compare published packages against local working copies.",
    )
    compare_parser.add_argument(
        "targets",
        nargs="+",
        metavar="NAME=PATH",
        help="Package name and the local directory to compare it with.",
    )
    compare_parser.add_argument(
        "--results-dir",
        type=Path,
        help="Write per-package JSON results and report.md under this directory.",
    )

    serve_parser = subparsers.add_parser(
        "serve",
        parents=[common],
        help="Run the HTTP service.",
    )
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind (default: 127.0.0.1).")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on (default: 8000).")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for bundlestat commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    try:
        config = load_config(args.config)
        options = _options_from_args(args, config)
    except (ConfigError, ValueError) as exc:
        parser.exit(1, f"{exc}\n")

    try:
        if args.command == "compare":
            targets = _parse_targets(args.targets)
            exit_code = _run_compare(targets, options, args.results_dir or config.results_dir)
            if exit_code:
                sys.exit(exit_code)
            return
        if args.command == "serve":
            _run_serve(options, args.host, args.port)
            return

        pipeline = StatsPipeline(options)
        if args.command == "stats":
            payload: Any = pipeline.get_stats(args.package).to_dict()
        elif args.command == "export-sizes":
            payload = [entry.to_dict() for entry in pipeline.get_export_sizes(args.package)]
        elif args.command == "exports":
            payload = pipeline.get_all_exports(args.package)
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except PackageBuildError as exc:
        parser.exit(1, f"{exc}\n")
    except ValueError as exc:
        parser.exit(1, f"bundlestat {args.command} failed: {exc}\n")

    _print_json(payload)


def _options_from_args(args: argparse.Namespace, config: BundleStatConfig) -> PipelineOptions:
    return PipelineOptions.from_config(
        config,
        client=args.client,
        bundler=args.bundler,
        minifier=args.minifier,
        debug=args.debug,
        custom_imports=args.custom_imports,
        install_timeout=args.install_timeout,
        build_timeout=args.build_timeout,
        limit_concurrency=args.limit_concurrency,
        network_concurrency=args.network_concurrency,
    )


def _parse_targets(values: Sequence[str]) -> List[ComparisonTarget]:
    targets: List[ComparisonTarget] = []
    for value in values:
        name, separator, path = value.partition("=")
        if not separator or not name or not path:
            raise ValueError(f"Expected NAME=PATH, got '{value}'")
        published_version = None
        # name@range pins the published side.
        at = name.find("@", 1)
        if at > 0:
            name, published_version = name[:at], name[at + 1 :]
        targets.append(
            ComparisonTarget(
                name=name,
                local_path=Path(path).expanduser().resolve(),
                published_version=published_version or None,
            )
        )
    return targets


def _run_compare(targets: List[ComparisonTarget], options: PipelineOptions, results_dir: Path | None) -> int:
    engine = ComparisonEngine(StatsPipeline(options))
    summary = engine.compare(targets)
    if results_dir is not None:
        run_dir = ResultStore(results_dir).save(summary)
        print(f"Results written to {run_dir}", file=sys.stderr)

    counts = summary.counts()
    print(
        "Improved: {improved}  Regressed: {regressed}  Unchanged: {unchanged}  Failed: {failed}".format(**counts),
        file=sys.stderr,
    )
    for outcome in summary.failed:
        print(f"{outcome.name}: {outcome.error}", file=sys.stderr)
    _print_json([outcome.to_dict() for outcome in summary.outcomes])
    return 1 if summary.failed else 0


def _run_serve(options: PipelineOptions, host: str, port: int) -> None:  # pragma: no cover - integration path
    from .service.app import run_service

    run_service(host=host, port=port, pipeline_factory=lambda: StatsPipeline(options))


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2))


if __name__ == "__main__":  # pragma: no cover
    main()
