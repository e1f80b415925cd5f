from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import List
from uuid import uuid4

import uvicorn

from .cache import IDENTITY_KEYS
from .config import DEFAULT_STACK, build_config, read_env_dir
from .errors import ConfigInvalid
from .history import BuildHistory, default_history_path
from .metadata import MetadataStore
from .models import BuildContext, PipelineState
from .pipeline import Collaborators, Orchestrator
from .report import render_report, report_json
from .web import create_app

LOG = logging.getLogger("python_buildpack")


def parse_args(argv: List[str] | None = None) -> argparse.Namespace:
    argv = list(argv) if argv is not None else sys.argv[1:]
    if argv and argv[0] == "report":
        return _parse_report_args(argv[1:])
    if argv and argv[0] == "history":
        return _parse_history_args(argv[1:])
    if argv and argv[0] == "serve":
        return _parse_serve_args(argv[1:])
    return _parse_build_args(argv)


def _parse_build_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Install Python and the app's dependencies into the build dir.")
    parser.add_argument("build_dir", type=Path, help="Application source / build directory.")
    parser.add_argument("cache_dir", type=Path, help="Directory persisted between builds.")
    parser.add_argument("env_dir", type=Path, help="Directory with one file per build environment variable.")
    parser.add_argument("--config", type=Path, help="Optional JSON/TOML config file.")
    parser.add_argument("--stack", help="Stack identifier (defaults to $STACK).")
    parser.add_argument("--catalog", type=Path, help="Path to a Python version catalog YAML file.")
    parser.add_argument("--export-file", type=Path, help="Write build-time exports for later build steps here.")
    parser.add_argument(
        "--install-prefix", type=Path, help="Install Python here (where the app runs) instead of the build dir."
    )
    parser.add_argument("--no-history", action="store_true", help="Do not record this build in the history database.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    ns = parser.parse_args(argv)
    ns.command = "build"
    return ns


def _parse_report_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show what the last build did.")
    parser.add_argument("cache_dir", type=Path, help="Cache directory of the build.")
    parser.add_argument("--json", action="store_true", help="Output JSON instead of text.")
    return parser.parse_args(argv, namespace=argparse.Namespace(command="report"))


def _parse_history_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Inspect build history.")
    parser.add_argument("cache_dir", type=Path, help="Cache directory of the build.")
    parser.add_argument("--recent", type=int, default=20, help="Number of recent builds to show.")
    parser.add_argument("--status", help="Filter by status (succeeded or failed).")
    parser.add_argument("--json", action="store_true", help="Output JSON instead of text.")
    return parser.parse_args(argv, namespace=argparse.Namespace(command="history"))


def _parse_serve_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve build history over HTTP.")
    parser.add_argument("cache_dir", type=Path, help="Cache directory of the build.")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind.")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind.")
    return parser.parse_args(argv, namespace=argparse.Namespace(command="serve"))


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv)
    if args.command == "report":
        return _run_report(args)
    if args.command == "history":
        return _run_history(args)
    if args.command == "serve":
        return _run_server(args)
    return _run_build(args)


def _run_build(args: argparse.Namespace) -> int:
    env = read_env_dir(args.env_dir)
    try:
        config = build_config(
            env=env,
            config_file=args.config,
            stack=args.stack,
            catalog_path=args.catalog,
            install_prefix=args.install_prefix,
            debug=True if args.verbose else None,
        )
    except (OSError, ValueError) as exc:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
        stack = (args.stack or env.get("STACK") or DEFAULT_STACK).strip()
        return _record_config_failure(args, stack, ConfigInvalid(f"Invalid configuration: {exc}"))
    logging.basicConfig(level=logging.DEBUG if config.debug else logging.INFO, format="%(levelname)s %(message)s")

    context = BuildContext(
        build_dir=args.build_dir.resolve(),
        cache_dir=args.cache_dir.resolve(),
        env_dir=args.env_dir.resolve(),
        stack=config.stack,
        env=env,
        install_prefix=config.install_prefix.resolve() if config.install_prefix else None,
    )
    context.cache_dir.mkdir(parents=True, exist_ok=True)
    history = None if args.no_history else BuildHistory(default_history_path(context.cache_dir))
    orchestrator = Orchestrator(
        context,
        config,
        collaborators=Collaborators.defaults(context, config, export_path=args.export_file),
        history=history,
    )
    LOG.info("Building Python app in %s (stack %s)", context.build_dir, context.stack)
    return orchestrator.run()


def _record_config_failure(args: argparse.Namespace, stack: str, exc: ConfigInvalid) -> int:
    """Classify a failure that happens before the pipeline exists."""
    LOG.error("%s", exc)
    cache_dir = args.cache_dir.resolve()
    metadata = MetadataStore(cache_dir, "python")
    metadata.set("build_started_at", datetime.now(timezone.utc).isoformat())
    metadata.set("failure_reason", exc.failure_reason)
    metadata.set("failure_detail", str(exc))
    metadata.set("failed_after_state", PipelineState.INIT.value)
    metadata.flush(preserve=IDENTITY_KEYS)
    if not args.no_history:
        BuildHistory(default_history_path(cache_dir)).record_build(
            run_id=uuid4().hex,
            status="failed",
            stack=stack,
            failure_reason=exc.failure_reason,
            metadata=metadata.items(),
        )
    return 1


def _run_report(args: argparse.Namespace) -> int:
    record = MetadataStore(args.cache_dir, "python").previous
    print(report_json(record) if args.json else render_report(record))
    return 0


def _run_history(args: argparse.Namespace) -> int:
    history = BuildHistory(default_history_path(args.cache_dir))
    recent = history.recent(limit=args.recent, status=args.status)
    failures = history.failure_counts()

    if args.json:
        payload = {
            "recent": [asdict(build) for build in recent],
            "failures": [asdict(stat) for stat in failures],
            "summary": asdict(history.summary()),
        }
        print(json.dumps(payload, indent=2))
        return 0

    print(f"History DB: {history.path}")
    print(f"Recent builds (limit {args.recent}{' filtered by ' + args.status if args.status else ''}):")
    for build in recent:
        print(
            f"- [{build.timestamp}] {build.status.upper():9} python {build.python_version or '?'} "
            f"{build.package_manager or '?'} on {build.stack} (cache: {build.cache_status or 'n/a'})"
        )
        if build.failure_reason:
            print(f"    failure: {build.failure_reason}")
    if failures:
        print("\nFailures by reason:")
        for stat in failures:
            print(f"- {stat.failure_reason}: {stat.failures}")
    return 0


def _run_server(args: argparse.Namespace) -> int:
    history = BuildHistory(default_history_path(args.cache_dir))
    app = create_app(history, cache_dir=args.cache_dir)
    uvicorn.run(app, host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
