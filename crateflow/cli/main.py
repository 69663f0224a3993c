import argparse
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from crateflow.compile import LocalDependencyCache
from crateflow.env import get_crateflow_log_level
from crateflow.errors import ConfigError, CrateflowError
from crateflow.logging import configure_logging, get_logger
from crateflow.pipeline import Pipeline

logger = get_logger("cli")


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    return {"profile": args.profile, "platform": args.platform}


def _pipeline(args: argparse.Namespace) -> Pipeline:
    cache = LocalDependencyCache(args.cache_dir) if args.cache_dir else None
    return Pipeline(args.project, overrides=_overrides(args), cache=cache)


def build(args: argparse.Namespace) -> int:
    """Build the package and print the path of the installed executable."""
    wrapped = _pipeline(args).build()
    print(wrapped.artifact.executable)
    return 0


def check(args: argparse.Namespace) -> int:
    """Run all declared checks; succeed only if every check passes."""
    report = _pipeline(args).check(args.only)
    for result in report.results:
        label = "PASS" if result.passed else result.status.value.upper()
        print(f"{label:<6} {result.name} ({result.duration_seconds:.1f}s)")
        if not result.passed and result.log:
            for line in result.log.splitlines():
                print(f"    {line}")
    if report.passed:
        return 0
    failed = ", ".join(report.failed)
    print(f"{len(report.failed)} of {len(report.results)} checks failed: {failed}")
    return 1


def run(args: argparse.Namespace) -> int:
    """Build the package if needed and run it, forwarding its exit code."""
    forwarded: List[str] = list(args.args)
    if forwarded and forwarded[0] == "--":
        forwarded = forwarded[1:]
    return _pipeline(args).run(forwarded)


def develop(args: argparse.Namespace) -> int:
    """Enter the development workspace."""
    pipeline = _pipeline(args)
    workspace = pipeline.workspace()
    print(f"Entering {pipeline.manifest.name} workspace with tools: {', '.join(workspace.tools)}")
    return pipeline.develop(args.command)


def fingerprint(args: argparse.Namespace) -> int:
    """Print the project identity and its dependency cache key."""
    pipeline = _pipeline(args)
    manifest = pipeline.manifest
    print(f"- Package:      {manifest.name} {manifest.version}")
    print(f"- Dependencies: {len(manifest.lock.dependencies)}")
    print(f"- Fingerprint:  {manifest.fingerprint}")
    print(f"- Namespace:    {pipeline.cache_key.namespace}")
    cached = pipeline.cache.lookup(pipeline.cache_key) is not None
    print(f"- Cached:       {'yes' if cached else 'no'}")
    return 0


def cache_list(args: argparse.Namespace) -> int:
    """List the committed dependency cache entries."""
    cache = LocalDependencyCache(args.cache_dir) if args.cache_dir else LocalDependencyCache()
    entries = cache.entries()
    if not entries:
        print(f"No dependency cache entries in {cache.root}")
        return 0
    for entry in entries:
        print(
            f"{entry.key.namespace:<24} {entry.key.fingerprint[:12]}  {entry.pname:<24} "
            f"{len(entry.packages):>4} deps  {entry.created_at:%Y-%m-%d %H:%M}"
        )
    return 0


def cache_evict(args: argparse.Namespace) -> int:
    """Evict the project's dependency cache entry."""
    pipeline = _pipeline(args)
    if pipeline.cache.evict(pipeline.cache_key):
        print(f"Evicted {pipeline.cache_key}")
    else:
        print(f"No cache entry for {pipeline.cache_key}")
    return 0


def _common_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--project", type=Path, default=Path.cwd(), help="Project root holding Cargo.toml."
    )
    common.add_argument("--log-level", default=None, help="Log level (default: INFO).")
    common.add_argument(
        "--cache-dir", type=Path, default=None, help="Dependency cache root directory."
    )
    common.add_argument("--profile", default=None, help="Cargo build profile.")
    common.add_argument("--platform", default=None, help="Platform identifier of the build.")
    return common


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crateflow",
        description="crateflow: incremental Cargo builds with a fingerprinted dependency cache",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    common = _common_parser()
    command_subparsers = parser.add_subparsers(
        dest="command", required=True, help="Primary commands"
    )

    build_parser = command_subparsers.add_parser(
        "build", parents=[common], help="Build the package."
    )
    build_parser.set_defaults(func=build)

    check_parser = command_subparsers.add_parser(
        "check", parents=[common], help="Run the declared verification checks."
    )
    check_parser.add_argument(
        "--only",
        action="append",
        default=None,
        metavar="NAME",
        help="Run only the named check. May be given more than once.",
    )
    check_parser.set_defaults(func=check)

    run_parser = command_subparsers.add_parser(
        "run", parents=[common], help="Build if needed, then run the package."
    )
    run_parser.add_argument(
        "args", nargs=argparse.REMAINDER, help="Arguments for the executable, after '--'."
    )
    run_parser.set_defaults(func=run)

    develop_parser = command_subparsers.add_parser(
        "develop", parents=[common], help="Enter a shell with the build environment."
    )
    develop_parser.add_argument(
        "-c", "--command", default=None, help="Run a command instead of an interactive shell."
    )
    develop_parser.set_defaults(func=develop)

    fingerprint_parser = command_subparsers.add_parser(
        "fingerprint", parents=[common], help="Show the dependency fingerprint of the project."
    )
    fingerprint_parser.set_defaults(func=fingerprint)

    cache_parser = command_subparsers.add_parser("cache", help="Manage the dependency cache.")
    cache_subparsers = cache_parser.add_subparsers(
        dest="cache_subcommand", required=True, help="Cache actions"
    )
    list_parser = cache_subparsers.add_parser(
        "list", parents=[common], help="List dependency cache entries."
    )
    list_parser.set_defaults(func=cache_list)
    evict_parser = cache_subparsers.add_parser(
        "evict", parents=[common], help="Evict the project's dependency cache entry."
    )
    evict_parser.set_defaults(func=cache_evict)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, run the selected command and return its exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        configure_logging(args.log_level or get_crateflow_log_level())
    except ConfigError as e:
        print(f"crateflow: {e.stage} failed: {e}", file=sys.stderr)
        return 2
    try:
        return args.func(args)
    except CrateflowError as e:
        logger.error("%s failed: %s", e.stage, e)
        return 1
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 130


def cli() -> None:
    sys.exit(main())
