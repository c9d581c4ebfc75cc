import argparse
from importlib import import_module
import logging
import sys

from conveyor_belt.config import INVALID, RunOptions, get_settings
from conveyor_belt.database import build_session_factory
from conveyor_belt.runner import BatchRunner


logger = logging.getLogger(__name__)


def add_runner_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--dump-sql", action="store_true", help="print the query with its bindings and exit")
    parser.add_argument("--log-sql", action="store_true", help="print executed SQL after each record (implies --step)")
    parser.add_argument("--step", action="store_true", help="ask for confirmation after each record")
    parser.add_argument("--diff", action="store_true", help="show each record's changed fields")


def options_from_args(args: argparse.Namespace) -> RunOptions:
    return RunOptions(
        dump_sql=args.dump_sql,
        log_sql=args.log_sql,
        step=args.step,
        diff=args.diff,
        verbose=getattr(args, "verbose", False),
    )


def _positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a batch command over the records its query returns")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="run one batch command")
    run_parser.add_argument("target", help="command class as module.path:ClassName")
    run_parser.add_argument(
        "--chunk-size",
        type=_positive_int,
        default=None,
        help="records fetched per query when the command does not set its own",
    )
    run_parser.add_argument("-v", "--verbose", action="store_true", help="include tracebacks for collected failures")
    add_runner_arguments(run_parser)

    return parser.parse_args(argv)


def load_command_class(target: str) -> type:
    module_name, _, class_name = target.partition(":")
    if not module_name or not class_name:
        raise ValueError(f"expected module.path:ClassName, got {target!r}")
    return getattr(import_module(module_name), class_name)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        command_class = load_command_class(args.target)
    except (ImportError, AttributeError, ValueError) as exc:
        logger.error("could not load command", extra={"target": args.target, "error": str(exc)})
        print(f"Could not load command {args.target}: {exc}", file=sys.stderr)
        return INVALID

    session_factory = build_session_factory(settings.database_url, echo=settings.sql_echo)
    with session_factory() as session:
        command = command_class(session=session)
        runner = BatchRunner(
            command,
            options_from_args(args),
            session=session,
            default_chunk_size=args.chunk_size or settings.chunk_size,
        )
        return runner.run()


if __name__ == "__main__":
    raise SystemExit(main())
