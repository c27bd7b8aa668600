import argparse
import logging
import sys
import textwrap
from pathlib import Path
from typing import NamedTuple

from . import Comparator, CompareSettings, ConfigurationError, Processor, validate_roots
from .report.sink import LoggingReportSink, TeeSink
from .report.store import ReportWriter
from .settings import (
    SETTING_CHUNK_SIZE,
    SETTING_CONCURRENCY,
    SETTING_EXCLUDE,
    SETTING_FAIL_ON_MISMATCH,
    SETTING_LOG_LEVEL,
    SETTING_LOG_PATH,
    SETTING_PATH_CONCURRENCY,
    SETTING_REPORT,
    SETTING_ROOTS,
)
from .utils.processor import DEFAULT_CHUNK_SIZE
from .utils.profiling import profile_main

EXIT_OK = 0
EXIT_MISMATCH = 1
EXIT_CONFIGURATION_ERROR = 2

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class CompareOptions(NamedTuple):
    """Effective options of a run after merging command line and config file."""
    roots: list[Path]
    exclude: list[str]
    chunk_size: int
    concurrency: int | None
    path_concurrency: int
    report_path: Path | None
    fail_on_mismatch: bool


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='watches',
        description='Compare two or more copies of a directory tree and report every relative path whose '
                    'content differs between the copies.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent('''
            Examples:
              watches --search /mnt/backup1 --search /mnt/backup2 --search /srv/data
              watches --config mirrors.toml --fail-on-mismatch

            A path present under only some of the roots is compared among those
            roots only. Unreadable files are reported as warnings.
            ''').strip())
    parser.add_argument(
        '-s', '--search',
        action='append',
        metavar='PATH',
        default=[],
        help='Search root directory (multiple uses permitted). Overrides "roots" from the config file.')
    parser.add_argument(
        '--config',
        metavar='PATH',
        help='Path to a TOML config file. If not provided, uses the WATCHES_CONFIG environment variable if set.')
    parser.add_argument(
        '--exclude',
        action='append',
        metavar='PATTERN',
        default=[],
        help='Skip files and directories whose relative path or name matches this glob pattern '
             '(multiple uses permitted)')
    parser.add_argument(
        '--chunk-size',
        type=int,
        metavar='BYTES',
        help=f'Read size used while hashing files (default: {DEFAULT_CHUNK_SIZE})')
    parser.add_argument(
        '--concurrency',
        type=int,
        metavar='N',
        help='Number of hashing worker processes (default: number of CPUs)')
    parser.add_argument(
        '--path-concurrency',
        type=int,
        metavar='N',
        help='Number of relative paths compared at the same time (default: 1, reports follow traversal order)')
    parser.add_argument(
        '--report',
        metavar='PATH',
        help='Also write mismatches and unreadable files to this msgpack report file')
    parser.add_argument(
        '--fail-on-mismatch',
        action=argparse.BooleanOptionalAction,
        help=f'Exit with status {EXIT_MISMATCH} when any mismatch was found (default: exit {EXIT_OK}). '
             '--no-fail-on-mismatch overrides "compare.fail_on_mismatch" from the config file.')
    parser.add_argument(
        '--verbose',
        action='store_true',
        help='Log every compared path and every hash computation')
    parser.add_argument(
        '--log-file',
        metavar='PATH',
        help='Write log output to this file instead of stderr')
    parser.add_argument(
        '--log-level',
        metavar='LEVEL',
        choices=LOG_LEVELS,
        help='Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Defaults to INFO, or DEBUG with --verbose.')
    return parser


def configure_logging(args: argparse.Namespace, settings: CompareSettings):
    log_level = args.log_level
    if log_level is None and args.verbose:
        log_level = 'DEBUG'
    if log_level is None:
        log_level = settings.get_str(SETTING_LOG_LEVEL, 'INFO').upper()
    if log_level not in LOG_LEVELS:
        raise ConfigurationError(f"unknown log level: {log_level}")

    log_file = args.log_file or settings.get_str(SETTING_LOG_PATH)
    if log_file:
        logging.basicConfig(filename=log_file, level=getattr(logging, log_level), format=LOG_FORMAT,
                            errors='backslashreplace', force=True)
    else:
        logging.basicConfig(stream=sys.stderr, level=getattr(logging, log_level), format=LOG_FORMAT, force=True)


def resolve_options(args: argparse.Namespace, settings: CompareSettings) -> CompareOptions:
    """Merge command line arguments over config file settings and validate the result.

    Raises:
        ConfigurationError: Missing or invalid roots, a setting of the wrong type,
            or a non-positive numeric option
    """
    roots = args.search or settings.get_list(SETTING_ROOTS)

    chunk_size = args.chunk_size
    if chunk_size is None:
        chunk_size = settings.get_int(SETTING_CHUNK_SIZE, DEFAULT_CHUNK_SIZE)

    concurrency = args.concurrency
    if concurrency is None:
        concurrency = settings.get_int(SETTING_CONCURRENCY)

    path_concurrency = args.path_concurrency
    if path_concurrency is None:
        path_concurrency = settings.get_int(SETTING_PATH_CONCURRENCY, 1)

    for name, value in (('chunk size', chunk_size), ('concurrency', concurrency),
                        ('path concurrency', path_concurrency)):
        if value is not None and value < 1:
            raise ConfigurationError(f"{name} must be positive: {value}")

    fail_on_mismatch = args.fail_on_mismatch
    if fail_on_mismatch is None:
        fail_on_mismatch = settings.get_bool(SETTING_FAIL_ON_MISMATCH)

    report_path = args.report or settings.get_str(SETTING_REPORT)

    return CompareOptions(
        roots=validate_roots(roots),
        exclude=settings.get_list(SETTING_EXCLUDE) + args.exclude,
        chunk_size=chunk_size,
        concurrency=concurrency,
        path_concurrency=path_concurrency,
        report_path=Path(report_path) if report_path else None,
        fail_on_mismatch=fail_on_mismatch,
    )


@profile_main
def watches_main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = CompareSettings.load(args.config)
        configure_logging(args, settings)
        options = resolve_options(args, settings)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIGURATION_ERROR

    sink = LoggingReportSink()
    if options.report_path is not None:
        try:
            sink = TeeSink(sink, ReportWriter(options.report_path))
        except OSError as e:
            print(f"Error: cannot create report file {options.report_path}: {e.strerror or e}", file=sys.stderr)
            return EXIT_CONFIGURATION_ERROR

    with Processor(options.concurrency, options.chunk_size) as processor, sink:
        comparator = Comparator(processor, options.roots, exclude=options.exclude,
                                path_concurrency=options.path_concurrency)
        summary = comparator.compare(sink)

    if options.fail_on_mismatch and not summary.clean:
        return EXIT_MISMATCH
    return EXIT_OK


def main():
    sys.exit(watches_main())


if __name__ == '__main__':
    main()
