"""
archconv CLI - thin entrypoint for operator commands.

Commands:
- run: convert the configured input folder
- validate: check a settings file without converting
- identify: print PRONOM identification of files
- converters: list converters and whether they can run on this host

Design Principles:
==================
- CLI is a dispatcher only
- No conversion logic inside CLI
- Surface errors verbatim from the execution layer
- Exit non-zero on failure
- No interactive prompts

Exit Codes:
===========
- 0: Success, no errors during the run
- 1: Validation error (settings, empty input)
- 2: Run finished but errors were logged
- 4: System error (missing tools, file system, ...)
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import List, NoReturn, Optional

from .. import __version__
from ..execution.errors import NoConvertersAvailableError, NoInputFilesError
from ..execution.converter_registry import build_default_registry
from ..execution.resources import IccProfilePool
from ..execution.runner import ConversionRunner
from ..files.errors import StagingError
from ..identification.errors import IdentificationError
from ..identification.models import HashAlgorithm
from ..identification.siegfried import SiegfriedIdentifier
from ..reporting.runlog import RunLog
from ..settings.errors import SettingsError
from ..settings.loader import load_settings, resolve_settings_path
from ..settings.models import ConversionSettings
from .errors import ValidationError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_VALIDATION = 1
EXIT_RUN_ERRORS = 2
EXIT_SYSTEM = 4

LOG_DIR = "logs"


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )


def run_log_path(log_dir: str = LOG_DIR, now: Optional[datetime] = None) -> Path:
    """logs/archconv_<YYYYMMDD_HHMMSS>.txt"""
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return Path(log_dir) / f"archconv_{stamp}.txt"


def _load_settings(path: Optional[str]) -> ConversionSettings:
    """
    Load settings or exit.

    Raises:
        SystemExit(1): Missing or invalid settings
    """
    try:
        return load_settings(path)
    except SettingsError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(EXIT_VALIDATION)


def validate_settings(settings: ConversionSettings) -> None:
    """
    Pre-run checks that do not need any external tool.

    Raises:
        ValidationError: If the run cannot start with these settings
    """
    input_folder = Path(settings.input_folder)
    if not input_folder.is_dir():
        raise ValidationError(f"Input folder not found: {input_folder}")
    if Path(settings.output_folder).resolve() == input_folder.resolve():
        raise ValidationError("Input and output folders must differ")
    if not settings.format_targets() and not settings.folder_overrides:
        raise ValidationError("No conversion targets configured")


def _identifier(hashing: HashAlgorithm) -> SiegfriedIdentifier:
    identifier = SiegfriedIdentifier(hashing=hashing)
    if not identifier.available:
        print("ERROR: siegfried (sf) not found on this host", file=sys.stderr)
        sys.exit(EXIT_SYSTEM)
    return identifier


def cmd_validate(args: argparse.Namespace) -> NoReturn:
    """
    Validate a settings file.

    Exit codes:
        0: Settings are valid
        1: Validation error
    """
    settings = _load_settings(args.settings)
    try:
        validate_settings(settings)
    except ValidationError as e:
        print(f"✗ Settings validation failed: {e}", file=sys.stderr)
        sys.exit(EXIT_VALIDATION)

    print(f"✓ Settings are valid: {resolve_settings_path(args.settings)}")
    print(f"  Input: {settings.input_folder}")
    print(f"  Output: {settings.output_folder}")
    print(f"  Format targets: {len(settings.format_targets())}")
    print(f"  Folder overrides: {len(settings.folder_overrides)}")
    sys.exit(EXIT_OK)


def cmd_run(args: argparse.Namespace) -> NoReturn:
    """
    Convert the configured input folder.

    Exit codes:
        0: Run finished without errors
        1: Validation error
        2: Run finished with errors (see the run-time log)
        4: System error
    """
    settings = _load_settings(args.settings)
    if args.input:
        settings.input_folder = args.input
    if args.output:
        settings.output_folder = args.output

    try:
        validate_settings(settings)
    except ValidationError as e:
        print(f"✗ Settings validation failed: {e}", file=sys.stderr)
        sys.exit(EXIT_VALIDATION)

    identifier = _identifier(settings.checksum_hashing)
    run_log = RunLog(str(run_log_path(args.log_dir)))
    runner = ConversionRunner(
        settings,
        identifier,
        run_log=run_log,
        show_progress=not args.no_progress,
    )

    if args.monitor_port:
        from ..main import start_monitor_server
        start_monitor_server(runner, host=args.monitor_host, port=args.monitor_port)

    try:
        summary = runner.run()
    except NoInputFilesError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(EXIT_VALIDATION)
    except (NoConvertersAvailableError, StagingError, IdentificationError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(EXIT_SYSTEM)
    except KeyboardInterrupt:
        print("\nConversion interrupted by user.", file=sys.stderr)
        sys.exit(EXIT_RUN_ERRORS)
    finally:
        run_log.close()

    print(summary.summary())
    print(f"  Run log: {run_log.path}")
    sys.exit(EXIT_RUN_ERRORS if summary.errors_happened else EXIT_OK)


def cmd_identify(args: argparse.Namespace) -> NoReturn:
    """
    Identify files and print one line per file.

    Exit codes:
        0: All files identified
        4: siegfried missing or failed
    """
    identifier = _identifier(HashAlgorithm(args.hashing))
    target = Path(args.path)
    paths = [str(p) for p in sorted(target.rglob("*")) if p.is_file()] if target.is_dir() else [str(target)]

    try:
        results = identifier.identify_files(paths)
    except IdentificationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(EXIT_SYSTEM)

    for identified in results:
        name = f" ({identified.format_name})" if identified.format_name else ""
        print(f"{identified.format:<12} {identified.mime or '-':<40} {identified.path}{name}")
    sys.exit(EXIT_OK)


def cmd_converters(args: argparse.Namespace) -> NoReturn:
    """List converters and their availability on this host."""
    registry = build_default_registry(IccProfilePool(size=1))
    for info in registry.list_converters():
        mark = "✓" if info["available"] else "✗"
        version = info["version"] or "?"
        print(f"{mark} {info['name']} {version}: {info['source_formats']} source format(s)")
    sys.exit(EXIT_OK if registry else EXIT_SYSTEM)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='archconv',
        description='archconv - convert file collections into archival formats',
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', required=True, help='Command to execute')

    # Run command
    parser_run = subparsers.add_parser('run', help='Convert the configured input folder')
    parser_run.add_argument(
        'settings',
        nargs='?',
        default=None,
        help='Path to settings JSON (default: $ARCHCONV_SETTINGS or archconv_settings.json)'
    )
    parser_run.add_argument('--input', default=None, help='Override the input folder')
    parser_run.add_argument('--output', default=None, help='Override the output folder')
    parser_run.add_argument('--log-dir', default=LOG_DIR, help='Run-time log folder (default: logs)')
    parser_run.add_argument('--no-progress', action='store_true', help='Disable progress bars')
    parser_run.add_argument(
        '--monitor-port',
        type=int,
        default=None,
        help='Serve the read-only monitoring API on this port while converting'
    )
    parser_run.add_argument('--monitor-host', default='127.0.0.1', help='Monitoring API bind host')
    parser_run.set_defaults(func=cmd_run)

    # Validate command
    parser_validate = subparsers.add_parser('validate', help='Validate a settings file without converting')
    parser_validate.add_argument('settings', nargs='?', default=None, help='Path to settings JSON')
    parser_validate.set_defaults(func=cmd_validate)

    # Identify command
    parser_identify = subparsers.add_parser('identify', help='Identify a file or folder with siegfried')
    parser_identify.add_argument('path', help='File or folder to identify')
    parser_identify.add_argument(
        '--hashing',
        choices=[h.value for h in HashAlgorithm],
        default=HashAlgorithm.SHA256.value,
        help='Checksum algorithm (default: sha256)'
    )
    parser_identify.set_defaults(func=cmd_identify)

    # Converters command
    parser_converters = subparsers.add_parser('converters', help='List converters available on this host')
    parser_converters.set_defaults(func=cmd_converters)

    return parser


def main(argv: Optional[List[str]] = None) -> NoReturn:
    """
    Main CLI entrypoint.

    Parses arguments and dispatches to subcommands.
    """
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    args.func(args)


if __name__ == '__main__':
    main()
