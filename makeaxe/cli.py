"""Command-line interface for makeaxe.

Usage: makeaxe [OPTIONS] SOURCE [DESTINATION|CONFIG]

Builds the resolver in SOURCE (or, with ``--all``, every resolver in its
subdirectories) into DESTINATION, or publishes them to the Relaxe
instance described by CONFIG when ``--relaxe`` is given.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from makeaxe.__version__ import __version__
from makeaxe.bundle.metadata import CONTENT_DIR, METADATA_FILE
from makeaxe.bundle.package import BuildOptions, PackageResult, package
from makeaxe.bundle.utils import exists_dir, exists_file
from makeaxe.core.config_manager import ConfigManager, RelaxeConfig
from makeaxe.core.logging_manager import LoggingManager
from makeaxe.publish.catalog import Catalog, MongoCatalog
from makeaxe.publish.workflow import PublishOutcome, Publisher
from makeaxe.utils.exceptions import AxeError, CatalogError, ManagerInitializationError

logger = structlog.get_logger(__name__)

PROGRAM_NAME = "makeaxe"
PROGRAM_DESCRIPTION = "the Tomahawk resolver bundle creator"
USAGE_EXIT_CODE = 2


def die(message: str) -> int:
    """Report a usage or path error.

    Returns:
        The usage error exit code
    """
    print(message, file=sys.stderr)
    print(f"See {PROGRAM_NAME} --help for usage information.", file=sys.stderr)
    return USAGE_EXIT_CODE


def prepare_paths(input_path: Path, build_all: bool) -> List[Path]:
    """List the resolver directories to build.

    Args:
        input_path: The SOURCE directory
        build_all: Build every subdirectory holding a metadata file instead
            of SOURCE itself

    Raises:
        OSError: If SOURCE cannot be listed
    """
    if not build_all:
        return [input_path]

    input_list = []
    for entry in sorted(input_path.iterdir()):
        if not entry.is_dir():
            continue
        try:
            is_axe_dir = exists_file(entry / CONTENT_DIR / METADATA_FILE)
        except OSError:
            is_axe_dir = False
        if not is_axe_dir:
            logger.info("Directory does not seem to be an axe directory, skipping", directory=entry.name)
            continue
        input_list.append(entry)
    return input_list


def build_to_directory(
        input_list: List[Path],
        output_path: Path,
        options: BuildOptions
) -> List[PackageResult]:
    """Build each resolver directory into ``output_path``.

    A directory that fails to build is logged and skipped.
    """
    results = []
    for input_dir in input_list:
        try:
            result = package(input_dir, output_path, release=options.release, force=options.force)
        except AxeError as e:
            logger.warning("Could not build axe for directory", directory=input_dir.name, error=str(e))
            continue
        if not result.skipped:
            logger.info("Created axe", path=str(result.archive_path))
        results.append(result)
    return results


def build_to_relaxe(
        input_list: List[Path],
        config: RelaxeConfig,
        catalog: Catalog
) -> List[PublishOutcome]:
    """Publish each resolver directory to the Relaxe catalog."""
    publisher = Publisher(catalog, config.cache_directory)
    return publisher.publish_all(input_list)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROGRAM_NAME,
        usage="%(prog)s [OPTIONS] SOURCE [DESTINATION|CONFIG]",
        description=f"{PROGRAM_NAME} - {PROGRAM_DESCRIPTION}",
    )
    parser.add_argument(
        "source", nargs="?",
        help="Path of the unpackaged resolver directory, or with --all, the parent of all resolver directories",
    )
    parser.add_argument(
        "target", nargs="?",
        help="Directory where built axes are placed (defaults to SOURCE), "
             "or with --relaxe, the Relaxe configuration file",
    )
    parser.add_argument("-a", "--all", action="store_true", dest="build_all",
                        help="Build all the resolvers in the SOURCE path's subdirectories")
    parser.add_argument("-r", "--release", action="store_true",
                        help="Skip trying to add the git revision hash to a bundle")
    parser.add_argument("-f", "--force", action="store_true",
                        help="Build a bundle and overwrite even if the destination already contains "
                             "a bundle of the same name and version")
    parser.add_argument("-x", "--relaxe", action="store_true",
                        help="Publish resolvers on a Relaxe instance with the given config file, "
                             "implies --release and ignores --force and DESTINATION")
    parser.add_argument("-v", "--version", action="version",
                        version=f"{PROGRAM_NAME}, version {__version__}")
    parser.add_argument("--log-level", choices=["debug", "info", "warning", "error"], default=None,
                        help="Logging level (default: info)")
    parser.add_argument("--log-format", choices=["text", "json"], default=None,
                        help="Logging output format (default: text)")
    return parser


def _logging_config(args: argparse.Namespace, base: Optional[dict] = None) -> dict:
    config = dict(base or {})
    if args.log_level:
        config["level"] = args.log_level
        config["console"] = dict(config.get("console", {}), level=args.log_level)
    if args.log_format:
        config["format"] = args.log_format
    return config


def _run_relaxe(args: argparse.Namespace, input_list: List[Path]) -> int:
    if args.target is None:
        return die("Error: source or Relaxe configuration file path missing.")

    config_path = Path(args.target).resolve()
    try:
        config_ok = exists_file(config_path)
    except OSError:
        config_ok = False
    if not config_ok:
        return die("Error: bad Relaxe configuration file path.")

    config_manager = ConfigManager(config_path)
    try:
        config_manager.initialize()
    except ManagerInitializationError as e:
        return die(f"Error: {e}")
    config = config_manager.config

    logging_manager = LoggingManager(_logging_config(args, config.logging))
    try:
        logging_manager.initialize()
    except ManagerInitializationError as e:
        return die(f"Error: {e}")
    try:
        catalog = MongoCatalog(config.database)
        try:
            catalog.connect()
        except CatalogError as e:
            return die(f"Error: cannot connect to Relaxe database. Reason: {e}")
        try:
            build_to_relaxe(input_list, config, catalog)
        finally:
            catalog.close()
    finally:
        logging_manager.shutdown()
    return 0


def _run_directory(args: argparse.Namespace, input_path: Path, input_list: List[Path]) -> int:
    if args.target is None:
        output_path = input_path
    else:
        output_path = Path(args.target).resolve()
        try:
            output_ok = exists_dir(output_path)
        except OSError:
            output_ok = False
        if not output_ok:
            return die("Error: bad destination directory path.")

    options = BuildOptions(release=args.release, force=args.force)
    build_to_directory(input_list, output_path, options)
    return 0


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point for the command-line interface.

    Args:
        args: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code: 2 for usage and path errors found before packaging,
        0 otherwise, whatever happened to individual resolvers
    """
    parser = create_parser()
    args = parser.parse_args(args)

    if args.source is None:
        return die("Error: a source directory must be specified.")

    input_path = Path(args.source).resolve()
    try:
        source_ok = exists_dir(input_path)
    except OSError:
        source_ok = False
    if not source_ok:
        return die("Error: bad source directory path.")

    logging_manager = LoggingManager(_logging_config(args))
    logging_manager.initialize()
    try:
        try:
            input_list = prepare_paths(input_path, args.build_all)
        except OSError as e:
            return die(f"Error: cannot list source directory: {e}")

        if args.relaxe:
            # The Relaxe run sets up logging again from its configuration file.
            logging_manager.shutdown()
            return _run_relaxe(args, input_list)
        return _run_directory(args, input_path, input_list)
    finally:
        logging_manager.shutdown()


if __name__ == "__main__":
    sys.exit(main())
