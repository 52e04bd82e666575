"""Command-line entry point for extracting sprite atlases from editor screenshots."""

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError as SettingsError

from reptonatlas.core import MAX_THREADS, ExtractionSettings
from reptonatlas.core.errors import ProcessingError, ValidationError
from reptonatlas.core.extractor import run
from reptonatlas.utils import validators

logger = logging.getLogger("extractatlases")


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stdout,
    )


def _positive_int(value: str) -> int:
    try:
        return validators.parse_positive_int(value, "Value")
    except ValidationError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="extractatlases",
        description="Extract per-colour sprite atlases from Repton map editor screenshots.",
    )
    parser.add_argument("input", type=Path, help="Folder of numbered editor screenshots (PNG)")
    parser.add_argument("output", type=Path, help="Folder to write atlases and common sprites to")
    parser.add_argument(
        "--max-threads",
        type=_positive_int,
        default=MAX_THREADS,
        help=f"Maximum screenshots processed concurrently (default: {MAX_THREADS})",
    )
    parser.add_argument(
        "--no-manifest",
        action="store_true",
        help="Skip writing the atlases.json colour reference manifest",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        settings = ExtractionSettings(
            input_dir=args.input,
            output_dir=args.output,
            max_threads=args.max_threads,
            write_manifest=not args.no_manifest,
        )
        outcome = run(settings.input_dir, settings.output_dir, settings)
    except (ValidationError, SettingsError) as exc:
        logger.error("%s", exc)
        return 1
    except ProcessingError as exc:
        logger.error("%s: %s", exc, exc.__cause__)
        return 1

    for info in outcome.atlases:
        logger.info("%s: %s (%sx%s)", info.name, info.path, info.columns, info.rows)
    if outcome.incomplete_colours:
        logger.warning("Incomplete colours: %s", ", ".join(outcome.incomplete_colours))
    return 0


if __name__ == "__main__":
    sys.exit(main())
