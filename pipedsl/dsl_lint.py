#!/usr/bin/env python3
"""
Lint pipeline files for errors and warnings.

Usage:
    pipedsl-lint <file.pipe> [file2.pipe ...]
    pipedsl-lint --check FILE      # Also fail if FILE is not in canonical form
    pipedsl-lint --format FILE     # Rewrite FILE in canonical form
    pipedsl-lint --dump --yaml FILE
"""

import argparse
import logging
import sys
from pathlib import Path

from .dsl_converter import pipeline_to_yaml
from .dsl_parser import ParseError
from .dsl_validate import validate_pipeline
from .pipeline import Pipeline, load_pipeline

logger = logging.getLogger(__name__)


def get_backup_path(path: Path) -> Path:
    """Backup written before formatting: .filename.bak next to the file."""
    return path.parent / f".{path.name}.bak"


def save_backup(path: Path, content: str) -> Path:
    backup = get_backup_path(path)
    backup.write_text(content, encoding='utf-8')
    return backup


def format_file(path: Path, source: str, pipeline: Pipeline) -> int:
    """Rewrite path in canonical form. Returns 1 if it could not be formatted."""
    if pipeline.variables:
        print(f"{path}: error: cannot format a file defining configuration variables")
        return 1

    formatted = pipeline.to_text()
    if formatted == source:
        return 0

    bak_path = save_backup(path, source)
    path.write_text(formatted, encoding='utf-8')
    print(f"{path}: reformatted")
    print(f"  Pre-format backup: {bak_path}")
    return 0


def lint_file(path: Path, parallel: bool = False, check_format: bool = False,
              apply_format: bool = False, show_dump: bool = False,
              show_yaml: bool = False) -> tuple[int, int]:
    """Lint a single file. Returns (error_count, warning_count)."""
    try:
        source = path.read_text(encoding='utf-8')
        pipeline = load_pipeline(str(path), parallel=parallel)
    except OSError as e:
        print(f"{path}: cannot read file: {e.strerror or e}")
        return 1, 0
    except UnicodeDecodeError:
        print(f"{path}: not a text file")
        return 1, 0
    except ParseError as e:
        print(f"{path}: parse error: {e}")
        return 1, 0

    result = validate_pipeline(pipeline)

    for error in result.errors:
        print(f"{error.pos or path}: error: {error.message}")

    for warning in result.warnings:
        print(f"{warning.pos or path}: warning: {warning.message}")

    errors = len(result.errors)

    if check_format and pipeline.to_text() != source:
        print(f"{path}: error: file is not in canonical format")
        errors += 1

    if apply_format and not result.has_errors:
        errors += format_file(path, source, pipeline)

    if show_dump:
        pipeline.dump(sys.stdout)

    if show_yaml:
        sys.stdout.write(pipeline_to_yaml(pipeline))

    return errors, len(result.warnings)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Lint pipeline files for errors and warnings."
    )
    parser.add_argument(
        "files",
        nargs="*",
        help="Files to lint"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Also report files that are not in canonical format"
    )
    parser.add_argument(
        "--format",
        action="store_true",
        help="Rewrite files in canonical format (comments are dropped; a .bak backup is kept)"
    )
    parser.add_argument(
        "--dump",
        action="store_true",
        help="Print the block table of each file"
    )
    parser.add_argument(
        "--yaml",
        action="store_true",
        help="Print each file as YAML"
    )
    parser.add_argument(
        "--parallel",
        action="store_true",
        help="Load the default block as parallel"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show informational log messages"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )

    if not args.files:
        parser.print_help()
        sys.exit(1)

    total_errors = 0
    total_warnings = 0

    for name in args.files:
        path = Path(name)
        if not Pipeline.check_if_pipe_file(str(path)):
            logger.info("%s does not look like a pipeline file", path)
        errors, warnings = lint_file(
            path,
            parallel=args.parallel,
            check_format=args.check,
            apply_format=args.format,
            show_dump=args.dump,
            show_yaml=args.yaml,
        )
        total_errors += errors
        total_warnings += warnings

    if total_errors or total_warnings:
        print(f"\n{total_errors} error(s), {total_warnings} warning(s)")

    sys.exit(1 if total_errors else 0)


if __name__ == "__main__":
    main()
