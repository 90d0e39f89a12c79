# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Command-line interface for dpifix

    dpifix check FILE...            show the declared density
    dpifix fix FILE... [-o DIR]     write 96 DPI copies where density is unspecified
    dpifix tree FILE                dump the metadata tree as JSON

Copyright 2025 DNAi inc.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dpifix import __version__
from dpifix.codec import decode
from dpifix.config import ResetConfig
from dpifix.core import batch_reset_density, inspect_file
from dpifix.density import DensityUnit
from dpifix.exceptions import DpiFixError, UnsupportedFormatError
from dpifix.format_detector import FormatDetector, STANDARD_FORMAT

logger = logging.getLogger(__name__)

UNIT_LABELS = {
    DensityUnit.PIXELS_PER_INCH: 'dpi',
    DensityUnit.PIXELS_PER_CM: 'px/cm',
    DensityUnit.PIXELS_PER_METER: 'px/m',
}


def collect_files(paths: List[str], recurse: bool = False) -> List[Path]:
    """
    Expand directories into the JPEG and PNG files they contain.

    Files named explicitly are kept whatever their extension.
    """
    files: List[Path] = []
    for name in paths:
        path = Path(name)
        if path.is_dir():
            pattern = '**/*' if recurse else '*'
            files.extend(
                p for p in sorted(path.glob(pattern))
                if p.is_file() and FormatDetector.is_supported_format(str(p))
            )
        else:
            files.append(path)
    return files


def format_density(declaration) -> str:
    if declaration is None:
        return 'unspecified'
    if declaration.value is None:
        return 'specified'
    return f"{declaration.value} {UNIT_LABELS[declaration.unit]}"


def cmd_check(args: argparse.Namespace) -> int:
    status = 0
    report = {}
    for path in collect_files(args.files, args.recurse):
        try:
            _, declaration = inspect_file(path)
        except (DpiFixError, OSError) as e:
            logger.error("%s: %s", path, e)
            report[str(path)] = {'error': str(e)}
            status = 1
            continue
        if args.json:
            report[str(path)] = {
                'specified': declaration is not None,
                'unit': declaration.unit.name.lower() if declaration else 'none',
                'value': declaration.value if declaration else None,
            }
        else:
            print(f"{path}: {format_density(declaration)}")
    if args.json:
        print(json.dumps(report, indent=2, ensure_ascii=False))
    return status


def cmd_fix(args: argparse.Namespace) -> int:
    config = ResetConfig(output_dir=args.output_dir, optimize=not args.no_optimize)
    failures = []

    def on_error(path: Path, error: Exception) -> None:
        logger.error("%s: %s", path, error)
        failures.append(path)

    results = batch_reset_density(collect_files(args.files, args.recurse), config, on_error)
    for path, output in results.items():
        if output is not None:
            print(f"{path} -> {output}")
        elif path not in failures:
            print(f"{path}: unchanged")
    return 1 if failures else 0


def cmd_tree(args: argparse.Namespace) -> int:
    try:
        with decode(args.file) as decoded:
            if decoded.metadata is None:
                raise UnsupportedFormatError(f"Unsupported image format: {decoded.format_name}")
            format_name = args.format
            if format_name is None or decoded.format_name != 'PNG':
                format_name = decoded.native_format_name
            tree = decoded.metadata.get_as_tree(format_name)
    except (DpiFixError, OSError) as e:
        logger.error("%s: %s", args.file, e)
        return 1
    print(json.dumps(tree.to_dict(), indent=2, ensure_ascii=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='dpifix',
        description='Inspect and normalize the pixel density of JPEG and PNG images',
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log debug messages')
    parser.add_argument('-q', '--quiet', action='store_true', help='Only log errors')
    subparsers = parser.add_subparsers(dest='command', required=True)

    check_parser = subparsers.add_parser('check', help='Show the declared pixel density')
    check_parser.add_argument('files', nargs='+', help='File(s) or directory(ies) to inspect')
    check_parser.add_argument('-r', '--recurse', action='store_true', help='Recursively process directories')
    check_parser.add_argument('-j', '--json', action='store_true', help='Output in JSON format')
    check_parser.set_defaults(func=cmd_check)

    fix_parser = subparsers.add_parser('fix', help='Write 96 DPI copies of images without a density')
    fix_parser.add_argument('files', nargs='+', help='File(s) or directory(ies) to process')
    fix_parser.add_argument('-r', '--recurse', action='store_true', help='Recursively process directories')
    fix_parser.add_argument('-o', '--output-dir', type=Path, help='Directory for the new files (default: temp dir)')
    fix_parser.add_argument('--no-optimize', action='store_true', help='Disable encoder optimizations')
    fix_parser.set_defaults(func=cmd_fix)

    tree_parser = subparsers.add_parser('tree', help='Dump the metadata tree as JSON')
    tree_parser.add_argument('file', help='Image file')
    tree_parser.add_argument(
        '--standard', dest='format', action='store_const', const=STANDARD_FORMAT,
        help='Dump the standard tree instead of the native one (PNG only)',
    )
    tree_parser.set_defaults(func=cmd_tree)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
