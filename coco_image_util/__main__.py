"""
Entry point for the CoCo Disk Image Utility.

Allows running as: python -m coco_image_util
"""

import argparse
import sys

from . import __version__
from .commands import cmd_copyin, cmd_copyout, cmd_dump, cmd_format, cmd_ls, cmd_rm, print_extended_help
from .formatter import OutputFormatter
from .logging_config import setup_logging, QUIET, NORMAL, VERBOSE


def main() -> int:
    """Main entry point."""
    # Check for extended help before argparse
    if '--help-syntax' in sys.argv:
        print_extended_help()
        return 0

    parser = argparse.ArgumentParser(
        prog='coco_image_util',
        description='TRS-80 Color Computer DOS floppy disk image utility',
        epilog='Use --help-syntax for name syntax, type/encoding qualifiers and examples.'
    )

    # Global options
    parser.add_argument('--version', action='version',
                        version=f'%(prog)s {__version__}')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Show detailed output')
    parser.add_argument('-q', '--quiet', action='store_true',
                        help='Suppress non-essential output')
    parser.add_argument('--json', action='store_true', help='Output in JSON format')
    parser.add_argument('--help-syntax', action='store_true',
                        help='Show detailed help with syntax and examples')

    subparsers = parser.add_subparsers(dest='command', required=True)

    # Dump command
    dump_parser = subparsers.add_parser('dump', help='Show directory, granule chains and consistency problems')
    dump_parser.add_argument('image', help='Disk image path')
    dump_parser.add_argument('--json', action='store_true', default=argparse.SUPPRESS,
                             help='Output in JSON format')

    # Format command
    format_parser = subparsers.add_parser('format', help='Create an empty disk image (overwrites)')
    format_parser.add_argument('image', help='Disk image path')
    format_parser.add_argument('--json', action='store_true', default=argparse.SUPPRESS,
                               help='Output in JSON format')

    # Ls command
    ls_parser = subparsers.add_parser('ls', help='List files')
    ls_parser.add_argument('image', help='Disk image path')
    ls_parser.add_argument('names', nargs='*', metavar='NAME.EXT', help='Files to show (default: all)')
    ls_parser.add_argument('--json', action='store_true', default=argparse.SUPPRESS,
                           help='Output in JSON format')

    # Rm command
    rm_parser = subparsers.add_parser('rm', help='Remove files from disk image')
    rm_parser.add_argument('image', help='Disk image path')
    rm_parser.add_argument('names', nargs='+', metavar='NAME.EXT', help='Files to remove')
    rm_parser.add_argument('--json', action='store_true', default=argparse.SUPPRESS,
                           help='Output in JSON format')

    # Copyin command
    copyin_parser = subparsers.add_parser('copyin', help='Copy host files onto disk image',
                                          epilog='Use --help-syntax for [type,encoding] qualifiers.')
    copyin_parser.add_argument('image', help='Disk image path')
    copyin_parser.add_argument('files', nargs='+', metavar='FILE', help='Host files (FILE or FILE[type,encoding])')
    copyin_parser.add_argument('--json', action='store_true', default=argparse.SUPPRESS,
                               help='Output in JSON format')

    # Copyout command
    copyout_parser = subparsers.add_parser('copyout', help='Copy files from disk image to host')
    copyout_parser.add_argument('image', help='Disk image path')
    copyout_parser.add_argument('names', nargs='+', metavar='NAME.EXT', help='Files to copy')
    copyout_parser.add_argument('-d', '--directory', help='Output directory (default: current directory)')
    copyout_parser.add_argument('--json', action='store_true', default=argparse.SUPPRESS,
                                help='Output in JSON format')

    args = parser.parse_args()

    # Configure logging based on verbosity flags
    if args.quiet:
        setup_logging(level=QUIET)
    elif args.verbose:
        setup_logging(level=VERBOSE)
    else:
        setup_logging(level=NORMAL)

    formatter = OutputFormatter(json_mode=args.json)

    match args.command:
        case 'dump':
            return cmd_dump(args, formatter)
        case 'format':
            return cmd_format(args, formatter)
        case 'ls':
            return cmd_ls(args, formatter)
        case 'rm':
            return cmd_rm(args, formatter)
        case 'copyin':
            return cmd_copyin(args, formatter)
        case 'copyout':
            return cmd_copyout(args, formatter)
        case _:
            formatter.error(f"Unknown command: {args.command}")
            return 1


if __name__ == '__main__':
    sys.exit(main())
