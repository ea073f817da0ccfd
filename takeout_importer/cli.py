"""Command line entry point for Takeout Importer."""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from takeout_importer import __version__
from takeout_importer.catalog import load_remote_catalog
from takeout_importer.constants import get_default_paths
from takeout_importer.errors import ConfigError, TakeoutImporterError
from takeout_importer.google import GoogleGeocoder, GooglePhotosClient, GoogleTimezoneLookup
from takeout_importer.importer import FolderImport, MediaImporter
from takeout_importer.logging import logger, setup_logging
from takeout_importer.models import ImportOptions
from takeout_importer.progress import Progress
from takeout_importer.store import JsonLinesStore
from takeout_importer.warning import WarningLog


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog='takeout-importer',
        description='Import Google Takeout archives into normalized catalog records.',
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument(
        '--log-level',
        default='WARNING',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Console log level (default: WARNING)',
    )
    sub = parser.add_subparsers(dest='command', required=True)

    imp = sub.add_parser('import', help='Import a folder of archives and media files')
    imp.add_argument('root', type=Path, help='Folder holding .tar.gz archives and/or media files')
    imp.add_argument(
        '-o', '--out',
        type=Path,
        default=None,
        help='Output JSON Lines file (default: ./imported/records.jsonl)',
    )
    imp.add_argument('--recursive', action='store_true', help='Also scan sub-folders')
    imp.add_argument('--assume-tz', default=None, help='Timezone for local-time video stamps, "+10:00" or "Australia/Brisbane"')
    imp.add_argument('--force-tz', default=None, help='Timezone every resolved timestamp is shown in')
    imp.add_argument('--assume-notes', default=None, help='Notes for files that have none')
    imp.add_argument('--assume-location', default=None, help='"lat,lon[,alt]" for files without a location')
    imp.add_argument(
        '--google-api-key',
        default=os.environ.get('GOOGLE_API_KEY'),
        help='Google Maps API key for timezone and geocode lookups (default: $GOOGLE_API_KEY)',
    )
    imp.add_argument(
        '--google-access-token',
        default=None,
        help='Google Photos OAuth access token; links records to remote media items',
    )
    return parser.parse_args(argv)


def print_warnings(log: WarningLog) -> None:
    """Print the warning summary table followed by every warning."""
    if not len(log):
        print('No warnings.')
        return

    counts = log.counts()
    width = max(len(kind.label) for kind in counts)
    print(f"{'Warning':<{width}}  Count")
    for kind in sorted(counts, key=lambda k: k.value):
        print(f"{kind.label:<{width}}  {counts[kind]}")
    print()
    for warning in log.sorted():
        print(warning)


def run_import(args: argparse.Namespace) -> int:
    options = ImportOptions.from_strings(
        assumed_timezone=args.assume_tz,
        forced_timezone=args.force_tz,
        assumed_notes=args.assume_notes,
        assumed_location=args.assume_location,
    )

    timezone_lookup = geocoder = None
    if args.google_api_key:
        timezone_lookup = GoogleTimezoneLookup(args.google_api_key)
        geocoder = GoogleGeocoder(args.google_api_key)

    progress = Progress(lambda state: logger.debug(f"{state.current_stage}: {state.percent:.1f}%"))

    remote_index = None
    if args.google_access_token:
        progress.start_stage('Loading remote catalog', [])
        remote_index = load_remote_catalog(GooglePhotosClient(args.google_access_token), progress)

    out = args.out or get_default_paths()['output_dir'] / 'records.jsonl'
    store = JsonLinesStore(out)
    importer = MediaImporter(options, timezone_lookup, geocoder, remote_index)
    folder = FolderImport(args.root, store, importer, recursive=args.recursive, progress=progress)

    log = folder.run()
    print(f"Imported {folder.imported} files into {out} ({folder.skipped} skipped)")
    recent = folder.recent_tags.recent()
    if recent:
        print(f"Recent tags: {', '.join(tag.name for tag in recent)}")
    print_warnings(log)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(get_default_paths()['log_dir'], console_level=args.log_level)

    try:
        if args.command == 'import':
            return run_import(args)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except (TakeoutImporterError, OSError) as e:
        logger.exception(f"Import failed: {e}")
        return 1
    return 2


if __name__ == '__main__':
    sys.exit(main())
