"""
Command-line interface for msk_harvest.
"""

import argparse
import json
import logging
import sys

from . import HarvestError, Importer, ImporterConfig, __version__
from .config import read_env, read_ini


def _add_pid_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group('lookup tables')
    group.add_argument(
        '--pid-module',
        choices=['rcf', 'lwp'],
        help='Fetch CSVs from an object store (rcf) or a web site (lwp)'
    )
    group.add_argument('--pid-username', help='Object store user or HTTP user')
    group.add_argument('--pid-password', help='Object store key or HTTP password')
    group.add_argument('--pid-rcf-container-name', help='Container holding the CSVs (rcf)')
    group.add_argument('--pid-rcf-endpoint-url', help='Object store endpoint URL (rcf)')
    group.add_argument('--pid-rcf-region', help='Object store region (rcf)')
    group.add_argument('--pid-lwp-base-url', help='URL the CSV names are appended to (lwp)')
    group.add_argument('--pid-lwp-realm', help='HTTP Basic Authentication realm (lwp)')
    group.add_argument('--table-directory', help='Where CSVs and tables are written')


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog='msk-harvest',
        description='OAI-PMH importer with PID lookup tables'
    )
    parser.add_argument(
        '--version', '-V',
        action='version',
        version=f'msk-harvest {__version__}'
    )
    parser.add_argument(
        '--config', '-c',
        help='INI file with an [importer] section'
    )
    parser.add_argument(
        '--section',
        default='importer',
        help='Section of the INI file to read (default: importer)'
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    verbosity.add_argument('--quiet', '-q', action='store_true', help='Only log warnings')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # harvest command
    harvest_parser = subparsers.add_parser('harvest', help='Prepare tables and harvest records')
    harvest_parser.add_argument('endpoint', nargs='?', help='OAI-PMH endpoint URL')
    harvest_parser.add_argument(
        '--prefix', '-p',
        dest='metadata_prefix',
        help='Metadata prefix (default: oai_lido)'
    )
    harvest_parser.add_argument('--set', '-s', dest='set_spec', help='Set to harvest')
    harvest_parser.add_argument('--from', '-f', dest='from_date', help='From date (YYYY-MM-DD)')
    harvest_parser.add_argument('--until', '-u', dest='until_date', help='Until date (YYYY-MM-DD)')
    harvest_parser.add_argument('--username', help='HTTP Basic Auth user for the endpoint')
    harvest_parser.add_argument('--password', help='HTTP Basic Auth password for the endpoint')
    harvest_parser.add_argument(
        '--handler',
        help='Record handler: oai_dc, marcxml, mods, lido, struct, raw or +module.Class'
    )
    harvest_parser.add_argument('--limit', '-l', type=int, help='Maximum records to harvest')
    harvest_parser.add_argument('--output', '-o', help='Output JSON Lines file')
    harvest_parser.add_argument(
        '--no-tables',
        action='store_true',
        help='Skip the lookup tables'
    )
    _add_pid_arguments(harvest_parser)

    # tables command
    tables_parser = subparsers.add_parser('tables', help='Only prepare the lookup tables')
    _add_pid_arguments(tables_parser)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(0)

    level = logging.INFO
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )

    try:
        config = build_config(args)
        if args.command == 'harvest':
            cmd_harvest(args, config)
        elif args.command == 'tables':
            cmd_tables(config)
    except HarvestError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def build_config(args) -> ImporterConfig:
    """Environment, then the INI file, then command-line flags."""
    options = read_env()
    if args.config:
        options.update(read_ini(args.config, args.section))

    for name in (
        'endpoint', 'metadata_prefix', 'set_spec', 'from_date', 'until_date',
        'username', 'password', 'handler',
        'pid_module', 'pid_username', 'pid_password', 'pid_rcf_container_name',
        'pid_rcf_endpoint_url', 'pid_rcf_region', 'pid_lwp_base_url', 'pid_lwp_realm',
        'table_directory',
    ):
        value = getattr(args, name, None)
        # Added after any INI 'set'/'from'/'until', so the flag wins
        if value is not None:
            options[name] = value
    return ImporterConfig.from_mapping(options)


def cmd_harvest(args, config: ImporterConfig):
    """Execute harvest command."""
    limit = args.limit
    harvest = Importer(config).open(prepare_tables=not args.no_tables)
    out = open(args.output, 'w', encoding='utf-8') if args.output else sys.stdout
    count = 0
    try:
        with harvest:
            # Checked before iterating so a zero limit requests no page
            if limit is None or limit > 0:
                for record in harvest:
                    out.write(json.dumps(record, ensure_ascii=False) + '\n')
                    count += 1
                    if limit is not None and count >= limit:
                        break
    finally:
        if args.output:
            out.close()

    print(f"Harvested {count} records", file=sys.stderr)
    if args.output:
        print(f"Saved to {args.output}", file=sys.stderr)


def cmd_tables(config: ImporterConfig):
    """Execute tables command."""
    tables = Importer(config).prepare()
    for name, table in tables.items():
        print(f"{name}: {table.path} ({len(table)} rows)")


if __name__ == '__main__':
    main()
