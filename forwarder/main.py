"""Command line entry point: forward line protocol metrics to Pandora.

Reads InfluxDB line protocol from a file or stdin and writes it in batches
through the selected adapter.
"""

import argparse
import itertools
import logging
import sys
from typing import Iterable, Iterator, List, Optional, TextIO

from .core.config import AdapterConfig, load_settings
from .core.errors import ConfigError, ForwarderError
from .core.logging_config import LoggingConfigurator
from .schema.line_protocol import parse_lines
from .writer.base import Writer
from .writer.factory import WriterRegistry, default_registry

DEFAULT_BATCH_SIZE = 1000


def create_argument_parser(registry: WriterRegistry) -> argparse.ArgumentParser:
    """Create the command line argument parser."""

    parser = argparse.ArgumentParser(
        description='Forward line protocol metrics to Pandora pipeline / TSDB',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Forward a file into a pipeline repo, creating the repo when missing
  forwarder --output pipeline --url https://pipeline.qiniu.com --repo monitor \\
            --ak AK --sk SK --auto-create --input metrics.lp

  # Read settings from a YAML file, metrics from stdin
  collect_metrics | forwarder --config pandora.yaml
        """
    )

    parser.add_argument('--config', type=str, default=None,
                        help='YAML or JSON configuration file')
    parser.add_argument('--output', choices=registry.names(), default=None,
                        help='Adapter to use (default: "output" from config file, else pipeline)')
    parser.add_argument('--sample-config', action='store_true',
                        help='Print a sample configuration for --output and exit')

    backend_group = parser.add_argument_group('Backend Configuration')
    backend_group.add_argument('--url', type=str, default=None, help='Backend endpoint (http or https)')
    backend_group.add_argument('--tsdb-url', dest='tsdb_url', type=str, default=None,
                               help='TSDB endpoint used by the pipeline adapter for exports')
    backend_group.add_argument('--repo', type=str, default=None, help='Target repo')
    backend_group.add_argument('--ak', type=str, default=None, help='Access key')
    backend_group.add_argument('--sk', type=str, default=None, help='Secret key')
    backend_group.add_argument('--auto-create', dest='auto_create', action='store_true',
                               help='Create missing repos, schema fields and series')
    backend_group.add_argument('--retention-policy', dest='retention_policy', type=str, default=None,
                               help='Retention of auto created series, 1d..30d')
    backend_group.add_argument('--timeout', type=str, default=None,
                               help='Request timeout, e.g. 5s. 0s disables it (not recommended)')

    input_group = parser.add_argument_group('Input')
    input_group.add_argument('--input', type=str, default='-',
                             help='Line protocol file, "-" for stdin (default)')
    input_group.add_argument('--batch-size', dest='batch_size', type=int, default=DEFAULT_BATCH_SIZE,
                             help=f'Points per write (default: {DEFAULT_BATCH_SIZE})')

    debug_group = parser.add_argument_group('Debugging')
    debug_group.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                             default='INFO', help='Set logging level (default: INFO)')
    debug_group.add_argument('--logfile', type=str, default=None,
                             help='Path to log file (default: stderr only)')
    debug_group.add_argument('--metrics-port', dest='metrics_port', type=int, default=None,
                             help='Expose prometheus self-metrics on this port')

    return parser


def validate_arguments(args) -> Optional[str]:
    """Validate command line arguments.

    Returns:
        Error message if validation fails, None if valid
    """
    if args.batch_size <= 0:
        return "--batch-size must be positive"
    return None


def batched(lines: Iterable[str], size: int) -> Iterator[List[str]]:
    iterator = iter(lines)
    while True:
        chunk = list(itertools.islice(iterator, size))
        if not chunk:
            return
        yield chunk


def forward(writer: Writer, stream: TextIO, batch_size: int) -> int:
    """Write ``stream`` through ``writer`` batch by batch.

    Returns:
        Number of points handed to the writer
    """
    total = 0
    for lines in batched(stream, batch_size):
        metrics = parse_lines(lines)
        writer.write(metrics)
        total += len(metrics)
    return total


def main(argv: Optional[List[str]] = None, registry: Optional[WriterRegistry] = None) -> int:
    """Main entry point."""

    registry = registry or default_registry()
    parser = create_argument_parser(registry)
    args = parser.parse_args(argv)

    error_msg = validate_arguments(args)
    if error_msg:
        parser.error(error_msg)

    LoggingConfigurator.setup_logging(log_level=args.log_level, log_file=args.logfile)

    try:
        settings = load_settings(args.config)
        output = settings.pop('output', None)
        output = args.output or output or 'pipeline'

        if args.sample_config:
            print(registry.get(output)(AdapterConfig()).sample_config())
            return 0

        config = AdapterConfig.from_args(args, settings)
        logging.info(f"Output: {output}, configuration: {config.to_dict()}")

        writer = registry.create(output, config)
        writer.connect()
    except ConfigError as e:
        logging.error(f"Configuration error: {e}")
        return 2
    except ValueError as e:
        logging.error(str(e))
        return 2

    try:
        stream = sys.stdin if args.input == '-' else open(args.input, 'r', encoding='utf-8')
    except OSError as e:
        logging.error(f"Cannot read input: {e}")
        writer.close()
        return 2

    try:
        total = forward(writer, stream, args.batch_size)
        logging.info(f"Forwarded {total} points: {writer.stats.get_stats()}")
    except KeyboardInterrupt:
        logging.info("Received interrupt, shutting down...")
    except ForwarderError as e:
        logging.error(f"Write failed: {e}")
        return 1
    finally:
        if stream is not sys.stdin:
            stream.close()
        writer.close()

    return 0


if __name__ == '__main__':
    sys.exit(main())
