"""
TraceChain CLI

Turns a recorded capture into a Postman collection whose requests pass
values along: tokens and ids returned by one response are extracted into
variables and used by the later requests that sent them.

Examples:
    # HAR capture, Claude naming when ANTHROPIC_API_KEY is set
    python tracechain.py --file session.har --output collection.json

    # Offline, with user-declared values
    python tracechain.py --file session.json --vars vars.yaml --no-ai
"""

import argparse
import json
import logging
import sys

from .capture import CaptureLoader, load_declared_values
from .chain import ChainConfig, ChainPipeline, OutputWriteFailure
from .chain.collaborators import create_collaborators
from .export import PostmanExporter

logger = logging.getLogger("tracechain.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Detect value chains in an HTTP capture and export a chained Postman collection',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Chain a HAR capture
  python tracechain.py --file session.har --output collection.json

  # Declare values to parameterize (JSON or YAML list of {name, search_value})
  python tracechain.py --file session.har --vars vars.yaml

  # Offline run: no Claude naming or locator stabilization
  python tracechain.py --file session.json --no-ai --no-stabilize
        """
    )

    parser.add_argument('--file', '-f',
                        required=True,
                        help='Capture file (HAR or TraceTap JSON log)')

    parser.add_argument('--vars',
                        help='Declared values file (JSON or YAML)')

    parser.add_argument('--output', '-o',
                        default='collection.json',
                        help='Output Postman collection (default: collection.json)')

    parser.add_argument('--config', '-c',
                        help='Chaining config YAML')

    parser.add_argument('--name',
                        help='Collection name')

    parser.add_argument('--no-ai',
                        action='store_true',
                        help='Name variables offline instead of asking Claude')

    parser.add_argument('--no-stabilize',
                        action='store_true',
                        help='Keep recorded locator paths as-is')

    parser.add_argument('--verbose', '-v',
                        action='store_true',
                        help='Debug logging')

    return parser


def load_config(args: argparse.Namespace) -> ChainConfig:
    """Config file first, then command-line overrides."""
    config = ChainConfig.from_yaml(args.config) if args.config else ChainConfig()

    if args.name:
        config.collection_name = args.name
    if args.no_ai:
        config.use_ai = False
    if args.no_stabilize:
        config.stabilize = False
    if args.verbose:
        config.log_level = "DEBUG"
    return config


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
    except (OSError, ValueError, TypeError) as e:
        print(f"❌ Error loading config {args.config}: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    print("🔗 TraceChain - Value Chain Detection")
    print(f"   Capture: {args.file}")

    try:
        interactions = CaptureLoader(args.file).load()
    except FileNotFoundError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    except (json.JSONDecodeError, ValueError) as e:
        print(f"❌ Invalid capture file: {e}", file=sys.stderr)
        return 1

    declared = []
    if args.vars:
        try:
            declared = load_declared_values(args.vars)
        except (OSError, ValueError) as e:
            print(f"❌ Error loading declared values: {e}", file=sys.stderr)
            return 1
        print(f"   Declared values: {len(declared)}")

    naming, resolver, ai_message = create_collaborators(config)
    print(f"   {ai_message}")
    print(f"\nAnalyzing {len(interactions)} interactions...")

    pipeline = ChainPipeline(config, naming, resolver)
    try:
        result = pipeline.run_and_write(
            interactions,
            lambda collection: PostmanExporter.export(collection, args.output),
            declared
        )
    except OutputWriteFailure as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    for chain in result.chains:
        usages = len(chain.request_usages)
        source = "declared" if chain.external else f"response #{chain.origin.interaction_index + 1}"
        print(f"  ✓ {{{{{chain.name}}}}} from {source}, used {usages} time{'s' if usages != 1 else ''}")

    if not result.chains:
        print("  No cross-request value chains detected")

    if result.diagnostics:
        print(f"\n⚠️  {len(result.diagnostics)} diagnostics (run with --verbose for details)")

    print(f"\n✓ Postman collection saved to: {args.output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
