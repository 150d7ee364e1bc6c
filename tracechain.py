#!/usr/bin/env python3
"""
TraceChain - chained Postman collections from HTTP captures

This is a convenience wrapper that calls the modular implementation.
The actual implementation is in src/tracechain/cli.py

Usage:
    python tracechain.py --file session.har --output collection.json
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

from tracechain.cli import main

if __name__ == '__main__':
    sys.exit(main())
