#!/usr/bin/env python3
"""Launch the WiredGeist Architect web UI on http://localhost:8080."""

import argparse
import logging
import sys
from pathlib import Path

# Add src/ to Python path so bare imports work (project convention)
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ui.app import main

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the interactive geometry UI.")
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Enable verbose logging",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s",
    )
    main()
