#!/usr/bin/env python
"""
Seed the attribute catalog from a directory of CSV files.

Usage:
    python scripts/seed_catalog.py data/seed --create-schema
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from vehicle_specs.ingestion.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
