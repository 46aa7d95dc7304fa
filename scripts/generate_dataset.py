#!/usr/bin/env python3
"""
Generate one labeled IDS scenario from a checkout without installing.

Usage:
    python scripts/generate_dataset.py [--config CONFIG] [--seed SEED] [--output-dir DIR]
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from idsgen.cli import main


if __name__ == "__main__":
    sys.exit(main())
