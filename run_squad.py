#!/usr/bin/env python
"""
Run script for squadlink.

This script sets up the logging directory and runs the entry point.
"""

import os
import sys
from pathlib import Path

# Ensure 'squadlink' is importable when run from a checkout
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from squadlink.config import LOG_DIR

# Create logs directory if it doesn't exist
Path(LOG_DIR).mkdir(parents=True, exist_ok=True)

from squadlink.main import main

if __name__ == "__main__":
    sys.exit(main())
