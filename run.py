#!/usr/bin/env python3
"""
Main entry point for the gator feed aggregator when run from a checkout.
"""
import sys
from pathlib import Path

# Ensure the project root is in the Python path
project_root = Path(__file__).resolve().parent
sys.path.append(str(project_root))

from gator.main import main

if __name__ == "__main__":
    sys.exit(main())
