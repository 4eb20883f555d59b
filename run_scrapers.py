#!/usr/bin/env python3
"""
Convenience script to run the CLI from a source checkout.
"""

import sys
from pathlib import Path

# Add src to Python path
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

from schedule_scraper.scrapers.cli import main

if __name__ == "__main__":
    main()
