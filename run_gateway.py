#!/usr/bin/env python3
"""Gateway runner script for easy execution."""

import sys
from pathlib import Path

# Add zogate to path
sys.path.insert(0, str(Path(__file__).parent))

from zogate.app.main import main

if __name__ == "__main__":
    main()
