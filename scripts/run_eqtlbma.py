#!/usr/bin/env python3
"""
Multi-subgroup eQTL analysis script (pipeline version)
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from eqtlbma.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
