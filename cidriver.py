#!/usr/bin/env python3
"""
cidriver - CI build driver

Usage: CIDRIVER_ARCH=<platform> [CIDRIVER_JOBS=N] cidriver.py [-conf ARG] [-patch1 FILE] [-no-native] [-jN]
"""
import sys
from pathlib import Path

# Add project root to path to allow importing core
project_root = Path(__file__).resolve().parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from cidriver.src.cli import main  # noqa: E402


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
