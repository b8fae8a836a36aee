# conftest.py — package directory
#
# Ensures that the repository root is on sys.path when pytest is invoked
# without a package install, so "import solvency_cascade" and the root-level
# "runner" / "tools" modules resolve in all test files.
#
# Usage:
#   pytest solvency_cascade/tests/ -v
#   pytest solvency_cascade/tests/test_propagation.py -v

import sys
from pathlib import Path

# Insert the repository root (the parent of this package) at the front of
# sys.path.
sys.path.insert(0, str(Path(__file__).parent.parent))
