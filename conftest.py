"""Pytest configuration.

Ensures the top-level module can be imported during test collection without installing.
"""

import sys
from pathlib import Path


REPO_ROOT = Path(__file__).resolve().parent

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))
