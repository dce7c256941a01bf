"""Shared pytest setup: make the repo-root packages importable without an install."""

import sys
from pathlib import Path

# This file lives at: <repo_root>/tests/conftest.py
REPO_ROOT = Path(__file__).resolve().parents[1]

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))
