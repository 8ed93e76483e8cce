"""Shared pytest configuration."""

import os

# Tests create a QApplication through pytest-qt; no display is available in CI.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")
