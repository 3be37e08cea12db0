"""Root conftest: loads .env.test before any module imports.

``inbox_pipeline.config`` builds its settings at import time, so the
``INBOX_*`` test values must be in the environment first.
"""
from __future__ import annotations

import os
from pathlib import Path

_env_test = Path(__file__).resolve().parent / ".env.test"
if _env_test.exists():
    for line in _env_test.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, _, value = line.partition("=")
        os.environ.setdefault(key.strip(), value.strip())
