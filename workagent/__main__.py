"""Entry point for `python -m workagent`.

Usage:
    python -m workagent
    uv run python -m workagent
"""

from __future__ import annotations

import asyncio

from workagent.app import main

asyncio.run(main())
