"""Start the vetting bot from the repository root: ``python bot.py``."""

from __future__ import annotations

import asyncio
import sys

from bots.runtime import main

if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
