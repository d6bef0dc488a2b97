"""Entry point for running the bot as a module via python -m bots"""

import asyncio
import sys

from bots.runtime import main

if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
