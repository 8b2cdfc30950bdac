"""poe CLI entry point: python -m poe"""

from __future__ import annotations

import sys

from poe.cli import main

if __name__ == "__main__":
    sys.exit(main())
