# Allows the package to be run as a script using `python -m crawlkit`

from __future__ import annotations

import sys

from crawlkit.cli import main

if __name__ == "__main__":
    sys.exit(main())
