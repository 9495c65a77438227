"""provenact CLI entry point: python -m provenact"""

from __future__ import annotations

import sys

from provenact.cli import main

if __name__ == "__main__":
    sys.exit(main())
