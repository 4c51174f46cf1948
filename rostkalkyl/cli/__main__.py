"""``python -m rostkalkyl.cli`` entry point."""

import sys

from .catalog_cli import main

if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
