"""Allow ``python -m bitmatch``."""

import sys

from bitmatch.main import main

if __name__ == "__main__":
    sys.exit(main())
