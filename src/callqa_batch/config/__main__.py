"""CLI entry point for configuration introspection."""

import sys

from callqa_batch.config.introspection import main

if __name__ == "__main__":
    sys.exit(main())
