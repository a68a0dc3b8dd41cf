"""Main entry point for ``python -m freecost``."""

from freecost.cli import main

if __name__ == "__main__":
    main()
