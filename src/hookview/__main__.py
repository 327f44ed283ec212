"""Entry point for ``python -m hookview``."""

from hookview.cli import main

if __name__ == "__main__":
    main()
