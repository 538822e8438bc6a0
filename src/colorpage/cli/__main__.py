"""CLI entry point for colorpage.cli module.

Enables execution via: python -m colorpage.cli
"""

from colorpage.cli.worker import main

if __name__ == "__main__":
    main()
