"""Main entry point for the libris package."""

from libris.circulation.cli import main

if __name__ == "__main__":
    main()
