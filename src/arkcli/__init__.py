"""ark-cli: command-line tool for ARK resource roots."""

__version__ = "0.3.0"
