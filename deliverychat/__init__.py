"""Natural language chat over a delivery management database."""

__version__ = "0.1.0"
