"""Command-line interface for delivery chat."""
