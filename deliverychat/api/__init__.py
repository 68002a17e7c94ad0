"""HTTP API for delivery chat."""
