"""Test helper utilities."""

from tests.helpers.fake_backend import FakeAssistantBackend, Settle

__all__ = [
    "FakeAssistantBackend",
    "Settle",
]
