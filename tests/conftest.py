"""Pytest configuration and shared fixtures."""

import pytest

from helpers import MockPeer


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Reset logging state before each test."""
    from peerrelay.logging import reset_logging

    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def make_peer():
    """Factory for MockPeer instances."""
    return MockPeer
