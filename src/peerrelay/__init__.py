"""peerrelay - signaling relay for peer-to-peer session setup."""

__version__ = "0.1.0"
