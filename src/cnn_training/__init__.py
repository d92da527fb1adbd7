"""Streaming image dataset pipeline and checkpointed CNN training loop."""

__version__ = "0.1.0"
