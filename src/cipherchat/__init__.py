"""CipherChat: end-to-end encrypted two-party chat relay."""

__version__ = "0.1.0"
