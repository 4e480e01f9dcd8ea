"""Interactive Keygen policy and license administration."""

__version__ = "1.0.0"
