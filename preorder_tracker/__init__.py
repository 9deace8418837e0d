"""Pre-order tracker with the option constraint resolution engine."""

__version__ = "1.0.0"
