"""xref: reference and call-hierarchy queries over 1C configuration projects."""

__version__ = "0.4.0"
