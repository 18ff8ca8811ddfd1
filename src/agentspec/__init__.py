"""Build-time validation and authorization core for declarative agent projects."""

__version__ = "0.1.0"
