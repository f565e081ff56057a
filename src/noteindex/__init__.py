"""Local semantic index and search for notes."""

__version__ = "0.1.0"
