"""Labeled synthetic IDS dataset scenario generator."""

__version__ = "0.1.0"
