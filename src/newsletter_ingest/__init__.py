"""Newsletter issue ingestion into block-structured articles."""

__version__ = "0.1.0"
