"""Provision and query a blob-backed Azure Cognitive Search index."""

__version__ = "0.1.0"
