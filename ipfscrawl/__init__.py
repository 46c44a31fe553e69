"""Asynchronous indexing components for IPFS content: documents, indexes and extractors."""

__version__ = "0.1.0"