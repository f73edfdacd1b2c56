"""Affinity - keyword indexing and related-note discovery for markdown vaults."""

__version__ = "0.3.0"
