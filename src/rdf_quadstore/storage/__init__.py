"""
Embedded storage layer.

Dictionary-encoded terms and paged sorted quad indexes, persisted as Parquet.
"""

from rdf_quadstore.storage.lexicon import (
    DEFAULT_GRAPH_URI,
    Lexicon,
    Term,
    TermId,
    TermKind,
)
from rdf_quadstore.storage.backend import QuadBackend, QuadIndex, INDEX_ORDERS

__all__ = [
    "DEFAULT_GRAPH_URI",
    "Lexicon",
    "Term",
    "TermId",
    "TermKind",
    "QuadBackend",
    "QuadIndex",
    "INDEX_ORDERS",
]
