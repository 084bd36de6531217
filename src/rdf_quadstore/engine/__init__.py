"""
Query engines.

Two interchangeable engine variants share the BaseEngine plumbing:
- QueryEngine: rdflib SPARQL over the embedded lexicon and quad backend
- DocumentQueryEngine: rdflib in-memory dataset persisted as one document
"""

from rdf_quadstore.engine.tokens import Token, QuadToken
from rdf_quadstore.engine.callbacks import CallbacksBackend, ADDED, DELETED
from rdf_quadstore.engine.base import BaseEngine

__all__ = [
    "Token",
    "QuadToken",
    "CallbacksBackend",
    "ADDED",
    "DELETED",
    "BaseEngine",
]
