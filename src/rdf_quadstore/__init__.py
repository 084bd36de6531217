"""
rdf-quadstore: an embeddable RDF quad store with SPARQL and live change notifications.

Two engine variants:
- embedded (default): rdflib SPARQL over a dictionary-encoded, Polars-persisted quad index
- document: rdflib in-memory dataset persisted as an N-Quads document
"""

__version__ = "0.1.0"

from rdf_quadstore.config import StoreConfig, EngineKind, ConfigValidationError
from rdf_quadstore.outcome import Outcome, StoreError
from rdf_quadstore.rdf import (
    NamedNode,
    BlankNode,
    Literal,
    Triple,
    Graph,
    PrefixMap,
    RDFEnvironment,
)
from rdf_quadstore.serializer import TermSerializer
from rdf_quadstore.subscriptions import Subscription, SubscriptionKind, SubscriptionState
from rdf_quadstore.transport import HttpTransport, NetworkTransport, TransportResponse
from rdf_quadstore.store import Store
from rdf_quadstore.connector import create, connect

__all__ = [
    "StoreConfig",
    "EngineKind",
    "ConfigValidationError",
    "Outcome",
    "StoreError",
    # RDF terms
    "NamedNode",
    "BlankNode",
    "Literal",
    "Triple",
    "Graph",
    "PrefixMap",
    "RDFEnvironment",
    "TermSerializer",
    # Notifications
    "Subscription",
    "SubscriptionKind",
    "SubscriptionState",
    # Network
    "HttpTransport",
    "NetworkTransport",
    "TransportResponse",
    # Construction
    "Store",
    "create",
    "connect",
    # Out-of-process client
    "StoreClient",
]


# Lazy import: the worker client pulls in multiprocessing machinery
def __getattr__(name):
    if name == "StoreClient":
        from rdf_quadstore.connection import StoreClient
        return StoreClient
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
