"""
Public store interface.

Every read and write operation is turned into SPARQL text and routed
through the engine's single ``execute`` entry point; bulk loads go
straight to the engine's batch loader. Each operation returns an Outcome
and also hands it to the optional ``callback``.

Live notifications are layered on top of the engine's change channel:

    store.subscribe(None, None, None, "http://example.org/g", on_change)
    store.start_observing_node("ex:alice", on_node)
    store.start_observing_query("SELECT * WHERE { ?s ?p ?o }", on_result)
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Iterable, Optional, Union

from rdf_quadstore.engine.base import BaseEngine
from rdf_quadstore.engine.tokens import Token, term_to_token
from rdf_quadstore.loader import RDFParser
from rdf_quadstore.outcome import Outcome, OutcomeCallback
from rdf_quadstore.rdf import NamedNode, RDFEnvironment, Triple
from rdf_quadstore.serializer import TermSerializer
from rdf_quadstore.subscriptions import Subscription, SubscriptionKind, SubscriptionRegistry
from rdf_quadstore.transport import NetworkTransport

logger = logging.getLogger(__name__)

REMOTE = "remote"

SubscriptionRef = Union[Subscription, Callable]


class Store:
    """
    An RDF quad store.

    Stores are built by ``rdf_quadstore.create`` or ``rdf_quadstore.connect``;
    the engine variant is fixed for the lifetime of the instance.

    Attributes:
        engine: The engine handle
        rdf: Term factory and prefix resolver used to expand CURIEs
    """

    def __init__(self, engine: BaseEngine, rdf: Optional[RDFEnvironment] = None):
        self.engine = engine
        self.rdf = rdf if rdf is not None else RDFEnvironment()
        self.serializer = TermSerializer(self.rdf)
        self.subscriptions = SubscriptionRegistry(engine.callbacks_backend)

    def __repr__(self) -> str:
        return f"Store(engine={type(self.engine).__name__}, subscriptions={len(self.subscriptions)})"

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _finish(outcome: Outcome, callback: Optional[OutcomeCallback]) -> Outcome:
        if callback is not None:
            callback(outcome)
        return outcome

    def _resolve(self, uri: str) -> str:
        resolved = self.rdf.resolve(uri)
        return resolved if resolved is not None else uri

    def _graph_node(self, graph_uri: Optional[str]) -> NamedNode:
        if graph_uri is None:
            return NamedNode(self.engine.default_graph_uri)
        if not isinstance(graph_uri, str):
            raise TypeError(f"graph_uri must be a string, got {type(graph_uri).__name__}")
        return NamedNode(self._resolve(graph_uri))

    @staticmethod
    def _check_triples(triples: Any) -> None:
        if isinstance(triples, (str, bytes)) or not hasattr(triples, "__iter__"):
            raise TypeError("triples must be an iterable of triples")

    def _pattern_token(self, value) -> Optional[Token]:
        if value is None:
            return None
        if isinstance(value, str):
            return Token.uri(self._resolve(value))
        return term_to_token(value)

    # =========================================================================
    # Query execution
    # =========================================================================

    def execute(self, query: str, callback: Optional[OutcomeCallback] = None) -> Outcome:
        """
        Execute a SPARQL query or update.

        Results:
        - SELECT: list of binding dicts (variable name -> term)
        - CONSTRUCT / DESCRIBE: Graph
        - ASK: bool
        - updates: number of quads changed
        """
        if not isinstance(query, str):
            raise TypeError("query must be a string")
        logger.debug(f"execute: {query}")
        return self._finish(self.engine.execute(query), callback)

    def execute_with_environment(
        self,
        query: str,
        default_graphs: Iterable[str],
        named_graphs: Iterable[str],
        callback: Optional[OutcomeCallback] = None,
    ) -> Outcome:
        """Execute a query against an explicit default and named dataset."""
        if not isinstance(query, str):
            raise TypeError("query must be a string")
        for graphs in (default_graphs, named_graphs):
            if isinstance(graphs, str) or not hasattr(graphs, "__iter__"):
                raise TypeError("default_graphs and named_graphs must be lists of graph URIs")
        default_tokens = [Token.uri(uri) for uri in default_graphs]
        named_tokens = [Token.uri(uri) for uri in named_graphs]
        logger.debug(f"execute with {len(default_tokens)} default / {len(named_tokens)} named graphs: {query}")
        return self._finish(self.engine.execute(query, default_tokens, named_tokens), callback)

    def graph(self, graph_uri: Optional[str] = None, callback: Optional[OutcomeCallback] = None) -> Outcome:
        """All triples of a graph (the default graph if none is given) as a Graph."""
        graph = self._graph_node(graph_uri)
        return self._finish(
            self.engine.execute(f"CONSTRUCT {{ ?s ?p ?o }} WHERE {{ GRAPH <{graph.value}> {{ ?s ?p ?o }} }}"),
            callback,
        )

    def node(
        self,
        node_uri: str,
        graph_uri: Optional[str] = None,
        callback: Optional[OutcomeCallback] = None,
    ) -> Outcome:
        """All triples whose subject is ``node_uri``, as a Graph."""
        graph = self._graph_node(graph_uri)
        node = self._resolve(node_uri)
        return self._finish(
            self.engine.execute(
                f"CONSTRUCT {{ <{node}> ?p ?o }} WHERE {{ GRAPH <{graph.value}> {{ <{node}> ?p ?o }} }}"
            ),
            callback,
        )

    # =========================================================================
    # Modification
    # =========================================================================

    def _data_statement(self, verb: str, triples: Iterable[Triple], graph_uri: Optional[str]) -> str:
        self._check_triples(triples)
        graph = self._graph_node(graph_uri)
        body = self.serializer.triples_to_query(triples)
        return f"{verb} DATA {{ GRAPH {self.serializer.node_to_query(graph)} {{ {body} }} }}"

    def insert(
        self,
        triples: Iterable[Triple],
        graph_uri: Optional[str] = None,
        callback: Optional[OutcomeCallback] = None,
    ) -> Outcome:
        """Insert triples into a graph, the default graph if none is given."""
        query = self._data_statement("INSERT", triples, graph_uri)
        return self._finish(self.engine.execute(query), callback)

    def delete(
        self,
        triples: Iterable[Triple],
        graph_uri: Optional[str] = None,
        callback: Optional[OutcomeCallback] = None,
    ) -> Outcome:
        """Remove triples from a graph, the default graph if none is given."""
        query = self._data_statement("DELETE", triples, graph_uri)
        return self._finish(self.engine.execute(query), callback)

    def clear(self, graph_uri: Optional[str] = None, callback: Optional[OutcomeCallback] = None) -> Outcome:
        """Remove every triple of a graph, the default graph if none is given."""
        graph = self._graph_node(graph_uri)
        return self._finish(
            self.engine.execute(f"CLEAR GRAPH {self.serializer.node_to_query(graph)}"),
            callback,
        )

    def load(
        self,
        media_type: str,
        data: Any,
        graph_uri: Optional[str] = None,
        callback: Optional[OutcomeCallback] = None,
    ) -> Outcome:
        """
        Load RDF data into a graph.

        Args:
            media_type: Media type of ``data``, or 'remote' when ``data`` is a URI
                to fetch with content negotiation
            data: Serialized RDF, a ``file://`` URI, or a remote URI
            graph_uri: Target graph, the default graph if None
            callback: Receives the Outcome; its value is the number of quads loaded

        Loads do not notify subscribers unless batch load events are enabled.
        """
        if not isinstance(media_type, str):
            raise TypeError("media_type must be a string")
        graph = self._graph_node(graph_uri)
        loader = self.engine.rdf_loader

        if media_type == REMOTE:
            source = self._resolve(data)
            outcome = self.engine.execute(f"LOAD <{source}> INTO GRAPH <{graph.value}>")
            return self._finish(outcome, callback)

        parser: Optional[RDFParser] = loader.parsers.get(media_type)
        if isinstance(data, str) and data.startswith("file://"):
            parsed = loader.load_from_file(parser, Token.uri(graph.value), data)
        else:
            if not isinstance(data, (str, bytes)):
                data = json.dumps(data)
            parsed = loader.try_to_parse(parser, Token.uri(graph.value), data)

        if not parsed.ok:
            return self._finish(parsed, callback)
        return self._finish(self.engine.batch_load(parsed.value), callback)

    def register_parser(self, media_type: str, parser: RDFParser) -> None:
        """Register (or replace) the parser used for ``media_type``."""
        self.engine.rdf_loader.register_parser(media_type, parser)

    def registered_graphs(self, callback: Optional[OutcomeCallback] = None) -> Outcome:
        """NamedNodes of every named graph in the store."""
        graphs = [NamedNode(uri) for uri in self.engine.registered_graphs()]
        return self._finish(Outcome.success(graphs), callback)

    def set_batch_load_events(self, must_fire_events: bool) -> None:
        """Whether loads notify node, query and pattern subscribers. Off by default."""
        self.engine.events_on_batch_load = bool(must_fire_events)

    # =========================================================================
    # Namespaces
    # =========================================================================

    def set_prefix(self, prefix: str, uri: str) -> None:
        self.rdf.set_prefix(prefix, uri)

    def set_default_prefix(self, uri: str) -> None:
        self.rdf.set_default_prefix(uri)

    def register_default_namespace(self, prefix: str, uri: str) -> None:
        """Register a prefix locally and declare it in every query."""
        self.rdf.prefixes.set(prefix, uri)
        self.engine.register_default_namespace(prefix, uri)

    def register_default_profile_namespaces(self) -> None:
        """Declare every prefix of the environment's profile in all queries."""
        for prefix, uri in self.rdf.prefixes.values().items():
            if prefix:
                self.register_default_namespace(prefix, uri)

    # =========================================================================
    # Notifications
    # =========================================================================

    def start_observing_node(
        self,
        uri: str,
        callback: Callable[[Any], Any],
        graph_uri: Optional[str] = None,
    ) -> Subscription:
        """
        Call ``callback`` with the node's full Graph after every change to it.

        Returns:
            Subscription handle accepted by ``stop_observing_node``
        """
        node = Token.uri(self._resolve(uri))
        graph = Token.uri(self._resolve(graph_uri)) if graph_uri is not None else None
        return self.subscriptions.observe_node(node, callback, graph)

    def stop_observing_node(self, ref: SubscriptionRef) -> None:
        self.subscriptions.cancel(SubscriptionKind.NODE, ref)

    def start_observing_query(
        self,
        query: str,
        callback: Callable[[Any], Any],
        ready_callback: Optional[Callable[[], Any]] = None,
    ) -> Subscription:
        """
        Call ``callback`` with the new result of a SELECT or CONSTRUCT query
        whenever an update changes it. ``ready_callback`` fires once the
        observer is registered.
        """
        if not isinstance(query, str):
            raise TypeError("query must be a string")
        return self.subscriptions.observe_query(query, callback, ready_callback)

    def stop_observing_query(self, ref: SubscriptionRef) -> None:
        self.subscriptions.cancel(SubscriptionKind.QUERY, ref)

    def subscribe(self, s, p, o, g, callback: Callable[[str, list[Triple]], Any]) -> Subscription:
        """
        Call ``callback(event, triples)`` for changes matching a pattern.

        ``s``, ``p`` and ``o`` may be None to match anything; ``g`` is required.
        ``event`` is 'added' or 'deleted'.
        """
        if g is None:
            raise ValueError("subscribe requires a graph; wildcard graphs are not supported")
        if not callable(callback):
            raise TypeError("callback must be callable")
        pattern = (self._pattern_token(s), self._pattern_token(p), self._pattern_token(o), self._pattern_token(g))
        return self.subscriptions.subscribe(pattern, callback)

    def unsubscribe(self, ref: SubscriptionRef) -> None:
        """Cancel a pattern subscription. Unknown callbacks are ignored."""
        self.subscriptions.cancel(SubscriptionKind.PATTERN, ref)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def network_transport(self) -> NetworkTransport:
        return self.engine.rdf_loader.transport

    def close(self) -> None:
        """Flush persistent state."""
        self.engine.close()
