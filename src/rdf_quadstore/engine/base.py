"""
Engine handle shared behaviour.

Every engine exposes one entry point, ``execute``, returning an Outcome:
- SELECT: list of bindings (variable name -> RDF term)
- CONSTRUCT / DESCRIBE: Graph
- ASK: bool
- updates: number of quads changed

Updates run inside a modification window of the engine's
CallbacksBackend so observers are notified once the update completes.
LOAD statements are served by the engine's RDFLoader so that remote
documents go through the injected network transport.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from rdf_quadstore.config import StoreConfig
from rdf_quadstore.engine.callbacks import CallbacksBackend
from rdf_quadstore.engine.tokens import QuadToken, Token
from rdf_quadstore.loader import RDFLoader
from rdf_quadstore.outcome import Outcome, StoreError
from rdf_quadstore.transport import NetworkTransport

logger = logging.getLogger(__name__)

_PROLOGUE = re.compile(
    r"^(?:\s+|#[^\n]*\n?|PREFIX\s+[\w.-]*:\s*<[^>]*>|BASE\s+<[^>]*>)*",
    re.IGNORECASE,
)
_FIRST_KEYWORD = re.compile(r"[A-Za-z]+")
_LOAD = re.compile(
    r"^LOAD\s+(SILENT\s+)?<([^>]*)>(?:\s+INTO\s+GRAPH\s+<([^>]*)>)?\s*;?\s*$",
    re.IGNORECASE,
)
UPDATE_KEYWORDS = frozenset(
    {"INSERT", "DELETE", "LOAD", "CLEAR", "DROP", "CREATE", "ADD", "MOVE", "COPY", "WITH"}
)


def split_prologue(query: str) -> tuple[str, str]:
    """Split a query into its PREFIX/BASE prologue and its body."""
    match = _PROLOGUE.match(query)
    end = match.end() if match else 0
    return query[:end], query[end:]


def is_update(query: str) -> bool:
    _, body = split_prologue(query)
    keyword = _FIRST_KEYWORD.match(body)
    return keyword is not None and keyword.group(0).upper() in UPDATE_KEYWORDS


class BaseEngine(ABC):
    """
    Common engine plumbing: namespaces, LOAD handling, batch loading and
    change notification.

    Args:
        config: Store configuration
        transport: Network transport used by remote loads
    """

    def __init__(self, config: StoreConfig, transport: Optional[NetworkTransport] = None):
        self.config = config
        self.callbacks_backend = CallbacksBackend(self)
        self.rdf_loader = RDFLoader(transport)
        self.events_on_batch_load = False
        self.default_namespaces: dict[str, str] = {}

    @property
    @abstractmethod
    def default_graph_uri(self) -> str:
        ...

    def register_default_namespace(self, prefix: str, uri: str) -> None:
        """Declare ``prefix`` in every query executed by this engine."""
        self.default_namespaces[prefix] = uri

    def _with_prologue(self, query: str) -> str:
        missing = [
            f"PREFIX {prefix}: <{uri}>"
            for prefix, uri in self.default_namespaces.items()
            if not re.search(rf"PREFIX\s+{re.escape(prefix)}:", query, re.IGNORECASE)
        ]
        if not missing:
            return query
        return "\n".join(missing) + "\n" + query

    # =========================================================================
    # Execution
    # =========================================================================

    def execute(
        self,
        query: str,
        default_graphs: Optional[list[Token]] = None,
        named_graphs: Optional[list[Token]] = None,
    ) -> Outcome:
        """Run a SPARQL query or update. Failures are returned, never raised."""
        query = self._with_prologue(query)
        _, body = split_prologue(query)
        try:
            load = _LOAD.match(body)
            if load is not None:
                silent, source, graph = load.groups()
                return self._execute_load(source, graph or self.default_graph_uri, bool(silent))
            if is_update(query):
                if default_graphs or named_graphs:
                    raise StoreError("Dataset scoping only applies to read queries")
                with self.callbacks_backend.modification():
                    outcome = self._execute_update(query)
                self._persist()
                return outcome
            return self._execute_query(query, default_graphs, named_graphs)
        except Exception as e:
            logger.warning(f"Query failed: {e}")
            logger.debug(f"Failed query text: {query}")
            return Outcome.failure(e)

    def _execute_load(self, source: str, graph: str, silent: bool = False) -> Outcome:
        outcome = self.rdf_loader.load_remote(source, Token.uri(graph))
        if not outcome.ok:
            if silent:
                return Outcome.success(0)
            return outcome
        return self.batch_load(outcome.value)

    def batch_load(self, quads: Iterable[QuadToken]) -> Outcome:
        """
        Insert parsed quads directly, bypassing SPARQL.

        Observers are only notified when ``events_on_batch_load`` is set.
        """
        try:
            with self.callbacks_backend.modification(notify=self.events_on_batch_load):
                count = self._insert_quads(quads)
        except Exception as e:
            logger.warning(f"Batch load failed: {e}")
            return Outcome.failure(e)
        self._persist()
        logger.info(f"Batch loaded {count} quads")
        return Outcome.success(count)

    def node_graph(self, node: Token, graph: Token) -> Outcome:
        """All triples whose subject is ``node`` in ``graph``, as a Graph."""
        subject = node.to_sparql()
        return self.execute(
            f"CONSTRUCT {{ {subject} ?p ?o }} WHERE {{ GRAPH {graph.to_sparql()} {{ {subject} ?p ?o }} }}"
        )

    # =========================================================================
    # Variant hooks
    # =========================================================================

    @abstractmethod
    def _execute_query(
        self,
        query: str,
        default_graphs: Optional[list[Token]],
        named_graphs: Optional[list[Token]],
    ) -> Outcome:
        ...

    @abstractmethod
    def _execute_update(self, query: str) -> Outcome:
        ...

    @abstractmethod
    def _insert_quads(self, quads: Iterable[QuadToken]) -> int:
        ...

    @abstractmethod
    def registered_graphs(self) -> list[str]:
        """URIs of all named graphs, the default graph excluded."""
        ...

    @abstractmethod
    def clean(self) -> None:
        """Remove all stored data."""
        ...

    def _persist(self) -> None:
        pass

    def close(self) -> None:
        self._persist()
