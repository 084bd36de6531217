"""
Embedded query engine: rdflib SPARQL over the lexicon and quad backend.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

import rdflib

from rdf_quadstore.config import StoreConfig
from rdf_quadstore.engine.base import BaseEngine
from rdf_quadstore.engine.rdflib_store import LexiconStore
from rdf_quadstore.engine.tokens import QuadToken, Token, rdflib_to_term
from rdf_quadstore.outcome import Outcome
from rdf_quadstore.rdf import Graph, Triple
from rdf_quadstore.storage.backend import QuadBackend, QuadIds
from rdf_quadstore.storage.lexicon import Lexicon
from rdf_quadstore.transport import NetworkTransport

logger = logging.getLogger(__name__)


def convert_result(result) -> object:
    """Convert an rdflib query result into bindings, a Graph or a bool."""
    if result.type == "ASK":
        return bool(result.askAnswer)
    if result.type in ("CONSTRUCT", "DESCRIBE"):
        return Graph(
            Triple(rdflib_to_term(s), rdflib_to_term(p), rdflib_to_term(o))
            for s, p, o in result.graph
        )
    return [
        {name: rdflib_to_term(value) for name, value in row.asdict().items()}
        for row in result
    ]


class QueryEngine(BaseEngine):
    """
    Engine for the embedded variant.

    Args:
        backend: Quad indexes
        lexicon: Term dictionary
        config: Store configuration
        transport: Network transport used by remote loads
    """

    def __init__(
        self,
        backend: QuadBackend,
        lexicon: Lexicon,
        config: StoreConfig,
        transport: Optional[NetworkTransport] = None,
    ):
        super().__init__(config, transport)
        self.backend = backend
        self.lexicon = lexicon
        self.store = LexiconStore(lexicon, backend, on_change=self._on_change)
        self.dataset = rdflib.Dataset(store=self.store)

    @property
    def default_graph_uri(self) -> str:
        return self.lexicon.default_graph_uri

    def _on_change(self, event: str, quad: QuadIds) -> None:
        if self.callbacks_backend.is_recording:
            self.callbacks_backend.next_graph_modification(
                event, QuadToken(*(self.lexicon.retrieve(term_id) for term_id in quad))
            )

    def _scoped_dataset(
        self,
        default_graphs: Optional[list[Token]],
        named_graphs: Optional[list[Token]],
    ) -> rdflib.Dataset:
        def ids(tokens):
            resolved = (self.lexicon.resolve(token) for token in tokens or [])
            return [term_id for term_id in resolved if term_id is not None]

        view = self.store.scoped(ids(default_graphs), ids(named_graphs))
        dataset = rdflib.Dataset(store=view)
        return dataset

    def _execute_query(
        self,
        query: str,
        default_graphs: Optional[list[Token]],
        named_graphs: Optional[list[Token]],
    ) -> Outcome:
        if default_graphs is None and named_graphs is None:
            dataset = self.dataset
        else:
            dataset = self._scoped_dataset(default_graphs, named_graphs)
        return Outcome.success(convert_result(dataset.query(query)))

    def _execute_update(self, query: str) -> Outcome:
        before = self.store.changes
        self.dataset.update(query)
        return Outcome.success(self.store.changes - before)

    def _insert_quads(self, quads: Iterable[QuadToken]) -> int:
        return sum(1 for quad in quads if self.store.add_quad_token(quad))

    def registered_graphs(self) -> list[str]:
        return self.lexicon.registered_graphs(True)

    def clean(self) -> None:
        self.lexicon.clear()
        self.backend.clear()
        self.store.forget_contexts()
        self._persist()

    def _persist(self) -> None:
        if self.config.persistent:
            data_dir = self.config.data_dir
            self.lexicon.save(data_dir)
            self.backend.save(data_dir)
