"""
Document-store engine: an rdflib in-memory dataset kept on disk as a
single N-Quads (or TriG) document.

The store's default graph is the named graph ``default_graph_uri`` so it
can be addressed with GRAPH like any other graph; it is also the dataset's
default graph, so queries and updates without GRAPH use it.

The in-memory store has no reliable change hooks, so while observers are
registered an update is bracketed by two quad snapshots and the difference
is reported.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

import rdflib
from rdflib.graph import DATASET_DEFAULT_GRAPH_ID

from rdf_quadstore.config import ConfigValidationError, StoreConfig, read_json_config, write_json_config
from rdf_quadstore.engine.base import BaseEngine
from rdf_quadstore.engine.callbacks import ADDED, DELETED
from rdf_quadstore.engine.query_engine import convert_result
from rdf_quadstore.engine.tokens import QuadToken, Token, rdflib_to_token, token_to_rdflib
from rdf_quadstore.outcome import Outcome
from rdf_quadstore.storage.lexicon import DEFAULT_GRAPH_URI
from rdf_quadstore.transport import NetworkTransport

logger = logging.getLogger(__name__)

CONFIG_FILE = "quadstore.json"
ENGINE_OPTIONS = frozenset({"format", "read_only"})
DOCUMENT_FORMATS = {"nquads": "quads.nq", "trig": "quads.trig"}


class DocumentQueryEngine(BaseEngine):
    """
    Engine for the document-store variant.

    Args:
        config: Store configuration; ``engine_options`` accepts ``format``
            ('nquads' or 'trig') and ``read_only``
        transport: Network transport used by remote loads
    """

    def __init__(self, config: StoreConfig, transport: Optional[NetworkTransport] = None):
        super().__init__(config, transport)
        unknown = set(config.engine_options) - ENGINE_OPTIONS
        if unknown:
            raise ConfigValidationError(f"Unknown document engine options: {', '.join(sorted(unknown))}")
        self.format = config.engine_options.get("format", "nquads")
        if self.format not in DOCUMENT_FORMATS:
            raise ConfigValidationError(f"Unsupported document format: {self.format!r}")
        self.read_only = bool(config.engine_options.get("read_only", False))
        self._default_graph_uri = DEFAULT_GRAPH_URI
        self.dataset = self._new_dataset()

    def _new_dataset(self) -> rdflib.Dataset:
        dataset = rdflib.Dataset()
        dataset.default_graph = dataset.graph(rdflib.URIRef(self._default_graph_uri))
        return dataset

    @property
    def default_graph_uri(self) -> str:
        return self._default_graph_uri

    # =========================================================================
    # Persisted configuration and data
    # =========================================================================

    @property
    def _config_path(self) -> Optional[Path]:
        return self.config.data_dir / CONFIG_FILE if self.config.persistent else None

    @property
    def document_path(self) -> Optional[Path]:
        return self.config.data_dir / DOCUMENT_FORMATS[self.format] if self.config.persistent else None

    def read_configuration(self, callback: Optional[Callable[[], Any]] = None) -> None:
        """Restore namespaces, the default graph URI and the quads saved by a previous run."""
        if self._config_path is not None:
            data = read_json_config(self._config_path)
            self._default_graph_uri = data.get("default_graph_uri", self._default_graph_uri)
            self.default_namespaces.update(data.get("namespaces", {}))
            self.dataset = self._new_dataset()
            if self.document_path.exists():
                self.dataset.parse(self.document_path, format=self.format)
                logger.info(f"Loaded {self._quad_count()} quads from {self.document_path}")
        if callback is not None:
            callback()

    def _write_configuration(self) -> None:
        if self._config_path is not None and not self.read_only:
            write_json_config(self._config_path, {
                "default_graph_uri": self._default_graph_uri,
                "namespaces": self.default_namespaces,
            })

    def register_default_namespace(self, prefix: str, uri: str) -> None:
        super().register_default_namespace(prefix, uri)
        self._write_configuration()

    def clean(self, callback: Optional[Callable[[], Any]] = None) -> None:
        """Remove all quads and saved namespaces."""
        self.dataset = self._new_dataset()
        self.default_namespaces.clear()
        self._write_configuration()
        self._persist()
        logger.info("Cleaned document store")
        if callback is not None:
            callback()

    def _persist(self) -> None:
        path = self.document_path
        if path is None or self.read_only:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        self.dataset.serialize(destination=str(tmp), format=self.format)
        os.replace(tmp, path)

    # =========================================================================
    # Execution
    # =========================================================================

    def _graph_token(self, identifier) -> Token:
        if identifier is None or identifier == DATASET_DEFAULT_GRAPH_ID:
            return Token.uri(self._default_graph_uri)
        return rdflib_to_token(identifier)

    def _snapshot(self) -> set[tuple]:
        return set(self.dataset.quads((None, None, None, None)))

    def _quad_count(self) -> int:
        return sum(len(graph) for graph in self.dataset.graphs())

    def _scoped_dataset(
        self,
        default_graphs: Optional[list[Token]],
        named_graphs: Optional[list[Token]],
    ) -> rdflib.Dataset:
        scoped = rdflib.Dataset()
        for token in default_graphs or []:
            for triple in self.dataset.graph(token_to_rdflib(token)):
                scoped.default_graph.add(triple)
        for token in named_graphs or []:
            identifier = token_to_rdflib(token)
            target = scoped.graph(identifier)
            for triple in self.dataset.graph(identifier):
                target.add(triple)
        return scoped

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
        if self.read_only:
            raise PermissionError("Document store is read-only")
        before = self._snapshot()
        self.dataset.update(query)
        after = self._snapshot()
        if self.callbacks_backend.is_recording:
            for s, p, o, g in before - after:
                self.callbacks_backend.next_graph_modification(
                    DELETED, QuadToken(rdflib_to_token(s), rdflib_to_token(p), rdflib_to_token(o), self._graph_token(g))
                )
            for s, p, o, g in after - before:
                self.callbacks_backend.next_graph_modification(
                    ADDED, QuadToken(rdflib_to_token(s), rdflib_to_token(p), rdflib_to_token(o), self._graph_token(g))
                )
        return Outcome.success(len(before ^ after))

    def _insert_quads(self, quads: Iterable[QuadToken]) -> int:
        if self.read_only:
            raise PermissionError("Document store is read-only")
        count = 0
        for quad in quads:
            graph = self.dataset.graph(token_to_rdflib(quad.graph))
            triple = (token_to_rdflib(quad.subject), token_to_rdflib(quad.predicate), token_to_rdflib(quad.object))
            if triple in graph:
                continue
            graph.add(triple)
            count += 1
            if self.callbacks_backend.is_recording:
                self.callbacks_backend.next_graph_modification(ADDED, quad)
        return count

    def registered_graphs(self) -> list[str]:
        return [
            str(graph.identifier) for graph in self.dataset.graphs()
            if isinstance(graph.identifier, rdflib.URIRef)
            and graph.identifier not in (DATASET_DEFAULT_GRAPH_ID, rdflib.URIRef(self._default_graph_uri))
        ]
