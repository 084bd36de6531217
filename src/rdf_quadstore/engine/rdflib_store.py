"""
rdflib Store plugin over the Lexicon and QuadBackend.

Lets rdflib's SPARQL implementation evaluate queries and updates against
the embedded storage. Every effective insertion or deletion is reported
through ``on_change`` with the quad's TermIds.

A store can be scoped to a dataset description (default graph made of
several graphs, restricted set of named graphs); scoped stores are
read-only views sharing the same lexicon and backend.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Iterator, Optional

import rdflib
from rdflib.graph import DATASET_DEFAULT_GRAPH_ID
from rdflib.store import Store

from rdf_quadstore.engine.tokens import QuadToken, rdflib_to_token, token_to_rdflib
from rdf_quadstore.storage.backend import QuadBackend, QuadIds
from rdf_quadstore.storage.lexicon import Lexicon

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str, QuadIds], None]


class LexiconStore(Store):
    """
    Context-aware rdflib store backed by a lexicon and an indexed backend.

    Args:
        lexicon: Term dictionary
        backend: Quad indexes
        on_change: Called with ('added' | 'deleted', quad ids) on effective changes
    """

    context_aware = True
    formula_aware = False
    graph_aware = True
    transaction_aware = False

    def __init__(
        self,
        lexicon: Lexicon,
        backend: QuadBackend,
        on_change: Optional[ChangeListener] = None,
    ):
        super().__init__()
        self.lexicon = lexicon
        self.backend = backend
        self.on_change = on_change
        self.changes = 0
        self.default_ids: Optional[list[int]] = None
        self.named_ids: Optional[set[int]] = None
        self.read_only = False
        self._namespace: dict[str, rdflib.URIRef] = {}
        self._prefix: dict[rdflib.URIRef, str] = {}
        self._graphs: dict[int, rdflib.Graph] = {}

    def scoped(self, default_ids: list[int], named_ids: Iterable[int]) -> "LexiconStore":
        """Read-only view whose default graph is the union of ``default_ids``."""
        view = LexiconStore(self.lexicon, self.backend)
        view.default_ids = list(default_ids)
        view.named_ids = set(named_ids)
        view.read_only = True
        view._namespace = dict(self._namespace)
        view._prefix = dict(self._prefix)
        return view

    # =========================================================================
    # Term / context encoding
    # =========================================================================

    def _is_default(self, identifier) -> bool:
        return identifier == DATASET_DEFAULT_GRAPH_ID

    @staticmethod
    def _identifier(context):
        # SPARQL updates without GRAPH hand over the dataset itself
        if isinstance(context, rdflib.ConjunctiveGraph):
            return DATASET_DEFAULT_GRAPH_ID
        return getattr(context, "identifier", context)

    def _context_ids(self, context, create: bool = False) -> Optional[list[int]]:
        """
        Graph ids a context stands for.

        None means every graph; an empty list means no stored graph.
        """
        if context is None:
            return None
        identifier = self._identifier(context)
        if self._is_default(identifier):
            if self.default_ids is not None:
                return list(self.default_ids)
            return [self.lexicon.default_graph_id]
        token = rdflib_to_token(identifier)
        graph_id = self.lexicon.register(token) if create else self.lexicon.resolve(token)
        if graph_id is None:
            return []
        if self.named_ids is not None and graph_id not in self.named_ids:
            return []
        return [graph_id]

    def _term_id(self, node, create: bool = False) -> Optional[int]:
        token = rdflib_to_token(node)
        return self.lexicon.register(token) if create else self.lexicon.resolve(token)

    def _decode(self, term_id: int):
        return token_to_rdflib(self.lexicon.retrieve(term_id))

    def _context_for(self, graph_id: int) -> rdflib.Graph:
        graph = self._graphs.get(graph_id)
        if graph is None:
            if graph_id == self.lexicon.default_graph_id:
                identifier = DATASET_DEFAULT_GRAPH_ID
            else:
                identifier = self._decode(graph_id)
            graph = self._graphs[graph_id] = rdflib.Graph(store=self, identifier=identifier)
        return graph

    def _patterns(self, triple_pattern, context) -> Iterator[tuple]:
        """Backend patterns for an rdflib pattern, none if a bound term is unknown."""
        ids = []
        for node in triple_pattern:
            if node is None:
                ids.append(None)
                continue
            term_id = self._term_id(node)
            if term_id is None:
                return
            ids.append(term_id)
        graph_ids = self._context_ids(context)
        if graph_ids is None:
            if self.named_ids is not None:
                graph_ids = sorted(set(self.default_ids or []) | self.named_ids)
            else:
                yield (ids[0], ids[1], ids[2], None)
                return
        for graph_id in graph_ids:
            yield (ids[0], ids[1], ids[2], graph_id)

    def forget_contexts(self) -> None:
        """Drop cached context graphs, needed once lexicon ids are reassigned."""
        self._graphs.clear()

    def _notify(self, event: str, quad: QuadIds) -> None:
        self.changes += 1
        if self.on_change is not None:
            self.on_change(event, quad)

    # =========================================================================
    # rdflib Store API
    # =========================================================================

    def add(self, triple, context, quoted: bool = False) -> None:
        if self.read_only:
            raise PermissionError("Scoped dataset views are read-only")
        graph_ids = self._context_ids(context, create=True) or [self.lexicon.default_graph_id]
        s, p, o = triple
        quad = (self._term_id(s, True), self._term_id(p, True), self._term_id(o, True), graph_ids[0])
        if self.backend.index(quad):
            self.lexicon.register_graph(quad[3])
            self._notify("added", quad)

    def addN(self, quads) -> None:
        for s, p, o, context in quads:
            self.add((s, p, o), context)

    def add_quad_token(self, quad: QuadToken) -> bool:
        """Insert a parsed quad descriptor. Returns True if it was new."""
        graph_id = self.lexicon.register(quad.graph)
        ids = (
            self.lexicon.register(quad.subject),
            self.lexicon.register(quad.predicate),
            self.lexicon.register(quad.object),
            graph_id,
        )
        if not self.backend.index(ids):
            return False
        self.lexicon.register_graph(graph_id)
        self._notify("added", ids)
        return True

    def remove(self, triple_pattern, context=None) -> None:
        if self.read_only:
            raise PermissionError("Scoped dataset views are read-only")
        for pattern in list(self._patterns(triple_pattern, context)):
            for quad in list(self.backend.range(pattern)):
                if self.backend.delete(quad):
                    self._notify("deleted", quad)

    def triples(self, triple_pattern, context=None):
        seen: dict[tuple, list[int]] = {}
        union = context is None or (
            self.default_ids is not None and self._is_default(self._identifier(context))
        )
        for pattern in self._patterns(triple_pattern, context):
            for s, p, o, g in self.backend.range(pattern):
                if not union:
                    triple = (self._decode(s), self._decode(p), self._decode(o))
                    yield triple, iter((self._context_for(g),))
                else:
                    seen.setdefault((s, p, o), []).append(g)
        for (s, p, o), graph_ids in seen.items():
            triple = (self._decode(s), self._decode(p), self._decode(o))
            yield triple, iter([self._context_for(g) for g in graph_ids])

    def __len__(self, context=None) -> int:
        return sum(1 for _ in self.triples((None, None, None), context))

    def contexts(self, triple=None):
        if triple is None:
            graph_ids = self.lexicon.graph_ids()
        else:
            graph_ids = sorted({g for _, contexts in self.triples(triple) for g in self._ids_of(contexts)})
        for graph_id in graph_ids:
            if graph_id == self.lexicon.default_graph_id:
                continue
            if self.named_ids is not None and graph_id not in self.named_ids:
                continue
            yield self._context_for(graph_id)

    def _ids_of(self, contexts) -> list[int]:
        ids = []
        for context in contexts:
            ids.extend(self._context_ids(context) or [])
        return ids

    def add_graph(self, graph) -> None:
        if self.read_only:
            return
        graph_ids = self._context_ids(graph, create=True)
        if graph_ids:
            self.lexicon.register_graph(graph_ids[0])

    def remove_graph(self, graph) -> None:
        if self.read_only:
            raise PermissionError("Scoped dataset views are read-only")
        self.remove((None, None, None), graph)
        for graph_id in self._context_ids(graph) or []:
            self.lexicon.unregister_graph(graph_id)

    # =========================================================================
    # Namespace bindings
    # =========================================================================

    def bind(self, prefix: str, namespace, override: bool = True) -> None:
        namespace = rdflib.URIRef(namespace)
        if not override and (prefix in self._namespace or namespace in self._prefix):
            return
        old_namespace = self._namespace.pop(prefix, None)
        if old_namespace is not None:
            self._prefix.pop(old_namespace, None)
        old_prefix = self._prefix.pop(namespace, None)
        if old_prefix is not None:
            self._namespace.pop(old_prefix, None)
        self._namespace[prefix] = namespace
        self._prefix[namespace] = prefix

    def namespace(self, prefix: str):
        return self._namespace.get(prefix)

    def prefix(self, namespace):
        return self._prefix.get(rdflib.URIRef(namespace))

    def namespaces(self):
        yield from self._namespace.items()
