"""
Lexicon: dictionary encoding of RDF terms.

Maps term descriptors to integer TermIds for the embedded quad backend.

Key design decisions:
- Tagged ID space: high bits encode term kind for O(1) kind detection
- Per-kind fast-path caches keyed by lexical form
- Bounded decode cache for TermId -> descriptor lookups
- Persistence: Parquet-backed for restart-safe term catalogs
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Optional

import polars as pl

from rdf_quadstore.config import DEFAULT_MAX_CACHE_SIZE, DEFAULT_NAME
from rdf_quadstore.engine.tokens import BLANK, LITERAL, URI, Token

logger = logging.getLogger(__name__)

DEFAULT_GRAPH_URI = "https://github.com/antoniogarrote/rdfstore-js#default_graph"


# =============================================================================
# Term Identity and Encoding
# =============================================================================

class TermKind(IntEnum):
    """
    RDF term kind enumeration.

    Encoded in the high 2 bits of TermId for O(1) kind detection.
    """
    IRI = 0
    LITERAL = 1
    BNODE = 2


# Type alias for term identifiers (u64)
TermId = int

KIND_SHIFT = 62
KIND_MASK = 0x3
PAYLOAD_MASK = (1 << KIND_SHIFT) - 1

_TOKEN_KINDS = {URI: TermKind.IRI, LITERAL: TermKind.LITERAL, BLANK: TermKind.BNODE}


def make_term_id(kind: TermKind, payload: int) -> TermId:
    """Create a TermId from kind and payload."""
    return (kind << KIND_SHIFT) | (payload & PAYLOAD_MASK)


def get_term_kind(term_id: TermId) -> TermKind:
    """Extract the term kind from a TermId."""
    return TermKind((term_id >> KIND_SHIFT) & KIND_MASK)


def get_term_payload(term_id: TermId) -> int:
    return term_id & PAYLOAD_MASK


@dataclass(frozen=True, slots=True)
class Term:
    """
    Stored representation of an RDF term.

    Attributes:
        kind: The type of term (IRI, LITERAL, BNODE)
        lex: Lexical form (IRI string, literal value, bnode label)
        datatype_id: TermId of datatype IRI (for typed literals)
        lang: Language tag (for language-tagged literals)
    """
    kind: TermKind
    lex: str
    datatype_id: Optional[TermId] = None
    lang: Optional[str] = None


class Lexicon:
    """
    Term catalog for one store.

    Besides term encoding, the lexicon owns the default graph URI and the
    registry of graphs that have held quads.

    Thread-safety: NOT thread-safe. Use external synchronization for concurrent access.
    """

    def __init__(
        self,
        name: str = DEFAULT_NAME,
        max_cache_size: int = DEFAULT_MAX_CACHE_SIZE,
        default_graph_uri: str = DEFAULT_GRAPH_URI,
    ):
        self.name = name
        self.max_cache_size = max_cache_size
        self.default_graph_uri = default_graph_uri
        self._reset()

    def _reset(self) -> None:
        # Start at 1 to reserve payload 0
        self._next_payload: dict[TermKind, int] = {kind: 1 for kind in TermKind}
        self._term_to_id: dict[Term, TermId] = {}
        self._id_to_term: dict[TermId, Term] = {}
        self._iri_cache: dict[str, TermId] = {}
        self._decode_cache: OrderedDict[TermId, Token] = OrderedDict()
        self._graphs: dict[TermId, None] = {}
        self.default_graph_id = self.intern_iri(self.default_graph_uri)

    def clear(self) -> None:
        """Drop every interned term and registered graph."""
        logger.debug(f"Clearing lexicon '{self.name}'")
        self._reset()

    def _allocate_id(self, kind: TermKind) -> TermId:
        payload = self._next_payload[kind]
        self._next_payload[kind] = payload + 1
        return make_term_id(kind, payload)

    def _get_or_create(self, term: Term) -> TermId:
        term_id = self._term_to_id.get(term)
        if term_id is None:
            term_id = self._allocate_id(term.kind)
            self._term_to_id[term] = term_id
            self._id_to_term[term_id] = term
            if term.kind == TermKind.IRI:
                self._iri_cache[term.lex] = term_id
        return term_id

    def intern_iri(self, value: str) -> TermId:
        cached = self._iri_cache.get(value)
        if cached is not None:
            return cached
        return self._get_or_create(Term(TermKind.IRI, value))

    def _to_term(self, token: Token, create: bool) -> Optional[Term]:
        kind = _TOKEN_KINDS.get(token.token)
        if kind is None:
            raise ValueError(f"Unknown token kind: {token.token!r}")
        datatype_id = None
        if token.datatype is not None:
            datatype_id = self.intern_iri(token.datatype) if create else self._iri_cache.get(token.datatype)
            if datatype_id is None:
                return None
        return Term(kind, token.value, datatype_id, token.lang)

    def register(self, token: Token) -> TermId:
        """Intern a descriptor, returning its TermId."""
        if token.token == URI:
            return self.intern_iri(token.value)
        return self._get_or_create(self._to_term(token, create=True))

    def resolve(self, token: Token) -> Optional[TermId]:
        """Get the TermId for a descriptor if it exists, without creating it."""
        if token.token == URI:
            return self._iri_cache.get(token.value)
        term = self._to_term(token, create=False)
        return self._term_to_id.get(term) if term is not None else None

    def retrieve(self, term_id: TermId) -> Token:
        """Decode a TermId into a descriptor."""
        token = self._decode_cache.get(term_id)
        if token is not None:
            self._decode_cache.move_to_end(term_id)
            return token
        term = self._id_to_term.get(term_id)
        if term is None:
            raise KeyError(f"Unknown term id {term_id}")
        if term.kind == TermKind.IRI:
            token = Token.uri(term.lex)
        elif term.kind == TermKind.BNODE:
            token = Token.blank(term.lex)
        else:
            datatype = self._id_to_term[term.datatype_id].lex if term.datatype_id is not None else None
            token = Token.literal(term.lex, term.lang, datatype)
        self._decode_cache[term_id] = token
        if len(self._decode_cache) > self.max_cache_size:
            self._decode_cache.popitem(last=False)
        return token

    # =========================================================================
    # Graph registry
    # =========================================================================

    def register_graph(self, graph_id: TermId) -> None:
        self._graphs[graph_id] = None

    def unregister_graph(self, graph_id: TermId) -> None:
        self._graphs.pop(graph_id, None)

    def graph_ids(self) -> list[TermId]:
        return list(self._graphs)

    def registered_graphs(self, only_named: bool = True) -> list[str]:
        """URIs of the graphs holding quads; ``only_named`` skips the default graph."""
        return [
            self._id_to_term[graph_id].lex
            for graph_id in self._graphs
            if not (only_named and graph_id == self.default_graph_id)
        ]

    def __len__(self) -> int:
        return len(self._id_to_term)

    # =========================================================================
    # Persistence (Parquet)
    # =========================================================================

    def to_dataframe(self) -> pl.DataFrame:
        return pl.DataFrame(
            {
                "term_id": [tid for tid in self._id_to_term],
                "kind": [int(t.kind) for t in self._id_to_term.values()],
                "lex": [t.lex for t in self._id_to_term.values()],
                "datatype_id": [t.datatype_id for t in self._id_to_term.values()],
                "lang": [t.lang for t in self._id_to_term.values()],
            },
            schema={
                "term_id": pl.UInt64,
                "kind": pl.UInt8,
                "lex": pl.Utf8,
                "datatype_id": pl.UInt64,
                "lang": pl.Utf8,
            },
        )

    def save(self, path: Path) -> None:
        """
        Save the lexicon to Parquet files.

        Creates:
        - {path}/lexicon.parquet
        - {path}/graphs.parquet
        """
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        self.to_dataframe().write_parquet(path / "lexicon.parquet")
        pl.DataFrame(
            {"graph_id": list(self._graphs)}, schema={"graph_id": pl.UInt64}
        ).write_parquet(path / "graphs.parquet")

    @staticmethod
    def exists(path: Path) -> bool:
        return (Path(path) / "lexicon.parquet").exists()

    @classmethod
    def load(
        cls,
        path: Path,
        name: str = DEFAULT_NAME,
        max_cache_size: int = DEFAULT_MAX_CACHE_SIZE,
    ) -> "Lexicon":
        """Load a lexicon saved with ``save``."""
        path = Path(path)
        instance = cls(name=name, max_cache_size=max_cache_size)
        instance._term_to_id.clear()
        instance._id_to_term.clear()
        instance._iri_cache.clear()
        instance._next_payload = {kind: 1 for kind in TermKind}

        for row in pl.read_parquet(path / "lexicon.parquet").iter_rows(named=True):
            term_id = row["term_id"]
            term = Term(TermKind(row["kind"]), row["lex"], row["datatype_id"], row["lang"])
            instance._id_to_term[term_id] = term
            instance._term_to_id[term] = term_id
            if term.kind == TermKind.IRI:
                instance._iri_cache[term.lex] = term_id
            kind = get_term_kind(term_id)
            payload = get_term_payload(term_id)
            if payload >= instance._next_payload[kind]:
                instance._next_payload[kind] = payload + 1

        instance.default_graph_id = instance.intern_iri(instance.default_graph_uri)
        graphs_file = path / "graphs.parquet"
        if graphs_file.exists():
            for graph_id in pl.read_parquet(graphs_file)["graph_id"].to_list():
                instance._graphs[graph_id] = None
        logger.info(f"Loaded lexicon '{name}' with {len(instance)} terms")
        return instance
