"""
Internal term descriptors.

Engines, the loader and the notification channel exchange terms as
``Token`` descriptors ({token: 'uri' | 'literal' | 'blank', value, lang,
datatype}) rather than the public RDF term objects. This module converts
between descriptors, public terms and rdflib nodes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Optional

import rdflib

from rdf_quadstore.rdf import (
    RDF_LANGSTRING,
    XSD_STRING,
    BlankNode,
    Literal,
    NamedNode,
    Triple,
)

URI = "uri"
LITERAL = "literal"
BLANK = "blank"


@dataclass(frozen=True)
class Token:
    """
    Engine-side descriptor of an RDF term.

    Attributes:
        token: Term kind, one of 'uri', 'literal', 'blank'
        value: IRI, lexical form or blank node label
        lang: Language tag (literals only)
        datatype: Datatype IRI (literals only, None for plain strings)
    """
    token: str
    value: str
    lang: Optional[str] = None
    datatype: Optional[str] = None

    def __post_init__(self):
        if self.datatype in (XSD_STRING, RDF_LANGSTRING):
            object.__setattr__(self, "datatype", None)
        if self.lang is not None:
            object.__setattr__(self, "lang", self.lang.lower())

    @classmethod
    def uri(cls, value: str) -> "Token":
        return cls(URI, value)

    @classmethod
    def literal(cls, value: str, lang: Optional[str] = None, datatype: Optional[str] = None) -> "Token":
        return cls(LITERAL, value, lang, datatype)

    @classmethod
    def blank(cls, label: str) -> "Token":
        return cls(BLANK, label[2:] if label.startswith("_:") else label)

    def to_sparql(self) -> str:
        if self.token == URI:
            return f"<{self.value}>"
        if self.token == BLANK:
            return f"_:{self.value}"
        if self.lang is not None:
            return f'"{self.value}"@{self.lang}'
        if self.datatype is not None:
            return f'"{self.value}"^^<{self.datatype}>'
        return f'"{self.value}"'


class QuadToken(NamedTuple):
    """A quad of descriptors; ``graph`` is the graph the quad lives in."""
    subject: Token
    predicate: Token
    object: Token
    graph: Token


# =============================================================================
# Public terms
# =============================================================================

def term_to_token(term) -> Token:
    """Convert a public RDF term into a descriptor."""
    kind = getattr(term, "interface_name", None)
    if kind == "NamedNode":
        return Token.uri(term.value)
    if kind == "BlankNode":
        return Token.blank(term.label)
    if kind == "Literal":
        return Token.literal(term.value, term.lang, term.datatype)
    raise TypeError(f"Not an RDF term: {term!r}")


def build_rdf_resource(token: Token, blanks: Optional[dict[str, BlankNode]] = None):
    """
    Rehydrate a descriptor into a public RDF term.

    ``blanks`` maps blank labels to the BlankNode objects already handed
    out, so a label rehydrates to the same object within one batch.
    """
    if token is None:
        return None
    if token.token == URI:
        return NamedNode(token.value)
    if token.token == LITERAL:
        return Literal(token.value, lang=token.lang, datatype=token.datatype)
    if token.token == BLANK:
        if blanks is None:
            return BlankNode(token.value)
        node = blanks.get(token.value)
        if node is None:
            node = blanks[token.value] = BlankNode(token.value)
        return node
    return None


def build_triple(quad: QuadToken, blanks: Optional[dict[str, BlankNode]] = None) -> Optional[Triple]:
    """Rehydrate the triple part of a quad descriptor, None if any part fails."""
    s = build_rdf_resource(quad.subject, blanks)
    p = build_rdf_resource(quad.predicate, blanks)
    o = build_rdf_resource(quad.object, blanks)
    if s is None or p is None or o is None:
        return None
    return Triple(s, p, o)


# =============================================================================
# rdflib
# =============================================================================

def rdflib_to_token(node) -> Token:
    if isinstance(node, rdflib.URIRef):
        return Token.uri(str(node))
    if isinstance(node, rdflib.BNode):
        return Token.blank(str(node))
    if isinstance(node, rdflib.Literal):
        datatype = str(node.datatype) if node.datatype is not None else None
        return Token.literal(str(node), node.language, datatype)
    raise TypeError(f"Unsupported rdflib node: {node!r}")


def token_to_rdflib(token: Token):
    if token.token == URI:
        return rdflib.URIRef(token.value)
    if token.token == BLANK:
        return rdflib.BNode(token.value)
    datatype = rdflib.URIRef(token.datatype) if token.datatype is not None else None
    return rdflib.Literal(token.value, lang=token.lang, datatype=datatype)


def rdflib_to_term(node):
    return build_rdf_resource(rdflib_to_token(node)) if node is not None else None

