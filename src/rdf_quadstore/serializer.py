"""
Serialization of structured RDF terms into SPARQL lexical text.

The output is valid in a SPARQL triple-pattern position. Quote and
backslash characters inside literal values are written as given; callers
loading untrusted text must escape them first.
"""

from __future__ import annotations

from typing import Iterable

from rdf_quadstore.rdf import RDFEnvironment, Triple


class TermSerializer:
    """Turns NamedNode / Literal / BlankNode terms into SPARQL text."""

    def __init__(self, env: RDFEnvironment):
        self.env = env

    def node_to_query(self, term) -> str:
        """
        Serialize a single term.

        NamedNodes are expanded against the environment prefixes when their
        value is a resolvable CURIE, and written raw otherwise.
        """
        kind = getattr(term, "interface_name", "")
        if kind == "NamedNode":
            resolved = self.env.resolve(term.value)
            return f"<{resolved if resolved is not None else term.value}>"
        if kind == "Literal":
            if term.lang is not None:
                return f'"{term.value}"@{term.lang}'
            if term.datatype is not None:
                return f'"{term.value}"^^<{term.datatype}>'
        return str(term)

    def triple_to_query(self, triple) -> str:
        subject, predicate, obj = triple
        return f"{self.node_to_query(subject)} {self.node_to_query(predicate)} {self.node_to_query(obj)} ."

    def triples_to_query(self, triples: Iterable[Triple]) -> str:
        return " ".join(self.triple_to_query(triple) for triple in triples)
