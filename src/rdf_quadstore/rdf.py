"""
RDF term model and environment.

Structured RDF terms handed to and returned by the store:
- NamedNode, Literal, BlankNode: immutable, hashable terms
- Triple and Graph containers
- PrefixMap namespace resolver and the RDFEnvironment term factory
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Optional, Union

XSD = "http://www.w3.org/2001/XMLSchema#"
RDF = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"

XSD_STRING = XSD + "string"
XSD_INTEGER = XSD + "integer"
XSD_DOUBLE = XSD + "double"
XSD_BOOLEAN = XSD + "boolean"
RDF_LANGSTRING = RDF + "langString"

# Namespaces registered in every new environment
DEFAULT_PREFIXES = {
    "owl": "http://www.w3.org/2002/07/owl#",
    "rdf": RDF,
    "rdfs": "http://www.w3.org/2000/01/rdf-schema#",
    "xsd": XSD,
    "xml": "http://www.w3.org/XML/1998/namespace",
}

_blank_counter = itertools.count(1)


def _next_blank_label() -> str:
    return f"b{next(_blank_counter)}"


# =============================================================================
# Terms
# =============================================================================

@dataclass(frozen=True)
class NamedNode:
    """An IRI. ``value`` may be a CURIE until resolved against a PrefixMap."""
    value: str

    interface_name = "NamedNode"

    def __str__(self) -> str:
        return self.value

    def to_nt(self) -> str:
        return f"<{self.value}>"


@dataclass(frozen=True)
class BlankNode:
    """A blank node identified by a local label."""
    label: str = field(default_factory=_next_blank_label)

    interface_name = "BlankNode"

    def __post_init__(self):
        if self.label.startswith("_:"):
            object.__setattr__(self, "label", self.label[2:])

    @property
    def value(self) -> str:
        return self.label

    def __str__(self) -> str:
        return f"_:{self.label}"

    def to_nt(self) -> str:
        return str(self)


@dataclass(frozen=True)
class Literal:
    """
    An RDF literal.

    Carries at most one of ``lang`` and ``datatype``. Plain xsd:string and
    rdf:langString datatypes are normalized away so equal literals compare
    equal whatever engine produced them.
    """
    value: str
    lang: Optional[str] = None
    datatype: Optional[str] = None

    interface_name = "Literal"

    def __post_init__(self):
        if self.lang is not None and self.datatype is not None and self.datatype != RDF_LANGSTRING:
            raise ValueError("A literal cannot carry both a language tag and a datatype")
        value = self.value
        datatype = self.datatype
        if not isinstance(value, str):
            if datatype is None:
                if isinstance(value, bool):
                    datatype = XSD_BOOLEAN
                    value = "true" if value else "false"
                elif isinstance(value, int):
                    datatype = XSD_INTEGER
                elif isinstance(value, float):
                    datatype = XSD_DOUBLE
            value = str(value)
        if datatype in (XSD_STRING, RDF_LANGSTRING):
            datatype = None
        # Language tags compare case-insensitively
        if self.lang is not None:
            object.__setattr__(self, "lang", self.lang.lower())
        object.__setattr__(self, "value", value)
        object.__setattr__(self, "datatype", datatype)

    def __str__(self) -> str:
        text = f'"{self.value}"'
        if self.lang is not None:
            return f"{text}@{self.lang}"
        if self.datatype is not None:
            return f"{text}^^<{self.datatype}>"
        return text

    def to_nt(self) -> str:
        return str(self)


Term = Union[NamedNode, Literal, BlankNode]


@dataclass(frozen=True)
class Triple:
    """A subject/predicate/object statement."""
    subject: Term
    predicate: Term
    object: Term

    def __post_init__(self):
        if isinstance(self.subject, Literal):
            raise ValueError("The subject of a triple cannot be a literal")
        if isinstance(self.predicate, Literal):
            raise ValueError("The predicate of a triple cannot be a literal")

    def __iter__(self) -> Iterator[Term]:
        return iter((self.subject, self.predicate, self.object))

    def __str__(self) -> str:
        return f"{self.subject.to_nt()} {self.predicate.to_nt()} {self.object.to_nt()} ."


class Graph:
    """Ordered, duplicate-free collection of triples."""

    def __init__(self, triples: Optional[Iterable[Triple]] = None):
        self._triples: dict[Triple, None] = {}
        if triples is not None:
            self.add_all(triples)

    def add(self, triple: Triple) -> "Graph":
        self._triples[triple] = None
        return self

    def add_all(self, triples: Iterable[Triple]) -> "Graph":
        for triple in triples:
            self.add(triple)
        return self

    def remove(self, triple: Triple) -> "Graph":
        self._triples.pop(triple, None)
        return self

    def filter(self, predicate: Callable[[Triple], bool]) -> "Graph":
        return Graph(t for t in self._triples if predicate(t))

    def match(
        self,
        subject: Optional[Term] = None,
        predicate: Optional[Term] = None,
        obj: Optional[Term] = None,
    ) -> "Graph":
        """Triples matching a pattern; None matches anything."""
        return self.filter(
            lambda t: (subject is None or t.subject == subject)
            and (predicate is None or t.predicate == predicate)
            and (obj is None or t.object == obj)
        )

    def to_array(self) -> list[Triple]:
        return list(self._triples)

    @property
    def length(self) -> int:
        return len(self._triples)

    def __len__(self) -> int:
        return len(self._triples)

    def __iter__(self) -> Iterator[Triple]:
        return iter(list(self._triples))

    def __contains__(self, triple: object) -> bool:
        return triple in self._triples

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Graph):
            return NotImplemented
        return self._triples.keys() == other._triples.keys()

    def __repr__(self) -> str:
        return f"Graph(triples={len(self)})"


# =============================================================================
# Namespaces
# =============================================================================

class PrefixMap:
    """
    Prefix to namespace mapping used to resolve CURIEs.

    The empty prefix holds the default namespace.
    """

    def __init__(self, prefixes: Optional[dict[str, str]] = None):
        self._prefixes: dict[str, str] = dict(prefixes or {})

    def set(self, prefix: str, iri: str) -> None:
        self._prefixes[prefix.lower()] = iri

    def get(self, prefix: str) -> Optional[str]:
        return self._prefixes.get(prefix.lower())

    def remove(self, prefix: str) -> None:
        self._prefixes.pop(prefix.lower(), None)

    def set_default(self, iri: str) -> None:
        self._prefixes[""] = iri

    def add_all(self, other: "PrefixMap", override: bool = False) -> "PrefixMap":
        for prefix, iri in other.values().items():
            if override or prefix not in self._prefixes:
                self._prefixes[prefix] = iri
        return self

    def values(self) -> dict[str, str]:
        return dict(self._prefixes)

    def resolve(self, curie: str) -> Optional[str]:
        """
        Expand a CURIE into an absolute IRI.

        Returns None when the value has no prefix part, nothing after the
        colon, or an unregistered prefix.
        """
        index = curie.find(":")
        if index == -1 or index + 1 == len(curie):
            return None
        prefix = curie[:index].lower()
        namespace = self._prefixes.get(prefix)
        if namespace is None:
            return None
        return namespace + curie[index + 1:]

    def shrink(self, iri: str) -> str:
        """Compact an IRI into a CURIE when a namespace matches."""
        for prefix, namespace in self._prefixes.items():
            if prefix and iri.startswith(namespace):
                return f"{prefix}:{iri[len(namespace):]}"
        return iri


class RDFEnvironment:
    """Term factory bound to a PrefixMap."""

    def __init__(self, prefixes: Optional[dict[str, str]] = None):
        self.prefixes = PrefixMap(DEFAULT_PREFIXES if prefixes is None else prefixes)

    def resolve(self, curie: str) -> Optional[str]:
        return self.prefixes.resolve(curie)

    def set_prefix(self, prefix: str, iri: str) -> None:
        self.prefixes.set(prefix, iri)

    def set_default_prefix(self, iri: str) -> None:
        self.prefixes.set_default(iri)

    def create_named_node(self, value: str) -> NamedNode:
        return NamedNode(value)

    def create_literal(
        self,
        value,
        lang: Optional[str] = None,
        datatype: Optional[str] = None,
    ) -> Literal:
        if datatype is not None:
            datatype = self.resolve(datatype) or datatype
        return Literal(value, lang=lang, datatype=datatype)

    def create_blank_node(self, label: Optional[str] = None) -> BlankNode:
        return BlankNode(label) if label is not None else BlankNode()

    def create_triple(self, subject: Term, predicate: Term, obj: Term) -> Triple:
        return Triple(subject, predicate, obj)

    def create_graph(self, triples: Optional[Iterable[Triple]] = None) -> Graph:
        return Graph(triples)
