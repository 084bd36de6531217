"""
RDF parsing and document loading.

Parsers are registered by exact media type. A parser is any object with a
``parse(data, graph, base_iri=None)`` method returning QuadTokens; quads
without a graph of their own land in ``graph``.

Built-in parsers are backed by rdflib.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import unquote, urlparse

import rdflib
from rdflib.graph import DATASET_DEFAULT_GRAPH_ID

from rdf_quadstore.engine.tokens import QuadToken, Token, rdflib_to_token
from rdf_quadstore.outcome import Outcome, StoreError
from rdf_quadstore.transport import HttpTransport, NetworkTransport, TransportResponse

logger = logging.getLogger(__name__)


class RDFParser(Protocol):
    def parse(self, data: str, graph: Token, base_iri: Optional[str] = None) -> list[QuadToken]:
        ...


class RdflibParser:
    """
    Parser for an rdflib-supported syntax.

    Triples outside any named graph of the document land in ``graph``.
    """

    def __init__(self, rdf_format: str):
        self.format = rdf_format

    def parse(self, data: str, graph: Token, base_iri: Optional[str] = None) -> list[QuadToken]:
        dataset = rdflib.Dataset()
        dataset.parse(data=data, format=self.format, publicID=base_iri)
        quads = []
        for s, p, o, context in dataset.quads((None, None, None, None)):
            if context is None or context == DATASET_DEFAULT_GRAPH_ID:
                target = graph
            else:
                target = rdflib_to_token(context)
            quads.append(QuadToken(rdflib_to_token(s), rdflib_to_token(p), rdflib_to_token(o), target))
        return quads

    def __repr__(self) -> str:
        return f"RdflibParser({self.format!r})"


def default_parsers() -> dict[str, RDFParser]:
    """Parsers registered in every new loader, in content-negotiation preference order."""
    json_ld = RdflibParser("json-ld")
    return {
        "text/turtle": RdflibParser("turtle"),
        "application/n-triples": RdflibParser("nt"),
        "application/n-quads": RdflibParser("nquads"),
        "application/trig": RdflibParser("trig"),
        "text/n3": RdflibParser("n3"),
        "application/rdf+xml": RdflibParser("xml"),
        "application/ld+json": json_ld,
        "application/json": json_ld,
    }


def file_uri_to_path(uri: str) -> Path:
    parsed = urlparse(uri)
    return Path(unquote(parsed.netloc + parsed.path))


class RDFLoader:
    """
    Parser registry plus the three loading paths used by the store:
    in-memory data, local files and remote documents.

    Args:
        transport: Network transport for remote documents (HttpTransport by default)
    """

    def __init__(self, transport: Optional[NetworkTransport] = None):
        self.parsers: dict[str, RDFParser] = default_parsers()
        self.transport = transport if transport is not None else HttpTransport()

    def register_parser(self, media_type: str, parser: RDFParser) -> None:
        """Register a parser, replacing any parser already bound to the media type."""
        self.parsers[media_type] = parser

    def accept_header(self) -> str:
        """Accept header listing the registered media types by preference."""
        parts = []
        for i, media_type in enumerate(self.parsers):
            quality = max(1.0 - i * 0.1, 0.1)
            parts.append(media_type if i == 0 else f"{media_type};q={quality:.1f}")
        return ",".join(parts)

    def try_to_parse(
        self,
        parser: Optional[RDFParser],
        graph: Token,
        data: str,
        base_iri: Optional[str] = None,
    ) -> Outcome:
        """Parse in-memory data. The outcome value is a list of QuadTokens."""
        if parser is None:
            return Outcome.failure(StoreError("No parser registered for this media type"))
        try:
            quads = parser.parse(data, graph, base_iri)
        except Exception as e:
            logger.warning(f"Parsing failed with {parser!r}: {e}")
            return Outcome.failure(e)
        logger.debug(f"Parsed {len(quads)} quads")
        return Outcome.success(quads)

    def load_from_file(self, parser: Optional[RDFParser], graph: Token, uri: str) -> Outcome:
        """Parse a ``file://`` document."""
        path = file_uri_to_path(uri)
        try:
            data = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")
            return Outcome.failure(e)
        return self.try_to_parse(parser, graph, data, base_iri=uri)

    def load_remote(self, uri: str, graph: Token) -> Outcome:
        """Fetch a document through the transport and parse it by its media type."""
        if uri.startswith("file://"):
            suffix_parser = self._parser_for_suffix(uri)
            return self.load_from_file(suffix_parser, graph, uri)

        fetched: list[Outcome] = []
        self.transport.load(uri, self.accept_header(), fetched.append)
        if not fetched:
            return Outcome.failure(StoreError(f"Transport returned no response for {uri}"))
        outcome = fetched[0]
        if not outcome.ok:
            return outcome

        response: TransportResponse = outcome.value
        parser = self.parsers.get(response.media_type) if response.media_type else None
        if parser is not None:
            return self.try_to_parse(parser, graph, response.data, base_iri=uri)

        # Unknown or missing media type: first parser that accepts the document wins
        for media_type, candidate in self.parsers.items():
            result = self.try_to_parse(candidate, graph, response.data, base_iri=uri)
            if result.ok:
                logger.info(f"Parsed {uri} as {media_type}")
                return result
        return Outcome.failure(StoreError(f"No registered parser could read {uri}"))

    _SUFFIXES = {
        ".ttl": "text/turtle",
        ".nt": "application/n-triples",
        ".nq": "application/n-quads",
        ".trig": "application/trig",
        ".n3": "text/n3",
        ".rdf": "application/rdf+xml",
        ".xml": "application/rdf+xml",
        ".jsonld": "application/ld+json",
        ".json": "application/json",
    }

    def _parser_for_suffix(self, uri: str) -> Optional[RDFParser]:
        media_type = self._SUFFIXES.get(file_uri_to_path(uri).suffix.lower(), "text/turtle")
        return self.parsers.get(media_type)
