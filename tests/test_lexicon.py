"""
Tests for the Lexicon term dictionary.
"""

import tempfile
from pathlib import Path

import pytest

from rdf_quadstore.engine.tokens import Token
from rdf_quadstore.rdf import XSD_INTEGER
from rdf_quadstore.storage.lexicon import (
    DEFAULT_GRAPH_URI,
    Lexicon,
    TermKind,
    get_term_kind,
    make_term_id,
)


@pytest.fixture
def lexicon():
    return Lexicon(name="test")


class TestTermIds:
    """Tests for tagged term identifiers."""

    def test_kind_roundtrip(self):
        for kind in TermKind:
            assert get_term_kind(make_term_id(kind, 42)) == kind

    def test_kinds_in_lexicon(self, lexicon):
        assert get_term_kind(lexicon.register(Token.uri("http://example.org/a"))) == TermKind.IRI
        assert get_term_kind(lexicon.register(Token.literal("x"))) == TermKind.LITERAL
        assert get_term_kind(lexicon.register(Token.blank("b1"))) == TermKind.BNODE


class TestEncoding:
    """Tests for register / resolve / retrieve."""

    def test_register_is_idempotent(self, lexicon):
        first = lexicon.register(Token.uri("http://example.org/a"))
        second = lexicon.register(Token.uri("http://example.org/a"))
        assert first == second

    def test_literals_distinguished_by_lang_and_datatype(self, lexicon):
        plain = lexicon.register(Token.literal("1"))
        typed = lexicon.register(Token.literal("1", datatype=XSD_INTEGER))
        tagged = lexicon.register(Token.literal("1", lang="en"))
        assert len({plain, typed, tagged}) == 3

    def test_language_tag_case_is_ignored(self, lexicon):
        assert lexicon.register(Token.literal("hi", lang="EN")) == lexicon.register(Token.literal("hi", lang="en"))

    def test_resolve_does_not_create(self, lexicon):
        size = len(lexicon)
        assert lexicon.resolve(Token.uri("http://example.org/unknown")) is None
        assert lexicon.resolve(Token.literal("1", datatype="http://example.org/dt")) is None
        assert len(lexicon) == size

    def test_retrieve(self, lexicon):
        token = Token.literal("42", datatype=XSD_INTEGER)
        assert lexicon.retrieve(lexicon.register(token)) == token

    def test_retrieve_unknown(self, lexicon):
        with pytest.raises(KeyError):
            lexicon.retrieve(make_term_id(TermKind.IRI, 999999))

    def test_decode_cache_is_bounded(self):
        lexicon = Lexicon(max_cache_size=2)
        ids = [lexicon.register(Token.uri(f"http://example.org/{i}")) for i in range(5)]
        for term_id in ids:
            lexicon.retrieve(term_id)
        assert len(lexicon._decode_cache) == 2

    def test_default_graph_is_interned(self, lexicon):
        assert lexicon.resolve(Token.uri(DEFAULT_GRAPH_URI)) == lexicon.default_graph_id

    def test_clear(self, lexicon):
        lexicon.register(Token.uri("http://example.org/a"))
        lexicon.clear()
        assert lexicon.resolve(Token.uri("http://example.org/a")) is None
        assert lexicon.resolve(Token.uri(DEFAULT_GRAPH_URI)) == lexicon.default_graph_id


class TestGraphRegistry:
    """Tests for the registry of graphs holding quads."""

    def test_registered_graphs_skip_default(self, lexicon):
        named = lexicon.register(Token.uri("http://example.org/g"))
        lexicon.register_graph(lexicon.default_graph_id)
        lexicon.register_graph(named)
        assert lexicon.registered_graphs() == ["http://example.org/g"]
        assert set(lexicon.registered_graphs(only_named=False)) == {DEFAULT_GRAPH_URI, "http://example.org/g"}

    def test_unregister(self, lexicon):
        named = lexicon.register(Token.uri("http://example.org/g"))
        lexicon.register_graph(named)
        lexicon.unregister_graph(named)
        assert lexicon.registered_graphs() == []


class TestPersistence:
    """Tests for Parquet persistence."""

    def test_save_and_load(self, lexicon):
        iri = lexicon.register(Token.uri("http://example.org/a"))
        literal = lexicon.register(Token.literal("5", datatype=XSD_INTEGER))
        blank = lexicon.register(Token.blank("b1"))
        lexicon.register_graph(iri)

        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir)
            lexicon.save(path)
            assert Lexicon.exists(path)

            loaded = Lexicon.load(path, name="test")
            assert loaded.retrieve(iri) == Token.uri("http://example.org/a")
            assert loaded.retrieve(literal) == Token.literal("5", datatype=XSD_INTEGER)
            assert loaded.retrieve(blank) == Token.blank("b1")
            assert loaded.registered_graphs() == ["http://example.org/a"]
            assert loaded.default_graph_id == lexicon.default_graph_id

            # New ids continue after the loaded ones
            fresh = loaded.register(Token.uri("http://example.org/b"))
            assert fresh not in (iri, literal, blank)

    def test_exists_on_empty_directory(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            assert not Lexicon.exists(Path(tmpdir))
