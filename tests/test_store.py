"""
Tests for the public Store interface.

Every test runs against both engine variants:
- embedded: rdflib SPARQL over the lexicon and quad indexes
- document: rdflib in-memory dataset
"""

import tempfile
from pathlib import Path

import pytest

from rdf_quadstore import create
from rdf_quadstore.outcome import Outcome
from rdf_quadstore.rdf import XSD_INTEGER, Graph, Literal, NamedNode, Triple
from rdf_quadstore.storage.lexicon import DEFAULT_GRAPH_URI
from rdf_quadstore.transport import TransportResponse

EX = "http://example.org/"
G1 = EX + "g1"
G2 = EX + "g2"

TURTLE = """
@prefix ex: <http://example.org/> .
ex:alice ex:name "Alice" ;
         ex:knows ex:bob .
ex:bob ex:name "Bob" .
"""


class FakeTransport:
    """Transport serving a fixed document."""

    def __init__(self, data=TURTLE, media_type="text/turtle"):
        self.data = data
        self.media_type = media_type
        self.requests = []

    def load(self, uri, accept, callback):
        self.requests.append(uri)
        callback(Outcome.success(TransportResponse(self.data, self.media_type, uri)))


def triple(s, p, o):
    return Triple(NamedNode(EX + s), NamedNode(EX + p), o if not isinstance(o, str) else NamedNode(EX + o))


@pytest.fixture(params=["embedded", "document"])
def store(request):
    transport = FakeTransport()
    store = create({"engine": request.param}, transport=transport)
    store.set_prefix("ex", EX)
    return store


def names(outcome, var="s"):
    assert outcome.ok, outcome.error
    return {row[var].value for row in outcome.value}


class TestExecute:
    """Tests for SPARQL execution."""

    def test_insert_then_select(self, store):
        outcome = store.insert([triple("alice", "name", Literal("Alice")), triple("alice", "age", Literal(30))])
        assert outcome.ok
        assert outcome.value == 2

        result = store.execute(f"SELECT ?o WHERE {{ <{EX}alice> <{EX}age> ?o }}")
        assert result.ok
        assert result.value == [{"o": Literal("30", datatype=XSD_INTEGER)}]

    def test_ask(self, store):
        store.insert([triple("alice", "knows", "bob")])
        assert store.execute(f"ASK {{ <{EX}alice> <{EX}knows> <{EX}bob> }}").value is True
        assert store.execute(f"ASK {{ <{EX}bob> <{EX}knows> <{EX}alice> }}").value is False

    def test_construct_returns_graph(self, store):
        store.insert([triple("alice", "knows", "bob")])
        outcome = store.execute("CONSTRUCT { ?s ?p ?o } WHERE { ?s ?p ?o }")
        assert isinstance(outcome.value, Graph)
        assert triple("alice", "knows", "bob") in outcome.value

    def test_callback_receives_outcome(self, store):
        received = []
        outcome = store.execute("ASK { ?s ?p ?o }", received.append)
        assert received == [outcome]

    def test_malformed_query_is_a_failure(self, store):
        received = []
        outcome = store.execute("SELECT WHERE {", received.append)
        assert not outcome.ok
        assert received[0] is outcome

    def test_non_string_query(self, store):
        with pytest.raises(TypeError):
            store.execute(42)

    def test_update_statement(self, store):
        outcome = store.execute(f"INSERT DATA {{ GRAPH <{G1}> {{ <{EX}a> <{EX}p> <{EX}b> }} }}")
        assert outcome.ok
        assert names(store.execute(f"SELECT ?s WHERE {{ GRAPH <{G1}> {{ ?s ?p ?o }} }}")) == {EX + "a"}


class TestDatasetScoping:
    """Tests for execute_with_environment."""

    @pytest.fixture
    def populated(self, store):
        store.insert([triple("a", "p", "x")], G1)
        store.insert([triple("b", "p", "x")], G2)
        store.insert([triple("c", "p", "x")])
        return store

    def test_default_graph_from_named_graph(self, populated):
        outcome = populated.execute_with_environment("SELECT ?s WHERE { ?s ?p ?o }", [G1], [])
        assert names(outcome) == {EX + "a"}

    def test_default_graph_is_merged(self, populated):
        outcome = populated.execute_with_environment("SELECT ?s WHERE { ?s ?p ?o }", [G1, G2], [])
        assert names(outcome) == {EX + "a", EX + "b"}

    def test_named_graphs_restricted(self, populated):
        outcome = populated.execute_with_environment(
            "SELECT ?s WHERE { GRAPH ?g { ?s ?p ?o } }", [], [G2]
        )
        assert names(outcome) == {EX + "b"}

    def test_unscoped_query_sees_default_graph_only(self, populated):
        assert names(populated.execute("SELECT ?s WHERE { ?s ?p ?o }")) == {EX + "c"}

    def test_scoped_update_fails(self, populated):
        outcome = populated.execute_with_environment(
            f"INSERT DATA {{ <{EX}d> <{EX}p> <{EX}x> }}", [G1], []
        )
        assert not outcome.ok

    def test_graph_lists_must_be_lists(self, populated):
        with pytest.raises(TypeError):
            populated.execute_with_environment("SELECT * WHERE { ?s ?p ?o }", G1, [])


class TestModification:
    """Tests for insert / delete / clear and graph access."""

    def test_curies_are_expanded(self, store):
        store.insert([Triple(NamedNode("ex:alice"), NamedNode("ex:knows"), NamedNode("ex:bob"))])
        assert names(store.execute("SELECT ?s WHERE { ?s ?p ?o }")) == {EX + "alice"}

    def test_delete(self, store):
        store.insert([triple("alice", "knows", "bob"), triple("bob", "knows", "carol")])
        outcome = store.delete([triple("alice", "knows", "bob")])
        assert outcome.ok
        assert names(store.execute("SELECT ?s WHERE { ?s ?p ?o }")) == {EX + "bob"}

    def test_clear_only_touches_one_graph(self, store):
        store.insert([triple("a", "p", "x")], G1)
        store.insert([triple("b", "p", "x")])
        assert store.clear(G1).ok
        assert len(store.graph(G1).value) == 0
        assert len(store.graph().value) == 1

    def test_graph(self, store):
        store.insert([triple("alice", "knows", "bob")], G1)
        graph = store.graph(G1).value
        assert graph.to_array() == [triple("alice", "knows", "bob")]
        assert len(store.graph().value) == 0

    def test_node(self, store):
        store.insert([triple("alice", "knows", "bob"), triple("alice", "name", Literal("Alice"))])
        store.insert([triple("bob", "knows", "alice")])
        node = store.node("ex:alice").value
        assert len(node) == 2
        assert all(t.subject == NamedNode(EX + "alice") for t in node)

    def test_node_in_named_graph(self, store):
        store.insert([triple("alice", "knows", "bob")], G1)
        assert len(store.node(EX + "alice").value) == 0
        assert len(store.node(EX + "alice", G1).value) == 1

    def test_registered_graphs(self, store):
        store.insert([triple("a", "p", "x")], G1)
        store.insert([triple("b", "p", "x")])
        graphs = store.registered_graphs().value
        assert graphs == [NamedNode(G1)]

    def test_invalid_triples_argument(self, store):
        with pytest.raises(TypeError):
            store.insert("not triples")

    def test_invalid_graph_argument(self, store):
        with pytest.raises(TypeError):
            store.insert([triple("a", "p", "x")], 42)


class TestUpdateCounts:
    """Tests for the count reported by SPARQL updates."""

    def test_swap_counts_removed_and_added(self, store):
        store.insert([triple("a", "p", "b")], G1)
        outcome = store.execute(
            f"DELETE {{ GRAPH <{G1}> {{ ?s <{EX}p> <{EX}b> }} }} "
            f"INSERT {{ GRAPH <{G1}> {{ ?s <{EX}p> <{EX}c> }} }} "
            f"WHERE {{ GRAPH <{G1}> {{ ?s <{EX}p> <{EX}b> }} }}"
        )
        assert outcome.ok
        assert outcome.value == 2
        assert store.graph(G1).value.to_array() == [triple("a", "p", "c")]

    def test_swap_counts_while_observed(self, store):
        store.subscribe(None, None, None, G1, lambda event, triples: None)
        store.insert([triple("a", "p", "b")], G1)
        outcome = store.execute(
            f"DELETE {{ GRAPH <{G1}> {{ ?s <{EX}p> <{EX}b> }} }} "
            f"INSERT {{ GRAPH <{G1}> {{ ?s <{EX}p> <{EX}c> }} }} "
            f"WHERE {{ GRAPH <{G1}> {{ ?s <{EX}p> <{EX}b> }} }}"
        )
        assert outcome.value == 2


class TestLanguageTags:
    """Tests for language-tagged literals."""

    def test_delete_ignores_tag_case(self, store):
        store.insert([triple("a", "p", Literal("hi", lang="EN"))])
        assert store.delete([triple("a", "p", Literal("hi", lang="en"))]).ok
        assert store.execute("SELECT ?o WHERE { ?s ?p ?o }").value == []

    def test_sparql_insert_ignores_tag_case(self, store):
        store.execute(f'INSERT DATA {{ GRAPH <{DEFAULT_GRAPH_URI}> {{ <{EX}a> <{EX}p> "hi"@EN }} }}')
        store.delete([triple("a", "p", Literal("hi", lang="en"))])
        assert store.execute("SELECT ?o WHERE { ?s ?p ?o }").value == []

    def test_results_carry_lowercase_tag(self, store):
        store.execute(f'INSERT DATA {{ GRAPH <{DEFAULT_GRAPH_URI}> {{ <{EX}a> <{EX}p> "colour"@en-GB }} }}')
        outcome = store.execute("SELECT ?o WHERE { ?s ?p ?o }")
        assert outcome.value == [{"o": Literal("colour", lang="en-gb")}]
        assert outcome.value[0]["o"].lang == "en-gb"


@pytest.mark.parametrize("engine", ["embedded", "document"])
class TestDefaultGraphForms:
    """Calls without a graph act on the same graph as calls naming DEFAULT_GRAPH_URI."""

    @staticmethod
    def stores(engine):
        return create({"engine": engine}), create({"engine": engine})

    def test_insert(self, engine):
        short, full = self.stores(engine)
        assert short.insert([triple("a", "p", "b")]).value == 1
        assert full.insert([triple("a", "p", "b")], DEFAULT_GRAPH_URI).value == 1

        assert short.graph().value == full.graph().value
        assert short.graph(DEFAULT_GRAPH_URI).value.to_array() == [triple("a", "p", "b")]
        assert full.graph().value.to_array() == [triple("a", "p", "b")]
        assert short.registered_graphs().value == full.registered_graphs().value == []

    def test_delete(self, engine):
        short, full = self.stores(engine)
        for store in (short, full):
            store.insert([triple("a", "p", "b"), triple("c", "p", "d")])

        assert short.delete([triple("a", "p", "b")]).ok
        assert full.delete([triple("a", "p", "b")], DEFAULT_GRAPH_URI).ok
        assert short.graph().value.to_array() == [triple("c", "p", "d")]
        assert full.graph().value.to_array() == [triple("c", "p", "d")]

    def test_load(self, engine):
        short, full = self.stores(engine)
        assert short.load("text/turtle", TURTLE).value == 3
        assert full.load("text/turtle", TURTLE, DEFAULT_GRAPH_URI).value == 3

        assert set(short.graph().value) == set(full.graph().value)
        assert len(short.graph(DEFAULT_GRAPH_URI).value) == 3
        assert names(short.execute("SELECT DISTINCT ?s WHERE { ?s ?p ?o }")) == {EX + "alice", EX + "bob"}

    def test_clear(self, engine):
        short, full = self.stores(engine)
        for store in (short, full):
            store.insert([triple("a", "p", "b")])
            store.insert([triple("a", "p", "b")], G1)

        assert short.clear().ok
        assert full.clear(DEFAULT_GRAPH_URI).ok
        for store in (short, full):
            assert len(store.graph().value) == 0
            assert store.graph(G1).value.to_array() == [triple("a", "p", "b")]

    def test_node(self, engine):
        store, _ = self.stores(engine)
        store.insert([triple("alice", "knows", "bob"), triple("bob", "knows", "alice")])
        assert store.node(EX + "alice").value == store.node(EX + "alice", DEFAULT_GRAPH_URI).value
        assert store.node(EX + "alice").value.to_array() == [triple("alice", "knows", "bob")]


class TestLoad:
    """Tests for the three loading paths."""

    def test_load_turtle(self, store):
        outcome = store.load("text/turtle", TURTLE, G1)
        assert outcome.ok
        assert outcome.value == 3
        assert len(store.graph(G1).value) == 3

    def test_load_json_ld_object(self, store):
        document = {"@id": EX + "alice", EX + "name": "Alice"}
        outcome = store.load("application/ld+json", document)
        assert outcome.ok
        assert store.graph().value.to_array() == [triple("alice", "name", Literal("Alice"))]

    def test_load_file_uri(self, store):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "people.ttl"
            path.write_text(TURTLE)
            outcome = store.load("text/turtle", path.as_uri(), G1)
        assert outcome.ok
        assert outcome.value == 3

    def test_load_remote(self, store):
        outcome = store.load("remote", EX + "people", G2)
        assert outcome.ok
        assert store.network_transport.requests == [EX + "people"]
        assert len(store.graph(G2).value) == 3

    def test_load_unknown_media_type(self, store):
        outcome = store.load("text/x-unknown", TURTLE)
        assert not outcome.ok

    def test_load_syntax_error(self, store):
        outcome = store.load("text/turtle", "ex:alice ex:name")
        assert not outcome.ok
        assert len(store.graph().value) == 0

    def test_register_parser(self, store):
        from rdf_quadstore.engine.tokens import QuadToken, Token

        class LineParser:
            """One quad per line: subject IRI and a literal."""

            def parse(self, data, graph, base_iri=None):
                quads = []
                for line in data.splitlines():
                    subject, value = line.split(" ", 1)
                    quads.append(QuadToken(Token.uri(subject), Token.uri(EX + "label"), Token.literal(value), graph))
                return quads

        store.register_parser("text/x-lines", LineParser())
        outcome = store.load("text/x-lines", f"{EX}a first\n{EX}b second")
        assert outcome.value == 2
        assert names(store.execute("SELECT ?s WHERE { ?s ?p ?o }")) == {EX + "a", EX + "b"}


class TestNamespaces:
    """Tests for prefix handling."""

    def test_default_namespace_in_queries(self, store):
        store.register_default_namespace("foaf", "http://xmlns.com/foaf/0.1/")
        store.insert([Triple(NamedNode("foaf:me"), NamedNode("foaf:name"), Literal("Me"))])
        outcome = store.execute("SELECT ?n WHERE { foaf:me foaf:name ?n }")
        assert outcome.ok
        assert outcome.value == [{"n": Literal("Me")}]

    def test_explicit_prefix_not_duplicated(self, store):
        store.register_default_namespace("ex", EX)
        outcome = store.execute(f"PREFIX ex: <{EX}>\nASK {{ ?s ?p ?o }}")
        assert outcome.ok

    def test_profile_namespaces(self, store):
        store.register_default_profile_namespaces()
        store.insert([Triple(NamedNode(EX + "a"), NamedNode("rdfs:label"), Literal("A"))])
        outcome = store.execute("SELECT ?l WHERE { ?s rdfs:label ?l }")
        assert outcome.value == [{"l": Literal("A")}]

    def test_default_prefix(self, store):
        store.set_default_prefix(EX)
        store.insert([Triple(NamedNode(":a"), NamedNode(":p"), NamedNode(":b"))])
        assert names(store.execute("SELECT ?s WHERE { ?s ?p ?o }")) == {EX + "a"}
