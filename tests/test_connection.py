"""
Tests for the out-of-process store client.

Each test starts a real worker process.
"""

import pytest

from rdf_quadstore import ConfigValidationError, connect
from rdf_quadstore.connection import StoreClient
from rdf_quadstore.outcome import StoreError
from rdf_quadstore.rdf import Literal, NamedNode, Triple
from rdf_quadstore.subscriptions import SubscriptionState

EX = "http://example.org/"
G = EX + "g"

TRIPLE = Triple(NamedNode(EX + "a"), NamedNode(EX + "p"), Literal("x"))


@pytest.fixture(scope="module")
def client():
    with StoreClient({"name": "worker-test"}) as client:
        yield client


class TestStoreClient:
    """Tests for requests served by the worker."""

    def test_worker_is_separate_process(self, client):
        import os
        assert client.pid is not None
        assert client.pid != os.getpid()

    def test_insert_and_query(self, client):
        assert client.insert([TRIPLE], G).ok
        outcome = client.execute(f"SELECT ?o WHERE {{ GRAPH <{G}> {{ ?s ?p ?o }} }}")
        assert outcome.value == [{"o": Literal("x")}]
        assert NamedNode(G) in client.registered_graphs().value
        client.clear(G)

    def test_failure_crosses_process_boundary(self, client):
        received = []
        outcome = client.execute("SELECT WHERE {", received.append)
        assert not outcome.ok
        assert isinstance(outcome.error, StoreError)
        assert received == [outcome]

    def test_exceptions_are_reraised(self, client):
        with pytest.raises(TypeError):
            client.execute(42)

    def test_prefixes_live_in_worker(self, client):
        client.set_prefix("ex", EX)
        client.insert([Triple(NamedNode("ex:b"), NamedNode("ex:p"), NamedNode("ex:c"))])
        assert len(client.node(EX + "b").value) == 1
        client.clear()


class TestClientSubscriptions:
    """Tests for notifications forwarded from the worker."""

    def test_pattern_events(self, client):
        events = []

        def on_change(event, triples):
            events.append((event, triples))

        handle = client.subscribe(None, None, None, G, on_change)
        assert handle.state is SubscriptionState.ACTIVE
        client.insert([TRIPLE], G)
        client.delete([TRIPLE], G)
        assert events == [("added", [TRIPLE]), ("deleted", [TRIPLE])]

        client.unsubscribe(on_change)
        assert handle.state is SubscriptionState.UNREGISTERED
        client.insert([TRIPLE], G)
        assert len(events) == 2
        client.clear(G)

    def test_node_observer(self, client):
        graphs = []
        handle = client.start_observing_node(EX + "a", graphs.append)
        client.insert([TRIPLE])
        assert len(graphs) == 1
        assert graphs[0].to_array() == [TRIPLE]
        client.stop_observing_node(handle)
        client.clear()

    def test_query_observer(self, client):
        results = []
        ready = []
        handle = client.start_observing_query(
            f"SELECT ?s WHERE {{ GRAPH <{G}> {{ ?s ?p ?o }} }}", results.append, lambda: ready.append(True)
        )
        assert ready == [True]
        client.insert([TRIPLE], G)
        assert results == [[{"s": NamedNode(EX + "a")}]]
        client.stop_observing_query(handle)
        client.clear(G)

    def test_graph_is_required(self, client):
        with pytest.raises(ValueError):
            client.subscribe(None, None, None, None, lambda event, triples: None)


class TestWorkerStartup:
    """Tests for worker start-up failures."""

    def test_invalid_engine_options(self):
        with pytest.raises(StoreError, match="Unknown document engine options"):
            StoreClient({"engine": "document", "engine_options": {"bogus": True}})

    def test_connect_surfaces_invalid_options(self):
        """The in-process fallback rejects the same options."""
        with pytest.raises(ConfigValidationError):
            connect(config={"engine": "document", "engine_options": {"bogus": True}})

    def test_connect_returns_client(self):
        calls = []
        client = connect(config={"name": "connect-test"}, callback=lambda err, s: calls.append((err, s)))
        try:
            assert isinstance(client, StoreClient)
            assert calls == [(False, client)]
        finally:
            client.close()
