"""
Tests for the paged permutation indexes of the quad backend.
"""

import itertools
import tempfile
from pathlib import Path

import pytest

from rdf_quadstore.storage.backend import INDEX_ORDERS, QuadBackend, QuadIndex


@pytest.fixture
def backend():
    store = QuadBackend(tree_order=2)
    for s, p, o in itertools.product(range(1, 4), range(10, 12), range(100, 103)):
        store.index((s, p, o, 1000))
    store.index((1, 10, 100, 2000))
    return store


class TestQuadIndex:
    """Tests for a single paged index."""

    def test_pages_split(self):
        """Pages hold at most 2 * tree_order keys."""
        idx = QuadIndex("SPOG", INDEX_ORDERS["SPOG"], tree_order=2)
        for i in range(50):
            idx.insert((i, 1, 1, 1))
        assert len(idx) == 50
        assert idx.depth > 1
        assert all(len(page) <= 4 for page in idx._pages)

    def test_scan_is_sorted(self):
        idx = QuadIndex("SPOG", INDEX_ORDERS["SPOG"], tree_order=2)
        for i in reversed(range(30)):
            idx.insert((i, 1, 1, 1))
        assert [quad[0] for quad in idx.scan()] == list(range(30))

    def test_duplicate_insert(self):
        idx = QuadIndex("SPOG", INDEX_ORDERS["SPOG"])
        assert idx.insert((1, 2, 3, 4))
        assert not idx.insert((1, 2, 3, 4))
        assert len(idx) == 1

    def test_key_roundtrip(self):
        idx = QuadIndex("OGSP", INDEX_ORDERS["OGSP"])
        assert idx.key((1, 2, 3, 4)) == (3, 4, 1, 2)
        assert idx.quad((3, 4, 1, 2)) == (1, 2, 3, 4)

    def test_delete_missing(self):
        idx = QuadIndex("SPOG", INDEX_ORDERS["SPOG"])
        assert not idx.delete((1, 2, 3, 4))


class TestQuadBackend:
    """Tests for pattern matching across the six indexes."""

    def test_size(self, backend):
        assert len(backend) == 19

    def test_every_pattern_shape(self, backend):
        """Each combination of bound components is answered correctly."""
        quads = list(backend.range())
        for mask in itertools.product([False, True], repeat=4):
            sample = quads[0]
            pattern = tuple(sample[i] if bound else None for i, bound in enumerate(mask))
            expected = {
                q for q in quads
                if all(pattern[i] is None or pattern[i] == q[i] for i in range(4))
            }
            assert set(backend.range(pattern)) == expected, pattern

    def test_graph_pattern(self, backend):
        assert list(backend.range((None, None, None, 2000))) == [(1, 10, 100, 2000)]

    def test_delete(self, backend):
        assert backend.delete((1, 10, 100, 2000))
        assert not backend.delete((1, 10, 100, 2000))
        assert backend.count((None, None, None, 2000)) == 0
        assert not backend.contains((1, 10, 100, 2000))
        assert len(backend) == 18

    def test_delete_while_scanning(self, backend):
        for quad in backend.range((1, None, None, None)):
            backend.delete(quad)
        assert backend.count((1, None, None, None)) == 0
        assert len(backend) == 12

    def test_clear(self, backend):
        backend.clear()
        assert len(backend) == 0
        assert list(backend.range()) == []

    def test_save_and_load(self, backend):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir)
            backend.save(path)
            assert QuadBackend.exists(path)
            loaded = QuadBackend.load(path, tree_order=3)
            assert set(loaded.range()) == set(backend.range())
            assert loaded.tree_order == 3
