"""
Indexed quad backend for the embedded engine.

Quads are stored as (s, p, o, g) tuples of lexicon TermIds in six sorted
indexes, one per component permutation, so that every combination of
bound components is answered by a prefix scan.

Each index is a list of sorted pages. ``tree_order`` plays the role of
the B-tree order: pages split once they hold more than 2 * tree_order keys.
"""

from __future__ import annotations

import bisect
import logging
from pathlib import Path
from typing import Iterator, Optional

import polars as pl

from rdf_quadstore.config import DEFAULT_TREE_ORDER

logger = logging.getLogger(__name__)

QuadIds = tuple[int, int, int, int]
Pattern = tuple[Optional[int], Optional[int], Optional[int], Optional[int]]

# Component order of each index over (s=0, p=1, o=2, g=3)
INDEX_ORDERS: dict[str, tuple[int, int, int, int]] = {
    "SPOG": (0, 1, 2, 3),
    "POGS": (1, 2, 3, 0),
    "OGSP": (2, 3, 0, 1),
    "GSPO": (3, 0, 1, 2),
    "OSPG": (2, 0, 1, 3),
    "PGSO": (1, 3, 0, 2),
}


class QuadIndex:
    """
    Paged sorted index over one permutation of quad components.

    Example:
        idx = QuadIndex("POGS", (1, 2, 3, 0), tree_order=15)
        idx.insert((s, p, o, g))
        for quad in idx.scan((p, o)):
            ...
    """

    def __init__(self, name: str, order: tuple[int, int, int, int], tree_order: int = DEFAULT_TREE_ORDER):
        self.name = name
        self.order = order
        self.page_size = 2 * tree_order
        self._pages: list[list[tuple]] = []
        self._maxes: list[tuple] = []
        self._size = 0

    def key(self, quad: QuadIds) -> tuple:
        return tuple(quad[i] for i in self.order)

    def quad(self, key: tuple) -> QuadIds:
        quad = [0, 0, 0, 0]
        for position, component in zip(self.order, key):
            quad[position] = component
        return tuple(quad)

    def insert(self, quad: QuadIds) -> bool:
        """Add a quad. Returns False if it was already indexed."""
        key = self.key(quad)
        if not self._pages:
            self._pages.append([key])
            self._maxes.append(key)
            self._size = 1
            return True
        i = bisect.bisect_left(self._maxes, key)
        if i == len(self._maxes):
            i -= 1
        page = self._pages[i]
        j = bisect.bisect_left(page, key)
        if j < len(page) and page[j] == key:
            return False
        page.insert(j, key)
        self._maxes[i] = page[-1]
        self._size += 1
        if len(page) > self.page_size:
            half = len(page) // 2
            self._pages[i:i + 1] = [page[:half], page[half:]]
            self._maxes[i:i + 1] = [page[half - 1], page[-1]]
        return True

    def delete(self, quad: QuadIds) -> bool:
        """Remove a quad. Returns False if it was not indexed."""
        key = self.key(quad)
        i = bisect.bisect_left(self._maxes, key)
        if i == len(self._maxes):
            return False
        page = self._pages[i]
        j = bisect.bisect_left(page, key)
        if j == len(page) or page[j] != key:
            return False
        del page[j]
        self._size -= 1
        if page:
            self._maxes[i] = page[-1]
        else:
            del self._pages[i]
            del self._maxes[i]
        return True

    def scan(self, prefix: tuple = ()) -> Iterator[QuadIds]:
        """Yield quads whose key starts with ``prefix``, in key order."""
        width = len(prefix)
        i = bisect.bisect_left(self._maxes, prefix)
        if i == len(self._pages):
            return
        j = bisect.bisect_left(self._pages[i], prefix)
        # Pages are copied as they are reached so callers may mutate the index while iterating
        for n, page in enumerate(self._pages[i:]):
            for key in page[j if n == 0 else 0:]:
                if key[:width] != prefix:
                    return
                yield self.quad(key)

    @property
    def depth(self) -> int:
        return len(self._pages)

    def clear(self) -> None:
        self._pages = []
        self._maxes = []
        self._size = 0

    def __len__(self) -> int:
        return self._size


class QuadBackend:
    """
    Quad storage over six permutation indexes.

    Thread-safety: NOT thread-safe. Use external synchronization for concurrent access.
    """

    def __init__(self, tree_order: int = DEFAULT_TREE_ORDER):
        self.tree_order = tree_order
        self.indexes = {
            name: QuadIndex(name, order, tree_order) for name, order in INDEX_ORDERS.items()
        }
        self._primary = self.indexes["SPOG"]

    def _choose_index(self, pattern: Pattern) -> tuple[QuadIndex, tuple]:
        bound = sum(1 for component in pattern if component is not None)
        for index in self.indexes.values():
            prefix = []
            for position in index.order:
                if pattern[position] is None:
                    break
                prefix.append(pattern[position])
            if len(prefix) == bound:
                return index, tuple(prefix)
        # Every combination of bound positions is covered by INDEX_ORDERS
        raise AssertionError(f"No index for pattern {pattern}")

    def index(self, quad: QuadIds) -> bool:
        """Store a quad. Returns True if it was not present."""
        if not self._primary.insert(quad):
            return False
        for index in self.indexes.values():
            if index is not self._primary:
                index.insert(quad)
        return True

    def delete(self, quad: QuadIds) -> bool:
        """Remove a quad. Returns True if it was present."""
        if not self._primary.delete(quad):
            return False
        for index in self.indexes.values():
            if index is not self._primary:
                index.delete(quad)
        return True

    def contains(self, quad: QuadIds) -> bool:
        return any(True for _ in self._primary.scan(tuple(quad)))

    def range(self, pattern: Pattern = (None, None, None, None)) -> Iterator[QuadIds]:
        """Yield the quads matching a pattern; None positions are wildcards."""
        index, prefix = self._choose_index(pattern)
        return index.scan(prefix)

    def count(self, pattern: Pattern = (None, None, None, None)) -> int:
        return sum(1 for _ in self.range(pattern))

    def clear(self) -> None:
        logger.debug("Clearing quad backend indexes")
        for index in self.indexes.values():
            index.clear()

    def __len__(self) -> int:
        return len(self._primary)

    # =========================================================================
    # Persistence (Parquet)
    # =========================================================================

    def to_dataframe(self) -> pl.DataFrame:
        quads = list(self._primary.scan())
        return pl.DataFrame(
            {
                "s": [q[0] for q in quads],
                "p": [q[1] for q in quads],
                "o": [q[2] for q in quads],
                "g": [q[3] for q in quads],
            },
            schema={"s": pl.UInt64, "p": pl.UInt64, "o": pl.UInt64, "g": pl.UInt64},
        )

    def save(self, path: Path) -> None:
        """Write {path}/quads.parquet."""
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        self.to_dataframe().write_parquet(path / "quads.parquet")

    @staticmethod
    def exists(path: Path) -> bool:
        return (Path(path) / "quads.parquet").exists()

    @classmethod
    def load(cls, path: Path, tree_order: int = DEFAULT_TREE_ORDER) -> "QuadBackend":
        instance = cls(tree_order=tree_order)
        df = pl.read_parquet(Path(path) / "quads.parquet")
        for row in df.iter_rows():
            instance.index(row)
        logger.info(f"Loaded {len(instance)} quads from {path}")
        return instance
