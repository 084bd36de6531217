"""
Change-notification channel of an engine.

The engine reports every effective quad insertion or deletion between
``start_graph_modification`` and ``end_graph_modification``. When the
outermost modification window closes, the collected changes are
dispatched to three kinds of observers:

- node observers, re-sent the full triple set of a subject
- query observers, re-sent a query result whenever it changes
- pattern observers, sent (event, [QuadToken]) for matching changes

Observers are plain callables. The engine never sees the callbacks
registered on the public store, only the adapters built around them.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterator, Optional

from rdf_quadstore.engine.tokens import QuadToken, Token

if TYPE_CHECKING:
    from rdf_quadstore.engine.base import BaseEngine

logger = logging.getLogger(__name__)

ADDED = "added"
DELETED = "deleted"

PatternTokens = tuple[Optional[Token], Optional[Token], Optional[Token], Token]


@dataclass
class QueryObserver:
    query: str
    last_result: Any = None


class CallbacksBackend:
    """Observer registry and change dispatcher owned by an engine."""

    def __init__(self, engine: "BaseEngine"):
        self.engine = engine
        self._node_observers: dict[Callable, tuple[Token, Token]] = {}
        self._query_observers: dict[Callable, QueryObserver] = {}
        self._pattern_observers: dict[Callable, PatternTokens] = {}
        self._depth = 0
        self._muted = 0
        self._changes: list[tuple[str, QuadToken]] = []

    @property
    def has_observers(self) -> bool:
        return bool(self._node_observers or self._query_observers or self._pattern_observers)

    @property
    def is_recording(self) -> bool:
        """True while changes reported now would reach an observer."""
        return self._depth > 0 and self._muted == 0 and self.has_observers

    # =========================================================================
    # Registration
    # =========================================================================

    def observe_node(
        self,
        node: Token,
        callback: Callable,
        graph: Optional[Token] = None,
        on_ready: Optional[Callable[[], Any]] = None,
    ) -> None:
        graph = graph if graph is not None else Token.uri(self.engine.default_graph_uri)
        self._node_observers[callback] = (node, graph)
        logger.debug(f"Observing node {node.value} in graph {graph.value}")
        if on_ready is not None:
            on_ready()

    def stop_observing_node(self, callback: Callable) -> None:
        self._node_observers.pop(callback, None)

    def observe_query(
        self,
        query: str,
        callback: Callable,
        on_ready: Optional[Callable[[], Any]] = None,
    ) -> None:
        outcome = self.engine.execute(query)
        if not outcome.ok:
            logger.warning(f"Observed query failed on registration: {outcome.error}")
        self._query_observers[callback] = QueryObserver(query, outcome.value if outcome.ok else None)
        if on_ready is not None:
            on_ready()

    def stop_observing_query(self, callback: Callable) -> None:
        self._query_observers.pop(callback, None)

    def subscribe(
        self,
        pattern: PatternTokens,
        callback: Callable,
        on_ready: Optional[Callable[[], Any]] = None,
    ) -> None:
        if pattern[3] is None:
            raise ValueError("Pattern subscriptions require a graph")
        self._pattern_observers[callback] = pattern
        if on_ready is not None:
            on_ready()

    def unsubscribe(self, callback: Callable) -> None:
        self._pattern_observers.pop(callback, None)

    # =========================================================================
    # Modification window
    # =========================================================================

    def start_graph_modification(self, notify: bool = True) -> None:
        self._depth += 1
        if not notify:
            self._muted += 1

    def next_graph_modification(self, event: str, quad: QuadToken) -> None:
        if self.is_recording:
            self._changes.append((event, quad))

    def end_graph_modification(self, notify: bool = True) -> None:
        self._depth -= 1
        if not notify:
            self._muted -= 1
        if self._depth == 0:
            changes, self._changes = self._changes, []
            self._dispatch(changes)

    @contextmanager
    def modification(self, notify: bool = True) -> Iterator["CallbacksBackend"]:
        """Collect changes for the duration of the block, dispatch at the end."""
        self.start_graph_modification(notify)
        try:
            yield self
        finally:
            self.end_graph_modification(notify)

    # =========================================================================
    # Dispatch
    # =========================================================================

    @staticmethod
    def _matches(pattern: PatternTokens, quad: QuadToken) -> bool:
        return all(expected is None or expected == actual for expected, actual in zip(pattern, quad))

    def _notify(self, callback: Callable, *args) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Change observer raised")

    def _dispatch(self, changes: list[tuple[str, QuadToken]]) -> None:
        if not changes or not self.has_observers:
            return
        logger.debug(f"Dispatching {len(changes)} changes")

        for callback, pattern in list(self._pattern_observers.items()):
            grouped: dict[str, list[QuadToken]] = {}
            for event, quad in changes:
                if self._matches(pattern, quad):
                    grouped.setdefault(event, []).append(quad)
            for event, quads in grouped.items():
                self._notify(callback, event, quads)

        touched = {(quad.subject, quad.graph) for _, quad in changes}
        for callback, (node, graph) in list(self._node_observers.items()):
            if (node, graph) not in touched:
                continue
            outcome = self.engine.node_graph(node, graph)
            if outcome.ok:
                self._notify(callback, outcome.value)
            else:
                logger.warning(f"Could not refresh node {node.value}: {outcome.error}")

        for callback, observer in list(self._query_observers.items()):
            outcome = self.engine.execute(observer.query)
            if not outcome.ok:
                logger.warning(f"Could not refresh observed query: {outcome.error}")
                continue
            if outcome.value != observer.last_result:
                observer.last_result = outcome.value
                self._notify(callback, outcome.value)
