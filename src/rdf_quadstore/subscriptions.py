"""
Subscription registry: node, query and pattern change notification.

All three subscription kinds share the engine's single notification
channel (its CallbacksBackend). The registry never hands the caller's
callback to the engine. It registers an adapter closure instead and keeps
the (kind, callback) -> Subscription mapping, so a subscription can be
cancelled with either the returned handle or the original callback.

Lifecycle: UNREGISTERED -> PENDING (registration issued) -> ACTIVE
(engine acknowledged) -> UNREGISTERED (cancelled).
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Union

from rdf_quadstore.engine.callbacks import CallbacksBackend, PatternTokens
from rdf_quadstore.engine.tokens import QuadToken, Token, build_triple
from rdf_quadstore.rdf import BlankNode, Graph, Triple

logger = logging.getLogger(__name__)

_subscription_ids = itertools.count(1)


class SubscriptionKind(Enum):
    NODE = "node"
    QUERY = "query"
    PATTERN = "pattern"


class SubscriptionState(Enum):
    UNREGISTERED = "unregistered"
    PENDING = "pending"
    ACTIVE = "active"


@dataclass(eq=False)
class Subscription:
    """
    Handle for one registered callback.

    Attributes:
        kind: Node, query or pattern subscription
        target: Observed node, query string or pattern
        callback: The caller's callback
        adapter: The closure registered with the engine
        state: Lifecycle state
        id: Registry-issued identifier
    """
    kind: SubscriptionKind
    target: Any
    callback: Callable
    adapter: Optional[Callable] = None
    state: SubscriptionState = SubscriptionState.UNREGISTERED
    id: int = field(default_factory=lambda: next(_subscription_ids))

    @property
    def active(self) -> bool:
        return self.state is SubscriptionState.ACTIVE

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, kind={self.kind.value}, state={self.state.value})"


def rehydrate_triples(quads: list[QuadToken]) -> list[Triple]:
    """Turn changed quad descriptors into Triples, skipping undecodable ones."""
    blanks: dict[str, BlankNode] = {}
    triples = []
    for quad in quads:
        triple = build_triple(quad, blanks)
        if triple is not None:
            triples.append(triple)
    return triples


class SubscriptionRegistry:
    """
    Owns every active subscription of a store.

    Exactly one adapter exists per active (kind, callback): registering a
    callback again for the same kind replaces its previous subscription.
    """

    def __init__(self, backend: CallbacksBackend):
        self.backend = backend
        self._subscriptions: dict[tuple[SubscriptionKind, Callable], Subscription] = {}

    # =========================================================================
    # Adapters
    # =========================================================================

    @staticmethod
    def _passthrough_adapter(callback: Callable) -> Callable:
        def adapter(result: Union[Graph, list, bool]) -> None:
            callback(result)
        return adapter

    @staticmethod
    def _pattern_adapter(callback: Callable) -> Callable:
        def adapter(event: str, quads: list[QuadToken]) -> None:
            callback(event, rehydrate_triples(quads))
        return adapter

    # =========================================================================
    # Registration
    # =========================================================================

    def _register(
        self,
        subscription: Subscription,
        register: Callable[[Callable[[], None]], None],
        ready_callback: Optional[Callable[[], Any]] = None,
    ) -> Subscription:
        key = (subscription.kind, subscription.callback)
        if key in self._subscriptions:
            logger.debug(f"Replacing existing {subscription.kind.value} subscription for {subscription.callback!r}")
            self.cancel(subscription.kind, subscription.callback)

        def acknowledge() -> None:
            subscription.state = SubscriptionState.ACTIVE
            if ready_callback is not None:
                ready_callback()

        subscription.state = SubscriptionState.PENDING
        self._subscriptions[key] = subscription
        try:
            register(acknowledge)
        except Exception:
            subscription.state = SubscriptionState.UNREGISTERED
            del self._subscriptions[key]
            raise
        logger.debug(f"Registered {subscription!r}")
        return subscription

    def observe_node(
        self,
        node: Token,
        callback: Callable,
        graph: Optional[Token] = None,
    ) -> Subscription:
        subscription = Subscription(
            SubscriptionKind.NODE, (node, graph), callback, self._passthrough_adapter(callback)
        )
        return self._register(
            subscription,
            lambda ack: self.backend.observe_node(node, subscription.adapter, graph, on_ready=ack),
        )

    def observe_query(
        self,
        query: str,
        callback: Callable,
        ready_callback: Optional[Callable[[], Any]] = None,
    ) -> Subscription:
        subscription = Subscription(
            SubscriptionKind.QUERY, query, callback, self._passthrough_adapter(callback)
        )
        return self._register(
            subscription,
            lambda ack: self.backend.observe_query(query, subscription.adapter, on_ready=ack),
            ready_callback,
        )

    def subscribe(self, pattern: PatternTokens, callback: Callable) -> Subscription:
        subscription = Subscription(
            SubscriptionKind.PATTERN, pattern, callback, self._pattern_adapter(callback)
        )
        return self._register(
            subscription,
            lambda ack: self.backend.subscribe(pattern, subscription.adapter, on_ready=ack),
        )

    # =========================================================================
    # Cancellation
    # =========================================================================

    def find(self, kind: SubscriptionKind, ref: Union[Subscription, Callable]) -> Optional[Subscription]:
        """Look up an active subscription by handle or by the caller's callback."""
        if isinstance(ref, Subscription):
            current = self._subscriptions.get((ref.kind, ref.callback))
            return current if current is ref and ref.kind is kind else None
        return self._subscriptions.get((kind, ref))

    def cancel(self, kind: SubscriptionKind, ref: Union[Subscription, Callable]) -> bool:
        """
        Cancel a subscription. Unknown handles and callbacks are ignored.

        Returns:
            True if a subscription was removed
        """
        subscription = self.find(kind, ref)
        if subscription is None:
            logger.debug(f"Ignoring cancellation of unknown {kind.value} subscription")
            return False
        del self._subscriptions[(subscription.kind, subscription.callback)]
        if kind is SubscriptionKind.NODE:
            self.backend.stop_observing_node(subscription.adapter)
        elif kind is SubscriptionKind.QUERY:
            self.backend.stop_observing_query(subscription.adapter)
        else:
            self.backend.unsubscribe(subscription.adapter)
        subscription.state = SubscriptionState.UNREGISTERED
        logger.debug(f"Cancelled {subscription!r}")
        return True

    def subscriptions(self, kind: Optional[SubscriptionKind] = None) -> list[Subscription]:
        return [s for (k, _), s in self._subscriptions.items() if kind is None or k is kind]

    def __len__(self) -> int:
        return len(self._subscriptions)
