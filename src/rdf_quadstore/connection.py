"""
Out-of-process store.

A ``StoreClient`` starts a worker process that owns a regular in-process
store and talks to it over a multiprocessing pipe. Requests are answered
in order; notifications raised while a request runs are sent back as
events before its result and delivered to the local callbacks.

Callbacks never cross the process boundary: the worker registers a
forwarding callback per subscription id and the client keeps the
id -> Subscription mapping.
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import threading
from pathlib import Path
from typing import Any, Callable, Optional, Union

from rdf_quadstore.config import StoreConfig
from rdf_quadstore.outcome import Outcome, OutcomeCallback, StoreError
from rdf_quadstore.subscriptions import Subscription, SubscriptionKind, SubscriptionState

logger = logging.getLogger(__name__)

READY = "ready"
RESULT = "result"
RAISED = "raised"
EVENT = "event"
CLOSE = "close"

START_TIMEOUT = 60.0


def _portable(outcome: Outcome) -> Outcome:
    """Replace a failure's exception with a StoreError that survives pickling."""
    if outcome.ok or isinstance(outcome.error, StoreError):
        return outcome
    return Outcome.failure(f"{type(outcome.error).__name__}: {outcome.error}", outcome.value)


# =============================================================================
# Worker side
# =============================================================================

def serve(conn, config_data: dict, path: Optional[str] = None) -> None:
    """Worker process entry point: build a store and answer requests until closed."""
    from rdf_quadstore.connector import create

    try:
        config = StoreConfig.from_dict(config_data)
        if path is not None and config.path is None:
            config.path = Path(path)
        store = create(config)
    except Exception as e:
        conn.send((READY, False, f"{type(e).__name__}: {e}"))
        conn.close()
        return
    conn.send((READY, True, None))

    handles: dict[int, Subscription] = {}

    def forward(sub_id: int) -> Callable:
        def deliver(*payload) -> None:
            conn.send((EVENT, sub_id, payload))
        return deliver

    def start(kind_value: str, sub_id: int, *args) -> None:
        kind = SubscriptionKind(kind_value)
        if kind is SubscriptionKind.NODE:
            uri, graph_uri = args
            handles[sub_id] = store.start_observing_node(uri, forward(sub_id), graph_uri)
        elif kind is SubscriptionKind.QUERY:
            handles[sub_id] = store.start_observing_query(args[0], forward(sub_id))
        else:
            handles[sub_id] = store.subscribe(*args, forward(sub_id))

    def cancel(kind_value: str, sub_id: int) -> bool:
        handle = handles.pop(sub_id, None)
        if handle is None:
            return False
        return store.subscriptions.cancel(SubscriptionKind(kind_value), handle)

    local = {"start": start, "cancel": cancel}

    while True:
        try:
            method, args, kwargs = conn.recv()
        except EOFError:
            break
        if method == CLOSE:
            store.close()
            conn.send((RESULT, None))
            break
        try:
            target = local.get(method) or getattr(store, method)
            result = target(*args, **kwargs)
        except Exception as e:
            conn.send((RAISED, e))
            continue
        if isinstance(result, Outcome):
            result = _portable(result)
        conn.send((RESULT, result))
    conn.close()


# =============================================================================
# Client side
# =============================================================================

class StoreClient:
    """
    Store proxy served by a worker process.

    Offers the same operations as ``Store`` except parser registration,
    since parsers stay in the worker.

    Args:
        config: Store configuration used by the worker
        path: Base directory for the worker's persistent data
        start_timeout: Seconds to wait for the worker to report ready

    Raises:
        StoreError: If the worker cannot be started
    """

    def __init__(
        self,
        config: Union[StoreConfig, dict, None] = None,
        path: Optional[Union[str, Path]] = None,
        start_timeout: float = START_TIMEOUT,
    ):
        self.config = StoreConfig.coerce(config)
        self._lock = threading.RLock()
        self._subscriptions: dict[tuple[SubscriptionKind, Callable], Subscription] = {}
        self._by_id: dict[int, Subscription] = {}

        context = mp.get_context("spawn")
        self._conn, child = context.Pipe()
        self._process = context.Process(
            target=serve,
            args=(child, self.config.to_dict(), str(path) if path is not None else None),
            name=f"quadstore-{self.config.name}",
            daemon=True,
        )
        self._process.start()
        child.close()
        self._wait_ready(start_timeout)
        logger.info(f"Store worker started (pid={self._process.pid})")

    def _wait_ready(self, timeout: float) -> None:
        if not self._conn.poll(timeout):
            self._terminate()
            raise StoreError(f"Store worker did not start within {timeout}s")
        try:
            _, ok, reason = self._conn.recv()
        except EOFError:
            self._terminate()
            raise StoreError("Store worker exited during start-up")
        if not ok:
            self._terminate()
            raise StoreError(f"Store worker failed to start: {reason}")

    def _terminate(self) -> None:
        if self._process.is_alive():
            self._process.terminate()
        self._process.join(timeout=5)
        self._conn.close()

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid

    # =========================================================================
    # Request / response
    # =========================================================================

    def _call(self, method: str, *args, **kwargs) -> Any:
        with self._lock:
            try:
                self._conn.send((method, args, kwargs))
                while True:
                    message = self._conn.recv()
                    if message[0] == EVENT:
                        self._deliver(message[1], message[2])
                        continue
                    if message[0] == RAISED:
                        raise message[1]
                    return message[1]
            except (EOFError, OSError, BrokenPipeError) as e:
                raise StoreError(f"Store worker connection lost: {e}") from e

    def _deliver(self, sub_id: int, payload: tuple) -> None:
        subscription = self._by_id.get(sub_id)
        if subscription is None:
            return
        try:
            subscription.callback(*payload)
        except Exception:
            logger.exception(f"Subscriber callback failed for {subscription!r}")

    @staticmethod
    def _finish(outcome: Outcome, callback: Optional[OutcomeCallback]) -> Outcome:
        if callback is not None:
            callback(outcome)
        return outcome

    # =========================================================================
    # Store operations
    # =========================================================================

    def execute(self, query: str, callback: Optional[OutcomeCallback] = None) -> Outcome:
        return self._finish(self._call("execute", query), callback)

    def execute_with_environment(self, query, default_graphs, named_graphs, callback=None) -> Outcome:
        outcome = self._call("execute_with_environment", query, list(default_graphs), list(named_graphs))
        return self._finish(outcome, callback)

    def graph(self, graph_uri=None, callback=None) -> Outcome:
        return self._finish(self._call("graph", graph_uri), callback)

    def node(self, node_uri, graph_uri=None, callback=None) -> Outcome:
        return self._finish(self._call("node", node_uri, graph_uri), callback)

    def insert(self, triples, graph_uri=None, callback=None) -> Outcome:
        return self._finish(self._call("insert", list(triples), graph_uri), callback)

    def delete(self, triples, graph_uri=None, callback=None) -> Outcome:
        return self._finish(self._call("delete", list(triples), graph_uri), callback)

    def clear(self, graph_uri=None, callback=None) -> Outcome:
        return self._finish(self._call("clear", graph_uri), callback)

    def load(self, media_type, data, graph_uri=None, callback=None) -> Outcome:
        return self._finish(self._call("load", media_type, data, graph_uri), callback)

    def registered_graphs(self, callback=None) -> Outcome:
        return self._finish(self._call("registered_graphs"), callback)

    def set_batch_load_events(self, must_fire_events: bool) -> None:
        self._call("set_batch_load_events", must_fire_events)

    def set_prefix(self, prefix: str, uri: str) -> None:
        self._call("set_prefix", prefix, uri)

    def set_default_prefix(self, uri: str) -> None:
        self._call("set_default_prefix", uri)

    def register_default_namespace(self, prefix: str, uri: str) -> None:
        self._call("register_default_namespace", prefix, uri)

    def register_default_profile_namespaces(self) -> None:
        self._call("register_default_profile_namespaces")

    # =========================================================================
    # Notifications
    # =========================================================================

    def _start(self, kind: SubscriptionKind, target: Any, callback: Callable, *args) -> Subscription:
        if not callable(callback):
            raise TypeError("callback must be callable")
        key = (kind, callback)
        if key in self._subscriptions:
            self._cancel(kind, callback)
        subscription = Subscription(kind, target, callback, state=SubscriptionState.PENDING)
        self._subscriptions[key] = subscription
        self._by_id[subscription.id] = subscription
        try:
            self._call("start", kind.value, subscription.id, *args)
        except Exception:
            del self._subscriptions[key]
            del self._by_id[subscription.id]
            subscription.state = SubscriptionState.UNREGISTERED
            raise
        subscription.state = SubscriptionState.ACTIVE
        return subscription

    def _cancel(self, kind: SubscriptionKind, ref: Union[Subscription, Callable]) -> bool:
        if isinstance(ref, Subscription):
            subscription = ref if self._subscriptions.get((kind, ref.callback)) is ref else None
        else:
            subscription = self._subscriptions.get((kind, ref))
        if subscription is None:
            logger.debug(f"Ignoring cancellation of unknown {kind.value} subscription")
            return False
        del self._subscriptions[(kind, subscription.callback)]
        del self._by_id[subscription.id]
        subscription.state = SubscriptionState.UNREGISTERED
        return self._call("cancel", kind.value, subscription.id)

    def start_observing_node(self, uri: str, callback: Callable, graph_uri: Optional[str] = None) -> Subscription:
        return self._start(SubscriptionKind.NODE, (uri, graph_uri), callback, uri, graph_uri)

    def stop_observing_node(self, ref) -> None:
        self._cancel(SubscriptionKind.NODE, ref)

    def start_observing_query(self, query: str, callback: Callable, ready_callback=None) -> Subscription:
        subscription = self._start(SubscriptionKind.QUERY, query, callback, query)
        if ready_callback is not None:
            ready_callback()
        return subscription

    def stop_observing_query(self, ref) -> None:
        self._cancel(SubscriptionKind.QUERY, ref)

    def subscribe(self, s, p, o, g, callback: Callable) -> Subscription:
        if g is None:
            raise ValueError("subscribe requires a graph; wildcard graphs are not supported")
        return self._start(SubscriptionKind.PATTERN, (s, p, o, g), callback, s, p, o, g)

    def unsubscribe(self, ref) -> None:
        self._cancel(SubscriptionKind.PATTERN, ref)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Flush the worker's store and stop the worker."""
        if self._conn.closed:
            return
        try:
            self._call(CLOSE)
        except StoreError as e:
            logger.warning(f"Store worker did not close cleanly: {e}")
        self._process.join(timeout=10)
        self._terminate()
        logger.info("Store worker stopped")

    def __enter__(self) -> "StoreClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
