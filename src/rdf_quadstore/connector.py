"""
Store construction.

``create`` builds an in-process store for the configured engine variant.
``connect`` prefers an out-of-process store served by a worker process and
falls back to an in-process one when the worker cannot be started.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from rdf_quadstore.config import EngineKind, StoreConfig
from rdf_quadstore.engine.base import BaseEngine
from rdf_quadstore.engine.document_engine import DocumentQueryEngine
from rdf_quadstore.engine.query_engine import QueryEngine
from rdf_quadstore.storage.backend import QuadBackend
from rdf_quadstore.storage.lexicon import Lexicon
from rdf_quadstore.store import Store
from rdf_quadstore.transport import NetworkTransport

logger = logging.getLogger(__name__)

ConfigLike = Union[StoreConfig, Dict[str, Any], None]


def _bootstrap_document(config: StoreConfig, transport: Optional[NetworkTransport]) -> BaseEngine:
    engine = DocumentQueryEngine(config, transport)
    engine.read_configuration()
    if config.overwrite:
        engine.clean()
    return engine


def _bootstrap_embedded(config: StoreConfig, transport: Optional[NetworkTransport]) -> BaseEngine:
    data_dir = config.data_dir
    restore = config.persistent and not config.overwrite

    if restore and Lexicon.exists(data_dir):
        lexicon = Lexicon.load(data_dir, name=config.name, max_cache_size=config.max_cache_size)
    else:
        lexicon = Lexicon(name=config.name, max_cache_size=config.max_cache_size)

    if restore and QuadBackend.exists(data_dir):
        backend = QuadBackend.load(data_dir, tree_order=config.tree_order)
    else:
        backend = QuadBackend(tree_order=config.tree_order)

    engine = QueryEngine(backend, lexicon, config, transport)
    if config.persistent and config.overwrite:
        engine.clean()
    return engine


def create(
    config: ConfigLike = None,
    callback: Optional[Callable[[Store], Any]] = None,
    transport: Optional[NetworkTransport] = None,
) -> Store:
    """
    Create an in-process store.

    Args:
        config: StoreConfig or a dict of store options
        callback: Called once with the store when it is ready
        transport: Network transport for remote loads (httpx by default)

    Returns:
        The ready store

    Raises:
        ConfigValidationError: If the options are invalid
    """
    config = StoreConfig.coerce(config)
    logger.info(f"Creating store '{config.name}' (engine={config.engine.value}, persistent={config.persistent})")

    if config.engine is EngineKind.DOCUMENT:
        engine = _bootstrap_document(config, transport)
    else:
        engine = _bootstrap_embedded(config, transport)

    store = Store(engine)
    if callback is not None:
        callback(store)
    return store


def connect(
    path: Optional[Union[str, Path]] = None,
    config: ConfigLike = None,
    callback: Optional[Callable[[bool, Any], Any]] = None,
    connector: Optional[Callable[..., Any]] = None,
    transport: Optional[NetworkTransport] = None,
) -> Any:
    """
    Create a store served by a worker process.

    Falls back to an in-process store if the worker cannot be started.

    Args:
        path: Working directory of the worker; persistent data lives below it
        config: Store options
        callback: Called with ``(error, store)``; ``error`` is False whenever a
            usable store is handed over, including the in-process fallback
        connector: Factory for the out-of-process client, ``StoreClient`` by default
        transport: Network transport for the in-process fallback

    Returns:
        A ``StoreClient`` or, on fallback, a ``Store``
    """
    config = StoreConfig.coerce(config)
    if connector is None:
        from rdf_quadstore.connection import StoreClient
        connector = StoreClient

    try:
        client = connector(config, path=path)
    except Exception as e:
        logger.warning(f"Worker store unavailable, falling back to in-process store: {e}")
        if path is not None and config.path is None:
            config = replace(config, path=Path(path))
        store = create(config, transport=transport)
        if callback is not None:
            callback(False, store)
        return store

    if callback is not None:
        callback(False, client)
    return client
