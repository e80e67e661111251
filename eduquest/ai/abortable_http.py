"""requests transport whose in-flight sockets can be torn down from another thread.

`Session.close()` only drops idle pooled connections; a connection checked out
by a blocked `post()` keeps waiting for the read timeout. The pools mounted
here remember which connections are checked out, and `abort_session()` shuts
their sockets down so the blocked read returns immediately.
"""
from __future__ import annotations

import logging
import socket
import threading
from typing import Any, Set

import requests
from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool

_log = logging.getLogger(__name__)


def _shutdown(sock: Any) -> None:
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        # Already closed or never connected.
        pass


class _AbortableConnectionMixin:
    aborted = False

    def connect(self) -> None:
        super().connect()  # type: ignore[misc]
        # An abort that raced the connect saw no socket to shut down.
        if self.aborted:
            _shutdown(getattr(self, "sock", None))


class _AbortableHTTPConnection(_AbortableConnectionMixin, HTTPConnection):
    pass


class _AbortableHTTPSConnection(_AbortableConnectionMixin, HTTPSConnection):
    pass


class _AbortablePoolMixin:
    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)  # type: ignore[call-arg]
        self._checked_out: Set[Any] = set()
        self._abort_lock = threading.Lock()
        self.aborted = False

    def _get_conn(self, timeout: Any = None) -> Any:
        conn = super()._get_conn(timeout)  # type: ignore[misc]
        with self._abort_lock:
            conn.aborted = self.aborted
            self._checked_out.add(conn)
        return conn

    def _put_conn(self, conn: Any) -> None:
        with self._abort_lock:
            self._checked_out.discard(conn)
        super()._put_conn(conn)  # type: ignore[misc]

    def abort_in_flight(self) -> int:
        with self._abort_lock:
            self.aborted = True
            conns = list(self._checked_out)
            for conn in conns:
                conn.aborted = True
        for conn in conns:
            _shutdown(getattr(conn, "sock", None))
        return len(conns)


class _AbortableHTTPPool(_AbortablePoolMixin, HTTPConnectionPool):
    ConnectionCls = _AbortableHTTPConnection


class _AbortableHTTPSPool(_AbortablePoolMixin, HTTPSConnectionPool):
    ConnectionCls = _AbortableHTTPSConnection


class AbortableHTTPAdapter(HTTPAdapter):
    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = {"http": _AbortableHTTPPool, "https": _AbortableHTTPSPool}

    def abort_in_flight(self) -> int:
        aborted = 0
        pools = self.poolmanager.pools
        for key in list(pools.keys()):
            pool = pools.get(key)
            abort = getattr(pool, "abort_in_flight", None)
            if callable(abort):
                aborted += abort()
        return aborted


def abortable_session() -> requests.Session:
    session = requests.Session()
    adapter = AbortableHTTPAdapter()
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def abort_session(session: Any) -> None:
    """Shut down every in-flight socket of `session`, then close it."""
    aborted = 0
    for adapter in list((getattr(session, "adapters", None) or {}).values()):
        abort = getattr(adapter, "abort_in_flight", None)
        if callable(abort):
            aborted += abort()
    if aborted:
        _log.info("aborted %d in-flight provider request(s)", aborted)
    session.close()
