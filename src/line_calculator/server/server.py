"""TCP server answering calculator requests with a pool of worker threads."""
from concurrent.futures import ThreadPoolExecutor
import socket
import threading
from typing import List, Optional, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from line_calculator.common.logger import logger
from line_calculator.server.handler import ConnectionHandler


class CalculatorServer(BaseModel):
    """
    TCP socket server handling calculator connections.

    Features:
        - Binds one listening socket and accepts connections in a loop.
        - Hands each connection to a fixed-size thread pool (one handler per connection).
        - Connections beyond the pool size wait in the pool queue instead of being refused.
        - Connections never share state; a failing connection only closes itself.
        - On shutdown (or Ctrl-C) every open connection is shut down so workers exit.
    """

    # Allow arbitrary types like socket.socket
    model_config = ConfigDict(arbitrary_types_allowed=True)

    host: str = Field(default="0.0.0.0", min_length=1, description="Host name or address to listen on")
    port: int = Field(default=9999, ge=0, le=65535, description="TCP port, 0 picks a free one")
    max_workers: int = Field(default=20, ge=1, description="Maximum number of connections served at once")
    idle_timeout: Optional[float] = Field(
        default=None, gt=0, description="Seconds a connection may stay silent, None disables the timeout"
    )
    poll_interval: float = Field(default=0.5, gt=0, description="Seconds between shutdown checks in accept()")

    _listener: Optional[socket.socket] = PrivateAttr(default=None)
    _shutdown: threading.Event = PrivateAttr(default_factory=threading.Event)
    # Accepted sockets not yet closed by their handler, queued ones included
    _connections: Set[socket.socket] = PrivateAttr(default_factory=set)
    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    @property
    def address(self) -> Tuple[str, int]:
        """
        Address the listening socket is bound to.

        :return: Tuple of (host, port)
        :rtype: Tuple[str, int]
        :raises RuntimeError: If the server is not bound
        """
        if self._listener is None:
            raise RuntimeError("Server is not bound")
        return self._listener.getsockname()[:2]

    @property
    def active_connections(self) -> int:
        """Number of accepted connections not closed yet."""
        with self._lock:
            return len(self._connections)

    def bind(self) -> socket.socket:
        """
        Resolve the host, then create, bind and listen on the server socket.

        :return: The listening socket
        :rtype: socket.socket
        :raises OSError: If the host cannot be resolved or the address cannot be bound
        """
        listener: Optional[socket.socket] = None
        try:
            candidates = socket.getaddrinfo(self.host, self.port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE)
            # First resolved address that binds wins, e.g. 127.0.0.1 when ::1 is unavailable
            for index, (family, _, _, _, sockaddr) in enumerate(candidates):
                listener = socket.socket(family, socket.SOCK_STREAM)
                try:
                    listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                    listener.bind(sockaddr)
                    listener.listen()
                    break
                except OSError:
                    listener.close()
                    listener = None
                    if index == len(candidates) - 1:
                        raise
        except OSError as exc:
            logger.error(f"🖥️❌ Failed to bind to {self.host}:{self.port}: {exc}")
            raise

        # Timeout on accept() only, so shutdown() is noticed; accepted sockets stay blocking
        listener.settimeout(self.poll_interval)
        self._listener = listener
        self._shutdown.clear()
        host, port = self.address
        logger.info(f"🖥️ Server listening on {host}:{port} with {self.max_workers} workers")
        return listener

    def _serve_connection(self, handler: ConnectionHandler) -> None:
        """Run one handler in a worker thread and forget its socket afterwards."""
        try:
            handler.run()
        finally:
            with self._lock:
                self._connections.discard(handler.conn)

    def _dispatch(self, pool: ThreadPoolExecutor, conn: socket.socket, address: Tuple) -> None:
        """
        Submit one accepted connection to the worker pool.

        :param ThreadPoolExecutor pool: Worker pool
        :param socket.socket conn: Accepted client socket
        :param tuple address: Peer address
        """
        conn.settimeout(None)
        handler = ConnectionHandler(conn=conn, address=address, idle_timeout=self.idle_timeout)
        with self._lock:
            self._connections.add(conn)
        pool.submit(self._serve_connection, handler)

    def _close_connections(self) -> None:
        """Shut down every open connection so blocked reads in the workers return end of stream."""
        with self._lock:
            connections: List[socket.socket] = list(self._connections)

        if connections:
            logger.info(f"🖥️ Closing {len(connections)} active connection(s)")
        for conn in connections:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # Already closed by its handler

    def serve_forever(self) -> None:
        """
        Accept connections until shutdown() is called or the loop is interrupted.

        On exit the listening socket is closed, open connections are shut down,
        connections still queued in the pool are closed unserved, and the workers are joined.

        :return: None
        """
        if self._listener is None:
            self.bind()

        listener: socket.socket = self._listener
        pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="calc-worker")
        try:
            with listener:
                while not self._shutdown.is_set():
                    try:
                        conn, address = listener.accept()
                    except socket.timeout:
                        continue
                    except OSError as exc:
                        if not self._shutdown.is_set():
                            logger.error(f"🖥️❌ Accept failed: {exc}")
                        break
                    self._dispatch(pool, conn, address)

        finally:
            self._listener = None
            logger.info("🖥️ Server stopped accepting connections")
            self._close_connections()
            pool.shutdown(wait=True, cancel_futures=True)

            # Left over only by handlers cancelled before they started
            with self._lock:
                unserved: List[socket.socket] = list(self._connections)
                self._connections.clear()
            for conn in unserved:
                conn.close()

            logger.info("🖥️ Server stopped")

    def start(self) -> None:
        """
        Bind the server socket and serve connections until shutdown.

        Steps:
            1. Bind and listen on the configured host and port.
            2. Accept client connections in a loop.
            3. Serve each connection in a worker thread.

        :return: None
        """
        logger.info(f"🖥️ Starting server on {self.host}:{self.port}")
        self.bind()
        self.serve_forever()

    def shutdown(self) -> None:
        """Ask the accept loop to stop; safe to call from any thread, more than once."""
        self._shutdown.set()
