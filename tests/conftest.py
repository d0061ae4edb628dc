"""Shared fixtures: calculator servers running on free loopback ports."""
import socket
import threading
from typing import Callable, Iterator, List, Tuple

import pytest

from line_calculator.server.server import CalculatorServer


@pytest.fixture
def server_factory() -> Iterator[Callable[..., CalculatorServer]]:
    """Start servers on 127.0.0.1 in background threads; stop them after the test."""
    started: List[Tuple[CalculatorServer, threading.Thread]] = []

    def start(**kwargs) -> CalculatorServer:
        kwargs.setdefault("host", "127.0.0.1")
        server = CalculatorServer(port=0, poll_interval=0.05, **kwargs)
        server.bind()
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        started.append((server, thread))
        return server

    yield start

    for server, thread in started:
        server.shutdown()
        thread.join(timeout=5)


@pytest.fixture
def calc_server(server_factory) -> CalculatorServer:
    """Server with a small pool, so tests can exceed it."""
    return server_factory(max_workers=4)


@pytest.fixture
def free_port() -> int:
    """A port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
