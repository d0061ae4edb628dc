"""Unit tests for ConnectionHandler using in-memory streams and real socket pairs."""
import io
import socket
import threading

from pydantic import ValidationError
import pytest

from line_calculator.server.handler import ConnectionHandler


def _recv_all(sock: socket.socket) -> bytes:
    """Read until the peer closes the connection."""
    chunks = []
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


@pytest.fixture
def socket_pair():
    server_side, client_side = socket.socketpair()
    client_side.settimeout(5)
    yield server_side, client_side
    server_side.close()
    client_side.close()


def test_serve_answers_each_line(socket_pair):
    """Each request line gets exactly one reply line, in order."""
    handler = ConnectionHandler(conn=socket_pair[0])
    reader = io.StringIO("ADD 10 20\nmin 5 2\nDIV 5 0\nADD 1\n")
    writer = io.StringIO()

    answered = handler.serve(reader, writer)

    assert answered == 4
    assert writer.getvalue() == "10 30\n40\n20\n30\n"


def test_serve_stops_on_terminator_without_reply(socket_pair):
    """Lines after 'bye' are never read and 'bye' itself gets no reply."""
    handler = ConnectionHandler(conn=socket_pair[0])
    reader = io.StringIO("ADD 1 1\nBye\nADD 2 2\n")
    writer = io.StringIO()

    assert handler.serve(reader, writer) == 1
    assert writer.getvalue() == "10 2\n"


def test_serve_ignores_unterminated_last_line(socket_pair):
    """A line cut off by end of stream is not answered."""
    handler = ConnectionHandler(conn=socket_pair[0])
    writer = io.StringIO()

    assert handler.serve(io.StringIO("ADD 1 1\nADD 2"), writer) == 1
    assert writer.getvalue() == "10 2\n"


def test_run_over_socket_closes_connection(socket_pair):
    """run() replies over the socket and closes it when the client says bye."""
    server_side, client_side = socket_pair
    handler = ConnectionHandler(conn=server_side, address=("127.0.0.1", 4242))

    worker = threading.Thread(target=handler.run)
    worker.start()
    client_side.sendall(b"ADD 10 20\r\nSUB 1 3\nbye\n")

    assert _recv_all(client_side) == b"10 30\n10 -2\n"
    worker.join(timeout=5)
    assert not worker.is_alive()
    assert server_side.fileno() == -1


def test_run_ends_on_end_of_stream(socket_pair):
    """run() returns when the client shuts down its side without 'bye'."""
    server_side, client_side = socket_pair
    handler = ConnectionHandler(conn=server_side)

    worker = threading.Thread(target=handler.run)
    worker.start()
    client_side.sendall(b"MUL 6 7\n")
    client_side.shutdown(socket.SHUT_WR)

    assert _recv_all(client_side) == b"10 42\n"
    worker.join(timeout=5)
    assert server_side.fileno() == -1


def test_run_closes_idle_connection(socket_pair):
    """With an idle timeout, a silent client is disconnected."""
    server_side, client_side = socket_pair
    handler = ConnectionHandler(conn=server_side, idle_timeout=0.1)

    handler.run()

    assert server_side.fileno() == -1
    assert _recv_all(client_side) == b""


def test_run_returns_when_peer_already_closed(socket_pair):
    """A client gone before the first request ends the connection quietly."""
    server_side, client_side = socket_pair
    client_side.close()
    handler = ConnectionHandler(conn=server_side)

    handler.run()

    assert server_side.fileno() == -1


def test_handler_rejects_invalid_timeout(socket_pair):
    """Pydantic validation refuses non-positive idle timeouts."""
    with pytest.raises(ValidationError):
        ConnectionHandler(conn=socket_pair[0], idle_timeout=0)


def test_peer_label(socket_pair):
    """The peer label is printable with or without an address."""
    assert ConnectionHandler(conn=socket_pair[0], address=("10.0.0.1", 5000)).peer == "10.0.0.1:5000"
    assert ConnectionHandler(conn=socket_pair[0]).peer == "unknown peer"
