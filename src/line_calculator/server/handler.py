"""Per-connection request loop of the calculator server."""
import socket
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from line_calculator.common.logger import logger
from line_calculator.common.protocol import handle_line, is_terminator


class ConnectionHandler(BaseModel):
    """
    Serve one accepted client connection until it ends.

    Lifecycle:
        - Created by the server for each accepted socket
        - Runs inside a worker thread of the server pool
        - Reads one request line, writes exactly one reply line, repeats
        - Stops on end of stream, on the ``bye`` terminator (no reply) or on an I/O error
        - Always closes the socket before returning
    """

    # Allow arbitrary types like socket.socket
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    conn: socket.socket = Field(..., description="Accepted client socket, owned by this handler")
    address: Tuple = Field(default=(), description="Peer address as returned by accept()")
    idle_timeout: Optional[float] = Field(
        default=None, gt=0, description="Seconds to wait for a request before closing, None waits forever"
    )

    @property
    def peer(self) -> str:
        """Printable peer address."""
        if len(self.address) >= 2:
            return f"{self.address[0]}:{self.address[1]}"
        return "unknown peer"

    def serve(self, reader, writer) -> int:
        """
        Run the request/reply loop over already opened text streams.

        :param reader: Text stream the requests are read from
        :param writer: Text stream the replies are written to

        :return: Number of requests answered
        :rtype: int
        """
        answered: int = 0
        while True:
            line: str = reader.readline()

            # End of stream, or a trailing fragment the client never terminated
            if not line.endswith("\n"):
                if line:
                    logger.warning(f"🔌 Dropping unterminated line from {self.peer}: {line!r}")
                return answered

            if is_terminator(line):
                logger.info(f"👋 {self.peer} sent the terminator")
                return answered

            request: str = line.rstrip("\r\n")
            logger.info(f"📥 {self.peer} -> {request!r}")
            reply: str = handle_line(request)
            writer.write(reply + "\n")
            writer.flush()
            logger.info(f"📤 {self.peer} <- {reply!r}")
            answered += 1

    def run(self) -> None:
        """
        Handle the connection and release it on every exit path.

        I/O errors are logged and end this connection only.

        :return: None
        """
        logger.info(f"🔌✅ Client connected: {self.peer}")

        try:
            self.conn.settimeout(self.idle_timeout)
            with self.conn, \
                    self.conn.makefile("r", encoding="utf-8", errors="replace", newline="\n") as reader, \
                    self.conn.makefile("w", encoding="utf-8", newline="\n") as writer:
                answered: int = self.serve(reader, writer)
            logger.info(f"✅ Served {answered} request(s) for {self.peer}")

        except socket.timeout:
            logger.warning(f"⏱️ Closing idle connection {self.peer} after {self.idle_timeout}s")

        except OSError as exc:
            logger.error(f"🔌❌ Error while serving {self.peer}: {exc}")

        finally:
            # Already closed by the with block unless the error happened before entering it
            self.conn.close()
            logger.info(f"🔌 Client disconnected: {self.peer}")
