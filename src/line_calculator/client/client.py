"""TCP client."""
from pathlib import Path
import socket
import sys
import tarfile
import tempfile
from typing import Callable, Dict, Iterable, List, Optional, TextIO
import zipfile

import py7zr
from pydantic import BaseModel, ConfigDict, Field, FilePath

from line_calculator.common.config import ServerEndpoint
from line_calculator.common.logger import logger
from line_calculator.common.protocol import decode_response, is_terminator, NO_RESPONSE_MESSAGE

PROMPT: str = "Expression (e.g. ADD 10 20) or 'bye' >> "


class ClientConnectionError(Exception):
    """The client could not reach the configured server."""


class CalculatorClient(BaseModel):
    """
    TCP client sending calculator requests to the server and printing decoded replies.

    The TCP client:
    - connects once to the configured server
    - sends each input line verbatim, including the ``bye`` terminator
    - waits for exactly one reply per request (no pipelining)
    - prints a human-readable sentence for every reply
    """

    # Make the Pydantic instance immutable (read-only), to prevent errors
    # that could be caused by changes to the network configuration during execution.
    model_config = ConfigDict(frozen=True)

    host: str = Field(default="localhost", min_length=1, description="Server host name or address")
    port: int = Field(default=9999, ge=1, le=65535, description="Server TCP port")
    timeout: Optional[float] = Field(default=10.0, gt=0, description="Connect timeout in seconds")

    @classmethod
    def from_endpoint(cls, endpoint: ServerEndpoint, **kwargs) -> "CalculatorClient":
        """Build a client for a loaded server endpoint."""
        return cls(host=endpoint.host, port=endpoint.port, **kwargs)

    def connect(self) -> socket.socket:
        """
        Open the connection to the server.

        :return: Connected socket, in blocking mode
        :rtype: socket.socket
        :raises ClientConnectionError: If the address cannot be resolved or the connection is refused
        """
        try:
            sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        except socket.gaierror as exc:
            raise ClientConnectionError(f"Error: server address could not be resolved: {self.host}") from exc
        except OSError as exc:
            raise ClientConnectionError(f"Error: could not connect to server: {exc}") from exc

        # Replies may take as long as the server needs
        sock.settimeout(None)
        return sock

    def run(self, lines: Iterable[str], out: Optional[TextIO] = None, echo: bool = False) -> int:
        """
        Send request lines one at a time and print the decoded replies.

        Stops after sending ``bye``, when the input is exhausted, or when the server closes the connection.

        :param Iterable[str] lines: Request lines (line endings are ignored)
        :param TextIO out: Stream receiving prompts and messages, stdout by default
        :param bool echo: Print each request after the prompt, for non-interactive input

        :return: Number of replies received
        :rtype: int
        :raises ClientConnectionError: If the server cannot be reached
        """
        replies: int = 0

        with self.connect() as sock, \
                sock.makefile("r", encoding="utf-8", newline="\n") as reader, \
                sock.makefile("w", encoding="utf-8", newline="\n") as writer:
            print(f"Connected to server ({self.host}:{self.port})", file=out)
            print(PROMPT, end="", file=out, flush=True)

            for raw_line in lines:
                line: str = raw_line.rstrip("\r\n")
                if echo:
                    print(line, file=out)

                writer.write(line + "\n")
                writer.flush()

                if is_terminator(line):
                    print("Closing connection to server.", file=out)
                    break

                reply: str = reader.readline()
                message: str = decode_response(reply if reply.endswith("\n") else None)
                print(message, file=out)
                if message == NO_RESPONSE_MESSAGE:
                    break
                replies += 1

                print(PROMPT, end="", file=out, flush=True)

        return replies

    def interactive(self, stdin: Optional[TextIO] = None, out: Optional[TextIO] = None) -> int:
        """
        Run a session driven by console input.

        :param TextIO stdin: Console input, stdin by default
        :param TextIO out: Console output

        :return: Number of replies received
        :rtype: int
        """
        return self.run(sys.stdin if stdin is None else stdin, out)

    def send_file(self, input_file: FilePath, out: Optional[TextIO] = None) -> int:
        """
        Replay the requests of a script file or archive against the server.

        :param FilePath input_file: Path to a .txt file or a supported archive
        :param TextIO out: Stream receiving the decoded replies

        :return: Number of replies received
        :rtype: int
        :raises ValueError: If the archive format is unsupported or contains no .txt file
        """
        lines: List[str] = load_script(Path(input_file))
        logger.info(f"📄 Replaying {len(lines)} request(s) from {str(input_file)!r}")
        return self.run(lines, out, echo=True)


def _first_text_member(names: Iterable[str], kind: str) -> str:
    """Pick the first ``.txt`` member name of an archive listing."""
    for name in names:
        if name.endswith(".txt"):
            return name
    raise ValueError(f"📄❌ No .txt file found in {kind} archive")


def _read_zip(archive_path: Path) -> str:
    with zipfile.ZipFile(archive_path, "r") as zf:
        return zf.read(_first_text_member(zf.namelist(), "zip")).decode("utf-8")


def _read_tar_xz(archive_path: Path) -> str:
    with tarfile.open(archive_path, "r:xz") as tf:
        members = {member.name: member for member in tf.getmembers() if member.isfile()}
        name = _first_text_member(members, "tar.xz")
        with tf.extractfile(members[name]) as f_in:
            return f_in.read().decode("utf-8")


def _read_7z(archive_path: Path) -> str:
    # py7zr extracts to disk, so go through a temporary directory
    with tempfile.TemporaryDirectory() as tmpdir, py7zr.SevenZipFile(archive_path, mode="r") as archive:
        name = _first_text_member(archive.getnames(), "7z")
        archive.extract(path=tmpdir, targets=[name])
        return (Path(tmpdir) / name).read_text(encoding="utf-8")


# Archive kind -> reader returning the text of its first .txt member
ARCHIVE_READERS: Dict[str, Callable[[Path], str]] = {
    ".zip": _read_zip,
    ".tar.xz": _read_tar_xz,
    ".7z": _read_7z,
}


def archive_kind(input_file: Path) -> str:
    """Return the archive suffix of a path, treating ``.tar.xz`` as one suffix."""
    if input_file.suffixes[-2:] == [".tar", ".xz"]:
        return ".tar.xz"
    return input_file.suffix


def load_script(input_file: Path) -> List[str]:
    """
    Read request lines from a plain text file or from the first .txt file of an archive.

    Supported archives are .zip, .tar.xz and .7z. Empty lines are skipped.

    :param Path input_file: Path to the input file or archive

    :return: Request lines
    :rtype: List[str]
    :raises ValueError: If the archive format is unsupported or contains no .txt file
    """
    kind: str = archive_kind(input_file)
    if kind == ".txt":
        content = input_file.read_text(encoding="utf-8")
    elif kind in ARCHIVE_READERS:
        content = ARCHIVE_READERS[kind](input_file)
    else:
        raise ValueError(f"📄❌ Unsupported script format: {kind or input_file.name}")
    return [line.strip() for line in content.splitlines() if line.strip()]
