"""Server endpoint configuration read by the client."""
from pathlib import Path
from typing import List, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from line_calculator.common.logger import logger

DEFAULT_CONFIG_FILE: Path = Path("server_info.dat")


class ServerEndpoint(BaseModel):
    """Address of the calculator server, immutable once loaded."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(default="localhost", min_length=1, description="Server host name or address")
    port: int = Field(default=9999, ge=1, le=65535, description="Server TCP port")


def load_endpoint(path: Union[str, Path] = DEFAULT_CONFIG_FILE) -> ServerEndpoint:
    """
    Load the server endpoint from the first line of a config file (``<host> <port>``).

    Any problem with the file falls back to the default endpoint (localhost:9999)
    with a warning; this function never raises for a missing or malformed file.

    :param path: Path to the config file

    :return: Loaded or default endpoint
    :rtype: ServerEndpoint
    """
    path = Path(path)
    default = ServerEndpoint()

    try:
        with path.open("r", encoding="utf-8") as f_in:
            first_line: str = f_in.readline()
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning(
            f"⚙️❌ Could not read config file {str(path)!r} ({exc}), "
            f"falling back to {default.host}:{default.port}"
        )
        return default

    tokens: List[str] = first_line.split()
    if len(tokens) != 2 or not tokens[1].isdecimal():
        logger.warning(
            f"⚙️❌ Invalid config file {str(path)!r} (expected e.g. '127.0.0.1 9999'), "
            f"falling back to {default.host}:{default.port}"
        )
        return default

    try:
        endpoint = ServerEndpoint(host=tokens[0], port=int(tokens[1]))
    except ValidationError as exc:
        logger.warning(
            f"⚙️❌ Invalid port in config file {str(path)!r}: {exc.errors()[0]['msg']}, "
            f"falling back to {default.host}:{default.port}"
        )
        return default

    logger.info(f"⚙️ Loaded server endpoint {endpoint.host}:{endpoint.port} from {str(path)!r}")
    return endpoint
