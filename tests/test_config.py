"""Test the server endpoint loader."""
import logging

from pydantic import ValidationError
import pytest

from line_calculator.common.config import load_endpoint, ServerEndpoint


def test_default_endpoint():
    """The default endpoint is localhost:9999."""
    endpoint = ServerEndpoint()
    assert endpoint.host == "localhost"
    assert endpoint.port == 9999


def test_endpoint_is_immutable():
    """A loaded endpoint cannot be changed."""
    endpoint = ServerEndpoint()
    with pytest.raises(ValidationError):
        endpoint.port = 1234


def test_load_valid_file(tmp_path):
    """The first line provides host and port; later lines are ignored."""
    config = tmp_path / "server_info.dat"
    config.write_text("192.168.0.7   8080\nignored 1\n")

    assert load_endpoint(config) == ServerEndpoint(host="192.168.0.7", port=8080)


@pytest.mark.parametrize("content", [
    "",
    "localhost\n",
    "localhost 9000 extra\n",
    "localhost nine\n",
    "localhost -1\n",
    "localhost 70000\n",
    "localhost 0\n",
])
def test_load_malformed_file_falls_back(tmp_path, content, caplog):
    """Malformed content falls back to the default endpoint with a warning."""
    config = tmp_path / "server_info.dat"
    config.write_text(content)

    with caplog.at_level(logging.WARNING, logger="line_calculator"):
        assert load_endpoint(config) == ServerEndpoint()
    assert "falling back to localhost:9999" in caplog.text


def test_load_missing_file_falls_back(tmp_path):
    """A missing file never raises."""
    assert load_endpoint(tmp_path / "missing.dat") == ServerEndpoint()


def test_load_directory_falls_back(tmp_path):
    """An unreadable path (here a directory) never raises."""
    assert load_endpoint(tmp_path) == ServerEndpoint()
