"""Test the shared logger factory."""
import logging

import pytest

from line_calculator.common.logger import make_logger


@pytest.fixture
def fresh_name(request):
    """A logger name unique to the test, with its handlers removed afterwards."""
    name = f"line_calculator.tests.{request.node.name}"
    yield name
    logging.getLogger(name).handlers.clear()


@pytest.mark.parametrize("value,expected", [
    (None, logging.INFO),
    ("debug", logging.DEBUG),
    ("WARNING", logging.WARNING),
    ("verbose", logging.INFO),
    ("", logging.INFO),
])
def test_level_from_environment(monkeypatch, fresh_name, value, expected):
    """The level comes from the environment; unknown names fall back to INFO."""
    if value is None:
        monkeypatch.delenv("LINE_CALCULATOR_LOG_LEVEL", raising=False)
    else:
        monkeypatch.setenv("LINE_CALCULATOR_LOG_LEVEL", value)

    assert make_logger(fresh_name).level == expected


def test_logger_configured_once(fresh_name):
    """Calling the factory twice does not stack handlers."""
    make_logger(fresh_name)
    assert len(make_logger(fresh_name).handlers) == 1
