# tests/test_logging_config.py

import logging

import pytest

from agent.logging_config import configure_logging, resolve_level


@pytest.fixture
def bare_root_logger():
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    for handler in saved_handlers:
        root.removeHandler(handler)
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)


def test_resolve_level():
    assert resolve_level(logging.DEBUG) == logging.DEBUG
    assert resolve_level("warning") == logging.WARNING
    assert resolve_level(" ERROR ") == logging.ERROR
    assert resolve_level("chatty") == logging.INFO


def test_configure_logging_installs_one_handler(bare_root_logger):
    configure_logging("DEBUG")
    configure_logging("ERROR")

    assert len(bare_root_logger.handlers) == 1
    assert bare_root_logger.level == logging.DEBUG


def test_configure_logging_respects_existing_handlers(bare_root_logger):
    existing = logging.NullHandler()
    bare_root_logger.addHandler(existing)
    bare_root_logger.setLevel(logging.WARNING)

    configure_logging("DEBUG")

    assert bare_root_logger.handlers == [existing]
    assert bare_root_logger.level == logging.WARNING
