import json
import logging

import pytest

from notes_api.logging_config import configure_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def test_json_lines(restore_root_logger, capsys):
    configure_logging("DEBUG", "json")
    assert len(restore_root_logger.handlers) == 1
    assert restore_root_logger.level == logging.DEBUG

    logging.getLogger("notes_api.test").info("hello %s", "notes")
    line = capsys.readouterr().out.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["event"] == "hello notes"
    assert record["level"] == "info"
    assert record["logger"] == "notes_api.test"


def test_unknown_level_defaults_to_info(restore_root_logger):
    configure_logging("chatty", "console")
    assert restore_root_logger.level == logging.INFO
