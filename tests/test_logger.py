import logging

from backend.app.logger import LOG_FILE, resolve_level, setup_logger


def test_resolve_level_accepts_names_and_numbers():
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level(" WARNING ") == logging.WARNING
    assert resolve_level("10") == 10
    assert resolve_level("chatty") == logging.INFO
    assert resolve_level(None, default=logging.ERROR) == logging.ERROR


def test_file_keeps_debug_lines_while_console_follows_level():
    log = setup_logger("brandkit.test", level=logging.WARNING)
    file_handler, console_handler = log.handlers

    assert file_handler.level == logging.DEBUG
    assert console_handler.level == logging.WARNING
    assert logging.getLogger("urllib3").level == logging.WARNING

    log.debug("[vision] raw response: {}")
    file_handler.flush()
    assert "[vision] raw response" in LOG_FILE.read_text(encoding="utf-8")
