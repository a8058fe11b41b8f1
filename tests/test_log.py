"""
Tests for chartlab logging setup.
"""

import io
import logging

from chartlab import log


def test_setup_logging_attaches_one_handler(monkeypatch):
    monkeypatch.setattr(log, "_handler", None)
    logger = logging.getLogger(log.PACKAGE_LOGGER)
    before = list(logger.handlers)
    stream = io.StringIO()
    try:
        assert log.setup_logging("DEBUG", stream=stream) is logger
        log.setup_logging("WARNING")
        added = [h for h in logger.handlers if h not in before]
        assert len(added) == 1
        assert logger.level == logging.WARNING

        log.get_logger("chartlab.session").warning("Stopped at iteration %d", 7)
        assert "[WARNING] chartlab.session: Stopped at iteration 7" in stream.getvalue()
    finally:
        for handler in logger.handlers[:]:
            if handler not in before:
                logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
