"""Tests for logging and async helpers."""

import asyncio
import logging

from topicwatch.utils import log_to_file, run_async_in_sync, set_log_level, setup_logging


async def answer() -> int:
    await asyncio.sleep(0)
    return 42


class TestRunAsyncInSync:
    def test_without_running_loop(self) -> None:
        assert run_async_in_sync(answer()) == 42

    def test_inside_running_loop(self) -> None:
        """Test the bridge works when called from async code."""

        async def caller() -> int:
            return run_async_in_sync(answer())

        assert asyncio.run(caller()) == 42


class TestLogging:
    def test_setup_logging_file_handler(self, tmp_path) -> None:
        log_file = tmp_path / "logs" / "app.log"
        logger = setup_logging(level="DEBUG", log_file=log_file)

        logging.getLogger("topicwatch.test").info("hello file")

        assert logger.name == "topicwatch"
        assert len(logger.handlers) == 2
        assert " - topicwatch.test - INFO - hello file" in log_file.read_text()

    def test_log_to_file_is_temporary(self, tmp_path) -> None:
        """Test the file handler is detached after the block."""
        log_file = tmp_path / "demo.log"
        logger = logging.getLogger("topicwatch")

        with log_to_file(log_file):
            logging.getLogger("topicwatch.daemon").info("inside")
        logging.getLogger("topicwatch.daemon").info("outside")

        text = log_file.read_text()
        assert "inside" in text
        assert "outside" not in text
        assert logger.handlers == []
        assert logger.level == logging.NOTSET

    def test_set_log_level(self) -> None:
        set_log_level("ERROR")
        assert logging.getLogger("topicwatch").level == logging.ERROR
