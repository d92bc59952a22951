import logging

import pytest

from logging_config import ROOT_LOGGER, agent_logger, console_forwarder, log_exception, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger(ROOT_LOGGER)
    level, propagate = root.level, root.propagate
    yield root
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.setLevel(level)
    root.propagate = propagate


def test_setup_logging_writes_dated_file(tmp_path, restore_root_logger):
    logger = setup_logging("warning", log_dir=str(tmp_path / "logs"))

    assert logger is restore_root_logger
    assert not logger.propagate
    console = [h for h in logger.handlers if type(h) is logging.StreamHandler]
    assert console and console[0].level == logging.WARNING

    agent_logger("bridge", "Claude").debug("detail only the file sees")
    for handler in logger.handlers:
        handler.flush()
    files = list((tmp_path / "logs").glob("agora_*.log"))
    assert len(files) == 1
    assert "[Claude] detail only the file sees" in files[0].read_text(encoding="utf-8")


def test_setup_logging_twice_does_not_duplicate_handlers(tmp_path, restore_root_logger):
    setup_logging(log_dir=str(tmp_path))
    logger = setup_logging(log_dir=str(tmp_path))
    assert len(logger.handlers) == 2


def test_agent_logger_prefixes_agent(caplog):
    caplog.set_level(logging.INFO, logger=ROOT_LOGGER)

    agent_logger("discovery", "Gemini").info("✓ Reply container found")
    agent_logger("discovery", "").info("no name")

    assert caplog.records[0].name == "agora.discovery"
    assert caplog.messages == ["[Gemini] ✓ Reply container found", "[?] no name"]


def test_console_forwarder_logs_at_debug(caplog):
    caplog.set_level(logging.DEBUG, logger=ROOT_LOGGER)

    console_forwarder("ChatGPT")("Uncaught TypeError: x is undefined")

    record = caplog.records[-1]
    assert record.name == "agora.console"
    assert record.levelno == logging.DEBUG
    assert record.getMessage() == "[ChatGPT] console: Uncaught TypeError: x is undefined"


def test_log_exception_summary_and_traceback(caplog):
    caplog.set_level(logging.DEBUG, logger=ROOT_LOGGER)
    logger = logging.getLogger("agora.arena")

    try:
        raise ValueError("bad round")
    except ValueError as e:
        log_exception(logger, e, "round 2")

    assert caplog.records[0].levelno == logging.ERROR
    assert caplog.messages[0] == "❌ Exception in round 2: ValueError: bad round"
    assert caplog.records[1].exc_info is not None
