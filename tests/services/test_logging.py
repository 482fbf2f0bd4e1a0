# tests/services/test_logging.py
import pytest
from loguru import logger

from promptcomposer.services.logging import setup_logging

@pytest.fixture
def reset_sinks():
    yield
    logger.remove()

def test_file_sink_receives_debug_records(tmp_path, reset_sinks):
    log_file = setup_logging(level="WARNING", log_dir=tmp_path)
    assert log_file is not None

    logger.debug("debug record for the file")
    logger.complete()
    logger.remove()

    files = list(tmp_path.glob("promptcomposer_*.log"))
    assert len(files) == 1
    assert "debug record for the file" in files[0].read_text(encoding="utf-8")

def test_file_logging_can_be_disabled(tmp_path, reset_sinks):
    log_dir = tmp_path / "logs"
    assert setup_logging(log_to_file=False, log_dir=log_dir) is None
    assert not log_dir.exists()

def test_level_override_from_environment(tmp_path, monkeypatch, capsys, reset_sinks):
    monkeypatch.setenv("PROMPTCOMPOSER_LOG_LEVEL", "error")
    setup_logging(log_to_file=False)
    package_logger = logger.patch(lambda record: record.update(name="promptcomposer.tests"))
    package_logger.warning("should not reach the console")
    package_logger.error("should reach the console")
    logger.error("third-party record")
    logger.complete()
    logger.remove()

    err = capsys.readouterr().err
    assert "should reach the console" in err
    assert "should not reach the console" not in err
    assert "third-party record" not in err
