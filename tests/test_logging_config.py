import logging

from cocokaranavi.infrastructure.logging_config import BackendFilter, build_handler


def test_handler_prefixes_backend_name() -> None:
    handler = build_handler("firestore")
    record = logging.LogRecord("cocokaranavi.test", logging.INFO, __file__, 1, "接続しました", None, None)
    assert handler.filter(record)
    line = handler.format(record)
    assert "[firestore]" in line
    assert "cocokaranavi.test - [firestore] - INFO - 接続しました" in line


def test_filter_does_not_drop_records() -> None:
    record = logging.LogRecord("x", logging.DEBUG, __file__, 1, "m", None, None)
    assert BackendFilter("local").filter(record) is True
    assert record.backend == "local"
