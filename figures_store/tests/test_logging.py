import json
import logging

from figures_store.logging_filters import configure_logging
from figures_store.middleware import REQUEST_ID_CTX


def test_json_logs_carry_request_id(capsys):
    logger = configure_logging("INFO", name="figures_store_json_test")
    logger.propagate = False

    logger.info("outside request")
    token = REQUEST_ID_CTX.set("req-42")
    try:
        logging.getLogger("figures_store_json_test.child").warning("inside request", extra={"figure_type": "Circle"})
    finally:
        REQUEST_ID_CTX.reset(token)

    lines = [json.loads(line) for line in capsys.readouterr().err.splitlines()]
    assert lines[0]["message"] == "outside request"
    assert lines[0]["request_id"] == "-"
    assert lines[1]["request_id"] == "req-42"
    assert lines[1]["figure_type"] == "Circle"
    assert lines[1]["levelname"] == "WARNING"


def test_configure_logging_installs_one_handler():
    logger = configure_logging("DEBUG", name="figures_store_once_test")
    configure_logging("INFO", name="figures_store_once_test")
    assert len(logger.handlers) == 1
    assert logger.level == logging.INFO
