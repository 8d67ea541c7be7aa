import json
import logging

from leakrelay.core.logs import JSONFormatter, RedactingFilter, configure_logging


def _record(msg: str, *args) -> logging.LogRecord:
    return logging.LogRecord("leakrelay.test", logging.INFO, __file__, 1, msg, args, None)


def test_redacting_filter_scrubs_rendered_message() -> None:
    record = _record("upload to %s failed", "https://b.s3.amazonaws.com/x?X-Amz-Signature=cafebabe")
    assert RedactingFilter().filter(record)
    assert "cafebabe" not in record.getMessage()
    assert "[REDACTED]" in record.getMessage()


def test_json_formatter_emits_one_object() -> None:
    record = _record("stage %s entered", "upload")
    record.stage = "upload"
    payload = json.loads(JSONFormatter().format(record))
    assert payload["message"] == "stage upload entered"
    assert payload["level"] == "INFO"
    assert payload["stage"] == "upload"


def test_configure_logging_writes_redacted_lines_to_stderr(capsys) -> None:
    logger = configure_logging("DEBUG", "text")
    logging.getLogger("leakrelay.core.test").info("token=%s", "eyJsecret")
    logger.handlers.clear()
    err = capsys.readouterr().err
    assert "eyJsecret" not in err
    assert "token= [REDACTED]" in err
