import json
import os

from conftest import make_jwt

from modules.hiring_watch.lib import logging_bridge
from service import logging_utils


def _read(prefix):
    path = os.path.join(os.environ["LOG_DIR"], [f for f in os.listdir(os.environ["LOG_DIR"]) if f.startswith(prefix)][0])
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f]


def test_redaction_scrubs_keys_bearer_strings_and_bare_tokens():
    jwt = make_jwt()
    record = {
        "authorization": "Bearer abc",
        "nested": {"access_token": "xyz", "ok": 1},
        "message": f"rejected {jwt} at step 2",
        "header": "Bearer eyJhbGciOi.x.y",
        "url": "https://api.telegram.org/bot123:SECRET/sendMessage",
        "items": [{"password": "p"}],
    }

    out = logging_utils.redact(record)

    assert out["authorization"] == "***REDACTED***"
    assert out["nested"] == {"access_token": "***REDACTED***", "ok": 1}
    assert jwt not in out["message"] and "at step 2" in out["message"]
    assert out["header"] == "Bearer ***REDACTED***"
    assert "SECRET" not in out["url"]
    assert out["items"] == [{"password": "***REDACTED***"}]
    assert record["nested"]["access_token"] == "xyz"


def test_bearer_scrub_keeps_surrounding_text():
    out = logging_utils.redact({"message": "listings API error: Bearer abc123 expired"})
    assert out["message"] == "listings API error: Bearer ***REDACTED*** expired"


def test_bridge_writes_activity_and_error_jsonl():
    logging_bridge.activity("token_extracted", source="localStorage[sessionToken]", token="leak")
    logging_bridge.error("api_transient", error="HTTP 502")

    act = _read("activity-test")[0]
    err = _read("error-test")[0]
    assert act["event"] == "token_extracted"
    assert act["token"] == "***REDACTED***"
    assert act["_meta"]["pid"] == os.getpid()
    assert err["event"] == "api_transient" and err["error"] == "HTTP 502"


def test_size_rotation(monkeypatch):
    monkeypatch.setenv("ACTIVITY_LOG_MAX_BYTES", "10")
    logging_utils.write_activity_log({"event": "one"})
    logging_utils.write_activity_log({"event": "two"})

    names = os.listdir(os.environ["LOG_DIR"])
    assert len(names) == 2
    assert os.path.exists(logging_utils.get_activity_log_path())
