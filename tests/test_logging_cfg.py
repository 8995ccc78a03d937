"""
Tests for the structured logging helpers.
"""
import json
import logging

from baristabot.infra.logging_cfg import JsonFormatter, ThrottledFilter, log_event


def make_record(msg, level=logging.WARNING):
    return logging.LogRecord("baristabot", level, __file__, 1, msg, None, None)


class TestThrottledFilter:
    def test_repeats_within_cooldown_are_dropped(self):
        f = ThrottledFilter(cooldown_sec=60.0)
        msg = json.dumps({"event": "nonce_retry", "account": "0xabc", "attempt": 1})
        assert f.filter(make_record(msg))
        assert not f.filter(make_record(msg))

    def test_keys_are_per_account(self):
        f = ThrottledFilter(cooldown_sec=60.0)
        assert f.filter(make_record(json.dumps({"event": "nonce_retry", "account": "0xa"})))
        assert f.filter(make_record(json.dumps({"event": "nonce_retry", "account": "0xb"})))

    def test_other_events_and_plain_text_pass(self):
        f = ThrottledFilter(cooldown_sec=60.0)
        msg = json.dumps({"event": "tx_sent", "account": "0xa"})
        assert f.filter(make_record(msg))
        assert f.filter(make_record(msg))
        assert f.filter(make_record("plain text"))
        assert f.filter(make_record("plain text"))

    def test_zero_cooldown_lets_everything_through(self):
        f = ThrottledFilter(cooldown_sec=0.0)
        msg = json.dumps({"event": "price_source_failed", "source": "spot"})
        assert f.filter(make_record(msg))
        assert f.filter(make_record(msg))


class TestJsonFormatter:
    def test_payload_fields(self):
        out = json.loads(JsonFormatter().format(make_record("hello", logging.INFO)))
        assert out["level"] == "INFO"
        assert out["name"] == "baristabot"
        assert out["msg"] == "hello"
        assert "ts_iso" in out


class TestLogEvent:
    def test_emits_one_json_object(self, caplog):
        logger = logging.getLogger("log-event-check")
        with caplog.at_level(logging.INFO):
            log_event(logger, "tx_sent", account="0xa", nonce=7)
        payload = json.loads(caplog.records[-1].getMessage())
        assert payload == {"event": "tx_sent", "account": "0xa", "nonce": 7}
