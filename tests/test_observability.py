"""
Tests for structured run logging.
"""

import json
import logging
from unittest.mock import MagicMock, patch

from iacpipe.pipeline import ComponentResult, JSONLogger, PipelineArgs, PipelineLogger
from iacpipe.pipeline.observability import redact


class TestJSONLogger:
    """Tests for JSONLogger."""

    def test_emits_json_record(self, caplog):
        log = JSONLogger(name="iacpipe.test", flow="demo-dev", extra_context={"template": "demo"})

        with caplog.at_level(logging.INFO, logger="iacpipe.test"):
            log.info("Pipeline started", components=["A"])

        record = json.loads(caplog.records[-1].getMessage())
        assert record["message"] == "Pipeline started"
        assert record["flow"] == "demo-dev"
        assert record["template"] == "demo"
        assert record["components"] == ["A"]
        assert record["level"] == "info"

    def test_with_context(self):
        log = JSONLogger(flow="x").with_context(stack="dev")

        assert log.extra_context == {"stack": "dev"}
        assert log.flow == "x"

    def test_sensitive_fields_masked(self, caplog):
        log = JSONLogger(name="iacpipe.test", extra_context={"vault_token": "t0ken"})

        with caplog.at_level(logging.INFO, logger="iacpipe.test"):
            log.info("Resolved", input={"db_password": "hunter2", "host": "db"}, api_key=None)

        record = json.loads(caplog.records[-1].getMessage())
        assert record["vault_token"] == "***"
        assert record["input"] == {"db_password": "***", "host": "db"}
        assert record["api_key"] is None

    def test_redaction_can_be_disabled(self, caplog):
        log = JSONLogger(name="iacpipe.test", redact_sensitive=False).with_context(stack="dev")

        with caplog.at_level(logging.INFO, logger="iacpipe.test"):
            log.info("Resolved", secret="visible")

        assert json.loads(caplog.records[-1].getMessage())["secret"] == "visible"

    def test_objects_serialised(self, caplog):
        log = JSONLogger(name="iacpipe.test")

        with caplog.at_level(logging.INFO, logger="iacpipe.test"):
            log.info(
                "Done",
                result=ComponentResult.ok("deploy", {"ip": "10.0.0.1"}),
                args=PipelineArgs(template="demo"),
            )

        record = json.loads(caplog.records[-1].getMessage())
        assert record["result"]["output"] == {"ip": "10.0.0.1"}
        assert record["args"]["template"] == "demo"

    def test_disabled_level_skipped(self, caplog):
        log = JSONLogger(name="iacpipe.test")

        with caplog.at_level(logging.WARNING, logger="iacpipe.test"):
            with patch("iacpipe.pipeline.observability.json.dumps") as dumps:
                log.debug("Noise", detail="x")

        dumps.assert_not_called()
        assert caplog.records == []


class TestRedact:
    """Tests for redact."""

    def test_does_not_mutate_input(self):
        context = {"token": "abc", "nested": {"password": "p"}}

        masked = redact(context)

        assert masked == {"token": "***", "nested": {"password": "***"}}
        assert context["token"] == "abc"


class TestPipelineLogger:
    """Tests for PipelineLogger events."""

    def test_events_forwarded(self):
        inner = MagicMock()
        events = PipelineLogger(flow="demo-dev", template="demo", inner=inner)

        events.pipeline_started("deploy", ["A", "B"])
        events.component_failed("A", "deploy", "quota")
        events.component_error("B", "deploy", "boom", "RuntimeError")

        assert inner.info.call_count == 1
        assert inner.warning.call_count + inner.error.call_count == 2

    def test_default_inner_logger(self):
        events = PipelineLogger(flow="demo-dev", template="demo")

        assert isinstance(events.inner, JSONLogger)
        assert events.inner.extra_context == {"template": "demo"}
