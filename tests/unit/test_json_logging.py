import json
import logging

from rollout_ai.core.rollout.models import FlagScope
from rollout_ai.utils.logging import JsonFormatter


def _record(**extra):
    record = logging.LogRecord(
        name="rollout_ai.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Analyzer answered with a safe default",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_structured_fields_are_emitted():
    scope = FlagScope(project_key="shop", environment="prod", feature_flag_key="new-checkout")
    line = JsonFormatter().format(_record(**scope.log_extra("analyze"), fallback_reason="timeout"))
    data = json.loads(line)
    assert data["level"] == "WARNING"
    assert data["project_key"] == "shop"
    assert data["flag_key"] == "new-checkout"
    assert data["operation"] == "analyze"
    assert data["fallback_reason"] == "timeout"


def test_absent_fields_are_omitted():
    data = json.loads(JsonFormatter().format(_record()))
    assert "project_key" not in data
    assert data["message"] == "Analyzer answered with a safe default"
