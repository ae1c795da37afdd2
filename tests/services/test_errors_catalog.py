import pytest

from rkeupgrader.errors_catalog import actionable_error


def test_actionable_error_contains_suggested_action():
    message = actionable_error("apply_failed", code="1", log="output/rke_up_20261017120000.log")

    assert "exit code 1" in message
    assert "Suggested action:" in message
    assert "output/rke_up_20261017120000.log" in message


def test_actionable_error_rejects_unknown_code():
    with pytest.raises(KeyError):
        actionable_error("does_not_exist")
