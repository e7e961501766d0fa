"""Tests for core data contracts."""

import pytest

from runbeacon.contracts import (
    OrchestrationResult,
    OrchestrationState,
    RunHandle,
    RunStatus,
    Scope,
    WorkflowRun,
    derive_label,
    new_correlation_token,
)


def test_scope_parse():
    scope = Scope.parse("octo/demo")
    assert scope.owner == "octo"
    assert scope.repo == "demo"
    assert str(scope) == "octo/demo"


@pytest.mark.parametrize("value", ["octo", "/demo", "octo/", "a/b/c"])
def test_scope_parse_rejects_malformed(value):
    with pytest.raises(ValueError):
        Scope.parse(value)


def test_tokens_are_unique_and_labels_deterministic():
    tokens = {new_correlation_token() for _ in range(100)}
    assert len(tokens) == 100
    assert derive_label("abc") == "unique-id-abc"
    assert derive_label("abc") == derive_label("abc")


def test_run_handle_is_immutable():
    handle = RunHandle(run_id=7, correlation_token="abc")
    with pytest.raises(Exception):
        handle.run_id = 8


def test_run_parsed_from_provider_payload():
    run = WorkflowRun.model_validate(
        {
            "id": 42,
            "status": "in_progress",
            "conclusion": None,
            "created_at": "2024-03-01T10:00:00Z",
            "head_branch": "main",
            "head_commit": {"message": "build abc", "id": "deadbeef"},
            "labels": [{"name": "unique-id-abc"}],
            "html_url": "https://github.com/octo/demo/actions/runs/42",
        }
    )
    assert run.has_label("unique-id-abc")
    assert run.commit_message == "build abc"
    assert run.created_at.year == 2024


def test_run_status_terminal_regardless_of_conclusion():
    for conclusion in ("success", "failure", "cancelled", "timed_out"):
        status = RunStatus(identifier=1, lifecycle_state="completed", conclusion=conclusion)
        assert status.is_terminal
    assert not RunStatus(identifier=1, lifecycle_state="in_progress").is_terminal


def test_result_succeeded_checks_conclusion():
    handle = RunHandle(run_id=1, correlation_token="abc")
    failed_run = OrchestrationResult(
        correlation_token="abc",
        state=OrchestrationState.COMPLETED,
        run_handle=handle,
        status=RunStatus(identifier=1, lifecycle_state="completed", conclusion="failure"),
    )
    assert not failed_run.succeeded

    ok_run = failed_run.model_copy(
        update={
            "status": RunStatus(
                identifier=1, lifecycle_state="completed", conclusion="success"
            )
        }
    )
    assert ok_run.succeeded
