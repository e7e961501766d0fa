"""End-to-end orchestration tests against the in-memory provider."""

import asyncio

import pytest

from runbeacon import (
    CorrelationNotFound,
    DispatchError,
    OrchestrationState,
    RunbeaconConfig,
    RunOrchestrator,
    Scope,
    WaitCancelled,
    WaitTimeout,
    WorkflowDispatcher,
    derive_label,
)
from runbeacon.exceptions import ProviderError
from runbeacon.persistence import InMemoryWorkflowRecordRepository, RecordStatus
from runbeacon.providers import InMemoryProvider

SCOPE = Scope(owner="octo", repo="demo")


def make_config(**overrides) -> RunbeaconConfig:
    values = {
        "scope": "octo/demo",
        "workflow_ref": "build.yml",
        "poll_interval": 0.01,
        "timeout": 5,
        "correlation_attempts": 1,
    }
    values.update(overrides)
    return RunbeaconConfig(**values)


class FlakyStatusProvider(InMemoryProvider):
    def __init__(self, failures: int, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures

    async def get_run(self, scope, run_id):
        if self.failures:
            self.failures -= 1
            raise ProviderError("bad gateway", status_code=502)
        return await super().get_run(scope, run_id)


class RejectingProvider(InMemoryProvider):
    async def dispatch(self, scope, workflow_ref, ref, inputs):
        raise DispatchError("workflow not found")


class SlowListingProvider(InMemoryProvider):
    """Hide dispatched runs from the first listing."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.listings = 0

    async def list_runs(self, scope, branch=None, per_page=100, label=None):
        self.listings += 1
        if self.listings == 1:
            return []
        return await super().list_runs(scope, branch, per_page, label)


@pytest.mark.asyncio
async def test_run_completes_and_downloads_artifact(tmp_path):
    provider = InMemoryProvider(completes_after=2, artifacts={"dist": b"archive"})
    repo = InMemoryWorkflowRecordRepository()
    sink = tmp_path / "dist.zip"
    orchestrator = RunOrchestrator(
        provider, repo, make_config(artifact_sink=str(sink))
    )

    result = await orchestrator.run(correlation_token="tok-1")

    assert result.state == OrchestrationState.COMPLETED
    assert result.succeeded
    assert result.artifact_path == str(sink)
    assert result.artifact_error is None
    assert sink.read_bytes() == b"archive"
    assert orchestrator.state_of("tok-1") == OrchestrationState.COMPLETED

    runs = await provider.list_runs(SCOPE)
    labelled = [run for run in runs if run.has_label(derive_label("tok-1"))]
    assert [run.id for run in labelled] == [result.run_handle.run_id]

    record = await repo.get_record("tok-1")
    assert record.status == RecordStatus.COMPLETED
    assert record.run_id == result.run_handle.run_id
    assert record.conclusion == "success"


@pytest.mark.asyncio
async def test_generates_token_when_none_given():
    provider = InMemoryProvider()
    orchestrator = RunOrchestrator(provider, config=make_config())

    result = await orchestrator.run()

    assert result.correlation_token
    record = await orchestrator.repository.get_record(result.correlation_token)
    assert record.status == RecordStatus.COMPLETED


@pytest.mark.asyncio
async def test_commit_message_strategy_end_to_end():
    provider = InMemoryProvider(echo="commit-message")
    orchestrator = RunOrchestrator(
        provider, config=make_config(correlation_strategy="commit-message")
    )

    result = await orchestrator.run(correlation_token="tok-msg")

    assert result.state == OrchestrationState.COMPLETED


@pytest.mark.asyncio
async def test_failed_conclusion_is_still_completed():
    provider = InMemoryProvider(conclusion="failure")
    repo = InMemoryWorkflowRecordRepository()
    orchestrator = RunOrchestrator(provider, repo, make_config())

    result = await orchestrator.run(correlation_token="tok-fail")

    assert result.state == OrchestrationState.COMPLETED
    assert result.status.conclusion == "failure"
    assert not result.succeeded
    record = await repo.get_record("tok-fail")
    assert record.status == RecordStatus.COMPLETED
    assert record.conclusion == "failure"


@pytest.mark.asyncio
async def test_transient_status_failures_do_not_fail_orchestration():
    provider = FlakyStatusProvider(failures=3)
    repo = InMemoryWorkflowRecordRepository()
    orchestrator = RunOrchestrator(
        provider, repo, make_config(max_consecutive_poll_failures=3)
    )

    result = await orchestrator.run(correlation_token="tok-flaky")

    assert result.state == OrchestrationState.COMPLETED
    assert (await repo.get_record("tok-flaky")).status == RecordStatus.COMPLETED


@pytest.mark.asyncio
async def test_dispatch_failure_marks_record_failed():
    repo = InMemoryWorkflowRecordRepository()
    orchestrator = RunOrchestrator(RejectingProvider(), repo, make_config())

    with pytest.raises(DispatchError):
        await orchestrator.run(correlation_token="tok-reject")

    assert orchestrator.state_of("tok-reject") == OrchestrationState.FAILED
    record = await repo.get_record("tok-reject")
    assert record.status == RecordStatus.FAILED
    assert "DispatchError" in record.error


@pytest.mark.asyncio
async def test_unmatched_run_fails_with_correlation_not_found():
    provider = InMemoryProvider(echo="none")
    repo = InMemoryWorkflowRecordRepository()
    orchestrator = RunOrchestrator(provider, repo, make_config())

    with pytest.raises(CorrelationNotFound):
        await orchestrator.run(correlation_token="tok-lost")

    assert (await repo.get_record("tok-lost")).status == RecordStatus.FAILED


@pytest.mark.asyncio
async def test_correlation_is_reattempted(monkeypatch):
    delays = []

    async def no_wait(attempt, **kwargs):
        delays.append(attempt)

    monkeypatch.setattr("runbeacon.orchestrator.schedule_retry", no_wait)
    provider = SlowListingProvider()
    orchestrator = RunOrchestrator(
        provider, config=make_config(correlation_attempts=3)
    )

    result = await orchestrator.run(correlation_token="tok-late")

    assert result.state == OrchestrationState.COMPLETED
    assert delays == [0]
    assert provider.listings == 2


@pytest.mark.asyncio
async def test_timeout_leaves_record_pending():
    provider = InMemoryProvider(completes_after=10**6)
    repo = InMemoryWorkflowRecordRepository()
    orchestrator = RunOrchestrator(
        provider, repo, make_config(poll_interval=0.01, timeout=0.05)
    )

    with pytest.raises(WaitTimeout):
        await orchestrator.run(correlation_token="tok-slow")

    assert orchestrator.state_of("tok-slow") == OrchestrationState.FAILED
    record = await repo.get_record("tok-slow")
    assert record.status == RecordStatus.PENDING
    assert record.run_id is not None


@pytest.mark.asyncio
async def test_artifact_failure_does_not_revert_completion(tmp_path):
    provider = InMemoryProvider()
    repo = InMemoryWorkflowRecordRepository()
    orchestrator = RunOrchestrator(
        provider, repo, make_config(artifact_sink=str(tmp_path / "out.zip"))
    )

    result = await orchestrator.run(correlation_token="tok-noart")

    assert result.state == OrchestrationState.COMPLETED
    assert result.artifact_path is None
    assert "no downloadable artifact" in result.artifact_error
    assert (await repo.get_record("tok-noart")).status == RecordStatus.COMPLETED


@pytest.mark.asyncio
async def test_concurrent_orchestrations_stay_isolated():
    provider = InMemoryProvider(completes_after=3)
    repo = InMemoryWorkflowRecordRepository()
    orchestrator = RunOrchestrator(provider, repo, make_config())
    tokens = [f"tok-{i}" for i in range(8)]

    results = await asyncio.gather(
        *(orchestrator.run(correlation_token=token) for token in tokens)
    )

    run_ids = {result.run_handle.run_id for result in results}
    assert len(run_ids) == len(tokens)
    for result in results:
        assert result.run_handle.correlation_token == result.correlation_token
    records = await repo.list_records()
    assert {r.correlation_token for r in records} == set(tokens)
    assert all(r.status == RecordStatus.COMPLETED for r in records)


@pytest.mark.asyncio
async def test_resume_recovers_from_token_alone():
    provider = InMemoryProvider()
    await WorkflowDispatcher(provider).dispatch(
        SCOPE, "build.yml", "tok-resume"
    )

    repo = InMemoryWorkflowRecordRepository()
    fresh = RunOrchestrator(provider, repo, make_config())
    result = await fresh.resume("tok-resume")

    assert result.state == OrchestrationState.COMPLETED
    assert len(provider.dispatched) == 1
    assert (await repo.get_record("tok-resume")).run_id == result.run_handle.run_id


def test_missing_scope_is_rejected():
    orchestrator = RunOrchestrator(
        InMemoryProvider(), config=RunbeaconConfig(workflow_ref="build.yml")
    )

    with pytest.raises(ValueError):
        asyncio.run(orchestrator.run())


class BrokenArtifactsProvider(InMemoryProvider):
    async def list_artifacts(self, scope, run_id):
        raise ValueError("unexpected artifact payload")


@pytest.mark.asyncio
async def test_unexpected_artifact_error_is_reported_on_result(tmp_path):
    provider = BrokenArtifactsProvider()
    repo = InMemoryWorkflowRecordRepository()
    orchestrator = RunOrchestrator(
        provider, repo, make_config(artifact_sink=str(tmp_path / "out.zip"))
    )

    result = await orchestrator.run(correlation_token="tok-badart")

    assert result.state == OrchestrationState.COMPLETED
    assert "unexpected artifact payload" in result.artifact_error
    assert (await repo.get_record("tok-badart")).status == RecordStatus.COMPLETED


@pytest.mark.asyncio
async def test_cancel_interrupts_correlation_backoff():
    provider = InMemoryProvider(echo="none")
    repo = InMemoryWorkflowRecordRepository()
    orchestrator = RunOrchestrator(
        provider,
        repo,
        make_config(correlation_attempts=3, correlation_backoff_base=10.0),
    )
    cancel = asyncio.Event()

    loop = asyncio.get_running_loop()
    loop.call_later(0.05, cancel.set)
    started = loop.time()
    with pytest.raises(WaitCancelled):
        await orchestrator.run(correlation_token="tok-cancel", cancel=cancel)

    assert loop.time() - started < 0.5
    assert orchestrator.state_of("tok-cancel") == OrchestrationState.FAILED
    assert (await repo.get_record("tok-cancel")).status == RecordStatus.PENDING


@pytest.mark.asyncio
async def test_finished_states_are_forgotten_beyond_limit():
    orchestrator = RunOrchestrator(InMemoryProvider(), config=make_config())
    orchestrator.max_tracked = 2

    for i in range(3):
        await orchestrator.run(correlation_token=f"tok-{i}")

    assert orchestrator.state_of("tok-0") == OrchestrationState.IDLE
    assert orchestrator.state_of("tok-1") == OrchestrationState.COMPLETED
    assert orchestrator.state_of("tok-2") == OrchestrationState.COMPLETED
