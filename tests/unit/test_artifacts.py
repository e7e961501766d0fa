import pytest

from runbeacon.artifacts import ArtifactFetcher
from runbeacon.contracts import Artifact, RunHandle, Scope
from runbeacon.exceptions import ArtifactDownloadError
from runbeacon.providers import InMemoryProvider

SCOPE = Scope(owner="octo", repo="demo")


def completed_run(provider: InMemoryProvider) -> RunHandle:
    run = provider.add_run(SCOPE, status="completed", conclusion="success")
    return RunHandle(run_id=run.id, correlation_token="tok")


@pytest.mark.asyncio
async def test_fetch_writes_raw_bytes(tmp_path):
    provider = InMemoryProvider()
    handle = completed_run(provider)
    provider.add_artifact(handle.run_id, "dist", b"PK\x03\x04payload")

    sink = tmp_path / "nested" / "dist.zip"
    path = await ArtifactFetcher(provider).fetch(SCOPE, handle, sink)

    assert path == sink
    assert sink.read_bytes() == b"PK\x03\x04payload"


@pytest.mark.asyncio
async def test_fetch_filters_by_name(tmp_path):
    provider = InMemoryProvider()
    handle = completed_run(provider)
    provider.add_artifact(handle.run_id, "logs", b"logs")
    provider.add_artifact(handle.run_id, "dist", b"dist")

    sink = tmp_path / "out.zip"
    await ArtifactFetcher(provider).fetch(SCOPE, handle, sink, name="dist")

    assert sink.read_bytes() == b"dist"


@pytest.mark.asyncio
async def test_fetch_skips_expired_artifacts(tmp_path):
    provider = InMemoryProvider()
    handle = completed_run(provider)

    async def list_artifacts(scope, run_id):
        return [Artifact(id=1, name="dist", expired=True)]

    provider.list_artifacts = list_artifacts
    with pytest.raises(ArtifactDownloadError):
        await ArtifactFetcher(provider).fetch(SCOPE, handle, tmp_path / "out.zip")


@pytest.mark.asyncio
async def test_fetch_without_artifacts_fails(tmp_path):
    provider = InMemoryProvider()
    handle = completed_run(provider)

    with pytest.raises(ArtifactDownloadError) as info:
        await ArtifactFetcher(provider).fetch(SCOPE, handle, tmp_path / "out.zip")
    assert info.value.correlation_token == "tok"
    assert not (tmp_path / "out.zip").exists()


@pytest.mark.asyncio
async def test_fetch_for_unknown_run_fails(tmp_path):
    provider = InMemoryProvider()
    handle = RunHandle(run_id=999, correlation_token="tok")

    with pytest.raises(ArtifactDownloadError):
        await ArtifactFetcher(provider).fetch(SCOPE, handle, tmp_path / "out.zip")


class BrokenListingProvider(InMemoryProvider):
    async def list_artifacts(self, scope, run_id):
        raise ValueError("unexpected artifact payload")


@pytest.mark.asyncio
async def test_unexpected_listing_error_becomes_download_error(tmp_path):
    provider = BrokenListingProvider()
    handle = completed_run(provider)

    with pytest.raises(ArtifactDownloadError) as info:
        await ArtifactFetcher(provider).fetch(SCOPE, handle, tmp_path / "out.zip")
    assert info.value.correlation_token == "tok"
    assert isinstance(info.value.__cause__, ValueError)
