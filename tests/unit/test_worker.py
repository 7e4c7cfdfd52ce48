import pytest

from app.features.directory.jobs import sitemap_job
from app.jobs import worker


@pytest.mark.asyncio
async def test_run_worker_runs_job(monkeypatch):
    called = {"ok": False}

    async def dummy_job():
        called["ok"] = True

    monkeypatch.setitem(worker.JOB_REGISTRY, "dummy", dummy_job)

    await worker.run_worker("dummy")

    assert called["ok"] is True


@pytest.mark.asyncio
async def test_run_worker_unknown_job():
    with pytest.raises(ValueError):
        await worker.run_worker("missing")


def test_sitemap_job_is_registered():
    assert worker.JOB_REGISTRY["generate_sitemap"] is sitemap_job.run_sitemap_generation


@pytest.mark.asyncio
async def test_write_sitemap_writes_verified_sites(monkeypatch, tmp_path):
    async def fake_fetch():
        return [{"title": "Alpha", "verified": True, "timestamp": None}]

    monkeypatch.setattr(sitemap_job.listing_repository, "fetch_verified_sites", fake_fetch)

    path = await sitemap_job.write_sitemap(tmp_path / "public" / "sitemap.xml")

    content = path.read_text(encoding="utf-8")
    assert "?site=Alpha" in content
    assert content.startswith('<?xml version="1.0" encoding="UTF-8"?>')
