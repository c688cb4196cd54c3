import asyncio

import pytest

from entity_service import main
from entity_service.core.provider import EngineConfig, EngineProvider, registry
from entity_service.core.worker_pool import BoundedWorkerPool


class FailingCloseProvider(EngineProvider):
    def close(self, wait_for_drain=True):
        super().close(wait_for_drain)
        raise RuntimeError("engine teardown failed")


def refresh_tasks():
    return [task for task in asyncio.all_tasks() if task.get_name() == "config-refresh"]


@pytest.mark.asyncio
async def test_lifespan_installs_refreshes_and_tears_down(monkeypatch, engine):
    loads = []

    def loader():
        loads.append(1)
        return EngineConfig(data_sources=frozenset({"CUSTOMERS"}))

    provider = EngineProvider(
        engine, BoundedWorkerPool(1, "lifespan-worker"), config_loader=loader
    )
    monkeypatch.setattr(main, "build_provider", lambda config: provider)
    monkeypatch.setattr(main.settings, "CONFIG_REFRESH_SECONDS", 0.01)

    async with main.lifespan(main.app):
        assert registry.current() is provider
        await asyncio.sleep(0.1)

    assert loads
    assert not registry.is_installed
    assert refresh_tasks() == []
    assert provider.pool.alive_count == 0
    assert engine.destroyed


@pytest.mark.asyncio
async def test_lifespan_uninstalls_even_when_close_fails(monkeypatch, engine):
    provider = FailingCloseProvider(engine, BoundedWorkerPool(1, "lifespan-worker"))
    monkeypatch.setattr(main, "build_provider", lambda config: provider)
    monkeypatch.setattr(main.settings, "CONFIG_REFRESH_SECONDS", 60)

    with pytest.raises(RuntimeError):
        async with main.lifespan(main.app):
            assert registry.is_installed

    assert not registry.is_installed
    assert refresh_tasks() == []


@pytest.mark.asyncio
async def test_lifespan_without_engine_factory(monkeypatch):
    monkeypatch.setattr(main, "build_provider", lambda config: None)

    async with main.lifespan(main.app):
        assert not registry.is_installed

    assert not registry.is_installed
