import pytest
from cloudweave.context import Context
from cloudweave.settings import RuntimeSettings
from cloudweave.transport.client import EngineClient, MonitorClient
from cloudweave.transport.memory import InMemoryMonitor


def test_from_settings_builds_clients():
    settings = RuntimeSettings(
        project="web",
        stack="prod",
        monitor="127.0.0.1:50051",
        engine="127.0.0.1:50052",
        parallel=4,
        dry_run=True,
        config={"web:name": "site"},
        config_secret_keys=["web:name"],
        retry_delays=[0.1],
    )

    ctx = Context.from_settings(settings)

    assert isinstance(ctx.monitor, MonitorClient)
    assert ctx.monitor.connected
    assert isinstance(ctx.engine, EngineClient)
    assert ctx.dry_run
    assert ctx.parallel == 4
    assert ctx.retry_policy.delays == (0.1,)
    assert ctx.get_config().is_secret("name")


def test_from_settings_without_monitor_address_is_disconnected():
    ctx = Context.from_settings(RuntimeSettings(project="web", stack="dev"))

    assert isinstance(ctx.monitor, MonitorClient)
    assert not ctx.monitor.connected
    assert ctx.engine is None


def test_each_context_is_independent():
    first = Context(project="p", stack="s", monitor=InMemoryMonitor())
    second = Context(project="p", stack="s", monitor=InMemoryMonitor())

    first.graph.add_node("a")
    first.export("x", 1)

    assert "a" not in second.graph
    assert len(second.exports) == 0


def test_parallel_must_be_positive():
    with pytest.raises(ValueError):
        Context(project="p", stack="s", monitor=InMemoryMonitor(), parallel=0)


@pytest.mark.asyncio
async def test_close_releases_transports(ctx, monitor):
    await ctx.close()

    assert not monitor.connected


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("PULUMI_PROJECT", "envproj")
    monkeypatch.setenv("PULUMI_DRY_RUN", "true")
    monkeypatch.setenv("PULUMI_CONFIG", '{"envproj:a": "1"}')
    monkeypatch.setenv("PULUMI_CONFIG_SECRET_KEYS", '["envproj:a"]')

    settings = RuntimeSettings()

    assert settings.project == "envproj"
    assert settings.dry_run is True
    assert settings.config == {"envproj:a": "1"}
    assert settings.config_secret_keys == ["envproj:a"]
