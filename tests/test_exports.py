import pytest
from cloudweave.output import Output
from cloudweave.serialization import SECRET_SIG, SPECIAL_SIG_KEY
from cloudweave.exports import StackExports


def test_export_and_snapshot():
    exports = StackExports()
    exports.export("url", "https://example.com")

    snap = exports.snapshot()
    exports.export("other", 1)

    assert snap == {"url": "https://example.com"}
    assert len(exports) == 2


def test_export_secret_wraps_value():
    exports = StackExports()
    exports.export_secret("password", "hunter2")
    exports.export_secret("token", Output.known("t"))

    assert exports.serialize() == {
        "password": {SPECIAL_SIG_KEY: SECRET_SIG, "value": "hunter2"},
        "token": {SPECIAL_SIG_KEY: SECRET_SIG, "value": "t"},
    }


def test_clear():
    exports = StackExports()
    exports.export("a", 1)
    exports.clear()

    assert len(exports) == 0


@pytest.mark.asyncio
async def test_register_stack_outputs(ctx, monitor, engine):
    ctx.export("bucket", "assets")
    ctx.export_secret("key", "k")

    registered = await ctx.exports.register_stack_outputs(ctx)

    assert registered
    assert monitor.resource_outputs[engine.root_urn] == {
        "bucket": "assets",
        "key": {SPECIAL_SIG_KEY: SECRET_SIG, "value": "k"},
    }


@pytest.mark.asyncio
async def test_register_stack_outputs_skipped_when_empty(ctx, monitor):
    assert not await ctx.exports.register_stack_outputs(ctx)
    assert monitor.resource_outputs == {}
