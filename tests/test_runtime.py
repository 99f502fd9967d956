"""Tests for the language runtime service and its HTTP surface."""

import asyncio
import json
import os
import sys

import pytest
import structlog
from cloudweave import __version__
from cloudweave.context import Context
from cloudweave.runtime.api import create_app
from cloudweave.runtime.messages import InstallDependenciesRequest, RunRequest
from cloudweave.runtime.service import LanguageRuntime
from httpx import ASGITransport, AsyncClient

PREFIX = "/pulumirpc.LanguageRuntime"

BUCKET_PROGRAM = """
async def main(ctx):
    bucket = await ctx.register_resource("aws:s3/bucket:Bucket", "assets", {"acl": "private"})
    ctx.export("bucket", bucket.id_output)
"""

CONFIG_PROGRAM = """
def main(ctx):
    ctx.export("name", ctx.get_config().require("name"))
"""

FAILING_PROGRAM = """
def main(ctx):
    ctx.get_config().require("missing")
"""


@pytest.fixture
def runtime(monitor, engine) -> LanguageRuntime:
    def factory(request: RunRequest, engine_address: str) -> Context:
        return Context(
            project=request.project,
            stack=request.stack,
            monitor=monitor,
            engine=engine,
            dry_run=request.dry_run,
            config=request.config,
            config_secret_keys=request.config_secret_keys,
        )

    return LanguageRuntime(context_factory=factory)


@pytest.fixture
def client(runtime):
    app = create_app(runtime)
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://runtime")


async def _handshake(client, directory):
    response = await client.post(
        f"{PREFIX}/Handshake",
        json={
            "engineAddress": "127.0.0.1:50052",
            "rootDirectory": str(directory),
            "programDirectory": str(directory),
        },
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_run_registers_resources_and_stack_outputs(client, tmp_path, monitor, engine):
    (tmp_path / "main.py").write_text(BUCKET_PROGRAM)
    await _handshake(client, tmp_path)

    response = await client.post(
        f"{PREFIX}/Run",
        json={"project": "demo", "stack": "dev", "pwd": str(tmp_path), "program": "main.py"},
    )

    assert response.status_code == 200
    assert response.json() == {"error": "", "bail": False}
    assert monitor.requests[0].name == "assets"
    assert monitor.resource_outputs[engine.root_urn] == {"bucket": "assets-id"}


@pytest.mark.asyncio
async def test_run_before_handshake_is_protocol_fault(client):
    response = await client.post(f"{PREFIX}/Run", json={"project": "demo", "stack": "dev"})

    assert response.status_code == 412
    assert response.json()["code"] == "failed_precondition"


@pytest.mark.asyncio
async def test_handshake_requires_engine_address(client):
    response = await client.post(f"{PREFIX}/Handshake", json={"rootDirectory": "/tmp"})

    assert response.status_code == 400
    assert response.json()["code"] == "invalid_argument"


@pytest.mark.asyncio
async def test_program_error_returned_as_string(client, tmp_path, engine):
    (tmp_path / "__main__.py").write_text(FAILING_PROGRAM)
    await _handshake(client, tmp_path)

    response = await client.post(f"{PREFIX}/Run", json={"project": "demo", "stack": "dev"})

    body = response.json()
    assert response.status_code == 200
    assert "demo:missing" in body["error"]
    assert body["bail"] is True
    assert engine.logs[-1].severity == 4


@pytest.mark.asyncio
async def test_program_error_logged_with_details(client, tmp_path):
    (tmp_path / "__main__.py").write_text(FAILING_PROGRAM)
    await _handshake(client, tmp_path)

    with structlog.testing.capture_logs() as logs:
        await client.post(f"{PREFIX}/Run", json={"project": "demo", "stack": "dev"})

    failed = [entry for entry in logs if entry["event"] == "program_run_failed"]
    assert failed[0]["error_type"] == "ConfigMissingError"
    assert "(key=missing" in failed[0]["error"]


@pytest.mark.asyncio
async def test_missing_program_reported(client, tmp_path):
    await _handshake(client, tmp_path)

    response = await client.post(
        f"{PREFIX}/Run", json={"project": "demo", "stack": "dev", "program": "nope.py"}
    )

    assert "Program not found" in response.json()["error"]


@pytest.mark.asyncio
async def test_entry_point_from_project_file(client, tmp_path, monitor, engine):
    (tmp_path / "Pulumi.yaml").write_text("name: demo\nruntime: python\nmain: app/\n")
    (tmp_path / "app").mkdir()
    (tmp_path / "app" / "__main__.py").write_text(CONFIG_PROGRAM)
    await _handshake(client, tmp_path)

    response = await client.post(
        f"{PREFIX}/Run",
        json={"project": "demo", "stack": "dev", "config": {"demo:name": "site"}},
    )

    assert response.json()["error"] == ""
    assert monitor.resource_outputs[engine.root_urn] == {"name": "site"}


@pytest.mark.asyncio
async def test_plugin_info_and_about(client):
    info = await client.post(f"{PREFIX}/GetPluginInfo")
    about = await client.post(f"{PREFIX}/About")

    assert info.json() == {"version": __version__}
    assert about.json()["executable"] == sys.executable
    assert about.json()["metadata"]["sdk_version"] == __version__


@pytest.mark.asyncio
async def test_required_plugins_empty(client):
    response = await client.post(f"{PREFIX}/GetRequiredPlugins")

    assert response.json() == {"plugins": []}


@pytest.mark.asyncio
async def test_program_dependencies(client, tmp_path):
    (tmp_path / "requirements.txt").write_text("# deps\npytest>=7\nnot-a-real-package-xyz==1.0\n")
    await _handshake(client, tmp_path)

    response = await client.post(f"{PREFIX}/GetProgramDependencies")

    deps = {d["name"]: d["version"] for d in response.json()["dependencies"]}
    assert deps["cloudweave"] == __version__
    assert deps["pytest"]
    assert deps["not-a-real-package-xyz"] == ""


@pytest.mark.asyncio
async def test_install_dependencies_streams_output(monitor, engine, tmp_path):
    (tmp_path / "requirements.txt").write_text("requests\n")
    runtime = LanguageRuntime(
        pip_command=(
            sys.executable,
            "-c",
            "import sys; print('installing', sys.argv[1]); print('warning', file=sys.stderr)",
        )
    )
    app = create_app(runtime)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://runtime") as client:
        response = await client.post(
            f"{PREFIX}/InstallDependencies", json={"directory": str(tmp_path)}
        )

    chunks = [json.loads(line) for line in response.text.splitlines() if line]
    stdout = "".join(c.get("stdout", "") for c in chunks)
    stderr = "".join(c.get("stderr", "") for c in chunks)
    assert "installing" in stdout
    assert "requirements.txt" in stdout
    assert "warning" in stderr
    assert "exited with status" not in stderr


@pytest.mark.asyncio
async def test_install_dependencies_without_requirements(tmp_path):
    runtime = LanguageRuntime()

    chunks = [
        chunk
        async for chunk in runtime.install_dependencies(
            InstallDependenciesRequest(directory=str(tmp_path))
        )
    ]

    assert len(chunks) == 1
    assert "nothing to install" in chunks[0].stdout


@pytest.mark.asyncio
async def test_abandoned_install_stream_kills_installer(tmp_path):
    (tmp_path / "requirements.txt").write_text("requests\n")
    runtime = LanguageRuntime(
        pip_command=(
            sys.executable,
            "-c",
            "import os, time; print(os.getpid(), flush=True); time.sleep(60)",
        )
    )

    stream = runtime.install_dependencies(InstallDependenciesRequest(directory=str(tmp_path)))
    first = await anext(stream)
    await asyncio.wait_for(stream.aclose(), timeout=10)

    with pytest.raises(ProcessLookupError):
        os.kill(int(first.stdout), 0)
