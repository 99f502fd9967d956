"""
Language runtime service.

The engine launches the runtime, hands it its own address with Handshake and
then asks it to Run the program. A run resolves the program's entry point,
imports it and calls its ``main(ctx)`` with a fresh Context wired to the
engine. Program failures are reported back as strings in the RunResponse;
only calling Run before Handshake is a protocol fault.
"""

from __future__ import annotations

import asyncio
import importlib.util
import inspect
import platform
import re
import sys
import traceback
from contextlib import contextmanager
from importlib import metadata
from pathlib import Path
from typing import AsyncIterator, Callable, Iterator, Sequence
from uuid import uuid4

import structlog
import yaml

from cloudweave import __version__
from cloudweave.context import Context
from cloudweave.core.errors import CloudweaveError, RunError, format_error_message
from cloudweave.logging import bind_context, bind_run_context, clear_run_context
from cloudweave.runtime.messages import (
    AboutResponse,
    DependencyInfo,
    GetProgramDependenciesResponse,
    GetRequiredPluginsResponse,
    InstallDependenciesRequest,
    InstallDependenciesResponse,
    LanguageHandshakeRequest,
    LanguageHandshakeResponse,
    PluginInfo,
    RunRequest,
    RunResponse,
)
from cloudweave.settings import RuntimeSettings
from cloudweave.transport.errors import StatusCode, TransportError

logger = structlog.get_logger()

PROJECT_FILES = ("Pulumi.yaml", "Pulumi.yml")
DEFAULT_ENTRY_POINT = "__main__.py"
REQUIREMENTS_FILE = "requirements.txt"
PIP_INSTALL = (sys.executable, "-m", "pip", "install", "-r")

ContextFactory = Callable[[RunRequest, str], Context]


def default_context_factory(request: RunRequest, engine_address: str) -> Context:
    """Build a Context connected to the monitor and engine named by the run."""
    settings = RuntimeSettings(
        project=request.project,
        stack=request.stack,
        organization=request.organization,
        dry_run=request.dry_run,
        parallel=request.parallel or 16,
        monitor=request.monitor_address,
        engine=engine_address,
        config=request.config,
        config_secret_keys=request.config_secret_keys,
    )
    return Context.from_settings(settings)


def _project_main(directory: Path) -> str | None:
    for name in PROJECT_FILES:
        project_file = directory / name
        if not project_file.is_file():
            continue
        with project_file.open(encoding="utf-8") as fh:
            project = yaml.safe_load(fh) or {}
        main = project.get("main") if isinstance(project, dict) else None
        return str(main) if main else None
    return None


def load_program(path: Path) -> Callable[[Context], object]:
    """Import the program at ``path`` and return its ``main`` function."""
    module_name = f"_cloudweave_program_{uuid4().hex}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise RunError(f"Cannot load program from {path}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise RunError(f"Failed to load program {path}: {exc}") from exc

    main = getattr(module, "main", None)
    if not callable(main):
        raise RunError(f"Program {path} does not define a main(ctx) function")
    return main


@contextmanager
def _program_path(directory: Path) -> Iterator[None]:
    entry = str(directory)
    sys.path.insert(0, entry)
    try:
        yield
    finally:
        try:
            sys.path.remove(entry)
        except ValueError:
            pass


def _describe(exc: BaseException) -> str:
    if isinstance(exc, CloudweaveError):
        return str(exc)
    return "".join(traceback.format_exception(exc)).rstrip()


def _requirement_name(line: str) -> str | None:
    line = line.split("#", 1)[0].strip()
    if not line or line.startswith("-"):
        return None
    name = re.split(r"[\s<>=!~;\[@]", line, maxsplit=1)[0]
    return name or None


class LanguageRuntime:
    """Implements the LanguageRuntime service for Python programs."""

    def __init__(
        self,
        *,
        context_factory: ContextFactory = default_context_factory,
        pip_command: Sequence[str] = PIP_INSTALL,
    ) -> None:
        self.engine_address = ""
        self.root_directory = ""
        self.program_directory = ""
        self.initialized = False
        self._context_factory = context_factory
        self._pip_command = tuple(pip_command)

    async def handshake(self, request: LanguageHandshakeRequest) -> LanguageHandshakeResponse:
        """Store the engine address and directories for later calls."""
        if not request.engine_address:
            raise TransportError(StatusCode.INVALID_ARGUMENT, "engine_address is required")
        self.engine_address = request.engine_address
        self.root_directory = request.root_directory
        self.program_directory = request.program_directory
        self.initialized = True
        logger.info(
            "runtime_handshake",
            engine=request.engine_address,
            program_directory=request.program_directory,
        )
        return LanguageHandshakeResponse()

    async def get_plugin_info(self) -> PluginInfo:
        return PluginInfo(version=__version__)

    async def about(self) -> AboutResponse:
        return AboutResponse(
            executable=sys.executable,
            version=platform.python_version(),
            metadata={
                "sdk_version": __version__,
                "implementation": platform.python_implementation(),
                "os": platform.system(),
                "arch": platform.machine(),
            },
        )

    async def get_required_plugins(self) -> GetRequiredPluginsResponse:
        # Providers are discovered while the program runs
        return GetRequiredPluginsResponse()

    def resolve_entry_point(self, request: RunRequest) -> Path:
        """
        Find the program file to run.

        The entry point comes from the request, else the ``main`` key of the
        project file, else ``__main__.py``. Directories resolve to their
        ``__main__.py``.
        """
        info = request.info
        base = Path(
            request.pwd
            or (info.program_directory if info is not None else "")
            or self.program_directory
            or "."
        )
        entry = (info.entry_point if info is not None else "") or request.program
        if not entry:
            entry = _project_main(base)
            if entry is None and self.root_directory:
                entry = _project_main(Path(self.root_directory))
        path = Path(entry or DEFAULT_ENTRY_POINT)
        if not path.is_absolute():
            path = base / path
        if path.is_dir():
            path = path / DEFAULT_ENTRY_POINT
        if not path.is_file():
            raise RunError(f"Program not found: {path}")
        return path

    async def run(self, request: RunRequest) -> RunResponse:
        """Execute the program; failures are returned in the response."""
        if not self.initialized:
            raise TransportError(
                StatusCode.FAILED_PRECONDITION,
                "Runtime not initialized - Handshake must be called first",
            )

        log = bind_context(project=request.project, stack=request.stack)
        try:
            path = self.resolve_entry_point(request)
        except (RunError, OSError, yaml.YAMLError) as exc:
            log.error("program_not_resolved", error=str(exc))
            return RunResponse(error=str(exc))

        try:
            ctx = self._context_factory(request, self.engine_address)
        except Exception as exc:
            log.error("context_setup_failed", error=str(exc))
            return RunResponse(error=_describe(exc))

        bind_run_context(request.project, request.stack, request.dry_run)
        log.info("program_run_started", program=str(path), dry_run=request.dry_run)
        try:
            with _program_path(path.parent):
                main = load_program(path)
                result = main(ctx)
                if inspect.isawaitable(result):
                    await result
            await ctx.exports.register_stack_outputs(ctx)
        except Exception as exc:
            message = _describe(exc)
            log.error(
                "program_run_failed",
                error=format_error_message(exc) if isinstance(exc, CloudweaveError) else str(exc),
                error_type=type(exc).__name__,
            )
            await ctx.log.error(message)
            return RunResponse(error=message, bail=ctx.engine is not None)
        finally:
            await ctx.close()
            clear_run_context()

        log.info("program_run_finished", resources=len(ctx.graph))
        return RunResponse()

    async def get_program_dependencies(
        self, directory: str | None = None
    ) -> GetProgramDependenciesResponse:
        """The SDK itself plus every requirement listed next to the program."""
        dependencies = [DependencyInfo(name="cloudweave", version=__version__)]
        requirements = Path(directory or self.program_directory or ".") / REQUIREMENTS_FILE
        if requirements.is_file():
            for line in requirements.read_text(encoding="utf-8").splitlines():
                name = _requirement_name(line)
                if name is None or name == "cloudweave":
                    continue
                try:
                    version = metadata.version(name)
                except metadata.PackageNotFoundError:
                    version = ""
                dependencies.append(DependencyInfo(name=name, version=version))
        return GetProgramDependenciesResponse(dependencies=dependencies)

    async def install_dependencies(
        self, request: InstallDependenciesRequest
    ) -> AsyncIterator[InstallDependenciesResponse]:
        """Install ``requirements.txt``, streaming pip's stdout and stderr."""
        directory = Path(request.directory or self.program_directory or ".")
        requirements = directory / REQUIREMENTS_FILE
        if not requirements.is_file():
            yield InstallDependenciesResponse(
                stdout=f"No {REQUIREMENTS_FILE} in {directory}, nothing to install.\n"
            )
            return

        logger.info("dependencies_installing", requirements=str(requirements))
        try:
            proc = await asyncio.create_subprocess_exec(
                *self._pip_command,
                str(requirements),
                cwd=str(directory),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.error("dependencies_install_failed", error=str(exc))
            yield InstallDependenciesResponse(stderr=f"Failed to start installer: {exc}\n")
            return

        queue: asyncio.Queue[tuple[str, bytes] | None] = asyncio.Queue()

        async def pump(name: str, stream: asyncio.StreamReader | None) -> None:
            if stream is not None:
                async for line in stream:
                    await queue.put((name, line))
            await queue.put(None)

        pumps = [
            asyncio.create_task(pump("stdout", proc.stdout)),
            asyncio.create_task(pump("stderr", proc.stderr)),
        ]
        finished = 0
        try:
            while finished < len(pumps):
                item = await queue.get()
                if item is None:
                    finished += 1
                    continue
                name, chunk = item
                text = chunk.decode("utf-8", errors="replace")
                if name == "stdout":
                    yield InstallDependenciesResponse(stdout=text)
                else:
                    yield InstallDependenciesResponse(stderr=text)
        finally:
            for task in pumps:
                task.cancel()
            if proc.returncode is None and finished < len(pumps):
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

        returncode = await proc.wait()
        if returncode != 0:
            logger.error("dependencies_install_failed", returncode=returncode)
            yield InstallDependenciesResponse(stderr=f"Installer exited with status {returncode}\n")
        else:
            logger.info("dependencies_installed")
