"""Messages of the LanguageRuntime service, in the protocol's JSON mapping."""

from __future__ import annotations

from pydantic import Field

from cloudweave.transport.messages import Message


class LanguageHandshakeRequest(Message):
    engine_address: str = ""
    root_directory: str = ""
    program_directory: str = ""


class LanguageHandshakeResponse(Message):
    pass


class ProgramInfo(Message):
    root_directory: str = ""
    program_directory: str = ""
    entry_point: str = ""
    options: dict[str, str] = Field(default_factory=dict)


class RunRequest(Message):
    project: str = ""
    stack: str = ""
    pwd: str = ""
    program: str = ""
    args: list[str] = Field(default_factory=list)
    config: dict[str, str] = Field(default_factory=dict)
    dry_run: bool = False
    parallel: int = 0
    monitor_address: str = ""
    config_secret_keys: list[str] = Field(default_factory=list)
    organization: str = ""
    info: ProgramInfo | None = None


class RunResponse(Message):
    error: str = ""
    # True when the error has already been reported to the user
    bail: bool = False


class PluginInfo(Message):
    version: str


class AboutResponse(Message):
    executable: str
    version: str
    metadata: dict[str, str] = Field(default_factory=dict)


class PluginDependency(Message):
    name: str
    kind: str = "resource"
    version: str = ""
    server: str = ""


class GetRequiredPluginsResponse(Message):
    plugins: list[PluginDependency] = Field(default_factory=list)


class DependencyInfo(Message):
    name: str
    version: str


class GetProgramDependenciesResponse(Message):
    dependencies: list[DependencyInfo] = Field(default_factory=list)


class InstallDependenciesRequest(Message):
    directory: str = ""
    is_terminal: bool = False
    info: ProgramInfo | None = None


class InstallDependenciesResponse(Message):
    stdout: str = ""
    stderr: str = ""
