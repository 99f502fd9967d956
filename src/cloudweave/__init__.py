"""cloudweave: client runtime for declaring cloud infrastructure from Python programs."""

__version__ = "0.1.0"

from cloudweave.config import Config
from cloudweave.context import Context
from cloudweave.core.errors import (
    CloudweaveError,
    ConfigMissingError,
    DependencyError,
    InvokeError,
    ResourceError,
    RunError,
)
from cloudweave.dependency import DependencyGraph
from cloudweave.output import UNKNOWN, Output, all_, apply, combine, secret
from cloudweave.registration import ResourceDefinition
from cloudweave.resource import (
    ComponentResource,
    CustomResource,
    CustomTimeouts,
    ProviderResource,
    Resource,
    ResourceOptions,
    ResourceState,
)
from cloudweave.transport.errors import StatusCode, TransportError
from cloudweave.urn import URN

__all__ = [
    "__version__",
    "Config",
    "Context",
    "CloudweaveError",
    "ConfigMissingError",
    "DependencyError",
    "InvokeError",
    "ResourceError",
    "RunError",
    "TransportError",
    "StatusCode",
    "DependencyGraph",
    "Output",
    "UNKNOWN",
    "all_",
    "apply",
    "combine",
    "secret",
    "ResourceDefinition",
    "Resource",
    "CustomResource",
    "ComponentResource",
    "ProviderResource",
    "ResourceOptions",
    "ResourceState",
    "CustomTimeouts",
    "URN",
]
