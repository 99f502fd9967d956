"""Language runtime server role: the engine calls in to run programs."""

from cloudweave.runtime.api import create_app
from cloudweave.runtime.service import LanguageRuntime, default_context_factory, load_program

__all__ = ["LanguageRuntime", "create_app", "default_context_factory", "load_program"]
