"""Tools driving the local Pulumi CLI: automation commands and registry schemas."""

from .cli import CliTools
from .registry import RegistryTools, SchemaCache
from .utils import get_default_org, run_pulumi

__all__ = ["CliTools", "RegistryTools", "SchemaCache", "get_default_org", "run_pulumi"]
