"""
Exception hierarchy for mapbench.

Configuration and definition problems are raised. Failures of individual runs
and analysis invocations are recorded as data instead, so a long sweep always
ends with a usable partial result.
"""

from pathlib import Path


class MapbenchError(Exception):
    """Base class for all mapbench errors."""


class ConfigError(MapbenchError):
    """Suite configuration is missing, malformed or points at absent inputs."""


class DefinitionError(MapbenchError):
    """A benchmark's parameter space or expansion policy is invalid."""


class DuplicateNameError(DefinitionError):
    pass


class EmptyAxisError(DefinitionError):
    pass


class DuplicateValueError(DefinitionError):
    pass


class AxisTypeError(DefinitionError):
    pass


class InvalidNameError(DefinitionError):
    pass


class UnknownAxisError(DefinitionError):
    pass


class UnboundAxisError(DefinitionError):
    pass


class UnknownValueError(DefinitionError):
    pass


class DuplicateRunError(DefinitionError):
    pass


class UnknownBenchmarkError(MapbenchError):
    pass


class MissingArtifactsError(MapbenchError):
    """Analysis-only mode found no completed run at the expected location."""

    def __init__(self, path: Path, reason: str = "no completed run found") -> None:
        self.path = Path(path)
        super().__init__(f"{reason}: {self.path}")
