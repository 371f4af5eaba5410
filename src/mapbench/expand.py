"""
Run expansion: turn a ParameterSpace into concrete, fully resolved runs.

Expansion is lazy. A RunSweep knows its length and can be indexed or iterated
any number of times without materializing the runs, and every iteration yields
the same runs in the same order.
"""

from __future__ import annotations

import itertools
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from mapbench.errors import (
    DuplicateRunError,
    UnboundAxisError,
    UnknownValueError,
)
from mapbench.params import ParameterSpace, Scalar, scalar_kind

Assignment = tuple[tuple[str, Scalar], ...]


@dataclass(frozen=True)
class Full:
    """Cartesian product over all axes, last axis varying fastest."""


@dataclass(frozen=True)
class SingleAxis:
    """Sweep one axis, pin every other axis to its first-declared value."""

    axis: str


@dataclass(frozen=True)
class Curated:
    """Explicit, hand-picked assignments instead of the cross product."""

    assignments: tuple[Mapping[str, Scalar], ...] = field(default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "assignments", tuple(self.assignments))


ExpansionPolicy = Union[Full, SingleAxis, Curated]


@dataclass(frozen=True)
class RunInputs:
    """Resolved file-system inputs shared by every run of a benchmark.

    Attributes:
        reference: Folder-safe label of the reference dataset
        queries: Folder-safe label of the query dataset
        reference_path: Path to the reference sequences
        queries_path: Path to the query reads
        binaries: (mapper name, executable path) pairs
        index_folder: Directory where mapper indices are cached
    """

    reference: str
    queries: str
    reference_path: Path
    queries_path: Path
    binaries: tuple[tuple[str, Path], ...] = ()
    index_folder: Optional[Path] = None

    def binary_for(self, mapper: Optional[str]) -> Optional[Path]:
        for name, path in self.binaries:
            if name == mapper:
                return path
        return None

    @property
    def input_tag(self) -> str:
        return f"{self.queries}_in_{self.reference}"


@dataclass(frozen=True)
class ResolvedRun:
    """One concrete assignment of every axis, merged with the fixed parameters."""

    benchmark: str
    assignments: Assignment
    fixed: Assignment = ()
    tag: Optional[str] = None
    inputs: Optional[RunInputs] = None

    @property
    def identity(self) -> tuple[str, Assignment, Optional[str]]:
        return (self.benchmark, self.assignments, self.tag)

    @property
    def parameters(self) -> dict[str, Scalar]:
        params = dict(self.fixed)
        params.update(self.assignments)
        return params

    def get(self, name: str, default: Optional[Scalar] = None) -> Optional[Scalar]:
        return self.parameters.get(name, default)

    @property
    def mapper(self) -> Optional[str]:
        mapper = self.get("mapper")
        return None if mapper is None else str(getattr(mapper, "value", mapper))

    @property
    def binary(self) -> Optional[Path]:
        if self.inputs is None:
            return None
        return self.inputs.binary_for(self.mapper)

    def describe(self) -> str:
        if not self.assignments:
            return f"{self.benchmark} (default parameters)"
        values = ", ".join(f"{k}={getattr(v, 'value', v)}" for k, v in self.assignments)
        return f"{self.benchmark} ({values})"


class RunSweep(Sequence):
    """Lazy, finite, restartable sequence of ResolvedRun."""

    def __init__(
        self,
        space: ParameterSpace,
        policy: ExpansionPolicy,
        inputs: Optional[RunInputs] = None,
        tag: Optional[str] = None,
    ) -> None:
        self.space = space
        self.policy = policy
        self.inputs = inputs
        self.tag = tag
        self._fixed: Assignment = tuple((f.name, f.value) for f in space.fixed)
        self._names = space.axis_names

        if isinstance(policy, Full):
            self._curated: Optional[tuple[tuple[Scalar, ...], ...]] = None
        elif isinstance(policy, SingleAxis):
            space.axis(policy.axis)
            self._curated = None
        elif isinstance(policy, Curated):
            self._curated = _validate_curated(space, policy)
        else:
            raise TypeError(f"unknown expansion policy: {policy!r}")

    def _rows(self) -> Iterator[tuple[Scalar, ...]]:
        if self._curated is not None:
            return iter(self._curated)
        if isinstance(self.policy, SingleAxis):
            swept = self.space.axis(self.policy.axis)
            position = self._names.index(swept.name)
            baseline = [a.default for a in self.space.axes]
            return (
                tuple(baseline[:position]) + (value,) + tuple(baseline[position + 1:])
                for value in swept.values
            )
        return itertools.product(*(a.values for a in self.space.axes))

    def _row_at(self, index: int) -> tuple[Scalar, ...]:
        if self._curated is not None:
            return self._curated[index]
        if isinstance(self.policy, SingleAxis):
            swept = self.space.axis(self.policy.axis)
            value = swept.values[index]
            return tuple(value if a.name == swept.name else a.default for a in self.space.axes)

        # Mixed-radix decode, last axis fastest
        row: list[Scalar] = []
        for axis in reversed(self.space.axes):
            index, offset = divmod(index, len(axis))
            row.append(axis.values[offset])
        return tuple(reversed(row))

    def _resolve(self, row: tuple[Scalar, ...]) -> ResolvedRun:
        return ResolvedRun(
            benchmark=self.space.benchmark,
            assignments=tuple(zip(self._names, row)),
            fixed=self._fixed,
            tag=self.tag,
            inputs=self.inputs,
        )

    def __iter__(self) -> Iterator[ResolvedRun]:
        for row in self._rows():
            yield self._resolve(row)

    def __len__(self) -> int:
        if self._curated is not None:
            return len(self._curated)
        if isinstance(self.policy, SingleAxis):
            return len(self.space.axis(self.policy.axis))
        return self.space.size

    def __getitem__(self, index):
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self)))]
        length = len(self)
        if index < 0:
            index += length
        if not 0 <= index < length:
            raise IndexError("run index out of range")
        return self._resolve(self._row_at(index))

    def __repr__(self) -> str:
        return f"RunSweep(benchmark={self.space.benchmark!r}, policy={self.policy!r}, runs={len(self)})"


def _validate_curated(space: ParameterSpace, policy: Curated) -> tuple[tuple[Scalar, ...], ...]:
    rows: list[tuple[Scalar, ...]] = []
    seen: set[tuple[Scalar, ...]] = set()
    for entry in policy.assignments:
        for name in entry:
            space.axis(name)
        missing = [name for name in space.axis_names if name not in entry]
        if missing:
            raise UnboundAxisError(
                f"curated run {dict(entry)!r} leaves axes unbound: {', '.join(missing)}"
            )

        row = []
        for axis in space.axes:
            value = entry[axis.name]
            if scalar_kind(value) != axis.kind or value not in axis.values:
                raise UnknownValueError(
                    f"value {value!r} is not a candidate of axis '{axis.name}'"
                )
            row.append(value)
        row_t = tuple(row)
        if row_t in seen:
            raise DuplicateRunError(f"curated run {dict(entry)!r} is listed more than once")
        seen.add(row_t)
        rows.append(row_t)
    return tuple(rows)


def expand(
    space: ParameterSpace,
    policy: Optional[ExpansionPolicy] = None,
    inputs: Optional[RunInputs] = None,
    tag: Optional[str] = None,
) -> RunSweep:
    """Expand a parameter space into its sweep of resolved runs.

    Args:
        space: Parameter space to expand
        policy: Expansion policy, defaults to the full cross product
        inputs: Dataset paths and mapper binaries attached to every run
        tag: Optional tag carried into every run identity

    Raises:
        UnknownAxisError: If the policy names an axis outside the space
    """
    return RunSweep(space, policy if policy is not None else Full(), inputs=inputs, tag=tag)
