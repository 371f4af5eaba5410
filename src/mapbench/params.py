"""
Parameter space model.

A benchmark sweeps a set of named axes, each an ordered list of candidate
values, while holding a set of fixed parameters constant. Values are typed
scalars: int, float, bool or an Enum tag.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from math import isfinite, prod
from typing import Any, Union

from mapbench.errors import (
    AxisTypeError,
    DuplicateNameError,
    DuplicateValueError,
    EmptyAxisError,
    InvalidNameError,
    UnknownAxisError,
)

Scalar = Union[int, float, bool, str, Enum]


def scalar_kind(value: Any) -> str:
    """Return the scalar kind of a parameter value.

    bool is checked before int because bool subclasses int. NaN and the
    infinities are not valid values.

    Raises:
        AxisTypeError: If the value is not a supported scalar or not finite
    """
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, Enum):
        return "enum"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        if not isfinite(value):
            raise AxisTypeError(f"parameter value must be finite, got {value!r}")
        return "float"
    if isinstance(value, str):
        return "str"
    raise AxisTypeError(f"unsupported parameter value {value!r} of type {type(value).__name__}")


def _check_name(name: str) -> None:
    if not isinstance(name, str) or not name.isidentifier():
        raise InvalidNameError(f"parameter name must be an identifier, got {name!r}")


@dataclass(frozen=True, slots=True)
class ParameterAxis:
    """One swept dimension of a parameter space.

    Attributes:
        name: Parameter name, a Python identifier
        values: Candidate values in declaration order; the first is the baseline
    """

    name: str
    values: tuple[Scalar, ...]

    def __post_init__(self) -> None:
        _check_name(self.name)
        values = tuple(self.values)
        object.__setattr__(self, "values", values)
        if not values:
            raise EmptyAxisError(f"axis '{self.name}' has no candidate values")

        kinds = {scalar_kind(v) for v in values}
        if len(kinds) > 1:
            raise AxisTypeError(
                f"axis '{self.name}' mixes value kinds: {', '.join(sorted(kinds))}"
            )
        if len(set(values)) != len(values):
            raise DuplicateValueError(f"axis '{self.name}' has duplicate values: {values!r}")

    @property
    def kind(self) -> str:
        return scalar_kind(self.values[0])

    @property
    def default(self) -> Scalar:
        return self.values[0]

    def __len__(self) -> int:
        return len(self.values)


@dataclass(frozen=True, slots=True)
class FixedParameter:
    name: str
    value: Scalar

    def __post_init__(self) -> None:
        _check_name(self.name)
        scalar_kind(self.value)


@dataclass(frozen=True)
class ParameterSpace:
    """Axes plus fixed parameters scoped to one benchmark."""

    axes: tuple[ParameterAxis, ...] = ()
    fixed: tuple[FixedParameter, ...] = ()
    benchmark: str = ""
    _index: dict[str, ParameterAxis] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "axes", tuple(self.axes))
        object.__setattr__(self, "fixed", tuple(self.fixed))

        seen: set[str] = set()
        for name in [a.name for a in self.axes] + [f.name for f in self.fixed]:
            if name in seen:
                raise DuplicateNameError(
                    f"parameter '{name}' is declared more than once"
                    + (f" in benchmark '{self.benchmark}'" if self.benchmark else "")
                )
            seen.add(name)

        object.__setattr__(self, "_index", {a.name: a for a in self.axes})

    @property
    def axis_names(self) -> tuple[str, ...]:
        return tuple(a.name for a in self.axes)

    @property
    def fixed_values(self) -> dict[str, Scalar]:
        return {f.name: f.value for f in self.fixed}

    def axis(self, name: str) -> ParameterAxis:
        try:
            return self._index[name]
        except KeyError:
            raise UnknownAxisError(
                f"axis '{name}' is not part of the parameter space"
                f" (axes: {', '.join(self.axis_names) or 'none'})"
            ) from None

    def has_axis(self, name: str) -> bool:
        return name in self._index

    @property
    def size(self) -> int:
        """Number of runs in the full cross product."""
        return prod(len(a) for a in self.axes)


def define(
    axes: Union[Iterable[ParameterAxis], Mapping[str, Iterable[Scalar]]] = (),
    fixed: Union[Iterable[FixedParameter], Mapping[str, Scalar]] = (),
    benchmark: str = "",
) -> ParameterSpace:
    """Build a validated ParameterSpace.

    Parameters
    ----------
    axes : iterable of ParameterAxis or mapping
        Swept axes, either as objects or as ``{name: [values, ...]}``.
        Mapping order is the declared axis order.
    fixed : iterable of FixedParameter or mapping
        Parameters held constant, either as objects or ``{name: value}``.
    benchmark : str, optional
        Name of the owning benchmark, used in error messages.

    Returns
    -------
    ParameterSpace

    Raises
    ------
    EmptyAxisError
        If any axis has no candidates.
    DuplicateNameError
        If an axis and a fixed parameter (or two of either) share a name.
    """
    if isinstance(axes, Mapping):
        axes = [ParameterAxis(name, tuple(values)) for name, values in axes.items()]
    if isinstance(fixed, Mapping):
        fixed = [FixedParameter(name, value) for name, value in fixed.items()]

    return ParameterSpace(axes=tuple(axes), fixed=tuple(fixed), benchmark=benchmark)
