"""
Parameter and column binding.

`ParameterBinder` validates bind targets against a statement's parsed
placeholder list and keeps the bound parameter set. Values bound by
reference are held as `Slot` objects (or zero-argument callables) and read
again at execute time; values bound by value are captured immediately.
"""
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from dbadapter.exceptions import InvalidBindTarget
from dbadapter.sql import TokenSequence

__all__ = [
    'Slot',
    'BoundParameter',
    'ParameterBinder',
    'ColumnBinder',
    'native_parameters',
]


class Slot:
    """Caller-owned holder for a value read or written by a statement.

    Used with `Statement.bind_param` (read at execute time) and
    `Statement.bind_column` (written on each BOUND fetch).
    """

    __slots__ = ('value',)

    def __init__(self, value: Any = None) -> None:
        self.value = value

    def __repr__(self) -> str:
        return f'Slot({self.value!r})'


@dataclass(slots=True)
class BoundParameter:
    value: Any
    by_reference: bool = False
    type: Any = None
    length: int | None = None

    def resolve(self) -> Any:
        if not self.by_reference:
            return self.value
        if isinstance(self.value, Slot):
            return self.value.value
        return self.value()


class ParameterBinder:
    """Bound parameter set for one statement.
    """

    def __init__(self, tokens: TokenSequence, positional_allowed: bool = True,
                 named_allowed: bool = True) -> None:
        self.tokens = tokens
        self.positional_allowed = positional_allowed
        self.named_allowed = named_allowed
        self._bound: dict[int | str, BoundParameter] = {}

    def __len__(self) -> int:
        return len(self._bound)

    def __contains__(self, target: object) -> bool:
        return target in self._bound

    @property
    def bound(self) -> dict[int | str, BoundParameter]:
        return dict(self._bound)

    def normalize(self, target: int | str) -> int | str:
        """Map a caller-supplied target to its canonical form.

        Integers (and digit strings) are 1-based positions; other strings
        are names, prefixed with ``:`` if missing. Raises InvalidBindTarget
        when the target does not appear in the statement.
        """
        if isinstance(target, bool) or not isinstance(target, int | str):
            raise InvalidBindTarget(f'Invalid bind-variable position {target!r}')

        position: int | str | None = None
        if isinstance(target, str) and target.isdigit():
            target = int(target)

        if isinstance(target, int):
            if self.positional_allowed and target >= 1 and target in self.tokens:
                position = target
        elif self.named_allowed:
            name = target if target.startswith(':') else f':{target}'
            if name in self.tokens:
                position = name

        if position is None:
            raise InvalidBindTarget(f"Invalid bind-variable position '{target}'")
        return position

    def bind(self, target: int | str, value: Any, by_reference: bool = False,
             type: Any = None, length: int | None = None) -> int | str:
        """Validate a target and record its value, replacing any earlier binding.
        """
        if by_reference and not (isinstance(value, Slot) or callable(value)):
            raise TypeError('bind by reference requires a Slot or a callable')
        position = self.normalize(target)
        self._bound[position] = BoundParameter(value, by_reference, type, length)
        return position

    def clear(self) -> None:
        self._bound.clear()

    def resolve(self, params: Sequence | Mapping | None = None) -> dict[int | str, Any]:
        """Values to send for one execution, keyed by canonical target.

        An explicit `params` set replaces the bound set for this call only:
        a sequence binds positions 1..n, a mapping binds names or positions.
        """
        if params is None:
            return {position: bp.resolve() for position, bp in self._bound.items()}

        if isinstance(params, Mapping):
            items = params.items()
        elif isinstance(params, str | bytes) or not isinstance(params, Sequence):
            items = [(1, params)]
        else:
            items = enumerate(params, start=1)
        return {self.normalize(target): value for target, value in items}


class ColumnBinder:
    """Output bindings for result columns, populated on BOUND fetches.

    Columns are registered by 1-based position or by name. A target is a
    `Slot` or a one-argument callable.
    """

    def __init__(self) -> None:
        self._columns: dict[int | str, Slot | Callable[[Any], Any]] = {}

    def __len__(self) -> int:
        return len(self._columns)

    def bind(self, column: int | str, target: Slot | Callable[[Any], Any]) -> None:
        if not (isinstance(target, Slot) or callable(target)):
            raise TypeError('bind_column requires a Slot or a callable')
        if isinstance(column, str) and column.isdigit():
            column = int(column)
        self._columns[column] = target

    def assign(self, values: Sequence, mapping: Mapping[str, Any]) -> None:
        """Copy one fetched row into the registered targets.

        Unregistered columns are skipped.
        """
        for index, value in enumerate(values, start=1):
            self._write(index, value)
        for name, value in mapping.items():
            self._write(name, value)

    def _write(self, column: int | str, value: Any) -> None:
        target = self._columns.get(column)
        if target is None:
            return
        if isinstance(target, Slot):
            target.value = value
        else:
            target(value)


def native_parameters(tokens: TokenSequence, resolved: Mapping[int | str, Any]) -> list | dict | None:
    """Arrange resolved values the way a DB-API cursor expects them.

    Positional statements get a list ordered by position, named statements
    a dict keyed by bare name. Statements without placeholders get None.
    Raises InvalidBindTarget when a placeholder has no value.
    """
    if not tokens.targets:
        return None
    if tokens.has_named:
        missing = [name for name in tokens.names if name not in resolved]
        if missing:
            raise InvalidBindTarget(f'No value bound for {", ".join(missing)}')
        return {name[1:]: resolved[name] for name in tokens.names}
    missing = [str(pos) for pos in tokens.targets if pos not in resolved]
    if missing:
        raise InvalidBindTarget(f'No value bound for position {", ".join(missing)}')
    return [resolved[pos] for pos in tokens.targets]
