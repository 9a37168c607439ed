"""Errors raised by the PanelGround engine.

Every error is a defect in the input provided by the caller,
the engine never performs I/O so there is nothing transient
that could be retried. All errors are raised before any
data is modified, so a failed in-place operation leaves
the table untouched.

Each error also inherits from the closest builtin exception,
so ``except KeyError`` keeps working when a column is missing.
"""

from typing import Any, Iterable


class PanelGroundError(Exception):
    """Base class for all the errors raised by PanelGround."""

    pass


class SchemaError(PanelGroundError, ValueError):
    """Columns are missing, have the wrong length or incompatible types."""

    pass


class TypeMismatchError(PanelGroundError, TypeError):
    """Values can't be coerced to a common type without losing precision."""

    pass


class ColumnNotFoundError(PanelGroundError, KeyError):
    """A referenced column does not exist in the table.

    >>> str(ColumnNotFoundError("age", ["id", "name"]))
    "Column 'age' not found, available columns: ['id', 'name']"
    """

    def __init__(self, column: str, available: Iterable[str] = ()) -> None:
        """
        :param column: The name of the column that was requested.
        :param available: The columns that were available instead.
        """
        self.column = column
        self.available = list(available)
        super().__init__(column)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the argument.
        return f"Column {self.column!r} not found, available columns: {self.available}"


class NameCollisionError(PanelGroundError, ValueError):
    """Two output columns would end up with the same name."""

    def __init__(self, names: Iterable[str]) -> None:
        """
        :param names: The names that are duplicated.
        """
        self.names = sorted(set(names))
        super().__init__(f"Duplicate output column names: {self.names}")


class DuplicateKeyError(PanelGroundError, ValueError):
    """More than one row was found for a key that must be unique."""

    def __init__(self, message: str, key: Any = None) -> None:
        """
        :param message: Description of what was being done.
        :param key: The key that was found duplicated.
        """
        self.key = key
        super().__init__(message)


class AmbiguousJoinError(PanelGroundError, ValueError):
    """The join clauses don't describe a valid join."""

    pass


class StaleGroupIndexError(PanelGroundError, RuntimeError):
    """A GroupIndex was reused after its key columns were modified."""

    pass
