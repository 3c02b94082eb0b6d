"""Table and column schemas, their validation, and the catalog interface."""

from __future__ import annotations

import math
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional, Protocol, Sequence

from .values import DataType, InvalidValue, SqlValue, datatype_of, format_value, values_equal

_MAX_STRING_BYTES = 1024
_PLAIN_IDENT = re.compile(r"[a-z_][a-z0-9_]*")


class _NoDefault:
    def __repr__(self) -> str:
        return "NO_DEFAULT"


_NO_DEFAULT: Any = _NoDefault()


class _Transaction(Protocol):
    def read_table(self, table: str) -> Optional["Table"]: ...

    def read(self, table: str, key: SqlValue) -> Optional[Sequence[SqlValue]]: ...

    def scan(self, table: str, filter: Any) -> Iterable[Sequence[SqlValue]]: ...


def _format_ident(name: str) -> str:
    if _PLAIN_IDENT.fullmatch(name):
        return name
    return '"' + name.replace('"', '""') + '"'


class Catalog(ABC):
    """Stores schema information."""

    @abstractmethod
    def create_table(self, table: "Table") -> None:
        """Create a new table."""

    @abstractmethod
    def delete_table(self, table: str) -> None:
        """Delete an existing table, raising if it does not exist."""

    @abstractmethod
    def read_table(self, table: str) -> Optional["Table"]:
        """Read a table, or return None if it does not exist."""

    @abstractmethod
    def scan_tables(self) -> Iterator["Table"]:
        """Iterate over all tables."""

    def must_read_table(self, table: str) -> "Table":
        """Read a table, raising if it does not exist."""
        found = self.read_table(table)
        if found is None:
            raise InvalidValue(f"Table {table} does not exist")
        return found

    def table_references(self, table: str, with_self: bool) -> list[tuple[str, list[str]]]:
        """Return (table, columns) pairs for every column that references the table."""
        references = []
        for other in self.scan_tables():
            if not with_self and other.name == table:
                continue
            columns = [c.name for c in other.columns if c.references == table]
            if columns:
                references.append((other.name, columns))
        return references


@dataclass
class Column:
    """A table column schema. Leave out ``default`` for a column without one."""

    name: str
    datatype: DataType
    primary_key: bool = False
    nullable: bool = False
    default: SqlValue = _NO_DEFAULT
    unique: bool = False
    references: Optional[str] = None
    index: bool = False

    @property
    def has_default(self) -> bool:
        """Whether the column has a default value (which may be NULL)."""
        return self.default is not _NO_DEFAULT

    def validate(self, table: "Table", txn: _Transaction) -> None:
        """Validate the column schema."""
        if self.primary_key and self.nullable:
            raise InvalidValue(f"Primary key {self.name} cannot be nullable")
        if self.primary_key and not self.unique:
            raise InvalidValue(f"Primary key {self.name} must be unique")

        if self.has_default:
            datatype = datatype_of(self.default)
            if datatype is not None:
                if datatype != self.datatype:
                    raise InvalidValue(
                        f"Default value for column {self.name} has datatype {datatype}, "
                        f"must be {self.datatype}"
                    )
            elif not self.nullable:
                raise InvalidValue(
                    f"Can't use NULL as default value for non-nullable column {self.name}"
                )
        elif self.nullable:
            raise InvalidValue(f"Nullable column {self.name} must have a default value")

        if self.references is not None:
            if self.references == table.name:
                target = table
            else:
                found = txn.read_table(self.references)
                if found is None:
                    raise InvalidValue(
                        f"Table {self.references} referenced by column {self.name} does not exist"
                    )
                target = found
            target_type = target.get_primary_key().datatype
            if self.datatype != target_type:
                raise InvalidValue(
                    f"Can't reference {target_type} primary key of table {target.name} "
                    f"from {self.datatype} column {self.name}"
                )

    def validate_value(
        self, table: "Table", pk: SqlValue, value: SqlValue, txn: _Transaction
    ) -> None:
        """Validate a value for this column in a row with primary key ``pk``."""
        datatype = datatype_of(value)
        if datatype is None:
            if not self.nullable:
                raise InvalidValue(f"NULL value not allowed for column {self.name}")
        elif datatype != self.datatype:
            raise InvalidValue(
                f"Invalid datatype {datatype} for {self.datatype} column {self.name}"
            )

        if isinstance(value, str) and len(value.encode("utf-8")) > _MAX_STRING_BYTES:
            raise InvalidValue("Strings cannot be more than 1024 bytes")

        target = self.references
        if target is not None and value is not None:
            is_nan = isinstance(value, float) and math.isnan(value)
            self_reference = target == table.name and values_equal(value, pk)
            if not is_nan and not self_reference and txn.read(target, value) is None:
                raise InvalidValue(
                    f"Referenced primary key {format_value(value)} in table {target} "
                    "does not exist"
                )

        if self.unique and not self.primary_key and value is not None:
            index = table.get_column_index(self.name)
            for row in txn.scan(table.name, None):
                existing = row[index] if index < len(row) else None
                if values_equal(existing, value) and not values_equal(table.get_row_key(row), pk):
                    raise InvalidValue(
                        f"Unique value {format_value(value)} already exists for column {self.name}"
                    )

    def __str__(self) -> str:
        sql = f"{_format_ident(self.name)} {self.datatype}"
        if self.primary_key:
            sql += " PRIMARY KEY"
        if not self.nullable and not self.primary_key:
            sql += " NOT NULL"
        if self.has_default:
            sql += f" DEFAULT {format_value(self.default)}"
        if self.unique and not self.primary_key:
            sql += " UNIQUE"
        if self.references is not None:
            sql += f" REFERENCES {self.references}"
        if self.index:
            sql += " INDEX"
        return sql


@dataclass
class Table:
    """A table schema."""

    name: str
    columns: list[Column] = field(default_factory=list)

    def get_column(self, name: str) -> Column:
        """Return the column with the given name."""
        for column in self.columns:
            if column.name == name:
                return column
        raise InvalidValue(f"Column {name} not found in table {self.name}")

    def get_column_index(self, name: str) -> int:
        """Return the position of the column with the given name."""
        for position, column in enumerate(self.columns):
            if column.name == name:
                return position
        raise InvalidValue(f"Column {name} not found in table {self.name}")

    def get_primary_key(self) -> Column:
        """Return the primary key column."""
        for column in self.columns:
            if column.primary_key:
                return column
        raise InvalidValue(f"Primary key not found in table {self.name}")

    def get_row_key(self, row: Sequence[SqlValue]) -> SqlValue:
        """Return the primary key value of a row."""
        position = next((i for i, c in enumerate(self.columns) if c.primary_key), None)
        if position is None:
            raise InvalidValue("Primary key not found")
        if position >= len(row):
            raise InvalidValue("Primary key value not found for row")
        return row[position]

    def validate(self, txn: _Transaction) -> None:
        """Validate the table schema."""
        if not self.columns:
            raise InvalidValue(f"Table {self.name} has no columns")
        keys = sum(1 for c in self.columns if c.primary_key)
        if keys == 0:
            raise InvalidValue(f"No primary key in table {self.name}")
        if keys > 1:
            raise InvalidValue(f"Multiple primary keys in table {self.name}")
        for column in self.columns:
            column.validate(self, txn)

    def validate_row(self, row: Sequence[SqlValue], txn: _Transaction) -> None:
        """Validate a row against the schema."""
        if len(row) != len(self.columns):
            raise InvalidValue(f"Invalid row size for table {self.name}")
        pk = self.get_row_key(row)
        for column, value in zip(self.columns, row):
            column.validate_value(self, pk, value, txn)

    def __str__(self) -> str:
        body = ",\n".join(f"  {column}" for column in self.columns)
        return f"CREATE TABLE {_format_ident(self.name)} (\n{body}\n)"