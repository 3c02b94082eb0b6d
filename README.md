# sqlplan

The core data structures of a small SQL engine, in pure Python with no dependencies.

## Modules

- `sqlplan.values`: SQL values are plain Python objects. `None` is NULL, and `bool`, `int`, `float` and `str` are the BOOLEAN, INTEGER, FLOAT and STRING types.
  - `DataType` is the enum of column types, and `datatype_of(value)` returns a value's type, or `None` for NULL.
  - `format_value` renders a value as it appears in output, for example `NULL`, `TRUE` or `2.5`.
  - `values_equal` is strict equality. Types must match, and NaN never equals anything.
  - `compare_values` returns -1, 0, 1, or `None` when two values can't be compared. NULL sorts first, and integers and floats compare as numbers.
  - `as_boolean`, `as_integer`, `as_float` and `as_string` return the value or raise `InvalidValue`.
  - `ResultColumn` is an optionally named column of a result set.
  - Errors are `InvalidValue` and `InternalError`, both subclasses of `Error`.
- `sqlplan.schema`: `Table` and `Column` schemas.
  - Lookups: `get_column`, `get_column_index`, `get_primary_key` and `get_row_key`.
  - Validation: `Table.validate`, `Table.validate_row`, `Column.validate` and `Column.validate_value`. They check primary keys, defaults, NULLs, data types, the 1024-byte string limit, foreign key references and uniqueness.
  - `str()` on a table renders its `CREATE TABLE` statement.
  - `Catalog` is an abstract base class. Subclasses implement `create_table`, `delete_table`, `read_table` and `scan_tables`, and get `must_read_table` and `table_references` from it.
- `sqlplan.expression`: an immutable expression tree.
  - Nodes: `Constant` and `Field`; the logical operators `And`, `Or` and `Not`; the comparisons `Equal`, `GreaterThan`, `LessThan` and `IsNull`; the arithmetic operators `Add`, `Subtract`, `Multiply`, `Divide`, `Modulo`, `Exponentiate`, `Negate`, `Assert` and `Factorial`; and `Like`.
  - `evaluate(row)` uses three-valued NULL logic and checks 64-bit integer overflow. Integer division truncates toward zero, and the remainder takes the sign of the dividend.
  - `walk`, `contains` and `transform` traverse and rewrite trees.
- `sqlplan.normal`: `into_nnf`, `into_cnf`, `into_dnf`, `into_cnf_vec`, `into_dnf_vec`, `from_cnf_vec` and `from_dnf_vec`.
  - `as_lookup(expr, field)` recognises `=`, `IS NULL` and `OR` lookups on a field.
  - `from_lookup(field, label, values)` builds such a lookup.
- `sqlplan.plan`: plan nodes.
  - Nodes: `Scan`, `KeyLookup`, `IndexLookup`, `Filter`, `Projection`, `Aggregation`, `Order`, `Limit`, `Offset`, `NestedLoopJoin`, `HashJoin`, `Nothing`, `Insert`, `Update`, `Delete`, `CreateTable` and `DropTable`.
  - Enums: `Aggregate` and `Direction`.
  - Every node has `transform`, `transform_expressions` and a tree-style `format`, which `str()` also uses.
- `sqlplan.optimizer`: the optimizers `ConstantFolder`, `FilterPushdown`, `IndexLookupOptimizer`, `NoopCleaner` and `JoinTypeOptimizer`. `optimize(node, catalog)` runs all of them, in that order.

## Example

```python
from sqlplan.expression import Constant, Equal, Field
from sqlplan.optimizer import optimize
from sqlplan.plan import Filter, Scan
from sqlplan.schema import Catalog, Column, Table
from sqlplan.values import DataType


class MemoryCatalog(Catalog):
    def __init__(self):
        self.tables = {}

    def create_table(self, table):
        self.tables[table.name] = table

    def delete_table(self, table):
        del self.tables[table]

    def read_table(self, table):
        return self.tables.get(table)

    def scan_tables(self):
        return iter(self.tables.values())


catalog = MemoryCatalog()
catalog.create_table(
    Table("movies", [
        Column("id", DataType.INTEGER, primary_key=True, unique=True),
        Column("title", DataType.STRING),
    ])
)

plan = Filter(
    source=Scan(table="movies"),
    predicate=Equal(Field(0, (None, "id")), Constant(3)),
)
print(optimize(plan, catalog))
```

The filter is pushed into the scan, and the scan becomes a primary key lookup:

```
KeyLookup: movies (3)
```

## What this package does not do

It has no SQL parser, and nothing that builds plans from SQL statements; plans are built by constructing nodes directly. It has no executor, so plan nodes describe operations but nothing runs them. It also has no storage and no transactions. Validation in `sqlplan.schema` expects a transaction object supplied by the caller, with these methods:

- `read_table(name)`
- `read(table, key)`
- `scan(table, filter)`

## Running the tests

```
pip install .[test]
pytest
```