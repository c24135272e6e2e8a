"""
polyref/migration.py

Schema helpers for the columns and indexes polyref expects.

Every ``poly_*`` helper works two ways:
- given a ``Table`` it appends the column definitions (table-builder mode,
  before the table is created)
- given a table name it issues ``ALTER TABLE ... ADD COLUMN`` on the
  migration's connection (direct mode, existing table)

Example:
    >>> with engine.begin() as conn:
    ...     m = Migration(conn)
    ...     m.poly_resource("coins", "resource", id_type=Integer)
    ...     m.poly_owner("coins")
    ...     m.poly_resource_index("coins", "resource")
"""
import logging
from typing import Any, List, Optional, Sequence, Tuple, Union

from sqlalchemy import Column, Index, MetaData, String, Table, text
from sqlalchemy.schema import CreateColumn

from polyref.config import settings
from polyref.metadata import DiscriminatorKind

logger = logging.getLogger(__name__)

TableOrName = Union[Table, str]


def polymorphic_columns(name: str, nullable: bool = True, id_type: Any = String) -> Tuple[Column, Column]:
    """``<name>_type`` / ``<name>_id`` column pair."""
    return (
        Column(f"{name}_type", String(settings.TYPE_COLUMN_LENGTH), nullable=nullable),
        Column(f"{name}_id", id_type, nullable=nullable),
    )


def discriminator_column(name: str, kind: Any = DiscriminatorKind.ROLE, nullable: bool = True) -> Column:
    """``<name>_role`` or ``<name>_label`` column."""
    kind = DiscriminatorKind(kind)
    return Column(f"{name}_{kind.value}", String(settings.DISCRIMINATOR_MAX_LENGTH), nullable=nullable)


def owner_columns(
    type_column: Optional[str] = None,
    id_column: Optional[str] = None,
    id_type: Any = String,
    nullable: bool = True,
) -> Tuple[Column, Column]:
    """Owner type / id column pair (names default to settings)."""
    return (
        Column(type_column or settings.OWNER_TYPE_COLUMN, String(settings.TYPE_COLUMN_LENGTH), nullable=nullable),
        Column(id_column or settings.OWNER_ID_COLUMN, id_type, nullable=nullable),
    )


def index_name(table_name: str, columns: Sequence[str]) -> str:
    return f"ix_{table_name}_{'_'.join(columns)}"


class Migration:
    """
    Migration helpers bound to a connection.

    Args:
        connection: SQLAlchemy Connection (inside a transaction)
    """

    def __init__(self, connection):
        self.connection = connection

    # Columns

    def poly_resource(
        self,
        table: TableOrName,
        name: str,
        nullable: bool = True,
        id_type: Any = String,
    ) -> Tuple[Column, Column]:
        """Add a polymorphic ``<name>_type`` / ``<name>_id`` pair."""
        columns = polymorphic_columns(name, nullable=nullable, id_type=id_type)
        self._add_columns(table, columns)
        return columns

    def poly_role(self, table: TableOrName, name: str, nullable: bool = True) -> Column:
        """Add a ``<name>_role`` column."""
        column = discriminator_column(name, DiscriminatorKind.ROLE, nullable=nullable)
        self._add_columns(table, [column])
        return column

    def poly_label(self, table: TableOrName, name: str, nullable: bool = True) -> Column:
        """Add a ``<name>_label`` column."""
        column = discriminator_column(name, DiscriminatorKind.LABEL, nullable=nullable)
        self._add_columns(table, [column])
        return column

    def poly_owner(
        self,
        table: TableOrName,
        type_column: Optional[str] = None,
        id_column: Optional[str] = None,
        id_type: Any = String,
        nullable: bool = True,
    ) -> Tuple[Column, Column]:
        """Add an owner type / id pair (non-polymorphic, configurable names)."""
        columns = owner_columns(type_column, id_column, id_type=id_type, nullable=nullable)
        self._add_columns(table, columns)
        return columns

    # Indexes

    def poly_resource_index(self, table_name: str, name: str, unique: bool = False) -> Index:
        """Index on (``<name>_type``, ``<name>_id``)."""
        return self.add_index(table_name, [f"{name}_type", f"{name}_id"], unique=unique)

    def poly_owner_index(
        self,
        table_name: str,
        type_column: Optional[str] = None,
        id_column: Optional[str] = None,
        unique: bool = False,
    ) -> Index:
        """Index on the owner (type, id) pair."""
        columns = [type_column or settings.OWNER_TYPE_COLUMN, id_column or settings.OWNER_ID_COLUMN]
        return self.add_index(table_name, columns, unique=unique)

    # Primitives

    def add_column(self, table_name: str, column: Column) -> None:
        """ALTER TABLE <table_name> ADD COLUMN <column>."""
        # attach to a throwaway table so the DDL compiler sees a complete column
        Table(table_name, MetaData(), column)
        dialect = self.connection.dialect
        column_ddl = CreateColumn(column).compile(dialect=dialect)
        table_ddl = dialect.identifier_preparer.quote(table_name)
        self.connection.execute(text(f"ALTER TABLE {table_ddl} ADD COLUMN {column_ddl}"))
        logger.info(f"Added column {table_name}.{column.name}")

    def add_index(
        self,
        table_name: str,
        columns: List[str],
        unique: bool = False,
        name: Optional[str] = None,
    ) -> Index:
        """Create an index on existing columns of table_name."""
        table = Table(table_name, MetaData(), autoload_with=self.connection)
        index = Index(
            name or index_name(table_name, columns),
            *[table.c[column] for column in columns],
            unique=unique,
        )
        index.create(self.connection)
        logger.info(f"Created {'unique ' if unique else ''}index {index.name}")
        return index

    def _add_columns(self, table: TableOrName, columns: Sequence[Column]) -> None:
        if isinstance(table, Table):
            for column in columns:
                table.append_column(column)
            return
        for column in columns:
            self.add_column(table, column)


__all__ = [
    "Migration",
    "polymorphic_columns",
    "discriminator_column",
    "owner_columns",
    "index_name",
]
