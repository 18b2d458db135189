"""Base repository with common read operations and dialect-aware upserts."""

from collections.abc import Sequence
from typing import Any, Generic, TypeAlias, TypeVar

from sqlalchemy import Table, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel, select

from xray.exceptions.domain import DatabaseIntegrityError

ModelT = TypeVar("ModelT", bound=SQLModel)
FilterValueT: TypeAlias = str | int | float


class BaseRepository(Generic[ModelT]):
    """Base repository providing common database operations."""

    def __init__(self, session: AsyncSession, model_class: type[ModelT]):
        """Initialize repository with session and model class.

        Args:
            session: Database session
            model_class: SQLModel class this repository operates on
        """
        self.session = session
        self.model_class = model_class

    @property
    def table(self) -> Table:
        return self.model_class.__table__  # type: ignore[attr-defined]

    @property
    def dialect_name(self) -> str:
        return self.session.get_bind().dialect.name

    def insert(self, table: Table | None = None) -> Any:
        """Build a dialect-specific INSERT supporting ``ON CONFLICT``.

        Args:
            table: Target table, defaults to the model's table.

        Returns:
            ``sqlite.Insert`` or ``postgresql.Insert`` for the table.

        Raises:
            NotImplementedError: For dialects without native upsert.
        """
        target = table if table is not None else self.table
        if self.dialect_name == "postgresql":
            return postgresql.insert(target)
        if self.dialect_name == "sqlite":
            return sqlite.insert(target)
        raise NotImplementedError(f"Upsert is not supported for dialect '{self.dialect_name}'")

    async def execute_upsert(self, statement: Any, entity_label: str) -> None:
        """Execute an upsert statement and commit it.

        Args:
            statement: INSERT ... ON CONFLICT statement.
            entity_label: Human readable target for error messages.

        Raises:
            DatabaseIntegrityError: If a referenced parent row does not exist.
        """
        await self.execute_in_transaction([statement], entity_label)

    async def execute_in_transaction(self, statements: Sequence[Any], entity_label: str) -> None:
        """Execute statements and commit them together, or not at all.

        Args:
            statements: Statements to execute in order.
            entity_label: Human readable target for error messages.

        Raises:
            DatabaseIntegrityError: If a referenced parent row does not exist.
        """
        try:
            for statement in statements:
                await self.session.execute(statement)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise DatabaseIntegrityError(
                f"Integrity violation while writing {entity_label}: {e.orig}"
            ) from e

    async def get_optional(self, id: Any) -> ModelT | None:
        """Get entity by ID or return None.

        Args:
            id: Entity ID

        Returns:
            Found entity or None
        """
        return await self.session.get(self.model_class, id, populate_existing=True)

    async def count(self, **filters: FilterValueT) -> int:
        """Count entities matching filters.

        Args:
            **filters: Field-value pairs to filter by

        Returns:
            Number of matching entities
        """
        statement = select(func.count()).select_from(self.model_class)

        for field, value in filters.items():
            if hasattr(self.model_class, field):
                statement = statement.where(getattr(self.model_class, field) == value)

        result = await self.session.execute(statement)
        return result.scalar() or 0
