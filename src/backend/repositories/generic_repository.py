"""
Generic repositories providing common CRUD operations.

GenericRepository works on a blocking Session and AsyncGenericRepository
on an AsyncSession. Both borrow the session handed to them and never open,
close or roll it back.

Every mutating method takes ``save_now``: when true the session is
committed before returning, otherwise the change stays pending until the
owner of the session commits (or calls ``save_changes``).

Usage:
    users = AsyncGenericRepository(User, db)
    await users.add(user, save_now=False)
    await users.add(other_user)  # commits both
"""
import logging
from typing import Any, Dict, Generic, Iterable, List, Optional, Type, TypeVar, Union

from sqlalchemy import Select, func, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, make_transient_to_detached
from sqlalchemy.orm.attributes import QueryableAttribute

from core.assertions import not_empty, not_none
from db.models import TableModel

logger = logging.getLogger(__name__)

# Type variables for the model class and its primary key
ModelType = TypeVar("ModelType", bound=TableModel)
KeyType = TypeVar("KeyType")

RelationshipRef = Union[str, QueryableAttribute]


class _RepositoryBase(Generic[ModelType, KeyType]):
    """Query building and tracking helpers shared by both repositories."""

    def __init__(self, model: Type[ModelType], session: Union[Session, AsyncSession]):
        not_none(model, "model")
        not_none(session, "session")
        self.model = model
        self.session = session

    @property
    def table(self) -> Select:
        """Base select statement for building tracked queries."""
        return select(self.model)

    def _identity(self, ids: tuple) -> Any:
        not_empty(ids, "ids")
        return ids[0] if len(ids) == 1 else ids

    def _apply_filters(self, stmt: Select, filters: Optional[Dict[str, Any]]) -> Select:
        if filters:
            for field, value in filters.items():
                if value is not None:
                    stmt = stmt.where(getattr(self.model, field) == value)
        return stmt

    def _list_statement(
        self,
        filters: Optional[Dict[str, Any]],
        order_by: Optional[Any],
        limit: Optional[int],
        offset: Optional[int],
    ) -> Select:
        stmt = self._apply_filters(self.table, filters)

        if order_by is not None:
            stmt = stmt.order_by(order_by)

        if offset:
            stmt = stmt.offset(offset)

        if limit:
            stmt = stmt.limit(limit)

        return stmt

    def _count_statement(self, filters: Optional[Dict[str, Any]]) -> Select:
        stmt = select(func.count()).select_from(self.model)
        return self._apply_filters(stmt, filters)

    def _untrack_new(self, items: List[ModelType], known_keys: set) -> List[ModelType]:
        """Expunge rows the session was not tracking before the query ran."""
        for item in items:
            if inspect(item).key not in known_keys:
                self.session.expunge(item)
        return items

    def _relationship_key(self, relationship: RelationshipRef, uselist: bool) -> str:
        """Resolve a relationship reference and check its cardinality."""
        not_none(relationship, "relationship")
        if isinstance(relationship, str):
            key = relationship
        else:
            if not issubclass(self.model, relationship.class_):
                raise ValueError(
                    f"{relationship} is not a relationship of {self.model.__name__}"
                )
            key = relationship.key

        relationships = inspect(self.model).relationships
        if key not in relationships:
            raise ValueError(f"{self.model.__name__} has no relationship '{key}'")

        if relationships[key].uselist != uselist:
            kind = "collection" if uselist else "reference"
            raise ValueError(f"{self.model.__name__}.{key} is not a {kind}")

        return key

    def _needs_load(self, entity: ModelType, key: str) -> bool:
        state = inspect(entity)
        # Pending rows have nothing to fetch from the store yet
        return state.persistent and key in state.unloaded

    # ------------------------------------------------------------------
    # Attach & detach
    # ------------------------------------------------------------------

    def attach(self, entity: ModelType) -> None:
        """
        Start tracking an entity obtained outside this session.

        Detached entities are re-added as unchanged. Transient entities
        with a full primary key are treated as existing unchanged rows;
        without one they are added as new. Already tracked entities are
        left alone.

        Args:
            entity: Entity to attach
        """
        not_none(entity, "entity")
        if entity in self.session:
            return

        state = inspect(entity)
        if state.transient:
            primary_key = state.mapper.primary_key_from_instance(entity)
            if None not in primary_key:
                make_transient_to_detached(entity)

        self.session.add(entity)

    def detach(self, entity: ModelType) -> None:
        """
        Stop tracking an entity.

        Later changes to it have no persistence effect until it is
        attached again.
        """
        not_none(entity, "entity")
        if entity in self.session:
            self.session.expunge(entity)


class GenericRepository(_RepositoryBase[ModelType, KeyType]):
    """
    Generic repository over a blocking Session.

    Usage:
        roles = GenericRepository(Role, session)
        role = roles.get_by_id(role_id)
    """

    session: Session

    def __init__(self, model: Type[ModelType], session: Session):
        super().__init__(model, session)

    def save_changes(self) -> None:
        """Commit everything pending on the session."""
        logger.debug(f"Committing {self.model.__name__} changes")
        self.session.commit()

    def get_by_id(self, *ids: KeyType) -> Optional[ModelType]:
        """
        Find a single record by primary key.

        Args:
            *ids: Primary key value, or each component of a composite key

        Returns:
            Tracked model instance or None if not found
        """
        return self.session.get(self.model, self._identity(ids))

    def find_all(
        self,
        *,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[Any] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        tracked: bool = True,
    ) -> List[ModelType]:
        """
        Find all records matching filters with pagination.

        Args:
            filters: Dictionary of field:value equality filters (None values skipped)
            order_by: Column to order by
            limit: Maximum number of records
            offset: Number of records to skip
            tracked: When False, rows not already tracked are detached before return

        Returns:
            List of model instances
        """
        known_keys = set(self.session.identity_map.keys())
        stmt = self._list_statement(filters, order_by, limit, offset)
        items = list(self.session.scalars(stmt).all())

        if not tracked:
            return self._untrack_new(items, known_keys)
        return items

    def count(self, *, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records matching filters."""
        return self.session.scalar(self._count_statement(filters))

    def exists(self, *, filters: Dict[str, Any]) -> bool:
        """Check if at least one record matches filters."""
        return self.count(filters=filters) > 0

    def add(self, entity: ModelType, save_now: bool = True) -> None:
        """Mark an entity for insert."""
        not_none(entity, "entity")
        self.session.add(entity)
        if save_now:
            self.save_changes()

    def add_range(self, entities: Iterable[ModelType], save_now: bool = True) -> None:
        """Mark several entities for insert, committed together."""
        not_none(entities, "entities")
        self.session.add_all(list(entities))
        if save_now:
            self.save_changes()

    def update(self, entity: ModelType, save_now: bool = True) -> ModelType:
        """
        Mark an entity, and the graph reachable from it, for update.

        Args:
            entity: Entity to update
            save_now: Commit immediately

        Returns:
            The instance tracked by this session (a merged copy when the
            entity was never loaded here)
        """
        not_none(entity, "entity")
        tracked = self._track(entity)
        if save_now:
            self.save_changes()
        return tracked

    def update_range(
        self, entities: Iterable[ModelType], save_now: bool = True
    ) -> List[ModelType]:
        """Bulk form of update()."""
        not_none(entities, "entities")
        tracked = [self._track(entity) for entity in entities]
        if save_now:
            self.save_changes()
        return tracked

    def delete(self, entity: ModelType, save_now: bool = True) -> None:
        """Mark an entity for delete."""
        not_none(entity, "entity")
        self._remove(entity)
        if save_now:
            self.save_changes()

    def delete_range(self, entities: Iterable[ModelType], save_now: bool = True) -> None:
        """Bulk form of delete()."""
        not_none(entities, "entities")
        for entity in list(entities):
            self._remove(entity)
        if save_now:
            self.save_changes()

    def load_collection(self, entity: ModelType, relationship: RelationshipRef) -> None:
        """
        Load a one-to-many relationship if it is not loaded yet.

        Args:
            entity: Owner of the relationship (attached if needed)
            relationship: Relationship attribute (e.g. User.user_roles) or its name
        """
        self._load(entity, self._relationship_key(relationship, uselist=True))

    def load_reference(self, entity: ModelType, relationship: RelationshipRef) -> None:
        """
        Load a single-valued relationship if it is not loaded yet.

        Only the named relationship is fetched; other attributes of the
        entity keep their in-memory values.
        """
        self._load(entity, self._relationship_key(relationship, uselist=False))

    def _track(self, entity: ModelType) -> ModelType:
        if entity in self.session:
            return entity
        if inspect(entity).transient:
            return self.session.merge(entity)
        self.session.add(entity)
        return entity

    def _remove(self, entity: ModelType) -> None:
        tracked = self._track(entity)
        if inspect(tracked).pending:
            # Never flushed: dropping it cancels the insert
            self.session.expunge(tracked)
        else:
            self.session.delete(tracked)

    def _load(self, entity: ModelType, key: str) -> None:
        not_none(entity, "entity")
        self.attach(entity)
        if self._needs_load(entity, key):
            logger.debug(f"Loading {self.model.__name__}.{key}")
            self.session.refresh(entity, attribute_names=[key])


class AsyncGenericRepository(_RepositoryBase[ModelType, KeyType]):
    """
    Generic repository over an AsyncSession.

    Usage:
        users = AsyncGenericRepository(User, db)
        user = await users.get_by_id(user_id)
        await users.load_collection(user, User.user_roles)
    """

    session: AsyncSession

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        super().__init__(model, session)

    async def save_changes(self) -> None:
        """Commit everything pending on the session."""
        logger.debug(f"Committing {self.model.__name__} changes")
        await self.session.commit()

    async def get_by_id(self, *ids: KeyType) -> Optional[ModelType]:
        """
        Find a single record by primary key.

        Args:
            *ids: Primary key value, or each component of a composite key

        Returns:
            Tracked model instance or None if not found
        """
        return await self.session.get(self.model, self._identity(ids))

    async def find_all(
        self,
        *,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[Any] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        tracked: bool = True,
    ) -> List[ModelType]:
        """
        Find all records matching filters with pagination.

        Args:
            filters: Dictionary of field:value equality filters (None values skipped)
            order_by: Column to order by
            limit: Maximum number of records
            offset: Number of records to skip
            tracked: When False, rows not already tracked are detached before return

        Returns:
            List of model instances
        """
        known_keys = set(self.session.identity_map.keys())
        stmt = self._list_statement(filters, order_by, limit, offset)
        result = await self.session.scalars(stmt)
        items = list(result.all())

        if not tracked:
            return self._untrack_new(items, known_keys)
        return items

    async def count(self, *, filters: Optional[Dict[str, Any]] = None) -> int:
        """Count records matching filters."""
        return await self.session.scalar(self._count_statement(filters))

    async def exists(self, *, filters: Dict[str, Any]) -> bool:
        """Check if at least one record matches filters."""
        return await self.count(filters=filters) > 0

    async def add(self, entity: ModelType, save_now: bool = True) -> None:
        """Mark an entity for insert."""
        not_none(entity, "entity")
        self.session.add(entity)
        if save_now:
            await self.save_changes()

    async def add_range(self, entities: Iterable[ModelType], save_now: bool = True) -> None:
        """Mark several entities for insert, committed together."""
        not_none(entities, "entities")
        self.session.add_all(list(entities))
        if save_now:
            await self.save_changes()

    async def update(self, entity: ModelType, save_now: bool = True) -> ModelType:
        """
        Mark an entity, and the graph reachable from it, for update.

        Args:
            entity: Entity to update
            save_now: Commit immediately

        Returns:
            The instance tracked by this session (a merged copy when the
            entity was never loaded here)
        """
        not_none(entity, "entity")
        tracked = await self._track(entity)
        if save_now:
            await self.save_changes()
        return tracked

    async def update_range(
        self, entities: Iterable[ModelType], save_now: bool = True
    ) -> List[ModelType]:
        """Bulk form of update()."""
        not_none(entities, "entities")
        tracked = [await self._track(entity) for entity in entities]
        if save_now:
            await self.save_changes()
        return tracked

    async def delete(self, entity: ModelType, save_now: bool = True) -> None:
        """Mark an entity for delete."""
        not_none(entity, "entity")
        await self._remove(entity)
        if save_now:
            await self.save_changes()

    async def delete_range(
        self, entities: Iterable[ModelType], save_now: bool = True
    ) -> None:
        """Bulk form of delete()."""
        not_none(entities, "entities")
        for entity in list(entities):
            await self._remove(entity)
        if save_now:
            await self.save_changes()

    async def load_collection(
        self, entity: ModelType, relationship: RelationshipRef
    ) -> None:
        """
        Load a one-to-many relationship if it is not loaded yet.

        The load has completed when this coroutine returns.

        Args:
            entity: Owner of the relationship (attached if needed)
            relationship: Relationship attribute (e.g. User.user_roles) or its name
        """
        await self._load(entity, self._relationship_key(relationship, uselist=True))

    async def load_reference(
        self, entity: ModelType, relationship: RelationshipRef
    ) -> None:
        """
        Load a single-valued relationship if it is not loaded yet.

        Only the named relationship is fetched; other attributes of the
        entity keep their in-memory values.
        """
        await self._load(entity, self._relationship_key(relationship, uselist=False))

    async def _track(self, entity: ModelType) -> ModelType:
        if entity in self.session:
            return entity
        if inspect(entity).transient:
            return await self.session.merge(entity)
        self.session.add(entity)
        return entity

    async def _remove(self, entity: ModelType) -> None:
        tracked = await self._track(entity)
        if inspect(tracked).pending:
            # Never flushed: dropping it cancels the insert
            self.session.expunge(tracked)
        else:
            await self.session.delete(tracked)

    async def _load(self, entity: ModelType, key: str) -> None:
        not_none(entity, "entity")
        self.attach(entity)
        if self._needs_load(entity, key):
            logger.debug(f"Loading {self.model.__name__}.{key}")
            await self.session.refresh(entity, attribute_names=[key])
