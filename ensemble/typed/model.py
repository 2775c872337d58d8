"""Active-record style models driven by a normalized schema descriptor."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar, Dict, List, Mapping, Optional, Type, TypeVar

from ..errors import (
    ConfigurationError,
    DecodeError,
    EnsembleError,
    NotFoundError,
    PartiallyPersistedError,
    RequiredFieldError,
)
from ..query import QueryBuilder
from ..values import decode_value
from .schema import ModelDeclaration, ModelSchema, normalize_model_schema

if TYPE_CHECKING:
    from ..executor import Database

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound="Model")


class Model:
    """Base class for persisted records.

    Subclasses declare ``schema``; it is normalized once when the class is
    created, so an invalid declaration fails at import time::

        class User(Model):
            schema = {
                "columns": {
                    "id": {"type": Integer(64, unsigned=True), "primary": True},
                    "name": {"type": Text()},
                },
            }

    The table defaults to the plural snake-case class name (``users``);
    set ``"table"`` in the schema when that guess is wrong.
    """

    schema: ClassVar[ModelDeclaration]
    __descriptor__: ClassVar[ModelSchema]

    _exists: bool = False

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        declaration = cls.__dict__.get("schema")
        if declaration is None:
            return
        descriptor = normalize_model_schema(declaration, model_name=cls.__name__)
        for name in descriptor.column_names:
            if hasattr(Model, name):
                raise ConfigurationError(f"{cls.__name__}: column '{name}' shadows a Model attribute")
        cls.__descriptor__ = descriptor

    def __init__(self, **values: Any) -> None:
        descriptor = self._descriptor()
        unknown = sorted(set(values) - set(descriptor.column_names))
        if unknown:
            raise ValueError(f"Unknown column(s) for {type(self).__name__}: {', '.join(unknown)}")
        for column in descriptor.columns:
            value = values[column.name] if column.name in values else column.default_value()
            setattr(self, column.name, value)
        self._exists = False

    @classmethod
    def _descriptor(cls) -> ModelSchema:
        descriptor = getattr(cls, "__descriptor__", None)
        if descriptor is None:
            raise TypeError(f"{cls.__name__} does not declare a schema")
        return descriptor

    @classmethod
    def _hydrate(cls: Type[ModelT], row: Mapping[str, Any]) -> ModelT:
        descriptor = cls._descriptor()
        instance = cls.__new__(cls)
        for column in descriptor.columns:
            if column.name not in row:
                raise DecodeError(f"column '{column.name}' missing from result row", column.name)
            setattr(instance, column.name, decode_value(column.field_type, row[column.name], column.name))
        instance._exists = True
        return instance

    @classmethod
    def keys(cls) -> List[str]:
        return cls._descriptor().column_names

    @classmethod
    def table_name(cls) -> str:
        return cls._descriptor().table_name

    @property
    def primary_key(self) -> Any:
        return getattr(self, self._descriptor().primary_key.name)

    @property
    def exists(self) -> bool:
        """True once the record has been inserted or loaded from the store."""
        return self._exists

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self._descriptor().column_names}

    def __repr__(self) -> str:
        pk = self._descriptor().primary_key.name
        return f"{type(self).__name__}({pk}={self.primary_key!r})"

    def __eq__(self, other: object) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return self.to_dict() == other.to_dict()  # type: ignore[attr-defined]

    __hash__ = None  # type: ignore[assignment]

    @classmethod
    def query(cls: Type[ModelT], db: "Database") -> QueryBuilder[ModelT]:
        return QueryBuilder(cls, db)

    @classmethod
    async def find(cls: Type[ModelT], db: "Database", key: Any) -> ModelT:
        pk = cls._descriptor().primary_key.name
        record = await cls.query(db).where(pk, "=", key).first()
        if record is None:
            raise NotFoundError(f"{cls.__name__} with {pk}={key!r} not found")
        return record

    @classmethod
    async def all(cls: Type[ModelT], db: "Database") -> List[ModelT]:
        return await cls.query(db).get()

    @classmethod
    async def create(cls: Type[ModelT], db: "Database", instance: Optional[ModelT] = None, **values: Any) -> ModelT:
        """Persist ``instance`` (or a new one built from ``values``) as a new row."""
        if instance is None:
            instance = cls(**values)
        elif values:
            raise TypeError("create() accepts an instance or column values, not both")
        elif not isinstance(instance, cls):
            raise TypeError(f"create() expects a {cls.__name__} instance")
        if instance._exists:
            raise ValueError(f"{cls.__name__} instance already exists; use save()")
        await instance.save(db)
        return instance

    async def save(self: ModelT, db: "Database") -> ModelT:
        """Insert the record if it is new, otherwise update it by primary key."""
        now = db.now()
        if self._exists:
            await self._perform_update(db, now)
        else:
            await self._perform_insert(db, now)
        return self

    async def delete(self, db: "Database") -> int:
        """Delete the row with this record's key; 0 when it is already gone."""
        key = self.primary_key
        if key is None:
            return 0
        pk = self._descriptor().primary_key.name
        return await type(self).query(db).where(pk, "=", key).delete()

    async def fresh(self: ModelT, db: "Database") -> ModelT:
        key = self.primary_key
        if key is None:
            raise NotFoundError(f"{type(self).__name__} has no primary key to reload")
        return await type(self).find(db, key)

    def _fill_required(self, values: Dict[str, Any], *, use_defaults: bool) -> None:
        descriptor = self._descriptor()
        for name, value in values.items():
            column = descriptor.column(name)
            if value is not None or column.field_type.nullable:
                continue
            if use_defaults and column.has_default:
                values[name] = column.default_value()
                continue
            raise RequiredFieldError(f"{type(self).__name__}: column '{name}' is required", name)

    async def _perform_insert(self, db: "Database", now: datetime) -> None:
        descriptor = self._descriptor()
        pk = descriptor.primary_key
        values = self.to_dict()
        if descriptor.timestamps is not None:
            values[descriptor.timestamps.created_at] = now
            values[descriptor.timestamps.updated_at] = now

        read_back = False
        if values[pk.name] is None:
            if pk.incrementing:
                del values[pk.name]
                read_back = True
            elif pk.uuid_version is not None:
                values[pk.name] = pk.field_type.generate()
            else:
                raise RequiredFieldError(
                    f"{type(self).__name__}: primary key '{pk.name}' must be set before saving", pk.name
                )
        self._fill_required(values, use_defaults=True)

        builder = type(self).query(db)
        returning = read_back and db.dialect.capabilities.supports_returning
        sql, params = builder.render_insert(values, returning=pk.name if returning else None)
        # the readback must see this insert, not one from another task
        async with db.exclusive() as pinned:
            result = await pinned.execute(sql, params)
            for name, value in values.items():
                setattr(self, name, value)
            if read_back:
                key = await self._read_back_key(pinned, result.rows if returning else None)
                setattr(self, pk.name, key)
        self._exists = True

    async def _read_back_key(self, db: "Database", rows: Optional[List[Dict[str, Any]]]) -> Any:
        pk = self._descriptor().primary_key
        try:
            if rows is None:
                probe = await db.run(db.dialect.last_insert_id(pk.name))
                rows = probe.rows if probe is not None else []
            if not rows or not rows[0].get(pk.name):
                raise DecodeError(f"store returned no generated value for '{pk.name}'", pk.name)
            return decode_value(pk.field_type, rows[0][pk.name], pk.name)
        except EnsembleError as err:
            logger.warning(
                "row inserted into %s but its generated key could not be read: %s",
                self.table_name(),
                err,
            )
            raise PartiallyPersistedError(
                f"{type(self).__name__} was inserted but its '{pk.name}' could not be read back",
                instance=self,
            ) from err

    async def _perform_update(self, db: "Database", now: datetime) -> None:
        descriptor = self._descriptor()
        pk = descriptor.primary_key
        values = self.to_dict()
        key = values.pop(pk.name)
        if key is None:
            raise RequiredFieldError(f"{type(self).__name__}: cannot update a record without '{pk.name}'", pk.name)
        if descriptor.timestamps is not None:
            values.pop(descriptor.timestamps.created_at, None)
            values[descriptor.timestamps.updated_at] = now
        self._fill_required(values, use_defaults=False)
        if not values:
            logger.debug("nothing to update on %s %r", self.table_name(), key)
            return

        affected = await type(self).query(db).where(pk.name, "=", key).update(values)
        if affected == 0:
            raise NotFoundError(f"{type(self).__name__} with {pk.name}={key!r} no longer exists")
        for name, value in values.items():
            setattr(self, name, value)
