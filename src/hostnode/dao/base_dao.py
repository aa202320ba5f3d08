import operator
from typing import Type, TypeVar, Generic, Any, Optional, List
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import inspect, or_, and_, func, select, delete
from sqlalchemy.orm import selectinload, joinedload
from sqlalchemy.sql.selectable import Select
from hostnode.db.base import Base

# --- 使用 TypeVar 和 Generic 实现类型安全的 DAO ---
ModelType = TypeVar("ModelType", bound=Base)

_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
}

class BaseDao(Generic[ModelType]):
    def __init__(self, model_class: Type[ModelType], db_session: AsyncSession):
        self.model: Type[ModelType] = model_class
        self.db_session: AsyncSession = db_session
        primary_keys = inspect(model_class).primary_key
        if not primary_keys:
            raise ValueError(f"Model {model_class.__name__} does not have a primary key.")
        self.pk: str = primary_keys[0].name

    # ==============================================================================
    # 1. 实体/对象方法 (Object Methods)
    # ==============================================================================

    async def get_list(
        self,
        where: Optional[dict | list] = None,
        where_or: Optional[list] = None,
        withs: Optional[list] = None,
        options: Optional[List[Any]] = None,
        order: Optional[list] = None,
        page: int = 0,
        limit: int = 0,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        time_key: str = "created_at",
    ) -> list[ModelType]:
        stmt = self._quick_query(
            where=where, where_or=where_or, withs=withs, options=options, order=order,
            page=page, limit=limit, start_time=start_time, end_time=end_time, time_key=time_key
        )
        executed = await self.db_session.execute(stmt)
        return list(executed.scalars().unique().all())

    async def get_one(
        self,
        where: Optional[dict | list] = None,
        withs: Optional[list] = None,
        options: Optional[List[Any]] = None,
        order: Optional[list] = None
    ) -> Optional[ModelType]:
        stmt = self._quick_query(where=where, withs=withs, options=options, order=order)
        executed = await self.db_session.execute(stmt)
        return executed.scalars().first()

    async def get_by_pk(self, pk_value: Any, withs: Optional[list] = None) -> Optional[ModelType]:
        return await self.get_one(where={self.pk: pk_value}, withs=withs)

    async def count(self, where: Optional[dict | list] = None) -> int:
        subquery_stmt = self._quick_query(where=where).subquery()
        count_stmt = select(func.count()).select_from(subquery_stmt)
        executed = await self.db_session.execute(count_stmt)
        return executed.scalar() or 0

    async def add(self, instance: ModelType, auto_flush: bool = True) -> ModelType:
        self.db_session.add(instance)
        if auto_flush:
            await self.db_session.flush()
            await self.db_session.refresh(instance)
        return instance

    # ==============================================================================
    # 2. 数据/批量方法 (Data/Bulk Methods)
    # ==============================================================================

    async def delete_where(self, where: dict | list) -> int:
        if not where:
            return 0
        conditions = self._where_format(where)
        stmt = delete(self.model).where(*conditions)
        executed = await self.db_session.execute(stmt)
        return executed.rowcount

    # ==============================================================================
    # 3. 查询构建辅助方法 (Query Building Helpers)
    # ==============================================================================

    def _quick_query(
        self,
        stmt: Optional[Select] = None,
        where: Optional[dict | list] = None,
        where_or: Optional[list] = None,
        withs: Optional[list] = None,
        options: Optional[List[Any]] = None,
        order: Optional[list] = None,
        page: int = 0,
        limit: int = 0,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        time_key: str = "created_at"
    ) -> Select:
        """
        一个线性的、清晰的查询构建方法。
        """
        if stmt is None:
            stmt = select(self.model)

        if where is not None:
            stmt = stmt.filter(*self._where_format(where))

        if where_or is not None:
            stmt = stmt.filter(or_(*self._where_format(where_or, combine=False)))

        if start_time is not None:
            stmt = stmt.filter(getattr(self.model, time_key) >= start_time)
        if end_time is not None:
            stmt = stmt.filter(getattr(self.model, time_key) <= end_time)

        if withs:
            stmt = stmt.options(*[self._build_loader_option(config) for config in withs])

        if options is not None:
            stmt = stmt.options(*options)

        if order is not None:
            stmt = stmt.order_by(*order)

        if page > 0 and limit > 0:
            stmt = stmt.limit(limit).offset((page - 1) * limit)

        return stmt

    def _build_loader_option(self, config: str | dict) -> Any:
        if isinstance(config, str):
            return selectinload(getattr(self.model, config))
        if isinstance(config, dict):
            name = config.get("name")
            if not name:
                raise ValueError("Relation 'name' is required in withs configuration.")
            loader_func = {"selectinload": selectinload, "joinedload": joinedload}.get(config.get("loader", "selectinload"))
            if not loader_func:
                raise ValueError(f"Invalid loader specified: {config.get('loader')}")
            return loader_func(getattr(self.model, name))
        raise TypeError("Unsupported 'withs' configuration type. Must be str or dict.")

    def _where_format(self, conditions: list | dict, combine: bool = True) -> list:
        if not conditions:
            return []

        processed_conditions = []
        if isinstance(conditions, dict):
            processed_conditions = [getattr(self.model, field) == value for field, value in conditions.items()]
        else:
            for condition in conditions:
                if isinstance(condition, (list, tuple)):
                    field, op, value = condition
                    column = getattr(self.model, field)
                    if op == 'in':
                        processed_conditions.append(column.in_(value))
                    elif op in _OPERATORS:
                        processed_conditions.append(_OPERATORS[op](column, value))
                    else:
                        raise ValueError(f"Unsupported operator: {op}")
                else:
                    processed_conditions.append(condition)
        if combine and len(processed_conditions) > 1:
            processed_conditions = [and_(*processed_conditions)]
        return processed_conditions
