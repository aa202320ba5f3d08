# src/hostnode/dao/billing/ledger_dao.py

from typing import Optional, List
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from hostnode.dao.base_dao import BaseDao
from hostnode.models import LedgerEntry, TransactionType

class LedgerEntryDao(BaseDao[LedgerEntry]):
    def __init__(self, db_session: AsyncSession):
        super().__init__(LedgerEntry, db_session)

    async def list_by_project(
        self,
        project_id: int,
        type: Optional[TransactionType] = None,
        start_time: Optional[datetime] = None,
        end_time: Optional[datetime] = None,
        page: int = 0,
        limit: int = 0,
    ) -> List[LedgerEntry]:
        where = {"project_id": project_id}
        if type is not None:
            where["type"] = type
        return await self.get_list(
            where=where,
            order=[LedgerEntry.timestamp.desc(), LedgerEntry.id.desc()],
            start_time=start_time,
            end_time=end_time,
            time_key="timestamp",
            page=page,
            limit=limit,
        )
