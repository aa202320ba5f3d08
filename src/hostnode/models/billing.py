import enum
from sqlalchemy import (
    Column, Integer, BigInteger, JSON, Enum, ForeignKey, DateTime, func, CheckConstraint
)
from sqlalchemy.orm import relationship
from hostnode.db.base import Base

class TransactionType(enum.Enum):
    DEBIT = "debit"    # 借项：用量扣费
    CREDIT = "credit"  # 贷项：充值

class LedgerEntry(Base):
    """
    账本表 - 只追加。
    [关键] 项目余额的每一次变更都必须在同一事务中写入一行。
    """
    __tablename__ = 'project_ledger'

    id = Column(Integer, primary_key=True)
    project_id = Column(Integer, ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True)
    type = Column(Enum(TransactionType), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False, comment="交易金额 (satoshis, 恒为正)")
    balance_after = Column(BigInteger, nullable=False, comment="交易后的余额")
    reason = Column(JSON, nullable=True, comment="自由格式的元数据，如用量明细、付款备注")
    timestamp = Column(DateTime, nullable=False, server_default=func.now(), index=True)

    project = relationship("Project", back_populates="ledger_entries")

    __table_args__ = (
        CheckConstraint('amount > 0', name='positive_amount'),
    )
