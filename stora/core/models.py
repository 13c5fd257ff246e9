#!/usr/bin/env python

"""
    Ledger Models for STORA,
    including inventory items, loans, their line items and evidence photos.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from sqlalchemy import (
    Column, String, Boolean, Integer, Date, DateTime, Text,
    ForeignKey, UniqueConstraint, CheckConstraint, Enum as SQLAlchemyEnum
)
from sqlalchemy import func, select
from sqlalchemy.orm import relationship, object_session
from stora.core.db import Base
from stora.core.codes import KEY_LENGTH, normalize
import datetime
import enum


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


class Condition(enum.Enum):
    GOOD = 'Baik'
    LIGHT_DAMAGE = 'Rusak Ringan'
    HEAVY_DAMAGE = 'Rusak Berat'

    @classmethod
    def parse(cls, value):
        """Accepts a member, its value ('Rusak Ringan') or its name
        ('light_damage'); returns None when nothing matches.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        text = value.strip()
        for member in cls:
            if text.lower() in (member.value.lower(), member.name.lower()):
                return member
        return None


class LoanStatus(enum.Enum):
    BORROWED = 'Borrowed'
    RETURNED = 'Returned'


class ReturnStatus(enum.Enum):
    ON_TIME = 'OnTime'
    LATE = 'Late'


def _as_date(value):
    if isinstance(value, datetime.datetime):
        if value.tzinfo is not None:
            value = value.astimezone(datetime.timezone.utc)
        return value.date()
    return value


def return_status(due_date, returned_at):
    """Late only when the return happened on a later calendar day than
    the due date; a loan with no return yet reads as on time.
    """
    if returned_at is None or due_date is None:
        return ReturnStatus.ON_TIME
    if _as_date(returned_at) <= _as_date(due_date):
        return ReturnStatus.ON_TIME
    return ReturnStatus.LATE


class InventoryItem(Base):
    __tablename__ = 'inventory_items'
    __table_args__ = (
        UniqueConstraint('owner_id', 'code_key', name='uq_inventory_owner_code'),
    )

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(50), nullable=False)
    code_key = Column(String(KEY_LENGTH), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=0)
    category = Column(String(50), nullable=False)
    condition = Column(SQLAlchemyEnum(Condition), nullable=False, default=Condition.GOOD)
    location = Column(String(100))
    acquired_on = Column(Date)
    description = Column(Text)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    photos = relationship(
        'EvidencePhoto', back_populates='item',
        cascade='all, delete-orphan', order_by='EvidencePhoto.id')
    lines = relationship('LoanLine', back_populates='item', cascade='all, delete-orphan')

    def set_code(self, code):
        self.code = code.strip()
        self.code_key = normalize(self.code)

    @property
    def borrowed_quantity(self):
        """Units currently tied up in Borrowed loans."""
        return LoanLine.borrowed_sum(object_session(self), self.id)

    @property
    def available_quantity(self):
        return self.quantity - self.borrowed_quantity

    @classmethod
    def owned(cls, db, item_id, owner_id, lock=False):
        """Fetch an item only if `owner_id` owns it; optionally hold a row
        lock until the transaction ends.
        """
        query = select(cls).where(cls.id == item_id, cls.owner_id == owner_id)
        if lock:
            query = query.with_for_update()
        return db.execute(query).scalars().first()


class Loan(Base):
    __tablename__ = 'loans'

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, nullable=False, index=True)
    borrower_name = Column(String(100), nullable=False)
    borrower_phone = Column(String(20), nullable=False)
    loan_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    returned_at = Column(DateTime(timezone=True))
    status = Column(SQLAlchemyEnum(LoanStatus), nullable=False, default=LoanStatus.BORROWED)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    lines = relationship(
        'LoanLine', back_populates='loan',
        cascade='all, delete-orphan', order_by='LoanLine.id')

    @property
    def return_status(self):
        return return_status(self.due_date, self.returned_at)

    @property
    def is_borrowed(self):
        return self.status == LoanStatus.BORROWED

    @classmethod
    def owned(cls, db, loan_id, owner_id):
        return db.execute(
            select(cls).where(cls.id == loan_id, cls.owner_id == owner_id)
        ).scalars().first()


class LoanLine(Base):
    __tablename__ = 'loan_lines'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_loan_line_quantity'),
    )

    id = Column(Integer, primary_key=True)
    loan_id = Column(Integer, ForeignKey('loans.id', ondelete='CASCADE'), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey('inventory_items.id', ondelete='CASCADE'), nullable=False, index=True)
    quantity = Column(Integer, nullable=False, default=1)

    loan = relationship('Loan', back_populates='lines')
    item = relationship('InventoryItem', back_populates='lines')
    photo = relationship(
        'EvidencePhoto', back_populates='line', uselist=False,
        cascade='all, delete-orphan')

    @property
    def item_name(self):
        return self.item.name if self.item else None

    @property
    def item_code(self):
        return self.item.code if self.item else None

    @classmethod
    def borrowed_sum(cls, db, item_id):
        total = db.execute(
            select(func.coalesce(func.sum(cls.quantity), 0))
            .join(Loan, Loan.id == cls.loan_id)
            .where(cls.item_id == item_id, Loan.status == LoanStatus.BORROWED)
        ).scalar()
        return int(total or 0)


class EvidencePhoto(Base):
    __tablename__ = 'evidence_photos'
    __table_args__ = (
        UniqueConstraint('line_id', name='uq_evidence_line'),
        CheckConstraint(
            '(line_id IS NULL) <> (item_id IS NULL)', name='ck_evidence_single_parent'),
    )

    id = Column(Integer, primary_key=True)
    line_id = Column(Integer, ForeignKey('loan_lines.id', ondelete='CASCADE'), index=True)
    item_id = Column(Integer, ForeignKey('inventory_items.id', ondelete='CASCADE'), index=True)
    loan_path = Column(String(255))
    return_path = Column(String(255))
    asset_path = Column(String(255))
    synced = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    line = relationship('LoanLine', back_populates='photo')
    item = relationship('InventoryItem', back_populates='photos')

    @property
    def paths(self):
        return [p for p in (self.loan_path, self.return_path, self.asset_path) if p]
