#!/usr/bin/env python

"""
    Loan ledger for STORA.

    A loan lends one or more inventory items at once. Availability is never
    stored: it is always `quantity - borrowed`, where borrowed sums the line
    quantities of Borrowed loans. Returning a loan frees its units simply by
    leaving that sum.

    Loan creation locks the referenced item rows, checks availability,
    writes loan, lines and evidence, then re-checks availability inside the
    same transaction before committing, so concurrent loans can never
    overcommit an item.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import datetime
import logging
from collections import Counter
from dataclasses import dataclass

from sqlalchemy import func, or_, select

from stora.configs import DEFAULT_LIMIT, MAX_LIMIT
from stora.core import inventory
from stora.core.blobs import remove_quietly
from stora.core.db import atomic
from stora.core.evidence import Slot, assign, attach, photo_paths
from stora.core.exceptions import InsufficientAvailability, NotFound, ValidationError
from stora.core.models import (
    InventoryItem, Loan, LoanLine, LoanStatus, ReturnStatus, return_status, utcnow
)

logger = logging.getLogger(__name__)

__all__ = [
    'Borrower', 'LineRequest', 'ReturnStatus', 'return_status',
    'create_loan', 'return_loan', 'add_return_photos', 'delete_loan',
    'get_loan', 'list_loans', 'loan_stats', 'due_loans',
]


@dataclass(frozen=True)
class Borrower:
    name: str
    phone: str


@dataclass(frozen=True)
class LineRequest:
    item_id: int
    quantity: int


def _coerce_line(line) -> LineRequest:
    if isinstance(line, LineRequest):
        return line
    if isinstance(line, dict):
        return LineRequest(line.get('item_id'), line.get('quantity'))
    if hasattr(line, 'item_id'):
        return LineRequest(line.item_id, line.quantity)
    item_id, quantity = line
    return LineRequest(item_id, quantity)


def _as_date(value):
    if isinstance(value, datetime.datetime):
        return _as_datetime(value).date()
    if isinstance(value, str):
        try:
            return datetime.date.fromisoformat(value[:10])
        except ValueError:
            return value
    return value


def _validate(borrower, loan_date, due_date, lines):
    errors = []
    if borrower is None or not (borrower.name or '').strip():
        errors.append('borrower_name')
    if borrower is None or not (borrower.phone or '').strip():
        errors.append('borrower_phone')
    if not isinstance(loan_date, datetime.date):
        errors.append('loan_date')
    if not isinstance(due_date, datetime.date):
        errors.append('due_date')
    elif isinstance(loan_date, datetime.date) and due_date < loan_date:
        errors.append('due_date')
    if not lines:
        errors.append('lines')
    for index, line in enumerate(lines):
        if not isinstance(line.item_id, int) or isinstance(line.item_id, bool):
            errors.append(f'lines[{index}].item_id')
        if not isinstance(line.quantity, int) or isinstance(line.quantity, bool) or line.quantity <= 0:
            errors.append(f'lines[{index}].quantity')
    if errors:
        raise ValidationError(fields=errors)


def _lock_items(db, owner_id, item_ids) -> dict:
    """Lock the owner's items in id order (a fixed order avoids deadlocks
    between two loans touching the same items).
    """
    rows = db.execute(
        select(InventoryItem)
        .where(InventoryItem.id.in_(item_ids), InventoryItem.owner_id == owner_id)
        .order_by(InventoryItem.id)
        .with_for_update()
    ).scalars().all()
    items = {item.id: item for item in rows}
    if missing := sorted(set(item_ids) - set(items)):
        raise NotFound(f"Inventory item(s) {', '.join(map(str, missing))} not found.")
    return items


def _shortfalls(lines, requested, available) -> list:
    return [
        {
            "line": index,
            "item_id": line.item_id,
            "requested": requested[line.item_id],
            "available": available[line.item_id],
        }
        for index, line in enumerate(lines)
        if requested[line.item_id] > available[line.item_id]
    ]


def _recheck(db, items):
    """Availability as the transaction now sees it, including its own lines."""
    over = [
        {
            "item_id": item.id,
            "borrowed": borrowed,
            "total": item.quantity,
        }
        for item in items.values()
        if (borrowed := LoanLine.borrowed_sum(db, item.id)) > item.quantity
    ]
    if over:
        logger.warning(f"Availability changed before commit, aborting loan: {over}")
        raise InsufficientAvailability(over)


def create_loan(db, owner_id: int, borrower: Borrower, due_date, lines,
                photos=None, loan_date=None) -> Loan:
    lines = [_coerce_line(line) for line in lines or []]
    loan_date = _as_date(loan_date) or utcnow().date()
    due_date = _as_date(due_date)
    _validate(borrower, loan_date, due_date, lines)

    # Several lines may name the same item; availability applies to the sum.
    requested = Counter()
    for line in lines:
        requested[line.item_id] += line.quantity

    with atomic(db):
        items = _lock_items(db, owner_id, list(requested))
        available = {
            item_id: inventory.available_quantity(db, item_id) for item_id in requested
        }
        if shortfalls := _shortfalls(lines, requested, available):
            raise InsufficientAvailability(shortfalls)

        loan = Loan(
            owner_id=owner_id,
            borrower_name=borrower.name.strip(),
            borrower_phone=borrower.phone.strip(),
            loan_date=loan_date,
            due_date=due_date,
            status=LoanStatus.BORROWED,
        )
        loan.lines = [
            LoanLine(item=items[line.item_id], quantity=line.quantity) for line in lines
        ]
        db.add(loan)
        db.flush()

        for line, path in assign(loan.lines, photos):
            attach(db, line, path, Slot.LOAN)
        db.flush()
        _recheck(db, items)

    logger.info(
        f"Loan {loan.id} created for owner {owner_id}: "
        f"{sum(requested.values())} unit(s) across {len(lines)} line(s)")
    return loan


def get_loan(db, loan_id: int, owner_id: int) -> Loan:
    if loan := Loan.owned(db, loan_id, owner_id):
        return loan
    raise NotFound(f"Loan {loan_id} not found.")


def _as_datetime(value):
    if value is None:
        return utcnow()
    if isinstance(value, datetime.datetime):
        # Naive values are UTC; lateness is judged on the UTC calendar day.
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value.astimezone(datetime.timezone.utc)
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time(), tzinfo=datetime.timezone.utc)
    raise ValidationError(fields=['returned_at'])


def return_loan(db, loan_id: int, owner_id: int, returned_at=None, photos=None) -> Loan:
    """Borrowed -> Returned. Returned is terminal."""
    returned_at = _as_datetime(returned_at)
    with atomic(db):
        loan = Loan.owned(db, loan_id, owner_id)
        if loan is None:
            raise NotFound(f"Loan {loan_id} not found.")
        if loan.status is not LoanStatus.BORROWED:
            raise ValidationError(f"Loan {loan_id} was already returned.", fields=['status'])
        if returned_at.date() < loan.loan_date:
            raise ValidationError("Return precedes the loan date.", fields=['returned_at'])
        loan.status = LoanStatus.RETURNED
        loan.returned_at = returned_at
        for line, path in assign(loan.lines, photos):
            attach(db, line, path, Slot.RETURN)
    logger.info(f"Loan {loan_id} returned ({loan.return_status.value})")
    return loan


def add_return_photos(db, loan_id: int, owner_id: int, photos) -> Loan:
    if not photos:
        raise ValidationError("No photos supplied.", fields=['photos'])
    with atomic(db):
        loan = Loan.owned(db, loan_id, owner_id)
        if loan is None:
            raise NotFound(f"Loan {loan_id} not found.")
        for line, path in assign(loan.lines, photos):
            attach(db, line, path, Slot.RETURN)
    return loan


def delete_loan(db, loan_id: int, owner_id: int, blobs=None) -> list:
    with atomic(db):
        loan = Loan.owned(db, loan_id, owner_id)
        if loan is None:
            raise NotFound(f"Loan {loan_id} not found.")
        paths = photo_paths(line.photo for line in loan.lines)
        # The unit of work deletes photos and lines before the loan row.
        db.delete(loan)
    logger.info(f"Loan {loan_id} deleted for owner {owner_id}")
    if blobs is not None and paths:
        remove_quietly(blobs, paths)
    return paths


def list_loans(db, owner_id: int, status=None, search=None, offset=0, limit=None):
    limit = min(limit or DEFAULT_LIMIT, MAX_LIMIT)
    query = select(Loan).where(Loan.owner_id == owner_id)
    if status:
        try:
            query = query.where(Loan.status == LoanStatus(status))
        except ValueError:
            raise ValidationError(fields=['status'])
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(
            Loan.borrower_name.ilike(pattern),
            Loan.borrower_phone.ilike(pattern)))
    total = db.execute(select(func.count()).select_from(query.subquery())).scalar()
    rows = db.execute(
        query.order_by(Loan.id.desc()).offset(offset or 0).limit(limit)
    ).scalars().all()
    return rows, total


def due_loans(db, owner_id: int, within_days: int = 0, today=None) -> list:
    """Borrowed loans due on or before `today + within_days`, oldest due
    first; what a reminder service needs to notify borrowers.
    """
    today = today or utcnow().date()
    horizon = today + datetime.timedelta(days=within_days)
    return db.execute(
        select(Loan)
        .where(
            Loan.owner_id == owner_id,
            Loan.status == LoanStatus.BORROWED,
            Loan.due_date <= horizon)
        .order_by(Loan.due_date, Loan.id)
    ).scalars().all()


def loan_stats(db, owner_id: int, today=None) -> dict:
    today = today or utcnow().date()
    owned = Loan.owner_id == owner_id
    total = db.execute(select(func.count(Loan.id)).where(owned)).scalar()
    by_status = db.execute(
        select(Loan.status, func.count(Loan.id)).where(owned).group_by(Loan.status)
    ).all()
    overdue = db.execute(
        select(func.count(Loan.id)).where(
            owned,
            Loan.status == LoanStatus.BORROWED,
            Loan.due_date < today)
    ).scalar()
    return {
        "total_loans": total,
        "by_status": {status.value: count for status, count in by_status},
        "overdue": overdue,
    }
