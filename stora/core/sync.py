#!/usr/bin/env python

"""
    Offline cache reconciliation for STORA.

    The server side serves a full owner-scoped snapshot; there is no cursor
    or change log. The client pushes its pending edits, pulls the snapshot
    and merges it into its cache with `merge_snapshot`, last writer wins.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import datetime
import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Iterable, List, Optional

from sqlalchemy import func, select

from stora.core.models import InventoryItem, Loan, LoanLine, LoanStatus, utcnow
from stora.schemas import ItemDetail, Loan as LoanSchema, Snapshot

logger = logging.getLogger(__name__)


def borrowed_by_item(db, owner_id: int) -> dict:
    rows = db.execute(
        select(LoanLine.item_id, func.sum(LoanLine.quantity))
        .join(Loan, Loan.id == LoanLine.loan_id)
        .where(Loan.owner_id == owner_id, Loan.status == LoanStatus.BORROWED)
        .group_by(LoanLine.item_id)
    ).all()
    return {item_id: int(total or 0) for item_id, total in rows}


def snapshot(db, owner_id: int) -> Snapshot:
    # Taken before reading: anything that changes mid-read is newer than
    # as_of and will be picked up again on the next pull.
    as_of = utcnow()
    borrowed = borrowed_by_item(db, owner_id)
    items = []
    for item in sorted(InventoryItem.get_many(db, owner_id=owner_id), key=lambda i: i.id):
        data = ItemDetail.model_validate({
            **{name: getattr(item, name) for name in ItemDetail.model_fields
               if name not in ('borrowed_quantity', 'available_quantity', 'photos')},
            "photos": list(item.photos),
            "borrowed_quantity": borrowed.get(item.id, 0),
            "available_quantity": item.quantity - borrowed.get(item.id, 0),
        }, from_attributes=True)
        items.append(data)
    loans = [
        LoanSchema.model_validate(loan)
        for loan in sorted(Loan.get_many(db, owner_id=owner_id), key=lambda l: l.id)
    ]
    logger.info(f"Snapshot for owner {owner_id}: {len(items)} item(s), {len(loans)} loan(s)")
    return Snapshot(items=items, loans=loans, as_of=as_of)


def as_utc(value) -> Optional[datetime.datetime]:
    """Accepts datetimes, ISO strings and epoch milliseconds (the mobile
    cache stores `lastModified` as epoch millis); naive values are UTC.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return datetime.datetime.fromtimestamp(value / 1000, tz=datetime.timezone.utc)
    if isinstance(value, str):
        value = datetime.datetime.fromisoformat(value.replace('Z', '+00:00'))
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value


@dataclass
class CachedEntry:
    """One inventory record in the client's local cache."""
    local_id: str
    server_id: Optional[int]
    data: dict
    last_modified: datetime.datetime
    needs_sync: bool = False
    deleted: bool = False

    def __post_init__(self):
        self.last_modified = as_utc(self.last_modified)


@dataclass
class MergePlan:
    upserts: List[CachedEntry] = field(default_factory=list)
    removals: List[CachedEntry] = field(default_factory=list)
    pushes: List[CachedEntry] = field(default_factory=list)

    def apply(self, cache: Iterable[CachedEntry]) -> List[CachedEntry]:
        """The cache as it looks after the plan, keyed by local id."""
        merged = {entry.local_id: entry for entry in cache}
        for entry in self.removals:
            merged.pop(entry.local_id, None)
        for entry in self.upserts:
            merged[entry.local_id] = entry
        return list(merged.values())


def merge_snapshot(cache: Iterable[CachedEntry], server_items: Iterable) -> MergePlan:
    cache = list(cache)
    plan = MergePlan()
    by_server_id = {entry.server_id: entry for entry in cache if entry.server_id is not None}
    seen = set()

    for record in server_items:
        if hasattr(record, 'model_dump'):
            record = record.model_dump(mode='json')
        server_id = record['id']
        seen.add(server_id)
        server_modified = as_utc(record.get('updated_at')) or as_utc(0)
        local = by_server_id.get(server_id)

        if local is None:
            plan.upserts.append(CachedEntry(
                local_id=str(uuid.uuid4()),
                server_id=server_id,
                data=record,
                last_modified=server_modified))
        elif local.needs_sync and local.last_modified > server_modified:
            plan.pushes.append(local)
        else:
            if local.needs_sync:
                logger.info(f"Server copy of item {server_id} is newer; discarding local edit")
            plan.upserts.append(replace(
                local, data=record, last_modified=server_modified,
                needs_sync=False, deleted=False))

    for entry in cache:
        if entry.server_id is None:
            if entry.deleted:
                plan.removals.append(entry)
            elif entry.needs_sync:
                plan.pushes.append(entry)
        elif entry.server_id not in seen:
            # Gone from the server: the server's deletion wins.
            plan.removals.append(entry)

    return plan
