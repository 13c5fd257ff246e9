#!/usr/bin/env python

"""
    Inventory store for STORA,
    owner-scoped registration, editing and removal of inventory items,
    duplicate code detection and live availability.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import datetime
import logging
from typing import Optional

from sqlalchemy import func, or_, select

from stora.configs import DEFAULT_LIMIT, MAX_LIMIT
from stora.core.codes import KEY_LENGTH, normalize
from stora.core.db import atomic
from stora.core.evidence import Slot, attach, photo_paths
from stora.core.blobs import remove_quietly
from stora.core.exceptions import DuplicateCode, NotFound, ValidationError
from stora.core.models import Condition, InventoryItem, LoanLine

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('name', 'code', 'quantity', 'category', 'condition')
OPTIONAL_FIELDS = ('location', 'acquired_on', 'description')
TEXT_LIMITS = {'name': 100, 'code': 50, 'category': 50, 'location': 100}


def _blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def _as_dict(attrs):
    if hasattr(attrs, 'model_dump'):
        return attrs.model_dump(exclude_unset=True)
    return dict(attrs or {})


def _clean(attrs, partial=False) -> dict:
    """Validate and coerce item attributes, collecting every bad field
    before failing so the caller can fix them in one round trip.
    """
    attrs = _as_dict(attrs)
    data, errors = {}, []

    for field in REQUIRED_FIELDS:
        if field not in attrs:
            if not partial:
                errors.append(field)
            continue
        if _blank(attrs[field]):
            errors.append(field)
            continue
        data[field] = attrs[field]

    for field in OPTIONAL_FIELDS:
        if field in attrs:
            value = attrs[field]
            data[field] = None if _blank(value) else value

    if 'quantity' in data:
        try:
            quantity = int(data['quantity'])
        except (TypeError, ValueError):
            errors.append('quantity')
        else:
            # Registration needs at least one unit; edits may record zero.
            if quantity < (0 if partial else 1):
                errors.append('quantity')
            data['quantity'] = quantity

    if 'condition' in data:
        condition = Condition.parse(data['condition'])
        if condition is None:
            errors.append('condition')
        data['condition'] = condition

    if data.get('acquired_on') is not None and not isinstance(data['acquired_on'], datetime.date):
        try:
            data['acquired_on'] = datetime.date.fromisoformat(str(data['acquired_on'])[:10])
        except ValueError:
            errors.append('acquired_on')

    for field, limit in TEXT_LIMITS.items():
        if isinstance(data.get(field), str):
            data[field] = data[field].strip()
            if len(data[field]) > limit:
                errors.append(field)

    if isinstance(data.get('code'), str) and len(normalize(data['code'])) > KEY_LENGTH:
        errors.append('code')

    if errors:
        raise ValidationError(fields=sorted(set(errors), key=errors.index))
    return data


def find_duplicate(db, owner_id: int, code: str, exclude_id: Optional[int] = None):
    query = select(InventoryItem).where(
        InventoryItem.owner_id == owner_id,
        InventoryItem.code_key == normalize(code))
    if exclude_id is not None:
        query = query.where(InventoryItem.id != exclude_id)
    return db.execute(query).scalars().first()


def _check_duplicate(db, owner_id, code, exclude_id=None):
    if existing := find_duplicate(db, owner_id, code, exclude_id=exclude_id):
        raise DuplicateCode(code, existing.id)


def get(db, item_id: int, owner_id: int) -> InventoryItem:
    if item := InventoryItem.owned(db, item_id, owner_id):
        return item
    raise NotFound(f"Inventory item {item_id} not found.")


def create(db, owner_id: int, attrs, photos=None) -> InventoryItem:
    data = _clean(attrs)
    code = data.pop('code')
    with atomic(db, on_conflict=lambda e: DuplicateCode(code)):
        _check_duplicate(db, owner_id, code)
        item = InventoryItem(owner_id=owner_id, **data)
        item.set_code(code)
        db.add(item)
        for path in photos or []:
            attach(db, item, path, Slot.ASSET)
    logger.info(f"Registered item {item.id} ({item.code}) for owner {owner_id}")
    return item


def update(db, item_id: int, owner_id: int, attrs) -> InventoryItem:
    data = _clean(attrs, partial=True)
    code = data.pop('code', None)
    with atomic(db, on_conflict=lambda e: DuplicateCode(code)):
        # Lock while lowering quantity so no loan can slip in under it.
        item = InventoryItem.owned(db, item_id, owner_id, lock='quantity' in data)
        if item is None:
            raise NotFound(f"Inventory item {item_id} not found.")
        if code is not None:
            _check_duplicate(db, owner_id, code, exclude_id=item.id)
            item.set_code(code)
        if 'quantity' in data:
            borrowed = LoanLine.borrowed_sum(db, item.id)
            if data['quantity'] < borrowed:
                raise ValidationError(
                    f"Quantity {data['quantity']} is below the {borrowed} unit(s) on loan.",
                    fields=['quantity'])
        for field, value in data.items():
            setattr(item, field, value)
    logger.info(f"Updated item {item.id} for owner {owner_id}")
    return item


def add_photos(db, item_id: int, owner_id: int, paths) -> InventoryItem:
    with atomic(db):
        item = InventoryItem.owned(db, item_id, owner_id)
        if item is None:
            raise NotFound(f"Inventory item {item_id} not found.")
        for path in paths:
            attach(db, item, path, Slot.ASSET)
    return item


def delete(db, item_id: int, owner_id: int, blobs=None) -> list:
    """Remove an item with its photos and any loan lines referencing it.
    Loans left without a line go with it.

    Blob files are removed after the metadata commit; failures there are
    logged and never undo the delete. Returns the photo paths involved.
    """
    with atomic(db):
        item = InventoryItem.owned(db, item_id, owner_id)
        if item is None:
            raise NotFound(f"Inventory item {item_id} not found.")
        paths = photo_paths(item.photos) + photo_paths(line.photo for line in item.lines)
        if item.lines:
            logger.warning(f"Deleting item {item_id} drops {len(item.lines)} loan line(s)")
        emptied = {line.loan for line in item.lines
                   if all(other.item_id == item.id for other in line.loan.lines)}
        for loan in emptied:
            logger.warning(f"Deleting item {item_id} empties loan {loan.id}; removing it")
            db.delete(loan)
        db.delete(item)
    logger.info(f"Deleted item {item_id} for owner {owner_id}")
    if blobs is not None and paths:
        remove_quietly(blobs, paths)
    return paths


def borrowed_quantity(db, item_id: int) -> int:
    return LoanLine.borrowed_sum(db, item_id)


def available_quantity(db, item_id: int) -> int:
    item = db.get(InventoryItem, item_id)
    if item is None:
        raise NotFound(f"Inventory item {item_id} not found.")
    return item.quantity - borrowed_quantity(db, item_id)


def quantities(db, item_id: int, owner_id: int) -> dict:
    item = get(db, item_id, owner_id)
    borrowed = borrowed_quantity(db, item.id)
    return {
        "total_quantity": item.quantity,
        "borrowed_quantity": borrowed,
        "available_quantity": item.quantity - borrowed,
    }


def list_items(db, owner_id: int, search=None, category=None, condition=None,
               offset=0, limit=None):
    limit = min(limit or DEFAULT_LIMIT, MAX_LIMIT)
    query = select(InventoryItem).where(InventoryItem.owner_id == owner_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(
            InventoryItem.name.ilike(pattern),
            InventoryItem.code.ilike(pattern)))
    if category:
        query = query.where(InventoryItem.category == category)
    if condition:
        parsed = Condition.parse(condition)
        if parsed is None:
            raise ValidationError(fields=['condition'])
        query = query.where(InventoryItem.condition == parsed)

    total = db.execute(select(func.count()).select_from(query.subquery())).scalar()
    rows = db.execute(
        query.order_by(InventoryItem.id.desc()).offset(offset or 0).limit(limit)
    ).scalars().all()
    return rows, total


def stats(db, owner_id: int) -> dict:
    owned = InventoryItem.owner_id == owner_id
    total = db.execute(select(func.count(InventoryItem.id)).where(owned)).scalar()
    by_condition = db.execute(
        select(InventoryItem.condition, func.count(InventoryItem.id))
        .where(owned).group_by(InventoryItem.condition)
    ).all()
    by_category = db.execute(
        select(InventoryItem.category, func.count(InventoryItem.id))
        .where(owned).group_by(InventoryItem.category)
    ).all()
    return {
        "total_items": total,
        "by_condition": {condition.value: count for condition, count in by_condition},
        "by_category": {category: count for category, count in by_category},
    }
