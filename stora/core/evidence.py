"""
    Evidence photo attachment.

    A loan line carries at most one EvidencePhoto record holding both its
    loan-time and return-time image; inventory items carry any number of
    asset photos.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from stora.core.blobs import is_owned
from stora.core.exceptions import ValidationError
from stora.core.models import EvidencePhoto, InventoryItem, LoanLine

logger = logging.getLogger(__name__)


class Slot(enum.Enum):
    LOAN = 'loan'
    RETURN = 'return'
    ASSET = 'asset'


SLOT_FIELDS = {
    Slot.LOAN: 'loan_path',
    Slot.RETURN: 'return_path',
    Slot.ASSET: 'asset_path',
}


@dataclass(frozen=True)
class PhotoRef:
    """An uploaded photo and the line it belongs to, named either by the
    line's own id or by the inventory item on that line.
    """
    path: str
    item_id: Optional[int] = None
    line_id: Optional[int] = None

    @property
    def is_explicit(self):
        return self.item_id is not None or self.line_id is not None


def _check_owner(path: str, owner_id: int):
    # Recorded paths are removed from the blob store on delete.
    if not is_owned(path, owner_id):
        raise ValidationError(
            f"Photo '{path}' was not uploaded by this account.", fields=["photos"])


def attach(db, parent, path: str, slot: Slot) -> Optional[EvidencePhoto]:
    if isinstance(parent, InventoryItem):
        if slot is not Slot.ASSET:
            raise ValidationError("Inventory items only take asset photos.", fields=["slot"])
        if not path:
            return None
        _check_owner(path, parent.owner_id)
        photo = EvidencePhoto(item=parent, asset_path=path, synced=True)
        db.add(photo)
        return photo

    if isinstance(parent, LoanLine):
        if slot is Slot.ASSET:
            raise ValidationError("Loan lines take loan or return photos.", fields=["slot"])
        photo = parent.photo
        if not path:
            return photo
        _check_owner(path, parent.loan.owner_id)
        field = SLOT_FIELDS[slot]
        if photo is None:
            photo = EvidencePhoto(line=parent, synced=True, **{field: path})
            db.add(photo)
        else:
            previous = getattr(photo, field)
            if previous and previous != path:
                logger.info(f"Replacing {slot.value} photo of line {parent.id}: {previous} -> {path}")
            setattr(photo, field, path)
        return photo

    raise ValidationError(f"Cannot attach evidence to {type(parent).__name__}.")


def _as_ref(photo: Union[str, PhotoRef]) -> PhotoRef:
    return photo if isinstance(photo, PhotoRef) else PhotoRef(path=photo)


def assign(lines: Sequence[LoanLine], photos) -> list:
    """Pair uploaded photos with loan lines.

    Either every photo names its line (by line id or item id) or none does;
    unnamed photos go to lines in order and may not outnumber them. Returns
    a list of ``(line, path)`` pairs.
    """
    refs = [_as_ref(p) for p in photos or []]
    if not refs:
        return []

    explicit = [ref.is_explicit for ref in refs]
    if any(explicit) and not all(explicit):
        raise ValidationError(
            "Photos must either all name their line item or none may.", fields=["photos"])

    if not any(explicit):
        if len(refs) > len(lines):
            raise ValidationError(
                f"{len(refs)} photos for {len(lines)} line items; map each photo "
                "to its item explicitly.", fields=["photos"])
        return [(line, ref.path) for line, ref in zip(lines, refs)]

    by_line = {line.id: line for line in lines if line.id is not None}
    by_item = {}
    for line in lines:
        by_item.setdefault(line.item_id, []).append(line)

    pairs, seen = [], set()
    for ref in refs:
        if ref.line_id is not None:
            line = by_line.get(ref.line_id)
            if line is None:
                raise ValidationError(
                    f"Line {ref.line_id} is not part of this loan.", fields=["photos"])
        else:
            candidates = by_item.get(ref.item_id, [])
            if not candidates:
                raise ValidationError(
                    f"Item {ref.item_id} is not part of this loan.", fields=["photos"])
            if len(candidates) > 1:
                raise ValidationError(
                    f"Item {ref.item_id} appears on several lines; map the photo by line.",
                    fields=["photos"])
            line = candidates[0]
        if id(line) in seen:
            raise ValidationError("Two photos were mapped to the same line item.", fields=["photos"])
        seen.add(id(line))
        pairs.append((line, ref.path))
    return pairs


def photo_paths(photos) -> list:
    return [path for photo in photos if photo is not None for path in photo.paths]
