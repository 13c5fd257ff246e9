#!/usr/bin/env python

"""
    API routes for STORA,
    inventory items, loans with their evidence photos, and the sync snapshot.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import json
import logging
from typing import List, Optional
from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Header,
    Query,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import JSONResponse
from stora.configs import ALLOWED_PHOTO_TYPES, DEFAULT_LIMIT, MAX_LIMIT, MAX_PHOTO_SIZE, MAX_PHOTOS_PER_REQUEST
from stora.core import auth, inventory, loans, sync
from stora.core.blobs import get_blob_store, owner_prefix, remove_quietly, unique_name
from stora.core.db import get_db
from stora.core.evidence import PhotoRef
from stora.core.exceptions import (
    AuthenticationError,
    BlobStoreError,
    DuplicateCode,
    InsufficientAvailability,
    InvalidPhotoError,
    NotFound,
    PhotoTooLargeError,
    StorageFailure,
    StoraError,
    ValidationError,
)
from stora.core.loans import Borrower, LineRequest
from stora.routes.schemas import ItemCreate, ItemUpdate, LoanCreate, ReturnRequest
from stora.schemas import ItemDetail, Loan, Pagination, Quantities, Snapshot

logger = logging.getLogger(__name__)

router = APIRouter()

STATUS_CODES = {
    PhotoTooLargeError: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
    NotFound: status.HTTP_404_NOT_FOUND,
    DuplicateCode: status.HTTP_409_CONFLICT,
    InsufficientAvailability: status.HTTP_409_CONFLICT,
    BlobStoreError: status.HTTP_502_BAD_GATEWAY,
    StorageFailure: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_for(error: StoraError) -> int:
    for cls in type(error).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def stora_error_handler(request: Request, exc: StoraError):
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=code, content=exc.to_dict())


def get_owner_id(authorization: Optional[str] = Header(None)) -> int:
    owner_id = auth.verify_session_token(auth.bearer_token(authorization))
    if owner_id is None:
        raise AuthenticationError("Missing or invalid bearer token.")
    return owner_id


def page_limit(limit: Optional[int]) -> int:
    return min(limit or DEFAULT_LIMIT, MAX_LIMIT)


def store_photos(blobs, files: List[UploadFile], prefix: str) -> List[str]:
    """Checks every upload before storing any of them."""
    files = [fp for fp in files or [] if fp.filename]
    if len(files) > MAX_PHOTOS_PER_REQUEST:
        raise ValidationError(
            f"At most {MAX_PHOTOS_PER_REQUEST} photos per request.", fields=["photos"])
    for fp in files:
        if fp.content_type not in ALLOWED_PHOTO_TYPES:
            raise InvalidPhotoError(
                f"{fp.filename} is not an image ({fp.content_type}).", fields=["photos"])
        if fp.size is not None and fp.size > MAX_PHOTO_SIZE:
            one_mb = 1024 * 1024
            raise PhotoTooLargeError(
                f"{fp.filename} exceeds {MAX_PHOTO_SIZE // one_mb}MB.", fields=["photos"])
    return [blobs.put(fp.file, unique_name(prefix, fp.filename), fp.content_type) for fp in files]


def parse_json_field(raw: Optional[str], field: str):
    if raw is None or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except ValueError:
        raise ValidationError(f"'{field}' must be valid JSON.", fields=[field])


def photo_refs(paths, item_ids=None, line_ids=None) -> list:
    """Pairs stored paths with an optional list of item or line ids given
    in the same order as the uploaded files.
    """
    mapping = item_ids if item_ids is not None else line_ids
    if mapping is None:
        return list(paths)
    if not isinstance(mapping, list) or len(mapping) != len(paths):
        raise ValidationError(
            "Photo mapping must list one id per uploaded photo.", fields=["photos"])
    key = "item_id" if item_ids is not None else "line_id"
    return [PhotoRef(path=path, **{key: ref}) for path, ref in zip(paths, mapping)]


def as_refs(photos) -> list:
    return [
        photo if isinstance(photo, str)
        else PhotoRef(path=photo.path, item_id=photo.item_id, line_id=photo.line_id)
        for photo in photos or []
    ]


def cleanup_on_error(blobs, paths):
    """Removes freshly stored uploads when the ledger rejects them."""
    if paths:
        removed = remove_quietly(blobs, paths)
        logger.info(f"Removed {removed}/{len(paths)} orphaned upload(s)")


# Items

@router.get("/items")
def list_items(
        search: Optional[str] = None,
        category: Optional[str] = None,
        condition: Optional[str] = None,
        offset: int = Query(0, ge=0),
        limit: Optional[int] = Query(None, ge=1),
        owner_id: int = Depends(get_owner_id),
        db=Depends(get_db)):
    limit = page_limit(limit)
    rows, total = inventory.list_items(
        db, owner_id, search=search, category=category, condition=condition,
        offset=offset, limit=limit)
    return {
        "items": [ItemDetail.model_validate(item) for item in rows],
        "pagination": Pagination.of(offset, limit, total),
    }


@router.post("/items", status_code=status.HTTP_201_CREATED, response_model=ItemDetail)
def create_item(body: ItemCreate, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
    photos = body.photos
    attrs = body.model_dump(exclude_unset=True, exclude={"photos"})
    return inventory.create(db, owner_id, attrs, photos=photos)


@router.get("/items/stats")
def item_stats(owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
    return inventory.stats(db, owner_id)


@router.get("/items/{item_id}", response_model=ItemDetail)
def get_item(item_id: int, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
    return inventory.get(db, item_id, owner_id)


@router.put("/items/{item_id}", response_model=ItemDetail)
def update_item(item_id: int, body: ItemUpdate,
                owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
    return inventory.update(db, item_id, owner_id, body)


@router.delete("/items/{item_id}")
def delete_item(item_id: int, owner_id: int = Depends(get_owner_id),
                db=Depends(get_db), blobs=Depends(get_blob_store)):
    paths = inventory.delete(db, item_id, owner_id, blobs=blobs)
    return {"success": True, "id": item_id, "photos_removed": len(paths)}


@router.get("/items/{item_id}/quantity", response_model=Quantities)
def item_quantity(item_id: int, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
    return inventory.quantities(db, item_id, owner_id)


@router.post("/items/{item_id}/photos", status_code=status.HTTP_201_CREATED, response_model=ItemDetail)
def upload_item_photos(
        item_id: int,
        photos: List[UploadFile] = File(..., description="Asset photos of the item"),
        owner_id: int = Depends(get_owner_id),
        db=Depends(get_db),
        blobs=Depends(get_blob_store)):
    inventory.get(db, item_id, owner_id)
    paths = store_photos(blobs, photos, f"{owner_prefix(owner_id)}item-{item_id}")
    try:
        return inventory.add_photos(db, item_id, owner_id, paths)
    except StoraError:
        cleanup_on_error(blobs, paths)
        raise


# Loans

@router.get("/loans")
def list_loans(
        loan_status: Optional[str] = Query(None, alias="status"),
        search: Optional[str] = None,
        offset: int = Query(0, ge=0),
        limit: Optional[int] = Query(None, ge=1),
        owner_id: int = Depends(get_owner_id),
        db=Depends(get_db)):
    limit = page_limit(limit)
    rows, total = loans.list_loans(
        db, owner_id, status=loan_status, search=search, offset=offset, limit=limit)
    return {
        "loans": [Loan.model_validate(loan) for loan in rows],
        "pagination": Pagination.of(offset, limit, total),
    }


@router.post("/loans", status_code=status.HTTP_201_CREATED, response_model=Loan)
def create_loan(body: LoanCreate, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
    return loans.create_loan(
        db, owner_id,
        Borrower(body.borrower_name, body.borrower_phone),
        body.due_date,
        body.lines,
        photos=as_refs(body.photos),
        loan_date=body.loan_date,
    )


@router.post("/loans/with-photos", status_code=status.HTTP_201_CREATED, response_model=Loan)
def create_loan_with_photos(
        borrower_name: str = Form(...),
        borrower_phone: str = Form(...),
        due_date: str = Form(..., description="ISO date, e.g. 2025-01-31"),
        lines: str = Form(..., description='JSON list, e.g. [{"item_id": 1, "quantity": 2}]'),
        loan_date: Optional[str] = Form(None),
        photo_items: Optional[str] = Form(
            None, description="JSON list of item ids, one per uploaded photo"),
        photos: Optional[List[UploadFile]] = File(None),
        owner_id: int = Depends(get_owner_id),
        db=Depends(get_db),
        blobs=Depends(get_blob_store)):
    requested = parse_json_field(lines, "lines")
    if not isinstance(requested, list):
        raise ValidationError("'lines' must be a JSON list.", fields=["lines"])
    if not all(isinstance(line, dict) for line in requested):
        raise ValidationError("Each line needs an item_id and quantity.", fields=["lines"])
    mapping = parse_json_field(photo_items, "photo_items")

    paths = store_photos(blobs, photos, f"{owner_prefix(owner_id)}loan")
    try:
        return loans.create_loan(
            db, owner_id,
            Borrower(borrower_name, borrower_phone),
            due_date,
            [LineRequest(line.get("item_id"), line.get("quantity")) for line in requested],
            photos=photo_refs(paths, item_ids=mapping),
            loan_date=loan_date,
        )
    except StoraError:
        cleanup_on_error(blobs, paths)
        raise


@router.get("/loans/stats")
def loan_stats(owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
    return loans.loan_stats(db, owner_id)


@router.get("/loans/due", response_model=List[Loan])
def due_loans(within_days: int = Query(0, ge=0),
              owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
    return loans.due_loans(db, owner_id, within_days=within_days)


@router.get("/loans/{loan_id}", response_model=Loan)
def get_loan(loan_id: int, owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
    return loans.get_loan(db, loan_id, owner_id)


@router.delete("/loans/{loan_id}")
def delete_loan(loan_id: int, owner_id: int = Depends(get_owner_id),
                db=Depends(get_db), blobs=Depends(get_blob_store)):
    paths = loans.delete_loan(db, loan_id, owner_id, blobs=blobs)
    return {"success": True, "id": loan_id, "photos_removed": len(paths)}


@router.post("/loans/{loan_id}/return", response_model=Loan)
def return_loan(loan_id: int, body: Optional[ReturnRequest] = None,
                owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
    body = body or ReturnRequest()
    return loans.return_loan(
        db, loan_id, owner_id, returned_at=body.returned_at, photos=as_refs(body.photos))


@router.patch("/loans/{loan_id}/return-photos", response_model=Loan)
def upload_return_photos(
        loan_id: int,
        photos: List[UploadFile] = File(...),
        photo_items: Optional[str] = Form(None),
        photo_lines: Optional[str] = Form(None),
        owner_id: int = Depends(get_owner_id),
        db=Depends(get_db),
        blobs=Depends(get_blob_store)):
    loans.get_loan(db, loan_id, owner_id)
    item_ids = parse_json_field(photo_items, "photo_items")
    line_ids = parse_json_field(photo_lines, "photo_lines")
    if item_ids is not None and line_ids is not None:
        raise ValidationError(
            "Map return photos by item or by line, not both.", fields=["photos"])

    paths = store_photos(blobs, photos, f"{owner_prefix(owner_id)}return-{loan_id}")
    try:
        return loans.add_return_photos(
            db, loan_id, owner_id, photo_refs(paths, item_ids=item_ids, line_ids=line_ids))
    except StoraError:
        cleanup_on_error(blobs, paths)
        raise


# Sync

@router.get("/sync/snapshot", response_model=Snapshot)
def sync_snapshot(owner_id: int = Depends(get_owner_id), db=Depends(get_db)):
    return sync.snapshot(db, owner_id)
