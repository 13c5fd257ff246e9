#!/usr/bin/env python
"""
    Item Schema for STORA,
    including the definition of the Item model and its attributes.

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from datetime import date, datetime
from pydantic import BaseModel
from typing import List, Optional
from stora.core.models import Condition


class Photo(BaseModel):
    id: int
    loan_path: Optional[str] = None
    return_path: Optional[str] = None
    asset_path: Optional[str] = None
    synced: bool = True
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class Item(BaseModel):
    id: int
    owner_id: int
    name: str
    code: str
    quantity: int
    category: str
    condition: Condition
    location: Optional[str] = None
    acquired_on: Optional[date] = None
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    photos: List[Photo] = []

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": 1,
                "owner_id": 7,
                "name": "Proyektor",
                "code": "HMSI/ELK/001",
                "quantity": 3,
                "category": "Elektronik",
                "condition": "Baik",
                "location": "Sekretariat",
                "acquired_on": "2025-01-01",
                "description": None,
                "created_at": "2025-01-01T12:00:00Z",
                "updated_at": "2025-01-01T12:00:00Z",
                "photos": [],
            }
        }


class ItemDetail(Item):
    borrowed_quantity: int
    available_quantity: int


class Quantities(BaseModel):
    total_quantity: int
    borrowed_quantity: int
    available_quantity: int
