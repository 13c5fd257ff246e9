from datetime import date, datetime
from pydantic import BaseModel
from typing import List, Optional, Union


class ItemCreate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    quantity: Optional[int] = None
    category: Optional[str] = None
    condition: Optional[str] = None
    location: Optional[str] = None
    acquired_on: Optional[date] = None
    description: Optional[str] = None
    photos: List[str] = []


class ItemUpdate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    quantity: Optional[int] = None
    category: Optional[str] = None
    condition: Optional[str] = None
    location: Optional[str] = None
    acquired_on: Optional[date] = None
    description: Optional[str] = None


class PhotoMapping(BaseModel):
    """An already-uploaded photo path and the loan line it belongs to."""
    path: str
    item_id: Optional[int] = None
    line_id: Optional[int] = None


class LoanLineIn(BaseModel):
    item_id: int
    quantity: int


class LoanCreate(BaseModel):
    borrower_name: str
    borrower_phone: str
    due_date: date
    loan_date: Optional[date] = None
    lines: List[LoanLineIn]
    photos: List[Union[str, PhotoMapping]] = []


class ReturnRequest(BaseModel):
    returned_at: Optional[datetime] = None
    photos: List[Union[str, PhotoMapping]] = []
