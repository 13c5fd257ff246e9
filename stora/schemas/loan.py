from pydantic import BaseModel
from typing import List, Optional
from datetime import date, datetime
from stora.core.models import LoanStatus, ReturnStatus
from stora.schemas.item import Photo


class LoanLine(BaseModel):
    id: int
    item_id: int
    item_name: Optional[str] = None
    item_code: Optional[str] = None
    quantity: int
    photo: Optional[Photo] = None

    class Config:
        from_attributes = True


class Loan(BaseModel):
    id: int
    owner_id: int
    borrower_name: str
    borrower_phone: str
    loan_date: date
    due_date: date
    returned_at: Optional[datetime] = None
    status: LoanStatus
    return_status: ReturnStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    lines: List[LoanLine] = []

    class Config:
        from_attributes = True
