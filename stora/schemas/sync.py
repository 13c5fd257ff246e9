from pydantic import BaseModel
from typing import List
from datetime import datetime
from stora.schemas.item import ItemDetail
from stora.schemas.loan import Loan


class Snapshot(BaseModel):
    """Everything one owner has on the server, as of `as_of`."""
    items: List[ItemDetail] = []
    loans: List[Loan] = []
    as_of: datetime
