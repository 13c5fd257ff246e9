from stora.schemas.item import Photo, Item, ItemDetail, Quantities
from stora.schemas.loan import LoanLine, Loan
from stora.schemas.page import Pagination
from stora.schemas.sync import Snapshot

__all__ = ["Photo", "Item", "ItemDetail", "Quantities", "LoanLine", "Loan", "Pagination", "Snapshot"]
