from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import FrozenSet, Optional, Tuple

# Source label recorded for lists imported from a local file
LOCAL_FILE_SOURCE = "local file"

# Wildcard item id: the roll applies to every item
ANY_ITEM = "*"

class WishListRoll(BaseModel):
    model_config = ConfigDict(frozen=True)

    item_id: str
    perks: FrozenSet[str] = Field(default_factory=frozenset)
    notes: Optional[str] = None
    is_undesirable: bool = False  # True = "trash" recommendation

    @property
    def polarity(self) -> str:
        return "trash" if self.is_undesirable else "wish"

class WishListAndInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    rolls: Tuple[WishListRoll, ...] = ()  # File order, duplicates kept
    title: Optional[str] = None
    description: Optional[str] = None

EMPTY_WISHLIST = WishListAndInfo()

class SyncState(BaseModel):
    source: str = ""
    last_updated: Optional[datetime] = None  # Last successful sync
    current: WishListAndInfo = Field(default_factory=WishListAndInfo)

    @property
    def wishlists_enabled(self) -> bool:
        return len(self.current.rolls) > 0
