"""Per-session application state for the three screens."""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from .generator import GenerationError, ListingGenerator
from .history import HistoryStore
from .images import ImageFile
from .models import GROUPED_NUMBER, ListingResult, NegotiationResponse, check_style, estimate_profit

TABS = ("magic", "negotiate", "history")


def parse_modal_price(raw: Optional[str]) -> Optional[int]:
    """Parse the optional purchase price field; blank means unknown."""
    text = (raw or "").strip()
    if not text:
        return None
    if text.isdigit():
        return int(text)
    if GROUPED_NUMBER.match(text) and not text.startswith("-"):
        return int(re.sub(r"[.,]", "", text))
    raise ValueError("Purchase price must be a whole, non-negative number.")


@dataclass
class AppState:
    """Everything one browser session sees, passed explicitly to the views."""
    generator: ListingGenerator
    history: HistoryStore
    active_tab: str = "magic"

    # Magic listing
    image: Optional[ImageFile] = None
    style: str = "casual"
    modal_price: Optional[int] = None
    listing_result: Optional[ListingResult] = None
    is_listing_loading: bool = False

    # Negotiation
    buyer_message: str = ""
    negotiation_results: List[NegotiationResponse] = field(default_factory=list)
    is_chat_loading: bool = False

    error: Optional[str] = None

    def set_tab(self, tab: Optional[str]) -> None:
        if tab in TABS:
            self.active_tab = tab

    def select_image(self, image: ImageFile) -> None:
        """Replace the current photo; any previous result belongs to the old one."""
        self.image = image
        self.listing_result = None
        self.error = None

    def set_style(self, style: str) -> None:
        self.style = check_style(style)

    def set_modal_price(self, raw: Optional[str]) -> None:
        self.modal_price = parse_modal_price(raw)

    def reset_listing(self) -> None:
        self.image = None
        self.listing_result = None
        self.modal_price = None
        self.error = None

    @property
    def profit(self) -> Optional[int]:
        if self.listing_result is None:
            return None
        return estimate_profit(self.listing_result, self.modal_price)

    def generate_listing(self) -> Optional[ListingResult]:
        """Run one generation for the selected photo and record it in history.

        Returns None without a photo, while another call is in flight, or when
        the call fails (the message is left in self.error).
        """
        if self.image is None or self.is_listing_loading:
            return None
        self.is_listing_loading = True
        self.error = None
        try:
            result = self.generator.generate_listing(self.image, self.style)
        except GenerationError as e:
            self.error = str(e)
            return None
        finally:
            self.is_listing_loading = False
        self.listing_result = result
        self.history.record(self.image, result, self.style, self.modal_price)
        return result

    def generate_replies(self, buyer_message: Optional[str] = None) -> List[NegotiationResponse]:
        """Draft replies for the buyer message; failures leave the previous replies in place."""
        if buyer_message is not None:
            self.buyer_message = buyer_message
        if not self.buyer_message.strip() or self.is_chat_loading:
            return []
        self.is_chat_loading = True
        self.error = None
        try:
            replies = self.generator.generate_replies(self.buyer_message)
        except GenerationError as e:
            self.error = str(e)
            return []
        finally:
            self.is_chat_loading = False
        self.negotiation_results = replies
        return replies

    def delete_history(self, item_id: str) -> None:
        self.history.delete(item_id)

    def clear_history(self) -> None:
        self.history.clear()
