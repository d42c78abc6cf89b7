"""Listing, negotiation and history records for SellFast."""

import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

LISTING_STYLES = ("casual", "formal")
NEGOTIATION_TONES = ("Polite", "Firm", "Playful")
LISTING_FIELDS = ("photo_score", "photo_advice", "title", "description", "suggested_price", "hashtags")

# Thousands-grouped integers such as "1.250.000" or "1,250,000"
GROUPED_NUMBER = re.compile(r"^-?\d{1,3}(?:([.,])\d{3})(?:\1\d{3})*$")

# Milliseconds at 3000-01-01 UTC; later stamps cannot be displayed as dates
MAX_TIMESTAMP_MS = 32503680000000


def check_style(style: str) -> str:
    """Return the normalized tone selector or raise ValueError."""
    if not isinstance(style, str):
        raise ValueError(f"Listing style must be a string, got {type(style).__name__}.")
    value = style.strip().lower()
    if value not in LISTING_STYLES:
        raise ValueError(f"Unknown listing style '{style}' (use casual or formal).")
    return value


def _as_int(value: Any, field: str) -> int:
    """Coerce integral floats and numeric strings; reject anything else."""
    if isinstance(value, bool):
        raise ValueError(f"Field '{field}' must be an integer, got a boolean.")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if GROUPED_NUMBER.match(text):
            return int(re.sub(r"[.,]", "", text))
        try:
            number = float(text)
        except ValueError:
            number = None
        if number is not None and number.is_integer():
            return int(number)
    raise ValueError(f"Field '{field}' must be an integer, got {value!r}.")


def _as_str(value: Any, field: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"Field '{field}' must be a string, got {type(value).__name__}.")
    return value.strip()


@dataclass(frozen=True)
class ListingResult:
    """Structured listing returned by the generator."""
    photo_score: int
    photo_advice: str
    title: str
    description: str
    suggested_price: int
    hashtags: str

    @classmethod
    def from_dict(cls, data: Any) -> "ListingResult":
        """Validate untrusted model output against the listing schema.

        Every field is required. Numbers are coerced where lossless, the photo
        score is clamped into 1..10, and anything else raises ValueError.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Listing must be a JSON object, got {type(data).__name__}.")
        missing = [f for f in LISTING_FIELDS if f not in data or data[f] is None]
        if missing:
            raise ValueError(f"Listing is missing required fields: {', '.join(missing)}")

        score = min(10, max(1, _as_int(data["photo_score"], "photo_score")))
        price = _as_int(data["suggested_price"], "suggested_price")
        if price < 0:
            raise ValueError("Field 'suggested_price' must not be negative.")
        title = _as_str(data["title"], "title")
        if not title:
            raise ValueError("Field 'title' must not be empty.")

        return cls(
            photo_score=score,
            photo_advice=_as_str(data["photo_advice"], "photo_advice"),
            title=title,
            description=_as_str(data["description"], "description"),
            suggested_price=price,
            hashtags=_as_str(data["hashtags"], "hashtags"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class NegotiationResponse:
    """One suggested seller reply, tagged with its tone."""
    type: str
    text: str

    @classmethod
    def from_dict(cls, data: Any) -> "NegotiationResponse":
        if not isinstance(data, dict):
            raise ValueError("Reply must be a JSON object.")
        tone = _as_str(data.get("type"), "type")
        # Models occasionally answer in lower case
        tone = next((t for t in NEGOTIATION_TONES if t.lower() == tone.lower()), tone)
        if tone not in NEGOTIATION_TONES:
            raise ValueError(f"Unknown reply tone '{tone}'.")
        text = _as_str(data.get("text"), "text")
        if not text:
            raise ValueError(f"Reply '{tone}' has no text.")
        return cls(type=tone, text=text)

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def parse_replies(items: Any) -> List[NegotiationResponse]:
    """Validate a reply list: exactly one reply per canonical tone, in canonical order."""
    if isinstance(items, dict) and "replies" in items:
        items = items["replies"]
    if not isinstance(items, list):
        raise ValueError("Replies must be a JSON array.")
    replies = [NegotiationResponse.from_dict(item) for item in items]
    tones = sorted(r.type for r in replies)
    if tones != sorted(NEGOTIATION_TONES):
        raise ValueError(f"Expected one reply per tone {NEGOTIATION_TONES}, got {[r.type for r in replies]}.")
    return sorted(replies, key=lambda r: NEGOTIATION_TONES.index(r.type))


@dataclass(frozen=True)
class HistoryItem:
    """A past generation kept in the history list."""
    id: str
    timestamp: int
    thumbnail: str
    result: ListingResult
    style: str
    modal_price: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Any) -> "HistoryItem":
        if not isinstance(data, dict):
            raise ValueError(f"History item must be a JSON object, got {type(data).__name__}.")
        timestamp = int(data["timestamp"])
        if not 0 <= timestamp <= MAX_TIMESTAMP_MS:
            raise ValueError(f"History timestamp out of range: {timestamp}")
        modal = data.get("modalPrice")
        return cls(
            id=str(data["id"]),
            timestamp=timestamp,
            thumbnail=str(data["thumbnail"]),
            result=ListingResult.from_dict(data["result"]),
            style=check_style(data["style"]),
            modal_price=None if modal is None else int(modal),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "timestamp": self.timestamp,
            "thumbnail": self.thumbnail,
            "result": self.result.to_dict(),
            "style": self.style,
        }
        if self.modal_price is not None:
            data["modalPrice"] = self.modal_price
        return data


# ---------------------------------------------------------------------------------
# Display helpers
# ---------------------------------------------------------------------------------

def format_price(amount: int, currency: str = "IDR") -> str:
    """Format a whole-unit price, e.g. 1250000 -> 'Rp 1.250.000'."""
    sign = "-" if amount < 0 else ""
    grouped = f"{abs(int(amount)):,}"
    if currency.upper() == "IDR":
        return f"{sign}Rp {grouped.replace(',', '.')}"
    return f"{sign}{currency.upper()} {grouped}"


def hashtag_list(result: ListingResult) -> List[str]:
    return [tag for tag in result.hashtags.split() if tag]


def listing_text(result: ListingResult, currency: str = "IDR") -> str:
    """Compose the text copied to the clipboard from a result."""
    return (
        f"{result.title}\n\n{result.description}\n\n"
        f"Price: {format_price(result.suggested_price, currency)}\n\n{result.hashtags}"
    )


def estimate_profit(result: ListingResult, modal_price: Optional[int]) -> Optional[int]:
    """Suggested price minus the purchase price, when the purchase price is known."""
    if modal_price is None:
        return None
    return result.suggested_price - modal_price
