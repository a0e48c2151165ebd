import base64
import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Dict, Any


class Game(str, Enum):
    POKEMON = "pokemon"
    MAGIC = "magic"
    YUGIOH = "yugioh"
    ONEPIECE = "onepiece"
    DRAGONBALL = "dragonball"
    LORCANA = "lorcana"
    UNIONARENA = "unionarena"
    MARVEL = "marvel"


class ScanSource(str, Enum):
    CACHE = "cache"
    LIVE = "live"


@dataclass(frozen=True)
class ImagePayload:
    data: bytes
    mime_type: str = "image/jpeg"
    extension: str = "jpg"

    @property
    def digest(self) -> str:
        """SHA-256 of the raw image bytes."""
        return hashlib.sha256(self.data).hexdigest()

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def as_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64}"


@dataclass
class Prices:
    low: Optional[float] = None
    market: Optional[float] = None
    high: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {"low": self.low, "market": self.market, "high": self.high}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Prices":
        data = data or {}
        return cls(low=data.get("low"), market=data.get("market"), high=data.get("high"))


@dataclass
class RawCandidate:
    """An identification hypothesis straight from a vision or recognition provider."""
    card_name: str
    game: Optional[str] = None
    set_name: Optional[str] = None
    card_number: Optional[str] = None
    rarity: Optional[str] = None
    variant: Optional[str] = None
    confidence: Optional[float] = None


@dataclass
class PriceQuote:
    low: Optional[float] = None
    market: Optional[float] = None
    high: Optional[float] = None
    image_url: Optional[str] = None
    product_id: Optional[str] = None
    source: Optional[str] = None
    # Catalog attributes, used to fill gaps in the raw candidate
    set_name: Optional[str] = None
    card_number: Optional[str] = None
    rarity: Optional[str] = None

    @property
    def prices(self) -> Prices:
        return Prices(low=self.low, market=self.market, high=self.high)

    @property
    def is_empty(self) -> bool:
        return self.market is None and self.low is None and self.high is None and not self.image_url


@dataclass
class ScanCandidate:
    card_name: str
    game: Optional[str]
    set_name: Optional[str]
    number: Optional[str]
    image_url: Optional[str]
    prices: Prices
    product_id: Optional[str]
    confidence: float
    card_key: str
    rarity: Optional[str] = None
    variant: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "cardName": self.card_name,
            "game": self.game,
            "set": self.set_name,
            "number": self.number,
            "imageUrl": self.image_url,
            "prices": self.prices.to_dict(),
            "productId": self.product_id,
            "confidence": self.confidence,
            "cardKey": self.card_key,
            "rarity": self.rarity,
            "variant": self.variant,
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ScanCandidate":
        return cls(
            card_name=data["cardName"],
            game=data.get("game"),
            set_name=data.get("set"),
            number=data.get("number"),
            image_url=data.get("imageUrl"),
            prices=Prices.from_dict(data.get("prices")),
            product_id=data.get("productId"),
            confidence=data.get("confidence") or 0.0,
            card_key=data.get("cardKey") or "",
            rarity=data.get("rarity"),
            variant=data.get("variant"),
        )


@dataclass
class ScanResult:
    game: Optional[str] = None
    card_name: Optional[str] = None
    set_name: Optional[str] = None
    number: Optional[str] = None
    image_url: Optional[str] = None
    prices: Prices = field(default_factory=Prices)
    confidence: float = 0.0
    source: ScanSource = ScanSource.LIVE
    error: Optional[str] = None
    error_code: Optional[str] = None
    retryable: bool = False
    candidates: List[ScanCandidate] = field(default_factory=list)
    card_key: Optional[str] = None
    product_id: Optional[str] = None
    rarity: Optional[str] = None
    remaining_scans: Optional[int] = None

    @property
    def needs_selection(self) -> bool:
        return len(self.candidates) > 1

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "game": self.game,
            "cardName": self.card_name,
            "set": self.set_name,
            "number": self.number,
            "imageUrl": self.image_url,
            "prices": self.prices.to_dict(),
            "confidence": self.confidence,
            "source": ScanSource(self.source).value,
            "error": self.error,
            "errorCode": self.error_code,
            "retryable": self.retryable,
            "cardKey": self.card_key,
            "productId": self.product_id,
            "rarity": self.rarity,
            "candidates": [c.to_payload() for c in self.candidates],
        }
        return payload

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ScanResult":
        return cls(
            game=data.get("game"),
            card_name=data.get("cardName"),
            set_name=data.get("set"),
            number=data.get("number"),
            image_url=data.get("imageUrl"),
            prices=Prices.from_dict(data.get("prices")),
            confidence=data.get("confidence") or 0.0,
            source=ScanSource(data.get("source") or ScanSource.LIVE.value),
            error=data.get("error"),
            error_code=data.get("errorCode"),
            retryable=bool(data.get("retryable")),
            candidates=[ScanCandidate.from_payload(c) for c in data.get("candidates") or []],
            card_key=data.get("cardKey"),
            product_id=data.get("productId"),
            rarity=data.get("rarity"),
        )


@dataclass
class CommitRequest:
    image: ImagePayload
    game: str
    card_name: str
    set_name: Optional[str] = None
    card_number: Optional[str] = None
    product_id: Optional[str] = None

    @property
    def title(self) -> str:
        title = self.card_name
        if self.set_name:
            title += f" ({self.set_name})"
        if self.card_number:
            title += f" #{self.card_number}"
        return title


@dataclass
class CommitResult:
    image_url: str
    title: str
    cached: bool
    card_key: str


@dataclass
class ImageLookup:
    image_url: Optional[str]
    exists: bool


@dataclass
class RateDecision:
    allowed: bool
    remaining: int
    retry_after_ms: int = 0
