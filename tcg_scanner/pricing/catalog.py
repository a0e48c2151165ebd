"""Catalog entries and best-match ranking shared by the pricing sources."""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from rapidfuzz import fuzz

from ..core.types import PriceQuote, Prices, RawCandidate


@dataclass
class CatalogEntry:
    """One printing as listed by a pricing source."""
    name: str
    number: Optional[str] = None
    set_name: Optional[str] = None
    rarity: Optional[str] = None
    image_url: Optional[str] = None
    product_id: Optional[str] = None
    prices: Optional[Prices] = None

    def to_quote(self, source: str) -> PriceQuote:
        prices = self.prices or Prices()
        return PriceQuote(
            low=prices.low,
            market=prices.market,
            high=prices.high,
            image_url=self.image_url,
            product_id=self.product_id,
            source=source,
            set_name=self.set_name,
            card_number=self.number,
            rarity=self.rarity,
        )


def to_price(value: Any) -> Optional[float]:
    """Parse a provider price field; blanks, zero and garbage mean "no price"."""
    if value is None or value == "":
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    return price if price > 0 else None


def number_token(number: Optional[str]) -> str:
    """Comparable form of a collector number: ``"025/197"`` -> ``"25"``."""
    if not number:
        return ""
    head = str(number).strip().lower().split("/")[0].strip()
    return head.lstrip("0") or head


def best_match(entries: Sequence[CatalogEntry], candidate: RawCandidate) -> Optional[CatalogEntry]:
    """
    Pick the catalog entry that best fits a candidate.

    Priority: exact collector number (ties broken by name similarity), then
    name similarity, then the source's own ordering.
    """
    if not entries:
        return None

    name = (candidate.card_name or "").lower()

    def similarity(entry: CatalogEntry) -> float:
        return fuzz.ratio(name, (entry.name or "").lower())

    wanted = number_token(candidate.card_number)
    if wanted:
        exact = [e for e in entries if number_token(e.number) == wanted]
        if exact:
            # sorted() is stable, so equal scores keep source order
            return sorted(exact, key=similarity, reverse=True)[0] if name else exact[0]

    if name:
        return sorted(entries, key=similarity, reverse=True)[0]

    return entries[0]


class CatalogSource:
    """A pricing source searchable by card name."""

    name = "catalog"

    @property
    def configured(self) -> bool:
        return True

    def supports(self, game: Optional[str]) -> bool:
        raise NotImplementedError

    async def search(self, candidate: RawCandidate) -> List[CatalogEntry]:
        raise NotImplementedError
