"""Scryfall catalog for Magic: The Gathering."""

from typing import Any, Dict, List, Optional

from ..core.constants import CATALOG_PAGE_SIZE
from ..core.types import Game, Prices, RawCandidate
from ..utils import http
from ..utils.error_handler import PricingError
from .catalog import CatalogEntry, CatalogSource, to_price

BASE = "https://api.scryfall.com"


def _image_url(card: Dict[str, Any]) -> Optional[str]:
    uris = card.get("image_uris") or {}
    if not uris:
        faces = card.get("card_faces") or [{}]
        uris = faces[0].get("image_uris") or {}
    return uris.get("large") or uris.get("normal")


def _to_entry(card: Dict[str, Any]) -> CatalogEntry:
    prices = card.get("prices") or {}
    usd = to_price(prices.get("usd"))
    foil = to_price(prices.get("usd_foil"))
    tcgplayer_id = card.get("tcgplayer_id")
    return CatalogEntry(
        name=card.get("name", ""),
        number=card.get("collector_number"),
        set_name=card.get("set_name"),
        rarity=card.get("rarity"),
        image_url=_image_url(card),
        product_id=str(tcgplayer_id) if tcgplayer_id else card.get("id"),
        prices=Prices(low=usd, market=usd if usd is not None else foil, high=foil),
    )


class ScryfallSource(CatalogSource):
    """Fuzzy name lookup, falling back to a full-text search."""

    name = "scryfall"

    def supports(self, game: Optional[str]) -> bool:
        return game == Game.MAGIC.value

    async def search(self, candidate: RawCandidate) -> List[CatalogEntry]:
        card = await http.fetch_json(
            "GET", f"{BASE}/cards/named", provider=self.name,
            params={"fuzzy": candidate.card_name}, not_found_ok=True, error_cls=PricingError,
        )
        if card and card.get("object") == "card":
            exact = [_to_entry(card)]
            query = f'!"{card.get("name", candidate.card_name)}"'
            # The named endpoint returns one printing; list siblings when a number is known
            if not candidate.card_number:
                return exact
        else:
            exact = []
            query = candidate.card_name

        data = await http.fetch_json(
            "GET", f"{BASE}/cards/search", provider=self.name,
            params={"q": query, "order": "released", "unique": "prints"},
            not_found_ok=True, error_cls=PricingError,
        )
        printings = [_to_entry(c) for c in ((data or {}).get("data") or [])[:CATALOG_PAGE_SIZE]]
        return printings or exact
