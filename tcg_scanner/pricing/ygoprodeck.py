"""YGOProDeck catalog for Yu-Gi-Oh!."""

from typing import Any, Dict, List, Optional

from ..core.constants import CATALOG_PAGE_SIZE
from ..core.types import Game, Prices, RawCandidate
from ..utils import http
from ..utils.error_handler import PricingError
from .catalog import CatalogEntry, CatalogSource, number_token, to_price

BASE = "https://db.ygoprodeck.com/api/v7/cardinfo.php"


def _pick_set(sets: List[Dict[str, Any]], card_number: Optional[str]) -> Dict[str, Any]:
    """The printing whose set code matches the scanned number, else the first listed."""
    wanted = number_token(card_number)
    if wanted:
        for s in sets:
            if number_token(s.get("set_code")) == wanted:
                return s
    return sets[0] if sets else {}


def _to_entry(card: Dict[str, Any], card_number: Optional[str]) -> CatalogEntry:
    printing = _pick_set(card.get("card_sets") or [], card_number)
    prices = (card.get("card_prices") or [{}])[0]
    images = (card.get("card_images") or [{}])[0]
    market = to_price(prices.get("tcgplayer_price"))
    set_price = to_price(printing.get("set_price"))
    return CatalogEntry(
        name=card.get("name", ""),
        number=printing.get("set_code") or (str(card["id"]) if card.get("id") else None),
        set_name=printing.get("set_name"),
        rarity=printing.get("set_rarity"),
        image_url=images.get("image_url") or images.get("image_url_cropped"),
        product_id=str(card["id"]) if card.get("id") else None,
        prices=Prices(low=set_price, market=market if market is not None else set_price, high=None),
    )


class YGOProDeckSource(CatalogSource):
    name = "ygoprodeck"

    def supports(self, game: Optional[str]) -> bool:
        return game == Game.YUGIOH.value

    async def search(self, candidate: RawCandidate) -> List[CatalogEntry]:
        try:
            data = await http.fetch_json(
                "GET", BASE, provider=self.name, params={"fname": candidate.card_name},
                error_cls=PricingError,
            )
        except PricingError as e:
            # "No card matching your query" comes back as a 400
            if e.status == 400:
                return []
            raise
        cards = ((data or {}).get("data") or [])[:CATALOG_PAGE_SIZE]
        return [_to_entry(c, candidate.card_number) for c in cards]
