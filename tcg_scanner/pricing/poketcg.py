"""Pokemon TCG API (pokemontcg.io) catalog with TCGplayer price blocks."""

from typing import Any, Dict, List, Optional

from ..core.constants import CATALOG_PAGE_SIZE
from ..core.types import Game, Prices, RawCandidate
from ..utils import http
from ..utils.config import settings
from ..utils.error_handler import PricingError
from .catalog import CatalogEntry, CatalogSource, to_price

BASE = "https://api.pokemontcg.io/v2/cards"

# Finishes checked in order for the first block carrying a market price
PRICE_BLOCKS = (
    "normal",
    "holofoil",
    "reverseHolofoil",
    "1stEditionHolofoil",
    "1stEditionNormal",
    "unlimitedHolofoil",
)


def map_price_blocks(card_json: Dict[str, Any]) -> Prices:
    """Reduce the card's TCGplayer price blocks to one low/market/high triple."""
    tcg = card_json.get("tcgplayer") or {}
    blocks = tcg.get("prices") or {}
    ordered = [blocks.get(k) for k in PRICE_BLOCKS] + [v for k, v in blocks.items() if k not in PRICE_BLOCKS]

    for block in ordered:
        if not block:
            continue
        market = to_price(block.get("market")) or to_price(block.get("mid"))
        if market is not None:
            return Prices(low=to_price(block.get("low")), market=market, high=to_price(block.get("high")))
    return Prices()


def _to_entry(card: Dict[str, Any]) -> CatalogEntry:
    images = card.get("images") or {}
    return CatalogEntry(
        name=card.get("name", ""),
        number=card.get("number"),
        set_name=(card.get("set") or {}).get("name"),
        rarity=card.get("rarity"),
        image_url=images.get("large") or images.get("small"),
        product_id=card.get("id"),
        prices=map_price_blocks(card),
    )


def _query(name: str) -> str:
    return 'name:"{}"'.format(name.replace('"', ""))


class PokemonTCGSource(CatalogSource):
    """Catalog search against pokemontcg.io."""

    name = "pokemontcg"

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.POKEMON_TCG_API_KEY

    def supports(self, game: Optional[str]) -> bool:
        return game == Game.POKEMON.value

    async def search(self, candidate: RawCandidate) -> List[CatalogEntry]:
        headers = {"X-Api-Key": self.api_key} if self.api_key else None
        params = {"q": _query(candidate.card_name), "pageSize": CATALOG_PAGE_SIZE}
        data = await http.fetch_json(
            "GET", BASE, provider=self.name, params=params, headers=headers, error_cls=PricingError
        )
        return [_to_entry(c) for c in (data or {}).get("data") or []]
