"""JustTCG multi-game catalog, also the fallback price source."""

from statistics import mean
from typing import Any, Dict, List, Optional

from ..core.constants import CATALOG_PAGE_SIZE
from ..core.types import Game, Prices, RawCandidate
from ..utils import http
from ..utils.config import settings
from ..utils.error_handler import PricingError
from .catalog import CatalogEntry, CatalogSource, to_price

BASE = "https://api.justtcg.com/v1/cards"

GAME_SLUGS: Dict[str, str] = {
    Game.POKEMON.value: "pokemon",
    Game.MAGIC.value: "magic-the-gathering",
    Game.YUGIOH.value: "yugioh",
    Game.ONEPIECE.value: "one-piece-card-game",
    Game.DRAGONBALL.value: "dragon-ball-super-fusion-world",
    Game.LORCANA.value: "disney-lorcana",
    Game.UNIONARENA.value: "union-arena",
    Game.MARVEL.value: "marvel",
}


def variant_prices(variants: Optional[List[Dict[str, Any]]]) -> Prices:
    """Collapse per-condition variant prices: min, mean and max."""
    points = [p for p in (to_price(v.get("price")) for v in variants or []) if p is not None]
    if not points:
        return Prices()
    return Prices(low=min(points), market=round(mean(points), 2), high=max(points))


def _to_entry(card: Dict[str, Any]) -> CatalogEntry:
    card_set = card.get("set")
    set_name = card_set.get("name") if isinstance(card_set, dict) else (card.get("setName") or card_set)
    images = card.get("images") or {}
    product_id = card.get("tcgplayerId") or card.get("id")
    return CatalogEntry(
        name=card.get("name", ""),
        number=card.get("number") or card.get("card_id") or card.get("collector_number"),
        set_name=set_name,
        rarity=card.get("rarity"),
        image_url=card.get("image_url") or card.get("image") or images.get("large") or images.get("small"),
        product_id=str(product_id) if product_id else None,
        prices=variant_prices(card.get("variants")),
    )


class JustTCGSource(CatalogSource):
    name = "justtcg"

    def __init__(self, api_key: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.JUSTTCG_API_KEY

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def supports(self, game: Optional[str]) -> bool:
        return game in GAME_SLUGS

    async def search(self, candidate: RawCandidate) -> List[CatalogEntry]:
        params = {
            "game": GAME_SLUGS[candidate.game],
            "q": candidate.card_name,
            "limit": CATALOG_PAGE_SIZE,
        }
        data = await http.fetch_json(
            "GET", BASE, provider=self.name, params=params,
            headers={"x-api-key": self.api_key}, error_cls=PricingError,
        )
        cards = data.get("data") if isinstance(data, dict) else data
        if not isinstance(cards, list):
            return []
        return [_to_entry(c) for c in cards]
