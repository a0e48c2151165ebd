"""
Pricing resolution for identified candidates.

Each candidate is routed to the catalog source for its game. When that source
has no market price, JustTCG is tried as a fallback and the first source
reporting a market price wins. Provider failures never propagate: they are
logged and the candidate is returned with an empty quote.
"""

from typing import List, Optional

from ..core.types import PriceQuote, RawCandidate
from ..utils.error_handler import CardScannerError
from ..utils.log import LoggerMixin
from .catalog import CatalogSource, best_match
from .justtcg import JustTCGSource
from .poketcg import PokemonTCGSource
from .scryfall import ScryfallSource
from .ygoprodeck import YGOProDeckSource


def default_sources() -> List[CatalogSource]:
    return [PokemonTCGSource(), ScryfallSource(), YGOProDeckSource()]


class PricingResolver(LoggerMixin):
    """Resolves a price quote per candidate; holds no per-call state."""

    def __init__(
        self,
        sources: Optional[List[CatalogSource]] = None,
        fallback: Optional[CatalogSource] = None,
    ):
        self.sources = default_sources() if sources is None else sources
        self.fallback = JustTCGSource() if fallback is None else fallback

    def route(self, game: Optional[str]) -> List[CatalogSource]:
        """Sources to consult for a game, in precedence order."""
        chain = [s for s in self.sources if s.supports(game) and s.configured]
        if self.fallback.supports(game) and self.fallback.configured and self.fallback not in chain:
            chain.append(self.fallback)
        return chain

    async def _quote_from(self, source: CatalogSource, candidate: RawCandidate) -> Optional[PriceQuote]:
        try:
            entries = await source.search(candidate)
        except CardScannerError as e:
            self.logger.warning(
                "Pricing source failed",
                source=source.name,
                card_name=candidate.card_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        entry = best_match(entries, candidate)
        return entry.to_quote(source.name) if entry else None

    async def resolve_price(self, candidate: RawCandidate) -> PriceQuote:
        """
        Price a single candidate.

        Returns:
            PriceQuote whose price points are independently nullable; an
            entirely empty quote when no source knows the card.
        """
        chain = self.route(candidate.game)
        if not chain:
            self.logger.debug("No pricing source for game", game=candidate.game)
            return PriceQuote()

        context = self.log_start("resolve_price", card_name=candidate.card_name, game=candidate.game)
        first: Optional[PriceQuote] = None
        for source in chain:
            quote = await self._quote_from(source, candidate)
            if quote is None:
                continue
            if quote.market is not None:
                if first is not None:
                    # Keep catalog details the primary source already found
                    quote.image_url = quote.image_url or first.image_url
                    quote.product_id = first.product_id or quote.product_id
                    quote.set_name = first.set_name or quote.set_name
                    quote.card_number = first.card_number or quote.card_number
                    quote.rarity = first.rarity or quote.rarity
                self.log_success(context, source=quote.source, market=quote.market)
                return quote
            first = first or quote

        result = first or PriceQuote()
        self.log_success(context, source=result.source, market=None)
        return result
