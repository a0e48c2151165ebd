"""Ximilar collectibles recognition, used as a fallback identifier."""

from typing import Any, Dict, List, Optional

from ..core.constants import DEFAULT_RECOGNITION_CONFIDENCE
from ..core.types import Game, ImagePayload, RawCandidate
from ..utils import http
from ..utils.config import settings
from ..utils.error_handler import ConfigurationError, IdentificationError, MalformedResponseError
from ..utils.log import LoggerMixin
from ..utils.validation import optional_text
from .identify import PARSE_FAILURE, IdentifyOutcome

XIMILAR_TCG_URL = "https://api.ximilar.com/tagging/collectibles/v2/tcg_id"

# Substrings of Ximilar's subcategory label
_SUBCATEGORY_GAMES = [
    (("pokemon", "pokémon"), Game.POKEMON),
    (("magic", "mtg"), Game.MAGIC),
    (("yugioh", "yu-gi-oh"), Game.YUGIOH),
    (("one piece", "onepiece"), Game.ONEPIECE),
    (("dragon ball", "dragonball"), Game.DRAGONBALL),
    (("lorcana",), Game.LORCANA),
    (("union arena",), Game.UNIONARENA),
    (("marvel",), Game.MARVEL),
]


def game_from_subcategory(label: Optional[str]) -> Optional[str]:
    text = (label or "").lower()
    for needles, game in _SUBCATEGORY_GAMES:
        if any(n in text for n in needles):
            return game.value
    return None


def confidence_from_distances(distances: Optional[List[float]]) -> float:
    """Map the best-match embedding distance to a 0..1 confidence."""
    if not distances:
        return DEFAULT_RECOGNITION_CONFIDENCE
    best = distances[0] if distances[0] is not None else 0.5
    return max(0.0, 1.0 - float(best))


def _card_object(record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for obj in record.get("_objects") or []:
        if obj.get("name") == "Card":
            return obj
        if any(cat.get("name") == "Card" for cat in obj.get("Top_Category") or []):
            return obj
    return None


class XimilarRecognizer(LoggerMixin):
    """Card recognition against Ximilar's TCG identification endpoint."""

    name = "ximilar"

    def __init__(self, api_key: Optional[str] = None, api_url: str = XIMILAR_TCG_URL):
        self.api_key = api_key if api_key is not None else settings.XIMILAR_API_KEY
        self.api_url = api_url

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def identify(self, image: ImagePayload, game_hint: Optional[str] = None) -> IdentifyOutcome:
        """Recognize a single card; the game hint is not used by this provider."""
        if not self.api_key:
            raise ConfigurationError("XIMILAR_API_KEY is not configured")

        context = self.log_start("ximilar_identify", image_bytes=len(image.data))
        try:
            data = await http.fetch_json(
                "POST",
                self.api_url,
                provider=self.name,
                headers={"Authorization": f"Token {self.api_key}"},
                json_body={"records": [{"_base64": image.base64}]},
                error_cls=IdentificationError,
            )
        except MalformedResponseError as e:
            self.logger.warning("Identifier reply was not JSON", identifier=self.name, error=e.message)
            return IdentifyOutcome([], PARSE_FAILURE)
        except Exception as e:
            self.log_error(context, e)
            raise

        records = (data or {}).get("records") if isinstance(data, dict) else None
        if not records:
            return IdentifyOutcome([], PARSE_FAILURE)

        card = _card_object(records[0])
        identification = (card or {}).get("_identification") or {}
        best = identification.get("best_match")
        if not best:
            self.log_success(context, candidates=0)
            return IdentifyOutcome([])

        name = optional_text(best.get("name") or best.get("full_name"))
        if not name:
            return IdentifyOutcome([])

        subcategory = best.get("subcategory")
        if not subcategory:
            tags = ((card or {}).get("_tags") or {}).get("Subcategory") or []
            subcategory = tags[0].get("name") if tags else None

        candidate = RawCandidate(
            card_name=name,
            game=game_from_subcategory(subcategory),
            set_name=optional_text(best.get("set_name") or best.get("set_code") or best.get("set")),
            card_number=optional_text(best.get("card_number")),
            rarity=optional_text(best.get("rarity")),
            confidence=confidence_from_distances(identification.get("distances")),
        )
        self.log_success(context, candidates=1)
        return IdentifyOutcome([candidate])
