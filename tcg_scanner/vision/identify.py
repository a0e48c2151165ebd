"""Vision-model card identification over an OpenAI-compatible gateway."""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core.constants import DEFAULT_VISION_CONFIDENCE, MAX_CANDIDATES
from ..core.types import Game, ImagePayload, RawCandidate
from ..utils import http
from ..utils.config import settings
from ..utils.error_handler import ConfigurationError, IdentificationError, MalformedResponseError
from ..utils.log import LoggerMixin
from ..utils.validation import coerce_game, optional_text, validate_url

PARSE_FAILURE = "parse failure"

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

_GAME_LABELS = {
    Game.POKEMON: "Pokémon TCG",
    Game.MAGIC: "Magic: The Gathering",
    Game.YUGIOH: "Yu-Gi-Oh!",
    Game.ONEPIECE: "One Piece Card Game",
    Game.DRAGONBALL: "Dragon Ball Super Card Game",
    Game.LORCANA: "Disney Lorcana",
    Game.UNIONARENA: "Union Arena",
    Game.MARVEL: "Marvel non-sport cards (Skybox, Fleer Ultra, ...)",
}


@dataclass
class IdentifyOutcome:
    candidates: List[RawCandidate] = field(default_factory=list)
    error: Optional[str] = None


def build_prompt(game_hint: Optional[str] = None) -> str:
    games = "\n".join(f"- {game.value} ({label})" for game, label in _GAME_LABELS.items())
    hint = ""
    if game_hint:
        hint = (
            f"\nHINT: The user expects this to be a {game_hint} card. "
            "Prioritize this game type in your identification.\n"
        )

    return f"""You are an expert trading card game identifier. Analyze this image and identify the trading card(s) shown.

Supported TCGs:
{games}
{hint}
For each card visible in the image, provide:
1. card_name: The exact card name as printed
2. tcg_game: One of the supported game identifiers above
3. set_name: The set/expansion name if visible
4. card_number: The card number/code if visible
5. rarity: The rarity (common, uncommon, rare, ultra rare, secret rare, etc.)
6. variant: If applicable (foil, non-foil, holo, reverse holo, alt-art, enchanted, etc.)

If several printings could match, list each as a separate entry, most likely first.

Respond ONLY with valid JSON in this exact format:
{{"cards": [{{"card_name": "Card Name Here", "tcg_game": "pokemon", "set_name": "Set Name", "card_number": "123/456", "rarity": "Rare", "variant": "holo"}}]}}

If no trading card is detected, respond with:
{{"cards": []}}"""


def extract_json(content: Optional[str]) -> Optional[Dict[str, Any]]:
    """Pull the outermost JSON object out of a model reply that may be wrapped in prose."""
    if not content:
        return None
    match = _JSON_OBJECT.search(content)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _to_candidate(item: Dict[str, Any]) -> Optional[RawCandidate]:
    name = optional_text(item.get("card_name") or item.get("name"))
    if not name:
        return None
    confidence = item.get("confidence")
    return RawCandidate(
        card_name=name,
        game=coerce_game(item.get("tcg_game") or item.get("game")),
        set_name=optional_text(item.get("set_name")),
        card_number=optional_text(item.get("card_number")),
        rarity=optional_text(item.get("rarity")),
        variant=optional_text(item.get("variant")),
        confidence=float(confidence) if isinstance(confidence, (int, float)) else DEFAULT_VISION_CONFIDENCE,
    )


class VisionIdentifier(LoggerMixin):
    """Identifies cards in a photo with a multimodal chat model."""

    name = "vision"

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.VISION_API_KEY
        self.api_url = validate_url(api_url or settings.VISION_API_URL)
        self.model = model or settings.VISION_MODEL
        self.max_tokens = max_tokens or settings.VISION_MAX_TOKENS

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _request_body(self, image: ImagePayload, game_hint: Optional[str]) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_prompt(game_hint)},
                        {"type": "image_url", "image_url": {"url": image.as_data_url()}},
                    ],
                }
            ],
            "max_tokens": self.max_tokens,
        }

    async def identify(self, image: ImagePayload, game_hint: Optional[str] = None) -> IdentifyOutcome:
        """
        Identify the card(s) in an image.

        Returns:
            IdentifyOutcome with zero or more candidates in the model's order.
            A reply that cannot be parsed yields ``IdentifyOutcome([], "parse failure")``.

        Raises:
            ConfigurationError: No API key configured
            ProviderRateLimitedError: Gateway answered 429
            ProviderExhaustedError: Gateway answered 402
            IdentificationError: Any other gateway failure or timeout
        """
        if not self.api_key:
            raise ConfigurationError("VISION_API_KEY is not configured")

        context = self.log_start("vision_identify", game_hint=game_hint, image_bytes=len(image.data))
        try:
            data = await http.fetch_json(
                "POST",
                self.api_url,
                provider=self.name,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json_body=self._request_body(image, game_hint),
                error_cls=IdentificationError,
            )
        except MalformedResponseError as e:
            self.logger.warning("Identifier reply was not JSON", identifier=self.name, error=e.message)
            return IdentifyOutcome([], PARSE_FAILURE)
        except Exception as e:
            self.log_error(context, e)
            raise

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            content = None

        parsed = extract_json(content)
        if parsed is None:
            self.logger.warning("Vision reply could not be parsed", reply=(content or "")[:200])
            return IdentifyOutcome([], PARSE_FAILURE)

        items = parsed.get("cards") or []
        if not isinstance(items, list):
            return IdentifyOutcome([], PARSE_FAILURE)

        candidates = [c for c in (_to_candidate(i) for i in items if isinstance(i, dict)) if c]
        self.log_success(context, candidates=len(candidates))
        return IdentifyOutcome(candidates[:MAX_CANDIDATES])
