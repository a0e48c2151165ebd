"""
Card key derivation.

A card key is the canonical cache identity of one printed card. Keys built
from a provider's product id (``pokemon:pid:12345``) take precedence over keys
built from printed attributes (``pokemon:charizard_ex:obsidian_flames:125_197``),
since catalog ids are stable and printed text comes back noisy from vision
models.

Product ids are percent-encoded, so a product key always has exactly three
segments and an attribute key always has four.
"""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, unquote

from .constants import KEY_DELIMITER, PID_MARKER, STORAGE_DELIMITER

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

# "_" survives quote(); escape it in stems so "__" only ever delimits
_STEM_UNDERSCORE = "%5F"


def encode_product_id(product_id: str) -> str:
    """Percent-encode a product id for use as a key segment; already-encoded ids are unchanged."""
    return quote(unquote(product_id), safe="")


def normalize(raw: Optional[str]) -> str:
    """Lower-case, collapse non-alphanumeric runs to ``_`` and trim underscores.

    Total and idempotent; ``None`` and empty input map to ``""``.
    """
    if raw is None:
        return ""
    return _NON_ALNUM.sub("_", str(raw).lower()).strip("_")


def build_key(
    game: Optional[str],
    card_name: Optional[str],
    set_name: Optional[str] = None,
    card_number: Optional[str] = None,
    product_id: Optional[str] = None,
) -> str:
    """Build the card key for a card's known attributes.

    When ``product_id`` is given the key depends only on ``game`` and the id.
    """
    pid = str(product_id).strip() if product_id is not None else ""
    if pid:
        return KEY_DELIMITER.join([normalize(game), PID_MARKER, encode_product_id(pid)])

    return KEY_DELIMITER.join([
        normalize(game),
        normalize(card_name),
        normalize(set_name),
        normalize(card_number),
    ])


@dataclass(frozen=True)
class CardKey:
    game: str
    product_id: Optional[str] = None
    card_name: str = ""
    set_name: str = ""
    card_number: str = ""

    @property
    def is_product_key(self) -> bool:
        return self.product_id is not None

    def __str__(self) -> str:
        if self.product_id is not None:
            return KEY_DELIMITER.join([self.game, PID_MARKER, self.product_id])
        return KEY_DELIMITER.join([self.game, self.card_name, self.set_name, self.card_number])


def parse_card_key(key: str) -> CardKey:
    """Split a key string back into its segments.

    Segments are re-normalized, so hand-typed keys resolve to the same entry.
    """
    parts = (key or "").strip().split(KEY_DELIMITER)
    game = normalize(parts[0]) if parts else ""

    if len(parts) == 3 and parts[1] == PID_MARKER and parts[2].strip():
        return CardKey(game=game, product_id=encode_product_id(parts[2].strip()))

    rest = [normalize(p) for p in parts[1:]] + ["", "", ""]
    return CardKey(game=game, card_name=rest[0], set_name=rest[1], card_number=rest[2])


def canonical_key(key: str) -> str:
    """Re-render a caller-supplied key string in canonical form."""
    return str(parse_card_key(key))


def storage_identifier(key: str) -> str:
    """Object-storage file stem for a key, e.g. ``pokemon__pid__12345``."""
    parsed = parse_card_key(key)
    if parsed.is_product_key:
        stem_id = parsed.product_id.replace("_", _STEM_UNDERSCORE)
        return STORAGE_DELIMITER.join([parsed.game, PID_MARKER, stem_id])
    segments = [parsed.game, parsed.card_name, parsed.set_name, parsed.card_number]
    return STORAGE_DELIMITER.join(segments)


def key_from_storage_identifier(identifier: str) -> Optional[str]:
    """Recover the card key from an object file stem, or None if it is not one of ours."""
    parts = identifier.split(STORAGE_DELIMITER)
    if len(parts) == 3 and parts[1] == PID_MARKER and parts[0] and parts[2]:
        product_id = parts[2].replace(_STEM_UNDERSCORE, "_")
        return KEY_DELIMITER.join([parts[0], PID_MARKER, product_id])
    if len(parts) == 4 and parts[0] and parts[1]:
        return KEY_DELIMITER.join(parts)
    return None
