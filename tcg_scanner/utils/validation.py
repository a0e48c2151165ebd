"""
Input validation and sanitization utilities for the card scanner service.

This module turns untrusted request fields into typed values before they reach
the pipeline, raising ValidationError with details on anything malformed.
"""

import base64
import binascii
import re
from typing import Any, Dict, List, Optional

from ..core.constants import DEFAULT_EXTENSION
from ..core.types import Game, ImagePayload
from .error_handler import ConfigurationError, ValidationError

_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(;[\w=-]+)*;base64,", re.IGNORECASE)

# Common aliases used by scanner modes and older clients
GAME_ALIASES: Dict[str, Game] = {
    "one_piece": Game.ONEPIECE,
    "one-piece": Game.ONEPIECE,
    "mtg": Game.MAGIC,
    "yu-gi-oh": Game.YUGIOH,
    "dragon_ball": Game.DRAGONBALL,
    "union_arena": Game.UNIONARENA,
}


def _sniff_mime(data: bytes) -> Optional[str]:
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return None


def extension_for_mime(mime_type: str) -> str:
    """Map ``image/jpeg`` to ``jpg`` and ``image/png`` to ``png``."""
    subtype = mime_type.split("/", 1)[-1].lower() if mime_type else ""
    if not subtype or subtype == "jpeg":
        return DEFAULT_EXTENSION
    return re.sub(r"[^a-z0-9]", "", subtype) or DEFAULT_EXTENSION


def decode_image(image_data: Optional[str], max_bytes: int, field_name: str = "image_data") -> ImagePayload:
    """
    Decode a base64 image or ``data:`` URL into an ImagePayload.

    Args:
        image_data: Raw base64 or data URL string
        max_bytes: Upper bound on decoded size
        field_name: Request field name used in error messages

    Returns:
        ImagePayload with bytes, mime type and file extension

    Raises:
        ValidationError: If the field is missing, not base64, empty or too large
    """
    if not image_data or not isinstance(image_data, str):
        raise ValidationError(f"{field_name} is required", details={"field": field_name})

    mime_type = None
    content = image_data.strip()
    match = _DATA_URL.match(content)
    if match:
        mime_type = match.group("mime")
        content = content[match.end():]
    elif "," in content:
        content = content.split(",", 1)[1]

    try:
        data = base64.b64decode(content, validate=False)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(
            f"{field_name} is not valid base64",
            details={"field": field_name, "error": str(e)}
        )

    if not data:
        raise ValidationError(f"{field_name} is empty", details={"field": field_name})

    if len(data) > max_bytes:
        raise ValidationError(
            f"{field_name} exceeds the maximum image size",
            details={"field": field_name, "size": len(data), "max_bytes": max_bytes}
        )

    mime_type = (mime_type or _sniff_mime(data) or "image/jpeg").lower()
    if not mime_type.startswith("image/"):
        raise ValidationError(
            f"{field_name} is not an image",
            details={"field": field_name, "mime_type": mime_type}
        )

    return ImagePayload(data=data, mime_type=mime_type, extension=extension_for_mime(mime_type))


def validate_game(value: Optional[str], required: bool = False) -> Optional[Game]:
    """
    Validate a game identifier or hint.

    Blank values and ``auto`` mean "no hint" unless the game is required.
    """
    if value is None or (isinstance(value, str) and value.strip().lower() in ("", "auto")):
        if required:
            raise ValidationError("game is required", details={"field": "game"})
        return None

    key = str(value).strip().lower()
    if key in GAME_ALIASES:
        return GAME_ALIASES[key]
    try:
        return Game(key)
    except ValueError:
        raise ValidationError(
            f"Unsupported game: {value}",
            details={"field": "game", "allowed": [g.value for g in Game]}
        )


def coerce_game(value: Optional[str]) -> Optional[str]:
    """Best-effort game normalization for provider output; unknown games pass through."""
    if not value:
        return None
    key = str(value).strip().lower()
    if key in GAME_ALIASES:
        return GAME_ALIASES[key].value
    return key


def require_fields(data: Dict[str, Any], required_fields: List[str]) -> None:
    """
    Validate that required fields are present and non-blank.

    Raises:
        ValidationError: naming the first missing field
    """
    for name in required_fields:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{name} is required", details={"field": name})


def optional_text(value: Any) -> Optional[str]:
    """Strip a free-text field, mapping blanks to None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def validate_url(url: str, allowed_schemes: Optional[List[str]] = None) -> str:
    """
    Validate a configured endpoint URL.

    Raises:
        ConfigurationError: If URL is invalid
    """
    if allowed_schemes is None:
        allowed_schemes = ['http', 'https']

    if not url or not isinstance(url, str):
        raise ConfigurationError("URL must be a non-empty string", details={"url": url})

    scheme = url.split("://", 1)[0].lower() if "://" in url else ""
    if scheme not in allowed_schemes:
        raise ConfigurationError(
            f"URL scheme must be one of {allowed_schemes}",
            details={"url": url, "scheme": scheme}
        )

    return url.strip()
