"""
Scan orchestration.

``scan`` runs rate check -> scan-result cache -> identification -> per-card
price cache -> concurrent pricing -> candidate resolution, and never touches
stored card images.
``commit`` is the explicit save step: key from the final attributes, reuse an
existing image or store the captured photo. ``lookup_image`` is a read-only
peek at the image index.
"""

import asyncio
from typing import List, Optional, Sequence, Tuple

from .core.keys import build_key, canonical_key
from .core.types import (
    CommitRequest,
    CommitResult,
    ImageLookup,
    ImagePayload,
    PriceQuote,
    RawCandidate,
    ScanResult,
    ScanSource,
)
from .match.resolution import ScanSession
from .pricing.resolver import PricingResolver
from .store.cache import PriceQuoteCache, ScanResultCache
from .store.db import RecordStore
from .store.image_cache import ImageCacheStore
from .store.objects import LocalObjectStore, ObjectStore
from .store.rate_limit import ScanRateLimiter
from .ui.notifier import ScanNotifier, commit_event, notifier as default_notifier, rate_limited_event, scan_event
from .utils.config import settings
from .utils.error_handler import (
    ConfigurationError,
    ErrorCode,
    ErrorContext,
    ProviderError,
    QuotaExceededError,
    ValidationError,
    safe_execute,
    user_message,
)
from .utils.log import LoggerMixin
from .utils.retry import is_retryable_error
from .utils.validation import decode_image, validate_game
from .vision.identify import IdentifyOutcome, VisionIdentifier
from .vision.ximilar import XimilarRecognizer


def error_result(code: ErrorCode, retryable: bool) -> ScanResult:
    return ScanResult(error=user_message(code), error_code=code.value, retryable=retryable)


class ScanOrchestrator(LoggerMixin):
    """Coordinates one scan or commit per call; holds no per-request state."""

    def __init__(
        self,
        store: Optional[RecordStore] = None,
        objects: Optional[ObjectStore] = None,
        identifiers: Optional[Sequence] = None,
        pricing: Optional[PricingResolver] = None,
        limiter: Optional[ScanRateLimiter] = None,
        notifier: Optional[ScanNotifier] = None,
    ):
        self.store = store or RecordStore()
        self.limiter = limiter or ScanRateLimiter(
            self.store,
            max_scans=settings.RATE_LIMIT_MAX_SCANS,
            window_s=settings.RATE_LIMIT_WINDOW_S,
        )
        self.images = ImageCacheStore(self.store, objects or LocalObjectStore())
        self.scan_cache = ScanResultCache(self.store)
        self.price_cache = PriceQuoteCache(self.store)
        self.identifiers = list(identifiers) if identifiers is not None else [
            VisionIdentifier(),
            XimilarRecognizer(),
        ]
        self.pricing = pricing or PricingResolver()
        self.notifier = notifier or default_notifier

    async def _identify(self, image: ImagePayload, game_hint: Optional[str]) -> IdentifyOutcome:
        """
        Run the identifiers in order; the first one with candidates wins.

        When nobody found a card, the first provider error is re-raised so the
        caller sees a retryable condition rather than a no-match. Otherwise the
        clean empty outcome is preferred over an unparseable one.
        """
        errors: List[ProviderError] = []
        fallback: Optional[IdentifyOutcome] = None
        attempted = 0

        for identifier in self.identifiers:
            if not identifier.configured:
                continue
            attempted += 1
            try:
                outcome = await identifier.identify(image, game_hint)
            except ProviderError as e:
                self.logger.warning(
                    "Identifier failed",
                    identifier=identifier.name,
                    error=e.message,
                    error_code=e.code.value,
                )
                errors.append(e)
                continue

            if outcome.candidates:
                return outcome
            if fallback is None or (fallback.error and not outcome.error):
                fallback = outcome

        if errors:
            raise errors[0]
        if fallback is not None:
            return fallback
        if not attempted:
            raise ConfigurationError("No card identifier is configured")
        return IdentifyOutcome()

    @staticmethod
    def _price_key(candidate: RawCandidate) -> Optional[str]:
        if not candidate.game:
            return None
        return build_key(candidate.game, candidate.card_name, candidate.set_name, candidate.card_number)

    async def _price_all(self, candidates: List[RawCandidate]) -> Tuple[List[Optional[PriceQuote]], bool]:
        """
        Quote every candidate, reusing cached quotes for recently seen cards.

        Returns the quotes in candidate order and whether all of them came
        from the cache.
        """
        keys = [self._price_key(c) for c in candidates]
        quotes: List[Optional[PriceQuote]] = []
        for key in keys:
            quotes.append(await asyncio.to_thread(self.price_cache.get, key) if key else None)

        missing = [i for i, quote in enumerate(quotes) if quote is None]
        context = ErrorContext(operation="pricing", module=__name__, function="_price_all")
        fresh = await asyncio.gather(*(
            safe_execute(self.pricing.resolve_price, candidates[i], context=context, logger=self.logger)
            for i in missing
        ))
        for i, quote in zip(missing, fresh):
            quotes[i] = quote
            if keys[i]:
                await asyncio.to_thread(self.price_cache.set, keys[i], quote)
        return quotes, not missing

    async def scan(self, user_id: str, image_data: str, game_hint: Optional[str] = None) -> ScanResult:
        """
        Identify and price the card in a photo.

        Soft failures (provider trouble, unreadable reply, no card) come back
        as a result with ``error`` set.

        Raises:
            ValidationError: Missing user, malformed image or unknown game hint
            QuotaExceededError: The user's scan window is full
        """
        if not user_id:
            raise ValidationError("user identity is required", details={"field": "user_id"})
        image = decode_image(image_data, settings.MAX_IMAGE_BYTES)
        hint = validate_game(game_hint)
        hint_value = hint.value if hint else None

        session = ScanSession()
        decision = await asyncio.to_thread(self.limiter.admit, user_id)
        if not decision.allowed:
            error = QuotaExceededError(decision.retry_after_ms, details={"user_id": user_id})
            self.notifier.publish(rate_limited_event(error.retry_after_s))
            raise error
        session.rate_checked()

        context = self.log_start("scan", session_id=session.session_id, game_hint=hint_value)

        cached = await asyncio.to_thread(self.scan_cache.get, image.digest, hint_value)
        if cached is not None:
            cached.remaining_scans = decision.remaining
            self.notifier.publish(scan_event(cached))
            self.log_success(context, source="cache", card_key=cached.card_key)
            return cached

        session.identifying()
        try:
            outcome = await self._identify(image, hint_value)
        except ProviderError as e:
            result = error_result(e.code, is_retryable_error(e))
            result.remaining_scans = decision.remaining
            self.notifier.publish(scan_event(result))
            self.log_success(context, error_code=result.error_code)
            return result

        if outcome.error:
            result = error_result(ErrorCode.PARSE_FAILURE, True)
            result.remaining_scans = decision.remaining
            self.notifier.publish(scan_event(result))
            self.log_success(context, error_code=result.error_code)
            return result

        for candidate in outcome.candidates:
            if not candidate.game and hint_value:
                candidate.game = hint_value

        quotes, all_cached = await self._price_all(outcome.candidates)
        result = session.settle(outcome.candidates, quotes)
        result.remaining_scans = decision.remaining
        if all_cached and outcome.candidates:
            result.source = ScanSource.CACHE

        if not result.error:
            await asyncio.to_thread(self.scan_cache.set, image.digest, hint_value, result)

        self.notifier.publish(scan_event(result))
        self.log_success(
            context,
            state=session.state.value,
            candidates=len(outcome.candidates),
            card_key=result.card_key,
        )
        return result

    async def commit(self, request: CommitRequest) -> CommitResult:
        """
        Persist the photo for a confirmed card, reusing any stored image.

        Raises:
            StorageError: Object or index write failed
        """
        key = build_key(
            request.game, request.card_name, request.set_name, request.card_number, request.product_id
        )
        context = self.log_start("commit", card_key=key)

        url = await asyncio.to_thread(self.images.lookup, key)
        if url is not None:
            cached = True
        else:
            put = await asyncio.to_thread(self.images.put, key, request.image)
            url, cached = put.image_url, not put.created

        result = CommitResult(image_url=url, title=request.title, cached=cached, card_key=key)
        self.notifier.publish(commit_event(result))
        self.log_success(context, cached=cached)
        return result

    async def lookup_image(self, card_key: str) -> ImageLookup:
        if not card_key or not card_key.strip():
            raise ValidationError("cardKey is required", details={"field": "cardKey"})
        url = await asyncio.to_thread(self.images.lookup, canonical_key(card_key))
        return ImageLookup(image_url=url, exists=url is not None)
