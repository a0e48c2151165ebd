"""
Candidate resolution for a single scan.

Turns the identifier's raw candidates and their price quotes into a
ScanResult, and tracks the per-request state machine::

    SUBMITTED -> RATE_CHECKED -> IDENTIFYING -> NO_MATCH
                                             -> SINGLE_PRICED -> RESOLVED
                                             -> MULTI_CANDIDATE -> AWAITING_SELECTION
                                                -> SELECTED -> RESOLVED

A commit request can only be built from RESOLVED. Sessions are created per
request and never shared.
"""

import uuid
from dataclasses import replace
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Sequence

from ..core.keys import build_key
from ..core.types import CommitRequest, ImagePayload, PriceQuote, RawCandidate, ScanCandidate, ScanResult
from ..utils.error_handler import ErrorCode, InvalidTransitionError, user_message
from ..utils.log import LoggerMixin


class ScanState(str, Enum):
    SUBMITTED = "submitted"
    RATE_CHECKED = "rate_checked"
    IDENTIFYING = "identifying"
    NO_MATCH = "no_match"
    SINGLE_PRICED = "single_priced"
    MULTI_CANDIDATE = "multi_candidate"
    AWAITING_SELECTION = "awaiting_selection"
    SELECTED = "selected"
    RESOLVED = "resolved"


TRANSITIONS: Dict[ScanState, FrozenSet[ScanState]] = {
    ScanState.SUBMITTED: frozenset({ScanState.RATE_CHECKED}),
    ScanState.RATE_CHECKED: frozenset({ScanState.IDENTIFYING}),
    ScanState.IDENTIFYING: frozenset({
        ScanState.NO_MATCH, ScanState.SINGLE_PRICED, ScanState.MULTI_CANDIDATE,
    }),
    ScanState.SINGLE_PRICED: frozenset({ScanState.RESOLVED}),
    ScanState.MULTI_CANDIDATE: frozenset({ScanState.AWAITING_SELECTION}),
    ScanState.AWAITING_SELECTION: frozenset({ScanState.SELECTED}),
    ScanState.SELECTED: frozenset({ScanState.RESOLVED}),
    ScanState.NO_MATCH: frozenset(),
    ScanState.RESOLVED: frozenset(),
}


def build_candidate(raw: RawCandidate, quote: Optional[PriceQuote]) -> ScanCandidate:
    """Merge an identification hypothesis with its catalog quote."""
    quote = quote or PriceQuote()
    set_name = raw.set_name or quote.set_name
    number = raw.card_number or quote.card_number
    return ScanCandidate(
        card_name=raw.card_name,
        game=raw.game,
        set_name=set_name,
        number=number,
        image_url=quote.image_url,
        prices=quote.prices,
        product_id=quote.product_id,
        confidence=raw.confidence or 0.0,
        card_key=build_key(raw.game, raw.card_name, set_name, number, quote.product_id),
        rarity=raw.rarity or quote.rarity,
        variant=raw.variant,
    )


def apply_candidate(result: ScanResult, candidate: ScanCandidate) -> ScanResult:
    """Copy a candidate's attributes onto the top level of a result."""
    return replace(
        result,
        game=candidate.game,
        card_name=candidate.card_name,
        set_name=candidate.set_name,
        number=candidate.number,
        image_url=candidate.image_url,
        prices=candidate.prices,
        confidence=candidate.confidence,
        card_key=candidate.card_key,
        product_id=candidate.product_id,
        rarity=candidate.rarity,
    )


def no_match_result() -> ScanResult:
    return ScanResult(
        error=user_message(ErrorCode.NO_MATCH),
        error_code=ErrorCode.NO_MATCH.value,
        retryable=False,
        candidates=[],
    )


def resolve(raw_candidates: Sequence[RawCandidate], quotes: Sequence[Optional[PriceQuote]]) -> ScanResult:
    """
    Build the scan result for N priced candidates.

    N = 0 gives a no-match result; N = 1 a resolved result with no candidate
    list; N > 1 mirrors the provider's first pick at the top level and lists
    every candidate in provider order.
    """
    if len(quotes) != len(raw_candidates):
        raise ValueError("one quote per candidate is required")

    if not raw_candidates:
        return no_match_result()

    candidates = [build_candidate(r, q) for r, q in zip(raw_candidates, quotes)]
    result = apply_candidate(ScanResult(), candidates[0])
    if len(candidates) > 1:
        result.candidates = candidates
    return result


class ScanSession(LoggerMixin):
    """Request-scoped resolution state for one scan."""

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id or uuid.uuid4().hex
        self.state = ScanState.SUBMITTED
        self.result: Optional[ScanResult] = None
        self.history: List[ScanState] = [self.state]

    def advance(self, target: ScanState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Illegal scan transition {self.state.value} -> {target.value}",
                details={"session_id": self.session_id},
            )
        self.state = target
        self.history.append(target)

    def rate_checked(self) -> None:
        self.advance(ScanState.RATE_CHECKED)

    def identifying(self) -> None:
        self.advance(ScanState.IDENTIFYING)

    def settle(self, raw_candidates: Sequence[RawCandidate],
               quotes: Sequence[Optional[PriceQuote]]) -> ScanResult:
        """Resolve priced candidates and move to the matching terminal or waiting state."""
        result = resolve(raw_candidates, quotes)
        self._enter_outcome(result)
        return result

    def _enter_outcome(self, result: ScanResult) -> None:
        if result.error_code == ErrorCode.NO_MATCH.value:
            self.advance(ScanState.NO_MATCH)
        elif result.needs_selection:
            self.advance(ScanState.MULTI_CANDIDATE)
            self.advance(ScanState.AWAITING_SELECTION)
        else:
            self.advance(ScanState.SINGLE_PRICED)
            self.advance(ScanState.RESOLVED)
        self.result = result
        self.logger.debug("Scan settled", session_id=self.session_id, state=self.state.value)

    @classmethod
    def resume(cls, result: ScanResult) -> "ScanSession":
        """Rebuild a session around a result that was already returned to a caller."""
        session = cls()
        session.rate_checked()
        session.identifying()
        session._enter_outcome(result)
        return session

    def select(self, index: int) -> ScanResult:
        """Record the user's pick among multiple candidates."""
        if self.state != ScanState.AWAITING_SELECTION:
            raise InvalidTransitionError(
                f"No selection pending in state {self.state.value}",
                details={"session_id": self.session_id},
            )
        candidates = self.result.candidates
        if not 0 <= index < len(candidates):
            raise IndexError(f"candidate index {index} out of range (0..{len(candidates) - 1})")

        self.advance(ScanState.SELECTED)
        self.result = apply_candidate(self.result, candidates[index])
        self.advance(ScanState.RESOLVED)
        return self.result

    def commit_request(
        self,
        image: ImagePayload,
        card_name: Optional[str] = None,
        set_name: Optional[str] = None,
        card_number: Optional[str] = None,
    ) -> CommitRequest:
        """
        Build the commit for the resolved card.

        Attributes may be corrected by the user; a correction drops the
        catalog product id, since it no longer describes the same card.
        """
        if self.state != ScanState.RESOLVED:
            raise InvalidTransitionError(
                f"Commit is only allowed from resolved, not {self.state.value}",
                details={"session_id": self.session_id},
            )
        result = self.result
        corrected = any(
            value is not None and value != current
            for value, current in (
                (card_name, result.card_name),
                (set_name, result.set_name),
                (card_number, result.number),
            )
        )
        return CommitRequest(
            image=image,
            game=result.game or "",
            card_name=card_name if card_name is not None else (result.card_name or ""),
            set_name=set_name if set_name is not None else result.set_name,
            card_number=card_number if card_number is not None else result.number,
            product_id=None if corrected else result.product_id,
        )
