"""Unit tests for candidate resolution and the scan session state machine."""

import pytest

from tcg_scanner.core.types import PriceQuote, RawCandidate
from tcg_scanner.match.resolution import (
    ScanSession,
    ScanState,
    build_candidate,
    no_match_result,
    resolve,
)
from tcg_scanner.utils.error_handler import InvalidTransitionError


def _raw(name, number=None, confidence=0.9):
    return RawCandidate(card_name=name, game="pokemon", set_name="Base Set", card_number=number,
                        confidence=confidence)


def _quote(market, product_id=None):
    return PriceQuote(market=market, product_id=product_id, image_url=f"https://img/{product_id}.png")


def _identifying_session():
    session = ScanSession()
    session.rate_checked()
    session.identifying()
    return session


class TestBuildCandidate:
    def test_product_id_key(self, charizard_candidate, charizard_quote):
        candidate = build_candidate(charizard_candidate, charizard_quote)
        assert candidate.card_key == "pokemon:pid:sv3-125"
        assert candidate.prices.market == 24.99
        assert candidate.image_url == "https://images.pokemontcg.io/sv3/125_hires.png"

    def test_attribute_key_without_quote(self, charizard_candidate):
        candidate = build_candidate(charizard_candidate, None)
        assert candidate.card_key == "pokemon:charizard_ex:obsidian_flames:125_197"
        assert candidate.prices.market is None

    def test_catalog_fills_missing_attributes(self):
        raw = RawCandidate(card_name="Pikachu", game="pokemon")
        quote = PriceQuote(set_name="Base Set", card_number="58/102", rarity="Common")
        candidate = build_candidate(raw, quote)
        assert candidate.set_name == "Base Set"
        assert candidate.number == "58/102"
        assert candidate.rarity == "Common"
        assert candidate.card_key == "pokemon:pikachu:base_set:58_102"


class TestResolve:
    """Test resolve() for zero, one and many candidates."""

    def test_zero_candidates_is_no_match(self):
        result = resolve([], [])
        assert result.error_code == "no_match"
        assert result.error == no_match_result().error
        assert result.retryable is False
        assert result.candidates == []

    def test_single_candidate_has_no_list(self, charizard_candidate, charizard_quote):
        result = resolve([charizard_candidate], [charizard_quote])
        assert result.error is None
        assert result.candidates == []
        assert result.card_name == "Charizard ex"
        assert result.card_key == "pokemon:pid:sv3-125"
        assert result.needs_selection is False

    def test_multiple_candidates_keep_provider_order(self):
        raws = [_raw("Pikachu", "58/102", 0.7), _raw("Pikachu", "27/64", 0.95), _raw("Raichu", "14/102", 0.4)]
        quotes = [_quote(1.0, "base1-58"), _quote(2.0, "jungle-60"), _quote(3.0, "base1-14")]

        result = resolve(raws, quotes)

        assert [c.product_id for c in result.candidates] == ["base1-58", "jungle-60", "base1-14"]
        # Top level mirrors the provider's first pick, not the highest confidence
        assert result.product_id == "base1-58"
        assert result.prices.market == 1.0
        assert result.needs_selection is True

    def test_missing_quote_still_resolves(self, charizard_candidate):
        result = resolve([charizard_candidate], [None])
        assert result.card_name == "Charizard ex"
        assert result.prices.market is None

    def test_length_mismatch(self, charizard_candidate):
        with pytest.raises(ValueError):
            resolve([charizard_candidate], [])


class TestScanSession:
    """Test the per-request state machine."""

    def test_initial_state(self):
        session = ScanSession()
        assert session.state == ScanState.SUBMITTED
        assert session.history == [ScanState.SUBMITTED]

    def test_cannot_skip_rate_check(self):
        session = ScanSession()
        with pytest.raises(InvalidTransitionError):
            session.identifying()

    def test_single_candidate_resolves(self, charizard_candidate, charizard_quote):
        session = _identifying_session()
        session.settle([charizard_candidate], [charizard_quote])
        assert session.state == ScanState.RESOLVED
        assert session.history == [
            ScanState.SUBMITTED, ScanState.RATE_CHECKED, ScanState.IDENTIFYING,
            ScanState.SINGLE_PRICED, ScanState.RESOLVED,
        ]

    def test_zero_candidates_is_terminal(self):
        session = _identifying_session()
        session.settle([], [])
        assert session.state == ScanState.NO_MATCH
        with pytest.raises(InvalidTransitionError):
            session.advance(ScanState.RESOLVED)

    def test_multiple_candidates_await_selection(self):
        session = _identifying_session()
        session.settle([_raw("Pikachu", "1"), _raw("Pikachu", "2")], [_quote(1.0, "a"), _quote(2.0, "b")])
        assert session.state == ScanState.AWAITING_SELECTION

    def test_select_resolves_to_chosen_candidate(self):
        session = _identifying_session()
        session.settle([_raw("Pikachu", "1"), _raw("Pikachu", "2")], [_quote(1.0, "a"), _quote(2.0, "b")])

        result = session.select(1)

        assert session.state == ScanState.RESOLVED
        assert result.product_id == "b"
        assert result.prices.market == 2.0
        assert len(result.candidates) == 2

    def test_select_out_of_range(self):
        session = _identifying_session()
        session.settle([_raw("Pikachu", "1"), _raw("Pikachu", "2")], [_quote(1.0, "a"), _quote(2.0, "b")])
        with pytest.raises(IndexError):
            session.select(2)
        assert session.state == ScanState.AWAITING_SELECTION

    def test_select_without_pending_choice(self, charizard_candidate, charizard_quote):
        session = _identifying_session()
        session.settle([charizard_candidate], [charizard_quote])
        with pytest.raises(InvalidTransitionError):
            session.select(0)

    def test_commit_only_from_resolved(self, sample_image):
        session = _identifying_session()
        session.settle([_raw("Pikachu", "1"), _raw("Pikachu", "2")], [_quote(1.0, "a"), _quote(2.0, "b")])
        with pytest.raises(InvalidTransitionError):
            session.commit_request(sample_image)

        session.select(0)
        request = session.commit_request(sample_image)
        assert request.product_id == "a"
        assert request.card_name == "Pikachu"
        assert request.game == "pokemon"

    def test_commit_correction_drops_product_id(self, sample_image, charizard_candidate, charizard_quote):
        session = _identifying_session()
        session.settle([charizard_candidate], [charizard_quote])

        request = session.commit_request(sample_image, card_number="126/197")

        assert request.card_number == "126/197"
        assert request.product_id is None

    def test_resume_from_returned_result(self):
        result = resolve([_raw("Pikachu", "1"), _raw("Pikachu", "2")], [_quote(1.0, "a"), _quote(2.0, "b")])
        session = ScanSession.resume(result)
        assert session.state == ScanState.AWAITING_SELECTION
        assert session.select(1).product_id == "b"
