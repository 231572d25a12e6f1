"""Shared fixtures for the consensus engine tests."""

from typing import Any, Optional

import pytest

from wicketwise.errors import WicketWiseError
from wicketwise.models import (
    MarketClassification,
    MarketLine,
    MarketSource,
    MarketType,
    Match,
    MatchFormat,
    MatchStatus,
    Pulse,
    UserRule,
)
from wicketwise.oracle import ReasoningOracle
from wicketwise.storage import Storage


def make_line(
    line_id: str = "l1",
    market_type: MarketType = MarketType.MATCH_WINNER,
    back: float = 1.65,
    lay: float = 1.67,
    classification: MarketClassification = MarketClassification.APEX_STRAT,
    total_matched: float = 450000.0,
    initial_odds: Optional[float] = None,
    label: Optional[str] = None,
) -> MarketLine:
    """Create a market line with realistic defaults."""
    return MarketLine(
        id=line_id,
        type=market_type,
        label=label or market_type.value,
        classification=classification,
        back_odds=back,
        lay_odds=lay,
        total_matched=total_matched,
        back_liquidity=12000.0,
        lay_liquidity=8500.0,
        source=MarketSource.MOCK,
        initial_odds=initial_odds,
    )


def make_match(match_id: str = "m1", lines: Optional[list[MarketLine]] = None, **overrides) -> Match:
    """Create a live T20 match carrying the given lines."""
    fields = dict(
        id=match_id,
        team_a="India",
        team_b="Australia",
        score_a="145/4",
        score_b="Yet to bat",
        status=MatchStatus.LIVE,
        format=MatchFormat.T20,
        venue="Mumbai",
        overs="16.2",
    )
    fields.update(overrides)
    if lines is None:
        lines = [
            make_line("l1"),
            make_line(
                "l2", MarketType.INN_RUNS, back=1.95, lay=2.05,
                classification=MarketClassification.TACTICAL_PLAY, total_matched=120000.0,
                label="Total Runs (Innings 1)",
            ),
            make_line(
                "l3", MarketType.WICKET_NEXT, back=15.5, lay=16.5,
                classification=MarketClassification.VOID_TRAP, total_matched=1500.0,
            ),
        ]
    return Match(market_lines=lines, **fields)


def structural_response(
    level: int = 2,
    observations: Optional[list[dict[str, Any]]] = None,
) -> dict[str, Any]:
    """A valid structural payload as the oracle would return it."""
    if observations is None:
        observations = [{
            "marketId": "l2",
            "type": "INFLATION",
            "confidence": 72,
            "reasoning": ["Line stretched beyond venue par", "Dew reduces spin grip"],
            "expertsConcurred": ["The Market Maker", "The Statistician"],
            "triggeredRules": ["Mean Reversal Extremes"],
        }]
    return {
        "context": {
            "venueBehavior": "Flat deck, short boundaries",
            "volatilityIndex": 6.5,
            "pressureClassification": "Chasing side under pressure",
            "squadBalanceObservation": "Deep batting order",
        },
        "consensusLevel": level,
        "observations": observations,
    }


class StubOracle(ReasoningOracle):
    """
    Oracle returning canned payloads and recording every call.

    Set summarize_error/structure_error to an exception instance to make
    the corresponding call raise.
    """

    def __init__(self, pulse: Optional[Pulse] = None, structure: Any = None):
        self.pulse = pulse or Pulse(text="Market is leaning heavily on the chasing side.")
        self.structure_payload = structure if structure is not None else structural_response()
        self.summarize_error: Optional[WicketWiseError] = None
        self.structure_error: Optional[WicketWiseError] = None
        self.summarize_calls: list[str] = []
        self.structure_calls: list[tuple[str, str]] = []
        self.on_structure = None

    def summarize(self, prompt: str) -> Pulse:
        self.summarize_calls.append(prompt)
        if self.summarize_error:
            raise self.summarize_error
        return self.pulse

    def structure(self, prompt: str, schema: dict[str, Any], system: str = "") -> dict[str, Any]:
        self.structure_calls.append((prompt, system))
        if self.on_structure:
            self.on_structure()
        if self.structure_error:
            raise self.structure_error
        return self.structure_payload


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def match() -> Match:
    return make_match()


@pytest.fixture
def stub_oracle() -> StubOracle:
    return StubOracle()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage(tmp_path) -> Storage:
    return Storage(data_dir=tmp_path / "data")


@pytest.fixture
def rules() -> list[UserRule]:
    return [
        UserRule(id="r1", name="Mean Reversal Extremes", description="Fade stretched lines"),
        UserRule(id="r2", name="Betfair Lay-the-Favorite", description="Lay the chasing favourite"),
        UserRule(id="r3", name="Dormant Rule", description="Never active", is_active=False),
    ]
