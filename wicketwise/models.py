"""
Data models for the cricket market consensus engine.

This module defines the core dataclasses and enums used throughout the
application for representing matches, market lines, user rules, consensus
edges and trades. Every persisted record round-trips through plain dicts
so the JSON documents stay readable.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return _utcnow()


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class MatchStatus(str, Enum):
    LIVE = "LIVE"
    UPCOMING = "UPCOMING"
    COMPLETED = "COMPLETED"


class MatchFormat(str, Enum):
    T20 = "T20"
    ODI = "ODI"
    TEST = "TEST"


class MarketType(str, Enum):
    MATCH_WINNER = "MATCH_WINNER"
    INN_RUNS = "INN_RUNS"
    PP_RUNS = "PP_RUNS"
    WICKET_NEXT = "WICKET_NEXT"
    SESSION_RUNS = "SESSION_RUNS"
    OVER_RUNS_4 = "OVER_RUNS_4"
    OVER_RUNS_6 = "OVER_RUNS_6"
    OVER_RUNS_10 = "OVER_RUNS_10"
    OVER_RUNS_15 = "OVER_RUNS_15"
    OVER_RUNS_20 = "OVER_RUNS_20"
    OVER_RUNS_25 = "OVER_RUNS_25"
    OVER_RUNS_30 = "OVER_RUNS_30"
    OVER_RUNS_40 = "OVER_RUNS_40"
    OVER_RUNS_50 = "OVER_RUNS_50"


class MarketClassification(str, Enum):
    APEX_STRAT = "APEX_STRAT"
    TACTICAL_PLAY = "TACTICAL_PLAY"
    VOID_TRAP = "VOID_TRAP"


class MarketSource(str, Enum):
    """Originating adapter of a market line."""
    BETFAIR = "BETFAIR"
    JEEBET = "JEEBET"
    MOCK = "MOCK"
    LIVE_EXCHANGE = "LIVE_EXCHANGE"


class EdgeType(str, Enum):
    INFLATION = "INFLATION"
    COMPRESSION = "COMPRESSION"
    VARIANCE_PLAY = "VARIANCE_PLAY"


class TradeSide(str, Enum):
    BACK = "BACK"
    LAY = "LAY"


class TradeStatus(str, Enum):
    MATCHED = "MATCHED"
    WON = "WON"
    LOST = "LOST"
    FAILED = "FAILED"


class BridgeStatus(str, Enum):
    OFFLINE = "OFFLINE"
    VPN_VERIFYING = "VPN_VERIFYING"
    AUTH_PENDING = "AUTH_PENDING"
    SYNCED = "SYNCED"
    RECON_ACTIVE = "RECON_ACTIVE"
    ERROR = "ERROR"


@dataclass
class MarketLine:
    """
    A single tradeable market on a match.

    Attributes:
        id: Market identifier (upstream id, or a stable synthetic one)
        type: Enumerated market kind
        label: Display label
        classification: Risk tier derived by the classifier
        back_odds: Best available back price (decimal)
        lay_odds: Best available lay price (decimal)
        total_matched: Traded volume
        back_liquidity: Size available at the best back price
        lay_liquidity: Size available at the best lay price
        source: Adapter that produced this line
        last_updated: Timestamp of the last observation
        line_value: Optional target line (e.g. a runs threshold)
        initial_odds: First observed back price, the drift reference point

    back_odds < lay_odds is expected but never enforced.
    """
    id: str
    type: MarketType
    label: str
    classification: MarketClassification
    back_odds: float
    lay_odds: float
    total_matched: float = 0.0
    back_liquidity: float = 0.0
    lay_liquidity: float = 0.0
    source: MarketSource = MarketSource.MOCK
    last_updated: datetime = field(default_factory=_utcnow)
    line_value: Optional[float] = None
    initial_odds: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "label": self.label,
            "classification": self.classification.value,
            "backOdds": self.back_odds,
            "layOdds": self.lay_odds,
            "totalMatched": self.total_matched,
            "backLiquidity": self.back_liquidity,
            "layLiquidity": self.lay_liquidity,
            "source": self.source.value,
            "lastUpdated": self.last_updated.isoformat(),
            "lineValue": self.line_value,
            "initialOdds": self.initial_odds,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MarketLine":
        """
        Build a line from its canonical dict shape.

        Raises:
            ValueError: If the market type or classification is unknown
            KeyError: If a required field is missing
        """
        return cls(
            id=str(data["id"]),
            type=MarketType(data["type"]),
            label=str(data.get("label") or data["type"]),
            classification=MarketClassification(data.get("classification", "VOID_TRAP")),
            back_odds=float(data["backOdds"]),
            lay_odds=float(data["layOdds"]),
            total_matched=float(data.get("totalMatched") or 0.0),
            back_liquidity=float(data.get("backLiquidity") or 0.0),
            lay_liquidity=float(data.get("layLiquidity") or 0.0),
            source=MarketSource(data.get("source", "MOCK")),
            last_updated=_parse_timestamp(data.get("lastUpdated")),
            line_value=_optional_float(data.get("lineValue")),
            initial_odds=_optional_float(data.get("initialOdds")),
        )


@dataclass
class StructuralContext:
    """Match-level context block returned by the structural phase."""
    venue_behavior: str
    volatility_index: float
    pressure_classification: str
    squad_balance_observation: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "venueBehavior": self.venue_behavior,
            "volatilityIndex": self.volatility_index,
            "pressureClassification": self.pressure_classification,
            "squadBalanceObservation": self.squad_balance_observation,
        }


@dataclass
class Match:
    """
    A cricket match and the market lines it owns.

    Attributes:
        id: Match identifier
        team_a: First team name
        team_b: Second team name
        score_a: Free-text score for team A
        score_b: Free-text score for team B
        status: Lifecycle status
        format: T20, ODI or TEST
        venue: Venue name
        overs: Overs-progress string, e.g. "16.2"
        market_lines: Ordered market lines, owned by this match
        starting_odds_a: Optional starting price for team A
        starting_odds_b: Optional starting price for team B
        structural_context: Context from the last structural analysis
        pre_match_research: Opaque pre-match research payload
        analyses_used: Number of analysis invocations on this match
        is_live_realtime: Whether the source streams real prices
    """
    id: str
    team_a: str
    team_b: str
    score_a: str
    score_b: str
    status: MatchStatus
    format: MatchFormat
    venue: str
    overs: str
    market_lines: list[MarketLine] = field(default_factory=list)
    starting_odds_a: Optional[float] = None
    starting_odds_b: Optional[float] = None
    structural_context: Optional[StructuralContext] = None
    pre_match_research: Optional[dict[str, Any]] = None
    analyses_used: int = 0
    is_live_realtime: bool = False

    @property
    def name(self) -> str:
        return f"{self.team_a} v {self.team_b}"

    def find_line(self, line_id: str) -> Optional[MarketLine]:
        for line in self.market_lines:
            if line.id == line_id:
                return line
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "teamA": self.team_a,
            "teamB": self.team_b,
            "scoreA": self.score_a,
            "scoreB": self.score_b,
            "status": self.status.value,
            "format": self.format.value,
            "venue": self.venue,
            "overs": self.overs,
            "marketLines": [line.to_dict() for line in self.market_lines],
            "startingOddsA": self.starting_odds_a,
            "startingOddsB": self.starting_odds_b,
            "structuralContext": self.structural_context.to_dict() if self.structural_context else None,
            "preMatchResearch": self.pre_match_research,
            "advisesUsed": self.analyses_used,
            "isLiveRealtime": self.is_live_realtime,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Match":
        """
        Build a match from its canonical dict shape.

        Lines are parsed strictly; callers that want to skip bad lines should
        parse them individually.
        """
        return cls(
            id=str(data["id"]),
            team_a=str(data.get("teamA") or "Team A"),
            team_b=str(data.get("teamB") or "Team B"),
            score_a=str(data.get("scoreA") or ""),
            score_b=str(data.get("scoreB") or ""),
            status=MatchStatus(data.get("status", "LIVE")),
            format=MatchFormat(data.get("format", "T20")),
            venue=str(data.get("venue") or "Unknown Venue"),
            overs=str(data.get("overs") or "0.0"),
            market_lines=[MarketLine.from_dict(line) for line in data.get("marketLines") or []],
            starting_odds_a=_optional_float(data.get("startingOddsA")),
            starting_odds_b=_optional_float(data.get("startingOddsB")),
            pre_match_research=data.get("preMatchResearch"),
            analyses_used=int(data.get("advisesUsed") or 0),
            is_live_realtime=bool(data.get("isLiveRealtime", False)),
        )


@dataclass
class UserRule:
    """
    A user-authored trading rule.

    trigger_logic is free text forwarded to the oracle; it is never
    evaluated locally.
    """
    id: str
    name: str
    description: str
    is_active: bool = True
    min_odds: Optional[float] = None
    max_odds: Optional[float] = None
    trigger_logic: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "isActive": self.is_active,
            "minOdds": self.min_odds,
            "maxOdds": self.max_odds,
            "triggerLogic": self.trigger_logic,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserRule":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            description=str(data.get("description") or ""),
            is_active=bool(data.get("isActive", True)),
            min_odds=_optional_float(data.get("minOdds")),
            max_odds=_optional_float(data.get("maxOdds")),
            trigger_logic=data.get("triggerLogic") or None,
        )


@dataclass(frozen=True)
class Citation:
    title: str
    url: str


@dataclass(frozen=True)
class Pulse:
    """Situational summary from the grounding phase."""
    text: str
    citations: tuple[Citation, ...] = ()


@dataclass(frozen=True)
class Observation:
    """One per-market observation from the structural phase, validated."""
    market_id: str
    edge_type: EdgeType
    confidence: float
    reasoning: tuple[str, ...]
    experts_concurred: tuple[str, ...]
    triggered_rules: tuple[str, ...]


@dataclass(frozen=True)
class StructuralAnalysis:
    context: StructuralContext
    consensus_level: int
    observations: tuple[Observation, ...]


@dataclass(frozen=True)
class Edge:
    """
    A detected trading opportunity.

    Created fresh on every analysis and never mutated; the next analysis for
    the same match supersedes it.

    Attributes:
        match_id: Match this edge belongs to
        market_id: Market line the edge pertains to
        edge_type: INFLATION, COMPRESSION or VARIANCE_PLAY
        confidence: Confidence percentage (0-100)
        observation: Headline observation
        structural_reasoning: Supporting reasoning strings
        triggered_rules: Names of active user rules that concurred
        experts_concurred: Panel members that agreed
        is_locked: Reserved for auto-trading gating
        created_at: Creation timestamp
    """
    match_id: str
    market_id: str
    edge_type: EdgeType
    confidence: float
    observation: str
    structural_reasoning: tuple[str, ...] = ()
    triggered_rules: tuple[str, ...] = ()
    experts_concurred: tuple[str, ...] = ()
    is_locked: bool = False
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class Analysis:
    """Result of one consensus engine invocation for a match."""
    match_id: str
    pulse: Pulse
    context: StructuralContext
    consensus_level: int
    panel_size: int
    edges: tuple[Edge, ...]
    is_actionable: bool
    created_at: datetime = field(default_factory=_utcnow)


@dataclass
class Trade:
    """
    An executed trade.

    Match and market names are denormalized copies so the trade stays
    readable after the match disappears. Settlement only touches status and
    explanation.
    """
    id: str
    match_id: str
    match_name: str
    market_id: str
    market_label: str
    side: TradeSide
    odds: float
    stake: float
    rule_id: str
    status: TradeStatus = TradeStatus.MATCHED
    timestamp: datetime = field(default_factory=_utcnow)
    source_node: str = MarketSource.MOCK.value
    explanation: Optional[str] = None

    @property
    def is_settled(self) -> bool:
        return self.status in (TradeStatus.WON, TradeStatus.LOST)

    @property
    def profit(self) -> Optional[float]:
        """Realized P/L, or None while the trade is still open."""
        if self.status == TradeStatus.WON:
            return self.stake * (self.odds - 1)
        if self.status == TradeStatus.LOST:
            return -self.stake
        if self.status == TradeStatus.FAILED:
            return 0.0
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "matchId": self.match_id,
            "matchName": self.match_name,
            "marketId": self.market_id,
            "marketLabel": self.market_label,
            "side": self.side.value,
            "odds": self.odds,
            "stake": self.stake,
            "ruleId": self.rule_id,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "sourceNode": self.source_node,
            "explanation": self.explanation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Trade":
        return cls(
            id=str(data["id"]),
            match_id=str(data.get("matchId") or ""),
            match_name=str(data.get("matchName") or ""),
            market_id=str(data.get("marketId") or ""),
            market_label=str(data.get("marketLabel") or ""),
            side=TradeSide(data.get("side", "BACK")),
            odds=float(data["odds"]),
            stake=float(data["stake"]),
            rule_id=str(data.get("ruleId") or "manual"),
            status=TradeStatus(data.get("status", "MATCHED")),
            timestamp=_parse_timestamp(data.get("timestamp")),
            source_node=str(data.get("sourceNode") or MarketSource.MOCK.value),
            explanation=data.get("explanation"),
        )


@dataclass
class ExecutionConfig:
    """
    User execution preferences, persisted as a flat document.

    Attributes:
        auto_trading_enabled: Reserved; no orders are ever placed
        max_exposure_per_trade: Maximum exposure per trade, in units
        min_consensus_level: Consensus needed before an edge is actionable
        strategy_only_view: Hide lines that are not strategically relevant
        exclude_avoid_markets: Drop VOID_TRAP lines from signals
        exclude_variance_plays: Drop VARIANCE_PLAY edges from signals
        unit_value: Stake recorded per trade
        data_source: Preferred source ("MOCK", "BETFAIR", "JEEBET")
        allowed_formats: Match formats to keep
    """
    auto_trading_enabled: bool = False
    max_exposure_per_trade: float = 1.5
    min_consensus_level: int = 2
    strategy_only_view: bool = True
    exclude_avoid_markets: bool = False
    exclude_variance_plays: bool = False
    unit_value: float = 100.0
    data_source: str = "MOCK"
    allowed_formats: list[MatchFormat] = field(
        default_factory=lambda: [MatchFormat.T20, MatchFormat.ODI, MatchFormat.TEST]
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "autoTradingEnabled": self.auto_trading_enabled,
            "maxExposurePerTrade": self.max_exposure_per_trade,
            "minConsensusLevel": self.min_consensus_level,
            "strategyOnlyView": self.strategy_only_view,
            "excludeAvoidMarkets": self.exclude_avoid_markets,
            "excludeVariancePlays": self.exclude_variance_plays,
            "unitValue": self.unit_value,
            "dataSource": self.data_source,
            "allowedFormats": [fmt.value for fmt in self.allowed_formats],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExecutionConfig":
        """Build from a possibly partial document; missing keys keep defaults."""
        defaults = cls()
        formats = []
        for value in data.get("allowedFormats") or []:
            try:
                formats.append(MatchFormat(value))
            except ValueError:
                continue
        return cls(
            auto_trading_enabled=bool(data.get("autoTradingEnabled", defaults.auto_trading_enabled)),
            max_exposure_per_trade=float(data.get("maxExposurePerTrade", defaults.max_exposure_per_trade)),
            min_consensus_level=int(data.get("minConsensusLevel", defaults.min_consensus_level)),
            strategy_only_view=bool(data.get("strategyOnlyView", defaults.strategy_only_view)),
            exclude_avoid_markets=bool(data.get("excludeAvoidMarkets", defaults.exclude_avoid_markets)),
            exclude_variance_plays=bool(data.get("excludeVariancePlays", defaults.exclude_variance_plays)),
            unit_value=float(data.get("unitValue", defaults.unit_value)),
            data_source=str(data.get("dataSource", defaults.data_source)),
            allowed_formats=formats or defaults.allowed_formats,
        )
