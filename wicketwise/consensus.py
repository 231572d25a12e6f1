"""
Consensus engine turning a match and user rules into trading edges.

Each analysis runs two phases against the reasoning oracle:

1. Pulse: a web-grounded situational summary with citations, memoized per
   (match, user context) for PULSE_CACHE_TTL_SECONDS.
2. Structure: a schema-constrained judgment from a three-expert panel,
   returning a context block, a consensus level and per-market observations.

Edges are only dispatched as alerts when the panel's consensus level meets
the configured threshold. A malformed structural response yields no
analysis; a rate-limited oracle raises QuotaExhaustedError so callers can
back off.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from wicketwise.cache import TTLCache, content_key
from wicketwise.config import Config
from wicketwise.drift import line_drift
from wicketwise.errors import (
    AnalysisInProgressError,
    CredentialRejectedError,
    MalformedResponseError,
    QuotaExhaustedError,
    UpstreamUnavailableError,
)
from wicketwise.models import (
    Analysis,
    Edge,
    EdgeType,
    Match,
    Observation,
    Pulse,
    StructuralAnalysis,
    StructuralContext,
    UserRule,
)
from wicketwise.utils import clamp, safe_float

# Configure module logger
logger = logging.getLogger(__name__)

EXPERT_PANEL = ("The Market Maker", "The Statistician", "The Ground Analyst")

PULSE_UNAVAILABLE_TEXT = "Search temporarily unavailable."
DEFAULT_OBSERVATION = "Structural edge detected."

# Callable receiving the match and an actionable analysis; returns delivery success
AlertDispatcher = Callable[[Match, Analysis], bool]

STRUCTURAL_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "context": {
            "type": "object",
            "properties": {
                "venueBehavior": {"type": "string"},
                "volatilityIndex": {"type": "number"},
                "pressureClassification": {"type": "string"},
                "squadBalanceObservation": {"type": "string"},
            },
            "required": ["venueBehavior", "volatilityIndex", "pressureClassification", "squadBalanceObservation"],
        },
        "consensusLevel": {
            "type": "integer",
            "description": "Number of experts who concur.",
        },
        "observations": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "marketId": {"type": "string"},
                    "type": {"type": "string", "enum": [t.value for t in EdgeType]},
                    "confidence": {"type": "number", "description": "Confidence percentage, 0-100."},
                    "reasoning": {"type": "array", "items": {"type": "string"}},
                    "expertsConcurred": {"type": "array", "items": {"type": "string"}},
                    "triggeredRules": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["marketId", "type", "confidence", "reasoning", "expertsConcurred"],
            },
        },
    },
    "required": ["context", "consensusLevel", "observations"],
}


def _system_instruction(panel_size: int, threshold: int) -> str:
    personas = "\n".join(
        f"{i}. {name}: {focus}"
        for i, (name, focus) in enumerate(zip(EXPERT_PANEL, (
            "Evaluates price inflation, volatility, and bookmaker liability.",
            "Evaluates live scoring rates against historical mean reversion.",
            "Evaluates pitch decay, weather changes, and venue psychology.",
        )), 1)
    )
    return f"""You are a cricket trading syndicate consensus engine.
Evaluate trade opportunities using {panel_size} expert personas:
{personas}

CRITICAL RULE: Only flag an edge if {threshold} or more experts concur.
Report consensusLevel as the number of experts (0-{panel_size}) who concur.
Only list a rule in triggeredRules if it appears in the ACTIVE RULES list.
Return structured output only."""


class ConsensusEngine:
    """
    Two-phase analysis pipeline over a reasoning oracle.

    Args:
        oracle: ReasoningOracle implementation
        threshold: Consensus level needed for an actionable analysis
        panel_size: Number of experts on the panel
        pulse_cache: Cache for the pulse phase
        structure_cache: Cache for the structural phase
        alert_dispatcher: Called once per actionable analysis
        drift_threshold_pct: Threshold used when describing lines to the oracle
    """

    def __init__(
        self,
        oracle,
        threshold: Optional[int] = None,
        panel_size: Optional[int] = None,
        pulse_cache: Optional[TTLCache] = None,
        structure_cache: Optional[TTLCache] = None,
        alert_dispatcher: Optional[AlertDispatcher] = None,
        drift_threshold_pct: Optional[float] = None,
    ):
        self.oracle = oracle
        self.threshold = threshold if threshold is not None else Config.CONSENSUS_THRESHOLD
        self.panel_size = panel_size if panel_size is not None else Config.EXPERT_PANEL_SIZE
        self.pulse_cache = pulse_cache if pulse_cache is not None else TTLCache(Config.PULSE_CACHE_TTL_SECONDS)
        self.structure_cache = (
            structure_cache if structure_cache is not None else TTLCache(Config.STRUCTURE_CACHE_TTL_SECONDS)
        )
        self.alert_dispatcher = alert_dispatcher
        self.drift_threshold_pct = drift_threshold_pct
        self._in_flight: set[str] = set()
        self._in_flight_lock = threading.Lock()

    def is_analyzing(self, match_id: str) -> bool:
        with self._in_flight_lock:
            return match_id in self._in_flight

    def analyze(
        self,
        match: Match,
        market_pulse_text: str = "",
        user_context: str = "",
        active_rules: Optional[list[UserRule]] = None,
    ) -> Optional[Analysis]:
        """
        Run a consensus analysis for one match.

        Args:
            match: Normalized match to analyze
            market_pulse_text: Pre-fetched pulse text; the pulse phase runs when empty
            user_context: Free-text knowledge supplied by the user
            active_rules: User rules; inactive ones are ignored

        Returns:
            Analysis, or None when the structural phase produced nothing usable

        Raises:
            AnalysisInProgressError: If this match is already being analyzed
            QuotaExhaustedError: If the oracle is rate limited
        """
        with self._in_flight_lock:
            if match.id in self._in_flight:
                logger.warning(f"Analysis for match {match.id} rejected: one is already in progress")
                raise AnalysisInProgressError(match.id)
            self._in_flight.add(match.id)

        try:
            return self._analyze(match, market_pulse_text, user_context, active_rules or [])
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(match.id)

    def market_pulse(self, match: Match, user_context: str = "") -> Pulse:
        """
        Pulse phase, memoized per (match, user context).

        Unavailable or malformed responses degrade to a placeholder pulse that
        is not cached.

        Raises:
            QuotaExhaustedError: If the oracle is rate limited
        """
        key = ("pulse", match.id, content_key(user_context.strip()))
        cached = self.pulse_cache.get(key)
        if cached is not None:
            logger.debug(f"Pulse cache hit for match {match.id}")
            return cached

        prompt = (
            f"Research current live market sentiment, betting liquidity, and news for "
            f"{match.team_a} vs {match.team_b} ({match.format.value} at {match.venue}). "
            f"User Manual Knowledge: {user_context.strip() or 'None'}"
        )
        try:
            pulse = self.oracle.summarize(prompt)
        except QuotaExhaustedError:
            raise
        except (UpstreamUnavailableError, CredentialRejectedError, MalformedResponseError) as e:
            logger.error(f"Pulse search failed for match {match.id}: {e}")
            return Pulse(text=PULSE_UNAVAILABLE_TEXT)

        if not pulse.text:
            pulse = Pulse(text="Market pulse analyzed.", citations=pulse.citations)

        self.pulse_cache.set(key, pulse)
        logger.info(f"Pulse for match {match.id}: {len(pulse.citations)} citation(s)")
        return pulse

    def _analyze(
        self,
        match: Match,
        market_pulse_text: str,
        user_context: str,
        rules: list[UserRule],
    ) -> Optional[Analysis]:
        logger.info(f"Analyzing match {match.id} - {match.name}")
        match.analyses_used += 1

        active = [rule for rule in rules if rule.is_active]

        if market_pulse_text.strip():
            pulse = Pulse(text=market_pulse_text.strip())
        else:
            pulse = self.market_pulse(match, user_context)

        structural = self._structural_phase(match, pulse.text, user_context, active)
        if structural is None:
            return None

        match.structural_context = structural.context

        created_at = datetime.now(timezone.utc)
        edges = tuple(
            Edge(
                match_id=match.id,
                market_id=obs.market_id,
                edge_type=obs.edge_type,
                confidence=obs.confidence,
                observation=obs.reasoning[0] if obs.reasoning else DEFAULT_OBSERVATION,
                structural_reasoning=obs.reasoning,
                triggered_rules=obs.triggered_rules,
                experts_concurred=obs.experts_concurred,
                created_at=created_at,
            )
            for obs in structural.observations
        )

        analysis = Analysis(
            match_id=match.id,
            pulse=pulse,
            context=structural.context,
            consensus_level=structural.consensus_level,
            panel_size=self.panel_size,
            edges=edges,
            is_actionable=bool(edges) and structural.consensus_level >= self.threshold,
            created_at=created_at,
        )

        logger.info(
            f"Match {match.id}: consensus {analysis.consensus_level}/{self.panel_size}, "
            f"{len(edges)} edge(s), actionable={analysis.is_actionable}"
        )

        if analysis.is_actionable:
            self._dispatch(match, analysis)

        return analysis

    def _structural_phase(
        self,
        match: Match,
        pulse_text: str,
        user_context: str,
        active_rules: list[UserRule],
    ) -> Optional[StructuralAnalysis]:
        rules_json = json.dumps([rule.to_dict() for rule in active_rules], sort_keys=True)
        key = (
            "structure",
            match.id,
            content_key(user_context.strip()),
            content_key(pulse_text),
            content_key(rules_json),
        )
        cached = self.structure_cache.get(key)
        if cached is not None:
            logger.debug(f"Structure cache hit for match {match.id}")
            return cached

        prompt = self._build_structural_prompt(match, pulse_text, user_context, rules_json)
        try:
            data = self.oracle.structure(
                prompt,
                STRUCTURAL_SCHEMA,
                system=_system_instruction(self.panel_size, self.threshold),
            )
        except QuotaExhaustedError:
            raise
        except (UpstreamUnavailableError, CredentialRejectedError) as e:
            logger.error(f"Structural analysis unavailable for match {match.id}: {e}")
            return None
        except MalformedResponseError as e:
            logger.warning(f"Malformed structural response for match {match.id}: {e}")
            return None

        structural = self._validate_structure(data, match, active_rules)
        if structural is not None:
            self.structure_cache.set(key, structural)
        return structural

    def _build_structural_prompt(
        self,
        match: Match,
        pulse_text: str,
        user_context: str,
        rules_json: str,
    ) -> str:
        lines = []
        for line in match.market_lines:
            reading = line_drift(line, self.drift_threshold_pct)
            drift_text = f", drift {reading.direction} {reading.percent:.1f}%" if reading else ""
            value_text = f" @ {line.line_value:g}" if line.line_value is not None else ""
            lines.append(
                f"  - {line.id}: {line.label}{value_text} [{line.type.value}, {line.classification.value}] "
                f"back {line.back_odds} / lay {line.lay_odds}, matched {line.total_matched:,.0f}{drift_text}"
            )
        lines_text = "\n".join(lines) or "  (no market lines)"

        return f"""MATCH: {match.name} ({match.format.value}, {match.venue})
STATUS: {match.status.value}
SCORE: {match.team_a} {match.score_a} | {match.team_b} {match.score_b} (overs {match.overs})

MARKET LINES:
{lines_text}

MARKET PULSE:
{pulse_text}

USER INSIGHT:
{user_context.strip() or 'None'}

ACTIVE RULES (JSON):
{rules_json}

Use marketId values from MARKET LINES. Confidence is a percentage between 0 and 100."""

    def _validate_structure(
        self,
        data: Any,
        match: Match,
        active_rules: list[UserRule],
    ) -> Optional[StructuralAnalysis]:
        """
        Validate the structural response against the declared schema.

        Top-level shape errors reject the whole response; a single bad
        observation is skipped.
        """
        if not isinstance(data, dict):
            logger.warning(f"Structural response is not a JSON object for match {match.id}")
            return None

        for field_name in ("context", "consensusLevel", "observations"):
            if field_name not in data:
                logger.warning(f"Missing required field '{field_name}' in analysis for match {match.id}")
                return None

        raw_context = data["context"]
        if not isinstance(raw_context, dict):
            logger.warning(f"context must be an object for match {match.id}")
            return None

        try:
            level = int(data["consensusLevel"])
        except (TypeError, ValueError, OverflowError):
            logger.warning(f"Invalid consensusLevel for match {match.id}: {data['consensusLevel']!r}")
            return None

        if not isinstance(data["observations"], list):
            logger.warning(f"observations must be a list for match {match.id}")
            return None

        context = StructuralContext(
            venue_behavior=str(raw_context.get("venueBehavior") or "").strip(),
            volatility_index=safe_float(raw_context.get("volatilityIndex")),
            pressure_classification=str(raw_context.get("pressureClassification") or "").strip(),
            squad_balance_observation=str(raw_context.get("squadBalanceObservation") or "").strip(),
        )

        rule_names = {rule.name.strip().lower(): rule.name for rule in active_rules}
        observations = []
        for idx, raw in enumerate(data["observations"]):
            obs = self._validate_observation(raw, rule_names)
            if obs is None:
                logger.warning(f"Skipping invalid observation {idx} for match {match.id}")
                continue
            if match.find_line(obs.market_id) is None:
                logger.debug(f"Observation references unknown market {obs.market_id} on match {match.id}")
            observations.append(obs)

        return StructuralAnalysis(
            context=context,
            consensus_level=int(clamp(level, 0, self.panel_size)),
            observations=tuple(observations),
        )

    @staticmethod
    def _validate_observation(raw: Any, rule_names: dict[str, str]) -> Optional[Observation]:
        if not isinstance(raw, dict):
            return None

        market_id = str(raw.get("marketId") or "").strip()
        if not market_id:
            return None

        try:
            edge_type = EdgeType(str(raw.get("type", "")).strip().upper())
        except ValueError:
            return None

        confidence = raw.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float, str)):
            return None
        confidence = safe_float(confidence, default=float("nan"))
        if confidence != confidence:
            return None

        def strings(value: Any) -> tuple[str, ...]:
            if not isinstance(value, list):
                return ()
            return tuple(str(item).strip() for item in value if item and str(item).strip())

        triggered = tuple(
            rule_names[name.lower()]
            for name in strings(raw.get("triggeredRules"))
            if name.lower() in rule_names
        )

        return Observation(
            market_id=market_id,
            edge_type=edge_type,
            confidence=clamp(confidence, 0.0, 100.0),
            reasoning=strings(raw.get("reasoning")),
            experts_concurred=strings(raw.get("expertsConcurred")),
            triggered_rules=triggered,
        )

    def _dispatch(self, match: Match, analysis: Analysis) -> None:
        if self.alert_dispatcher is None:
            return
        try:
            delivered = self.alert_dispatcher(match, analysis)
        except Exception as e:
            logger.error(f"Consensus alert dispatch failed for match {match.id}: {e}", exc_info=True)
            return
        if not delivered:
            logger.warning(f"Consensus alert for match {match.id} was not delivered")
