"""
Append-only trade ledger with settlement and performance review.

Trades are recorded with status MATCHED and settled exactly once into
WON, LOST or FAILED. A second settlement is rejected. Nothing here places
real orders.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Optional

from wicketwise.errors import InvalidInputError, TradeAlreadySettledError, TradeNotFoundError
from wicketwise.models import Edge, MarketLine, Match, Trade, TradeSide, TradeStatus
from wicketwise.storage import Storage
from wicketwise.utils import generate_id

# Configure module logger
logger = logging.getLogger(__name__)

SETTLED_STATUSES = (TradeStatus.WON, TradeStatus.LOST, TradeStatus.FAILED)


@dataclass
class PerformanceSummary:
    """
    Aggregate figures over settled (WON/LOST) trades.

    Attributes:
        settled_count: Number of settled trades
        win_count: Number of WON trades
        total_staked: Sum of stakes
        total_profit: Realized P/L
        win_rate: Percentage of settled trades won
        roi: Profit over stake, as a percentage
        average_stake: Mean stake
        max_stake: Largest stake
        staked_won: Stake on WON trades
        staked_lost: Stake on LOST trades
    """
    settled_count: int
    win_count: int
    total_staked: float
    total_profit: float
    win_rate: float
    roi: float
    average_stake: float
    max_stake: float
    staked_won: float
    staked_lost: float


class TradeLedger:
    """
    Trade history backed by the trades document.

    Args:
        storage: Storage used to persist the history
        unit_value: Default stake per recorded trade
    """

    def __init__(self, storage: Storage, unit_value: float = 100.0):
        self.storage = storage
        self.unit_value = unit_value
        self._lock = threading.Lock()
        self._trades: list[Trade] = storage.load_trades()
        logger.debug(f"Loaded {len(self._trades)} trades")

    @property
    def trades(self) -> list[Trade]:
        """Trades, newest first."""
        with self._lock:
            return list(self._trades)

    def get(self, trade_id: str) -> Optional[Trade]:
        with self._lock:
            return next((t for t in self._trades if t.id == trade_id), None)

    def record(
        self,
        match: Match,
        edge: Optional[Edge],
        market_line: MarketLine,
        side: TradeSide,
        stake: Optional[float] = None,
    ) -> Trade:
        """
        Append a MATCHED trade at the price shown on the line right now.

        Args:
            match: Match the trade is on
            edge: Edge that prompted the trade, or None for a manual trade
            market_line: Line traded
            side: BACK takes the back price, LAY the lay price
            stake: Stake; defaults to the ledger's unit value

        Returns:
            The recorded Trade
        """
        stake = self.unit_value if stake is None else stake
        if stake <= 0:
            raise InvalidInputError(f"stake must be positive, got {stake}")

        side = TradeSide(side)
        if edge is None:
            rule_id = "manual"
        elif edge.triggered_rules:
            rule_id = edge.triggered_rules[0]
        else:
            rule_id = edge.edge_type.value

        trade = Trade(
            id=generate_id(),
            match_id=match.id,
            match_name=match.name,
            market_id=market_line.id,
            market_label=market_line.label,
            side=side,
            odds=market_line.back_odds if side == TradeSide.BACK else market_line.lay_odds,
            stake=float(stake),
            rule_id=rule_id,
            source_node=market_line.source.value,
        )

        with self._lock:
            self._trades.insert(0, trade)
            self._persist()

        logger.info(f"Recorded {side.value} @ {trade.odds} on {trade.match_name} / {trade.market_label}")
        return trade

    def settle(self, trade_id: str, status: TradeStatus, explanation: Optional[str] = None) -> Trade:
        """
        Settle a MATCHED trade.

        Raises:
            TradeNotFoundError: If no trade has this id
            TradeAlreadySettledError: If the trade is no longer MATCHED
            InvalidInputError: If status is not a settled status
        """
        status = TradeStatus(status)
        if status not in SETTLED_STATUSES:
            raise InvalidInputError(f"cannot settle into {status.value}")

        with self._lock:
            trade = next((t for t in self._trades if t.id == trade_id), None)
            if trade is None:
                raise TradeNotFoundError(f"trade {trade_id} not found")
            if trade.status != TradeStatus.MATCHED:
                raise TradeAlreadySettledError(
                    f"trade {trade_id} already settled as {trade.status.value}"
                )
            trade.status = status
            trade.explanation = explanation
            self._persist()

        logger.info(f"Settled trade {trade_id} as {status.value} (profit {trade.profit})")
        return trade

    def _persist(self) -> None:
        # Caller holds the lock
        if not self.storage.save_trades(self._trades):
            logger.error(f"Trade history not persisted; {len(self._trades)} trades held in memory only")

    def performance(self) -> PerformanceSummary:
        settled = [t for t in self.trades if t.is_settled]
        won = [t for t in settled if t.status == TradeStatus.WON]
        lost = [t for t in settled if t.status == TradeStatus.LOST]

        total_staked = sum(t.stake for t in settled)
        total_profit = sum(t.profit for t in settled)
        count = len(settled)

        return PerformanceSummary(
            settled_count=count,
            win_count=len(won),
            total_staked=total_staked,
            total_profit=total_profit,
            win_rate=round(len(won) / count * 100, 1) if count else 0.0,
            roi=round(total_profit / total_staked * 100, 1) if total_staked else 0.0,
            average_stake=total_staked / count if count else 0.0,
            max_stake=max((t.stake for t in settled), default=0.0),
            staked_won=sum(t.stake for t in won),
            staked_lost=sum(t.stake for t in lost),
        )
