from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union


UP = "UP"
DOWN = "DOWN"
LONG = "LONG"
SHORT = "SHORT"

SHOOTING_STAR = "ShootingStar"
HAMMER = "Hammer"
BULLISH_ENGULFING = "BullishEngulfing"
BEARISH_ENGULFING = "BearishEngulfing"

NO_DATA = "no data"
NOT_ENOUGH_CONFLUENCE = "Not enough confluence"
COLLAPSED_LEVELS = "Stop or target collapses onto entry at this price precision"


@dataclass(frozen=True)
class Candle:
    open_time_ms: int
    close_time_ms: int
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class BreakOfStructure:
    direction: str  # UP or DOWN
    price: float


@dataclass(frozen=True)
class OrderBlocks:
    bullish: Optional[Candle] = None
    bearish: Optional[Candle] = None

    @property
    def present(self) -> bool:
        return self.bullish is not None or self.bearish is not None


@dataclass(frozen=True)
class FairValueGap:
    direction: str  # UP or DOWN
    low: float
    high: float
    index: int


@dataclass(frozen=True)
class LiquidityZone:
    volume: float
    average_volume: float

    @property
    def ratio(self) -> float:
        return self.volume / self.average_volume if self.average_volume else 0.0


@dataclass(frozen=True)
class TradeIdea:
    symbol: str
    direction: str  # LONG or SHORT
    entry: float
    stop_loss: float
    take_profit: float
    risk_reward: float
    score: int
    tags: Tuple[str, ...] = ()

    ok = True

    def to_dict(self) -> Dict[str, object]:
        return {
            "symbol": self.symbol,
            "direction": self.direction,
            "entry": self.entry,
            "stop_loss": self.stop_loss,
            "take_profit": self.take_profit,
            "risk_reward": self.risk_reward,
            "score": self.score,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, object]) -> "TradeIdea":
        return cls(
            symbol=str(raw["symbol"]),
            direction=str(raw["direction"]),
            entry=float(raw["entry"]),
            stop_loss=float(raw["stop_loss"]),
            take_profit=float(raw["take_profit"]),
            risk_reward=float(raw["risk_reward"]),
            score=int(raw["score"]),
            tags=tuple(raw.get("tags") or ()),
        )


@dataclass(frozen=True)
class NotActionable:
    reason: str
    score: int = 0
    missing: Tuple[str, ...] = ()

    ok = False


Idea = Union[TradeIdea, NotActionable]


@dataclass(frozen=True)
class Analysis:
    symbol: str
    timeframe: str
    price: float
    bos: Optional[BreakOfStructure]
    order_blocks: OrderBlocks
    fvg: Optional[FairValueGap]
    liquidity: Optional[LiquidityZone]
    pattern: Optional[str]
    idea: Idea
    context: Dict[str, List[Candle]] = field(default_factory=dict)

    ok = True


@dataclass(frozen=True)
class NoData:
    symbol: str
    reason: str = NO_DATA

    ok = False


AnalysisResult = Union[Analysis, NoData]


@dataclass(frozen=True)
class LastSignalRecord:
    symbol: str
    idea: TradeIdea
    announced_at_ms: int

    @property
    def score(self) -> int:
        return self.idea.score

    def to_dict(self) -> Dict[str, object]:
        return {
            "symbol": self.symbol,
            "idea": self.idea.to_dict(),
            "announced_at_ms": int(self.announced_at_ms),
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, object]) -> "LastSignalRecord":
        return cls(
            symbol=str(raw["symbol"]),
            idea=TradeIdea.from_dict(raw["idea"]),
            announced_at_ms=int(raw["announced_at_ms"]),
        )


ANNOUNCE_NEW = "new"
RESEND_PREVIOUS = "resend"
WATCH_HIT = "watch"


@dataclass(frozen=True)
class Announcement:
    kind: str  # new | resend | watch
    symbol: str
    idea: TradeIdea
    recipient: Optional[str] = None  # only for watch hits
