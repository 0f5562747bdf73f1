"""
Leverage-driven risk evaluation.

The decision itself (``RiskEvaluator.evaluate``) is a pure function of a
ledger snapshot, thresholds and the time opening was last stopped. The
instance wrapper adds logging and a bounded audit history; the caller owns
whatever action results.

Priority:
1. max leverage >= emergency threshold -> EMERGENCY_CLOSE
2. max leverage >= max threshold       -> STOP_OPENING
   (escalates to START_CLOSING once stop_duration has elapsed)
3. everything flat                     -> CONTINUE_OPENING (ready to reopen)
4. otherwise                           -> CONTINUE_OPENING (normal)
"""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional

from hedgebot.core.types import RiskAction, Venue
from hedgebot.state.position_ledger import LedgerSnapshot

REASON_EMERGENCY = "Leverage exceeded emergency threshold"
REASON_STOP = "Leverage exceeded maximum threshold"
REASON_ESCALATE = "Leverage above maximum for longer than stop duration"
REASON_READY = "All positions are zero, ready to reopen"
REASON_NORMAL = "Normal trading conditions"


@dataclass(frozen=True)
class RiskConfig:
    max_leverage: float = 3.0
    emergency_leverage: float = 5.0
    stop_duration: float = 600.0  # seconds at STOP_OPENING before closing starts (0 disables)

    def __post_init__(self) -> None:
        if self.max_leverage <= 0:
            raise ValueError("max_leverage must be > 0")
        if self.emergency_leverage <= self.max_leverage:
            raise ValueError("emergency_leverage must be > max_leverage")
        if self.stop_duration < 0:
            raise ValueError("stop_duration must be >= 0")


@dataclass(frozen=True)
class RiskStatus:
    action: RiskAction
    leverage_by_venue: Dict[Venue, float]
    max_leverage: float
    reason: str
    timestamp: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "action": self.action.value,
            "leverage": {v.value: lev for v, lev in self.leverage_by_venue.items()},
            "max_leverage": self.max_leverage,
            "reason": self.reason,
            "timestamp": self.timestamp,
        }


class RiskEvaluator:
    """
    Stateless leverage rules with an audit trail.

    Thread Safety:
        ``evaluate`` touches no state. ``check`` guards the history with a lock.
    """

    def __init__(self, config: Optional[RiskConfig] = None, logger: Optional[logging.Logger] = None,
                 history_size: int = 100) -> None:
        self.config = config or RiskConfig()
        self._log = logger or logging.getLogger("hedgebot")
        self._history: Deque[RiskStatus] = deque(maxlen=history_size)
        self._lock = threading.RLock()

    @staticmethod
    def evaluate(
        snapshot: LedgerSnapshot,
        config: RiskConfig,
        opening_stopped_at: Optional[float] = None,
        now: Optional[float] = None,
    ) -> RiskStatus:
        ts = snapshot.taken_at if now is None else now
        leverage = snapshot.leverage_by_venue
        max_lev = max(leverage.values())

        if max_lev >= config.emergency_leverage:
            action, reason = RiskAction.EMERGENCY_CLOSE, REASON_EMERGENCY
        elif max_lev >= config.max_leverage:
            action, reason = RiskAction.STOP_OPENING, REASON_STOP
            if (
                config.stop_duration > 0
                and opening_stopped_at is not None
                and ts - opening_stopped_at >= config.stop_duration
            ):
                action, reason = RiskAction.START_CLOSING, REASON_ESCALATE
        elif snapshot.all_zero:
            action, reason = RiskAction.CONTINUE_OPENING, REASON_READY
        else:
            action, reason = RiskAction.CONTINUE_OPENING, REASON_NORMAL

        return RiskStatus(
            action=action,
            leverage_by_venue=dict(leverage),
            max_leverage=max_lev,
            reason=reason,
            timestamp=ts,
        )

    def check(
        self,
        snapshot: LedgerSnapshot,
        opening_stopped_at: Optional[float] = None,
        now: Optional[float] = None,
    ) -> RiskStatus:
        status = self.evaluate(snapshot, self.config, opening_stopped_at, now)
        with self._lock:
            prev = self._history[-1] if self._history else None
            self._history.append(status)
        level = logging.INFO
        if status.action is RiskAction.EMERGENCY_CLOSE:
            level = logging.CRITICAL
        elif status.action is not RiskAction.CONTINUE_OPENING:
            level = logging.WARNING
        # only log transitions at elevated level; steady state stays at debug
        if prev is None or prev.action is not status.action:
            self._log.log(level, json.dumps({"event": "risk_action_changed", **status.to_dict()}))
        else:
            self._log.debug(json.dumps({"event": "risk_check", **status.to_dict()}))
        return status

    @property
    def last_status(self) -> Optional[RiskStatus]:
        with self._lock:
            return self._history[-1] if self._history else None

    def history(self) -> List[RiskStatus]:
        with self._lock:
            return list(self._history)
