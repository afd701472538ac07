from .lifecycle import (
    DirectInvocation,
    GuessLifecycle,
    GuessReceipt,
    Settlement,
    TimerInvocation,
)
from .scheduler import DisabledScheduler, ScheduleAck, ThreadTimerScheduler
from .scoring import apply_score_delta, guess_won, score_delta
from .store import GuessStore

__all__ = [
    'DirectInvocation',
    'DisabledScheduler',
    'GuessLifecycle',
    'GuessReceipt',
    'GuessStore',
    'ScheduleAck',
    'Settlement',
    'ThreadTimerScheduler',
    'TimerInvocation',
    'apply_score_delta',
    'guess_won',
    'score_delta',
]
