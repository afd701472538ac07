import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Set

from predictor.errors import PredictorError, SchedulingFailed
from predictor.models import utcnow
from .lifecycle import TimerInvocation


@dataclass(frozen=True)
class ScheduleAck:
    name: str
    run_at: datetime


def schedule_name(payload: Dict) -> str:
    return f"resolve-guess-{payload.get('guess_id')}"


class DisabledScheduler:
    """Refuses every request. Guesses created under it stay ACTIVE until
    settled directly or by the overdue sweep."""

    def schedule_once(self, when: datetime, payload: Dict) -> ScheduleAck:
        raise SchedulingFailed('Automatic guess resolution is disabled')


class ThreadTimerScheduler:
    """Arms one background timer per guess.

    - Ensures a single pending timer per guess
    - Sleeps until the requested instant (optionally logging heartbeats)
    - Fires a TimerInvocation inside a fresh app context
    - ``inline=True`` runs the timer in the caller's thread (tests)
    """

    def __init__(self, app, clock: Callable[[], datetime] = utcnow,
                 sleep: Callable[[float], None] = time.sleep,
                 heartbeat: int = 0, inline: bool = False):
        self.app = app
        self.clock = clock
        self.sleep = sleep
        self.heartbeat = heartbeat
        self.inline = inline
        self._pending: Set[str] = set()
        self._lock = threading.Lock()

    @property
    def pending(self) -> frozenset:
        with self._lock:
            return frozenset(self._pending)

    def schedule_once(self, when: datetime, payload: Dict) -> ScheduleAck:
        name = schedule_name(payload)
        ack = ScheduleAck(name=name, run_at=when)
        with self._lock:
            if name in self._pending:
                self.app.logger.info(f"[timer-skip] {name} already scheduled")
                return ack
            self._pending.add(name)

        delay = max(0.0, (when - self.clock()).total_seconds())
        self.app.logger.info(f"[timer-set] {name} delay={delay:.1f}s run_at={when.isoformat()}")

        if self.inline:
            self._worker(name, delay, dict(payload))
            return ack
        try:
            thread = threading.Thread(
                target=self._worker, args=(name, delay, dict(payload)), name=name, daemon=True,
            )
            thread.start()
        except RuntimeError as exc:
            with self._lock:
                self._pending.discard(name)
            raise SchedulingFailed(f'Could not start timer for {name}: {exc}') from exc
        return ack

    def _wait(self, name: str, delay: float) -> None:
        if self.heartbeat and self.heartbeat > 0:
            slept = 0.0
            while slept < delay:
                step = min(self.heartbeat, delay - slept)
                self.sleep(step)
                slept += step
                self.app.logger.info(f"[timer-heartbeat] {name} remaining={max(0.0, delay - slept):.1f}s")
        else:
            self.sleep(delay)

    def _worker(self, name: str, delay: float, payload: Dict) -> None:
        try:
            self._wait(name, delay)
            with self.app.app_context():
                from predictor.services import get_services
                self.app.logger.info(f"[timer-fire] {name}")
                settlement = get_services(self.app).lifecycle.resolve(TimerInvocation.from_payload(payload))
                self.app.logger.info(
                    f"[timer-done] {name} result={settlement.result} already_resolved={settlement.already_resolved}"
                )
        except PredictorError as exc:
            self.app.logger.warning(f"[timer-abort] {name} code={exc.code} reason={exc}")
        except Exception:
            self.app.logger.exception(f"[timer-error] {name}")
        finally:
            with self._lock:
                self._pending.discard(name)
