import threading
import time
from typing import Callable, Dict


class _Arm:
    """Cancellation token for one armed round timer."""
    __slots__ = ('deadline', 'cancelled')

    def __init__(self, deadline: float):
        self.deadline = deadline
        self.cancelled = threading.Event()


class RoundTimer:
    """Per-session round timers that auto-close voting at a deadline.

    - At most one armed timer per session; arming again replaces it
    - Ticks every ``tick_sec`` without touching the store; clients count down
      from the absolute deadline in the snapshot
    - On expiry calls ``on_expire(code, deadline)`` once and disarms
    - ``cancel`` invalidates the token so the background task exits quietly
    """

    def __init__(self, socketio, logger, app=None, tick_sec: float = 1.0, heartbeat_sec: int = 0,
                 clock: Callable[[], float] = time.time):
        self.socketio = socketio
        self.logger = logger
        self.app = app
        self.tick_sec = tick_sec
        self.heartbeat_sec = heartbeat_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._armed: Dict[str, _Arm] = {}

    def arm(self, code: str, deadline: float, on_expire: Callable[[str, float], None]) -> None:
        token = _Arm(deadline)
        with self._lock:
            previous = self._armed.get(code)
            if previous is not None:
                previous.cancelled.set()
            self._armed[code] = token
        self.logger.info(
            f"[timer-set] session={code} deadline={deadline:.3f} remaining={max(0.0, deadline - self._clock()):.1f}s"
        )
        self.socketio.start_background_task(self._worker, code, token, on_expire)

    def cancel(self, code: str) -> bool:
        with self._lock:
            token = self._armed.pop(code, None)
        if token is None:
            return False
        token.cancelled.set()
        self.logger.info(f"[timer-cancel] session={code}")
        return True

    def is_armed(self, code: str) -> bool:
        with self._lock:
            return code in self._armed

    def _worker(self, code: str, token: _Arm, on_expire: Callable[[str, float], None]) -> None:
        last_beat = self._clock()
        while True:
            remaining = token.deadline - self._clock()
            if remaining <= 0:
                break
            self.socketio.sleep(min(self.tick_sec, remaining))
            if token.cancelled.is_set():
                return
            if self.heartbeat_sec and self._clock() - last_beat >= self.heartbeat_sec:
                last_beat = self._clock()
                self.logger.info(
                    f"[timer-heartbeat] session={code} remaining={max(0.0, token.deadline - last_beat):.1f}s"
                )

        with self._lock:
            if self._armed.get(code) is not token:
                return
            del self._armed[code]
        self.logger.info(f"[timer-fire] session={code} deadline={token.deadline:.3f}")
        try:
            if self.app is not None:
                with self.app.app_context():
                    on_expire(code, token.deadline)
            else:
                on_expire(code, token.deadline)
        except Exception:
            self.logger.exception(f"[timer-error] session={code} auto-close failed")
