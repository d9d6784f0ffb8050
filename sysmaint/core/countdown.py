"""이 파일은 .py 카운트다운 모듈로 실행 종료 후 취소 가능한 대기와 기본 동작을 제공합니다."""

from __future__ import annotations

import logging
import select
import sys
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CountdownOutcome:
    cancelled: bool
    fired: bool
    elapsed: float


def stdin_interrupt() -> bool:
    # 터미널에서 Enter 입력이 들어왔는지 대기 없이 확인한다.
    if not sys.stdin or not sys.stdin.isatty():
        return False
    try:
        readable, _, _ = select.select([sys.stdin], [], [], 0)
    except (OSError, ValueError) as exc:
        logger.debug("stdin probe unavailable: %s", exc)
        return False
    if readable:
        sys.stdin.readline()
        return True
    return False


class Countdown:
    """단일 스레드 협력형 대기 루프.

    poll_interval마다 interrupted()를 확인하고, deadline 전에 인터럽트가
    관찰되면 취소합니다. 그렇지 않으면 기본 동작을 정확히 한 번 실행하며
    재시도는 없습니다.
    """

    def __init__(
        self,
        seconds: float,
        poll_interval: float = 1.0,
        interrupted: Optional[Callable[[], bool]] = None,
        on_tick: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.seconds = max(0.0, float(seconds))
        self.poll_interval = float(poll_interval)
        self.interrupted = interrupted or stdin_interrupt
        self.on_tick = on_tick
        self.clock = clock
        self.sleep = sleep

    def run(self, default_action: Callable[[], Any]) -> CountdownOutcome:
        started = self.clock()
        deadline = started + self.seconds
        while True:
            now = self.clock()
            remaining = deadline - now
            if remaining <= 0:
                break
            if self.on_tick:
                self.on_tick(remaining)
            if self.interrupted():
                logger.info("Countdown cancelled with %.1fs remaining", remaining)
                return CountdownOutcome(cancelled=True, fired=False, elapsed=now - started)
            try:
                self.sleep(min(self.poll_interval, remaining))
            except KeyboardInterrupt:
                logger.info("Countdown cancelled by keyboard interrupt")
                return CountdownOutcome(cancelled=True, fired=False, elapsed=self.clock() - started)
        # 마감 시각에 기본 동작을 한 번만 실행한다.
        default_action()
        return CountdownOutcome(cancelled=False, fired=True, elapsed=self.clock() - started)
