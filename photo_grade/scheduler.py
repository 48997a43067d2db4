# ── Планировщик: один батч в работе, периодический опрос очереди ──────────────

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager

from backlog import Backlog
from burst import group_next
from config import EXIF_SCAN_BYTES, FOLLOWUP_DELAY, TICK_INTERVAL
from evaluator import run_batch

logger = logging.getLogger(__name__)


class SchedulerBusyError(RuntimeError):
    """Батч ещё в работе: backlog нельзя заменить."""


class ProcessingScheduler:
    """
    Гоняет pending-элементы через оценку:
      - на каждом тике берёт первую серию pending-кадров
      - помечает её processing и отдаёт в run_batch
      - после батча сразу планирует следующий тик (через FOLLOWUP_DELAY)
    В работе не больше одного батча. Пауза не прерывает текущий батч.
    """

    def __init__(
        self,
        backlog: Backlog,
        grader,
        source,
        tick_interval: float = TICK_INTERVAL,
        followup_delay: float = FOLLOWUP_DELAY,
        paused: bool = False,
    ):
        self.backlog = backlog
        self.grader = grader
        self.source = source
        self.tick_interval = tick_interval
        self.followup_delay = followup_delay

        self._in_flight = threading.Lock()
        self._enabled = threading.Event()
        if not paused:
            self._enabled.set()
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._followup: threading.Timer | None = None

    # ── Состояние ─────────────────────────────────────────────────────────────

    @property
    def paused(self) -> bool:
        return not self._enabled.is_set()

    @property
    def busy(self) -> bool:
        return self._in_flight.locked()

    def pause(self):
        self._enabled.clear()
        logger.info("Processing paused")

    def resume(self):
        self._enabled.set()
        self._wake.set()
        logger.info("Processing resumed")

    def toggle_pause(self) -> bool:
        """Переключает паузу. Возвращает новое значение paused."""
        if self.paused:
            self.resume()
        else:
            self.pause()
        return self.paused

    @contextmanager
    def _single_flight(self):
        acquired = self._in_flight.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                self._in_flight.release()

    def replace_backlog(self, backlog: Backlog, source=None):
        """Переключение на другую папку. Пока батч в работе, запрещено."""
        with self._single_flight() as acquired:
            if not acquired:
                raise SchedulerBusyError("Cannot switch backlog while a batch is in flight")
            self.backlog = backlog
            if source is not None:
                self.source = source

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Ждёт завершения текущего батча. False, если не дождались."""
        acquired = self._in_flight.acquire(timeout=-1 if timeout is None else timeout)
        if acquired:
            self._in_flight.release()
        return acquired

    # ── Тик ───────────────────────────────────────────────────────────────────

    def _read_header(self, item):
        return self.source.read_bytes(item, limit=EXIF_SCAN_BYTES)

    def tick(self) -> bool:
        """Один проход планировщика. True, если батч был запущен."""
        if self.paused:
            return False

        with self._single_flight() as acquired:
            if not acquired:
                return False

            start = self.backlog.first_pending_index()
            if start is None:
                return False

            seed = self.backlog.at(start)
            try:
                run = group_next(self.backlog, start, self._read_header)
            except Exception as e:
                logger.error("Cannot read %s: %s", seed.name, e)
                self.backlog.mark_error([seed.id], str(e) or type(e).__name__)
                run = None

            if run:
                self.backlog.mark_processing(c.item.id for c in run)
                outcome = run_batch(run, self.backlog, self.grader, self.source)
                if outcome.ok:
                    logger.info("Graded %s", ", ".join(outcome.ids))

        self._schedule_followup()
        return True

    def _schedule_followup(self):
        if self._thread is None or self._stop.is_set():
            return
        if self._followup is not None:
            self._followup.cancel()
        self._followup = threading.Timer(self.followup_delay, self._wake.set)
        self._followup.daemon = True
        self._followup.start()

    # ── Фоновый цикл ──────────────────────────────────────────────────────────

    def _loop(self):
        while not self._stop.is_set():
            # сброс до тика: пробуждение, пришедшее во время или после тика, не теряется
            self._wake.clear()
            try:
                self.tick()
            except Exception:
                logger.exception("Scheduler tick failed")
            self._wake.wait(self.tick_interval)

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            logger.warning("Scheduler already running")
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="photo-grade-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None):
        """Останавливает цикл. Текущий батч доводится до конца."""
        self._stop.set()
        self._wake.set()
        if self._followup is not None:
            self._followup.cancel()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
