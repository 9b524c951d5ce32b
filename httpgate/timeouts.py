"""
Таймер запроса.

Один перевзводимый таймер на соединение поверх loop.call_later().
Перед каждым взводом старый колбэк отменяется — на соединении
никогда не висит больше одного таймера, и после cancel() ничего не стрельнет.
"""
import asyncio
from typing import Any, Callable, Optional


class RequestTimer:
    """
    Пример:
        timer = RequestTimer(session.on_timeout)
        timer.arm(2.0)     # данные пришли: ждём следующие 2 сек
        timer.arm(2.0)     # ещё пришли: отсчёт заново
        timer.cancel()     # запрос закрыт

    loop можно подменить чем угодно с call_later() и time() —
    в тестах так и делаем.
    """

    def __init__(self, callback: Callable[[], Any], loop: Optional[Any] = None):
        self._callback = callback
        self._loop = loop
        self._handle: Optional[asyncio.TimerHandle] = None
        self._deadline: Optional[float] = None

    def _get_loop(self):
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                self._loop = asyncio.get_event_loop()
        return self._loop

    def arm(self, delay: float) -> None:
        """(Пере)взводит таймер на delay секунд."""
        self.cancel()
        loop = self._get_loop()
        self._handle = loop.call_later(delay, self._fire)
        self._deadline = loop.time() + delay

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._deadline = None

    @property
    def armed(self) -> bool:
        return self._handle is not None

    @property
    def remaining(self) -> float:
        """Сколько осталось до срабатывания. Не меньше 0, у невзведённого — 0."""
        if self._deadline is None:
            return 0.0
        return max(0.0, self._deadline - self._get_loop().time())

    def _fire(self) -> None:
        # хэндл уже отработал, отменять нечего
        self._handle = None
        self._deadline = None
        self._callback()
