"""
pytest configuration and fixtures.

Сессию гоняем без сокетов и без loop'а: транспорт пишет в список,
таймеры стреляют вручную через FakeLoop.fire().
"""
from typing import Callable, List, Optional, Tuple

import pytest

from httpgate.config import GatewayConfig
from httpgate.routes import RequestEvent, RouteRegistry
from httpgate.session import HttpSession


class FakeTimerHandle:
    def __init__(self, when: float, callback: Callable, args: tuple):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeLoop:
    """Минимум от loop'а для RequestTimer: call_later() и time()."""

    def __init__(self):
        self.now = 0.0
        self.handles: List[FakeTimerHandle] = []

    def time(self) -> float:
        return self.now

    def call_later(self, delay: float, callback: Callable, *args) -> FakeTimerHandle:
        handle = FakeTimerHandle(self.now + delay, callback, args)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> List[FakeTimerHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def fire(self) -> FakeTimerHandle:
        """Срабатывает ближайший живой таймер."""
        handle = min(self.pending, key=lambda h: h.when)
        self.now = handle.when
        handle.fired = True
        handle.callback(*handle.args)
        return handle


class FakeTransport:
    def __init__(self):
        self.chunks: List[bytes] = []
        self.terminated = 0

    def write(self, data: bytes) -> None:
        self.chunks.append(data)

    def end_line(self) -> None:
        self.chunks.append(b"\r\n")

    def terminate(self) -> None:
        self.terminated += 1

    @property
    def output(self) -> str:
        return b"".join(self.chunks).decode("utf-8")

    def clear(self) -> None:
        self.chunks.clear()


class RecordingRegistry(RouteRegistry):
    """
    Запоминает события и вызывает обработчик сразу, внутри dispatch(),
    без call_soon. По умолчанию обработчик ничего не делает.
    """

    def __init__(self, routes=("HTTP`NEWS",), handler: Optional[Callable] = None):
        super().__init__()
        self.events: List[RequestEvent] = []
        for route in routes:
            self.register(route, handler or (lambda event: None))

    def dispatch(self, route: str, event: RequestEvent) -> bool:
        if route not in self:
            return False
        self.events.append(event)
        self._routes[route.upper()](event)
        return True


@pytest.fixture
def fake_loop() -> FakeLoop:
    return FakeLoop()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def config() -> GatewayConfig:
    """Default test configuration."""
    return GatewayConfig.default()


@pytest.fixture
def make_session(transport: FakeTransport, fake_loop: FakeLoop, config: GatewayConfig):
    """Фабрика (session, registry) с нужным набором маршрутов."""
    def factory(
        routes=("HTTP`NEWS",),
        cfg: Optional[GatewayConfig] = None,
        handler: Optional[Callable] = None,
    ) -> Tuple[HttpSession, RecordingRegistry]:
        registry = RecordingRegistry(routes, handler)
        session = HttpSession(
            7, "10.0.0.1", transport, registry, cfg or config, loop=fake_loop,
        )
        return session, registry
    return factory


@pytest.fixture
def dispatched(make_session):
    """Сессия после GET /news, обработчик уже вызван."""
    session, registry = make_session()
    assert session.start("GET /news HTTP/1.1")
    assert session.feed(b"\r\n")
    return session
