"""
Реестр HTTP-маршрутов.

Сессия про маршруты ничего не знает: у неё есть только
dispatch(route, event) -> bool. Реестр кладёт вызов обработчика
в очередь loop'а (call_soon) — обработчик отработает уже после того,
как сессия дочитает текущий чанк, и ответит через event.responder.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from httpgate.request import route_key

logger = logging.getLogger("httpgate")

Handler = Callable[["RequestEvent"], Any]


@dataclass(frozen=True)
class RequestEvent:
    """
    То что получает обработчик.

    method — с пробелом на конце ("GET "), headers и body — сырые,
    как накопились. responder — сессия, через неё обработчик
    выставляет статус, заголовки и пишет тело.
    """
    conn_id: int
    client_address: str
    method: str
    path: str
    query: str
    content_type: str
    content_length: int
    headers: str
    body: str
    route: str = ""
    responder: Any = field(default=None, repr=False, compare=False)


class RouteRegistry:
    """
    route -> обработчик.

    Обработчик — обычная функция или корутина, принимает RequestEvent.
    Исключения обработчика логируются и дальше не летят.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._routes: Dict[str, Handler] = {}
        self._loop = loop
        # держим ссылки на задачи, иначе их может собрать GC
        self._tasks = set()

    def register(self, route: str, handler: Handler) -> None:
        self._routes[route.upper()] = handler
        logger.debug(f"Route registered: {route.upper()}")

    def unregister(self, route: str) -> None:
        self._routes.pop(route.upper(), None)

    def route(self, path: str) -> Callable[[Handler], Handler]:
        """
        Декоратор по обычному пути:

            @registry.route("/news")
            def news(event): ...      # HTTP`NEWS
        """
        def decorator(handler: Handler) -> Handler:
            self.register(route_key(path), handler)
            return handler
        return decorator

    def has_any(self) -> bool:
        """Есть ли вообще HTTP-обработчики — без них запросы даже не разбираем."""
        return bool(self._routes)

    def __contains__(self, route: str) -> bool:
        return route.upper() in self._routes

    def __len__(self) -> int:
        return len(self._routes)

    def dispatch(self, route: str, event: RequestEvent) -> bool:
        """
        Ставит вызов обработчика в очередь.

        False — на этот маршрут никто не подписан, ничего не ставим.
        """
        handler = self._routes.get(route.upper())
        if handler is None:
            return False

        loop = self._loop or asyncio.get_running_loop()
        loop.call_soon(self._invoke, handler, event)
        return True

    def _invoke(self, handler: Handler, event: RequestEvent) -> None:
        try:
            result = handler(event)
        except Exception as e:
            logger.exception(f"Handler for {event.route} failed: {e}")
            return

        if asyncio.iscoroutine(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: "asyncio.Task") -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Handler task failed: {exc!r}")
