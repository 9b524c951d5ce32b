"""
Тестовые маршруты.

Подключаются к серверу для ручной проверки шлюза:
    python -m httpgate.main --app tests.echo_routes:setup
    curl http://127.0.0.1:4201/
    curl -X POST http://127.0.0.1:4201/echo -d "hello"
"""
import asyncio
from urllib.parse import parse_qs

from httpgate.routes import RequestEvent, RouteRegistry


def homepage(event: RequestEvent) -> None:
    """
    GET / — что пришло в обработчик.

    Удобно для проверки что шлюз правильно режет путь и заголовки.
    """
    resp = event.responder
    resp.set_content_type("text")
    resp.finish(
        f"method={event.method.strip()} path={event.path} query={event.query}\n"
        f"{event.headers}"
    )


def echo(event: RequestEvent) -> None:
    """
    POST /echo — возвращает тело запроса.

    curl -X POST http://localhost:4201/echo -d "hello"
    """
    event.responder.finish(event.body)


async def slow(event: RequestEvent) -> None:
    """
    GET /slow?delay=5 — отвечает с задержкой.

    Для тестирования таймаутов: дольше request_ms — получим 408.
    """
    delay = float(parse_qs(event.query).get("delay", ["5"])[0])
    await asyncio.sleep(delay)
    if event.responder.request is not None:
        event.responder.finish(f"delayed {delay}")


def status(event: RequestEvent) -> None:
    """
    GET /status?code=404 — отвечает указанным кодом.

    Для тестирования set_status.
    """
    code = int(parse_qs(event.query).get("code", ["200"])[0])
    resp = event.responder
    resp.set_status(code)
    resp.add_header("X-Echo-Status: yes")
    resp.finish(str(code))


def page(event: RequestEvent) -> None:
    """GET /page — HTML-обёртка и ответ в несколько кусков."""
    resp = event.responder
    resp.set_content_type("html")
    resp.set_wrap(True)
    resp.send("<p>first</p>")
    resp.finish("<p>second</p>")


def setup(registry: RouteRegistry) -> None:
    # маршруты
    registry.route("/")(homepage)
    registry.route("/echo")(echo)
    registry.route("/slow")(slow)
    registry.route("/status")(status)
    registry.route("/page")(page)
