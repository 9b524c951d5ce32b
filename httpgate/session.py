"""
HTTP-сессия на одном соединении текстового сервера.

Это главная логика:
- первая строка -> Request (или 400 / страница-заглушка)
- чанки -> строки -> заголовки -> тело
- дочитали -> один раз зовём обработчик маршрута
- обработчик пишет ответ через set_status/add_header/send/finish
- таймер дожимает зависшие запросы и закрывает соединение

Всё однопоточное: чанки, таймер и вызовы обработчика
приходят из одного loop'а по очереди.
"""
import logging
from typing import Iterable, Optional, Protocol

from httpgate.config import GatewayConfig
from httpgate.logger import RequestLog
from httpgate.request import (
    Request,
    RequestState,
    append_bounded,
    clip,
    consume_body_line,
    consume_header_line,
    try_start,
)
from httpgate.response import (
    CONTENT_TYPE_PRESETS,
    HTML_CLOSE,
    render_default_page,
    render_head,
    render_status_page,
    wraps_html,
)
from httpgate.routes import RequestEvent, RouteRegistry
from httpgate.timeouts import RequestTimer
from httpgate.utils.http import HttpMethod, LineBuffer, reason_phrase

logger = logging.getLogger("httpgate")

# заголовки, которые через add_header выставлять нельзя
RESERVED_HEADERS = ("content-length", "content-type")


class ResponseError(ValueError):
    """Ошибка вызывающего кода при настройке ответа. Клиенту ничего не уходит."""


class InvalidStatusCode(ResponseError):
    pass


class InvalidHeader(ResponseError):
    pass


class ReservedHeader(ResponseError):
    pass


class NotAnHttpRequest(ResponseError):
    pass


class UnknownConnection(ResponseError):
    pass


class Transport(Protocol):
    """Что сессии нужно от сокета."""

    def write(self, data: bytes) -> None: ...

    def end_line(self) -> None: ...

    def terminate(self) -> None: ...


class HttpSession:
    """
    Один запрос на соединение, keep-alive нет.

    После ответа соединение закрывается (или обработчик явно
    оставляет его открытым через finish(keep_open=True)).
    """

    def __init__(
        self,
        conn_id: int,
        client_address: str,
        transport: Transport,
        registry: RouteRegistry,
        config: Optional[GatewayConfig] = None,
        *,
        loop=None,
        lines: Optional[LineBuffer] = None,
        log: Optional[RequestLog] = None,
    ):
        self.conn_id = conn_id
        self.client_address = client_address
        self.config = config or GatewayConfig.default()
        self.request: Optional[Request] = None
        self.closed = False
        self.log = log or RequestLog(conn_id=conn_id)
        self._transport = transport
        self._registry = registry
        self._loop = loop
        # строки режем тем же буфером, что и текстовый сервер, хвост не теряется
        self._lines = lines if lines is not None else LineBuffer(max_line=self.config.limits.buffer_len)

    # ------------------------------------------------------------------
    # входящие данные
    # ------------------------------------------------------------------

    def start(self, first_line: str) -> bool:
        """
        Первая строка запроса.

        False — соединение уже закрыто (заглушка, 400 или 500).
        """
        if not self._registry.has_any():
            logger.info("No HTTP routes registered, sending default page")
            self.send_default_page()
            self._terminate()
            return False

        limits = self.config.limits
        try:
            request = try_start(first_line, limits.str_len, limits.buffer_len)
        except MemoryError:
            self.send_status(500, "Unable to allocate http request.")
            self._terminate()
            return False

        if request is None:
            logger.warning(f"Bad request line from {self.client_address}: {first_line[:64]!r}")
            self.send_status(400, "Invalid request method.")
            self._terminate()
            return False

        request.timer = RequestTimer(self.on_timeout, loop=self._loop)
        self.request = request
        self.log.method = request.method.label
        self.log.path = request.path
        self.log.route = request.route
        logger.info(f"{request.method.label}/{request.path} -> {request.route}")

        self._rearm(self.config.timeouts.request)
        return True

    def feed(self, data: bytes) -> bool:
        """
        Очередной чанк от транспорта.

        Обрабатываются только целые строки, хвост ждёт следующего чанка.
        False — запрос провалился и соединение закрыто.
        """
        if self.request is None:
            return False
        return self.consume_lines(self._lines.feed(data))

    def consume_lines(self, lines: Iterable[str]) -> bool:
        """
        Строки, уже нарезанные общим LineBuffer.

        Если буфер только что обрезал бесконечную строку, запрос
        считаем кривым: 400 и закрываем.
        """
        if self.request is None:
            return False
        if self._lines.overflowed:
            logger.warning(f"Line longer than {self.config.limits.buffer_len} chars, dropping request")
            self.send_status(400, "Line too long.")
            self.close()
            return False

        for line in lines:
            if not self._process_line(line):
                return False

        # данные идут: отсчёт заново
        self._rearm(self.config.timeouts.request)
        return True

    def _process_line(self, line: str) -> bool:
        req = self.request
        if req is None:
            return False

        if req.state is RequestState.HEADERS:
            if not consume_header_line(req, line):
                return True
            # пустая строка: заголовки кончились
            if req.method is HttpMethod.GET:
                req.advance(RequestState.DONE)
                return self._run()
            req.advance(RequestState.CONTENT)
            if req.content_length == 0:
                # тела не будет, ждать нечего
                req.advance(RequestState.DONE)
                return self._run()
        elif req.state is RequestState.CONTENT:
            if consume_body_line(req, line):
                req.advance(RequestState.DONE)
                return self._run()
        # DONE/STARTED: обработчик уже вызван, остальное игнорируем
        return True

    def _dispatch(self) -> bool:
        req = self.request
        event = RequestEvent(
            conn_id=self.conn_id,
            client_address=self.client_address,
            method=req.method.label,
            path=req.path,
            query=req.query,
            content_type=req.content_type,
            content_length=req.content_length,
            headers=req.headers,
            body=req.body,
            route=req.route,
            responder=self,
        )
        return self._registry.dispatch(req.route, event)

    def _run(self) -> bool:
        # обработчик может ответить и закрыть запрос прямо внутри dispatch
        route = self.request.route
        if self._dispatch():
            logger.info(f"Dispatched {route}")
            return True

        logger.warning(f"Route not found: {route}")
        self.send_status(404, f'File not found. "{route}"')
        self.close()
        return False

    # ------------------------------------------------------------------
    # таймауты
    # ------------------------------------------------------------------

    def _rearm(self, delay: float) -> None:
        if self.request is not None and self.request.timer is not None:
            self.request.timer.arm(delay)

    def on_timeout(self) -> None:
        """
        Клиент затих.

        Не дочитали — зовём обработчик с тем что есть и даём ему
        короткое окно. Обработчик уже вызван, но ответа нет — 408.
        В остальных случаях просто закрываем.
        """
        req = self.request
        if req is None:
            return

        if req.state < RequestState.DONE:
            logger.debug(f"Timeout in {req.state.name}, forcing dispatch")
            req.advance(RequestState.DONE)
            if not self._dispatch():
                logger.warning(f"Route not found: {req.route}")
                self.send_status(404, "File not found.")
                self.close()
                return
            # медленный клиент, но данных хватает: обработчику короткий запал
            self._rearm(self.config.timeouts.grace)
            return

        if req.state is not RequestState.STARTED:
            logger.warning(f"Handler for {req.route} did not respond in time")
            self.send_status(408, "Unable to complete request.")

        self.close()

    # ------------------------------------------------------------------
    # ответ
    # ------------------------------------------------------------------

    def _write(self, text: str) -> None:
        data = text.encode("utf-8")
        self._transport.write(data)
        self._transport.end_line()
        self.log.bytes_sent += len(data) + 2

    def send_status(self, code: int, message: str) -> bool:
        """
        Готовая страница-ошибка целиком.

        Неизвестный код — молча ничего не шлём (это баг вызывающего).
        На STARTED не смотрит: нужна до начала обычного ответа.
        """
        reason = reason_phrase(code)
        if reason is None:
            logger.debug(f"Unknown status code {code}, nothing sent")
            return False

        route = self.request.route if self.request is not None else ""
        self._write(render_status_page(code, reason, route, message))
        self.log.status = code
        return True

    def send_default_page(self) -> None:
        site = self.config.site
        self._write(render_default_page(site.name, site.url))
        self.log.status = 200

    def _live(self) -> Request:
        if self.request is None:
            raise NotAnHttpRequest(f"Connection {self.conn_id} has no HTTP request")
        return self.request

    def set_status(self, code: int) -> None:
        req = self._live()
        self._rearm(self.config.timeouts.request)
        if reason_phrase(code) is None:
            logger.warning(f"Rejected status code {code} for {req.route}")
            raise InvalidStatusCode(f"Invalid HTTP status code: {code}")
        req.status_code = code

    def add_header(self, header: str) -> None:
        """Доп. заголовок ответа строкой "Name: value"."""
        req = self._live()
        self._rearm(self.config.timeouts.request)

        name, sep, _ = header.partition(":")
        if not sep or not name:
            logger.warning(f"Rejected header {header!r} for {req.route}")
            raise InvalidHeader(f'Invalid format, expected "Header-Name: Value": {header!r}')
        if header.lower().startswith(RESERVED_HEADERS):
            logger.warning(f"Rejected reserved header {name.strip()} for {req.route}")
            raise ReservedHeader(f"{name.strip()} may not be set manually")

        req.response_headers = append_bounded(req.response_headers, header + "\r\n", req.buffer_len)

    def set_content_type(self, value: str) -> None:
        """Полный тип или пресет: html, json, text."""
        req = self._live()
        self._rearm(self.config.timeouts.request)
        if not value:
            raise ResponseError("Content-Type must not be empty")
        req.response_type = clip(CONTENT_TYPE_PRESETS.get(value, value), req.str_len)

    def set_wrap(self, enabled: bool) -> None:
        req = self._live()
        self._rearm(self.config.timeouts.request)
        req.wrap_html = enabled

    def send(self, content: Optional[str] = None) -> None:
        """
        Кусок тела ответа.

        Первый вызов отправляет статус и заголовки (ровно один раз),
        дальше — только сырой контент.
        """
        req = self._live()
        if req.state < RequestState.DONE:
            raise ResponseError(f"Request {req.route} has not been dispatched yet")
        self._rearm(self.config.timeouts.request)

        parts = []
        if req.state is not RequestState.STARTED:
            req.advance(RequestState.STARTED)
            parts.append(render_head(
                req.status_code,
                reason_phrase(req.status_code),
                req.response_headers,
                req.response_type,
                req.wrap_html,
                self.config.site.name,
            ))
            self.log.status = req.status_code
        if content:
            parts.append(content)

        if parts:
            self._write("".join(parts))

    def finish(self, content: Optional[str] = None, keep_open: bool = False) -> None:
        """Дописать и закрыть. keep_open — соединение оставить, закроет таймер."""
        self.send(content)
        if not keep_open:
            self.close()

    # ------------------------------------------------------------------
    # закрытие
    # ------------------------------------------------------------------

    def close(self) -> None:
        """
        Закрывает запрос и соединение. Повторный вызов — no-op.

        Таймер отменяется до того как Request умрёт.
        """
        req = self.request
        if req is None:
            return

        if req.timer is not None:
            req.timer.cancel()

        if req.state is RequestState.STARTED and wraps_html(req.wrap_html, req.response_type):
            self._write(HTML_CLOSE)

        self.request = None
        self._terminate()

    def _terminate(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._transport.terminate()
