"""
Строчный TCP-сервер, который умеет притворяться веб-сервером.

Использует asyncio.start_server() — низкоуровневый, но простой API.
Каждое соединение обрабатывается в отдельной корутине.
Первая строка решает судьбу соединения: похожа на HTTP-запрос —
дальше работает HttpSession, иначе строки уходят в command_handler.
"""
import asyncio
import itertools
import logging
from typing import Callable, Dict, Optional

from httpgate.config import GatewayConfig
from httpgate.logger import log_request, set_conn_id
from httpgate.routes import RouteRegistry
from httpgate.session import HttpSession, UnknownConnection
from httpgate.utils.http import LineBuffer, is_http_request

logger = logging.getLogger("httpgate")

CHUNK_SIZE = 16 * 1024

# строка команды -> ответ; None: закрыть соединение
CommandHandler = Callable[[int, str], Optional[str]]


def default_command_handler(conn_id: int, line: str) -> Optional[str]:
    """Заглушка вместо настоящего командного интерпретатора."""
    if line.strip().upper() == "QUIT":
        return None
    return "Huh?"


class StreamTransport:
    """Транспорт сессии поверх StreamWriter."""

    def __init__(self, writer: asyncio.StreamWriter):
        self._writer = writer

    @property
    def closed(self) -> bool:
        return self._writer.is_closing()

    def write(self, data: bytes) -> None:
        if not self.closed:
            self._writer.write(data)

    def end_line(self) -> None:
        self.write(b"\r\n")

    def terminate(self) -> None:
        self._writer.close()


class LineServer:
    """
    Основной класс сервера.

    Принимает TCP-соединения, ограничивает их количество через семафор,
    раздаёт номера соединений и держит живые HTTP-сессии,
    чтобы обработчик мог ответить по conn_id.
    """

    def __init__(
        self,
        config: GatewayConfig,
        registry: Optional[RouteRegistry] = None,
        command_handler: CommandHandler = default_command_handler,
    ):
        self.config = config
        self.registry = registry if registry is not None else RouteRegistry()
        self.command_handler = command_handler
        # семафор для ограничения одновременных клиентов
        self._client_semaphore = asyncio.Semaphore(config.limits.max_client_conns)
        self._server: Optional[asyncio.AbstractServer] = None
        self._conn_ids = itertools.count(1)
        self._sessions: Dict[int, HttpSession] = {}
        self._active_connections = 0

    async def start(self) -> None:
        """
        Запуск сервера.

        start_server() создаёт сокет и начинает принимать соединения.
        Для каждого нового соединения вызывается _handle_client_wrapper.
        """
        await self.listen()
        async with self._server:
            await self._server.serve_forever()

    async def listen(self) -> asyncio.AbstractServer:
        """Только открывает сокет, без serve_forever — удобно в тестах."""
        self._server = await asyncio.start_server(
            self._handle_client_wrapper,
            self.config.listen_host,
            self.config.listen_port,
        )
        addr = f"{self.config.listen_host}:{self.config.listen_port}"
        logger.info(f"Line server started on {addr}")
        logger.info(f"HTTP routes: {len(self.registry)}")
        return self._server

    async def stop(self) -> None:
        """Корректная остановка — ждём закрытия всех соединений."""
        if self._server:
            logger.info("Stopping line server...")
            self._server.close()
            await self._server.wait_closed()
            logger.info("Line server stopped")

    def responder(self, conn_id: int) -> HttpSession:
        """Живая HTTP-сессия по номеру соединения."""
        session = self._sessions.get(conn_id)
        if session is None:
            raise UnknownConnection(f"Connection {conn_id} has not made an HTTP request")
        return session

    async def _handle_client_wrapper(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """
        Обёртка с проверкой лимита.

        Если семафор locked() — все слоты заняты, сразу отказываем.
        """
        conn_id = next(self._conn_ids)
        set_conn_id(conn_id)

        if self._client_semaphore.locked():
            client_addr = writer.get_extra_info("peername")
            logger.warning(f"Connection rejected from {client_addr}: limit exceeded")
            try:
                writer.write(b"Too many connections, try again later.\r\n")
                await writer.drain()
            except ConnectionError as e:
                logger.debug(f"Client gone before refusal: {e}")
            finally:
                writer.close()
            return

        async with self._client_semaphore:
            self._active_connections += 1
            try:
                await self._handle_connection(reader, writer, conn_id)
            finally:
                self._active_connections -= 1

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        conn_id: int,
    ) -> None:
        peer = writer.get_extra_info("peername")
        client_address = peer[0] if peer else ""
        transport = StreamTransport(writer)
        lines = LineBuffer(max_line=self.config.limits.buffer_len)
        session: Optional[HttpSession] = None
        command_mode = False

        logger.debug(f"Connection from {peer}")

        with log_request(logger, conn_id) as log:
            try:
                while not transport.closed:
                    chunk = await reader.read(CHUNK_SIZE)
                    if not chunk:
                        break

                    if session is not None:
                        session.feed(chunk)
                        continue

                    pending = lines.feed(chunk)
                    while pending and not transport.closed:
                        line = pending.pop(0)
                        # режим решает только первая строка соединения
                        if command_mode or not is_http_request(line):
                            command_mode = True
                            reply = self.command_handler(conn_id, line)
                            if reply is None:
                                transport.terminate()
                                break
                            transport.write(reply.encode("utf-8"))
                            transport.end_line()
                            continue

                        session = HttpSession(
                            conn_id,
                            client_address,
                            transport,
                            self.registry,
                            self.config,
                            lines=lines,
                            log=log,
                        )
                        if session.start(line):
                            self._sessions[conn_id] = session
                            session.consume_lines(pending)
                        break
            except ConnectionError as e:
                logger.debug(f"Connection error: {e}")
            finally:
                # клиент отвалился: то же самое что close
                if session is not None:
                    session.close()
                self._sessions.pop(conn_id, None)
                writer.close()
                try:
                    await writer.wait_closed()
                except ConnectionError as e:
                    logger.debug(f"Error closing connection: {e}")

    @property
    def active_connections(self) -> int:
        """Для отладки."""
        return self._active_connections
