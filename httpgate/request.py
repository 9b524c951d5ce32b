"""
Инкрементальный разбор HTTP-запроса по строкам.

Формат HTTP/1.1:
GET /path?query HTTP/1.1\r\n
Content-Type: text/plain\r\n
Content-Length: 42\r\n
\r\n
<body>

Строки приходят по одной (их режет LineBuffer), парсер только
наполняет Request. Переходы состояний делает сессия.
"""
import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Tuple

from httpgate.timeouts import RequestTimer
from httpgate.utils.http import HttpMethod, parse_method

logger = logging.getLogger("httpgate")

ROUTE_PREFIX = "HTTP"
# обратная кавычка не встречается в именах маршрутов, поэтому ей заменяем /
ROUTE_SEPARATOR = "`"
DEFAULT_ROUTE = "INDEX"

DEFAULT_CONTENT_TYPE = "text/plain"

STR_LEN = 256
BUFFER_LEN = 8192

_LEADING_INT = re.compile(r"\s*(\d+)")


class RequestState(enum.IntEnum):
    """
    Состояния запроса. Только вперёд.

    HEADERS -> CONTENT -> DONE -> STARTED, GET пропускает CONTENT.
    DONE — обработчик уже вызван, STARTED — заголовки ответа уже ушли.
    """
    HEADERS = 1
    CONTENT = 2
    DONE = 3
    STARTED = 4


@dataclass
class Request:
    """
    Один запрос на соединение.

    Все строки и буферы ограничены: при переполнении обрезаем,
    соседние поля не трогаем.
    """
    method: HttpMethod
    path: str                  # /news/ -> news
    query: str
    route: str                 # HTTP`NEWS: ключ для диспетчера
    str_len: int = STR_LEN
    buffer_len: int = BUFFER_LEN

    content_type: str = ""
    content_length: int = 0
    headers: str = ""          # сырые строки заголовков через \n
    body: str = ""
    received: int = 0
    state: RequestState = RequestState.HEADERS
    timer: Optional[RequestTimer] = field(default=None, repr=False)

    # что отдаём клиенту
    status_code: int = 200
    response_headers: str = ""
    response_type: str = DEFAULT_CONTENT_TYPE
    wrap_html: bool = False

    def advance(self, state: RequestState) -> None:
        """Переводит запрос вперёд. Назад — ошибка в вызывающем коде."""
        if state < self.state:
            raise ValueError(f"Request state cannot go back: {self.state.name} -> {state.name}")
        self.state = state

    @property
    def body_complete(self) -> bool:
        return self.received >= self.content_length


def clip(text: str, limit: int) -> str:
    """
    Обрезает строку под буфер ёмкостью limit.

    Одно место в буфере резервируем под терминатор, как в исходном протоколе:
    при limit=256 остаётся не больше 255 символов.
    """
    return text[:max(limit - 1, 0)]


def append_bounded(buf: str, text: str, limit: int) -> str:
    """Дописывает text в buf, но не дальше limit - 1 символов (см. clip)."""
    room = limit - 1 - len(buf)
    if room <= 0:
        return buf
    return buf + text[:room]


def route_key(path: str) -> str:
    """
    Ключ маршрута из пути запроса.

    /           -> HTTP`INDEX
    /news/      -> HTTP`NEWS
    /api/users  -> HTTP`API`USERS
    """
    name = path.lstrip("/")
    if not name:
        name = DEFAULT_ROUTE
    else:
        name = name.rstrip("/").replace("/", ROUTE_SEPARATOR).upper()
    return f"{ROUTE_PREFIX}{ROUTE_SEPARATOR}{name}"


def parse_request_line(line: str, str_len: int = STR_LEN) -> Tuple[HttpMethod, str, str]:
    """
    METHOD /route/path?query HTTP/1.1 -> (method, path, query)

    Путь возвращается как есть, с query отрезанным.
    ValueError если строка не похожа на запрос.
    """
    method = parse_method(line)
    if method is HttpMethod.UNKNOWN:
        raise ValueError(f"Unknown method: {line[:16]!r}")

    # лишние пробелы между методом и путём пропускаем
    _, _, rest = line.partition(" ")
    target, sep, version = rest.lstrip().partition(" ")
    if not sep or not target:
        raise ValueError(f"Malformed request line: {line!r}")

    if not version.startswith("HTTP/1.1"):
        raise ValueError(f"Unsupported version: {version!r}")

    path, _, query = target.partition("?")
    if len(path) >= str_len:
        raise ValueError(f"Path too long: {len(path)} chars")

    return method, path, query


def try_start(line: str, str_len: int = STR_LEN, buffer_len: int = BUFFER_LEN) -> Optional[Request]:
    """
    Новый Request из первой строки или None.

    None — строка не HTTP-запрос (или кривой), вызывающий отвечает 400.
    Таймер тут не взводим — это дело сессии.
    """
    try:
        method, path, query = parse_request_line(line, str_len)
    except ValueError as e:
        logger.debug(f"Rejected request line: {e}")
        return None

    return Request(
        method=method,
        path=path.strip("/"),
        query=clip(query, str_len),
        route=clip(route_key(path), str_len),
        str_len=str_len,
        buffer_len=buffer_len,
    )


def consume_header_line(req: Request, line: str) -> bool:
    """
    Одна строка заголовков.

    True — пустая строка, заголовки кончились.
    Строка без двоеточия сохраняется в headers, но больше ни на что не влияет.
    """
    if not line:
        return True

    req.headers = append_bounded(req.headers, line + "\n", req.buffer_len)

    name, sep, value = line.partition(":")
    if not sep:
        return False

    name = name.strip().lower()
    if name == "content-length":
        # как atoi: мусор после цифр игнорируем, не число даёт 0
        match = _LEADING_INT.match(value)
        req.content_length = int(match.group(1)) if match else 0
    elif name == "content-type":
        req.content_type = clip(value.strip(), req.str_len)
    return False


def consume_body_line(req: Request, line: str) -> bool:
    """
    Одна строка тела.

    Терминаторы строк теряются — тело склеивается из строк как есть,
    и считаются только байты самих строк.
    True — набрали content_length.
    """
    if req.state is not RequestState.CONTENT:
        return req.state >= RequestState.DONE

    req.body = append_bounded(req.body, line, req.buffer_len)
    req.received += len(line)
    return req.body_complete
