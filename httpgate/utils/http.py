"""
Низкоуровневые куски HTTP/1.1 для текстового сервера.

Только то что нужно чтобы опознать запрос по первой строке:
- метод (по префиксу строки)
- таблица статус-кодов
- нарезка входящих байт на строки

Разбор самого запроса — в httpgate/request.py.
"""
import enum
from types import MappingProxyType
from typing import List, Mapping, Optional


class HttpMethod(enum.IntEnum):
    """
    Поддерживаемые методы.

    Порядок значений = порядок проверки префиксов, первый совпавший выигрывает.
    """
    UNKNOWN = 0
    GET = 1
    POST = 2
    PUT = 3
    PATCH = 4
    DELETE = 5

    @property
    def label(self) -> str:
        """
        Метка для обработчика — с пробелом на конце: "GET ".

        Пробел — часть префикса, так "GETX /" не считается GET-запросом.
        """
        return f"{self.name} "


_METHOD_PREFIXES = [(m, m.label) for m in HttpMethod if m is not HttpMethod.UNKNOWN]


def parse_method(line: str) -> HttpMethod:
    """Метод по началу строки или UNKNOWN."""
    for method, prefix in _METHOD_PREFIXES:
        if line.startswith(prefix):
            return method
    return HttpMethod.UNKNOWN


def is_http_request(line: str) -> bool:
    """
    Похожа ли первая строка соединения на HTTP-запрос.

    Этим предикатом текстовый сервер решает, уводить ли соединение в HTTP.
    """
    return parse_method(line) is not HttpMethod.UNKNOWN


# (код, фраза): отсортировано по коду, не меняется после загрузки модуля
STATUS_CODES = (
    (100, "Continue"),
    (101, "Switching Protocols"),
    (102, "Processing"),
    (103, "Early Hints"),
    (200, "OK"),
    (201, "Created"),
    (202, "Accepted"),
    (203, "Non-Authoritative Information"),
    (204, "No Content"),
    (205, "Reset Content"),
    (206, "Partial Content"),
    (207, "Multi-Status"),
    (208, "Already Reported"),
    (226, "IM Used"),
    (300, "Multiple Choices"),
    (301, "Moved Permanently"),
    (302, "Found"),
    (303, "See Other"),
    (304, "Not Modified"),
    (305, "Use Proxy"),
    (306, "(Unused)"),
    (307, "Temporary Redirect"),
    (308, "Permanent Redirect"),
    (400, "Bad Request"),
    (401, "Unauthorized"),
    (402, "Payment Required"),
    (403, "Forbidden"),
    (404, "Not Found"),
    (405, "Method Not Allowed"),
    (406, "Not Acceptable"),
    (407, "Proxy Authentication Required"),
    (408, "Request Timeout"),
    (409, "Conflict"),
    (410, "Gone"),
    (411, "Length Required"),
    (412, "Precondition Failed"),
    (413, "Payload Too Large"),
    (414, "URI Too Long"),
    (415, "Unsupported Media Type"),
    (416, "Range Not Satisfiable"),
    (417, "Expectation Failed"),
    (421, "Misdirected Request"),
    (422, "Unprocessable Entity"),
    (423, "Locked"),
    (424, "Failed Dependency"),
    (425, "Too Early"),
    (426, "Upgrade Required"),
    (428, "Precondition Required"),
    (429, "Too Many Requests"),
    (431, "Request Header Fields Too Large"),
    (451, "Unavailable For Legal Reasons"),
    (500, "Internal Server Error"),
    (501, "Not Implemented"),
    (502, "Bad Gateway"),
    (503, "Service Unavailable"),
    (504, "Gateway Timeout"),
    (505, "HTTP Version Not Supported"),
    (506, "Variant Also Negotiates"),
    (507, "Insufficient Storage"),
    (508, "Loop Detected"),
    (510, "Not Extended"),
    (511, "Network Authentication Required"),
)

# read-only, локи не нужны
_REASONS: Mapping[int, str] = MappingProxyType(dict(STATUS_CODES))


def reason_phrase(code: int) -> Optional[str]:
    """
    Фраза для статус-кода или None.

    None — значит код нам неизвестен, и выставлять его нельзя.
    """
    return _REASONS.get(code)


class LineBuffer:
    """
    Режет поток байт на логические строки.

    Терминатор — \\r, \\n или \\r\\n (считается за один).
    Незавершённый хвост остаётся в буфере до следующего чанка,
    поэтому результат не зависит от того, как байты побились на чанки.

    Одинокий \\r в самом конце тоже держим: вдруг следом придёт \\n.

    max_line ограничивает хвост: лишнее отбрасывается, а overflowed
    говорит, что последний feed() что-то обрезал.
    """

    def __init__(self, encoding: str = "latin-1", max_line: Optional[int] = None):
        # latin-1: байт в символ один к одному, длины совпадают
        self._encoding = encoding
        self._max_line = max_line
        self._pending = ""
        self.overflowed = False

    @property
    def pending(self) -> str:
        """Недочитанный хвост."""
        return self._pending

    def feed(self, data: bytes) -> List[str]:
        text = self._pending + data.decode(self._encoding)
        lines: List[str] = []
        head = 0
        i = 0
        end = len(text)

        while i < end:
            ch = text[i]
            if ch == "\n":
                lines.append(text[head:i])
                head = i + 1
            elif ch == "\r":
                if i + 1 == end:
                    # не знаем ещё, \r\n это или нет
                    break
                lines.append(text[head:i])
                if text[i + 1] == "\n":
                    i += 1
                head = i + 1
            i += 1

        tail = text[head:]
        self.overflowed = self._max_line is not None and len(tail) > self._max_line
        if self.overflowed:
            tail = tail[:self._max_line]
        self._pending = tail
        return lines
