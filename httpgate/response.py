"""
Сборка текста ответа.

Тут только строки — писать в сокет и следить за состоянием будет сессия.
Content-Length не считаем: ответ стримится, длина заранее неизвестна,
клиент ориентируется на Connection: Close.
"""
import html
from typing import Optional

HTML_CONTENT_TYPE = "text/html"
HTML_CLOSE = "</BODY></HTML>\r\n"

CONTENT_TYPE_PRESETS = {
    "html": "text/html",
    "json": "application/json",
    "text": "text/plain",
}

_PAGE_HEADERS = (
    "Content-Type: text/html; charset:iso-8859-1\r\n"
    "Pragma: no-cache\r\n"
    "Connection: Close\r\n"
)


def render_status_page(code: int, reason: str, route: str, message: str) -> str:
    """
    Готовый ответ-ошибка целиком: статус, заголовки, HTML.

    X-Route — какой маршрут пытались вызвать, для отладки.
    """
    return (
        f"HTTP/1.1 {code} {reason}\r\n"
        f"{_PAGE_HEADERS}"
        f"X-Route: {route}\r\n"
        f"\r\n"
        f"<!DOCTYPE html>\r\n"
        f"<HTML><HEAD><TITLE>{code} {reason}</TITLE></HEAD>"
        f"<BODY><p>{html.escape(message, quote=False)}</p>\r\n"
        f"</BODY></HTML>\r\n"
    )


def render_default_page(site_name: str, site_url: Optional[str] = None) -> str:
    """
    Страница "вы зашли браузером не туда".

    Отдаём когда HTTP-обработчиков нет вообще. Если задан url сайта —
    редиректим туда через 5 сек, иначе просим взять нормальный клиент.
    """
    has_url = bool(site_url) and site_url.startswith("http")
    parts = [
        "HTTP/1.1 200 OK\r\n",
        _PAGE_HEADERS,
        "\r\n",
        "<!DOCTYPE html>\r\n",
        f"<HTML><HEAD><TITLE>Welcome to {site_name}!</TITLE>",
    ]
    if has_url:
        parts.append(f'<meta http-equiv="refresh" content="5; url={site_url}">')
    parts.append("</HEAD><BODY><h1>Oops!</h1>")
    if has_url:
        parts.append(
            f'<p>You\'ve come here by accident! Please click <a href="{site_url}">{site_url}</a> '
            f"to go to the website for {site_name} if your browser doesn't redirect you "
            f"in a few seconds.</p>"
        )
    else:
        parts.append(
            f"<p>You've come here by accident! Try using a text client, "
            f"not a browser, to connect to {site_name}.</p>"
        )
    parts.append(HTML_CLOSE)
    return "".join(parts)


def wraps_html(wrap: bool, content_type: str) -> bool:
    """Обёртку шлём только если включена и тип — text/html."""
    return wrap and HTML_CONTENT_TYPE in content_type


def render_head(
    code: int,
    reason: str,
    extra_headers: str,
    content_type: str,
    wrap: bool = False,
    site_name: str = "",
) -> str:
    """
    Начало потокового ответа — уходит ровно один раз, при первой записи тела.

    extra_headers уже в виде "Name: value\\r\\n..."
    """
    head = (
        f"HTTP/1.1 {code} {reason}\r\n"
        f"{extra_headers}"
        f"Content-Type: {content_type}\r\n"
        f"\r\n"
    )
    if wraps_html(wrap, content_type):
        head += (
            f"<!DOCTYPE html>\r\n"
            f"<HTML><HEAD>\r\n"
            f"<TITLE>{site_name}</TITLE>\r\n"
            f"</HEAD><BODY>\r\n"
        )
    return head
