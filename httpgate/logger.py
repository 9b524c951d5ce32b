"""
Настройка логирования с номером соединения.

Каждое соединение получает conn_id, который автоматически
добавляется во все логи через ContextVar + Filter.
Таймеры (call_later) копируют контекст при взводе, так что
и их колбэки логируют с нужным conn_id.
"""
import logging
import time
from contextvars import ContextVar
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

# conn_id хранится в contextvars: доступен из любой корутины
# и колбэка соединения без явной передачи
conn_id_var: ContextVar[Optional[int]] = ContextVar("conn_id", default=None)


def get_conn_id() -> Optional[int]:
    """Текущий conn_id или None."""
    return conn_id_var.get()


def set_conn_id(conn_id: int) -> None:
    """Устанавливает conn_id для текущего контекста."""
    conn_id_var.set(conn_id)


class ConnIdFilter(logging.Filter):
    """
    Добавляет conn_id в каждую запись лога.

    Если conn_id не установлен — ставит "-".
    """
    def filter(self, record: logging.LogRecord) -> bool:
        conn_id = conn_id_var.get()
        record.conn_id = "-" if conn_id is None else conn_id
        return True


@dataclass
class RequestLog:
    """
    Данные для лога HTTP-запроса.

    Заполняется сессией по ходу обработки и выводится в finally.
    Пока route пустой — соединение не было HTTP, логировать нечего.
    """
    conn_id: int
    method: str = ""
    path: str = ""
    route: str = ""
    status: int = 0
    duration_ms: float = 0
    bytes_sent: int = 0


def setup_logger(level: str = "info") -> logging.Logger:
    """
    Настраивает логгер "httpgate".

    Формат: 2025-01-15 12:30:45 | INFO | [17] message
    """
    logger = logging.getLogger("httpgate")
    logger.setLevel(getattr(logging, level.upper()))

    # чистим старые хэндлеры если есть (при перезапуске)
    logger.handlers.clear()

    handler = logging.StreamHandler()

    # conn_id в квадратных скобках перед сообщением
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | [%(conn_id)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    handler.setFormatter(formatter)
    handler.addFilter(ConnIdFilter())
    logger.addHandler(handler)
    return logger


@contextmanager
def log_request(logger: logging.Logger, conn_id: int):
    """
    Контекст на всё время жизни соединения.

    Использование:
        with log_request(logger, conn_id) as log:
            session = HttpSession(..., log=log)
            ...
        # если соединение было HTTP: залогирует с duration
    """
    start = time.perf_counter()
    log = RequestLog(conn_id=conn_id)

    try:
        yield log
    finally:
        log.duration_ms = (time.perf_counter() - start) * 1000
        if log.route:
            logger.info(
                f"{log.method}/{log.path} -> {log.route} | "
                f"{log.status} | {log.bytes_sent}B | {log.duration_ms:.2f}ms"
            )
