"""
Конфигурация шлюза.

Все настройки описаны как dataclasses и читаются из YAML.
"""
from dataclasses import dataclass, field
from typing import Optional
import yaml


@dataclass
class SiteConfig:
    """
    Как представляемся браузеру, который зашёл не туда.

    url пустой — страница без редиректа.
    """
    name: str = "httpgate"
    url: str = ""


@dataclass
class TimeoutConfig:
    """
    Таймауты запроса.

    Храним в миллисекундах (так удобнее в конфиге),
    но properties возвращают секунды для loop.call_later()
    """
    request_ms: int = 2000   # тишина между чанками, после неё запрос дожимаем
    grace_ms: int = 1000     # сколько ждём обработчик после принудительного вызова

    @property
    def request(self) -> float:
        return self.request_ms / 1000

    @property
    def grace(self) -> float:
        return self.grace_ms / 1000


@dataclass
class LimitsConfig:
    """Размеры буферов запроса и лимит соединений."""
    str_len: int = 256            # путь, query, маршрут, content-type
    buffer_len: int = 8192        # заголовки, тело, заголовки ответа
    max_client_conns: int = 1000


@dataclass
class GatewayConfig:
    """
    Корневой конфиг приложения.

    Можно создать через from_yaml() или default() для разработки.
    """
    listen_host: str = "127.0.0.1"
    listen_port: int = 4201
    site: SiteConfig = field(default_factory=SiteConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    log_level: str = "info"
    app: Optional[str] = None     # "package.module:setup": регистрирует маршруты

    @classmethod
    def from_yaml(cls, path: str) -> "GatewayConfig":
        """
        Парсит YAML-конфиг.

        Формат см. в config.example.yaml
        """
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        # listen может быть "127.0.0.1:4201" или просто "0.0.0.0"
        listen = data.get("listen", "127.0.0.1:4201")
        if ":" in listen:
            host, port = listen.rsplit(":", 1)  # rsplit на случай IPv6
            listen_host = host
            listen_port = int(port)
        else:
            listen_host = listen
            listen_port = 4201

        site_data = data.get("site", {})
        site = SiteConfig(
            name=site_data.get("name", "httpgate"),
            url=site_data.get("url", "") or "",
        )

        timeouts_data = data.get("timeouts", {})
        timeouts = TimeoutConfig(
            request_ms=timeouts_data.get("request_ms", 2000),
            grace_ms=timeouts_data.get("grace_ms", 1000),
        )

        limits_data = data.get("limits", {})
        limits = LimitsConfig(
            str_len=limits_data.get("str_len", 256),
            buffer_len=limits_data.get("buffer_len", 8192),
            max_client_conns=limits_data.get("max_client_conns", 1000),
        )

        return cls(
            listen_host=listen_host,
            listen_port=listen_port,
            site=site,
            timeouts=timeouts,
            limits=limits,
            log_level=data.get("logging", {}).get("level", "info"),
            app=data.get("app"),
        )

    @classmethod
    def default(cls) -> "GatewayConfig":
        """Дефолтный конфиг для локальной разработки."""
        return cls()
