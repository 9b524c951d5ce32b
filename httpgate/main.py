#!/usr/bin/env python3
"""
Точка входа строчного сервера с HTTP-шлюзом.

Запуск:
    python -m httpgate.main
    python -m httpgate.main --config config.yaml
    python -m httpgate.main --app tests.echo_routes:setup
"""
import argparse
import asyncio
import importlib
import logging
import signal
from pathlib import Path
from typing import Callable

from httpgate.config import GatewayConfig
from httpgate.logger import setup_logger
from httpgate.routes import RouteRegistry
from httpgate.server import LineServer


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Line server with an HTTP gateway",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "-c", "--config",
        type=str,
        default=None,
        help="Path to YAML config file",
    )
    parser.add_argument(
        "-H", "--host",
        type=str,
        default="127.0.0.1",
        help="Listen host",
    )
    parser.add_argument(
        "-p", "--port",
        type=int,
        default=4201,
        help="Listen port",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Logging level",
    )
    parser.add_argument(
        "-a", "--app",
        type=str,
        default=None,
        help="Route setup callable, module:function",
    )
    return parser.parse_args()


def load_config(args: argparse.Namespace) -> GatewayConfig:
    """Загружает конфигурацию из файла или использует дефолтную."""
    if args.config and Path(args.config).exists():
        config = GatewayConfig.from_yaml(args.config)
    else:
        config = GatewayConfig.default()
        config.listen_host = args.host
        config.listen_port = args.port
        config.log_level = args.log_level

    if args.app:
        config.app = args.app
    return config


def load_app(spec: str) -> Callable[[RouteRegistry], None]:
    """
    "package.module:setup" -> setup

    setup(registry) регистрирует маршруты.
    """
    module_name, sep, attr = spec.partition(":")
    if not sep or not attr:
        raise ValueError(f"App must look like module:function, got {spec!r}")
    module = importlib.import_module(module_name)
    return getattr(module, attr)


async def shutdown(server: LineServer, sig: signal.Signals) -> None:
    """Graceful shutdown при получении сигнала."""
    logging.getLogger("httpgate").info(f"Received {sig.name}, shutting down...")
    await server.stop()

    # Отменяем все активные задачи
    tasks = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]
    for task in tasks:
        task.cancel()

    await asyncio.gather(*tasks, return_exceptions=True)


async def main() -> None:
    args = parse_args()
    config = load_config(args)

    # Настройка логирования
    setup_logger(config.log_level)
    logger = logging.getLogger("httpgate")
    logger.debug(f"Config loaded: {config}")

    registry = RouteRegistry()
    if config.app:
        load_app(config.app)(registry)

    # Создание и запуск сервера
    server = LineServer(config, registry)

    # Настройка graceful shutdown
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda s=sig: asyncio.create_task(shutdown(server, s)),
        )

    try:
        await server.start()
    except asyncio.CancelledError:
        logger.info("Server shutdown complete")


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
