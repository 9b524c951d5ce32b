"""
Unit tests for the CLI helpers.
"""

import argparse

import pytest

from httpgate.main import load_app, load_config
from httpgate.routes import RouteRegistry


def make_args(**overrides) -> argparse.Namespace:
    values = dict(config=None, host="0.0.0.0", port=5000, log_level="debug", app=None)
    values.update(overrides)
    return argparse.Namespace(**values)


class TestLoadConfig:
    """Tests for CLI -> GatewayConfig."""

    def test_flags_without_file(self):
        config = load_config(make_args())

        assert config.listen_host == "0.0.0.0"
        assert config.listen_port == 5000
        assert config.log_level == "debug"

    def test_file_wins_over_flags(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text('listen: "127.0.0.1:6000"\n')

        config = load_config(make_args(config=str(path)))

        assert config.listen_port == 6000

    def test_app_flag(self):
        config = load_config(make_args(app="tests.echo_routes:setup"))

        assert config.app == "tests.echo_routes:setup"


class TestLoadApp:
    """Tests for importing the route setup callable."""

    def test_echo_routes(self):
        registry = RouteRegistry()
        load_app("tests.echo_routes:setup")(registry)

        for route in ("HTTP`INDEX", "HTTP`ECHO", "HTTP`SLOW", "HTTP`STATUS", "HTTP`PAGE"):
            assert route in registry

    def test_bad_spec(self):
        with pytest.raises(ValueError):
            load_app("tests.echo_routes")
