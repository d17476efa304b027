"""Test the generate_article command line script -- article engine."""
import argparse
import importlib.util
from pathlib import Path

import pytest

from article_engine.shared.errors import ConfigErrorReason, ConfigurationError

SCRIPT = Path(__file__).parent.parent / "scripts" / "generate_article.py"


@pytest.fixture
def cli(monkeypatch):
    spec = importlib.util.spec_from_file_location("generate_article_script", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    async def no_dispose():
        return None

    monkeypatch.setattr(module, "dispose_engine", no_dispose)
    return module


def cli_args(**overrides):
    values = {
        "media_id": "m1",
        "category_id": "travel",
        "writer_id": "w1",
        "image_pattern_id": "p1",
        "run_id": None,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


def failing(error):
    async def generate(ctx, request):
        raise error

    return generate


class TestRun:

    @pytest.mark.asyncio
    async def test_unexpected_error_prints_and_exits_one(self, cli, monkeypatch, capsys):
        monkeypatch.setattr(cli, "generate_article", failing(RuntimeError("disk full")))

        assert await cli.run(cli_args()) == 1
        assert "RuntimeError: disk full" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_configuration_error_exits_two(self, cli, monkeypatch, capsys):
        error = ConfigurationError(ConfigErrorReason.INVALID_REQUEST, "category_id blank")
        monkeypatch.setattr(cli, "generate_article", failing(error))

        assert await cli.run(cli_args(category_id=" ")) == 2
        assert "invalid_request" in capsys.readouterr().err

    @pytest.mark.asyncio
    async def test_request_passed_as_dict(self, cli, monkeypatch, capsys):
        seen = {}

        async def generate(ctx, request):
            seen["request"] = request
            return argparse.Namespace(article_id="a1", title="Kyoto")

        monkeypatch.setattr(cli, "generate_article", generate)

        assert await cli.run(cli_args()) == 0
        assert seen["request"]["category_id"] == "travel"
        assert "Saved draft article a1" in capsys.readouterr().out
