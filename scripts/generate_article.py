#!/usr/bin/env python3
"""
Generate one article from the command line.

Manual runs and schedulers (cron, systemd timers) both call this script;
it drives the same generate_article() entry point.

Usage:
    python scripts/generate_article.py --media-id demo --category-id travel \\
        --writer-id w1 --image-pattern-id p1
"""
import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog
from dotenv import load_dotenv

from article_engine.nodes import generate_article
from article_engine.shared import (
    ConfigurationError, ExternalServiceError, NodeContext, PipelineError,
)
from article_engine.shared.database import dispose_engine


def configure_logging(json_logs: bool) -> None:
    level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


async def run(args) -> int:
    request = {
        "media_id": args.media_id,
        "category_id": args.category_id,
        "writer_id": args.writer_id,
        "image_pattern_id": args.image_pattern_id,
    }
    ctx = NodeContext(run_id=args.run_id)
    try:
        result = await generate_article(ctx, request)
    except ConfigurationError as e:
        print(f"✗ ConfigurationError ({e.reason.value}): {e.detail}", file=sys.stderr)
        return 2
    except (PipelineError, ExternalServiceError) as e:
        print(f"✗ {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"✗ Unexpected {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    finally:
        await dispose_engine()

    print(f"✓ Saved draft article {result.article_id}: {result.title}")
    return 0


def main() -> int:
    load_dotenv(Path(__file__).parent.parent / ".env")

    parser = argparse.ArgumentParser(description="Generate one unpublished article")
    parser.add_argument("--media-id", required=True, help="Tenant id")
    parser.add_argument("--category-id", required=True)
    parser.add_argument("--writer-id", required=True)
    parser.add_argument("--image-pattern-id", required=True)
    parser.add_argument("--run-id", default=None, help="Correlation id bound to every log line")
    parser.add_argument("--json", action="store_true", help="Emit JSON log lines")
    args = parser.parse_args()

    configure_logging(args.json)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
