from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from config.config import validate_llm_config
from core.factory import LLMFactory, build_factory
from core.types import RequestConfig
from exceptions import ConfigError
from monitoring.telemetry import configure_logging

DEFAULT_TEST_PROMPT = "Hello, respond with 'OK' if you're working."


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="llm-admin", description="Inspect and exercise the generation layer.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("health", help="Validate configuration and print provider status.")

    test = sub.add_parser("test", help="Send a short prompt to a provider.")
    test.add_argument("--provider", help="Provider name (defaults to LLM_PROVIDER).")
    test.add_argument("--prompt", default=DEFAULT_TEST_PROMPT)
    return parser


def health(factory: LLMFactory) -> int:
    """Print configuration problems. Non-zero exit when any exist."""
    errors = validate_llm_config(factory.settings)
    print(json.dumps({"healthy": not errors, "provider": factory.settings.provider, "config_errors": errors}, indent=2))
    return 1 if errors else 0


async def run_provider_test(factory: LLMFactory, provider: Optional[str], prompt: str) -> int:
    try:
        adapter = factory.create_adapter(provider) if provider else factory.get_default_adapter()
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    try:
        result = await adapter.generate_text(
            prompt, RequestConfig(temperature=0.1, max_tokens=50, cache_ttl_seconds=0)
        )
    finally:
        await factory.aclose()

    print(json.dumps({
        "success": result.success,
        "response": result.data,
        "error": result.error,
        "provider": result.provider,
        "model": result.model,
        "latency_ms": round(result.latency_ms, 2),
        "confidence": result.confidence,
    }, indent=2))
    return 0 if result.success else 1


def main(argv: Optional[List[str]] = None, factory: Optional[LLMFactory] = None) -> int:
    args = build_parser().parse_args(argv)
    factory = factory or build_factory()
    configure_logging(factory.settings.monitoring.log_level, factory.settings.monitoring.log_format)

    if args.command == "health":
        return health(factory)
    return asyncio.run(run_provider_test(factory, args.provider, args.prompt))


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
