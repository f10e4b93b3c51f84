"""
Command-line entry point: run one query and print the collected result.

    wa-socket "integrate x^2" --assumption "*C.x-_*Variable-"
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Mapping, Optional, Sequence

from wa_socket.client import QueryChannel, QueryResult
from wa_socket.config import load_client_config
from wa_socket.debug import LOG_FORMAT, debug_requested
from wa_socket.errors import WolframAlphaError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_TIMEOUT = 2


def _pod_lines(pod: Mapping[str, Any]) -> List[str]:
    title = pod.get("title") or pod.get("id") or f"pod {pod.get('position')}"
    lines = [f"== {title} =="]
    subpods = pod.get("subpods") or []
    for subpod in subpods:
        if not isinstance(subpod, Mapping):
            continue
        text = subpod.get("plaintext")
        if text:
            sub_title = subpod.get("title")
            prefix = f"{sub_title}: " if sub_title else ""
            lines.extend(prefix + line if i == 0 else line for i, line in enumerate(str(text).splitlines()))
    return lines


def format_result(result: QueryResult) -> str:
    """Render *result* as the plain-text report printed by the CLI."""

    lines: List[str] = []
    if result.corrected_input and result.corrected_input != result.original_input:
        lines.append(f"Interpreted as: {result.corrected_input}")
    for suggestion in result.did_you_mean:
        value = suggestion.get("val") if isinstance(suggestion, Mapping) else suggestion
        lines.append(f"Did you mean: {value}")
    for assumption in result.assumptions:
        if assumption.display:
            lines.append(assumption.display)
    for warning in result.warnings:
        text = warning.get("text") if isinstance(warning, Mapping) else None
        lines.append(f"Warning: {text or warning}")
    if result.failed:
        lines.append("No result.")
    for pod in result.sorted_pods():
        lines.extend(_pod_lines(pod))
    if result.timed_out:
        lines.append("Timed out: " + ", ".join(str(t) for t in result.timed_out))
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wa-socket",
        description="Query the WolframAlpha results websocket",
    )
    parser.add_argument("input", help="Natural-language query")
    parser.add_argument(
        "-a",
        "--assumption",
        action="append",
        default=[],
        help="Assumption token to send with the query (repeatable)",
    )
    parser.add_argument("--language", default=None, help="Language code (default: en or WA_SOCKET_LANGUAGE)")
    parser.add_argument("--url", default=None, help="Websocket endpoint (default: WA_SOCKET_URL or the public fetcher)")
    parser.add_argument("--timeout", type=float, default=60.0, help="Seconds to wait for queryComplete")
    parser.add_argument("--json", action="store_true", help="Print the collected result as JSON")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


async def run_query(channel: QueryChannel, input: str, assumptions: Sequence[str], timeout: float) -> QueryResult:
    try:
        return await channel.query(input, assumptions, timeout=timeout)
    finally:
        channel.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    debug = bool(args.debug) or debug_requested()
    logging.basicConfig(level=logging.DEBUG if debug else logging.WARNING, format=LOG_FORMAT)

    config = load_client_config(api_url=args.url, language=args.language, debug=debug or None)
    channel = QueryChannel(config)
    try:
        result = asyncio.run(run_query(channel, args.input, args.assumption, args.timeout))
    except (asyncio.TimeoutError, TimeoutError):
        print(f"timed out after {args.timeout:.0f}s waiting for results", file=sys.stderr)
        return EXIT_TIMEOUT
    except WolframAlphaError as exc:
        print(f"query failed: {exc}", file=sys.stderr)
        return EXIT_FAILED

    logger.debug("query %r finished: pods=%d failed=%s", args.input, len(result.pods), result.failed)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print(format_result(result))
    return EXIT_FAILED if result.failed else EXIT_OK


__all__ = ["build_parser", "format_result", "main", "run_query"]
