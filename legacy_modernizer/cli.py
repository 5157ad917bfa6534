from __future__ import annotations
import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path

from legacy_modernizer.chunking import chunk_file, chunk_stats, chunk_stream
from legacy_modernizer.config import load_config
from legacy_modernizer.errors import ConfigError


def _configure_logging(verbose: bool) -> None:
    level = os.environ.get("LOG_LEVEL")
    if level:
        logging.basicConfig(level=level.upper(), format="%(levelname)s %(name)s: %(message)s")
    elif verbose:
        logging.basicConfig(level=logging.INFO, format="%(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)


def _chunk_options(args, base):
    overrides = {}
    if args.strategy:
        overrides["strategy"] = args.strategy
    if args.max_lines is not None:
        overrides["max_lines_per_chunk"] = args.max_lines
    if args.max_chars is not None:
        overrides["max_chars_per_chunk"] = args.max_chars
    if args.overlap is not None:
        overrides["overlap_lines"] = args.overlap
    if args.min_chunk is not None:
        overrides["min_chunk_size"] = args.min_chunk
    options = replace(base, **overrides)
    options.validate()
    return options


def _run_chunk(args, config) -> int:
    options = _chunk_options(args, config.chunking)
    if args.stream:
        with open(args.file, "r", encoding="utf-8", errors="replace") as f:
            chunks = list(chunk_stream(f, Path(args.file).name, options, size_hint=Path(args.file).stat().st_size))
    else:
        chunks = chunk_file(args.file, options)

    output = {
        "file": args.file,
        "stats": chunk_stats(chunks),
        "chunks": [dict(c.to_dict(), content=c.content) if args.content else c.to_dict() for c in chunks],
    }
    print(json.dumps(output, indent=2))
    return 0


def _run_validate(args, config) -> int:
    from legacy_modernizer.validation import (
        validate_composite,
        validate_quality_metrics,
        validate_sql,
        validate_structured,
    )

    text = Path(args.file).read_text(encoding="utf-8", errors="replace")
    if args.kind == "json":
        result = validate_structured(text)
    elif args.kind == "sql":
        result = validate_sql(text)
    elif args.kind == "quality":
        try:
            metrics = json.loads(text)
        except ValueError:
            metrics = None
        result = validate_quality_metrics(metrics)
    else:
        result = validate_composite(text)

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.valid else 1


def _run_process(args, config) -> int:
    from legacy_modernizer.llm import ClaudeGenerator, MockGenerator
    from legacy_modernizer.pipeline import generate_report, process_chunks
    from legacy_modernizer.repair import RepairOrchestrator, expected_output_for

    if args.max_retries is not None:
        config = replace(config, repair=replace(config.repair, max_retries=args.max_retries))
        config.repair.validate()
    if args.anthropic_api_key:
        config = replace(config, llm=replace(config.llm, api_key=args.anthropic_api_key))
    if args.llm_model:
        config = replace(config, llm=replace(config.llm, model=args.llm_model))

    if args.mock:
        generator = MockGenerator(expected_output_for(args.agent), fail_first=args.mock_failures)
        sleep = _no_sleep
    else:
        if not config.llm.api_key:
            print("error: process requires ANTHROPIC_API_KEY (or use --mock)", file=sys.stderr)
            return 2
        generator = ClaudeGenerator(config.llm)
        sleep = asyncio.sleep

    chunks = chunk_file(args.file, config.chunking)
    orchestrator = RepairOrchestrator(generator, config.repair, sleep=sleep)

    def progress(completed, total):
        if args.verbose:
            print(f"  chunks: {completed}/{total}", file=sys.stderr)

    result = asyncio.run(process_chunks(chunks, generator, orchestrator, args.agent, progress_callback=progress))

    if args.report:
        Path(args.report).write_text(generate_report(result), encoding="utf-8")

    output = {
        "file": args.file,
        "agent": args.agent,
        "stats": result.stats.to_dict(),
        "chunks": [o.to_dict() for o in result.outcomes],
        "merged": result.merged,
    }
    if args.report:
        output["report"] = args.report
    print(json.dumps(output, indent=2, default=str))
    return 0 if result.stats.failed == 0 else 1


async def _no_sleep(seconds: float) -> None:
    return None


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="legacy-modernize",
        description="Chunk, validate and repair LLM output for legacy code modernization",
    )
    ap.add_argument("--config", help="Path to YAML config file")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log progress to stderr")
    sub = ap.add_subparsers(dest="command", required=True)

    chunk_ap = sub.add_parser("chunk", help="Split a source file into overlapping chunks")
    chunk_ap.add_argument("file", help="Source file")
    chunk_ap.add_argument("--strategy", choices=["auto", "size", "lines", "logical"])
    chunk_ap.add_argument("--max-lines", type=int)
    chunk_ap.add_argument("--max-chars", type=int)
    chunk_ap.add_argument("--overlap", type=int, help="Overlap in lines")
    chunk_ap.add_argument("--min-chunk", type=int, help="Minimum chunk size in lines")
    chunk_ap.add_argument("--stream", action="store_true", help="Read the file incrementally")
    chunk_ap.add_argument("--content", action="store_true", help="Include chunk content in output")

    val_ap = sub.add_parser("validate", help="Validate a generated artifact")
    val_ap.add_argument("file", help="Artifact file")
    val_ap.add_argument("--kind", default="composite", choices=["json", "sql", "composite", "quality"])

    proc_ap = sub.add_parser("process", help="Run an agent over a chunked file with repair")
    proc_ap.add_argument("file", help="Source file")
    proc_ap.add_argument(
        "--agent", default="ParserAgent",
        help="Agent name: ParserAgent, ModernizerAgent, ValidatorAgent, ExplainerAgent",
    )
    proc_ap.add_argument("--mock", action="store_true", help="Use canned offline responses")
    proc_ap.add_argument(
        "--mock-failures", type=int, default=0,
        help="With --mock, number of initial calls that return malformed output",
    )
    proc_ap.add_argument("--anthropic-api-key", help="Anthropic API key (or set ANTHROPIC_API_KEY env var)")
    proc_ap.add_argument("--llm-model", help="Claude model to use (or set LEGACY_MODERNIZER_MODEL)")
    proc_ap.add_argument("--max-retries", type=int, help="Override repair max_retries")
    proc_ap.add_argument("--report", help="Write a markdown report to this path")
    return ap


def main(argv=None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        config = load_config(args.config)
        if args.command == "chunk":
            return _run_chunk(args, config)
        if args.command == "validate":
            return _run_validate(args, config)
        return _run_process(args, config)
    except ConfigError as e:
        ap.error(str(e))
    except OSError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
