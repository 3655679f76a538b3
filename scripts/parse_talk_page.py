#!/usr/bin/env python3
"""Segment a rendered talk page into comments and sections.

Reads page HTML (as produced by the wiki's parser), runs one discussion
pass and prints the comments, sections and diagnostics as JSON. With
``--source`` every comment is also located in the page wikitext.

Usage:
    # Comments and sections only
    python3 scripts/parse_talk_page.py --html page.html

    # Also map each comment to its wikitext
    python3 scripts/parse_talk_page.py --html page.html --source page.wiki

    # Another wiki's conventions
    python3 scripts/parse_talk_page.py --html page.html --config dewiki.json -v
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import orjson

from talkparse.config import DEFAULT_CONFIG, ParserConfig
from talkparse.discussion import parse_discussion
from talkparse.html_utils import find_content_root, parse_html, read_file
from talkparse.parsing_types import Err, Ok

log = logging.getLogger("parse_talk_page")


def dump_json(obj: object) -> None:
    sys.stdout.buffer.write(orjson.dumps(obj, option=orjson.OPT_INDENT_2))
    sys.stdout.buffer.write(b"\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Segment a rendered talk page into comments and sections."
    )
    parser.add_argument(
        "--html", required=True, type=Path, help="Rendered page HTML"
    )
    parser.add_argument(
        "--source", default=None, type=Path, help="Page wikitext to locate comments in"
    )
    parser.add_argument(
        "--config", default=None, type=Path, help="ParserConfig JSON file"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Debug logging"
    )
    return parser


def main() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    config = ParserConfig.from_json(args.config) if args.config else DEFAULT_CONFIG
    soup = parse_html(read_file(args.html))
    discussion = parse_discussion(find_content_root(soup), config)
    result = discussion.to_dict()

    if args.source is not None:
        source_text = read_file(args.source)
        located = 0
        for entry, comment in zip(result["comments"], discussion.comments):  # type: ignore[arg-type]
            match discussion.locate(comment, source_text):
                case Ok(value=location):
                    located += 1
                    entry["source"] = {
                        "line_start": location.line_start,
                        "start": location.start,
                        "end": location.end,
                        "indentation": location.indentation,
                        "reply_indentation": location.reply_indentation,
                        "signature_literal": location.signature_literal,
                        "heading": location.heading.headline if location.heading else None,
                        "overlap": round(location.overlap, 3),
                        "chained": location.chained,
                        "reply_offset": location.reply_offset,
                        "reply_line_indentation": location.reply_line_indentation,
                    }
                case Err(error=error):
                    entry["source"] = {"error": error.reason, "candidates": error.candidates}
        log.info("located %d of %d comments", located, len(discussion))
        for entry, section in zip(result["sections"], discussion.sections):  # type: ignore[arg-type]
            match discussion.locate_section(section, source_text):
                case Ok(value=span):
                    entry["source"] = {
                        "start": span.start,
                        "content_start": span.content_start,
                        "first_chunk_end": span.first_chunk_end,
                        "end": span.end,
                        "score": round(span.score, 3),
                    }
                case Err(error=error):
                    entry["source"] = {"error": error.reason, "candidates": error.candidates}
        # Locating can add ambiguous-section diagnostics.
        result["diagnostics"] = discussion.to_dict()["diagnostics"]

    log.info(
        "%d comments, %d sections, %d diagnostics",
        len(discussion), len(discussion.sections), len(discussion.diagnostics),
    )
    dump_json(result)


if __name__ == "__main__":
    main()
