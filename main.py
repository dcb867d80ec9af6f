#!/usr/bin/env python3
"""
Scriptorium - command line entry point

Opens one page of the block tree, either from a local DuckDB file or from a
running wiki server, and runs a single editing command against it.
"""

import asyncio
import logging
import sys
import argparse
from typing import Optional

from scriptorium.api import HttpPersistenceAPI, LocalPersistenceAPI, PersistenceAPI
from scriptorium.config import config
from scriptorium.editor import PageSession
from scriptorium.errors import ScriptoriumError
from scriptorium.models import Block


def setup_logging():
    """Configure logging for the application."""
    level = getattr(logging, config.get("logging.level", "INFO").upper())
    format_str = config.get("logging.format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    log_file = config.log_filename

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file)
        ]
    )


def open_backend(args) -> PersistenceAPI:
    """Pick the persistence backend from the command line."""
    if args.server:
        return HttpPersistenceAPI(base_url=args.server)
    return LocalPersistenceAPI.open(args.db or config.database_filename)


def describe_block(block: Block) -> str:
    if block.is_section:
        level = f"h{block.level}" if block.level else "section"
        return f"[{level}] {block.content.get('title') or ''}"
    if block.text is not None:
        return f"[{block.type}] {block.text}"
    return f"[{block.type}]"


def print_tree(session: PageSession, focus_id: Optional[str] = None):
    """Print the page as an indented outline."""

    def visit(nodes, depth):
        for node in nodes:
            block = node["block"]
            marker = "*" if block.id == focus_id else " "
            print(f"{marker} {'  ' * depth}{describe_block(block)}  ({block.id})")
            visit(node["children"], depth + 1)

    visit(session.store.to_tree(), 0)


async def run_command(args) -> int:
    """Execute one command; returns the process exit code."""
    api = open_backend(args)
    session = PageSession(args.page, api)
    try:
        await session.load()
        focus_id = None

        if args.command == "show":
            pass

        elif args.command == "check":
            problems = session.store.find_problems()
            for problem in problems:
                print(f"- {problem}")
            if problems:
                logging.error(f"Page {args.page} has {len(problems)} tree problem(s)")
                return 1
            print(f"Page {args.page}: {len(session.store)} blocks, tree is sound")
            return 0

        elif args.command == "create":
            if args.type == "section":
                props = {"collapsed": False}
                if args.level:
                    props["level"] = args.level
                content = {"title": args.text or ""}
            else:
                props, content = {}, {"text": args.text or ""}
            index = args.index if args.index is not None else len(session.store.children(args.parent))
            created = await session.create_block(args.parent, index, args.type, props, content)
            focus_id = created.id

        elif args.command == "indent":
            focus_id = (await session.indent(args.block)).focus_id

        elif args.command == "outdent":
            focus_id = (await session.outdent(args.block)).focus_id

        elif args.command == "move":
            focus_id = (await session.move(args.block, -1 if args.up else 1)).focus_id

        elif args.command == "unwrap":
            focus_id = (await session.unwrap_section(args.block)).focus_id

        elif args.command == "normalize":
            moves = await session.normalize(args.parent)
            logging.info(f"Normalization assigned {len(moves)} position(s)")

        elif args.command == "paste":
            if args.file:
                with open(args.file, 'r', encoding='utf-8') as f:
                    raw = f.read()
            else:
                raw = sys.stdin.read()
            result = await session.paste(args.block, raw)
            if result is None:
                # plain text: replace the block's text as a normal edit would
                session.edit_text(args.block, raw)
            else:
                focus_id = result.focus_id

        await session.close()
        print_tree(session, focus_id)
        return 0

    finally:
        await api.aclose()


def parse_arguments():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Scriptorium - block-tree editor for campaign notes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --page p1 show                            # Print the page outline
  python main.py --page p1 create --type section --level 1 --text "Session 12"
  python main.py --page p1 indent <block-id>               # Nest under the previous sibling
  python main.py --page p1 --server http://localhost:8080 normalize
  python main.py --page p1 paste <block-id> --file notes.md
        """
    )

    parser.add_argument("--page", required=True, help="Page id to open")
    backend = parser.add_mutually_exclusive_group()
    backend.add_argument("--db", type=str, help="Local DuckDB file (default: database.filename from config)")
    backend.add_argument("--server", type=str, help="Base URL of a running wiki server")
    parser.add_argument("--version", action="version", version="Scriptorium 0.1.0")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("show", help="Print the page as an outline")
    commands.add_parser("check", help="Verify sort contiguity and acyclicity")

    create = commands.add_parser("create", help="Create a block")
    create.add_argument("--type", choices=["paragraph", "section", "divider"], default="paragraph")
    create.add_argument("--parent", type=str, default=None, help="Parent block id (default: page root)")
    create.add_argument("--index", type=int, default=None, help="Position among siblings (default: last)")
    create.add_argument("--level", type=int, choices=[1, 2, 3], default=None, help="Section heading level")
    create.add_argument("--text", type=str, default="", help="Paragraph text or section title")

    for name, help_text in (("indent", "Nest a block under its previous sibling"),
                            ("outdent", "Lift a block out of its parent"),
                            ("unwrap", "Delete a section, keeping its children in place")):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("block", help="Block id")

    move = commands.add_parser("move", help="Swap a block with a neighbouring sibling")
    move.add_argument("block", help="Block id")
    direction = move.add_mutually_exclusive_group(required=True)
    direction.add_argument("--up", action="store_true")
    direction.add_argument("--down", action="store_true")

    normalize = commands.add_parser("normalize", help="Nest sections by heading level")
    normalize.add_argument("--parent", type=str, default=None, help="Scope parent id (default: page root)")

    paste = commands.add_parser("paste", help="Smart-paste markdown into a block")
    paste.add_argument("block", help="Target block id")
    paste.add_argument("--file", type=str, help="Read text from a file instead of stdin")

    return parser.parse_args()


def main():
    """Main entry point."""
    args = parse_arguments()
    setup_logging()

    logging.info(f"Scriptorium - {args.command} on page {args.page}")

    try:
        sys.exit(asyncio.run(run_command(args)))

    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        print("\nInterrupted.")

    except ScriptoriumError as e:
        logging.error(f"{args.command} failed: {e}")
        print(f"\n{args.command} failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
