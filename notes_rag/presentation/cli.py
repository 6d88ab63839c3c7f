import asyncio
import logging
import sys

import httpx

from notes_rag.config.settings import Settings, settings
from notes_rag.container import configure_container, container
from notes_rag.core.protocols.embedder import EmbedderProtocol
from notes_rag.core.services.answer_service import AnswerSynthesizer
from notes_rag.core.services.retriever import Retriever

logger = logging.getLogger(__name__)

USAGE = """Usage: python -m notes_rag.presentation.cli <command> [--scope <folder>] [query]
Commands:
  search <query>   show ranked matching notes
  ask <query>      answer a question from your notes
  check            verify the LLM endpoint is reachable
Options:
  --scope <folder> only search notes under this folder"""


def check_llm(config: Settings) -> bool:
    """Check the LLM endpoint is up and serves the configured model.

    Returns:
        True if model ready, False otherwise.
    """
    url = f"{config.llm_base_url.rstrip('/')}/models"
    logger.info(f"Checking LLM endpoint: {url}")

    try:
        resp = httpx.get(
            url,
            headers={"Authorization": f"Bearer {config.llm_api_key}"},
            timeout=5,
        )
    except httpx.HTTPError as e:
        logger.error(f"LLM endpoint not reachable: {e}")
        return False

    if resp.status_code != 200:
        logger.error(f"LLM endpoint returned {resp.status_code}: {resp.text[:200]}")
        return False

    models = [m.get("id", "") for m in resp.json().get("data", [])]
    if not any(config.llm_model in m for m in models):
        logger.error(f"Model {config.llm_model} not available (have: {models})")
        return False

    logger.info(f"Model {config.llm_model} is ready")
    return True


def parse_scope(args: list[str]) -> tuple[list[str], str | None]:
    """Split a `--scope <folder>` option off the remaining arguments."""
    if "--scope" not in args:
        return args, None
    index = args.index("--scope")
    if index + 1 >= len(args):
        raise ValueError("Option --scope needs a folder")
    return args[:index] + args[index + 2:], args[index + 1]


async def cmd_search(query: str, scope: str | None = None) -> None:
    """Search command - print ranked results."""
    retriever = container.resolve(Retriever)
    results = await retriever.retrieve(query, scope=scope)

    if not results:
        print("No matching notes.")
        return

    for i, r in enumerate(results, 1):
        print(f"[{i}] {r.document.name} ({r.document.path}) "
              f"{r.similarity:.2f} via {r.origin.value}")
        print(f"    {r.content[:200].replace(chr(10), ' ')}")


async def cmd_ask(query: str, scope: str | None = None) -> None:
    """Ask command - stream the final answer, then print sources."""
    synthesizer = container.resolve(AnswerSynthesizer)

    def on_chunk(token: str) -> None:
        sys.stdout.write(token)
        sys.stdout.flush()

    def on_progress(stage: str, percent: int) -> None:
        logger.info(f"[{percent:3d}%] {stage}")

    result = await synthesizer.answer(
        query, on_chunk=on_chunk, on_progress=on_progress, scope=scope
    )
    footer = result.text[len(result.answer):] if result.answer else result.text
    print(footer)


def main():
    """CLI entry point."""
    logging.basicConfig(level=settings.log_level, format="%(message)s")

    if len(sys.argv) < 2:
        print(USAGE)
        sys.exit(1)

    command = sys.argv[1]
    try:
        args, scope = parse_scope(sys.argv[2:])
    except ValueError as e:
        print(e)
        sys.exit(1)
    query = " ".join(args).strip()

    if command == "check":
        sys.exit(0 if check_llm(settings) else 1)

    if command not in ("search", "ask"):
        print(f"Unknown command: {command}")
        sys.exit(1)

    if not query:
        print(f"Command '{command}' needs a query")
        sys.exit(1)

    configure_container(settings)

    if settings.embedding_provider == "sentence_transformer":
        container.resolve(EmbedderProtocol).warmup()

    if command == "search":
        asyncio.run(cmd_search(query, scope))
    else:
        asyncio.run(cmd_ask(query, scope))


if __name__ == "__main__":
    main()
