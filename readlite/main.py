"""ReadLite CLI entry point."""

import asyncio
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from . import __version__
from .config import Config
from .context.store import clean_article_text
from .conversation import Conversation
from .errors import AuthError, ReadLiteError
from .llm import LLMRequestOptions, OpenAIClient, ReadingAssistant
from .logging import init_logger
from .streaming import ChannelBridge, StreamExecutor

console = Console()


def _load_config(model: str, endpoint: str, debug: bool) -> Optional[Config]:
    config = Config.load()
    if model:
        config.model = model
    if endpoint:
        config.base_url = endpoint
    config.debug = config.debug or debug

    errors = config.validate()
    if errors:
        for error in errors:
            console.print(f"[red]Error: {error}[/]")
        return None

    logger = init_logger(config.model, debug=config.debug)
    if config.debug:
        console.print(f"[dim]Model: {config.model}[/]")
        console.print(f"[dim]Endpoint: {config.base_url}[/]")
        console.print(f"[dim]Logs: {logger.log_path}[/]")
    return config


def _print_failure(error: ReadLiteError) -> None:
    if isinstance(error, AuthError):
        console.print(f"[red]{error.message}[/]")
        console.print(f"[dim]{error.user_hint}[/]")
    else:
        console.print(f"[red]Error: {error.message}[/]")
        console.print("[dim]Nothing was received. Retry the request.[/]")


async def _ask(config: Config, article: str, title: str, url: Optional[str], question: str, timeout: float) -> int:
    llm = OpenAIClient(config)
    bridge = ChannelBridge(StreamExecutor(llm))
    conversation = Conversation(
        bridge,
        context_config=config.context_config(),
        stream_timeout=timeout,
        options=LLMRequestOptions(
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        ),
    )
    conversation.set_article(title, article, url)

    try:
        session = await conversation.ask(
            question,
            lambda chunk: console.print(chunk, end="", markup=False, highlight=False),
        )
    except ReadLiteError as e:
        _print_failure(e)
        return 1
    finally:
        await bridge.close()

    console.print()
    if session.is_soft_failure:
        console.print(f"[yellow]Response incomplete: {session.error}[/]")
        console.print("[dim]Retry to get the full answer.[/]")
    if config.debug:
        console.print(f"[dim]{conversation.get_context_stats()}[/]")
    return 0


async def _summarize(config: Config, text: str, sentences: int) -> int:
    assistant = ReadingAssistant(OpenAIClient(config), request_timeout=config.request_timeout)
    try:
        summary = await assistant.summarize_text(text, sentences)
    except ReadLiteError as e:
        _print_failure(e)
        return 1
    console.print(summary)
    return 0


@click.group()
@click.version_option(version=__version__)
def main():
    """ReadLite - ask questions about what you are reading."""


@main.command()
@click.argument("article", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("question")
@click.option("--title", "-T", default="", help="Article title (defaults to the file name)")
@click.option("--url", default=None, help="Article URL")
@click.option("--model", "-m", default="", help="Model to use")
@click.option("--endpoint", "-e", default="", help="LLM API endpoint (base URL)")
@click.option("--timeout", type=float, default=None, help="Stream timeout in seconds")
@click.option("--debug", "-d", is_flag=True, help="Enable debug mode")
def ask(article: Path, question: str, title: str, url: Optional[str], model: str, endpoint: str,
        timeout: Optional[float], debug: bool):
    """Stream an answer to QUESTION about the ARTICLE file."""
    config = _load_config(model, endpoint, debug)
    if config is None:
        raise SystemExit(1)

    content = article.read_text(encoding="utf-8")
    code = asyncio.run(_ask(
        config,
        content,
        title or article.stem,
        url,
        question,
        timeout or config.stream_timeout,
    ))
    raise SystemExit(code)


@main.command()
@click.argument("article", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--sentences", "-s", type=int, default=3, help="Approximate summary length")
@click.option("--model", "-m", default="", help="Model to use")
@click.option("--endpoint", "-e", default="", help="LLM API endpoint (base URL)")
@click.option("--debug", "-d", is_flag=True, help="Enable debug mode")
def summarize(article: Path, sentences: int, model: str, endpoint: str, debug: bool):
    """Summarize the ARTICLE file."""
    config = _load_config(model, endpoint, debug)
    if config is None:
        raise SystemExit(1)

    text = clean_article_text(article.read_text(encoding="utf-8"))
    raise SystemExit(asyncio.run(_summarize(config, text, sentences)))


if __name__ == "__main__":
    main()
