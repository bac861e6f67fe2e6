"""Command line entry point (``openaikit``)."""

import json
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

import pwinput
import typer

from .config import Config, configure_logging
from .core.batch_files import BatchFileBuilder
from .core.client import Client
from .core.errors import APIError
from .core.helpers import rank_by_similarity
from .ui.interface import UI

ui = UI()

app = typer.Typer(
    name="openaikit",
    help="Chat, embeddings, images, files and batches from the terminal",
    add_completion=False,
)
files_app = typer.Typer(help="Manage uploaded files")
batch_app = typer.Typer(help="Submit and track batch jobs")
app.add_typer(files_app, name="files")
app.add_typer(batch_app, name="batch")


class State:
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    _client: Optional[Client] = None

    @classmethod
    def client(cls) -> Client:
        if cls._client is None:
            api_key = cls.api_key or Config.api_key()
            if not api_key and not (cls.base_url or Config.base_url()):
                api_key = pwinput.pwinput(prompt="OpenAI API key: ", mask="*").strip()
                if not api_key:
                    ui.show_msg("Missing API key", "Set OPENAI_API_KEY or pass --api-key.", color="red")
                    raise typer.Exit(1)
            cls._client = Client(api_key=api_key, base_url=cls.base_url)
        return cls._client


@contextmanager
def api_errors():
    """Render library errors as a panel and exit non-zero."""
    try:
        yield
    except APIError as e:
        ui.show_error(e)
        raise typer.Exit(1)


@app.callback()
def main_callback(
    api_key: Optional[str] = typer.Option(None, "--api-key", help="API key (default: $OPENAI_API_KEY)"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="API base URL (default: $OPENAI_BASE_URL)"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING... (default: $OPENAIKIT_LOG)"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Load settings from this .env file"),
) -> None:
    """openaikit CLI"""
    Config.load_env(str(env_file) if env_file else None)
    configure_logging(log_level)
    State.api_key = api_key
    State.base_url = base_url


# =============================================================================
# Chat
# =============================================================================

@app.command()
def chat(
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name"),
    system: Optional[str] = typer.Option(None, "--system", "-s", help="System prompt"),
    temperature: Optional[float] = typer.Option(None, "--temperature", "-t"),
    multiline: bool = typer.Option(False, "--multiline", help="Enter sends, Esc+Enter adds a newline"),
) -> None:
    """Interactive streaming chat."""
    client = State.client()
    if model:
        Config.ACTIVE_MODEL = model
    params = {"temperature": temperature} if temperature is not None else {}
    conversation = client.conversation(model=Config.get_model(), system=system, **params)

    ui.banner(base_url=client.base_url, model=conversation.model)
    ui.console.print("[dim]Type /help for commands.[/]\n")
    last_reply = ""

    while True:
        try:
            user_input = ui.get_input(multiline=multiline).strip()
        except KeyboardInterrupt:
            break
        if not user_input:
            continue

        if user_input.startswith("/"):
            command, _, arg = user_input.partition(" ")
            arg = arg.strip()
            if command in ("/exit", "/quit"):
                break
            elif command == "/clear":
                conversation.clear()
                ui.console.print("[yellow]Conversation cleared.[/]")
            elif command == "/copy":
                if last_reply:
                    ui.copy_to_clipboard(last_reply)
                else:
                    ui.console.print("[yellow]Nothing to copy yet.[/]")
            elif command == "/model":
                if arg:
                    Config.ACTIVE_MODEL = conversation.model = arg
                ui.console.print(f"[green]Model: {conversation.model}[/]")
            elif command == "/save":
                path = arg or "conversation.json"
                conversation.save(path)
                ui.console.print(f"[green]✓ Saved {len(conversation.messages)} messages to {path}[/]")
            elif command == "/help":
                ui.show_help()
            else:
                ui.console.print(f"[red]Unknown command {command}. Type /help.[/]")
            continue

        try:
            with api_errors():
                last_reply = ui.stream_markdown(conversation.model, conversation.stream(user_input))
        except typer.Exit:
            # Keep the session alive; drop the unanswered turn
            if conversation.last_message and conversation.last_message.get("role") == "user":
                conversation.messages.pop()
        except KeyboardInterrupt:
            ui.console.print("\n[yellow]Interrupted.[/]")

    ui.console.print("[dim]Goodbye.[/]")


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Prompt"),
    model: Optional[str] = typer.Option(None, "--model", "-m"),
    system: Optional[str] = typer.Option(None, "--system", "-s"),
    no_stream: bool = typer.Option(False, "--no-stream", help="Wait for the whole reply"),
) -> None:
    """One-shot question."""
    client = State.client()
    conversation = client.conversation(model=model or Config.get_model(), system=system)
    with api_errors():
        if no_stream:
            ui.console.print(conversation.chat(prompt))
        else:
            ui.stream_markdown(conversation.model, conversation.stream(prompt))


# =============================================================================
# Models, embeddings, moderation, images
# =============================================================================

@app.command()
def models() -> None:
    """List available models."""
    with api_errors():
        ui.models_table(State.client().models.list().data)


@app.command()
def embed(
    query: str = typer.Argument(..., help="Text to embed"),
    candidates: Optional[List[str]] = typer.Argument(None, help="Texts to rank by similarity to QUERY"),
    model: str = typer.Option(Config.DEFAULT_EMBEDDING_MODEL, "--model", "-m"),
    dimensions: Optional[int] = typer.Option(None, "--dimensions"),
) -> None:
    """Embed text, or rank CANDIDATES by semantic similarity to QUERY."""
    texts = [query] + list(candidates or [])
    with api_errors():
        response = State.client().embeddings.create(input=texts, model=model, dimensions=dimensions)
    vectors = response.vectors

    if not candidates:
        preview = ", ".join(f"{v:.4f}" for v in vectors[0][:8])
        ui.show_msg("Embedding", f"[bold]{len(vectors[0])}[/] dimensions\n\\[{preview}, ...]", color="cyan")
        return

    ranking = rank_by_similarity(vectors[0], vectors[1:])
    lines = [f"[cyan]{score:.4f}[/]  {candidates[index]}" for index, score in ranking]
    ui.show_msg(f"Similarity to: {query}", "\n".join(lines), color="cyan")


@app.command()
def moderate(
    text: str = typer.Argument(..., help="Text to classify"),
    model: str = typer.Option(Config.DEFAULT_MODERATION_MODEL, "--model", "-m"),
) -> None:
    """Run the moderation classifier."""
    with api_errors():
        response = State.client().moderations.create(input=text, model=model)
    result = response.results[0]
    if result.flagged:
        ui.show_msg("Flagged", ", ".join(result.flagged_categories), color="red")
    else:
        ui.show_msg("Not flagged", "No category crossed its threshold.", color="green")


@app.command()
def image(
    prompt: str = typer.Argument(..., help="Image description"),
    model: str = typer.Option(Config.DEFAULT_IMAGE_MODEL, "--model", "-m"),
    size: Optional[str] = typer.Option(None, "--size", help="e.g. 1024x1024"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save the image here"),
) -> None:
    """Generate an image."""
    response_format = "b64_json" if output else None
    with api_errors():
        response = State.client().images.generate(
            prompt=prompt, model=model, size=size, response_format=response_format,
        )
        picture = response.data[0]
        if output:
            picture.save(str(output))
            ui.console.print(f"[green]✓ Saved {output}[/]")
        else:
            ui.console.print(picture.url)
    if picture.revised_prompt:
        ui.console.print(f"[dim]Revised prompt: {picture.revised_prompt}[/]")


# =============================================================================
# Files
# =============================================================================

@files_app.command("list")
def files_list(purpose: Optional[str] = typer.Option(None, "--purpose")) -> None:
    """List uploaded files."""
    with api_errors():
        ui.files_table(list(State.client().files.iter_all(purpose=purpose)))


@files_app.command("upload")
def files_upload(
    path: Path = typer.Argument(..., exists=True, dir_okay=False),
    purpose: str = typer.Option("user_data", "--purpose"),
) -> None:
    """Upload a file."""
    with api_errors():
        uploaded = State.client().files.upload(file=str(path), purpose=purpose)
    ui.console.print(f"[green]✓ Uploaded {uploaded.filename} as {uploaded.id}[/]")


@files_app.command("delete")
def files_delete(file_id: str) -> None:
    """Delete a file."""
    with api_errors():
        result = State.client().files.delete(file_id)
    ui.console.print(f"[green]✓ Deleted {result.id}[/]" if result.deleted else f"[red]✗ {file_id} not deleted[/]")


# =============================================================================
# Batches
# =============================================================================

@batch_app.command("submit")
def batch_submit(
    prompts_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="One prompt per line"),
    model: Optional[str] = typer.Option(None, "--model", "-m"),
    system: Optional[str] = typer.Option(None, "--system", "-s"),
) -> None:
    """Submit every line of PROMPTS_FILE as one chat request in a batch."""
    prompts = [line.strip() for line in prompts_file.read_text(encoding="utf-8").splitlines() if line.strip()]
    requests = BatchFileBuilder.chat_requests(prompts, model=model or Config.get_model(), system=system)
    client = State.client()
    with api_errors():
        uploaded = client.files.upload(
            file=(f"{prompts_file.stem}.jsonl", BatchFileBuilder.build(requests)), purpose="batch",
        )
        batch = client.batches.create(input_file_id=uploaded.id, endpoint="/v1/chat/completions")
    ui.batch_panel(batch)


@batch_app.command("status")
def batch_status(batch_id: str) -> None:
    """Show a batch."""
    with api_errors():
        ui.batch_panel(State.client().batches.retrieve(batch_id))


@batch_app.command("wait")
def batch_wait(
    batch_id: str,
    interval: float = typer.Option(30.0, "--interval", help="Seconds between polls"),
    timeout: float = typer.Option(86400.0, "--timeout", help="Give up after this many seconds"),
) -> None:
    """Poll a batch until it finishes."""
    with api_errors(), ui.console.status(f"Waiting for {batch_id}...") as status:
        batch = State.client().batches.wait_for_completion(
            batch_id,
            check_interval=interval,
            timeout=timeout,
            on_update=lambda b: status.update(f"{b.status} ({b.completion_percentage:.1f}%)"),
        )
    ui.batch_panel(batch)


@batch_app.command("results")
def batch_results(
    batch_id: str,
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write replies as JSON here"),
) -> None:
    """Download and print the results of a completed batch."""
    client = State.client()
    with api_errors():
        batch = client.batches.retrieve(batch_id)
        if not batch.output_file_id:
            ui.batch_panel(batch)
            raise typer.Exit(1)
        results = BatchFileBuilder.parse_results(client.files.content(batch.output_file_id))

    replies = {}
    for result in results:
        if result.succeeded:
            choices = result.response.body.get("choices") or [{}]
            replies[result.custom_id] = (choices[0].get("message") or {}).get("content")
        else:
            replies[result.custom_id] = None
            message = result.error.message if result.error else f"HTTP {result.response.status_code}"
            ui.console.print(f"[red]✗ {result.custom_id}: {message}[/]")

    if output:
        output.write_text(json.dumps(replies, indent=2, ensure_ascii=False), encoding="utf-8")
        ui.console.print(f"[green]✓ Wrote {len(replies)} replies to {output}[/]")
    else:
        for custom_id, reply in replies.items():
            if reply is not None:
                ui.show_msg(custom_id, reply, color="cyan")


def main() -> None:
    """Console script entry point."""
    try:
        app()
    finally:
        if State._client is not None:
            State._client.close()


if __name__ == "__main__":
    main()
