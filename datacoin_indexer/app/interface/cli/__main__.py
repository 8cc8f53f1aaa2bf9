import asyncio
import inspect
import typer
import logging
from dotenv import load_dotenv
from InquirerPy import inquirer
from datacoin_indexer.app.config import settings
from datacoin_indexer.app.interface.tasks import TASKS
from datacoin_indexer.app.interface.tasks.cursor.cursor_tasks import set_cursor_task, show_cursor_task
from datacoin_indexer.app.interface.tasks.listener.event_source_task import run_event_source_task
from datacoin_indexer.app.interface.tasks.listener.single_tick_task import run_single_tick_task


load_dotenv()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

app = typer.Typer()
indexer_app = typer.Typer(help="cli for the DataCoin chain event listener.")
app.add_typer(indexer_app, name="indexer")


@indexer_app.command("run")
def run() -> None:
    """Pick a task interactively."""
    task_name = inquirer.select(
        message="Select task:",
        choices=list(TASKS.keys()),
        pointer="❯",
        instruction="Use ↑/↓ to move, Enter to select",
    ).execute()

    task = TASKS[task_name]

    kwargs: dict[str, object] = {}

    params = inspect.signature(task).parameters

    if "source" in params:
        kwargs["source"] = inquirer.select(
            message="Event source:",
            choices=["poll", "subscribe"],
            default=settings.event_source,
        ).execute()

    if "block_number" in params:
        kwargs["block_number"] = int(
            inquirer.text(
                message="Block number:",
            ).execute()
        )

    asyncio.run(task(**kwargs))  # type: ignore


@indexer_app.command("listen")
def listen(
    source: str | None = typer.Option(None, help='"poll" or "subscribe" (default: EVENT_SOURCE).'),
) -> None:
    """Run the listener until interrupted."""
    asyncio.run(run_event_source_task(source=source))


@indexer_app.command("tick")
def tick() -> None:
    """Run a single poll tick."""
    asyncio.run(run_single_tick_task())


@indexer_app.command("cursor")
def cursor(
    set_to: int | None = typer.Option(None, "--set", help="Overwrite the stored cursor."),
) -> None:
    """Show (or overwrite) the stored block cursor."""
    if set_to is None:
        asyncio.run(show_cursor_task())
    else:
        asyncio.run(set_cursor_task(block_number=set_to))


LOGO = r"""
     ___       _         ___       _
    |   \ __ _| |_ __ _ / __|___  (_)_ _
    | |) / _` |  _/ _` | (__/ _ \ | | ' \
    |___/\__,_|\__\__,_|\___\___/ |_|_||_|

      --- DataCoin Indexer CLI ---
    """


def main() -> None:
    typer.echo(LOGO)
    app()


if __name__ == "__main__":
    main()
