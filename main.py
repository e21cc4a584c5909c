"""Main module for Multiboard Poster application."""

import asyncio
import logging
import time
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from src.boards import get_catalog
from src.browser import PlaywrightBrowsersNotInstalledError
from src.config import settings
from src.engine import PostingEngine
from src.llm import build_provider_chain
from src.models import Credentials, Job, StatusEvent
from src.output import (
    display_board_checks,
    display_boards,
    display_execution_time,
    display_history,
    display_job_result,
    display_llm_checks,
    save_result,
)

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
)

app = typer.Typer(
    name="multiboard-poster",
    help="📢 Публикация вакансий на нескольких досках объявлений",
    add_completion=False,
)
console = Console()


@app.command()
def post(
    title: str = typer.Argument(..., help="Название вакансии"),
    description: str = typer.Option(
        ...,
        "--description",
        "-d",
        help="Описание вакансии (или @файл)",
    ),
    board: list[str] = typer.Option(
        [],
        "--board",
        "-b",
        help="ID доски (можно несколько раз; по умолчанию все включённые)",
    ),
    location: str = typer.Option("", "--location", "-l", help="Локация"),
    company: str = typer.Option("", "--company", "-c", help="Компания"),
    email: str = typer.Option("", "--email", "-e", help="Контактный email"),
    salary_min: Optional[int] = typer.Option(None, "--salary-min", help="Минимальная зарплата"),
    salary_max: Optional[int] = typer.Option(None, "--salary-max", help="Максимальная зарплата"),
    currency: str = typer.Option("USD", "--currency", help="Валюта зарплаты"),
    employment_type: Optional[str] = typer.Option(None, "--type", "-t", help="Тип занятости"),
    provider: Optional[str] = typer.Option(
        None,
        "--provider",
        "-p",
        help="LLM провайдер (groq, openai, claude, openrouter, ollama)",
    ),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Модель LLM"),
    login: Optional[str] = typer.Option(
        None,
        "--login",
        help="Email для входа на доски, требующие авторизации",
    ),
    headless: bool = typer.Option(True, "--headless/--show-browser", help="Режим браузера"),
    nodb: bool = typer.Option(False, "--nodb", help="Не сохранять результат в базу"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Сохранить результат в файл"),
    format: str = typer.Option("json", "--format", "-f", help="Формат вывода (json/csv)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Подробный лог"),
):
    """Опубликовать вакансию на досках."""
    start_time = time.perf_counter()
    if verbose:
        logging.getLogger("src").setLevel(logging.INFO)

    if description.startswith("@"):
        with open(description[1:], encoding="utf-8") as f:
            description = f.read()

    catalog = get_catalog()
    board_ids = board or [b.id for b in catalog.enabled()]
    unknown = [b for b in board_ids if b not in catalog]
    if unknown:
        console.print(f"[yellow]⚠ Неизвестные доски будут пропущены с ошибкой:[/yellow] {', '.join(unknown)}")

    credentials: dict[str, Credentials] = {}
    if login:
        password = typer.prompt("Пароль", hide_input=True)
        creds = Credentials(email=login, password=password, company=company or None)
        credentials = {b: creds for b in board_ids if b in catalog and catalog[b].requires_auth}

    try:
        job = Job(
            title=title,
            description=description,
            location=location,
            company=company,
            contact_email=email,
            salary_min=salary_min,
            salary_max=salary_max,
            salary_currency=currency,
            employment_type=employment_type,
            board_ids=board_ids,
        )
    except ValueError as e:
        console.print(f"[red]✗[/red] Некорректная вакансия: {e}")
        raise typer.Exit(1)

    console.print(f"[bold blue]📢 Вакансия:[/bold blue] {job.title}")
    console.print(f"[bold blue]📋 Доски:[/bold blue] {', '.join(board_ids)}")
    console.print(f"[bold blue]💰 Лимит LLM:[/bold blue] ${settings.cost_ceiling_usd:.4f}")
    console.print()

    result = asyncio.run(_post_job(job, credentials, provider, model, headless, not nodb))
    if result is None:
        raise typer.Exit(1)

    display_job_result(result)

    if output:
        save_result(result, output, format)

    display_execution_time(time.perf_counter() - start_time)
    if not result.overall_success:
        raise typer.Exit(2)


async def _post_job(
    job: Job,
    credentials: dict[str, Credentials],
    provider: Optional[str],
    model: Optional[str],
    headless: bool,
    persist: bool,
):
    """Асинхронная публикация с выводом прогресса."""
    try:
        providers = build_provider_chain(primary=provider, model=model)
    except ValueError as e:
        console.print(f"[red]✗[/red] Ошибка инициализации LLM: {e}")
        return None

    try:
        async with PostingEngine.from_settings(providers=providers, headless=headless, persist=persist) as engine:
            events = engine.publisher.subscribe()
            task = engine.submit(job, job.board_ids, credentials)
            progress = asyncio.create_task(_print_progress(events))
            try:
                return await engine.wait(task.get_name())
            finally:
                await engine.publisher.flush()
                progress.cancel()
    except PlaywrightBrowsersNotInstalledError as e:
        console.print(f"[red]✗[/red] {e}")
        return None


async def _print_progress(events: asyncio.Queue) -> None:
    """Печатать статусы досок по мере поступления."""
    while True:
        event: StatusEvent = await events.get()
        if event.board_id is None:
            continue
        line = f"[dim]{event.timestamp:%H:%M:%S}[/dim] [cyan]{event.board_id}[/cyan] → {event.status}"
        if event.external_url:
            line += f" [green]{event.external_url}[/green]"
        elif event.error_kind:
            line += f" [red]{event.error_kind}[/red]"
        console.print(line)


@app.command()
def boards(
    category: Optional[str] = typer.Option(None, "--category", help="Фильтр по категории"),
):
    """📋 Показать каталог досок."""
    catalog = get_catalog()
    items = catalog.by_category(category) if category else list(catalog.values())
    display_boards(items)


@app.command("check-boards")
def check_boards(
    board: list[str] = typer.Option([], "--board", "-b", help="ID доски (по умолчанию все)"),
):
    """🌐 Проверить доступность форм публикации."""
    start_time = time.perf_counter()
    reports = asyncio.run(_check_boards(board or None))
    if reports:
        display_board_checks(reports)
    display_execution_time(time.perf_counter() - start_time)


async def _check_boards(board_ids: Optional[list[str]]) -> list[dict]:
    try:
        async with PostingEngine.from_settings(providers=[], persist=False) as engine:
            with console.status("[bold green]Проверяю доски..."):
                return await engine.check_boards(board_ids)
    except PlaywrightBrowsersNotInstalledError as e:
        console.print(f"[red]✗[/red] {e}")
        return []


@app.command("llm-check")
def llm_check(
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="LLM провайдер"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Модель LLM"),
):
    """🤖 Проверить подключение к LLM провайдерам."""
    try:
        providers = build_provider_chain(primary=provider, model=model)
    except ValueError as e:
        console.print(f"[red]✗[/red] Ошибка инициализации LLM: {e}")
        raise typer.Exit(1)

    reports = asyncio.run(_check_llm(providers))
    display_llm_checks(reports)
    if not any(r["success"] for r in reports):
        raise typer.Exit(1)


async def _check_llm(providers) -> list[dict]:
    results = []
    for llm in providers:
        async with llm:
            results.append(await llm.check_connection())
    return results


@app.command()
def history(
    limit: int = typer.Option(
        20,
        "--limit",
        "-n",
        help="Количество записей",
    ),
):
    """📜 Показать историю публикаций."""
    asyncio.run(_show_history(limit))


async def _show_history(limit: int) -> None:
    """Асинхронное отображение истории."""
    from src.database import PostingRepository

    async with PostingRepository(settings.db_path) as repo:
        jobs = await repo.get_recent_jobs(limit)
        total = await repo.get_usage_total()

    display_history(jobs)
    if jobs:
        console.print(f"\n[bold]Всего потрачено на LLM:[/bold] ${total:.4f}")


@app.command()
def info():
    """Информация о приложении."""
    console.print("[bold]Multiboard Poster[/bold]")
    console.print("Версия: 0.1.0")
    console.print(f"\nLLM: {settings.llm_provider} (резерв: {', '.join(settings.fallback_providers) or '—'})")
    console.print(f"Параллельно досок: {settings.max_concurrency}")
    console.print(f"Лимит LLM на вакансию: ${settings.cost_ceiling_usd:.4f}")
    console.print("\nИспользование:")
    console.print("  multiboard-poster boards")
    console.print("  multiboard-poster post 'Python Developer' -d @job.txt -b remoteok -b nodesk")
    console.print("  multiboard-poster check-boards")
    console.print("  multiboard-poster llm-check --provider groq")
    console.print("  multiboard-poster history  # Показать историю публикаций")


if __name__ == "__main__":
    app()
