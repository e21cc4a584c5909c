"""Модуль вывода результатов."""

import json
from pathlib import Path
from typing import Literal

import pandas as pd
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from src.boards import BOARD_CATEGORIES
from src.database import StoredJob
from src.models import Board, JobResult


console = Console()

STATUS_STYLES = {
    "succeeded": "[green]✓ succeeded[/green]",
    "failed": "[red]✗ failed[/red]",
    "posting": "[yellow]… posting[/yellow]",
    "pending": "[dim]pending[/dim]",
}


def display_execution_time(elapsed_seconds: float) -> None:
    """Отобразить время выполнения в красивом формате."""
    if elapsed_seconds < 60:
        time_str = f"{elapsed_seconds:.2f} сек"
    elif elapsed_seconds < 3600:
        minutes = int(elapsed_seconds // 60)
        seconds = elapsed_seconds % 60
        time_str = f"{minutes} мин {seconds:.1f} сек"
    else:
        hours = int(elapsed_seconds // 3600)
        minutes = int((elapsed_seconds % 3600) // 60)
        seconds = elapsed_seconds % 60
        time_str = f"{hours} ч {minutes} мин {seconds:.0f} сек"

    console.print()
    console.print(Panel(
        f"[bold cyan]⏱️  Время выполнения:[/bold cyan] [bold white]{time_str}[/bold white]",
        border_style="dim cyan",
        padding=(0, 2),
    ))


def display_job_result(result: JobResult) -> None:
    """Отобразить результат публикации по доскам."""
    table = Table(
        title=f"Публикация: {result.successful_postings}/{result.total_boards} досок",
        show_lines=True,
    )

    table.add_column("Доска", style="cyan", max_width=25)
    table.add_column("Статус", max_width=14)
    table.add_column("Ссылка / ошибка", max_width=60)
    table.add_column("Попытки", justify="right", max_width=8)
    table.add_column("LLM $", style="yellow", justify="right", max_width=10)
    table.add_column("Время", justify="right", max_width=8)

    for board in result.results:
        if board.success:
            status = STATUS_STYLES["succeeded"]
            detail = f"[link={board.external_url}]{board.external_url}[/link]"
        else:
            status = STATUS_STYLES["failed"]
            kind = board.error_kind.value if board.error_kind else "error"
            detail = f"[red]{kind}[/red]: {board.error_message or '—'}"
        table.add_row(
            board.board_name,
            status,
            detail,
            str(board.attempts),
            f"{board.cost_usd:.4f}",
            f"{board.duration_seconds:.1f}s",
        )

    console.print(table)

    overall = STATUS_STYLES.get(result.status.value, result.status.value)
    console.print(
        f"\n[bold]Итог:[/bold] {overall}  "
        f"[bold]LLM:[/bold] ${result.total_cost:.4f}"
    )


def display_boards(boards: list[Board]) -> None:
    """Отобразить каталог досок."""
    table = Table(title=f"Доски объявлений: {len(boards)}")

    table.add_column("ID", style="cyan")
    table.add_column("Название", style="green")
    table.add_column("Категория", style="blue")
    table.add_column("Цена", style="yellow")
    table.add_column("Вход", justify="center")
    table.add_column("Форма", style="dim", max_width=50)

    for board in boards:
        name = board.name if board.enabled else f"[dim]{board.name} (off)[/dim]"
        table.add_row(
            board.id,
            name,
            BOARD_CATEGORIES.get(board.category, board.category or "—"),
            board.pricing or "—",
            "🔒" if board.requires_auth else "",
            board.post_url,
        )

    console.print(table)


def display_board_checks(reports: list[dict]) -> None:
    """Отобразить результат проверки доступности досок."""
    table = Table(title="Проверка досок")

    table.add_column("Доска", style="cyan")
    table.add_column("HTTP", justify="right")
    table.add_column("Доступна", justify="center")
    table.add_column("Время", justify="right")
    table.add_column("Ошибка", style="red", max_width=50)

    for report in reports:
        table.add_row(
            report["board_name"],
            str(report["status"] or "—"),
            "[green]✓[/green]" if report["reachable"] else "[red]✗[/red]",
            f"{report['elapsed']:.1f}s",
            report.get("error") or "",
        )

    console.print(table)


def display_llm_checks(reports: list[dict]) -> None:
    """Отобразить результат проверки LLM провайдеров."""
    for report in reports:
        mark = "[green]✓[/green]" if report["success"] else "[red]✗[/red]"
        line = f"{mark} {report['provider']} ({report['model']}) {report['response_time']:.2f}s"
        if not report["success"]:
            line += f" [red]{report.get('error', '')}[/red]"
        console.print(line)


def display_history(jobs: list[StoredJob]) -> None:
    """Отобразить историю публикаций."""
    if not jobs:
        console.print("[dim]История пуста[/dim]")
        return

    for job in jobs:
        created = job.created_at.strftime("%Y-%m-%d %H:%M") if job.created_at else "—"
        status = STATUS_STYLES.get(job.status, job.status)
        console.print(
            f"\n[bold]{created}[/bold] {job.title} "
            f"[dim]({job.company or '—'}, {job.id[:8]})[/dim] {status} "
            f"{job.successful_postings}/{len(job.postings)}, ${job.total_cost:.4f}"
        )
        for posting in job.postings:
            if posting.status == "succeeded":
                console.print(f"  [green]✅[/green] {posting.board_name or posting.board_id} — {posting.external_url}")
            else:
                console.print(
                    f"  [red]❌[/red] {posting.board_name or posting.board_id} — "
                    f"{posting.error_kind}: {posting.error_message}"
                )


def save_result(
    result: JobResult,
    output_path: str,
    format: Literal["json", "csv"] = "json",
) -> Path:
    """
    Сохранить результат публикации в файл.

    Args:
        result: Результат публикации
        output_path: Путь к файлу
        format: Формат файла (json или csv)

    Returns:
        Путь к сохраненному файлу
    """
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if format == "json":
        if not path.suffix:
            path = path.with_suffix(".json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump(result.model_dump(mode="json"), f, ensure_ascii=False, indent=2)
    elif format == "csv":
        if not path.suffix:
            path = path.with_suffix(".csv")
        df = pd.DataFrame([board.model_dump(mode="json") for board in result.results])
        df.insert(0, "job_id", result.job_id)
        df.to_csv(path, index=False, encoding="utf-8")

    console.print(f"[green]Результаты сохранены в {path}[/green]")
    return path
