# Job commands - submit transcode jobs, show status, list jobs

import os
import time
import requests
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from typing import Optional

console = Console()

STATUS_STYLES = {
    "done": "[green]done[/green]",
    "processing": "[yellow]processing[/yellow]",
    "pending": "[blue]pending[/blue]",
    "error": "[red]error[/red]",
}


def auth_headers() -> dict:
    token = os.getenv("OPENMEDIA_API_TOKEN")
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}


def styled_status(status: str) -> str:
    return STATUS_STYLES.get(status, f"[dim]{status}[/dim]")


def submit_job(server_url: str, source_url: str, prefix: Optional[str] = None,
               webhook: Optional[str] = None) -> Optional[dict]:
    """
    Submit a source video for transcoding

    Args:
        server_url: Base URL of the OpenMedia server
        source_url: Presigned GET URL of the source video
        prefix: Optional result key prefix
        webhook: Optional webhook URL
    """
    body = {"source_url": source_url}
    if prefix:
        body["result_key_prefix"] = prefix
    if webhook:
        body["webhook_url"] = webhook

    console.print("[cyan]Submitting transcode job...[/cyan]")

    try:
        response = requests.post(f"{server_url}/api/jobs", json=body, headers=auth_headers(), timeout=30)

        if response.status_code == 200:
            job = response.json()
            console.print(f"\n[green]Job queued![/green] ID: [bold]{job['id']}[/bold]")
            console.print(f"[dim]Results will be written under {job['result_key_prefix']}[/dim]")
            console.print(f"[dim]Use 'openmedia status {job['id']} --watch' to follow progress[/dim]")
            return job
        elif response.status_code == 401:
            console.print("[red]Error: Unauthorized. Set OPENMEDIA_API_TOKEN.[/red]")
        elif response.status_code == 422:
            console.print(f"[red]Error: {response.json().get('detail', 'Invalid request')}[/red]")
        else:
            console.print(f"[red]Error: Server returned {response.status_code}[/red]")
            console.print(f"[dim]{response.text}[/dim]")

    except requests.exceptions.Timeout:
        console.print("[red]Error: Request timed out[/red]")
    except requests.exceptions.ConnectionError:
        console.print(f"[red]Error: Cannot connect to server at {server_url}[/red]")
    return None


def render_job(job: dict) -> None:
    progress = job.get("progress") or {}
    lines = [
        f"Status: {styled_status(job['status'])}",
        f"Progress: {progress.get('percentage', 0)}% {progress.get('message', '')}".rstrip(),
        f"Prefix: {job['result_key_prefix']}",
    ]
    if progress.get("completed_qualities"):
        lines.append(f"Completed: {', '.join(progress['completed_qualities'])}")
    if job.get("poster_key"):
        lines.append(f"Poster: {job['poster_key']}")
    if job.get("thumbnails_key"):
        lines.append(f"Thumbnails: {job['thumbnails_key']}")
    if job.get("result_files"):
        lines.append(f"Files: {len(job['result_files'])}")
    if job.get("error"):
        lines.append(f"[red]Error: {job['error']}[/red]")
    console.print(Panel("\n".join(lines), title=f"Job {job['id']}"))


def show_job(server_url: str, job_id: str, watch: bool = False, interval: float = 5.0) -> Optional[dict]:
    """
    Show a job, optionally polling until it reaches done or error
    """
    def fetch() -> Optional[dict]:
        try:
            response = requests.get(f"{server_url}/api/jobs/{job_id}", headers=auth_headers(), timeout=10)
        except requests.exceptions.RequestException as e:
            console.print(f"[red]Error: {e}[/red]")
            return None

        if response.status_code == 404:
            console.print(f"[red]Error: Job {job_id} not found[/red]")
            return None
        if response.status_code != 200:
            console.print(f"[red]Error: Server returned {response.status_code}[/red]")
            return None
        return response.json()

    job = fetch()
    if job is None:
        return None
    render_job(job)

    if watch:
        console.print("[dim]Watching for updates... Press Ctrl+C to stop[/dim]")
        try:
            while job["status"] in ("pending", "processing"):
                time.sleep(interval)
                job = fetch()
                if job is None:
                    return None
                console.clear()
                render_job(job)
        except KeyboardInterrupt:
            console.print("\n[dim]Stopped watching[/dim]")
    return job


def list_jobs(server_url: str, status: Optional[str] = None) -> None:
    """
    List all jobs

    Args:
        server_url: Base URL of the OpenMedia server
        status: Filter by status (pending, processing, done, error)
    """
    params = {"status": status} if status else None

    try:
        response = requests.get(f"{server_url}/api/jobs", params=params, headers=auth_headers(), timeout=10)
    except requests.exceptions.RequestException as e:
        console.print(f"[red]Error: {e}[/red]")
        return

    if response.status_code != 200:
        console.print(f"[red]Error: Server returned {response.status_code}[/red]")
        return

    jobs = response.json()
    if not jobs:
        console.print("[dim]No jobs found[/dim]")
        return

    table = Table(title=f"Jobs ({len(jobs)} total)")
    table.add_column("Job ID", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("Progress", justify="right")
    table.add_column("Step")
    table.add_column("Error", style="red")

    for job in jobs:
        progress = job.get("progress") or {}
        error = job.get("error") or "-"
        if len(error) > 30:
            error = error[:30] + "..."
        table.add_row(
            job["id"],
            styled_status(job["status"]),
            f"{progress.get('percentage', 0)}%",
            progress.get("step", "-"),
            error,
        )

    console.print(table)
