import os
import typer
import requests
from typing import Optional
from pathlib import Path
from dotenv import load_dotenv
from rich.console import Console

# Load the .env.client from the cli folder relative to this file
env_path = Path(__file__).parent.parent / '.env.client'
load_dotenv(env_path)

# Creating the main Typer instance
app = typer.Typer(help="OpenMedia Transcoder CLI", no_args_is_help=True)
console = Console()


def get_server_url() -> str:
    """
    Auto-detect best server URL.
    Priority: OPENMEDIA_SERVER_URL > OPENMEDIA_LOCAL_URL (if reachable) > OPENMEDIA_REMOTE_URL
    """
    explicit_url = os.getenv("OPENMEDIA_SERVER_URL")
    if explicit_url:
        return explicit_url.rstrip("/")

    local_url = os.getenv("OPENMEDIA_LOCAL_URL")
    remote_url = os.getenv("OPENMEDIA_REMOTE_URL")

    if local_url and not remote_url:
        return local_url.rstrip("/")
    if remote_url and not local_url:
        return remote_url.rstrip("/")

    # Both configured: try local first with quick timeout
    if local_url and remote_url:
        try:
            response = requests.get(f"{local_url}/health", timeout=1.5)
            if response.status_code == 200:
                console.print("[dim]🏠 Using LOCAL network (fast)[/dim]")
                return local_url.rstrip("/")
        except requests.exceptions.RequestException:
            pass
        console.print("[dim]🌐 Using REMOTE server[/dim]")
        return remote_url.rstrip("/")

    return "http://localhost:8080"


from .commands.jobs import submit_job, show_job, list_jobs


@app.command()
def ping():
    """Connectivity and token check against the server."""
    server_url = get_server_url()
    console.print("[yellow]📡 Contacting OpenMedia server...[/yellow]")
    try:
        r = requests.get(f"{server_url}/health", timeout=5)
        if r.status_code != 200:
            console.print(f"[yellow]⚠️ Server responded with status: {r.status_code}[/yellow]")
            raise typer.Exit(code=1)
        console.print(f"[bold green]🏓 PONG![/bold green] Server is {r.json().get('status', 'up')}.")

        token = os.getenv("OPENMEDIA_API_TOKEN", "")
        r = requests.get(f"{server_url}/api/ping", headers={"Authorization": f"Bearer {token}"}, timeout=5)
        if r.status_code == 401:
            console.print("[red]API token rejected. Check OPENMEDIA_API_TOKEN.[/red]")
            raise typer.Exit(code=1)
    except requests.exceptions.RequestException as e:
        console.print(f"[bold red]❌ Connection Failed:[/bold red] {e}")
        raise typer.Exit(code=1)


@app.command()
def submit(
    source_url: str = typer.Argument(..., help="Presigned GET URL of the source video"),
    prefix: Optional[str] = typer.Option(None, "--prefix", "-p", help="Result key prefix (default output/<job-id>/)"),
    webhook: Optional[str] = typer.Option(None, "--webhook", "-w", help="URL notified when the job finishes"),
):
    """
    Submit a video for HLS transcoding.

    Encodes every ladder rung up to the source height, plus poster and sprites.
    """
    submit_job(get_server_url(), source_url, prefix=prefix, webhook=webhook)


@app.command()
def status(
    job_id: str = typer.Argument(..., help="ID of the job to check"),
    watch: bool = typer.Option(False, "--watch", help="Poll until the job finishes"),
):
    """
    Show progress and results of a job.
    """
    show_job(get_server_url(), job_id, watch=watch)


@app.command()
def jobs(
    status: Optional[str] = typer.Option(None, "--status", "-s", help="Filter by status: pending, processing, done, error"),
):
    """
    List all jobs known to the server.
    """
    list_jobs(get_server_url(), status=status)


@app.callback()
def main():
    """
    OpenMedia CLI: submit and track transcoding jobs.
    """
    pass

if __name__ == "__main__":
    app()
