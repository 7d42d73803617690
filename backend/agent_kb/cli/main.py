"""CLI entrypoint for the agent knowledge base."""

from __future__ import annotations

import json
import mimetypes
import os
from pathlib import Path
from typing import Optional

import requests
import typer

app = typer.Typer(name="agkb", help="Agent knowledge base command-line interface")

DEFAULT_HOST = "http://127.0.0.1:8000"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("AGKB_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _resolve_org(override: Optional[str]) -> str:
    org = override or os.environ.get("AGKB_ORGANIZATION_ID")
    if not org:
        typer.echo("An organization id is required (--org or AGKB_ORGANIZATION_ID)", err=True)
        raise typer.Exit(code=2)
    return org


def _request(method: str, path: str, host: Optional[str], org: str, **kwargs) -> requests.Response:
    url = f"{_resolve_host(host)}{path}"
    headers = {"X-Organization-Id": org}
    resp = requests.request(method, url, headers=headers, timeout=120, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo(resp: requests.Response) -> None:
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def upload(
    paths: list[Path] = typer.Argument(..., help="Files to upload"),
    agents: str = typer.Option("", "--agents", help="Comma separated agent ids allowed to use the documents"),
    org: Optional[str] = typer.Option(None, "--org", help="Organization id"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Upload documents into the knowledge base."""
    organization_id = _resolve_org(org)
    files = []
    for path in paths:
        resolved = path.expanduser()
        mime, _ = mimetypes.guess_type(resolved.name)
        files.append(("files", (resolved.name, resolved.read_bytes(), mime or "application/octet-stream")))
    resp = _request("POST", "/knowledge/documents", host, organization_id, files=files, data={"agent_ids": agents})
    _echo(resp)


@app.command()
def search(
    q: str = typer.Argument(..., help="Query text"),
    agent: str = typer.Option(..., "--agent", help="Agent id to search for"),
    limit: int = typer.Option(5, "--limit", help="Number of results to return"),
    org: Optional[str] = typer.Option(None, "--org", help="Organization id"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Search the knowledge base as an agent would."""
    payload = {"query": q, "agent_id": agent, "limit": limit}
    _echo(_request("POST", "/knowledge/search", host, _resolve_org(org), json=payload))


@app.command("list")
def list_documents(
    org: Optional[str] = typer.Option(None, "--org", help="Organization id"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List documents of the organization."""
    _echo(_request("GET", "/knowledge/documents", host, _resolve_org(org)))


@app.command()
def content(
    document_id: str = typer.Argument(..., help="Document identifier"),
    org: Optional[str] = typer.Option(None, "--org", help="Organization id"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Print the reassembled text of a document."""
    resp = _request("GET", f"/knowledge/documents/{document_id}/content", host, _resolve_org(org))
    typer.echo(resp.json()["content"])


@app.command()
def delete(
    document_id: str = typer.Argument(..., help="Document identifier"),
    org: Optional[str] = typer.Option(None, "--org", help="Organization id"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Delete a document and all its chunks."""
    _echo(_request("DELETE", f"/knowledge/documents/{document_id}", host, _resolve_org(org)))


@app.command()
def stats(
    agent: Optional[str] = typer.Option(None, "--agent", help="Restrict to one agent"),
    org: Optional[str] = typer.Option(None, "--org", help="Organization id"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show document and chunk counts."""
    params = {"agent_id": agent} if agent else None
    _echo(_request("GET", "/knowledge/stats", host, _resolve_org(org), params=params))


if __name__ == "__main__":
    app()
