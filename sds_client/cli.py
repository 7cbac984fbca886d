from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional

import typer

from .client import DEFAULT_BASE_URL, SdsApiError, SdsClient
from .guards import visible_nav_items
from .labels import render_label

TOKEN_FILE = Path.home() / ".sds_token"

app = typer.Typer(help="SDS Document Manager command line client")


def _load_token() -> Optional[str]:
    if TOKEN_FILE.exists():
        return TOKEN_FILE.read_text(encoding="utf-8").strip() or None
    return None


def _client(ctx: typer.Context) -> SdsClient:
    return ctx.obj


def _echo_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


@app.callback()
def main(
    ctx: typer.Context,
    base_url: str = typer.Option(DEFAULT_BASE_URL, "--base-url", envvar="SDS_API_URL", help="API base URL"),
    token: Optional[str] = typer.Option(None, "--token", envvar="SDS_TOKEN", help="Bearer token"),
) -> None:
    client = SdsClient(base_url=base_url, token=token or _load_token())
    ctx.obj = client
    ctx.call_on_close(client.close)


@app.command()
def login(ctx: typer.Context, email: str, password: str = typer.Option(..., prompt=True, hide_input=True)) -> None:
    """Sign in and remember the session token."""
    try:
        body = _client(ctx).login(email, password)
    except SdsApiError as exc:
        typer.echo(f"Login failed: {exc.message}", err=True)
        raise typer.Exit(code=1) from exc
    TOKEN_FILE.write_text(body["token"], encoding="utf-8")
    user = body.get("user") or {}
    typer.echo(f"Signed in as {user.get('email')} ({', '.join(user.get('roles') or [])})")


@app.command()
def logout(ctx: typer.Context) -> None:
    """Forget the stored session token."""
    _client(ctx).logout()
    TOKEN_FILE.unlink(missing_ok=True)
    typer.echo("Logged out")


@app.command()
def menu(ctx: typer.Context) -> None:
    """List the pages available to the current user."""
    user = _client(ctx).me()
    for item in visible_nav_items(user):
        typer.echo(f"{item.path:<14} {item.label}")


@app.command()
def search(
    ctx: typer.Context,
    q: Optional[str] = typer.Argument(None),
    company_code: Optional[str] = typer.Option(None, "--company-code"),
    department: Optional[str] = typer.Option(None, "--department"),
    site: Optional[str] = typer.Option(None, "--site"),
    page: int = typer.Option(1, "--page"),
    limit: int = typer.Option(20, "--limit"),
) -> None:
    """Search documents."""
    result = _client(ctx).search_documents(q, company_code, department, site, page, limit)
    for item in result["items"]:
        typer.echo(f"{item['id']}  {item.get('productName') or '-':<30} {item['filename']}")
    typer.echo(f"{result['total']} document(s)")


@app.command()
def upload(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False),
    company_code: str = typer.Option("default", "--company-code"),
    product_name: Optional[str] = typer.Option(None, "--product-name"),
    department: Optional[str] = typer.Option(None, "--department"),
    site: Optional[str] = typer.Option(None, "--site"),
    tag: List[str] = typer.Option([], "--tag"),
) -> None:
    """Upload one document."""
    document = _client(ctx).upload_document(path, company_code, product_name, department, site, tag)
    typer.echo(f"Uploaded {document['filename']} as {document['id']}")


@app.command("bulk-upload")
def bulk_upload(
    ctx: typer.Context,
    paths: List[Path] = typer.Argument(..., exists=True, dir_okay=False),
    company_code: str = typer.Option("default", "--company-code"),
) -> None:
    """Upload several documents at once."""
    result = _client(ctx).bulk_upload(paths, company_code)
    typer.echo(f"Uploaded {result['uploaded']}, failed {result['failed']}")
    for error in result["errors"]:
        typer.echo(f"  {error}", err=True)


@app.command()
def export(
    ctx: typer.Context,
    output: Path = typer.Option(Path("documents-metadata.xlsx"), "--output", "-o"),
    ids: List[str] = typer.Option([], "--id"),
) -> None:
    """Export document metadata to an Excel workbook."""
    output.write_bytes(_client(ctx).export_excel(ids or None))
    typer.echo(f"Wrote {output}")


@app.command("import")
def import_metadata(ctx: typer.Context, path: Path = typer.Argument(..., exists=True, dir_okay=False)) -> None:
    """Apply metadata edits from an Excel workbook."""
    result = _client(ctx).import_excel(path)
    typer.echo(f"Updated {result['updated']} document(s)")


@app.command()
def label(ctx: typer.Context, document_id: str) -> None:
    """Print a label for a document."""
    typer.echo(render_label(_client(ctx).get_label(document_id)))


@app.command()
def contacts(ctx: typer.Context, as_json: bool = typer.Option(False, "--json")) -> None:
    """List contacts in your account (Admin)."""
    entries = _client(ctx).list_contacts()
    if as_json:
        _echo_json(entries)
        return
    for contact in entries:
        name = f"{contact.get('firstName', '')} {contact.get('lastName', '')}".strip()
        typer.echo(f"{contact['contactId']}  {name:<28} {contact.get('email') or '':<32} {', '.join(contact['roles'])}")


if __name__ == "__main__":
    app()
