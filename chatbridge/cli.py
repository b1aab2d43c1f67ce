from __future__ import annotations
import json, asyncio
import typer
import httpx
from rich import print
from rich.table import Table

app = typer.Typer(help="Chat Bridge CLI - inspect and drive a running chatbridge server.")

def _ws_url(host: str, port: int) -> str:
    return f"ws://{host}:{port}/ws"

def _http_url(host: str, port: int, path: str) -> str:
    return f"http://{host}:{port}{path}"

def _request(method: str, host: str, port: int, path: str, api_key: str, **kwargs) -> dict:
    headers = {"x-api-key": api_key} if api_key else {}
    res = httpx.request(method, _http_url(host, port, path), headers=headers, timeout=30.0, **kwargs)
    if res.is_error:
        print(f"[red]{res.status_code}[/red] {res.text}")
        raise typer.Exit(code=1)
    return res.json()

@app.command()
def serve():
    """Run the bridge server (settings come from CB_* env vars / .env)."""
    import uvicorn
    from chatbridge.config import load_settings
    from chatbridge.server.app import create_app

    settings = load_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level.lower())

@app.command()
def status(host: str = "127.0.0.1", port: int = 5000):
    """Show the stored session and live connection state."""
    print(_request("GET", host, port, "/api/session", ""))

@app.command()
def connect(host: str = "127.0.0.1", port: int = 5000, api_key: str = typer.Option("", envvar="CB_CLIENT_KEY")):
    """Start the connection (no-op when already running)."""
    print(_request("POST", host, port, "/api/session/connect", api_key))

@app.command()
def disconnect(host: str = "127.0.0.1", port: int = 5000, api_key: str = typer.Option("", envvar="CB_CLIENT_KEY")):
    """Log out and stop reconnecting."""
    print(_request("POST", host, port, "/api/session/disconnect", api_key))

@app.command()
def send(
    to: str,
    body: str,
    host: str = "127.0.0.1",
    port: int = 5000,
    api_key: str = typer.Option("", envvar="CB_CLIENT_KEY"),
):
    """Send a text message. TO may be a bare number or a full chat id."""
    res = _request("POST", host, port, "/api/messages", api_key, json={"to": to, "body": body})
    print(res["message"])

@app.command()
def contacts(host: str = "127.0.0.1", port: int = 5000, api_key: str = typer.Option("", envvar="CB_CLIENT_KEY")):
    """List known contacts and groups."""
    res = _request("GET", host, port, "/api/contacts", api_key)
    t = Table(title="Contacts")
    t.add_column("id"); t.add_column("name"); t.add_column("number"); t.add_column("group")
    for c in res.get("contacts", []):
        t.add_row(c["id"], c.get("name") or "", c["number"], "yes" if c["is_group"] else "")
    print(t)

@app.command()
def messages(
    chat_id: str,
    limit: int = 50,
    host: str = "127.0.0.1",
    port: int = 5000,
    api_key: str = typer.Option("", envvar="CB_CLIENT_KEY"),
):
    """Show the latest messages of a chat, oldest first."""
    res = _request("GET", host, port, f"/api/messages/{chat_id}", api_key, params={"limit": limit})
    t = Table(title=chat_id)
    t.add_column("time"); t.add_column("dir"); t.add_column("body")
    for m in res.get("messages", []):
        t.add_row(m["timestamp"], "->" if m["is_from_me"] else "<-", m["body"])
    print(t)

@app.command()
def watch(host: str = "127.0.0.1", port: int = 5000, api_key: str = typer.Option("", envvar="CB_CLIENT_KEY")):
    """Stream qr/ready/disconnected/message events (Ctrl+C to stop)."""
    import websockets

    async def _run():
        headers = {"x-api-key": api_key} if api_key else {}
        async with websockets.connect(_ws_url(host, port), additional_headers=headers) as ws:
            print("[bold]Watching events[/bold] (Ctrl+C to stop)")
            while True:
                msg = json.loads(await ws.recv())
                if msg.get("type", "").startswith("evt:"):
                    print(msg)
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass

def main():
    """Entry point for the CLI."""
    app()
