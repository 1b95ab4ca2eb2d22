from __future__ import annotations

"""
escrowbook.cli.inspect
----------------------

Inspect a durable escrow store and run the seller-side signing helpers.

Examples
--------
# Show one order (buyers included) from a SQLite store
python -m escrowbook.cli.inspect show 3 --db escrow.db

# Highest assigned order id
python -m escrowbook.cli.inspect total --db escrow.db

# Digest a seller must sign to release to BUYER with SECRET
python -m escrowbook.cli.inspect digest 0xBuyer... 345

# Sign it (key as hex), then check who signed
python -m escrowbook.cli.inspect sign --key 0x4c0883a6... 0xBuyer... 345
python -m escrowbook.cli.inspect recover 0x<digest> 0x<signature>

`--db` defaults to ESCROW_DB_PATH; `--domain` defaults to the configured
custody address when ESCROW_SIGNING_BIND_DOMAIN is set.
"""

import json
import logging
from typing import Optional

import typer

from ..adapters.state_db import SQLiteOrderStore
from ..config import load_config
from ..errors import EscrowError
from ..signing import message_digest, recover2, release_digest, sign_release

app = typer.Typer(
    name="escrowbook",
    add_completion=False,
    no_args_is_help=True,
    help="Inspect escrow orders and produce/verify release signatures.",
)


def _setup_logging(level: str) -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=getattr(logging, level.upper(), logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


def _open_store(db: Optional[str]) -> SQLiteOrderStore:
    cfg = load_config()
    _setup_logging(cfg.log_level)
    path = db or cfg.storage.db_path
    if not path:
        typer.secho("no store: pass --db or set ESCROW_DB_PATH", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)
    return SQLiteOrderStore(path)


def _domain(domain: Optional[str]) -> Optional[str]:
    return domain if domain else load_config().domain


@app.command("show")
def show(
    order_id: int = typer.Argument(..., help="Order id."),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite store path."),
    secrets: bool = typer.Option(False, "--secrets", help="Include registered secrets."),
) -> None:
    store = _open_store(db)
    try:
        order = store.get(order_id)
    finally:
        store.close()
    if order is None:
        typer.secho(f"order {order_id} not found", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    out = order.to_dict()
    if secrets:
        out["secrets"] = {b: str(s) for b, s in order.buyers.items()}
    typer.echo(json.dumps(out, indent=2, sort_keys=True))


@app.command("total")
def total(db: Optional[str] = typer.Option(None, "--db", help="SQLite store path.")) -> None:
    store = _open_store(db)
    try:
        typer.echo(str(store.last_id()))
    finally:
        store.close()


@app.command("digest")
def digest(
    buyer: str = typer.Argument(..., help="Buyer address."),
    secret: int = typer.Argument(..., help="Secret the buyer registered."),
    domain: Optional[str] = typer.Option(None, "--domain", help="Custody address to bind."),
) -> None:
    dom = _domain(domain)
    try:
        out = {
            "message": "0x" + message_digest(buyer, secret, domain=dom).hex(),
            "envelope": "0x" + release_digest(buyer, secret, domain=dom).hex(),
        }
    except EscrowError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(out, indent=2))


@app.command("sign")
def sign(
    buyer: str = typer.Argument(..., help="Buyer address."),
    secret: int = typer.Argument(..., help="Secret the buyer registered."),
    key: str = typer.Option(..., "--key", envvar="ESCROW_SELLER_KEY", help="Seller private key (hex)."),
    domain: Optional[str] = typer.Option(None, "--domain", help="Custody address to bind."),
) -> None:
    try:
        sig = sign_release(key, buyer, secret, domain=_domain(domain))
    except (EscrowError, ValueError) as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    typer.echo("0x" + sig.hex())


@app.command("recover")
def recover(
    digest_hex: str = typer.Argument(..., metavar="DIGEST", help="Envelope digest (hex)."),
    signature: str = typer.Argument(..., help="65-byte signature (hex)."),
) -> None:
    typer.echo(recover2(digest_hex, signature))


def get_app() -> typer.Typer:
    return app


if __name__ == "__main__":
    app()
