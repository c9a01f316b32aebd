# mcp_gateway/cli/keys_cli.py
import typer

from ..utils.security import generate_cookie_secret, generate_fernet_key

app = typer.Typer(
    name="keys",
    help="Generate secrets for the gateway configuration.",
    no_args_is_help=True
)


@app.command("generate")
def generate_keys():
    """Print a fresh COOKIE_ENCRYPTION_KEY and PROPS_ENCRYPTION_KEY."""
    typer.echo("Add these to your .env file:")
    typer.echo(f"COOKIE_ENCRYPTION_KEY={generate_cookie_secret()}")
    typer.echo(f"PROPS_ENCRYPTION_KEY={generate_fernet_key()}")
