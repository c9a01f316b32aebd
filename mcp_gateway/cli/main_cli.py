# mcp_gateway/cli/main_cli.py
import typer
from . import keys_cli, token_cli

# Main CLI application with help enabled when no arguments are provided
app = typer.Typer(
    name="mcp-gateway",
    help="MCP Gateway Command Line Interface.",
    no_args_is_help=True
)

app.add_typer(token_cli.app, name="tokens")
app.add_typer(keys_cli.app, name="keys")


@app.callback()
def main_callback():
    """
    MCP Gateway CLI. Token commands call the running gateway's admin API.
    """
    pass


def cli_entry_point():
    """Entry point function for console script registration in pyproject.toml"""
    app()


if __name__ == "__main__":
    cli_entry_point()
