# mcp_gateway/cli/token_cli.py
import typer
from typing import Annotated, Optional
from urllib.parse import quote

from .utils_cli import make_api_request

app = typer.Typer(
    name="tokens",
    help="Manage MCP access tokens via the Admin API.",
    no_args_is_help=True
)

TokenIdArg = Annotated[str, typer.Argument(help="Public token identifier (tok_...).")]
UserIdArg = Annotated[str, typer.Argument(help="Email address of the token owner.")]


def _user_path(user_id: str) -> str:
    return f"/admin/tokens/users/{quote(user_id, safe='')}"


@app.command("generate")
def generate_token(
    user_id: Annotated[str, typer.Option("--user", prompt="Owner email", help="Email address of the token owner.")],
    description: Annotated[str, typer.Option(help="What the token is used for.")] = "",
):
    """Generate a new MCP token. The token is shown once."""
    result = make_api_request(
        "POST", "/admin/tokens",
        json_payload={"user_id": user_id, "description": description},
        expected_status=201,
        echo_response=False,
    )
    typer.secho(f"\nToken ID: {result['token_id']}", fg=typer.colors.CYAN)
    typer.secho(f"Token:    {result['token']}", fg=typer.colors.GREEN, bold=True)
    typer.echo(f"Expires:  {result.get('expires_at') or 'never'}")
    typer.secho(f"\n{result['warning']}", fg=typer.colors.YELLOW)


@app.command("list")
def list_tokens(user_id: UserIdArg):
    """List every token issued to a user."""
    make_api_request("GET", _user_path(user_id))


@app.command("stats")
def token_stats(user_id: UserIdArg):
    """Show token counts and usage for a user."""
    make_api_request("GET", f"{_user_path(user_id)}/stats")


@app.command("get")
def get_token(token_id: TokenIdArg):
    """Show the stored metadata of a token."""
    make_api_request("GET", f"/admin/tokens/{token_id}")


@app.command("revoke")
def revoke_token(
    token_id: TokenIdArg,
    reason: Annotated[Optional[str], typer.Option(help="Reason recorded with the revocation.")] = None,
):
    """Revoke a token. Revoking twice is harmless."""
    make_api_request("POST", f"/admin/tokens/{token_id}/revoke", json_payload={"reason": reason})


@app.command("unrevoke")
def unrevoke_token(
    token_id: TokenIdArg,
    yes: Annotated[bool, typer.Option("--yes", help="Skip the confirmation prompt.")] = False,
):
    """Make a revoked token usable again."""
    if not yes:
        typer.confirm(f"Restore access for token {token_id}?", abort=True)
    make_api_request("POST", f"/admin/tokens/{token_id}/unrevoke")


@app.command("delete")
def delete_token(
    token_id: TokenIdArg,
    yes: Annotated[bool, typer.Option("--yes", help="Skip the confirmation prompt.")] = False,
):
    """Permanently delete a token and its index entries."""
    if not yes:
        typer.confirm(f"Permanently delete token {token_id}?", abort=True)
    make_api_request("DELETE", f"/admin/tokens/{token_id}")


@app.command("revoke-all")
def revoke_all_tokens(
    user_id: UserIdArg,
    reason: Annotated[Optional[str], typer.Option(help="Reason recorded with each revocation.")] = None,
    yes: Annotated[bool, typer.Option("--yes", help="Skip the confirmation prompt.")] = False,
):
    """Revoke every token of a user (off-boarding)."""
    if not yes:
        typer.confirm(f"Revoke all tokens of {user_id}?", abort=True)
    make_api_request("POST", f"{_user_path(user_id)}/revoke-all", json_payload={"reason": reason})


@app.command("describe")
def describe_token(
    token_id: TokenIdArg,
    description: Annotated[str, typer.Argument(help="New description.")],
):
    """Change a token's description."""
    make_api_request("PATCH", f"/admin/tokens/{token_id}", json_payload={"description": description})
