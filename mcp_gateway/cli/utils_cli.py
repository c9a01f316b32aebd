# mcp_gateway/cli/utils_cli.py
import requests
import typer
import json
from typing import Optional, Dict, Any, Union, List

from .config import GATEWAY_CLI_API_BASE_URL, GATEWAY_CLI_ADMIN_API_KEY

ADMIN_KEY_HEADER = "X-Admin-API-Key"


def _error_detail(response: requests.Response) -> str:
    try:
        err_data = response.json()
    except json.JSONDecodeError:
        return response.text
    if isinstance(err_data, dict):
        return str(err_data.get("detail") or err_data.get("error_description") or err_data)
    return str(err_data)


def make_api_request(
    method: str,
    endpoint: str,
    json_payload: Optional[Dict[str, Any]] = None,
    params_payload: Optional[Dict[str, Any]] = None,
    expected_status: Union[int, List[int]] = 200,
    echo_response: bool = True
) -> Any:
    """
    Call the gateway admin API and return the decoded JSON body.

    Any unexpected status or connection problem is printed and ends the
    command with exit code 1.
    """
    full_url = f"{GATEWAY_CLI_API_BASE_URL}{endpoint}"
    headers: Dict[str, str] = {}

    if GATEWAY_CLI_ADMIN_API_KEY:
        headers[ADMIN_KEY_HEADER] = GATEWAY_CLI_ADMIN_API_KEY
    elif "/admin/" in endpoint:
        typer.secho(
            "CLI: Warning - ADMIN_API_KEY not set in .env for CLI. Admin API calls will fail.",
            fg=typer.colors.YELLOW
        )

    typer.echo(f"CLI: {method.upper()} {full_url}")
    if json_payload:
        typer.echo(f"CLI: JSON Payload: {json.dumps(json_payload, indent=2)}")
    if params_payload:
        typer.echo(f"CLI: Query Params: {params_payload}")

    try:
        response = requests.request(
            method,
            full_url,
            json=json_payload,
            params=params_payload,
            headers=headers,
            timeout=30
        )
    except requests.exceptions.ConnectionError as e:
        typer.secho(
            f"CLI: Connection Error - Could not connect to API at {full_url}. Is the gateway running? Error: {e}",
            fg=typer.colors.RED
        )
        raise typer.Exit(code=1)
    except requests.exceptions.RequestException as e:
        typer.secho(f"CLI: Request Error - {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(f"CLI: Response Status: {response.status_code}")
    expected_statuses = [expected_status] if isinstance(expected_status, int) else expected_status
    if response.status_code not in expected_statuses:
        typer.secho(
            f"CLI: API Error - Expected status {expected_status}, got {response.status_code}. "
            f"Detail: {_error_detail(response)}",
            fg=typer.colors.RED
        )
        raise typer.Exit(code=1)

    if not response.content:
        return None
    try:
        data = response.json()
    except json.JSONDecodeError:
        typer.secho(
            f"CLI: Error - Could not decode JSON response. Raw text: {response.text}",
            fg=typer.colors.RED
        )
        raise typer.Exit(code=1)
    if echo_response:
        typer.echo(typer.style("CLI: Response JSON:", fg=typer.colors.CYAN))
        typer.echo(json.dumps(data, indent=2))
    return data
