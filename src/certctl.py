#!/usr/bin/env python3
"""
CLI tool for certsync
Inspects certificate files and queries the certsync status API
"""

import json
import time

import click
import requests
from tabulate import tabulate

from certificate import (
    CertificateParseError,
    certificate_domains,
    split_concatenated_pem,
)

API_BASE_URL = "http://localhost:8000/api/v1"


class CertsyncCLI:
    """CLI client for the certsync status API"""

    def __init__(self, base_url: str = API_BASE_URL):
        self.base_url = base_url.rstrip("/")

    def _make_request(self, method: str, endpoint: str, **kwargs):
        """Make HTTP request to the API"""
        url = f"{self.base_url}{endpoint}"
        try:
            response = requests.request(method, url, timeout=10, **kwargs)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            click.echo(f"Error: {e}", err=True)
            if hasattr(e, "response") and e.response is not None:
                try:
                    error_detail = e.response.json()
                    click.echo(f"Detail: {error_detail}", err=True)
                except (ValueError, json.JSONDecodeError):
                    click.echo(f"Response: {e.response.text}", err=True)
            return None


@click.group()
@click.option(
    "--api-url",
    envvar="CERTSYNC_API_URL",
    default=API_BASE_URL,
    show_default=True,
    help="Base URL of the certsync status API",
)
@click.pass_context
def cli(ctx, api_url):
    """certsync CLI - inspect certificates and watch the sync controller"""
    ctx.obj = CertsyncCLI(api_url)


@cli.command()
@click.argument("cert_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--output", "-o", type=click.Choice(["text", "json"]), default="text")
def inspect(cert_file, output):
    """Show the domains and chain length of a PEM certificate file"""
    with open(cert_file, "r") as f:
        blocks = split_concatenated_pem(f.read())

    if not blocks:
        raise click.ClickException(f"No certificate found in {cert_file}")

    try:
        domains = certificate_domains(blocks[0])
    except CertificateParseError as e:
        raise click.ClickException(str(e))

    result = {
        "primary_domain": domains[0],
        "domains": domains,
        "chain_length": len(blocks) - 1,
    }

    if output == "json":
        click.echo(json.dumps(result, indent=2))
        return

    click.echo(f"Primary domain: {result['primary_domain']}")
    click.echo(f"Domains: {', '.join(domains)}")
    click.echo(f"Chain certificates: {result['chain_length']}")


@cli.command()
@click.option("--follow", "-f", is_flag=True, help="Follow status updates")
@click.option("--interval", "-i", default=5, help="Polling interval in seconds")
@click.pass_obj
def status(client, follow, interval):
    """Show the controller status"""

    def show_status():
        result = client._make_request("GET", "/status")
        if not result:
            return
        if follow:
            click.clear()
        click.echo(f"State: {result['state']}")
        click.echo(f"Running: {result['running']}")
        click.echo(f"Source: {result['source']}")
        click.echo(f"Destination: {result['destination']}")
        click.echo(f"Watches: {result['watch_count']}")
        click.echo(f"Consecutive failures: {result['consecutive_failures']}")
        events = result.get("events")
        if events:
            click.echo(
                f"Event subscribers: {events['subscribers']} "
                f"(dropped {events['dropped']})"
            )

        counters = result.get("counters", {})
        click.echo(
            tabulate(
                [[name, count] for name, count in counters.items()],
                headers=["Outcome", "Count"],
                tablefmt="simple",
            )
        )

        last = result.get("last_reconcile")
        if last:
            domain = last["domains"][0] if last["domains"] else "-"
            click.echo(
                f"\nLast reconcile: {domain} {last['status']} "
                f"at {last['reconcile_time']}"
            )

    show_status()

    if follow:
        try:
            while True:
                time.sleep(interval)
                show_status()
        except KeyboardInterrupt:
            click.echo("\nStopped following")


@cli.command()
@click.option("--limit", "-l", default=10, help="Number of history entries to show")
@click.option("--output", "-o", type=click.Choice(["table", "json"]), default="table")
@click.pass_obj
def history(client, limit, output):
    """Show recently processed certificates"""
    result = client._make_request("GET", "/history", params={"limit": limit})

    if result is None:
        return

    if output == "json":
        click.echo(json.dumps(result, indent=2))
        return

    headers = ["Domain", "Status", "Certificate", "Created", "Listeners", "Time"]
    rows = []
    for entry in result:
        listeners = entry.get("listeners", [])
        attached = sum(1 for listener in listeners if listener["success"])
        rows.append(
            [
                entry["domains"][0] if entry["domains"] else "-",
                entry["status"],
                entry.get("certificate_id") or "-",
                "✓" if entry.get("created") else "",
                f"{attached}/{len(listeners)}" if listeners else "-",
                entry["reconcile_time"],
            ]
        )

    click.echo(tabulate(rows, headers=headers, tablefmt="grid"))


@cli.command()
@click.pass_obj
def plugins(client):
    """List registered source and destination plugins"""
    result = client._make_request("GET", "/plugins")

    if result is None:
        return

    rows = [["source", p["name"], p["version"]] for p in result.get("sources", [])]
    rows.extend(
        ["destination", p["name"], p["version"]]
        for p in result.get("destinations", [])
    )
    click.echo(tabulate(rows, headers=["Kind", "Name", "Version"], tablefmt="simple"))


if __name__ == "__main__":
    cli()
