"""CLI entry point for the retailer smoke run.

Probes health, runs a product search and an availability check across the
configured retailers, writes a JSON report and prints a summary.
"""

import asyncio
import sys
import time
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from restock.models.config import ConfigManager, ServiceConfig
from restock.models.data_models import AvailabilityRequest, SmokeReport
from restock.pipeline.orchestrator import RetailerOrchestrator
from restock.pipeline.output import JSONOutputFormatter


console = Console()


@click.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    default="config/config.yaml",
    help="Path to configuration YAML file",
)
@click.option(
    "--retailer",
    "-r",
    "retailers",
    multiple=True,
    help="Restrict the run to these retailer ids (repeatable)",
)
@click.option("--query", "-q", default="pokemon booster", show_default=True, help="Search query")
@click.option("--product-id", help="Catalog product id for the availability check")
@click.option("--sku", help="Retailer SKU for the availability check")
@click.option("--upc", help="UPC for the availability check")
@click.option("--zip", "zip_code", help="ZIP code for store lookups")
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Output JSON file path (overrides config)",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (overrides config)",
)
@click.option(
    "--no-progress",
    is_flag=True,
    help="Disable spinners and tables (useful for CI/CD)",
)
@click.version_option(version="1.0.0", prog_name="restock-smoke")
def main(
    config: Path,
    retailers: Tuple[str, ...],
    query: str,
    product_id: Optional[str],
    sku: Optional[str],
    upc: Optional[str],
    zip_code: Optional[str],
    output: Optional[Path],
    log_level: Optional[str],
    no_progress: bool,
) -> None:
    """
    Restock smoke run - check retailer integrations end to end.

    An availability check runs only when --product-id, --sku or --upc is
    given. API retailers need BEST_BUY_API_KEY / WALMART_API_KEY set.

    Examples:

        # Health and search across every active retailer
        $ restock-smoke

        # Only Best Buy, with an availability check near a ZIP code
        $ restock-smoke -r best-buy --sku 6545227 --zip 94103
    """
    try:
        cli_overrides = {}
        if log_level is not None:
            cli_overrides["log_level"] = log_level.upper()

        service_config = ConfigManager(config).load_config(cli_overrides)
        output_path = output if output else service_config.output_path

        request = None
        if product_id or sku or upc:
            request = AvailabilityRequest(
                product_id=product_id or sku or upc,
                sku=sku,
                upc=upc,
                zip_code=zip_code,
            )

        _display_config_summary(service_config, retailers, no_progress)

        report = asyncio.run(
            _run_smoke(service_config, query, request, retailers or None, no_progress)
        )

        JSONOutputFormatter().save(report, str(output_path))
        _display_results(report, output_path, no_progress)

        sys.exit(0)

    except KeyboardInterrupt:
        console.print("\n[yellow]Smoke run interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        console.print(f"\n[red]Error:[/red] {e}", style="bold red")
        sys.exit(1)


async def run_smoke(
    orchestrator: RetailerOrchestrator,
    query: str,
    request: Optional[AvailabilityRequest] = None,
    retailer_ids: Optional[Tuple[str, ...]] = None,
) -> SmokeReport:
    """Run health, search and availability against a started orchestrator."""
    started = time.monotonic()
    health = await orchestrator.get_retailer_health_status()
    if retailer_ids:
        health = [h for h in health if h.retailer_id in retailer_ids]

    search_results = await orchestrator.search_products(query, retailer_ids)
    availability = []
    if request is not None:
        availability = await orchestrator.check_availability(request, retailer_ids)

    breakers = orchestrator.get_circuit_breaker_metrics()
    return SmokeReport(
        query=query,
        product_id=request.product_id if request else None,
        elapsed_seconds=time.monotonic() - started,
        health=health,
        search_results=search_results,
        availability=availability,
        metrics=orchestrator.get_retailer_metrics(),
        circuit_breakers=list(breakers.values()),
    )


async def _run_smoke(
    config: ServiceConfig,
    query: str,
    request: Optional[AvailabilityRequest],
    retailer_ids: Optional[Tuple[str, ...]],
    no_progress: bool,
) -> SmokeReport:
    async with RetailerOrchestrator(config) as orchestrator:
        if no_progress:
            console.print("[cyan]Running smoke checks...[/cyan]")
            return await run_smoke(orchestrator, query, request, retailer_ids)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task_id = progress.add_task("[cyan]Checking retailers...", total=None)
            report = await run_smoke(orchestrator, query, request, retailer_ids)
            progress.update(task_id, completed=True)
            return report


def _display_config_summary(config: ServiceConfig, retailers: Tuple[str, ...], no_progress: bool) -> None:
    if no_progress:
        return

    active = [r.id for r in config.retailers if r.is_active and (not retailers or r.id in retailers)]
    console.print("\n[bold cyan]Smoke Configuration[/bold cyan]")
    console.print(f"  Retailers: {', '.join(active) or 'none'}")
    console.print(f"  Adapter timeout: {config.adapter_timeout}s")
    console.print(
        f"  Circuit breaker: {config.circuit_breaker_failure_threshold} failures, "
        f"{config.circuit_breaker_cooldown}s cooldown"
    )
    console.print()


def _display_results(report: SmokeReport, output_path: Path, no_progress: bool) -> None:
    healthy = sum(1 for h in report.health if h.is_healthy)
    if no_progress:
        console.print(f"✓ Smoke complete: {healthy}/{len(report.health)} retailers healthy")
        console.print(f"✓ Output saved to: {output_path}")
        return

    console.print("\n[bold green]Smoke Run Complete![/bold green]\n")

    health_table = Table(title="Retailer Health")
    health_table.add_column("Retailer", style="cyan")
    health_table.add_column("Healthy", justify="center")
    health_table.add_column("Response (ms)", justify="right", style="green")
    health_table.add_column("Success Rate", justify="right", style="green")
    health_table.add_column("Circuit", style="yellow")
    for status in report.health:
        health_table.add_row(
            status.retailer_id,
            "[green]yes[/green]" if status.is_healthy else "[red]no[/red]",
            f"{status.response_time:.0f}",
            f"{status.success_rate * 100:.1f}%",
            status.circuit_breaker_state.value,
        )
    console.print(health_table)
    console.print()

    results_table = Table(title=f"Search: {report.query}")
    results_table.add_column("Retailer", style="cyan")
    results_table.add_column("Results", justify="right", style="green")
    results_table.add_column("In Stock", justify="right", style="green")
    per_retailer = {}
    for response in report.search_results:
        total, in_stock = per_retailer.get(response.retailer_id, (0, 0))
        per_retailer[response.retailer_id] = (total + 1, in_stock + int(response.in_stock))
    for retailer_id, (total, in_stock) in sorted(per_retailer.items()):
        results_table.add_row(retailer_id, str(total), str(in_stock))
    console.print(results_table)
    console.print()

    if report.product_id:
        availability_table = Table(title=f"Availability: {report.product_id}")
        availability_table.add_column("Retailer", style="cyan")
        availability_table.add_column("Status", style="green")
        availability_table.add_column("Price", justify="right", style="magenta")
        availability_table.add_column("URL")
        for response in report.availability:
            availability_table.add_row(
                response.retailer_id,
                response.availability_status.value,
                f"${response.price}" if response.price is not None else "N/A",
                response.product_url,
            )
        console.print(availability_table)
        console.print()

    console.print(f"[bold]Output saved to:[/bold] {output_path}")
    console.print()


if __name__ == "__main__":
    main()
