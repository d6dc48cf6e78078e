"""zkuplc command line.

\b
    zkuplc                      start the proving server (same as `zkuplc serve`)
    zkuplc setup [--force]      build the guest and generate proving keys
    zkuplc evaluate HEX         evaluate a flat UPLC program locally
    zkuplc commit HEX RESULT    print SHA256(program || result)
    zkuplc verify-commitment    recompute and compare a commitment
    zkuplc verify-proof         verify a STARK proof bundle
"""
from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .artifacts import ArtifactLayout
from .bundle import ProofBundle, strip_0x
from .commitment import commit_hex
from .config import Settings
from .errors import DecodeError, EvalError, ProvisioningError, VerificationError, VerificationFormatError
from .evaluator import EVALUATORS, get_evaluator
from .evaluator.base import decode_program_hex
from .pipeline import get_pipeline
from .provision import Provisioner
from .verify import check_commitment, get_stark_backend, verify_bundle

LOGGER = logging.getLogger(__name__)

console = Console()
err_console = Console(stderr=True)

EXIT_OK = 0
EXIT_MISMATCH = 1
EXIT_MALFORMED = 2


def _settings(ctx: click.Context) -> Settings:
    return ctx.obj["settings"]


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="zkuplc")
@click.option("--log-level", default=None, help="Logging level (default: ZKUPLC_LOG_LEVEL or INFO)")
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """Prove that a UPLC program evaluated to a result, and verify such proofs."""
    settings = Settings.from_env()
    level = (log_level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj.setdefault("settings", settings)
    if ctx.invoked_subcommand is None:
        ctx.invoke(serve_command)


@cli.command("serve")
@click.option("--host", default=None, help="Bind address (default: ZKUPLC_HOST)")
@click.option("--port", type=int, default=None, help="Port (default: PORT or 8080)")
@click.pass_context
def serve_command(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Load proving artifacts and serve the HTTP API."""
    from .server import create_app

    settings = _settings(ctx)
    overrides = {k: v for k, v in (("host", host), ("port", port)) if v is not None}
    if overrides:
        settings = settings.with_overrides(**overrides)
    try:
        app = create_app(settings=settings)
    except (ProvisioningError, ValueError) as exc:
        err_console.print(f"[red]Startup failed:[/red] {exc}")
        sys.exit(1)
    LOGGER.info("Starting %s on %s:%d", settings.service_name, settings.host, settings.port)
    app.run(host=settings.host, port=settings.port, threaded=True)


@cli.command("setup")
@click.option("--force", is_flag=True, help="Regenerate every artifact even if complete")
@click.pass_context
def setup_command(ctx: click.Context, force: bool) -> None:
    """Build the guest and generate the app and aggregation keys.

    Steps whose outputs are already complete are skipped, so re-running is
    cheap. Aggregation keygen takes tens of minutes and a lot of memory.
    With ZKUPLC_EVM_PROOF set the Halo2 key for EVM proofs is generated too.
    """
    settings = _settings(ctx)
    layout = ArtifactLayout.from_settings(settings)
    try:
        provisioner = Provisioner(layout, get_pipeline(settings), evm=settings.evm_proof)
        reports = provisioner.run(
            force=force,
            on_step=lambda step: console.print(f"[cyan]→[/cyan] {step.description}"),
        )
    except (ProvisioningError, ValueError) as exc:
        err_console.print(f"[red]Setup failed:[/red] {exc}")
        sys.exit(1)

    table = Table(title="Provisioning")
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Seconds", justify="right")
    for report in reports:
        status = "skipped" if report.skipped else ("regenerated" if report.regenerated_partial else "built")
        table.add_row(report.name, status, f"{report.duration_secs:.1f}")
    console.print(table)
    console.print(f"[green]✓[/green] Artifacts ready (agg_stark.vk at {layout.agg_vk})")


@cli.command("evaluate")
@click.argument("program_hex")
@click.option(
    "--evaluator",
    "engine",
    type=click.Choice(sorted(EVALUATORS)),
    default=None,
    help="Evaluation engine (default: ZKUPLC_EVALUATOR)",
)
@click.option("--json", "output_json", is_flag=True, help="Print result, cost and commitment as JSON")
@click.pass_context
def evaluate_command(ctx: click.Context, program_hex: str, engine: str | None, output_json: bool) -> None:
    """Evaluate a flat-encoded UPLC program and print its canonical result."""
    settings = _settings(ctx)
    try:
        evaluator = get_evaluator(engine or settings.evaluator, settings)
        program = decode_program_hex(program_hex)
        evaluation = evaluator.evaluate(program_hex)
    except DecodeError as exc:
        err_console.print(f"[red]{exc}[/red]")
        sys.exit(EXIT_MALFORMED)
    except (EvalError, ValueError) as exc:
        err_console.print(f"[red]Evaluation failed:[/red] {exc}")
        sys.exit(1)

    if output_json:
        click.echo(json.dumps({
            "result": evaluation.result,
            "cost": evaluation.cost,
            "commitment": commit_hex(program, evaluation.result),
        }))
        return
    click.echo(evaluation.result)
    if evaluation.cost:
        err_console.print(f"[dim]{evaluation.cost}[/dim]")


@cli.command("commit")
@click.argument("program_hex")
@click.argument("result")
def commit_command(program_hex: str, result: str) -> None:
    """Print the commitment SHA256(program || RESULT) as hex."""
    try:
        program = decode_program_hex(program_hex)
    except DecodeError as exc:
        err_console.print(f"[red]{exc}[/red]")
        sys.exit(EXIT_MALFORMED)
    click.echo(commit_hex(program, result))


@cli.command("verify-commitment")
@click.argument("program_hex")
@click.argument("result")
@click.argument("commitment")
def verify_commitment_command(program_hex: str, result: str, commitment: str) -> None:
    """Recompute the commitment and compare.

    \b
    Exit codes: 0 match, 1 mismatch, 2 malformed input.
    """
    try:
        program = decode_program_hex(program_hex)
        check = check_commitment(program, result, commitment)
    except DecodeError as exc:
        err_console.print(f"[red]{exc}[/red]")
        sys.exit(EXIT_MALFORMED)
    if check.matches:
        console.print("[green]✓[/green] Commitment matches")
        sys.exit(EXIT_OK)
    console.print("[red]✗[/red] Commitment mismatch")
    click.echo(f"expected {check.expected_hex}")
    sys.exit(EXIT_MISMATCH)


@cli.command("verify-proof")
@click.option(
    "--bundle",
    "bundle_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Prove response or proof bundle JSON",
)
@click.option(
    "--agg-vk",
    "agg_vk_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="agg_stark.vk (default: $OPENVM_HOME/agg_stark.vk)",
)
@click.pass_context
def verify_proof_command(ctx: click.Context, bundle_path: Path, agg_vk_path: Path | None) -> None:
    """Verify a STARK proof bundle against the aggregation verifying key.

    \b
    Exit codes: 0 valid, 1 invalid, 2 malformed or uncheckable input.
    """
    settings = _settings(ctx)
    vk_path = agg_vk_path or ArtifactLayout.from_settings(settings).agg_vk
    try:
        data = json.loads(bundle_path.read_text())
        if not isinstance(data, dict):
            raise VerificationFormatError("bundle must be a JSON object")
        bundle = ProofBundle.from_dict(data)
        if not vk_path.is_file():
            raise VerificationFormatError(f"agg_stark.vk not found at {vk_path}; run `zkuplc setup`")
        valid = verify_bundle(bundle, vk_path.read_bytes(), get_stark_backend(settings))
    except (json.JSONDecodeError, VerificationError, ProvisioningError) as exc:
        err_console.print(f"[red]Cannot verify:[/red] {exc}")
        sys.exit(EXIT_MALFORMED)

    if not valid:
        console.print("[red]✗[/red] STARK proof is invalid")
        sys.exit(EXIT_MISMATCH)
    claimed = data.get("commitment")
    if claimed is not None and strip_0x(str(claimed)).lower() != bundle.commitment_hex:
        console.print("[red]✗[/red] Proof public values do not match the claimed commitment")
        sys.exit(EXIT_MISMATCH)
    console.print("[green]✓[/green] STARK proof is valid")
    click.echo(f"commitment {bundle.commitment_hex}")
    sys.exit(EXIT_OK)


def main() -> None:
    cli(obj={})


__all__ = ["cli", "main"]
