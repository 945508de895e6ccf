"""
NetLens CLI - Command-line interface for multi-vendor log analysis.

Commands:
  analyze   - Parse files, run the anomaly rules and optional pattern search
  classify  - Print the detected log type of a file
  scores    - Show each engine's raw and adjusted confidence for a file
  topology  - Infer a topology from many files and export it
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .config import Settings, load_settings
from .detect.anomaly import AnomalyEngine
from .errors import ConfigError, NetLensError
from .graph.topology import TopologyBuilder
from .ingest.arbitrator import Arbitrator, default_registry
from .ingest.batch import FileOutcome, parse_batch
from .ingest.classifier import classify_file
from .models.record import CRITICAL, HIGH, LOW, MEDIUM, Vendor
from .viz.export import D3Exporter, MermaidExporter

_LOGGER = logging.getLogger(__name__)

_VENDORS = [v.value for v in Vendor]
_SEVERITIES = [CRITICAL, HIGH, MEDIUM, LOW]
_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
_LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"


def _session_log(log_dir: Path) -> logging.FileHandler:
    """Open ``netlens_<timestamp>.log`` under ``log_dir``, creating the directory."""
    log_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return logging.FileHandler(log_dir / f"netlens_{stamp}.log", mode="w", encoding="utf-8")


def configure_logging(level: str = "INFO", log_dir: Optional[Path] = None) -> None:
    """
    Send log records to stderr and, with ``log_dir``, to a per-run file.

    stdout is left to command output. An unwritable ``log_dir`` is logged
    and file logging is skipped.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    failure = None
    if log_dir:
        try:
            handlers.append(_session_log(log_dir))
        except OSError as exc:
            failure = exc
    logging.basicConfig(
        level=level.upper(), format=_LOG_FORMAT, datefmt=_LOG_DATEFMT, handlers=handlers, force=True
    )
    if failure is not None:
        _LOGGER.error("File logging disabled under %s: %s", log_dir, failure)
    elif log_dir:
        _LOGGER.info("Logging to file: %s", handlers[-1].baseFilename)


def _arbitrator(settings: Settings) -> Arbitrator:
    registry = default_registry(AnomalyEngine(settings.rules))
    return Arbitrator(
        registry,
        classifier_lines=settings.classifier_lines,
        sample_lines=settings.sample_lines,
    )


def _parse_all(settings: Settings, files, vendor: Optional[str]) -> list[FileOutcome]:
    return parse_batch(
        files,
        arbitrator=_arbitrator(settings),
        max_workers=settings.max_workers,
        vendor=Vendor(vendor) if vendor else None,
    )


def _write(content: str, output: Optional[str]) -> None:
    if output:
        Path(output).write_text(content, encoding="utf-8")
        click.echo(f"Saved to {output}", err=True)
    else:
        click.echo(content)


@click.group()
@click.version_option(version=__version__, prog_name="netlens")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True, dir_okay=False), default=None,
              help="YAML settings file")
@click.option("--log-level", type=click.Choice(_LEVELS, case_sensitive=False), default=None,
              help="Override the configured log level")
@click.option("--log-dir", type=click.Path(file_okay=False), default=None, help="Also log to a file here")
@click.pass_context
def cli(ctx, config_path, log_level, log_dir):
    """NetLens - multi-vendor network log analysis."""
    try:
        settings = load_settings(config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc))
    if log_level:
        settings.log_level = log_level.upper()
    configure_logging(settings.log_level, Path(log_dir) if log_dir else None)
    _LOGGER.debug("Settings: %s", settings)
    ctx.obj = settings


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--vendor", "-v", type=click.Choice(_VENDORS, case_sensitive=False), default=None,
              help="Skip arbitration and use this engine")
@click.option("--search", "-s", "patterns", multiple=True, help="Pattern to search for (repeatable)")
@click.option("--regex", is_flag=True, help="Treat search patterns as regular expressions")
@click.option("--severity", type=click.Choice(_SEVERITIES), default=MEDIUM, help="Severity of search findings")
@click.option("--output", "-o", default=None, help="Write full records as JSON to this file")
@click.pass_obj
def analyze(settings, files, vendor, patterns, regex, severity, output):
    """Parse files, evaluate anomaly rules and report health."""
    outcomes = _parse_all(settings, files, vendor)
    rules = AnomalyEngine(settings.rules)

    records = []
    for outcome in outcomes:
        if not outcome.ok:
            status = "cancelled" if outcome.cancelled else f"error: {outcome.error}"
            click.echo(f"{outcome.path.name}: {status}")
            continue
        record = outcome.record
        if patterns:
            rules.search(record, patterns, use_regex=regex, severity=severity)
        records.append(record)

        click.echo(f"{outcome.path.name}")
        click.echo(f"  Vendor:     {record.vendor.value}")
        click.echo(f"  Log type:   {record.log_type.value}")
        click.echo(f"  Device:     {record.identity}")
        click.echo(f"  Lines:      {record.parsed_lines}/{record.total_lines} parsed, "
                   f"{len(record.parse_errors)} errors")
        click.echo(f"  Interfaces: {len(record.interfaces)}, VLANs: {len(record.vlans)}")
        click.echo(f"  Health:     {record.health_score:.0f}/100")
        for finding in record.findings:
            click.echo(f"    [{finding.severity}] {finding.category}/{finding.subcategory}: "
                       f"{finding.description}")

    if output:
        with open(output, "w") as f:
            json.dump([r.to_dict() for r in records], f, indent=2, default=str)
        click.echo(f"Saved to {output}", err=True)

    if any(not o.ok for o in outcomes):
        sys.exit(1)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def classify(settings, file):
    """Print the detected log type of FILE."""
    click.echo(classify_file(file, settings.classifier_lines).value)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def scores(settings, file):
    """Show engine confidence scores for FILE, best first."""
    try:
        log_type, candidates = _arbitrator(settings).score_candidates(file)
    except NetLensError as exc:
        raise click.ClickException(str(exc))
    click.echo(f"Log type: {log_type.value}")
    for candidate in candidates:
        click.echo(f"  {candidate.engine.vendor.value:<10} adjusted={candidate.adjusted:>3} raw={candidate.raw:>3}")


@cli.command()
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--endpoints/--no-endpoints", default=True, help="Add nodes for unowned addresses")
@click.option("--macs/--no-macs", default=True, help="Add nodes for ARP / DHCP hardware addresses")
@click.option("--collapse", is_flag=True, help="Fold leaf nodes of busy devices into a count")
@click.option("--format", "-f", "fmt", type=click.Choice(["d3", "mermaid"]), default="d3")
@click.option("--output", "-o", default=None, help="Output file (default: stdout)")
@click.pass_obj
def topology(settings, files, endpoints, macs, collapse, fmt, output):
    """Infer a topology across FILES and export it."""
    outcomes = _parse_all(settings, files, None)
    records = [o.record for o in outcomes if o.ok]
    if not records:
        raise click.ClickException("no file could be parsed")

    builder = TopologyBuilder(
        include_endpoints=endpoints,
        include_hardware_addresses=macs,
        collapse_clusters=collapse,
        layout=settings.layout.force_layout(),
        collapse_threshold=settings.layout.collapse_threshold,
    )
    graph = builder.build(records)
    G = graph.to_networkx()
    click.echo(f"Nodes: {G.number_of_nodes()}, Edges: {G.number_of_edges()}", err=True)

    if fmt == "mermaid":
        _write(MermaidExporter.to_mermaid(G, title="NetLens Topology"), output)
    else:
        health = {r.identity: r.health_score for r in records if r.identity}
        _write(json.dumps(D3Exporter.to_d3_json(G, node_scores=health), indent=2, default=str), output)


def main():
    cli()


if __name__ == "__main__":
    main()
