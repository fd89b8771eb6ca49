"""CLI for the R&D Matching Engine.

Provides command-line interface for ranking funding programs and
collaboration partners for an organization profile.
"""

import json
import logging
import sys
from contextlib import nullcontext
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from .config import find_config_file, load_config, reset_config
from .engine import MatchingEngine, validate_locales, validate_profiles, validate_taxonomy
from .schema import RankingResult, SummaryTier, TargetKind
from .taxonomy import get_taxonomy, load_taxonomy, normalize
from .trl import trl_description

console = Console()
err_console = Console(stderr=True)

TIER_COLORS = {
    SummaryTier.STRONGLY_RECOMMENDED: "green",
    SummaryTier.RECOMMENDED: "cyan",
    SummaryTier.REVIEW_NEEDED: "yellow",
    SummaryTier.REFERENCE_ONLY: "dim",
}


def setup_logging(verbose: bool) -> None:
    """Route package logs through rich on stderr (DEBUG when verbose)."""
    logger = logging.getLogger("rnd_matcher")
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.handlers.clear()
    logger.addHandler(RichHandler(console=err_console, show_time=False, show_path=False))


def prepare_config(config: Optional[str], verbose: bool) -> None:
    """Load the given config file, or the first one found, or defaults."""
    config_path = Path(config) if config else find_config_file()
    if config_path:
        try:
            load_config(config_path)
            if verbose:
                err_console.print(f"Loaded config from: {config_path}")
        except Exception as e:
            err_console.print(f"[yellow]Warning:[/yellow] Could not load config: {e}")
            reset_config()
    else:
        reset_config()


def progress(message: str, quiet: bool):
    """Spinner while scoring; suppressed when stdout carries JSON."""
    return nullcontext() if quiet else console.status(message)


def load_records(path: str) -> list[dict]:
    """Read a JSON file holding one record or a list of records."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, list) else [data]


def load_organization(path: str) -> dict:
    records = load_records(path)
    if len(records) != 1:
        raise click.UsageError(f"{path} must contain exactly one organization, found {len(records)}")
    return records[0]


@click.group()
@click.version_option(version="1.0.0", prog_name="rnd-matcher")
def main():
    """R&D Program and Partner Matching Engine.

    Ranks government R&D funding programs and collaboration partners for
    an organization, with an explainable 0-100 score for every result.
    """
    pass


def common_ranking_options(func):
    """Options shared by the programs and partners commands."""
    options = [
        click.option("--org", "-g", "org_path", required=True, type=click.Path(exists=True),
                     help="Path to the organization profile JSON"),
        click.option("--limit", "-n", type=click.IntRange(min=1), default=None,
                     help="Number of results to return (default: from config)"),
        click.option("--offset", type=click.IntRange(min=0), default=0, help="Number of ranked results to skip"),
        click.option("--min-score", type=click.IntRange(0, 100), default=None,
                     help="Drop results scoring below this (default: from config)"),
        click.option("--reasons", "max_reasons", type=int, default=None,
                     help="Maximum reasons per explanation"),
        click.option("--locale", "-l", default=None, help="Explanation locale (ko, en)"),
        click.option("--config", type=click.Path(exists=True), default=None,
                     help="Path to matcher-config.yaml"),
        click.option("--out", "-o", type=click.Path(), help="Output file for JSON results"),
        click.option("--json-output", "-j", is_flag=True,
                     help="Output raw JSON instead of formatted text"),
        click.option("--verbose", "-v", is_flag=True, help="Show breakdowns and debug logging"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@main.command("programs")
@common_ranking_options
@click.option(
    "--programs", "-p", "programs_path",
    required=True,
    type=click.Path(exists=True),
    help="Path to a JSON list of program announcements"
)
@click.option(
    "--as-of",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Reference date for deadline proximity (default: today)"
)
def programs_cmd(
    org_path: str,
    programs_path: str,
    limit: Optional[int],
    offset: int,
    min_score: Optional[int],
    max_reasons: Optional[int],
    locale: Optional[str],
    config: Optional[str],
    out: Optional[str],
    json_output: bool,
    verbose: bool,
    as_of: Optional[datetime],
):
    """Rank funding programs for an organization.

    Examples:
        rnd-matcher programs -g org.json -p programs.json
        rnd-matcher programs -g org.json -p programs.json -n 5 --locale en -v
    """
    setup_logging(verbose)
    prepare_config(config, verbose)

    try:
        org = load_organization(org_path)
        programs = load_records(programs_path)
        engine = MatchingEngine()

        if not json_output:
            console.print(f"\n[bold blue]R&D Program Matching[/bold blue]")
            console.print(f"Organization: {org_path}")
            console.print(f"Programs: {programs_path} ({len(programs)} records)")
            console.print()

        with progress("Scoring programs...", quiet=json_output):
            result = engine.score_program_matches(
                org,
                programs,
                limit=limit,
                offset=offset,
                max_reasons=max_reasons,
                locale=locale,
                min_score=min_score,
                as_of=as_of.date() if as_of else None,
            )

        emit_result(result, out, json_output, verbose)

    except click.UsageError:
        raise
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


@main.command("partners")
@common_ranking_options
@click.option(
    "--candidates", "-c", "candidates_path",
    required=True,
    type=click.Path(exists=True),
    help="Path to a JSON list of candidate organization profiles"
)
def partners_cmd(
    org_path: str,
    candidates_path: str,
    limit: Optional[int],
    offset: int,
    min_score: Optional[int],
    max_reasons: Optional[int],
    locale: Optional[str],
    config: Optional[str],
    out: Optional[str],
    json_output: bool,
    verbose: bool,
):
    """Rank collaboration partners for an organization.

    Examples:
        rnd-matcher partners -g org.json -c organizations.json
        rnd-matcher partners -g org.json -c organizations.json -n 10 -j
    """
    setup_logging(verbose)
    prepare_config(config, verbose)

    try:
        org = load_organization(org_path)
        candidates = load_records(candidates_path)
        engine = MatchingEngine()

        if not json_output:
            console.print(f"\n[bold blue]R&D Partner Matching[/bold blue]")
            console.print(f"Organization: {org_path}")
            console.print(f"Candidates: {candidates_path} ({len(candidates)} records)")
            console.print()

        with progress("Scoring partner candidates...", quiet=json_output):
            result = engine.score_partner_candidates(
                org,
                candidates,
                limit=limit,
                offset=offset,
                max_reasons=max_reasons,
                locale=locale,
                min_score=min_score,
            )

        emit_result(result, out, json_output, verbose)

    except click.UsageError:
        raise
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def emit_result(result: RankingResult, out: Optional[str], json_output: bool, verbose: bool):
    if json_output:
        output_json(result, out)
    else:
        display_result(result, verbose)
        if out:
            output_json(result, out)
            console.print(f"\n[green]Results saved to {out}[/green]")


@main.command("validate")
@click.option(
    "--taxonomy", "-t",
    type=click.Path(exists=True),
    help="Path to a taxonomy YAML file (default: bundled taxonomy)"
)
@click.option(
    "--locales", "-l",
    type=click.Path(exists=True, file_okay=False),
    help="Directory of locale template files (default: bundled locales)"
)
@click.option(
    "--programs", "-p",
    type=click.Path(),
    help="Also validate a JSON file of programs"
)
@click.option(
    "--organizations", "-g",
    type=click.Path(),
    help="Also validate a JSON file of organization profiles"
)
def validate_cmd(
    taxonomy: Optional[str],
    locales: Optional[str],
    programs: Optional[str],
    organizations: Optional[str],
):
    """Validate taxonomy data, explanation templates and profile files.

    Examples:
        rnd-matcher validate
        rnd-matcher validate -t my-taxonomy.yaml -l ./locales
        rnd-matcher validate -p programs.json -g organizations.json
    """
    checks = [
        (f"Taxonomy: {taxonomy or 'bundled'}", validate_taxonomy(taxonomy)),
        (f"Locales: {locales or 'bundled'}", validate_locales(locales)),
    ]
    if programs:
        checks.append((f"Programs: {programs}", validate_profiles(programs, TargetKind.PROGRAM)))
    if organizations:
        checks.append((f"Organizations: {organizations}", validate_profiles(organizations, TargetKind.PARTNER)))

    all_valid = True
    for label, (is_valid, issues) in checks:
        if is_valid:
            console.print(f"[green]✓ {label} valid[/green]")
        else:
            console.print(f"[red]✗ {label} invalid[/red]")
            for issue in issues:
                console.print(f"  - {issue}")
            all_valid = False

    sys.exit(0 if all_valid else 1)


@main.command("inspect-taxonomy")
@click.option(
    "--taxonomy", "-t",
    type=click.Path(exists=True),
    help="Path to a taxonomy YAML file (default: bundled taxonomy)"
)
@click.option("--sector", "-s", "sector_id", help="Show details for a sector ID")
@click.option("--keyword", "-k", help="Resolve a keyword to its sector")
def inspect_taxonomy_cmd(taxonomy: Optional[str], sector_id: Optional[str], keyword: Optional[str]):
    """Inspect the industry taxonomy.

    Examples:
        rnd-matcher inspect-taxonomy
        rnd-matcher inspect-taxonomy --sector ICT
        rnd-matcher inspect-taxonomy --keyword "인공 지능"
    """
    try:
        tax = load_taxonomy(Path(taxonomy)) if taxonomy else get_taxonomy()

        console.print(f"\n[bold blue]Industry Taxonomy[/bold blue]")
        console.print(f"Version: {tax.version}")
        console.print(f"Sectors: {len(tax.sector_ids)}")
        console.print()

        if keyword:
            display_keyword_resolution(tax, keyword)
        elif sector_id:
            sector = tax.sector(sector_id.upper())
            if sector is None:
                console.print(f"[red]Sector not found: {sector_id}[/red]")
                sys.exit(1)
            display_sector_detail(tax, sector_id.upper())
        else:
            table = Table(show_header=True, header_style="bold")
            table.add_column("ID", style="cyan", no_wrap=True)
            table.add_column("Name")
            table.add_column("Sub-sectors")
            table.add_column("Keywords", justify="right")

            for sid in tax.sector_ids:
                sector = tax.sector(sid)
                subs = ", ".join(sector.sub_sectors)
                table.add_row(
                    sid,
                    f"{sector.name} ({sector.name_en})" if sector.name_en else sector.name,
                    subs[:50] + ("..." if len(subs) > 50 else ""),
                    str(len(tax.keywords_for_sector(sid))),
                )

            console.print(table)

    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def display_result(result: RankingResult, verbose: bool):
    """Display a ranking result in formatted text."""
    title = "Program Matches" if result.kind == TargetKind.PROGRAM else "Partner Matches"

    console.print(Panel(
        f"[bold]{result.organization_id}[/bold]\n\n"
        f"Candidates: {result.total_candidates} | Scored: {result.scored_count} | "
        f"Failed: {len(result.failures)}"
        + (f" | Below min score: {result.below_min_score}" if result.min_score is not None else "")
        + "\n"
        f"Showing: {len(result.results)} from offset {result.offset}"
        + (" [dim](cached)[/dim]" if result.cached else ""),
        title=title,
    ))

    if result.no_eligible_matches:
        console.print(f"\n[yellow]{result.message}[/yellow]")

    if result.results:
        table = Table(show_header=True, header_style="bold")
        table.add_column("#", justify="right")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Name")
        table.add_column("Score", justify="right")
        table.add_column("Tier")

        for i, item in enumerate(result.results, result.offset + 1):
            tier = item.explanation.tier if item.explanation else None
            color = TIER_COLORS.get(tier, "white")
            table.add_row(
                str(i),
                item.target_id[:30],
                item.target_name[:40],
                f"[bold]{item.score}[/bold]",
                f"[{color}]{tier.value if tier else '-'}[/{color}]",
            )
        console.print()
        console.print(table)

        if verbose:
            console.print()
            for item in result.results:
                display_score_detail(item)

    if result.failures:
        console.print("\n[dim]Skipped candidates:[/dim]")
        for failure in result.failures[:10]:
            console.print(f"  [dim]• {failure.candidate_id or '(no id)'}: {failure.error}[/dim]")
        if len(result.failures) > 10:
            console.print(f"  [dim]... and {len(result.failures) - 10} more[/dim]")


def display_score_detail(item):
    """Display breakdown and explanation for one scored candidate."""
    tree = Tree(f"[bold cyan]{item.target_name or item.target_id}[/bold cyan] [bold]{item.score}[/bold]")

    breakdown = tree.add("[bold]Breakdown[/bold]")
    for name, points in item.breakdown.model_dump().items():
        breakdown.add(f"{name}: {points}")

    if item.explanation:
        exp = item.explanation
        tree.add(f"[bold]Summary[/bold]: {exp.summary}")
        if exp.reasons:
            reasons = tree.add("[bold]Reasons[/bold]")
            for reason in exp.reasons:
                reasons.add(f"[green]•[/green] {reason}")
        if exp.warnings:
            warnings = tree.add("[bold]Warnings[/bold]")
            for warning in exp.warnings:
                warnings.add(f"[yellow]•[/yellow] {warning}")
        if exp.recommendations:
            recommendations = tree.add("[bold]Recommendations[/bold]")
            for rec in exp.recommendations:
                recommendations.add(f"[cyan]•[/cyan] {rec}")

    console.print(tree)
    console.print()


def display_sector_detail(tax, sector_id: str):
    """Display one sector with keywords, sub-sectors and relevance."""
    sector = tax.sector(sector_id)
    tree = Tree(f"[bold cyan]{sector_id}[/bold cyan] {sector.name}")

    tree.add(f"English name: {sector.name_en or '-'}")
    tree.add(f"Keywords: {', '.join(sector.keywords)}")

    if sector.sub_sectors:
        subs = tree.add("[bold]Sub-sectors[/bold]")
        for sub_id, sub in sector.sub_sectors.items():
            subs.add(f"{sub_id} ({sub.name}): {', '.join(sub.keywords)}")

    related = sorted(
        ((tax.relevance(sector_id, other), other) for other in tax.sector_ids if other != sector_id),
        reverse=True,
    )
    relevance = tree.add("[bold]Relevance[/bold]")
    for value, other in related:
        relevance.add(f"{other}: {value:.1f}")

    console.print(tree)


def display_keyword_resolution(tax, keyword: str):
    """Show how a keyword resolves through the taxonomy."""
    sector_id = tax.find_sector(keyword)
    sub = tax.find_sub_sector(keyword)
    domains = tax.match_technology_domains(keyword)

    tree = Tree(f"[bold]{keyword}[/bold] → [cyan]{normalize(keyword)}[/cyan]")
    tree.add(f"Sector: {sector_id + ' (' + tax.sector_name(sector_id) + ')' if sector_id else '-'}")
    tree.add(f"Sub-sector: {sub[0] + '/' + sub[1] if sub else '-'}")
    tree.add(f"Technology domains: {', '.join(sorted(domains)) or '-'}")
    console.print(tree)


def output_json(result: RankingResult, out_path: Optional[str]):
    """Output result as JSON."""
    json_str = result.model_dump_json(indent=2)

    if out_path:
        with open(out_path, "w", encoding="utf-8") as f:
            f.write(json_str)
    else:
        print(json_str)


@main.command("trl")
@click.argument("level", type=click.IntRange(1, 9))
@click.option("--locale", "-l", default="ko", help="Description locale (ko, en)")
def trl_cmd(level: int, locale: str):
    """Describe a Technology Readiness Level (1-9)."""
    console.print(trl_description(level, locale))


@main.command("init-config")
@click.option(
    "--out", "-o",
    type=click.Path(),
    default="matcher-config.yaml",
    help="Output path for the configuration file"
)
@click.option(
    "--force", "-f",
    is_flag=True,
    help="Overwrite existing config file"
)
def init_config_cmd(out: str, force: bool):
    """Generate a default matcher configuration file.

    Creates a YAML configuration file with all available settings
    for explanation tiers, candidate limits and caching.

    Example:
        rnd-matcher init-config --out my-config.yaml
    """
    from .config import save_default_config

    out_path = Path(out)
    if out_path.exists() and not force:
        console.print(f"[red]Error:[/red] Config file already exists: {out}")
        console.print("Use --force to overwrite")
        sys.exit(1)

    try:
        save_default_config(out_path)
        console.print(f"[green]✓[/green] Config file created: {out}")
        console.print("\nThis file configures:")
        console.print("  • explanation - Locale and summary tier thresholds")
        console.print("  • assembly - Candidate ceiling, pre-filter, workers and timeout")
        console.print("  • cache - Result cache TTL and size")
        console.print("  • taxonomy_path - Custom taxonomy file")
        console.print("\nThe matcher will look for config in this order:")
        console.print("  1. RND_MATCHER_CONFIG environment variable")
        console.print("  2. ./matcher-config.yaml (current directory)")
        console.print("  3. ~/.config/rnd-matcher/config.yaml")
    except Exception as e:
        console.print(f"[red]Error creating config:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
