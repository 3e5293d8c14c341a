"""CLI entry point for aumai-rulegrounding.

Commands:
    compile -- convert rule text to a JSON rule set
    check   -- report which rules are grounded in a knowledge base
    ingest  -- validate, annotate and collect grounded rules
    lookup  -- show whether an individual exists and its most specific type
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError

from .config import Settings, get_settings
from .core import IngestionPipeline, InMemoryRuleStore, RuleAnnotationGenerator, RuleCompiler, RuleValidator
from .errors import InvalidMetadataError, OracleUnavailableError, RuleSyntaxError
from .models import RuleSet
from .oracle import SignatureOracle

logger = logging.getLogger(__name__)


def _load_oracle(kb_path: Path) -> SignatureOracle:
    try:
        return SignatureOracle.from_json(kb_path)
    except (OSError, ValidationError) as exc:
        click.echo(f"ERROR loading knowledge base: {exc}", err=True)
        sys.exit(1)


def _load_rules(rules_path: Path) -> RuleSet:
    """Read a JSON rule set, or compile rule text for any other suffix."""
    compiler = RuleCompiler()
    try:
        if rules_path.suffix.lower() == ".json":
            rule_set = compiler.from_json(rules_path)
        else:
            rule_set = compiler.from_text(rules_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        click.echo(f"ERROR loading rules: {exc}", err=True)
        sys.exit(1)
    logger.debug("Loaded %d rule(s) from %s", len(rule_set.rules), rules_path)
    return rule_set


@click.group()
@click.version_option(package_name="aumai-rulegrounding")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"], case_sensitive=False),
    help="Logging level. Defaults to AUMAI_RULEGROUNDING_LOG_LEVEL or WARNING.",
)
@click.pass_context
def main(ctx: click.Context, log_level: Optional[str]) -> None:
    """AumAI RuleGrounding -- validate and annotate rules against a knowledge base."""
    try:
        settings = get_settings()
    except ValidationError as exc:
        click.echo(f"ERROR loading settings: {exc}", err=True)
        sys.exit(1)
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = settings


@main.command("compile")
@click.option(
    "--input",
    "input_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to a rule text file.",
)
@click.option(
    "--output",
    "output_path",
    default=None,
    type=click.Path(path_type=Path),
    help="Destination JSON path. Defaults to <input>.json.",
)
def compile_command(input_path: Path, output_path: Path | None) -> None:
    """Compile a rule text file to a JSON rule set.

    Example:

        aumai-rulegrounding compile --input rules.txt --output rules.json
    """
    compiler = RuleCompiler()
    try:
        rule_set = compiler.from_text(input_path.read_text(encoding="utf-8"))
    except RuleSyntaxError as exc:
        click.echo(f"ERROR compiling rules: {exc}", err=True)
        sys.exit(1)

    dest = output_path or input_path.with_suffix(".json")
    compiler.to_json(rule_set, dest)

    click.echo(f"Compiled {len(rule_set.rules)} rule(s) to {dest}")


@main.command("check")
@click.option(
    "--kb",
    "kb_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to a JSON knowledge base signature.",
)
@click.option(
    "--rules",
    "rules_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to a JSON rule set or a rule text file.",
)
def check_command(kb_path: Path, rules_path: Path) -> None:
    """Report, for every rule in RULES, whether it is grounded in KB.

    Example:

        aumai-rulegrounding check --kb kb.json --rules rules.json
    """
    validator = RuleValidator(_load_oracle(kb_path))
    rule_set = _load_rules(rules_path)

    for number, rule in enumerate(rule_set.rules, start=1):
        try:
            unknown = validator.unknown_operands(rule)
        except OracleUnavailableError as exc:
            click.echo(f"[{number}] UNCHECKED: {rule}  ({exc})")
            continue
        if unknown:
            click.echo(f"[{number}] REJECTED: {rule}  (unknown: {', '.join(unknown)})")
        else:
            click.echo(f"[{number}] GROUNDED: {rule}")


@main.command("ingest")
@click.option(
    "--kb",
    "kb_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to a JSON knowledge base signature.",
)
@click.option(
    "--rules",
    "rules_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to a JSON rule set or a rule text file.",
)
@click.option(
    "--start-id",
    default=None,
    type=int,
    help="Counter start value; the first accepted rule gets START_ID + 1.",
)
@click.option(
    "--output",
    "output_path",
    default=None,
    type=click.Path(path_type=Path),
    help="Write the annotated rules to this JSON file.",
)
@click.pass_obj
def ingest_command(
    settings: Settings,
    kb_path: Path,
    rules_path: Path,
    start_id: Optional[int],
    output_path: Optional[Path],
) -> None:
    """Validate and annotate every rule in RULES against KB.

    Exits with status 1 if any rule could not be checked, or if a grounded
    rule carries no metadata to annotate.

    Example:

        aumai-rulegrounding ingest --kb kb.json --rules rules.txt --output accepted.json
    """
    oracle = _load_oracle(kb_path)
    rule_set = _load_rules(rules_path)

    initial = settings.initial_rule_id if start_id is None else start_id
    store = InMemoryRuleStore()
    pipeline = IngestionPipeline(
        oracle,
        RuleAnnotationGenerator(initial),
        store,
        oracle_retries=settings.oracle_retries,
    )
    try:
        report = pipeline.ingest_all(rule_set.rules)
    except InvalidMetadataError as exc:
        click.echo(f"ERROR ingesting rules: {exc}", err=True)
        sys.exit(1)

    for outcome in report.outcomes:
        if outcome.annotations is not None:
            annotations = outcome.annotations
            click.echo(
                f"#{annotations.id} {annotations.suggestion} "
                f"(weight={annotations.weight}): {outcome.rule}"
            )
        elif outcome.unknown_operands:
            click.echo(f"REJECTED: {outcome.rule}  (unknown: {', '.join(outcome.unknown_operands)})")
        else:
            click.echo(f"UNCHECKED: {outcome.rule}  ({outcome.error})")

    if output_path is not None:
        payload = [annotated.model_dump(mode="json") for annotated in store.rules]
        output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    click.echo(
        f"Accepted {len(report.accepted)}, rejected {len(report.rejected)}, "
        f"unchecked {len(report.unchecked)} rule(s)"
    )
    if report.unchecked:
        sys.exit(1)


@main.command("lookup")
@click.option(
    "--kb",
    "kb_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Path to a JSON knowledge base signature.",
)
@click.argument("name")
def lookup_command(kb_path: Path, name: str) -> None:
    """Show whether NAME is a known individual and its most specific type.

    Example:

        aumai-rulegrounding lookup --kb kb.json Room1
    """
    oracle = _load_oracle(kb_path)
    if not oracle.exists(name):
        click.echo(f"{name}: unknown")
        return
    cls = oracle.most_specific_type(name)
    click.echo(f"{name}: {cls if cls is not None else '(untyped)'}")


if __name__ == "__main__":
    main()
