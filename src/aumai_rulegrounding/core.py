"""Core rule grounding and annotation engine.

Provides:
- PredicateIndex: groups a rule's predicates by their left-hand operand.
- RuleValidator: checks that every operand of a rule is known to the oracle.
- RuleAnnotationGenerator: numbers accepted rules and derives their provenance.
- IngestionPipeline: validate -> annotate -> hand off to a KnowledgeBaseWriter.
- RuleCompiler: parse/serialise rule text.
"""

from __future__ import annotations

import json
import logging
import re
import threading
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Optional, Protocol

from .errors import InvalidMetadataError, OracleUnavailableError, RuleSyntaxError
from .models import (
    AnnotatedRule,
    AnnotationSet,
    IngestionOutcome,
    IngestionReport,
    IngestionStatus,
    Predicate,
    Rule,
    RuleMetadata,
    RuleSet,
)
from .oracle import KnowledgeBaseOracle

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# PredicateIndex
# ---------------------------------------------------------------------------


class PredicateIndex:
    """Predicates grouped by operand, groups kept in first-seen order.

    Each predicate belongs to exactly the group of its own operand. The index
    is built once and never mutated afterwards.

    Example:
        >>> index = group_by_operand([
        ...     Predicate(operand="Room1", relation="Room"),
        ...     Predicate(operand="Heater1", relation="isOn", value="true"),
        ...     Predicate(operand="Room1", relation="hasTemperature", value="21"),
        ... ])
        >>> index.operands()
        ['Room1', 'Heater1']
        >>> len(index["Room1"])
        2
    """

    __slots__ = ("_groups",)

    def __init__(self, predicates: Iterable[Predicate] = ()) -> None:
        groups: dict[str, list[Predicate]] = {}
        for predicate in predicates:
            groups.setdefault(predicate.operand, []).append(predicate)
        self._groups: Mapping[str, tuple[Predicate, ...]] = MappingProxyType(
            {operand: tuple(members) for operand, members in groups.items()}
        )

    def groups(self) -> Mapping[str, tuple[Predicate, ...]]:
        """Read-only operand -> predicates view, in first-seen operand order."""
        return self._groups

    def operands(self) -> list[str]:
        """Group keys in first-seen order."""
        return list(self._groups)

    def __getitem__(self, operand: str) -> tuple[Predicate, ...]:
        return self._groups[operand]

    def __contains__(self, operand: object) -> bool:
        return operand in self._groups

    def __iter__(self) -> Iterator[str]:
        return iter(self._groups)

    def __len__(self) -> int:
        return len(self._groups)

    def __repr__(self) -> str:
        return f"PredicateIndex({dict(self._groups)!r})"


def group_by_operand(predicates: Iterable[Predicate]) -> PredicateIndex:
    """Group *predicates* by their left-hand operand."""
    return PredicateIndex(predicates)


# ---------------------------------------------------------------------------
# RuleValidator
# ---------------------------------------------------------------------------


class RuleValidator:
    """Decide whether a rule only references entities known to the oracle.

    A rule is grounded iff every operand in its condition and its conclusion
    exists. An empty side has nothing to check. The oracle is asked at most
    once per distinct operand per call; nothing is remembered between calls.

    Oracle failures raise :class:`OracleUnavailableError` and are never
    reported as a rejection.

    Example:
        >>> from aumai_rulegrounding.models import KnowledgeBaseSignature
        >>> from aumai_rulegrounding.oracle import SignatureOracle
        >>> oracle = SignatureOracle(KnowledgeBaseSignature(individuals=["Room1"]))
        >>> rule = Rule(condition=(Predicate(operand="Room1", relation="Room"),))
        >>> RuleValidator(oracle).is_grounded(rule)
        True
    """

    def __init__(self, oracle: KnowledgeBaseOracle) -> None:
        self._oracle = oracle

    @property
    def oracle(self) -> KnowledgeBaseOracle:
        return self._oracle

    def is_grounded(self, rule: Rule) -> bool:
        """Return True if every operand of *rule* exists in the knowledge base.

        Stops at the first unknown operand.

        Raises:
            OracleUnavailableError: if the oracle could not answer.
        """
        return next(self._unknown(rule), None) is None

    def unknown_operands(self, rule: Rule) -> list[str]:
        """Return every operand of *rule* that the oracle does not know.

        Operands are listed in first-seen order, condition before conclusion.

        Raises:
            OracleUnavailableError: if the oracle could not answer.
        """
        return list(self._unknown(rule))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _unknown(self, rule: Rule) -> Iterator[str]:
        condition = group_by_operand(rule.condition)
        conclusion = group_by_operand(rule.conclusion)
        checked: set[str] = set()
        for index in (condition, conclusion):
            for operand in index:
                if operand in checked:
                    continue
                checked.add(operand)
                if not self._exists(operand):
                    yield operand

    def _exists(self, operand: str) -> bool:
        try:
            answer = self._oracle.exists(operand)
        except OracleUnavailableError:
            raise
        except Exception as exc:
            raise OracleUnavailableError(
                f"knowledge base query for {operand!r} failed: {exc}"
            ) from exc
        if not isinstance(answer, bool):
            raise OracleUnavailableError(
                f"knowledge base returned a malformed answer for {operand!r}: {answer!r}"
            )
        return answer


def is_grounded(rule: Rule, oracle: KnowledgeBaseOracle) -> bool:
    """Return True if every operand of *rule* exists according to *oracle*."""
    return RuleValidator(oracle).is_grounded(rule)


# ---------------------------------------------------------------------------
# RuleAnnotationGenerator
# ---------------------------------------------------------------------------


class RuleAnnotationGenerator:
    """Produce the id, suggestion and weight annotations for accepted rules.

    Ids come from a counter owned by this instance: the first id is
    ``initial_count + 1`` and each annotated rule consumes exactly one id.
    Increments are serialised, so concurrent callers never share an id.
    The caller is responsible for validating rules before annotating them.

    Example:
        >>> generator = RuleAnnotationGenerator()
        >>> rule = Rule(metadata=RuleMetadata(
        ...     type="Specialization", reduction="R1->R2", weight=0.75))
        >>> generator.annotate(rule)
        AnnotationSet(id=1, suggestion='Specialization R1->R2', weight=0.75)
    """

    def __init__(self, initial_count: int = 0) -> None:
        self._rule_counter = initial_count
        self._lock = threading.Lock()

    def annotate(self, rule: Rule) -> AnnotationSet:
        """Number *rule* and derive its provenance annotations.

        Raises:
            InvalidMetadataError: if the rule carries no metadata. No id is
                consumed in that case.
        """
        metadata = rule.metadata
        if metadata is None:
            raise InvalidMetadataError(f"rule has no metadata to annotate: {rule}")
        return AnnotationSet(
            id=self.increment_rule_id(),
            suggestion=self._suggestion_text(metadata),
            weight=metadata.weight,
        )

    def increment_rule_id(self) -> int:
        """Advance the counter and return the new id."""
        with self._lock:
            self._rule_counter += 1
            return self._rule_counter

    @staticmethod
    def _suggestion_text(metadata: RuleMetadata) -> str:
        return f"{metadata.type} {metadata.reduction}"


# ---------------------------------------------------------------------------
# Persistence hand-off
# ---------------------------------------------------------------------------


class KnowledgeBaseWriter(Protocol):
    """Receives annotated rules for storage in the knowledge base."""

    def add_rule(self, annotated: AnnotatedRule) -> None: ...


class InMemoryRuleStore:
    """A :class:`KnowledgeBaseWriter` that keeps annotated rules in a list."""

    def __init__(self) -> None:
        self._rules: list[AnnotatedRule] = []
        self._lock = threading.Lock()

    @property
    def rules(self) -> list[AnnotatedRule]:
        with self._lock:
            return list(self._rules)

    def add_rule(self, annotated: AnnotatedRule) -> None:
        with self._lock:
            self._rules.append(annotated)

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)


# ---------------------------------------------------------------------------
# IngestionPipeline
# ---------------------------------------------------------------------------


class IngestionPipeline:
    """Feed candidate rules through validation, annotation and storage.

    Rejected rules are reported, never stored, and consume no id. When the
    oracle is unavailable the validation is retried ``oracle_retries`` more
    times before the error is raised.

    Example:
        >>> from aumai_rulegrounding.models import KnowledgeBaseSignature
        >>> from aumai_rulegrounding.oracle import SignatureOracle
        >>> oracle = SignatureOracle(KnowledgeBaseSignature(individuals=["Room1"]))
        >>> pipeline = IngestionPipeline(oracle, RuleAnnotationGenerator(), InMemoryRuleStore())
        >>> rule = Rule(
        ...     condition=(Predicate(operand="Room1", relation="Room"),),
        ...     metadata=RuleMetadata(type="Specialization", reduction="R1->R2", weight=0.5),
        ... )
        >>> pipeline.ingest(rule).status
        <IngestionStatus.ACCEPTED: 'accepted'>
    """

    def __init__(
        self,
        oracle: KnowledgeBaseOracle,
        generator: RuleAnnotationGenerator,
        writer: KnowledgeBaseWriter,
        oracle_retries: int = 0,
    ) -> None:
        if oracle_retries < 0:
            raise ValueError("oracle_retries must be >= 0")
        self._validator = RuleValidator(oracle)
        self._generator = generator
        self._writer = writer
        self._oracle_retries = oracle_retries

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def ingest(self, rule: Rule) -> IngestionOutcome:
        """Validate *rule*, and annotate and store it if it is grounded.

        Raises:
            OracleUnavailableError: if the oracle stays unavailable after all
                retries.
            InvalidMetadataError: if a grounded rule carries no metadata.
        """
        unknown = self._validate(rule)
        if unknown:
            logger.info("Rejected rule %s: unknown entities %s", rule, unknown)
            return IngestionOutcome(
                rule=rule, status=IngestionStatus.REJECTED, unknown_operands=unknown
            )

        annotations = self._generator.annotate(rule)
        self._writer.add_rule(AnnotatedRule(rule=rule, annotations=annotations))
        logger.debug("Accepted rule %s as #%d", rule, annotations.id)
        return IngestionOutcome(
            rule=rule, status=IngestionStatus.ACCEPTED, annotations=annotations
        )

    def ingest_all(self, rules: Iterable[Rule]) -> IngestionReport:
        """Ingest every rule, recording oracle failures as UNCHECKED outcomes."""
        report = IngestionReport()
        for rule in rules:
            try:
                outcome = self.ingest(rule)
            except OracleUnavailableError as exc:
                logger.error("Could not validate rule %s: %s", rule, exc)
                outcome = IngestionOutcome(
                    rule=rule, status=IngestionStatus.UNCHECKED, error=str(exc)
                )
            report.outcomes.append(outcome)
        logger.info(
            "Ingested %d rule(s): %d accepted, %d rejected, %d unchecked",
            len(report.outcomes),
            len(report.accepted),
            len(report.rejected),
            len(report.unchecked),
        )
        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _validate(self, rule: Rule) -> list[str]:
        attempt = 0
        while True:
            try:
                return self._validator.unknown_operands(rule)
            except OracleUnavailableError as exc:
                if attempt >= self._oracle_retries:
                    raise
                attempt += 1
                logger.warning(
                    "Knowledge base unavailable (%s), retry %d/%d",
                    exc,
                    attempt,
                    self._oracle_retries,
                )


# ---------------------------------------------------------------------------
# RuleCompiler
# ---------------------------------------------------------------------------


class RuleCompiler:
    """Parse and serialise rule text.

    Rule syntax (one per line):
        cond1 ^ cond2 => concl1 ; type=T ; reduction=R ; weight=0.8
        % comment                # ignored

    Atoms are ``relation(operand)`` or ``relation(operand, value)``.
    Metadata is attached only when type, reduction and weight are all given.

    Example:
        >>> compiler = RuleCompiler()
        >>> rules = compiler.from_text(
        ...     "Room(Room1) => isOn(Heater1, true) ; type=Specialization ;"
        ...     " reduction=R1->R2 ; weight=0.75")
        >>> rules.rules[0].metadata.weight
        0.75
    """

    _RULE_PATTERN = re.compile(r"^(?P<condition>.*?)\s*=>\s*(?P<conclusion>[^;]*?)\s*(?:;(?P<meta>.*))?$")
    _ATOM_PATTERN = re.compile(r"^([\w:.\-]+)\s*\(([^()]*)\)$")
    _METADATA_KEYS = ("type", "reduction", "weight")

    def _split_atoms(self, side_raw: str) -> list[str]:
        """Split one side of a rule into atoms on ``^`` or ``,`` outside parentheses.

        Keeps ``hasTemperature(Room1, 21)`` in one piece while separating
        ``Room(Room1) ^ isOpen(Window1, true)`` into two atoms.

        Args:
            side_raw: Condition or conclusion text of one rule line.

        Returns:
            Atom strings with surrounding whitespace stripped.
        """
        parts: list[str] = []
        depth = 0
        current: list[str] = []
        for char in side_raw:
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
            elif char in "^," and depth == 0:
                parts.append("".join(current).strip())
                current = []
                continue
            current.append(char)
        if current:
            parts.append("".join(current).strip())
        return [p for p in parts if p]

    def _parse_atom(self, atom: str, line_number: int) -> Predicate:
        match = self._ATOM_PATTERN.match(atom)
        if not match:
            raise RuleSyntaxError(f"malformed atom {atom!r}", line_number)
        args = [a.strip() for a in match.group(2).split(",")]
        if not args[0] or len(args) > 2 or (len(args) == 2 and not args[1]):
            raise RuleSyntaxError(
                f"atom {atom!r} needs one operand and at most one value", line_number
            )
        value = args[1] if len(args) == 2 else None
        return Predicate(operand=args[0], relation=match.group(1), value=value)

    def _parse_metadata(self, meta_raw: str, line_number: int) -> Optional[RuleMetadata]:
        fields: dict[str, str] = {}
        for item in meta_raw.split(";"):
            item = item.strip()
            if not item:
                continue
            key, sep, value = item.partition("=")
            key = key.strip()
            if not sep or key not in self._METADATA_KEYS:
                raise RuleSyntaxError(f"unknown metadata entry {item!r}", line_number)
            fields[key] = value.strip()
        if not all(k in fields for k in self._METADATA_KEYS):
            return None
        try:
            weight = float(fields["weight"])
        except ValueError:
            raise RuleSyntaxError(
                f"weight is not a number: {fields['weight']!r}", line_number
            ) from None
        return RuleMetadata(type=fields["type"], reduction=fields["reduction"], weight=weight)

    def from_text(self, text: str) -> RuleSet:
        """Parse rule text into a RuleSet.

        Args:
            text: Multi-line rule text.

        Returns:
            RuleSet with one rule per non-comment line.

        Raises:
            RuleSyntaxError: on the first line that cannot be parsed.
        """
        rules: list[Rule] = []
        for line_number, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line or line.startswith("%"):
                continue

            match = self._RULE_PATTERN.match(line)
            if not match:
                raise RuleSyntaxError("expected 'condition => conclusion'", line_number)

            condition = tuple(
                self._parse_atom(a, line_number)
                for a in self._split_atoms(match.group("condition"))
            )
            conclusion = tuple(
                self._parse_atom(a, line_number)
                for a in self._split_atoms(match.group("conclusion"))
            )
            metadata = None
            if match.group("meta"):
                metadata = self._parse_metadata(match.group("meta"), line_number)
            rules.append(Rule(condition=condition, conclusion=conclusion, metadata=metadata))

        return RuleSet(rules=rules)

    def from_json(self, path: Path) -> RuleSet:
        """Load a RuleSet from a JSON file.

        Args:
            path: Path to a JSON file containing a serialised RuleSet.

        Returns:
            Deserialised RuleSet.
        """
        data = json.loads(path.read_text(encoding="utf-8"))
        return RuleSet.model_validate(data)

    def to_text(self, rule_set: RuleSet) -> str:
        """Serialise a RuleSet to rule text.

        Metadata ``type`` and ``reduction`` values must survive a trip
        through :meth:`from_text`: no ``;``, no line breaks and no
        surrounding whitespace.

        Args:
            rule_set: The rules to serialise.

        Returns:
            One rule per line.

        Raises:
            RuleSyntaxError: if a metadata value cannot be written as rule text.
        """
        lines: list[str] = []
        for rule in rule_set.rules:
            condition = " ^ ".join(str(p) for p in rule.condition)
            conclusion = " ^ ".join(str(p) for p in rule.conclusion)
            line = f"{condition} => {conclusion}".strip()
            if rule.metadata is not None:
                meta = rule.metadata
                for key, value in (("type", meta.type), ("reduction", meta.reduction)):
                    self._check_metadata_text(key, value)
                line += f" ; type={meta.type} ; reduction={meta.reduction} ; weight={meta.weight}"
            lines.append(line)
        return "\n".join(lines)

    def to_json(self, rule_set: RuleSet, path: Path) -> None:
        """Serialise a RuleSet to a JSON file.

        Args:
            rule_set: The rules to serialise.
            path: Destination file path.
        """
        path.write_text(rule_set.model_dump_json(indent=2), encoding="utf-8")

    @staticmethod
    def _check_metadata_text(key: str, value: str) -> None:
        if ";" in value or "\n" in value or "\r" in value or value != value.strip():
            raise RuleSyntaxError(f"metadata {key} {value!r} cannot be written as rule text")
