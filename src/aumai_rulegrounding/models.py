"""Pydantic v2 models for rule grounding and provenance annotation."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Predicate(BaseModel):
    """A single ``(operand, relation, value)`` statement inside a rule.

    Attributes:
        operand: The entity the predicate is about (its left-hand operand).
        relation: The property or class the operand is constrained by.
        value: Right-hand operand, or ``None`` for class-membership atoms.

    Example:
        >>> Predicate(operand="Room1", relation="hasTemperature", value="21")
        Predicate(operand='Room1', relation='hasTemperature', value='21')
    """

    model_config = ConfigDict(frozen=True)

    operand: str = Field(..., min_length=1)
    relation: str = Field(..., min_length=1)
    value: Optional[str] = None

    @field_validator("operand", "relation", mode="before")
    @classmethod
    def strip_whitespace(cls, value: object) -> object:
        """Strip surrounding whitespace from name fields before the length check."""
        if isinstance(value, str):
            return value.strip()
        return value

    def __str__(self) -> str:
        if self.value is None:
            return f"{self.relation}({self.operand})"
        return f"{self.relation}({self.operand}, {self.value})"


class RuleMetadata(BaseModel):
    """Classification data attached to a candidate rule by its producer.

    The weight is nominally in [0, 1] but is not range-checked here: the
    producer owns that guarantee and annotation copies it verbatim.
    """

    model_config = ConfigDict(frozen=True)

    type: str
    reduction: str
    weight: float


class Rule(BaseModel):
    """A candidate inference rule: condition => conclusion.

    Attributes:
        condition: Predicates that must hold for the rule to fire.
        conclusion: Predicates asserted when the rule fires.
        metadata: Classification and confidence data, if supplied.
    """

    model_config = ConfigDict(frozen=True)

    condition: tuple[Predicate, ...] = ()
    conclusion: tuple[Predicate, ...] = ()
    metadata: Optional[RuleMetadata] = None

    def operands(self) -> list[str]:
        """Distinct operands of the condition then the conclusion, first-seen order."""
        seen: dict[str, None] = {}
        for predicate in (*self.condition, *self.conclusion):
            seen.setdefault(predicate.operand, None)
        return list(seen)

    def __str__(self) -> str:
        condition = " ^ ".join(str(p) for p in self.condition)
        conclusion = " ^ ".join(str(p) for p in self.conclusion)
        return f"{condition} => {conclusion}".strip()


class RuleSet(BaseModel):
    """An ordered collection of candidate rules."""

    rules: list[Rule] = Field(default_factory=list)

    def add_rule(self, rule: Rule) -> None:
        """Append a rule to the set."""
        self.rules.append(rule)


class Annotation(BaseModel):
    """A single provenance fact: an annotation property and its literal."""

    model_config = ConfigDict(frozen=True)

    property: str
    value: Union[int, float, str]


class AnnotationSet(BaseModel):
    """The three provenance facts generated for an accepted rule.

    Attributes:
        id: Session-unique, strictly increasing rule identifier.
        suggestion: ``"<type> <reduction>"`` justification text.
        weight: Confidence weight copied from the rule metadata.

    Example:
        >>> AnnotationSet(id=1, suggestion="Specialization R1->R2", weight=0.75).facts()[0]
        Annotation(property='label', value=1)
    """

    model_config = ConfigDict(frozen=True)

    id: int
    suggestion: str
    weight: float

    def facts(self) -> tuple[Annotation, Annotation, Annotation]:
        """Return the annotation facts in fixed order: id, suggestion, weight."""
        return (
            Annotation(property="label", value=self.id),
            Annotation(property="hasSuggestion", value=self.suggestion),
            Annotation(property="hasWeight", value=self.weight),
        )


class AnnotatedRule(BaseModel):
    """A validated rule together with its provenance annotations."""

    model_config = ConfigDict(frozen=True)

    rule: Rule
    annotations: AnnotationSet


class KnowledgeBaseSignature(BaseModel):
    """The entities, classes and properties currently known to a knowledge base.

    Attributes:
        namespace: Ontology IRI that short entity names are resolved against.
        individuals: Short names of the named individuals.
        classes: Short names of the declared classes.
        properties: Short names of the declared object and data properties.
        types: Individual name -> asserted classes, in declaration order.
        subclass_of: Class name -> direct superclasses.

    Example:
        >>> sig = KnowledgeBaseSignature(
        ...     individuals=["Room1"], classes=["Room", "Space"],
        ...     types={"Room1": ["Space", "Room"]},
        ...     subclass_of={"Room": ["Space"]},
        ... )
    """

    namespace: str = ""
    individuals: list[str] = Field(default_factory=list)
    classes: list[str] = Field(default_factory=list)
    properties: list[str] = Field(default_factory=list)
    types: dict[str, list[str]] = Field(default_factory=dict)
    subclass_of: dict[str, list[str]] = Field(default_factory=dict)

    def add_individual(self, name: str, *types: str) -> None:
        """Declare an individual and, optionally, its asserted types."""
        name = name.strip()
        if name not in self.individuals:
            self.individuals.append(name)
        if types:
            asserted = self.types.setdefault(name, [])
            asserted.extend(t for t in types if t not in asserted)


class IngestionStatus(str, Enum):
    """How a candidate rule left the ingestion pipeline."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    UNCHECKED = "unchecked"


class IngestionOutcome(BaseModel):
    """The result of feeding one rule through the pipeline.

    ``UNCHECKED`` means the knowledge base could not be queried; the rule
    was neither accepted nor rejected.
    """

    rule: Rule
    status: IngestionStatus
    annotations: Optional[AnnotationSet] = None
    unknown_operands: list[str] = Field(default_factory=list)
    error: Optional[str] = None


class IngestionReport(BaseModel):
    """Outcomes of a batch ingestion, in submission order."""

    outcomes: list[IngestionOutcome] = Field(default_factory=list)

    def _with_status(self, status: IngestionStatus) -> list[IngestionOutcome]:
        return [o for o in self.outcomes if o.status is status]

    @property
    def accepted(self) -> list[IngestionOutcome]:
        return self._with_status(IngestionStatus.ACCEPTED)

    @property
    def rejected(self) -> list[IngestionOutcome]:
        return self._with_status(IngestionStatus.REJECTED)

    @property
    def unchecked(self) -> list[IngestionOutcome]:
        return self._with_status(IngestionStatus.UNCHECKED)
