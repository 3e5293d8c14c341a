"""Quickstart examples for aumai-rulegrounding.

Run this file directly to verify your installation and see the library in action:

    python examples/quickstart.py

This file demonstrates:
  1. Describing a knowledge base signature and querying it through an oracle
  2. Checking whether candidate rules are grounded
  3. Annotating accepted rules with ids, suggestions and weights
  4. Running the full ingestion pipeline over rule text
"""

from __future__ import annotations

from aumai_rulegrounding.core import (
    IngestionPipeline,
    InMemoryRuleStore,
    RuleAnnotationGenerator,
    RuleCompiler,
    RuleValidator,
)
from aumai_rulegrounding.models import KnowledgeBaseSignature, Predicate, Rule, RuleMetadata
from aumai_rulegrounding.oracle import SignatureOracle


def make_building_oracle() -> SignatureOracle:
    signature = KnowledgeBaseSignature(namespace="http://example.org/building")
    signature.add_individual("Room1", "Space", "Room")
    signature.add_individual("Heater1", "Heater")
    signature.add_individual("Window1", "Window")
    signature.subclass_of["Room"] = ["Space"]
    return SignatureOracle(signature)


# ---------------------------------------------------------------------------
# Demo 1: Oracle queries
# ---------------------------------------------------------------------------


def demo_oracle() -> None:
    print("=" * 60)
    print("Demo 1: Knowledge base oracle")
    print("=" * 60)

    oracle = make_building_oracle()
    for name in ("Room1", "Heater1", "Unknown42"):
        print(f"  {name:10s} exists={oracle.exists(name)!s:5s} type={oracle.most_specific_type(name)}")
    print(f"  IRI of Room1: {oracle.iri('Room1')}\n")


# ---------------------------------------------------------------------------
# Demo 2: Validation
# ---------------------------------------------------------------------------


def demo_validation() -> None:
    print("=" * 60)
    print("Demo 2: Rule validation")
    print("=" * 60)

    validator = RuleValidator(make_building_oracle())
    grounded = Rule(
        condition=(
            Predicate(operand="Room1", relation="hasTemperature", value="17"),
            Predicate(operand="Window1", relation="isOpen", value="false"),
        ),
        conclusion=(Predicate(operand="Heater1", relation="isOn", value="true"),),
    )
    ungrounded = Rule(
        condition=grounded.condition,
        conclusion=(Predicate(operand="Unknown42", relation="isOn", value="true"),),
    )
    for rule in (grounded, ungrounded):
        print(f"  {rule}")
        print(f"    grounded={validator.is_grounded(rule)} unknown={validator.unknown_operands(rule)}")
    print()


# ---------------------------------------------------------------------------
# Demo 3: Annotation
# ---------------------------------------------------------------------------


def demo_annotation() -> None:
    print("=" * 60)
    print("Demo 3: Rule annotation")
    print("=" * 60)

    generator = RuleAnnotationGenerator(initial_count=5)
    for reduction, weight in (("R1->R2", 0.75), ("R2->R3", 0.4)):
        rule = Rule(metadata=RuleMetadata(type="Specialization", reduction=reduction, weight=weight))
        annotations = generator.annotate(rule)
        for fact in annotations.facts():
            print(f"  {fact.property:14s} {fact.value}")
        print()


# ---------------------------------------------------------------------------
# Demo 4: Ingestion pipeline
# ---------------------------------------------------------------------------


def demo_pipeline() -> None:
    print("=" * 60)
    print("Demo 4: Ingestion pipeline")
    print("=" * 60)

    rules_text = """
% Suggested heating rules
hasTemperature(Room1, 17) ^ isOpen(Window1, false) => isOn(Heater1, true) ; type=Specialization ; reduction=R1->R2 ; weight=0.75
hasTemperature(Room1, 25) => isOn(Heater2, false) ; type=Generalization ; reduction=R4 ; weight=0.6
"""
    rule_set = RuleCompiler().from_text(rules_text)

    store = InMemoryRuleStore()
    pipeline = IngestionPipeline(make_building_oracle(), RuleAnnotationGenerator(), store)
    report = pipeline.ingest_all(rule_set.rules)

    for outcome in report.outcomes:
        print(f"  {outcome.status.value:9s} {outcome.rule}")
    print(f"\nStored {len(store)} annotated rule(s).")


def main() -> None:
    demo_oracle()
    demo_validation()
    demo_annotation()
    demo_pipeline()


if __name__ == "__main__":
    main()
