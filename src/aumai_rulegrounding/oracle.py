"""Knowledge-base oracle contract and an in-memory signature-backed oracle.

The validator only ever talks to a knowledge base through
:class:`KnowledgeBaseOracle`. :class:`SignatureOracle` answers from a
:class:`~aumai_rulegrounding.models.KnowledgeBaseSignature` held in memory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from .models import KnowledgeBaseSignature


@runtime_checkable
class KnowledgeBaseOracle(Protocol):
    """Narrow query interface onto a knowledge base.

    ``exists`` answers ``False`` for unknown entities; it raises only when
    the knowledge base itself cannot be queried.
    """

    def exists(self, entity_name: str) -> bool: ...

    def most_specific_type(self, entity_name: str) -> Optional[str]: ...


class SignatureOracle:
    """Answer oracle queries from an in-memory knowledge base signature.

    Example:
        >>> sig = KnowledgeBaseSignature(
        ...     namespace="http://example.org/building",
        ...     individuals=["Room1"],
        ...     types={"Room1": ["Space", "Room"]},
        ...     subclass_of={"Room": ["Space"]},
        ... )
        >>> oracle = SignatureOracle(sig)
        >>> oracle.exists("Room1")
        True
        >>> oracle.most_specific_type("Room1")
        'Room'
    """

    def __init__(self, signature: KnowledgeBaseSignature) -> None:
        self._signature = signature
        self._individuals = frozenset(i.strip() for i in signature.individuals)

    @property
    def signature(self) -> KnowledgeBaseSignature:
        return self._signature

    @property
    def namespace_prefix(self) -> str:
        """The namespace followed by ``#``, or ``""`` without a namespace."""
        if not self._signature.namespace:
            return ""
        return f"{self._signature.namespace}#"

    # ------------------------------------------------------------------
    # KnowledgeBaseOracle
    # ------------------------------------------------------------------

    def exists(self, entity_name: str) -> bool:
        """Return True if *entity_name* names an individual in the signature.

        Both short names (``"Room1"``) and full IRIs in this oracle's
        namespace (``"http://example.org/building#Room1"``) are accepted.
        """
        return self._short_name(entity_name) in self._individuals

    def most_specific_type(self, entity_name: str) -> Optional[str]:
        """Return the most specific asserted class of an individual.

        Returns ``None`` if the individual is not in the signature or has no
        asserted types. When several asserted types are equally specific the
        first one in declaration order wins.
        """
        name = self._short_name(entity_name)
        if name not in self._individuals:
            return None
        asserted = self._signature.types.get(name, [])
        if not asserted:
            return None
        inherited: set[str] = set()
        for cls in asserted:
            inherited |= self._superclasses(cls)
        for cls in asserted:
            if cls not in inherited:
                return cls
        # Cyclic hierarchy: every asserted type is inherited by another.
        return asserted[0]

    # ------------------------------------------------------------------
    # Signature helpers
    # ------------------------------------------------------------------

    def contains_individual(self, name: str) -> bool:
        """Alias of :meth:`exists`."""
        return self.exists(name)

    def individuals(self) -> set[str]:
        """Short names of every individual in the signature."""
        return set(self._individuals)

    def iri(self, resource_name: str) -> str:
        """Return the IRI formed by prefixing the namespace to *resource_name*."""
        return f"{self.namespace_prefix}{resource_name}"

    @classmethod
    def from_json(cls, path: Path) -> "SignatureOracle":
        """Load a signature from a JSON file and wrap it in an oracle."""
        data = path.read_text(encoding="utf-8")
        return cls(KnowledgeBaseSignature.model_validate_json(data))

    def to_json(self, path: Path) -> None:
        """Write the underlying signature to a JSON file."""
        path.write_text(self._signature.model_dump_json(indent=2), encoding="utf-8")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _short_name(self, entity_name: str) -> str:
        name = entity_name.strip()
        prefix = self.namespace_prefix
        if prefix and name.startswith(prefix):
            return name[len(prefix):]
        return name

    def _superclasses(self, cls: str) -> set[str]:
        """All transitive superclasses of *cls*, excluding *cls* itself."""
        found: set[str] = set()
        stack = list(self._signature.subclass_of.get(cls, []))
        while stack:
            parent = stack.pop()
            if parent in found:
                continue
            found.add(parent)
            stack.extend(self._signature.subclass_of.get(parent, []))
        found.discard(cls)
        return found
