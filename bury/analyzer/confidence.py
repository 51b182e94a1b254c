"""Confidence labels for dead-code candidates.

Rules are evaluated from weakest to strongest evidence; the first that
applies wins. Every rule looks only at the candidate's own name, class and
file, so changing one reference never relabels unrelated findings.
"""
from typing import Dict, List, Optional, Tuple

from .graph_builder import CallGraph, ResolvedReference
from .model import Confidence, DeadCodeFinding, Definition, DefinitionKind, SpeculativeReach
from .reachability import Reachability


class ConfidenceClassifier:
    """Attach a confidence label and reason to each dead Definition."""

    def __init__(self, graph: CallGraph, reachability: Reachability):
        self.graph = graph
        self.reachability = reachability
        self._unresolved_by_name: Dict[str, ResolvedReference] = {}
        for source in sorted(graph.unresolved):
            for resolution in graph.unresolved[source]:
                self._unresolved_by_name.setdefault(resolution.reference.name, resolution)

    def classify(self, identifier: str) -> Tuple[Confidence, str]:
        """Label one dead Definition.

        Returns:
            (confidence, human-readable reason)
        """
        definition = self.graph.definitions[identifier]

        trigger = self._unresolved_by_name.get(definition.name)
        if trigger is not None:
            ref = trigger.reference
            where = "unreachable code" if not self.reachability.is_reachable(trigger.source) else "code"
            return Confidence.LOW, (
                f"unresolved {ref.kind.value} reference to '{ref.name}' in {where} "
                f"at {ref.file_path}:{ref.line}"
            )

        unit = self.graph.units.get(definition.file_path)
        if unit is not None and unit.warnings:
            return Confidence.LOW, f"{definition.file_path} has extraction warnings ({unit.warnings[0]})"

        owner = self._owning_class(definition)
        if owner is not None and self.graph.inheritance.participates(owner.identifier):
            return Confidence.MEDIUM, f"member of class '{owner.name}', which participates in inheritance"

        elsewhere = self.graph.resolved_names.get(definition.name, set()) - {identifier}
        if elsewhere:
            other = min(elsewhere)
            return Confidence.MEDIUM, f"references to '{definition.name}' resolved to {other} instead"

        rejected = self.graph.rejected.get(identifier)
        if rejected is not None:
            return Confidence.MEDIUM, rejected

        return Confidence.HIGH, "no reference reaches this definition from any entry point"

    def _owning_class(self, definition: Definition) -> Optional[Definition]:
        if definition.scope is None:
            return None
        owner = self.graph.definitions.get(definition.scope)
        if owner is None or owner.kind != DefinitionKind.CLASS:
            return None
        return owner

    def findings(self) -> List[DeadCodeFinding]:
        """Findings for every dead Definition, ordered by (file, line, column, identifier)."""
        findings = []
        for identifier in self.reachability.dead:
            definition = self.graph.definitions[identifier]
            confidence, reason = self.classify(identifier)
            findings.append(DeadCodeFinding(
                identifier=identifier,
                name=definition.name,
                kind=definition.kind,
                declaring_file=definition.file_path,
                line=definition.span.line,
                column=definition.span.column,
                confidence=confidence,
                reason=reason,
            ))
        return sorted(findings, key=DeadCodeFinding.sort_key)

    def speculative(self) -> List[SpeculativeReach]:
        """Definitions kept alive only by name matching, always low confidence."""
        reaches = []
        for identifier, trigger in self.reachability.speculative.items():
            definition = self.graph.definitions.get(identifier)
            if definition is None:
                continue
            reaches.append(SpeculativeReach(
                identifier=identifier,
                name=definition.name,
                declaring_file=definition.file_path,
                line=definition.span.line,
                trigger_file=trigger.reference.file_path,
                trigger_line=trigger.reference.line,
            ))
        return sorted(reaches, key=lambda r: (r.declaring_file, r.line, r.identifier))
