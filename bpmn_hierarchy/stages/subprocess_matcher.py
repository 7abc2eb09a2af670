"""
Stage 2: Subprocess Matching

Resolves one sub-process invocation against the pool of candidate processes.

Tiers, first success wins:
- Manual override (operator supplied mapping)
- Exact declared id
- Exact declared name
- Normalized file stem
- Fuzzy substring containment over normalized id/name/file stem

The reference tried is the invocation's ``called_element``, or its name when
no called element is declared. Ties are never broken silently: several
candidates in an exact tier make the verdict ambiguous.
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime
from difflib import SequenceMatcher
from typing import Iterable, List, Optional, Sequence, Tuple

from bpmn_hierarchy.core.config import MatcherConfig
from bpmn_hierarchy.models.definitions import Invocation, NormalizedProcessDefinition
from bpmn_hierarchy.models.diagnostics import Diagnostic, DiagnosticCode, Severity, utc_now
from bpmn_hierarchy.models.graph import MatchCandidate, MatchSource, MatchStatus, SubprocessLink
from bpmn_hierarchy.models.overrides import OverrideMap, file_name_only

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def _fold(value: str) -> str:
    """NFKD decomposition without combining marks, then casefold."""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold()


def normalize_reference(value: Optional[str], config: Optional[MatcherConfig] = None) -> str:
    """
    Normalize a process reference or file name for comparison.

    ``"Mortgage/Household-Ä.bpmn"`` becomes ``"household-a"``. Directories,
    known file extensions and configured common prefixes are removed, and
    every run of non-alphanumeric characters collapses to a single ``-``.
    """
    if not value:
        return ""
    config = config or MatcherConfig()

    text = file_name_only(_fold(value.strip()))
    for extension in config.file_extensions:
        suffix = extension.casefold()
        if suffix and text.endswith(suffix) and len(text) > len(suffix):
            text = text[: -len(suffix)]
            break

    text = _NON_ALNUM.sub("-", text).strip("-")

    for prefix in config.common_prefixes:
        folded = _NON_ALNUM.sub("-", _fold(prefix)).strip("-")
        if folded and text.startswith(folded + "-"):
            text = text[len(folded) + 1 :]
            break

    return text


def similarity(left: str, right: str) -> float:
    """Sequence similarity ratio between two normalized strings."""
    return SequenceMatcher(None, left, right).ratio()


@dataclass
class FuzzyHit:
    """A candidate surviving the fuzzy tier."""

    process: NormalizedProcessDefinition
    score: float  # best similarity ratio among containing keys
    matched_on: List[str] = field(default_factory=list)  # "id", "name", "file"

    def sort_key(self) -> Tuple[float, int]:
        return (-self.score, self.process.ordinal)


class SubprocessMatcher:
    """
    Stateless resolver for sub-process invocations.

    Example:
        matcher = SubprocessMatcher(MatcherConfig())
        link = matcher.match(invocation, candidates)
        if link.is_matched:
            print(link.matched_process_id)
    """

    def __init__(self, config: Optional[MatcherConfig] = None):
        self.config = config or MatcherConfig()

    def match(
        self,
        invocation: Invocation,
        candidates: Sequence[NormalizedProcessDefinition],
        overrides: Optional[OverrideMap] = None,
        owning_file: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> SubprocessLink:
        """
        Resolve one invocation.

        Never raises for data problems; every invocation receives a verdict.

        Args:
            invocation: The call activity to resolve
            candidates: Processes it may target, in registry order
            overrides: Optional manual mapping consulted first
            owning_file: File of the process containing the invocation
            timestamp: Timestamp for emitted diagnostics

        Returns:
            SubprocessLink with verdict, confidence and diagnostics
        """
        timestamp = timestamp or utc_now()
        candidates = list(candidates)
        diagnostics: List[Diagnostic] = []
        reference = self._reference_for(invocation)
        context = {
            "invocation_id": invocation.id,
            "invocation_name": invocation.name,
            "called_element": invocation.called_element,
            "file_name": owning_file,
        }

        # Tier 0: manual override
        if overrides is not None and len(overrides):
            entry = overrides.lookup(invocation, owning_file)
            if entry is not None:
                target = self._resolve_override_target(entry.target, candidates)
                if target is not None:
                    logger.debug(f"Override maps '{invocation.id}' to {target.internal_id}")
                    return self._matched(
                        invocation,
                        target,
                        MatchSource.OVERRIDE,
                        1.0,
                        reason=f"override -> {entry.target}",
                        diagnostics=diagnostics,
                    )
                diagnostics.append(
                    Diagnostic.create(
                        Severity.WARNING,
                        DiagnosticCode.OVERRIDE_TARGET_NOT_FOUND,
                        f"Override target '{entry.target}' for invocation "
                        f"'{invocation.id}' is not a known process; falling back to "
                        "automatic matching",
                        {**context, "override_target": entry.target},
                        timestamp,
                    )
                )

        if not reference:
            diagnostics.append(
                Diagnostic.create(
                    Severity.WARNING,
                    DiagnosticCode.NO_MATCH,
                    f"Invocation '{invocation.id}' declares neither a called element nor a name",
                    context,
                    timestamp,
                )
            )
            return self._link(invocation, MatchStatus.UNRESOLVED, diagnostics=diagnostics)

        # Tiers 1-3: exact tiers, ties make the verdict ambiguous
        exact_tiers = (
            (MatchSource.CALLED_ELEMENT_ID, self.config.id_confidence, self._by_id),
            (MatchSource.NAME, self.config.name_confidence, self._by_name),
            (MatchSource.FILE_NAME, self.config.file_name_confidence, self._by_file_name),
        )
        for source, confidence, finder in exact_tiers:
            hits = finder(invocation, reference, candidates)
            if len(hits) == 1:
                return self._matched(
                    invocation,
                    hits[0],
                    source,
                    confidence,
                    reason=source.value,
                    diagnostics=diagnostics,
                )
            if len(hits) > 1:
                return self._ambiguous(
                    invocation,
                    reference,
                    [self._candidate(p, confidence, source.value) for p in hits],
                    source,
                    diagnostics,
                    context,
                    timestamp,
                )

        # Tier 4: fuzzy containment
        fuzzy_hits = self._fuzzy(reference, candidates)
        if not fuzzy_hits:
            severity = Severity.ERROR if invocation.called_element else Severity.WARNING
            diagnostics.append(
                Diagnostic.create(
                    severity,
                    DiagnosticCode.NO_MATCH,
                    f"No process matches '{reference}' (invocation '{invocation.id}')",
                    {**context, "reference": reference},
                    timestamp,
                )
            )
            return self._link(invocation, MatchStatus.UNRESOLVED, diagnostics=diagnostics)

        ranked = [
            self._candidate(
                hit.process,
                round(self.config.fuzzy_weight * hit.score, 4),
                "fuzzy:" + "+".join(hit.matched_on),
            )
            for hit in fuzzy_hits
        ]

        best = fuzzy_hits[0]
        decisive = len(fuzzy_hits) == 1 or (
            best.score - fuzzy_hits[1].score > self.config.ambiguity_delta
        )
        if not decisive:
            return self._ambiguous(
                invocation, reference, ranked, MatchSource.FUZZY, diagnostics, context, timestamp
            )

        suggested = best.process
        diagnostics.append(
            Diagnostic.create(
                Severity.WARNING,
                DiagnosticCode.LOW_CONFIDENCE_MATCH,
                f"'{reference}' only resembles process '{suggested.internal_id}' "
                f"({suggested.file_name}); confirm it with an override",
                {
                    **context,
                    "reference": reference,
                    "suggested_process_id": suggested.internal_id,
                    "suggested_file_name": suggested.file_name,
                },
                timestamp,
            )
        )
        return self._link(
            invocation,
            MatchStatus.LOW_CONFIDENCE,
            source=MatchSource.FUZZY,
            confidence=ranked[0].score,
            candidates=ranked,
            diagnostics=diagnostics,
        )

    # ===========================
    # Tier helpers
    # ===========================

    @staticmethod
    def _reference_for(invocation: Invocation) -> str:
        called = (invocation.called_element or "").strip()
        if called:
            return called
        return (invocation.name or "").strip()

    @staticmethod
    def _by_id(
        invocation: Invocation, reference: str, candidates: List[NormalizedProcessDefinition]
    ) -> List[NormalizedProcessDefinition]:
        return [p for p in candidates if p.id is not None and p.id.strip() == reference]

    @staticmethod
    def _by_name(
        invocation: Invocation, reference: str, candidates: List[NormalizedProcessDefinition]
    ) -> List[NormalizedProcessDefinition]:
        labels = {reference}
        if invocation.name and invocation.name.strip():
            labels.add(invocation.name.strip())
        return [p for p in candidates if p.name is not None and p.name.strip() in labels]

    def _by_file_name(
        self, invocation: Invocation, reference: str, candidates: List[NormalizedProcessDefinition]
    ) -> List[NormalizedProcessDefinition]:
        wanted = normalize_reference(reference, self.config)
        if not wanted:
            return []
        return [p for p in candidates if normalize_reference(p.file_name, self.config) == wanted]

    def _fuzzy(
        self, reference: str, candidates: List[NormalizedProcessDefinition]
    ) -> List[FuzzyHit]:
        wanted = normalize_reference(reference, self.config)
        if len(wanted) < self.config.min_fuzzy_length:
            return []

        hits = []
        for process in candidates:
            hit: Optional[FuzzyHit] = None
            for label, key in self._fuzzy_keys(process):
                if wanted not in key and key not in wanted:
                    continue
                score = similarity(wanted, key)
                if hit is None:
                    hit = FuzzyHit(process=process, score=score, matched_on=[label])
                else:
                    hit.score = max(hit.score, score)
                    hit.matched_on.append(label)
            if hit is not None:
                hits.append(hit)

        hits.sort(key=FuzzyHit.sort_key)
        return hits

    def _fuzzy_keys(self, process: NormalizedProcessDefinition) -> Iterable[Tuple[str, str]]:
        seen = set()
        for label, raw in (("id", process.id), ("name", process.name), ("file", process.file_name)):
            key = normalize_reference(raw, self.config)
            if len(key) < self.config.min_fuzzy_length or key in seen:
                continue
            seen.add(key)
            yield label, key

    @staticmethod
    def _resolve_override_target(
        target: str, candidates: List[NormalizedProcessDefinition]
    ) -> Optional[NormalizedProcessDefinition]:
        target_file = file_name_only(target)
        for process in candidates:
            if process.file_name == target or file_name_only(process.file_name) == target_file:
                return process
        for process in candidates:
            if process.internal_id == target or process.id == target:
                return process
        return None

    # ===========================
    # Link construction
    # ===========================

    @staticmethod
    def _candidate(
        process: NormalizedProcessDefinition, score: float, reason: str
    ) -> MatchCandidate:
        return MatchCandidate(
            internal_id=process.internal_id,
            process_id=process.id,
            name=process.name,
            file_name=process.file_name,
            score=score,
            reason=reason,
        )

    @staticmethod
    def _link(
        invocation: Invocation,
        status: MatchStatus,
        source: MatchSource = MatchSource.NONE,
        confidence: float = 0.0,
        candidates: Optional[List[MatchCandidate]] = None,
        diagnostics: Optional[List[Diagnostic]] = None,
        target: Optional[NormalizedProcessDefinition] = None,
    ) -> SubprocessLink:
        return SubprocessLink(
            invocation_id=invocation.id,
            invocation_name=invocation.name,
            called_element=invocation.called_element,
            match_status=status,
            match_source=source,
            matched_process_id=target.internal_id if target is not None else None,
            matched_file_name=target.file_name if target is not None else None,
            confidence=confidence,
            candidates=candidates or [],
            diagnostics=diagnostics or [],
        )

    def _matched(
        self,
        invocation: Invocation,
        target: NormalizedProcessDefinition,
        source: MatchSource,
        confidence: float,
        reason: str,
        diagnostics: List[Diagnostic],
    ) -> SubprocessLink:
        return self._link(
            invocation,
            MatchStatus.MATCHED,
            source=source,
            confidence=confidence,
            candidates=[self._candidate(target, confidence, reason)],
            diagnostics=diagnostics,
            target=target,
        )

    def _ambiguous(
        self,
        invocation: Invocation,
        reference: str,
        candidates: List[MatchCandidate],
        source: MatchSource,
        diagnostics: List[Diagnostic],
        context: dict,
        timestamp: datetime,
    ) -> SubprocessLink:
        names = ", ".join(c.internal_id for c in candidates)
        diagnostics.append(
            Diagnostic.create(
                Severity.WARNING,
                DiagnosticCode.AMBIGUOUS_MATCH,
                f"'{reference}' matches {len(candidates)} processes equally well: {names}",
                {
                    **context,
                    "reference": reference,
                    "candidate_ids": [c.internal_id for c in candidates],
                },
                timestamp,
            )
        )
        return self._link(
            invocation,
            MatchStatus.AMBIGUOUS,
            source=source,
            candidates=candidates,
            diagnostics=diagnostics,
        )


def match_subprocess(
    invocation: Invocation,
    candidates: Sequence[NormalizedProcessDefinition],
    config: Optional[MatcherConfig] = None,
    overrides: Optional[OverrideMap] = None,
    owning_file: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> SubprocessLink:
    """Functional form of ``SubprocessMatcher.match``."""
    return SubprocessMatcher(config).match(
        invocation, candidates, overrides=overrides, owning_file=owning_file, timestamp=timestamp
    )


__all__ = [
    "FuzzyHit",
    "SubprocessMatcher",
    "match_subprocess",
    "normalize_reference",
    "similarity",
]
