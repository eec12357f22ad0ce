"""Reconstruct the tree implicit in a flat, indent-annotated schedule.

Schedule exports list every line (chapter, heading, subheading, statistical
suffix and uncoded grouping labels such as "Men's or boys':") as a flat
sequence with an indent hint.  Raw indent values are not absolute depths;
only their relative order is trusted.  :func:`build_hierarchy` sorts the
rows by code, replays them through a stack of open ancestors, then walks
the result top-down to resolve inherited duty rates.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Sequence

from tariffstack.settings import ScheduleSettings
from tariffstack.tariff.codes import chapter_description, clean_code, format_hts_code, normalize_code
from tariffstack.tariff.rates import UNKNOWN_RATE, ParsedDutyRate, parse_duty_rate

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50.0
CONTEXT_SEPARATOR = " › "

_STAT_SUFFIX_RE = re.compile(r"\s*\(\d{3}\)\s*")
_BARE_STAT_SUFFIX_RE = re.compile(r"^\(\d+\)$")
_CATCH_ALL_RE = re.compile(r"^other\b|\bnesoi\b|not elsewhere specified", re.IGNORECASE)
_DEMOGRAPHIC_ONLY_RE = re.compile(
    r"^(men's|women's|boys'|girls'|infants'|babies'|other)$", re.IGNORECASE
)


# ---------------------------------------------------------------------------
# Input / output types
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class ScheduleRow:
    """One line of a tariff schedule export."""

    code: str | None
    description: str
    indent: int = 0
    rate_text: str | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> "ScheduleRow":
        code = payload.get("code", payload.get("htsno"))
        rate = payload.get("rate_text", payload.get("general"))
        indent = payload.get("indent", 0) or 0
        return cls(
            code=None if code is None else str(code),
            description=str(payload.get("description", "")),
            indent=max(0, int(indent)),
            rate_text=None if rate is None else str(rate),
        )


@dataclass
class HierarchyNode:
    """A schedule line placed in the reconstructed tree."""

    id: str
    code: str | None
    display_code: str | None
    label: str
    description: str
    indent: int
    own_rate: ParsedDutyRate | None = None
    effective_rate: ParsedDutyRate = UNKNOWN_RATE
    rate_inherited: bool = False
    rate_source_id: str | None = None
    depth: int = 0
    parent_id: str | None = None
    is_terminal: bool = False
    is_catch_all: bool = False
    is_grouping: bool = False
    context_label: str | None = None
    relevance_score: float = NEUTRAL_SCORE
    subtree_score: float = NEUTRAL_SCORE
    is_top_match: bool = False
    selectable_count: int = 0
    children: list["HierarchyNode"] = field(default_factory=list)

    @property
    def display_label(self) -> str:
        return self.context_label or self.label

    def iter_subtree(self) -> Iterator["HierarchyNode"]:
        yield self
        for child in self.children:
            yield from child.iter_subtree()


@dataclass(frozen=True)
class BuildWarning:
    kind: str
    row_id: str
    message: str


@dataclass
class HierarchyBuildResult:
    """Forest produced from one schedule snapshot plus build diagnostics."""

    roots: list[HierarchyNode]
    dropped_rows: int = 0
    dropped_codes: tuple[str, ...] = ()
    warnings: tuple[BuildWarning, ...] = ()

    def iter_nodes(self) -> Iterator[HierarchyNode]:
        for root in self.roots:
            yield from root.iter_subtree()

    @property
    def node_count(self) -> int:
        return sum(1 for _ in self.iter_nodes())

    def find(self, code: str) -> HierarchyNode | None:
        digits = normalize_code(code)
        for node in self.iter_nodes():
            if node.code == digits or node.id == code:
                return node
        return None

    def terminal_nodes(self) -> list[HierarchyNode]:
        return [node for node in self.iter_nodes() if node.is_terminal]

    def path_to(self, code: str) -> list[HierarchyNode]:
        """Root-to-node path for ``code``; empty when the code is absent."""
        target = self.find(code)
        if target is None:
            return []
        by_id = {node.id: node for node in self.iter_nodes()}
        path = [target]
        while path[-1].parent_id is not None:
            path.append(by_id[path[-1].parent_id])
        path.reverse()
        return path

    def breadcrumb(self, code: str) -> str:
        parts: list[str] = []
        for node in self.path_to(code):
            if node.display_code and node.label:
                parts.append(f"{node.display_code}: {node.label}")
            elif node.display_code:
                parts.append(node.display_code)
            else:
                parts.append(node.label)
        return CONTEXT_SEPARATOR.join(parts)


# ---------------------------------------------------------------------------
# Label helpers
# ---------------------------------------------------------------------------
def clean_stat_code(description: str) -> str:
    """Remove statistical category markers such as ``(338)``."""
    return _STAT_SUFFIX_RE.sub(" ", description).strip()


def clean_label(description: str) -> str:
    label = clean_stat_code(description.strip())
    if label.endswith(":"):
        label = label[:-1].rstrip()
    if label:
        label = label[0].upper() + label[1:]
    return label


def is_catch_all(label: str) -> bool:
    return bool(_CATCH_ALL_RE.search(label.strip()))


def is_ambiguous(description: str, min_length: int) -> bool:
    text = description.strip().rstrip(":").strip()
    if len(text) < min_length:
        return True
    if _DEMOGRAPHIC_ONLY_RE.match(text):
        return True
    return bool(_BARE_STAT_SUFFIX_RE.match(text))


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------
def _prepare_rows(
    rows: Iterable[ScheduleRow], settings: ScheduleSettings
) -> tuple[list[tuple[str | None, ScheduleRow]], list[str]]:
    """Validate codes and order rows by code, keeping grouping rows in place."""
    keyed: list[tuple[tuple[str, int, int], str | None, ScheduleRow]] = []
    dropped: list[str] = []
    anchor = ""
    for index, row in enumerate(rows):
        code = clean_code(row.code)
        if code is None:
            keyed.append(((anchor, 1, index), None, row))
            continue
        if not code.isdigit() or len(code) not in settings.valid_code_lengths:
            dropped.append(str(row.code))
            logger.warning("Dropping schedule row with malformed code %r", row.code)
            continue
        anchor = code
        keyed.append(((code, 0, index), code, row))
    keyed.sort(key=lambda item: item[0])
    return [(code, row) for _, code, row in keyed], dropped


def _make_node(code: str | None, row: ScheduleRow, group_seq: int, settings: ScheduleSettings) -> HierarchyNode:
    label = clean_label(row.description)
    if code is None:
        return HierarchyNode(
            id=f"grp-{group_seq}",
            code=None,
            display_code=None,
            label=label,
            description=row.description,
            indent=row.indent,
            is_grouping=True,
            is_catch_all=is_catch_all(label),
        )
    if not label and len(code) == 2:
        label = chapter_description(code) or ""
    own_rate = parse_duty_rate(row.rate_text) if row.rate_text else None
    return HierarchyNode(
        id=code,
        code=code,
        display_code=format_hts_code(code),
        label=label,
        description=row.description,
        indent=row.indent,
        own_rate=own_rate,
        is_terminal=len(code) >= settings.statistical_code_length,
        is_catch_all=is_catch_all(label),
    )


def _resolve_rates(node: HierarchyNode, parent: HierarchyNode | None) -> None:
    if node.own_rate is not None and node.own_rate.is_known:
        node.effective_rate = node.own_rate
        node.rate_inherited = False
        node.rate_source_id = node.id
    elif parent is not None:
        node.effective_rate = parent.effective_rate
        node.rate_inherited = parent.effective_rate.is_known
        node.rate_source_id = parent.rate_source_id
    else:
        node.effective_rate = UNKNOWN_RATE
        node.rate_inherited = False
        node.rate_source_id = None
    for child in node.children:
        _resolve_rates(child, node)


def _attach_context(node: HierarchyNode, ancestors: list[HierarchyNode], settings: ScheduleSettings) -> None:
    labelled = [a for a in ancestors if a.label]
    if labelled and is_ambiguous(node.label, settings.ambiguous_label_length):
        context = next((a for a in reversed(labelled) if a.is_grouping), labelled[-1])
        node.context_label = f"{context.label}{CONTEXT_SEPARATOR}{node.label}"
    ancestors.append(node)
    for child in node.children:
        _attach_context(child, ancestors, settings)
    ancestors.pop()


def _count_selectable(node: HierarchyNode) -> int:
    count = 1 if node.is_terminal else 0
    for child in node.children:
        count += _count_selectable(child)
    node.selectable_count = count
    return count


def build_hierarchy(
    rows: Sequence[ScheduleRow] | Iterable[ScheduleRow],
    settings: ScheduleSettings | None = None,
) -> HierarchyBuildResult:
    """Build a forest of :class:`HierarchyNode` from flat schedule rows.

    Malformed codes are dropped and counted.  Rows that arrive with a
    positive indent while no ancestor is open become roots and are
    reported as ``orphan_row`` warnings.  Building never raises for
    data-shape reasons.
    """
    settings = settings or ScheduleSettings()
    ordered, dropped = _prepare_rows(rows, settings)

    roots: list[HierarchyNode] = []
    warnings: list[BuildWarning] = []
    stack: list[HierarchyNode] = []
    seen_codes: set[str] = set()
    group_seq = 0

    for code, row in ordered:
        if code is None:
            group_seq += 1
        elif code in seen_codes:
            message = f"Code {code} appears more than once in the schedule"
            warnings.append(BuildWarning(kind="duplicate_code", row_id=code, message=message))
            logger.warning(message)
        else:
            seen_codes.add(code)
        node = _make_node(code, row, group_seq, settings)

        while stack and stack[-1].indent >= node.indent:
            stack.pop()

        if stack:
            parent = stack[-1]
            node.parent_id = parent.id
            node.depth = parent.depth + 1
            parent.children.append(node)
        else:
            if node.indent > 0:
                message = f"Row {node.id} has indent {node.indent} but no open ancestor"
                warnings.append(BuildWarning(kind="orphan_row", row_id=node.id, message=message))
                logger.warning(message)
            roots.append(node)
        stack.append(node)

    for root in roots:
        _resolve_rates(root, None)
        _attach_context(root, [], settings)
        _count_selectable(root)

    result = HierarchyBuildResult(
        roots=roots,
        dropped_rows=len(dropped),
        dropped_codes=tuple(dropped),
        warnings=tuple(warnings),
    )
    logger.debug(
        "Built schedule hierarchy: %d roots, %d nodes, %d dropped, %d warnings",
        len(roots),
        result.node_count,
        result.dropped_rows,
        len(warnings),
    )
    return result
