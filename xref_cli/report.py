"""Group collected references into category buckets and render them."""

from __future__ import annotations

from typing import Dict, List, Optional

from .models import CallGraphReport, CategoryBucket, Reference, ReferenceReport


class ReferenceReportBuilder:
    """Build a :class:`ReferenceReport` with at most *limit* items per category."""

    def __init__(self, limit: int) -> None:
        self.limit = limit

    def build(
        self,
        target_fqn: str,
        references: List[Reference],
        warnings: Optional[List[str]] = None,
    ) -> ReferenceReport:
        grouped: Dict[str, List[Reference]] = {}
        for ref in references:
            grouped.setdefault(ref.category, []).append(ref)

        buckets = [
            CategoryBucket(category=category, items=refs[: self.limit], total=len(refs), limit=self.limit)
            for category, refs in grouped.items()
        ]
        return ReferenceReport(
            target_fqn=target_fqn,
            total_count=len(references),
            categories=buckets,
            warnings=list(warnings or []),
        )


def _display_path(path: str) -> str:
    return path[1:] if path.startswith("/") else path


def render_references(report: ReferenceReport) -> str:
    """Markdown rendering of a reference report."""
    lines = [
        f"# References to {report.target_fqn}",
        "",
        f"**Total references found:** {report.total_count}",
        "",
    ]
    for warning in report.warnings:
        lines.extend([f"> Warning: {warning}", ""])
    if report.total_count == 0:
        lines.append("No references found.")
        return "\n".join(lines) + "\n"

    for bucket in report.categories:
        lines.append(f"## {bucket.label} ({len(bucket.items)})")
        lines.append("")
        for ref in bucket.items:
            path = _display_path(ref.source_path)
            if ref.is_textual:
                entry = f"- **{path}**"
                if ref.line > 0:
                    entry += f" (line {ref.line})"
            else:
                entry = f"- {path}"
                if ref.feature:
                    entry += f" → {ref.feature}"
            lines.append(entry)
        lines.append("")
    return "\n".join(lines)


def render_call_graph(report: CallGraphReport) -> str:
    """Markdown rendering of a call hierarchy."""
    found = f"**Callers found:** {report.caller_count}"
    if report.limit_reached:
        found += " (limit reached)"
    lines = [
        f"## Call Hierarchy: {report.method_name} (callers)",
        "",
        f"**Module:** {report.module_path}",
        f"**Method:** {report.method_signature}",
        found,
        "",
    ]
    if not report.groups:
        lines.append("No callers found.")
        return "\n".join(lines) + "\n"

    lines.append("| # | Module | Lines |")
    lines.append("|---|--------|-------|")
    for index, group in enumerate(report.groups, start=1):
        joined = ", ".join(str(line) for line in group.lines)
        lines.append(f"| {index} | {group.module_path} | {joined} |")
    return "\n".join(lines) + "\n"
