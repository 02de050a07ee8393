"""QA report generator.

Produces a markdown report summarizing the response data validation checks
and, when a derivation has run, the subjects it excluded.
"""

from pathlib import Path

from oncoendpoints.qa.checks import QAResult


def generate_qa_report(
    results: list[QAResult],
    output_path: Path,
    excluded: dict | None = None,
) -> None:
    passed = sum(1 for r in results if r.passed)
    total = len(results)

    lines = [
        "# Response Data QA Report",
        "",
        f"**{passed}/{total} checks passed**",
        "",
        "| Check | Status | Message |",
        "|-------|--------|---------|",
    ]

    for r in results:
        status = "PASS" if r.passed else "FAIL"
        lines.append(f"| {r.name} | {status} | {r.message} |")

    failures = [r for r in results if not r.passed]
    if failures:
        lines.append("")
        lines.append("## Failures")
        for r in failures:
            lines.append(f"\n### {r.name}")
            lines.append(r.message)
            if r.details:
                lines.append(f"\n```\n{r.details}\n```")

    if excluded:
        lines.append("")
        lines.append("## Excluded From Derivation")
        lines.append("")
        lines.append("| Subject | Reason |")
        lines.append("|---------|--------|")
        for sid, reason in excluded.items():
            lines.append(f"| {sid} | {reason} |")

    details = [r for r in results if r.details and r.passed]
    if details:
        lines.append("")
        lines.append("## Details")
        for r in details:
            lines.append(f"\n**{r.name}**: {r.details}")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text("\n".join(lines))
