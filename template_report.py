"""
Template-based report: Markdown summary of one analysis run.
"""

from kpi import build_kpi_table
from kpi_definitions import PILLAR_NAMES
from models import KPIDefinition
from pipeline import AnalysisResult


def generate_template_report(result: AnalysisResult, kpi_definitions: list[KPIDefinition]) -> str:
    sections = []
    client = result.client

    sections.append("## 1. Overview")
    sections.append(
        f"Client {client.client_id or '(unnamed)'} reports as industry {client.industry} in state {client.state}. "
        f"The data covers a {client.data_period} period at the {client.form_tier or 'full'} form tier."
    )
    sections.append(f"Data validation status: {result.validation.status.upper()}.")
    if result.cycle_detected:
        sections.append("Note: circular KPI formulas were detected; some values may be incomplete.")
    sections.append("")

    sections.append("## 2. KPIs")
    table = build_kpi_table(result.values, kpi_definitions, result.ratings)
    if table.empty:
        sections.append("No KPI values available.")
    else:
        for pillar, group in table.groupby("pillar", sort=True):
            sections.append(f"### {PILLAR_NAMES.get(pillar, f'Pillar {pillar}')}")
            for _, row in group.iterrows():
                line = f"- {row['name']}: {row['display']}"
                if row["rating"]:
                    line += f" | {row['rating'].upper()} ({row['comparison']})"
                sections.append(line)
    sections.append("")

    sections.append("## 3. Data Validation")
    if result.validation.issues:
        for issue in result.validation.issues:
            line = f"- [{issue.severity.upper()}] {issue.message}"
            if issue.affected_sections:
                line += f" (sections {', '.join(map(str, issue.affected_sections))})"
            sections.append(line)
    else:
        sections.append("All consistency checks passed.")
    sections.append("")

    sections.append("## 4. Insights")
    if result.insights.insights:
        for insight in result.insights.insights:
            sections.append(f"- {insight.label.upper()}: {insight.message}")
    else:
        sections.append("No benchmark insights for this run.")
    sections.append("")

    sections.append("## 5. Recommendations")
    if result.insights.recommendations:
        for i, text in enumerate(result.insights.recommendations, start=1):
            sections.append(f"{i}. {text}")
    else:
        sections.append("1. Keep submitting periodic data to track trends against benchmarks.")

    return "\n".join(sections)

