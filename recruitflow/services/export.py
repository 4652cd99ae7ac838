"""
Export projection: flattens applicants into the fixed tabular report.

Column keys, titles and order are an external contract (downstream
spreadsheets rely on them), so they are built here and nowhere else.
"""
import csv
import io
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from recruitflow.models.catalog import StageCatalog
from recruitflow.models.domain import Applicant

Column = Tuple[str, str]  # (row key, CSV title)

LEADING_COLUMNS: List[Column] = [
    ("name", "Name"),
    ("uniqueCode", "Unique Code"),
    ("contactNumber", "Contact Number"),
    ("gender", "Gender"),
    ("college", "College"),
    ("branch", "Branch"),
    ("year", "Year"),
]

TRAILING_COLUMNS: List[Column] = [
    ("total", "Total Marks"),
    ("round", "Round"),
    ("stage", "List"),
    ("notes", "Notes"),
    ("createdAt", "Created At"),
]


def score_key(category: str) -> str:
    return f"score:{category}"


def export_columns(catalog: StageCatalog) -> List[Column]:
    """One score column per canonical category, in stage order."""
    score_columns = [(score_key(c), f"{c} Marks") for c in catalog.score_categories]
    return LEADING_COLUMNS + score_columns + TRAILING_COLUMNS


def format_timestamp(value: Optional[datetime]) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-03-01T09:15:00.123Z."""
    if value is None:
        return ""
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def project_row(applicant: Applicant, catalog: StageCatalog) -> Dict[str, Any]:
    scores = applicant.scores or {}
    canonical = {c: int(scores.get(c) or 0) for c in catalog.score_categories}

    row = {
        "name": applicant.name,
        "uniqueCode": applicant.unique_code,
        "contactNumber": applicant.contact_number or "",
        "gender": applicant.gender or "",
        "college": applicant.college or "",
        "branch": applicant.branch or "",
        "year": applicant.year if applicant.year is not None else "",
    }
    for category, value in canonical.items():
        row[score_key(category)] = value
    row.update({
        "total": sum(canonical.values()),
        "round": applicant.round_within_stage or 0,
        "stage": applicant.current_stage,
        "notes": applicant.notes or "",
        "createdAt": format_timestamp(applicant.created_at),
    })
    return row


@dataclass
class ExportReport:
    columns: List[Column]
    rows: List[Dict[str, Any]] = field(default_factory=list)
    stage: Optional[str] = None

    @property
    def titles(self) -> List[str]:
        return [title for _, title in self.columns]

    def to_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(self.titles)
        for row in self.rows:
            writer.writerow([row[key] for key, _ in self.columns])
        return buffer.getvalue()


def build_report(
    applicants: Iterable[Applicant],
    catalog: StageCatalog,
    stage: Optional[str] = None,
) -> ExportReport:
    """Rows keep the order of ``applicants`` (the caller sorts newest-first)."""
    return ExportReport(
        columns=export_columns(catalog),
        rows=[project_row(a, catalog) for a in applicants],
        stage=stage,
    )
