"""
Practice reports.

Pure functions over an already-loaded patient list; nothing here touches the
database. `report_to_csv` writes the fixed layout offered as a download on
the reports page.
"""

import csv
import io
import math
import re
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional

from schemas import Patient, ReportStats

AGE_BUCKETS = (
    ("0-18", 18),
    ("19-35", 35),
    ("36-50", 50),
    ("51-65", 65),
    ("65+", None),
)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_age(value: Optional[str]) -> int:
    """Leading integer of `value`; 0 when there is none."""
    match = _LEADING_INT.match(value or "")
    return int(match.group(1)) if match else 0


def gender_distribution(patients: Iterable[Patient]) -> Dict[str, int]:
    counts = {"male": 0, "female": 0, "other": 0}
    for p in patients:
        if p.sex in counts:
            counts[p.sex] += 1
    return counts


def age_distribution(patients: Iterable[Patient]) -> Dict[str, int]:
    # Unparsable ages count as 0 and so land in the youngest bucket.
    counts = {label: 0 for label, _ in AGE_BUCKETS}
    for p in patients:
        age = parse_age(p.age)
        for label, upper in AGE_BUCKETS:
            if upper is None or age <= upper:
                counts[label] += 1
                break
    return counts


def has_refractive_error(patient: Patient) -> bool:
    return bool(patient.right_sphere)


def has_astigmatism(patient: Patient) -> bool:
    return bool(patient.right_cylinder) and patient.right_cylinder != "0"


def has_presbyopia(patient: Patient) -> bool:
    return bool(patient.right_add) and patient.right_add != "0"


def clinical_conditions(patients: Iterable[Patient]) -> Dict[str, int]:
    patients = list(patients)
    return {
        "refractive_error": sum(1 for p in patients if has_refractive_error(p)),
        "astigmatism": sum(1 for p in patients if has_astigmatism(p)),
        "presbyopia": sum(1 for p in patients if has_presbyopia(p)),
    }


def average_age(patients: List[Patient]) -> int:
    if not patients:
        return 0
    return round_half_up(sum(parse_age(p.age) for p in patients) / len(patients))


def percentage(count: int, total: int) -> str:
    if total <= 0:
        return "0%"
    return f"{round_half_up(count / total * 100)}%"


def build_report(patients: List[Patient], generated_at: Optional[datetime] = None) -> ReportStats:
    conditions = clinical_conditions(patients)
    return ReportStats(
        generated_at=generated_at or datetime.now(timezone.utc),
        total_patients=len(patients),
        average_age=average_age(patients),
        gender=gender_distribution(patients),
        age_distribution=age_distribution(patients),
        with_refractive_error=conditions["refractive_error"],
        with_astigmatism=conditions["astigmatism"],
        with_presbyopia=conditions["presbyopia"],
    )


def report_rows(stats: ReportStats) -> List[list]:
    total = stats.total_patients
    gender = stats.gender
    ages = stats.age_distribution
    return [
        ["OptiCare - Patient Report"],
        [f"Generated on: {stats.generated_at.strftime('%Y-%m-%d %H:%M:%S')}"],
        [],
        ["KEY METRICS"],
        ["Metric", "Value"],
        ["Total Patients", total],
        ["Average Age", stats.average_age],
        ["Patients with Refractive Error", stats.with_refractive_error],
        ["Patients with Astigmatism", stats.with_astigmatism],
        ["Patients with Presbyopia", stats.with_presbyopia],
        [],
        ["GENDER DISTRIBUTION"],
        ["Gender", "Count", "Percentage"],
        ["Male", gender.get("male", 0), percentage(gender.get("male", 0), total)],
        ["Female", gender.get("female", 0), percentage(gender.get("female", 0), total)],
        ["Other", gender.get("other", 0), percentage(gender.get("other", 0), total)],
        [],
        ["AGE DISTRIBUTION"],
        ["Age Range", "Count"],
        *[[label, ages.get(label, 0)] for label, _ in AGE_BUCKETS],
        [],
        ["CLINICAL CONDITIONS"],
        ["Condition", "Count"],
        ["Myopia/Sphere Error", stats.with_refractive_error],
        ["Astigmatism (Cylinder)", stats.with_astigmatism],
        ["Presbyopia (Addition)", stats.with_presbyopia],
    ]


def report_to_csv(stats: ReportStats) -> str:
    """Every cell double-quoted, one row per line, blank line between sections, no final newline."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows(report_rows(stats))
    return buffer.getvalue().removesuffix("\n")


def report_filename(day: Optional[date] = None) -> str:
    day = day or datetime.now(timezone.utc).date()
    return f"opticare-report-{day.isoformat()}.csv"
