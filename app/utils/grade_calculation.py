"""
Grade calculation utilities.

Pure functions that turn raw marks into percentages, letter grades and CBC
performance levels, plus aggregate statistics over collections of grades.
Nothing here raises for bad input: invalid entries come back as ``None``,
as a ``GradeResult`` with ``is_valid=False``, or as zeroed aggregates.
"""

import math
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from app.schemas.grades_schemas import (
    CBCGradeInput,
    GradeBand,
    GradeResult,
    GradeStatistics,
    GradeValidationResult,
    IGCSEGradeInput,
    StandardGradeInput,
)

# (grade, inclusive lower bound), highest first
STANDARD_GRADE_BOUNDARIES: Tuple[Tuple[str, float], ...] = (
    ("A+", 90),
    ("A", 80),
    ("B+", 70),
    ("B", 60),
    ("C+", 50),
    ("C", 40),
    ("D+", 30),
    ("D", 20),
    ("E", 0),
)

IGCSE_GRADE_BOUNDARIES: Tuple[Tuple[str, float], ...] = (
    ("A*", 90),
    ("A", 80),
    ("B", 70),
    ("C", 60),
    ("D", 50),
    ("E", 40),
    ("F", 30),
    ("G", 20),
    ("U", 0),
)

# (level, min, max, description)
CBC_PERFORMANCE_LEVELS: Tuple[Tuple[str, float, float, str], ...] = (
    ("EE", 80, 100, "Exceeding Expectations"),
    ("ME", 60, 79, "Meeting Expectations"),
    ("AE", 40, 59, "Approaching Expectations"),
    ("BE", 0, 39, "Below Expectations"),
)

DEFAULT_PASSING_GRADES: Tuple[str, ...] = (
    "A+", "A", "A-", "B+", "B", "B-", "C+", "C", "C-", "D+", "D", "D-",
)

CURRICULUM_TYPES = ("standard", "cbc", "igcse")

GradeBoundaries = Sequence[Tuple[str, float]]


def _round2(value: float) -> float:
    # half-up, so 84.125 -> 84.13 regardless of float banking
    return math.floor(value * 100 + 0.5) / 100


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


def _field(grade: Any, name: str) -> Any:
    if isinstance(grade, Mapping):
        return grade.get(name)
    return getattr(grade, name, None)


def _invalid(error: str, max_score: float = 100, **extra) -> GradeResult:
    return GradeResult(score=None, max_score=max_score if _is_number(max_score) else 0,
                       percentage=None, letter_grade=None, is_valid=False, error=error, **extra)


def _boundaries_for(curriculum_type: str) -> GradeBoundaries:
    return IGCSE_GRADE_BOUNDARIES if curriculum_type == "igcse" else STANDARD_GRADE_BOUNDARIES


def calculate_percentage(score: Optional[float], max_score: float) -> Optional[float]:
    """Percentage of ``max_score`` rounded to 2dp, or None when it cannot be computed.

    Out-of-range scores are not clamped.
    """
    if not _is_number(score) or not _is_number(max_score) or max_score <= 0:
        return None
    if score < 0 or score > max_score:
        return None
    return _round2(score / max_score * 100)


def calculate_letter_grade(
    percentage: Optional[float],
    curriculum_type: str = "standard",
    boundaries: Optional[GradeBoundaries] = None,
) -> Optional[str]:
    """Letter grade for a percentage using the curriculum's boundary table.

    ``boundaries`` overrides the built-in table; order does not matter, the
    highest threshold the percentage reaches wins.
    """
    if not _is_number(percentage) or percentage < 0 or percentage > 100:
        return None

    table = boundaries if boundaries is not None else _boundaries_for(curriculum_type)
    for grade, threshold in sorted(table, key=lambda item: item[1], reverse=True):
        if percentage >= threshold:
            return grade

    return "E"


def calculate_cbc_performance_level(
    marks: float,
    levels: Optional[Sequence[Tuple[str, float, float, str]]] = None,
) -> str:
    """CBC performance level (EE/ME/AE/BE) for marks out of 100.

    Marks outside 0-100 fall back to BE instead of being reported as invalid;
    use ``calculate_cbc_grade`` when the range has to be enforced.
    """
    if not _is_number(marks) or marks < 0 or marks > 100:
        return "BE"

    table = levels if levels is not None else CBC_PERFORMANCE_LEVELS
    for level, minimum, _maximum, _description in sorted(table, key=lambda item: item[1], reverse=True):
        if marks >= minimum:
            return level

    return "BE"


def describe_cbc_level(level: str) -> Optional[str]:
    for name, _minimum, _maximum, description in CBC_PERFORMANCE_LEVELS:
        if name == level:
            return description
    return None


def calculate_standard_grade(
    score: Optional[float],
    max_score: float = 100,
    boundaries: Optional[GradeBoundaries] = None,
) -> GradeResult:
    if score is None:
        return _invalid("Score is required", max_score)

    if not _is_number(max_score) or max_score <= 0:
        return _invalid("Maximum score must be greater than 0", max_score)

    if not _is_number(score) or score < 0 or score > max_score:
        return _invalid(f"Score must be between 0 and {max_score:g}", max_score)

    percentage = calculate_percentage(score, max_score)
    letter_grade = calculate_letter_grade(percentage, "standard", boundaries)

    return GradeResult(
        score=score,
        max_score=max_score,
        percentage=percentage,
        letter_grade=letter_grade,
        is_valid=True,
    )


def calculate_cbc_grade(marks: Optional[float]) -> GradeResult:
    if marks is None:
        return _invalid("Score is required for CBC grading", 100)

    if not _is_number(marks) or marks < 0 or marks > 100:
        return _invalid("Marks must be between 0 and 100", 100, cbc_performance_level="BE")

    return GradeResult(
        score=marks,
        max_score=100,
        percentage=_round2(marks),
        letter_grade=None,
        cbc_performance_level=calculate_cbc_performance_level(marks),
        is_valid=True,
    )


def calculate_igcse_grade(
    coursework_score: Optional[float],
    exam_score: Optional[float],
    coursework_weight: float = 30,
    exam_weight: float = 70,
    boundaries: Optional[GradeBoundaries] = None,
) -> GradeResult:
    """Weighted coursework + exam grade on the IGCSE A*-U scale.

    Both scores are out of 100 and the weights must add up to exactly 100.
    """
    if coursework_score is None or exam_score is None:
        return _invalid("Both coursework and exam scores are required")

    if not (_is_number(coursework_score) and 0 <= coursework_score <= 100) \
            or not (_is_number(exam_score) and 0 <= exam_score <= 100):
        return _invalid("Scores must be between 0 and 100")

    if coursework_weight + exam_weight != 100:
        return _invalid("Coursework and exam weights must sum to 100")

    total_score = coursework_score * coursework_weight / 100 + exam_score * exam_weight / 100
    percentage = _round2(total_score)

    return GradeResult(
        score=total_score,
        max_score=100,
        percentage=percentage,
        letter_grade=calculate_letter_grade(percentage, "igcse", boundaries),
        total_score=total_score,
        is_valid=True,
    )


_INPUT_MODELS = {
    "standard": StandardGradeInput,
    "cbc": CBCGradeInput,
    "igcse": IGCSEGradeInput,
}

GradeParams = Union[StandardGradeInput, CBCGradeInput, IGCSEGradeInput, Mapping[str, Any]]


def calculate_grade(params: GradeParams) -> GradeResult:
    """Calculate a grade for any supported curriculum.

    Accepts one of the typed grade inputs or a plain mapping carrying a
    ``curriculum_type`` key. Unknown curricula and malformed mappings come
    back as invalid results.
    """
    if isinstance(params, Mapping):
        curriculum_type = getattr(params.get("curriculum_type"), "value", params.get("curriculum_type"))
        model = _INPUT_MODELS.get(curriculum_type) if isinstance(curriculum_type, str) else None
        if model is None:
            return _invalid(f"Unsupported curriculum type: {curriculum_type}")
        try:
            params = model.model_validate({**params, "curriculum_type": curriculum_type})
        except ValidationError as exc:
            return _invalid(f"Invalid grade input: {exc.errors()[0]['msg']}")

    if isinstance(params, StandardGradeInput):
        return calculate_standard_grade(params.score, params.max_score)
    if isinstance(params, CBCGradeInput):
        return calculate_cbc_grade(params.score)
    if isinstance(params, IGCSEGradeInput):
        return calculate_igcse_grade(
            params.coursework_score,
            params.exam_score,
            params.coursework_weight,
            params.exam_weight,
        )

    return _invalid(f"Unsupported curriculum type: {_field(params, 'curriculum_type')}")


def _derived_percentage(grade: Any) -> Optional[float]:
    percentage = _field(grade, "percentage")
    if _is_number(percentage):
        return percentage

    score = _field(grade, "score")
    max_score = _field(grade, "max_score")
    if _is_number(score) and _is_number(max_score) and max_score > 0:
        return score / max_score * 100
    return None


def _usable_percentages(grades: Iterable[Any]) -> List[float]:
    percentages = []
    for grade in grades:
        percentage = _derived_percentage(grade)
        if percentage is not None:
            percentages.append(percentage)
    return percentages


def calculate_class_average(grades: Iterable[Any]) -> float:
    """Mean percentage over grades that have one (or a score to derive it from).

    Returns 0 when no grade is usable.
    """
    percentages = _usable_percentages(grades)
    if not percentages:
        return 0
    return _round2(sum(percentages) / len(percentages))


def calculate_pass_rate(
    grades: Iterable[Any],
    passing_threshold: float = 50,
    passing_grades: Sequence[str] = DEFAULT_PASSING_GRADES,
) -> int:
    """Whole-number percentage of graded entries that pass.

    An entry passes when its percentage reaches the threshold or its letter
    grade is one of ``passing_grades``. Entries without a percentage are
    not counted at all.
    """
    valid = [grade for grade in grades if _is_number(_field(grade, "percentage"))]
    if not valid:
        return 0

    passing = 0
    for grade in valid:
        if _field(grade, "percentage") >= passing_threshold:
            passing += 1
        elif _field(grade, "letter_grade") in passing_grades:
            passing += 1

    return int(math.floor(passing / len(valid) * 100 + 0.5))


def validate_grade_data(grade: Any) -> GradeValidationResult:
    """Check a stored or submitted grade for consistency, collecting every problem."""
    errors = []

    score = _field(grade, "score")
    max_score = _field(grade, "max_score")
    percentage = _field(grade, "percentage")
    letter_grade = _field(grade, "letter_grade")
    curriculum_type = _field(grade, "curriculum_type")

    if score is not None:
        if not _is_number(score) or score < 0:
            errors.append("Score must be a non-negative number")
        elif _is_number(max_score) and max_score > 0 and score > max_score:
            errors.append("Score cannot exceed maximum score")

    if max_score is not None:
        if not _is_number(max_score) or max_score <= 0:
            errors.append("Maximum score must be a positive number")

    if percentage is not None:
        if not _is_number(percentage) or percentage < 0 or percentage > 100:
            errors.append("Percentage must be between 0 and 100")

    if letter_grade:
        known = {g for g, _ in STANDARD_GRADE_BOUNDARIES} | {g for g, _ in IGCSE_GRADE_BOUNDARIES}
        if letter_grade not in known:
            errors.append(f"Invalid letter grade: {letter_grade}")

    if curriculum_type:
        # str enums compare equal to their values
        if curriculum_type not in CURRICULUM_TYPES:
            errors.append(f"Invalid curriculum type: {curriculum_type}")

    return GradeValidationResult(is_valid=not errors, errors=errors)


def calculate_grade_statistics(grades: Iterable[Any]) -> GradeStatistics:
    """Count, mean, best, worst and pass rate (at a fixed 50%) for a set of grades."""
    percentages = _usable_percentages(grades)
    if not percentages:
        return GradeStatistics(count=0, average=0, highest=0, lowest=0, pass_rate=0)

    passed = len([p for p in percentages if p >= 50])

    return GradeStatistics(
        count=len(percentages),
        average=_round2(sum(percentages) / len(percentages)),
        highest=_round2(max(percentages)),
        lowest=_round2(min(percentages)),
        pass_rate=_round2(passed / len(percentages) * 100),
    )


def get_grade_scale(curriculum_type: str) -> List[GradeBand]:
    """Grade legend for report headers, highest band first."""
    if curriculum_type == "cbc":
        return [
            GradeBand(label=level, min=minimum, max=maximum, description=description)
            for level, minimum, maximum, description in CBC_PERFORMANCE_LEVELS
        ]

    if curriculum_type not in CURRICULUM_TYPES:
        return []

    bands = []
    upper = 100.0
    for grade, threshold in sorted(_boundaries_for(curriculum_type), key=lambda item: item[1], reverse=True):
        bands.append(GradeBand(label=grade, min=threshold, max=upper))
        upper = _round2(threshold - 0.01)
    return bands
