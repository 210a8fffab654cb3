"""
Progress calculation for the Flight Training Tracker.

Pure functions over a Student snapshot and the TemplateLibrary. Nothing here
touches the database, so the same numbers come out on the instructor and the
student device for the same data.

Two families of score:
- Ratios in [0, 1]: progress_for_category, assignment_completion,
  weighted_category_progress, overall_progress.
- Sub-scores in [0, 100]: checklist_progress_for_category,
  category_goal_progress, document_progress, personal_info_progress.
"""

from collections import Counter
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from ftt.models import REQUIRED_DOCUMENT_TYPES, Assignment, Student

if TYPE_CHECKING:
    from ftt.services.template_library import TemplateLibrary

REVIEW_CATEGORY = "Review"
DEFAULT_CATEGORY = "PPL"

# Lower-cased spelling -> canonical category
CATEGORY_SYNONYMS = {
    "review": "Review",
    "reviews": "Review",
    "ppl": "PPL",
    "private pilot": "PPL",
    "ifr": "IFR",
    "instrument": "IFR",
    "cpl": "CPL",
    "commercial": "CPL",
    "commercial pilot": "CPL",
    "cfi": "CFI",
    "instructor": "CFI",
}

# Legacy identifier fragments, checked in this order
IDENTIFIER_PATTERNS = (
    ("PPL", ("p1_", "p2_", "p3_", "p4_", "pre_solo", "solo")),
    ("IFR", ("i1_", "i2_", "i3_", "i4_", "i5_")),
    ("CPL", ("c1_", "c2_", "c3_")),
    ("Review", ("review",)),
)

# Canonical category -> (ground school flag, written test flag) on Student
MILESTONE_FIELDS = {
    "PPL": ("ppl_ground_school_completed", "ppl_written_test_completed"),
    "IFR": ("instrument_ground_school_completed", "instrument_written_test_completed"),
    "CPL": ("commercial_ground_school_completed", "commercial_written_test_completed"),
    "CFI": ("cfi_ground_school_completed", "cfi_written_test_completed"),
}

CHECKLIST_SCALE = 83.0
REVIEW_CHECKLIST_SCALE = 100.0
GROUND_SCHOOL_BONUS = 15.0
WRITTEN_TEST_BONUS = 2.0

# (checklist, documents, personal info)
STANDARD_WEIGHTS = (0.70, 0.15, 0.15)
REVIEW_WEIGHTS = (0.85, 0.0, 0.15)

PERSONAL_INFO_FIELDS = ("first_name", "last_name", "email", "telephone", "home_address")


class AssignmentProgress(BaseModel):
    """Completion of one assignment."""

    assignment_id: str
    template_id: str
    template_name: str | None = None
    category: str | None = None
    completed_items: int
    total_items: int
    completion: float
    is_complete: bool
    template_resolved: bool


class ProgressSummary(BaseModel):
    """Everything a progress screen shows for one student."""

    student_id: str
    category: str | None = None
    category_progress: float = Field(ge=0.0, le=1.0)
    weighted_progress: float = Field(ge=0.0, le=1.0)
    checklist_score: float
    document_score: float
    personal_info_score: float
    completed_items: int
    total_items: int
    total_dual_given_hours: float
    assignments: list[AssignmentProgress] = Field(default_factory=list)


# ============================================================================
# Categories
# ============================================================================


def normalize_category(category: str | None) -> str | None:
    """
    Fold category spellings to a canonical form.

    Matching is case-insensitive and ignores surrounding whitespace. Unknown
    categories are returned unchanged.

    Examples:
        >>> normalize_category(" REVIEWS ")
        'Review'
        >>> normalize_category("Private Pilot")
        'PPL'
        >>> normalize_category("Aerobatics")
        'Aerobatics'
    """
    if category is None:
        return None
    return CATEGORY_SYNONYMS.get(category.strip().lower(), category)


def categories_match(first: str | None, second: str | None) -> bool:
    """Check whether two category strings name the same category."""
    if first is None or second is None:
        return False
    return normalize_category(first) == normalize_category(second)


def infer_category_from_identifier(identifier: str | None) -> str | None:
    """
    Infer a canonical category from a legacy template identifier.

    Examples:
        >>> infer_category_from_identifier("default_p1_l1")
        'PPL'
        >>> infer_category_from_identifier("default_i3_l2")
        'IFR'
        >>> infer_category_from_identifier("custom_checklist") is None
        True
    """
    if not identifier:
        return None
    lowered = identifier.lower()
    for category, fragments in IDENTIFIER_PATTERNS:
        if any(fragment in lowered for fragment in fragments):
            return category
    return None


def assignment_category(assignment: Assignment, library: "TemplateLibrary") -> str | None:
    """Canonical category of an assignment: template first, legacy identifier second."""
    template = library.resolve(assignment.template_id, assignment.template_identifier)
    if template is not None:
        return normalize_category(template.category)
    return infer_category_from_identifier(assignment.template_identifier)


def assignment_matches_category(
    assignment: Assignment, category: str, library: "TemplateLibrary"
) -> bool:
    """Check whether an assignment belongs to a category."""
    target = normalize_category(category)
    template = library.resolve(assignment.template_id, assignment.template_identifier)
    if template is not None and categories_match(template.category, target):
        return True
    return infer_category_from_identifier(assignment.template_identifier) == target


def category_assignments(
    student: Student, category: str, library: "TemplateLibrary"
) -> list[Assignment]:
    """All of a student's assignments in a category."""
    return [a for a in student.assignments if assignment_matches_category(a, category, library)]


def auto_detect_category(student: Student, library: "TemplateLibrary") -> str | None:
    """
    Most common category among the student's assignments.

    Returns None when the student has no assignments, and "PPL" when none of
    the assignments has a recognizable category.
    """
    if not student.assignments:
        return None

    counts: Counter[str] = Counter()
    for assignment in student.assignments:
        category = assignment_category(assignment, library)
        if category is not None:
            counts[category] += 1

    if not counts:
        return DEFAULT_CATEGORY
    return counts.most_common(1)[0][0]


def active_category(student: Student, library: "TemplateLibrary") -> str | None:
    """The manually assigned category, else the auto-detected one."""
    return student.assigned_category or auto_detect_category(student, library)


# ============================================================================
# Assignment completion
# ============================================================================


def assignment_counts(assignment: Assignment, library: "TemplateLibrary") -> tuple[int, int]:
    """
    Count (completed, total) items of an assignment.

    When the template resolves, the template's items are the denominator and
    orphaned progress records are ignored. Otherwise the stored progress
    records are all we have.
    """
    template = library.resolve(assignment.template_id, assignment.template_identifier)
    if template is None:
        completed = sum(1 for p in assignment.item_progress if p.is_complete)
        return completed, len(assignment.item_progress)

    item_ids = template.item_ids
    completed = sum(
        1 for p in assignment.item_progress if p.is_complete and p.template_item_id in item_ids
    )
    return completed, len(item_ids)


def assignment_completion(assignment: Assignment, library: "TemplateLibrary") -> float:
    """Fraction of items complete, 0.0 for an empty assignment."""
    completed, total = assignment_counts(assignment, library)
    if total == 0:
        return 0.0
    return completed / total


def is_assignment_complete(assignment: Assignment, library: "TemplateLibrary") -> bool:
    """An assignment with no items is never complete."""
    completed, total = assignment_counts(assignment, library)
    return total > 0 and completed == total


def progress_for_category(category: str, student: Student, library: "TemplateLibrary") -> float:
    """
    Item-weighted completion across every assignment in a category.

    Args:
        category: Category name in any spelling
        student: Student snapshot including assignments
        library: Template library

    Returns:
        Completed items over total items, 0.0 when nothing matches
    """
    completed = total = 0
    for assignment in category_assignments(student, category, library):
        done, count = assignment_counts(assignment, library)
        completed += done
        total += count

    if total == 0:
        return 0.0
    return completed / total


# ============================================================================
# Sub-scores (0-100)
# ============================================================================


def checklist_progress_for_category(
    category: str, student: Student, library: "TemplateLibrary"
) -> float:
    """
    Mean assignment completion scaled to 83, or to 100 for Review.

    Assignments with no items count as 0 % rather than being skipped.
    """
    assignments = category_assignments(student, category, library)
    if not assignments:
        return 0.0

    average = sum(assignment_completion(a, library) for a in assignments) / len(assignments)
    if normalize_category(category) == REVIEW_CATEGORY:
        return average * REVIEW_CHECKLIST_SCALE
    return average * CHECKLIST_SCALE


def category_goal_progress(category: str, student: Student, library: "TemplateLibrary") -> float:
    """Checklist sub-score plus milestone bonuses, capped at 100."""
    progress = checklist_progress_for_category(category, student, library)

    milestones = MILESTONE_FIELDS.get(normalize_category(category) or "")
    if milestones is not None:
        ground_school, written_test = milestones
        if getattr(student, ground_school):
            progress += GROUND_SCHOOL_BONUS
        if getattr(student, written_test):
            progress += WRITTEN_TEST_BONUS

    return min(100.0, progress)


def document_progress(student: Student, library: "TemplateLibrary") -> float:
    """
    Share of required documents uploaded (0-100).

    Review students and students without a document store score 100 so the
    weighted score is not penalized.
    """
    if normalize_category(active_category(student, library)) == REVIEW_CATEGORY:
        return 100.0
    if student.documents is None:
        return 100.0

    uploaded = {doc for doc in student.documents if doc in REQUIRED_DOCUMENT_TYPES}
    return len(uploaded) / len(REQUIRED_DOCUMENT_TYPES) * 100.0


def personal_info_progress(student: Student) -> float:
    """20 points for each filled-in personal field (0-100)."""
    return sum(20.0 for field in PERSONAL_INFO_FIELDS if getattr(student, field))


# ============================================================================
# Weighted progress
# ============================================================================


def overall_progress(student: Student, library: "TemplateLibrary") -> float:
    """
    Weighted progress over every assignment, ignoring categories.

    Used when no category can be determined.
    """
    completed = total = 0
    for assignment in student.assignments:
        done, count = assignment_counts(assignment, library)
        completed += done
        total += count

    if total == 0:
        return 0.0

    checklist = completed / total
    personal = personal_info_progress(student) / 100.0
    if normalize_category(active_category(student, library)) == REVIEW_CATEGORY:
        checklist_weight, _, personal_weight = REVIEW_WEIGHTS
        return checklist * checklist_weight + personal * personal_weight

    checklist_weight, document_weight, personal_weight = STANDARD_WEIGHTS
    documents = document_progress(student, library) / 100.0
    return checklist * checklist_weight + documents * document_weight + personal * personal_weight


def weighted_category_progress(student: Student, library: "TemplateLibrary") -> float:
    """
    Blended progress for the student's active category (0-1).

    Review: 85 % checklist + 15 % personal info. Everything else: 70 %
    checklist + 15 % documents + 15 % personal info. The checklist part
    already carries the milestone bonuses.

    If every assignment of the category is fully complete and personal info
    (and, outside Review, documents) are at 100, the result is exactly 1.0
    whatever the weighted sum says.
    """
    category = active_category(student, library)
    if category is None:
        return overall_progress(student, library)

    is_review = normalize_category(category) == REVIEW_CATEGORY
    goal = category_goal_progress(category, student, library)
    documents = document_progress(student, library)
    personal = personal_info_progress(student)

    if is_review:
        checklist_weight, _, personal_weight = REVIEW_WEIGHTS
        weighted = goal * checklist_weight + personal * personal_weight
    else:
        checklist_weight, document_weight, personal_weight = STANDARD_WEIGHTS
        weighted = (
            goal * checklist_weight + documents * document_weight + personal * personal_weight
        )

    assignments = category_assignments(student, category, library)
    if assignments:
        checklists_done = all(is_assignment_complete(a, library) for a in assignments)
    else:
        checklists_done = not student.assignments

    if checklists_done and personal >= 100.0 and (is_review or documents >= 100.0):
        return 1.0

    return min(1.0, weighted / 100.0)


# ============================================================================
# Summaries
# ============================================================================


def total_dual_given_hours(student: Student) -> float:
    """Dual instruction given across all assignments."""
    return sum(a.dual_given_hours for a in student.assignments)


def summarize_progress(student: Student, library: "TemplateLibrary") -> ProgressSummary:
    """
    Compute every progress number for a student in one pass.

    Args:
        student: Student snapshot including assignments
        library: Template library

    Returns:
        ProgressSummary
    """
    category = active_category(student, library)

    rows: list[AssignmentProgress] = []
    completed_items = total_items = 0
    for assignment in student.assignments:
        template = library.resolve(assignment.template_id, assignment.template_identifier)
        done, count = assignment_counts(assignment, library)
        completed_items += done
        total_items += count
        rows.append(
            AssignmentProgress(
                assignment_id=assignment.id,
                template_id=assignment.template_id,
                template_name=template.name if template else None,
                category=assignment_category(assignment, library),
                completed_items=done,
                total_items=count,
                completion=done / count if count else 0.0,
                is_complete=count > 0 and done == count,
                template_resolved=template is not None,
            )
        )

    return ProgressSummary(
        student_id=student.id,
        category=normalize_category(category),
        category_progress=progress_for_category(category, student, library) if category else 0.0,
        weighted_progress=weighted_category_progress(student, library),
        checklist_score=category_goal_progress(category, student, library) if category else 0.0,
        document_score=document_progress(student, library),
        personal_info_score=personal_info_progress(student),
        completed_items=completed_items,
        total_items=total_items,
        total_dual_given_hours=total_dual_given_hours(student),
        assignments=rows,
    )
