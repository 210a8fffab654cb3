"""
Tests for progress calculation.

These are pure functions over Student snapshots, so students are built in
memory rather than through the database.
"""

import pytest

from ftt.models import Assignment, DocumentType, ItemProgress, Student
from ftt.services.progress_service import (
    active_category,
    assignment_counts,
    auto_detect_category,
    categories_match,
    category_goal_progress,
    checklist_progress_for_category,
    document_progress,
    infer_category_from_identifier,
    is_assignment_complete,
    normalize_category,
    personal_info_progress,
    progress_for_category,
    summarize_progress,
    weighted_category_progress,
)
from ftt.utils.clock import utcnow
from ftt.utils.ids import generate_entity_id

FULL_PERSONAL_INFO = {
    "first_name": "Amelia",
    "last_name": "Earhart",
    "email": "amelia@example.com",
    "telephone": "555-0100",
    "home_address": "1 Hangar Row",
}


def make_assignment(template, completed=0, student_id="s1", template_id=None, identifier=None):
    """Assignment of a template with the first `completed` items done."""
    assignment_id = generate_entity_id()
    now = utcnow()
    return Assignment(
        id=assignment_id,
        student_id=student_id,
        template_id=template_id or template.id,
        template_identifier=identifier if identifier is not None else template.template_identifier,
        assigned_at=now,
        last_modified=now,
        item_progress=[
            ItemProgress(
                id=generate_entity_id(),
                assignment_id=assignment_id,
                template_item_id=item.id,
                is_complete=index < completed,
                completed_at=now if index < completed else None,
                last_modified=now,
            )
            for index, item in enumerate(template.items)
        ],
    )


def make_student(*assignments, **fields):
    now = utcnow()
    data = {"id": "s1", "last_modified": now, "created_at": now, **fields}
    return Student(assignments=list(assignments), **data)


# ============================================================================
# Categories
# ============================================================================


@pytest.mark.parametrize("spelling", ["review", "Review", "REVIEWS", " reviews "])
def test_review_spellings_normalize(spelling):
    """Test that every Review spelling folds to one category."""
    assert normalize_category(spelling) == "Review"


def test_synonyms_fold():
    """Test instrument and commercial synonyms."""
    assert normalize_category("ifr") == normalize_category("Instrument") == "IFR"
    assert normalize_category("commercial") == "CPL"
    assert normalize_category("Aerobatics") == "Aerobatics"
    assert normalize_category(None) is None
    assert categories_match("Reviews", "review")
    assert not categories_match("PPL", None)


def test_infer_category_from_identifier():
    """Test legacy identifier inference."""
    assert infer_category_from_identifier("default_p1_l1") == "PPL"
    assert infer_category_from_identifier("default_i1_l1") == "IFR"
    assert infer_category_from_identifier("default_c1_l1") == "CPL"
    assert infer_category_from_identifier("default_ipc_review") == "Review"
    assert infer_category_from_identifier("my_checklist") is None
    assert infer_category_from_identifier(None) is None


def test_auto_detect_category(library, p1_l1, p1_l2, flight_review):
    """Test majority vote over assignment categories."""
    assert auto_detect_category(make_student(), library) is None

    student = make_student(
        make_assignment(p1_l1), make_assignment(p1_l2), make_assignment(flight_review)
    )
    assert auto_detect_category(student, library) == "PPL"


def test_auto_detect_defaults_to_ppl(library, p1_l1):
    """Test that unrecognizable assignments default to PPL."""
    orphan = make_assignment(p1_l1, template_id="gone", identifier="my_checklist")
    assert auto_detect_category(make_student(orphan), library) == "PPL"


def test_assigned_category_wins(library, p1_l1):
    """Test that a manual category overrides auto-detection."""
    student = make_student(make_assignment(p1_l1), assigned_category="IFR")
    assert active_category(student, library) == "IFR"


# ============================================================================
# progress_for_category
# ============================================================================


def test_progress_for_category_no_match_is_zero(library, p1_l1):
    """Test zero when no assignment matches the category."""
    student = make_student(make_assignment(p1_l1, completed=4))
    assert progress_for_category("IFR", student, library) == 0.0
    assert progress_for_category("PPL", make_student(), library) == 0.0


def test_progress_for_category_is_item_weighted(library, p1_l1, p1_l2, flight_review):
    """Test completed over total items across the category's assignments."""
    student = make_student(
        make_assignment(p1_l1, completed=4),
        make_assignment(p1_l2, completed=1),
        make_assignment(flight_review, completed=3),
    )

    progress = progress_for_category("ppl", student, library)

    assert progress == pytest.approx(5 / 7)
    assert 0.0 <= progress <= 1.0


def test_progress_for_category_same_for_spellings(library, flight_review):
    """Test that category spellings aggregate the same assignments."""
    student = make_student(make_assignment(flight_review, completed=2))
    for spelling in ("review", "Review", "REVIEWS"):
        assert progress_for_category(spelling, student, library) == pytest.approx(2 / 3)


def test_broken_reference_falls_back_to_identifier(library, p1_l1):
    """Test that an unresolvable template still counts toward its inferred category."""
    assignment = make_assignment(p1_l1, completed=1, template_id="gone", identifier="old_p1_l9")
    student = make_student(assignment)

    assert progress_for_category("PPL", student, library) == pytest.approx(1 / 4)


def test_assignment_counts_ignore_orphans(library, p1_l1):
    """Test that progress records for items not in the template are ignored."""
    assignment = make_assignment(p1_l1, completed=2)
    now = utcnow()
    assignment.item_progress.append(
        ItemProgress(
            id="orphan",
            assignment_id=assignment.id,
            template_item_id="removed-item",
            is_complete=True,
            last_modified=now,
        )
    )

    assert assignment_counts(assignment, library) == (2, 4)


def test_empty_template_is_never_complete(library):
    """Test that an assignment with no items is not complete."""
    empty = library.customize(library.find_by_identifier("default_p1_l1").id, items=[])
    assignment = make_assignment(empty)

    assert assignment_counts(assignment, library) == (0, 0)
    assert is_assignment_complete(assignment, library) is False


# ============================================================================
# Sub-scores
# ============================================================================


def test_checklist_scale(library, p1_l1, flight_review):
    """Test the 83 and 100 scales."""
    student = make_student(
        make_assignment(p1_l1, completed=4), make_assignment(flight_review, completed=3)
    )
    assert checklist_progress_for_category("PPL", student, library) == pytest.approx(83.0)
    assert checklist_progress_for_category("Review", student, library) == pytest.approx(100.0)


def test_milestone_bonuses_capped(library, p1_l1):
    """Test ground school and written test bonuses, capped at 100."""
    half = make_student(make_assignment(p1_l1, completed=2), ppl_ground_school_completed=True)
    assert category_goal_progress("PPL", half, library) == pytest.approx(41.5 + 15)

    full = make_student(
        make_assignment(p1_l1, completed=4),
        ppl_ground_school_completed=True,
        ppl_written_test_completed=True,
    )
    assert category_goal_progress("PPL", full, library) == 100.0


def test_document_progress(library, p1_l1, flight_review):
    """Test document completeness counts only required documents."""
    assert document_progress(make_student(make_assignment(p1_l1)), library) == 100.0

    partial = make_student(
        make_assignment(p1_l1),
        documents=[DocumentType.MEDICAL_CERTIFICATE, DocumentType.LOGBOOK],
    )
    assert document_progress(partial, library) == pytest.approx(100 / 3)

    review = make_student(make_assignment(flight_review), documents=[])
    assert document_progress(review, library) == 100.0


def test_personal_info_progress():
    """Test 20 points per filled field."""
    assert personal_info_progress(make_student()) == 0.0
    assert personal_info_progress(make_student(first_name="A", email="a@b.c")) == 40.0
    assert personal_info_progress(make_student(**FULL_PERSONAL_INFO)) == 100.0


# ============================================================================
# weighted_category_progress
# ============================================================================


def test_weighted_standard(library, p1_l1):
    """Test 70/15/15 weighting outside Review."""
    student = make_student(make_assignment(p1_l1, completed=2), **FULL_PERSONAL_INFO)

    # 41.5 * 0.70 + 100 * 0.15 + 100 * 0.15
    assert weighted_category_progress(student, library) == pytest.approx(0.5905)


def test_weighted_review(library, flight_review):
    """Test 85/15 weighting for Review."""
    student = make_student(
        make_assignment(flight_review, completed=1),
        first_name="A",
        last_name="B",
        email="c@d.e",
    )

    # 33.33 * 0.85 + 60 * 0.15
    assert weighted_category_progress(student, library) == pytest.approx(0.37333, rel=1e-4)


def test_override_returns_exactly_one(library, p1_l1, p1_l2):
    """Test that a finished category reads exactly 1.0 whatever the milestones."""
    student = make_student(
        make_assignment(p1_l1, completed=4),
        make_assignment(p1_l2, completed=3),
        **FULL_PERSONAL_INFO,
    )

    # The weighted sum alone would be 0.881
    assert weighted_category_progress(student, library) == 1.0


def test_override_needs_documents_outside_review(library, p1_l1):
    """Test that missing documents block the override outside Review."""
    student = make_student(make_assignment(p1_l1, completed=4), documents=[], **FULL_PERSONAL_INFO)

    assert weighted_category_progress(student, library) == pytest.approx(0.731)


def test_override_needs_personal_info(library, flight_review):
    """Test that incomplete personal info blocks the override."""
    student = make_student(make_assignment(flight_review, completed=3), first_name="A")

    # 100 * 0.85 + 20 * 0.15
    assert weighted_category_progress(student, library) == pytest.approx(0.88)


def test_override_considers_only_active_category(library, p1_l1):
    """Test that incomplete assignments of other categories do not block the override."""
    ifr = library.find_by_identifier("default_i1_l1")
    student = make_student(
        make_assignment(p1_l1, completed=4),
        make_assignment(ifr, completed=0),
        assigned_category="PPL",
        **FULL_PERSONAL_INFO,
    )

    assert weighted_category_progress(student, library) == 1.0


def test_category_without_assignments(library, p1_l1):
    """Test a manual category with no matching assignments gets no override."""
    student = make_student(
        make_assignment(p1_l1, completed=4), assigned_category="IFR", **FULL_PERSONAL_INFO
    )

    assert weighted_category_progress(student, library) == pytest.approx(0.30)


def test_weighted_without_assignments(library):
    """Test a student with nothing assigned."""
    assert weighted_category_progress(make_student(**FULL_PERSONAL_INFO), library) == 0.0


# ============================================================================
# summarize_progress
# ============================================================================


def test_summarize_progress(library, p1_l1, flight_review):
    """Test the one-pass summary."""
    first = make_assignment(p1_l1, completed=2)
    first.dual_given_hours = 1.5
    second = make_assignment(flight_review, completed=3)
    second.dual_given_hours = 0.7
    student = make_student(first, second, **FULL_PERSONAL_INFO)

    summary = summarize_progress(student, library)

    assert summary.category == "PPL"
    assert summary.completed_items == 5
    assert summary.total_items == 7
    assert summary.total_dual_given_hours == pytest.approx(2.2)
    assert summary.category_progress == pytest.approx(0.5)
    assert summary.weighted_progress == pytest.approx(0.5905)
    assert [row.is_complete for row in summary.assignments] == [False, True]
    assert summary.assignments[1].category == "Review"
