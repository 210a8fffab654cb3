"""
Integrity verification for stored assignments.

Checks every assignment against the template library and repairs what can be
repaired without guessing:
- template references that only resolve through the legacy identifier are
  re-pointed to the template id
- template items with no progress record get one (incomplete)
- progress records for items not in the template are reported, not deleted
- assignments whose template does not resolve at all are reported
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ftt.db import commit_or_rollback
from ftt.errors import DataIntegrityError
from ftt.models import StudentModel
from ftt.services.assignment_service import new_item_progress, resolve_template_reference
from ftt.services.student_service import get_student_model
from ftt.services.template_library import TemplateLibrary
from ftt.utils.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass
class IntegrityReport:
    """Outcome of one verification pass."""

    checked_assignments: int = 0
    repointed_assignments: list[str] = field(default_factory=list)
    unresolved_assignments: list[str] = field(default_factory=list)
    created_items: list[str] = field(default_factory=list)
    orphaned_items: list[str] = field(default_factory=list)

    @property
    def repaired(self) -> bool:
        return bool(self.repointed_assignments or self.created_items)

    @property
    def is_clean(self) -> bool:
        return not (
            self.repointed_assignments
            or self.unresolved_assignments
            or self.created_items
            or self.orphaned_items
        )

    def raise_if_unresolved(self) -> None:
        """
        Raises:
            DataIntegrityError: If any assignment or progress record could not be
                tied to a template
        """
        if self.unresolved_assignments or self.orphaned_items:
            raise DataIntegrityError(
                f"{len(self.unresolved_assignments)} unresolved assignments, "
                f"{len(self.orphaned_items)} orphaned items"
            )


async def verify_and_repair(
    session: AsyncSession, library: TemplateLibrary, student_id: str | None = None
) -> IntegrityReport:
    """
    Verify (and where possible repair) assignments against the library.

    Args:
        session: Database session
        library: Template library
        student_id: Restrict to one student (default: all students)

    Returns:
        IntegrityReport

    Raises:
        StudentNotFoundError: If student_id is given and does not exist
        PersistenceError: If repairs cannot be written
    """
    if student_id is not None:
        students = [await get_student_model(session, student_id)]
    else:
        result = await session.execute(
            select(StudentModel).execution_options(populate_existing=True)
        )
        students = list(result.scalars().all())

    report = IntegrityReport()
    now = utcnow()

    for student in students:
        for assignment in student.assignments:
            report.checked_assignments += 1
            original_template_id = assignment.template_id

            template = resolve_template_reference(assignment, library, student.assignments)
            if template is None:
                report.unresolved_assignments.append(assignment.id)
                continue
            if assignment.template_id != original_template_id:
                report.repointed_assignments.append(assignment.id)

            present = {p.template_item_id for p in assignment.item_progress}
            for item in template.items:
                if item.id not in present:
                    progress = new_item_progress(assignment.id, item.id, now)
                    assignment.item_progress.append(progress)
                    report.created_items.append(progress.id)
                    logger.warning(
                        "integrity.item_created assignment_id=%s template_item_id=%s",
                        assignment.id,
                        item.id,
                    )

            for progress in assignment.item_progress:
                if progress.template_item_id not in template.item_ids:
                    report.orphaned_items.append(progress.id)
                    logger.warning(
                        "integrity.orphaned_item assignment_id=%s item_progress_id=%s "
                        "template_item_id=%s",
                        assignment.id,
                        progress.id,
                        progress.template_item_id,
                    )

    if session.dirty or session.new:
        await commit_or_rollback(session, "verify_and_repair")

    logger.info(
        "integrity.checked assignments=%d repointed=%d unresolved=%d created=%d orphaned=%d",
        report.checked_assignments,
        len(report.repointed_assignments),
        len(report.unresolved_assignments),
        len(report.created_items),
        len(report.orphaned_items),
    )
    return report
