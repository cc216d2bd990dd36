"""
Profile store service.

Owns the profile tables and the reconciliation of an edited child collection
(experience, education, projects, achievements) against the persisted rows:

- persisted ids missing from the edited list are deleted
- ids present in both are updated in place
- rows without an id are inserted
- rows whose required fields are blank are never written; a persisted row
  whose required fields were cleared is deleted

Each section is applied in one transaction. A failure rolls the whole section
back and raises SectionSaveError so the client resubmits the section.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from resumeai.core.auth_dependency import SessionContext
from resumeai.core.errors import RowNotFound, SectionSaveError, SectionValidationError
from resumeai.db.models.profile import (
    Achievement,
    Education,
    Profile,
    Project,
    Skill,
    WorkExperience,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SectionSpec:
    """Describes one child section of a profile."""
    name: str
    model: Type
    fields: Sequence[str]
    required: Sequence[str]

    def is_filled(self, row: Dict[str, Any]) -> bool:
        return all(str(row.get(f) or "").strip() for f in self.required)

    def values(self, row: Dict[str, Any]) -> Dict[str, Any]:
        return {f: row.get(f) for f in self.fields}


SECTION_SPECS: Dict[str, SectionSpec] = {
    "experience": SectionSpec(
        name="experience",
        model=WorkExperience,
        fields=("company", "position", "start_date", "end_date", "description"),
        required=("company", "position"),
    ),
    "education": SectionSpec(
        name="education",
        model=Education,
        fields=("institution", "degree", "start_date", "end_date", "description"),
        required=("institution", "degree"),
    ),
    "projects": SectionSpec(
        name="projects",
        model=Project,
        fields=("name", "description", "url"),
        required=("name",),
    ),
    "achievements": SectionSpec(
        name="achievements",
        model=Achievement,
        fields=("title", "description", "date"),
        required=("title",),
    ),
}

PERSONAL_FIELDS = ("name", "email", "mobile", "location", "linkedin_url", "portfolio_url")


@dataclass
class ReconciliationPlan:
    """Persistence operations for one section, one entry per logical row."""
    deletes: List[int] = field(default_factory=list)
    updates: List[Dict[str, Any]] = field(default_factory=list)
    inserts: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def operation_count(self) -> int:
        return len(self.deletes) + len(self.updates) + len(self.inserts)

    def is_empty(self) -> bool:
        return self.operation_count == 0


def get_section_spec(section: str) -> SectionSpec:
    spec = SECTION_SPECS.get(section)
    if not spec:
        raise SectionValidationError(f"Unknown profile section: {section}")
    return spec


def _row_id(row: Union[Dict[str, Any], Any]) -> Optional[int]:
    if isinstance(row, dict):
        return row.get("id")
    return getattr(row, "id", None)


def plan_reconciliation(
    existing: Iterable[Any],
    edited: Sequence[Dict[str, Any]],
    spec: SectionSpec,
) -> ReconciliationPlan:
    """
    Diff the persisted rows of a section against the edited collection.

    Args:
        existing: Persisted rows (ORM objects or dicts with an id)
        edited: Edited rows as dicts; rows without an id are new
        spec: Section description (fields and required fields)

    Returns:
        ReconciliationPlan with deletes (ids), updates (dicts with id) and inserts

    Raises:
        RowNotFound: An edited row references an id this profile does not own
        SectionValidationError: The same id appears twice in the edited list
    """
    existing_ids = [_row_id(row) for row in existing if _row_id(row) is not None]
    owned = set(existing_ids)

    plan = ReconciliationPlan()
    retained = set()

    for row in edited:
        row_id = row.get("id")
        if row_id is None:
            if spec.is_filled(row):
                plan.inserts.append(spec.values(row))
            continue

        if row_id not in owned:
            raise RowNotFound(f"{spec.name} entry {row_id} not found", section=spec.name, row_id=row_id)
        if row_id in retained:
            raise SectionValidationError(f"{spec.name} entry {row_id} appears more than once", row_id=row_id)
        retained.add(row_id)

        if spec.is_filled(row):
            values = spec.values(row)
            values["id"] = row_id
            plan.updates.append(values)
        else:
            # Required fields cleared: the user emptied the row, treat it as removed
            plan.deletes.append(row_id)

    plan.deletes.extend(row_id for row_id in existing_ids if row_id not in retained)
    return plan


def apply_reconciliation(db: Session, profile_id: int, plan: ReconciliationPlan, spec: SectionSpec) -> None:
    """
    Execute a reconciliation plan in a single transaction.

    Raises:
        SectionSaveError: Any statement failed; nothing from this section was kept
    """
    model = spec.model
    try:
        if plan.deletes:
            db.query(model).filter(
                model.profile_id == profile_id,
                model.id.in_(plan.deletes),
            ).delete(synchronize_session=False)

        for values in plan.updates:
            changes = {k: v for k, v in values.items() if k != "id"}
            db.query(model).filter(
                model.id == values["id"],
                model.profile_id == profile_id,
            ).update(changes, synchronize_session=False)

        for values in plan.inserts:
            db.add(model(profile_id=profile_id, **values))

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to save {spec.name} for profile_id={profile_id}: {e}", exc_info=True)
        raise SectionSaveError(f"An error occurred while saving your {spec.name}.", section=spec.name) from e

    logger.info(
        f"Saved {spec.name}: profile_id={profile_id}, deleted={len(plan.deletes)}, "
        f"updated={len(plan.updates)}, inserted={len(plan.inserts)}"
    )


def list_section(db: Session, profile_id: int, section: str) -> List[Any]:
    """Rows of one section in insertion order."""
    spec = get_section_spec(section)
    model = spec.model
    return db.query(model).filter(model.profile_id == profile_id).order_by(model.id).all()


def save_section(db: Session, user_id: int, section: str, rows: Sequence[Dict[str, Any]]) -> List[Any]:
    """
    Reconcile one section for a user and return the persisted rows.

    The profile row must exist (personal info is saved first).
    """
    spec = get_section_spec(section)
    profile = _require_profile(db, user_id)

    existing = list_section(db, profile.id, section)
    plan = plan_reconciliation(existing, rows, spec)
    if not plan.is_empty():
        apply_reconciliation(db, profile.id, plan, spec)
    return list_section(db, profile.id, section)


def _require_profile(db: Session, user_id: int) -> Profile:
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        raise SectionValidationError("Please save your personal information first", user_id=user_id)
    return profile


def save_personal_info(db: Session, session: SessionContext, data: Dict[str, Any]) -> Profile:
    """
    Upsert the profile row keyed by the user id.

    The contact email defaults to the account email on first save.
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise SectionValidationError("Name is required")

    profile = db.query(Profile).filter(Profile.id == session.user_id).first()
    created = profile is None
    if created:
        profile = Profile(id=session.user_id)
        db.add(profile)

    for key in PERSONAL_FIELDS:
        if key in data and data[key] is not None:
            setattr(profile, key, data[key])
    profile.name = name
    if not profile.email:
        profile.email = session.email

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to save personal info for user_id={session.user_id}: {e}", exc_info=True)
        raise SectionSaveError("An error occurred while saving your personal information.", section="personal") from e

    db.refresh(profile)
    logger.info(f"Personal info {'created' if created else 'updated'}: user_id={session.user_id}")
    return profile


def parse_skills(skills: Union[str, Sequence[str], None]) -> List[str]:
    """
    Normalise skills input to a clean list.

    Accepts "a, b, c" or ["a", "b"]. Blank entries are dropped and duplicates are
    removed case-insensitively, keeping the first spelling.
    """
    if skills is None:
        return []
    if isinstance(skills, str):
        parts = skills.split(",")
    else:
        parts = list(skills)

    seen = set()
    result = []
    for part in parts:
        name = str(part).strip()
        if not name:
            continue
        folded = name.casefold()
        if folded in seen:
            continue
        seen.add(folded)
        result.append(name)
    return result


def flatten_skills(rows: Iterable[Any]) -> str:
    return ", ".join(row.name if hasattr(row, "name") else str(row) for row in rows)


def save_skills(db: Session, user_id: int, skills: Union[str, Sequence[str], None]) -> List[str]:
    """Replace the stored skills with the parsed input in one transaction."""
    profile = _require_profile(db, user_id)
    names = parse_skills(skills)

    try:
        db.query(Skill).filter(Skill.profile_id == profile.id).delete(synchronize_session=False)
        for name in names:
            db.add(Skill(profile_id=profile.id, name=name))
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to save skills for user_id={user_id}: {e}", exc_info=True)
        raise SectionSaveError("An error occurred while saving your skills.", section="skills") from e

    logger.info(f"Saved skills: user_id={user_id}, count={len(names)}")
    return names


def list_skills(db: Session, profile_id: int) -> List[str]:
    return [row.name for row in db.query(Skill).filter(Skill.profile_id == profile_id).order_by(Skill.id).all()]


def _row_to_dict(row: Any, spec: SectionSpec) -> Dict[str, Any]:
    data = {"id": row.id}
    for f in spec.fields:
        data[f] = getattr(row, f)
    return data


def get_profile(db: Session, user_id: int) -> Optional[Dict[str, Any]]:
    """Load the full profile as plain dicts, or None if it was never saved."""
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        return None

    skills = list_skills(db, profile.id)
    result = {
        "personal": {f: getattr(profile, f) for f in PERSONAL_FIELDS},
        "skills": skills,
        "skills_text": ", ".join(skills),
    }
    for section, spec in SECTION_SPECS.items():
        result[section] = [_row_to_dict(row, spec) for row in list_section(db, profile.id, section)]
    return result


def build_profile_record(db: Session, user_id: int) -> Dict[str, Any]:
    """
    Flatten the profile into the record sent to the content generator.

    Missing values become empty strings or lists.
    """
    profile = get_profile(db, user_id)
    if profile is None:
        profile = {"personal": {}, "skills": []}
        profile.update({section: [] for section in SECTION_SPECS})

    personal = profile["personal"]
    record = {f: personal.get(f) or "" for f in PERSONAL_FIELDS}
    record["experience"] = [{k: v for k, v in row.items() if k != "id"} for row in profile["experience"]]
    record["education"] = [{k: v for k, v in row.items() if k != "id"} for row in profile["education"]]
    record["skills"] = list(profile["skills"])
    record["projects"] = [{k: v for k, v in row.items() if k != "id"} for row in profile["projects"]]
    record["achievements"] = [{k: v for k, v in row.items() if k != "id"} for row in profile["achievements"]]
    return record


def is_profile_complete(db: Session, user_id: int) -> bool:
    """Onboarding is considered done once the profile has a name."""
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    return bool(profile and (profile.name or "").strip())
