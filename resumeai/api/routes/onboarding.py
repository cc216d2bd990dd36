from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from resumeai.core.auth_dependency import SessionContext, get_current_session, get_db
from resumeai.schemas.profile import (
    EducationItem,
    OnboardingStepResponse,
    PersonalInfo,
    ProjectsSectionPayload,
    SkillsPayload,
    WorkExperienceItem,
)
from resumeai.services.onboarding_service import OnboardingSection, save_onboarding_section

router = APIRouter(prefix="/onboarding", tags=["Onboarding"])

_experience_items = TypeAdapter(List[WorkExperienceItem])
_education_items = TypeAdapter(List[EducationItem])


def _normalise_payload(section: OnboardingSection, body: Dict[str, Any]) -> Dict[str, Any]:
    """Validate the request body for one section and return it with field names."""
    if section == OnboardingSection.PERSONAL:
        return PersonalInfo.model_validate(body).model_dump()
    if section == OnboardingSection.EXPERIENCE:
        return {"items": [i.model_dump() for i in _experience_items.validate_python(body.get("items", []))]}
    if section == OnboardingSection.EDUCATION:
        return {"items": [i.model_dump() for i in _education_items.validate_python(body.get("items", []))]}
    if section == OnboardingSection.SKILLS:
        return SkillsPayload.model_validate(body).model_dump()
    return ProjectsSectionPayload.model_validate(body).model_dump()


# ✅ SAVE ONE ONBOARDING STEP
@router.post("/{section}", response_model=OnboardingStepResponse)
def save_section(
    section: OnboardingSection,
    body: Dict[str, Any] = Body(...),
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    """
    Save one onboarding section. Body shape per section:

    - personal: PersonalInfo
    - experience / education: {"items": [...]}
    - skills: {"skills": "Python, SQL"} or {"skills": ["Python", "SQL"]}
    - projects: {"projects": [...], "achievements": [...]}
    """
    try:
        payload = _normalise_payload(section, body)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.errors(include_url=False, include_context=False))

    next_section = save_onboarding_section(db, session, section, payload)
    return {
        "saved": section.value,
        "next_section": next_section.value if next_section else None,
        "finished": next_section is None,
    }
