from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from resumeai.core.auth_dependency import SessionContext, get_current_session, get_db
from resumeai.schemas.profile import (
    AchievementItem,
    EducationItem,
    PersonalInfo,
    ProfileResponse,
    ProfileStatusResponse,
    ProjectItem,
    SkillsPayload,
    WorkExperienceItem,
)
from resumeai.services import profile_service

router = APIRouter(prefix="/profile", tags=["Profile"])


def _empty_profile(session: SessionContext) -> dict:
    return {"personal": {"email": session.email}}


def _profile_or_empty(db: Session, session: SessionContext) -> dict:
    return profile_service.get_profile(db, session.user_id) or _empty_profile(session)


# ✅ FULL PROFILE
@router.get("", response_model=ProfileResponse, response_model_by_alias=False)
def get_profile(
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    return _profile_or_empty(db, session)


@router.get("/status", response_model=ProfileStatusResponse)
def profile_status(
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    return {"complete": profile_service.is_profile_complete(db, session.user_id)}


# ✅ SECTION SAVES (each one replaces the whole section)
@router.put("/personal", response_model=ProfileResponse, response_model_by_alias=False)
def save_personal(
    payload: PersonalInfo,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    profile_service.save_personal_info(db, session, payload.model_dump())
    return _profile_or_empty(db, session)


@router.put("/experience", response_model=ProfileResponse, response_model_by_alias=False)
def save_experience(
    items: List[WorkExperienceItem],
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    profile_service.save_section(db, session.user_id, "experience", [i.model_dump() for i in items])
    return _profile_or_empty(db, session)


@router.put("/education", response_model=ProfileResponse, response_model_by_alias=False)
def save_education(
    items: List[EducationItem],
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    profile_service.save_section(db, session.user_id, "education", [i.model_dump() for i in items])
    return _profile_or_empty(db, session)


@router.put("/projects", response_model=ProfileResponse, response_model_by_alias=False)
def save_projects(
    items: List[ProjectItem],
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    profile_service.save_section(db, session.user_id, "projects", [i.model_dump() for i in items])
    return _profile_or_empty(db, session)


@router.put("/achievements", response_model=ProfileResponse, response_model_by_alias=False)
def save_achievements(
    items: List[AchievementItem],
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    profile_service.save_section(db, session.user_id, "achievements", [i.model_dump() for i in items])
    return _profile_or_empty(db, session)


@router.put("/skills", response_model=ProfileResponse, response_model_by_alias=False)
def save_skills(
    payload: SkillsPayload,
    session: SessionContext = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    profile_service.save_skills(db, session.user_id, payload.skills)
    return _profile_or_empty(db, session)
