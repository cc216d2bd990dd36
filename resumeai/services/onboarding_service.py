"""
Onboarding section state machine.

Sections are saved in a fixed order. The pointer only moves forward after a
section was persisted; a failed save leaves it where it was. The pointer is
client state: nothing about it is written to the database, and completion is
inferred from the profile itself (see profile_service.is_profile_complete).
"""
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from resumeai.core.auth_dependency import SessionContext
from resumeai.core.errors import InvalidTransition
from resumeai.services import profile_service

logger = logging.getLogger(__name__)


class OnboardingSection(str, Enum):
    PERSONAL = "personal"
    EXPERIENCE = "experience"
    EDUCATION = "education"
    SKILLS = "skills"
    PROJECTS = "projects"


TRANSITIONS: Dict[OnboardingSection, Optional[OnboardingSection]] = {
    OnboardingSection.PERSONAL: OnboardingSection.EXPERIENCE,
    OnboardingSection.EXPERIENCE: OnboardingSection.EDUCATION,
    OnboardingSection.EDUCATION: OnboardingSection.SKILLS,
    OnboardingSection.SKILLS: OnboardingSection.PROJECTS,
    OnboardingSection.PROJECTS: None,
}

FIRST_SECTION = OnboardingSection.PERSONAL


class OnboardingFlow:
    """Single 'current section' pointer over TRANSITIONS."""

    def __init__(self, current: OnboardingSection = FIRST_SECTION):
        self.current: Optional[OnboardingSection] = OnboardingSection(current)

    @property
    def is_finished(self) -> bool:
        return self.current is None

    def save(self, section: OnboardingSection, handler: Callable[[], Any]) -> Optional[OnboardingSection]:
        """
        Run the save handler for the current section and advance on success.

        Raises:
            InvalidTransition: section is not the current one
            Exception: whatever the handler raised; the pointer does not move
        """
        section = OnboardingSection(section)
        if self.current is None:
            raise InvalidTransition("Onboarding is already finished")
        if section != self.current:
            raise InvalidTransition(
                f"Cannot save '{section.value}' while on '{self.current.value}'",
                current=self.current.value,
            )

        handler()
        self.current = TRANSITIONS[section]
        return self.current


def _section_handler(db: Session, session: SessionContext, section: OnboardingSection, payload: Dict[str, Any]):
    if section == OnboardingSection.PERSONAL:
        return lambda: profile_service.save_personal_info(db, session, payload)
    if section == OnboardingSection.EXPERIENCE:
        return lambda: profile_service.save_section(db, session.user_id, "experience", payload.get("items", []))
    if section == OnboardingSection.EDUCATION:
        return lambda: profile_service.save_section(db, session.user_id, "education", payload.get("items", []))
    if section == OnboardingSection.SKILLS:
        return lambda: profile_service.save_skills(db, session.user_id, payload.get("skills"))

    def save_projects_and_achievements():
        profile_service.save_section(db, session.user_id, "projects", payload.get("projects", []))
        profile_service.save_section(db, session.user_id, "achievements", payload.get("achievements", []))

    return save_projects_and_achievements


def save_onboarding_section(
    db: Session,
    session: SessionContext,
    section: OnboardingSection,
    payload: Dict[str, Any],
) -> Optional[OnboardingSection]:
    """
    Persist one onboarding section and return the next one (None when finished).

    The section in the request is taken as the client's current pointer.
    """
    flow = OnboardingFlow(section)
    next_section = flow.save(section, _section_handler(db, session, flow.current, payload))
    logger.info(
        f"Onboarding section saved: user_id={session.user_id}, section={section.value}, "
        f"next={next_section.value if next_section else 'done'}"
    )
    return next_section
