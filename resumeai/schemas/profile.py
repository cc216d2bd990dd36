"""
Pydantic schemas for profile and onboarding endpoints.

Client field names used by the web app (startDate, linkedIn, ...) are accepted
as aliases; responses use the snake_case column names.
"""
from typing import Optional, List, Union
from pydantic import BaseModel, Field


class PersonalInfo(BaseModel):
    """Personal details section."""
    name: Optional[str] = Field(default="", max_length=200, description="Full name")
    email: Optional[str] = Field(default=None, description="Contact email (defaults to the account email)")
    mobile: Optional[str] = Field(default="", max_length=50)
    location: Optional[str] = Field(default="", max_length=200)
    linkedin_url: Optional[str] = Field(default="", alias="linkedIn")
    portfolio_url: Optional[str] = Field(default="", alias="portfolio")

    class Config:
        populate_by_name = True
        from_attributes = True
        json_schema_extra = {
            "example": {
                "name": "Jane Doe",
                "email": "jane@example.com",
                "mobile": "555-0100",
                "location": "Bengaluru",
                "linkedin_url": "https://linkedin.com/in/janedoe",
                "portfolio_url": "https://janedoe.dev"
            }
        }


class WorkExperienceItem(BaseModel):
    """One work experience row. Omit id for a new row."""
    id: Optional[int] = None
    company: Optional[str] = ""
    position: Optional[str] = ""
    start_date: Optional[str] = Field(default="", alias="startDate")
    end_date: Optional[str] = Field(default="", alias="endDate")
    description: Optional[str] = ""

    class Config:
        populate_by_name = True
        from_attributes = True


class EducationItem(BaseModel):
    """One education row. Omit id for a new row."""
    id: Optional[int] = None
    institution: Optional[str] = ""
    degree: Optional[str] = ""
    start_date: Optional[str] = Field(default="", alias="startDate")
    end_date: Optional[str] = Field(default="", alias="endDate")
    description: Optional[str] = ""

    class Config:
        populate_by_name = True
        from_attributes = True


class ProjectItem(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = ""
    description: Optional[str] = ""
    url: Optional[str] = ""

    class Config:
        from_attributes = True


class AchievementItem(BaseModel):
    id: Optional[int] = None
    title: Optional[str] = ""
    description: Optional[str] = ""
    date: Optional[str] = ""

    class Config:
        from_attributes = True


class SkillsPayload(BaseModel):
    """Skills as a comma-separated string or a list of names."""
    skills: Union[str, List[str]] = Field(default="", description="e.g. 'Python, SQL, Docker'")

    class Config:
        json_schema_extra = {"example": {"skills": "Python, FastAPI, PostgreSQL"}}


class ProjectsSectionPayload(BaseModel):
    """The last onboarding section carries projects and achievements together."""
    projects: List[ProjectItem] = Field(default_factory=list)
    achievements: List[AchievementItem] = Field(default_factory=list)


class ProfileResponse(BaseModel):
    """Full profile with every section."""
    personal: PersonalInfo
    experience: List[WorkExperienceItem] = Field(default_factory=list)
    education: List[EducationItem] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    skills_text: str = Field("", description="Skills flattened to one comma-separated string")
    projects: List[ProjectItem] = Field(default_factory=list)
    achievements: List[AchievementItem] = Field(default_factory=list)


class ProfileStatusResponse(BaseModel):
    complete: bool = Field(..., description="True once the profile has a name")


class OnboardingStepResponse(BaseModel):
    saved: str = Field(..., description="Section that was saved")
    next_section: Optional[str] = Field(None, description="Next section, null when onboarding is finished")
    finished: bool = False
