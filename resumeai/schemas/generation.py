from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class GenerateResumeRequest(BaseModel):
    job_description: str = Field(..., description="Job description text (at least 50 characters)")

    class Config:
        json_schema_extra = {
            "example": {
                "job_description": "We are hiring a backend engineer with Python, FastAPI and PostgreSQL experience to build payment APIs."
            }
        }


class GeneratedResumeContent(BaseModel):
    """Structured output of the content generator."""
    keywords: List[str] = Field(default_factory=list, alias="keywordMatches")
    ats_score: int = Field(0, alias="atsScore")
    professional_summary: str = Field("", alias="professionalSummary")
    suggestions: List[str] = Field(default_factory=list)
    highlighted_skills: List[str] = Field(default_factory=list, alias="highlightedSkills")
    enhanced_experiences: List[Dict[str, Any]] = Field(default_factory=list, alias="enhancedExperiences")
    enhanced_education: List[Dict[str, Any]] = Field(default_factory=list, alias="enhancedEducation")
    enhanced_projects: List[Dict[str, Any]] = Field(default_factory=list, alias="enhancedProjects")

    @field_validator("ats_score", mode="before")
    @classmethod
    def clamp_score(cls, value):
        try:
            score = int(round(float(value)))
        except (TypeError, ValueError):
            return 0
        return max(0, min(100, score))

    class Config:
        populate_by_name = True


class GenerationResponse(BaseModel):
    job_description_id: int
    subscription_id: int
    resumes_remaining: int
    artifact_key: str
    content: GeneratedResumeContent
    generated_at: datetime


class LatestResumeInfo(BaseModel):
    artifact_key: str
    size_bytes: int
    generated_at: Optional[datetime] = None
