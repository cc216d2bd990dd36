"""
Resume content generation via the LLM provider.

The model is asked for one JSON object; the reply is parsed (markdown code
fences tolerated) and validated against GeneratedResumeContent before it is
used anywhere else.
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from openai import APIConnectionError, APITimeoutError, RateLimitError, InternalServerError
from pydantic import ValidationError

from resumeai.core import config
from resumeai.core.errors import CollaboratorError
from resumeai.core.retry import retry_call
from resumeai.llm.provider import LLMProvider
from resumeai.schemas.generation import GeneratedResumeContent

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert ATS resume optimizer that helps job seekers tailor "
    "their resumes to specific job descriptions."
)

TEMPERATURE = 0.5

# Transient provider failures worth another attempt
RETRYABLE_ERRORS = (APIConnectionError, APITimeoutError, RateLimitError, InternalServerError)


def build_prompt(job_description: str, profile_record: Dict[str, Any]) -> str:
    return f"""
Create an ATS-optimized resume based on the following information:

JOB DESCRIPTION:
{job_description}

CANDIDATE PROFILE:
{json.dumps(profile_record, indent=2, default=str)}

I need you to:
1. Extract 10 relevant keywords from the job description
2. Generate a professional summary (max 3 sentences) tailored to match the job
3. Calculate an ATS match score (0-100) based on keyword matches and profile strength
4. Provide 5 specific improvement suggestions for the resume
5. Highlight which skills from the candidate's profile match the job description
6. Add quantifiable achievements (with numbers/percentages) to work experiences where applicable

Return the response as a JSON object with the following structure:
{{
  "keywordMatches": ["keyword1", "keyword2"],
  "atsScore": 85,
  "professionalSummary": "...",
  "suggestions": ["suggestion1", "suggestion2"],
  "highlightedSkills": ["skill1", "skill2"],
  "enhancedExperiences": [{{"company": "...", "position": "...", "start_date": "...", "end_date": "...", "description": "..."}}],
  "enhancedEducation": [{{"institution": "...", "degree": "...", "start_date": "...", "end_date": "...", "description": "..."}}],
  "enhancedProjects": [{{"name": "...", "description": "...", "url": "..."}}]
}}
"""


def _parse_json_response(text: str) -> Dict[str, Any]:
    """
    Parse the JSON object in an LLM reply.

    Raises:
        ValueError: No JSON object could be decoded
    """
    json_match = re.search(r"```(?:json)?\s*(\{.*\})\s*```", text, re.DOTALL)
    candidate = json_match.group(1) if json_match else text.strip()
    data = json.loads(candidate)
    if not isinstance(data, dict):
        raise ValueError("Expected a JSON object")
    return data


class ContentGenerator(ABC):
    """Produces tailored resume content for a job description."""

    @abstractmethod
    def generate(self, job_description: str, profile_record: Dict[str, Any]) -> GeneratedResumeContent:
        """
        Raises:
            CollaboratorError: The generator failed or returned unusable output
        """
        pass


class LLMContentGenerator(ContentGenerator):
    """Content generator backed by an LLMProvider."""

    def __init__(
        self,
        provider: LLMProvider,
        model: Optional[str] = None,
        retry_attempts: Optional[int] = None,
    ):
        self.provider = provider
        self.model = model or config.OPENAI_MODEL
        self.retry_attempts = retry_attempts or config.COLLABORATOR_RETRY_ATTEMPTS

    def _complete(self, prompt: str) -> str:
        response = self.provider.chat(
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            model=self.model,
            temperature=TEMPERATURE,
            json_mode=True,
        )
        logger.info(
            f"Content generated: model={response.model}, tokens_in={response.tokens_in}, "
            f"tokens_out={response.tokens_out}, cost=${response.cost_estimate:.5f}"
        )
        return response.content

    def generate(self, job_description: str, profile_record: Dict[str, Any]) -> GeneratedResumeContent:
        prompt = build_prompt(job_description, profile_record)
        try:
            text = retry_call(
                lambda: self._complete(prompt),
                attempts=self.retry_attempts,
                retry_on=RETRYABLE_ERRORS,
                description="llm.generate_resume_content",
            )
        except Exception as e:
            logger.error(f"Content generation failed: {type(e).__name__}: {e}", exc_info=True)
            raise CollaboratorError("AI service temporarily unavailable. Please try again later.") from e

        try:
            return GeneratedResumeContent.model_validate(_parse_json_response(text))
        except (ValueError, ValidationError) as e:
            logger.warning(f"Unusable content from AI response: {text[:100]}")
            raise CollaboratorError("AI service returned an invalid response") from e


def get_content_generator() -> ContentGenerator:
    """Build the configured content generator."""
    from resumeai.llm.openai_provider import OpenAIProvider

    try:
        provider = OpenAIProvider()
    except ValueError as e:
        raise CollaboratorError(str(e)) from e
    return LLMContentGenerator(provider)
