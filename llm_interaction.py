from functools import lru_cache
from typing import List, Optional, Type, TypeVar

import structlog
from openai import AsyncOpenAI
from pydantic import BaseModel

from errors import UpstreamError
from schemas import MatchResult, ResumeAnalysis
from settings import get_settings

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


@lru_cache()
def get_client() -> AsyncOpenAI:
    settings = get_settings()
    if not settings.openai_api_key:
        logger.error("OPENAI_API_KEY not found in environment variables or .env file.")
        raise UpstreamError("AI provider is not configured")
    return AsyncOpenAI(api_key=settings.openai_api_key)


# --- Model Configuration ---
MODEL_CONFIG = {
    "jd_enhance": {"model": "gpt-4o", "temperature": 0.7, "max_tokens": 1500},
    "resume_analyze": {"model": "gpt-4o", "temperature": 0.3, "max_tokens": 1000},
    "job_match": {"model": "gpt-4o", "temperature": 0.3, "max_tokens": 1000},
}


async def call_llm(
    system_prompt: str,
    user_prompt: str,
    model_config: dict,
    response_model: Type[ModelT],
) -> ModelT:
    """Call the chat API with a structured-output response model."""

    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]

    response = await get_client().chat.completions.parse(
        messages=messages,
        response_format=response_model,
        **model_config,
    )
    parsed = response.choices[0].message.parsed
    if parsed is None:
        raise UpstreamError("AI provider returned no structured output")
    return parsed


async def call_llm_text(system_prompt: str, user_prompt: str, model_config: dict) -> Optional[str]:
    """Call the chat API and return the raw completion text."""

    response = await get_client().chat.completions.create(
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        **model_config,
    )
    return response.choices[0].message.content


# --- Specific LLM Interaction Functions --- #


async def enhance_job_description(
    raw_description: str, job_title: str, industry: str = "GoHighLevel"
) -> str:
    """Rewrite a job description; falls back to the raw text on an empty answer."""

    system_prompt = (
        "You are an expert job description writer who creates compelling, clear, "
        "and inclusive job postings."
    )
    user_prompt = f"""You are an expert job description writer specializing in {industry} positions.

Job Title: {job_title}
Raw Description: {raw_description}

Please enhance this job description to be more compelling, clear, and professional. Include:
1. A strong opening paragraph that sells the opportunity
2. Clear responsibilities in bullet points
3. Required and preferred qualifications
4. Benefits and perks (if mentioned, otherwise suggest industry-standard benefits)
5. Call to action for candidates

Keep the GoHighLevel/marketing automation context in mind. Make it engaging but professional.
Limit to 600-800 words."""

    content = await call_llm_text(system_prompt, user_prompt, MODEL_CONFIG["jd_enhance"])
    return content or raw_description


async def analyze_resume(resume_text: str) -> ResumeAnalysis:
    """Structured assessment of a resume."""

    system_prompt = "You are an expert resume analyzer and career coach."
    user_prompt = f"""Analyze this resume and provide a structured assessment:

{resume_text}

Return a JSON object with:
- summary: Brief 2-3 sentence summary of the candidate
- skills: Array of technical and soft skills identified
- experience_years: Estimated years of professional experience
- strengths: Array of 3-5 key strengths
- areas_for_improvement: Array of 2-3 areas for growth
- job_titles: Array of past job titles"""

    analysis = await call_llm(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        model_config=MODEL_CONFIG["resume_analyze"],
        response_model=ResumeAnalysis,
    )
    logger.info("Successfully analyzed resume", skills=len(analysis.skills))
    return analysis


async def calculate_match_score(
    job_description: str,
    job_title: str,
    required_skills: List[str],
    candidate_resume: str,
    candidate_skills: List[str],
) -> MatchResult:
    """Score (0-100) how well a candidate fits a job."""

    system_prompt = "You are an expert at matching candidates to job opportunities."
    user_prompt = f"""You are a job matching expert. Calculate how well this candidate matches the job:

JOB:
Title: {job_title}
Description: {job_description}
Required Skills: {', '.join(required_skills)}

CANDIDATE:
Resume: {candidate_resume}
Skills: {', '.join(candidate_skills)}

Return a JSON object with:
- score: Match score from 0-100
- matching_skills: Array of skills the candidate has that match job requirements
- missing_skills: Array of required skills the candidate appears to lack
- reasoning: 2-3 sentence explanation of the score
- recommendations: Array of 2-3 suggestions for the candidate"""

    return await call_llm(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        model_config=MODEL_CONFIG["job_match"],
        response_model=MatchResult,
    )
