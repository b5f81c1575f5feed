from unittest.mock import AsyncMock, MagicMock, patch

import openai
import pytest
from fastapi import status
from fastapi.testclient import TestClient

import llm_interaction
import schemas

ANALYSIS = schemas.ResumeAnalysis(
    summary="Seasoned GHL builder.",
    skills=["Workflows", "Funnels"],
    experience_years=5,
    strengths=["Automation"],
    areas_for_improvement=["Reporting"],
    job_titles=["GHL Specialist"],
)

MATCH = schemas.MatchResult(
    score=82,
    matching_skills=["Workflows"],
    missing_skills=["API"],
    reasoning="Strong automation background.",
    recommendations=["Learn the API"],
)


# --- analyze-resume --- #
def test_analyze_resume(test_client: TestClient):
    with patch(
        "logic.llm_interaction.analyze_resume", new_callable=AsyncMock, return_value=ANALYSIS
    ) as mock_analyze:
        response = test_client.post("/api/ai/analyze-resume", json={"resumeText": "Resume..."})

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"analysis": ANALYSIS.model_dump(), "success": True}
    mock_analyze.assert_awaited_once_with("Resume...")


def test_analyze_resume_requires_text(test_client: TestClient):
    with patch("logic.llm_interaction.analyze_resume", new_callable=AsyncMock) as mock_analyze:
        response = test_client.post("/api/ai/analyze-resume", json={"resumeText": ""})

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Resume text is required"}
    mock_analyze.assert_not_awaited()


def test_analyze_resume_provider_error_is_500(test_client: TestClient):
    with patch(
        "logic.llm_interaction.analyze_resume",
        new_callable=AsyncMock,
        side_effect=openai.OpenAIError("rate limited"),
    ):
        response = test_client.post("/api/ai/analyze-resume", json={"resumeText": "Resume..."})

    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json() == {"error": "Failed to analyze resume"}


# --- enhance-description --- #
def test_enhance_description_defaults_industry(test_client: TestClient):
    with patch(
        "logic.llm_interaction.enhance_job_description",
        new_callable=AsyncMock,
        return_value="Enhanced!",
    ) as mock_enhance:
        response = test_client.post(
            "/api/ai/enhance-description",
            json={"description": "Build funnels", "jobTitle": "GHL Dev"},
        )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "enhanced_description": "Enhanced!",
        "original_description": "Build funnels",
    }
    mock_enhance.assert_awaited_once_with("Build funnels", "GHL Dev", "GoHighLevel")


def test_enhance_description_missing_title(test_client: TestClient):
    response = test_client.post("/api/ai/enhance-description", json={"description": "x"})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"error": "Description and job title are required"}


def test_enhance_description_provider_error(test_client: TestClient):
    with patch(
        "logic.llm_interaction.enhance_job_description",
        new_callable=AsyncMock,
        side_effect=openai.OpenAIError("down"),
    ):
        response = test_client.post(
            "/api/ai/enhance-description", json={"description": "x", "jobTitle": "y"}
        )
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json() == {"error": "Failed to enhance description"}


# --- match-job --- #
def test_match_job_defaults_skill_lists(test_client: TestClient):
    with patch(
        "logic.llm_interaction.calculate_match_score", new_callable=AsyncMock, return_value=MATCH
    ) as mock_match:
        response = test_client.post(
            "/api/ai/match-job",
            json={
                "jobDescription": "Build funnels",
                "jobTitle": "GHL Dev",
                "candidateResume": "Resume...",
            },
        )

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"match": MATCH.model_dump(), "success": True}
    kwargs = mock_match.call_args.kwargs
    assert kwargs["required_skills"] == []
    assert kwargs["candidate_skills"] == []


@pytest.mark.parametrize("missing", ["jobDescription", "jobTitle", "candidateResume"])
def test_match_job_missing_required(test_client: TestClient, missing):
    payload = {"jobDescription": "d", "jobTitle": "t", "candidateResume": "r"}
    del payload[missing]
    response = test_client.post("/api/ai/match-job", json=payload)
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_match_job_provider_error(test_client: TestClient):
    with patch(
        "logic.llm_interaction.calculate_match_score",
        new_callable=AsyncMock,
        side_effect=openai.OpenAIError("down"),
    ):
        response = test_client.post(
            "/api/ai/match-job",
            json={"jobDescription": "d", "jobTitle": "t", "candidateResume": "r"},
        )
    assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert response.json() == {"error": "Failed to calculate job match"}


# --- llm_interaction --- #
@pytest.mark.asyncio
async def test_enhance_job_description_falls_back_to_raw_text():
    with patch("llm_interaction.call_llm_text", new_callable=AsyncMock, return_value=None):
        result = await llm_interaction.enhance_job_description("raw text", "GHL Dev")
    assert result == "raw text"


@pytest.mark.asyncio
async def test_call_llm_uses_structured_output():
    completion = MagicMock()
    completion.choices = [MagicMock()]
    completion.choices[0].message.parsed = MATCH
    client = MagicMock()
    client.chat.completions.parse = AsyncMock(return_value=completion)

    with patch("llm_interaction.get_client", return_value=client):
        result = await llm_interaction.calculate_match_score("d", "t", ["a"], "r", ["b"])

    assert result == MATCH
    call_kwargs = client.chat.completions.parse.call_args.kwargs
    assert call_kwargs["response_format"] is schemas.MatchResult
    assert call_kwargs["model"] == llm_interaction.MODEL_CONFIG["job_match"]["model"]
