from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys (the browser client's convention)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- AI request/response models ---
class AnalyzeResumeRequest(CamelModel):
    resume_text: Optional[str] = None


class EnhanceDescriptionRequest(CamelModel):
    description: Optional[str] = None
    job_title: Optional[str] = None
    industry: Optional[str] = None


class MatchJobRequest(CamelModel):
    job_description: Optional[str] = None
    job_title: Optional[str] = None
    required_skills: Optional[List[str]] = None
    candidate_resume: Optional[str] = None
    candidate_skills: Optional[List[str]] = None


class ResumeAnalysis(BaseModel):
    summary: str
    skills: List[str]
    experience_years: int
    strengths: List[str]
    areas_for_improvement: List[str]
    job_titles: List[str]


class MatchResult(BaseModel):
    score: int
    matching_skills: List[str]
    missing_skills: List[str]
    reasoning: str
    recommendations: List[str]


# --- Waitlist / signup ---
class WaitlistRequest(CamelModel):
    email: Optional[str] = None
    user_type: Optional[str] = None


class CreateProfileRequest(CamelModel):
    role: Optional[str] = None
    full_name: Optional[str] = None
    company_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None


# --- Payments ---
class CheckoutRequest(CamelModel):
    plan_id: Optional[str] = None
    company_id: Optional[str] = None
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


# --- Application emails ---
class ApplicationEmailRequest(CamelModel):
    application_id: Optional[str] = None


class ApplicationStatusEmailRequest(CamelModel):
    application_id: Optional[str] = None
    status: Optional[str] = None


# --- Support ---
class SupportTicketRequest(CamelModel):
    profile_id: Optional[str] = None
    subject: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[str] = None
    user_email: Optional[str] = None
    user_name: Optional[str] = None


# --- Invoices ---
class InvoiceLineItem(CamelModel):
    description: str
    quantity: int = 1
    unit_price: float
    total: float


class InvoiceData(CamelModel):
    invoice_number: str
    company_name: str
    company_email: str
    plan_name: str
    amount: float
    currency: str
    billing_period_start: str
    billing_period_end: str
    paid_at: str
    line_items: List[InvoiceLineItem]


# --- Presentation ---
class CookiePreferences(BaseModel):
    essential: Literal[True] = True
    analytics: bool = False
    marketing: bool = False
