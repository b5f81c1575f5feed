import json
from typing import Literal, Optional

import openai
import structlog
from fastapi import Depends, FastAPI, Form, Header, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import (
    HTMLResponse,
    JSONResponse,
    PlainTextResponse,
    RedirectResponse,
    Response,
)
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import crud
import invoices
import logic
import schemas
from auth import AuthUser, get_current_user, get_owned_company, require_owned_company_id
from calculators import extract_job_id_from_slug
from database import create_db_and_tables, get_db
from errors import AppError, AuthError, NotFoundError, UpstreamError, ValidationError
from headers_middleware import CacheControlMiddleware, SecurityHeadersMiddleware
from observability import init_observability
from payments import verify_webhook_signature
from presentation import (
    CookiePreferenceStore,
    CookieSettingsController,
    PromoBanner,
    get_preference_store,
)
from request_id_middleware import RequestIdMiddleware
from settings import Settings, get_settings
from templating import STATIC_DIR, templates

# Initialise observability before creating app
init_observability()
logger = structlog.get_logger(__name__)

# Create DB tables on startup
create_db_and_tables()

app = FastAPI(
    title="GHL Hire",
    description="Backend API for the GHL Hire job board",
    version="0.1.0",
)

# --- CORS Middleware ---
origins = [
    "http://localhost",
    "http://localhost:3000",
    "http://localhost:8000",
    "http://127.0.0.1",
    "http://127.0.0.1:8000",
    "https://ghlhire.com",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(CacheControlMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIdMiddleware)

# Mount static files directory
app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

ROBOTS_DISALLOW = [
    "/dashboard/",
    "/company/dashboard/",
    "/edit-job/",
    "/job-alerts/",
    "/applications/",
    "/profile/",
    "/post-job/",
]

LATEST_JOBS_LIMIT = 6
SKELETON_CARDS = 3


# --- Error handlers --- #
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("Request failed", error=exc.message, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    logger.warning("Malformed request body", errors=str(exc.errors()))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid request body"}
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


# --- Pages --- #
@app.get("/", response_class=HTMLResponse)
async def read_root(
    request: Request,
    store: CookiePreferenceStore = Depends(get_preference_store),
):
    """Home page. Job cards render as skeletons and load through htmx."""
    banner = PromoBanner(store)
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "banner": banner,
            "banner_message": None if banner.is_dismissed else banner.pick_message(),
            "cookie_settings": CookieSettingsController(store),
            "skeleton_count": SKELETON_CARDS,
        },
    )


@app.get("/partials/latest-jobs", response_class=HTMLResponse)
async def latest_jobs_partial(request: Request, db: Session = Depends(get_db)):
    jobs = crud.get_active_jobs(db, limit=LATEST_JOBS_LIMIT)
    return templates.TemplateResponse(request, "partials/latest_jobs.html", {"jobs": jobs})


@app.get("/partials/cookie-settings", response_class=HTMLResponse)
async def cookie_settings_partial(
    request: Request,
    store: CookiePreferenceStore = Depends(get_preference_store),
):
    controller = CookieSettingsController(store)
    controller.open_settings()
    return templates.TemplateResponse(
        request, "partials/cookie_consent.html", {"cookie_settings": controller}
    )


def _preference_response(request: Request, store: CookiePreferenceStore) -> Response:
    # htmx swaps the partial out; plain form posts go back home
    if request.headers.get("HX-Request"):
        response: Response = HTMLResponse("")
    else:
        response = RedirectResponse(url="/", status_code=status.HTTP_303_SEE_OTHER)
    return store.apply(response)


@app.post("/preferences/promo-banner/dismiss")
async def dismiss_promo_banner(
    request: Request,
    store: CookiePreferenceStore = Depends(get_preference_store),
):
    PromoBanner(store).dismiss()
    return _preference_response(request, store)


@app.post("/preferences/cookies")
async def save_cookie_preferences(
    request: Request,
    action: Literal["accept_all", "reject_all", "save"] = Form("save"),
    analytics: bool = Form(False),
    marketing: bool = Form(False),
    store: CookiePreferenceStore = Depends(get_preference_store),
):
    controller = CookieSettingsController(store)
    if action == "accept_all":
        preferences = controller.accept_all()
    elif action == "reject_all":
        preferences = controller.reject_all()
    else:
        preferences = controller.save(analytics=analytics, marketing=marketing)
    logger.info(
        "Cookie preferences saved",
        analytics=preferences.analytics,
        marketing=preferences.marketing,
    )
    return _preference_response(request, store)


# --- Site policy --- #
@app.get("/robots.txt", response_class=PlainTextResponse, include_in_schema=False)
async def robots(settings: Settings = Depends(get_settings)):
    lines = ["User-agent: *", "Allow: /"]
    lines += [f"Disallow: {prefix}" for prefix in ROBOTS_DISALLOW]
    lines += ["", f"Sitemap: {settings.app_base_url.rstrip('/')}/sitemap.xml"]
    return "\n".join(lines) + "\n"


@app.get("/sign-up", include_in_schema=False)
async def sign_up_redirect():
    return RedirectResponse(url="/signup", status_code=status.HTTP_308_PERMANENT_REDIRECT)


@app.get("/sign-in", include_in_schema=False)
async def sign_in_redirect():
    return RedirectResponse(url="/signin", status_code=status.HTTP_308_PERMANENT_REDIRECT)


# Add route for favicon.ico
@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- AI Endpoints --- #
@app.post("/api/ai/analyze-resume", tags=["AI"])
async def analyze_resume_endpoint(request: schemas.AnalyzeResumeRequest):
    if not request.resume_text:
        raise ValidationError("Resume text is required")

    try:
        analysis = await logic.analyze_resume(request.resume_text)
    except (openai.OpenAIError, UpstreamError) as exc:
        logger.error("Resume analysis failed", error=str(exc))
        raise UpstreamError("Failed to analyze resume") from exc

    return {"analysis": analysis.model_dump(), "success": True}


@app.post("/api/ai/enhance-description", tags=["AI"])
async def enhance_description_endpoint(request: schemas.EnhanceDescriptionRequest):
    if not request.description or not request.job_title:
        raise ValidationError("Description and job title are required")

    try:
        enhanced = await logic.enhance_description(
            request.description, request.job_title, request.industry
        )
    except (openai.OpenAIError, UpstreamError) as exc:
        logger.error("Description enhancement failed", error=str(exc))
        raise UpstreamError("Failed to enhance description") from exc

    return {
        "enhanced_description": enhanced,
        "original_description": request.description,
    }


@app.post("/api/ai/match-job", tags=["AI"])
async def match_job_endpoint(request: schemas.MatchJobRequest):
    if not request.job_description or not request.job_title or not request.candidate_resume:
        raise ValidationError("Job description, title, and candidate resume are required")

    try:
        match = await logic.match_job(request)
    except (openai.OpenAIError, UpstreamError) as exc:
        logger.error("Job match failed", error=str(exc))
        raise UpstreamError("Failed to calculate job match") from exc

    return {"match": match.model_dump(), "success": True}


# --- Account Endpoints --- #
@app.post("/api/auth/create-profile", tags=["Auth"])
async def create_profile_endpoint(
    request: schemas.CreateProfileRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        return logic.create_account_profile(db, current_user, request)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Profile creation failed", user_id=current_user.id, error=str(exc))
        raise UpstreamError("Failed to create profile") from exc


@app.get("/api/user/profile", tags=["User"])
async def get_user_profile(
    current_user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        profile = crud.get_profile_by_user_id(db, current_user.id)
        return logic.profile_summary(profile)
    except SQLAlchemyError as exc:
        logger.error("Failed to fetch profile", user_id=current_user.id, error=str(exc))
        raise UpstreamError("Failed to fetch profile") from exc


@app.get("/api/user/company", tags=["User"])
async def get_user_company(
    current_user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        company = get_owned_company(db, current_user)
        if company is None:
            return {"company": None}
        return {"company": logic.company_summary(db, company)}
    except SQLAlchemyError as exc:
        logger.error("Failed to fetch company", user_id=current_user.id, error=str(exc))
        raise UpstreamError("Failed to fetch company") from exc


# --- Waitlist --- #
@app.post("/api/waitlist", tags=["Waitlist"])
async def join_waitlist_endpoint(
    request: schemas.WaitlistRequest,
    db: Session = Depends(get_db),
):
    try:
        await logic.join_waitlist(db, request.email, request.user_type)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Waitlist insert failed", error=str(exc))
        raise UpstreamError("Failed to join waitlist") from exc
    return {"success": True}


# --- Jobs --- #
@app.get("/api/jobs", tags=["Jobs"])
async def list_jobs(db: Session = Depends(get_db)):
    jobs = crud.get_active_jobs(db)
    return {"jobs": [logic.job_summary(job) for job in jobs]}


@app.get("/api/jobs/{slug}", tags=["Jobs"])
async def get_job_by_slug(slug: str, db: Session = Depends(get_db)):
    job = crud.get_job_by_short_id(db, extract_job_id_from_slug(slug))
    if job is None:
        raise NotFoundError("Job not found")
    return {"job": logic.job_summary(job)}


# --- Invoices --- #
@app.get("/api/invoices/{invoice_id}", tags=["Billing"])
async def get_invoice(
    invoice_id: str,
    format: Optional[str] = None,
    company_id: str = Depends(require_owned_company_id),
    db: Session = Depends(get_db),
):
    invoice = crud.get_invoice(db, invoice_id)
    if invoice is None or invoice.company_id != company_id:
        raise NotFoundError("Invoice not found")

    invoice_data = invoices.assemble_invoice(db, invoice_id)
    if invoice_data is None:
        raise UpstreamError("Failed to generate invoice")

    if format == "json":
        return JSONResponse(content=invoice_data.model_dump(by_alias=True))

    html = invoices.render_invoice_html(invoice_data)
    return HTMLResponse(content=html, media_type="text/html; charset=utf-8")


# --- Payments --- #
@app.post("/api/payments/create-checkout", tags=["Billing"])
async def create_checkout_endpoint(
    request: schemas.CheckoutRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    company = get_owned_company(db, current_user)
    if company is None:
        raise NotFoundError("Company not found")

    logger.info("Creating checkout session", company_id=company.id, plan_id=request.plan_id)
    return await logic.create_checkout(db, company, request, settings.app_base_url)


@app.post("/api/payments/webhook", tags=["Billing"])
async def maya_webhook(
    request: Request,
    x_maya_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    body = await request.body()
    if not verify_webhook_signature(body, x_maya_signature):
        logger.warning("Invalid webhook signature")
        raise AuthError("Invalid signature")

    try:
        event = json.loads(body)
    except ValueError as exc:
        raise ValidationError("Invalid webhook payload") from exc
    if not isinstance(event, dict):
        raise ValidationError("Invalid webhook payload")

    logic.handle_payment_event(db, event)
    return {"received": True}


# --- Application emails --- #
@app.post("/api/email/application-submitted", tags=["Email"])
async def application_submitted_email(
    request: schemas.ApplicationEmailRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    results = await logic.send_application_submitted_emails(
        db, current_user, request.application_id
    )
    return {"success": True, "results": results}


@app.post("/api/email/application-status", tags=["Email"])
async def application_status_email(
    request: schemas.ApplicationStatusEmailRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sent = await logic.send_application_status_email(
        db, current_user, request.application_id, request.status
    )
    return {"success": True, "sent": sent}


# --- Support --- #
@app.post("/api/support/create-ticket", tags=["Support"])
async def create_support_ticket(
    request: schemas.SupportTicketRequest,
    current_user: AuthUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return await logic.create_support_ticket(db, current_user, request)
