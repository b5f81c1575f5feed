import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from database import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    location = Column(String, nullable=True)
    bio = Column(Text, nullable=True)
    resume_url = Column(String, nullable=True)
    skills = Column(JSON, nullable=True)  # list[str]
    experience_years = Column(Integer, nullable=True)
    linkedin_url = Column(String, nullable=True)
    portfolio_url = Column(String, nullable=True)
    profile_photo_url = Column(String, nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    applications = relationship("Application", back_populates="profile")


class Company(Base):
    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=new_uuid)
    user_id = Column(String(36), unique=True, index=True, nullable=False)
    company_name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    logo_url = Column(String, nullable=True)
    website = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    size = Column(String, nullable=True)
    industry = Column(String, nullable=True)
    location = Column(String, nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    jobs = relationship("Job", back_populates="company")
    subscription = relationship("Subscription", back_populates="company", uselist=False)
    invoices = relationship("Invoice", back_populates="company")


class Job(Base):
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=new_uuid)
    company_id = Column(String(36), ForeignKey("companies.id"), index=True, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    requirements = Column(Text, nullable=True)
    benefits = Column(Text, nullable=True)
    location = Column(String, nullable=False, default="Remote")
    job_type = Column(String, nullable=False, default="full-time")
    experience_level = Column(String, nullable=True)
    salary_min = Column(Integer, nullable=True)
    salary_max = Column(Integer, nullable=True)
    salary_currency = Column(String, nullable=False, default="USD")
    remote = Column(Boolean, nullable=False, default=True)
    status = Column(String, nullable=False, default="draft")  # draft|active|paused|closed
    views_count = Column(Integer, nullable=False, default=0)
    applications_count = Column(Integer, nullable=False, default=0)
    is_featured = Column(Boolean, nullable=False, default=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    company = relationship("Company", back_populates="jobs")
    applications = relationship("Application", back_populates="job")


class Application(Base):
    __tablename__ = "applications"

    id = Column(String(36), primary_key=True, default=new_uuid)
    job_id = Column(String(36), ForeignKey("jobs.id"), index=True, nullable=False)
    profile_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    cover_letter = Column(Text, nullable=True)
    resume_url = Column(String, nullable=True)
    status = Column(String, nullable=False, default="new")
    notes = Column(Text, nullable=True)
    applied_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    job = relationship("Job", back_populates="applications")
    profile = relationship("Profile", back_populates="applications")


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, default=new_uuid)
    company_id = Column(String(36), ForeignKey("companies.id"), unique=True, nullable=False)
    plan_type = Column(String, nullable=False, default="free")
    status = Column(String, nullable=False, default="active")
    maya_subscription_id = Column(String, index=True, nullable=True)
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    job_post_limit = Column(Integer, nullable=False, default=1)
    job_posts_used = Column(Integer, nullable=False, default=0)
    featured_job_limit = Column(Integer, nullable=False, default=0)
    team_member_limit = Column(Integer, nullable=False, default=1)
    price_cents = Column(Integer, nullable=False, default=0)
    currency = Column(String, nullable=False, default="USD")
    billing_interval = Column(String, nullable=False, default="month")
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    company = relationship("Company", back_populates="subscription")


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True, default=new_uuid)
    company_id = Column(String(36), ForeignKey("companies.id"), index=True, nullable=False)
    subscription_id = Column(String(36), ForeignKey("subscriptions.id"), nullable=True)
    invoice_number = Column(String, unique=True, nullable=False)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String, nullable=True)
    status = Column(String, nullable=False, default="paid")
    billing_period_start = Column(DateTime(timezone=True), nullable=True)
    billing_period_end = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    line_items = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    company = relationship("Company", back_populates="invoices")
    subscription = relationship("Subscription")


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(String(36), primary_key=True, default=new_uuid)
    company_id = Column(String(36), ForeignKey("companies.id"), index=True, nullable=False)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    transaction_type = Column(String, nullable=False, default="subscription")
    reference_number = Column(String, unique=True, index=True, nullable=False)
    description = Column(String, nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=True)
    maya_checkout_id = Column(String, nullable=True)
    maya_payment_id = Column(String, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    failed_at = Column(DateTime(timezone=True), nullable=True)
    failure_code = Column(String, nullable=True)
    failure_message = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class WaitlistEntry(Base):
    __tablename__ = "waitlist"

    id = Column(String(36), primary_key=True, default=new_uuid)
    email = Column(String, unique=True, index=True, nullable=False)
    user_type = Column(String, nullable=False)  # employer|jobseeker
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SupportTicket(Base):
    __tablename__ = "support_tickets"

    id = Column(String(36), primary_key=True, default=new_uuid)
    ticket_number = Column(String, unique=True, index=True, nullable=False)
    profile_id = Column(String(36), ForeignKey("profiles.id"), index=True, nullable=False)
    subject = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String, nullable=False)
    priority = Column(String, nullable=False, default="medium")
    status = Column(String, nullable=False, default="open")
    n8n_workflow_id = Column(String, nullable=True)
    external_ticket_id = Column(String, nullable=True)
    metadata_ = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
