"""API schemas for services, organizations and providers."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ServiceType(str, Enum):
    IRL = "IRL"
    ONLINE = "ONLINE"
    MIXED = "MIXED"


class ConsumptionType(str, Enum):
    INSTANT = "INSTANT"
    PERIODIC = "PERIODIC"
    PRESTATION = "PRESTATION"


class BillingPlan(str, Enum):
    UNIT = "UNIT"
    USAGE = "USAGE"
    MINUTE = "MINUTE"
    MENSUAL = "MENSUAL"
    ANNUAL = "ANNUAL"
    PROJECT = "PROJECT"


class PaymentMode(str, Enum):
    CREDIT = "CREDIT"
    EUR = "EUR"
    USD = "USD"
    GBP = "GBP"
    CRYPTO = "CRYPTO"


class OrganizationOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    logo: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    sector: Optional[str] = None
    siret: Optional[str] = None
    legal_form: Optional[str] = Field(default=None, alias="legalForm")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)


class ServiceSummary(BaseModel):
    id: int
    title: str
    summary: Optional[str] = None
    lower_price: Optional[float] = Field(default=None, alias="lowerPrice")
    upper_price: Optional[float] = Field(default=None, alias="upperPrice")
    payment_mode: Optional[PaymentMode] = Field(default=None, alias="paymentMode")
    tags: List[str] = Field(default_factory=list)
    is_ai_replaceable: bool = Field(default=False, alias="isAIReplaceable")
    service_type: Optional[ServiceType] = Field(default=None, alias="serviceType")
    consumption_type: Optional[ConsumptionType] = Field(default=None, alias="consumptionType")
    billing_plan: Optional[BillingPlan] = Field(default=None, alias="billingPlan")

    model_config = ConfigDict(populate_by_name=True)


class ServiceOut(ServiceSummary):
    description: Optional[str] = None
    duration: Optional[str] = None
    location: Optional[str] = None
    organization_id: int = Field(alias="organizationId")
    organization: Optional[OrganizationOut] = None
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int = Field(alias="totalPages")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit if limit else 0
        return cls(page=page, limit=limit, total=total, total_pages=total_pages)


class ProviderPagination(Pagination):
    has_next: bool = Field(alias="hasNext")
    has_prev: bool = Field(alias="hasPrev")

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "ProviderPagination":
        base = Pagination.build(page=page, limit=limit, total=total)
        return cls(
            page=page,
            limit=limit,
            total=total,
            total_pages=base.total_pages,
            has_next=page * limit < total,
            has_prev=page > 1,
        )


class ServiceListResponse(BaseModel):
    services: List[ServiceOut]
    pagination: Pagination


class OrganizationWithServices(OrganizationOut):
    services: List[ServiceSummary] = Field(default_factory=list)
    services_count: int = Field(default=0, alias="servicesCount")


class OrganizationListResponse(BaseModel):
    organizations: List[OrganizationWithServices]
    pagination: Pagination


class ProviderOut(BaseModel):
    id: int
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    email: str
    phone: Optional[str] = None
    email_verified: bool = Field(default=False, alias="emailVerified")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    organization: Optional[OrganizationWithServices] = None

    model_config = ConfigDict(populate_by_name=True)


class ProviderListResponse(BaseModel):
    providers: List[ProviderOut]
    pagination: ProviderPagination


class ServiceCreateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    full_description: Optional[str] = Field(default=None, alias="fullDescription")
    price: Optional[float] = None
    duration: Optional[str] = None
    type: Optional[str] = None
    location: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    deliverables: List[str] = Field(default_factory=list)
    replaced_by_ai: bool = Field(default=False, alias="replacedByAI")

    model_config = ConfigDict(populate_by_name=True)


class ServiceCreateResponse(BaseModel):
    message: str
    service: ServiceOut
