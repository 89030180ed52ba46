"""API routes for the public service catalog, organizations and providers."""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Callable, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status

from ..schemas.catalog import (
    BillingPlan,
    ConsumptionType,
    OrganizationListResponse,
    OrganizationWithServices,
    PaymentMode,
    ProviderListResponse,
    ProviderOut,
    ServiceCreateRequest,
    ServiceCreateResponse,
    ServiceListResponse,
    ServiceOut,
    ServiceType,
)
from ..services.catalog import (
    ServiceFilters,
    create_service,
    get_organization,
    get_provider,
    get_service,
    list_organizations,
    list_providers,
    list_services,
)


def _resolve_get_current_user() -> Callable[..., Any]:  # pragma: no cover
    from ...main import get_current_user as resolved

    return resolved


@lru_cache(maxsize=1)
def _get_current_user_callable() -> Callable[..., Any]:
    return _resolve_get_current_user()


def _get_current_user(authorization: Optional[str] = Header(None)):
    resolved = _get_current_user_callable()
    return resolved(authorization=authorization)


def _split_tags(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/services", response_model=ServiceListResponse)
def read_services(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None),
    tags: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    ai_replaceable: Optional[bool] = Query(None, alias="aiReplaceable"),
    sector: Optional[str] = Query(None),
    service_type: Optional[ServiceType] = Query(None, alias="serviceType"),
    consumption_type: Optional[ConsumptionType] = Query(None, alias="consumptionType"),
    billing_plan: Optional[BillingPlan] = Query(None, alias="billingPlan"),
    payment_mode: Optional[PaymentMode] = Query(None, alias="paymentMode"),
) -> ServiceListResponse:
    filters = ServiceFilters(
        search=search,
        tags=tuple(_split_tags(tags)),
        min_price=min_price,
        max_price=max_price,
        ai_replaceable=ai_replaceable,
        sector=sector,
        service_type=service_type,
        consumption_type=consumption_type,
        billing_plan=billing_plan,
        payment_mode=payment_mode,
    )
    return list_services(filters, page=page, limit=limit)


@router.get("/services/{service_id}", response_model=ServiceOut)
def read_service(service_id: int) -> ServiceOut:
    service = get_service(service_id)
    if service is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Service not found")
    return service


@router.post(
    "/services/create",
    response_model=ServiceCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_service_listing(
    payload: ServiceCreateRequest,
    *,
    current_user=Depends(_get_current_user),
) -> ServiceCreateResponse:
    try:
        service = create_service(current_user, payload)
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return ServiceCreateResponse(message="Service created successfully", service=service)


@router.get("/organizations", response_model=OrganizationListResponse)
def read_organizations(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None),
    sector: Optional[str] = Query(None),
) -> OrganizationListResponse:
    return list_organizations(search=search, sector=sector, page=page, limit=limit)


@router.get("/organizations/{organization_id}", response_model=OrganizationWithServices)
def read_organization(organization_id: int) -> OrganizationWithServices:
    organization = get_organization(organization_id)
    if organization is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")
    return organization


@router.get("/providers", response_model=ProviderListResponse)
def read_providers(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    search: Optional[str] = Query(None),
    sector: Optional[str] = Query(None),
) -> ProviderListResponse:
    return list_providers(search=search, sector=sector, page=page, limit=limit)


@router.get("/providers/{provider_id}", response_model=ProviderOut)
def read_provider(provider_id: int) -> ProviderOut:
    provider = get_provider(provider_id)
    if provider is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Provider not found")
    return provider
