from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection

from ...app_context import get_conn
from ..entitlements.models import AccountRole
from ..schemas.catalog import (
    BillingPlan,
    ConsumptionType,
    OrganizationListResponse,
    OrganizationOut,
    OrganizationWithServices,
    Pagination,
    PaymentMode,
    ProviderListResponse,
    ProviderOut,
    ProviderPagination,
    ServiceCreateRequest,
    ServiceListResponse,
    ServiceOut,
    ServiceSummary,
    ServiceType,
)

SUMMARY_MAX_LENGTH = 500
PROVIDER_SERVICE_PREVIEW = 3


@contextmanager
def _managed_connection(conn: Optional[PgConnection] = None):
    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


@dataclass(frozen=True)
class ServiceFilters:
    """Listing filters accepted by ``GET /api/services``."""

    search: Optional[str] = None
    tags: Sequence[str] = field(default_factory=tuple)
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    ai_replaceable: Optional[bool] = None
    sector: Optional[str] = None
    service_type: Optional[ServiceType] = None
    consumption_type: Optional[ConsumptionType] = None
    billing_plan: Optional[BillingPlan] = None
    payment_mode: Optional[PaymentMode] = None


def _like_pattern(term: str) -> str:
    escaped = term.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _where(clauses: List[str]) -> str:
    return " WHERE " + " AND ".join(clauses) if clauses else ""


def _offset(page: int, limit: int) -> int:
    return (max(page, 1) - 1) * limit


def build_service_filters(filters: ServiceFilters) -> Tuple[str, List[Any]]:
    """Translate listing filters into a SQL ``WHERE`` clause and parameters."""

    clauses: List[str] = []
    params: List[Any] = []

    if filters.search and filters.search.strip():
        pattern = _like_pattern(filters.search)
        clauses.append(
            "(s.title ILIKE %s OR s.description ILIKE %s OR s.summary ILIKE %s OR o.name ILIKE %s)"
        )
        params.extend([pattern] * 4)

    tags = [tag for tag in filters.tags if tag]
    if tags:
        clauses.append("s.tags && %s::text[]")
        params.append(tags)

    if filters.min_price is not None:
        clauses.append("s.lower_price >= %s")
        params.append(filters.min_price)

    if filters.max_price is not None:
        clauses.append("s.upper_price <= %s")
        params.append(filters.max_price)

    if filters.ai_replaceable is not None:
        clauses.append("s.is_ai_replaceable = %s")
        params.append(filters.ai_replaceable)

    if filters.sector:
        clauses.append("LOWER(o.sector) = LOWER(%s)")
        params.append(filters.sector)

    for column, value in (
        ("s.service_type", filters.service_type),
        ("s.consumption_type", filters.consumption_type),
        ("s.billing_plan", filters.billing_plan),
        ("s.payment_mode", filters.payment_mode),
    ):
        if value is not None:
            clauses.append(f"{column} = %s")
            params.append(value.value)

    return _where(clauses), params


def build_organization_filters(search: Optional[str], sector: Optional[str]) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    if search and search.strip():
        pattern = _like_pattern(search)
        clauses.append("(o.name ILIKE %s OR o.description ILIKE %s)")
        params.extend([pattern, pattern])
    if sector:
        clauses.append("LOWER(o.sector) = LOWER(%s)")
        params.append(sector)
    return _where(clauses), params


def build_provider_filters(search: Optional[str], sector: Optional[str]) -> Tuple[str, List[Any]]:
    clauses: List[str] = ["a.role = %s"]
    params: List[Any] = [AccountRole.PROVIDER.value]
    if search and search.strip():
        pattern = _like_pattern(search)
        clauses.append(
            "(a.first_name ILIKE %s OR a.last_name ILIKE %s OR a.email ILIKE %s OR o.name ILIKE %s)"
        )
        params.extend([pattern] * 4)
    if sector and sector.strip():
        clauses.append("o.sector ILIKE %s")
        params.append(_like_pattern(sector))
    return _where(clauses), params


def validate_service_payload(payload: ServiceCreateRequest) -> ServiceType:
    """Check a service creation request and return its delivery mode."""

    if not (payload.title or "").strip() or not (payload.description or "").strip():
        raise ValueError("Title and description are required")
    if not (payload.full_description or "").strip():
        raise ValueError("A detailed description is required")
    if payload.price is None or payload.price <= 0:
        raise ValueError("Price must be greater than 0")
    if not (payload.duration or "").strip():
        raise ValueError("Duration is required")
    if payload.type not in {ServiceType.IRL.value, ServiceType.ONLINE.value}:
        raise ValueError("Invalid service type")
    service_type = ServiceType(payload.type)
    if service_type == ServiceType.IRL and not (payload.location or "").strip():
        raise ValueError("Location is required for in-person services")
    return service_type


_ORGANIZATION_COLUMNS = """
    o.id AS org_id,
    o.name AS org_name,
    o.description AS org_description,
    o.logo AS org_logo,
    o.website AS org_website,
    o.email AS org_email,
    o.phone AS org_phone,
    o.address AS org_address,
    o.sector AS org_sector,
    o.siret AS org_siret,
    o.legal_form AS org_legal_form,
    o.created_at AS org_created_at
"""

_SERVICE_SUMMARY_COLUMNS = """
    s.id,
    s.organization_id,
    s.title,
    s.summary,
    s.lower_price,
    s.upper_price,
    s.payment_mode,
    s.tags,
    s.is_ai_replaceable,
    s.service_type,
    s.consumption_type,
    s.billing_plan
"""

_SERVICE_SELECT = f"""
    SELECT
        {_SERVICE_SUMMARY_COLUMNS},
        s.description,
        s.duration,
        s.location,
        s.created_at,
        {_ORGANIZATION_COLUMNS}
    FROM services s
    JOIN organizations o ON o.id = s.organization_id
"""


def _build_organization(row: Dict[str, Any]) -> Optional[OrganizationOut]:
    if row.get("org_id") is None:
        return None
    return OrganizationOut(
        id=row["org_id"],
        name=row["org_name"],
        description=row.get("org_description"),
        logo=row.get("org_logo"),
        website=row.get("org_website"),
        email=row.get("org_email"),
        phone=row.get("org_phone"),
        address=row.get("org_address"),
        sector=row.get("org_sector"),
        siret=row.get("org_siret"),
        legal_form=row.get("org_legal_form"),
        created_at=row.get("org_created_at"),
    )


def _summary_fields(row: Dict[str, Any]) -> Dict[str, Any]:
    return dict(
        id=row["id"],
        title=row["title"],
        summary=row.get("summary"),
        lower_price=row.get("lower_price"),
        upper_price=row.get("upper_price"),
        payment_mode=row.get("payment_mode"),
        tags=list(row.get("tags") or []),
        is_ai_replaceable=bool(row.get("is_ai_replaceable")),
        service_type=row.get("service_type"),
        consumption_type=row.get("consumption_type"),
        billing_plan=row.get("billing_plan"),
    )


def _build_service_summary(row: Dict[str, Any]) -> ServiceSummary:
    return ServiceSummary(**_summary_fields(row))


def _build_service(row: Dict[str, Any]) -> ServiceOut:
    return ServiceOut(
        **_summary_fields(row),
        description=row.get("description"),
        duration=row.get("duration"),
        location=row.get("location"),
        organization_id=row["organization_id"],
        organization=_build_organization(row),
        created_at=row.get("created_at"),
    )


def _with_services(
    organization: OrganizationOut,
    services: List[ServiceSummary],
    *,
    services_count: Optional[int] = None,
) -> OrganizationWithServices:
    return OrganizationWithServices(
        **organization.model_dump(),
        services=services,
        services_count=len(services) if services_count is None else services_count,
    )


def group_services_by_organization(rows: Iterable[Dict[str, Any]]) -> Dict[int, List[ServiceSummary]]:
    grouped: Dict[int, List[ServiceSummary]] = {}
    for row in rows:
        grouped.setdefault(row["organization_id"], []).append(_build_service_summary(row))
    return grouped


def list_services(
    filters: ServiceFilters,
    *,
    page: int = 1,
    limit: int = 10,
    conn: Optional[PgConnection] = None,
) -> ServiceListResponse:
    where_sql, params = build_service_filters(filters)
    with _managed_connection(conn) as (connection, _):
        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
            cursor.execute(
                _SERVICE_SELECT + where_sql + " ORDER BY s.title ASC, s.id ASC LIMIT %s OFFSET %s",
                (*params, limit, _offset(page, limit)),
            )
            rows = cursor.fetchall()
            cursor.execute(
                "SELECT COUNT(*) AS total FROM services s JOIN organizations o ON o.id = s.organization_id"
                + where_sql,
                tuple(params),
            )
            total = int(cursor.fetchone()["total"])

    return ServiceListResponse(
        services=[_build_service(row) for row in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


def get_service(service_id: int, *, conn: Optional[PgConnection] = None) -> Optional[ServiceOut]:
    with _managed_connection(conn) as (connection, _):
        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
            cursor.execute(_SERVICE_SELECT + " WHERE s.id = %s", (service_id,))
            row = cursor.fetchone()
    return _build_service(row) if row else None


def create_service(
    account,
    payload: ServiceCreateRequest,
    *,
    conn: Optional[PgConnection] = None,
) -> ServiceOut:
    """Publish a service listing for the provider's organization."""

    if AccountRole(account.role) != AccountRole.PROVIDER:
        raise PermissionError("Only providers can create services")
    if account.organization_id is None:
        raise PermissionError("You must belong to an organization to create a service")

    service_type = validate_service_payload(payload)
    price = float(payload.price)

    with _managed_connection(conn) as (connection, _):
        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
            cursor.execute(
                """
                INSERT INTO services (
                    organization_id,
                    title,
                    summary,
                    description,
                    service_type,
                    consumption_type,
                    billing_plan,
                    lower_price,
                    upper_price,
                    payment_mode,
                    tags,
                    deliverables,
                    is_ai_replaceable,
                    duration,
                    location
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (
                    account.organization_id,
                    payload.title.strip(),
                    payload.description[:SUMMARY_MAX_LENGTH],
                    payload.full_description.strip(),
                    service_type.value,
                    ConsumptionType.PRESTATION.value,
                    BillingPlan.PROJECT.value,
                    price,
                    price,
                    PaymentMode.EUR.value,
                    [tag.strip() for tag in payload.tags if tag and tag.strip()],
                    [item.strip() for item in payload.deliverables if item and item.strip()],
                    bool(payload.replaced_by_ai),
                    payload.duration.strip(),
                    (payload.location or "").strip() or None,
                ),
            )
            service_id = cursor.fetchone()["id"]
            cursor.execute(_SERVICE_SELECT + " WHERE s.id = %s", (service_id,))
            row = cursor.fetchone()

    if row is None:
        raise RuntimeError("Unable to load created service")
    return _build_service(row)


def list_organizations(
    *,
    search: Optional[str] = None,
    sector: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
    conn: Optional[PgConnection] = None,
) -> OrganizationListResponse:
    where_sql, params = build_organization_filters(search, sector)
    with _managed_connection(conn) as (connection, _):
        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
            cursor.execute(
                f"SELECT {_ORGANIZATION_COLUMNS} FROM organizations o"
                + where_sql
                + " ORDER BY o.name ASC, o.id ASC LIMIT %s OFFSET %s",
                (*params, limit, _offset(page, limit)),
            )
            org_rows = cursor.fetchall()
            cursor.execute("SELECT COUNT(*) AS total FROM organizations o" + where_sql, tuple(params))
            total = int(cursor.fetchone()["total"])

            org_ids = [row["org_id"] for row in org_rows]
            service_rows: List[Dict[str, Any]] = []
            if org_ids:
                cursor.execute(
                    f"SELECT {_SERVICE_SUMMARY_COLUMNS} FROM services s"
                    " WHERE s.organization_id = ANY(%s) ORDER BY s.title ASC",
                    (org_ids,),
                )
                service_rows = cursor.fetchall()

    services_by_org = group_services_by_organization(service_rows)
    organizations = [
        _with_services(_build_organization(row), services_by_org.get(row["org_id"], []))
        for row in org_rows
    ]
    return OrganizationListResponse(
        organizations=organizations,
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


def get_organization(
    organization_id: int,
    *,
    conn: Optional[PgConnection] = None,
) -> Optional[OrganizationWithServices]:
    with _managed_connection(conn) as (connection, _):
        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
            cursor.execute(
                f"SELECT {_ORGANIZATION_COLUMNS} FROM organizations o WHERE o.id = %s",
                (organization_id,),
            )
            org_row = cursor.fetchone()
            if org_row is None:
                return None
            cursor.execute(
                f"SELECT {_SERVICE_SUMMARY_COLUMNS} FROM services s"
                " WHERE s.organization_id = %s ORDER BY s.created_at DESC, s.id DESC",
                (organization_id,),
            )
            service_rows = cursor.fetchall()

    services = [_build_service_summary(row) for row in service_rows]
    return _with_services(_build_organization(org_row), services)


_PROVIDER_SELECT = f"""
    SELECT
        a.id,
        a.first_name,
        a.last_name,
        a.email,
        a.phone,
        a.email_verified,
        a.created_at,
        {_ORGANIZATION_COLUMNS}
    FROM accounts a
    LEFT JOIN organizations o ON o.id = a.organization_id
"""


def _build_provider(
    row: Dict[str, Any],
    services: List[ServiceSummary],
    *,
    services_count: Optional[int] = None,
) -> ProviderOut:
    organization = _build_organization(row)
    return ProviderOut(
        id=row["id"],
        first_name=row.get("first_name"),
        last_name=row.get("last_name"),
        email=row["email"],
        phone=row.get("phone"),
        email_verified=bool(row.get("email_verified")),
        created_at=row.get("created_at"),
        organization=(
            _with_services(organization, services, services_count=services_count)
            if organization is not None
            else None
        ),
    )


def list_providers(
    *,
    search: Optional[str] = None,
    sector: Optional[str] = None,
    page: int = 1,
    limit: int = 12,
    conn: Optional[PgConnection] = None,
) -> ProviderListResponse:
    """List provider accounts with a preview of their latest services."""

    where_sql, params = build_provider_filters(search, sector)
    with _managed_connection(conn) as (connection, _):
        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
            cursor.execute(
                _PROVIDER_SELECT + where_sql + " ORDER BY a.created_at DESC, a.id DESC LIMIT %s OFFSET %s",
                (*params, limit, _offset(page, limit)),
            )
            provider_rows = cursor.fetchall()
            cursor.execute(
                "SELECT COUNT(*) AS total FROM accounts a LEFT JOIN organizations o ON o.id = a.organization_id"
                + where_sql,
                tuple(params),
            )
            total = int(cursor.fetchone()["total"])

            org_ids = sorted({row["org_id"] for row in provider_rows if row.get("org_id") is not None})
            service_rows: List[Dict[str, Any]] = []
            if org_ids:
                cursor.execute(
                    f"""
                    SELECT * FROM (
                        SELECT
                            {_SERVICE_SUMMARY_COLUMNS},
                            COUNT(*) OVER (PARTITION BY s.organization_id) AS services_count,
                            ROW_NUMBER() OVER (
                                PARTITION BY s.organization_id
                                ORDER BY s.created_at DESC, s.id DESC
                            ) AS position
                        FROM services s
                        WHERE s.organization_id = ANY(%s)
                    ) ranked
                    WHERE ranked.position <= %s
                    ORDER BY ranked.organization_id, ranked.position
                    """,
                    (org_ids, PROVIDER_SERVICE_PREVIEW),
                )
                service_rows = cursor.fetchall()

    services_by_org = group_services_by_organization(service_rows)
    counts = {row["organization_id"]: int(row["services_count"]) for row in service_rows}
    providers = [
        _build_provider(
            row,
            services_by_org.get(row["org_id"], []),
            services_count=counts.get(row["org_id"], 0),
        )
        for row in provider_rows
    ]
    return ProviderListResponse(
        providers=providers,
        pagination=ProviderPagination.build(page=page, limit=limit, total=total),
    )


def get_provider(provider_id: int, *, conn: Optional[PgConnection] = None) -> Optional[ProviderOut]:
    with _managed_connection(conn) as (connection, _):
        with connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cursor:
            cursor.execute(
                _PROVIDER_SELECT + " WHERE a.id = %s AND a.role = %s",
                (provider_id, AccountRole.PROVIDER.value),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            service_rows: List[Dict[str, Any]] = []
            if row.get("org_id") is not None:
                cursor.execute(
                    f"SELECT {_SERVICE_SUMMARY_COLUMNS} FROM services s"
                    " WHERE s.organization_id = %s ORDER BY s.created_at DESC, s.id DESC",
                    (row["org_id"],),
                )
                service_rows = cursor.fetchall()

    return _build_provider(row, [_build_service_summary(item) for item in service_rows])


__all__ = [
    "ServiceFilters",
    "build_organization_filters",
    "build_provider_filters",
    "build_service_filters",
    "create_service",
    "get_organization",
    "get_provider",
    "get_service",
    "group_services_by_organization",
    "list_organizations",
    "list_providers",
    "list_services",
    "validate_service_payload",
]
