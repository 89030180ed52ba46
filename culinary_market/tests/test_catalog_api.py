from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest
from fastapi import HTTPException

from culinary_market.app.routes import catalog as catalog_routes
from culinary_market.app.schemas.catalog import (
    OrganizationOut,
    Pagination,
    ProviderPagination,
    ServiceCreateRequest,
    ServiceListResponse,
    ServiceOut,
    ServiceType,
)
from culinary_market.app.services import catalog as catalog_service
from culinary_market.app.services.catalog import (
    ServiceFilters,
    build_organization_filters,
    build_provider_filters,
    build_service_filters,
    validate_service_payload,
)

CREATED = datetime(2024, 5, 1, tzinfo=timezone.utc)


class FakeCursor:
    def __init__(self, results: List[Any]) -> None:
        self._results = list(results)
        self.executed: List[tuple] = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.executed.append((sql, params))

    def fetchall(self):
        return self._results.pop(0)

    def fetchone(self):
        return self._results.pop(0)


class FakeConnection:
    def __init__(self, cursor: FakeCursor) -> None:
        self._cursor = cursor

    def cursor(self, cursor_factory=None):
        return self._cursor


def _service_row(**overrides) -> Dict[str, Any]:
    row = {
        "id": 3,
        "organization_id": 9,
        "title": "Private chef dinner",
        "summary": "Five courses at home",
        "lower_price": Decimal("150.00"),
        "upper_price": Decimal("150.00"),
        "payment_mode": "EUR",
        "tags": ["dinner", "private"],
        "is_ai_replaceable": False,
        "service_type": "IRL",
        "consumption_type": "PRESTATION",
        "billing_plan": "PROJECT",
        "description": "A full tasting menu",
        "duration": "4h",
        "location": "Lyon",
        "created_at": CREATED,
        "org_id": 9,
        "org_name": "Maison Ada",
        "org_description": None,
        "org_logo": None,
        "org_website": None,
        "org_email": "contact@maison.example",
        "org_phone": None,
        "org_address": None,
        "org_sector": "Restauration",
        "org_siret": None,
        "org_legal_form": "SAS",
        "org_created_at": CREATED,
    }
    row.update(overrides)
    return row


def _service_out() -> ServiceOut:
    return ServiceOut(
        id=3,
        title="Private chef dinner",
        organization_id=9,
        organization=OrganizationOut(id=9, name="Maison Ada"),
    )


def _valid_payload(**overrides) -> ServiceCreateRequest:
    data = {
        "title": "Cooking class",
        "description": "Learn knife skills",
        "fullDescription": "Three hours of hands-on practice",
        "price": 80,
        "duration": "3h",
        "type": "ONLINE",
        "tags": ["class"],
    }
    data.update(overrides)
    return ServiceCreateRequest(**data)


def test_build_service_filters_without_filters():
    assert build_service_filters(ServiceFilters()) == ("", [])


def test_build_service_filters_combines_clauses():
    where_sql, params = build_service_filters(
        ServiceFilters(
            search="truffle_50%",
            tags=("vegan", ""),
            min_price=10,
            max_price=200,
            ai_replaceable=False,
            sector="Restauration",
            service_type=ServiceType.IRL,
        )
    )

    assert where_sql.startswith(" WHERE ")
    assert "s.tags && %s::text[]" in where_sql
    assert "s.lower_price >= %s" in where_sql
    assert "s.upper_price <= %s" in where_sql
    assert "LOWER(o.sector) = LOWER(%s)" in where_sql
    assert "s.service_type = %s" in where_sql
    assert params[:4] == ["%truffle\\_50\\%%"] * 4
    assert params[4:] == [["vegan"], 10, 200, False, "Restauration", "IRL"]


def test_build_organization_and_provider_filters():
    org_sql, org_params = build_organization_filters("bistro", "Traiteur")
    assert "o.name ILIKE %s OR o.description ILIKE %s" in org_sql
    assert org_params == ["%bistro%", "%bistro%", "Traiteur"]

    provider_sql, provider_params = build_provider_filters(None, "boulang")
    assert provider_sql == " WHERE a.role = %s AND o.sector ILIKE %s"
    assert provider_params == ["PROVIDER", "%boulang%"]


def test_pagination_helpers():
    assert Pagination.build(page=1, limit=10, total=21).total_pages == 3
    provider_page = ProviderPagination.build(page=2, limit=12, total=30)
    assert provider_page.has_next is True
    assert provider_page.has_prev is True
    assert ProviderPagination.build(page=3, limit=12, total=30).has_next is False


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"title": ""}, "Title and description are required"),
        ({"fullDescription": None}, "A detailed description is required"),
        ({"price": 0}, "Price must be greater than 0"),
        ({"price": None}, "Price must be greater than 0"),
        ({"duration": " "}, "Duration is required"),
        ({"type": "MIXED"}, "Invalid service type"),
        ({"type": "IRL", "location": ""}, "Location is required for in-person services"),
    ],
)
def test_validate_service_payload_errors(overrides, message):
    with pytest.raises(ValueError) as exc:
        validate_service_payload(_valid_payload(**overrides))
    assert str(exc.value) == message


def test_validate_service_payload_accepts_in_person_with_location():
    assert validate_service_payload(_valid_payload(type="IRL", location="Paris")) == ServiceType.IRL


def test_create_service_requires_provider_with_organization():
    client = SimpleNamespace(id=1, role="CLIENT", organization_id=9)
    orphan = SimpleNamespace(id=2, role="PROVIDER", organization_id=None)

    with pytest.raises(PermissionError):
        catalog_service.create_service(client, _valid_payload(), conn=object())
    with pytest.raises(PermissionError):
        catalog_service.create_service(orphan, _valid_payload(), conn=object())


def test_create_service_stores_fixed_pricing_fields():
    cursor = FakeCursor([{"id": 3}, _service_row(service_type="ONLINE", location=None)])
    provider = SimpleNamespace(id=5, role="PROVIDER", organization_id=9)
    long_description = "x" * 600

    service = catalog_service.create_service(
        provider,
        _valid_payload(description=long_description, replacedByAI=True),
        conn=FakeConnection(cursor),
    )

    insert_params = cursor.executed[0][1]
    assert insert_params[0] == 9
    assert len(insert_params[2]) == 500
    assert insert_params[3] == "Three hours of hands-on practice"
    assert insert_params[4:10] == ("ONLINE", "PRESTATION", "PROJECT", 80.0, 80.0, "EUR")
    assert insert_params[12] is True
    assert service.id == 3
    assert service.organization.name == "Maison Ada"


def test_list_services_maps_rows_and_counts():
    cursor = FakeCursor([[_service_row()], {"total": 11}])

    result = catalog_service.list_services(
        ServiceFilters(search="chef"),
        page=2,
        limit=10,
        conn=FakeConnection(cursor),
    )

    list_sql, list_params = cursor.executed[0]
    assert "ORDER BY s.title ASC" in list_sql
    assert list_params[-2:] == (10, 10)
    assert result.pagination.total == 11
    assert result.pagination.total_pages == 2
    service = result.services[0]
    assert service.lower_price == 150.0
    assert service.organization.sector == "Restauration"


def test_read_services_route_passes_filters(monkeypatch):
    captured = {}

    def fake_list_services(filters, *, page, limit, conn=None):
        captured["filters"] = filters
        captured["page"] = page
        captured["limit"] = limit
        return ServiceListResponse(services=[], pagination=Pagination.build(page=page, limit=limit, total=0))

    monkeypatch.setattr(catalog_routes, "list_services", fake_list_services)

    catalog_routes.read_services(
        page=1,
        limit=5,
        search="pastry",
        tags="vegan, gluten-free,",
        min_price=None,
        max_price=50,
        ai_replaceable=None,
        sector=None,
        service_type=None,
        consumption_type=None,
        billing_plan=None,
        payment_mode=None,
    )

    assert captured["filters"].tags == ("vegan", "gluten-free")
    assert captured["filters"].max_price == 50
    assert captured["limit"] == 5


def test_read_service_not_found(monkeypatch):
    monkeypatch.setattr(catalog_routes, "get_service", lambda service_id: None)

    with pytest.raises(HTTPException) as exc:
        catalog_routes.read_service(404)

    assert exc.value.status_code == 404


def test_create_service_route_maps_errors(monkeypatch):
    user = SimpleNamespace(id=1, role="CLIENT", organization_id=None)

    def forbidden(account, payload):
        raise PermissionError("Only providers can create services")

    monkeypatch.setattr(catalog_routes, "create_service", forbidden)
    with pytest.raises(HTTPException) as exc:
        catalog_routes.create_service_listing(_valid_payload(), current_user=user)
    assert exc.value.status_code == 403

    def invalid(account, payload):
        raise ValueError("Price must be greater than 0")

    monkeypatch.setattr(catalog_routes, "create_service", invalid)
    with pytest.raises(HTTPException) as exc:
        catalog_routes.create_service_listing(_valid_payload(), current_user=user)
    assert exc.value.status_code == 400


def test_create_service_route_returns_service(monkeypatch):
    user = SimpleNamespace(id=5, role="PROVIDER", organization_id=9)
    monkeypatch.setattr(catalog_routes, "create_service", lambda account, payload: _service_out())

    response = catalog_routes.create_service_listing(_valid_payload(), current_user=user)

    assert response.message == "Service created successfully"
    assert response.service.id == 3


def test_organization_and_provider_not_found(monkeypatch):
    monkeypatch.setattr(catalog_routes, "get_organization", lambda organization_id: None)
    monkeypatch.setattr(catalog_routes, "get_provider", lambda provider_id: None)

    with pytest.raises(HTTPException) as exc:
        catalog_routes.read_organization(1)
    assert exc.value.status_code == 404

    with pytest.raises(HTTPException) as exc:
        catalog_routes.read_provider(1)
    assert exc.value.status_code == 404
