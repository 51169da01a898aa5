from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from platecost.apps.api.cors import CLIENT_ALLOW_HEADERS, preflight_response
from platecost.apps.api.deps import get_db, identity_verifier, sales_import_service
from platecost.apps.api.payloads import read_json_object
from platecost.core.errors import SalesImportError
from platecost.services.access_gate import AccessGate
from platecost.services.auth.identity import IdentityVerifier
from platecost.services.entitlements import FEATURE_SALES
from platecost.services.sales_import import SalesImportService, validate_file_size


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sales-imports", tags=["sales"])


def _string_field(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else ""


def _matches_from_payload(payload: dict[str, Any]) -> dict[str, str]:
    # Accept {dish: recipeId}; blank or non-string entries are skipped.
    raw = payload.get("matches")
    if not isinstance(raw, dict):
        return {}
    return {
        str(dish): recipe_id
        for dish, recipe_id in raw.items()
        if isinstance(recipe_id, str) and recipe_id
    }


@router.options("", include_in_schema=False)
@router.options("/{import_id}/matches", include_in_schema=False)
async def sales_preflight() -> Response:
    return preflight_response(allow_headers=CLIENT_ALLOW_HEADERS, allow_methods="POST, OPTIONS")


@router.post("")
async def create_sales_import(
    request: Request,
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
    verifier: IdentityVerifier = Depends(identity_verifier),
    service: SalesImportService = Depends(sales_import_service),
) -> JSONResponse:
    payload = await read_json_object(request)
    gate = AccessGate(identity_verifier=verifier, feature=FEATURE_SALES)
    grant = await gate.authorize(db, authorization, payload.get("restaurantId"))

    file_size = payload.get("fileSize")
    if isinstance(file_size, int) and not isinstance(file_size, bool):
        size_error = validate_file_size(file_size)
        if size_error:
            raise SalesImportError([size_error])
    rows = payload.get("rows")
    if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
        raise SalesImportError(["Rows must be a list of objects"])

    summary = await service.import_rows(
        db,
        restaurant_id=grant.restaurant.id,
        actor_id=grant.user_id,
        file_name=_string_field(payload, "fileName") or "import",
        rows=rows,
        date_col=_string_field(payload, "dateColumn"),
        dish_col=_string_field(payload, "dishColumn"),
        qty_col=_string_field(payload, "quantityColumn"),
    )
    return JSONResponse(content=summary.to_payload(), status_code=201)


@router.post("/{import_id}/matches")
async def save_sales_matches(
    import_id: str,
    request: Request,
    authorization: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
    verifier: IdentityVerifier = Depends(identity_verifier),
    service: SalesImportService = Depends(sales_import_service),
) -> JSONResponse:
    payload = await read_json_object(request)
    gate = AccessGate(identity_verifier=verifier, feature=FEATURE_SALES)
    grant = await gate.authorize(db, authorization, payload.get("restaurantId"))

    updated = await service.apply_matches(
        db,
        restaurant_id=grant.restaurant.id,
        import_id=import_id,
        matches=_matches_from_payload(payload),
    )
    logger.info(
        "sales_matches_saved import_id=%s restaurant_id=%s updated=%s",
        import_id,
        grant.restaurant.id,
        updated,
    )
    return JSONResponse(content={"updated": updated})
