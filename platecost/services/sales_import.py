"""Sales import validation and persistence.

Spreadsheet parsing happens upstream; this module receives rows already parsed
into ``{column: value}`` mappings plus the caller's column mapping for date,
dish name and quantity.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
import logging
import re
from typing import Any, Callable, Mapping, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from platecost.core.errors import ImportNotFoundError, SalesImportError
from platecost.persistence.repos import sales as sales_repo
from platecost.services.audit import record_audit


logger = logging.getLogger(__name__)

MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024
MAX_ROWS = 50000
INSERT_BATCH_SIZE = 500
# Spreadsheet apps evaluate cells starting with these characters as formulas.
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_SLASH_DATE = re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$")
_DIGITS = re.compile(r"^\d+$")


@dataclass
class ImportValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    sanitized_rows: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class ImportSummary:
    import_id: str
    row_count: int
    warnings: list[str]
    unmatched_dishes: list[str]

    def to_payload(self) -> dict[str, Any]:
        return {
            "importId": self.import_id,
            "rowCount": self.row_count,
            "warnings": self.warnings,
            "unmatchedDishes": self.unmatched_dishes,
        }


def validate_file_size(size_bytes: int) -> str | None:
    # Return an error message for oversized uploads, None when acceptable.
    if size_bytes > MAX_FILE_SIZE_BYTES:
        size_mb = size_bytes / 1024 / 1024
        return f"File size ({size_mb:.1f} MB) exceeds the 10 MB limit"
    return None


def sanitize_cell(value: Any) -> Any:
    if value is None:
        return ""
    text = str(value).strip()
    if text.startswith(FORMULA_PREFIXES):
        return "'" + text
    return text


def is_valid_date(value: Any) -> bool:
    if value is None or value == "":
        return False
    text = str(value).strip()
    if _ISO_DATE.match(text):
        try:
            date.fromisoformat(text[:10])
        except ValueError:
            return False
        return True
    if _SLASH_DATE.match(text):
        return True
    # Spreadsheet serial day numbers for roughly 2009 through 2064.
    if _DIGITS.match(text) and 40000 < int(text) < 60000:
        return True
    return False


def _parse_quantity(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return None
    if value is None:
        return Decimal("0")
    text = str(value).strip()
    if text == "":
        return Decimal("0")
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if not number.is_finite():
        return None
    return number


def validate_import_rows(
    rows: Sequence[Mapping[str, Any]],
    date_col: str,
    dish_col: str,
    qty_col: str,
) -> ImportValidation:
    result = ImportValidation(valid=False)
    if not rows:
        result.errors.append("The file is empty or contains no usable rows")
        return result
    if len(rows) > MAX_ROWS:
        result.errors.append(f"The file has {len(rows):,} rows; the maximum is {MAX_ROWS:,}")
        return result

    headers = set(rows[0].keys())
    if date_col not in headers:
        result.errors.append(f'Date column "{date_col}" not found')
    if dish_col not in headers:
        result.errors.append(f'Dish column "{dish_col}" not found')
    if qty_col not in headers:
        result.errors.append(f'Quantity column "{qty_col}" not found')
    if result.errors:
        return result

    invalid_dates = 0
    bad_quantities = 0
    empty_dishes = 0
    duplicates = 0
    seen: set[str] = set()

    for row in rows:
        raw_date = row.get(date_col)
        raw_dish = row.get(dish_col)
        raw_qty = row.get(qty_col)
        sanitized = {key: sanitize_cell(value) for key, value in row.items()}

        if raw_date not in (None, "") and not is_valid_date(raw_date):
            invalid_dates += 1

        if not str(raw_dish if raw_dish is not None else "").strip():
            empty_dishes += 1
            continue

        quantity = _parse_quantity(raw_qty)
        if quantity is None or quantity < 0:
            bad_quantities += 1
            sanitized[qty_col] = 0

        # Duplicates are reported, not dropped; repeated sales lines can be legitimate.
        row_key = f"{raw_date}-{raw_dish}-{raw_qty}"
        if row_key in seen:
            duplicates += 1
        seen.add(row_key)

        result.sanitized_rows.append(sanitized)

    if invalid_dates:
        result.warnings.append(f"{invalid_dates} row(s) have an invalid date")
    if bad_quantities:
        result.warnings.append(f"{bad_quantities} row(s) have an invalid or negative quantity (set to 0)")
    if empty_dishes:
        result.warnings.append(f"Skipped {empty_dishes} row(s) without a dish name")
    if duplicates:
        result.warnings.append(f"Detected {duplicates} duplicate row(s)")

    result.valid = not result.errors
    return result


def _row_quantity(value: Any) -> Decimal:
    quantity = _parse_quantity(value)
    if quantity is None or quantity < 0:
        return Decimal("0")
    return quantity


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SalesImportService:
    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        time_provider: Callable[[], datetime] | None = None,
    ) -> None:
        # Audit writes use their own session; None falls back to the app session factory.
        self._session_factory = session_factory
        self._time_provider = time_provider or _utc_now

    async def import_rows(
        self,
        session: AsyncSession,
        *,
        restaurant_id: str,
        actor_id: str,
        file_name: str,
        rows: Sequence[Mapping[str, Any]],
        date_col: str,
        dish_col: str,
        qty_col: str,
    ) -> ImportSummary:
        validation = validate_import_rows(rows, date_col, dish_col, qty_col)
        if not validation.valid:
            raise SalesImportError(validation.errors)

        try:
            record = await sales_repo.create_import(
                session,
                restaurant_id=restaurant_id,
                file_name=file_name,
                uploaded_at=self._time_provider(),
            )
            recipe_ids = await sales_repo.recipe_ids_by_name(session, restaurant_id)

            prepared: list[dict[str, Any]] = []
            dish_names: list[str] = []
            for row in validation.sanitized_rows:
                dish_name = str(row.get(dish_col, ""))
                sale_date = row.get(date_col)
                prepared.append(
                    {
                        "sales_import_id": record.id,
                        "sale_date": str(sale_date) if sale_date not in (None, "") else None,
                        "dish_name": dish_name,
                        "quantity": _row_quantity(row.get(qty_col)),
                        # Auto-match on exact recipe name within this tenant only.
                        "matched_recipe_id": recipe_ids.get(dish_name),
                    }
                )
                if dish_name not in dish_names:
                    dish_names.append(dish_name)

            inserted = await sales_repo.insert_rows(session, prepared, batch_size=INSERT_BATCH_SIZE)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.info(
            "sales_import_created import_id=%s restaurant_id=%s rows=%s",
            record.id,
            restaurant_id,
            inserted,
        )
        await record_audit(
            actor_id=actor_id,
            action="sales_import",
            entity_type="sales_import",
            entity_id=record.id,
            metadata={"file_name": file_name, "row_count": inserted},
            session_factory=self._session_factory,
        )
        unmatched = [name for name in dish_names if name not in recipe_ids]
        return ImportSummary(
            import_id=record.id,
            row_count=inserted,
            warnings=validation.warnings,
            unmatched_dishes=unmatched,
        )

    async def apply_matches(
        self,
        session: AsyncSession,
        *,
        restaurant_id: str,
        import_id: str,
        matches: Mapping[str, str],
    ) -> int:
        record = await sales_repo.get_import_for_restaurant(session, import_id, restaurant_id)
        if record is None:
            raise ImportNotFoundError(import_id)
        # Recipes from another tenant are dropped silently.
        allowed = await sales_repo.tenant_recipe_ids(session, restaurant_id, matches.values())
        updated = 0
        try:
            for dish_name, recipe_id in matches.items():
                if not recipe_id or recipe_id not in allowed:
                    continue
                updated += await sales_repo.match_dish(
                    session, import_id=record.id, dish_name=dish_name, recipe_id=recipe_id
                )
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        return updated
