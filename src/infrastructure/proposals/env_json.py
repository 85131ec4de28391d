import json
from typing import Any, Optional

from pydantic import ValidationError

from src.core.proposals.models import ClinicRecord
from src.infrastructure.proposals.in_memory import InMemoryClinicDirectory


def parse_clinic_catalog(catalog_json: Optional[str]) -> dict[str, ClinicRecord]:
    """Parse `CLINIC_DIRECTORY_JSON`, skipping entries that do not describe a clinic.

    Accepts either `{"clinic_5": {"name": "...", "region_id": "region_2", "status": "active"}}`
    or a list of clinic objects carrying their own `clinic_id`.
    """
    normalized_json = (catalog_json or "").strip()
    if not normalized_json:
        return {}
    try:
        raw = json.loads(normalized_json)
    except json.JSONDecodeError:
        return {}

    entries: list[tuple[Any, Any]]
    if isinstance(raw, dict):
        entries = list(raw.items())
    elif isinstance(raw, list):
        entries = [
            (item.get("clinic_id"), item) for item in raw if isinstance(item, dict)
        ]
    else:
        return {}

    catalog: dict[str, ClinicRecord] = {}
    for clinic_id, definition in entries:
        if not isinstance(clinic_id, str) or not isinstance(definition, dict):
            continue
        normalized_id = clinic_id.strip()
        if not normalized_id:
            continue
        payload = {
            "clinic_id": normalized_id,
            "name": definition.get("name"),
            "region_id": definition.get("region_id"),
            "status": definition.get("status", "active"),
        }
        try:
            parsed = ClinicRecord.model_validate(payload)
        except ValidationError:
            continue
        catalog[normalized_id] = parsed
    return catalog


class EnvJsonClinicDirectory(InMemoryClinicDirectory):
    def __init__(self, *, catalog_json: Optional[str]) -> None:
        super().__init__(parse_clinic_catalog(catalog_json).values())
