import json

from src.infrastructure.proposals import EnvJsonClinicDirectory, parse_clinic_catalog


def test_parse_clinic_catalog_accepts_mapping_form():
    catalog = parse_clinic_catalog(
        json.dumps(
            {
                " clinic_1 ": {"region_id": "region_1"},
                "clinic_2": {"region_id": "region_2", "status": "inactive"},
            }
        )
    )

    assert sorted(catalog) == ["clinic_1", "clinic_2"]
    assert catalog["clinic_1"].status == "active"
    assert catalog["clinic_2"].status == "inactive"


def test_parse_clinic_catalog_accepts_list_form():
    catalog = parse_clinic_catalog(
        json.dumps(
            [
                {"clinic_id": "clinic_1", "region_id": "region_1"},
                {"region_id": "region_2"},
                "not-a-clinic",
            ]
        )
    )

    assert list(catalog) == ["clinic_1"]


def test_parse_clinic_catalog_skips_invalid_entries():
    catalog = parse_clinic_catalog(
        json.dumps(
            {
                "clinic_ok": {"region_id": "region_1"},
                "clinic_bad_status": {"region_id": "region_1", "status": "archived"},
                "clinic_bad_shape": ["region_1"],
                "": {"region_id": "region_1"},
            }
        )
    )

    assert list(catalog) == ["clinic_ok"]


def test_parse_clinic_catalog_tolerates_missing_or_broken_json():
    assert parse_clinic_catalog(None) == {}
    assert parse_clinic_catalog("   ") == {}
    assert parse_clinic_catalog("{not json") == {}
    assert parse_clinic_catalog('"clinic_1"') == {}


def test_env_json_directory_resolves_regions():
    directory = EnvJsonClinicDirectory(
        catalog_json=json.dumps({"clinic_1": {"region_id": "region_1"}})
    )

    assert directory.region_of(clinic_id="clinic_1") == "region_1"
    assert directory.get_clinic(clinic_id="clinic_2") is None


def test_env_json_directory_carries_clinic_names():
    directory = EnvJsonClinicDirectory(
        catalog_json=json.dumps(
            {
                "clinic_1": {"region_id": "region_1", "name": "Ankara Dental Clinic"},
                "clinic_2": {"region_id": "region_2"},
            }
        )
    )

    assert directory.get_clinic(clinic_id="clinic_1").name == "Ankara Dental Clinic"
    assert directory.get_clinic(clinic_id="clinic_2").name is None
    assert directory.search_clinic_ids(search="dental") == ["clinic_1"]
