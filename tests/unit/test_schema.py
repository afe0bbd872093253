import copy

import pytest

from permitbot.common.errors import ConfigError
from permitbot.common.schema import validate_source_config, validate_sources_config

BASE_SOURCE = {
    "family": "socrata",
    "endpoint": "https://data.example.test/resource/permits.json",
    "id_prefix": "austin",
    "fields": {
        "id": ["permit_num"],
        "location_text": ["original_address1", ["house_num", "street_name"]],
    },
}


def test_validate_source_config_accepts_valid_shape():
    validated = validate_source_config("austin", copy.deepcopy(BASE_SOURCE))
    assert validated["family"] == "socrata"


def test_validate_source_config_rejects_unknown_family():
    bad = copy.deepcopy(BASE_SOURCE)
    bad["family"] = "ckan"
    with pytest.raises(ConfigError):
        validate_source_config("austin", bad)


def test_validate_source_config_rejects_unknown_key_by_default():
    bad = copy.deepcopy(BASE_SOURCE)
    bad["unexpected"] = True
    with pytest.raises(ConfigError):
        validate_source_config("austin", bad)


def test_validate_source_config_allows_unknown_when_enabled():
    okay = copy.deepcopy(BASE_SOURCE)
    okay["extra"] = 1
    validate_source_config("austin", okay, allow_unknown=True)


def test_validate_source_config_requires_location_mapping():
    bad = copy.deepcopy(BASE_SOURCE)
    del bad["fields"]["location_text"]
    with pytest.raises(ConfigError):
        validate_source_config("austin", bad)


def test_validate_source_config_rejects_unknown_canonical_field():
    bad = copy.deepcopy(BASE_SOURCE)
    bad["fields"]["latitude"] = ["lat"]
    with pytest.raises(ConfigError):
        validate_source_config("austin", bad)


def test_validate_source_config_rejects_malformed_candidates():
    bad = copy.deepcopy(BASE_SOURCE)
    bad["fields"]["category"] = "permit_type"
    with pytest.raises(ConfigError):
        validate_source_config("austin", bad)


def test_validate_carto_source_requires_table_and_columns():
    carto = copy.deepcopy(BASE_SOURCE)
    carto["family"] = "carto"
    with pytest.raises(ConfigError):
        validate_source_config("philadelphia", carto)


def test_validate_sources_config_rejects_duplicate_prefixes():
    cfg = {"sources": {"austin": copy.deepcopy(BASE_SOURCE), "austin_again": copy.deepcopy(BASE_SOURCE)}}
    with pytest.raises(ConfigError):
        validate_sources_config(cfg)
