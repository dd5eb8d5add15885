import json

import pytest
from flask import Flask

from shiftintel_api.common.errors import APIError, ValidationError
from shiftintel_api.services.engine.config import EngineConfig, GeoBand
from shiftintel_api.services.intelligence_service import load_engine_config


def test_defaults():
    cfg = EngineConfig()
    assert cfg.scoring.base == 40
    assert cfg.scoring.geo_bands == (GeoBand(5, 15), GeoBand(15, 10), GeoBand(30, 5))
    assert cfg.fatigue.high_shift_count == 7
    assert cfg.shortage.flag_rate == 30
    assert cfg.staffing.lookback_days == 56


def test_overrides_merge_over_defaults():
    cfg = EngineConfig.from_mapping({
        "version": "north-2",
        "scoring": {"base": 50, "geo_bands": [{"max_km": 10, "points": 12}, [2, 20]]},
        "fatigue": {"high_shift_count": "6"},
    })
    assert cfg.version == "north-2"
    assert cfg.scoring.base == 50
    assert cfg.scoring.preferred == 15
    assert cfg.scoring.geo_bands == (GeoBand(2.0, 20), GeoBand(10.0, 12))
    assert cfg.fatigue.high_shift_count == 6
    assert cfg.fatigue.window_days == 7


def test_unknown_keys_are_rejected():
    with pytest.raises(ValidationError):
        EngineConfig.from_mapping({"scoring": {"bogus": 1}})
    with pytest.raises(ValidationError):
        EngineConfig.from_mapping({"nope": {}})
    with pytest.raises(ValidationError):
        EngineConfig.from_mapping({"scoring": 5})


def test_bad_values_are_rejected():
    with pytest.raises(ValidationError):
        EngineConfig.from_mapping({"scoring": {"base": "lots"}})
    with pytest.raises(ValidationError):
        EngineConfig.from_mapping({"scoring": {"geo_bands": [{"km": 1}]}})


def test_fingerprint_tracks_values():
    a = EngineConfig()
    b = EngineConfig.from_mapping({})
    c = EngineConfig.from_mapping({"scoring": {"weapon_bonus": 4}})
    assert a.fingerprint() == b.fingerprint()
    assert a.fingerprint() != c.fingerprint()
    assert len(a.fingerprint()) == 64
    json.dumps(a.to_dict())


def test_engine_config_file_is_loaded_and_cached(tmp_path):
    path = tmp_path / "engine.json"
    path.write_text(json.dumps({"version": "north-3", "scoring": {"base": 45}}), encoding="utf-8")
    app = Flask(__name__)
    app.config["ENGINE_CONFIG_FILE"] = str(path)
    app.config["ENGINE_CONFIG"] = {"scoring": {"weapon_bonus": 5}}

    cfg = load_engine_config(app)
    assert (cfg.version, cfg.scoring.base, cfg.scoring.weapon_bonus) == ("north-3", 45, 5)
    assert load_engine_config(app) is cfg


def test_unreadable_engine_config_file_is_a_server_error(tmp_path):
    app = Flask(__name__)
    app.config["ENGINE_CONFIG_FILE"] = str(tmp_path / "missing.json")

    with pytest.raises(APIError) as info:
        load_engine_config(app)
    assert not isinstance(info.value, ValidationError)
    assert info.value.status_code == 500
    assert info.value.code == "ENGINE_CONFIG_UNREADABLE"


def test_rejected_app_overrides_are_a_server_error():
    app = Flask(__name__)
    app.config["ENGINE_CONFIG"] = {"scoring": {"no_such_weight": 1}}

    with pytest.raises(APIError) as info:
        load_engine_config(app)
    assert (info.value.status_code, info.value.code) == (500, "ENGINE_CONFIG_INVALID")
    assert "engine_config" not in app.extensions
