"""Tests for scenario loading via ScenarioLoader."""

import json
from datetime import datetime, timezone

import pytest

from lifeengine.config import Config
from lifeengine.schemas import NeedKind, RelationshipKind
from lifeengine.scenario import ScenarioLoader


def test_village_scenario_builds_a_valid_world():
    loader = ScenarioLoader(scenarios_dir=Config.SCENARIOS_DIR)

    assert "village" in loader.list_scenarios()
    world = loader.load("village")

    world.check_invariants()
    assert world.tick == 0
    assert world.current_time == datetime(2000, 1, 1, 7, 0, tzinfo=timezone.utc)
    assert set(world.beings) == {"ada", "bo", "cy", "dee"}
    assert world.locations["tavern"].occupants == ["ada", "bo"]

    ada = world.beings["ada"]
    assert ada.name == "Ada"
    assert ada.need(NeedKind.HUNGER).intensity == 0.62
    assert ada.traits[0].name == "glutton"

    bo = world.beings["bo"]
    assert bo.relationships["cy"].kind == RelationshipKind.RIVAL
    assert bo.relationships["ada"].kind == RelationshipKind.ACQUAINTANCE

    info = loader.get_scenario_info("village")
    assert info["num_beings"] == 4
    assert info["num_locations"] == 3


def write_scenario(tmp_path, name, data):
    (tmp_path / f"{name}.json").write_text(json.dumps(data), "utf-8")


def test_missing_scenario_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        ScenarioLoader(tmp_path).load("nope")


def test_scenario_validation_catches_broken_references(tmp_path):
    base = {
        "name": "Broken",
        "locations": [{"id": "square", "name": "Square"}],
        "beings": [{"id": "ada", "location": "square"}],
    }
    loader = ScenarioLoader(tmp_path)

    write_scenario(tmp_path, "no_locations", {"name": "x", "beings": []})
    with pytest.raises(ValueError):
        loader.load("no_locations")

    write_scenario(tmp_path, "bad_location", {**base, "beings": [{"id": "ada", "location": "moon"}]})
    with pytest.raises(ValueError):
        loader.load("bad_location")

    write_scenario(
        tmp_path,
        "bad_relationship",
        {**base, "beings": [{"id": "ada", "location": "square", "relationships": [{"target": "ghost"}]}]},
    )
    with pytest.raises(ValueError):
        loader.load("bad_relationship")

    write_scenario(tmp_path, "ok", base)
    world = loader.load("ok")
    assert world.beings["ada"].name == "ada"


def test_list_scenarios_skips_private_files(tmp_path):
    write_scenario(tmp_path, "_template", {})
    write_scenario(tmp_path, "b", {})
    write_scenario(tmp_path, "a", {})

    assert ScenarioLoader(tmp_path).list_scenarios() == ["a", "b"]
