"""
Scenario loading for JSON-defined world initialization.

Scenarios are data, not code: they declare locations, beings (starting need
intensities, traits, relationships) and an optional simulated start time.
Validation happens up front so a broken scenario fails at load time rather
than mid-simulation.

Scenario file structure:
```json
{
  "name": "Village",
  "description": "...",
  "start_time": "2000-01-01T07:00:00+00:00",
  "locations": [{"id": "square", "name": "Village Square"}],
  "beings": [
    {
      "id": "ada",
      "name": "Ada",
      "location": "square",
      "needs": {"hunger": 0.5, "social": 0.2},
      "traits": [{"name": "glutton", "need": "hunger", "decay_multiplier": 1.5}],
      "relationships": [{"target": "bo", "strength": 0.3}]
    }
  ]
}
```

Usage:
    loader = ScenarioLoader()
    world = loader.load("village")
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import Config
from .schemas import SIM_EPOCH, Being, Location, NeedKind, Relationship, RelationshipKind, Trait, World
from .systems import derive_relationship_kind


class ScenarioLoader:
    """Load and validate scenarios from JSON files.

    Directory structure:
    - Default: {PROJECT_ROOT}/examples/scenarios/
    - Override via constructor: ScenarioLoader(Path("/custom/scenarios"))
    - Scenario files: {scenario_name}.json

    Raises ValueError for structurally invalid scenarios (missing fields,
    unknown locations, relationships to undeclared beings).
    """

    def __init__(self, scenarios_dir: Optional[Path] = None):
        self.scenarios_dir = Path(scenarios_dir) if scenarios_dir else Config.SCENARIOS_DIR

    def load(self, scenario_name: str) -> World:
        """Load a scenario by name and return a world at tick 0.

        Raises:
            FileNotFoundError: If the scenario file doesn't exist
            ValueError: If the scenario is malformed
            json.JSONDecodeError: If the file contains invalid JSON
        """
        scenario_path = self.scenarios_dir / f"{scenario_name}.json"
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario '{scenario_name}' not found at {scenario_path}")

        data = json.loads(scenario_path.read_text("utf-8"))
        return self.build_world(data)

    def build_world(self, data: Dict[str, Any]) -> World:
        """Build a World from already-parsed scenario data."""
        self._validate_scenario(data)

        start = data.get("start_time")
        start_time = datetime.fromisoformat(start) if start else SIM_EPOCH
        world = World(current_time=start_time)

        for entry in data["locations"]:
            world.add_location(Location(id=entry["id"], name=entry.get("name", entry["id"])))

        for entry in data["beings"]:
            world.add_being(self._parse_being(entry, start_time), entry["location"])

        world.check_invariants()
        return world

    def _validate_scenario(self, data: Dict[str, Any]) -> None:
        required = ["name", "locations", "beings"]
        missing = [field for field in required if field not in data]
        if missing:
            raise ValueError(f"Scenario missing required fields: {missing}")

        if not data["locations"]:
            raise ValueError("Scenario must have at least one location")

        location_ids = {entry.get("id") for entry in data["locations"]}
        being_ids = [entry.get("id") for entry in data["beings"]]
        if len(set(being_ids)) != len(being_ids):
            raise ValueError("Scenario declares the same being id twice")

        for entry in data["beings"]:
            if "id" not in entry or "location" not in entry:
                raise ValueError("Each being entry must include 'id' and 'location'")
            if entry["location"] not in location_ids:
                raise ValueError(f"Being '{entry['id']}' starts in unknown location '{entry['location']}'")
            for relation in entry.get("relationships", []):
                target = relation.get("target")
                if target == entry["id"] or target not in being_ids:
                    raise ValueError(f"Being '{entry['id']}' has an invalid relationship to '{target}'")

    def _parse_being(self, entry: Dict[str, Any], start_time: datetime) -> Being:
        intensities = {NeedKind(kind): float(value) for kind, value in entry.get("needs", {}).items()}
        traits = [Trait(**trait) for trait in entry.get("traits", [])]
        being = Being.create(
            entry["id"],
            entry.get("name"),
            intensities=intensities,
            traits=traits,
            at=start_time,
        )
        for relation in entry.get("relationships", []):
            strength = float(relation.get("strength", 0.0))
            kind = relation.get("kind")
            being.relationships[relation["target"]] = Relationship(
                target_id=relation["target"],
                strength=strength,
                kind=RelationshipKind(kind) if kind else derive_relationship_kind(strength),
            )
        return being

    def list_scenarios(self) -> List[str]:
        """Scenario names (without .json), skipping files that start with '_'."""
        if not self.scenarios_dir.exists():
            return []
        return sorted(
            f.stem for f in self.scenarios_dir.glob("*.json") if not f.name.startswith("_")
        )

    def get_scenario_info(self, scenario_name: str) -> Dict[str, Any]:
        """Scenario metadata without building the world."""
        scenario_path = self.scenarios_dir / f"{scenario_name}.json"
        data = json.loads(scenario_path.read_text("utf-8"))
        return {
            "name": data.get("name", scenario_name),
            "description": data.get("description", "No description"),
            "num_beings": len(data.get("beings", [])),
            "num_locations": len(data.get("locations", [])),
            "recommended_ticks": data.get("recommended_ticks", 600),
        }


def load_scenario(scenario_name: str) -> World:
    """Convenience function to load a scenario from the default directory."""
    return ScenarioLoader().load(scenario_name)
