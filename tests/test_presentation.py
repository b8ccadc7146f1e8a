"""Tests for the terminal renderer, event log observer and logging tags."""

from __future__ import annotations

import contextlib
import io

from lifeengine.logging_utils import LOG_TAG_WARNING, log_warning
from lifeengine.presentation import EventLogObserver, TerminalRenderer, ViewMode
from lifeengine.schemas import (
    SIM_EPOCH,
    Action,
    ActionKind,
    Being,
    LifeEvent,
    LifeEventType,
    Location,
    NeedKind,
    Relationship,
    World,
)


def make_world() -> World:
    world = World()
    world.add_location(Location(id="square", name="Village Square"))
    world.add_location(Location(id="tavern", name="Tavern"))
    ada = Being.create("ada", "Ada", intensities={NeedKind.HUNGER: 0.75})
    ada.current_action = Action(
        kind=ActionKind.SOCIALIZE,
        need=NeedKind.SOCIAL,
        started_at=SIM_EPOCH,
        duration=8.0,
        elapsed=2.0,
        target_id="bo",
    )
    ada.relationships["bo"] = Relationship(target_id="bo", strength=0.4)
    world.add_being(ada, "square")
    world.add_being(Being.create("bo", "Bo"), "square")
    return world


def test_overview_lists_every_location_and_activity():
    stream = io.StringIO()
    renderer = TerminalRenderer(stream)

    renderer.render(make_world(), ViewMode.OVERVIEW)

    output = stream.getvalue()
    assert "=== Tick 0" in output
    assert "Village Square:" in output
    assert "Tavern:" in output
    assert "(empty)" in output
    assert "Ada: socializing with Bo (2.0/8.0s)" in output
    assert "Bo: Idle" in output
    assert "hunger=0.75" in output


def test_focused_view_shows_relationships():
    stream = io.StringIO()
    world = make_world()
    world.selected_being_id = "ada"

    TerminalRenderer(stream).render(world, ViewMode.FOCUSED_BEING)

    output = stream.getvalue()
    assert "Location: Village Square" in output
    assert "-> Bo: acquaintance (+0.40)" in output
    assert "Tavern" not in output


def test_unchanged_frames_are_skipped():
    stream = io.StringIO()
    renderer = TerminalRenderer(stream)
    world = make_world()

    renderer.render(world, ViewMode.OVERVIEW)
    first = stream.getvalue()
    renderer.render(world, ViewMode.OVERVIEW)

    assert stream.getvalue() == first

    renderer.render(world, ViewMode.LOCATION)
    assert len(stream.getvalue()) > len(first)


def test_event_log_observer_prints_one_line(monkeypatch):
    monkeypatch.setenv("LIFEENGINE_NO_COLOR", "1")
    stream = io.StringIO()
    event = LifeEvent(
        tick=3,
        timestamp=SIM_EPOCH,
        type=LifeEventType.ACTION_COMPLETED,
        primary_being="ada",
        description="Ada finished eating",
    )

    EventLogObserver(stream).on_life_event(event)

    assert stream.getvalue() == "  EVENT [3] ActionCompleted: Ada finished eating\n"


def test_warning_tag_is_used(monkeypatch):
    monkeypatch.setenv("LIFEENGINE_NO_COLOR", "1")
    buffer = io.StringIO()

    with contextlib.redirect_stdout(buffer):
        log_warning("Being 'ada' skipped")

    assert buffer.getvalue().startswith(f"{LOG_TAG_WARNING} Being 'ada' skipped")
