"""Tests for new-journey detection signals and their priority."""

from datetime import datetime, timedelta, timezone

from journey.classifier import (
    ClassifierSettings,
    JourneyContext,
    classify_journey,
    has_sentinel_ids,
    is_new_journey,
)

NOW = datetime(2026, 4, 10, 12, 0, tzinfo=timezone.utc)
OLD = (NOW - timedelta(days=5)).isoformat()


def _existing(**overrides) -> JourneyContext:
    """A context where no signal fires."""
    values = dict(
        task_ids=["t1", "t2"],
        goal_ids=["g1"],
        has_saved_state=True,
        journey_start=OLD,
        plan_generated_at=OLD,
        interaction_count=10,
        now=NOW,
    )
    values.update(overrides)
    return JourneyContext(**values)


def test_existing_journey_is_not_new():
    assert classify_journey(_existing()) is None
    assert not is_new_journey(_existing())


def test_no_data_at_all():
    ctx = JourneyContext(now=NOW)
    assert classify_journey(ctx) == "no_data"
    assert is_new_journey(ctx)


def test_fresh_flag_wins_over_later_signals():
    assert classify_journey(_existing(fresh=True, journey_start=None)) == "fresh_flag"


def test_sentinel_ids_in_goals_or_tasks():
    assert classify_journey(_existing(goal_ids=["demo-goal-1"])) == "sentinel_ids"
    assert classify_journey(_existing(task_ids=["demo-task-3"])) == "sentinel_ids"
    assert classify_journey(_existing(goal_ids=["fallback-goal-1"])) == "sentinel_ids"


def test_missing_or_unparseable_start():
    assert classify_journey(_existing(journey_start=None)) == "no_start"
    assert classify_journey(_existing(journey_start="yesterday-ish")) == "no_start"


def test_recent_plan_generation():
    recent = (NOW - timedelta(minutes=30)).isoformat()
    assert classify_journey(_existing(plan_generated_at=recent)) == "recent_plan"
    edge = (NOW - timedelta(minutes=60)).isoformat()
    assert classify_journey(_existing(plan_generated_at=edge)) is None


def test_recent_journey_start():
    recent = (NOW - timedelta(minutes=59)).isoformat()
    assert classify_journey(_existing(journey_start=recent)) == "recent_start"


def test_new_user_interaction_count():
    assert classify_journey(_existing(interaction_count=2)) == "new_user"
    assert classify_journey(_existing(interaction_count=3)) is None
    assert classify_journey(_existing(interaction_count=None)) is None


def test_no_saved_state_is_last_resort():
    assert classify_journey(_existing(has_saved_state=False)) == "no_saved_state"


def test_settings_from_config():
    settings = ClassifierSettings.from_config(
        {"journey": {"classifier": {"recent_minutes": 5, "new_user_max_interactions": 0}}}
    )
    recent = (NOW - timedelta(minutes=30)).isoformat()
    assert classify_journey(_existing(plan_generated_at=recent), settings) is None
    assert classify_journey(_existing(interaction_count=1), settings) is None


def test_has_sentinel_ids():
    assert has_sentinel_ids(["a", "demo-x"])
    assert not has_sentinel_ids(["a", "b"])
