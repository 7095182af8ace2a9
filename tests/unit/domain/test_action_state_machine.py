"""Action lifecycle on the entity and in the store."""

from __future__ import annotations

import pytest

from greenhouse.domain.entities import Action
from greenhouse.domain.exceptions import ConflictError
from greenhouse.enums import ActionKind, ActionStatus


def _pending() -> Action:
    return Action(id=1, equipment_id=2, kind=ActionKind.ACTIVATE, target_value=30.0, observed_value=35.0)


class TestActionEntity:
    def test_new_action_is_pending(self):
        assert _pending().status is ActionStatus.PENDING

    def test_mark_executed_sets_timestamp_and_result(self):
        action = _pending()
        action.mark_executed("Action executed successfully")
        assert action.status is ActionStatus.EXECUTED
        assert action.executed_at is not None
        assert action.result == "Action executed successfully"

    def test_mark_failed_keeps_error_text(self):
        action = _pending()
        action.mark_failed("Execution failed: relay stuck")
        assert action.status is ActionStatus.FAILED
        assert action.executed_at is None
        assert action.result == "Execution failed: relay stuck"

    @pytest.mark.parametrize("first", ["executed", "failed"])
    @pytest.mark.parametrize("second", ["executed", "failed"])
    def test_terminal_states_are_immutable(self, first, second):
        action = _pending()
        getattr(action, f"mark_{first}")("first")
        with pytest.raises(ConflictError):
            getattr(action, f"mark_{second}")("second")
        assert action.status.value == first
        assert action.result == "first"

    def test_to_dict_renders_enums(self):
        data = _pending().to_dict()
        assert data["kind"] == "activate"
        assert data["status"] == "pending"
        assert data["is_automatic"] is False


class TestActionStore:
    def test_conditional_finalize_only_once(self, seed, action_repo):
        unit = seed.equipment("Fan A", "ventilator")
        action = action_repo.create(unit.id, "activate", target_value=30.0)

        action.mark_executed("ok")
        assert action_repo.save_outcome(action) is True

        stale = action_repo.get(action.id)
        assert stale.status is ActionStatus.EXECUTED

        # A second writer holding an old pending copy cannot overwrite the outcome
        racing = Action(id=action.id, equipment_id=unit.id, kind=ActionKind.ACTIVATE)
        racing.mark_failed("late")
        assert action_repo.save_outcome(racing) is False
        assert action_repo.get(action.id).result == "ok"

    def test_one_action_per_alert_event(self, seed, action_repo):
        unit = seed.equipment("Fan A", "ventilator")
        action_repo.create(unit.id, "activate", is_automatic=True, alert_event_id="evt-1")
        with pytest.raises(ConflictError):
            action_repo.create(unit.id, "activate", is_automatic=True, alert_event_id="evt-1")
        assert action_repo.get_by_alert_event("evt-1") is not None
        assert action_repo.count() == 1

    def test_manual_actions_have_no_alert_event(self, seed, action_repo):
        unit = seed.equipment("Fan A", "ventilator")
        action_repo.create(unit.id, "activate")
        action_repo.create(unit.id, "deactivate")
        assert action_repo.count(equipment_id=unit.id) == 2
