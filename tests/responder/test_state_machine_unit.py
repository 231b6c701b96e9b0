"""Unit tests for pipeline stages and the per-event PipelineRun."""

import pytest

from issue_responder.state import (
    InvalidTransitionError,
    PipelineRun,
    PipelineStage,
    VALID_TRANSITIONS,
    is_terminal_stage,
    is_valid_transition,
    next_stage,
)


SUCCESS_PATH = [
    PipelineStage.EXTRACTED,
    PipelineStage.PROMPT_BUILT,
    PipelineStage.COMPLETED,
    PipelineStage.POSTED,
]

TERMINAL = [PipelineStage.POSTED, PipelineStage.FAILED, PipelineStage.SKIPPED]


class TestTransitions:
    def test_every_stage_has_an_entry(self):
        assert set(VALID_TRANSITIONS) == set(PipelineStage)

    @pytest.mark.parametrize("stage", TERMINAL)
    def test_terminal_stages(self, stage):
        assert is_terminal_stage(stage)
        assert VALID_TRANSITIONS[stage] == []

    @pytest.mark.parametrize(
        "stage",
        [s for s in PipelineStage if s not in TERMINAL],
    )
    def test_any_active_stage_can_fail(self, stage):
        assert is_valid_transition(stage, PipelineStage.FAILED)

    def test_skips_only_before_extraction_or_after_completion(self):
        skippable = {
            stage
            for stage in PipelineStage
            if is_valid_transition(stage, PipelineStage.SKIPPED)
        }
        assert skippable == {PipelineStage.RECEIVED, PipelineStage.COMPLETED}

    def test_stages_cannot_be_skipped_over(self):
        assert not is_valid_transition(PipelineStage.RECEIVED, PipelineStage.COMPLETED)
        assert not is_valid_transition(PipelineStage.EXTRACTED, PipelineStage.POSTED)

    def test_next_stage_follows_success_path(self):
        stage = PipelineStage.RECEIVED
        visited = []
        while not is_terminal_stage(stage):
            stage = next_stage(stage)
            visited.append(stage)
        assert visited == SUCCESS_PATH

    def test_next_stage_of_terminal_stage(self):
        with pytest.raises(ValueError):
            next_stage(PipelineStage.POSTED)


class TestPipelineRun:
    def test_new_run(self):
        run = PipelineRun("evt-1")

        assert run.stage == PipelineStage.RECEIVED
        assert run.history == []
        assert run.pending_stage == PipelineStage.EXTRACTED
        assert run.is_finished is False
        assert run.stages() == [PipelineStage.RECEIVED]

    def test_full_success_path(self):
        run = PipelineRun("evt-1")

        for stage in SUCCESS_PATH:
            run.transition(stage)

        assert run.is_finished
        assert run.stages() == [PipelineStage.RECEIVED] + SUCCESS_PATH
        assert [t.from_stage for t in run.history] == [
            PipelineStage.RECEIVED,
            PipelineStage.EXTRACTED,
            PipelineStage.PROMPT_BUILT,
            PipelineStage.COMPLETED,
        ]

    def test_pending_stage_tracks_progress(self):
        run = PipelineRun("evt-1")
        run.transition(PipelineStage.EXTRACTED)
        run.transition(PipelineStage.PROMPT_BUILT)
        assert run.pending_stage == PipelineStage.COMPLETED

    def test_transition_details_are_recorded(self):
        run = PipelineRun("evt-1")

        transition = run.transition(PipelineStage.FAILED, {"reason": "timeout"})

        assert transition.details == {"reason": "timeout"}
        assert transition.timestamp.tzinfo is not None

    def test_invalid_transition(self):
        run = PipelineRun("evt-1")

        with pytest.raises(InvalidTransitionError) as exc_info:
            run.transition(PipelineStage.POSTED)

        assert exc_info.value.from_stage == PipelineStage.RECEIVED
        assert exc_info.value.to_stage == PipelineStage.POSTED
        assert run.stage == PipelineStage.RECEIVED

    def test_finished_run_cannot_move(self):
        run = PipelineRun("evt-1")
        run.transition(PipelineStage.SKIPPED)

        with pytest.raises(InvalidTransitionError):
            run.transition(PipelineStage.FAILED)
