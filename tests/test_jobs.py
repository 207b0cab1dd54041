"""Tests for job types, the state machine and the error taxonomy."""

import pytest

from app.jobs import (
    Component,
    InvalidTransitionError,
    JobErrorCode,
    JobNotFoundError,
    JobStatus,
    UnknownComponentError,
    UnknownJobTypeError,
    can_transition,
    is_satisfied,
    is_terminal,
    required_components,
)


class TestStateMachine:
    """Tests for legal job transitions."""

    @pytest.mark.parametrize("target", ["completed", "failed", "canceled"])
    def test_running_to_terminal_allowed(self, target):
        assert can_transition(JobStatus.RUNNING, target)

    @pytest.mark.parametrize("current", ["completed", "failed", "canceled"])
    @pytest.mark.parametrize("target", ["running", "completed", "failed", "canceled"])
    def test_terminal_states_are_final(self, current, target):
        assert not can_transition(current, target)

    def test_running_to_running_not_a_transition(self):
        assert not can_transition("running", "running")

    def test_terminal_statuses(self):
        assert not is_terminal("running")
        assert is_terminal("completed")
        assert is_terminal("failed")
        assert is_terminal("canceled")


class TestRequiredComponents:
    """Tests for the per-type component table."""

    def test_podcast_ad_requires_music_and_voice_over(self):
        assert required_components("podcastAd") == (Component.MUSIC, Component.VOICE_OVER)

    def test_unknown_type_raises(self):
        with pytest.raises(UnknownJobTypeError) as exc_info:
            required_components("jingle")
        assert exc_info.value.error_code == JobErrorCode.UNKNOWN_JOB_TYPE

    def test_satisfied_needs_every_component(self):
        assert not is_satisfied("podcastAd", set())
        assert not is_satisfied("podcastAd", {"music"})
        assert not is_satisfied("podcastAd", {"voiceOver"})
        assert is_satisfied("podcastAd", {"music", "voiceOver"})


class TestErrors:
    """Tests for error classes."""

    def test_not_found_message(self):
        err = JobNotFoundError("ghost")
        assert err.error_code == JobErrorCode.NOT_FOUND
        assert "ghost" in err.message

    def test_unknown_component_is_not_found_variant(self):
        err = UnknownComponentError("job-1", "jingle")
        assert isinstance(err, JobNotFoundError)
        assert err.error_code == JobErrorCode.UNKNOWN_COMPONENT
        assert err.component == "jingle"

    def test_invalid_transition_carries_states(self):
        err = InvalidTransitionError("job-1", "completed", "failed")
        assert err.current == "completed"
        assert err.target == "failed"
        assert str(err).startswith("INVALID_TRANSITION")
