"""
Unit tests for interview progress rules.
"""

import pytest

from willcraft.domain.will import (
    Progress,
    SectionKey,
    WillStatus,
    advance_status,
    check_status_transition,
    percent_for,
    recompute_progress,
)
from willcraft.infrastructure.exceptions import ValidationError


class TestPercentFor:

    @pytest.mark.parametrize("count,expected", [
        (0, 0),
        (1, 17),
        (2, 33),
        (3, 50),
        (4, 67),
        (5, 83),
        (6, 100),
    ])
    def test_rounds_half_up(self, count, expected):
        assert percent_for(count) == expected

    def test_clamped(self):
        assert percent_for(-1) == 0
        assert percent_for(9) == 100


class TestRecomputeProgress:

    def test_adds_touched_section(self):
        progress = recompute_progress(Progress(), SectionKey.FAMILY)

        assert progress.completed_sections == ["family"]
        assert progress.current_section == "family"
        assert progress.percent_complete == 17

    def test_keeps_order_without_duplicates(self):
        progress = Progress(completed_sections=["assets", "family"], current_section="family")

        progress = recompute_progress(progress, SectionKey.ASSETS)

        assert progress.completed_sections == ["assets", "family"]
        assert progress.current_section == "assets"
        assert progress.percent_complete == 33

    def test_repairs_duplicates_and_percent(self):
        stale = Progress(
            completed_sections=["family", "family"],
            current_section="family",
            percent_complete=90,
        )

        progress = recompute_progress(stale)

        assert progress.completed_sections == ["family"]
        assert progress.percent_complete == 17

    def test_input_not_modified(self):
        original = Progress()
        recompute_progress(original, SectionKey.REVIEW)
        assert original.completed_sections == []

    def test_serializes_camel_case(self):
        progress = recompute_progress(Progress(), SectionKey.PERSONAL_INFO)
        assert progress.model_dump(by_alias=True) == {
            "completedSections": ["personal-info"],
            "currentSection": "personal-info",
            "percentComplete": 17,
        }


class TestStatus:

    def test_complete_draft_advances(self):
        full = Progress(completed_sections=[key.value for key in SectionKey], percent_complete=100)
        assert advance_status(WillStatus.DRAFT, full) == WillStatus.COMPLETED

    def test_partial_draft_stays(self):
        assert advance_status(WillStatus.DRAFT, Progress(percent_complete=83)) == WillStatus.DRAFT

    def test_executed_is_kept(self):
        full = Progress(percent_complete=100)
        assert advance_status(WillStatus.EXECUTED, full) == WillStatus.EXECUTED

    def test_forward_transition_allowed(self):
        assert check_status_transition(WillStatus.DRAFT, WillStatus.EXECUTED) == WillStatus.EXECUTED
        assert check_status_transition(WillStatus.COMPLETED, WillStatus.COMPLETED) == WillStatus.COMPLETED

    def test_backward_transition_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            check_status_transition(WillStatus.COMPLETED, WillStatus.DRAFT)
        assert "status" in exc_info.value.fields
