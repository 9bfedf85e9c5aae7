"""
Tests for PrivacyFilter

Exclusion rules are checked one at a time, then as a whole over sequences.
"""

import pytest


LOCK = "\U0001F512"


@pytest.fixture
def privacy_filter():
    from threadline.buffer.privacy import PrivacyFilter
    return PrivacyFilter()


class TestExclusionRules:
    """Tests for the individual exclusion rules"""

    def test_ordinary_message_is_kept(self, privacy_filter, make_message):
        message = make_message("m1", 0, text="Let's move the launch to next week")

        assert privacy_filter.exclude(message) is False
        assert privacy_filter.exclusion_reason(message) is None

    def test_off_record_marker_prefix(self, privacy_filter, make_message):
        message = make_message("m1", 0, text=f"{LOCK} this stays between us, ok?")

        assert privacy_filter.exclude(message) is True
        assert privacy_filter.exclusion_reason(message) == "off_record"

    def test_off_record_marker_elsewhere_is_not_a_prefix(self, privacy_filter, make_message):
        message = make_message("m1", 0, text=f"Use the {LOCK} emoji to keep a message private")

        assert privacy_filter.exclude(message) is False

    @pytest.mark.parametrize("text", [
        "This is CONFIDENTIAL, please keep it quiet",
        "The new Salary bands are out today",
        "What is our runway looking like?",
    ])
    def test_blocked_keywords_are_case_insensitive(self, privacy_filter, make_message, text):
        message = make_message("m1", 0, text=text)

        assert privacy_filter.exclusion_reason(message) == "blocked_keyword"

    def test_keyword_matches_as_substring(self, privacy_filter, make_message):
        # "nda" inside "agenda" still counts
        message = make_message("m1", 0, text="Posting the agenda for tomorrow")

        assert privacy_filter.exclude(message) is True

    def test_mostly_code_is_excluded(self, privacy_filter, make_message):
        code = "```\n" + "x = compute(x)\n" * 10 + "```"
        message = make_message("m1", 0, text=f"see: {code}")

        assert privacy_filter.exclusion_reason(message) == "code_block"

    def test_small_code_block_is_kept(self, privacy_filter, make_message):
        text = "The retry loop needs a backoff between attempts, roughly ```sleep(2)``` per try."
        message = make_message("m1", 0, text=text)

        assert privacy_filter.exclude(message) is False

    def test_short_text_is_excluded(self, privacy_filter, make_message):
        assert privacy_filter.exclusion_reason(make_message("m1", 0, text="ok thanks")) == "too_short"
        assert privacy_filter.exclusion_reason(make_message("m2", 0, text="")) == "too_short"

    def test_minimum_length_is_inclusive(self, privacy_filter, make_message):
        assert privacy_filter.exclude(make_message("m1", 0, text="0123456789")) is False

    def test_custom_config(self, make_message):
        from threadline.buffer.privacy import PrivacyFilter
        from threadline.common.config import PrivacyConfig

        custom = PrivacyFilter(PrivacyConfig(
            blocked_keywords=["Project-X"],
            off_record_marker="[OTR]",
            min_text_length=3,
        ))

        assert custom.exclude(make_message("m1", 0, text="[otr] quick aside")) is True
        assert custom.exclude(make_message("m2", 0, text="project-x slipped")) is True
        assert custom.exclude(make_message("m3", 0, text="yes")) is False
        # Defaults no longer apply
        assert custom.exclude(make_message("m4", 0, text="confidential")) is False


class TestFilterSequence:
    """Tests for PrivacyFilter.filter"""

    def test_preserves_relative_order(self, privacy_filter, make_message):
        messages = [
            make_message("m1", 0),
            make_message("m2", 1, text="short"),
            make_message("m3", 2),
            make_message("m4", 3, text=f"{LOCK} not for the bot to read"),
            make_message("m5", 4),
        ]

        assert [m.id for m in privacy_filter.filter(messages)] == ["m1", "m3", "m5"]

    def test_is_idempotent(self, privacy_filter, make_message):
        messages = [
            make_message("m1", 0),
            make_message("m2", 1, text="confidential numbers attached"),
            make_message("m3", 2, text="tiny"),
            make_message("m4", 3),
        ]

        once = privacy_filter.filter(messages)

        assert privacy_filter.filter(once) == once

    def test_accepts_any_iterable(self, privacy_filter, make_message):
        messages = (make_message(f"m{i}", i) for i in range(3))

        assert len(privacy_filter.filter(messages)) == 3
