import pytest

from globalmatch.services.moderation import (
    EscalationThresholds,
    decide_escalation,
    report_priority,
    validate_report,
)

REPORTER = "11111111-1111-1111-1111-111111111111"
REPORTED = "22222222-2222-2222-2222-222222222222"


@pytest.mark.parametrize(
    "report_type,priority",
    [
        ("abuse", "critical"),
        ("harassment", "critical"),
        ("inappropriate_content", "high"),
        ("fake_profile", "high"),
        ("spam", "medium"),
        ("other", "medium"),
    ],
)
def test_report_priority(report_type, priority):
    assert report_priority(report_type) == priority


def test_validate_report_defaults_and_priority():
    report = validate_report(
        REPORTER,
        {
            "reported_user_id": REPORTED,
            "report_type": "harassment",
            "description": "  rude messages ",
            "evidence_urls": ["https://x/1.png", "", None],
        },
    )
    assert report["category"] == "profile"
    assert report["priority"] == "critical"
    assert report["description"] == "rude messages"
    assert report["evidence_urls"] == ["https://x/1.png"]
    assert report["content_id"] is None


@pytest.mark.parametrize(
    "payload,message",
    [
        ({"report_type": "spam"}, "required"),
        ({"reported_user_id": REPORTED}, "required"),
        ({"reported_user_id": "not-a-uuid", "report_type": "spam"}, "UUID"),
        ({"reported_user_id": REPORTED, "report_type": "rude"}, "report_type"),
        ({"reported_user_id": REPORTED, "report_type": "spam", "category": "dm"}, "category"),
        ({"reported_user_id": REPORTER, "report_type": "spam"}, "yourself"),
    ],
)
def test_validate_report_rejects(payload, message):
    with pytest.raises(ValueError) as exc:
        validate_report(REPORTER, payload)
    assert message in str(exc.value)


def test_escalation_single_report_takes_no_action():
    assert decide_escalation("spam", 1) is None


def test_escalation_second_report_warns():
    decision = decide_escalation("spam", 2)
    assert decision.action_type == "warning"


def test_escalation_harassment_ban_for_72_hours():
    decision = decide_escalation("harassment", 5)
    assert decision.action_type == "temporary_ban"
    assert decision.duration_hours == 72


def test_escalation_harassment_below_ban_threshold_warns():
    assert decide_escalation("harassment", 4).action_type == "warning"


def test_escalation_inappropriate_content_review():
    assert decide_escalation("inappropriate_content", 3).action_type == "profile_review"


def test_escalation_permanent_ban_for_any_type():
    assert decide_escalation("spam", 10).action_type == "permanent_ban"
    assert decide_escalation("fake_profile", 12).action_type == "permanent_ban"


def test_escalation_harassment_rule_precedes_permanent_ban():
    assert decide_escalation("harassment", 10).action_type == "temporary_ban"


def test_escalation_thresholds_are_configurable():
    strict = EscalationThresholds(harassment_ban=2, harassment_ban_hours=24, warning=1)
    decision = decide_escalation("harassment", 2, strict)
    assert decision.action_type == "temporary_ban"
    assert decision.duration_hours == 24
    assert decide_escalation("spam", 1, strict).action_type == "warning"
