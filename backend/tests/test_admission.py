"""
Unit tests for the admission policy
"""
from datetime import timedelta

import pytest
from conftest import make_record
from datapoint_collector.services.admission import (ACCEPT, AdmissionPolicy,
                                                    RejectReason, classify)

NOW_SECONDS = 1700000000


@pytest.fixture
def now():
    return make_record(NOW_SECONDS).timestamp


def test_accepts_fresh_datapoint(now):
    """Test a recent datapoint with harmless tags is accepted"""
    admission = classify(make_record(NOW_SECONDS - 60, tags=["ok"]), now)

    assert admission == ACCEPT
    assert admission.destination == "accepted"


def test_rejects_stale_datapoint(now):
    """Test a datapoint two hours old is stale"""
    admission = classify(make_record(NOW_SECONDS - 7200), now)

    assert admission.accepted is False
    assert admission.reason is RejectReason.STALE
    assert admission.destination == "rejected"


def test_exactly_max_age_is_not_stale(now):
    admission = classify(make_record(NOW_SECONDS - 3600), now)
    assert admission.accepted is True


def test_one_second_past_max_age_is_stale(now):
    admission = classify(make_record(NOW_SECONDS - 3601), now)
    assert admission.reason is RejectReason.STALE


def test_future_timestamp_is_accepted(now):
    assert classify(make_record(NOW_SECONDS + 3600), now).accepted is True


@pytest.mark.parametrize("tag", ["system", "suspect"])
def test_rejects_blocked_tag(now, tag):
    """Test blocked tags reject the datapoint"""
    admission = classify(make_record(NOW_SECONDS, tags=["ok", tag]), now)

    assert admission.reason is RejectReason.BLOCKED_TAG
    assert admission.detail == tag


def test_blocked_tag_match_is_case_sensitive(now):
    assert classify(make_record(NOW_SECONDS, tags=["System", "SUSPECT"]), now).accepted is True


def test_first_blocked_tag_is_reported(now):
    admission = classify(make_record(NOW_SECONDS, tags=["suspect", "system"]), now)
    assert admission.detail == "suspect"


def test_stale_check_runs_before_tag_check(now):
    admission = classify(make_record(NOW_SECONDS - 7200, tags=["suspect"]), now)
    assert admission.reason is RejectReason.STALE


def test_empty_tags_are_accepted(now):
    assert classify(make_record(NOW_SECONDS, tags=[]), now).accepted is True


def test_custom_policy(now):
    """Test a policy built from settings values"""
    policy = AdmissionPolicy.from_settings(60, ["debug"])

    assert policy.max_age == timedelta(seconds=60)
    assert policy.classify(make_record(NOW_SECONDS - 120), now).reason is RejectReason.STALE
    assert policy.classify(make_record(NOW_SECONDS, tags=["suspect"]), now).accepted is True
    assert policy.classify(make_record(NOW_SECONDS, tags=["debug"]), now).reason is RejectReason.BLOCKED_TAG
