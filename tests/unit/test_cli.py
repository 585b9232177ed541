"""
Argument parsing and job requests for the command line.
"""
import pytest

from prospector.__main__ import _job_request, build_parser
from prospector.core.models import JobType


def parse(*argv):
    return build_parser().parse_args(list(argv))


def test_discover_payload():
    job_type, payload = _job_request(parse("discover", "--profile", "3", "--limit", "50", "--persona", "2"))
    assert job_type == JobType.DISCOVER
    assert payload == {"target_profile_id": 3, "limit": 50, "enrich_top": True, "persona_id": 2}


def test_build_without_discovery():
    job_type, payload = _job_request(parse("build", "--funnel", "7", "--no-discover"))
    assert job_type == JobType.BUILD_FUNNEL
    assert payload == {"funnel_id": 7, "limit": None, "discover": False}


def test_signal_commands():
    assert _job_request(parse("signals", "--funnel", "7"))[0] == JobType.COMPANY_SIGNALS
    assert _job_request(parse("signals", "--funnel", "7", "--persona"))[0] == JobType.PERSONA_SIGNALS
    assert _job_request(parse("refresh", "--funnel", "7")) == (JobType.REFRESH_FUNNEL, {"funnel_id": 7, "limit": None})


def test_cancel_takes_job_id():
    assert parse("cancel", "12").job_id == 12


def test_command_is_required():
    with pytest.raises(SystemExit):
        parse()
