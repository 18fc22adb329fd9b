from datetime import datetime, timedelta

import pytest

from cfp.config import settings
from cfp.core.exceptions import (
    AuthorizationError,
    BusinessLogicError,
    CFPClosedError,
    ResourceAlreadyExistsError,
)
from cfp.models.plugin import Plugin
from cfp.plugins import loader
from cfp.plugins.registry import plugin_registry
from cfp.services.event_service import event_service
from cfp.services.federation_service import federation_service
from cfp.services.review_service import review_service
from cfp.services.submission_service import submission_service

RECORDER = """
CALLS = []

def _record(hook):
    def handle(ctx, payload):
        CALLS.append((hook, dict(payload)))
    return handle

hooks = {name: _record(name) for name in (
    "submission.created",
    "submission.statusChanged",
    "review.submitted",
    "review.allCompleted",
    "event.published",
)}
"""


@pytest.fixture
def recorder(db, write_plugin):
    write_plugin("recorder", RECORDER)
    loader.initialize_plugins(db)
    plugin = db.query(Plugin).filter(Plugin.name == "recorder").first()
    loader.enable_plugin(db, plugin.id)
    return plugin_registry.get("recorder").plugin.module.CALLS


@pytest.fixture
def organizer(make_user):
    return make_user("org@example.com", role="ORGANIZER")


@pytest.fixture
def open_event(db, organizer):
    return event_service.create_event(db, {
        "name": "PyConf",
        "slug": "pyconf",
        "status": "PUBLISHED",
        "cfp_opens_at": datetime.utcnow() - timedelta(days=1),
        "cfp_closes_at": datetime.utcnow() + timedelta(days=30),
        "min_reviews_per_talk": 2,
    }, organizer)


def _talk(event, **extra):
    data = {"event_id": event.id, "title": "Async all the things", "abstract": "Why and how."}
    data.update(extra)
    return data


def test_submission_promotes_user_to_speaker_and_fires_hook(db, make_user, open_event, recorder):
    speaker = make_user("speaker@example.com")

    submission = submission_service.create_submission(db, speaker, _talk(open_event))

    assert submission.status == "PENDING"
    assert speaker.role == "SPEAKER"
    assert ("submission.created", {
        "submission_id": submission.id,
        "event_id": open_event.id,
        "speaker_id": speaker.id,
        "title": "Async all the things",
    }) in recorder


def test_closed_cfp_rejects_submissions(db, make_user, organizer):
    event = event_service.create_event(db, {
        "name": "Past",
        "slug": "past",
        "status": "PUBLISHED",
        "cfp_closes_at": datetime.utcnow() - timedelta(days=1),
    }, organizer)

    with pytest.raises(CFPClosedError):
        submission_service.create_submission(db, make_user("late@example.com"), _talk(event))


def test_draft_event_rejects_submissions(db, make_user, organizer):
    event = event_service.create_event(db, {"name": "Draft", "slug": "draft"}, organizer)
    with pytest.raises(CFPClosedError):
        submission_service.create_submission(db, make_user("early@example.com"), _talk(event))


def test_track_must_belong_to_event(db, make_user, organizer, open_event):
    other = event_service.create_event(db, {"name": "Other", "slug": "other", "status": "PUBLISHED"}, organizer)
    foreign_track = event_service.add_track(db, other.id, "Data")
    own_track = event_service.add_track(db, open_event.id, "Web")
    speaker = make_user("speaker@example.com")

    with pytest.raises(BusinessLogicError) as excinfo:
        submission_service.create_submission(db, speaker, _talk(open_event, track_id=foreign_track.id))
    assert excinfo.value.message == "Invalid track for this event"

    submission = submission_service.create_submission(db, speaker, _talk(open_event, track_id=own_track.id))
    assert submission.track_id == own_track.id


def test_speaker_edits_and_withdraws(db, make_user, open_event, recorder):
    speaker = make_user("speaker@example.com")
    intruder = make_user("intruder@example.com")
    submission = submission_service.create_submission(db, speaker, _talk(open_event))

    with pytest.raises(AuthorizationError):
        submission_service.update_submission(db, submission.id, intruder, {"title": "Mine now"})

    updated = submission_service.update_submission(db, submission.id, speaker, {"title": "Async, revisited"})
    assert updated.title == "Async, revisited"

    withdrawn = submission_service.withdraw(db, submission.id, speaker)
    assert withdrawn.status == "WITHDRAWN"
    assert recorder[-1][0] == "submission.statusChanged"
    assert recorder[-1][1]["new_status"] == "WITHDRAWN"

    with pytest.raises(BusinessLogicError):
        submission_service.update_submission(db, submission.id, speaker, {"title": "Too late"})


def test_change_status_fires_hook_once(db, make_user, organizer, open_event, recorder):
    submission = submission_service.create_submission(db, make_user("speaker@example.com"), _talk(open_event))

    submission_service.change_status(db, submission.id, "ACCEPTED", organizer)
    submission_service.change_status(db, submission.id, "ACCEPTED", organizer)

    changes = [payload for hook, payload in recorder if hook == "submission.statusChanged"]
    assert len(changes) == 1
    assert changes[0]["old_status"] == "PENDING"
    assert changes[0]["changed_by"] == organizer.id

    with pytest.raises(BusinessLogicError):
        submission_service.change_status(db, submission.id, "MAYBE", organizer)


def test_reviews_reach_threshold_exactly_once(db, make_user, open_event, recorder):
    submission = submission_service.create_submission(db, make_user("speaker@example.com"), _talk(open_event))
    reviewers = [make_user(f"reviewer{i}@example.com", role="REVIEWER") for i in range(3)]
    for reviewer in reviewers:
        event_service.add_reviewer(db, open_event.id, reviewer.id)

    review_service.create_review(db, submission.id, reviewers[0], {"overall_score": 4, "recommendation": "ACCEPT"})
    db.refresh(submission)
    assert submission.status == "UNDER_REVIEW"

    review_service.create_review(db, submission.id, reviewers[1], {"overall_score": 3})
    review_service.create_review(db, submission.id, reviewers[2], {"overall_score": 5})

    completed = [payload for hook, payload in recorder if hook == "review.allCompleted"]
    assert completed == [{"submission_id": submission.id, "event_id": open_event.id, "review_count": 2}]
    assert len([hook for hook, _ in recorder if hook == "review.submitted"]) == 3
    status_changes = [p for hook, p in recorder if hook == "submission.statusChanged"]
    assert [p["new_status"] for p in status_changes] == ["UNDER_REVIEW"]


def test_duplicate_review_conflicts(db, make_user, open_event):
    submission = submission_service.create_submission(db, make_user("speaker@example.com"), _talk(open_event))
    reviewer = make_user("reviewer@example.com", role="REVIEWER")
    event_service.add_reviewer(db, open_event.id, reviewer.id)
    review_service.create_review(db, submission.id, reviewer, {"overall_score": 4})

    with pytest.raises(ResourceAlreadyExistsError) as excinfo:
        review_service.create_review(db, submission.id, reviewer, {"overall_score": 2})
    assert excinfo.value.status_code == 409


def test_reviewer_must_be_on_team(db, make_user, open_event):
    submission = submission_service.create_submission(db, make_user("speaker@example.com"), _talk(open_event))
    outsider = make_user("outsider@example.com", role="REVIEWER")

    with pytest.raises(AuthorizationError):
        review_service.create_review(db, submission.id, outsider, {"overall_score": 1})


def test_only_eligible_roles_join_review_team(db, make_user, open_event):
    speaker = make_user("speaker@example.com", role="SPEAKER")
    with pytest.raises(BusinessLogicError):
        event_service.add_reviewer(db, open_event.id, speaker.id)


def test_publishing_event_fires_hook(db, organizer, recorder):
    event = event_service.create_event(db, {"name": "Soon", "slug": "soon"}, organizer)
    assert not [hook for hook, _ in recorder if hook == "event.published"]

    event_service.update_event(db, event.id, {"status": "PUBLISHED"})

    assert ("event.published", {"event_id": event.id, "slug": "soon"}) in recorder


def test_federated_event_notifies_directory(db, make_user, organizer, monkeypatch):
    monkeypatch.setattr(settings, "FEDERATION_ENABLED", True)
    sent = []
    monkeypatch.setattr(federation_service, "notify", lambda event_id, kind, data: sent.append((event_id, kind, data)))
    event = event_service.create_event(db, {
        "name": "Federated",
        "slug": "federated",
        "status": "PUBLISHED",
        "is_federated": True,
        "federated_event_id": "dir-evt-7",
        "webhook_secret": "whsec_test",
    }, organizer)
    speaker = make_user("speaker@example.com")

    submission = submission_service.create_submission(db, speaker, _talk(event))
    submission_service.withdraw(db, submission.id, speaker)

    assert [kind for _, kind, _ in sent] == ["submission.created", "submission.status_updated"]
    event_id, _, data = sent[0]
    assert event_id == event.id
    assert data["submissionId"] == submission.id
    assert data["speakerId"] is None
    assert data["title"] == "Async all the things"


def test_unfederated_event_sends_nothing(db, make_user, open_event, monkeypatch):
    monkeypatch.setattr(settings, "FEDERATION_ENABLED", True)
    sent = []
    monkeypatch.setattr(federation_service, "notify", lambda *args: sent.append(args))

    submission_service.create_submission(db, make_user("speaker@example.com"), _talk(open_event))

    assert sent == []
