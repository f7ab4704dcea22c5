from sqlalchemy.exc import OperationalError

from core.action_logger import REFERRER_MAX, USER_AGENT_MAX
from models import UserAction, VideoView, db


def test_each_view_increments_counter_and_adds_row(catalog, make_video):
    vid = make_video("Counted")

    for _ in range(4):
        assert catalog.actions.record_view(vid, user_agent="pytest", referrer="https://ref.example")

    assert catalog.store.get_by_id(vid).views == 4
    assert VideoView.query.filter_by(video_id=vid).count() == 4


def test_view_for_missing_video_leaves_nothing_behind(catalog):
    assert catalog.actions.record_view(9999) is False
    assert VideoView.query.count() == 0


def test_action_fields_are_clipped(catalog):
    assert catalog.actions.record_action("home_page_view", user_agent="u" * 400, referrer="r" * 900)

    action = UserAction.query.one()
    assert action.video_id is None
    assert len(action.user_agent) == USER_AGENT_MAX
    assert len(action.referrer) == REFERRER_MAX


def test_database_failure_is_not_raised(catalog, make_video, monkeypatch):
    vid = make_video("Counted")

    def broken_commit():
        raise OperationalError("INSERT", {}, Exception("database is gone"))

    monkeypatch.setattr(db.session, "commit", broken_commit)

    assert catalog.actions.record_action("video_view", vid) is False
    assert catalog.actions.record_view(vid) is False

    monkeypatch.undo()
    assert catalog.store.get_by_id(vid).views == 0
    assert UserAction.query.count() == 0
    assert VideoView.query.count() == 0
