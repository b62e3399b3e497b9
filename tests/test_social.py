import pytest

from app.core.errors import NotFound, Unauthorized, ValidationError
from app.notifications.models import Notification


def _social(db, user_id):
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.type == "social")
        .order_by(Notification.id)
        .all()
    )


@pytest.fixture
def people(make_user):
    return make_user("alice"), make_user("bob"), make_user("carol")


def test_share_goal(db, services, people):
    alice, bob, carol = people
    services.achievements.create_initial_achievements(alice.id)
    goal = services.goals.create_goal(alice.id, "Climb Kilimanjaro")

    goal, sent = services.social.share_goal(goal.id, alice.id, [bob.id, alice.id, bob.id], "Join me!")
    assert goal.visibility == "shared"
    assert [u.id for u in goal.shared_with] == [bob.id]
    assert [n.user_id for n in sent] == [bob.id]
    assert sent[0].message == "Join me!"
    assert sent[0].action_required

    team_player = [a for a in services.achievements.list_for_user(alice.id) if a.key == "team-player"][0]
    assert team_player.is_completed

    # A member may share further; re-sharing with an existing member sends nothing new
    _, sent = services.social.share_goal(goal.id, bob.id, [carol.id])
    assert [n.user_id for n in sent] == [carol.id]
    _, sent = services.social.share_goal(goal.id, alice.id, [carol.id])
    assert sent == []


def test_share_rules(services, people):
    alice, bob, carol = people
    goal = services.goals.create_goal(alice.id, "Secret")
    with pytest.raises(Unauthorized):
        services.social.share_goal(goal.id, bob.id, [carol.id])
    with pytest.raises(ValidationError):
        services.social.share_goal(goal.id, alice.id, [alice.id])
    with pytest.raises(NotFound):
        services.social.share_goal(goal.id, alice.id, [999])
    with pytest.raises(NotFound):
        services.social.share_goal(999, alice.id, [bob.id])


def test_comment_notifies_everyone_but_the_author(db, services, people):
    alice, bob, carol = people
    goal = services.goals.create_goal(alice.id, "Team goal")
    services.social.share_goal(goal.id, alice.id, [bob.id, carol.id])
    before = {u.id: len(_social(db, u.id)) for u in people}

    comment = services.social.add_comment(goal.id, bob.id, "  Great progress!  ")
    assert comment.content == "Great progress!"

    after = {u.id: len(_social(db, u.id)) for u in people}
    assert after[alice.id] - before[alice.id] == 1
    assert after[carol.id] - before[carol.id] == 1
    assert after[bob.id] == before[bob.id]
    assert _social(db, alice.id)[-1].title == "New Comment on Your Goal"
    assert _social(db, carol.id)[-1].title == "New Comment on Shared Goal"

    reply = services.social.add_comment(goal.id, alice.id, "Thanks", parent_comment_id=comment.id)
    assert [c.id for c in services.social.get_comments(goal.id, carol.id)] == [comment.id, reply.id]


def test_private_goal_is_owner_only(services, people):
    alice, bob, _ = people
    goal = services.goals.create_goal(alice.id, "Diary")
    with pytest.raises(Unauthorized):
        services.social.add_comment(goal.id, bob.id, "Hi")
    with pytest.raises(Unauthorized):
        services.social.react_to_goal(goal.id, bob.id, "like")
    with pytest.raises(ValidationError):
        services.social.add_comment(goal.id, alice.id, "   ")


def test_reactions(db, services, people):
    alice, bob, _ = people
    goal = services.goals.create_goal(alice.id, "Open goal", visibility="public")
    reaction = services.social.react_to_goal(goal.id, bob.id, "celebrate")
    assert reaction.type == "celebrate"
    assert _social(db, alice.id)[-1].message == "Bob reacted to your goal: Open goal"

    with pytest.raises(ValidationError):
        services.social.react_to_goal(goal.id, bob.id, "meh")


def test_feed_and_shared_goals(services, people):
    alice, bob, carol = people
    own = services.goals.create_goal(bob.id, "Bob's own")
    shared = services.goals.create_goal(alice.id, "Shared with Bob")
    services.social.share_goal(shared.id, alice.id, [bob.id])
    public = services.goals.create_goal(carol.id, "Carol's public", visibility="public")
    services.goals.create_goal(carol.id, "Carol's private")

    feed = {item["goal"].id: item for item in services.social.get_social_feed(bob.id)}
    assert set(feed) == {own.id, shared.id, public.id}
    assert feed[own.id]["is_owner"] and not feed[own.id]["is_shared"]
    assert feed[shared.id]["is_shared"] and not feed[shared.id]["is_owner"]
    assert not feed[public.id]["is_owner"] and not feed[public.id]["is_shared"]

    assert [g.id for g in services.social.get_shared_goals(bob.id)] == [shared.id]
    assert [g.id for g in services.social.get_shared_goals(alice.id)] == [shared.id]
