from __future__ import annotations

import allure
import pytest

from conftest import befriend, published_root, submitted_fork
from tales.actor import Actor
from tales.bus.bus import CommandBus
from tales.commands import (
    CreateFragmentCommand,
    ForkFragmentCommand,
    PublishFragmentCommand,
    ReviewForkCommand,
    SubmitForkCommand,
    UnfollowUserCommand,
    UpdateFragmentCommand,
)
from tales.errors import (
    ForbiddenError,
    ForkNotFound,
    FragmentNotFound,
    InvalidStateError,
    ParentFragmentNotFound,
)
from tales.events import ForkReviewedEvent, ForkSubmittedEvent, FragmentForkedEvent
from tales.models import FragmentState, ReviewAction
from tales.storage import fragments
from tales.storage.database import Database

pytestmark = [
    allure.epic("Command Bus"),
    allure.feature("Forks & Reviews"),
]


def _state(database: Database, fragment_id: str) -> FragmentState:
    with database.session() as session:
        fragment = fragments.find(session, fragment_id)
    assert fragment is not None
    return fragment.state


def _fork(fragment_id: str = "fork", parent_id: str = "root") -> ForkFragmentCommand:
    return ForkFragmentCommand(
        fragment_id=fragment_id,
        parent_fragment_id=parent_id,
        content="Branch",
    )


def _review(action: ReviewAction, review_id: str = "r1") -> ReviewForkCommand:
    return ReviewForkCommand(review_id=review_id, fragment_id="fork", action=action)


def test_friend_forks_published_fragment(
    bus: CommandBus,
    database: Database,
    people: tuple[Actor, Actor, Actor],
) -> None:
    alice, bob, _ = people
    published_root(bus, alice)
    befriend(bus, alice, bob)

    event = bus.execute(bob, _fork())

    assert isinstance(event, FragmentForkedEvent)
    assert event.parent_fragment_id == "root"
    assert event.path == ("root",)
    with database.session() as session:
        fork = fragments.find(session, "fork")
    assert fork is not None
    assert fork.state is FragmentState.DRAFT
    assert fork.parent_id == "root"
    assert fork.author_id == "bob"

    with pytest.raises(ForbiddenError, match="own fragment"):
        bus.execute(alice, _fork("self-fork"))


def test_fork_path_extends_ancestry(
    bus: CommandBus,
    database: Database,
    people: tuple[Actor, Actor, Actor],
) -> None:
    alice, bob, carol = people
    submitted_fork(bus, parent_author=alice, forker=bob)
    bus.execute(alice, _review(ReviewAction.APPROVE))
    bus.execute(bob, PublishFragmentCommand(fragment_id="fork"))
    befriend(bus, bob, carol)

    event = bus.execute(carol, _fork("grandchild", parent_id="fork"))

    assert isinstance(event, FragmentForkedEvent)
    assert event.path == ("root", "fork")
    with database.session() as session:
        grandchild = fragments.find(session, "grandchild")
        children = fragments.list_children(session, "fork")
    assert grandchild is not None
    assert grandchild.path == ("root", "fork")
    assert grandchild.parent_id == grandchild.path[-1]
    assert [child.id for child in children] == ["grandchild"]


def test_fork_checks_run_in_order(bus: CommandBus, people: tuple[Actor, Actor, Actor]) -> None:
    alice, bob, carol = people

    with pytest.raises(ParentFragmentNotFound) as exc_info:
        bus.execute(bob, _fork(parent_id="ghost"))
    assert exc_info.value.entity_id == "ghost"

    bus.execute(alice, CreateFragmentCommand(fragment_id="root", content="Draft"))
    with pytest.raises(InvalidStateError, match="not published"):
        bus.execute(bob, _fork())

    bus.execute(alice, PublishFragmentCommand(fragment_id="root"))
    with pytest.raises(ForbiddenError, match="follow each other"):
        bus.execute(carol, _fork())

    befriend(bus, alice, carol)
    bus.execute(carol, UnfollowUserCommand(followee_id="alice"))
    with pytest.raises(ForbiddenError, match="follow each other"):
        bus.execute(carol, _fork())


def test_end_fragment_cannot_be_forked(
    bus: CommandBus,
    people: tuple[Actor, Actor, Actor],
) -> None:
    alice, bob, carol = people
    published_root(bus, alice)
    befriend(bus, alice, bob)
    bus.execute(
        bob,
        ForkFragmentCommand(
            fragment_id="ending",
            parent_fragment_id="root",
            content="The end",
            end=True,
        ),
    )
    bus.execute(bob, SubmitForkCommand(fragment_id="ending"))
    bus.execute(
        alice,
        ReviewForkCommand(review_id="r1", fragment_id="ending", action=ReviewAction.APPROVE),
    )
    bus.execute(bob, PublishFragmentCommand(fragment_id="ending"))
    befriend(bus, bob, carol)

    with pytest.raises(ForbiddenError, match="ends its story"):
        bus.execute(carol, _fork("after-end", parent_id="ending"))


def test_submit_rules(bus: CommandBus, people: tuple[Actor, Actor, Actor]) -> None:
    alice, bob, _ = people
    published_root(bus, alice)
    befriend(bus, alice, bob)
    bus.execute(bob, _fork())

    with pytest.raises(ForkNotFound):
        bus.execute(bob, SubmitForkCommand(fragment_id="ghost"))
    with pytest.raises(ForbiddenError):
        bus.execute(alice, SubmitForkCommand(fragment_id="fork"))
    with pytest.raises(InvalidStateError, match="cannot be submitted"):
        bus.execute(alice, SubmitForkCommand(fragment_id="root"))

    event = bus.execute(bob, SubmitForkCommand(fragment_id="fork"))
    assert isinstance(event, ForkSubmittedEvent)

    with pytest.raises(InvalidStateError):
        bus.execute(bob, SubmitForkCommand(fragment_id="fork"))


def test_reject_is_final(
    bus: CommandBus,
    database: Database,
    people: tuple[Actor, Actor, Actor],
) -> None:
    alice, bob, _ = people
    submitted_fork(bus, parent_author=alice, forker=bob)

    event = bus.execute(alice, _review(ReviewAction.REJECT))

    assert isinstance(event, ForkReviewedEvent)
    assert event.state == "rejected"
    assert _state(database, "fork") is FragmentState.REJECTED
    with database.session() as session:
        reviews = fragments.list_reviews(session, "fork")
    assert len(reviews) == 1
    assert reviews[0].reviewer_id == "alice"
    assert reviews[0].action is ReviewAction.REJECT

    with pytest.raises(InvalidStateError):
        bus.execute(alice, _review(ReviewAction.REJECT, review_id="r2"))
    with pytest.raises(InvalidStateError):
        bus.execute(bob, UpdateFragmentCommand(fragment_id="fork", content="Please?"))
    with pytest.raises(InvalidStateError):
        bus.execute(bob, PublishFragmentCommand(fragment_id="fork"))


def test_review_rules(bus: CommandBus, people: tuple[Actor, Actor, Actor]) -> None:
    alice, bob, carol = people
    submitted_fork(bus, parent_author=alice, forker=bob)

    with pytest.raises(FragmentNotFound):
        bus.execute(
            alice,
            ReviewForkCommand(review_id="r0", fragment_id="ghost", action=ReviewAction.APPROVE),
        )
    with pytest.raises(InvalidStateError, match="not a fork"):
        bus.execute(
            alice,
            ReviewForkCommand(review_id="r0", fragment_id="root", action=ReviewAction.APPROVE),
        )
    with pytest.raises(ForbiddenError):
        bus.execute(carol, _review(ReviewAction.APPROVE))
    with pytest.raises(ForbiddenError):
        bus.execute(bob, _review(ReviewAction.APPROVE))


def test_request_changes_allows_resubmission(
    bus: CommandBus,
    database: Database,
    people: tuple[Actor, Actor, Actor],
) -> None:
    alice, bob, _ = people
    submitted_fork(bus, parent_author=alice, forker=bob)

    bus.execute(alice, _review(ReviewAction.REQUEST_CHANGES))
    assert _state(database, "fork") is FragmentState.WAITING_CHANGES

    bus.execute(bob, UpdateFragmentCommand(fragment_id="fork", content="Better branch", end=True))
    bus.execute(bob, SubmitForkCommand(fragment_id="fork"))
    assert _state(database, "fork") is FragmentState.SUBMITTED

    bus.execute(alice, _review(ReviewAction.APPROVE, review_id="r2"))
    bus.execute(bob, PublishFragmentCommand(fragment_id="fork"))
    assert _state(database, "fork") is FragmentState.PUBLISHED


def test_approved_fork_is_frozen_until_published(
    bus: CommandBus,
    people: tuple[Actor, Actor, Actor],
) -> None:
    alice, bob, _ = people
    submitted_fork(bus, parent_author=alice, forker=bob)

    with pytest.raises(InvalidStateError):
        bus.execute(bob, PublishFragmentCommand(fragment_id="fork"))

    bus.execute(alice, _review(ReviewAction.APPROVE))
    with pytest.raises(InvalidStateError):
        bus.execute(bob, UpdateFragmentCommand(fragment_id="fork", content="Sneaky"))
    with pytest.raises(ForbiddenError):
        bus.execute(alice, PublishFragmentCommand(fragment_id="fork"))
