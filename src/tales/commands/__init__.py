"""Command variants accepted by the bus."""

from tales.commands.base import (
    COMMAND_TYPES,
    Command,
    CommandKind,
    command_from_payload,
)
from tales.commands.fragments import (
    CreateFragmentCommand,
    ForkFragmentCommand,
    PublishFragmentCommand,
    ReviewForkCommand,
    SubmitForkCommand,
    UpdateFragmentCommand,
)
from tales.commands.social import (
    DislikeFragmentCommand,
    FollowUserCommand,
    LikeFragmentCommand,
    UnfollowUserCommand,
)

__all__ = [
    "COMMAND_TYPES",
    "Command",
    "CommandKind",
    "CreateFragmentCommand",
    "DislikeFragmentCommand",
    "FollowUserCommand",
    "ForkFragmentCommand",
    "LikeFragmentCommand",
    "PublishFragmentCommand",
    "ReviewForkCommand",
    "SubmitForkCommand",
    "UnfollowUserCommand",
    "UpdateFragmentCommand",
    "command_from_payload",
]
