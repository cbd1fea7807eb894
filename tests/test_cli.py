from __future__ import annotations

from pathlib import Path

import allure
from click.testing import CliRunner

from tales import __version__
from tales.main import tales

pytestmark = [
    allure.epic("Command Bus"),
    allure.feature("CLI"),
]


def _invoke(runner: CliRunner, db_path: Path, *args: str):
    group, command, *rest = args
    return runner.invoke(tales, [group, command, "--db-path", str(db_path), *rest])


def test_version_option() -> None:
    runner = CliRunner()
    result = runner.invoke(tales, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_story_flow_through_cli(tmp_path: Path) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()

    for user_id in ("alice", "bob"):
        result = _invoke(runner, db_path, "users", "register", "--user-id", user_id)
        assert result.exit_code == 0, result.output
        assert f"User registered: user_id={user_id}" in result.output

    result = _invoke(
        runner, db_path, "fragments", "create", "--actor", "alice",
        "--fragment-id", "root", "--content", "Once upon a time",
    )
    assert result.exit_code == 0, result.output
    assert "Event recorded: fragment_created" in result.output

    steps = [
        ("fragments", "publish", "--actor", "alice", "--fragment-id", "root"),
        ("social", "follow", "--actor", "alice", "--user-id", "bob"),
        ("social", "follow", "--actor", "bob", "--user-id", "alice"),
        (
            "fragments", "fork", "--actor", "bob", "--fragment-id", "fork",
            "--parent-id", "root", "--content", "Branch",
        ),
        ("fragments", "submit", "--actor", "bob", "--fragment-id", "fork"),
        (
            "fragments", "review", "--actor", "alice", "--review-id", "r1",
            "--fragment-id", "fork", "--action", "approve", "--comment", "Lovely",
        ),
        ("social", "like", "--actor", "bob", "--fragment-id", "root"),
    ]
    for step in steps:
        result = _invoke(runner, db_path, *step)
        assert result.exit_code == 0, result.output
        assert "Event recorded:" in result.output

    result = _invoke(runner, db_path, "social", "like", "--actor", "bob", "--fragment-id", "root")
    assert result.exit_code == 0
    assert "like_fragment: nothing changed." in result.output

    result = runner.invoke(tales, ["fragments", "show", "--db-path", str(db_path), "root"])
    assert result.exit_code == 0, result.output
    assert "State: published" in result.output
    assert "Likes: 1" in result.output
    assert "- fork approved by bob" in result.output

    result = runner.invoke(tales, ["fragments", "show", "--db-path", str(db_path), "fork"])
    assert "Path: root" in result.output
    assert "alice approve: Lovely" in result.output

    result = _invoke(runner, db_path, "events", "list", "--kind", "fork_reviewed")
    assert result.exit_code == 0
    assert "fork_reviewed actor=user:alice fragment=fork" in result.output


def test_domain_errors_become_click_errors(tmp_path: Path) -> None:
    db_path = tmp_path / "errors.db"
    runner = CliRunner()
    _invoke(runner, db_path, "users", "register", "--user-id", "alice")

    result = _invoke(
        runner, db_path, "fragments", "publish", "--actor", "alice", "--fragment-id", "ghost",
    )
    assert result.exit_code == 1
    assert "fragment_not_found" in result.output

    result = _invoke(
        runner, db_path, "fragments", "publish", "--system", "--fragment-id", "ghost",
    )
    assert result.exit_code == 1
    assert "actor_not_supported" in result.output

    result = _invoke(runner, db_path, "users", "register", "--user-id", "alice")
    assert result.exit_code == 1
    assert "invalid_state" in result.output


def test_actor_selection_is_required(tmp_path: Path) -> None:
    db_path = tmp_path / "usage.db"
    runner = CliRunner()

    neither = _invoke(runner, db_path, "social", "follow", "--user-id", "bob")
    both = _invoke(
        runner, db_path, "social", "follow", "--actor", "alice", "--system", "--user-id", "bob",
    )

    assert neither.exit_code == 2
    assert both.exit_code == 2


def test_dispatch_then_worker(tmp_path: Path) -> None:
    db_path = tmp_path / "tasks.db"
    runner = CliRunner(env={"TALES_WORKER_ID": "cli-worker"})
    _invoke(runner, db_path, "users", "register", "--user-id", "alice")

    result = _invoke(
        runner, db_path, "fragments", "create", "--actor", "alice", "--mode", "dispatch",
        "--fragment-id", "later", "--content", "Deferred text",
    )
    assert result.exit_code == 0, result.output
    assert "Task dispatched:" in result.output

    result = _invoke(runner, db_path, "tasks", "list", "--status", "pending")
    assert "create_fragment status=pending actor=user:alice" in result.output

    result = _invoke(runner, db_path, "worker", "run", "--once")
    assert result.exit_code == 0, result.output
    assert "processed=1 succeeded=1 failed=0" in result.output

    result = _invoke(runner, db_path, "tasks", "list", "--status", "succeeded")
    assert "create_fragment status=succeeded" in result.output

    result = _invoke(runner, db_path, "events", "list")
    assert "fragment_created actor=user:alice fragment=later" in result.output


def test_failed_task_can_be_retried(tmp_path: Path) -> None:
    db_path = tmp_path / "retry.db"
    runner = CliRunner()
    _invoke(runner, db_path, "users", "register", "--user-id", "alice")
    dispatched = _invoke(
        runner, db_path, "fragments", "publish", "--actor", "alice", "--mode", "dispatch",
        "--fragment-id", "ghost",
    )
    task_id = dispatched.output.split("task_id=")[1].split()[0]

    result = _invoke(runner, db_path, "worker", "run", "--loop", "--max-idle-polls", "1")
    assert "processed=1 succeeded=0 failed=1" in result.output

    result = _invoke(runner, db_path, "tasks", "list", "--status", "failed")
    assert "error=fragment_not_found" in result.output

    result = runner.invoke(tales, ["tasks", "retry", "--db-path", str(db_path), task_id])
    assert result.exit_code == 0, result.output
    assert f"Task requeued: task_id={task_id} status=pending" in result.output

    result = runner.invoke(tales, ["tasks", "retry", "--db-path", str(db_path), task_id])
    assert result.exit_code == 1
    assert "invalid_state" in result.output


def test_async_mode_runs_before_exit(tmp_path: Path) -> None:
    db_path = tmp_path / "async.db"
    runner = CliRunner()
    _invoke(runner, db_path, "users", "register", "--user-id", "alice")

    result = _invoke(
        runner, db_path, "fragments", "create", "--actor", "alice", "--mode", "async",
        "--fragment-id", "bg", "--content", "Background",
    )
    assert result.exit_code == 0, result.output
    assert "Submitted create_fragment for background execution." in result.output

    result = runner.invoke(tales, ["fragments", "show", "--db-path", str(db_path), "bg"])
    assert result.exit_code == 0, result.output
    assert "State: draft" in result.output
