"""
Tests for the command dispatcher and file operation handlers.
"""

import base64
import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from common.models import DomainMessage
from router.command_router import CommandRouter
from storage import LocalStorage


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@pytest.mark.asyncio
async def test_ping_returns_pong(send_command) -> None:
    """Test ping always succeeds with a timestamp."""
    response = await send_command({"action": "ping"})

    assert response["action"] == "pong"
    assert response["status"] == "success"
    assert isinstance(response["timestamp"], int)


@pytest.mark.asyncio
async def test_list_empty_root(send_command) -> None:
    """Test listing an empty storage root."""
    response = await send_command({"action": "list", "path": ""})

    assert response == {"action": "list", "status": "success", "path": "", "files": []}


@pytest.mark.asyncio
async def test_list_reports_entries(send_command, storage_dir: Path) -> None:
    """Test listing returns metadata for files and directories."""
    (storage_dir / "photos").mkdir()
    (storage_dir / "notes.txt").write_bytes(b"hello")

    response = await send_command({"action": "list"})

    assert response["status"] == "success"
    files = {entry["name"]: entry for entry in response["files"]}
    assert set(files) == {"photos", "notes.txt"}
    assert files["photos"]["isDirectory"] is True
    assert files["notes.txt"]["isDirectory"] is False
    assert files["notes.txt"]["size"] == 5
    assert files["notes.txt"]["modified"].endswith("Z")


@pytest.mark.asyncio
async def test_list_missing_directory(send_command) -> None:
    """Test listing a directory that does not exist."""
    response = await send_command({"action": "list", "path": "nowhere"})

    assert response == {"action": "list", "status": "error", "message": "Directory not found"}


@pytest.mark.asyncio
async def test_list_on_file_reports_failure_label(send_command, storage_dir: Path) -> None:
    """Test filesystem failures are reported with the operation label."""
    (storage_dir / "notes.txt").write_bytes(b"hello")

    response = await send_command({"action": "list", "path": "notes.txt"})

    assert response["action"] == "list"
    assert response["status"] == "error"
    assert response["message"].startswith("Error listing files: ")


@pytest.mark.asyncio
async def test_delete_missing_file(send_command) -> None:
    """Test deleting a file that does not exist."""
    response = await send_command({"action": "delete", "fileName": "ghost.txt"})

    assert response == {"action": "delete", "status": "error", "message": "File not found"}


@pytest.mark.asyncio
async def test_delete_directory_recursively(send_command, storage_dir: Path) -> None:
    """Test directories are removed with their contents."""
    nested = storage_dir / "album" / "2024"
    nested.mkdir(parents=True)
    (nested / "a.jpg").write_bytes(b"\xff\xd8")

    response = await send_command({"action": "delete", "fileName": "album"})

    assert response == {"action": "delete", "status": "success", "fileName": "album", "path": ""}
    assert not (storage_dir / "album").exists()


@pytest.mark.asyncio
async def test_mkdir_is_idempotent(send_command, storage_dir: Path) -> None:
    """Test creating the same directory twice succeeds both times."""
    command = {"action": "mkdir", "dirName": "b", "path": "a"}

    first = await send_command(command)
    second = await send_command(command)

    expected = {"action": "mkdir", "status": "success", "dirName": "b", "path": "a"}
    assert first == expected
    assert second == expected
    assert (storage_dir / "a" / "b").is_dir()
    assert [p.name for p in (storage_dir / "a").iterdir()] == ["b"]


@pytest.mark.asyncio
async def test_upload_then_download_round_trip(
    send_command, router: CommandRouter, storage_dir: Path
) -> None:
    """Test uploaded bytes come back unchanged in a file message."""
    original = bytes(range(256)) * 4

    upload = await send_command(
        {"action": "upload", "fileName": "blob.bin", "path": "inbox", "data": b64(original)}
    )
    assert upload == {
        "action": "upload",
        "status": "success",
        "fileName": "blob.bin",
        "path": "inbox",
        "size": len(original),
    }
    assert (storage_dir / "inbox" / "blob.bin").read_bytes() == original

    download = await send_command({"action": "download", "fileName": "blob.bin", "path": "inbox"})
    assert download["status"] == "success"
    assert download["size"] == len(original)

    # Most recent first: the response, then the file message published before it
    file_message = router.controller.sent[1]
    assert file_message.kind == "file"
    assert file_message.file_name == "blob.bin"
    assert file_message.file_size == len(original)
    assert file_message.origin_device_id == router.controller.device_id
    assert base64.b64decode(file_message.body) == original


@pytest.mark.asyncio
async def test_download_missing_file_publishes_nothing(
    send_command, router: CommandRouter
) -> None:
    """Test a failed download sends only the error response."""
    response = await send_command({"action": "download", "fileName": "ghost.txt"})

    assert response == {"action": "download", "status": "error", "message": "File not found"}
    assert len(router.controller.sent) == 1
    assert router.controller.latest_sent("file") is None


@pytest.mark.asyncio
async def test_upload_missing_fields(send_command, storage_dir: Path) -> None:
    """Test missing upload fields are rejected before any I/O."""
    response = await send_command({"action": "upload", "fileName": "a.txt"})

    assert response == {
        "action": "upload",
        "status": "error",
        "message": "Missing fileName or data",
    }
    assert list(storage_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_upload_invalid_base64(send_command, storage_dir: Path) -> None:
    """Test undecodable data is rejected without writing."""
    response = await send_command({"action": "upload", "fileName": "a.txt", "data": "!!!"})

    assert response["status"] == "error"
    assert response["message"] == "Invalid base64 data"
    assert list(storage_dir.iterdir()) == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "command, message",
    [
        ({"action": "download"}, "Missing fileName"),
        ({"action": "delete", "fileName": ""}, "Missing fileName"),
        ({"action": "info"}, "Missing fileName"),
        ({"action": "mkdir"}, "Missing dirName"),
        ({"action": "rename", "oldName": "a"}, "Missing oldName or newName"),
    ],
)
async def test_missing_required_fields(send_command, command, message) -> None:
    """Test every action reports its own validation message."""
    response = await send_command(command)

    assert response == {"action": command["action"], "status": "error", "message": message}


@pytest.mark.asyncio
async def test_info_reports_stat(send_command, storage_dir: Path) -> None:
    """Test info returns size, type and timestamps."""
    (storage_dir / "docs").mkdir()
    (storage_dir / "docs" / "readme.md").write_text("# hi", encoding="utf-8")

    response = await send_command({"action": "info", "fileName": "readme.md", "path": "docs"})

    assert response["status"] == "success"
    assert response["fileName"] == "readme.md"
    assert response["path"] == "docs"
    assert response["size"] == 4
    assert response["isDirectory"] is False
    assert response["created"].endswith("Z")
    assert response["modified"].endswith("Z")


@pytest.mark.asyncio
async def test_info_missing(send_command) -> None:
    response = await send_command({"action": "info", "fileName": "ghost.txt"})

    assert response == {"action": "info", "status": "error", "message": "File not found"}


@pytest.mark.asyncio
async def test_rename_success(send_command, storage_dir: Path) -> None:
    """Test renaming reports the stat of the new entry."""
    (storage_dir / "old.txt").write_bytes(b"abc")

    response = await send_command({"action": "rename", "oldName": "old.txt", "newName": "new.txt"})

    assert response == {
        "action": "rename",
        "status": "success",
        "oldName": "old.txt",
        "newName": "new.txt",
        "path": "",
        "isDirectory": False,
        "size": 3,
    }
    assert not (storage_dir / "old.txt").exists()
    assert (storage_dir / "new.txt").read_bytes() == b"abc"


@pytest.mark.asyncio
async def test_rename_conflict_leaves_both_untouched(send_command, storage_dir: Path) -> None:
    """Test renaming onto an existing entry fails without changes."""
    (storage_dir / "a.txt").write_bytes(b"first")
    (storage_dir / "b.txt").write_bytes(b"second")

    response = await send_command({"action": "rename", "oldName": "a.txt", "newName": "b.txt"})

    assert response == {
        "action": "rename",
        "status": "error",
        "message": "Destination already exists",
    }
    assert (storage_dir / "a.txt").read_bytes() == b"first"
    assert (storage_dir / "b.txt").read_bytes() == b"second"


@pytest.mark.asyncio
async def test_rename_missing_source(send_command) -> None:
    response = await send_command({"action": "rename", "oldName": "a.txt", "newName": "b.txt"})

    assert response == {
        "action": "rename",
        "status": "error",
        "message": "Source file/folder not found",
    }


@pytest.mark.asyncio
async def test_delete_symlink_keeps_target(send_command, storage_dir: Path) -> None:
    """Test deleting a link removes the link, not what it points at."""
    (storage_dir / "real.txt").write_bytes(b"keep")
    (storage_dir / "link.txt").symlink_to(storage_dir / "real.txt")

    response = await send_command({"action": "delete", "fileName": "link.txt"})

    assert response["status"] == "success"
    assert not (storage_dir / "link.txt").is_symlink()
    assert (storage_dir / "real.txt").read_bytes() == b"keep"


@pytest.mark.asyncio
async def test_delete_symlinked_directory_keeps_contents(send_command, storage_dir: Path) -> None:
    (storage_dir / "data").mkdir()
    (storage_dir / "data" / "a.txt").write_bytes(b"a")
    (storage_dir / "shortcut").symlink_to(storage_dir / "data", target_is_directory=True)

    response = await send_command({"action": "delete", "fileName": "shortcut"})

    assert response["status"] == "success"
    assert not (storage_dir / "shortcut").is_symlink()
    assert (storage_dir / "data" / "a.txt").read_bytes() == b"a"


@pytest.mark.asyncio
async def test_rename_symlink_moves_link_only(send_command, storage_dir: Path) -> None:
    (storage_dir / "real.txt").write_bytes(b"keep")
    (storage_dir / "link.txt").symlink_to(storage_dir / "real.txt")

    response = await send_command(
        {"action": "rename", "oldName": "link.txt", "newName": "moved.txt"}
    )

    assert response["status"] == "success"
    assert (storage_dir / "moved.txt").is_symlink()
    assert not (storage_dir / "link.txt").is_symlink()
    assert (storage_dir / "real.txt").read_bytes() == b"keep"


@pytest.mark.asyncio
async def test_list_reports_linked_directory_as_link(send_command, storage_dir: Path) -> None:
    (storage_dir / "data").mkdir()
    (storage_dir / "shortcut").symlink_to(storage_dir / "data", target_is_directory=True)

    response = await send_command({"action": "list"})

    files = {entry["name"]: entry for entry in response["files"]}
    assert files["data"]["isDirectory"] is True
    assert files["shortcut"]["isDirectory"] is False


@pytest.mark.asyncio
async def test_symlink_pointing_outside_is_rejected(send_command, storage_dir: Path) -> None:
    outside = storage_dir.parent / "secret.txt"
    outside.write_bytes(b"secret")
    (storage_dir / "escape.txt").symlink_to(outside)

    response = await send_command({"action": "download", "fileName": "escape.txt"})

    assert response == {"action": "download", "status": "error", "message": "Invalid path"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "command",
    [
        {"action": "delete", "fileName": "../outside.txt"},
        {"action": "download", "fileName": "outside.txt", "path": "../"},
        {"action": "info", "fileName": "."},
        {"action": "upload", "fileName": "../../evil.sh", "data": "ZWNobw=="},
        {"action": "rename", "oldName": "x", "newName": "../outside.txt"},
        {"action": "list", "path": "../.."},
    ],
)
async def test_path_traversal_rejected(send_command, storage_dir: Path, command) -> None:
    """Test paths resolving outside the storage root are refused."""
    outside = storage_dir.parent / "outside.txt"
    outside.write_bytes(b"keep me")

    response = await send_command(command)

    assert response["status"] == "error"
    assert response["message"] == "Invalid path"
    assert outside.read_bytes() == b"keep me"


@pytest.mark.asyncio
async def test_unknown_command_touches_no_storage(controller) -> None:
    """Test unknown actions are answered without invoking any handler."""
    storage = MagicMock()
    router = CommandRouter(controller, storage)

    response = await router.handle_message(
        DomainMessage(kind="text", body=json.dumps({"action": "format", "path": "/"}))
    )

    assert response.model_dump(exclude_none=True) == {
        "action": "format",
        "status": "error",
        "message": "Unknown command",
    }
    assert len(controller.sent) == 1
    for method in ("resolve", "exists", "list_dir", "write_bytes", "remove", "rename"):
        getattr(storage, method).assert_not_called()


@pytest.mark.asyncio
async def test_missing_action_is_unknown(send_command) -> None:
    response = await send_command({"path": "x"})

    assert response == {"action": "unknown", "status": "error", "message": "Unknown command"}


@pytest.mark.asyncio
@pytest.mark.parametrize("body", ["not json", "[1, 2]", ""])
async def test_unparseable_body(send_command, body: str) -> None:
    """Test malformed bodies produce one processing error."""
    response = await send_command(body)

    assert response["action"] == "unknown"
    assert response["status"] == "error"
    assert response["message"].startswith("Error processing command:")


@pytest.mark.asyncio
async def test_unrecognised_fields_are_ignored(send_command) -> None:
    response = await send_command({"action": "ping", "requestedBy": "ops"})

    assert response["status"] == "success"


@pytest.mark.asyncio
async def test_exactly_one_response_per_command(send_command, router: CommandRouter) -> None:
    """Test every command, good or bad, publishes exactly one response."""
    commands = [
        {"action": "ping"},
        {"action": "nope"},
        "garbage",
        {"action": "delete", "fileName": "ghost"},
        {"action": "mkdir", "dirName": "d"},
    ]
    for count, command in enumerate(commands, start=1):
        await send_command(command)
        assert len(router.controller.sent) == count
        assert router.controller.sent[0].kind == "text"


@pytest.mark.asyncio
async def test_non_text_messages_are_ignored(router: CommandRouter) -> None:
    """Test image and file messages never reach command parsing."""
    for kind in ("image", "file"):
        response = await router.handle_message(
            DomainMessage(kind=kind, body=json.dumps({"action": "ping"}))
        )
        assert response is None

    assert len(router.controller.sent) == 0


@pytest.mark.asyncio
async def test_run_handles_text_received_events(router: CommandRouter) -> None:
    """Test the router loop answers commands classified by the controller."""
    import asyncio

    task = asyncio.create_task(router.run())
    await asyncio.sleep(0)

    router.controller.classify_inbound(
        DomainMessage(kind="text", body=json.dumps({"action": "ping"}), deviceId="operator")
    )

    for _ in range(100):
        if router.controller.sent:
            break
        await asyncio.sleep(0.01)

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)

    assert len(router.controller.sent) == 1
    assert json.loads(router.controller.sent[0].body)["action"] == "pong"
    assert router.controller.subscriber_count == 0


@pytest.mark.asyncio
async def test_storage_unaffected_by_serialization_setting(controller, storage_dir: Path) -> None:
    """Test handlers behave the same with path serialization disabled."""
    router = CommandRouter(controller, LocalStorage(str(storage_dir), serialize_paths=False))

    response = await router.handle_message(
        DomainMessage(
            kind="text",
            body=json.dumps({"action": "upload", "fileName": "x.txt", "data": b64(b"x")}),
        )
    )

    assert response.status == "success"
    assert (storage_dir / "x.txt").read_bytes() == b"x"
