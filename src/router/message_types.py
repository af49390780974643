"""
Command types decoded from text-message bodies.

One model per action; each carries only the fields its handler needs.
Unrecognised top-level fields are ignored.
"""

from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, FrozenSet, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from common.errors import CommandValidationError


class CommandAction(str, Enum):
    """Actions the dispatcher knows how to route."""

    PING = "ping"
    LIST = "list"
    UPLOAD = "upload"
    DOWNLOAD = "download"
    DELETE = "delete"
    MKDIR = "mkdir"
    INFO = "info"
    RENAME = "rename"


PROGRESS_ACTION = "upload-progress"
PONG_ACTION = "pong"
UNKNOWN_ACTION = "unknown"

RequiredName = Annotated[str, Field(min_length=1)]


class BaseCommand(BaseModel):
    """Common behaviour for all command models."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # Reported when a required field is missing or empty
    missing_fields_message: ClassVar[str] = "Invalid command"
    required_fields: ClassVar[FrozenSet[str]] = frozenset()

    @classmethod
    def describe_error(cls, error: ValidationError) -> str:
        # Locations start with the union tag, e.g. ("upload", "fileName")
        fields = {str(item["loc"][1]) for item in error.errors() if len(item["loc"]) > 1}
        if not fields or fields & cls.required_fields:
            return cls.missing_fields_message
        return f"Invalid {', '.join(sorted(fields))}"


class PathCommand(BaseCommand):
    """Command with an optional directory relative to the storage root."""

    path: str = ""

    @field_validator("path", mode="before")
    @classmethod
    def _default_path(cls, value: Optional[str]) -> Any:
        return "" if value is None else value


class PingCommand(BaseCommand):
    action: Literal["ping"] = "ping"


class ListCommand(PathCommand):
    action: Literal["list"] = "list"


class UploadCommand(PathCommand):
    missing_fields_message: ClassVar[str] = "Missing fileName or data"
    required_fields: ClassVar[FrozenSet[str]] = frozenset({"fileName", "data"})

    action: Literal["upload"] = "upload"
    file_name: RequiredName = Field(alias="fileName")
    data: RequiredName


class DownloadCommand(PathCommand):
    missing_fields_message: ClassVar[str] = "Missing fileName"
    required_fields: ClassVar[FrozenSet[str]] = frozenset({"fileName"})

    action: Literal["download"] = "download"
    file_name: RequiredName = Field(alias="fileName")


class DeleteCommand(PathCommand):
    missing_fields_message: ClassVar[str] = "Missing fileName"
    required_fields: ClassVar[FrozenSet[str]] = frozenset({"fileName"})

    action: Literal["delete"] = "delete"
    file_name: RequiredName = Field(alias="fileName")


class MkdirCommand(PathCommand):
    missing_fields_message: ClassVar[str] = "Missing dirName"
    required_fields: ClassVar[FrozenSet[str]] = frozenset({"dirName"})

    action: Literal["mkdir"] = "mkdir"
    dir_name: RequiredName = Field(alias="dirName")


class InfoCommand(PathCommand):
    missing_fields_message: ClassVar[str] = "Missing fileName"
    required_fields: ClassVar[FrozenSet[str]] = frozenset({"fileName"})

    action: Literal["info"] = "info"
    file_name: RequiredName = Field(alias="fileName")


class RenameCommand(PathCommand):
    missing_fields_message: ClassVar[str] = "Missing oldName or newName"
    required_fields: ClassVar[FrozenSet[str]] = frozenset({"oldName", "newName"})

    action: Literal["rename"] = "rename"
    old_name: RequiredName = Field(alias="oldName")
    new_name: RequiredName = Field(alias="newName")


Command = Annotated[
    Union[
        PingCommand,
        ListCommand,
        UploadCommand,
        DownloadCommand,
        DeleteCommand,
        MkdirCommand,
        InfoCommand,
        RenameCommand,
    ],
    Field(discriminator="action"),
]

COMMAND_MODELS: Dict[str, Type[BaseCommand]] = {
    CommandAction.PING.value: PingCommand,
    CommandAction.LIST.value: ListCommand,
    CommandAction.UPLOAD.value: UploadCommand,
    CommandAction.DOWNLOAD.value: DownloadCommand,
    CommandAction.DELETE.value: DeleteCommand,
    CommandAction.MKDIR.value: MkdirCommand,
    CommandAction.INFO.value: InfoCommand,
    CommandAction.RENAME.value: RenameCommand,
}


_command_adapter = TypeAdapter(Command)


def decode_command(payload: Dict[str, Any]) -> BaseCommand:
    """
    Validate ``payload`` into the command model selected by its action.

    Raises:
        CommandValidationError: with the action's user-facing message.
    """
    try:
        return _command_adapter.validate_python(payload)
    except ValidationError as e:
        model = COMMAND_MODELS.get(payload.get("action"))
        if model is None:
            raise CommandValidationError("Unknown command") from e
        raise CommandValidationError(model.describe_error(e)) from e
