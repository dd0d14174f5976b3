from typing import Any, Callable, Awaitable, Dict, List
import logging

from zipshare.clients.transfer_client import TransferAPIClient
from zipshare.config.config import settings
from zipshare.models.messages import ToolDefinition, ToolResult
from zipshare.models.transfers import TransferState
from zipshare.utils.exceptions import ToolError, ValidationError
from zipshare.utils.formatting import extract_share_token, format_bytes, format_duration, is_path_safe

logger = logging.getLogger(__name__)

TRANSFER_STATES = [state.value for state in TransferState]

TOOLS: List[ToolDefinition] = [
    ToolDefinition(
        name="send_file",
        description="Upload a file to ZipShare and get a shareable link. The recipient can download without an account.",
        input_schema={
            "type": "object",
            "properties": {
                "file_path": {"type": "string", "description": "Absolute path to the file to upload"},
                "recipient_email": {"type": "string", "description": "Optional: Email address to notify when file is ready"},
                "message": {"type": "string", "description": "Optional: Message to include with the file"},
                "password": {"type": "string", "description": "Optional: Password to protect the download link"},
                "expires_in": {
                    "type": "number",
                    "description": f"Optional: Hours until link expires (default: {settings.DEFAULT_EXPIRES_IN_HOURS} = 7 days)",
                },
                "max_downloads": {"type": "number", "description": "Optional: Maximum number of downloads allowed"},
            },
            "required": ["file_path"],
        },
    ),
    ToolDefinition(
        name="send_files",
        description="Upload multiple files and get a single shareable link for all of them.",
        input_schema={
            "type": "object",
            "properties": {
                "file_paths": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Array of absolute paths to files to upload",
                },
                "recipient_email": {"type": "string", "description": "Optional: Email to notify when files are ready"},
                "message": {"type": "string", "description": "Optional: Message to include"},
                "password": {"type": "string", "description": "Optional: Password protection"},
                "expires_in": {"type": "number", "description": "Optional: Hours until expiration"},
            },
            "required": ["file_paths"],
        },
    ),
    ToolDefinition(
        name="get_transfer_status",
        description="Check the status of a file transfer by its ID or share link.",
        input_schema={
            "type": "object",
            "properties": {
                "transfer_id": {"type": "string", "description": "The transfer ID or share link URL"},
            },
            "required": ["transfer_id"],
        },
    ),
    ToolDefinition(
        name="list_transfers",
        description="List recent file transfers from your account.",
        input_schema={
            "type": "object",
            "properties": {
                "limit": {
                    "type": "number",
                    "description": f"Number of transfers to return (default: {settings.DEFAULT_LIST_LIMIT}, max: {settings.MAX_LIST_LIMIT})",
                },
                "status": {"type": "string", "enum": TRANSFER_STATES, "description": "Filter by status"},
            },
        },
    ),
    ToolDefinition(
        name="delete_transfer",
        description="Delete a transfer and revoke its share link.",
        input_schema={
            "type": "object",
            "properties": {
                "transfer_id": {"type": "string", "description": "The transfer ID to delete"},
            },
            "required": ["transfer_id"],
        },
    ),
    ToolDefinition(
        name="get_download_link",
        description="Get a direct download link for a transfer (requires the share link password if protected).",
        input_schema={
            "type": "object",
            "properties": {
                "share_token": {"type": "string", "description": "The share token or the full share URL"},
                "password": {"type": "string", "description": "Password if the link is protected"},
            },
            "required": ["share_token"],
        },
    ),
]


def _require(arguments: Dict[str, Any], name: str) -> Any:
    value = arguments.get(name)
    if value is None or value == "" or value == []:
        raise ValidationError(f"Missing required argument: {name}")
    return value


def _safe_path(file_path: Any) -> str:
    if not isinstance(file_path, str) or not is_path_safe(file_path):
        raise ValidationError(f"File path must be absolute and must not contain '..': {file_path}")
    return file_path


class ToolDispatcher:
    def __init__(self, client: TransferAPIClient) -> None:
        self.__client = client
        self.__handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[str]]] = {
            "send_file": self._send_file,
            "send_files": self._send_files,
            "get_transfer_status": self._get_transfer_status,
            "list_transfers": self._list_transfers,
            "delete_transfer": self._delete_transfer,
            "get_download_link": self._get_download_link,
        }

    @property
    def client(self) -> TransferAPIClient:
        return self.__client

    def list_tools(self) -> List[ToolDefinition]:
        return TOOLS

    async def call(self, name: str, arguments: Dict[str, Any] | None = None) -> ToolResult:
        """Run one tool and render its result as a text block.

        Unknown tools raise ``ToolError`` with ``METHOD_NOT_FOUND``; every
        other failure is reported as ``INTERNAL_ERROR`` with its message.
        """
        handler = self.__handlers.get(name)
        if handler is None:
            raise ToolError(ToolError.METHOD_NOT_FOUND, f"Unknown tool: {name}")

        logger.info(f"Calling tool {name}")
        try:
            text = await handler(arguments or {})
        except ToolError:
            raise
        except Exception as e:
            logger.warning(f"Tool {name} failed: {e}")
            raise ToolError(ToolError.INTERNAL_ERROR, str(e) or "Unknown error occurred") from e

        return ToolResult.text(text)

    async def _send_file(self, arguments: Dict[str, Any]) -> str:
        file_path = _safe_path(_require(arguments, "file_path"))
        password = arguments.get("password")
        recipient_email = arguments.get("recipient_email")

        result = await self.__client.upload_file(
            file_path,
            recipient_email=recipient_email,
            message=arguments.get("message"),
            password=password,
            expires_in=arguments.get("expires_in"),
            max_downloads=arguments.get("max_downloads"),
        )

        lines = [
            "✅ File uploaded successfully!",
            "",
            f"**File:** {result.file_name}",
            f"**Size:** {format_bytes(result.file_size)}",
            f"**Share Link:** {result.share_url}",
        ]
        if password:
            lines.append("**Password Protected:** Yes")
        lines.append(f"**Expires:** {result.expires_at}")
        if recipient_email:
            lines.append(f"**Notification sent to:** {recipient_email}")
        lines += ["", f"The recipient can download the file at: {result.share_url}"]
        return "\n".join(lines)

    async def _send_files(self, arguments: Dict[str, Any]) -> str:
        file_paths = _require(arguments, "file_paths")
        if not isinstance(file_paths, list):
            raise ValidationError("file_paths must be an array of absolute paths")
        file_paths = [_safe_path(path) for path in file_paths]
        password = arguments.get("password")

        result = await self.__client.upload_files(
            file_paths,
            recipient_email=arguments.get("recipient_email"),
            message=arguments.get("message"),
            password=password,
            expires_in=arguments.get("expires_in"),
        )

        lines = [
            f"✅ {result.file_count} files uploaded successfully!",
            "",
            f"**Total Size:** {format_bytes(result.total_size)}",
            f"**Share Link:** {result.share_url}",
        ]
        if password:
            lines.append("**Password Protected:** Yes")
        lines += [f"**Expires:** {result.expires_at}", "", "Files included:"]
        lines += [f"- {f.name} ({format_bytes(f.size)})" for f in result.files]
        return "\n".join(lines)

    async def _get_transfer_status(self, arguments: Dict[str, Any]) -> str:
        result = await self.__client.get_transfer_status(_require(arguments, "transfer_id"))

        downloads = f"{result.download_count}"
        if result.max_downloads:
            downloads += f"/{result.max_downloads}"

        lines = [
            "**Transfer Status**",
            "",
            f"**ID:** {result.id}",
            f"**File:** {result.file_name}",
            f"**Size:** {format_bytes(result.file_size)}",
            f"**Status:** {result.status.value}",
            f"**Progress:** {result.progress:g}%",
            f"**Downloads:** {downloads}",
            f"**Created:** {result.created_at}",
            f"**Expires:** {result.expires_at}",
        ]
        if result.share_url:
            lines.append(f"**Share Link:** {result.share_url}")
        return "\n".join(lines)

    async def _list_transfers(self, arguments: Dict[str, Any]) -> str:
        limit = int(arguments.get("limit") or settings.DEFAULT_LIST_LIMIT)
        limit = max(1, min(limit, settings.MAX_LIST_LIMIT))
        status = arguments.get("status")
        if status is not None and status not in TRANSFER_STATES:
            raise ValidationError(f"Unknown status filter: {status}")

        result = await self.__client.list_transfers(limit=limit, status=status)
        if not result.transfers:
            return "No transfers found."

        transfer_list = "\n".join(
            f"- **{t.file_name}** ({format_bytes(t.file_size)}) - {t.status.value} - {t.created_at}"
            for t in result.transfers
        )
        return f"**Recent Transfers** ({len(result.transfers)})\n\n{transfer_list}"

    async def _delete_transfer(self, arguments: Dict[str, Any]) -> str:
        transfer_id = _require(arguments, "transfer_id")
        await self.__client.delete_transfer(transfer_id)
        return f"✅ Transfer {transfer_id} has been deleted and its share link revoked."

    async def _get_download_link(self, arguments: Dict[str, Any]) -> str:
        share_token = extract_share_token(_require(arguments, "share_token"))
        result = await self.__client.get_download_link(share_token, arguments.get("password"))

        return "\n".join(
            [
                "**Download Link**",
                "",
                f"**File:** {result.file_name}",
                f"**Size:** {format_bytes(result.file_size)}",
                f"**Direct Download:** {result.download_url}",
                "",
                f"This link is valid for {format_duration(result.valid_for)}.",
            ]
        )
