"""
Artist Link Page Tool

Lets the model add a link button to the calling user's artist link page.
The platform-side work (permissions, validation, saving) belongs to the
injected LinkPageService; this module only maps parameters and results.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pydantic import BaseModel

from chatdesk.chat.context import get_current_user

from .registry import ToolDefinition

logger = logging.getLogger(__name__)


class LinkPageError(Exception):
    """Raised by a LinkPageService when the platform rejects a link."""

    def __init__(self, message: str, code: str = "link_page_error") -> None:
        super().__init__(message)
        self.code = code


class AddedLink(BaseModel):
    link_id: str | None = None
    position: int | None = None  # 0-based


class LinkPageService(Protocol):
    async def artists_for_user(self, user_id: str) -> list[str]: ...

    async def artist_name(self, artist_id: str) -> str: ...

    async def link_page_for_artist(self, artist_id: str) -> str | None: ...

    async def link_page_url(self, link_page_id: str) -> str: ...

    async def add_link(
        self, link_page_id: str, link: dict[str, Any], user_id: str
    ) -> AddedLink: ...


class AddLinkTool:
    """Callable tool target for `add_link_to_page`."""

    def __init__(self, service: LinkPageService) -> None:
        self.service = service

    async def __call__(self, parameters: dict[str, Any]) -> dict[str, Any]:
        user = get_current_user()
        if user is None:
            return {"error": "No authenticated user is attached to this request."}

        artist_ids = await self.service.artists_for_user(user.id)
        if not artist_ids:
            return {
                "error": "You don't have any artist profiles yet.",
                "suggestion": "Create an artist profile to get started with your link page.",
            }

        # First profile only; multi-artist selection is not supported yet
        artist_id = artist_ids[0]

        link_page_id = await self.service.link_page_for_artist(artist_id)
        if not link_page_id:
            return {
                "error": "No link page found for your artist profile.",
                "suggestion": "Link pages are created automatically when you set up your artist profile.",
            }

        link: dict[str, Any] = {
            "link_text": parameters.get("link_text", ""),
            "link_url": parameters.get("link_url", ""),
            "section_index": 0,
        }
        if parameters.get("position") is not None:
            link["position"] = max(0, int(parameters["position"]) - 1)

        try:
            added = await self.service.add_link(link_page_id, link, user.id)
        except LinkPageError as e:
            logger.info("Link page rejected link for user %s: %s", user.id, e)
            return {"error": str(e), "error_code": e.code}

        artist_name = await self.service.artist_name(artist_id)
        page_url = await self.service.link_page_url(link_page_id)
        position_text = (
            f" at position {added.position + 1}" if added.position is not None else ""
        )

        return {
            "success": True,
            "message": (
                f'Added "{link["link_text"]}" to {artist_name}\'s link page'
                f"{position_text}. View it here: {page_url}"
            ),
            "link_page_url": page_url,
            "link_id": added.link_id,
            "position": added.position + 1 if added.position is not None else None,
        }


class LinkPageToolSource:
    """Tool source contributing `add_link_to_page` when a service is configured."""

    tool_id = "add_link_to_page"

    def __init__(self, service: LinkPageService | None) -> None:
        self.service = service

    def tools(self) -> dict[str, ToolDefinition]:
        if self.service is None:
            return {}
        return {
            self.tool_id: ToolDefinition(
                id=self.tool_id,
                function={
                    "name": self.tool_id,
                    "description": (
                        "Add a new link button to the user's artist link page. Use this "
                        "when the user asks to add a link, button, or URL to their link page."
                    ),
                    "parameters": {
                        "type": "object",
                        "properties": {
                            "link_text": {
                                "type": "string",
                                "description": 'Text to display on the button (e.g., "Listen on Spotify")',
                            },
                            "link_url": {
                                "type": "string",
                                "description": "Full URL the button links to (must include http:// or https://)",
                            },
                            "position": {
                                "type": "integer",
                                "description": (
                                    "Position in the list (1-based). Omit to add the link "
                                    "to the end of the list."
                                ),
                            },
                        },
                        "required": ["link_text", "link_url"],
                    },
                },
                invoke=AddLinkTool(self.service),
            )
        }
