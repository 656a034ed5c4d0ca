"""
errors.py — Lobby Error Taxonomy
=================================
Construction errors are fatal to that construction attempt; the
MicroLobby is never partially built. Ingestion never raises these.
"""

from __future__ import annotations

from typing import Any


class LobbyError(Exception):
    def __init__(self, code: str, message: str, details: dict | None = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class InvalidRegionError(LobbyError):
    def __init__(self, region: Any = None, message: str = "Invalid region"):
        super().__init__("INVALID_REGION", message, {"region": region})
        self.region = region


class InvalidPayloadError(LobbyError):
    """First schema violation of a client payload. All of them are in details."""

    def __init__(self, path: str, message: str, violations: list | None = None):
        super().__init__(
            "INVALID_PAYLOAD",
            f"Invalid Data: {path}, {message}",
            {"violations": [v.to_dict() for v in violations or []]},
        )
        self.path = path
        self.reason = message
        self.violations = violations or []


class NotSelfPresentError(LobbyError):
    def __init__(self, message: str = "Invalid New Lobby Payload Data: no isSelf slot"):
        super().__init__("NOT_SELF_PRESENT", message)


class InvalidSnapshotError(LobbyError):
    """Aggregate of every violation found while loading a snapshot."""

    def __init__(self, violations: list):
        first = violations[0] if violations else None
        message = "Invalid New Lobby Full Data"
        if first is not None:
            message += f": {first.path}, {first.message}"
        super().__init__(
            "INVALID_SNAPSHOT",
            message,
            {"violations": [v.to_dict() for v in violations]},
        )
        self.violations = violations


class MissingInputError(LobbyError):
    def __init__(self, message: str = "Missing New Lobby data."):
        super().__init__("MISSING_INPUT", message)


class InvalidUpdateError(LobbyError):
    def __init__(self, message: str = "Unrecognised lobby update", details: dict | None = None):
        super().__init__("INVALID_UPDATE", message, details)
