from __future__ import annotations

from typing import Optional


class SonosError(RuntimeError):
    kind = "sonos"

    def __init__(self, message: str, *, action: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.action = action

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message, "action": self.action}


class ValidationError(SonosError):
    kind = "validation"


class TopologyNotFound(SonosError):
    kind = "topology_not_found"


class PlayerNotInAnyGroup(SonosError):
    kind = "player_not_in_any_group"


class TransportError(SonosError):
    """No response from the player (refused, unreachable, DNS)."""

    kind = "transport"


class TransportTimeout(TransportError):
    kind = "timeout"


class ProtocolFault(SonosError):
    """HTTP 500 with a UPnP fault envelope."""

    kind = "protocol_fault"

    def __init__(
        self,
        message: str,
        *,
        action: Optional[str] = None,
        status_code: int = 500,
        upnp_error_code: str = "",
        upnp_error_message: str = "unknown error",
    ) -> None:
        super().__init__(message, action=action)
        self.status_code = status_code
        self.upnp_error_code = upnp_error_code
        self.upnp_error_message = upnp_error_message

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["status_code"] = self.status_code
        payload["upnp_error_code"] = self.upnp_error_code
        payload["upnp_error_message"] = self.upnp_error_message
        return payload


class MalformedFault(SonosError):
    """The player answered with an error status but not with a UPnP fault."""

    kind = "malformed_fault"

    def __init__(self, message: str, *, action: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(message, action=action)
        self.status_code = status_code


class InvalidResponse(SonosError):
    kind = "invalid_response"


class UnknownAction(SonosError):
    kind = "unknown_action"


class GroupBusy(SonosError):
    kind = "group_busy"
