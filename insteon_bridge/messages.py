"""Outbound message envelopes shared by every bridge component."""

from __future__ import annotations

import json
from typing import Any, Dict

EVENT = "event"
ERROR = "error"
BRIDGE_STATUS = "bridgestatus"
DEVICE_INFO = "deviceInfo"


def create_message(message_type: str, data: Any) -> str:
    return json.dumps({"type": message_type, "data": data})


def device_event(device: Any, state: Any) -> Dict[str, Any]:
    return {
        "name": device.name,
        "deviceID": device.device_id,
        "deviceType": device.device_type,
        "state": state,
    }


def error_data(message: str) -> Dict[str, Any]:
    return {"message": message}


def bridge_status(message: str, connected: bool, **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "message": message,
        "insteonConnection": "connected" if connected else "disconnected",
    }
    payload.update(extra)
    return payload


__all__ = [
    "BRIDGE_STATUS",
    "DEVICE_INFO",
    "ERROR",
    "EVENT",
    "bridge_status",
    "create_message",
    "device_event",
    "error_data",
]
