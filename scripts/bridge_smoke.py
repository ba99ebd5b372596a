#!/usr/bin/env python3
"""Quick smoke-check against a running Insteon bridge."""

import asyncio
import json
import os

import aiohttp


async def receive(ws: aiohttp.ClientWebSocketResponse, message_type: str, timeout: float) -> dict:
    while True:
        message = await ws.receive_json(timeout=timeout)
        if message.get("type") == message_type:
            return message["data"]
        print(json.dumps(message, indent=2))


async def main() -> None:
    url = os.getenv("INSTEON_SMOKE_URL", "ws://localhost:8080/ws")
    timeout_seconds = float(os.getenv("INSTEON_SMOKE_TIMEOUT", "10"))

    async with aiohttp.ClientSession() as session:
        async with session.ws_connect(url) as ws:
            status = await receive(ws, "bridgestatus", timeout_seconds)
            print(json.dumps(status, indent=2))

            await ws.send_json({"method": "listDevices"})
            devices = await receive(ws, "listDevices", timeout_seconds)
            print(json.dumps(devices, indent=2))

            for device in devices:
                await ws.send_json({"method": "deviceInfo", "params": {"deviceID": device["deviceID"]}})
                reply = await ws.receive_json(timeout=timeout_seconds)
                print(json.dumps(reply, indent=2))


if __name__ == "__main__":
    asyncio.run(main())
