from fastapi import Request

from bot_bridge.services.container import BridgeServices


def get_services(request: Request) -> BridgeServices:
    return request.app.state.services


def request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")
