"""Request/response helpers shared by routers."""
import ipaddress

from fastapi import Request, Response

from .config import settings
from .services.pagination import page_meta


def get_client_ip(request: Request) -> str:
    if settings.TRUST_PROXY_HEADERS:
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            try:
                ipaddress.ip_address(real_ip)
                return real_ip
            except ValueError:
                pass

        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            # X-Forwarded-For may contain a list: client, proxy1, proxy2
            candidate = forwarded.split(",")[0].strip()
            try:
                ipaddress.ip_address(candidate)
                return candidate
            except ValueError:
                pass

    if request.client:
        return request.client.host
    return "unknown"


def request_meta(request: Request) -> dict:
    """Caller address and agent for activity log rows."""
    return {
        "ip_address": get_client_ip(request),
        "user_agent": request.headers.get("user-agent"),
    }


def set_no_store(response: Response) -> None:
    # Keep authenticated responses out of shared caches.
    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"


def paginated(items: list, *, total: int, page: int, limit: int) -> dict:
    return {"data": items, "pagination": page_meta(total=total, page=page, limit=limit)}
