"""
Audit logging middleware for the profile store.
Auto-logs every request touching donor or recipient records.
"""
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from ..models.audit import AuditLog
from ..models.base import SessionLocal, generate_uuid

logger = logging.getLogger(__name__)

# Requests to these paths are logged
AUDITED_PATH_PREFIXES = (
    "/api/donors",
    "/api/recipients",
)

ACTOR_HEADER = "X-Wallet-Address"


class AuditMiddleware(BaseHTTPMiddleware):
    """Middleware that records who touched which profile record."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        path = request.url.path
        if not any(path.startswith(prefix) for prefix in AUDITED_PATH_PREFIXES):
            return response

        if request.method not in ("GET", "POST", "PUT", "PATCH", "DELETE"):
            return response

        actor = (request.headers.get(ACTOR_HEADER) or "anonymous").lower()

        # /api/<resource_type>[/<wallet address>]
        parts = [p for p in path.split("/") if p]
        resource_type = parts[1] if len(parts) >= 2 else "unknown"
        resource_id = parts[2].lower() if len(parts) >= 3 else "*"

        action_map = {
            "GET": "view",
            "POST": "create",
            "PUT": "update",
            "PATCH": "update",
            "DELETE": "delete",
        }
        action = action_map.get(request.method, request.method.lower())

        ip_address = request.client.host if request.client else None

        db = SessionLocal()
        try:
            log_entry = AuditLog(
                id=generate_uuid(),
                actor=actor,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                status_code=response.status_code,
                ip_address=ip_address,
                request_method=request.method,
                request_path=path,
                user_agent=request.headers.get("User-Agent"),
            )
            db.add(log_entry)
            db.commit()
        except Exception as exc:
            logger.warning(
                "Audit log write failed for %s %s (actor=%s): %s",
                request.method, path, actor, exc,
            )
        finally:
            db.close()

        return response
