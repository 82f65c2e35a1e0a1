# import_hub/middleware/tenant_context.py

"""
Tenant and environment resolution for importer requests.

Authentication happens upstream: the gateway forwards the caller as
``X-Tenant-ID`` / ``X-User-ID`` headers, which the flask_login request loader
turns into a ``TenantUser``. ``X-Environment: live`` (or ``?is_live=true``)
selects the live environment; everything else is the test environment.
"""

from flask import g, request
from flask_login import UserMixin, current_user

from import_hub.importer.pipeline.session_service import ImportScope

TENANT_HEADER = "X-Tenant-ID"
USER_HEADER = "X-User-ID"
ENVIRONMENT_HEADER = "X-Environment"
_TRUTHY = {"1", "true", "yes", "on"}


class TenantUser(UserMixin):
    """Authenticated caller acting on behalf of one tenant."""

    def __init__(self, tenant_id, user_id=None):
        self.tenant_id = tenant_id
        self.user_id = user_id

    def get_id(self):
        return f"{self.tenant_id}:{self.user_id or ''}"

    def __repr__(self):
        return f"<TenantUser tenant={self.tenant_id} user={self.user_id}>"


def _parse_positive_int(value):
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def load_user_from_request(req):
    """flask_login request loader: build a ``TenantUser`` from forwarded headers."""
    tenant_id = _parse_positive_int(req.headers.get(TENANT_HEADER))
    if tenant_id is None:
        return None
    return TenantUser(tenant_id, _parse_positive_int(req.headers.get(USER_HEADER)))


def resolve_is_live(req):
    header = (req.headers.get(ENVIRONMENT_HEADER) or "").strip().lower()
    if header:
        return header == "live"
    return (req.args.get("is_live") or "").strip().lower() in _TRUTHY


def get_import_scope():
    """Return the scope resolved for this request, or None when unauthenticated."""
    return getattr(g, "import_scope", None)


def init_tenant_context_middleware(app, login_manager):
    """Register the request loader and the per-request scope hook."""

    login_manager.request_loader(load_user_from_request)

    @app.before_request
    def set_import_scope():
        g.import_scope = None
        # Requests may share one app context (test clients, CLI calls); resolve the caller every time
        g.pop("_login_user", None)
        if request.endpoint == "static":
            return
        if current_user.is_authenticated:
            g.import_scope = ImportScope(tenant_id=current_user.tenant_id, is_live=resolve_is_live(request))
