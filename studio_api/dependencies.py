"""
Studio API Dependencies
FastAPI dependency injection: tenant-aware sessions, services and role guards.
"""

import logging
import os
from typing import Any, Callable, Dict, Generator, Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from studio_api.database.connection import SessionLocal
from studio_api.database.tenant_connection import (
    RESERVED_TENANT_NAMES,
    get_current_tenant,
    get_tenant_session_factory,
    set_current_tenant,
    validate_tenant_name,
)
from studio_api.security.session_claims import (
    ADMIN_ROLE,
    CLIENT_ROLE,
    STAFF_ROLES,
    TRAINER_ROLE,
    get_session_user_id,
)
from studio_api.services.attendance_service import AttendanceService
from studio_api.services.auth_service import AuthService
from studio_api.services.availability_service import AvailabilityService
from studio_api.services.class_service import ClassService
from studio_api.services.client_service import ClientService
from studio_api.services.community_event_service import CommunityEventService
from studio_api.services.dashboard_service import DashboardService
from studio_api.services.email_service import EmailService
from studio_api.services.enrollment_service import EnrollmentService
from studio_api.services.invoice_service import InvoiceService
from studio_api.services.password_reset_service import PasswordResetService
from studio_api.services.points_service import PointsService
from studio_api.services.referral_service import ReferralService
from studio_api.services.stripe_gateway import StripeGateway
from studio_api.services.subscription_service import SubscriptionService
from studio_api.services.trainer_application_service import TrainerApplicationService
from studio_api.services.trainer_service import TrainerService
from studio_api.services.training_service import TrainingService
from studio_api.services.webhook_service import WebhookService
from studio_api.services.weight_service import WeightService

logger = logging.getLogger(__name__)


def tenant_from_host(host: str) -> Optional[str]:
    base_domain = (os.getenv("TENANT_BASE_DOMAIN") or "").strip().lower()
    if not host or not base_domain:
        return None
    host_clean = host.split(":")[0].strip().lower()
    if not host_clean.endswith(f".{base_domain}"):
        return None
    candidate = host_clean[: -len(base_domain) - 1].strip()
    if not candidate or candidate in RESERVED_TENANT_NAMES:
        return None
    return candidate


def resolve_tenant(request: Request) -> Optional[str]:
    """Tenant from session, then ``tenant`` query param or X-Tenant header, then subdomain."""
    try:
        session_tenant = str(request.session.get("tenant") or "").strip().lower() or None
    except Exception:
        session_tenant = None
    query_tenant = str(request.query_params.get("tenant") or "").strip().lower() or None
    header_tenant = str(request.headers.get("x-tenant") or "").strip().lower() or None

    if session_tenant:
        if request.url.path.startswith("/api/"):
            for other in (query_tenant, header_tenant):
                if other and other != session_tenant:
                    raise HTTPException(status_code=403, detail="Tenant mismatch")
        tenant = session_tenant
    else:
        tenant = query_tenant or header_tenant or tenant_from_host(str(request.headers.get("host") or ""))

    if not tenant:
        return None
    ok, err = validate_tenant_name(tenant)
    if not ok:
        logger.warning(f"Ignoring invalid tenant '{tenant}': {err}")
        return None
    return tenant


def get_db_session(request: Request) -> Generator[Session, None, None]:
    """
    Get a database session for the current tenant.

    If a tenant is set but its database cannot be reached, answers 503 instead
    of falling back to the default database.
    """
    tenant = get_current_tenant()
    if not tenant:
        tenant = resolve_tenant(request)
        if tenant:
            set_current_tenant(tenant)

    if tenant:
        try:
            factory = get_tenant_session_factory(tenant)
        except Exception as e:
            logger.error(f"Failed to get tenant session for '{tenant}': {e}")
            raise HTTPException(status_code=503, detail=f"Database connection error for tenant '{tenant}'")
        if factory is None:
            logger.error(f"Tenant session factory returned None for '{tenant}'")
            raise HTTPException(
                status_code=503, detail=f"Database connection unavailable for tenant '{tenant}'"
            )
        session = factory()
        try:
            yield session
        finally:
            session.close()
        return

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# --- Services ---


def get_stripe_gateway() -> StripeGateway:
    return StripeGateway()


def get_auth_service(session: Session = Depends(get_db_session)) -> AuthService:
    """Get AuthService instance with current session."""
    return AuthService(session)


def get_class_service(session: Session = Depends(get_db_session)) -> ClassService:
    return ClassService(session)


def get_client_service(session: Session = Depends(get_db_session)) -> ClientService:
    return ClientService(session)


def get_trainer_service(session: Session = Depends(get_db_session)) -> TrainerService:
    return TrainerService(session)


def get_enrollment_service(session: Session = Depends(get_db_session)) -> EnrollmentService:
    return EnrollmentService(session)


def get_attendance_service(session: Session = Depends(get_db_session)) -> AttendanceService:
    """Get AttendanceService instance with current session."""
    return AttendanceService(session)


def get_availability_service(session: Session = Depends(get_db_session)) -> AvailabilityService:
    return AvailabilityService(session)


def get_training_service(session: Session = Depends(get_db_session)) -> TrainingService:
    """Get TrainingService instance with current session."""
    return TrainingService(session)


def get_email_service(session: Session = Depends(get_db_session)) -> EmailService:
    return EmailService(session)


def get_points_service(session: Session = Depends(get_db_session)) -> PointsService:
    return PointsService(session)


def get_referral_service(session: Session = Depends(get_db_session)) -> ReferralService:
    return ReferralService(session)


def get_dashboard_service(session: Session = Depends(get_db_session)) -> DashboardService:
    return DashboardService(session)


def get_password_reset_service(session: Session = Depends(get_db_session)) -> PasswordResetService:
    return PasswordResetService(session)


def get_trainer_application_service(session: Session = Depends(get_db_session)) -> TrainerApplicationService:
    return TrainerApplicationService(session)


def get_weight_service(session: Session = Depends(get_db_session)) -> WeightService:
    return WeightService(session)


def get_subscription_service(
    session: Session = Depends(get_db_session), email: EmailService = Depends(get_email_service)
) -> SubscriptionService:
    return SubscriptionService(session, email=email)


def get_invoice_service(
    session: Session = Depends(get_db_session), gateway: StripeGateway = Depends(get_stripe_gateway)
) -> InvoiceService:
    """Get InvoiceService instance with current session."""
    return InvoiceService(session, gateway=gateway)


def get_community_event_service(
    session: Session = Depends(get_db_session), gateway: StripeGateway = Depends(get_stripe_gateway)
) -> CommunityEventService:
    return CommunityEventService(session, gateway=gateway)


def get_webhook_service(
    session: Session = Depends(get_db_session), gateway: StripeGateway = Depends(get_stripe_gateway)
) -> WebhookService:
    return WebhookService(session, gateway=gateway)


# --- Security Dependencies ---


def get_current_user(
    request: Request, auth: AuthService = Depends(get_auth_service)
) -> Dict[str, Any]:
    """Authenticated caller with the role re-read from the database."""
    user_id = get_session_user_id(request.session)
    user = auth.get_user(user_id) if user_id else None
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    role = auth.get_user_role(user.id)
    if not role:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User role not found")
    return {"id": user.id, "email": user.email, "role": role, "user": user}


def require_roles(*roles: str, message: Optional[str] = None) -> Callable[..., Dict[str, Any]]:
    allowed = set(roles)
    detail = message or f"Access denied. {' or '.join(sorted(allowed)).capitalize()} role required."

    def _dep(current: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        if current["role"] not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        return current

    return _dep


require_staff = require_roles(*STAFF_ROLES, message="Access denied. Admin or trainer role required.")
require_admin = require_roles(ADMIN_ROLE, message="Access denied. Admin role required.")
require_trainer = require_roles(TRAINER_ROLE, message="Access denied. Trainer role required.")
require_client = require_roles(CLIENT_ROLE, message="Access denied. Client role required.")
require_user = get_current_user
