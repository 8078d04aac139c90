"""Admin back-office endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import EmailStr, Field, field_validator

from diamondtier.affiliates.models import AffiliateStatus, AffiliateTierName
from diamondtier.affiliates.service import (
    AffiliateError,
    AffiliateNotFound,
    affiliate_service,
    affiliate_to_dict,
    commission_to_dict,
)
from diamondtier.affiliates.tracking import retry_to_dict, tracking_service
from diamondtier.api.routes.auth import validate_password_complexity
from diamondtier.api.schemas import CamelModel
from diamondtier.applications.service import ApplicationError, ApplicationNotFound, application_service
from diamondtier.applications.tags import DEFAULT_TAG_COLOR, FolderNotFound, TagNotFound, tag_service
from diamondtier.auth.local import AuthError, auth_service
from diamondtier.auth.middleware import require_admin, require_super_admin
from diamondtier.auth.models import AdminRole, AdminUser
from diamondtier.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# ==================== MODELS ====================


class PayoutRequest(CamelModel):
    """Commissions selected for payout."""
    commission_ids: list[str] = Field(default_factory=list)


class AffiliatePayoutRequest(CamelModel):
    payment_method: str = Field(..., min_length=1, max_length=50)
    payment_details: dict | None = None


class StatusUpdateRequest(CamelModel):
    status: str


class NotesUpdateRequest(CamelModel):
    notes: str = Field(default="", max_length=10000)


class TagRequest(CamelModel):
    name: str = Field(..., max_length=50)
    color: str = DEFAULT_TAG_COLOR


class TagUpdateRequest(CamelModel):
    name: str | None = Field(default=None, max_length=50)
    color: str | None = None


class FolderRequest(CamelModel):
    name: str = Field(..., max_length=100)


class ApplicationTagRequest(CamelModel):
    tag_id: str


class ApplicationFolderRequest(CamelModel):
    """Target folder; null takes the application out of its folder."""
    folder_id: str | None = None


class CreateAffiliateRequest(CamelModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: str | None = Field(default=None, max_length=50)
    company_name: str | None = Field(default=None, max_length=255)
    website: str | None = Field(default=None, max_length=500)
    tier: AffiliateTierName = AffiliateTierName.BRONZE
    status: AffiliateStatus = AffiliateStatus.ACTIVE
    payment_method: str | None = Field(default=None, max_length=50)
    payment_details: dict | None = None
    notes: str | None = None
    referral_code: str | None = Field(default=None, max_length=32)
    parent_referral_code: str | None = Field(default=None, max_length=32)


class UpdateAffiliateRequest(CamelModel):
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=50)
    company_name: str | None = Field(default=None, max_length=255)
    website: str | None = Field(default=None, max_length=500)
    tier: AffiliateTierName | None = None
    status: AffiliateStatus | None = None
    payment_method: str | None = Field(default=None, max_length=50)
    payment_details: dict | None = None
    notes: str | None = None


class TierRateRequest(CamelModel):
    commission_rate: float = Field(..., ge=0, le=100)


class MLMLevel(CamelModel):
    level: int = Field(..., ge=1)
    commission_percentage: float = Field(..., ge=0, le=100)
    description: str | None = None


class MLMSettingsRequest(CamelModel):
    levels: list[MLMLevel]


class CreateAdminUserRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=100)
    name: str | None = Field(default=None, max_length=100)
    role: AdminRole = AdminRole.ADMIN

    @field_validator("password")
    @classmethod
    def check_password_complexity(cls, v):
        return validate_password_complexity(v)


class AdminUserActiveRequest(CamelModel):
    is_active: bool


def _admin_to_dict(admin: AdminUser) -> dict:
    return {
        "id": admin.id,
        "email": admin.email,
        "name": admin.name,
        "role": admin.role,
        "is_active": admin.is_active,
        "last_login_at": admin.last_login_at.isoformat() if admin.last_login_at else None,
    }


# ==================== COMMISSIONS ====================


@router.post("/affiliate/payout")
async def payout_commissions(body: PayoutRequest, admin: AdminUser = Depends(require_admin)):
    """Mark the selected commissions as paid."""
    try:
        updated = affiliate_service.payout_commissions(body.commission_ids)
    except AffiliateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info("admin_payout", admin_id=admin.id, count=updated)
    return {"success": True, "updated": updated}


@router.get("/commissions")
async def list_commissions(
    affiliate_id: str | None = Query(default=None, alias="affiliateId"),
    commission_status: str | None = Query(default=None, alias="status"),
    admin: AdminUser = Depends(require_admin),
):
    commissions = affiliate_service.list_commissions(affiliate_id, commission_status)
    return {"commissions": [commission_to_dict(c) for c in commissions]}


# ==================== APPLICATIONS ====================


@router.get("/applications")
async def list_applications(
    application_status: str | None = Query(default=None, alias="status"),
    search: str | None = Query(default=None, max_length=100),
    affiliate_id: str | None = Query(default=None, alias="affiliateId"),
    folder_id: str | None = Query(default=None, alias="folderId"),
    tag: list[str] | None = Query(default=None),
    archived: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    admin: AdminUser = Depends(require_admin),
):
    return application_service.list_applications(
        status=application_status,
        search=search,
        affiliate_id=affiliate_id,
        folder_id=folder_id,
        tag_ids=tag,
        archived=archived,
        limit=limit,
        offset=offset,
    )


@router.get("/applications/{application_id}")
async def get_application(application_id: str, admin: AdminUser = Depends(require_admin)):
    try:
        return application_service.get_application(application_id)
    except ApplicationNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.put("/applications/{application_id}/status")
async def update_application_status(
    application_id: str,
    body: StatusUpdateRequest,
    admin: AdminUser = Depends(require_admin),
):
    """Change an application's status. Only admins may do this."""
    try:
        application = application_service.update_status(application_id, body.status)
    except ApplicationNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ApplicationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info("admin_application_status", admin_id=admin.id, application_id=application_id, status=body.status)
    return application


@router.post("/applications/{application_id}/archive")
async def archive_application(application_id: str, admin: AdminUser = Depends(require_admin)):
    try:
        return application_service.archive(application_id)
    except ApplicationNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.put("/applications/{application_id}/notes")
async def update_application_notes(
    application_id: str,
    body: NotesUpdateRequest,
    admin: AdminUser = Depends(require_admin),
):
    try:
        application_service.update_notes(application_id, body.notes)
    except ApplicationNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return {"success": True}


@router.post("/applications/{application_id}/tags")
async def tag_application(
    application_id: str,
    body: ApplicationTagRequest,
    admin: AdminUser = Depends(require_admin),
):
    try:
        tags = tag_service.add_tag(application_id, body.tag_id)
    except (ApplicationNotFound, TagNotFound) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return {"tags": tags}


@router.delete("/applications/{application_id}/tags/{tag_id}")
async def untag_application(application_id: str, tag_id: str, admin: AdminUser = Depends(require_admin)):
    try:
        tags = tag_service.remove_tag(application_id, tag_id)
    except ApplicationNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return {"tags": tags}


@router.put("/applications/{application_id}/folder")
async def move_application_to_folder(
    application_id: str,
    body: ApplicationFolderRequest,
    admin: AdminUser = Depends(require_admin),
):
    try:
        folder_id = tag_service.move_to_folder(application_id, body.folder_id)
    except (ApplicationNotFound, FolderNotFound) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return {"success": True, "folderId": folder_id}


# ==================== TAGS & FOLDERS ====================


@router.get("/tags")
async def list_tags(admin: AdminUser = Depends(require_admin)):
    return {"tags": tag_service.list_tags()}


@router.post("/tags", status_code=status.HTTP_201_CREATED)
async def create_tag(body: TagRequest, admin: AdminUser = Depends(require_admin)):
    try:
        return tag_service.create_tag(body.name, body.color)
    except ApplicationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.patch("/tags/{tag_id}")
async def update_tag(tag_id: str, body: TagUpdateRequest, admin: AdminUser = Depends(require_admin)):
    try:
        return tag_service.update_tag(tag_id, name=body.name, color=body.color)
    except TagNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ApplicationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/tags/{tag_id}")
async def delete_tag(tag_id: str, admin: AdminUser = Depends(require_admin)):
    """Delete a tag; it is removed from every application first."""
    try:
        tag_service.delete_tag(tag_id)
    except TagNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    logger.info("admin_tag_deleted", admin_id=admin.id, tag_id=tag_id)
    return {"success": True}


@router.get("/folders")
async def list_folders(admin: AdminUser = Depends(require_admin)):
    return {"folders": tag_service.list_folders()}


@router.post("/folders", status_code=status.HTTP_201_CREATED)
async def create_folder(body: FolderRequest, admin: AdminUser = Depends(require_admin)):
    try:
        return tag_service.create_folder(body.name)
    except ApplicationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.patch("/folders/{folder_id}")
async def rename_folder(folder_id: str, body: FolderRequest, admin: AdminUser = Depends(require_admin)):
    try:
        return tag_service.rename_folder(folder_id, body.name)
    except FolderNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ApplicationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/folders/{folder_id}")
async def delete_folder(folder_id: str, admin: AdminUser = Depends(require_admin)):
    """Delete a folder; its applications stay, unfiled."""
    try:
        tag_service.delete_folder(folder_id)
    except FolderNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    logger.info("admin_folder_deleted", admin_id=admin.id, folder_id=folder_id)
    return {"success": True}


@router.get("/dashboard")
async def dashboard(admin: AdminUser = Depends(require_admin)):
    return application_service.get_dashboard_stats()


# ==================== AFFILIATES ====================


@router.get("/affiliates")
async def list_affiliates(
    affiliate_status: str | None = Query(default=None, alias="status"),
    admin: AdminUser = Depends(require_admin),
):
    return {"affiliates": [affiliate_to_dict(a) for a in affiliate_service.list_affiliates(affiliate_status)]}


@router.post("/affiliates", status_code=status.HTTP_201_CREATED)
async def create_affiliate(body: CreateAffiliateRequest, admin: AdminUser = Depends(require_admin)):
    """Create an affiliate. Admin-created affiliates are active by default."""
    try:
        affiliate = affiliate_service.create_affiliate(
            first_name=body.first_name,
            last_name=body.last_name,
            email=body.email,
            phone=body.phone,
            company_name=body.company_name,
            website=body.website,
            tier=body.tier.value,
            status=body.status.value,
            payment_method=body.payment_method,
            payment_details=body.payment_details,
            notes=body.notes,
            referral_source="admin",
            parent_referral_code=body.parent_referral_code,
            referral_code=body.referral_code,
        )
    except AffiliateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info("admin_affiliate_created", admin_id=admin.id, affiliate_id=affiliate.id)
    return affiliate_to_dict(affiliate)


@router.get("/affiliates/{affiliate_id}")
async def get_affiliate(affiliate_id: str, admin: AdminUser = Depends(require_admin)):
    affiliate = affiliate_service.get_affiliate(affiliate_id)
    if not affiliate:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Affiliate not found")
    return affiliate_to_dict(affiliate)


@router.patch("/affiliates/{affiliate_id}")
async def update_affiliate(
    affiliate_id: str,
    body: UpdateAffiliateRequest,
    admin: AdminUser = Depends(require_admin),
):
    changes = body.model_dump(exclude_none=True, by_alias=False)
    for key in ("tier", "status"):
        if key in changes:
            changes[key] = changes[key].value

    try:
        affiliate = affiliate_service.update_affiliate(affiliate_id, **changes)
    except AffiliateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AffiliateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return affiliate_to_dict(affiliate)


@router.delete("/affiliates/{affiliate_id}")
async def deactivate_affiliate(affiliate_id: str, admin: AdminUser = Depends(require_admin)):
    """Deactivate an affiliate. Affiliates are never hard-deleted."""
    try:
        affiliate = affiliate_service.deactivate_affiliate(affiliate_id)
    except AffiliateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return affiliate_to_dict(affiliate)


@router.get("/affiliates/{affiliate_id}/stats")
async def affiliate_stats(affiliate_id: str, admin: AdminUser = Depends(require_admin)):
    if not affiliate_service.get_affiliate(affiliate_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Affiliate not found")
    return affiliate_service.get_affiliate_stats(affiliate_id)


@router.post("/affiliates/{affiliate_id}/payouts")
async def create_affiliate_payout(
    affiliate_id: str,
    body: AffiliatePayoutRequest,
    admin: AdminUser = Depends(require_admin),
):
    """Pay out every pending commission of one affiliate."""
    try:
        payout = affiliate_service.create_payout(affiliate_id, body.payment_method, body.payment_details)
    except AffiliateNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except AffiliateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {
        "success": True,
        "payoutId": payout.id,
        "amount": payout.amount,
        "commissionCount": payout.commission_count,
    }


# ==================== TIERS & MLM ====================


@router.get("/tiers")
async def list_tiers(admin: AdminUser = Depends(require_admin)):
    return {
        "tiers": [
            {"name": t.name, "commission_rate": t.commission_rate, "description": t.description}
            for t in affiliate_service.list_tiers()
        ]
    }


@router.put("/tiers/{tier_name}")
async def update_tier(tier_name: str, body: TierRateRequest, admin: AdminUser = Depends(require_admin)):
    try:
        tier = affiliate_service.update_tier_rate(tier_name, body.commission_rate)
    except AffiliateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"name": tier.name, "commission_rate": tier.commission_rate}


@router.get("/mlm-settings")
async def get_mlm_settings(admin: AdminUser = Depends(require_admin)):
    return {
        "levels": [
            {"level": s.level, "commission_percentage": s.commission_percentage, "description": s.description}
            for s in affiliate_service.get_mlm_settings()
        ]
    }


@router.put("/mlm-settings")
async def replace_mlm_settings(body: MLMSettingsRequest, admin: AdminUser = Depends(require_admin)):
    try:
        settings_rows = affiliate_service.replace_mlm_settings([level.model_dump() for level in body.levels])
    except AffiliateError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {
        "levels": [
            {"level": s.level, "commission_percentage": s.commission_percentage, "description": s.description}
            for s in settings_rows
        ]
    }


# ==================== TRACKING RETRIES ====================


@router.get("/tracking-retries")
async def list_tracking_retries(
    retry_status: str | None = Query(default=None, alias="status"),
    admin: AdminUser = Depends(require_admin),
):
    return {"retries": [retry_to_dict(r) for r in tracking_service.list_retries(retry_status)]}


# ==================== ADMIN USERS ====================


@router.get("/users")
async def list_admin_users(admin: AdminUser = Depends(require_super_admin)):
    return {"users": [_admin_to_dict(a) for a in auth_service.list_admins()]}


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_admin_user(body: CreateAdminUserRequest, admin: AdminUser = Depends(require_super_admin)):
    try:
        created = auth_service.create_admin(body.email, body.password, body.name, body.role.value)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info("admin_user_created", admin_id=admin.id, created_id=created.id)
    return _admin_to_dict(created)


@router.patch("/users/{admin_id}")
async def set_admin_user_active(
    admin_id: str,
    body: AdminUserActiveRequest,
    admin: AdminUser = Depends(require_super_admin),
):
    if admin_id == admin.id and not body.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot deactivate yourself")

    try:
        updated = auth_service.set_admin_active(admin_id, body.is_active)
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return _admin_to_dict(updated)
