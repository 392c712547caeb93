import logging
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import Settings, verify_password
from contacts import ContactWorkflow
from cors import OriginPolicy, OriginPolicyMiddleware
from counters import CounterService
from database import create_document, get_database, get_documents, parse_object_id, require_db, serialize
from drafting import ReplyDrafter
from errors import (
    APIError,
    ErrorCode,
    InvalidPayload,
    NotFound,
    OriginRejected,
    PortfolioError,
    StorageUnavailable,
    Unauthenticated,
)
from logging_setup import configure_logging
from schemas import (
    CONTENT_COLLECTIONS,
    BulkAction,
    ContactStatus,
    ContactSubmission,
    LoginRequest,
    ReplyRequest,
    StatusUpdate,
)
from sessions import ADMIN_ROLE, COOKIE_NAME, JoseSigner, SessionManager
from stats import DashboardStats

logger = logging.getLogger(__name__)

SERVICE_NAME = "portfolio-backend"
MAX_UPLOAD_BYTES = 5 * 1024 * 1024
IMAGE_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
}
UPLOAD_EXTENSIONS = {"image/png": "png", "image/jpeg": "jpg"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============
# Dependencies
# ============
def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_sessions(request: Request) -> SessionManager:
    return request.app.state.sessions


def get_counters(request: Request) -> CounterService:
    return request.app.state.counters


def get_contacts(request: Request) -> ContactWorkflow:
    return request.app.state.contacts


def get_db(request: Request) -> Optional[Database]:
    return request.app.state.db


def get_stats(request: Request) -> DashboardStats:
    return request.app.state.stats


def require_admin(request: Request, sessions: SessionManager = Depends(get_sessions)) -> dict:
    """Gate for protected routes: returns the acting admin or raises."""
    origin = request.headers.get("origin")
    if origin and not request.app.state.origin_policy.is_allowed(origin):
        logger.warning("credentialed call from unknown origin rejected", extra={"origin": origin})
        raise OriginRejected()

    token = request.cookies.get(COOKIE_NAME)
    authorization = request.headers.get("authorization")
    if not token and authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1]

    subject = sessions.validate(token)
    if subject is None:
        raise Unauthenticated()
    return {"email": subject, "role": ADMIN_ROLE}


router = APIRouter(prefix="/api")


# ======
# Health
# ======
@router.get("/health")
def health(db: Optional[Database] = Depends(get_db)):
    try:
        require_db(db).command("ping")
    except (PortfolioError, PyMongoError) as exc:
        logger.error("health check failed: %s", exc)
        return JSONResponse(
            status_code=500,
            content={"status": "unhealthy", "error": str(exc), "timestamp": _now_iso()},
        )
    return {"status": "healthy", "timestamp": _now_iso(), "service": SERVICE_NAME}


# ====
# Auth
# ====
@router.post("/auth/login")
def login(
    data: LoginRequest,
    response: Response,
    settings: Settings = Depends(get_settings),
    sessions: SessionManager = Depends(get_sessions),
):
    if data.email.lower() != settings.admin_email.lower() or not verify_password(
        data.password, settings.admin_password_hash
    ):
        logger.warning("login failed")
        raise Unauthenticated()
    credential, cookie = sessions.issue(settings.admin_email)
    cookie.apply(response)
    logger.info("admin logged in", extra={"admin": credential.subject})
    return {
        "success": True,
        "user": {"email": credential.subject, "role": ADMIN_ROLE},
        "expiresAt": credential.expires_at.isoformat(),
    }


@router.get("/auth/me")
def me(admin: dict = Depends(require_admin)):
    return {"success": True, "user": admin}


@router.post("/auth/logout")
def logout(response: Response, sessions: SessionManager = Depends(get_sessions)):
    sessions.revoke().apply(response)
    return {"success": True, "message": "Logged out successfully", "timestamp": _now_iso()}


# ============
# View counter
# ============
@router.post("/{kind}/{item_id}/view")
def increment_view(kind: str, item_id: str, counters: CounterService = Depends(get_counters)):
    if not counters.increment(kind, item_id):
        raise NotFound("Document not found")
    return {"success": True}


# =======
# Contact
# =======
@router.post("/contact", status_code=201)
def submit_contact(
    submission: ContactSubmission,
    request: Request,
    contacts: ContactWorkflow = Depends(get_contacts),
):
    forwarded = request.headers.get("x-forwarded-for")
    ip = (
        (forwarded.split(",")[0].strip() if forwarded else None)
        or request.headers.get("x-real-ip")
        or (request.client.host if request.client else "unknown")
    )
    contact_id = contacts.submit(submission, ip, request.headers.get("user-agent"))
    return {
        "success": True,
        "message": "Message received. We'll respond within 24-48 hours.",
        "id": contact_id,
    }


@router.get("/contact")
def list_contacts(
    status: Optional[ContactStatus] = None,
    _: dict = Depends(require_admin),
    contacts: ContactWorkflow = Depends(get_contacts),
):
    items = contacts.list_contacts(status)
    return {"success": True, "data": items, "count": len(items)}


@router.post("/contact/bulk")
def bulk_contacts(
    request_body: BulkAction,
    _: dict = Depends(require_admin),
    contacts: ContactWorkflow = Depends(get_contacts),
):
    result = contacts.bulk(request_body)
    return {"success": True, "affectedCount": result["affected"], "skippedCount": result["skipped"]}


@router.get("/contact/generate-ai-reply/{contact_id}")
def generate_ai_reply(
    contact_id: str,
    _: dict = Depends(require_admin),
    contacts: ContactWorkflow = Depends(get_contacts),
):
    draft = contacts.draft_reply(contact_id)
    return {"success": True, "generatedReply": draft, "message": "AI draft generated successfully."}


@router.patch("/contact/reply/{contact_id}")
def reply_contact(
    contact_id: str,
    body: ReplyRequest,
    admin: dict = Depends(require_admin),
    contacts: ContactWorkflow = Depends(get_contacts),
):
    contact = contacts.reply(contact_id, body.message, admin["email"])
    return {"success": True, "message": "Reply recorded successfully", "data": contact}


@router.get("/contact/{contact_id}")
def get_contact(
    contact_id: str,
    _: dict = Depends(require_admin),
    contacts: ContactWorkflow = Depends(get_contacts),
):
    return {"success": True, "data": contacts.get(contact_id)}


@router.patch("/contact/{contact_id}/status")
def update_contact_status(
    contact_id: str,
    body: StatusUpdate,
    _: dict = Depends(require_admin),
    contacts: ContactWorkflow = Depends(get_contacts),
):
    return {"success": True, "data": contacts.transition(contact_id, body.status)}


@router.delete("/contact/{contact_id}")
def delete_contact(
    contact_id: str,
    _: dict = Depends(require_admin),
    contacts: ContactWorkflow = Depends(get_contacts),
):
    contacts.delete(contact_id)
    return {"success": True, "message": "Contact deleted successfully."}


# =====
# Admin
# =====
@router.get("/admin/stats")
def admin_stats(_: dict = Depends(require_admin), stats: DashboardStats = Depends(get_stats)):
    return {"success": True, "data": stats.overview()}


# =======
# Uploads
# =======
@router.post("/upload", status_code=201)
def upload_image(
    file: UploadFile = File(...),
    _: dict = Depends(require_admin),
    settings: Settings = Depends(get_settings),
):
    extension = UPLOAD_EXTENSIONS.get(file.content_type or "")
    if extension is None:
        raise InvalidPayload("Only PNG and JPEG images are allowed")
    data = file.file.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise InvalidPayload("File too large (max 5MB)")

    filename = f"{uuid.uuid4().hex}.{extension}"
    with open(os.path.join(settings.uploads_dir, filename), "wb") as fh:
        fh.write(data)
    return {"url": f"/api/uploads/{filename}", "message": "Image uploaded successfully."}


@router.get("/uploads/{filename}")
def serve_upload(filename: str, settings: Settings = Depends(get_settings)):
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    content_type = IMAGE_TYPES.get(extension)
    if content_type is None or os.path.basename(filename) != filename:
        raise InvalidPayload("File type not allowed")

    path = os.path.join(settings.uploads_dir, filename)
    if not os.path.isfile(path):
        raise NotFound("File not found")
    return FileResponse(path, media_type=content_type, headers={"Cache-Control": "public, max-age=86400"})


# =======
# Content
# =======
def _content_routes(kind: str, model) -> APIRouter:
    content = APIRouter(prefix=f"/api/{kind}", tags=[kind])

    @content.get("")
    def list_items(db: Optional[Database] = Depends(get_db)):
        return get_documents(db, kind)

    @content.get("/{item_id}")
    def get_item(item_id: str, db: Optional[Database] = Depends(get_db)):
        oid = parse_object_id(item_id)
        try:
            doc = require_db(db)[kind].find_one({"_id": oid})
        except PyMongoError as exc:
            raise StorageUnavailable() from exc
        if doc is None:
            raise NotFound()
        return serialize(doc)

    @content.post("", status_code=201)
    def create_item(payload: model, _: dict = Depends(require_admin), db: Optional[Database] = Depends(get_db)):
        data = payload.model_dump()
        if "views" in data:
            data["views"] = 0
        return {"id": create_document(db, kind, data)}

    @content.put("/{item_id}")
    def update_item(
        item_id: str,
        payload: model,
        _: dict = Depends(require_admin),
        db: Optional[Database] = Depends(get_db),
    ):
        oid = parse_object_id(item_id)
        # views only moves through the counter
        fields = payload.model_dump(exclude={"views"})
        fields["updated_at"] = datetime.now(timezone.utc)
        try:
            res = require_db(db)[kind].update_one({"_id": oid}, {"$set": fields})
        except PyMongoError as exc:
            raise StorageUnavailable() from exc
        if res.matched_count == 0:
            raise NotFound()
        return {"ok": True}

    @content.delete("/{item_id}")
    def delete_item(item_id: str, _: dict = Depends(require_admin), db: Optional[Database] = Depends(get_db)):
        oid = parse_object_id(item_id)
        try:
            res = require_db(db)[kind].delete_one({"_id": oid})
        except PyMongoError as exc:
            raise StorageUnavailable() from exc
        if res.deleted_count == 0:
            raise NotFound()
        return {"deleted": res.deleted_count}

    return content


# ==================
# FastAPI app config
# ==================
async def portfolio_error_handler(request: Request, exc: PortfolioError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump(mode="json"))


async def validation_error_handler(request: Request, exc: RequestValidationError):
    body = APIError(error=ErrorCode.VALIDATION_ERROR, message="Invalid input").model_dump(mode="json")
    body["issues"] = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=body)


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    drafter: Optional[ReplyDrafter] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    if db is None:
        db = get_database(settings)
    if drafter is None:
        drafter = ReplyDrafter(
            settings.openrouter_api_key,
            model=settings.draft_model,
            timeout=settings.draft_timeout_seconds,
        )

    app = FastAPI(title="Portfolio API")
    app.state.settings = settings
    app.state.db = db
    app.state.origin_policy = OriginPolicy(settings.allowed_origins)
    app.state.sessions = SessionManager(
        JoseSigner(settings.jwt_secret, settings.jwt_algorithm),
        ttl=timedelta(minutes=settings.session_ttl_minutes),
        secure=settings.secure_cookies,
    )
    app.state.counters = CounterService(db)
    app.state.contacts = ContactWorkflow(db, drafter)
    app.state.stats = DashboardStats(db)

    app.add_middleware(OriginPolicyMiddleware, policy=app.state.origin_policy)
    app.add_exception_handler(PortfolioError, portfolio_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.include_router(router)
    for kind, model in CONTENT_COLLECTIONS.items():
        app.include_router(_content_routes(kind, model))

    @app.get("/")
    def root():
        return {"status": "ok", "service": SERVICE_NAME}

    logger.info(
        "portfolio api configured",
        extra={"origin": ",".join(settings.allowed_origins)},
    )
    return app


_settings = Settings.from_env()
configure_logging(_settings.log_level)
app = create_app(_settings)
