"""FastAPI application entrypoint and HTTP controllers.

Controllers are intentionally thin: they accept requests, resolve the
caller, delegate to services and shape the response with the output
schemas. Every business route lives under `/api`; uploaded avatars are
served from `/uploads`.

Route groups:
- /api/auth: register, register-admin, login, refresh-token,
  forgot-password, reset-password/{token}, me
- /api/projects, /api/skills, /api/project-skills, /api/user-projects
- /api/users, /api/careers, /api/period
- /api/roles, /api/permissions, /api/role-permissions (admin)
"""

import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, FastAPI, File, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from sqlmodel import Session

from . import models, schemas, services
from .auth import get_current_user, get_optional_user
from .authorization import Authorizer
from .config import settings
from .database import create_db_and_tables, dispose_engine, get_session
from .errors import AppError
from .utils.mailer import Mailer, get_mailer
from .utils.rate_limit import InMemoryRateLimiter
from .utils.uploads import upload_root

logger = logging.getLogger("thesis_api.api")
if not logging.getLogger().handlers:
    logging.basicConfig(level=settings.LOG_LEVEL)

_auth_rate_limiter = InMemoryRateLimiter(
    max_requests=settings.AUTH_RATE_LIMIT_PER_MIN,
    window_seconds=settings.AUTH_RATE_LIMIT_WINDOW_SECONDS,
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    create_db_and_tables()
    logger.info("startup env=%s", settings.ENV)
    yield
    dispose_engine()


app = FastAPI(title="Thesis Projects API", lifespan=lifespan)

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_origin_regex=settings.CORS_ORIGIN_REGEX,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.mount(settings.UPLOAD_URL_PREFIX, StaticFiles(directory=upload_root()), name="uploads")


def _request_log_payload(request: Request, req_id: str, started: float, status_code: int = None) -> str:
    payload = {
        "request_id": req_id,
        "path": request.url.path,
        "method": request.method,
        "duration_ms": round((time.perf_counter() - started) * 1000.0, 2),
        "client": request.client.host if request.client else "unknown",
    }
    if status_code is not None:
        payload["status_code"] = status_code
    return json.dumps(payload, ensure_ascii=True)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response
    try:
        response = await call_next(request)
    except Exception:
        if request.url.path.startswith("/api"):
            logger.exception("request_failed %s", _request_log_payload(request, req_id, started))
        raise
    response.headers["X-Request-ID"] = req_id
    if request.url.path.startswith("/api"):
        logger.info("request_done %s", _request_log_payload(request, req_id, started, response.status_code))
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("app_error code=%s path=%s message=%s", exc.code, request.url.path, exc.message)
    body = {"detail": exc.message, "error": exc.code}
    if type(exc) is AppError:
        # unclassified failure: never echo internals
        body = {"detail": AppError.default_message, "error": AppError.code}
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.url.path)
    return JSONResponse(status_code=500, content={"detail": "internal server error", "error": "server_error"})


def pagination_params(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    order: Literal["asc", "desc"] = Query("desc"),
) -> schemas.PaginationParams:
    return schemas.PaginationParams(page=page, limit=limit, order=order)


def auth_rate_limit(request: Request) -> None:
    """Sliding-window limit per client address and path for credential endpoints."""
    key = f"{request.client.host if request.client else 'unknown'}:{request.url.path}"
    allowed, retry_after = _auth_rate_limiter.allow(key)
    if not allowed:
        logger.warning("rate_limited key=%s", key)
        raise HTTPException(
            status_code=429,
            detail=f"rate limit exceeded; retry after {retry_after}s",
            headers={"Retry-After": str(retry_after)},
        )


def _page(schema, result) -> dict:
    return {"data": [schema.model_validate(row) for row in result.data], "meta": result.meta}


api = APIRouter(prefix="/api")


@app.get("/health")
def health():
    return {"status": "ok"}


# --- auth -------------------------------------------------------------------

@api.post("/auth/register", response_model=schemas.RegisterOut, status_code=201)
def register(payload: schemas.UserCreate, db: Session = Depends(get_session)):
    """Self-registration. The account always gets the default USER role."""
    user, token = services.AuthService(db).register(payload)
    return {"user": schemas.UserOut.model_validate(user), "token": token}


@api.post("/auth/register-admin", response_model=schemas.UserOut, status_code=201)
def register_admin(payload: schemas.UserCreate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Admin-only account creation with an explicit (optional) role."""
    created = services.UserService(db).create(payload, user)
    return schemas.UserOut.model_validate(created)


@api.post("/auth/login", response_model=schemas.TokenPair, dependencies=[Depends(auth_rate_limit)])
def login(payload: schemas.LoginIn, db: Session = Depends(get_session)):
    """Authenticate and return access and refresh tokens."""
    return services.AuthService(db).login(payload)


@api.post("/auth/refresh-token", response_model=schemas.TokenPair)
def refresh_token(payload: schemas.RefreshIn, db: Session = Depends(get_session)):
    return services.AuthService(db).refresh(payload.refresh_token)


@api.post("/auth/forgot-password", response_model=schemas.MessageOut, dependencies=[Depends(auth_rate_limit)])
def forgot_password(payload: schemas.ForgotPasswordIn, db: Session = Depends(get_session), mailer: Mailer = Depends(get_mailer)):
    """Email a password reset link. The answer is the same for unknown emails."""
    return {"message": services.AuthService(db).forgot_password(payload.email, mailer)}


@api.post("/auth/reset-password/{token}", response_model=schemas.MessageOut)
def reset_password(token: str, payload: schemas.ResetPasswordIn, db: Session = Depends(get_session)):
    return {"message": services.AuthService(db).reset_password(token, payload.password)}


@api.get("/auth/me", response_model=schemas.MeOut)
def me(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    out = schemas.MeOut.model_validate(user)
    out.permissions = Authorizer(db).granted_permissions(user)
    return out


# --- projects -----------------------------------------------------------------

@api.get("/projects", response_model=schemas.Page[schemas.ProjectOut])
def list_projects(
    pagination: schemas.PaginationParams = Depends(pagination_params),
    db: Session = Depends(get_session),
    user: Optional[models.User] = Depends(get_optional_user),
):
    """List projects visible to the caller.

    Anonymous callers and admins see every project; other users see
    non-pending projects plus their own pending ones.
    """
    return _page(schemas.ProjectOut, services.ProjectService(db).find_all(pagination, user))


@api.get("/projects/skill/{skill_id}", response_model=List[schemas.ProjectOut])
def list_projects_by_skill(skill_id: uuid.UUID, db: Session = Depends(get_session), user: Optional[models.User] = Depends(get_optional_user)):
    projects = services.ProjectService(db).find_by_skill(skill_id, user)
    return [schemas.ProjectOut.model_validate(p) for p in projects]


@api.get("/projects/{project_id}", response_model=schemas.ProjectDetailOut)
def get_project(project_id: uuid.UUID, db: Session = Depends(get_session), user: Optional[models.User] = Depends(get_optional_user)):
    """Return one project with its creator, career, skills and participants."""
    detail = services.ProjectService(db).find_one(project_id, user)
    out = schemas.ProjectDetailOut.model_validate(detail.project)
    out.skills = [schemas.SkillOut.model_validate(s) for s in detail.skills]
    out.participants = [schemas.UserSummary.model_validate(u) for u in detail.participants]
    return out


@api.post("/projects", response_model=schemas.ProjectOut, status_code=201)
def create_project(payload: schemas.ProjectCreate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Create a pending project owned by the caller."""
    project = services.ProjectService(db).create_with_user(payload, user)
    return schemas.ProjectOut.model_validate(project)


@api.patch("/projects/{project_id}", response_model=schemas.ProjectOut)
def update_project(project_id: uuid.UUID, payload: schemas.ProjectUpdate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Partial update by the creator or an admin; `skills` replaces the skill set."""
    project = services.ProjectService(db).update_with_permission(project_id, payload, user)
    return schemas.ProjectOut.model_validate(project)


@api.delete("/projects/{project_id}", response_model=schemas.ProjectOut)
def delete_project(project_id: uuid.UUID, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    svc = services.ProjectService(db)
    project = svc.get_or_404(project_id, user)
    out = schemas.ProjectOut.model_validate(project)
    svc.remove(project_id, user)
    return out


# --- skills -------------------------------------------------------------------

@api.get("/skills", response_model=schemas.Page[schemas.SkillOut])
def list_skills(pagination: schemas.PaginationParams = Depends(pagination_params), db: Session = Depends(get_session)):
    return _page(schemas.SkillOut, services.SkillService(db).find_all(pagination))


@api.get("/skills/project/{project_id}", response_model=List[schemas.SkillOut])
def list_skills_by_project(project_id: uuid.UUID, db: Session = Depends(get_session), user: Optional[models.User] = Depends(get_optional_user)):
    """Skills of one project; a project hidden from the caller is a 404."""
    skills = services.SkillService(db).find_by_project(project_id, user)
    return [schemas.SkillOut.model_validate(s) for s in skills]


@api.get("/skills/{skill_id}", response_model=schemas.SkillOut)
def get_skill(skill_id: uuid.UUID, db: Session = Depends(get_session)):
    return schemas.SkillOut.model_validate(services.SkillService(db).find_one(skill_id))


@api.post("/skills", response_model=schemas.SkillOut, status_code=201)
def create_skill(payload: schemas.SkillCreate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return schemas.SkillOut.model_validate(services.SkillService(db).create_with_user(payload, user))


@api.patch("/skills/{skill_id}", response_model=schemas.SkillOut)
def update_skill(skill_id: uuid.UUID, payload: schemas.SkillUpdate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return schemas.SkillOut.model_validate(services.SkillService(db).update_with_permission(skill_id, payload, user))


@api.delete("/skills/{skill_id}", response_model=schemas.SkillOut)
def delete_skill(skill_id: uuid.UUID, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    svc = services.SkillService(db)
    out = schemas.SkillOut.model_validate(svc.find_one(skill_id))
    svc.remove(skill_id, user)
    return out


# --- project links --------------------------------------------------------------

@api.get("/project-skills", response_model=schemas.Page[schemas.ProjectSkillOut])
def list_project_skills(
    pagination: schemas.PaginationParams = Depends(pagination_params),
    db: Session = Depends(get_session),
    user: Optional[models.User] = Depends(get_optional_user),
):
    return _page(schemas.ProjectSkillOut, services.ProjectSkillService(db).find_all(pagination, user))


@api.post("/project-skills", response_model=schemas.ProjectSkillOut, status_code=201)
def create_project_skill(payload: schemas.ProjectSkillIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return schemas.ProjectSkillOut.model_validate(services.ProjectSkillService(db).create(payload, user))


@api.delete("/project-skills/{link_id}", response_model=schemas.ProjectSkillOut)
def delete_project_skill(link_id: uuid.UUID, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    link = services.ProjectSkillService(db).remove(link_id, user)
    return schemas.ProjectSkillOut.model_validate(link)


@api.get("/user-projects", response_model=schemas.Page[schemas.UserProjectOut])
def list_user_projects(
    pagination: schemas.PaginationParams = Depends(pagination_params),
    db: Session = Depends(get_session),
    user: Optional[models.User] = Depends(get_optional_user),
):
    """Participation links, filtered by the same visibility as `/projects`."""
    return _page(schemas.UserProjectOut, services.UserProjectService(db).find_all(pagination, user))


@api.post("/user-projects", response_model=schemas.UserProjectOut, status_code=201)
def create_user_project(payload: schemas.UserProjectIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return schemas.UserProjectOut.model_validate(services.UserProjectService(db).create(payload, user))


@api.delete("/user-projects/{link_id}", response_model=schemas.UserProjectOut)
def delete_user_project(link_id: uuid.UUID, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    link = services.UserProjectService(db).remove(link_id, user)
    return schemas.UserProjectOut.model_validate(link)


# --- users --------------------------------------------------------------------

@api.post("/users/create-teacher", response_model=schemas.UserOut, status_code=201)
def create_teacher(payload: schemas.TeacherCreate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Admin-issued account with explicit role and career."""
    Authorizer(db).require_admin(user)
    return schemas.UserOut.model_validate(services.AuthService(db).register_with_role(payload))


@api.post("/users", response_model=schemas.UserOut, status_code=201)
def create_user(payload: schemas.UserCreate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return schemas.UserOut.model_validate(services.UserService(db).create(payload, user))


@api.get("/users", response_model=schemas.Page[schemas.UserOut])
def list_users(
    pagination: schemas.PaginationParams = Depends(pagination_params),
    db: Session = Depends(get_session),
    user: models.User = Depends(get_current_user),
):
    return _page(schemas.UserOut, services.UserService(db).find_all(pagination))


@api.get("/users/{user_id}", response_model=schemas.UserOut)
def get_user(user_id: uuid.UUID, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return schemas.UserOut.model_validate(services.UserService(db).find_one(user_id))


@api.patch("/users/{user_id}", response_model=schemas.UserOut)
def update_user(user_id: uuid.UUID, payload: schemas.UserUpdate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    """Update an account (self or admin). Only admins change roles."""
    return schemas.UserOut.model_validate(services.UserService(db).update(user_id, payload, user))


@api.patch("/users/{user_id}/image", response_model=schemas.UserOut)
def update_user_image(
    user_id: uuid.UUID,
    file: UploadFile = File(...),
    db: Session = Depends(get_session),
    user: models.User = Depends(get_current_user),
):
    """Replace the avatar. The payload must be an image of at most MAX_UPLOAD_BYTES."""
    content = file.file.read(settings.MAX_UPLOAD_BYTES + 1)
    return schemas.UserOut.model_validate(services.UserService(db).update_image(user_id, content, user))


@api.delete("/users/{user_id}", response_model=schemas.UserOut)
def delete_user(user_id: uuid.UUID, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    svc = services.UserService(db)
    out = schemas.UserOut.model_validate(svc.find_one(user_id))
    svc.remove(user_id, user)
    return out


# --- careers and periods -------------------------------------------------------

@api.get("/careers", response_model=schemas.Page[schemas.CareerOut])
def list_careers(pagination: schemas.PaginationParams = Depends(pagination_params), db: Session = Depends(get_session)):
    return _page(schemas.CareerOut, services.CareerService(db).find_all(pagination))


@api.post("/careers", response_model=schemas.CareerOut, status_code=201)
def create_career(payload: schemas.CareerIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return schemas.CareerOut.model_validate(services.CareerService(db).create(payload, user))


@api.get("/careers/{career_id}", response_model=schemas.CareerOut)
def get_career(career_id: uuid.UUID, db: Session = Depends(get_session)):
    return schemas.CareerOut.model_validate(services.CareerService(db).find_one(career_id))


@api.patch("/careers/{career_id}", response_model=schemas.CareerOut)
def update_career(career_id: uuid.UUID, payload: schemas.CareerUpdate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return schemas.CareerOut.model_validate(services.CareerService(db).update(career_id, payload, user))


@api.delete("/careers/{career_id}", response_model=schemas.CareerOut)
def delete_career(career_id: uuid.UUID, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    svc = services.CareerService(db)
    out = schemas.CareerOut.model_validate(svc.find_one(career_id))
    svc.remove(career_id, user)
    return out


@api.get("/period", response_model=schemas.Page[schemas.PeriodOut])
def list_periods(pagination: schemas.PaginationParams = Depends(pagination_params), db: Session = Depends(get_session)):
    """Academic periods ordered by name (desc by default)."""
    return _page(schemas.PeriodOut, services.PeriodService(db).find_all(pagination))


@api.post("/period", response_model=schemas.PeriodOut, status_code=201)
def create_period(payload: schemas.PeriodIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return schemas.PeriodOut.model_validate(services.PeriodService(db).create(payload))


@api.get("/period/{period_id}", response_model=schemas.PeriodOut)
def get_period(period_id: uuid.UUID, db: Session = Depends(get_session)):
    return schemas.PeriodOut.model_validate(services.PeriodService(db).find_one(period_id))


@api.delete("/period/{period_id}", response_model=schemas.PeriodOut)
def delete_period(period_id: uuid.UUID, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    svc = services.PeriodService(db)
    out = schemas.PeriodOut.model_validate(svc.find_one(period_id))
    svc.remove(period_id)
    return out


# --- roles and permissions (admin) -------------------------------------------------

@api.get("/roles", response_model=schemas.Page[schemas.RoleOut])
def list_roles(
    pagination: schemas.PaginationParams = Depends(pagination_params),
    db: Session = Depends(get_session),
    user: models.User = Depends(get_current_user),
):
    Authorizer(db).require_admin(user)
    return _page(schemas.RoleOut, services.RoleService(db).find_all(pagination))


@api.post("/roles", response_model=schemas.RoleOut, status_code=201)
def create_role(payload: schemas.RoleIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return schemas.RoleOut.model_validate(services.RoleService(db).create(payload, user))


@api.patch("/roles/{role_id}", response_model=schemas.RoleOut)
def update_role(role_id: uuid.UUID, payload: schemas.RoleUpdate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return schemas.RoleOut.model_validate(services.RoleService(db).update(role_id, payload, user))


@api.delete("/roles/{role_id}", response_model=schemas.RoleOut)
def delete_role(role_id: uuid.UUID, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    svc = services.RoleService(db)
    Authorizer(db).require_admin(user)
    out = schemas.RoleOut.model_validate(svc.find_one(role_id))
    svc.remove(role_id, user)
    return out


@api.get("/permissions", response_model=schemas.Page[schemas.PermissionOut])
def list_permissions(
    pagination: schemas.PaginationParams = Depends(pagination_params),
    db: Session = Depends(get_session),
    user: models.User = Depends(get_current_user),
):
    Authorizer(db).require_admin(user)
    return _page(schemas.PermissionOut, services.PermissionService(db).find_all(pagination))


@api.post("/permissions", response_model=schemas.PermissionOut, status_code=201)
def create_permission(payload: schemas.PermissionIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return schemas.PermissionOut.model_validate(services.PermissionService(db).create(payload, user))


@api.patch("/permissions/{permission_id}", response_model=schemas.PermissionOut)
def update_permission(permission_id: uuid.UUID, payload: schemas.PermissionUpdate, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return schemas.PermissionOut.model_validate(services.PermissionService(db).update(permission_id, payload, user))


@api.delete("/permissions/{permission_id}", response_model=schemas.PermissionOut)
def delete_permission(permission_id: uuid.UUID, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    svc = services.PermissionService(db)
    Authorizer(db).require_admin(user)
    out = schemas.PermissionOut.model_validate(svc.find_one(permission_id))
    svc.remove(permission_id, user)
    return out


@api.get("/role-permissions", response_model=schemas.Page[schemas.RolePermissionOut])
def list_role_permissions(
    pagination: schemas.PaginationParams = Depends(pagination_params),
    db: Session = Depends(get_session),
    user: models.User = Depends(get_current_user),
):
    return _page(schemas.RolePermissionOut, services.RolePermissionService(db).find_all(pagination, user))


@api.post("/role-permissions", response_model=schemas.RolePermissionOut, status_code=201)
def create_role_permission(payload: schemas.RolePermissionIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    return schemas.RolePermissionOut.model_validate(services.RolePermissionService(db).create(payload, user))


@api.delete("/role-permissions/{link_id}", response_model=schemas.RolePermissionOut)
def delete_role_permission(link_id: uuid.UUID, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    link = services.RolePermissionService(db).remove(link_id, user)
    return schemas.RolePermissionOut.model_validate(link)


app.include_router(api)
