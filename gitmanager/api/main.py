"""Main FastAPI application."""
import secrets
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from common.logging import LoggingManager
from gitmanager.auth.oauth import GitHubOAuth, OAuthError
from gitmanager.auth.session import SESSION_COOKIE_NAME, InvalidSessionError, SessionClaims, SessionManager
from gitmanager.bulk import BulkDeleteOrchestrator, BulkOutcome
from gitmanager.config import Config, get_config
from gitmanager.github.client import (
    GitHubGateway,
    RepositoryNotFoundError,
    UnauthorizedError,
    UpstreamError,
)
from gitmanager.settings_store import SettingsStore, UserPreferences

logger = LoggingManager.get_logger('gitmanager.api')

OAUTH_STATE_COOKIE = "gitmanager_oauth_state"
UNAUTHORIZED_MESSAGE = "Unauthorized - Please sign in with GitHub"


# Pydantic models
class BulkDeleteRequest(BaseModel):
    ids: List[int]


class SettingsUpdateRequest(BaseModel):
    require_repo_delete_confirmation: Optional[bool] = None
    disable_bulk_operations: Optional[bool] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# Dependencies
def get_store(request: Request) -> SettingsStore:
    return request.app.state.store


def get_session(request: Request, response: Response) -> SessionClaims:
    """Validates the session cookie (or bearer token). A day-old cookie is re-issued."""
    sessions: SessionManager = request.app.state.sessions
    token = request.cookies.get(SESSION_COOKIE_NAME)
    from_cookie = bool(token)
    authorization = request.headers.get("Authorization", "")
    if not token and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    try:
        claims = sessions.decode(token)
    except InvalidSessionError:
        raise HTTPException(status_code=401, detail=UNAUTHORIZED_MESSAGE)

    # Bearer clients manage their own token; only the cookie is re-issued
    if from_cookie and sessions.needs_refresh(claims):
        _set_session_cookie(request, response, sessions.refresh(claims))
    return claims


def get_gateway(request: Request, session: SessionClaims = Depends(get_session)):
    return request.app.state.gateway_factory(session.access_token)


def get_preferences(session: SessionClaims = Depends(get_session),
                    store: SettingsStore = Depends(get_store)) -> UserPreferences:
    return store.get_preferences(session.user_id)


def _set_session_cookie(request: Request, response: Response, token: str) -> None:
    config: Config = request.app.state.config
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=int(request.app.state.sessions.max_age.total_seconds()),
        httponly=True,
        samesite="lax",
        secure=config.oauth_redirect_url.startswith("https://"),
    )


def _settings_payload(store: SettingsStore, user_id: int) -> Dict[str, Any]:
    settings = store.get_settings(user_id)
    if settings is None:
        defaults = UserPreferences.defaults()
        return {
            "require_repo_delete_confirmation": defaults.require_repo_delete_confirmation,
            "disable_bulk_operations": defaults.disable_bulk_operations,
            "updated_at": None,
        }
    payload = settings.to_dict()
    payload.pop("created_at", None)
    payload.pop("user_id", None)
    return payload


def create_app(config: Optional[Config] = None,
               store: Optional[SettingsStore] = None,
               sessions: Optional[SessionManager] = None,
               oauth: Optional[GitHubOAuth] = None,
               gateway_factory: Optional[Callable[[str], Any]] = None) -> FastAPI:
    """Builds the application. Collaborators default to ones built from ``config``."""
    config = config or get_config()
    LoggingManager.from_config(config)

    app = FastAPI(
        title="Git Manager API",
        description="List, analyze and clean up your GitHub repositories",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if store is None:
        store = SettingsStore(config.database_url)
        store.create_schema()
    app.state.config = config
    app.state.store = store
    app.state.sessions = sessions or SessionManager.from_config(config)
    app.state.oauth = oauth or GitHubOAuth.from_config(config)
    app.state.gateway_factory = gateway_factory or (lambda token: GitHubGateway.from_config(token, config))

    _register_error_handlers(app)
    _register_routes(app)
    return app


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return _error(422, "Invalid request")

    @app.exception_handler(UnauthorizedError)
    async def unauthorized(request: Request, exc: UnauthorizedError):
        return _error(401, UNAUTHORIZED_MESSAGE)

    @app.exception_handler(RepositoryNotFoundError)
    async def not_found(request: Request, exc: RepositoryNotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(UpstreamError)
    async def upstream_failure(request: Request, exc: UpstreamError):
        # The cause was logged by the gateway; only the generic message leaves the server
        return _error(500, str(exc))

    @app.exception_handler(Exception)
    async def unexpected_failure(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
        return _error(500, "Internal server error")


def _register_routes(app: FastAPI) -> None:

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "service": "Git Manager API",
            "version": "1.0.0",
            "endpoints": {
                "login": "/auth/login",
                "repositories": "/api/repositories",
                "repository": "/api/repositories/{owner}/{name}",
                "repository_health": "/api/repositories/{owner}/{name}/health",
                "bulk_delete": "/api/repositories/bulk-delete",
                "settings": "/api/settings",
                "health": "/health",
            },
        }

    @app.get("/health")
    def health_check(store: SettingsStore = Depends(get_store)):
        """Health check endpoint."""
        try:
            store.ping()
            return {"status": "healthy", "database": "connected"}
        except Exception as e:
            logger.error(f"Database health check failed: {e}", exc_info=True)
            return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "unreachable"})

    # --- authentication ---

    @app.get("/auth/login")
    def login(request: Request):
        state = secrets.token_urlsafe(24)
        response = RedirectResponse(request.app.state.oauth.authorization_url(state), status_code=302)
        response.set_cookie(OAUTH_STATE_COOKIE, state, max_age=600, httponly=True, samesite="lax")
        return response

    @app.get("/auth/callback")
    def auth_callback(request: Request, code: str = Query(...), state: str = Query(...),
                      store: SettingsStore = Depends(get_store)):
        expected_state = request.cookies.get(OAUTH_STATE_COOKIE)
        if not expected_state or not secrets.compare_digest(expected_state, state):
            logger.warning("OAuth callback with missing or mismatched state")
            return _error(400, "Invalid sign-in state, please try again")

        oauth: GitHubOAuth = request.app.state.oauth
        try:
            access_token = oauth.exchange_code(code)
            profile = oauth.fetch_profile(access_token)
        except OAuthError as e:
            return _error(401, str(e))

        user = store.find_or_create_user(profile.github_id, profile.email, profile.name)
        token = request.app.state.sessions.issue(access_token, user.id)
        logger.info(f"User {user.id} signed in as {profile.login}")

        response = RedirectResponse("/", status_code=302)
        _set_session_cookie(request, response, token)
        response.delete_cookie(OAUTH_STATE_COOKIE)
        return response

    @app.post("/auth/logout")
    async def logout(response: Response):
        response.delete_cookie(SESSION_COOKIE_NAME)
        return {"data": {"signed_out": True}}

    # --- repositories ---

    @app.get("/api/repositories")
    def list_repositories(with_health: bool = False, gateway=Depends(get_gateway)):
        if with_health:
            repositories = gateway.get_repositories_with_health()
        else:
            repositories = gateway.list_repositories()
        return {"data": [repo.model_dump(mode="json") for repo in repositories]}

    @app.post("/api/repositories/bulk-delete")
    def bulk_delete(body: BulkDeleteRequest,
                    gateway=Depends(get_gateway),
                    preferences: UserPreferences = Depends(get_preferences)):
        if preferences.disable_bulk_operations:
            return _error(409, "Bulk operations are disabled in your settings")
        repositories = gateway.list_repositories()
        result = BulkDeleteOrchestrator(gateway).delete(body.ids, repositories, preferences)
        if result.outcome == BulkOutcome.FAILURE:
            return JSONResponse(status_code=500, content={"error": result.message, "data": result.to_dict()})
        return {"data": result.to_dict()}

    @app.get("/api/repositories/{owner}/{name}")
    def get_repository(owner: str, name: str, gateway=Depends(get_gateway)):
        return {"data": gateway.get_repository(owner, name).model_dump(mode="json")}

    @app.delete("/api/repositories/{owner}/{name}")
    def delete_repository(owner: str, name: str, gateway=Depends(get_gateway)):
        gateway.delete_repository(owner, name)
        return {"data": {"deleted": True, "full_name": f"{owner}/{name}"}}

    @app.post("/api/repositories/{owner}/{name}/health")
    def analyze_repository(owner: str, name: str, gateway=Depends(get_gateway)):
        repository = gateway.get_repository(owner, name)
        health = gateway.analyze_repository_health(repository)
        return {"data": health.model_dump(mode="json")}

    # --- settings ---

    @app.get("/api/settings")
    def read_settings(session: SessionClaims = Depends(get_session),
                      store: SettingsStore = Depends(get_store)):
        return {"data": _settings_payload(store, session.user_id)}

    @app.patch("/api/settings")
    def update_settings(body: SettingsUpdateRequest,
                        session: SessionClaims = Depends(get_session),
                        store: SettingsStore = Depends(get_store)):
        updated = store.update_settings(session.user_id, **body.model_dump(exclude_none=True))
        if updated is None:
            return _error(404, "Settings not found")
        return {"data": _settings_payload(store, session.user_id)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("gitmanager.api.main:create_app", factory=True, host="0.0.0.0", port=8000)
