import logging
from typing import Annotated

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from . import catalog_service, menu_service, models, qr, security, uploads
from .billing_routes import router as billing_router
from .catalog_routes import router as catalog_router
from .db import check_db_connection, create_db_and_tables, get_session
from .errors import MenuQRError, ValidationFailed
from .security import CurrentUser
from .settings import settings
from .slugs import unique_slug

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="MenuQR API",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Parse CORS origins from environment (comma-separated)
cors_origins_list = [
    origin.strip()
    for origin in settings.cors_origins.split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Uploaded logos and product images
app.mount(
    uploads.UPLOADS_URL_PREFIX,
    StaticFiles(directory=str(uploads.uploads_root())),
    name="uploads",
)

app.include_router(catalog_router, tags=["Catalog"])
app.include_router(billing_router, tags=["Billing"])


@app.exception_handler(MenuQRError)
async def menuqr_error_handler(request: Request, exc: MenuQRError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


@app.on_event("startup")
def on_startup() -> None:
    logger.info("Starting application...")
    create_db_and_tables()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/health/db")
def health_db() -> dict:
    """Check database connection."""
    try:
        check_db_connection()
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Database error: {e}")
    return {"status": "ok", "database": "connected"}


# ============ AUTH ============

def _login_response(content: dict, user: models.User) -> JSONResponse:
    access_token = security.token_for(user)
    response = JSONResponse(content={**content, "access_token": access_token, "token_type": "bearer"})
    response.set_cookie(
        key=security.ACCESS_TOKEN_COOKIE,
        value=access_token,
        httponly=True,
        secure=settings.is_production,  # Only enforce HTTPS in production
        samesite="lax",
        path="/",
        max_age=settings.access_token_expire_minutes * 60
    )
    return response


@app.post("/register")
def register(
    data: models.UserRegister,
    session: Session = Depends(get_session)
) -> JSONResponse:
    """Create the account and its restaurant together, then log in."""
    email = data.email.strip().lower()
    restaurant_name = data.restaurant_name.strip()
    if "@" not in email:
        raise ValidationFailed("Invalid email")
    if not restaurant_name:
        raise ValidationFailed("Restaurant name is required")

    existing_user = session.exec(select(models.User).where(models.User.email == email)).first()
    if existing_user:
        raise ValidationFailed("Email already registered")

    user = models.User(
        email=email,
        hashed_password=security.get_password_hash(data.password),
        plan=models.Plan.free,
    )
    session.add(user)
    try:
        session.flush()
    except IntegrityError as e:
        # Lost a race with a concurrent registration of the same email
        session.rollback()
        raise ValidationFailed("Email already registered") from e

    restaurant = models.Restaurant(
        user_id=user.id,
        name=restaurant_name,
        slug=unique_slug(session, restaurant_name),
    )
    session.add(restaurant)
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise ValidationFailed("Email or restaurant name already in use") from e
    session.refresh(user)
    session.refresh(restaurant)
    logger.info(f"Registered user {user.id} with restaurant {restaurant.slug}")

    body = models.RegisterResponse(
        user=models.UserRead.model_validate(user),
        restaurant=models.RestaurantRead.model_validate(restaurant),
    )
    return _login_response(body.model_dump(mode="json"), user)


@app.post("/token")
def login_for_access_token(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    session: Session = Depends(get_session)
) -> JSONResponse:
    email = form_data.username.strip().lower()
    user = session.exec(select(models.User).where(models.User.email == email)).first()

    if not user or not security.verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return _login_response({"status": "success", "message": "Logged in"}, user)


@app.post("/logout")
def logout() -> JSONResponse:
    response = JSONResponse(content={"status": "success", "message": "Logged out"})
    response.delete_cookie(key=security.ACCESS_TOKEN_COOKIE, path="/")  # Must match path used in set_cookie
    return response


@app.get("/users/me")
def read_users_me(current_user: CurrentUser) -> models.UserRead:
    return models.UserRead.model_validate(current_user)


# ============ RESTAURANT ============

@app.get("/restaurant")
def get_restaurant(
    current_user: CurrentUser,
    session: Session = Depends(get_session)
) -> models.RestaurantRead:
    restaurant = catalog_service.get_restaurant_for(session, current_user)
    return models.RestaurantRead.model_validate(restaurant)


@app.put("/restaurant")
def update_restaurant(
    restaurant_update: models.RestaurantUpdate,
    current_user: CurrentUser,
    session: Session = Depends(get_session)
) -> models.RestaurantRead:
    """Update the restaurant profile. Renaming re-derives the public slug."""
    restaurant = catalog_service.update_restaurant(session, current_user, restaurant_update)
    return models.RestaurantRead.model_validate(restaurant)


@app.post("/restaurant/logo")
async def upload_restaurant_logo(
    file: Annotated[UploadFile, File()],
    current_user: CurrentUser,
    session: Session = Depends(get_session)
) -> models.RestaurantRead:
    restaurant = catalog_service.get_restaurant_for(session, current_user)
    logo_url = await uploads.store_image(file, restaurant.id, "logo")
    restaurant = catalog_service.set_restaurant_logo(session, current_user, logo_url)
    return models.RestaurantRead.model_validate(restaurant)


@app.post("/upload")
async def upload_file(
    file: Annotated[UploadFile, File()],
    current_user: CurrentUser,
    session: Session = Depends(get_session)
) -> models.UploadResponse:
    """Store an image and return its URL without attaching it to anything."""
    restaurant = catalog_service.get_restaurant_for(session, current_user)
    url = await uploads.store_image(file, restaurant.id, "media")
    return models.UploadResponse(url=url)


@app.get("/dashboard/stats")
def get_dashboard_stats(
    current_user: CurrentUser,
    session: Session = Depends(get_session)
) -> models.DashboardStats:
    return menu_service.dashboard_stats(session, current_user)


# ============ QR CODE ============

def _public_origin(request: Request) -> str:
    return settings.public_base_url or f"{request.url.scheme}://{request.url.netloc}"


@app.get("/qr-code")
def get_qr_code(
    request: Request,
    current_user: CurrentUser,
    session: Session = Depends(get_session)
) -> models.QRCodeResponse:
    restaurant = catalog_service.get_restaurant_for(session, current_user)
    menu_url = qr.menu_url(_public_origin(request), restaurant.slug)
    return models.QRCodeResponse(qr_code=qr.render_data_url(menu_url), menu_url=menu_url)


@app.get("/qr-code.png")
def get_qr_code_png(
    request: Request,
    current_user: CurrentUser,
    session: Session = Depends(get_session)
) -> Response:
    restaurant = catalog_service.get_restaurant_for(session, current_user)
    menu_url = qr.menu_url(_public_origin(request), restaurant.slug)
    return Response(
        content=qr.render_png(menu_url),
        media_type="image/png",
        headers={"Content-Disposition": f'inline; filename="menu-{restaurant.slug}.png"'},
    )


# ============ PUBLIC MENU ============

@app.get("/menu/{slug}")
def get_public_menu(
    slug: str,
    request: Request,
    session: Session = Depends(get_session)
) -> models.PublicMenu:
    """Public, unauthenticated menu. Each successful fetch counts one view."""
    return menu_service.get_public_menu(
        session,
        slug,
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )
