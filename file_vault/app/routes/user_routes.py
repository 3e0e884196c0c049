import secrets

from fastapi import APIRouter, HTTPException, Request

from file_vault.app.models.user import ChangePasswordIn, LoginIn, LoginOut, SuccessOut, UserOut
from file_vault.app.repository.user_directory import UserDirectory
from file_vault.logger_config import setup_logger, structured_log

logger = setup_logger()

router = APIRouter(prefix="/api")


def get_directory(request: Request) -> UserDirectory:
    return request.app.state.user_directory


def credentials_match(directory: UserDirectory, username: str, password: str) -> bool:
    user = directory.lookup(username)
    if user is None:
        return False
    return secrets.compare_digest(user.password.encode(), password.encode())


@router.post("/login", response_model=LoginOut)
def login(credentials: LoginIn, request: Request):
    if not credentials.username or not credentials.password:
        raise HTTPException(status_code=400, detail="Missing credentials")

    if not credentials_match(get_directory(request), credentials.username, credentials.password):
        logger.info(structured_log(
            "Login rejected",
            event="login_rejected",
            username=credentials.username,
            operation="login"
        ))
        raise HTTPException(status_code=401, detail="Invalid username or password")

    logger.info(structured_log(
        "User logged in",
        event="login_succeeded",
        username=credentials.username,
        operation="login"
    ))
    return LoginOut(success=True, username=credentials.username)


@router.get("/user", response_model=UserOut)
def get_user(request: Request, username: str = None):
    if not username:
        raise HTTPException(status_code=400, detail="Missing username")

    user = get_directory(request).lookup(username)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserOut(username=user.username)


@router.post("/change-password", response_model=SuccessOut)
def change_password(body: ChangePasswordIn, request: Request):
    if not body.username or not body.old_password or not body.new_password:
        raise HTTPException(status_code=400, detail="Missing fields")

    directory = get_directory(request)
    if not credentials_match(directory, body.username, body.old_password):
        raise HTTPException(status_code=401, detail="Invalid username or password")

    directory.update_password(body.username, body.new_password)
    logger.info(structured_log(
        "Password changed",
        event="password_changed",
        username=body.username,
        operation="change_password"
    ))
    return SuccessOut(success=True)
