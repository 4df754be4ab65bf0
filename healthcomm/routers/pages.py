# healthcomm/routers/pages.py
from fastapi import APIRouter
from fastapi.responses import HTMLResponse

router = APIRouter(tags=["Pages"], include_in_schema=False)

_PAGE = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>{title} - HealthComm</title></head>
<body><main><h1>{title}</h1><p>{body}</p></main></body>
</html>"""


def _render(title: str, body: str) -> HTMLResponse:
    return HTMLResponse(_PAGE.format(title=title, body=body))


@router.get("/")
def home():
    return _render("HealthComm", "Patient communication portal. <a href=\"/login\">Sign in</a>")


@router.get("/login")
def login_page():
    return _render("Sign in", "POST your username and password to /api/auth/login.")


@router.get("/dashboard")
def dashboard_page():
    return _render("Dashboard", "You are signed in.")
