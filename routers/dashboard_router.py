import html

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from core.auth import Allow, require_session
from core.config import settings

router = APIRouter(tags=["Dashboard"])


@router.get("/dashboard", response_class=HTMLResponse)
def dashboard(decision: Allow = Depends(require_session)):
    """Protected page. Anyone without a live session is redirected before this runs."""
    name = html.escape(decision.user.name or decision.user.email)
    sign_out_action = html.escape(f"{settings.AUTH_BASE_PATH}/sign-out")
    return f"""<!doctype html>
<html>
  <body>
    <main>
      <p>Welcome <span>{name}</span>!</p>
      <form method="post" action="{sign_out_action}">
        <button type="submit">Sign Out</button>
      </form>
    </main>
  </body>
</html>
"""
