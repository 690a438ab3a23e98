from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from tripdesk.database import get_db
from tripdesk.models import NormalizedUser, PasswordReset, SecurityQuestionRequest, UserLogin, UserRegister
from tripdesk.services import UserService
from tripdesk.session import SessionIssuer, get_session_issuer, set_session_cookie

router = APIRouter(prefix="/user", tags=["Users"])


def _user_body(user) -> dict:
    return {"id": user.id, "email": user.email, "name": user.name}


# POST /user/register
# Gets: JSON {name, email, password, security_question, security_answer}
# Returns: 201 {success, data: user, message}; 400 when the email is taken
# Example:
#   curl -X POST http://localhost:3000/user/register -H 'Content-Type: application/json' \
#     -d '{"name":"Ana","email":"ana@example.com","password":"secret1","security_question":"Pet?","security_answer":"Rex"}'
@router.post("/register", status_code=201)
async def register(data: UserRegister, db: Session = Depends(get_db)):
    user = UserService.register(db, data)
    return {"success": True, "data": _user_body(user), "message": "User registered"}


# POST /user/login
# Gets: JSON {email, password}
# Returns: {success, data: {user, token}} and sets the session cookie; 401 on bad credentials
@router.post("/login")
async def login(
    data: UserLogin,
    db: Session = Depends(get_db),
    issuer: SessionIssuer = Depends(get_session_issuer),
):
    """Password login; issues the same session token as Google sign-in."""
    user = UserService.authenticate(db, data.email, data.password)
    given_name, _, family_name = user.name.partition(" ")
    token = issuer.issue(
        NormalizedUser(
            provider_id=f"local:{user.id}",
            email=user.email,
            given_name=given_name or user.name,
            family_name=family_name or None,
        )
    )

    response = JSONResponse({"success": True, "data": {"user": _user_body(user), "token": token}})
    set_session_cookie(response, token)
    return response


# POST /user/security-question
# Gets: JSON {email}
# Returns: {success, data: {security_question}}; 404 when unknown
@router.post("/security-question")
async def security_question(data: SecurityQuestionRequest, db: Session = Depends(get_db)):
    question = UserService.security_question(db, data.email)
    return {"success": True, "data": {"security_question": question}}


# POST /user/reset-password
# Gets: JSON {email, security_answer, new_password}
# Returns: {success, message}; 401 on a wrong answer
@router.post("/reset-password")
async def reset_password(data: PasswordReset, db: Session = Depends(get_db)):
    UserService.reset_password(db, data)
    return {"success": True, "message": "Password updated"}
