"""FastAPI application entrypoint and HTTP controllers.

This module defines the HTTP endpoints of the exam platform backend.
Controllers are intentionally thin: they accept requests, delegate to
services, and return JSON responses.

Endpoints implemented:
- POST /auth/register
- POST /auth/login
- POST /auth/change-password
- POST /auth/forgot-password
- POST /auth/reset-password
- POST /auth/verify-email
- GET /auth/me
- POST /exams
- GET /exams/top-rated
- GET /exams/most-attempted
- GET /exams/mine
- GET /users/{user_id}/exams
- GET /exams/{exam_id}
- GET /exams/{exam_id}/summary
- POST /exams/{exam_id}/attempts
- PUT /exams/{exam_id}/ratings
- DELETE /exams/{exam_id}/ratings
- POST /exams/{exam_id}/ratings/{rating_id}/helpful
- GET /health
"""

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session
import os
import json
import logging
import time
import uuid
from .database import create_db_and_tables, get_session
from . import services, models
from .auth import get_current_user
from .config import settings
from .errors import AccountLockedError, NotFoundError, PersistenceError, ValidationError
from .schemas import (
    AttemptIn,
    ChangePasswordIn,
    ExamIn,
    ForgotPasswordIn,
    LoginIn,
    RatingIn,
    RegisterIn,
    ResetPasswordIn,
    TokenOut,
    VerifyEmailIn,
)

app = FastAPI(title="Exam Platform API")
logger = logging.getLogger("examhub.api")
if not logger.handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))

if settings.ALLOW_DEV_CORS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

create_db_and_tables()


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    req_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
    request.state.request_id = req_id
    started = time.perf_counter()
    response: Response = await call_next(request)
    response.headers["X-Request-ID"] = req_id
    elapsed_ms = round((time.perf_counter() - started) * 1000.0, 2)
    logger.info(
        "request_done %s",
        json.dumps(
            {
                "request_id": req_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "duration_ms": elapsed_ms,
            },
            ensure_ascii=True,
        ),
    )
    return response


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.exception("persistence_failed %s", json.dumps({"path": request.url.path}), exc_info=exc)
    return JSONResponse(status_code=503, content={"detail": "storage unavailable"})


def _exam_or_404(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


# -------------------- Auth --------------------

@app.post('/auth/register', status_code=201)
def register(payload: RegisterIn, db: Session = Depends(get_session)):
    svc = services.AuthService(db)
    try:
        user, verification = svc.register(payload.username, payload.password)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    body = {'user': services.public_profile(user)}
    if settings.EXPOSE_TOKENS:
        body['verification_token'] = verification
    return body


@app.post('/auth/login', response_model=TokenOut)
def login(payload: LoginIn, db: Session = Depends(get_session)):
    svc = services.AuthService(db)
    try:
        token = svc.authenticate(payload.username, payload.password)
    except AccountLockedError as e:
        detail = {'message': 'account locked', 'lock_until': e.lock_until.isoformat() if e.lock_until else None}
        raise HTTPException(status_code=423, detail=detail)
    if not token:
        raise HTTPException(status_code=401, detail='invalid credentials')
    return {'access_token': token}


@app.post('/auth/change-password', response_model=TokenOut)
def change_password(payload: ChangePasswordIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    try:
        token = services.AuthService(db).change_password(user, payload.current_password, payload.new_password)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {'access_token': token}


@app.post('/auth/forgot-password', status_code=202)
def forgot_password(payload: ForgotPasswordIn, db: Session = Depends(get_session)):
    raw = services.AuthService(db).request_password_reset(payload.username)
    body = {'detail': 'if the account exists a reset token has been issued'}
    if settings.EXPOSE_TOKENS and raw:
        body['reset_token'] = raw
    return body


@app.post('/auth/reset-password')
def reset_password(payload: ResetPasswordIn, db: Session = Depends(get_session)):
    try:
        user = services.AuthService(db).reset_password(payload.token, payload.new_password)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {'user': services.public_profile(user)}


@app.post('/auth/verify-email')
def verify_email(payload: VerifyEmailIn, db: Session = Depends(get_session)):
    try:
        user = services.AuthService(db).verify_email(payload.token)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {'user': services.public_profile(user)}


@app.get('/auth/me')
def me(user: models.User = Depends(get_current_user)):
    return services.public_profile(user)


# -------------------- Exams --------------------

@app.post('/exams', status_code=201)
def create_exam(payload: ExamIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    exam = services.ExamService(db).create_exam(user.id, **payload.model_dump())
    return services.exam_payload(exam)


@app.get('/exams/top-rated')
def top_rated(limit: int = 10, db: Session = Depends(get_session)):
    exams = services.ExamService(db).top_rated(limit)
    return [services.exam_payload(e) for e in exams]


@app.get('/exams/most-attempted')
def most_attempted(limit: int = 10, db: Session = Depends(get_session)):
    exams = services.ExamService(db).most_attempted(limit)
    return [services.exam_payload(e) for e in exams]


@app.get('/exams/mine')
def my_exams(db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    exams = services.ExamService(db).by_creator(user.id, include_unpublished=True)
    return [services.exam_payload(e) for e in exams]


@app.get('/users/{user_id}/exams')
def exams_by_creator(user_id: int, db: Session = Depends(get_session)):
    exams = services.ExamService(db).by_creator(user_id)
    return [services.exam_payload(e) for e in exams]


@app.get('/exams/{exam_id}')
def get_exam(exam_id: int, db: Session = Depends(get_session)):
    exam = _exam_or_404(services.ExamService(db).get_exam, exam_id)
    return services.exam_payload(exam)


@app.get('/exams/{exam_id}/summary')
def exam_summary(exam_id: int, db: Session = Depends(get_session)):
    return _exam_or_404(services.ExamService(db).summary, exam_id)


@app.post('/exams/{exam_id}/attempts')
def record_attempt(exam_id: int, attempt: AttemptIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    stats = _exam_or_404(
        services.ExamService(db).record_attempt,
        exam_id, attempt.score, duration=attempt.duration, passed=attempt.passed, user=user,
    )
    return services.statistics_payload(stats)


@app.put('/exams/{exam_id}/ratings')
def rate_exam(exam_id: int, rating: RatingIn, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    svc = services.ExamService(db)
    saved = _exam_or_404(svc.rate, exam_id, user.id, rating.score, rating.review)
    exam = svc.exam_repo.require(exam_id)
    return {
        'rating': services.rating_payload(saved),
        'averageRating': exam.average_rating,
        'totalRatings': exam.total_ratings,
    }


@app.delete('/exams/{exam_id}/ratings')
def remove_rating(exam_id: int, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    exam = _exam_or_404(services.ExamService(db).remove_rating, exam_id, user.id)
    return {'averageRating': exam.average_rating, 'totalRatings': exam.total_ratings}


@app.post('/exams/{exam_id}/ratings/{rating_id}/helpful')
def mark_helpful(exam_id: int, rating_id: str, db: Session = Depends(get_session), user: models.User = Depends(get_current_user)):
    rating = _exam_or_404(services.ExamService(db).mark_helpful, exam_id, rating_id)
    return {'rating': services.rating_payload(rating) if rating else None}


@app.get("/health")
def health():
    return {"status": "ok"}
