from fastapi import FastAPI, BackgroundTasks, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import Optional
import stripe
import logfire

import billing
import store
from auth import CurrentUser, get_current_user, require_user
from config import CORS_ORIGINS, completion_settings
from database import get_db, get_session_factory, init_db
from errors import NotFound, QuotaExceeded, ReviewValidationError, ServiceError
from persistence import persist_after_stream
from prompts import build_prompt
from quota import evaluate_quota, limit_message, resolve_plan
from relay import CompletionRelay, resolve_client
from schemas import (
    GenerateRequest,
    ProfileOut,
    ProfileUpdate,
    ResponseList,
    SavedResponse,
    SessionUrl,
    UsageSummary,
)

app = FastAPI(title="Review Reply API")

def scrubbing_callback(m: logfire.ScrubMatch):
    # a sessionmaker, not a credential
    if m.path == ('attributes', 'fastapi.arguments.values', 'session_factory'):
        return m.value

logfire.configure(
    send_to_logfire="if-token-present",
    scrubbing=logfire.ScrubbingOptions(callback=scrubbing_callback, extra_patterns=["review"]),
)
logfire.instrument_fastapi(app, excluded_urls="/health")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup():
    try:
        init_db()
        logfire.info("database ready")
    except SQLAlchemyError as e:
        logfire.error("database not ready: {error}", error=str(e))


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    if any("review" in error.get("loc", ()) for error in exc.errors()):
        error = ReviewValidationError()
    else:
        error = ServiceError("Invalid request body", status_code=400)
    return JSONResponse(status_code=error.status_code, content=error.to_body())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logfire.exception("unhandled error on {path}", path=request.url.path, _exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Something went wrong"})


def get_llm_client(request: Request):
    client = getattr(request.app.state, "llm_client", None)
    if client is None:
        client = resolve_client(api_key=completion_settings().api_key)
        request.app.state.llm_client = client
    return client


def get_subscription_fetcher():
    return billing.retrieve_subscription


@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.post("/api/generate")
async def generate_reply(
    request: GenerateRequest,
    background_tasks: BackgroundTasks,
    user: Optional[CurrentUser] = Depends(get_current_user),
    db: Session = Depends(get_db),
    llm_client=Depends(get_llm_client),
    session_factory=Depends(get_session_factory),
):
    review_input = request.to_review_input()
    owner_id = user.id if user else None

    # Demo and anonymous callers skip the quota and are never saved
    if user is not None and not review_input.is_demo:
        decision = await run_in_threadpool(evaluate_quota, db, user.id)
        if not decision.allowed:
            raise QuotaExceeded(limit_message(decision.limit), decision.limit, decision.used)

        profile = await run_in_threadpool(store.get_profile, db, user.id)
        if profile is not None:
            review_input = request.to_review_input(profile.restaurant_name, profile.brand_voice)

    prompt = build_prompt(review_input)
    relay = CompletionRelay(llm_client, completion_settings())
    with logfire.span(
        "open completion stream",
        rating=review_input.star_rating,
        tone=review_input.tone,
        demo=review_input.is_demo,
    ):
        await relay.open(prompt)

    background_tasks.add_task(persist_after_stream, relay, session_factory, owner_id, review_input)
    return StreamingResponse(relay.fragments(), media_type="text/plain; charset=utf-8")


@app.get("/api/usage", response_model=UsageSummary)
def get_usage(user: CurrentUser = Depends(require_user), db: Session = Depends(get_db)):
    profile = store.get_profile(db, user.id)
    plan = (profile.subscription_status if profile else None) or "free"
    decision = evaluate_quota(db, user.id)
    return UsageSummary(
        plan=plan,
        monthlyUsage=decision.used,
        monthlyLimit=resolve_plan(plan)["monthly_limit"],
        remaining=decision.remaining,
        totalResponses=store.count_responses(db, user.id),
        currentPeriodEnd=profile.current_period_end if profile else None,
    )


@app.get("/api/responses", response_model=ResponseList)
def list_saved_responses(
    limit: int = Query(50, ge=1, le=100),
    user: CurrentUser = Depends(require_user),
    db: Session = Depends(get_db),
):
    records = store.list_responses(db, user.id, limit=limit)
    return ResponseList(responses=[
        SavedResponse(
            id=r.id,
            review=r.review,
            rating=r.rating,
            tone=r.tone,
            restaurantName=r.restaurant_name,
            response=r.response,
            createdAt=r.created_at,
        )
        for r in records
    ])


@app.delete("/api/responses/{response_id}")
def delete_saved_response(
    response_id: str,
    user: CurrentUser = Depends(require_user),
    db: Session = Depends(get_db),
):
    if not store.delete_response(db, user.id, response_id):
        raise NotFound("Response not found")
    return {"deleted": True}


def _profile_out(profile) -> ProfileOut:
    return ProfileOut(
        id=profile.id,
        email=profile.email,
        restaurantName=profile.restaurant_name,
        brandVoice=profile.brand_voice,
        subscriptionStatus=profile.subscription_status or "free",
        currentPeriodEnd=profile.current_period_end,
    )


@app.get("/api/profile", response_model=ProfileOut)
def get_profile(user: CurrentUser = Depends(require_user), db: Session = Depends(get_db)):
    profile = store.get_profile(db, user.id)
    if profile is None:
        raise NotFound("Profile not found")
    return _profile_out(profile)


@app.put("/api/profile", response_model=ProfileOut)
def update_profile(
    update: ProfileUpdate,
    user: CurrentUser = Depends(require_user),
    db: Session = Depends(get_db),
):
    profile = store.get_profile(db, user.id)
    if profile is None:
        raise NotFound("Profile not found")
    fields = {"restaurantName": "restaurant_name", "brandVoice": "brand_voice"}
    changes = {
        fields[name]: (value.strip() or None) if isinstance(value, str) else value
        for name, value in update.model_dump(exclude_unset=True).items()
    }
    profile = store.update_profile(db, profile, **changes)
    return _profile_out(profile)


@app.post("/api/stripe/checkout", response_model=SessionUrl)
def create_checkout(user: CurrentUser = Depends(require_user), db: Session = Depends(get_db)):
    return SessionUrl(url=billing.create_checkout_session(db, user))


@app.post("/api/stripe/portal", response_model=SessionUrl)
def create_portal(user: CurrentUser = Depends(require_user), db: Session = Depends(get_db)):
    return SessionUrl(url=billing.create_portal_session(db, user))


@app.post("/api/stripe/webhook")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    fetch_subscription=Depends(get_subscription_fetcher),
):
    payload = await request.body()
    event = billing.verify_event(payload, request.headers.get("stripe-signature"))
    try:
        await run_in_threadpool(billing.handle_event, db, event, fetch_subscription)
    except (SQLAlchemyError, stripe.StripeError) as e:
        logfire.exception("webhook handler failed for {event_type}", event_type=event["type"])
        raise ServiceError("Webhook handler failed") from e
    return {"received": True}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
