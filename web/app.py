"""FastAPI JSON API for the morning letter service."""

import logging
from datetime import date, datetime
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from morning_letter.core.errors import AppError, ErrorCode
from morning_letter.core.services import Services, build_services
from morning_letter.models.content import ApiResponse, utcnow
from morning_letter.models.settings import Settings

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Morning Letter API",
    description="News ingestion, letter drafting and scheduled delivery",
    version="2.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=(
        r"https?://(localhost|127\.0\.0\.1)(:\d+)?"
        r"|https://([a-z0-9-]+\.)*vercel\.app"
        r"|https://(www\.)?letter4ceo\.com"
    ),
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=True,
    max_age=86400,
)

_services: Optional[Services] = None


def get_services() -> Services:
    """Build the service graph once per process."""
    global _services
    if _services is None:
        settings = Settings()
        logging.basicConfig(level=settings.log_level.upper())
        _services = build_services(settings)
    return _services


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    return ApiResponse(success=True, data=data, message=message).dump()


def _error(
    status_code: int, message: str, code: str, data: Optional[dict] = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiResponse(
            success=False, error=message, code=code, data=data or None
        ).dump(),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return _error(exc.status_code, exc.message, exc.code, exc.details)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else "Invalid request"
    return _error(400, message, ErrorCode.VALIDATION_ERROR)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code == 404:
        return _error(404, "The requested resource was not found", ErrorCode.NOT_FOUND)
    return _error(exc.status_code, str(exc.detail), ErrorCode.BAD_REQUEST)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return _error(500, "An internal server error occurred", ErrorCode.INTERNAL_ERROR)


# Request bodies


class FetchRequest(BaseModel):
    category: Optional[str] = None
    limit: Optional[int] = Field(None, ge=1, le=100)


class SelectRequest(BaseModel):
    newsletter_id: Optional[str] = None
    is_selected: bool
    display_order: int = 0


class LinkPreviewRequest(BaseModel):
    url: str
    save: bool = False


class NewsletterCreate(BaseModel):
    title: str
    letter_body: Optional[str] = None
    curator_note: Optional[str] = None
    published_date: Optional[date] = None


class NewsletterUpdate(BaseModel):
    title: Optional[str] = None
    letter_body: Optional[str] = None
    curator_note: Optional[str] = None
    published_date: Optional[date] = None


class ScheduleRequest(BaseModel):
    scheduled_at: datetime


class SendTestRequest(BaseModel):
    email: str


class SubscribeRequest(BaseModel):
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None
    privacy_agreed: bool = False


class UnsubscribeRequest(BaseModel):
    email: str


class SubscriberCreate(BaseModel):
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None


class GenerateLetterRequest(BaseModel):
    news_titles: Optional[List[str]] = None
    prompt: Optional[str] = None


# Health


@app.get("/")
async def health_check():
    """Health check endpoint."""
    return ok(
        {
            "name": "Morning Letter API",
            "version": app.version,
            "status": "healthy",
            "timestamp": utcnow().isoformat(),
        }
    )


# News


@app.get("/api/news")
async def list_news(
    category: Optional[str] = None,
    newsletter_id: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    services: Services = Depends(get_services),
):
    items, pagination = services.newsletters.list_news(
        category=category, newsletter_id=newsletter_id, page=page, limit=limit
    )
    return ok({"news": items, "pagination": pagination})


@app.post("/api/news/fetch")
async def fetch_news(
    body: Optional[FetchRequest] = None,
    services: Services = Depends(get_services),
):
    body = body or FetchRequest()
    report = await services.ingestor.run(category=body.category, limit=body.limit)
    return ok(report, message=f"News fetch complete: {report.total_fetched} items")


@app.post("/api/news/link-preview")
async def link_preview(
    body: LinkPreviewRequest, services: Services = Depends(get_services)
):
    result = await services.ingestor.preview_link(body.url, save=body.save)
    return ok(result)


@app.delete("/api/news/{item_id}")
async def delete_news(item_id: str, services: Services = Depends(get_services)):
    services.newsletters.delete_news_item(item_id)
    return ok(message="News item deleted")


@app.post("/api/news/{item_id}/select")
async def select_news(
    item_id: str, body: SelectRequest, services: Services = Depends(get_services)
):
    item = services.newsletters.select_news_item(
        item_id, body.newsletter_id, body.is_selected, body.display_order
    )
    return ok({"news": item})


@app.post("/api/news/{item_id}/summarize")
async def summarize_news(item_id: str, services: Services = Depends(get_services)):
    item = await services.drafter.summarize_news_item(item_id)
    return ok({"news": item, "summary": item.ai_summary})


# Newsletters


@app.get("/api/newsletters")
async def list_newsletters(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    services: Services = Depends(get_services),
):
    newsletters, pagination = services.newsletters.list(
        status=status, page=page, limit=limit
    )
    return ok({"newsletters": newsletters, "pagination": pagination})


@app.get("/api/newsletters/stats/summary")
async def newsletter_stats(services: Services = Depends(get_services)):
    return ok({"stats": services.newsletters.stats()})


@app.get("/api/newsletters/stibee/status")
async def stibee_status(services: Services = Depends(get_services)):
    settings = services.settings
    return ok(
        {
            "configured": services.stibee.is_configured(),
            "delivery_mode": settings.delivery_mode,
            "has_api_key": bool(settings.stibee_api_key),
            "has_list_id": bool(settings.stibee_list_id),
            "has_sender_email": bool(settings.stibee_sender_email),
            "has_auto_email_url": bool(settings.stibee_auto_email_url),
        }
    )


@app.get("/api/newsletters/{newsletter_id}")
async def get_newsletter(
    newsletter_id: str, services: Services = Depends(get_services)
):
    newsletter, items = services.newsletters.get(newsletter_id)
    return ok({"newsletter": newsletter, "news_items": items})


@app.post("/api/newsletters", status_code=201)
async def create_newsletter(
    body: NewsletterCreate, services: Services = Depends(get_services)
):
    newsletter = services.newsletters.create(
        body.title, body.letter_body, body.curator_note, body.published_date
    )
    return ok({"newsletter": newsletter}, message="Newsletter created")


@app.put("/api/newsletters/{newsletter_id}")
async def update_newsletter(
    newsletter_id: str,
    body: NewsletterUpdate,
    services: Services = Depends(get_services),
):
    newsletter = services.newsletters.update(
        newsletter_id,
        title=body.title,
        letter_body=body.letter_body,
        curator_note=body.curator_note,
        published_date=body.published_date,
    )
    return ok({"newsletter": newsletter}, message="Newsletter updated")


@app.delete("/api/newsletters/{newsletter_id}")
async def delete_newsletter(
    newsletter_id: str, services: Services = Depends(get_services)
):
    services.newsletters.delete(newsletter_id)
    return ok(message="Newsletter deleted")


@app.post("/api/newsletters/{newsletter_id}/schedule")
async def schedule_newsletter(
    newsletter_id: str,
    body: ScheduleRequest,
    services: Services = Depends(get_services),
):
    newsletter = services.newsletters.schedule(newsletter_id, body.scheduled_at)
    return ok({"newsletter": newsletter}, message="Newsletter scheduled")


@app.post("/api/newsletters/{newsletter_id}/cancel-schedule")
async def cancel_schedule(
    newsletter_id: str, services: Services = Depends(get_services)
):
    newsletter = services.newsletters.cancel_schedule(newsletter_id)
    return ok({"newsletter": newsletter}, message="Schedule cancelled")


@app.post("/api/newsletters/{newsletter_id}/send")
async def send_newsletter(
    newsletter_id: str, services: Services = Depends(get_services)
):
    result = await services.dispatcher.send(newsletter_id)
    newsletter = services.store.get_newsletter(newsletter_id)
    return ok(
        {"newsletter": newsletter, "result": result}, message="Newsletter sent"
    )


@app.post("/api/newsletters/{newsletter_id}/send-test")
async def send_test(
    newsletter_id: str,
    body: SendTestRequest,
    services: Services = Depends(get_services),
):
    result = await services.dispatcher.send_test(newsletter_id, body.email)
    if result.delivered:
        return ok(result, message=f"Test email sent to {result.to}")
    return ok(
        result,
        message="Set STIBEE_AUTO_EMAIL_URL to deliver test emails; preview returned",
    )


@app.get("/api/newsletters/{newsletter_id}/preview", response_class=HTMLResponse)
async def preview_newsletter(
    newsletter_id: str, services: Services = Depends(get_services)
):
    return HTMLResponse(services.dispatcher.preview(newsletter_id))


# Subscribers


@app.get("/api/subscribers")
async def list_subscribers(
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    services: Services = Depends(get_services),
):
    subscribers, pagination = services.subscribers.list(
        status=status, search=search, page=page, limit=limit
    )
    return ok({"subscribers": subscribers, "pagination": pagination})


@app.get("/api/subscribers/stats")
async def subscriber_stats(services: Services = Depends(get_services)):
    return ok({"stats": services.subscribers.stats()})


@app.post("/api/subscribers/subscribe", status_code=201)
async def subscribe(body: SubscribeRequest, services: Services = Depends(get_services)):
    subscriber, synced = await services.subscribers.subscribe(
        body.email,
        privacy_agreed=body.privacy_agreed,
        name=body.name,
        phone=body.phone,
        company=body.company,
        position=body.position,
    )
    return ok(
        {"subscriber": subscriber, "provider_synced": synced},
        message="Thank you for subscribing!",
    )


@app.post("/api/subscribers/unsubscribe")
async def unsubscribe(
    body: UnsubscribeRequest, services: Services = Depends(get_services)
):
    synced = await services.subscribers.unsubscribe(body.email)
    return ok({"provider_synced": synced}, message="You have been unsubscribed")


@app.post("/api/subscribers", status_code=201)
async def add_subscriber(
    body: SubscriberCreate, services: Services = Depends(get_services)
):
    subscriber = await services.subscribers.add(
        body.email,
        name=body.name,
        phone=body.phone,
        company=body.company,
        position=body.position,
    )
    return ok({"subscriber": subscriber}, message="Subscriber added")


@app.delete("/api/subscribers/{subscriber_id}")
async def delete_subscriber(
    subscriber_id: str, services: Services = Depends(get_services)
):
    synced = await services.subscribers.delete(subscriber_id)
    return ok({"provider_synced": synced}, message="Subscriber deleted")


@app.post("/api/subscribers/sync-stibee")
async def sync_subscribers(services: Services = Depends(get_services)):
    result = await services.subscribers.sync_to_provider()
    return ok(result, message="Stibee sync complete")


@app.post("/api/subscribers/import-stibee")
async def import_subscribers(services: Services = Depends(get_services)):
    result = await services.subscribers.import_from_provider()
    return ok(result, message=f"Imported {result['imported']} subscribers")


# AI


@app.post("/api/ai/generate-letter")
async def generate_letter(
    body: Optional[GenerateLetterRequest] = None,
    services: Services = Depends(get_services),
):
    body = body or GenerateLetterRequest()
    draft = await services.drafter.generate_letter(body.news_titles, body.prompt)
    return ok(draft)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
