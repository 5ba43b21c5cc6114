# support_console/main.py
from fastapi import FastAPI, WebSocket, WebSocketDisconnect, HTTPException, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from typing import List, Literal, Optional
from datetime import datetime
import asyncio
from contextlib import asynccontextmanager
import logging

from support_console import config
from support_console.auth import AuthService
from support_console.booking import BookingService, split_slots
from support_console.dashboard import DashboardService
from support_console.database import Base, SessionLocal, engine
from support_console.discussions import DiscussionBoard
from support_console.errors import AuthenticationError, ConsoleError
from support_console.events import ChangeFeed
from support_console.messaging import WhatsAppClient
from support_console.quotes import QuoteService
from support_console.responder import AutomatedResponder, InboundHandler
from support_console.scheduler import ConsoleScheduler
from support_console.schemas import (
    AgentCreate, AppointmentCreate, AppointmentResponse, AppointmentUpdate,
    DashboardResponse, DiscussionSummary, HandoffUpdate, MessageRow, ProfileUpdate,
    QuoteCreate, QuoteResponse, QuoteStatusUpdate, QuoteUpdate, ReplyCreate,
    SessionResponse, SignInRequest, SlotBoard, SlotResponse, SlotWrite,
    UnreadResponse, UserResponse,
)
from support_console.store import RowStore
from support_console.websocket_manager import ConnectionManager

# Configure logging
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

CONSOLE_TABLES = ("discussions", "quotes", "appointments", "available_dates")

# Initialize services
feed = ChangeFeed()
store = RowStore(SessionLocal, feed)
messenger = WhatsAppClient.from_env()
board = DiscussionBoard(store, messenger)
bookings = BookingService(store)
quotes = QuoteService(store)
auth = AuthService(store)
dashboard = DashboardService(store)
inbound = InboundHandler(store, messenger, AutomatedResponder())
manager = ConnectionManager()
scheduler = None

_pending_pushes = set()


def push_discussions(snapshot: List[DiscussionSummary]):
    """Forward board changes to connected consoles"""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return
    task = loop.create_task(manager.broadcast({
        "type": "discussions",
        "unread": board.unread,
        "discussions": jsonable_encoder(snapshot),
    }))
    _pending_pushes.add(task)
    task.add_done_callback(_pending_pushes.discard)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting Support Console API...")
    global scheduler
    Base.metadata.create_all(bind=engine)
    if config.ADMIN_EMAIL and config.ADMIN_PASSWORD:
        auth.ensure_admin(config.ADMIN_EMAIL, config.ADMIN_PASSWORD)
    board.watch(feed)
    board.add_observer(push_discussions)
    scheduler = ConsoleScheduler(bookings, dashboard)
    scheduler.start()
    yield
    # Shutdown
    logger.info("Shutting down Support Console API...")
    if scheduler:
        scheduler.shutdown()
    board.remove_observer(push_discussions)
    board.unwatch()
    await messenger.aclose()

app = FastAPI(
    title="Support Console API",
    version="1.0.0",
    description="Back-office console for customer discussions, appointments and quotes",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConsoleError)
async def console_error_handler(request: Request, exc: ConsoleError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.kind, "message": exc.message},
    )


# Dependencies
def get_board() -> DiscussionBoard:
    return board

def get_bookings() -> BookingService:
    return bookings

def get_quotes() -> QuoteService:
    return quotes

def get_auth() -> AuthService:
    return auth

def get_dashboard() -> DashboardService:
    return dashboard

def get_inbound() -> InboundHandler:
    return inbound

bearer = HTTPBearer(auto_error=False)

async def get_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> str:
    if credentials is None:
        raise AuthenticationError("Not signed in")
    return credentials.credentials

async def get_current_user(token: str = Depends(get_token), auth: AuthService = Depends(get_auth)) -> dict:
    user_id = auth.current_session(token)
    return auth.load_profile(user_id)


# Health
@app.get("/")
async def root():
    return {"message": "Support Console API", "version": "1.0.0"}

@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow(),
        "service": "Support Console",
        "responder": "connected" if inbound.responder.client else "canned answers",
        "scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        "connected_consoles": len(manager.active_connections),
    }

@app.get("/api/scheduler/jobs")
async def get_scheduler_jobs(user: dict = Depends(get_current_user)):
    """Get scheduled job information"""
    if not scheduler:
        return {"message": "Scheduler not running"}

    return {
        "status": "running" if scheduler.is_running else "stopped",
        "jobs": scheduler.get_scheduled_jobs()
    }


# Auth and profile
@app.post("/api/auth/sign-in", response_model=SessionResponse)
async def sign_in(credentials: SignInRequest, auth: AuthService = Depends(get_auth)):
    token, profile = auth.sign_in(credentials.email, credentials.password)
    return {"token": token, "user": profile}

@app.post("/api/auth/sign-out")
async def sign_out(token: str = Depends(get_token), auth: AuthService = Depends(get_auth)):
    auth.sign_out(token)
    return {"message": "Signed out"}

@app.get("/api/auth/session", response_model=UserResponse)
async def current_session(user: dict = Depends(get_current_user)):
    return user

@app.get("/api/profile", response_model=UserResponse)
async def get_profile(user: dict = Depends(get_current_user)):
    return user

@app.patch("/api/profile", response_model=UserResponse)
async def update_profile(
    changes: ProfileUpdate,
    user: dict = Depends(get_current_user),
    auth: AuthService = Depends(get_auth)
):
    return auth.update_profile(user["id"], changes)

@app.post("/api/agents", response_model=UserResponse, status_code=201)
async def create_agent(
    agent: AgentCreate,
    user: dict = Depends(get_current_user),
    auth: AuthService = Depends(get_auth)
):
    if user["role"] != "admin":
        raise HTTPException(status_code=403, detail="Only administrators can create agents")
    return auth.create_agent(agent.email, agent.password, agent.name, agent.phone)


# Discussions
@app.get("/api/discussions", response_model=List[DiscussionSummary])
async def get_discussions(
    q: Optional[str] = None,
    user: dict = Depends(get_current_user),
    board: DiscussionBoard = Depends(get_board)
):
    board.load()
    return board.search(q) if q else board.snapshot()

@app.get("/api/discussions/{session_id}/messages", response_model=List[MessageRow])
async def get_discussion_messages(
    session_id: str,
    mark_read: bool = True,
    user: dict = Depends(get_current_user),
    board: DiscussionBoard = Depends(get_board)
):
    if mark_read:
        return board.open(session_id)
    return board.messages(session_id)

@app.post("/api/discussions/{session_id}/read")
async def mark_discussion_read(
    session_id: str,
    user: dict = Depends(get_current_user),
    board: DiscussionBoard = Depends(get_board)
):
    return {"updated": board.mark_read(session_id)}

@app.post("/api/discussions/{session_id}/messages", response_model=MessageRow, status_code=201)
async def send_discussion_message(
    session_id: str,
    reply: ReplyCreate,
    user: dict = Depends(get_current_user),
    board: DiscussionBoard = Depends(get_board)
):
    return await board.send_reply(session_id, reply.message)

@app.put("/api/discussions/{session_id}/handoff")
async def set_discussion_handoff(
    session_id: str,
    handoff: HandoffUpdate,
    user: dict = Depends(get_current_user),
    board: DiscussionBoard = Depends(get_board)
):
    board.set_handoff(session_id, handoff.assigned)
    return {"session_id": session_id, "assigned_to_agent": handoff.assigned}

@app.delete("/api/discussions/{session_id}")
async def delete_discussion(
    session_id: str,
    user: dict = Depends(get_current_user),
    board: DiscussionBoard = Depends(get_board)
):
    return {"deleted": board.delete(session_id)}

@app.get("/api/notifications/unread", response_model=UnreadResponse)
async def get_unread(
    user: dict = Depends(get_current_user),
    board: DiscussionBoard = Depends(get_board)
):
    return {"unread": board.refresh_unread()}


# Slots
@app.get("/api/slots", response_model=SlotBoard)
async def get_slots(
    status: Literal["all", "available", "booked"] = "all",
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_bookings)
):
    slots = bookings.load_slots(None if status == "all" else status)
    upcoming, past = split_slots(slots, bookings.clock())
    return {"upcoming": upcoming, "past": past}

@app.get("/api/slots/bookable", response_model=List[SlotResponse])
async def get_bookable_slots(
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_bookings)
):
    return bookings.list_bookable()

@app.post("/api/slots", response_model=SlotResponse, status_code=201)
async def create_slot(
    slot: SlotWrite,
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_bookings)
):
    return bookings.create_slot(slot.datetime)

@app.patch("/api/slots/{slot_id}", response_model=SlotResponse)
async def reschedule_slot(
    slot_id: str,
    slot: SlotWrite,
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_bookings)
):
    return bookings.reschedule_slot(slot_id, slot.datetime)

@app.delete("/api/slots/{slot_id}")
async def delete_slot(
    slot_id: str,
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_bookings)
):
    bookings.delete_slot(slot_id)
    return {"message": "Date deleted successfully"}


# Appointments
@app.get("/api/appointments", response_model=List[AppointmentResponse])
async def get_appointments(
    q: Optional[str] = None,
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_bookings)
):
    return bookings.list_appointments(q)

@app.post("/api/appointments", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    appointment: AppointmentCreate,
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_bookings)
):
    return bookings.book(appointment)

@app.patch("/api/appointments/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: str,
    changes: AppointmentUpdate,
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_bookings)
):
    return bookings.update_appointment(appointment_id, changes)

@app.post("/api/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: str,
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_bookings)
):
    return bookings.cancel(appointment_id)

@app.delete("/api/appointments/{appointment_id}")
async def delete_appointment(
    appointment_id: str,
    user: dict = Depends(get_current_user),
    bookings: BookingService = Depends(get_bookings)
):
    bookings.delete_appointment(appointment_id)
    return {"message": "Appointment deleted successfully"}


# Quotes
@app.get("/api/quotes", response_model=List[QuoteResponse])
async def list_quotes_route(
    q: Optional[str] = None,
    user: dict = Depends(get_current_user),
    quotes: QuoteService = Depends(get_quotes)
):
    return quotes.list_quotes(q)

@app.get("/api/quotes/{quote_id}", response_model=QuoteResponse)
async def get_quote(
    quote_id: str,
    user: dict = Depends(get_current_user),
    quotes: QuoteService = Depends(get_quotes)
):
    return quotes.get_quote(quote_id)

@app.post("/api/quotes", response_model=QuoteResponse, status_code=201)
async def create_quote(
    quote: QuoteCreate,
    user: dict = Depends(get_current_user),
    quotes: QuoteService = Depends(get_quotes)
):
    return quotes.create_quote(quote)

@app.patch("/api/quotes/{quote_id}", response_model=QuoteResponse)
async def update_quote(
    quote_id: str,
    changes: QuoteUpdate,
    user: dict = Depends(get_current_user),
    quotes: QuoteService = Depends(get_quotes)
):
    return quotes.update_quote(quote_id, changes)

@app.put("/api/quotes/{quote_id}/status", response_model=QuoteResponse)
async def update_quote_status(
    quote_id: str,
    update: QuoteStatusUpdate,
    user: dict = Depends(get_current_user),
    quotes: QuoteService = Depends(get_quotes)
):
    return quotes.set_status(quote_id, update.status)

@app.delete("/api/quotes/{quote_id}")
async def delete_quote(
    quote_id: str,
    user: dict = Depends(get_current_user),
    quotes: QuoteService = Depends(get_quotes)
):
    quotes.delete_quote(quote_id)
    return {"message": "Quote deleted successfully"}


# Dashboard
@app.get("/api/dashboard", response_model=DashboardResponse)
async def get_dashboard_data(
    user: dict = Depends(get_current_user),
    dashboard: DashboardService = Depends(get_dashboard)
):
    return {"stats": dashboard.stats(), "recent_activity": dashboard.recent_activity()}


# WhatsApp webhook
@app.get("/webhooks/whatsapp")
async def verify_webhook(
    mode: Optional[str] = Query(default=None, alias="hub.mode"),
    verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
):
    if mode == "subscribe" and config.WHATSAPP_VERIFY_TOKEN and verify_token == config.WHATSAPP_VERIFY_TOKEN:
        return PlainTextResponse(challenge or "")
    raise HTTPException(status_code=403, detail="Verification failed")

@app.post("/webhooks/whatsapp")
async def receive_webhook(request: Request, inbound: InboundHandler = Depends(get_inbound)):
    payload = await request.json()
    processed = await inbound.handle(payload)
    return {"processed": processed}


# WebSocket endpoint for realtime console updates
@app.websocket("/ws/console")
async def console_websocket(
    websocket: WebSocket,
    token: Optional[str] = None,
    auth: AuthService = Depends(get_auth)
):
    try:
        auth.current_session(token or "")
    except AuthenticationError:
        await websocket.close(code=1008)
        return

    connection_id = await manager.connect(websocket)

    async def forward_changes():
        async for event in feed.stream(CONSOLE_TABLES):
            await manager.send_json({"type": "change", **event.to_dict()}, connection_id)
            if connection_id not in manager.active_connections:
                break

    forwarder = asyncio.create_task(forward_changes())
    try:
        await manager.send_json({
            'type': 'connection',
            'content': 'Connected to Support Console',
            'timestamp': datetime.utcnow().isoformat()
        }, connection_id)

        # Consoles only listen; reading is how a closed socket gets noticed
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info(f"Console {connection_id} disconnected")
    finally:
        forwarder.cancel()
        await asyncio.gather(forwarder, return_exceptions=True)
        manager.disconnect(connection_id)


def run():
    import uvicorn
    uvicorn.run("support_console.main:app", host="0.0.0.0", port=8000)

if __name__ == "__main__":
    run()
