import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.errors import PyMongoError

from cart import CartEntry, CartRegistry, CartStore, UpdateFlow
from config import CORS_ORIGINS, CURRENCY_SYMBOL, DASHBOARD_TICK_SECONDS, LOG_LEVEL, PORT, STAFF_EMAIL, STAFF_PASSWORD
from dashboard import DashboardSession, refusal_reason
from errors import (
    CartPolicyError,
    InvalidCredentialsError,
    NothingToAddError,
    OrderingError,
    OrderNotFoundError,
    OrderValidationError,
    OrderWriteError,
    SignOutError,
    TransitionNotAllowedError,
)
from gateway import SyncGateway
from menu import CATEGORIES, get_menu_item, list_menu
from orders import OrderDetails, place_order, submit_update
from schemas import CartOut, DashboardViews, Document, Identity, MenuItem, Order

logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# Application state

class AppState:
    def __init__(self, gateway: SyncGateway):
        self.gateway = gateway
        self.carts = CartRegistry()


_state: Optional[AppState] = None


def get_state() -> AppState:
    global _state
    if _state is None:
        _state = AppState(SyncGateway())
    return _state


@asynccontextmanager
async def lifespan(app: FastAPI):
    if STAFF_EMAIL and STAFF_PASSWORD:
        get_state().gateway.ensure_staff_user(STAFF_EMAIL, STAFF_PASSWORD)
    yield


app = FastAPI(title="Chiya Ordering API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

security = HTTPBearer(auto_error=False)


# Utilities

ERROR_STATUS = [
    (OrderValidationError, 400),
    (NothingToAddError, 400),
    (CartPolicyError, 409),
    (TransitionNotAllowedError, 409),
    (OrderNotFoundError, 404),
    (InvalidCredentialsError, 401),
    (OrderWriteError, 502),
    (SignOutError, 502),
]


def http_error(exc: OrderingError) -> HTTPException:
    for cls, status_code in ERROR_STATUS:
        if isinstance(exc, cls):
            return HTTPException(status_code=status_code, detail=exc.message)
    return HTTPException(status_code=400, detail=exc.message)


def require_staff(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    state: AppState = Depends(get_state),
) -> Identity:
    user = state.gateway.resolve_token(credentials.credentials if credentials else None)
    if user is None:
        raise HTTPException(status_code=401, detail="Sign in required")
    return user


def get_cart(cart_id: str, state: AppState) -> CartEntry:
    entry = state.carts.get(cart_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Cart not found")
    return entry


def cart_out(cart_id: str, entry: CartEntry) -> CartOut:
    if isinstance(entry, UpdateFlow):
        return CartOut(
            cart_id=cart_id,
            mode="update",
            order_id=entry.order.id,
            items=entry.cart.items,
            total_amount=entry.cart.total_amount(),
            total_items=entry.cart.total_items(),
            original_quantities=entry.original_quantities,
        )
    return CartOut(
        cart_id=cart_id,
        items=entry.items,
        total_amount=entry.total_amount(),
        total_items=entry.total_items(),
    )


# Request models

class LoginRequest(Document):
    email: str
    password: str


class LoginResponse(Document):
    token: str
    user: Identity


class AddItemRequest(Document):
    item_id: str
    quantity: int = 1


class QuantityRequest(Document):
    quantity: int


@app.get("/")
def root():
    return {"message": "Chiya Ordering API running", "currency": CURRENCY_SYMBOL}


@app.get("/health")
def health(state: AppState = Depends(get_state)):
    try:
        state.gateway.db.command("ping")
        return {"status": "ok"}
    except PyMongoError as e:
        raise HTTPException(status_code=500, detail=str(e))


# Auth

@app.post("/api/auth/login", response_model=LoginResponse)
def login(payload: LoginRequest, state: AppState = Depends(get_state)):
    try:
        token, user = state.gateway.sign_in(payload.email, payload.password)
    except InvalidCredentialsError as e:
        raise http_error(e)
    return LoginResponse(token=token, user=user)


@app.post("/api/auth/logout")
def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    state: AppState = Depends(get_state),
):
    if credentials is None:
        raise HTTPException(status_code=401, detail="Sign in required")
    try:
        state.gateway.sign_out(credentials.credentials)
    except SignOutError as e:
        raise http_error(e)
    return {"success": True}


@app.get("/api/auth/me", response_model=Identity)
def me(user: Identity = Depends(require_staff)):
    return user


# Menu

@app.get("/api/menu", response_model=List[MenuItem])
def menu(category: str = "All"):
    return list_menu(category)


@app.get("/api/menu/categories", response_model=List[str])
def menu_categories():
    return CATEGORIES


# Carts

@app.post("/api/carts", response_model=CartOut, status_code=201)
def create_cart(state: AppState = Depends(get_state)):
    cart_id = state.carts.create()
    return cart_out(cart_id, state.carts.get(cart_id))


@app.get("/api/carts/{cart_id}", response_model=CartOut)
def read_cart(cart_id: str, state: AppState = Depends(get_state)):
    return cart_out(cart_id, get_cart(cart_id, state))


@app.post("/api/carts/{cart_id}/items", response_model=CartOut)
def add_cart_item(cart_id: str, payload: AddItemRequest, state: AppState = Depends(get_state)):
    entry = get_cart(cart_id, state)
    item = get_menu_item(payload.item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Menu item not found")
    if not entry.add_item(item, payload.quantity):
        raise HTTPException(status_code=400, detail="Quantity must be at least 1")
    return cart_out(cart_id, entry)


@app.put("/api/carts/{cart_id}/items/{item_id}", response_model=CartOut)
def set_cart_quantity(cart_id: str, item_id: str, payload: QuantityRequest, state: AppState = Depends(get_state)):
    entry = get_cart(cart_id, state)
    try:
        entry.set_quantity(item_id, payload.quantity)
    except CartPolicyError as e:
        raise http_error(e)
    return cart_out(cart_id, entry)


@app.delete("/api/carts/{cart_id}/items/{item_id}", response_model=CartOut)
def remove_cart_item(cart_id: str, item_id: str, state: AppState = Depends(get_state)):
    entry = get_cart(cart_id, state)
    try:
        entry.remove_item(item_id)
    except CartPolicyError as e:
        raise http_error(e)
    return cart_out(cart_id, entry)


@app.post("/api/carts/{cart_id}/checkout", response_model=Order, status_code=201)
def checkout(cart_id: str, payload: OrderDetails, state: AppState = Depends(get_state)):
    entry = get_cart(cart_id, state)
    if not isinstance(entry, CartStore):
        raise HTTPException(status_code=400, detail="This cart adds to an existing order; submit the update instead")
    try:
        order = place_order(entry, payload, state.gateway)
    except OrderingError as e:
        raise http_error(e)
    state.carts.discard(cart_id)
    return order


@app.post("/api/carts/{cart_id}/submit-update", response_model=Order)
def submit_cart_update(cart_id: str, state: AppState = Depends(get_state)):
    entry = get_cart(cart_id, state)
    if not isinstance(entry, UpdateFlow):
        raise HTTPException(status_code=400, detail="This cart is not adding to an order")
    try:
        order = submit_update(entry, state.gateway)
    except OrderingError as e:
        raise http_error(e)
    state.carts.discard(cart_id)
    return order


# Orders (staff)

@app.get("/api/orders/{order_id}", response_model=Order)
def get_order(order_id: str, state: AppState = Depends(get_state), user: Identity = Depends(require_staff)):
    try:
        return state.gateway.get_order(order_id)
    except OrderNotFoundError as e:
        raise http_error(e)


@app.post("/api/orders/{order_id}/update-flow", response_model=CartOut, status_code=201)
def request_update_order(order_id: str, state: AppState = Depends(get_state), user: Identity = Depends(require_staff)):
    try:
        order = state.gateway.get_order(order_id)
        cart_id = state.carts.open_update(order)
    except OrderingError as e:
        raise http_error(e)
    return cart_out(cart_id, state.carts.get(cart_id))


def _transition(state: AppState, order_id: str, action: str, patch: Dict[str, str]) -> Order:
    try:
        order = state.gateway.get_order(order_id)
        reason = refusal_reason(order, action)
        if reason:
            raise TransitionNotAllowedError(reason)
        state.gateway.update_order(order_id, patch)
        return state.gateway.get_order(order_id)
    except OrderingError as e:
        raise http_error(e)


@app.post("/api/orders/{order_id}/mark-paid", response_model=Order)
def mark_paid(order_id: str, state: AppState = Depends(get_state), user: Identity = Depends(require_staff)):
    return _transition(state, order_id, "mark_paid", {"paymentStatus": "completed"})


@app.post("/api/orders/{order_id}/mark-done", response_model=Order)
def mark_done(order_id: str, state: AppState = Depends(get_state), user: Identity = Depends(require_staff)):
    return _transition(state, order_id, "mark_done", {"orderStatus": "completed"})


# Dashboard (staff)

@app.get("/api/dashboard", response_model=DashboardViews)
def dashboard(
    date: Optional[str] = Query(None, description="Local date, YYYY-MM-DD; defaults to today"),
    q: str = Query("", description="Search by customer name or table"),
    state: AppState = Depends(get_state),
    user: Identity = Depends(require_staff),
):
    session = DashboardSession(state.gateway)
    try:
        if date:
            session.select_date(date)
        session.set_search(q)
        session.open()
        return session.views()
    except OrderValidationError as e:
        raise http_error(e)
    finally:
        session.close()


async def _handle_action(session: DashboardSession, state: AppState, message: Any) -> Optional[dict]:
    if not isinstance(message, dict):
        raise OrderValidationError("Messages must be JSON objects")
    action = message.get("action")
    if action == "select_date":
        session.select_date(message.get("date"))
    elif action == "search":
        session.set_search(message.get("q", ""))
    elif action == "mark_paid":
        await run_in_threadpool(session.mark_paid, message.get("orderId"))
    elif action == "mark_done":
        await run_in_threadpool(session.mark_order_done, message.get("orderId"))
    elif action == "update_order":
        cart_id = session.request_update_order(message.get("orderId"), state.carts)
        return {"type": "update_flow", "cartId": cart_id}
    else:
        raise OrderValidationError(f"Unknown action: {action}")
    return None


@app.websocket("/ws/dashboard")
async def dashboard_feed(websocket: WebSocket, token: str = Query(""), state: AppState = Depends(get_state)):
    if await run_in_threadpool(state.gateway.resolve_token, token) is None:
        await websocket.close(code=1008)
        return
    await websocket.accept()

    loop = asyncio.get_running_loop()
    events: asyncio.Queue = asyncio.Queue()
    session = DashboardSession(state.gateway)

    async def receive():
        try:
            while True:
                try:
                    message = await websocket.receive_json()
                except ValueError:
                    # not JSON; reported like any other malformed message
                    message = None
                events.put_nowait(("message", message))
        except WebSocketDisconnect:
            events.put_nowait(("closed", None))

    async def tick():
        while True:
            await asyncio.sleep(DASHBOARD_TICK_SECONDS)
            events.put_nowait(("refresh", None))

    await run_in_threadpool(session.open, lambda: loop.call_soon_threadsafe(events.put_nowait, ("refresh", None)))
    tasks = [asyncio.create_task(receive()), asyncio.create_task(tick())]
    try:
        while True:
            kind, message = await events.get()
            if kind == "closed":
                break
            if kind == "message":
                try:
                    reply = await _handle_action(session, state, message)
                    if reply:
                        await websocket.send_json(reply)
                except OrderingError as e:
                    await websocket.send_json({"type": "error", "detail": e.message})
            views = session.views().model_dump(mode="json", by_alias=True)
            await websocket.send_json({"type": "views", **views})
    finally:
        session.close()
        for task in tasks:
            task.cancel()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=PORT)
