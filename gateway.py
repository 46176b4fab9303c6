"""
Sync gateway: the document store and staff sign-in behind one object.

Everything that talks to MongoDB goes through here. Driver errors never leave
this module as such: writes fail with ``OrderWriteError``, reads are reported
to the subscriber's ``on_error`` callback, and any sign-in problem is an
``InvalidCredentialsError``.
"""

import hashlib
import logging
import secrets
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

import database
from errors import InvalidCredentialsError, OrderNotFoundError, OrderWriteError, SignOutError
from schemas import Identity, Order, User

logger = logging.getLogger(__name__)

ORDERS = "order"
USERS = "user"
SESSIONS = "session"

SnapshotCallback = Callable[[List[Order]], None]
ErrorCallback = Callable[[Exception], None]
AuthCallback = Callable[[Optional[Identity]], None]
Unsubscribe = Callable[[], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def hash_password(password: str) -> str:
    return hashlib.sha256(password.encode()).hexdigest()


def order_from_doc(doc: Dict[str, Any]) -> Order:
    return Order.model_validate(database.to_str_id(doc))


def identity_from_doc(doc: Dict[str, Any]) -> Identity:
    return Identity.model_validate(database.to_str_id(doc))


class SyncGateway:
    """
    One per process, shared by every request.

    Request authorisation goes through ``resolve_token`` and depends only on
    the stored session. ``current_user`` and ``observe_auth_state`` describe
    this process's most recent sign-in and are meant for a single-operator
    console, not for telling concurrent staff apart.
    """

    def __init__(self, db: Optional[Database] = None, clock: Callable[[], datetime] = utc_now):
        self.db = database.db if db is None else db
        self.clock = clock
        self.current_user: Optional[Identity] = None
        self._token: Optional[str] = None
        self._subscribers: Dict[int, Tuple[SnapshotCallback, Optional[ErrorCallback]]] = {}
        self._auth_observers: Dict[int, AuthCallback] = {}
        self._next_handle = 0
        self._lock = threading.Lock()

    # -----------------------------
    # Orders
    # -----------------------------

    def create_order(self, fields: Dict[str, Any]) -> str:
        doc = dict(fields)
        doc.setdefault("createdAt", self.clock())
        try:
            order_id = database.create_document(ORDERS, doc, database=self.db)
        except PyMongoError as e:
            logger.error("Order create failed: %s", e)
            raise OrderWriteError("Could not place the order, please try again") from e
        logger.info("Order %s created for table %s", order_id, doc.get("tableNumber"))
        self._publish()
        return order_id

    def update_order(self, order_id: str, fields: Dict[str, Any]) -> None:
        try:
            matched = database.update_document(ORDERS, order_id, fields, database=self.db)
        except PyMongoError as e:
            logger.error("Order %s update failed: %s", order_id, e)
            raise OrderWriteError("Could not update the order, please try again") from e
        if not matched:
            raise OrderNotFoundError(order_id)
        logger.info("Order %s updated: %s", order_id, ", ".join(sorted(fields)))
        self._publish()

    def get_order(self, order_id: str) -> Order:
        _id = database.oid(order_id)
        doc = database.find_document(ORDERS, {"_id": _id}, database=self.db) if _id else None
        if doc is None:
            raise OrderNotFoundError(order_id)
        return order_from_doc(doc)

    def list_orders(self) -> List[Order]:
        docs = database.get_documents(ORDERS, order_by="createdAt", direction=DESCENDING, database=self.db)
        return [order_from_doc(d) for d in docs]

    def subscribe_orders(self, on_snapshot: SnapshotCallback, on_error: Optional[ErrorCallback] = None) -> Unsubscribe:
        """
        Deliver the full order list (newest first) now and after every write
        made through this gateway. The returned callable ends the
        subscription; no callback fires after it returns.
        """
        with self._lock:
            handle = self._next_handle
            self._next_handle += 1
            self._subscribers[handle] = (on_snapshot, on_error)

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(handle, None)

        self._deliver([(handle, on_snapshot, on_error)])
        return unsubscribe

    def _publish(self) -> None:
        with self._lock:
            targets = [(h, cb, err) for h, (cb, err) in self._subscribers.items()]
        if targets:
            self._deliver(targets)

    def _deliver(self, targets) -> None:
        try:
            orders = self.list_orders()
        except PyMongoError as e:
            logger.warning("Order subscription read failed: %s", e)
            for handle, _, on_error in targets:
                if on_error is not None and self._is_subscribed(handle):
                    on_error(e)
            return
        for handle, on_snapshot, _ in targets:
            if self._is_subscribed(handle):
                on_snapshot(list(orders))

    def _is_subscribed(self, handle: int) -> bool:
        with self._lock:
            return handle in self._subscribers

    # -----------------------------
    # Staff authentication
    # -----------------------------

    def ensure_staff_user(self, email: str, password: str, name: str = "Staff") -> str:
        existing = database.find_document(USERS, {"email": email}, database=self.db)
        if existing:
            return str(existing["_id"])
        user = User(name=name, email=email, password_hash=hash_password(password), is_admin=True)
        uid = database.create_document(USERS, user, database=self.db)
        logger.info("Staff user %s created", email)
        return uid

    def sign_in(self, email: str, password: str) -> Tuple[str, Identity]:
        try:
            user = database.find_document(USERS, {"email": email}, database=self.db)
            if not user or user.get("passwordHash") != hash_password(password):
                raise InvalidCredentialsError()
            token = secrets.token_urlsafe(32)
            database.create_document(
                SESSIONS, {"token": token, "email": email, "createdAt": self.clock()}, database=self.db
            )
        except InvalidCredentialsError:
            logger.warning("Sign-in rejected for %s", email)
            raise
        except PyMongoError as e:
            logger.warning("Sign-in failed for %s: %s", email, e)
            raise InvalidCredentialsError() from e

        identity = identity_from_doc(user)
        self._token = token
        self._set_current_user(identity)
        logger.info("Staff %s signed in", email)
        return token, identity

    def sign_out(self, token: Optional[str] = None) -> None:
        token = token or self._token
        if token:
            try:
                database.delete_documents(SESSIONS, {"token": token}, database=self.db)
            except PyMongoError as e:
                raise SignOutError("Could not sign out, please try again") from e
        if token == self._token:
            self._token = None
            self._set_current_user(None)

    def resolve_token(self, token: Optional[str]) -> Optional[Identity]:
        if not token:
            return None
        session = database.find_document(SESSIONS, {"token": token}, database=self.db)
        if not session:
            return None
        user = database.find_document(USERS, {"email": session["email"]}, database=self.db)
        return identity_from_doc(user) if user else None

    def observe_auth_state(self, on_change: AuthCallback) -> Unsubscribe:
        """Call ``on_change`` with ``current_user`` now and after every sign-in or sign-out of the current session."""
        with self._lock:
            handle = self._next_handle
            self._next_handle += 1
            self._auth_observers[handle] = on_change

        def unsubscribe() -> None:
            with self._lock:
                self._auth_observers.pop(handle, None)

        on_change(self.current_user)
        return unsubscribe

    def _set_current_user(self, identity: Optional[Identity]) -> None:
        self.current_user = identity
        with self._lock:
            observers = list(self._auth_observers.values())
        for on_change in observers:
            on_change(identity)
