"""Exceptions raised by the ordering core and the sync gateway."""


class OrderingError(Exception):
    """Base class; every failure ends up as a user-visible message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class OrderValidationError(OrderingError):
    pass


class NothingToAddError(OrderingError):
    def __init__(self, message: str = "Nothing to add to this order"):
        super().__init__(message)


class CartPolicyError(OrderingError):
    """A locked line of an order being updated was touched."""

    def __init__(self, message: str, item_id: str):
        super().__init__(message)
        self.item_id = item_id


class DecreaseBelowOriginalError(CartPolicyError):
    def __init__(self, item_id: str, original: int):
        super().__init__(f"Cannot decrease below original quantity ({original})", item_id)
        self.original = original


class RemovalOfOriginalError(CartPolicyError):
    def __init__(self, item_id: str):
        super().__init__("Cannot remove an item that was already ordered", item_id)


class OrderNotFoundError(OrderingError):
    def __init__(self, order_id: str):
        super().__init__("Order not found")
        self.order_id = order_id


class TransitionNotAllowedError(OrderingError):
    pass


class OrderWriteError(OrderingError):
    pass


class InvalidCredentialsError(OrderingError):
    def __init__(self):
        super().__init__("Invalid credentials")


class SignOutError(OrderingError):
    pass
