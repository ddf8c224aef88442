from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Generic, Mapping, Sequence, TypeVar

from pydantic import ValidationError

from .clients.commerce import ORDER_SYNC_PATH, PRODUCT_SYNC_PATH, CommerceClient, CommerceResponse
from .config import DEFAULT_SYNC_TIMEOUT_SECONDS
from .exceptions import (
    ApiError,
    NetworkFailureError,
    RequestTimeoutError,
    SessionExpiredError,
    UnauthorizedError,
    UpstreamRejectedError,
)
from .idempotency import resolve_idempotency_key
from .models_orders import (
    CartLine,
    OrderConfirmation,
    OrderResult,
    OrderResultKind,
    SyncKind,
    SyncResult,
)
from .order_transform import build_order_submission

logger = logging.getLogger(__name__)

R = TypeVar("R")

ABORT_CANCELLED = "cancelled"
ABORT_TIMEOUT = "timeout"

_SYNC_PATHS = {
    SyncKind.PRODUCTS: PRODUCT_SYNC_PATH,
    SyncKind.ORDERS: ORDER_SYNC_PATH,
}


def _timeout_message(operation: str, seconds: float | None) -> str:
    after = f" after {seconds:g} seconds" if seconds else ""
    return (
        f"{operation} timed out{after}. The server may still be completing it; "
        "check its status before trying again."
    )


def _sync_message(response: CommerceResponse, kind: SyncKind) -> str:
    if isinstance(response.payload, Mapping) and isinstance(response.payload.get("message"), str):
        return response.payload["message"]
    return response.text.strip() or f"{kind.value.capitalize()} sync complete."


class SubmissionHandle(Generic[R]):
    """An in-flight submission that can be awaited or cancelled.

    Caller cancellation and the local deadline both abort the same way: the
    task is cancelled and the reason recorded. A task that fails with an
    unexpected exception still resolves, through ``failed_result``. Once
    :meth:`cancel` has been requested no done-callback is invoked.
    """

    def __init__(
        self,
        task: asyncio.Task[R],
        aborted_result: Callable[[str], R],
        failed_result: Callable[[BaseException], R],
        timeout: float | None = None,
    ) -> None:
        self._task = task
        self._aborted_result = aborted_result
        self._failed_result = failed_result
        self._abort_reason: str | None = None
        self._cancel_requested = False
        self._callbacks: list[Callable[[R], None]] = []
        self._deadline: asyncio.TimerHandle | None = None
        if timeout is not None:
            loop = asyncio.get_running_loop()
            self._deadline = loop.call_later(timeout, self._abort, ABORT_TIMEOUT)
        task.add_done_callback(self._on_task_done)

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def cancel(self) -> bool:
        """Abort the submission; returns False if it had already finished."""
        self._cancel_requested = True
        if self._task.done():
            return False
        self._abort(ABORT_CANCELLED)
        return True

    def add_done_callback(self, callback: Callable[[R], None]) -> None:
        if self._cancel_requested:
            return
        if self._task.done():
            asyncio.get_running_loop().call_soon(self._invoke, callback)
            return
        self._callbacks.append(callback)

    async def result(self) -> R:
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                return self._aborted_result(self._abort_reason or ABORT_CANCELLED)
            raise
        except Exception:
            return self._resolved()

    def _abort(self, reason: str) -> None:
        if self._task.done():
            return
        if self._abort_reason is None:
            self._abort_reason = reason
        self._task.cancel()

    def _resolved(self) -> R:
        if self._task.cancelled():
            return self._aborted_result(self._abort_reason or ABORT_CANCELLED)
        error = self._task.exception()
        if error is not None:
            return self._failed_result(error)
        return self._task.result()

    def _invoke(self, callback: Callable[[R], None]) -> None:
        if not self._cancel_requested:
            callback(self._resolved())

    def _on_task_done(self, task: asyncio.Task[R]) -> None:
        if self._deadline is not None:
            self._deadline.cancel()
            self._deadline = None
        callbacks, self._callbacks = self._callbacks, []
        if not task.cancelled() and task.exception() is not None:
            logger.error("submission_failed_unexpectedly", exc_info=task.exception())
        if self._cancel_requested:
            return
        for callback in callbacks:
            self._invoke(callback)


class OrderSubmissionPipeline:
    """Turns a cart into an order, submits it once, and classifies the outcome.

    Nothing here retries and nothing here touches the cart: every
    :class:`OrderResult` hands back the caller's own cart reference so the
    checkout screen can offer a retry without re-entering items.
    """

    def __init__(
        self,
        commerce: CommerceClient,
        *,
        checkout_timeout: float | None = None,
        sync_timeout: float = DEFAULT_SYNC_TIMEOUT_SECONDS,
    ) -> None:
        self._commerce = commerce
        self._checkout_timeout = checkout_timeout
        self._sync_timeout = sync_timeout
        self._active_order: SubmissionHandle[OrderResult] | None = None
        self._active_cart: Sequence[CartLine | Mapping[str, Any]] = ()
        self._active_syncs: dict[SyncKind, SubmissionHandle[SyncResult]] = {}

    @property
    def active_order(self) -> SubmissionHandle[OrderResult] | None:
        if self._active_order is not None and self._active_order.done:
            return None
        return self._active_order

    def start_order(
        self,
        cart: Sequence[CartLine | Mapping[str, Any]],
        *,
        timeout: float | None = None,
        idempotency_key: str | None = None,
    ) -> SubmissionHandle[OrderResult]:
        """Begin a checkout; a second call while one is pending joins it.

        The joined handle resolves with the first call's cart. The second
        cart is not submitted, and its result never references it.
        """
        active = self.active_order
        if active is not None:
            logger.warning(
                "order_submit_already_in_flight",
                extra={
                    "same_cart": cart is self._active_cart,
                    "active_cart_lines": len(self._active_cart),
                    "requested_cart_lines": len(cart),
                },
            )
            return active

        key = resolve_idempotency_key(idempotency_key)
        deadline = timeout if timeout is not None else self._checkout_timeout
        task = asyncio.get_running_loop().create_task(self._submit(cart, key, deadline))
        handle = SubmissionHandle(
            task,
            lambda reason: self._aborted_order(reason, cart, key, deadline),
            lambda error: self._failed_order(error, cart, key),
            timeout=deadline,
        )
        self._active_order = handle
        self._active_cart = cart
        return handle

    async def submit_order(
        self,
        cart: Sequence[CartLine | Mapping[str, Any]],
        *,
        timeout: float | None = None,
        idempotency_key: str | None = None,
    ) -> OrderResult:
        handle = self.start_order(cart, timeout=timeout, idempotency_key=idempotency_key)
        try:
            return await handle.result()
        except asyncio.CancelledError:
            handle.cancel()
            raise

    def start_sync(self, kind: SyncKind | str, *, timeout: float | None = None) -> SubmissionHandle[SyncResult]:
        sync_kind = SyncKind(kind)
        active = self._active_syncs.get(sync_kind)
        if active is not None and not active.done:
            return active
        deadline = timeout if timeout is not None else self._sync_timeout
        task = asyncio.get_running_loop().create_task(self._sync(sync_kind, deadline))
        handle = SubmissionHandle(
            task,
            lambda reason: self._aborted_sync(reason, sync_kind, deadline),
            lambda error: SyncResult(
                sync_kind=sync_kind,
                kind=OrderResultKind.NETWORK_FAILURE,
                message=f"{sync_kind.value.capitalize()} sync failed: {error}",
            ),
            timeout=deadline,
        )
        self._active_syncs[sync_kind] = handle
        return handle

    async def run_sync(self, kind: SyncKind | str, *, timeout: float | None = None) -> SyncResult:
        handle = self.start_sync(kind, timeout=timeout)
        try:
            return await handle.result()
        except asyncio.CancelledError:
            handle.cancel()
            raise

    async def _submit(
        self,
        cart: Sequence[CartLine | Mapping[str, Any]],
        key: str,
        timeout: float | None,
    ) -> OrderResult:
        payload = build_order_submission(cart)
        line_count = len(payload["orderCart"]["lineItems"])
        if line_count == 0:
            logger.info("order_submit_skipped_empty_cart")
            return OrderResult(kind=OrderResultKind.EMPTY_CART, message="Cart is empty", cart=cart)

        logger.info("order_submit_started", extra={"line_items": line_count, "idempotency_key": key})
        outcome = await self._call(
            lambda: self._commerce.submit_order(payload, idempotency_key=key, timeout=timeout),
            "Order submission",
            timeout,
        )
        if isinstance(outcome, CommerceResponse):
            result = self._order_success(outcome, cart, key)
        else:
            kind, message, status_code = outcome
            result = OrderResult(
                kind=kind,
                message=message,
                cart=cart,
                idempotency_key=key,
                status_code=status_code,
            )
        logger.info(
            "order_submit_finished",
            extra={"kind": result.kind.value, "status_code": result.status_code, "idempotency_key": key},
        )
        return result

    async def _sync(self, kind: SyncKind, timeout: float | None) -> SyncResult:
        logger.info("sync_started", extra={"sync_kind": kind.value})
        outcome = await self._call(
            lambda: self._commerce.run_sync(_SYNC_PATHS[kind], timeout=timeout),
            f"{kind.value.capitalize()} sync",
            timeout,
        )
        if isinstance(outcome, CommerceResponse):
            if outcome.payload is None and outcome.text.strip():
                result = SyncResult(
                    sync_kind=kind,
                    kind=OrderResultKind.MALFORMED_RESPONSE,
                    message=outcome.text,
                    status_code=outcome.status_code,
                    body=outcome.text,
                )
            else:
                result = SyncResult(
                    sync_kind=kind,
                    kind=OrderResultKind.SUCCESS,
                    message=_sync_message(outcome, kind),
                    status_code=outcome.status_code,
                    body=outcome.text,
                    payload=outcome.payload,
                )
        else:
            error_kind, message, status_code = outcome
            result = SyncResult(sync_kind=kind, kind=error_kind, message=message, status_code=status_code)
        logger.info("sync_finished", extra={"sync_kind": kind.value, "kind": result.kind.value})
        return result

    async def _call(
        self,
        send: Callable[[], Awaitable[CommerceResponse]],
        operation: str,
        timeout: float | None,
    ) -> CommerceResponse | tuple[OrderResultKind, str, int | None]:
        try:
            return await send()
        except SessionExpiredError as exc:
            return OrderResultKind.SESSION_EXPIRED, self._session_message(exc), exc.status_code or 401
        except UnauthorizedError as exc:
            return OrderResultKind.SESSION_EXPIRED, exc.message, exc.status_code
        except UpstreamRejectedError as exc:
            return OrderResultKind.UPSTREAM_REJECTED, exc.message, exc.status_code
        except RequestTimeoutError:
            return OrderResultKind.TIMEOUT, _timeout_message(operation, timeout), None
        except NetworkFailureError as exc:
            return OrderResultKind.NETWORK_FAILURE, exc.message or "Network error", None

    def _session_message(self, exc: ApiError) -> str:
        last_error = self._commerce.session.last_error
        if last_error is not None and last_error.message:
            return last_error.message
        return exc.message

    @staticmethod
    def _order_success(response: CommerceResponse, cart: Sequence[Any], key: str) -> OrderResult:
        if isinstance(response.payload, Mapping):
            try:
                confirmation = OrderConfirmation.from_payload(response.payload)
            except ValidationError:
                confirmation = None
            if confirmation is not None:
                return OrderResult(
                    kind=OrderResultKind.SUCCESS,
                    message=confirmation.message or "Order created successfully",
                    cart=cart,
                    idempotency_key=key,
                    status_code=response.status_code,
                    confirmation=confirmation,
                    raw_body=response.text,
                )
        logger.warning("order_confirmation_unparseable", extra={"status_code": response.status_code})
        return OrderResult(
            kind=OrderResultKind.MALFORMED_RESPONSE,
            message=response.text.strip() or "Order accepted",
            cart=cart,
            idempotency_key=key,
            status_code=response.status_code,
            raw_body=response.text,
            warning="The order was accepted but the confirmation could not be read.",
        )

    @staticmethod
    def _aborted_order(reason: str, cart: Sequence[Any], key: str, timeout: float | None) -> OrderResult:
        logger.info("order_submit_aborted", extra={"reason": reason, "idempotency_key": key})
        if reason == ABORT_TIMEOUT:
            return OrderResult(
                kind=OrderResultKind.TIMEOUT,
                message=_timeout_message("Order submission", timeout),
                cart=cart,
                idempotency_key=key,
            )
        return OrderResult(
            kind=OrderResultKind.CANCELLED,
            message="Order submission cancelled. The server may still have received it.",
            cart=cart,
            idempotency_key=key,
        )

    @staticmethod
    def _failed_order(error: BaseException, cart: Sequence[Any], key: str) -> OrderResult:
        return OrderResult(
            kind=OrderResultKind.NETWORK_FAILURE,
            message=f"Order submission failed: {error}. The server may still have received it.",
            cart=cart,
            idempotency_key=key,
        )

    @staticmethod
    def _aborted_sync(reason: str, kind: SyncKind, timeout: float | None) -> SyncResult:
        label = f"{kind.value.capitalize()} sync"
        if reason == ABORT_TIMEOUT:
            return SyncResult(sync_kind=kind, kind=OrderResultKind.TIMEOUT, message=_timeout_message(label, timeout))
        return SyncResult(sync_kind=kind, kind=OrderResultKind.CANCELLED, message="Canceled.")
