"""
Event Router

Routes Givebutter webhook events to the handler registered for their type.
Events without a handler are acknowledged and otherwise ignored.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.handlers.transaction_handler import TransactionHandler, transaction_handler
from app.models.givebutter_events import TRANSACTION_SUCCEEDED, GivebutterWebhook
from app.utils.logging_config import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]


class EventRouter:
    """
    Dispatches webhook events by type.

    Handler failures are logged and re-raised; the webhook route decides how
    they are reported to Givebutter.
    """

    def __init__(self, transactions: TransactionHandler):
        self.handlers: Dict[str, EventHandler] = {
            TRANSACTION_SUCCEEDED: transactions.handle_transaction_succeeded,
        }

    def get_supported_event_types(self) -> List[str]:
        return list(self.handlers.keys())

    async def route_event(self, webhook: GivebutterWebhook) -> Dict[str, Any]:
        """
        Route a webhook to its handler.

        Returns:
            Dictionary containing:
                - status (str): 'success' or 'ignored'
                - event_type (str): The event type received
                - result (dict, optional): Handler result if processed

        Raises:
            Exception: Whatever the handler raised
        """
        event_type = webhook.event
        handler = self.handlers.get(event_type)

        if handler is None:
            logger.info(
                f"Unhandled event type: {event_type}",
                extra={"event_type": event_type},
            )
            return {"status": "ignored", "event_type": event_type}

        handler_name = handler.__name__
        logger.info(
            f"Routing event: {event_type} -> {handler_name}",
            extra={"event_type": event_type, "handler": handler_name},
        )

        try:
            result = await handler(webhook.data)
        except Exception as e:
            logger.error(
                f"Handler {handler_name} failed for {event_type}: {e}",
                exc_info=True,
                extra={"event_type": event_type, "handler": handler_name, "error": str(e)},
            )
            raise

        return {
            "status": "success",
            "event_type": event_type,
            "handler": handler_name,
            "result": result,
        }


# Singleton instance
_router_instance: Optional[EventRouter] = None


def get_event_router() -> EventRouter:
    """Get or create the EventRouter singleton"""
    global _router_instance
    if _router_instance is None:
        _router_instance = EventRouter(transaction_handler)
    return _router_instance
