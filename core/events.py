# core/events.py
import inspect
import logging
from typing import Any, Awaitable, Callable, Union
from model.job import JobEvent

logger = logging.getLogger(__name__)

Observer = Callable[[JobEvent], Union[None, Awaitable[None]]]


class EventBus:
    """
    In-process event sink. Observers may be plain or async callables; a failing
    observer is logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._observers: list[Observer] = []

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    async def emit(self, event: JobEvent) -> None:
        logger.info(
            "event.emit type=%s job=%s status=%s", event.type, event.jobId, event.status
        )
        for observer in list(self._observers):
            try:
                out: Any = observer(event)
                if inspect.isawaitable(out):
                    await out
            except Exception as e:
                logger.error(
                    "event.observer.error job=%s status=%s err=%s",
                    event.jobId,
                    event.status,
                    type(e).__name__,
                )

