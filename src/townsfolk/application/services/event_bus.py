from collections import defaultdict
import logging
from typing import Callable, DefaultDict, Iterable, List, Type


Handler = Callable[[object], None]


class EventBus:
    def __init__(self) -> None:
        self._subscribers: DefaultDict[Type[object], List[tuple[int, int, Handler]]] = defaultdict(list)
        self._next_order = 0
        self._last_publish_errors: List[Exception] = []
        self._logger = logging.getLogger(__name__)

    def subscribe(self, event_type: Type[object], handler: Handler, *, priority: int = 100) -> Callable[[], None]:
        row = (int(priority), self._next_order, handler)
        self._next_order += 1
        self._subscribers[event_type].append(row)
        self._subscribers[event_type].sort(key=lambda item: (item[0], item[1]))

        def _unsubscribe() -> None:
            rows = self._subscribers.get(event_type, [])
            if row in rows:
                rows.remove(row)

        return _unsubscribe

    def subscribe_many(self, event_types: Iterable[Type[object]], handler: Handler, *, priority: int = 100) -> Callable[[], None]:
        handles = [self.subscribe(event_type, handler, priority=priority) for event_type in event_types]

        def _unsubscribe_all() -> None:
            for handle in handles:
                handle()

        return _unsubscribe_all

    def publish(self, event: object) -> None:
        self._last_publish_errors = []
        event_type = type(event)
        for priority, _, handler in list(self._subscribers[event_type]):
            try:
                handler(event)
            except Exception as exc:
                self._last_publish_errors.append(exc)
                handler_name = getattr(handler, "__qualname__", getattr(handler, "__name__", repr(handler)))
                self._logger.exception(
                    "Event handler failed and was isolated",
                    extra={
                        "event_type": event_type.__name__,
                        "handler": handler_name,
                        "priority": priority,
                    },
                )

    def last_publish_errors(self) -> List[Exception]:
        return list(self._last_publish_errors)
