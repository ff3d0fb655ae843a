#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Events emitted by device sessions and by the discovery service, and the plumbing to deliver them.

Events can be consumed in two ways:

  1. Synchronous handlers registered with EventSource.add_event_handler(). Handlers are called
     directly from the datagram receive path and must not block.
  2. An async subscriber, which queues events and returns them through an async iterator:

        async with source.subscribe() as subscriber:
            async for event in subscriber:
                ...
"""

from __future__ import annotations

import asyncio
from asyncio import Future

from .internal_types import *
from .pkg_logging import logger

if TYPE_CHECKING:
    from .device import DeviceSession

MAX_QUEUE_SIZE = 1000

class RmEvent:
    """Base class for all events."""
    name: str = 'event'

    def __str__(self) -> str:
        return f"{self.__class__.__name__}()"

    def __repr__(self) -> str:
        return str(self)

class DeviceReadyEvent(RmEvent):
    """A device session completed its handshake and can accept commands."""
    name = 'deviceReady'
    session: DeviceSession

    def __init__(self, session: DeviceSession):
        self.session = session

    def __str__(self) -> str:
        return f"DeviceReadyEvent({self.session})"

class RawDataEvent(RmEvent):
    """A learned IR/RF code was returned by check_data()."""
    name = 'rawData'
    data: bytes

    def __init__(self, data: bytes):
        self.data = data

    def __str__(self) -> str:
        return f"RawDataEvent({self.data.hex()})"

class RawRFDataEvent(RmEvent):
    """The first RF capture stage found a frequency."""
    name = 'rawRFData'
    data: bytes

    def __init__(self, data: bytes):
        self.data = data

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.data.hex()})"

class RawRFData2Event(RawRFDataEvent):
    """The second RF capture stage captured a code."""
    name = 'rawRFData2'

class TemperatureEvent(RmEvent):
    """A temperature reading, in degrees Celsius."""
    name = 'temperature'
    temperature: float

    def __init__(self, temperature: float):
        self.temperature = temperature

    def __str__(self) -> str:
        return f"TemperatureEvent({self.temperature})"

class UnknownDeviceEvent(RmEvent):
    """Discovery found an appliance with a device type that is not in the registry."""
    name = 'unknownDevice'
    device_type_hex: str
    address: str

    def __init__(self, device_type_hex: str, address: str):
        self.device_type_hex = device_type_hex
        self.address = address

    def __str__(self) -> str:
        return f"UnknownDeviceEvent(device_type={self.device_type_hex}, address={self.address})"

EventHandler = Callable[[RmEvent], None]
"""A synchronous callback for emitted events."""

class EventSubscriber(
        AsyncContextManager['EventSubscriber'],
        AsyncIterable[RmEvent]
      ):
    """Queues events emitted by an EventSource and returns them through an async iterator
       until the subscriber is closed or the source ends."""
    source: EventSource
    queue: asyncio.Queue[Optional[RmEvent]]
    final_result: Future[None]
    eos: bool = False

    def __init__(self, source: EventSource, max_queue_size: int=MAX_QUEUE_SIZE):
        self.source = source
        self.queue = asyncio.Queue(max_queue_size)
        self.final_result = asyncio.get_running_loop().create_future()

    async def __aenter__(self) -> EventSubscriber:
        self.source.add_subscriber(self)
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        self.source.remove_subscriber(self)
        self.set_final_result()
        return False

    async def iter_events(self) -> AsyncIterator[RmEvent]:
        while True:
            result = await self.receive()
            if result is None:
                break
            yield result

    def __aiter__(self) -> AsyncIterator[RmEvent]:
        return self.iter_events()

    def set_final_result(self) -> None:
        if not self.final_result.done():
            self.final_result.set_result(None)
            self.on_end_of_stream()

    async def receive(self) -> Optional[RmEvent]:
        """Returns the next event, or None once the stream has ended and the queue is drained."""
        if self.eos and self.queue.empty():
            return None
        result = await self.queue.get()
        self.queue.task_done()
        return result

    def on_event(self, event: RmEvent) -> None:
        if not self.eos:
            try:
                self.queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Queue full, dropping event {event}")

    def on_end_of_stream(self) -> None:
        if not self.eos:
            self.eos = True
            try:
                # wake up any waiting tasks
                self.queue.put_nowait(None)
            except asyncio.QueueFull:
                # queue is full so waiters will wake up soon
                pass

class EventSource:
    """Mixin that maintains event handlers and subscribers and delivers emitted events to them."""

    event_handlers: Dict[int, EventHandler]
    """Handlers that will be called for each emitted event, indexed by ID number."""

    i_next_event_handler: int = 0
    """The next event handler ID to assign."""

    event_subscribers: Set[EventSubscriber]
    """Async subscribers that will receive each emitted event."""

    def __init__(self) -> None:
        self.event_handlers = {}
        self.event_subscribers = set()

    def add_event_handler(self, handler: EventHandler) -> int:
        """Adds a handler to be called for each emitted event. Returns an ID for remove_event_handler()."""
        i = self.i_next_event_handler
        self.i_next_event_handler += 1
        self.event_handlers[i] = handler
        return i

    def remove_event_handler(self, i: int) -> None:
        """Removes a previously added event handler."""
        del self.event_handlers[i]

    def subscribe(self, max_queue_size: int=MAX_QUEUE_SIZE) -> EventSubscriber:
        """Returns an async context manager/iterable that receives emitted events. Must be
           called from within a running event loop."""
        return EventSubscriber(self, max_queue_size=max_queue_size)

    def add_subscriber(self, subscriber: EventSubscriber) -> None:
        self.event_subscribers.add(subscriber)

    def remove_subscriber(self, subscriber: EventSubscriber) -> None:
        self.event_subscribers.discard(subscriber)

    def emit(self, event: RmEvent) -> None:
        logger.debug(f"{self}: emitting {event}")
        for handler in list(self.event_handlers.values()):
            try:
                handler(event)
            except Exception as e:
                logger.warning(f"Event handler raised exception processing {event}: {e}")
        for subscriber in list(self.event_subscribers):
            subscriber.on_event(event)

    def end_event_stream(self) -> None:
        """Ends the stream for all current subscribers."""
        for subscriber in list(self.event_subscribers):
            subscriber.on_end_of_stream()
