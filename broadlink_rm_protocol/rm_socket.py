#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
RmSocket -- The async UDP endpoint shared by DeviceSession and the discovery probe sockets.

A DeviceSession binds a single socket to an ephemeral port and talks to one appliance.
A discovery run binds one broadcast-enabled socket per local interface. In both cases
every received datagram is handed to the subclass's on_datagram(); a BroadlinkError raised
there drops the datagram and leaves the socket open.

Subclasses implement bind_sockets() (calling self.bind() once per socket) and on_datagram(),
and may override finish_start() to send their first datagram once the endpoints are up.
"""

from __future__ import annotations

import asyncio
from asyncio import Future
import functools
import socket
from abc import ABC, abstractmethod

from .internal_types import *
from .pkg_logging import logger
from .exceptions import BroadlinkError

def open_udp_socket(bind_address: str, broadcast: bool=False) -> socket.socket:
    """Creates an IPv4 UDP socket bound to (bind_address, 0).

    The socket is closed again if any option or the bind fails.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if broadcast:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        sock.bind((bind_address, 0))
    except BaseException:
        sock.close()
        raise
    return sock

class RmSocketBinding:
    """A bound UDP socket and, once its endpoint is created, the asyncio transport wrapping it."""

    sock: Optional[socket.socket]

    local_addr: HostAndPort
    """The (ip_address, port) the socket is bound to."""

    transport: Optional[asyncio.DatagramTransport] = None

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self.local_addr = sock.getsockname()

    @property
    def is_open(self) -> bool:
        return self.transport is not None

    def sendto(self, data: bytes, addr: HostAndPort) -> None:
        if self.transport is None:
            raise BroadlinkError(f"Cannot send on {self}: socket is not open")
        logger.debug(f"Sending {len(data)}-byte datagram from {self.local_addr} to {addr}: {data.hex()}")
        self.transport.sendto(data, addr)

    def close(self) -> None:
        transport, self.transport = self.transport, None
        sock, self.sock = self.sock, None
        # the transport owns the socket once the endpoint exists
        if transport is not None:
            transport.close()
        elif sock is not None:
            sock.close()

    def __str__(self) -> str:
        return f"RmSocketBinding({self.local_addr[0]}:{self.local_addr[1]})"

    def __repr__(self) -> str:
        return str(self)

class _RmSocketProtocol(asyncio.DatagramProtocol):
    """Forwards asyncio datagram callbacks for one binding to its RmSocket."""

    def __init__(self, rm_socket: RmSocket, binding: RmSocketBinding):
        self.rm_socket = rm_socket
        self.binding = binding

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        # asyncio's datagram transports do not subclass asyncio.DatagramTransport
        self.binding.transport = transport # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        self.rm_socket.datagram_received(self.binding, addr, data)

    def error_received(self, exc: Exception) -> None:
        self.rm_socket.error_received(self.binding, exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.binding.transport = None
        self.rm_socket.connection_lost(self.binding, exc)

class RmSocket(ABC):
    """An abstract async UDP endpoint made of one or more bound sockets."""

    socket_bindings: List[RmSocketBinding]

    _final_result: Optional[Future[None]] = None

    def __init__(self) -> None:
        self.socket_bindings = []

    @property
    def final_result(self) -> Future[None]:
        """Completes when the sockets are closed. Created lazily on the running loop."""
        if self._final_result is None:
            self._final_result = asyncio.get_running_loop().create_future()
        return self._final_result

    @property
    def is_closed(self) -> bool:
        return self._final_result is not None and self._final_result.done()

    def bind(self, bind_address: str, broadcast: bool=False) -> RmSocketBinding:
        """Opens a UDP socket on (bind_address, 0) and adds it to this RmSocket."""
        binding = RmSocketBinding(open_udp_socket(bind_address, broadcast=broadcast))
        self.socket_bindings.append(binding)
        logger.debug(f"{self}: bound {binding}")
        return binding

    @abstractmethod
    async def bind_sockets(self) -> None:
        """Binds every socket this endpoint uses, with self.bind()."""
        raise NotImplementedError()

    @abstractmethod
    def on_datagram(self, socket_binding: RmSocketBinding, addr: HostAndPort, data: bytes) -> None:
        """Handles a received datagram. A BroadlinkError raised here drops the datagram."""
        raise NotImplementedError()

    async def finish_start(self) -> None:
        """Called once every endpoint is open."""
        pass

    def on_closed(self) -> None:
        """Called once, after the sockets have been closed."""
        pass

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            await self.bind_sockets()
            if len(self.socket_bindings) == 0:
                raise BroadlinkError(f"{self}: no sockets were bound")
            for binding in self.socket_bindings:
                await loop.create_datagram_endpoint(
                    functools.partial(_RmSocketProtocol, self, binding),
                    sock=binding.sock,
                  )
            await self.finish_start()
        except BaseException as e:
            self.set_final_exception(e)
            # the caller sees the exception from this raise; it is not reported again by final_result
            self.final_result.exception()
            raise

    async def stop(self) -> None:
        self.set_final_result()

    async def wait_for_done(self) -> None:
        await self.final_result

    async def stop_and_wait(self) -> None:
        await self.stop()
        await self.wait_for_done()

    def datagram_received(self, socket_binding: RmSocketBinding, addr: HostAndPort, data: bytes) -> None:
        logger.debug(f"Received {len(data)}-byte datagram from {addr} on {socket_binding}: {data.hex()}")
        try:
            self.on_datagram(socket_binding, addr, data)
        except BroadlinkError as e:
            logger.warning(f"Dropping datagram from {addr} on {socket_binding}: {e}")

    def error_received(self, socket_binding: RmSocketBinding, exc: Exception) -> None:
        # ICMP errors such as an unreachable appliance land here; the UDP socket stays usable
        logger.info(f"Error received on {socket_binding}: {exc}")

    def connection_lost(self, socket_binding: RmSocketBinding, exc: Optional[Exception]) -> None:
        logger.debug(f"{socket_binding} closed, exc={exc}")
        if exc is None:
            self.set_final_result()
        else:
            self.set_final_exception(exc)

    def _close(self) -> None:
        for binding in self.socket_bindings:
            try:
                binding.close()
            except OSError as e:
                logger.error(f"Error closing {binding}: {e}")
        self.on_closed()

    def set_final_exception(self, exc: BaseException) -> None:
        if not self.final_result.done():
            logger.debug(f"{self}: closing with exception: {exc}")
            self.final_result.set_exception(exc)
            self._close()

    def set_final_result(self) -> None:
        if not self.final_result.done():
            logger.debug(f"{self}: closing")
            self.final_result.set_result(None)
            self._close()

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        await self.stop_and_wait()
        return False
