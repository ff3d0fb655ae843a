#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
DiscoveryService -- Finds appliances on the local network and creates a DeviceSession for each one:

  1. Binds one UDP socket per local, non-loopback IPv4 interface and broadcasts a discovery
     probe from each to 255.255.255.255:80
  2. Receives discovery responses and extracts each appliance's MAC address and device type
  3. Classifies the device type; for supported appliances, creates a DeviceSession and starts
     its handshake. Every MAC address is handled at most once.
  4. Republishes all device session events (DeviceReadyEvent, RawDataEvent, ...) to its own
     handlers and subscribers

Usage:
    async with DiscoveryService() as service:
        async with service.subscribe() as subscriber:
            async for event in subscriber:
                if isinstance(event, DeviceReadyEvent):
                    event.session.check_temperature()
"""

from __future__ import annotations

import asyncio
from enum import Enum

from .internal_types import *
from .pkg_logging import logger
from .constants import BROADCAST_ADDRESS, DISCOVERY_PORT
from .exceptions import BroadlinkError, InvalidHostDescriptor, MissingMacAddress, MissingDeviceType
from .device_types import classify, DeviceClassification, DeviceSupport
from .device import DeviceSession, create_device_session
from .discovery_datagram import DiscoveryProbe, DiscoveryResponse
from .events import EventSource, UnknownDeviceEvent
from .rm_socket import RmSocket, RmSocketBinding
from .util import get_local_ip_addresses

SessionFactory = Callable[[HostAndPort, bytes, int], DeviceSession]
"""Creates an unstarted DeviceSession for (host, mac, device_type)."""

class DiscoveryState(Enum):
    """The state of discovery on a single local interface."""
    IDLE = 'idle'
    BOUND = 'bound'
    BROADCASTING = 'broadcasting'
    LISTENING = 'listening'

class DiscoveryProbeSocket(RmSocket):
    """The set of discovery sockets for a single discovery run, one per local interface."""

    service: DiscoveryService
    bind_addresses: List[str]
    broadcast_address: str
    broadcast_port: int

    states: Dict[str, DiscoveryState]
    """The discovery state of each bound local IP address, as reported by the socket. Addresses
       that have not been bound yet are absent."""

    def __init__(
            self,
            service: DiscoveryService,
            bind_addresses: Iterable[str],
            broadcast_address: str=BROADCAST_ADDRESS,
            broadcast_port: int=DISCOVERY_PORT,
          ) -> None:
        super().__init__()
        self.service = service
        self.bind_addresses = list(bind_addresses)
        self.broadcast_address = broadcast_address
        self.broadcast_port = broadcast_port
        self.states = {}

    def state_of(self, local_ip: str) -> DiscoveryState:
        return self.states.get(local_ip, DiscoveryState.IDLE)

    #@override
    async def bind_sockets(self) -> None:
        logger.debug(f"Binding discovery sockets to {self.bind_addresses}")
        for bind_address in self.bind_addresses:
            binding = self.bind(bind_address, broadcast=True)
            self.states[binding.local_addr[0]] = DiscoveryState.BOUND

    async def finish_start(self) -> None:
        for socket_binding in self.socket_bindings:
            local_ip, local_port = socket_binding.local_addr
            self.states[local_ip] = DiscoveryState.BROADCASTING
            probe = DiscoveryProbe(local_ip, local_port)
            logger.info(f"Listening for appliances on {local_ip}:{local_port} (UDP)")
            socket_binding.sendto(probe.raw_data, (self.broadcast_address, self.broadcast_port))
            self.states[local_ip] = DiscoveryState.LISTENING

    #@override
    def on_datagram(self, socket_binding: RmSocketBinding, addr: HostAndPort, data: bytes) -> None:
        self.service.handle_discovery_response(addr, data)

    def __str__(self) -> str:
        return f"DiscoveryProbeSocket({self.bind_addresses})"

class DiscoveryService(EventSource, AsyncContextManager['DiscoveryService']):
    """
    Discovers appliances and owns the registry of known MAC addresses. This is the only
    component that creates DeviceSessions.
    """

    bind_addresses: Optional[List[str]]
    """The local IPv4 addresses to broadcast from. If None, all local non-loopback IPv4 addresses are used."""

    include_loopback: bool = False
    """If True, loopback addresses are included when bind_addresses is None."""

    broadcast_address: str = BROADCAST_ADDRESS
    broadcast_port: int = DISCOVERY_PORT

    devices: Dict[str, Union[DeviceSession, DeviceClassification]]
    """Every MAC address seen (as a hex string). Supported appliances map to their DeviceSession;
       anything else maps to its DeviceClassification and is never instantiated."""

    probe_socket: Optional[DiscoveryProbeSocket] = None
    """The sockets of the current discovery run, if any."""

    session_factory: SessionFactory

    _session_tasks: Set[asyncio.Task[None]]

    def __init__(
            self,
            bind_addresses: Optional[Iterable[str]]=None,
            include_loopback: bool=False,
            broadcast_address: str=BROADCAST_ADDRESS,
            broadcast_port: int=DISCOVERY_PORT,
            session_factory: Optional[SessionFactory]=None,
          ) -> None:
        super().__init__()
        self.bind_addresses = None if bind_addresses is None else list(bind_addresses)
        self.include_loopback = include_loopback
        self.broadcast_address = broadcast_address
        self.broadcast_port = broadcast_port
        self.devices = {}
        self.session_factory = create_device_session if session_factory is None else session_factory
        self._session_tasks = set()

    @property
    def sessions(self) -> List[DeviceSession]:
        """All device sessions created so far."""
        return [ device for device in self.devices.values() if isinstance(device, DeviceSession) ]

    def get_session(self, mac: Union[str, bytes]) -> Optional[DeviceSession]:
        key = mac.hex() if isinstance(mac, (bytes, bytearray)) else mac.lower()
        device = self.devices.get(key)
        return device if isinstance(device, DeviceSession) else None

    async def discover(self) -> None:
        """Closes the sockets of any previous discovery run, then binds and broadcasts on every
           usable local interface. Returns once the probes have been sent; responses are handled
           as they arrive."""
        await self.stop_discovery()
        bind_addresses = self.bind_addresses
        if bind_addresses is None:
            bind_addresses = get_local_ip_addresses(include_loopback=self.include_loopback)
        if len(bind_addresses) == 0:
            logger.warning("No local IPv4 addresses to broadcast discovery probes from")
            return
        probe_socket = DiscoveryProbeSocket(
            self,
            bind_addresses,
            broadcast_address=self.broadcast_address,
            broadcast_port=self.broadcast_port,
          )
        self.probe_socket = probe_socket
        await probe_socket.start()

    async def stop_discovery(self) -> None:
        """Closes the sockets of the current discovery run, if any. Device sessions are unaffected."""
        probe_socket = self.probe_socket
        self.probe_socket = None
        if probe_socket is not None:
            try:
                await probe_socket.stop_and_wait()
            except Exception as e:
                logger.warning(f"Discovery sockets ended with exception: {e}")

    def handle_discovery_response(self, addr: HostAndPort, data: bytes) -> Optional[DeviceSession]:
        """Handles a datagram received on a discovery socket. Raises DecodeFailure if it is too short."""
        response = DiscoveryResponse(data)
        if response.mac_hex in self.devices:
            return None
        logger.debug(f"Discovery response from {addr}: {response}")
        return self.add_device(addr, response.mac, response.device_type)

    def add_device(
            self,
            host: Union[HostAndPort, Mapping[str, Any]],
            mac: Optional[bytes],
            device_type: Optional[int],
          ) -> Optional[DeviceSession]:
        """Registers an appliance by MAC address, and if it is supported, creates a DeviceSession
           for it and starts its handshake.

        Parameters:
            host:         The appliance's (address, port), or a mapping with 'address' and 'port' keys.
            mac:          The appliance's 6-byte MAC address.
            device_type:  The appliance's 16-bit device type.

        Returns the new DeviceSession, or None if the MAC address was already known or the device
        type is not supported. Precondition violations raise InvalidHostDescriptor, MissingMacAddress,
        or MissingDeviceType before any socket is created. A supported appliance can only be added
        from a running event loop; otherwise BroadlinkError is raised and nothing is registered.
        """
        host = self._validate_host(host)
        if not mac or len(mac) != 6:
            raise MissingMacAddress("add_device: A unique 6-byte MAC address should be provided")
        if device_type is None:
            raise MissingDeviceType("add_device: A device type from the supported device type tables should be provided")
        mac = bytes(mac)
        key = mac.hex()
        if key in self.devices:
            return None

        classification = classify(device_type)
        if not classification.is_supported:
            self.devices[key] = classification
            if classification.support == DeviceSupport.UNKNOWN:
                logger.info(
                    f"Discovered an unknown appliance. Please report device type "
                    f"\"{classification.device_type_hex}\" and IP \"{host[0]}\"")
                self.emit(UnknownDeviceEvent(classification.device_type_hex, host[0]))
            else:
                logger.info(f"Ignoring unsupported appliance at {host[0]} (mac={key}): {classification}")
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            raise BroadlinkError(
                f"add_device: appliance {key} needs a running event loop to start its session") from None
        session = self.session_factory(host, mac, device_type)
        self.devices[key] = session
        session.add_event_handler(self.emit)
        logger.info(f"Discovered {session}")
        self._launch_session(loop, session)
        return session

    @staticmethod
    def _validate_host(host: Union[HostAndPort, Mapping[str, Any]]) -> HostAndPort:
        if isinstance(host, Mapping):
            address = host.get('address')
            port = host.get('port')
        elif isinstance(host, tuple) and len(host) >= 2:
            address, port = host[0], host[1]
        else:
            raise InvalidHostDescriptor(
                f"add_device: host should be an (address, port) tuple, e.g. ('192.168.1.32', 80), got {host!r}")
        if not isinstance(address, str) or address == '' or not isinstance(port, int) or port < 0:
            raise InvalidHostDescriptor(
                f"add_device: host should be an (address, port) tuple, e.g. ('192.168.1.32', 80), got {host!r}")
        return (address, port)

    def _launch_session(self, loop: asyncio.AbstractEventLoop, session: DeviceSession) -> None:
        task = loop.create_task(self._run_session_start(session))
        self._session_tasks.add(task)
        task.add_done_callback(self._session_tasks.discard)

    async def _run_session_start(self, session: DeviceSession) -> None:
        try:
            await session.start()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to start {session}: {e}")

    async def close(self) -> None:
        """Closes the discovery sockets and all device sessions."""
        await self.stop_discovery()
        for task in list(self._session_tasks):
            task.cancel()
        for task in list(self._session_tasks):
            try:
                await task
            except asyncio.CancelledError:
                pass
        for session in self.sessions:
            if len(session.socket_bindings) > 0:
                try:
                    await session.stop_and_wait()
                except Exception as e:
                    logger.warning(f"{session} ended with exception: {e}")
        self.end_event_stream()

    async def __aenter__(self) -> DiscoveryService:
        await self.discover()
        return self

    async def __aexit__(
            self,
            exc_type: Optional[type[BaseException]],
            exc: Optional[BaseException],
            tb: Optional[TracebackType]
      ) -> bool:
        await self.close()
        return False

    def __str__(self) -> str:
        return f"DiscoveryService(devices={len(self.devices)})"

    def __repr__(self) -> str:
        return str(self)
