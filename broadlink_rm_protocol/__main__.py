#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import sys
import argparse
import json
import time
import asyncio
import logging

from broadlink_rm_protocol.internal_types import *

from broadlink_rm_protocol import (
    __version__ as pkg_version,
    DiscoveryService,
    DeviceSession,
    RfDeviceSession,
    RmEvent,
    EventSubscriber,
    DeviceReadyEvent,
    RawDataEvent,
    RawRFDataEvent,
    RawRFData2Event,
    TemperatureEvent,
    UnknownDeviceEvent,
    parse_mac_address,
    format_mac_address,
  )

DEFAULT_WAIT_TIME = 5.0
"""The default amount of time (in seconds) to wait for appliances or responses."""

DEFAULT_POLL_INTERVAL = 1.0
"""The interval (in seconds) between polls while learning a code."""

class CmdExitError(RuntimeError):
    exit_code: int

    def __init__(self, exit_code: int, msg: Optional[str]=None):
        if msg is None:
            msg = f"Command exited with return code {exit_code}"
        super().__init__(msg)
        self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
    pass

class NoExitArgumentParser(argparse.ArgumentParser):
    def exit(self, status=0, message=None):
        if message:
            self._print_message(message, sys.stderr)
        raise ArgparseExitError(status, message)

def session_summary(session: DeviceSession) -> JsonableDict:
    return {
        "mac": format_mac_address(session.mac),
        "address": f"{session.host[0]}:{session.host[1]}",
        "device_type": f"0x{session.device_type:04x}",
        "model": session.model,
        "rf": session.has_rf,
    }

async def wait_for_event(
        subscriber: EventSubscriber,
        event_types: Tuple[type, ...],
        timeout: float,
        poll: Optional[Callable[[], None]]=None,
        poll_interval: float=DEFAULT_POLL_INTERVAL,
      ) -> RmEvent:
    """Waits for the next event of one of event_types, calling poll() every poll_interval seconds.
       Raises CmdExitError if none arrives within timeout seconds."""
    end_time = time.monotonic() + timeout
    while True:
        remaining_time = end_time - time.monotonic()
        if remaining_time <= 0.0:
            raise CmdExitError(1, f"Timed out waiting for {', '.join(t.__name__ for t in event_types)}")
        if poll is not None:
            poll()
        try:
            event = await asyncio.wait_for(subscriber.receive(), min(remaining_time, poll_interval) if poll is not None else remaining_time)
        except asyncio.TimeoutError:
            continue
        if event is None:
            raise CmdExitError(1, "Event stream ended")
        if isinstance(event, event_types):
            return event

class CommandHandler:
    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv

    async def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    def _bind_addresses(self) -> Optional[List[str]]:
        bind_addresses: Optional[List[str]] = self._args.bind_addresses
        if not bind_addresses is None and len(bind_addresses) == 0:
            bind_addresses = None
        return bind_addresses

    async def _find_session(self, service: DiscoveryService, subscriber: EventSubscriber) -> DeviceSession:
        mac = parse_mac_address(self._args.mac)
        wait_time: float = self._args.wait_time
        end_time = time.monotonic() + wait_time
        while True:
            session = service.get_session(mac)
            if session is not None and session.is_ready:
                return session
            remaining_time = end_time - time.monotonic()
            if remaining_time <= 0.0:
                raise CmdExitError(1, f"Appliance {format_mac_address(mac)} was not found")
            try:
                await asyncio.wait_for(subscriber.receive(), remaining_time)
            except asyncio.TimeoutError:
                pass

    async def cmd_discover(self) -> int:
        wait_time: float = self._args.wait_time
        async with DiscoveryService(bind_addresses=self._bind_addresses()) as service:
            async with service.subscribe() as subscriber:
                end_time = time.monotonic() + wait_time
                while True:
                    remaining_time = end_time - time.monotonic()
                    if remaining_time <= 0.0:
                        break
                    try:
                        event = await asyncio.wait_for(subscriber.receive(), remaining_time)
                    except asyncio.TimeoutError:
                        break
                    if event is None:
                        break
                    if isinstance(event, DeviceReadyEvent):
                        print(json.dumps(session_summary(event.session), indent=2, sort_keys=True))
                        sys.stdout.flush()
                    elif isinstance(event, UnknownDeviceEvent):
                        print(f"Unknown appliance type {event.device_type_hex} at {event.address}", file=sys.stderr)
        return 0

    async def cmd_learn(self) -> int:
        wait_time: float = self._args.learn_time
        rf: bool = self._args.rf
        async with DiscoveryService(bind_addresses=self._bind_addresses()) as service:
            async with service.subscribe() as subscriber:
                session = await self._find_session(service, subscriber)
                if rf:
                    if not isinstance(session, RfDeviceSession):
                        raise CmdExitError(1, f"{session} does not support RF")
                    session.enter_rf_sweep()
                    print("Hold the remote button down to find its frequency...", file=sys.stderr)
                    await wait_for_event(subscriber, (RawRFDataEvent,), wait_time, poll=session.check_rf_data)
                    print("Frequency found. Release, then press the button again briefly...", file=sys.stderr)
                    await wait_for_event(subscriber, (RawRFData2Event,), wait_time, poll=session.check_rf_data2)
                else:
                    session.enter_learning()
                    print("Point the remote at the appliance and press a button...", file=sys.stderr)
                try:
                    event = await wait_for_event(subscriber, (RawDataEvent,), wait_time, poll=session.check_data)
                finally:
                    session.cancel_learning()
                assert isinstance(event, RawDataEvent)
                print(event.data.hex())
        return 0

    async def cmd_send(self) -> int:
        code = bytes.fromhex(self._args.code)
        async with DiscoveryService(bind_addresses=self._bind_addresses()) as service:
            async with service.subscribe() as subscriber:
                session = await self._find_session(service, subscriber)
                session.send_data(code)
                # give the transport a chance to flush before the socket is closed
                await asyncio.sleep(0.1)
        return 0

    async def cmd_temperature(self) -> int:
        async with DiscoveryService(bind_addresses=self._bind_addresses()) as service:
            async with service.subscribe() as subscriber:
                session = await self._find_session(service, subscriber)
                event = await wait_for_event(
                    subscriber, (TemperatureEvent,), self._args.wait_time,
                    poll=session.check_temperature, poll_interval=self._args.wait_time)
                assert isinstance(event, TemperatureEvent)
                print(event.temperature)
        return 0

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    async def arun(self) -> int:
        """Run the broadlink-rm command-line tool with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = NoExitArgumentParser(description="Discover and control Broadlink RM universal remotes.")


        # ======================= Main command

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='Commands',
                            description='Valid commands',
                            help='Additional help available with "<command-name> -h"')

        def add_common_args(subparser: argparse.ArgumentParser, needs_mac: bool=True) -> None:
            subparser.add_argument('--wait-time', dest='wait_time', type=float, default=DEFAULT_WAIT_TIME,
                                help=f'''The amount of time to wait for appliances to respond, in seconds. Default: {DEFAULT_WAIT_TIME}''')
            subparser.add_argument('-b', '--bind', dest="bind_addresses", action='append', default=[],
                                help='''The local IPv4 address to broadcast from. May be repeated. Default: all local non-loopback addresses.''')
            if needs_mac:
                subparser.add_argument('--mac', required=True,
                                help='''The MAC address of the appliance, e.g. "34:ea:34:12:34:56".''')

        # ======================= discover

        parser_discover = subparsers.add_parser('discover', description="Discover appliances on the local network")
        add_common_args(parser_discover, needs_mac=False)
        parser_discover.set_defaults(func=self.cmd_discover)

        # ======================= learn

        parser_learn = subparsers.add_parser('learn', description="Learn an IR (or RF) code and print it as hex")
        add_common_args(parser_learn)
        parser_learn.add_argument('--rf', action='store_true', default=False,
                            help='Learn an RF code (RF-capable appliances only). Default: learn an IR code')
        parser_learn.add_argument('--learn-time', dest='learn_time', type=float, default=30.0,
                            help='The amount of time to wait for each learning step, in seconds. Default: 30')
        parser_learn.set_defaults(func=self.cmd_learn)

        # ======================= send

        parser_send = subparsers.add_parser('send', description="Send a previously learned code")
        add_common_args(parser_send)
        parser_send.add_argument('code', help='The code to send, as a hex string')
        parser_send.set_defaults(func=self.cmd_send)

        # ======================= temperature

        parser_temperature = subparsers.add_parser('temperature', description="Read the appliance temperature sensor")
        add_common_args(parser_temperature)
        parser_temperature.set_defaults(func=self.cmd_temperature)

        # ======================= version

        parser_version = subparsers.add_parser('version',
                                description='''Display version information.''')
        parser_version.set_defaults(func=self.cmd_version)

        # =========================================================

        try:
            args = parser.parse_args(self._argv)
        except ArgparseExitError as ex:
            return ex.exit_code
        traceback: bool = args.traceback
        self._provide_traceback = traceback

        try:
            logging.basicConfig(
                level=logging.getLevelName(args.log_level.upper()),
            )
            self._args = args
            func: Callable[[], Awaitable[int]] = args.func
            logging.debug(f"Running command {func.__name__}, tb = {traceback}")
            rc = await func()
            logging.debug(f"Command {func.__name__} returned {rc}")
        except Exception as ex:
            if isinstance(ex, CmdExitError):
                rc = ex.exit_code
            else:
                rc = 1
            if rc != 0:
                if traceback:
                    raise
            print(f"broadlink-rm: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"broadlink-rm: Unhandled exception: {ex}", file=sys.stderr)
            raise

        return rc

    def run(self) -> int:
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            rc = loop.run_until_complete(self.arun())
        finally:
            loop.close()
        return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = CommandHandler(argv).run()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

async def arun(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = await CommandHandler(argv).arun()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
    sys.exit(run())
