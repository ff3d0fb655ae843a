#!/usr/bin/env python3

import logging
import asyncio
import broadlink_rm_protocol as rm

#logging.basicConfig(level=logging.DEBUG)

async def amain():
    # all parameters to DiscoveryService are optional; they allow you to set the IP addresses to broadcast from, etc.
    # Entering the context manager binds one socket per interface and broadcasts a discovery probe from each.
    async with rm.DiscoveryService() as service:
        async with service.subscribe() as subscriber:
            try:
                # Appliances that answer are handshaken automatically; a DeviceReadyEvent arrives for each one.
                while True:
                    event = await asyncio.wait_for(subscriber.receive(), 5.0)
                    if event is None:
                        break
                    print(event)
                    if isinstance(event, rm.DeviceReadyEvent):
                        event.session.check_temperature()
            except asyncio.TimeoutError:
                pass

loop = asyncio.new_event_loop()
try:
    asyncio.set_event_loop(loop)
    loop.run_until_complete(amain())
finally:
    loop.close()
