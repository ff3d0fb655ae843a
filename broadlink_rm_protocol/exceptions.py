#
# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

class BroadlinkError(Exception):
  """Base class for all error exceptions defined by this package."""
  pass

class DecodeFailure(BroadlinkError):
  """A received datagram is too short (or misaligned) to be decoded. The datagram should be dropped."""
  pass

class ApplianceError(BroadlinkError):
  """An appliance responded with a nonzero error code in the frame header. The payload is not decrypted."""
  error_code: int
  command: int

  def __init__(self, error_code: int, command: int=0):
    super().__init__(f"Appliance returned error code 0x{error_code:04x} for command 0x{command:02x}")
    self.error_code = error_code
    self.command = command

class HandshakeError(BroadlinkError):
  """A handshake response could not be applied; the session key and id are left unchanged."""
  pass

class PayloadAlignmentError(BroadlinkError, ValueError):
  """An outgoing payload is not a multiple of the cipher block size."""
  pass

class InvalidHostDescriptor(BroadlinkError, ValueError):
  """A manually registered device was given a host that is not an (address, port) pair."""
  pass

class MissingMacAddress(BroadlinkError, ValueError):
  """A manually registered device was not given a 6-byte MAC address."""
  pass

class MissingDeviceType(BroadlinkError, ValueError):
  """A manually registered device was not given a device type."""
  pass
