# vim: tabstop=4 shiftwidth=4 softtabstop=4

# Copyright 2015 Lenovo
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import struct
import uuid

import pyrmcp.exceptions as exc
from pyrmcp.ipmi.private.constants import ipmi_completion_codes

guid_modes = ('smbios', 'ipmi', 'rfc4122')


def decode_wireformat_uuid(rawguid):
    """Decode a wire format UUID

    It handles the rather particular scheme where half is little endian
    and half is big endian.  It returns a string like dmidecode would output.
    """
    rawguid = bytes(bytearray(rawguid))
    if len(rawguid) != 16:
        raise exc.InvalidParameterValue(
            'GUID must be 16 bytes, got %d' % len(rawguid))
    lebytes = struct.unpack_from('<IHH', rawguid[:8])
    bebytes = struct.unpack_from('>HHI', rawguid[8:])
    return '{0:08X}-{1:04X}-{2:04X}-{3:04X}-{4:04X}{5:08X}'.format(
        lebytes[0], lebytes[1], lebytes[2], bebytes[0], bebytes[1], bebytes[2])


def decode_guid(rawguid, mode='smbios'):
    """Interpret 16 raw GUID bytes as a uuid.UUID

    BMCs disagree on the byte order of the GUID they report, so the caller
    picks one:

    * 'smbios': first three fields little endian, the rest in network
      order (the SMBIOS "wire format", what dmidecode prints)
    * 'ipmi': the whole 16 bytes reversed, per the Get Device GUID table
    * 'rfc4122': network order throughout

    :param rawguid: the 16 bytes as received
    :param mode: one of guid_modes
    """
    rawguid = bytes(bytearray(rawguid))
    if len(rawguid) != 16:
        raise exc.InvalidParameterValue(
            'GUID must be 16 bytes, got %d' % len(rawguid))
    if mode == 'smbios':
        return uuid.UUID(bytes_le=rawguid)
    elif mode == 'ipmi':
        return uuid.UUID(bytes=rawguid[::-1])
    elif mode == 'rfc4122':
        return uuid.UUID(bytes=rawguid)
    raise exc.InvalidParameterValue('Unknown GUID mode %r' % (mode,))


def encode_guid(guid, mode='smbios'):
    """Produce the 16 wire bytes decode_guid would read back as guid"""
    if not isinstance(guid, uuid.UUID):
        guid = uuid.UUID(str(guid))
    if mode == 'smbios':
        return guid.bytes_le
    elif mode == 'ipmi':
        return guid.bytes[::-1]
    elif mode == 'rfc4122':
        return guid.bytes
    raise exc.InvalidParameterValue('Unknown GUID mode %r' % (mode,))


def checksum(*data):
    """Two's complement over the data"""
    csum = sum(data)
    csum ^= 0xff
    csum += 1
    csum &= 0xff
    return csum


def get_ipmi_error(code, command_codes=None):
    """Describe a completion code

    Command specific descriptions win over the generic table.  Returns False
    for a successful completion.
    """
    if code == 0:
        return False
    if command_codes and code in command_codes:
        return command_codes[code]
    elif code in ipmi_completion_codes:
        return ipmi_completion_codes[code]
    return "Unknown code 0x%2x encountered" % code
