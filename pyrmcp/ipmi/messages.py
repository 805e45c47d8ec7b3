# vim: tabstop=4 shiftwidth=4 softtabstop=4

# Copyright 2013 IBM Corporation
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

"""Request/response pairs understood by Session.exchange

A command is a Request subclass that knows its netfn and command number and
how to pack its data, paired with a Response subclass that knows how to
unpack the data following the completion code.  The exchange engine never
looks inside either one, so new commands only need to follow this contract:

* ``Request.command_id()`` returns a CommandId
* ``Request.pack()`` returns the request data as bytes
* ``Request.payload_type`` selects the RMCP+ payload type (IPMI by default)
* ``Response.unpack(data)`` decodes the data, raising TooShort when short
* ``Response.completion_codes()`` maps command specific completion codes to
  descriptions
"""

import collections

import pyrmcp.exceptions as exc
from pyrmcp.ipmi.private import codec
from pyrmcp.ipmi.private import constants
from pyrmcp.ipmi.private import util

CommandId = collections.namedtuple('CommandId', ['netfn', 'command', 'name'])


class Request(object):
    payload_type = constants.payload_types['ipmi']
    commandid = None

    def command_id(self):
        return self.commandid

    def pack(self):
        return b''


class Response(object):
    commandid = None

    def unpack(self, data):
        pass

    def completion_codes(self):
        if self.commandid is None:
            return {}
        return constants.command_completion_codes.get(
            (self.commandid.netfn, self.commandid.command), {})


GET_DEVICE_ID = CommandId(0x6, 0x1, 'Get Device ID')
GET_DEVICE_GUID = CommandId(0x6, 0x8, 'Get Device GUID')
GET_SYSTEM_GUID = CommandId(0x6, 0x37, 'Get System GUID')
GET_CHANNEL_AUTH_CAP = CommandId(
    0x6, 0x38, 'Get Channel Authentication Capabilities')
GET_CHANNEL_CIPHER_SUITES = CommandId(0x6, 0x54, 'Get Channel Cipher Suites')
SET_SESSION_PRIVILEGE = CommandId(0x6, 0x3b, 'Set Session Privilege Level')
CLOSE_SESSION = CommandId(0x6, 0x3c, 'Close Session')
GET_CHASSIS_STATUS = CommandId(0x0, 0x1, 'Get Chassis Status')
GET_DCMI_POWER_LIMIT = CommandId(0x2c, 0x3, 'Get DCMI Power Limit')


class GetDeviceIdRequest(Request):
    commandid = GET_DEVICE_ID


class GetDeviceIdResponse(Response):
    commandid = GET_DEVICE_ID

    def unpack(self, data):
        codec.check_length(data, 11)
        self.device_id = codec.unpack_uint8(data, 0)
        revision = codec.unpack_uint8(data, 1)
        self.provides_device_sdrs = codec.is_bit_set(revision, 7)
        self.device_revision = revision & 0b1111
        firmware = codec.unpack_uint8(data, 2)
        self.device_available = not codec.is_bit_set(firmware, 7)
        self.major_firmware_revision = firmware & 0x7f
        self.minor_firmware_revision = codec.unpack_uint8(data, 3)
        version = codec.unpack_uint8(data, 4)
        self.ipmi_version = '%d.%d' % (version & 0xf, version >> 4)
        self.additional_device_support = codec.unpack_uint8(data, 5)
        self.manufacturer_id = codec.unpack_uint24l(data, 6) & 0xfffff
        self.product_id = codec.unpack_uint16l(data, 9)
        self.aux_firmware_revision = None
        if len(data) >= 15:
            self.aux_firmware_revision = codec.unpack_bytes(data, 11, 4)


class GetDeviceGuidRequest(Request):
    commandid = GET_DEVICE_GUID


class GetDeviceGuidResponse(Response):
    commandid = GET_DEVICE_GUID

    def __init__(self, mode='smbios'):
        self.mode = mode

    def unpack(self, data):
        self.rawguid = codec.unpack_bytes(data, 0, 16)
        self.guid = util.decode_guid(self.rawguid, self.mode)


class GetSystemGuidRequest(Request):
    commandid = GET_SYSTEM_GUID


class GetSystemGuidResponse(GetDeviceGuidResponse):
    commandid = GET_SYSTEM_GUID


class GetChannelAuthCapRequest(Request):
    """Ask which authentication a channel offers

    Channel 0xe means the channel this request arrived on.  Setting bit 7 of
    the channel byte asks for the IPMI 2.0 extended data.
    """
    commandid = GET_CHANNEL_AUTH_CAP

    def __init__(self, privlevel, channel=0xe, ipmi2=True):
        self.privlevel = privlevel
        self.channel = channel
        self.ipmi2 = ipmi2

    def pack(self):
        channel = codec.set_or_clear_bit(self.channel & 0xf, 7, self.ipmi2)
        return codec.pack_uint8(channel) + codec.pack_uint8(self.privlevel)


class GetChannelAuthCapResponse(Response):
    commandid = GET_CHANNEL_AUTH_CAP

    def unpack(self, data):
        codec.check_length(data, 8)
        self.channel = codec.unpack_uint8(data, 0)
        self.authtypes = codec.unpack_uint8(data, 1)
        self.status = codec.unpack_uint8(data, 2)
        self.extended = codec.unpack_uint8(data, 3)
        self.oem_id = codec.unpack_uint24l(data, 4)
        self.oem_aux = codec.unpack_trailing(data, 7)
        self.ipmi2 = (codec.is_bit_set(self.authtypes, 7) and
                      codec.is_bit_set(self.extended, 1))
        self.kg_configured = codec.is_bit_set(self.status, 5)
        self.anonymous_login = codec.is_bit_set(self.status, 0)


class GetChannelCipherSuitesRequest(Request):
    """Read one 16 byte block of the channel's cipher suite records

    Records are listed by cipher suite.  Callers walk index up from 0 until
    a block comes back short.
    """
    commandid = GET_CHANNEL_CIPHER_SUITES

    def __init__(self, index=0, channel=0xe,
                 payload_type=constants.payload_types['ipmi']):
        self.index = index
        self.channel = channel
        self.queried_type = payload_type

    def pack(self):
        return (codec.pack_uint8(self.channel & 0xf) +
                codec.pack_uint8(self.queried_type & 0x3f) +
                codec.pack_uint8(0x80 | (self.index & 0x3f)))


class GetChannelCipherSuitesResponse(Response):
    commandid = GET_CHANNEL_CIPHER_SUITES

    def unpack(self, data):
        self.channel = codec.unpack_uint8(data, 0)
        self.records = codec.unpack_trailing(data, 1)[:16]


CipherSuiteRecord = collections.namedtuple(
    'CipherSuiteRecord',
    ['suiteid', 'oem_iana', 'auth', 'integrity', 'crypt'])

_STANDARD_RECORD = 0xc0
_OEM_RECORD = 0xc1


def parse_cipher_suite_records(data):
    """Decode concatenated cipher suite record blocks, table 22-18

    A record is a start byte (0xc0, or 0xc1 followed by a three byte IANA
    number after the suite id), the suite id, then algorithm bytes tagged in
    their top two bits: 00 authentication, 01 integrity, 10 confidentiality.

    :returns: list of CipherSuiteRecord, oem_iana is None for standard suites
    """
    records = []
    offset = 0
    while offset < len(data):
        start = data[offset]
        if start == _STANDARD_RECORD:
            suiteid = codec.unpack_uint8(data, offset + 1)
            oem_iana = None
            offset += 2
        elif start == _OEM_RECORD:
            suiteid = codec.unpack_uint8(data, offset + 1)
            oem_iana = codec.unpack_uint24l(data, offset + 2)
            offset += 5
        else:
            raise exc.IpmiException(
                'Bad start of cipher suite record 0x%02x' % start)
        auth = None
        integrity = []
        crypt = []
        while offset < len(data) and data[offset] not in (_STANDARD_RECORD,
                                                          _OEM_RECORD):
            tag = data[offset] >> 6
            if tag == 0:
                auth = data[offset] & 0x3f
            elif tag == 1:
                integrity.append(data[offset] & 0x3f)
            elif tag == 2:
                crypt.append(data[offset] & 0x3f)
            offset += 1
        records.append(CipherSuiteRecord(suiteid, oem_iana, auth,
                                         tuple(integrity), tuple(crypt)))
    return records


class SetSessionPrivilegeRequest(Request):
    commandid = SET_SESSION_PRIVILEGE

    def __init__(self, privlevel):
        self.privlevel = privlevel

    def pack(self):
        return codec.pack_uint8(self.privlevel)


class SetSessionPrivilegeResponse(Response):
    commandid = SET_SESSION_PRIVILEGE

    def unpack(self, data):
        self.privlevel = codec.unpack_uint8(data, 0) & 0xf


class CloseSessionRequest(Request):
    commandid = CLOSE_SESSION

    def __init__(self, sessionid):
        self.sessionid = sessionid

    def pack(self):
        return codec.pack_uint32l(self.sessionid)


class CloseSessionResponse(Response):
    commandid = CLOSE_SESSION


class GetChassisStatusRequest(Request):
    commandid = GET_CHASSIS_STATUS


class GetChassisStatusResponse(Response):
    commandid = GET_CHASSIS_STATUS

    restore_policies = {
        0: 'always-off',
        1: 'previous',
        2: 'always-on',
        3: 'unknown',
    }

    def unpack(self, data):
        codec.check_length(data, 3)
        current = codec.unpack_uint8(data, 0)
        self.powered_on = codec.is_bit_set(current, 0)
        self.power_overload = codec.is_bit_set(current, 1)
        self.interlock = codec.is_bit_set(current, 2)
        self.power_fault = codec.is_bit_set(current, 3)
        self.power_control_fault = codec.is_bit_set(current, 4)
        self.restore_policy = self.restore_policies[(current >> 5) & 0b11]
        self.last_power_event = codec.unpack_uint8(data, 1)
        self.misc_state = codec.unpack_uint8(data, 2)
        self.front_panel = None
        if len(data) > 3:
            self.front_panel = codec.unpack_uint8(data, 3)


class GetDcmiPowerLimitRequest(Request):
    commandid = GET_DCMI_POWER_LIMIT

    def pack(self):
        return codec.pack_uint8(constants.IPMI_DCMI_GROUP) + b'\x00\x00'


class GetDcmiPowerLimitResponse(Response):
    commandid = GET_DCMI_POWER_LIMIT

    def unpack(self, data):
        codec.check_length(data, 14)
        group = codec.unpack_uint8(data, 0)
        if group != constants.IPMI_DCMI_GROUP:
            raise exc.IpmiException(
                'Unexpected DCMI group extension 0x%02x' % group)
        self.exception_action = codec.unpack_uint8(data, 3)
        self.power_limit = codec.unpack_uint16l(data, 4)
        self.correction_time = codec.unpack_uint32l(data, 6)
        self.sampling_period = codec.unpack_uint16l(data, 12)


class RawRequest(Request):
    def __init__(self, netfn, command, data=()):
        self.commandid = CommandId(netfn, command, 'Raw')
        self.data = bytes(bytearray(data))

    def pack(self):
        return self.data


class RawResponse(Response):
    def __init__(self, netfn=None, command=None):
        if netfn is not None:
            self.commandid = CommandId(netfn, command, 'Raw')

    def unpack(self, data):
        self.data = bytes(data)
