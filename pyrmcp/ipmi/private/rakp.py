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

# RMCP+ session setup messages, tables 13-9 through 13-14.  They ride the
# same exchange engine as IPMI commands, with their own payload types.  An
# error status in a response means the BMC only sent the first 8 bytes, so
# responses stop decoding there.

from pyrmcp.ipmi import messages
from pyrmcp.ipmi.private import codec
from pyrmcp.ipmi.private.constants import payload_types


def _algorithm_payload(kind, algorithm):
    # type, reserved(2), payload length 8, algorithm, reserved(3)
    return bytes([kind, 0, 0, 8, algorithm, 0, 0, 0])


class OpenSessionRequest(messages.Request):
    payload_type = payload_types['rmcpplusopenreq']
    commandid = messages.CommandId(None, None, 'Open Session')

    def __init__(self, tag, consolesid, suite, privlevel=0):
        self.tag = tag
        self.consolesid = consolesid
        self.suite = suite
        # 0 requests the highest level matching the proposed algorithms
        self.privlevel = privlevel

    def pack(self):
        return (bytes([self.tag, self.privlevel, 0, 0]) +
                codec.pack_uint32l(self.consolesid) +
                _algorithm_payload(0, self.suite.auth) +
                _algorithm_payload(1, self.suite.integrity) +
                _algorithm_payload(2, self.suite.crypt))


class OpenSessionResponse(messages.Response):
    payload_type = payload_types['rmcpplusopenresponse']

    def unpack(self, data):
        codec.check_length(data, 8)
        self.tag = codec.unpack_uint8(data, 0)
        self.status = codec.unpack_uint8(data, 1)
        self.maxpriv = codec.unpack_uint8(data, 2) & 0xf
        self.consolesid = codec.unpack_uint32l(data, 4)
        if self.status:
            return
        codec.check_length(data, 36)
        self.bmcsid = codec.unpack_uint32l(data, 8)
        self.auth = codec.unpack_uint8(data, 16)
        self.integrity = codec.unpack_uint8(data, 24)
        self.crypt = codec.unpack_uint8(data, 32)


class Rakp1Request(messages.Request):
    payload_type = payload_types['rakp1']
    commandid = messages.CommandId(None, None, 'RAKP Message 1')

    def __init__(self, tag, bmcsid, consolerandom, role, username):
        self.tag = tag
        self.bmcsid = bmcsid
        self.consolerandom = consolerandom
        self.role = role
        self.username = username

    def pack(self):
        return (bytes([self.tag, 0, 0, 0]) +
                codec.pack_uint32l(self.bmcsid) +
                codec.pack_bytes(self.consolerandom, 16) +
                bytes([self.role, 0, 0, len(self.username)]) +
                bytes(self.username))


class Rakp2Response(messages.Response):
    payload_type = payload_types['rakp2']

    def unpack(self, data):
        codec.check_length(data, 8)
        self.tag = codec.unpack_uint8(data, 0)
        self.status = codec.unpack_uint8(data, 1)
        self.consolesid = codec.unpack_uint32l(data, 4)
        if self.status:
            return
        self.bmcrandom = codec.unpack_bytes(data, 8, 16)
        self.bmcguid = codec.unpack_bytes(data, 24, 16)
        self.authcode = codec.unpack_trailing(data, 40)


class Rakp3Request(messages.Request):
    payload_type = payload_types['rakp3']
    commandid = messages.CommandId(None, None, 'RAKP Message 3')

    def __init__(self, tag, bmcsid, authcode, status=0):
        self.tag = tag
        self.bmcsid = bmcsid
        self.authcode = authcode
        self.status = status

    def pack(self):
        return (bytes([self.tag, self.status, 0, 0]) +
                codec.pack_uint32l(self.bmcsid) + bytes(self.authcode))


class Rakp4Response(messages.Response):
    payload_type = payload_types['rakp4']

    def unpack(self, data):
        codec.check_length(data, 8)
        self.tag = codec.unpack_uint8(data, 0)
        self.status = codec.unpack_uint8(data, 1)
        self.consolesid = codec.unpack_uint32l(data, 4)
        if self.status:
            return
        self.icv = codec.unpack_trailing(data, 8)
