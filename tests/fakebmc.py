# vim: tabstop=4 shiftwidth=4 softtabstop=4

# Copyright 2014 Lenovo
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
# The managed system side of an RMCP+ session, wired in as a Session
# transport.  Crypto is done here with hashlib/hmac rather than the client
# helpers so the two sides check each other.

import collections
import hashlib
import hmac
import os
import struct
import time
import uuid

from Crypto.Cipher import AES

from pyrmcp.ipmi.private import ciphersuites

RMCP_HEADER = b'\x06\x00\xff\x07'

BMC_SESSION_ID = 0x0a0b0c0d
BMC_GUID = uuid.UUID('00112233-4455-6677-8899-aabbccddeeff')

# auth algorithm: (hash, icv length)
_auth = {
    1: (hashlib.sha1, 12),
    2: (hashlib.md5, 16),
    3: (hashlib.sha256, 16),
}

# integrity algorithm: (hash, code length), None hash means MD5-128
_integrity = {
    1: (hashlib.sha1, 12),
    2: (hashlib.md5, 16),
    3: (None, 16),
    4: (hashlib.sha256, 16),
}


def _checksum(*data):
    return (0x100 - sum(data)) & 0xff


class FakeBmc(object):
    """Answer client packets synchronously from send()

    Replies are queued and handed out by recv().  Attributes control the
    misbehaviours tests need: open_status, rakp2_status and rakp4_status
    make the handshake fail, drop_ipmi swallows in-session requests,
    corrupt_integrity damages the next in-session auth code, and
    inject_strays queues non-matching replies ahead of the real one.
    ciphersuites lists the suites the BMC offers and accepts,
    cipher_suites_code makes the listing fail and hide_suites empties it.
    corrupt_pad damages the confidentiality pad of the next reply, either
    its 'length' or its 'bytes'.
    """

    def __init__(self, users=None, kg=None, guid=BMC_GUID, ipmi2=True):
        self.users = users if users is not None else {b'admin': b'password'}
        self.kg = kg
        self.guid = guid
        self.ipmi2 = ipmi2
        self.replies = collections.deque()
        self.received = []
        self.open_status = 0
        self.open_truncate = None
        self.rakp2_status = 0
        self.rakp4_status = 0
        self.accept = None
        self.drop_ipmi = False
        self.corrupt_integrity = False
        self.inject_strays = False
        self.corrupt_pad = None
        self.ciphersuites = sorted(ciphersuites.suites)
        self.cipher_suites_code = 0
        self.oem_records = b''
        self.hide_suites = False
        self.suitequeries = []
        self.closedsession = False
        self.transportclosed = False
        self.outseq = 0
        self.inseqs = []
        self.commands = {
            (6, 0x1): (0, bytes([0x20, 0x81, 0x02, 0x42, 0x02, 0xbf,
                                 0xf2, 0x1b, 0x00, 0x34, 0x12])),
            (6, 0x8): (0, BMC_GUID.bytes_le),
            (6, 0x37): (0, BMC_GUID.bytes_le),
            (0, 0x1): (0, bytes([0x21, 0x00, 0x40])),
            (0x2c, 0x3): (0x80, bytes([0xdc])),
            (6, 0x3b): self._set_priv,
            (6, 0x3c): self._close_session,
        }
        self.suite = None
        self.established = False

    # transport interface

    def send(self, packet):
        self.received.append(packet)
        if packet[:4] != RMCP_HEADER:
            return
        if packet[4] == 0:
            self._got_sessionless(packet)
        elif packet[4] == 6:
            self._got_rmcpplus(packet)

    def recv(self, timeout):
        if self.replies:
            return self.replies.popleft()
        time.sleep(min(timeout, 0.01))
        return None

    def close(self):
        self.transportclosed = True

    # packet handling

    def _got_sessionless(self, packet):
        payload = packet[14:14 + packet[13]]
        netfn, cmd, seqlun, data = self._parse_request(payload)
        if (netfn, cmd) == (6, 0x38):
            authtypes = 0x80 if self.ipmi2 else 0x04
            extended = 0x02 if self.ipmi2 else 0x01
            code, rspdata = 0, bytes([1, authtypes, 0x04, extended,
                                      0, 0, 0, 0])
        elif (netfn, cmd) == (6, 0x54):
            self.suitequeries.append(bytes(data))
            index = data[2] & 0x3f
            records = self._cipher_suite_records()
            if self.hide_suites:
                records = b''
            code = self.cipher_suites_code
            rspdata = b'\x01' + records[index * 16:(index + 1) * 16]
        else:
            return
        rsp = self._make_response(netfn, cmd, seqlun, code, rspdata)
        self.replies.append(RMCP_HEADER + b'\x00' + struct.pack('<II', 0, 0) +
                            bytes([len(rsp)]) + rsp)

    def _cipher_suite_records(self):
        records = b''
        for suiteid in self.ciphersuites:
            suite = ciphersuites.suites[suiteid]
            records += bytes([0xc0, suiteid, suite.auth,
                              0x40 | suite.integrity, 0x80 | suite.crypt])
        return records + self.oem_records

    def _supports(self, algs):
        return any((suite.auth, suite.integrity, suite.crypt) == algs
                   for suite in (ciphersuites.suites[x]
                                 for x in self.ciphersuites))

    def _got_rmcpplus(self, packet):
        ptype = packet[5] & 0x3f
        psize = struct.unpack('<H', packet[14:16])[0]
        payload = packet[16:16 + psize]
        if ptype == 0x10:
            self._got_open_session(payload)
        elif ptype == 0x12:
            self._got_rakp1(payload)
        elif ptype == 0x14:
            self._got_rakp3(payload)
        elif ptype == 0:
            self._got_ipmi(packet)

    def _send_setup(self, ptype, payload):
        self.replies.append(RMCP_HEADER + bytes([6, ptype]) +
                            struct.pack('<IIH', 0, 0, len(payload)) + payload)

    def _got_open_session(self, payload):
        tag = payload[0]
        self.consolesid = payload[4:8]
        if self.open_status:
            self._send_setup(0x11, bytes([tag, self.open_status, 0, 0]) +
                             self.consolesid)
            return
        proposed = (payload[12], payload[20], payload[28])
        if self.accept is None and not self._supports(proposed):
            self._send_setup(0x11, bytes([tag, 0x11, 0, 0]) +
                             self.consolesid)
            return
        algs = self.accept or proposed
        self.suite = algs
        response = (bytes([tag, 0, 4, 0]) + self.consolesid +
                    struct.pack('<I', BMC_SESSION_ID) +
                    bytes([0, 0, 0, 8, algs[0], 0, 0, 0,
                           1, 0, 0, 8, algs[1], 0, 0, 0,
                           2, 0, 0, 8, algs[2], 0, 0, 0]))
        if self.open_truncate is not None:
            response = response[:self.open_truncate]
        self._send_setup(0x11, response)

    def _hmac(self, key, data):
        if not self.suite[0]:
            return b''
        return hmac.new(key, data, _auth[self.suite[0]][0]).digest()

    def _got_rakp1(self, payload):
        tag = payload[0]
        self.rc = payload[8:24]
        self.role = payload[24]
        ulen = payload[27]
        self.username = payload[28:28 + ulen]
        if self.rakp2_status or self.username not in self.users:
            status = self.rakp2_status or 0xd
            self._send_setup(0x13, bytes([tag, status, 0, 0]) +
                             self.consolesid)
            return
        self.kuid = self.users[self.username].ljust(20, b'\x00')
        self.rm = os.urandom(16)
        bmcsid = struct.pack('<I', BMC_SESSION_ID)
        userinfo = bytes([self.role, ulen]) + self.username
        authcode = self._hmac(self.kuid, self.consolesid + bmcsid + self.rc +
                              self.rm + self.guid.bytes_le + userinfo)
        kg = self.kg.ljust(20, b'\x00') if self.kg else self.kuid
        self.sik = self._hmac(kg, self.rc + self.rm + userinfo)
        self.k1 = self._hmac(self.sik, b'\x01' * 20)
        self.k2 = self._hmac(self.sik, b'\x02' * 20)
        self._send_setup(0x13, bytes([tag, 0, 0, 0]) + self.consolesid +
                         self.rm + self.guid.bytes_le + authcode)

    def _got_rakp3(self, payload):
        tag = payload[0]
        userinfo = bytes([self.role, len(self.username)]) + self.username
        expected = self._hmac(self.kuid, self.rm + self.consolesid + userinfo)
        status = self.rakp4_status
        if not status and payload[8:] != expected:
            status = 0xf
        if status:
            self._send_setup(0x15, bytes([tag, status, 0, 0]) +
                             self.consolesid)
            return
        icv = b''
        if self.suite[0]:
            icv = self._hmac(self.sik, self.rc +
                             struct.pack('<I', BMC_SESSION_ID) +
                             self.guid.bytes_le)[:_auth[self.suite[0]][1]]
        self.established = True
        self._send_setup(0x15, bytes([tag, 0, 0, 0]) + self.consolesid + icv)

    def _integrity_code(self, data):
        digest, codelen = _integrity[self.suite[1]]
        if digest is None:
            password = self.users[self.username][:16].ljust(16, b'\x00')
            return hashlib.md5(password + data + password).digest()
        return hmac.new(self.k1, data, digest).digest()[:codelen]

    def _got_ipmi(self, packet):
        if not self.established or self.drop_ipmi:
            return
        if struct.unpack('<I', packet[6:10])[0] != BMC_SESSION_ID:
            return
        if self.suite[1]:
            codelen = _integrity[self.suite[1]][1]
            if packet[-codelen:] != self._integrity_code(packet[4:-codelen]):
                return
        self.inseqs.append(struct.unpack('<I', packet[10:14])[0])
        psize = struct.unpack('<H', packet[14:16])[0]
        payload = packet[16:16 + psize]
        if self.suite[2]:
            decrypter = AES.new(self.k2[:16], AES.MODE_CBC, payload[:16])
            payload = decrypter.decrypt(payload[16:])
            payload = payload[:-(payload[-1] + 1)]
        netfn, cmd, seqlun, data = self._parse_request(payload)
        handler = self.commands.get((netfn, cmd), (0xc1, b''))
        if callable(handler):
            code, rspdata = handler(data)
        else:
            code, rspdata = handler
        if self.inject_strays:
            self.inject_strays = False
            # stale request sequence, then a reply for another session
            self._queue_ipmi(self._make_response(
                netfn, cmd, (seqlun + 0xfc) & 0xff, 0, rspdata))
            self._queue_ipmi(self._make_response(netfn, cmd, seqlun, 0,
                                                 rspdata),
                             sessionid=b'\x01\x02\x03\x04')
        self._queue_ipmi(self._make_response(netfn, cmd, seqlun, code,
                                             rspdata))

    def _queue_ipmi(self, rsp, sessionid=None):
        ptype = 0
        if self.suite[1]:
            ptype |= 0x40
        if self.suite[2]:
            ptype |= 0x80
            iv = os.urandom(16)
            padlen = (16 - (len(rsp) + 1) % 16) % 16
            padded = rsp + bytes(range(1, padlen + 1)) + bytes([padlen])
            if self.corrupt_pad == 'length':
                padded = padded[:-1] + b'\x1f'
            elif self.corrupt_pad == 'bytes':
                padded = rsp + bytes(padlen) + bytes([padlen])
            self.corrupt_pad = None
            rsp = iv + AES.new(self.k2[:16], AES.MODE_CBC, iv).encrypt(padded)
        self.outseq += 1
        if sessionid is None:
            sessionid = self.consolesid
        message = (RMCP_HEADER + bytes([6, ptype]) + sessionid +
                   struct.pack('<IH', self.outseq, len(rsp)) + rsp)
        if self.suite[1]:
            neededpad = (4 - (len(message) - 2) % 4) % 4
            message += b'\xff' * neededpad + bytes([neededpad, 7])
            authcode = self._integrity_code(message[4:])
            if self.corrupt_integrity:
                self.corrupt_integrity = False
                authcode = bytes([authcode[0] ^ 0xff]) + authcode[1:]
            message += authcode
        self.replies.append(message)

    def _parse_request(self, payload):
        netfn = payload[1] >> 2
        return netfn, payload[5], payload[4], payload[6:-1]

    def _make_response(self, netfn, cmd, seqlun, code, data):
        header = [0x81, (netfn + 1) << 2]
        body = [0x20, seqlun, cmd, code] + list(data)
        return bytes(header + [_checksum(*header)] + body +
                     [_checksum(*body)])

    def _set_priv(self, data):
        return 0, bytes([data[0]])

    def _close_session(self, data):
        self.closedsession = struct.unpack('<I', data[:4])[0]
        return 0, b''
