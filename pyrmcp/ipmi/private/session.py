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
# This represents the low layer message framing portion of IPMI

import logging
import select
import socket
import struct
import threading
import time

from Crypto.Cipher import AES
from Crypto.Random import get_random_bytes

import pyrmcp.exceptions as exc
from pyrmcp.ipmi import messages
from pyrmcp.ipmi.private import ciphersuites as csuites
from pyrmcp.ipmi.private import codec
from pyrmcp.ipmi.private import constants
from pyrmcp.ipmi.private import rakp
from pyrmcp.ipmi.private import util

LOG = logging.getLogger(__name__)

defaulttimeout = 5
# seconds between checks of a caller's cancel event while waiting for a reply
pollinterval = 0.1
# 'xCAT' minus 1, incremented before each use so a hexdump of a packet
# would show xCAT
initialconsolesid = 2017673555

IDLE = 'IDLE'
OPENSESSIONSENT = 'OPENSESSIONSENT'
OPENSESSIONRECEIVED = 'OPENSESSIONRECEIVED'
RAKP1SENT = 'RAKP1SENT'
RAKP2RECEIVED = 'RAKP2RECEIVED'
RAKP3SENT = 'RAKP3SENT'
ESTABLISHED = 'ESTABLISHED'
FAILED = 'FAILED'
CLOSED = 'CLOSED'


def _aespad(data):
    """Apply the IPMI confidentiality pad, table 13-20

    Pad bytes count up from 1 and are followed by the pad length, so that
    data, pad and pad length together fill a whole number of AES blocks.
    """
    currlen = len(data) + 1  # need to count the pad length field as well
    neededpad = currlen % 16
    if neededpad:
        neededpad = 16 - neededpad
    return bytes(data) + bytes(range(1, neededpad + 1)) + bytes([neededpad])


def _zero(buf):
    buf[:] = b'\x00' * len(buf)


class UdpTransport(object):
    """Blocking datagram transport to one BMC

    Any object with the same send/recv/close methods may be handed to a
    Session instead, which is how the tests put a fake BMC on the other end.
    """

    def __init__(self, bmc, port=623):
        self.socket = None
        lasterror = None
        for res in socket.getaddrinfo(bmc, port, 0, socket.SOCK_DGRAM):
            family, socktype, proto, _, sockaddr = res
            try:
                sock = socket.socket(family, socktype, proto)
                sock.connect(sockaddr)
            except socket.error as e:
                lasterror = e
                continue
            self.socket = sock
            break
        if self.socket is None:
            raise exc.PyrmcpException(
                'Unable to reach %s:%d (%s)' % (bmc, port, lasterror))
        self.poller = select.poll()
        self.poller.register(self.socket, select.POLLIN)

    def send(self, packet):
        self.socket.send(packet)

    def recv(self, timeout):
        if not self.poller.poll(timeout * 1000):
            return None
        try:
            return self.socket.recv(3000)
        except ConnectionRefusedError:
            # ICMP unreachable from an earlier send, nothing to read
            return None

    def close(self):
        if self.socket is not None:
            self.poller.unregister(self.socket)
            self.socket.close()
            self.socket = None


class Session(object):
    """An RMCP+ session with a BMC

    Construction only records the parameters; login() runs the handshake.
    All exchanges on one session are serialized by a lock, so a Session can
    be shared between threads.

    :param bmc: hostname or ip address of the BMC
    :param userid: user name, at most 16 bytes
    :param password: password, at most 20 bytes
    :param port: UDP port of the BMC
    :param kg: optional BMC key, the password is used when it is not set
    :param privlevel: privilege level to request, 4 (administrator) default
    :param ciphersuites: cipher suite ids the caller accepts, all runnable
                         standard suites when None
    :param timeout: default seconds to wait for each reply
    :param transport: object with send(packet), recv(timeout), close()
    """

    def __init__(self, bmc, userid, password, port=623, kg=None, privlevel=4,
                 ciphersuites=None, timeout=None, transport=None):
        if isinstance(userid, str):
            userid = userid.encode('utf-8')
        if isinstance(password, str):
            password = password.encode('utf-8')
        if isinstance(kg, str):
            kg = kg.encode('utf-8')
        if len(userid) > 16:
            raise exc.InvalidParameterValue(
                'Username too long for IPMI, must not exceed 16')
        if len(password) > 20:
            raise exc.InvalidParameterValue(
                'Password too long for IPMI, must not exceed 20')
        if kg is not None and len(kg) > 20:
            raise exc.InvalidParameterValue(
                'Kg too long for IPMI, must not exceed 20')
        if privlevel not in constants.privilege_levels.values():
            raise exc.InvalidParameterValue(
                'Unknown privilege level %r' % (privlevel,))
        self.bmc = bmc
        self.port = port
        self.userid = userid
        self.password = password
        self.kg = kg
        self.privlevel = privlevel
        if ciphersuites is None:
            ciphersuites = sorted(csuites.suites)
        self.ciphersuites = tuple(ciphersuites)
        self.timeout = timeout if timeout is not None else defaulttimeout
        self.transport = transport
        self.lock = threading.Lock()
        self.localsid = initialconsolesid
        self.rmcptag = 0
        self._sik = bytearray()
        self._k1 = bytearray()
        self._k2 = bytearray()
        self._aeskey = bytearray()
        self._initsession()

    def _initsession(self):
        self._clearkeys()
        self.state = IDLE
        self.suite = None
        self.authalg = 0
        self.integrityalgo = 0
        self.confalgo = 0
        self.sessionid = 0
        self.pendingsessionid = 0
        self.pendingintegrity = 0
        self.pendingconf = 0
        self.maxpriv = None
        self.bmcguid = None
        self.sequencenumber = 0
        self.remseqnumber = None
        self.seqlun = 0
        self.randombytes = bytearray()
        self.remoterandombytes = bytearray()

    def _clearkeys(self):
        for key in (self._sik, self._k1, self._k2, self._aeskey,
                    getattr(self, 'randombytes', bytearray()),
                    getattr(self, 'remoterandombytes', bytearray())):
            _zero(key)

    def _setstate(self, state):
        LOG.debug('%s: session %s -> %s', self.bmc, self.state, state)
        self.state = state

    def _fail(self):
        self._clearkeys()
        self._setstate(FAILED)

    @property
    def established(self):
        return self.state == ESTABLISHED

    @property
    def _kuid(self):
        return codec.pack_bytes(self.password, 20)

    @property
    def _role(self):
        return self.privlevel | constants.NAME_ONLY_LOOKUP

    def login(self):
        """Establish the session

        A failed or closed session may log in again, which starts over with
        a fresh console session id.
        """
        with self.lock:
            self._initsession()
            # nothing goes out when the caller accepts no usable suite
            csuites.select_best(self.ciphersuites)
            self._ensure_transport()
            try:
                self._get_channel_auth_cap()
                self.suite = csuites.lookup(self._select_suite())
                self._open_session()
                self._rakp12()
                self._rakp34()
                self._req_priv_level()
            except Exception:
                self._fail()
                raise

    def _ensure_transport(self):
        if self.transport is None:
            self.transport = UdpTransport(self.bmc, self.port)

    def _get_channel_auth_cap(self):
        response = self._exchange(
            messages.GetChannelAuthCapRequest(self.privlevel),
            messages.GetChannelAuthCapResponse())
        if not response.ipmi2:
            raise exc.HandshakeFailed(
                'channel authentication capabilities',
                text='BMC does not support IPMI 2.0')

    def _get_channel_cipher_suites(self):
        """Standard cipher suite ids the BMC lists for this channel"""
        data = b''
        for index in range(0x40):
            response = self._exchange(
                messages.GetChannelCipherSuitesRequest(index),
                messages.GetChannelCipherSuitesResponse())
            data += response.records
            if len(response.records) < 16:
                break
        return [record.suiteid
                for record in messages.parse_cipher_suite_records(data)
                if record.oem_iana is None]

    def _select_suite(self):
        try:
            offered = self._get_channel_cipher_suites()
        except (exc.IpmiException, exc.TooShort) as e:
            LOG.debug('%s: cipher suite list unavailable: %s', self.bmc, e)
            offered = []
        LOG.debug('%s: BMC lists cipher suites %s', self.bmc, offered)
        try:
            return csuites.select_best(
                [x for x in offered if x in self.ciphersuites])
        except exc.NoAcceptableCipherSuite:
            pass
        # every IPMI 2.0 BMC has to implement suite 3
        if csuites.REQUIRED_SUITE in self.ciphersuites:
            return csuites.REQUIRED_SUITE
        return csuites.select_best(self.ciphersuites)

    def _open_session(self):
        # unique local session ids let us ignore aborted login attempts
        self.localsid = (self.localsid + 1) & 0xffffffff
        self.rmcptag = (self.rmcptag + 1) & 0xff
        LOG.debug('%s: proposing cipher suite %d', self.bmc,
                  self.suite.suiteid)
        self._setstate(OPENSESSIONSENT)
        response = self._exchange(
            rakp.OpenSessionRequest(self.rmcptag, self.localsid, self.suite),
            rakp.OpenSessionResponse())
        self._setstate(OPENSESSIONRECEIVED)
        if response.status:
            raise exc.HandshakeFailed(
                'open session', response.status,
                constants.rmcp_codes.get(response.status))
        accepted = csuites.CipherSuite(
            None, response.auth, response.integrity, response.crypt)
        if not csuites.is_runnable(accepted):
            raise exc.HandshakeFailed(
                'open session',
                text='BMC accepted unsupported algorithms %d/%d/%d' % (
                    response.auth, response.integrity, response.crypt))
        self.authalg = response.auth
        self.pendingintegrity = response.integrity
        self.pendingconf = response.crypt
        self.pendingsessionid = response.bmcsid
        self.maxpriv = response.maxpriv

    def _rakp12(self):
        self.rmcptag = (self.rmcptag + 1) & 0xff
        self.randombytes = bytearray(get_random_bytes(16))
        self._setstate(RAKP1SENT)
        response = self._exchange(
            rakp.Rakp1Request(self.rmcptag, self.pendingsessionid,
                              self.randombytes, self._role, self.userid),
            rakp.Rakp2Response())
        self._setstate(RAKP2RECEIVED)
        if response.status:
            raise exc.HandshakeFailed(
                'RAKP2', response.status,
                constants.rmcp_codes.get(response.status))
        self.remoterandombytes = bytearray(response.bmcrandom)
        self.bmcguid = response.bmcguid
        userinfo = bytes([self._role, len(self.userid)]) + self.userid
        hmacdata = (struct.pack('<II', self.localsid, self.pendingsessionid) +
                    bytes(self.randombytes) + bytes(self.remoterandombytes) +
                    self.bmcguid + userinfo)
        expectedhash = csuites.auth_hmac(
            self.authalg, self._kuid, hmacdata)
        if response.authcode != expectedhash:
            raise exc.HandshakeFailed(
                'RAKP2', text='Incorrect password provided')
        # BMC and client agree on the password, time to store the keys
        kg = codec.pack_bytes(self.kg, 20) if self.kg else self._kuid
        self._sik[:] = csuites.auth_hmac(
            self.authalg, kg,
            bytes(self.randombytes) + bytes(self.remoterandombytes) +
            userinfo)
        self._k1[:] = csuites.auth_hmac(
            self.authalg, self._sik, b'\x01' * 20)
        self._k2[:] = csuites.auth_hmac(
            self.authalg, self._sik, b'\x02' * 20)
        self._aeskey[:] = self._k2[:16]

    def _rakp34(self):
        self.rmcptag = (self.rmcptag + 1) & 0xff
        hmacdata = (bytes(self.remoterandombytes) +
                    struct.pack('<I', self.localsid) +
                    bytes([self._role, len(self.userid)]) + self.userid)
        authcode = csuites.auth_hmac(
            self.authalg, self._kuid, hmacdata)
        self._setstate(RAKP3SENT)
        response = self._exchange(
            rakp.Rakp3Request(self.rmcptag, self.pendingsessionid, authcode),
            rakp.Rakp4Response())
        if response.status:
            raise exc.HandshakeFailed(
                'RAKP4', response.status,
                constants.rmcp_codes.get(response.status))
        hmacdata = (bytes(self.randombytes) +
                    struct.pack('<I', self.pendingsessionid) + self.bmcguid)
        expectedauthcode = csuites.rakp4_icv(
            self.authalg, self._sik, hmacdata)
        if response.icv != expectedauthcode:
            raise exc.HandshakeFailed(
                'RAKP4', text='Invalid RAKP4 integrity code (wrong Kg?)')
        self.sessionid = self.pendingsessionid
        self.integrityalgo = self.pendingintegrity
        self.confalgo = self.pendingconf
        self.sequencenumber = 1
        self.remseqnumber = None
        self._setstate(ESTABLISHED)

    def _req_priv_level(self):
        self._exchange(messages.SetSessionPrivilegeRequest(self.privlevel),
                       messages.SetSessionPrivilegeResponse())

    def logout(self):
        """Close the session with the BMC and forget the session keys"""
        with self.lock:
            if self.state != ESTABLISHED:
                self._clearkeys()
                self._setstate(CLOSED)
                return {'success': True}
            try:
                self._exchange(messages.CloseSessionRequest(self.sessionid),
                               messages.CloseSessionResponse())
            finally:
                self._clearkeys()
                self._setstate(CLOSED)
        return {'success': True}

    def close(self):
        try:
            self.logout()
        finally:
            if self.transport is not None:
                self.transport.close()

    def exchange(self, request, response, timeout=None, cancel=None):
        """Send request and decode the matching reply into response

        :param request: a messages.Request
        :param response: a messages.Response, filled in by unpack
        :param timeout: seconds to wait for the reply, session default if None
        :param cancel: optional threading.Event, setting it aborts the wait
        :returns: response
        """
        with self.lock:
            return self._exchange(request, response, timeout, cancel)

    def _exchange(self, request, response, timeout=None, cancel=None):
        if self.state in (FAILED, CLOSED):
            raise exc.PyrmcpException(
                'Session is %s, login required' % self.state.lower())
        if timeout is None:
            timeout = self.timeout
        commandid = request.command_id()
        data = request.pack()
        payload_type = request.payload_type
        if payload_type in constants.session_payload_types:
            packet = self._pack_payload(data, payload_type, 0, 0)
            matcher = self._setup_reply_matcher(request)
        else:
            seqlun = self.seqlun
            payload = self._make_ipmi_payload(
                commandid.netfn, commandid.command, data, seqlun)
            if self.state == ESTABLISHED:
                if self.integrityalgo:
                    payload_type |= constants.PAYLOAD_AUTHENTICATED
                if self.confalgo:
                    payload_type |= constants.PAYLOAD_ENCRYPTED
                packet = self._pack_payload(payload, payload_type,
                                            self.sessionid,
                                            self.sequencenumber)
            elif self.state == IDLE:
                packet = self._pack_ipmi15_payload(payload)
            else:
                raise exc.PyrmcpException(
                    'Cannot send %s while session is %s' % (
                        commandid.name, self.state.lower()))
            matcher = self._ipmi_reply_matcher(commandid, seqlun)
        if cancel is not None and cancel.is_set():
            raise exc.Cancelled()
        LOG.debug('%s: sending %s (%d bytes)', self.bmc,
                  commandid.name if commandid else 'payload', len(packet))
        self._ensure_transport()
        self.transport.send(packet)
        deadline = time.monotonic() + timeout
        while True:
            if cancel is not None and cancel.is_set():
                raise exc.Cancelled()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise exc.Timeout(
                    'Timeout waiting for reply to %s' % (
                        commandid.name if commandid else 'request'))
            if cancel is not None:
                remaining = min(remaining, pollinterval)
            rawdata = self.transport.recv(remaining)
            if rawdata is None:
                continue
            reply = matcher(bytes(rawdata))
            if reply is not None:
                break
        if payload_type in constants.session_payload_types:
            response.unpack(reply)
            return response
        code, data, remseq = reply
        # a matched reply consumes the request sequence numbers
        self.seqlun = (seqlun + 4) & 0xff
        if self.state == ESTABLISHED:
            self.sequencenumber = (self.sequencenumber + 1) & 0xffffffff or 1
            self.remseqnumber = remseq
        if code:
            raise exc.CommandFailed(
                code, util.get_ipmi_error(code, response.completion_codes()))
        response.unpack(data)
        return response

    def _make_ipmi_payload(self, netfn, command, data, seqlun):
        """Build the IPMI LAN request message, figure 13-4"""
        # rsaddr is always 0x20 since we are addressing the BMC
        header = [constants.IPMI_BMC_ADDRESS, netfn << 2]
        reqbody = [constants.IPMI_REMOTE_SWID, seqlun, command] + list(data)
        headsum = util.checksum(*header)
        bodysum = util.checksum(*reqbody)
        return bytes(header + [headsum] + reqbody + [bodysum])

    def _pack_ipmi15_payload(self, payload):
        # sessionless: auth type none, sequence 0, session id 0
        message = bytearray(constants.RMCP_HEADER)
        message.append(constants.authtypes['none'])
        message += struct.pack('<II', 0, 0)
        message.append(len(payload))
        message += payload
        # legacy pad mandated by IPMI 1.5
        if len(message) + 34 in (56, 84, 112, 128, 156):
            message.append(0)
        return bytes(message)

    def _pack_payload(self, payload, payload_type, sessionid, sequencenumber):
        message = bytearray(constants.RMCP_HEADER)
        message.append(constants.authtypes['rmcpplus'])
        message.append(payload_type)
        message += struct.pack('<II', sessionid, sequencenumber)
        if payload_type & constants.PAYLOAD_ENCRYPTED:
            iv = get_random_bytes(16)
            crypter = AES.new(bytes(self._aeskey), AES.MODE_CBC, iv)
            payload = iv + crypter.encrypt(_aespad(payload))
        message += struct.pack('<H', len(payload))
        message += payload
        if payload_type & constants.PAYLOAD_AUTHENTICATED:
            # table 13-8, pad so the trailer starts 4 byte aligned
            neededpad = (len(message) - 2) % 4
            if neededpad:
                neededpad = 4 - neededpad
            message += b'\xff' * neededpad
            message.append(neededpad)
            message.append(7)  # next header, reserved value
            message += self._integrity_code(message[4:])
        return bytes(message)

    def _integrity_code(self, data):
        return csuites.integrity_code(
            self.integrityalgo, self._k1, codec.pack_bytes(self.password, 16),
            data)

    def _setup_reply_matcher(self, request):
        expected_type = request.payload_type + 1
        consolesid = struct.pack('<I', self.localsid)

        def match(rawdata):
            if (rawdata[:4] != constants.RMCP_HEADER or len(rawdata) < 16 or
                    rawdata[4] != constants.authtypes['rmcpplus']):
                LOG.debug('%s: dropping non RMCP+ packet', self.bmc)
                return None
            if (rawdata[5] & 0b111111) != expected_type:
                LOG.debug('%s: dropping payload type 0x%02x', self.bmc,
                          rawdata[5])
                return None
            psize = codec.unpack_uint16l(rawdata, 14)
            payload = rawdata[16:16 + psize]
            if not payload or payload[0] != request.tag:
                LOG.debug('%s: dropping stale message tag', self.bmc)
                return None
            if len(payload) >= 8 and payload[4:8] != consolesid:
                LOG.debug('%s: dropping reply for another session', self.bmc)
                return None
            return payload
        return match

    def _ipmi_reply_matcher(self, commandid, seqlun):
        established = self.state == ESTABLISHED

        def match(rawdata):
            if rawdata[:4] != constants.RMCP_HEADER or len(rawdata) < 14:
                LOG.debug('%s: dropping non IPMI packet', self.bmc)
                return None
            remseq = None
            if established:
                payload, remseq = self._unwrap_rmcpplus(rawdata)
            elif rawdata[4] == constants.authtypes['none']:
                psize = codec.unpack_uint8(rawdata, 13)
                payload = rawdata[14:14 + psize]
            else:
                LOG.debug('%s: dropping authenticated reply outside of a '
                          'session', self.bmc)
                return None
            if payload is None:
                return None
            return self._parse_ipmi_payload(payload, commandid, seqlun,
                                            remseq)
        return match

    def _unwrap_rmcpplus(self, rawdata):
        if rawdata[4] != constants.authtypes['rmcpplus'] or len(rawdata) < 16:
            return None, None
        ptype = rawdata[5]
        if (ptype & 0b111111) != constants.payload_types['ipmi']:
            return None, None
        # a BMC that omits integrity or encryption we negotiated is not
        # talking to this session
        if (bool(ptype & constants.PAYLOAD_AUTHENTICATED) !=
                bool(self.integrityalgo) or
                bool(ptype & constants.PAYLOAD_ENCRYPTED) !=
                bool(self.confalgo)):
            LOG.debug('%s: dropping reply with payload type 0x%02x',
                      self.bmc, ptype)
            return None, None
        sid = codec.unpack_uint32l(rawdata, 6)
        if sid != self.localsid:
            LOG.debug('%s: dropping reply for session 0x%08x', self.bmc, sid)
            return None, None
        if self.integrityalgo:
            codelen = csuites.integrity_digests[
                self.integrityalgo][1]
            codec.check_length(rawdata, 16 + codelen)
            authcode = rawdata[-codelen:]
            if authcode != self._integrity_code(rawdata[4:-codelen]):
                raise exc.IntegrityCheckFailed(
                    'BMC failed to assure integrity of reply')
        remseq = codec.unpack_uint32l(rawdata, 10)
        if self.remseqnumber is not None and remseq <= self.remseqnumber:
            LOG.debug('%s: dropping stale sequence number %d', self.bmc,
                      remseq)
            return None, None
        psize = codec.unpack_uint16l(rawdata, 14)
        payload = codec.unpack_bytes(rawdata, 16, psize)
        if self.confalgo:
            if psize < 32 or psize % 16:
                raise exc.IpmiException(
                    'Malformed encrypted payload of %d bytes' % psize)
            decrypter = AES.new(bytes(self._aeskey), AES.MODE_CBC,
                                payload[:16])
            decrypted = decrypter.decrypt(payload[16:])
            padlen = decrypted[-1]
            pad = decrypted[-padlen - 1:-1]
            if padlen > 15 or pad != bytes(range(1, padlen + 1)):
                raise exc.IpmiException(
                    'Invalid confidentiality pad in reply')
            payload = decrypted[:-padlen - 1]
        return payload, remseq

    def _parse_ipmi_payload(self, payload, commandid, seqlun, remseq):
        codec.check_length(payload, 8)
        # in ipmi, the response netfn is always one higher than the request
        if (payload[4] != seqlun or payload[1] >> 2 != commandid.netfn + 1 or
                payload[5] != commandid.command):
            LOG.debug('%s: dropping reply not matching %s', self.bmc,
                      commandid.name)
            return None
        return payload[6], payload[7:-1], remseq
