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

# The exceptions raised by pyrmcp.  Every failure of a session or an exchange
# surfaces as exactly one of these, carrying enough context (lengths, codes,
# handshake stage) that a caller can log or retry without reparsing text.


class PyrmcpException(Exception):
    pass


class IpmiException(PyrmcpException):
    def __init__(self, text='', code=0):
        super(IpmiException, self).__init__(text)
        self.ipmicode = code


class InvalidParameterValue(PyrmcpException):
    pass


class TooShort(PyrmcpException):
    """A buffer is too short to extract a field from

    :param actual: number of bytes available
    :param expected: number of bytes the field needs, counted from the start
                     of the buffer
    """

    def __init__(self, actual, expected):
        super(TooShort, self).__init__(
            'unpacked data is too short (%d/%d)' % (actual, expected))
        self.actual = actual
        self.expected = expected


class UnsupportedCipherSuite(PyrmcpException):
    def __init__(self, suiteid):
        super(UnsupportedCipherSuite, self).__init__(
            'Unsupported cipher suite %r' % (suiteid,))
        self.suiteid = suiteid


class NoAcceptableCipherSuite(PyrmcpException):
    def __init__(self, allowed):
        super(NoAcceptableCipherSuite, self).__init__(
            'No acceptable cipher suite among %r' % (list(allowed),))
        self.allowed = tuple(allowed)


class HandshakeFailed(IpmiException):
    """Session establishment was aborted

    :param stage: the handshake step that failed, e.g. 'rakp2'
    :param status: RMCP+ status code reported by the BMC, None when the
                   failure was detected locally (bad auth code, unsupported
                   negotiated algorithm)
    """

    def __init__(self, stage, status=None, text=None):
        if text is None:
            text = 'Unrecognized RMCP code %d' % status
        super(HandshakeFailed, self).__init__(
            '%s in %s' % (text, stage), code=status)
        self.stage = stage
        self.status = status
        self.description = text


class IntegrityCheckFailed(IpmiException):
    pass


class CommandFailed(IpmiException):
    def __init__(self, code, description):
        super(CommandFailed, self).__init__(description, code=code)
        self.code = code
        self.description = description


class Timeout(PyrmcpException):
    pass


class Cancelled(PyrmcpException):
    pass
