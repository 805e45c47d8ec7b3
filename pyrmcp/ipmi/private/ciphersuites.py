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

# The standard IPMI 2.0 cipher suites (table 22-20) and the primitives
# behind each algorithm number.

import collections
from hashlib import md5

from Crypto.Hash import HMAC, MD5, SHA1, SHA256

import pyrmcp.exceptions as exc
from pyrmcp.ipmi.private.constants import auth_algorithms as authalgs
from pyrmcp.ipmi.private.constants import confidentiality_algorithms as \
    cryptalgs
from pyrmcp.ipmi.private.constants import integrity_algorithms as integalgs

CipherSuite = collections.namedtuple(
    'CipherSuite', ['suiteid', 'auth', 'integrity', 'crypt'])

_none = 0
_sha1 = authalgs['hmac-sha1']
_md5 = authalgs['hmac-md5']
_sha256 = authalgs['hmac-sha256']
_aes = cryptalgs['aes-cbc-128']
_xrc4_128 = cryptalgs['xrc4-128']
_xrc4_40 = cryptalgs['xrc4-40']

suites = dict((suite.suiteid, suite) for suite in (
    CipherSuite(0, _none, _none, _none),
    CipherSuite(1, _sha1, _none, _none),
    CipherSuite(2, _sha1, integalgs['hmac-sha1-96'], _none),
    CipherSuite(3, _sha1, integalgs['hmac-sha1-96'], _aes),
    CipherSuite(4, _sha1, integalgs['hmac-sha1-96'], _xrc4_128),
    CipherSuite(5, _sha1, integalgs['hmac-sha1-96'], _xrc4_40),
    CipherSuite(6, _md5, _none, _none),
    CipherSuite(7, _md5, integalgs['hmac-md5-128'], _none),
    CipherSuite(8, _md5, integalgs['hmac-md5-128'], _aes),
    CipherSuite(9, _md5, integalgs['hmac-md5-128'], _xrc4_128),
    CipherSuite(10, _md5, integalgs['hmac-md5-128'], _xrc4_40),
    CipherSuite(11, _md5, integalgs['md5-128'], _none),
    CipherSuite(12, _md5, integalgs['md5-128'], _aes),
    CipherSuite(13, _md5, integalgs['md5-128'], _xrc4_128),
    CipherSuite(14, _md5, integalgs['md5-128'], _xrc4_40),
    CipherSuite(15, _sha256, _none, _none),
    CipherSuite(16, _sha256, integalgs['hmac-sha256-128'], _none),
    CipherSuite(17, _sha256, integalgs['hmac-sha256-128'], _aes),
    CipherSuite(18, _sha256, integalgs['hmac-sha256-128'], _xrc4_128),
    CipherSuite(19, _sha256, integalgs['hmac-sha256-128'], _xrc4_40),
))

# the one suite every IPMI 2.0 BMC must implement
REQUIRED_SUITE = 3

# auth algorithm: (hash, RAKP auth code length, RAKP 4 ICV length)
auth_digests = {
    _none: (None, 0, 0),
    _sha1: (SHA1, 20, 12),
    _md5: (MD5, 16, 16),
    _sha256: (SHA256, 32, 16),
}

# integrity algorithm: (hash, trailer auth code length)
integrity_digests = {
    integalgs['none']: (None, 0),
    integalgs['hmac-sha1-96']: (SHA1, 12),
    integalgs['hmac-md5-128']: (MD5, 16),
    integalgs['md5-128']: (None, 16),
    integalgs['hmac-sha256-128']: (SHA256, 16),
}

supported_crypt = frozenset((cryptalgs['none'], _aes))

_integrity_strength = {
    integalgs['none']: 0,
    integalgs['md5-128']: 1,
    integalgs['hmac-md5-128']: 2,
    integalgs['hmac-sha1-96']: 3,
    integalgs['hmac-sha256-128']: 4,
}

_crypt_strength = {
    cryptalgs['none']: 0,
    _aes: 1,
}


def lookup(suiteid):
    try:
        return suites[suiteid]
    except (KeyError, TypeError):
        raise exc.UnsupportedCipherSuite(suiteid)


def is_runnable(suite):
    return (suite.auth in auth_digests and
            suite.integrity in integrity_digests and
            suite.crypt in supported_crypt)


def _overhead(suite):
    return auth_digests[suite.auth][1] + integrity_digests[suite.integrity][1]


def _rank(suite):
    return (-_crypt_strength[suite.crypt],
            -_integrity_strength[suite.integrity],
            _overhead(suite),
            suite.suiteid)


def select_best(allowed):
    """Pick the strongest runnable suite among allowed

    Confidentiality outranks integrity.  Between equally strong suites the
    one with less per message and handshake overhead wins, then the lower
    suite id, so the answer only depends on the set of ids given.

    :param allowed: iterable of cipher suite ids
    :returns: the chosen suite id
    """
    allowed = list(allowed)
    candidates = [suites[x] for x in set(allowed)
                  if x in suites and is_runnable(suites[x])]
    if not candidates:
        raise exc.NoAcceptableCipherSuite(allowed)
    return min(candidates, key=_rank).suiteid


def auth_hmac(authalg, key, data):
    """Compute a RAKP auth code or key with the negotiated auth algorithm

    RAKP-none produces an empty code.
    """
    digestmod = auth_digests[authalg][0]
    if digestmod is None:
        return b''
    return HMAC.new(bytes(key), bytes(data), digestmod).digest()


def rakp4_icv(authalg, sik, data):
    return auth_hmac(authalg, sik, data)[:auth_digests[authalg][2]]


def integrity_code(integrityalg, k1, password, data):
    """Compute the auth code of an RMCP+ session trailer

    :param k1: session integrity key, for the HMAC algorithms
    :param password: 16 byte padded password, for MD5-128
    :param data: the message from the auth type byte through next header
    """
    digestmod, codelen = integrity_digests[integrityalg]
    if codelen == 0:
        return b''
    data = bytes(data)
    if digestmod is None:
        return md5(password + data + password).digest()
    return HMAC.new(bytes(k1), data, digestmod).digest()[:codelen]
