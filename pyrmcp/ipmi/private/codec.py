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

# Field level encoding of IPMI messages.  IPMI integers are little endian
# unless a field is documented otherwise, so the little endian helpers carry
# an 'l' suffix and the plain names are network (big endian) order, to keep
# the rare big endian field visibly special cased at the call site.
# Unpack helpers never index past the end of a buffer, they raise TooShort.

import struct

import pyrmcp.exceptions as exc


def check_length(data, expected):
    """Raise TooShort unless data holds at least expected bytes"""
    if len(data) < expected:
        raise exc.TooShort(len(data), expected)


def _unpack(fmt, data, offset):
    check_length(data, offset + struct.calcsize(fmt))
    return struct.unpack_from(fmt, data, offset)[0]


def pack_uint8(value):
    return struct.pack('B', value & 0xff)


def pack_uint16(value):
    return struct.pack('>H', value & 0xffff)


def pack_uint16l(value):
    return struct.pack('<H', value & 0xffff)


def pack_uint24(value):
    return struct.pack('>I', value & 0xffffff)[1:]


def pack_uint24l(value):
    return struct.pack('<I', value & 0xffffff)[:3]


def pack_uint32(value):
    return struct.pack('>I', value & 0xffffffff)


def pack_uint32l(value):
    return struct.pack('<I', value & 0xffffffff)


def unpack_uint8(data, offset=0):
    return _unpack('B', data, offset)


def unpack_uint16(data, offset=0):
    return _unpack('>H', data, offset)


def unpack_uint16l(data, offset=0):
    return _unpack('<H', data, offset)


def unpack_uint24(data, offset=0):
    check_length(data, offset + 3)
    return struct.unpack('>I', b'\x00' + bytes(data[offset:offset + 3]))[0]


def unpack_uint24l(data, offset=0):
    check_length(data, offset + 3)
    return struct.unpack('<I', bytes(data[offset:offset + 3]) + b'\x00')[0]


def unpack_uint32(data, offset=0):
    return _unpack('>I', data, offset)


def unpack_uint32l(data, offset=0):
    return _unpack('<I', data, offset)


def pack_bytes(value, length):
    """Pack value into a fixed size field

    Shorter values are padded with NUL, longer ones truncated, the way
    IPMI handles user names and passwords.
    """
    value = bytes(value)[:length]
    return value + b'\x00' * (length - len(value))


def unpack_bytes(data, offset, length):
    """Extract a fixed size byte array, e.g. a 16 byte GUID"""
    check_length(data, offset + length)
    return bytes(data[offset:offset + length])


def unpack_trailing(data, offset):
    """Extract the variable length data that runs to the end of a message

    The length is implied by the message length, so the only failure is an
    offset beyond the end of data.
    """
    check_length(data, offset)
    return bytes(data[offset:])


def _checkbit(bit):
    if not 0 <= bit <= 7:
        raise ValueError('bit position %d out of range 0-7' % bit)


def is_bit_set(value, bit):
    _checkbit(bit)
    return bool(value & (1 << bit))


def set_bit(value, bit):
    _checkbit(bit)
    return (value | (1 << bit)) & 0xff


def clear_bit(value, bit):
    _checkbit(bit)
    return value & ~(1 << bit) & 0xff


def set_or_clear_bit(value, bit, flag):
    if flag:
        return set_bit(value, bit)
    return clear_bit(value, bit)
