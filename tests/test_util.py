import unittest
import uuid

import pyrmcp.exceptions as exc
from pyrmcp.ipmi.private import util

RAW = bytes(range(0, 0x100, 0x11))


class TestGuid(unittest.TestCase):
    def test_modes(self):
        self.assertEqual(str(util.decode_guid(RAW, 'rfc4122')),
                         '00112233-4455-6677-8899-aabbccddeeff')
        self.assertEqual(str(util.decode_guid(RAW, 'smbios')),
                         '33221100-5544-7766-8899-aabbccddeeff')
        self.assertEqual(str(util.decode_guid(RAW, 'ipmi')),
                         'ffeeddcc-bbaa-9988-7766-554433221100')

    def test_wireformat_matches_smbios_mode(self):
        self.assertEqual(util.decode_wireformat_uuid(RAW),
                         str(util.decode_guid(RAW)).upper())

    def test_round_trip(self):
        guid = uuid.UUID('00112233-4455-6677-8899-aabbccddeeff')
        for mode in util.guid_modes:
            self.assertEqual(
                util.decode_guid(util.encode_guid(guid, mode), mode), guid)
            self.assertEqual(
                util.encode_guid(util.decode_guid(RAW, mode), mode), RAW)

    def test_bad_input(self):
        self.assertRaises(exc.InvalidParameterValue, util.decode_guid,
                          RAW[:15])
        self.assertRaises(exc.InvalidParameterValue, util.decode_guid, RAW,
                          'bogus')


class TestCompletionCodes(unittest.TestCase):
    def test_checksum(self):
        self.assertEqual(util.checksum(0x20, 0x18), 0xc8)
        self.assertEqual((0x20 + 0x18 + util.checksum(0x20, 0x18)) & 0xff, 0)

    def test_get_ipmi_error(self):
        self.assertFalse(util.get_ipmi_error(0))
        self.assertEqual(util.get_ipmi_error(0xc1), 'Invalid command')
        self.assertEqual(util.get_ipmi_error(0x80, {0x80: 'Specific'}),
                         'Specific')
        self.assertEqual(util.get_ipmi_error(0x80),
                         'Unknown code 0x80 encountered')
        # command tables fall through to the generic one
        self.assertEqual(util.get_ipmi_error(0xc9, {0x80: 'Specific'}),
                         'Parameter out of range')
        self.assertRaises(TypeError, util.get_ipmi_error, 0xc1, None, '!')


if __name__ == '__main__':
    unittest.main()
