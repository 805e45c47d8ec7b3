import itertools
import unittest

import pyrmcp.exceptions as exc
from pyrmcp.ipmi.private import ciphersuites


class TestCipherSuites(unittest.TestCase):
    def test_lookup(self):
        suite = ciphersuites.lookup(3)
        self.assertEqual((suite.auth, suite.integrity, suite.crypt),
                         (1, 1, 1))
        self.assertEqual(len(ciphersuites.suites), 20)
        self.assertRaises(exc.UnsupportedCipherSuite, ciphersuites.lookup, 20)
        self.assertRaises(exc.UnsupportedCipherSuite, ciphersuites.lookup,
                          None)

    def test_select_best_prefers_confidentiality_then_integrity(self):
        self.assertEqual(ciphersuites.select_best(range(20)), 17)
        self.assertEqual(ciphersuites.select_best([2, 3, 8, 12]), 3)
        self.assertEqual(ciphersuites.select_best([2, 7, 11, 16]), 16)
        self.assertEqual(ciphersuites.select_best([0, 1, 6, 15]), 0)
        self.assertEqual(ciphersuites.select_best([1, 6, 15]), 6)

    def test_select_best_skips_rc4(self):
        self.assertEqual(ciphersuites.select_best([4, 5, 2]), 2)
        self.assertRaises(exc.NoAcceptableCipherSuite,
                          ciphersuites.select_best, [4, 9, 19])

    def test_select_best_is_order_independent(self):
        allowed = [0, 3, 7, 12, 16, 17]
        for perm in itertools.permutations(allowed, 4):
            self.assertEqual(ciphersuites.select_best(perm),
                             ciphersuites.select_best(sorted(perm)))

    def test_select_best_rejects_empty_and_unknown(self):
        self.assertRaises(exc.NoAcceptableCipherSuite,
                          ciphersuites.select_best, [])
        with self.assertRaises(exc.NoAcceptableCipherSuite) as cm:
            ciphersuites.select_best([42, 99])
        self.assertEqual(cm.exception.allowed, (42, 99))

    def test_integrity_code_lengths(self):
        for alg, length in ((1, 12), (2, 16), (3, 16), (4, 16)):
            code = ciphersuites.integrity_code(alg, b'k' * 20, b'p' * 16,
                                               b'message')
            self.assertEqual(len(code), length)
        self.assertEqual(
            ciphersuites.integrity_code(0, b'', b'', b'message'), b'')

    def test_rakp4_icv_lengths(self):
        for alg, length in ((1, 12), (2, 16), (3, 16)):
            self.assertEqual(
                len(ciphersuites.rakp4_icv(alg, b's' * 20, b'data')), length)
        self.assertEqual(ciphersuites.auth_hmac(0, b'key', b'data'), b'')


if __name__ == '__main__':
    unittest.main()
