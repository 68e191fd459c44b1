"""
Tests for transaction fingerprints and file hashes.
"""
import hashlib
from datetime import datetime
from decimal import Decimal

from ..core.fingerprint import file_hash, transaction_fingerprint


class TestTransactionFingerprint:

    def test_stable_across_calls(self):
        when = datetime(2024, 1, 15, 14, 30)
        first = transaction_fingerprint(when, Decimal("120.00"), "K PLUS", "STARBUCKS Siam")
        second = transaction_fingerprint(when, Decimal("120.00"), "K PLUS", "STARBUCKS Siam")
        assert first == second
        assert len(first) == 64

    def test_known_payload(self):
        when = datetime(2024, 1, 15, 14, 30)
        expected = hashlib.sha256(
            "2024-01-15T14:30:00|120.00|K PLUS|starbucks siam".encode('utf-8')
        ).hexdigest()
        assert transaction_fingerprint(when, Decimal("120"), "K PLUS", "STARBUCKS, Siam!") == expected

    def test_ignores_description_noise(self):
        when = datetime(2024, 3, 1, 9, 0)
        clean = transaction_fingerprint(when, 50, "ATM", "7-Eleven  Sukhumvit")
        noisy = transaction_fingerprint(when, "50.00", "ATM", " 7Eleven Sukhumvit. ")
        assert clean == noisy

    def test_sensitive_to_identity_fields(self):
        when = datetime(2024, 3, 1, 9, 0)
        base = transaction_fingerprint(when, Decimal("50.00"), "ATM", "withdrawal")
        assert base != transaction_fingerprint(when, Decimal("50.01"), "ATM", "withdrawal")
        assert base != transaction_fingerprint(when, Decimal("50.00"), "K PLUS", "withdrawal")
        assert base != transaction_fingerprint(datetime(2024, 3, 1, 9, 1), Decimal("50.00"),
                                               "ATM", "withdrawal")


class TestFileHash:

    def test_identical_bytes(self):
        data = b"%PDF-1.4 statement bytes"
        assert file_hash(data) == file_hash(bytes(data))
        assert file_hash(data) == hashlib.sha256(data).hexdigest()

    def test_different_bytes(self):
        assert file_hash(b"a") != file_hash(b"b")
