import struct
import unittest
import zlib
from unittest.mock import patch

from pyirecv.checksum import *
from pyirecv import checksum
from pyirecv.checksum import crc32_table


class TestCrc32(unittest.TestCase):

    def test_crc32_byte(self):
        self.assertEqual(crc32_byte(0, 0), 0x0)
        self.assertEqual(crc32_byte(0, 1), crc32_table[1])

    def test_matches_zlib_without_final_xor(self):
        data = bytes(range(256)) * 5
        self.assertEqual(crc32_update(CRC32_SEED, data),
                         zlib.crc32(data) ^ 0xffffffff)

    def test_update_equals_byte_steps(self):
        data = b"iBSS.n88ap.RELEASE"
        accum = CRC32_SEED
        for byte in data:
            accum = crc32_byte(accum, byte)
        self.assertEqual(crc32_update(CRC32_SEED, data), accum)

    def test_update_folds_with_byte_step(self):
        data = b"\x00\x01\xfe\xff"
        with patch("pyirecv.checksum.crc32_byte", wraps=checksum.crc32_byte) as step:
            crc32_update(CRC32_SEED, data)
        self.assertEqual([c.args[1] for c in step.call_args_list], list(data))

    def test_empty_update(self):
        self.assertEqual(crc32_update(CRC32_SEED, b""), CRC32_SEED)


class TestChecksumTrailer(unittest.TestCase):

    def test_magic(self):
        self.assertEqual(
            DFU_SUFFIX_MAGIC,
            bytes([0xff, 0xff, 0xff, 0xff, 0xac, 0x05, 0x00, 0x01, 0x55, 0x46, 0x44, 0x10])
        )

    def test_serialization(self):
        trailer = ChecksumTrailer(0x12345678)
        raw = bytes(trailer)
        self.assertEqual(len(raw), DFU_SUFFIX_LENGTH)
        self.assertEqual(len(trailer), DFU_SUFFIX_LENGTH)
        self.assertEqual(raw[:12], DFU_SUFFIX_MAGIC)
        self.assertEqual(raw[12:], b"\x78\x56\x34\x12")

    def test_magic_folded_after_payload(self):
        payload = bytes(range(100))
        trailer = ChecksumTrailer.for_payload(payload)
        expected = zlib.crc32(payload + DFU_SUFFIX_MAGIC) ^ 0xffffffff
        self.assertEqual(trailer.dwCRC, expected)

    def test_valid_dfu_suffix(self):
        # the suffix CRC covers everything before its last 4 bytes
        payload = b"\xaa" * 0x1000
        image = payload + bytes(ChecksumTrailer.for_payload(payload))
        crc = CRC32_SEED
        for byte in image[:-4]:
            crc = crc32_byte(crc, byte)
        self.assertEqual(struct.unpack('<I', image[-4:])[0], crc)
        self.assertEqual(image[-8:-5], b'UFD')

    def test_empty_payload(self):
        trailer = ChecksumTrailer.for_payload(b"")
        self.assertEqual(trailer.dwCRC, crc32_update(CRC32_SEED, DFU_SUFFIX_MAGIC))


class TestDfuChecksum(unittest.TestCase):

    def test_chunking_independent(self):
        payload = bytes((i * 7) & 0xff for i in range(0x1234))
        results = set()
        for size in (1, 3, 0x100, 0x800, 0x1234, 0x8000):
            checksum = DfuChecksum()
            for offset in range(0, len(payload), size):
                checksum.update(payload[offset:offset + size])
            results.add(bytes(checksum.trailer()))
        self.assertEqual(len(results), 1)
        self.assertEqual(results.pop(), bytes(ChecksumTrailer.for_payload(payload)))

    def test_state_carries_over(self):
        checksum = DfuChecksum()
        first = checksum.update(b"abc")
        self.assertEqual(first, crc32_update(CRC32_SEED, b"abc"))
        self.assertEqual(checksum.update(b"def"), crc32_update(CRC32_SEED, b"abcdef"))


if __name__ == '__main__':
    unittest.main()
