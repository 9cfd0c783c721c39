#!/usr/bin/env python3
# -*- coding: utf-8 -*-

""" This module defines tests for the codec helpers.
"""
import unittest
from ipaddress import IPv4Address, IPv6Address

from configuration import DEFAULT_CONFIGURATION, load_configuration
from helpers import (ByteReader, IkeCodecError, InvalidLength, InvalidSyntax, InvalidTextInput, SafeIntEnum,
                     TruncatedData, UnknownType, check_limit, hex_to_bytes, packet_to_bytes, to_ip_address)

__author__ = 'Alejandro Perez-Mendez <alejandro.perez.mendez@gmail.com>'


class Color(SafeIntEnum):
    RED = 1
    GREEN = 2


class TestSafeIntEnum(unittest.TestCase):
    def test_known(self):
        self.assertIs(Color(1), Color.RED)
        self.assertEqual(Color.GREEN.name, 'GREEN')

    def test_unknown(self):
        color = Color(77)
        self.assertEqual(color, 77)
        self.assertEqual(color.name, 'Color_77')
        self.assertIsInstance(color, Color)

    def test_from_json(self):
        self.assertIs(Color.from_json('RED'), Color.RED)
        self.assertIs(Color.from_json(2), Color.GREEN)
        self.assertEqual(Color.from_json('Color_77'), 77)
        for value in ('BLUE', 'Color_', 'Color_x', True, None, 1.0):
            with self.assertRaises(UnknownType):
                Color.from_json(value)


class TestByteReader(unittest.TestCase):
    def setUp(self):
        self.reader = ByteReader(b'\x01\x02\x03\x04\x05\x06')

    def test_read(self):
        self.assertEqual(self.reader.read(2), b'\x01\x02')
        self.assertEqual(self.reader.offset, 2)
        self.assertEqual(self.reader.remaining, 4)
        self.assertEqual(self.reader.read_rest(), b'\x03\x04\x05\x06')
        self.assertTrue(self.reader.at_end)

    def test_read_past_end(self):
        self.reader.read(4)
        with self.assertRaises(TruncatedData):
            self.reader.read(3)
        # a failed read leaves the cursor untouched
        self.assertEqual(self.reader.offset, 4)
        self.assertEqual(self.reader.read(2), b'\x05\x06')

    def test_negative_size(self):
        with self.assertRaises(InvalidLength):
            self.reader.read(-1)

    def test_unpack(self):
        self.assertEqual(self.reader.peek_unpack('>H'), (0x0102,))
        self.assertEqual(self.reader.offset, 0)
        self.assertEqual(self.reader.unpack('>HL'), (0x0102, 0x03040506))
        with self.assertRaises(TruncatedData):
            self.reader.unpack('>B')

    def test_sub_reader(self):
        configuration = load_configuration({'max_payloads': 3})
        reader = ByteReader(b'\x01\x02\x03', configuration)
        sub_reader = reader.sub_reader(2)
        self.assertEqual(sub_reader.read_rest(), b'\x01\x02')
        self.assertIs(sub_reader.configuration, configuration)
        self.assertEqual(reader.remaining, 1)

    def test_default_configuration(self):
        self.assertIs(self.reader.configuration, DEFAULT_CONFIGURATION)

    def test_check_limit(self):
        check_limit(3, 3, 'things')
        with self.assertRaises(InvalidSyntax):
            check_limit(4, 3, 'things')


class TestTextHelpers(unittest.TestCase):
    def test_hex_to_bytes(self):
        self.assertEqual(hex_to_bytes('0a0B'), b'\x0a\x0b')
        self.assertEqual(hex_to_bytes('0x0a0b'), b'\x0a\x0b')
        self.assertEqual(hex_to_bytes(''), b'')
        self.assertEqual(hex_to_bytes(b'\x01'), b'\x01')

    def test_invalid_hex(self):
        for value in ('abc', 'zz', 12):
            with self.assertRaises(InvalidTextInput):
                hex_to_bytes(value)

    def test_hex_with_inner_whitespace(self):
        for value in ('0a 0b', '0a\n0b', '0x 0a0b', '0a0b 0c'):
            with self.assertRaises(InvalidTextInput):
                hex_to_bytes(value)
        with self.assertRaises(InvalidTextInput):
            packet_to_bytes(' '.join(['00'] * 28))
        self.assertEqual(hex_to_bytes(' 0a0b\n'), b'\x0a\x0b')

    def test_text_error_is_value_error(self):
        with self.assertRaises(ValueError):
            hex_to_bytes('xyz')
        self.assertTrue(issubclass(InvalidTextInput, IkeCodecError))

    def test_packet_to_bytes(self):
        self.assertEqual(packet_to_bytes('0102'), b'\x01\x02')
        self.assertEqual(packet_to_bytes(bytearray(b'\x01')), b'\x01')
        self.assertEqual(packet_to_bytes(memoryview(b'\x01')), b'\x01')
        with self.assertRaises(InvalidTextInput):
            packet_to_bytes('')
        with self.assertRaises(InvalidTextInput):
            packet_to_bytes(None)


class TestIpAddresses(unittest.TestCase):
    def test_ipv4(self):
        self.assertEqual(to_ip_address('192.168.0.1'), IPv4Address('192.168.0.1'))
        self.assertEqual(to_ip_address(b'\xc0\xa8\x00\x01', 4), IPv4Address('192.168.0.1'))

    def test_ipv6_compression(self):
        self.assertEqual(str(to_ip_address('2001:db8:85a3:0:0:8a2e:370:7334')), '2001:db8:85a3::8a2e:370:7334')
        self.assertEqual(str(to_ip_address(b'\x00' * 16)), '::')
        self.assertEqual(str(to_ip_address('1:0:0:2:0:0:3:4')), '1::2:0:0:3:4')
        self.assertEqual(str(to_ip_address('1:0:0:2:0:0:0:3')), '1:0:0:2::3')
        self.assertEqual(str(to_ip_address('1:0:2:3:4:5:6:7')), '1:0:2:3:4:5:6:7')

    def test_ipv6_expansion(self):
        address = to_ip_address('2001:db8::1', 6)
        self.assertIsInstance(address, IPv6Address)
        self.assertEqual(address.packed, bytes.fromhex('20010db8000000000000000000000001'))

    def test_malformed(self):
        for value in ('1.2.3', '256.1.1.1', '1::2::3', 'gggg::1', '1:2:3:4:5:6:7', 'fe80::1%eth0', ''):
            with self.assertRaises(InvalidTextInput):
                to_ip_address(value)

    def test_wrong_version(self):
        with self.assertRaises(InvalidSyntax):
            to_ip_address('::1', 4)
        with self.assertRaises(InvalidSyntax):
            to_ip_address(b'\x01\x02\x03', 4)


if __name__ == '__main__':
    unittest.main()
