#!/usr/bin/env python3
# -*- coding: utf-8 -*-

""" This module defines tests for the Traffic Selectors.
"""
import unittest
from ipaddress import ip_address, ip_network

from helpers import InvalidLength, InvalidSyntax, InvalidTextInput, UnknownType
from selector import TrafficSelector
from test_payloads import CodecTestMixin

__author__ = 'Alejandro Perez-Mendez <alejandro.perez.mendez@gmail.com>'


class TestTrafficSelectorIPv4(CodecTestMixin, unittest.TestCase):
    def setUp(self):
        super(TestTrafficSelectorIPv4, self).setUp()
        self.object = TrafficSelector.from_network(ip_network('192.168.0.0/24'), 8765,
                                                   TrafficSelector.IpProtocol.TCP)

    def test_from_network(self):
        self.assertEqual(self.object.ts_type, TrafficSelector.Type.TS_IPV4_ADDR_RANGE)
        self.assertEqual(self.object.start_addr, ip_address('192.168.0.0'))
        self.assertEqual(self.object.end_addr, ip_address('192.168.0.255'))
        self.assertEqual((self.object.start_port, self.object.end_port), (8765, 8765))
        self.assertEqual(self.object.length, 16)

    def test_any_port(self):
        selector = TrafficSelector.from_network(ip_network('10.0.0.0/8'), 0, TrafficSelector.IpProtocol.ANY)
        self.assertEqual((selector.start_port, selector.end_port), (0, 65535))

    def test_to_bytes(self):
        self.assertEqual(self.object.to_bytes().hex(), '07060010223d223dc0a80000c0a800ff')

    def test_wrong_length(self):
        data = bytearray(self.object.to_bytes())
        data[3] = 40
        with self.assertRaises(InvalidLength):
            TrafficSelector.parse(bytes(data))
        with self.assertRaises(InvalidLength):
            TrafficSelector.parse(self.object.to_bytes() + b'\x00')

    def test_text_addresses(self):
        selector = TrafficSelector(TrafficSelector.Type.TS_IPV4_ADDR_RANGE, 0, 0, 65535, '10.0.0.1', '10.0.0.9')
        self.assertEqual(selector.to_dict()['start_addr'], '10.0.0.1')
        with self.assertRaises(InvalidTextInput):
            TrafficSelector(TrafficSelector.Type.TS_IPV4_ADDR_RANGE, 0, 0, 65535, '10.0.0', '10.0.0.9')

    def test_mismatched_family(self):
        with self.assertRaises(InvalidSyntax):
            TrafficSelector(TrafficSelector.Type.TS_IPV4_ADDR_RANGE, 0, 0, 65535, '10.0.0.1', '::1')

    def test_invalid_ports(self):
        with self.assertRaises(InvalidSyntax):
            TrafficSelector(TrafficSelector.Type.TS_IPV4_ADDR_RANGE, 0, 0, 70000, '10.0.0.1', '10.0.0.2')


class TestTrafficSelectorIPv6(CodecTestMixin, unittest.TestCase):
    def setUp(self):
        super(TestTrafficSelectorIPv6, self).setUp()
        self.object = TrafficSelector.from_network(ip_network('2001:db8::/32'), 0, TrafficSelector.IpProtocol.UDP)

    def test_from_network(self):
        self.assertEqual(self.object.ts_type, TrafficSelector.Type.TS_IPV6_ADDR_RANGE)
        self.assertEqual(self.object.length, 40)
        self.assertEqual(self.object.to_dict()['start_addr'], '2001:db8::')
        self.assertEqual(self.object.to_dict()['end_addr'], '2001:db8:ffff:ffff:ffff:ffff:ffff:ffff')

    def test_unknown_type(self):
        data = bytearray(self.object.to_bytes())
        data[0] = 9
        with self.assertRaises(UnknownType):
            TrafficSelector.parse(bytes(data))
        with self.assertRaises(UnknownType):
            TrafficSelector(9, 0, 0, 65535, '::1', '::1')


if __name__ == '__main__':
    unittest.main()
