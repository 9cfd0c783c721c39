#!/usr/bin/env python3
# -*- coding: utf-8 -*-

""" This module defines tests for the CP configuration attributes.
"""
import json
import unittest
from ipaddress import IPv4Address, IPv6Address

from configuration import load_configuration
from cpattributes import (ApplicationVersion, ConfigurationAttribute, CPAttributes, InternalIp4Address,
                          InternalIp4Dns, InternalIp4Netmask, InternalIp4Subnet, InternalIp6Address,
                          InternalIp6Dns, InternalIp6Subnet, PCscfIp4Address, SupportedAttributes,
                          parse_configuration_attributes)
from helpers import InvalidLength, InvalidSyntax
from test_payloads import CodecTestMixin

__author__ = 'Alejandro Perez-Mendez <alejandro.perez.mendez@gmail.com>'


class TestConfigurationAttribute(CodecTestMixin, unittest.TestCase):
    def setUp(self):
        super(TestConfigurationAttribute, self).setUp()
        self.object = InternalIp4Dns.from_address('8.8.8.8')

    def test_to_bytes(self):
        self.assertEqual(self.object.to_bytes(), b'\x00\x03\x00\x04\x08\x08\x08\x08')
        self.assertEqual(self.object.to_dict()['address'], '8.8.8.8')

    def test_parse_masks_reserved_bit(self):
        attribute = ConfigurationAttribute.parse(b'\x80\x03\x00\x04\x08\x08\x08\x08')
        self.assertEqual(attribute, self.object)
        self.assertIsInstance(attribute, InternalIp4Dns)

    def test_request(self):
        attribute = ConfigurationAttribute.parse(b'\x00\x01\x00\x00')
        self.assertIsInstance(attribute, InternalIp4Address)
        self.assertIsNone(attribute.address)
        self.assertNotIn('address', attribute.to_dict())

    def test_unknown_type(self):
        attribute = ConfigurationAttribute.parse(b'\x4e\x20\x00\x02\x01\x02')
        self.assertIs(type(attribute), ConfigurationAttribute)
        self.assertEqual(attribute.attr_type.name, 'Type_20000')

    def test_trailing_data(self):
        with self.assertRaises(InvalidLength):
            ConfigurationAttribute.parse(self.object.to_bytes() + b'\x00')


class TestTypedAttributes(unittest.TestCase):
    def test_ipv4(self):
        attribute = InternalIp4Netmask.from_address('255.255.255.0')
        self.assertEqual(attribute.address, IPv4Address('255.255.255.0'))
        with self.assertRaises(InvalidLength):
            InternalIp4Address(b'\x01\x02\x03')
        with self.assertRaises(InvalidSyntax):
            InternalIp4Address.from_address('::1')

    def test_ipv6_prefix(self):
        attribute = InternalIp6Address.from_address('2001:db8::1', 64)
        self.assertEqual(len(attribute.value), 17)
        self.assertEqual(attribute.address, IPv6Address('2001:db8::1'))
        self.assertEqual(attribute.prefix_len, 64)
        self.assertEqual(attribute.to_dict()['prefix_len'], 64)
        with self.assertRaises(InvalidSyntax):
            InternalIp6Address.from_address('2001:db8::1', 129)
        with self.assertRaises(InvalidSyntax):
            InternalIp6Address(b'\x00' * 16 + b'\xff')

    def test_ipv6_subnet(self):
        with self.assertRaises(InvalidLength):
            InternalIp6Subnet(b'')
        attribute = InternalIp6Subnet.from_address('2001:db8::', 32)
        self.assertEqual(attribute.to_dict()['address'], '2001:db8::')

    def test_ipv6_dns(self):
        attribute = InternalIp6Dns.from_address('2001:4860:4860::8888')
        self.assertEqual(str(attribute.address), '2001:4860:4860::8888')

    def test_ipv4_subnet(self):
        attribute = InternalIp4Subnet.from_subnet('10.0.0.0', '255.0.0.0')
        self.assertEqual(attribute.value, bytes.fromhex('0a000000ff000000'))
        self.assertEqual(str(attribute.netmask), '255.0.0.0')

    def test_application_version(self):
        attribute = ApplicationVersion.from_version('pyikev2 0.1')
        self.assertEqual(attribute.version, 'pyikev2 0.1')
        self.assertEqual(ApplicationVersion.parse(attribute.to_bytes()).version, 'pyikev2 0.1')

    def test_supported_attributes(self):
        attribute = SupportedAttributes.from_types([ConfigurationAttribute.Type.INTERNAL_IP4_ADDRESS,
                                                    ConfigurationAttribute.Type.INTERNAL_IP4_DNS])
        self.assertEqual(attribute.value, b'\x00\x01\x00\x03')
        self.assertEqual(attribute.to_dict()['types'], ['INTERNAL_IP4_ADDRESS', 'INTERNAL_IP4_DNS'])
        with self.assertRaises(InvalidLength):
            SupportedAttributes(b'\x00')


class TestCPAttributes(unittest.TestCase):
    def setUp(self):
        self.attributes = [
            PCscfIp4Address.from_address('10.0.0.100'),
            InternalIp4Dns.from_address('8.8.8.8'),
            ConfigurationAttribute(25, b'example.com'),
            InternalIp4Address.from_address('10.0.0.2'),
            InternalIp4Dns.from_address('8.8.4.4'),
        ]

    def test_classification(self):
        cp_attributes = CPAttributes.from_list(self.attributes)
        self.assertEqual(len(cp_attributes), 5)
        dns = cp_attributes[ConfigurationAttribute.Type.INTERNAL_IP4_DNS]
        self.assertEqual([str(x.address) for x in dns], ['8.8.8.8', '8.8.4.4'])
        self.assertIsNone(cp_attributes.get(ConfigurationAttribute.Type.INTERNAL_IP4_NETMASK))
        self.assertEqual(cp_attributes.other_attributes, [ConfigurationAttribute(25, b'example.com')])

    def test_canonical_order(self):
        cp_attributes = CPAttributes.from_list(self.attributes)
        self.assertEqual([x.attr_type for x in cp_attributes.to_list()],
                         [ConfigurationAttribute.Type.INTERNAL_IP4_ADDRESS,
                          ConfigurationAttribute.Type.INTERNAL_IP4_DNS,
                          ConfigurationAttribute.Type.INTERNAL_IP4_DNS,
                          ConfigurationAttribute.Type.P_CSCF_IP4_ADDRESS,
                          ConfigurationAttribute.Type.INTERNAL_DNS_DOMAIN])

    def test_parse(self):
        data = b''.join(x.to_bytes() for x in self.attributes)
        cp_attributes = CPAttributes.parse(data)
        self.assertEqual(cp_attributes.to_list(), CPAttributes.from_list(self.attributes).to_list())
        self.assertEqual(len(cp_attributes.to_bytes()), len(data))

    def test_duplicated_single_valued(self):
        with self.assertRaises(InvalidSyntax):
            CPAttributes.from_list([InternalIp4Netmask.from_address('255.0.0.0'),
                                    InternalIp4Netmask.from_address('255.255.0.0')])

    def test_to_dict(self):
        result = CPAttributes.from_list(self.attributes).to_dict()
        self.assertEqual(len(result['INTERNAL_IP4_DNS']), 2)
        self.assertIsNone(result['APPLICATION_VERSION'])
        self.assertEqual(len(result['other_attributes']), 1)

    def test_from_dict(self):
        cp_attributes = CPAttributes.from_list(self.attributes + [InternalIp4Netmask.from_address('255.255.255.0')])
        cp_dict = json.loads(json.dumps(cp_attributes.to_dict()))
        new_cp_attributes = CPAttributes.from_dict(cp_dict)
        self.assertEqual(new_cp_attributes.to_bytes(), cp_attributes.to_bytes())
        self.assertEqual(new_cp_attributes.other_attributes, [ConfigurationAttribute(25, b'example.com')])
        self.assertIsInstance(new_cp_attributes[ConfigurationAttribute.Type.INTERNAL_IP4_NETMASK],
                              InternalIp4Netmask)
        self.assertEqual(len(CPAttributes.from_dict({})), 0)

    def test_from_dict_unknown_bucket(self):
        with self.assertRaises(InvalidSyntax):
            CPAttributes.from_dict({'INTERNAL_WHATEVER': []})

    def test_truncated_sequence(self):
        data = b''.join(x.to_bytes() for x in self.attributes)
        with self.assertRaises(InvalidSyntax):
            parse_configuration_attributes(data[:-1])

    def test_limit(self):
        data = b''.join(x.to_bytes() for x in self.attributes)
        with self.assertRaises(InvalidSyntax):
            parse_configuration_attributes(data, load_configuration({'max_substructures': 4}))


if __name__ == '__main__':
    unittest.main()
