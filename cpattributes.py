#!/usr/bin/env python3
# -*- coding: utf-8 -*-

""" This module defines the Configuration Attributes carried by the CP payload
    (RFC 7296 section 3.15.1) and the aggregate that classifies them by type.
"""
from collections import OrderedDict
from ipaddress import IPv4Address, IPv6Address
from struct import pack

from helpers import (ByteReader, InvalidLength, InvalidSyntax, SafeIntEnum, check_limit, hex_to_bytes,
                     to_ip_address)

__author__ = 'Alejandro Perez-Mendez <alejandro.perez.mendez@gmail.com>'


class ConfigurationAttribute(object):
    class Type(SafeIntEnum):
        INTERNAL_IP4_ADDRESS = 1
        INTERNAL_IP4_NETMASK = 2
        INTERNAL_IP4_DNS = 3
        INTERNAL_IP4_NBNS = 4
        INTERNAL_IP4_DHCP = 6
        APPLICATION_VERSION = 7
        INTERNAL_IP6_ADDRESS = 8
        INTERNAL_IP6_DNS = 10
        INTERNAL_IP6_DHCP = 12
        INTERNAL_IP4_SUBNET = 13
        SUPPORTED_ATTRIBUTES = 14
        INTERNAL_IP6_SUBNET = 15
        MIP6_HOME_PREFIX = 16
        INTERNAL_IP6_LINK = 17
        INTERNAL_IP6_PREFIX = 18
        HOME_AGENT_ADDRESS = 19
        P_CSCF_IP4_ADDRESS = 20
        P_CSCF_IP6_ADDRESS = 21
        FTT_KAT = 22
        EXTERNAL_SOURCE_IP4_NAT_INFO = 23
        TIMEOUT_PERIOD_FOR_LIVENESS_CHECK = 24
        INTERNAL_DNS_DOMAIN = 25
        INTERNAL_DNSSEC_TA = 26
        ENCDNS_IP4 = 27
        ENCDNS_IP6 = 28
        ENCDNS_DIGEST_INFO = 29

    # None means any length is acceptable
    valid_lengths = None

    def __init__(self, attr_type, value=b''):
        if not 0 <= attr_type <= 0x7FFF:
            raise InvalidSyntax(f'Configuration attribute type {attr_type} does not fit in 15 bits')
        self.attr_type = self.Type(attr_type)
        self.value = bytes(value)
        if len(self.value) > 0xFFFF:
            raise InvalidLength(f'Configuration attribute value of {len(self.value)} bytes is too large')
        if self.valid_lengths is not None and len(self.value) not in self.valid_lengths:
            raise InvalidLength(f'Invalid value length for {self.attr_type.name}: expected one of '
                                f'{sorted(self.valid_lengths)}, got {len(self.value)}')

    @staticmethod
    def build(attr_type, value=b''):
        """ Returns the typed wrapper for attr_type, or a plain ConfigurationAttribute
            when the type has none
        """
        attr_class = _type_2_class.get(attr_type)
        if attr_class is None:
            return ConfigurationAttribute(attr_type, value)
        return attr_class(value)

    @classmethod
    def parse(cls, data):
        reader = ByteReader(data)
        attr_type, length = reader.unpack('>HH', 'Configuration attribute header')
        value = reader.read(length, 'Configuration attribute value')
        if not reader.at_end:
            raise InvalidLength(f'Configuration attribute declares {length} bytes of value but '
                                f'{reader.remaining + length} were supplied')
        return cls.build(attr_type & 0x7FFF, value)

    @property
    def size(self):
        return 4 + len(self.value)

    def to_bytes(self):
        return pack('>HH', self.attr_type, len(self.value)) + self.value

    def to_dict(self):
        return OrderedDict([
            ('type', self.attr_type.name),
            ('value', self.value.hex())])

    @classmethod
    def from_dict(cls, attr_dict):
        try:
            return cls.build(cls.Type.from_json(attr_dict['type']),
                             hex_to_bytes(attr_dict.get('value', ''), 'configuration attribute value'))
        except KeyError as ex:
            raise InvalidSyntax(f'Missing field {ex} in Configuration attribute')

    def __eq__(self, other):
        return (isinstance(other, ConfigurationAttribute)
                and (self.attr_type, self.value) == (other.attr_type, other.value))

    def __repr__(self):
        return f'{type(self).__name__}({self.value.hex()})'


def parse_configuration_attributes(data, configuration=None):
    """ Parses a sequence of configuration attributes filling the whole buffer
    """
    reader = ByteReader(data, configuration)
    attributes = []
    while not reader.at_end:
        check_limit(len(attributes) + 1, reader.configuration.max_substructures, 'Configuration attributes')
        _, length = reader.peek_unpack('>HH', 'Configuration attribute header')
        attributes.append(ConfigurationAttribute.parse(reader.read(4 + length, 'Configuration attribute')))
    return attributes


class _TypedAttribute(ConfigurationAttribute):
    attr_type = None

    def __init__(self, value=b''):
        super().__init__(type(self).attr_type, value)

    def to_dict(self):
        result = super().to_dict()
        if self.value:
            result.update(self._decoded())
        return result

    def _decoded(self):
        return OrderedDict()


class _Ip4AddressAttribute(_TypedAttribute):
    valid_lengths = (0, 4)

    @classmethod
    def from_address(cls, address):
        return cls(to_ip_address(address, 4, cls.attr_type.name).packed)

    @property
    def address(self):
        return IPv4Address(self.value) if self.value else None

    def _decoded(self):
        return OrderedDict([('address', str(self.address))])


class _Ip6AddressAttribute(_TypedAttribute):
    valid_lengths = (0, 16)

    @classmethod
    def from_address(cls, address):
        return cls(to_ip_address(address, 6, cls.attr_type.name).packed)

    @property
    def address(self):
        return IPv6Address(self.value) if self.value else None

    def _decoded(self):
        return OrderedDict([('address', str(self.address))])


class _Ip6PrefixAttribute(_TypedAttribute):
    """ A 16-byte IPv6 address followed by a 1-byte prefix length
    """
    valid_lengths = (0, 17)

    def __init__(self, value=b''):
        super().__init__(value)
        if self.value and self.value[16] > 128:
            raise InvalidSyntax(f'Invalid prefix length {self.value[16]} for {self.attr_type.name}')

    @classmethod
    def from_address(cls, address, prefix_len):
        if not 0 <= prefix_len <= 128:
            raise InvalidSyntax(f'Invalid prefix length {prefix_len} for {cls.attr_type.name}')
        return cls(to_ip_address(address, 6, cls.attr_type.name).packed + pack('>B', prefix_len))

    @property
    def address(self):
        return IPv6Address(self.value[:16]) if self.value else None

    @property
    def prefix_len(self):
        return self.value[16] if self.value else None

    def _decoded(self):
        return OrderedDict([('address', str(self.address)),
                            ('prefix_len', self.prefix_len)])


class InternalIp4Address(_Ip4AddressAttribute):
    attr_type = ConfigurationAttribute.Type.INTERNAL_IP4_ADDRESS


class InternalIp4Netmask(_Ip4AddressAttribute):
    attr_type = ConfigurationAttribute.Type.INTERNAL_IP4_NETMASK


class InternalIp4Dns(_Ip4AddressAttribute):
    attr_type = ConfigurationAttribute.Type.INTERNAL_IP4_DNS


class InternalIp4Nbns(_Ip4AddressAttribute):
    attr_type = ConfigurationAttribute.Type.INTERNAL_IP4_NBNS


class InternalIp4Dhcp(_Ip4AddressAttribute):
    attr_type = ConfigurationAttribute.Type.INTERNAL_IP4_DHCP


class ApplicationVersion(_TypedAttribute):
    attr_type = ConfigurationAttribute.Type.APPLICATION_VERSION

    @classmethod
    def from_version(cls, version):
        return cls(version.encode())

    @property
    def version(self):
        return self.value.decode(errors='replace')

    def _decoded(self):
        return OrderedDict([('version', self.version)])


class InternalIp6Address(_Ip6PrefixAttribute):
    attr_type = ConfigurationAttribute.Type.INTERNAL_IP6_ADDRESS


class InternalIp6Dns(_Ip6AddressAttribute):
    attr_type = ConfigurationAttribute.Type.INTERNAL_IP6_DNS


class InternalIp6Dhcp(_Ip6AddressAttribute):
    attr_type = ConfigurationAttribute.Type.INTERNAL_IP6_DHCP


class InternalIp4Subnet(_TypedAttribute):
    attr_type = ConfigurationAttribute.Type.INTERNAL_IP4_SUBNET
    valid_lengths = (0, 8)

    @classmethod
    def from_subnet(cls, address, netmask):
        return cls(to_ip_address(address, 4, 'INTERNAL_IP4_SUBNET address').packed
                   + to_ip_address(netmask, 4, 'INTERNAL_IP4_SUBNET netmask').packed)

    @property
    def address(self):
        return IPv4Address(self.value[:4]) if self.value else None

    @property
    def netmask(self):
        return IPv4Address(self.value[4:]) if self.value else None

    def _decoded(self):
        return OrderedDict([('address', str(self.address)),
                            ('netmask', str(self.netmask))])


class SupportedAttributes(_TypedAttribute):
    attr_type = ConfigurationAttribute.Type.SUPPORTED_ATTRIBUTES

    def __init__(self, value=b''):
        super().__init__(value)
        if len(self.value) % 2:
            raise InvalidLength(f'SUPPORTED_ATTRIBUTES length must be a multiple of 2, got {len(self.value)}')

    @classmethod
    def from_types(cls, types):
        return cls(b''.join(pack('>H', x) for x in types))

    @property
    def types(self):
        return [ConfigurationAttribute.Type(int.from_bytes(self.value[i:i + 2], 'big'))
                for i in range(0, len(self.value), 2)]

    def _decoded(self):
        return OrderedDict([('types', [x.name for x in self.types])])


class InternalIp6Subnet(_Ip6PrefixAttribute):
    attr_type = ConfigurationAttribute.Type.INTERNAL_IP6_SUBNET
    valid_lengths = (17,)


class PCscfIp4Address(_Ip4AddressAttribute):
    attr_type = ConfigurationAttribute.Type.P_CSCF_IP4_ADDRESS


class PCscfIp6Address(_Ip6AddressAttribute):
    attr_type = ConfigurationAttribute.Type.P_CSCF_IP6_ADDRESS


_type_2_class = OrderedDict((x.attr_type, x) for x in (
    InternalIp4Address, InternalIp4Netmask, InternalIp4Dns, InternalIp4Nbns, InternalIp4Dhcp,
    ApplicationVersion, InternalIp6Address, InternalIp6Dns, InternalIp6Dhcp, InternalIp4Subnet,
    SupportedAttributes, InternalIp6Subnet, PCscfIp4Address, PCscfIp6Address))


class CPAttributes(object):
    """ Configuration attributes grouped by type. Types with a typed wrapper get
        their own bucket, a list or a single value depending on whether the type
        may appear several times. Anything else is kept in other_attributes in
        the order it was found.
    """
    single_valued = frozenset([
        ConfigurationAttribute.Type.INTERNAL_IP4_NETMASK,
        ConfigurationAttribute.Type.APPLICATION_VERSION,
        ConfigurationAttribute.Type.SUPPORTED_ATTRIBUTES,
    ])

    def __init__(self):
        self.buckets = OrderedDict(
            (x, None if x in self.single_valued else []) for x in _type_2_class)
        self.other_attributes = []

    def add(self, attribute):
        if attribute.attr_type not in self.buckets or not isinstance(attribute, _type_2_class[attribute.attr_type]):
            self.other_attributes.append(attribute)
        elif attribute.attr_type in self.single_valued:
            if self.buckets[attribute.attr_type] is not None:
                raise InvalidSyntax(f'Duplicated {attribute.attr_type.name} configuration attribute')
            self.buckets[attribute.attr_type] = attribute
        else:
            self.buckets[attribute.attr_type].append(attribute)

    def get(self, attr_type):
        return self.buckets.get(attr_type)

    def __getitem__(self, attr_type):
        return self.buckets[attr_type]

    @classmethod
    def from_list(cls, attributes):
        cp_attributes = CPAttributes()
        for attribute in attributes:
            cp_attributes.add(attribute)
        return cp_attributes

    @classmethod
    def parse(cls, data, configuration=None):
        return cls.from_list(parse_configuration_attributes(data, configuration))

    def to_list(self):
        result = []
        for bucket in self.buckets.values():
            if isinstance(bucket, list):
                result.extend(bucket)
            elif bucket is not None:
                result.append(bucket)
        return result + self.other_attributes

    def to_bytes(self):
        return b''.join(x.to_bytes() for x in self.to_list())

    def to_dict(self):
        result = OrderedDict()
        for attr_type, bucket in self.buckets.items():
            if isinstance(bucket, list):
                result[attr_type.name] = [x.to_dict() for x in bucket]
            else:
                result[attr_type.name] = bucket.to_dict() if bucket is not None else None
        result['other_attributes'] = [x.to_dict() for x in self.other_attributes]
        return result

    @classmethod
    def from_dict(cls, cp_dict):
        cp_attributes = CPAttributes()
        for key, bucket in cp_dict.items():
            if bucket is None:
                continue
            if key != 'other_attributes' and key not in ConfigurationAttribute.Type.__members__:
                raise InvalidSyntax(f'Unknown configuration attribute bucket {key!r}')
            for attr_dict in bucket if isinstance(bucket, list) else [bucket]:
                cp_attributes.add(ConfigurationAttribute.from_dict(attr_dict))
        return cp_attributes

    def __len__(self):
        return len(self.to_list())
