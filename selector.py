#!/usr/bin/env python3
# -*- coding: utf-8 -*-

""" This module defines the Traffic Selector substructure of the TS payloads.
"""
from collections import OrderedDict
from struct import pack

from helpers import ByteReader, InvalidLength, InvalidSyntax, SafeIntEnum, UnknownType, to_ip_address

__author__ = 'Alejandro Perez-Mendez <alejandro.perez.mendez@gmail.com>'


class TrafficSelector(object):
    class Type(SafeIntEnum):
        TS_IPV4_ADDR_RANGE = 7
        TS_IPV6_ADDR_RANGE = 8

    class IpProtocol(SafeIntEnum):
        ANY = 0
        ICMP = 1
        TCP = 6
        UDP = 17
        ICMPv6 = 58
        MH = 135

    _type_2_version = {
        Type.TS_IPV4_ADDR_RANGE: 4,
        Type.TS_IPV6_ADDR_RANGE: 6,
    }

    def __init__(self, ts_type, ip_proto, start_port, end_port, start_addr, end_addr):
        self.ts_type = self.Type(ts_type)
        if self.ts_type not in self._type_2_version:
            raise UnknownType(f'Unsupported traffic selector type {self.ts_type.name}')
        if not 0 <= ip_proto <= 0xFF:
            raise InvalidSyntax(f'IP protocol {ip_proto} does not fit in 8 bits')
        if not (0 <= start_port <= 0xFFFF and 0 <= end_port <= 0xFFFF):
            raise InvalidSyntax(f'Invalid port range {start_port} - {end_port}')
        self.ip_proto = self.IpProtocol(ip_proto)
        self.start_port = start_port
        self.end_port = end_port
        version = self._type_2_version[self.ts_type]
        self.start_addr = to_ip_address(start_addr, version, 'Traffic selector start address')
        self.end_addr = to_ip_address(end_addr, version, 'Traffic selector end address')

    @classmethod
    def from_network(cls, subnet, port, ip_proto):
        return TrafficSelector((TrafficSelector.Type.TS_IPV6_ADDR_RANGE if subnet[0].version == 6
                                else TrafficSelector.Type.TS_IPV4_ADDR_RANGE), ip_proto, port,
                               65535 if port == 0 else port, subnet[0], subnet[-1])

    @property
    def addr_len(self):
        return 4 if self.ts_type == TrafficSelector.Type.TS_IPV4_ADDR_RANGE else 16

    @property
    def length(self):
        return 8 + 2 * self.addr_len

    @classmethod
    def parse(cls, data):
        reader = ByteReader(data)
        ts_type, ip_proto, length, start_port, end_port = reader.unpack('>BBHHH', 'Traffic selector header')
        if ts_type == TrafficSelector.Type.TS_IPV4_ADDR_RANGE:
            addr_len = 4
        elif ts_type == TrafficSelector.Type.TS_IPV6_ADDR_RANGE:
            addr_len = 16
        else:
            raise UnknownType(f'Unsupported traffic selector type {ts_type}')
        if length != 8 + 2 * addr_len:
            raise InvalidLength(f'Traffic selector of type {cls.Type(ts_type).name} must have length '
                                f'{8 + 2 * addr_len}, got {length}')
        start_addr = reader.read(addr_len, 'Traffic selector start address')
        end_addr = reader.read(addr_len, 'Traffic selector end address')
        if not reader.at_end:
            raise InvalidLength(f'Traffic selector declares length {length} but {len(reader)} bytes were supplied')
        return TrafficSelector(ts_type, ip_proto, start_port, end_port, start_addr, end_addr)

    def to_bytes(self):
        if self.start_addr.version != self.end_addr.version or len(self.start_addr.packed) != self.addr_len:
            raise InvalidSyntax(f'Addresses {self.start_addr} - {self.end_addr} do not match traffic selector '
                                f'type {self.ts_type.name}')
        return pack('>BBHHH{0}s{0}s'.format(self.addr_len), self.ts_type, self.ip_proto,
                    self.length, self.start_port, self.end_port, self.start_addr.packed,
                    self.end_addr.packed)

    def to_dict(self):
        return OrderedDict([
            ('ts_type', self.ts_type.name),
            ('ip_proto', self.ip_proto.name),
            ('start_port', self.start_port),
            ('end_port', self.end_port),
            ('start_addr', str(self.start_addr)),
            ('end_addr', str(self.end_addr))])

    @classmethod
    def from_dict(cls, ts_dict):
        try:
            return TrafficSelector(cls.Type.from_json(ts_dict['ts_type']),
                                   cls.IpProtocol.from_json(ts_dict['ip_proto']),
                                   ts_dict['start_port'], ts_dict['end_port'],
                                   ts_dict['start_addr'], ts_dict['end_addr'])
        except KeyError as ex:
            raise InvalidSyntax(f'Missing field {ex} in Traffic selector')

    def __eq__(self, other):
        return (isinstance(other, TrafficSelector)
                and (self.ts_type, self.ip_proto, self.start_port, self.end_port, self.start_addr,
                     self.end_addr)
                == (other.ts_type, other.ip_proto, other.start_port, other.end_port,
                    other.start_addr, other.end_addr))

    def __str__(self):
        return f'{self.start_addr} - {self.end_addr} [{self.ip_proto.name}:{self.start_port}-{self.end_port}]'
