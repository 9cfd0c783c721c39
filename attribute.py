#!/usr/bin/env python3
# -*- coding: utf-8 -*-

""" This module defines the data attributes carried by Transforms.
"""
from collections import OrderedDict
from struct import pack

from helpers import ByteReader, InvalidLength, InvalidSyntax, SafeIntEnum, TruncatedData, hex_to_bytes

__author__ = 'Alejandro Perez-Mendez <alejandro.perez.mendez@gmail.com>'


class Attribute(object):
    """ A Transform attribute. TLV attributes carry an explicit 16-bit length,
        TV attributes (AF bit set) take the whole slice they are parsed from.
    """
    FORMAT_BIT = 0x8000

    class Type(SafeIntEnum):
        KEY_LENGTH = 14

    def __init__(self, attr_type, value, tv=False):
        if not 0 <= attr_type <= 0x7FFF:
            raise InvalidSyntax(f'Attribute type {attr_type} does not fit in 15 bits')
        self.attr_type = self.Type(attr_type)
        self.value = bytes(value)
        self.tv = tv
        if not tv and len(self.value) > 0xFFFF:
            raise InvalidLength(f'Attribute value of {len(self.value)} bytes does not fit in a TLV attribute')

    @classmethod
    def key_length(cls, keylen):
        return Attribute(cls.Type.KEY_LENGTH, pack('>H', keylen), tv=True)

    @classmethod
    def parse(cls, data):
        reader = ByteReader(data)
        format_type, = reader.unpack('>H', 'Attribute type')
        attr_type = format_type & 0x7FFF
        if format_type & cls.FORMAT_BIT:
            value = reader.read_rest()
            if not value:
                raise TruncatedData('TV Attribute without value')
            return Attribute(attr_type, value, tv=True)
        length, = reader.unpack('>H', 'Attribute length')
        value = reader.read(length, f'Attribute {cls.Type(attr_type).name} value')
        if not reader.at_end:
            raise InvalidLength(f'TLV Attribute declares {length} bytes of value but {reader.remaining + length} '
                                f'were supplied')
        return Attribute(attr_type, value)

    @property
    def size(self):
        return (2 if self.tv else 4) + len(self.value)

    @property
    def int_value(self):
        return int.from_bytes(self.value, 'big')

    def to_bytes(self):
        if self.tv:
            return pack('>H', self.FORMAT_BIT | self.attr_type) + self.value
        return pack('>HH', self.attr_type, len(self.value)) + self.value

    def to_dict(self):
        return OrderedDict([
            ('format', 'TV' if self.tv else 'TLV'),
            ('type', self.attr_type.name),
            ('value', self.value.hex())])

    @classmethod
    def from_dict(cls, attr_dict):
        try:
            attr_format = attr_dict['format']
            if attr_format not in ('TV', 'TLV'):
                raise InvalidSyntax(f'Invalid attribute format {attr_format!r}')
            return Attribute(cls.Type.from_json(attr_dict['type']),
                             hex_to_bytes(attr_dict['value'], 'attribute value'),
                             tv=attr_format == 'TV')
        except KeyError as ex:
            raise InvalidSyntax(f'Missing field {ex} in Attribute')

    def __eq__(self, other):
        return (isinstance(other, Attribute)
                and (self.tv, self.attr_type, self.value) == (other.tv, other.attr_type, other.value))

    def __hash__(self):
        return hash((self.tv, self.attr_type, self.value))

    def __repr__(self):
        return f'Attribute({self.attr_type.name}, {self.value.hex()}, tv={self.tv})'
