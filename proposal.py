#!/usr/bin/env python3
# -*- coding: utf-8 -*-

""" This module defines the Proposal and Transform substructures of the SA payload.
"""
from collections import OrderedDict
from enum import Enum
from struct import pack

from attribute import Attribute
from helpers import (ByteReader, InvalidLength, InvalidSyntax, SafeIntEnum, UnknownType, check_limit, check_range,
                     hex_to_bytes)

__author__ = 'Alejandro Perez-Mendez <alejandro.perez.mendez@gmail.com>'


class Transform:
    LAST = 0
    MORE = 3

    class Type(SafeIntEnum):
        ENCR = 1
        PRF = 2
        INTEG = 3
        DH = 4
        ESN = 5

    class EncrId(SafeIntEnum):
        ENCR_DES_IV64 = 1
        ENCR_DES = 2
        ENCR_3DES = 3
        ENCR_RC5 = 4
        ENCR_IDEA = 5
        ENCR_CAST = 6
        ENCR_BLOWFISH = 7
        ENCR_3IDEA = 8
        ENCR_DES_IV32 = 9
        ENCR_NULL = 11
        ENCR_AES_CBC = 12
        ENCR_AES_CTR = 13
        ENCR_AES_CCM_8 = 14
        ENCR_AES_CCM_12 = 15
        ENCR_AES_CCM_16 = 16
        ENCR_AES_GCM_8 = 18
        ENCR_AES_GCM_12 = 19
        ENCR_AES_GCM_16 = 20
        ENCR_NULL_AUTH_AES_GMAC = 21
        ENCR_CAMELLIA_CBC = 23
        ENCR_CAMELLIA_CTR = 24
        ENCR_CAMELLIA_CCM_8 = 25
        ENCR_CAMELLIA_CCM_12 = 26
        ENCR_CAMELLIA_CCM_16 = 27
        ENCR_CHACHA20_POLY1305 = 28

    class PrfId(SafeIntEnum):
        PRF_HMAC_MD5 = 1
        PRF_HMAC_SHA1 = 2
        PRF_HMAC_TIGER = 3
        PRF_AES128_XCBC = 4
        PRF_HMAC_SHA2_256 = 5
        PRF_HMAC_SHA2_384 = 6
        PRF_HMAC_SHA2_512 = 7

    class DhId(SafeIntEnum):
        DH_NONE = 0
        DH_1 = 1
        DH_2 = 2
        DH_5 = 5
        DH_14 = 14
        DH_15 = 15
        DH_16 = 16
        DH_17 = 17
        DH_18 = 18
        DH_19 = 19
        DH_20 = 20
        DH_21 = 21

    class IntegId(SafeIntEnum):
        INTEG_NONE = 0
        AUTH_HMAC_MD5_96 = 1
        AUTH_HMAC_SHA1_96 = 2
        AUTH_DES_MAC = 3
        AUTH_KPDK_MD5 = 4
        AUTH_AES_XCBC_96 = 5
        AUTH_HMAC_SHA2_256_128 = 12
        AUTH_HMAC_SHA2_384_192 = 13
        AUTH_HMAC_SHA2_512_256 = 14

    class EsnId(SafeIntEnum):
        NO_ESN = 0
        ESN = 1

    _transform_id_enums = {
        Type.ENCR: EncrId,
        Type.PRF: PrfId,
        Type.INTEG: IntegId,
        Type.DH: DhId,
        Type.ESN: EsnId
    }

    def __init__(self, type, id, keylen=None, attributes=None):
        if not 0 <= type <= 0xFF:
            raise InvalidSyntax(f'Transform type {type} does not fit in 8 bits')
        if not 0 <= id <= 0xFFFF:
            raise InvalidSyntax(f'Transform id {id} does not fit in 16 bits')
        self.type = self.Type(type)
        id_enum = self._transform_id_enums.get(self.type)
        # ids of unknown transform types have no namespace to be resolved in
        self.id = id_enum(id) if id_enum is not None else int(id)
        self.attributes = list(attributes) if attributes else []
        if keylen is not None:
            if self.keylen is not None and self.keylen != keylen:
                raise InvalidSyntax(f'Conflicting key lengths {keylen} and {self.keylen}')
            if self.keylen is None:
                self.attributes.append(Attribute.key_length(keylen))
        for attribute in self.attributes:
            if attribute.tv and len(attribute.value) != 2:
                raise InvalidLength(f'TV attribute {attribute.attr_type.name} must carry 2 bytes, '
                                    f'got {len(attribute.value)}')

    @property
    def keylen(self):
        for attribute in self.attributes:
            if attribute.attr_type == Attribute.Type.KEY_LENGTH:
                return attribute.int_value
        return None

    @property
    def id_name(self):
        return self.id.name if isinstance(self.id, Enum) else str(self.id)

    @classmethod
    def parse(cls, data, configuration=None):
        reader = ByteReader(data, configuration)
        last, _, length, type, _, id = reader.unpack('>BBHBBH', 'Transform header')
        if last not in (cls.LAST, cls.MORE):
            raise InvalidSyntax(f'Invalid Transform last substructure value: {last}')
        if length != len(reader):
            raise InvalidLength(f'Transform declares length {length} but {len(reader)} bytes were supplied')

        attributes = []
        while not reader.at_end:
            check_limit(len(attributes) + 1, reader.configuration.max_attributes, 'Transform attributes')
            format_type, = reader.peek_unpack('>H', 'Transform attribute')
            if format_type & Attribute.FORMAT_BIT:
                size = 4
            else:
                _, attr_length = reader.peek_unpack('>HH', 'Transform attribute')
                size = 4 + attr_length
            attribute = Attribute.parse(reader.read(size, 'Transform attribute'))
            if attribute.size != size or attribute.size == 0:
                raise InvalidSyntax(f'Transform attribute consumed {attribute.size} bytes instead of {size}')
            attributes.append(attribute)
        return Transform(type, id, attributes=attributes)

    @property
    def length(self):
        return 8 + sum(x.size for x in self.attributes)

    def to_bytes(self, last=True):
        data = bytearray(pack('>BBHBBH', self.LAST if last else self.MORE, 0, self.length, self.type, 0, self.id))
        for attribute in self.attributes:
            data += attribute.to_bytes()
        return bytes(data)

    def to_dict(self):
        result = OrderedDict([('type', self.type.name),
                              ('id', self.id_name)])
        if self.keylen is not None:
            result['keylen'] = self.keylen
        result['attributes'] = [x.to_dict() for x in self.attributes]
        return result

    @classmethod
    def from_dict(cls, transform_dict):
        try:
            type = cls.Type.from_json(transform_dict['type'])
            id_enum = cls._transform_id_enums.get(type)
            id = transform_dict['id']
            if id_enum is not None:
                id = id_enum.from_json(id)
            elif isinstance(id, str) and id.isdigit():
                id = int(id)
            if not isinstance(id, int):
                raise UnknownType(f'Invalid id {id!r} for Transform type {type.name}')
            attributes = [Attribute.from_dict(x) for x in transform_dict.get('attributes', [])]
            return Transform(type, id, keylen=transform_dict.get('keylen'), attributes=attributes)
        except KeyError as ex:
            raise InvalidSyntax(f'Missing field {ex} in Transform')

    def __hash__(self):
        return hash((self.type, self.id, tuple(self.attributes)))

    def __eq__(self, other):
        return (isinstance(other, Transform)
                and (self.type, self.id, self.attributes) == (other.type, other.id, other.attributes))

    def __repr__(self):
        keylen = f', keylen={self.keylen}' if self.keylen is not None else ''
        return f'Transform({self.type.name}, {self.id_name}{keylen})'


class Proposal:
    LAST = 0
    MORE = 2

    class Protocol(SafeIntEnum):
        NONE = 0
        IKE = 1
        AH = 2
        ESP = 3

    def __init__(self, num, protocol_id, spi, transforms):
        self.num = num
        self.protocol_id = check_range(self.Protocol(protocol_id), 8, 'Protocol ID')
        self.spi = bytes(spi)
        self.transforms = list(transforms)
        if len(self.transforms) == 0:
            raise InvalidSyntax('A proposal without transforms is not allowed')
        if not 0 <= num <= 0xFF:
            raise InvalidSyntax(f'Proposal number {num} does not fit in 8 bits')
        if len(self.spi) > 0xFF or len(self.transforms) > 0xFF:
            raise InvalidLength('Proposal SPI or transform list is too large')

    @classmethod
    def parse(cls, data, configuration=None):
        reader = ByteReader(data, configuration)
        last, _, length, num, protocol_id, spi_size, n_transforms = reader.unpack('>BBHBBBB', 'Proposal header')
        if last not in (cls.LAST, cls.MORE):
            raise InvalidSyntax(f'Invalid Proposal last substructure value: {last}')
        if length != len(reader):
            raise InvalidLength(f'Proposal declares length {length} but {len(reader)} bytes were supplied')
        spi = reader.read(spi_size, 'Proposal SPI')

        # iterate over the transforms
        transforms = []
        more = True
        while not reader.at_end:
            if not more:
                raise InvalidSyntax('Found data after the last Transform of the Proposal')
            check_limit(len(transforms) + 1, reader.configuration.max_substructures, 'Transforms')
            marker, _, transform_length = reader.peek_unpack('>BBH', 'Transform header')
            if transform_length < 8:
                raise InvalidLength(f'Transform length {transform_length} is smaller than its header')
            transform = Transform.parse(reader.read(transform_length, 'Transform'), reader.configuration)
            transforms.append(transform)
            more = marker == Transform.MORE
        if transforms and more:
            raise InvalidSyntax('Last Transform of the Proposal is not marked as last')

        if n_transforms != len(transforms):
            raise InvalidSyntax(f'Indicated # of transforms ({n_transforms}) differs from the actual # of '
                                f'transforms ({len(transforms)})')

        return Proposal(num, protocol_id, spi, transforms)

    @property
    def length(self):
        return 8 + len(self.spi) + sum(x.length for x in self.transforms)

    def to_bytes(self, last=True):
        data = bytearray(pack('>BBHBBBB', self.LAST if last else self.MORE, 0, self.length, self.num,
                              self.protocol_id, len(self.spi), len(self.transforms)))
        data += self.spi
        for index, transform in enumerate(self.transforms):
            data += transform.to_bytes(last=index == len(self.transforms) - 1)
        return bytes(data)

    def to_dict(self):
        return OrderedDict([
            ('num', self.num),
            ('protocol_id', self.protocol_id.name),
            ('spi', self.spi.hex()),
            ('transforms', [x.to_dict() for x in self.transforms]),
        ])

    @classmethod
    def from_dict(cls, proposal_dict):
        try:
            return Proposal(proposal_dict['num'], cls.Protocol.from_json(proposal_dict['protocol_id']),
                            hex_to_bytes(proposal_dict.get('spi', ''), 'Proposal SPI'),
                            [Transform.from_dict(x) for x in proposal_dict['transforms']])
        except KeyError as ex:
            raise InvalidSyntax(f'Missing field {ex} in Proposal')

    def get_transform(self, type):
        return next((x for x in self.transforms if x.type == type), None)

    def get_transforms(self, type):
        return [x for x in self.transforms if x.type == type]

    def __eq__(self, other):
        return (isinstance(other, Proposal)
                and (self.num, self.protocol_id, self.spi, self.transforms)
                == (other.num, other.protocol_id, other.spi, other.transforms))
