#!/usr/bin/env python3
# -*- coding: utf-8 -*-

""" This module defines the fixed 28-byte header of the IKEv2 messages.
"""
from collections import OrderedDict
from struct import pack

from helpers import ByteReader, InvalidLength, InvalidSyntax, SafeIntEnum, check_range, hex_to_bytes
from payloads import Payload

__author__ = 'Alejandro Perez-Mendez <alejandro.perez.mendez@gmail.com>'


class Header(object):
    SIZE = 28
    FORMAT = '>8s8s4B2L'

    INITIATOR_FLAG = 0x08
    HIGHER_VERSION_FLAG = 0x10
    RESPONSE_FLAG = 0x20

    class Exchange(SafeIntEnum):
        IKE_SA_INIT = 34
        IKE_AUTH = 35
        CREATE_CHILD_SA = 36
        INFORMATIONAL = 37
        IKE_SESSION_RESUME = 38
        IKE_INTERMEDIATE = 43
        IKE_FOLLOWUP_KE = 44

    def __init__(self, spi_i, spi_r, next_payload, major, minor, exchange_type, is_initiator,
                 can_use_higher_version, is_response, message_id, length=SIZE):
        self.spi_i = bytes(spi_i)
        self.spi_r = bytes(spi_r)
        if len(self.spi_i) != 8 or len(self.spi_r) != 8:
            raise InvalidLength(f'IKE SPIs must be 8 bytes long, got {len(self.spi_i)} and {len(self.spi_r)}')
        if not (0 <= major <= 15 and 0 <= minor <= 15):
            raise InvalidSyntax(f'Invalid version {major}.{minor}: each component must fit in 4 bits')
        if not 0 <= exchange_type <= 0xFF:
            raise InvalidSyntax(f'Exchange type {exchange_type} does not fit in 8 bits')
        if not 0 <= message_id <= 0xFFFFFFFF:
            raise InvalidSyntax(f'Message ID {message_id} does not fit in 32 bits')
        if not self.SIZE <= length <= 0xFFFFFFFF:
            raise InvalidLength(f'Invalid message length {length}: must be at least {self.SIZE}')
        self.next_payload = check_range(Payload.Type(next_payload), 8, 'Next payload')
        self.major = major
        self.minor = minor
        self.exchange_type = self.Exchange(exchange_type)
        self.is_initiator = is_initiator
        self.can_use_higher_version = can_use_higher_version
        self.is_response = is_response
        self.message_id = message_id
        self.length = length

    @classmethod
    def parse(cls, data):
        reader = ByteReader(data)
        spi_i, spi_r, next_payload, version, exchange_type, flags, message_id, length = reader.unpack(
            cls.FORMAT, 'IKE header')
        return Header(spi_i=spi_i,
                      spi_r=spi_r,
                      next_payload=next_payload,
                      major=version >> 4,
                      minor=version & 0x0F,
                      exchange_type=exchange_type,
                      is_initiator=bool(flags & cls.INITIATOR_FLAG),
                      can_use_higher_version=bool(flags & cls.HIGHER_VERSION_FLAG),
                      is_response=bool(flags & cls.RESPONSE_FLAG),
                      message_id=message_id,
                      length=length)

    @property
    def flags(self):
        return ((self.RESPONSE_FLAG if self.is_response else 0)
                | (self.HIGHER_VERSION_FLAG if self.can_use_higher_version else 0)
                | (self.INITIATOR_FLAG if self.is_initiator else 0))

    @property
    def is_request(self):
        return not self.is_response

    @property
    def is_responder(self):
        return not self.is_initiator

    def to_bytes(self):
        return pack(self.FORMAT, self.spi_i, self.spi_r, self.next_payload, (self.major << 4 | self.minor),
                    self.exchange_type, self.flags, self.message_id, self.length)

    def to_dict(self):
        return OrderedDict([
            ('spi_i', self.spi_i.hex()),
            ('spi_r', self.spi_r.hex()),
            ('next_payload', self.next_payload.name),
            ('version', f'{self.major}.{self.minor}'),
            ('exchange_type', self.exchange_type.name),
            ('is_request', self.is_request),
            ('is_response', self.is_response),
            ('can_use_higher_version', self.can_use_higher_version),
            ('is_initiator', self.is_initiator),
            ('is_responder', self.is_responder),
            ('message_id', self.message_id),
            ('length', self.length)])

    @classmethod
    def from_dict(cls, header_dict):
        version = str(header_dict.get('version', '2.0'))
        major, _, minor = version.partition('.')
        if not major.isdigit() or not (minor.isdigit() or minor == ''):
            raise InvalidSyntax(f'Invalid version {version!r} in Header')
        try:
            return Header(spi_i=hex_to_bytes(header_dict['spi_i'], 'initiator SPI'),
                          spi_r=hex_to_bytes(header_dict.get('spi_r', '00' * 8), 'responder SPI'),
                          next_payload=Payload.Type.from_json(header_dict.get('next_payload', 0)),
                          major=int(major),
                          minor=int(minor or 0),
                          exchange_type=cls.Exchange.from_json(header_dict['exchange_type']),
                          is_initiator=bool(header_dict.get('is_initiator', False)),
                          can_use_higher_version=bool(header_dict.get('can_use_higher_version', False)),
                          is_response=bool(header_dict.get('is_response', False)),
                          message_id=header_dict.get('message_id', 0),
                          length=header_dict.get('length', cls.SIZE))
        except KeyError as ex:
            raise InvalidSyntax(f'Missing field {ex} in Header')

    def __eq__(self, other):
        return isinstance(other, Header) and self.to_bytes() == other.to_bytes()
