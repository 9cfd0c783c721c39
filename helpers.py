#!/usr/bin/env python3
# -*- coding: utf-8 -*-

""" This module defines the building blocks shared by all the codec modules:
    exceptions, safe enumerations, the byte reader and text helpers.
"""
import re
from enum import Enum
from ipaddress import IPv4Address, IPv6Address, ip_address
from struct import calcsize, error as struct_error, unpack_from

from configuration import DEFAULT_CONFIGURATION

__author__ = 'Alejandro Perez-Mendez <alejandro.perez.mendez@gmail.com>'


class IkeCodecError(Exception):
    pass


class InvalidSyntax(IkeCodecError):
    pass


class TruncatedData(InvalidSyntax):
    pass


class InvalidLength(InvalidSyntax):
    pass


class UnknownType(InvalidSyntax):
    pass


class InvalidTextInput(IkeCodecError, ValueError):
    pass


class PayloadNotFound(IkeCodecError):
    pass


class UnsupportedCriticalPayload(IkeCodecError):
    def __init__(self, msg, payload_type):
        super().__init__(msg)
        self.payload_type = payload_type


class SafeIntEnum(int, Enum):
    @classmethod
    def _missing_(cls, value):
        if not isinstance(value, int):
            return None
        obj = int.__new__(cls, value)
        obj._name_ = f'{cls.__name__}_{value}'
        obj._value_ = value
        return obj

    @classmethod
    def from_json(cls, value):
        """ Accepts the integer value, the member name or the name given to
            unknown values (e.g. Type_99)
        """
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        if isinstance(value, str):
            if value in cls.__members__:
                return cls[value]
            prefix = f'{cls.__name__}_'
            if value.startswith(prefix) and value[len(prefix):].isdigit():
                return cls(int(value[len(prefix):]))
        raise UnknownType(f'{value!r} is not a valid {cls.__name__}')


def check_limit(count, limit, what):
    if count > limit:
        raise InvalidSyntax(f'Too many {what}: more than {limit}')


def check_range(value, bits, what):
    """ Returns value if it fits in an unsigned field of the given number of bits
    """
    if not 0 <= value < (1 << bits):
        raise InvalidSyntax(f'{what} {value} does not fit in {bits} bits')
    return value


class ByteReader(object):
    """ Cursor over an immutable buffer. Every read is bounds-checked before the
        offset advances, so a failed read leaves the reader untouched.
    """

    def __init__(self, data, configuration=None):
        self.data = bytes(data)
        self.offset = 0
        self.configuration = configuration or DEFAULT_CONFIGURATION

    def __len__(self):
        return len(self.data)

    @property
    def remaining(self):
        return len(self.data) - self.offset

    @property
    def at_end(self):
        return self.offset >= len(self.data)

    def _check(self, size, what):
        if size < 0:
            raise InvalidLength(f'{what}: negative size {size} at offset {self.offset}')
        if size > self.remaining:
            raise TruncatedData(f'{what}: expected {size} bytes at offset {self.offset}, '
                                f'only {self.remaining} available')

    def read(self, size, what='data'):
        self._check(size, what)
        result = self.data[self.offset:self.offset + size]
        self.offset += size
        return result

    def read_rest(self):
        return self.read(self.remaining)

    def peek_unpack(self, fmt, what='data'):
        self._check(calcsize(fmt), what)
        try:
            return unpack_from(fmt, self.data, self.offset)
        except struct_error as ex:
            raise InvalidSyntax(f'{what}: {ex}')

    def unpack(self, fmt, what='data'):
        result = self.peek_unpack(fmt, what)
        self.offset += calcsize(fmt)
        return result

    def sub_reader(self, size, what='data'):
        return ByteReader(self.read(size, what), self.configuration)


def hex_to_bytes(value, what='hex string'):
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if not isinstance(value, str):
        raise InvalidTextInput(f'{what} should be a hex string, got {type(value).__name__}')
    text = value.strip()
    if text[:2] in ('0x', '0X'):
        text = text[2:]
    if not re.fullmatch('[0-9a-fA-F]*', text):
        raise InvalidTextInput(f'Invalid {what} {value!r}: only hexadecimal digits are allowed')
    try:
        return bytes.fromhex(text)
    except ValueError as ex:
        raise InvalidTextInput(f'Invalid {what} {value!r}: {ex}')


def packet_to_bytes(packet):
    """ Normalizes a packet given as raw bytes or as a hex string
    """
    if isinstance(packet, str):
        data = hex_to_bytes(packet, 'packet')
        if not data:
            raise InvalidTextInput('Empty hex string')
        return data
    if isinstance(packet, (bytes, bytearray, memoryview)):
        return bytes(packet)
    raise InvalidTextInput(f'Packet should be bytes or a hex string, got {type(packet).__name__}')


def to_ip_address(value, version=None, what='address'):
    """ Returns an IPv4Address/IPv6Address from its textual form, its packed form
        or an existing address object
    """
    if isinstance(value, (IPv4Address, IPv6Address)):
        address = value
    elif isinstance(value, (bytes, bytearray)):
        if len(value) not in (4, 16):
            raise InvalidSyntax(f'{what} should be 4 or 16 bytes long, got {len(value)}')
        address = ip_address(bytes(value))
    elif isinstance(value, str):
        if '%' in value:
            raise InvalidTextInput(f'Scoped {what} {value!r} is not supported')
        try:
            address = ip_address(value)
        except ValueError as ex:
            raise InvalidTextInput(f'Invalid {what}: {ex}')
    else:
        raise InvalidTextInput(f'Invalid {what} of type {type(value).__name__}')
    if version is not None and address.version != version:
        raise InvalidSyntax(f'{what} {address} is not an IPv{version} address')
    return address
