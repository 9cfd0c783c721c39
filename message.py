#!/usr/bin/env python3
# -*- coding: utf-8 -*-

""" This module defines the IKEv2 message: a header followed by the chain of payloads.
"""
import json
import logging
from collections import OrderedDict

from header import Header
from helpers import (ByteReader, InvalidLength, InvalidSyntax, PayloadNotFound, TruncatedData,
                     UnsupportedCriticalPayload, check_range, hex_to_bytes, packet_to_bytes)
from payloads import Payload, parse_payload_chain, payload_from_dict, payloads_to_bytes

__author__ = 'Alejandro Perez-Mendez <alejandro.perez.mendez@gmail.com>'


class Message:
    def __init__(self, header, payloads=None):
        self.header = header
        self.payloads = list(payloads) if payloads else []
        # set when the payload chain reaches a type this codec does not know
        self.unrecognized_payload_type = None
        self.is_unrecognized_payload_critical = False
        self.unparsed_data = b''

    @property
    def exchange_type(self):
        return self.header.exchange_type

    @property
    def message_id(self):
        return self.header.message_id

    @property
    def is_request(self):
        return self.header.is_request

    @property
    def is_response(self):
        return self.header.is_response

    @property
    def is_initiator(self):
        return self.header.is_initiator

    @property
    def is_responder(self):
        return self.header.is_responder

    @classmethod
    def parse(cls, packet, header_only=False, configuration=None):
        """ Parses a message from raw bytes or from a hex string.
            The payload chain is walked within the length declared in the header. The
            walk stops at NONE, after a Payload SK (whose contents remain encrypted) or
            at an unrecognized payload type, in which case the rest of the data is kept
            in unparsed_data.
        """
        data = packet_to_bytes(packet)
        header = Header.parse(data)
        message = Message(header)
        if header_only:
            return message

        if len(data) < header.length:
            raise TruncatedData(f'Message declares length {header.length} but only {len(data)} bytes '
                                f'were received')
        if len(data) > header.length:
            logging.warning(f'Ignoring {len(data) - header.length} bytes after the end of the message')

        reader = ByteReader(data[Header.SIZE:header.length], configuration)
        chain = parse_payload_chain(reader, header.next_payload)
        message.payloads = chain.payloads
        if chain.unrecognized_payload_type is not None:
            message.unrecognized_payload_type = chain.unrecognized_payload_type
            message.is_unrecognized_payload_critical = chain.unrecognized_critical
            message.unparsed_data = chain.unparsed_data
        elif not reader.at_end:
            raise InvalidSyntax('Amount of actual payload data {} differs from'
                                ' message length {}'.format(reader.offset + Header.SIZE, header.length))
        return message

    def check_unsupported_critical_payload(self):
        if self.unrecognized_payload_type is not None and self.is_unrecognized_payload_critical:
            raise UnsupportedCriticalPayload(
                f'Unsupported critical payload {self.unrecognized_payload_type.name}',
                self.unrecognized_payload_type)

    def to_bytes(self):
        """ Serializes the message. Next payload links and lengths are recomputed from
            the current list of payloads.
        """
        last_next_payload = Payload.Type.NONE
        if self.unparsed_data:
            if self.payloads and self.payloads[-1].type == Payload.Type.SK:
                raise InvalidSyntax('Payload SK must be the last payload')
            # keep the link to the data that could not be interpreted
            last_next_payload = self.unrecognized_payload_type
        payloads_data = payloads_to_bytes(self.payloads, last_next_payload) + self.unparsed_data
        self.header.next_payload = self.payloads[0].type if self.payloads else last_next_payload
        self.header.length = Header.SIZE + len(payloads_data)
        return self.header.to_bytes() + payloads_data

    @staticmethod
    def _checksum_split(data, checksum_size):
        if not 0 < checksum_size <= len(data) - Header.SIZE:
            raise InvalidLength(f'Invalid checksum size {checksum_size} for a message of {len(data)} bytes')
        return data[:-checksum_size], data[-checksum_size:]

    @staticmethod
    def verify_integrity_checksum_data(packet, checksum_size, verify_fn):
        """ Calls verify_fn(data, checksum) where checksum are the last checksum_size
            bytes of the message and data is everything before them
        """
        data, checksum = Message._checksum_split(packet_to_bytes(packet), checksum_size)
        return bool(verify_fn(data, checksum))

    @staticmethod
    def update_integrity_checksum_data(packet, checksum_size, compute_fn):
        """ Returns a copy of the message whose last checksum_size bytes are replaced
            by compute_fn(data), data being everything before them
        """
        data, _ = Message._checksum_split(packet_to_bytes(packet), checksum_size)
        checksum = bytes(compute_fn(data))
        if len(checksum) != checksum_size:
            raise InvalidLength(f'Computed checksum is {len(checksum)} bytes long, expected {checksum_size}')
        return data + checksum

    def to_dict(self):
        result = OrderedDict([
            ('header', self.header.to_dict()),
            ('payloads', [x.to_dict() for x in self.payloads])])
        if self.unrecognized_payload_type is not None:
            result['unrecognized_payload_type'] = self.unrecognized_payload_type.name
            result['is_unrecognized_payload_critical'] = self.is_unrecognized_payload_critical
            result['unparsed_data'] = self.unparsed_data.hex()
        return result

    @classmethod
    def from_dict(cls, message_dict):
        try:
            message = Message(Header.from_dict(message_dict['header']),
                              [payload_from_dict(x) for x in message_dict.get('payloads', [])])
        except KeyError as ex:
            raise InvalidSyntax(f'Missing field {ex} in Message')
        if 'unrecognized_payload_type' in message_dict:
            message.unrecognized_payload_type = check_range(
                Payload.Type.from_json(message_dict['unrecognized_payload_type']), 8, 'Unrecognized payload type')
            message.is_unrecognized_payload_critical = bool(message_dict.get('is_unrecognized_payload_critical'))
            message.unparsed_data = hex_to_bytes(message_dict.get('unparsed_data', ''), 'unparsed data')
        return message

    def get_notifies(self, notification_type):
        return [x for x in self.get_payloads(Payload.Type.NOTIFY) if x.notification_type == notification_type]

    def get_payloads(self, payload_type):
        return [x for x in self.payloads if x.type == payload_type]

    def get_payload(self, payload_type):
        try:
            return self.get_payloads(payload_type)[0]
        except IndexError:
            raise PayloadNotFound(f'Required payload {Payload.Type(payload_type).name} was not found in message')

    def __str__(self):
        return json.dumps(self.to_dict(), indent=2)
