#!/usr/bin/env python3
# -*- coding: utf-8 -*-

""" This module defines the classes for the IKEv2 payloads and the walker of
    the next-payload chain shared by messages and SK payloads.
"""
import logging
import os
from collections import OrderedDict, namedtuple
from ipaddress import ip_address
from random import SystemRandom
from struct import pack

from cpattributes import ConfigurationAttribute, CPAttributes, parse_configuration_attributes
from helpers import (ByteReader, InvalidLength, InvalidSyntax, SafeIntEnum, TruncatedData, UnknownType,
                     UnsupportedCriticalPayload, check_limit, check_range, hex_to_bytes)
from proposal import Proposal, Transform
from selector import TrafficSelector

__author__ = 'Alejandro Perez-Mendez <alejandro.perez.mendez@gmail.com>'


class Payload:
    CRITICAL_BIT = 0x80

    class Type(SafeIntEnum):
        NONE = 0
        SA = 33
        KE = 34
        IDi = 35
        IDr = 36
        CERT = 37
        CERTREQ = 38
        AUTH = 39
        NONCE = 40
        NOTIFY = 41
        DELETE = 42
        VENDOR = 43
        TSi = 44
        TSr = 45
        SK = 46
        CP = 47
        EAP = 48

    type = Type.NONE

    def __init__(self, critical=False, next_payload=Type.NONE):
        self.critical = critical
        self.next_payload = check_range(Payload.Type(next_payload), 8, 'Next payload')

    @classmethod
    def parse(cls, data, configuration=None):
        """ Parses a payload, generic header included. The buffer must contain exactly
            the number of bytes declared in the header.
        """
        reader = ByteReader(data, configuration)
        next_payload, flags, length = reader.unpack('>BBH', f'Payload {cls.type.name} header')
        if length < 4:
            raise InvalidLength(f'Payload {cls.type.name} declares length {length}, smaller than its header')
        if length != len(reader):
            raise InvalidLength(f'Payload {cls.type.name} declares length {length} but {len(reader)} bytes '
                                f'were supplied')
        payload = cls._parse_body(reader, bool(flags & cls.CRITICAL_BIT))
        payload.next_payload = Payload.Type(next_payload)
        return payload

    @classmethod
    def _parse_body(cls, reader, critical):
        raise NotImplementedError

    def _body_to_bytes(self):
        raise NotImplementedError

    @property
    def length(self):
        return 4 + len(self._body_to_bytes())

    def to_bytes(self):
        body = self._body_to_bytes()
        if 4 + len(body) > 0xFFFF:
            raise InvalidLength(f'Payload {self.type.name} of {4 + len(body)} bytes does not fit in 16 bits')
        return pack('>BBH', self.next_payload, self.CRITICAL_BIT if self.critical else 0, 4 + len(body)) + body

    def to_dict(self):
        return OrderedDict([
            ('type', self.type.name),
            ('critical', self.critical),
            ('next_payload', self.next_payload.name)])

    @classmethod
    def from_dict(cls, payload_dict):
        try:
            payload_type = Payload.Type.from_json(payload_dict['type'])
            payload_class = type_2_payload.get(payload_type)
            if payload_class is None:
                raise UnknownType(f'Unsupported payload type {payload_type.name}')
            if cls is not Payload and payload_class is not cls:
                raise InvalidSyntax(f'Payload of type {payload_type.name} cannot be built as a {cls.__name__}')
            payload = payload_class._from_dict(payload_dict)
            payload.critical = bool(payload_dict.get('critical', False))
            payload.next_payload = check_range(Payload.Type.from_json(payload_dict.get('next_payload', 0)), 8,
                                               'Next payload')
            return payload
        except KeyError as ex:
            raise InvalidSyntax(f'Missing field {ex} in payload')

    @classmethod
    def _from_dict(cls, payload_dict):
        raise NotImplementedError

    def __eq__(self, other):
        return (type(self) is type(other)
                and (self.critical, self._body_to_bytes()) == (other.critical, other._body_to_bytes()))

    def __str__(self):
        return self.type.name


class PayloadSA(Payload):
    type = Payload.Type.SA

    def __init__(self, proposals, critical=False):
        super(PayloadSA, self).__init__(critical)
        self.proposals = list(proposals)
        if len(self.proposals) == 0:
            raise InvalidSyntax('Empty Payload SA is not allowed')

    @classmethod
    def _parse_body(cls, reader, critical):
        proposals = []
        more = True
        while not reader.at_end:
            if not more:
                raise InvalidSyntax('Found data after the last Proposal of the Payload SA')
            check_limit(len(proposals) + 1, reader.configuration.max_substructures, 'Proposals')
            marker, _, length = reader.peek_unpack('>BBH', 'Proposal header')
            if length < 8:
                raise InvalidLength(f'Proposal length {length} is smaller than its header')
            proposals.append(Proposal.parse(reader.read(length, 'Proposal'), reader.configuration))
            more = marker == Proposal.MORE
        if proposals and more:
            raise InvalidSyntax('Last Proposal of the Payload SA is not marked as last')
        return PayloadSA(proposals, critical=critical)

    def _body_to_bytes(self):
        return b''.join(x.to_bytes(last=index == len(self.proposals) - 1)
                        for index, x in enumerate(self.proposals))

    def to_dict(self):
        result = super(PayloadSA, self).to_dict()
        result.update(OrderedDict([
            ('proposals', [x.to_dict() for x in self.proposals])]))
        return result

    @classmethod
    def _from_dict(cls, payload_dict):
        return PayloadSA([Proposal.from_dict(x) for x in payload_dict['proposals']])


class PayloadKE(Payload):
    type = Payload.Type.KE

    def __init__(self, dh_group, ke_data, critical=False):
        super(PayloadKE, self).__init__(critical)
        self.dh_group = check_range(Transform.DhId(dh_group), 16, 'DH group')
        self.ke_data = bytes(ke_data)

    @classmethod
    def _parse_body(cls, reader, critical):
        dh_group, _ = reader.unpack('>HH', 'Payload KE')
        return PayloadKE(dh_group, reader.read_rest(), critical)

    def _body_to_bytes(self):
        return pack('>HH', self.dh_group, 0) + self.ke_data

    def to_dict(self):
        result = super(PayloadKE, self).to_dict()
        result.update(OrderedDict([
            ('dh_group', self.dh_group.name),
            ('ke_data', self.ke_data.hex())]))
        return result

    @classmethod
    def _from_dict(cls, payload_dict):
        return PayloadKE(Transform.DhId.from_json(payload_dict['dh_group']),
                         hex_to_bytes(payload_dict['ke_data'], 'KE data'))


class PayloadID(Payload):
    type = Payload.Type.NONE

    class Type(SafeIntEnum):
        ID_IPV4_ADDR = 1
        ID_FQDN = 2
        ID_RFC822_ADDR = 3
        ID_IPV6_ADDR = 5
        ID_DER_ASN1_DN = 9
        ID_DER_ASN1_GN = 10
        ID_KEY_ID = 11

    def __init__(self, id_type, id_data, critical=False):
        super(PayloadID, self).__init__(critical)
        self.id_type = check_range(self.Type(id_type), 8, 'ID type')
        self.id_data = bytes(id_data)

    @classmethod
    def _parse_body(cls, reader, critical):
        id_type, _ = reader.unpack('>B3s', f'Payload {cls.type.name}')
        # we need to use cls as it might be PayloadIDi or PayloadIDr
        return cls(id_type, reader.read_rest(), critical=critical)

    def _body_to_bytes(self):
        return pack('>BBH', self.id_type, 0, 0) + self.id_data

    def _id_data_str(self):
        if self.id_type in (PayloadID.Type.ID_RFC822_ADDR, PayloadID.Type.ID_FQDN):
            return self.id_data.decode(errors='replace')
        elif self.id_type in (PayloadID.Type.ID_IPV4_ADDR, PayloadID.Type.ID_IPV6_ADDR) \
                and len(self.id_data) in (4, 16):
            return str(ip_address(self.id_data))
        else:
            return self.id_data.hex()

    def to_dict(self):
        result = super(PayloadID, self).to_dict()
        result.update(OrderedDict([
            ('id_type', self.id_type.name),
            ('id_data', self.id_data.hex()),
            ('id_text', self._id_data_str())]))
        return result

    @classmethod
    def _from_dict(cls, payload_dict):
        return cls(PayloadID.Type.from_json(payload_dict['id_type']),
                   hex_to_bytes(payload_dict['id_data'], 'ID data'))


class PayloadIDi(PayloadID):
    type = Payload.Type.IDi


class PayloadIDr(PayloadID):
    type = Payload.Type.IDr


class PayloadCERT(Payload):
    type = Payload.Type.CERT

    class Encoding(SafeIntEnum):
        PKCS7_X509_CERTIFICATE = 1
        PGP_CERTIFICATE = 2
        DNS_SIGNED_KEY = 3
        X509_CERTIFICATE_SIGNATURE = 4
        KERBEROS_TOKEN = 6
        CERTIFICATE_REVOCATION_LIST = 7
        AUTHORITY_REVOCATION_LIST = 8
        SPKI_CERTIFICATE = 9
        X509_CERTIFICATE_ATTRIBUTE = 10
        RAW_RSA_KEY = 11
        HASH_AND_URL_X509_CERTIFICATE = 12
        HASH_AND_URL_X509_BUNDLE = 13
        OCSP_CONTENT = 14
        RAW_PUBLIC_KEY = 15

    def __init__(self, encoding, data, critical=False):
        super(PayloadCERT, self).__init__(critical)
        self.encoding = check_range(self.Encoding(encoding), 8, 'Certificate encoding')
        self.data = bytes(data)

    @classmethod
    def _parse_body(cls, reader, critical):
        encoding, = reader.unpack('>B', f'Payload {cls.type.name}')
        return cls(encoding, reader.read_rest(), critical=critical)

    def _body_to_bytes(self):
        return pack('>B', self.encoding) + self.data

    def to_dict(self):
        result = super(PayloadCERT, self).to_dict()
        result.update(OrderedDict([
            ('encoding', self.encoding.name),
            ('data', self.data.hex())]))
        return result

    @classmethod
    def _from_dict(cls, payload_dict):
        return cls(PayloadCERT.Encoding.from_json(payload_dict['encoding']),
                   hex_to_bytes(payload_dict.get('data', ''), 'certificate data'))


class PayloadCERTREQ(PayloadCERT):
    """ Same layout as CERT. The data is the list of SHA-1 hashes of the trusted
        certification authorities' public keys.
    """
    type = Payload.Type.CERTREQ


class PayloadAUTH(Payload):
    type = Payload.Type.AUTH

    class Method(SafeIntEnum):
        RSA = 1
        PSK = 2
        DSS = 3
        ECDSA_SHA_256_P256 = 9
        ECDSA_SHA_384_P384 = 10
        ECDSA_SHA_512_P521 = 11
        GSPAM = 12
        NULL = 13
        DIGITAL_SIGNATURE = 14

    def __init__(self, method, auth_data, critical=False):
        super(PayloadAUTH, self).__init__(critical)
        self.method = check_range(self.Method(method), 8, 'Authentication method')
        self.auth_data = bytes(auth_data)

    @classmethod
    def _parse_body(cls, reader, critical):
        method, _ = reader.unpack('>B3s', 'Payload AUTH')
        return PayloadAUTH(method, reader.read_rest(), critical=critical)

    def _body_to_bytes(self):
        return pack('>BBH', self.method, 0, 0) + self.auth_data

    def to_dict(self):
        result = super(PayloadAUTH, self).to_dict()
        result.update(OrderedDict([
            ('method', self.method.name),
            ('auth_data', self.auth_data.hex()), ]))
        return result

    @classmethod
    def _from_dict(cls, payload_dict):
        return PayloadAUTH(PayloadAUTH.Method.from_json(payload_dict['method']),
                           hex_to_bytes(payload_dict['auth_data'], 'AUTH data'))


class PayloadNONCE(Payload):
    type = Payload.Type.NONCE

    def __init__(self, nonce=None, critical=False):
        super(PayloadNONCE, self).__init__(critical)
        if nonce is not None:
            if len(nonce) < 16 or len(nonce) > 256:
                raise InvalidLength('Invalid Payload NONCE length: {}'.format(len(nonce)))
            self.nonce = bytes(nonce)
        else:
            random = SystemRandom()
            length = random.randrange(16, 256)
            self.nonce = os.urandom(length)

    @classmethod
    def _parse_body(cls, reader, critical):
        return PayloadNONCE(reader.read_rest(), critical)

    def _body_to_bytes(self):
        return self.nonce

    def to_dict(self):
        result = super(PayloadNONCE, self).to_dict()
        result.update(OrderedDict([('nonce', self.nonce.hex())]))
        return result

    @classmethod
    def _from_dict(cls, payload_dict):
        return PayloadNONCE(hex_to_bytes(payload_dict['nonce'], 'nonce'))


class PayloadNOTIFY(Payload):
    type = Payload.Type.NOTIFY

    class Type(SafeIntEnum):
        UNSUPPORTED_CRITICAL_PAYLOAD = 1
        INVALID_IKE_SPI = 4
        INVALID_MAJOR_VERSION = 5
        INVALID_SYNTAX = 7
        INVALID_MESSAGE_ID = 9
        INVALID_SPI = 11
        NO_PROPOSAL_CHOSEN = 14
        INVALID_KE_PAYLOAD = 17
        AUTHENTICATION_FAILED = 24
        SINGLE_PAIR_REQUIRED = 34
        NO_ADDITIONAL_SAS = 35
        INTERNAL_ADDRESS_FAILURE = 36
        FAILED_CP_REQUIRED = 37
        TS_UNACCEPTABLE = 38
        INVALID_SELECTORS = 39
        TEMPORARY_FAILURE = 43
        CHILD_SA_NOT_FOUND = 44
        INITIAL_CONTACT = 16384
        SET_WINDOW_SIZE = 16385
        ADDITIONAL_TS_POSSIBLE = 16386
        IPCOMP_SUPPORTED = 16387
        NAT_DETECTION_SOURCE_IP = 16388
        NAT_DETECTION_DESTINATION_IP = 16389
        COOKIE = 16390
        USE_TRANSPORT_MODE = 16391
        HTTP_CERT_LOOKUP_SUPPORTED = 16392
        REKEY_SA = 16393
        ESP_TFC_PADDING_NOT_SUPPORTED = 16394
        NON_FIRST_FRAGMENTS_ALSO = 16395
        MOBIKE_SUPPORTED = 16396
        ADDITIONAL_IP4_ADDRESS = 16397
        ADDITIONAL_IP6_ADDRESS = 16398
        NO_ADDITIONAL_ADDRESSES = 16399
        UPDATE_SA_ADDRESSES = 16400
        COOKIE2 = 16401
        NO_NATS_ALLOWED = 16402
        AUTH_LIFETIME = 16403
        MULTIPLE_AUTH_SUPPORTED = 16404
        ANOTHER_AUTH_FOLLOWS = 16405
        REDIRECT_SUPPORTED = 16406
        REDIRECT = 16407
        REDIRECTED_FROM = 16408
        TICKET_LT_OPAQUE = 16409
        TICKET_REQUEST = 16410
        TICKET_ACK = 16411
        TICKET_NACK = 16412
        TICKET_OPAQUE = 16413
        LINK_ID = 16414
        USE_WESP_MODE = 16415
        ROHC_SUPPORTED = 16416
        EAP_ONLY_AUTHENTICATION = 16417
        CHILDLESS_IKEV2_SUPPORTED = 16418
        QUICK_CRASH_DETECTION = 16419
        IKEV2_MESSAGE_ID_SYNC_SUPPORTED = 16420
        IPSEC_REPLAY_COUNTER_SYNC_SUPPORTED = 16421
        IKEV2_MESSAGE_ID_SYNC = 16422
        IPSEC_REPLAY_COUNTER_SYNC = 16423
        SECURE_PASSWORD_METHODS = 16424
        PSK_PERSIST = 16425
        PSK_CONFIRM = 16426
        ERX_SUPPORTED = 16427
        IFOM_CAPABILITY = 16428
        SENDER_REQUEST_ID = 16429
        IKEV2_FRAGMENTATION_SUPPORTED = 16430
        SIGNATURE_HASH_ALGORITHMS = 16431
        CLONE_IKE_SA_SUPPORTED = 16432
        CLONE_IKE_SA = 16433
        PUZZLE = 16434
        USE_PPK = 16435
        PPK_IDENTITY = 16436
        NO_PPK_AUTH = 16437
        INTERMEDIATE_EXCHANGE_SUPPORTED = 16438
        IP4_ALLOWED_1 = 16439
        IP4_ALLOWED_2 = 16440
        ADDITIONAL_KEY_EXCHANGE = 16441
        USE_AGGFRAG = 16442

    def __init__(self, protocol_id, notification_type, spi, notification_data, critical=False):
        super(PayloadNOTIFY, self).__init__(critical)
        self.protocol_id = check_range(Proposal.Protocol(protocol_id), 8, 'Protocol ID')
        self.notification_type = check_range(self.Type(notification_type), 16, 'Notification type')
        self.spi = bytes(spi)
        self.notification_data = bytes(notification_data)
        if len(self.spi) > 0xFF:
            raise InvalidLength(f'Notify SPI of {len(self.spi)} bytes is too large')

    @classmethod
    def from_exception(cls, ex):
        if isinstance(ex, UnsupportedCriticalPayload):
            return PayloadNOTIFY(Proposal.Protocol.NONE, PayloadNOTIFY.Type.UNSUPPORTED_CRITICAL_PAYLOAD, b'',
                                 pack('>B', ex.payload_type))
        return PayloadNOTIFY(Proposal.Protocol.NONE, PayloadNOTIFY.Type.INVALID_SYNTAX, b'', b'')

    @classmethod
    def _parse_body(cls, reader, critical):
        protocol_id, spi_size, notification_type = reader.unpack('>BBH', 'Payload NOTIFY')
        spi = reader.read(spi_size, 'Payload NOTIFY SPI')
        notification_data = reader.read_rest()
        return PayloadNOTIFY(protocol_id, notification_type, spi, notification_data, critical=critical)

    def _body_to_bytes(self):
        return pack('>BBH', self.protocol_id, len(self.spi), self.notification_type) + self.spi \
            + self.notification_data

    def to_dict(self):
        result = super(PayloadNOTIFY, self).to_dict()
        result.update(OrderedDict([
            ('protocol_id', self.protocol_id.name),
            ('spi', self.spi.hex()),
            ('notification_type', self.notification_type.name),
            ('notification_data', self.notification_data.hex())]))
        return result

    @classmethod
    def _from_dict(cls, payload_dict):
        return PayloadNOTIFY(Proposal.Protocol.from_json(payload_dict.get('protocol_id', 0)),
                             PayloadNOTIFY.Type.from_json(payload_dict['notification_type']),
                             hex_to_bytes(payload_dict.get('spi', ''), 'Notify SPI'),
                             hex_to_bytes(payload_dict.get('notification_data', ''), 'notification data'))

    def is_error(self):
        return self.notification_type < 16384

    def __str__(self):
        return f'N({self.notification_type.name})'


class PayloadDELETE(Payload):
    type = Payload.Type.DELETE

    def __init__(self, protocol_id, spis, critical=False):
        super(PayloadDELETE, self).__init__(critical)
        self.protocol_id = check_range(Proposal.Protocol(protocol_id), 8, 'Protocol ID')
        self.spis = [bytes(x) for x in spis]
        if len(set(len(x) for x in self.spis)) > 1:
            raise InvalidSyntax('All the SPIs of a Payload DELETE must have the same size')
        if self.spi_size == 0 and self.spis:
            raise InvalidSyntax('Payload DELETE cannot carry empty SPIs')
        if self.spi_size > 0xFF or len(self.spis) > 0xFFFF:
            raise InvalidLength('Payload DELETE SPI size or count is too large')

    @property
    def spi_size(self):
        return len(self.spis[0]) if self.spis else 0

    @classmethod
    def _parse_body(cls, reader, critical):
        protocol_id, spi_size, num_spis = reader.unpack('>BBH', 'Payload DELETE')
        if spi_size == 0 and num_spis != 0:
            raise InvalidSyntax(f'Payload DELETE announces {num_spis} SPIs of size 0')
        if reader.remaining != spi_size * num_spis:
            raise InvalidLength(f'Payload DELETE announces {num_spis} SPIs of {spi_size} bytes but carries '
                                f'{reader.remaining} bytes')
        check_limit(num_spis, reader.configuration.max_substructures, 'SPIs in Payload DELETE')
        spis = [reader.read(spi_size, 'Payload DELETE SPI') for _ in range(num_spis)]
        return PayloadDELETE(protocol_id, spis, critical=critical)

    def _body_to_bytes(self):
        return pack('>BBH', self.protocol_id, self.spi_size, len(self.spis)) + b''.join(self.spis)

    def to_dict(self):
        result = super(PayloadDELETE, self).to_dict()
        result.update(OrderedDict([
            ('protocol_id', self.protocol_id.name),
            ('spis', [x.hex() for x in self.spis])]))
        return result

    @classmethod
    def _from_dict(cls, payload_dict):
        return PayloadDELETE(Proposal.Protocol.from_json(payload_dict['protocol_id']),
                             [hex_to_bytes(x, 'SPI') for x in payload_dict.get('spis', [])])


class PayloadVENDOR(Payload):
    type = Payload.Type.VENDOR

    def __init__(self, vendor_id, critical=False):
        super(PayloadVENDOR, self).__init__(critical)
        if len(vendor_id) == 0:
            raise InvalidSyntax('Vendor ID should have some data.')
        self.vendor_id = bytes(vendor_id)

    @classmethod
    def _parse_body(cls, reader, critical):
        return PayloadVENDOR(reader.read_rest(), critical)

    def _body_to_bytes(self):
        return self.vendor_id

    def to_dict(self):
        result = super(PayloadVENDOR, self).to_dict()
        result.update(OrderedDict([
            ('vendor_id', self.vendor_id.hex())]))
        return result

    @classmethod
    def _from_dict(cls, payload_dict):
        return PayloadVENDOR(hex_to_bytes(payload_dict['vendor_id'], 'vendor ID'))


class PayloadTS(Payload):
    type = Payload.Type.NONE

    def __init__(self, traffic_selectors, critical=False):
        super(PayloadTS, self).__init__(critical)
        self.traffic_selectors = list(traffic_selectors)
        if len(self.traffic_selectors) > 0xFF:
            raise InvalidLength(f'Too many traffic selectors: {len(self.traffic_selectors)}')

    @classmethod
    def _parse_body(cls, reader, critical):
        n_ts, _ = reader.unpack('>B3s', f'Payload {cls.type.name}')
        traffic_selectors = []
        while not reader.at_end:
            check_limit(len(traffic_selectors) + 1, reader.configuration.max_substructures, 'Traffic selectors')
            _, length = reader.peek_unpack('>HH', 'Traffic selector header')
            traffic_selectors.append(TrafficSelector.parse(reader.read(length, 'Traffic selector')))
        if n_ts != len(traffic_selectors):
            raise InvalidSyntax('Payload TS has invalid number of selectors. Expected {} got {}'
                                ''.format(n_ts, len(traffic_selectors)))
        # we need to use cls as it might be PayloadTSi or PayloadTSr
        return cls(traffic_selectors, critical=critical)

    def _body_to_bytes(self):
        return pack('>BBH', len(self.traffic_selectors), 0, 0) + b''.join(x.to_bytes() for x in
                                                                          self.traffic_selectors)

    def to_dict(self):
        result = super(PayloadTS, self).to_dict()
        result.update(OrderedDict([('traffic_selectors', [x.to_dict() for x in self.traffic_selectors])]))
        return result

    @classmethod
    def _from_dict(cls, payload_dict):
        return cls([TrafficSelector.from_dict(x) for x in payload_dict['traffic_selectors']])


class PayloadTSi(PayloadTS):
    type = Payload.Type.TSi


class PayloadTSr(PayloadTS):
    type = Payload.Type.TSr


class PayloadSK(Payload):
    """ Encrypted and Authenticated payload. Its body is opaque until decrypt()
        is called, and its next_payload names the first payload inside it.
    """
    type = Payload.Type.SK

    def __init__(self, encrypted_data, critical=False, next_payload=Payload.Type.NONE):
        super(PayloadSK, self).__init__(critical, next_payload)
        self.encrypted_data = bytes(encrypted_data)
        self.unrecognized_payload_type = None

    @classmethod
    def _parse_body(cls, reader, critical):
        return PayloadSK(reader.read_rest(), critical)

    def _body_to_bytes(self):
        return self.encrypted_data

    def decrypt(self, decrypt_fn, configuration=None):
        """ Returns the payloads contained in this SK payload. decrypt_fn receives the
            encrypted data and must return the plaintext without IV, padding or checksum.
        """
        reader = ByteReader(decrypt_fn(self.encrypted_data), configuration)
        chain = parse_payload_chain(reader, self.next_payload)
        if chain.unrecognized_payload_type is None:
            if not reader.at_end:
                raise InvalidSyntax(f'{reader.remaining} bytes of trailing data after the encrypted payloads')
            if chain.payloads and chain.payloads[-1].type == Payload.Type.SK:
                raise InvalidSyntax('Payload SK cannot contain another Payload SK')
        self.unrecognized_payload_type = chain.unrecognized_payload_type
        return chain.payloads

    def encrypt(self, payloads, encrypt_fn):
        """ Stores the encryption of payloads. encrypt_fn receives the plaintext and must
            return it with IV, padding and room for the integrity checksum.
        """
        if any(x.type == Payload.Type.SK for x in payloads):
            raise InvalidSyntax('Payload SK cannot contain another Payload SK')
        plaintext = payloads_to_bytes(payloads)
        self.next_payload = payloads[0].type if payloads else Payload.Type.NONE
        self.encrypted_data = bytes(encrypt_fn(plaintext))
        return self

    def to_dict(self):
        result = super(PayloadSK, self).to_dict()
        result.update(OrderedDict([('encrypted_data', self.encrypted_data.hex())]))
        return result

    @classmethod
    def _from_dict(cls, payload_dict):
        return PayloadSK(hex_to_bytes(payload_dict['encrypted_data'], 'encrypted data'))

    def __eq__(self, other):
        return super(PayloadSK, self).__eq__(other) and self.next_payload == other.next_payload


class PayloadCP(Payload):
    type = Payload.Type.CP

    class CfgType(SafeIntEnum):
        CFG_REQUEST = 1
        CFG_REPLY = 2
        CFG_SET = 3
        CFG_ACK = 4

    def __init__(self, cfg_type, attributes, critical=False):
        super(PayloadCP, self).__init__(critical)
        self.cfg_type = check_range(self.CfgType(cfg_type), 8, 'CFG type')
        self.attributes = list(attributes)

    @classmethod
    def from_cp_attributes(cls, cfg_type, cp_attributes, critical=False):
        return PayloadCP(cfg_type, cp_attributes.to_list(), critical=critical)

    def get_cp_attributes(self):
        return CPAttributes.from_list(self.attributes)

    @classmethod
    def _parse_body(cls, reader, critical):
        cfg_type, _ = reader.unpack('>B3s', 'Payload CP')
        attributes = parse_configuration_attributes(reader.read_rest(), reader.configuration)
        return PayloadCP(cfg_type, attributes, critical=critical)

    def _body_to_bytes(self):
        return pack('>BBH', self.cfg_type, 0, 0) + b''.join(x.to_bytes() for x in self.attributes)

    def to_dict(self):
        result = super(PayloadCP, self).to_dict()
        result.update(OrderedDict([
            ('cfg_type', self.cfg_type.name),
            ('attributes', [x.to_dict() for x in self.attributes])]))
        return result

    @classmethod
    def _from_dict(cls, payload_dict):
        return PayloadCP(PayloadCP.CfgType.from_json(payload_dict['cfg_type']),
                         [ConfigurationAttribute.from_dict(x) for x in payload_dict.get('attributes', [])])


class PayloadEAP(Payload):
    """ Carries a single EAP message (RFC 3748): code, identifier, length and,
        for requests and responses, the EAP method type followed by its data.
    """
    type = Payload.Type.EAP

    class Code(SafeIntEnum):
        REQUEST = 1
        RESPONSE = 2
        SUCCESS = 3
        FAILURE = 4

    def __init__(self, eap_message, critical=False):
        super(PayloadEAP, self).__init__(critical)
        self.eap_message = bytes(eap_message)
        if len(self.eap_message) < 4:
            raise TruncatedData(f'EAP message must be at least 4 bytes long, got {len(self.eap_message)}')
        eap_length = int.from_bytes(self.eap_message[2:4], 'big')
        if eap_length != len(self.eap_message):
            raise InvalidLength(f'EAP message declares length {eap_length} but carries '
                                f'{len(self.eap_message)} bytes')

    @property
    def code(self):
        return self.Code(self.eap_message[0])

    @property
    def identifier(self):
        return self.eap_message[1]

    @property
    def eap_type(self):
        if self.code in (PayloadEAP.Code.REQUEST, PayloadEAP.Code.RESPONSE) and len(self.eap_message) > 4:
            return self.eap_message[4]
        return None

    @classmethod
    def _parse_body(cls, reader, critical):
        return PayloadEAP(reader.read_rest(), critical=critical)

    def _body_to_bytes(self):
        return self.eap_message

    def to_dict(self):
        result = super(PayloadEAP, self).to_dict()
        result.update(OrderedDict([
            ('code', self.code.name),
            ('identifier', self.identifier),
            ('eap_type', self.eap_type),
            ('eap_message', self.eap_message.hex())]))
        return result

    @classmethod
    def _from_dict(cls, payload_dict):
        return PayloadEAP(hex_to_bytes(payload_dict['eap_message'], 'EAP message'))


type_2_payload = {
    Payload.Type.SA: PayloadSA,
    Payload.Type.KE: PayloadKE,
    Payload.Type.IDi: PayloadIDi,
    Payload.Type.IDr: PayloadIDr,
    Payload.Type.CERT: PayloadCERT,
    Payload.Type.CERTREQ: PayloadCERTREQ,
    Payload.Type.AUTH: PayloadAUTH,
    Payload.Type.NONCE: PayloadNONCE,
    Payload.Type.NOTIFY: PayloadNOTIFY,
    Payload.Type.DELETE: PayloadDELETE,
    Payload.Type.VENDOR: PayloadVENDOR,
    Payload.Type.TSi: PayloadTSi,
    Payload.Type.TSr: PayloadTSr,
    Payload.Type.SK: PayloadSK,
    Payload.Type.CP: PayloadCP,
    Payload.Type.EAP: PayloadEAP,
}

PayloadChain = namedtuple('PayloadChain', ['payloads', 'unrecognized_payload_type', 'unrecognized_critical',
                                           'unparsed_data'])


def parse_payload_chain(reader, first_payload_type):
    """ Walks the next-payload chain starting at the reader offset. It stops at NONE,
        after a Payload SK, at a payload type it cannot interpret or when the
        data runs out. Unrecognized payloads and what follows them are returned as
        unparsed data, so the caller can decide what to do with them.
    """
    payloads = []
    payload_type = Payload.Type(first_payload_type)
    while payload_type != Payload.Type.NONE:
        if reader.at_end:
            logging.warning(f'Payload chain announces a {payload_type.name} payload but there is no more data')
            break
        check_limit(len(payloads) + 1, reader.configuration.max_payloads, 'payloads')
        _, flags, length = reader.peek_unpack('>BBH', f'Payload {payload_type.name} header')
        payload_class = type_2_payload.get(payload_type)
        if payload_class is None:
            critical = bool(flags & Payload.CRITICAL_BIT)
            logging.warning(f'Unrecognized {"critical " if critical else ""}payload with type {payload_type.name}')
            return PayloadChain(payloads, payload_type, critical, reader.read_rest())
        if length < 4:
            raise InvalidLength(f'Payload {payload_type.name} declares length {length}, smaller than its header')
        payload = payload_class.parse(reader.read(length, f'Payload {payload_type.name}'), reader.configuration)
        logging.debug(f'Parsed payload {payload} ({length} bytes)')
        payloads.append(payload)
        # the next payload of a Payload SK refers to its encrypted contents
        if payload_type == Payload.Type.SK:
            break
        payload_type = payload.next_payload
    return PayloadChain(payloads, None, False, b'')


def payloads_to_bytes(payloads, last_next_payload=Payload.Type.NONE):
    """ Serializes a list of payloads, rewriting their next payload links to follow
        the list order. A Payload SK is only allowed as the last element.
    """
    data = bytearray()
    for index, payload in enumerate(payloads):
        if payload.type == Payload.Type.SK:
            if index != len(payloads) - 1:
                raise InvalidSyntax('Payload SK must be the last payload')
        elif index < len(payloads) - 1:
            payload.next_payload = payloads[index + 1].type
        else:
            payload.next_payload = Payload.Type(last_next_payload)
        data += payload.to_bytes()
    return bytes(data)


def payload_from_dict(payload_dict):
    return Payload.from_dict(payload_dict)
