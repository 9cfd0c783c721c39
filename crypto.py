#!/usr/bin/env python3
# -*- coding: utf-8 -*-

""" This module defines a reference implementation of the cryptographic
    functions the codec expects for the Payload SK and the message checksum.
"""

import hashlib
import hmac
import os
from struct import pack

from cryptography.hazmat.primitives.ciphers import Cipher as _Cipher, algorithms, modes

from helpers import InvalidSyntax
from proposal import Transform

__author__ = 'Alejandro Perez-Mendez <alejandro.perez.mendez@gmail.com>'


class EncrError(Exception):
    pass


class Cipher:
    _algorithm_dict = {
        Transform.EncrId.ENCR_AES_CBC: algorithms.AES,
    }

    def __init__(self, transform):
        if transform.type != Transform.Type.ENCR or transform.id not in self._algorithm_dict:
            raise EncrError(f'Unsupported encryption transform {transform!r}')
        self._algorithm = self._algorithm_dict[transform.id]
        self._transform = transform
        # AES has several key sizes, so the KEY_LENGTH attribute is mandatory
        if self._transform.keylen is None:
            raise EncrError(f'Algorithm {self._algorithm.name} requires a KEY_LENGTH attribute')
        if transform.keylen not in self._algorithm.key_sizes:
            raise InvalidSyntax(f'Incorrect key length {transform.keylen} for algorithm {self._algorithm.name}. '
                                f'Acceptable values are: {sorted(self._algorithm.key_sizes)}')

    @property
    def block_size(self):
        return self._algorithm.block_size // 8

    @property
    def key_size(self):
        return self._transform.keylen // 8

    def _cipher(self, key, iv):
        if len(key) != self.key_size:
            raise EncrError('Key must be of the indicated size {}'.format(self.key_size))
        return _Cipher(self._algorithm(key), modes.CBC(iv))

    def encrypt(self, key, iv, data):
        encryptor = self._cipher(key, iv).encryptor()
        return encryptor.update(data) + encryptor.finalize()

    def decrypt(self, key, iv, data):
        if len(data) % self.block_size:
            raise EncrError(f'Ciphertext length {len(data)} is not a multiple of the block size')
        decryptor = self._cipher(key, iv).decryptor()
        return decryptor.update(data) + decryptor.finalize()

    def generate_iv(self):
        return os.urandom(self.block_size)


class Integrity:
    _digestmod_dict = {
        Transform.IntegId.AUTH_HMAC_SHA1_96: (hashlib.sha1, 96),
        Transform.IntegId.AUTH_HMAC_SHA2_256_128: (hashlib.sha256, 128),
        Transform.IntegId.AUTH_HMAC_SHA2_384_192: (hashlib.sha384, 192),
        Transform.IntegId.AUTH_HMAC_SHA2_512_256: (hashlib.sha512, 256),
    }

    def __init__(self, transform):
        if transform.type != Transform.Type.INTEG or transform.id not in self._digestmod_dict:
            raise EncrError(f'Unsupported integrity transform {transform!r}')
        self.hasher, self.hashbits = self._digestmod_dict[transform.id]

    @property
    def key_size(self):
        return self.hasher().digest_size

    @property
    def hash_size(self):
        return self.hashbits // 8

    def compute(self, key, data):
        m = hmac.HMAC(key, data, digestmod=self.hasher)
        return m.digest()[:self.hash_size]


class Crypto:
    """ Binds a cipher and an integrity algorithm to their keys and exposes the
        functions accepted by PayloadSK.encrypt/decrypt and by the Message checksum
        helpers.
    """

    def __init__(self, cipher, sk_e, integrity, sk_a):
        self.cipher = cipher
        self.sk_e = sk_e
        self.integrity = integrity
        self.sk_a = sk_a

    @property
    def checksum_size(self):
        return self.integrity.hash_size

    def encrypt(self, cleartext, iv=None):
        """ Returns IV | ciphertext | room for the checksum """
        iv = iv if iv is not None else self.cipher.generate_iv()
        padlen = (self.cipher.block_size - (len(cleartext) % self.cipher.block_size) - 1)
        cleartext = cleartext + b'\x00' * padlen + pack('>B', padlen)
        encrypted = self.cipher.encrypt(self.sk_e, bytes(iv), bytes(cleartext))
        return iv + encrypted + b'\x00' * self.checksum_size

    def decrypt(self, encrypted_data):
        block_size = self.cipher.block_size
        if len(encrypted_data) < 2 * block_size + self.checksum_size:
            raise EncrError(f'Encrypted data is too short: {len(encrypted_data)} bytes')
        iv = encrypted_data[:block_size]
        ciphertext = encrypted_data[block_size:-self.checksum_size]
        decrypted = self.cipher.decrypt(self.sk_e, bytes(iv), bytes(ciphertext))
        padlen = decrypted[-1]
        if padlen + 1 > len(decrypted):
            raise EncrError(f'Invalid pad length {padlen}')
        return decrypted[:-1 - padlen]

    def compute_checksum(self, data):
        return self.integrity.compute(self.sk_a, data)

    def verify_checksum(self, data, checksum):
        return hmac.compare_digest(self.compute_checksum(data), checksum)
