#!/usr/bin/env python3
# -*- coding: utf-8 -*-

""" This module defines the configuration of the codec: the hard limits applied
    while walking untrusted buffers.
"""
from collections import namedtuple

import yaml

__author__ = 'Alejandro Perez-Mendez <alejandro.perez.mendez@gmail.com>'


class ConfigurationError(Exception):
    pass


CodecConfiguration = namedtuple('CodecConfiguration', ['max_payloads', 'max_substructures', 'max_attributes'])

DEFAULT_CONFIGURATION = CodecConfiguration(max_payloads=64, max_substructures=256, max_attributes=1000)


def _load_limit(key, value):
    if isinstance(value, bool):
        raise ConfigurationError(f'{key} should be an integer, not a boolean')
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f'I could not understand {key} configuration value')
    if value <= 0:
        raise ConfigurationError(f'{key} should be a positive integer, got {value}')
    return value


def load_configuration(conf_dict=None):
    """ Builds a CodecConfiguration from a dict. Missing keys take the default value
    """
    conf_dict = conf_dict or {}
    if not isinstance(conf_dict, dict):
        raise ConfigurationError('Codec configuration should be a dictionary')
    unknown = set(conf_dict) - set(CodecConfiguration._fields)
    if unknown:
        raise ConfigurationError(f'Unknown configuration parameters: {", ".join(sorted(unknown))}')
    values = DEFAULT_CONFIGURATION._asdict()
    for key, value in conf_dict.items():
        values[key] = _load_limit(key, value)
    return CodecConfiguration(**values)


def load_configuration_file(filename):
    try:
        with open(filename, 'r') as file:
            conf_dict = yaml.load(file, yaml.SafeLoader)
    except (OSError, yaml.YAMLError) as ex:
        raise ConfigurationError(f'Could not read configuration file {filename}: {ex}')
    return load_configuration(conf_dict)
