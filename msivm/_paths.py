#
# msivm/_paths.py
#
# Copyright (c) Microsoft Corporation. All rights reserved.
# Licensed under the MIT License.
#
'''
Support for locating and parsing the optional msivm config file

Environment variables:
  MSIVM_CONFIG - location of the YAML config file
'''
import copy
import os
import threading

import yaml

import msivm.base_defaults
from msivm.base_defaults import EXC_VALUE_DEFAULT
from msivm.exceptions import (ApplicationExit,
                              ConfigNotFoundError,
                             )

class Paths():
    '''
    Manage finding/caching the config file.
    This is expected to be a singleton in non-unit-testing environments.
    '''
    def __init__(self):
        self._lock = threading.RLock()
        self._config_path = None
        self._config_path_explicit = False
        self._config_data = None

    def reset(self, config_filename='', config_data=None):
        '''
        Discard cached content. Useful for unit testing.
        config_data may be passed to stand in for file contents.
        '''
        with self._lock:
            self._config_path = None
            self._config_path_explicit = False
            self._config_data = None
            if config_filename:
                self._config_path_set(config_filename)
            if config_data is not None:
                self._config_data_set(config_data)

    ######################################################################
    # config_filename

    @property
    def config_filename(self):
        '''
        Getter for the config filename. Returns '' when no config file is named.
        '''
        with self._lock:
            if self._config_path is None:
                path = os.environ.get(msivm.base_defaults.CONFIG_PATH_ENV, '')
                if path:
                    self._config_path_set(path)
                else:
                    self._config_path = ''
            return self._config_path

    def config_filename_setdefault(self, path):
        '''
        Set config filename iff it is not already set.
        Returns the new effective value.
        '''
        with self._lock:
            if not self._config_path:
                self._config_path_set(path)
            return self._config_path

    def _config_path_set(self, path):
        '''
        Set the config filename. A path set here is explicit;
        failing to find it is an error.
        '''
        if not isinstance(path, str):
            raise TypeError("path must be str, not %s" % type(path))
        if not path:
            raise ValueError("invalid (empty) path")
        with self._lock:
            self._config_path = os.path.expanduser(path)
            self._config_path_explicit = True

    ######################################################################
    # config_data

    # cache parsed contents by filename
    _cd_cache = {} # key=path value=data

    def cd_cache_reset(self):
        '''
        Clear the contents of _cd_cache.
        '''
        with self._lock:
            self._cd_cache.clear()

    @property
    def config_data(self):
        '''
        Read, parse, and cache the config file.
        No file named: empty dict.
        '''
        with self._lock:
            if self._config_data is not None:
                return self._config_data
            filename = self.config_filename
            if not filename:
                self._config_data_set(dict())
                return self._config_data
            data = self._cd_cache.get(filename, None)
            if not isinstance(data, dict):
                data = self._config_file_parse(filename, self._config_path_explicit)
                self._cd_cache[filename] = data
            # Never share a ref with the cache
            self._config_data_set(copy.deepcopy(data))
            return self._config_data

    @staticmethod
    def _config_file_parse(filename, explicit):
        '''
        Return the parsed contents of filename as a dict
        '''
        try:
            with open(filename, 'r') as f:
                contents = f.read()
        except FileNotFoundError as exc:
            if not explicit:
                return dict()
            raise ConfigNotFoundError("config file %r not found" % filename) from exc
        try:
            data = yaml.safe_load(contents)
        except yaml.error.MarkedYAMLError as exc:
            raise ApplicationExit(f"cannot parse {filename!r}: error line {exc.problem_mark.line} column {exc.problem_mark.column}") from exc
        except yaml.error.YAMLError as exc:
            # yaml.error.YAMLError is more readable with str than repr
            raise ApplicationExit(f"cannot parse {filename!r}: error {exc}") from exc
        if data is None:
            # empty file - interpret it as an empty dict
            data = dict()
        if not isinstance(data, dict):
            raise ApplicationExit(f"content of config file {filename!r} is not a dict")
        return data

    def _config_data_set(self, data:dict):
        '''
        Use the provided data as the config.
        '''
        if not isinstance(data, dict):
            raise TypeError("config data must be dict, not %s" % type(data))
        with self._lock:
            self._config_data = data

    ######################################################################
    # helpers

    @staticmethod
    def config_dict_from_data(filename, data, key, exc_value=EXC_VALUE_DEFAULT) -> dict:
        '''
        filename is the name of the file from which data is loaded.
        data is config_data, assumed to be a dict.
        key is a key in the data dict that is expected to be a dict.
        Returns this dict, or an empty dict if not found.
        '''
        assert isinstance(data, dict)
        ret = data.get(key, None)
        if ret is None:
            return dict()
        if not isinstance(ret, dict):
            raise exc_value(f"{key} in {filename or '<config>'} has type {type(ret)}; expected dict")
        return ret

paths = Paths()
